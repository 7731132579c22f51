from __future__ import annotations

from typing import Any, Dict
from urllib.parse import quote

import httpx
from loguru import logger
from pydantic import ValidationError

from autofix.core.config import Settings, settings as default_settings
from autofix.schemas.webhook import ParsedEvent, RawException
from autofix.services.normalizer import map_exceptions


class MonitorApiClient:
    """Thin wrapper over the error-monitoring REST API."""

    def __init__(
        self,
        *,
        base_url: str,
        auth_token: str | None,
        org_slug: str | None,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token
        self.org_slug = org_slug
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "MonitorApiClient":
        config = config or default_settings
        return cls(
            base_url=config.monitor_api_base,
            auth_token=config.monitor_auth_token,
            org_slug=config.monitor_org_slug,
            timeout=config.monitor_api_timeout,
        )

    @property
    def configured(self) -> bool:
        return bool(self.auth_token and self.org_slug)

    async def fetch_latest_event(self, issue_id: str) -> Dict[str, Any]:
        path = (
            f"/organizations/{quote(str(self.org_slug), safe='')}"
            f"/issues/{quote(str(issue_id), safe='')}/events/latest/"
        )
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            response = await client.get(path, headers={"Authorization": f"Bearer {self.auth_token}"})
            response.raise_for_status()
            return response.json()


def _dict_or_none(value: Any) -> Dict[str, Any] | None:
    return value if isinstance(value, dict) else None


def extract_enrichment(event: Dict[str, Any]) -> Dict[str, Any]:
    exceptions: list[RawException] = []
    entries = event.get("entries")
    for entry in entries if isinstance(entries, list) else []:
        if not isinstance(entry, dict) or entry.get("type") != "exception":
            continue
        data = entry.get("data") if isinstance(entry.get("data"), dict) else {}
        values = data.get("values")
        for value in values if isinstance(values, list) else []:
            try:
                exceptions.append(RawException.model_validate(value))
            except ValidationError:
                continue

    tags = event.get("tags")
    enrichment: Dict[str, Any] = {
        "stacktrace": map_exceptions(exceptions),
        "tags": tags if isinstance(tags, list) else [],
        "request": _dict_or_none(event.get("request")),
        "user": _dict_or_none(event.get("user")),
        "contexts": _dict_or_none(event.get("contexts")),
    }
    event_id = event.get("eventID") or event.get("id")
    if event_id:
        enrichment["event_id"] = str(event_id)
    if isinstance(event.get("platform"), str) and event["platform"]:
        enrichment["platform"] = event["platform"]
    if isinstance(event.get("culprit"), str) and event["culprit"]:
        enrichment["culprit"] = event["culprit"]
    return enrichment


class EventEnricher:
    def __init__(self, client: MonitorApiClient):
        self.client = client

    async def enrich(self, parsed: ParsedEvent) -> ParsedEvent:
        """Merge details of the issue's latest event into ``parsed``.

        Best-effort: on any failure the original event is returned unchanged.
        """
        if parsed.stacktrace:
            return parsed
        if not self.client.configured:
            logger.debug("Monitor API credentials not configured, skipping enrichment", issue_id=parsed.issue_id)
            return parsed

        logger.info("Fetching latest event for issue", issue_id=parsed.issue_id)
        try:
            event = await self.client.fetch_latest_event(parsed.issue_id)
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Monitor API returned an error status",
                issue_id=parsed.issue_id,
                status_code=exc.response.status_code,
            )
            return parsed
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Failed to fetch latest event", issue_id=parsed.issue_id, error=str(exc))
            return parsed

        if not isinstance(event, dict):
            logger.warning("Unexpected latest event payload", issue_id=parsed.issue_id)
            return parsed
        try:
            enrichment = extract_enrichment(event)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Malformed latest event payload", issue_id=parsed.issue_id, error=str(exc))
            return parsed
        update = {key: value for key, value in enrichment.items() if value not in (None, [])}
        return parsed.model_copy(update=update)
