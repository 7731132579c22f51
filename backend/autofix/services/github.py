from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Protocol

import httpx
from loguru import logger

from autofix.core.config import Settings, settings as default_settings
from autofix.core.errors import PublishError
from autofix.models.project import Project
from autofix.schemas.webhook import ParsedEvent

MAX_TITLE_LENGTH = 120


@dataclass
class PullRequestRequest:
    event: ParsedEvent
    project: Project
    branch: str
    changed_files: list[str] = field(default_factory=list)


class PullRequestPublisher(Protocol):
    async def publish(self, request: PullRequestRequest) -> str: ...


def build_pr_title(event: ParsedEvent) -> str:
    title = f"fix: {event.title}"
    if len(title) > MAX_TITLE_LENGTH:
        title = title[: MAX_TITLE_LENGTH - 3] + "..."
    return title


def build_pr_body(request: PullRequestRequest) -> str:
    event = request.event
    lines = [
        "## Automated fix",
        "",
        f"**Issue:** {event.title}",
        f"**Level:** {event.level}",
    ]
    if event.web_url or event.issue_url:
        lines.append(f"**Link:** {event.web_url or event.issue_url}")
    if event.culprit:
        lines.append(f"**Culprit:** `{event.culprit}`")
    lines.extend(["", "### Error", "", "```", event.message, "```"])
    if request.changed_files:
        lines.extend(["", "### Changed files", ""])
        lines.extend(f"- `{path}`" for path in request.changed_files)
    lines.extend(["", "_This pull request was generated automatically. Please review before merging._"])
    return "\n".join(lines)


class GitHubPublisher:
    def __init__(
        self,
        *,
        token: str | None,
        api_base: str = "https://api.github.com",
        label: str = "autofix",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.token = token
        self.api_base = api_base.rstrip("/")
        self.label = label
        self._transport = transport

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "GitHubPublisher":
        config = config or default_settings
        return cls(token=config.github_token, api_base=config.github_api_base, label=config.pr_label)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    async def _request(self, client: httpx.AsyncClient, method: str, path: str, payload: Dict[str, Any]) -> httpx.Response:
        return await client.request(method, path, json=payload, headers=self._headers())

    async def ensure_label(self, client: httpx.AsyncClient, repo: str) -> None:
        response = await self._request(
            client,
            "POST",
            f"/repos/{repo}/labels",
            {"name": self.label, "color": "5319e7", "description": "Automated fix"},
        )
        # 422 means the label already exists
        if response.status_code not in (201, 422):
            logger.warning(
                "Failed to ensure pull request label",
                repo=repo,
                label=self.label,
                status_code=response.status_code,
            )

    async def publish(self, request: PullRequestRequest) -> str:
        if not self.token:
            raise PublishError("GitHub token is not configured")
        if not request.branch:
            raise PublishError("Fix result did not name a branch")

        repo = request.project.repo
        async with httpx.AsyncClient(base_url=self.api_base, timeout=30.0, transport=self._transport) as client:
            await self.ensure_label(client, repo)
            response = await self._request(
                client,
                "POST",
                f"/repos/{repo}/pulls",
                {
                    "title": build_pr_title(request.event),
                    "head": request.branch,
                    "base": request.project.branch,
                    "body": build_pr_body(request),
                },
            )
            if response.status_code >= 400:
                raise PublishError(f"GitHub rejected pull request ({response.status_code}): {response.text[:300]}")
            data = response.json()
            pr_url = data.get("html_url")
            if not pr_url:
                raise PublishError("GitHub response did not include a pull request URL")

            number = data.get("number")
            if number is not None:
                label_response = await self._request(
                    client,
                    "POST",
                    f"/repos/{repo}/issues/{number}/labels",
                    {"labels": [self.label]},
                )
                if label_response.status_code >= 400:
                    logger.warning("Failed to label pull request", repo=repo, number=number)

        logger.info("Opened pull request", repo=repo, branch=request.branch, pr_url=pr_url)
        return pr_url
