from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional, Union

from loguru import logger
from pydantic import ValidationError

from autofix.models.enums import WebhookResource
from autofix.schemas.webhook import (
    AlertEvent,
    EventAlertWebhook,
    ExceptionTrace,
    IssueWebhook,
    ParsedEvent,
    RawException,
    StackFrame,
    webhook_payload_adapter,
)

UNKNOWN_PROJECT = "unknown"
ANY_ACTION = "*"


@dataclass(frozen=True)
class NotActionable:
    reason: str
    response_reason: str = "not_actionable"


NormalizeResult = Union[ParsedEvent, NotActionable]


class IssueActionPolicy:
    """Which ``issue`` webhook actions start a remediation attempt."""

    def __init__(self, actions: Iterable[str]):
        normalized = {str(action).strip().lower() for action in actions if str(action).strip()}
        self.accept_any = ANY_ACTION in normalized
        self.actions = frozenset(normalized - {ANY_ACTION})

    def accepts(self, action: Optional[str]) -> bool:
        if self.accept_any:
            return True
        return (action or "").lower() in self.actions


def _first_non_empty(*values: Optional[Any]) -> Optional[Any]:
    for value in values:
        if value is None:
            continue
        if isinstance(value, str) and value.strip() == "":
            continue
        return value
    return None


def _as_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def project_from_tags(tags: Optional[list[Any]]) -> Optional[str]:
    for tag in tags or []:
        if isinstance(tag, (list, tuple)) and len(tag) >= 2 and tag[0] == "project":
            return str(tag[1]) if tag[1] is not None else None
        if isinstance(tag, dict) and tag.get("key") == "project":
            value = tag.get("value")
            return str(value) if value is not None else None
    return None


def map_exceptions(exceptions: Optional[list[RawException]]) -> Optional[list[ExceptionTrace]]:
    if not exceptions:
        return None
    traces: list[ExceptionTrace] = []
    for exc in exceptions:
        raw_frames = exc.stacktrace.frames if exc.stacktrace and exc.stacktrace.frames else []
        frames = [
            StackFrame(
                filename=frame.filename,
                abs_path=frame.abs_path,
                function=frame.function,
                module=frame.module,
                line_no=frame.lineno,
                col_no=frame.colno,
                context=frame.context_line,
                pre_context=frame.pre_context,
                post_context=frame.post_context,
                in_app=frame.in_app,
            )
            for frame in raw_frames
        ]
        traces.append(ExceptionTrace(type=exc.type, value=exc.value, module=exc.module, frames=frames))
    return traces


def _timestamp(value: Union[str, float, None]) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def parse_event_alert(payload: EventAlertWebhook) -> NormalizeResult:
    if payload.action != "triggered":
        return NotActionable(f"event_alert action {payload.action!r} is not actionable")

    event: AlertEvent = payload.data.event
    issue_alert = payload.data.issue_alert
    project_slug = _first_non_empty(
        event.project_slug,
        issue_alert.project_slug if issue_alert else None,
        project_from_tags(event.tags),
        UNKNOWN_PROJECT,
    )
    title = _first_non_empty(event.title, event.culprit, f"Issue {event.issue_id}")
    return ParsedEvent(
        issue_id=str(event.issue_id),
        event_id=event.event_id,
        title=title,
        level=event.level or "error",
        platform=event.platform,
        project_slug=project_slug,
        culprit=event.culprit,
        message=_first_non_empty(event.message, title),
        timestamp=_timestamp(event.timestamp),
        issue_url=event.issue_url,
        web_url=event.web_url,
        stacktrace=map_exceptions(event.exception.values if event.exception else None),
        tags=event.tags or [],
        request=event.request,
        user=event.user,
        triggered_rule=payload.data.triggered_rule,
    )


def parse_issue_event(payload: IssueWebhook, policy: IssueActionPolicy) -> NormalizeResult:
    if not policy.accepts(payload.action):
        return NotActionable(f"issue action {payload.action!r} is not actionable")

    issue = payload.data.issue
    title = _first_non_empty(issue.title, issue.culprit, f"Issue {issue.id}")
    metadata_value = issue.metadata.value if issue.metadata else None
    project_slug = _first_non_empty(issue.project.slug if issue.project else None, UNKNOWN_PROJECT)
    return ParsedEvent(
        issue_id=str(issue.id),
        action=payload.action,
        title=title,
        level=issue.level or "error",
        platform=issue.platform,
        project_slug=project_slug,
        culprit=issue.culprit,
        message=_first_non_empty(metadata_value, title),
        first_seen=issue.first_seen,
        issue_url=issue.url,
        web_url=issue.web_url,
        count=_as_int(issue.count),
        user_count=_as_int(issue.user_count),
        priority=issue.priority,
        # issue webhooks never carry a stack trace
        stacktrace=None,
    )


def normalize_webhook(resource: Optional[str], payload: Any, policy: IssueActionPolicy) -> NormalizeResult:
    """Turn a decoded webhook body into a ``ParsedEvent``.

    Anything that is not a fixable trigger comes back as ``NotActionable``;
    this function does not raise on malformed input.
    """
    resource = (resource or "unknown").strip()
    if resource == WebhookResource.installation.value:
        return NotActionable("installation webhook acknowledged", response_reason="installation")
    if resource not in (WebhookResource.event_alert.value, WebhookResource.issue.value):
        return NotActionable(f"Unsupported {resource} webhook")
    if not isinstance(payload, dict):
        return NotActionable(f"Unparseable {resource} webhook")

    try:
        parsed = webhook_payload_adapter.validate_python({**payload, "resource": resource})
    except ValidationError as exc:
        logger.debug("Webhook payload failed validation", resource=resource, errors=exc.error_count())
        return NotActionable(f"Unparseable or non-triggered {resource} webhook")

    if isinstance(parsed, EventAlertWebhook):
        return parse_event_alert(parsed)
    return parse_issue_event(parsed, policy)
