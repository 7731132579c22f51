"""Inbound webhook payload shapes and the canonical event they normalize into."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class RawFrame(_Payload):
    # Webhooks use snake_case, the REST API returns camelCase
    filename: Optional[str] = None
    abs_path: Optional[str] = Field(default=None, validation_alias=AliasChoices("abs_path", "absPath"))
    function: Optional[str] = None
    module: Optional[str] = None
    lineno: Optional[int] = Field(default=None, validation_alias=AliasChoices("lineno", "lineNo"))
    colno: Optional[int] = Field(default=None, validation_alias=AliasChoices("colno", "colNo"))
    context_line: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("context_line", "contextLine")
    )
    pre_context: Optional[list[str]] = Field(
        default=None, validation_alias=AliasChoices("pre_context", "preContext")
    )
    post_context: Optional[list[str]] = Field(
        default=None, validation_alias=AliasChoices("post_context", "postContext")
    )
    in_app: Optional[bool] = Field(default=None, validation_alias=AliasChoices("in_app", "inApp"))


class RawStacktrace(_Payload):
    frames: Optional[list[RawFrame]] = None


class RawException(_Payload):
    type: Optional[str] = None
    value: Optional[str] = None
    module: Optional[str] = None
    stacktrace: Optional[RawStacktrace] = None


class RawExceptionInterface(_Payload):
    values: Optional[list[RawException]] = None


class AlertEvent(_Payload):
    issue_id: Union[str, int]
    event_id: Optional[str] = None
    title: Optional[str] = None
    level: Optional[str] = None
    platform: Optional[str] = None
    project_slug: Optional[str] = None
    culprit: Optional[str] = None
    message: Optional[str] = None
    timestamp: Optional[Union[str, float]] = None
    issue_url: Optional[str] = None
    web_url: Optional[str] = None
    exception: Optional[RawExceptionInterface] = None
    tags: Optional[list[Any]] = None
    request: Optional[dict[str, Any]] = None
    user: Optional[dict[str, Any]] = None


class IssueAlert(_Payload):
    title: Optional[str] = None
    project_slug: Optional[str] = None


class EventAlertData(_Payload):
    event: AlertEvent
    issue_alert: Optional[IssueAlert] = None
    triggered_rule: Optional[str] = None


class EventAlertWebhook(_Payload):
    resource: Literal["event_alert"] = "event_alert"
    action: Optional[str] = None
    data: EventAlertData


class IssueProject(_Payload):
    id: Optional[Union[str, int]] = None
    slug: Optional[str] = None
    name: Optional[str] = None


class IssueMetadata(_Payload):
    type: Optional[str] = None
    value: Optional[str] = None


class IssueDetail(_Payload):
    id: Union[str, int]
    title: Optional[str] = None
    level: Optional[str] = None
    platform: Optional[str] = None
    culprit: Optional[str] = None
    project: Optional[IssueProject] = None
    metadata: Optional[IssueMetadata] = None
    first_seen: Optional[str] = Field(default=None, validation_alias=AliasChoices("firstSeen", "first_seen"))
    url: Optional[str] = None
    web_url: Optional[str] = None
    count: Optional[Union[int, str]] = None
    user_count: Optional[Union[int, str]] = Field(
        default=None, validation_alias=AliasChoices("userCount", "user_count")
    )
    priority: Optional[str] = None


class IssueData(_Payload):
    issue: IssueDetail


class IssueWebhook(_Payload):
    resource: Literal["issue"] = "issue"
    action: Optional[str] = None
    data: IssueData


WebhookPayload = Annotated[Union[EventAlertWebhook, IssueWebhook], Field(discriminator="resource")]
webhook_payload_adapter: TypeAdapter[Union[EventAlertWebhook, IssueWebhook]] = TypeAdapter(WebhookPayload)


class StackFrame(BaseModel):
    filename: Optional[str] = None
    abs_path: Optional[str] = None
    function: Optional[str] = None
    module: Optional[str] = None
    line_no: Optional[int] = None
    col_no: Optional[int] = None
    context: Optional[str] = None
    pre_context: Optional[list[str]] = None
    post_context: Optional[list[str]] = None
    in_app: Optional[bool] = None


class ExceptionTrace(BaseModel):
    type: Optional[str] = None
    value: Optional[str] = None
    module: Optional[str] = None
    frames: list[StackFrame] = Field(default_factory=list)


class ParsedEvent(BaseModel):
    issue_id: str
    project_slug: str
    title: str
    level: str = "error"
    message: str
    event_id: Optional[str] = None
    platform: Optional[str] = None
    culprit: Optional[str] = None
    timestamp: Optional[str] = None
    first_seen: Optional[str] = None
    issue_url: Optional[str] = None
    web_url: Optional[str] = None
    stacktrace: Optional[list[ExceptionTrace]] = None
    tags: Optional[list[Any]] = None
    request: Optional[dict[str, Any]] = None
    user: Optional[dict[str, Any]] = None
    contexts: Optional[dict[str, Any]] = None
    triggered_rule: Optional[str] = None
    action: Optional[str] = None
    count: Optional[int] = None
    user_count: Optional[int] = None
    priority: Optional[str] = None

