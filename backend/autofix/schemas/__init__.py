from autofix.schemas.issue import (
    IssueLogResponse,
    IssueResponse,
    IssueStats,
    RetryResponse,
    StatusResponse,
    WebhookLogResponse,
)
from autofix.schemas.project import ProjectCreateRequest, ProjectResponse, ProjectUpdateRequest
from autofix.schemas.webhook import (
    EventAlertWebhook,
    ExceptionTrace,
    IssueWebhook,
    ParsedEvent,
    StackFrame,
)

__all__ = [
    "IssueLogResponse",
    "IssueResponse",
    "IssueStats",
    "RetryResponse",
    "StatusResponse",
    "WebhookLogResponse",
    "ProjectCreateRequest",
    "ProjectResponse",
    "ProjectUpdateRequest",
    "EventAlertWebhook",
    "ExceptionTrace",
    "IssueWebhook",
    "ParsedEvent",
    "StackFrame",
]
