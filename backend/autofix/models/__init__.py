from autofix.models.event import WebhookLog
from autofix.models.issue import Issue, IssueLog
from autofix.models.project import Project

__all__ = [
    "Issue",
    "IssueLog",
    "WebhookLog",
    "Project",
]
