from autofix.repositories.issue_log_repository import IssueLogRepository
from autofix.repositories.issue_repository import IssueRepository
from autofix.repositories.project_repository import ProjectRepository
from autofix.repositories.webhook_log_repository import WebhookLogRepository

__all__ = [
    "IssueRepository",
    "IssueLogRepository",
    "ProjectRepository",
    "WebhookLogRepository",
]
