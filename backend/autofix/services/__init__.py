from autofix.services.enricher import EventEnricher
from autofix.services.events import NotificationBus
from autofix.services.fixer import AgentFixExecutor
from autofix.services.github import GitHubPublisher
from autofix.services.issue_store import IssueStateStore
from autofix.services.projects import ProjectResolver
from autofix.services.scheduler import JobScheduler

__all__ = [
    "EventEnricher",
    "NotificationBus",
    "AgentFixExecutor",
    "GitHubPublisher",
    "IssueStateStore",
    "ProjectResolver",
    "JobScheduler",
]
