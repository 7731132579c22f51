from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from autofix.models.enums import TERMINAL_STATUSES, IssueStatus
from autofix.models.event import WebhookLog
from autofix.models.issue import Issue, IssueLog
from autofix.models.project import Project
from autofix.repositories.issue_log_repository import IssueLogRepository
from autofix.repositories.issue_repository import IssueRepository
from autofix.repositories.webhook_log_repository import WebhookLogRepository
from autofix.schemas.webhook import ParsedEvent


def should_attempt(issue: Issue | None, max_attempts: int) -> bool:
    if issue is None:
        return True
    if issue.status in TERMINAL_STATUSES:
        return False
    return issue.attempts < max_attempts


class IssueStateStore:
    """Durable issue state, issue logs and the webhook audit trail.

    Every call runs in its own session, so each statement commits on its own.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_issue(self, issue_id: str) -> Issue | None:
        async with self._session_factory() as session:
            return await IssueRepository(session).get(issue_id)

    async def should_attempt(self, issue_id: str, max_attempts: int) -> bool:
        return should_attempt(await self.get_issue(issue_id), max_attempts)

    async def create_issue_if_absent(self, event: ParsedEvent, project: Project) -> bool:
        async with self._session_factory() as session:
            return await IssueRepository(session).create_if_absent(
                issue_id=event.issue_id,
                project_slug=event.project_slug,
                repo=project.repo,
                title=event.title,
                level=event.level,
                error_message=event.message,
                first_seen_at=event.first_seen,
            )

    async def increment_attempts(self, issue_id: str) -> None:
        async with self._session_factory() as session:
            await IssueRepository(session).increment_attempts(issue_id)

    async def mark_status(self, issue_id: str, status: IssueStatus | str, pr_url: str | None = None) -> None:
        value = status.value if isinstance(status, IssueStatus) else status
        async with self._session_factory() as session:
            await IssueRepository(session).mark_status(issue_id, value, pr_url=pr_url)

    async def reset_to_pending(self, issue_id: str) -> None:
        async with self._session_factory() as session:
            await IssueRepository(session).reset_to_pending(issue_id)

    async def list_in_progress(self) -> list[Issue]:
        async with self._session_factory() as session:
            return await IssueRepository(session).list_by_status(IssueStatus.in_progress.value)

    async def list_recent_issues(self, limit: int = 50) -> list[Issue]:
        async with self._session_factory() as session:
            return await IssueRepository(session).list_recent(limit)

    async def stats(self) -> dict[str, object]:
        async with self._session_factory() as session:
            by_status = await IssueRepository(session).count_by_status()
        return {"total": sum(by_status.values()), "by_status": by_status}

    async def append_log(self, issue_id: str, source: str, message: str) -> IssueLog:
        async with self._session_factory() as session:
            return await IssueLogRepository(session).append(issue_id=issue_id, source=source, message=message)

    async def logs_for_issue(self, issue_id: str, since_id: int = 0) -> list[IssueLog]:
        async with self._session_factory() as session:
            return await IssueLogRepository(session).list_for_issue(issue_id, since_id=since_id)

    async def record_webhook(
        self,
        *,
        resource: str,
        action: str | None,
        decision: str,
        reason: str | None = None,
        issue_id: str | None = None,
        issue_title: str | None = None,
        project_slug: str | None = None,
    ) -> WebhookLog:
        async with self._session_factory() as session:
            return await WebhookLogRepository(session).create(
                resource=resource,
                action=action,
                decision=decision,
                reason=reason,
                issue_id=issue_id,
                issue_title=issue_title,
                project_slug=project_slug,
            )

    async def recent_webhooks(self, limit: int = 200) -> list[WebhookLog]:
        async with self._session_factory() as session:
            return await WebhookLogRepository(session).list_recent(limit)
