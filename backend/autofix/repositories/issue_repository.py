from __future__ import annotations

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from autofix.db.upsert import insert_ignore
from autofix.models.base import utc_now
from autofix.models.enums import IssueStatus
from autofix.models.issue import Issue


class IssueRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, issue_id: str) -> Issue | None:
        result = await self.session.execute(select(Issue).where(Issue.issue_id == issue_id))
        return result.scalar_one_or_none()

    async def create_if_absent(
        self,
        *,
        issue_id: str,
        project_slug: str,
        repo: str,
        title: str,
        level: str | None,
        error_message: str | None,
        first_seen_at: str | None = None,
    ) -> bool:
        now = utc_now()
        return await insert_ignore(
            self.session,
            Issue.__table__,
            "issue_id",
            {
                "issue_id": issue_id,
                "project_slug": project_slug,
                "repo": repo,
                "title": title,
                "level": level,
                "error_message": error_message,
                "first_seen_at": first_seen_at,
                "attempts": 0,
                "status": IssueStatus.pending.value,
                "created_at": now,
                "updated_at": now,
            },
        )

    async def increment_attempts(self, issue_id: str) -> None:
        await self.session.execute(
            update(Issue)
            .where(Issue.issue_id == issue_id)
            .values(attempts=Issue.attempts + 1, updated_at=utc_now())
        )
        await self.session.commit()

    async def mark_status(self, issue_id: str, status: str, pr_url: str | None = None) -> None:
        values: dict[str, object] = {"status": status, "updated_at": utc_now()}
        # pr_url is additive: once set it is never cleared
        if pr_url is not None:
            values["pr_url"] = pr_url
        await self.session.execute(update(Issue).where(Issue.issue_id == issue_id).values(**values))
        await self.session.commit()

    async def reset_to_pending(self, issue_id: str) -> None:
        await self.session.execute(
            update(Issue)
            .where(Issue.issue_id == issue_id)
            .values(
                status=IssueStatus.pending.value,
                attempts=case((Issue.attempts > 0, Issue.attempts - 1), else_=0),
                updated_at=utc_now(),
            )
        )
        await self.session.commit()

    async def list_by_status(self, status: str) -> list[Issue]:
        stmt = select(Issue).where(Issue.status == status).order_by(Issue.created_at.asc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_recent(self, limit: int = 50) -> list[Issue]:
        stmt = select(Issue).order_by(Issue.updated_at.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_by_status(self) -> dict[str, int]:
        stmt = select(Issue.status, func.count()).group_by(Issue.status)
        result = await self.session.execute(stmt)
        return {status: count for status, count in result.all()}
