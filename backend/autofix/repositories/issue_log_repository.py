from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from autofix.models.issue import IssueLog


class IssueLogRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(self, *, issue_id: str, source: str, message: str) -> IssueLog:
        entry = IssueLog(issue_id=issue_id, source=source, message=message)
        self.session.add(entry)
        await self.session.commit()
        await self.session.refresh(entry)
        return entry

    async def list_for_issue(self, issue_id: str, since_id: int = 0) -> list[IssueLog]:
        stmt = (
            select(IssueLog)
            .where(IssueLog.issue_id == issue_id, IssueLog.id > since_id)
            .order_by(IssueLog.id.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
