from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from autofix.models.event import WebhookLog


class WebhookLogRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
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
        entry = WebhookLog(
            resource=resource,
            action=action,
            decision=decision,
            reason=reason,
            issue_id=issue_id,
            issue_title=issue_title,
            project_slug=project_slug,
        )
        self.session.add(entry)
        await self.session.commit()
        await self.session.refresh(entry)
        return entry

    async def list_recent(self, limit: int = 200) -> list[WebhookLog]:
        result = await self.session.execute(select(WebhookLog).order_by(WebhookLog.id.desc()).limit(limit))
        return list(result.scalars().all())
