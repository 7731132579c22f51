from typing import Optional

from sqlmodel import Field

from autofix.models.base import TimestampedModel


class WebhookLog(TimestampedModel, table=True):
    __tablename__ = "webhook_logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    resource: str = Field(index=True)
    action: Optional[str] = None
    issue_id: Optional[str] = None
    issue_title: Optional[str] = None
    project_slug: Optional[str] = None
    decision: str
    reason: Optional[str] = None
