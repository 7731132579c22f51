from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from autofix.models.base import TimestampedModel, utc_now
from autofix.models.enums import IssueStatus


class Issue(TimestampedModel, table=True):
    __tablename__ = "issues"

    issue_id: str = Field(primary_key=True)
    project_slug: str = Field(index=True)
    repo: str
    title: str
    level: Optional[str] = None
    first_seen_at: Optional[str] = None
    attempts: int = Field(default=0, nullable=False)
    status: str = Field(default=IssueStatus.pending.value, index=True)
    pr_url: Optional[str] = None
    error_message: Optional[str] = None


class IssueLog(SQLModel, table=True):
    __tablename__ = "issue_logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    issue_id: str = Field(index=True)
    timestamp: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True), nullable=False)
    source: str
    message: str
