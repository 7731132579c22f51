from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class IssueResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    issue_id: str
    project_slug: str
    repo: str
    title: str
    level: Optional[str]
    first_seen_at: Optional[str]
    attempts: int
    status: str
    pr_url: Optional[str]
    error_message: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime]


class IssueStats(BaseModel):
    total: int
    by_status: dict[str, int]


class StatusResponse(BaseModel):
    issues: list[IssueResponse]
    stats: IssueStats
    scheduler: Optional[dict[str, Any]] = None


class IssueLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    issue_id: str
    source: str
    message: str
    timestamp: datetime


class RetryResponse(BaseModel):
    success: bool
    issueId: str


class WebhookLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    resource: str
    action: Optional[str]
    issue_id: Optional[str]
    issue_title: Optional[str]
    project_slug: Optional[str]
    decision: str
    reason: Optional[str]
    created_at: datetime
