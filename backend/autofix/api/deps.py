from typing import AsyncGenerator

from fastapi import HTTPException, Request, status

from autofix.core.errors import SchedulerNotInitializedError
from autofix.services.enricher import EventEnricher
from autofix.services.events import NotificationBus
from autofix.services.issue_store import IssueStateStore
from autofix.services.normalizer import IssueActionPolicy
from autofix.services.projects import ProjectResolver
from autofix.services.scheduler import JobScheduler


async def get_db(request: Request) -> AsyncGenerator:
    async with request.app.state.session_factory() as session:
        yield session


def get_store(request: Request) -> IssueStateStore:
    return request.app.state.store


def get_bus(request: Request) -> NotificationBus:
    return request.app.state.bus


def get_resolver(request: Request) -> ProjectResolver:
    return request.app.state.resolver


def get_enricher(request: Request) -> EventEnricher | None:
    return getattr(request.app.state, "enricher", None)


def get_issue_policy(request: Request) -> IssueActionPolicy:
    return request.app.state.issue_policy


def get_scheduler(request: Request) -> JobScheduler:
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Scheduler not initialized")
    return scheduler


def scheduler_unavailable(exc: SchedulerNotInitializedError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
