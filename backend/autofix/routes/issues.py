from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse

from autofix.api import deps
from autofix.core.errors import (
    IssueBusyError,
    IssueNotFoundError,
    ProjectMappingMissingError,
    SchedulerNotInitializedError,
)
from autofix.routes.events import SSE_HEADERS
from autofix.schemas.issue import IssueLogResponse, IssueResponse, RetryResponse, StatusResponse
from autofix.services.events import NotificationBus
from autofix.services.issue_store import IssueStateStore
from autofix.services.scheduler import JobScheduler, SubmitOutcome
from autofix.services.streams import issue_log_stream

router = APIRouter()


@router.get("/status", response_model=StatusResponse)
async def get_status(request: Request, store: IssueStateStore = Depends(deps.get_store)):
    issues = await store.list_recent_issues(50)
    scheduler = getattr(request.app.state, "scheduler", None)
    return {
        "issues": [IssueResponse.model_validate(issue) for issue in issues],
        "stats": await store.stats(),
        "scheduler": scheduler.snapshot() if scheduler is not None else None,
    }


@router.get("/issues/{issue_id}", response_model=IssueResponse)
async def get_issue(issue_id: str, store: IssueStateStore = Depends(deps.get_store)):
    issue = await store.get_issue(issue_id)
    if issue is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Issue not found")
    return issue


@router.get("/issues/{issue_id}/logs", response_model=list[IssueLogResponse])
async def get_issue_logs(
    issue_id: str,
    since_id: int = Query(default=0, ge=0),
    store: IssueStateStore = Depends(deps.get_store),
):
    return await store.logs_for_issue(issue_id, since_id=since_id)


@router.get("/issues/{issue_id}/logs/stream")
async def stream_issue_logs(
    issue_id: str,
    request: Request,
    store: IssueStateStore = Depends(deps.get_store),
    bus: NotificationBus = Depends(deps.get_bus),
):
    keepalive = request.app.state.settings.sse_keepalive_seconds
    return StreamingResponse(
        issue_log_stream(issue_id, store, bus, keepalive=keepalive),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/issues/{issue_id}/retry", response_model=RetryResponse)
async def retry_issue(issue_id: str, scheduler: JobScheduler = Depends(deps.get_scheduler)):
    try:
        outcome = await scheduler.retry(issue_id)
    except IssueNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except IssueBusyError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ProjectMappingMissingError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except SchedulerNotInitializedError as exc:
        raise deps.scheduler_unavailable(exc) from exc
    if outcome not in (SubmitOutcome.dispatched, SubmitOutcome.queued):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Issue {issue_id} was not re-queued ({outcome.value})",
        )
    return {"success": True, "issueId": issue_id}
