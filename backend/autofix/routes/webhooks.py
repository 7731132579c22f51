import json
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from loguru import logger

from autofix.api import deps
from autofix.core.errors import AuthenticationError, SchedulerNotInitializedError, WebhookValidationError
from autofix.core.security import RESOURCE_HEADER, SIGNATURE_HEADER, verify_signature
from autofix.models.enums import WebhookDecision
from autofix.schemas.issue import WebhookLogResponse
from autofix.services.enricher import EventEnricher
from autofix.services.issue_store import IssueStateStore
from autofix.services.normalizer import IssueActionPolicy, NotActionable, normalize_webhook
from autofix.services.projects import ProjectResolver
from autofix.services.scheduler import JobScheduler

router = APIRouter()
audit_router = APIRouter()


def _authenticate(body: bytes, signature: str | None, secret: str | None) -> None:
    if not secret:
        raise AuthenticationError("Webhook secret is not configured")
    if not signature:
        raise AuthenticationError("Missing signature")
    if not verify_signature(body, signature, secret):
        raise AuthenticationError("Invalid signature")


def _decode(body: bytes) -> Any:
    try:
        return json.loads(body)
    except (UnicodeDecodeError, ValueError) as exc:
        raise WebhookValidationError("Invalid JSON payload") from exc


@router.post("/monitor")
async def monitor_webhook(
    request: Request,
    store: IssueStateStore = Depends(deps.get_store),
    resolver: ProjectResolver = Depends(deps.get_resolver),
    enricher: EventEnricher | None = Depends(deps.get_enricher),
    policy: IssueActionPolicy = Depends(deps.get_issue_policy),
    scheduler: JobScheduler = Depends(deps.get_scheduler),
):
    # Signature is computed over the body exactly as received
    raw_body = await request.body()
    resource = request.headers.get(RESOURCE_HEADER) or "unknown"

    if not raw_body:
        await store.record_webhook(
            resource=resource,
            action=None,
            decision=WebhookDecision.ignored.value,
            reason="Empty body",
        )
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty body")

    try:
        _authenticate(raw_body, request.headers.get(SIGNATURE_HEADER), request.app.state.settings.webhook_secret)
    except AuthenticationError as exc:
        logger.warning("Rejected webhook", resource=resource, reason=str(exc))
        await store.record_webhook(
            resource=resource,
            action=None,
            decision=WebhookDecision.ignored.value,
            reason=str(exc),
        )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc

    try:
        payload = _decode(raw_body)
    except WebhookValidationError as exc:
        logger.warning("Invalid JSON payload in webhook", resource=resource)
        await store.record_webhook(
            resource=resource,
            action=None,
            decision=WebhookDecision.ignored.value,
            reason=str(exc),
        )
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    action = payload.get("action") if isinstance(payload, dict) else None
    action = str(action) if action is not None else None
    logger.info("Received webhook", resource=resource, action=action)

    parsed = normalize_webhook(resource, payload, policy)
    if isinstance(parsed, NotActionable):
        await store.record_webhook(
            resource=resource,
            action=action,
            decision=WebhookDecision.ignored.value,
            reason=parsed.reason,
        )
        return {"received": True, "action": "ignored", "reason": parsed.response_reason}

    if enricher is not None:
        parsed = await enricher.enrich(parsed)

    project = await resolver.resolve(parsed.project_slug)
    if project is None:
        await store.record_webhook(
            resource=resource,
            action=action,
            decision=WebhookDecision.ignored.value,
            reason=f'No project mapping found for "{parsed.project_slug}"',
            issue_id=parsed.issue_id,
            issue_title=parsed.title,
            project_slug=parsed.project_slug,
        )
        return {"received": True, "action": "ignored", "reason": "no_project_mapping"}

    await store.record_webhook(
        resource=resource,
        action=action,
        decision=WebhookDecision.accepted.value,
        issue_id=parsed.issue_id,
        issue_title=parsed.title,
        project_slug=parsed.project_slug,
    )

    try:
        outcome = await scheduler.submit(parsed, project)
    except SchedulerNotInitializedError as exc:
        raise deps.scheduler_unavailable(exc) from exc
    logger.info("Handed issue to scheduler", issue_id=parsed.issue_id, outcome=outcome.value)
    return {"received": True, "action": "accepted", "issueId": parsed.issue_id}


@audit_router.get("/log", response_model=list[WebhookLogResponse])
async def list_webhook_log(
    limit: int = Query(default=200, ge=1, le=1000),
    store: IssueStateStore = Depends(deps.get_store),
):
    return await store.recent_webhooks(limit)
