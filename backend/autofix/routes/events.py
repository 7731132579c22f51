from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from autofix.api import deps
from autofix.services.events import NotificationBus
from autofix.services.streams import dashboard_stream

router = APIRouter()

SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


@router.get("/events")
async def events(request: Request, bus: NotificationBus = Depends(deps.get_bus)):
    keepalive = request.app.state.settings.sse_keepalive_seconds
    return StreamingResponse(
        dashboard_stream(bus, keepalive=keepalive),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
