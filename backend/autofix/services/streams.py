from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import AsyncIterator

from autofix.services.events import ALL_ISSUES, Event, NotificationBus, log_event
from autofix.services.issue_store import IssueStateStore

KEEPALIVE = ": keepalive\n\n"


def format_sse(event: Event) -> str:
    return f"data: {json.dumps(event, ensure_ascii=False, default=str)}\n\n"


def _connected(**extra: object) -> Event:
    return {"type": "connected", **extra, "timestamp": datetime.now(timezone.utc).isoformat()}


async def _drain(sink: asyncio.Queue, keepalive: float) -> AsyncIterator[Event | None]:
    while True:
        try:
            yield await asyncio.wait_for(sink.get(), timeout=keepalive)
        except asyncio.TimeoutError:
            yield None


async def dashboard_stream(bus: NotificationBus, *, keepalive: float = 15.0) -> AsyncIterator[str]:
    sink = bus.subscribe(ALL_ISSUES)
    try:
        yield format_sse(_connected())
        async for event in _drain(sink, keepalive):
            yield KEEPALIVE if event is None else format_sse(event)
    finally:
        bus.unsubscribe(ALL_ISSUES, sink)


async def issue_log_stream(
    issue_id: str,
    store: IssueStateStore,
    bus: NotificationBus,
    *,
    keepalive: float = 15.0,
) -> AsyncIterator[str]:
    """Replay the durable log for ``issue_id`` and then follow live events.

    The subscription is taken before the history is read; live log events the
    replay already covered are dropped by id.
    """
    sink = bus.subscribe(issue_id)
    try:
        yield format_sse(_connected(issueId=issue_id))
        history = await store.logs_for_issue(issue_id)
        last_id = 0
        for entry in history:
            last_id = entry.id or last_id
            yield format_sse(log_event(entry))
        yield format_sse({"type": "history_end", "issueId": issue_id, "count": len(history)})

        async for event in _drain(sink, keepalive):
            if event is None:
                yield KEEPALIVE
                continue
            if event.get("type") == "log" and (event.get("id") or 0) <= last_id:
                continue
            yield format_sse(event)
    finally:
        bus.unsubscribe(issue_id, sink)
