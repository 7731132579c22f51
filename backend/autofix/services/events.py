from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict

from loguru import logger

from autofix.models.issue import IssueLog

ALL_ISSUES = "*"

Event = Dict[str, Any]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def status_event(issue_id: str, status: str, **extra: Any) -> Event:
    return {"type": "status", "issueId": issue_id, "status": status, **extra, "timestamp": _now()}


def log_event(entry: IssueLog) -> Event:
    return {
        "type": "log",
        "id": entry.id,
        "issueId": entry.issue_id,
        "source": entry.source,
        "message": entry.message,
        "timestamp": _format_timestamp(entry.timestamp),
    }


class NotificationBus:
    """In-process fanout of issue status and log events.

    Every subscriber owns an unbounded queue; ``broadcast`` never blocks. Sinks
    registered under ``*`` receive events for every issue.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, set[asyncio.Queue]] = {}

    def subscribe(self, topic: str, sink: asyncio.Queue | None = None) -> asyncio.Queue:
        sink = sink if sink is not None else asyncio.Queue()
        self._subscribers.setdefault(topic, set()).add(sink)
        logger.debug("Subscriber attached", topic=topic, subscribers=len(self._subscribers[topic]))
        return sink

    def unsubscribe(self, topic: str, sink: asyncio.Queue) -> None:
        sinks = self._subscribers.get(topic)
        if not sinks:
            return
        sinks.discard(sink)
        if not sinks:
            del self._subscribers[topic]

    def broadcast(self, topic: str, event: Event) -> int:
        targets = list(self._subscribers.get(topic, ()))
        if topic != ALL_ISSUES:
            targets.extend(self._subscribers.get(ALL_ISSUES, ()))
        for sink in targets:
            sink.put_nowait(event)
        return len(targets)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))
