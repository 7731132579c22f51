"""In-process notification bus."""

from __future__ import annotations

from autofix.services.events import ALL_ISSUES, NotificationBus, status_event


class TestNotificationBus:
    def test_topic_subscribers_receive_events(self) -> None:
        bus = NotificationBus()
        sink = bus.subscribe("1001")
        other = bus.subscribe("2002")

        delivered = bus.broadcast("1001", status_event("1001", "in_progress"))

        assert delivered == 1
        assert sink.get_nowait()["status"] == "in_progress"
        assert other.empty()

    def test_wildcard_receives_every_issue(self) -> None:
        bus = NotificationBus()
        everything = bus.subscribe(ALL_ISSUES)
        bus.broadcast("1001", status_event("1001", "pending"))
        bus.broadcast("2002", status_event("2002", "pending"))
        assert [everything.get_nowait()["issueId"] for _ in range(2)] == ["1001", "2002"]

    def test_events_arrive_in_broadcast_order(self) -> None:
        bus = NotificationBus()
        sink = bus.subscribe("1001")
        for status in ("pending", "in_progress", "pr_open"):
            bus.broadcast("1001", status_event("1001", status))
        assert [sink.get_nowait()["status"] for _ in range(3)] == ["pending", "in_progress", "pr_open"]

    def test_unsubscribe_stops_delivery(self) -> None:
        bus = NotificationBus()
        sink = bus.subscribe("1001")
        bus.unsubscribe("1001", sink)
        assert bus.broadcast("1001", status_event("1001", "failed")) == 0
        assert bus.subscriber_count("1001") == 0
        assert sink.empty()

    def test_broadcast_without_subscribers(self) -> None:
        assert NotificationBus().broadcast("1001", status_event("1001", "failed")) == 0

    def test_status_event_shape(self) -> None:
        event = status_event("1001", "pr_open", prUrl="https://github.com/acme/web-api/pull/1")
        assert event["type"] == "status"
        assert event["issueId"] == "1001"
        assert event["prUrl"].endswith("/pull/1")
        assert "timestamp" in event
