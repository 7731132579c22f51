"""Durable issue state, logs and webhook audit records."""

from __future__ import annotations

import asyncio

import pytest

from autofix.models.enums import IssueStatus
from autofix.models.issue import Issue
from autofix.services.issue_store import IssueStateStore, should_attempt
from tests._support import make_event


class TestShouldAttempt:
    def test_unknown_issue(self) -> None:
        assert should_attempt(None, 2)

    @pytest.mark.parametrize("status", ["pr_open", "fixed"])
    def test_terminal_statuses(self, status: str) -> None:
        issue = Issue(issue_id="1", project_slug="p", repo="a/b", title="t", status=status, attempts=0)
        assert not should_attempt(issue, 2)

    @pytest.mark.parametrize(("attempts", "expected"), [(0, True), (1, True), (2, False), (3, False)])
    def test_attempt_budget(self, attempts: int, expected: bool) -> None:
        issue = Issue(issue_id="1", project_slug="p", repo="a/b", title="t", status="failed", attempts=attempts)
        assert should_attempt(issue, 2) is expected


class TestIssueStateStore:
    async def test_first_write_wins(self, store: IssueStateStore, project) -> None:
        assert await store.create_issue_if_absent(make_event(title="Original title"), project)
        assert not await store.create_issue_if_absent(make_event(title="Changed title"), project)

        issue = await store.get_issue("1001")
        assert issue is not None
        assert issue.title == "Original title"
        assert issue.status == IssueStatus.pending.value
        assert issue.attempts == 0
        assert issue.repo == "acme/web-api"

    async def test_concurrent_creates_keep_one_row(self, store: IssueStateStore, project) -> None:
        results = await asyncio.gather(
            *(store.create_issue_if_absent(make_event(title=f"title {n}"), project) for n in range(5))
        )
        assert results.count(True) == 1
        assert (await store.stats())["total"] == 1

    async def test_increment_and_reset(self, store: IssueStateStore, project) -> None:
        await store.create_issue_if_absent(make_event(), project)
        await store.increment_attempts("1001")
        await store.increment_attempts("1001")
        await store.mark_status("1001", IssueStatus.in_progress)

        await store.reset_to_pending("1001")
        issue = await store.get_issue("1001")
        assert issue.status == "pending"
        assert issue.attempts == 1

    async def test_reset_floors_attempts_at_zero(self, store: IssueStateStore, project) -> None:
        await store.create_issue_if_absent(make_event(), project)
        await store.reset_to_pending("1001")
        assert (await store.get_issue("1001")).attempts == 0

    async def test_pr_url_is_never_cleared(self, store: IssueStateStore, project) -> None:
        await store.create_issue_if_absent(make_event(), project)
        await store.mark_status("1001", IssueStatus.pr_open, pr_url="https://github.com/acme/web-api/pull/7")
        await store.mark_status("1001", IssueStatus.fixed)

        issue = await store.get_issue("1001")
        assert issue.status == "fixed"
        assert issue.pr_url == "https://github.com/acme/web-api/pull/7"

    async def test_unknown_issue_updates_are_noops(self, store: IssueStateStore) -> None:
        await store.increment_attempts("missing")
        await store.mark_status("missing", IssueStatus.failed)
        await store.reset_to_pending("missing")
        assert await store.get_issue("missing") is None

    async def test_list_in_progress_and_stats(self, store: IssueStateStore, project) -> None:
        for issue_id in ("1", "2", "3"):
            await store.create_issue_if_absent(make_event(issue_id=issue_id), project)
        await store.mark_status("2", IssueStatus.in_progress)
        await store.mark_status("3", IssueStatus.failed)

        assert [issue.issue_id for issue in await store.list_in_progress()] == ["2"]
        stats = await store.stats()
        assert stats["total"] == 3
        assert stats["by_status"] == {"pending": 1, "in_progress": 1, "failed": 1}

    async def test_logs_are_ordered_and_filterable(self, store: IssueStateStore) -> None:
        first = await store.append_log("1001", "system", "one")
        await store.append_log("1001", "agent", "two")
        await store.append_log("2002", "system", "elsewhere")
        await store.append_log("1001", "github", "three")

        logs = await store.logs_for_issue("1001")
        assert [entry.message for entry in logs] == ["one", "two", "three"]
        assert [entry.message for entry in await store.logs_for_issue("1001", since_id=first.id)] == ["two", "three"]

    async def test_webhook_audit_is_newest_first(self, store: IssueStateStore) -> None:
        await store.record_webhook(resource="event_alert", action="triggered", decision="accepted", issue_id="1")
        await store.record_webhook(resource="issue", action="resolved", decision="ignored", reason="not actionable")

        entries = await store.recent_webhooks(10)
        assert [entry.resource for entry in entries] == ["issue", "event_alert"]
        assert len(await store.recent_webhooks(1)) == 1
