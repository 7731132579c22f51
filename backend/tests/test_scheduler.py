"""Concurrency-limited remediation pipeline."""

from __future__ import annotations

import asyncio

import pytest

from autofix.core.errors import (
    IssueBusyError,
    IssueNotFoundError,
    ProjectMappingMissingError,
    PublishError,
    SchedulerNotInitializedError,
)
from autofix.models.enums import IssueStatus
from autofix.repositories.project_repository import ProjectRepository
from autofix.services.fixer import FixResult
from autofix.services.scheduler import SubmitOutcome
from tests._support import FakeExecutor, FakePublisher, GatedEnricher, GatedResolver, make_event


def _drain(sink: asyncio.Queue) -> list[dict]:
    events = []
    while not sink.empty():
        events.append(sink.get_nowait())
    return events


class TestSubmit:
    async def test_submit_before_start_raises(self, make_scheduler, project) -> None:
        scheduler = make_scheduler()
        with pytest.raises(SchedulerNotInitializedError):
            await scheduler.submit(make_event(), project)

    async def test_successful_fix_opens_pull_request(self, make_scheduler, store, bus, project, publisher) -> None:
        scheduler = make_scheduler()
        await scheduler.start()
        sink = bus.subscribe("1001")

        assert await scheduler.submit(make_event(), project) is SubmitOutcome.dispatched
        await scheduler.join()

        issue = await store.get_issue("1001")
        assert issue.status == IssueStatus.pr_open.value
        assert issue.pr_url == "https://github.com/acme/web-api/pull/1"
        assert issue.attempts == 1
        assert publisher.requests[0].branch == "autofix/1001"
        assert publisher.requests[0].changed_files == ["app/main.py"]

        messages = [entry.message for entry in await store.logs_for_issue("1001")]
        assert messages[0] == "Processing issue: TypeError: boom"
        assert "Analyzing 1001" in messages
        assert "Creating pull request..." in messages
        assert messages[-1] == "Pull request created: https://github.com/acme/web-api/pull/1"

        statuses = [event["status"] for event in _drain(sink) if event["type"] == "status"]
        assert statuses == ["in_progress", "pr_open"]
        assert scheduler.active_jobs == 0

    async def test_concurrency_is_bounded(self, make_scheduler, project) -> None:
        gate = asyncio.Event()
        executor = FakeExecutor(gate=gate)
        scheduler = make_scheduler(executor=executor, max_concurrent=2)
        await scheduler.start()

        outcomes = [await scheduler.submit(make_event(issue_id=str(n)), project) for n in range(4)]
        assert outcomes == [
            SubmitOutcome.dispatched,
            SubmitOutcome.dispatched,
            SubmitOutcome.queued,
            SubmitOutcome.queued,
        ]
        assert scheduler.active_jobs == 2
        assert scheduler.queued_jobs == 2

        gate.set()
        await scheduler.join()
        assert executor.max_running == 2
        assert sorted(executor.calls) == ["0", "1", "2", "3"]
        assert scheduler.active_jobs == 0
        assert scheduler.queued_jobs == 0

    async def test_queue_drains_in_arrival_order(self, make_scheduler, project) -> None:
        gate = asyncio.Event()
        executor = FakeExecutor(gate=gate)
        scheduler = make_scheduler(executor=executor, max_concurrent=1)
        await scheduler.start()

        for issue_id in ("a", "b", "c"):
            await scheduler.submit(make_event(issue_id=issue_id), project)
        gate.set()
        await scheduler.join()

        assert executor.calls == ["a", "b", "c"]
        assert executor.max_running == 1

    async def test_duplicate_submission_is_dropped(self, make_scheduler, project) -> None:
        gate = asyncio.Event()
        executor = FakeExecutor(gate=gate)
        scheduler = make_scheduler(executor=executor)
        await scheduler.start()

        assert await scheduler.submit(make_event(), project) is SubmitOutcome.dispatched
        assert await scheduler.submit(make_event(), project) is SubmitOutcome.duplicate
        gate.set()
        await scheduler.join()
        assert executor.calls == ["1001"]

    async def test_failed_fix_marks_issue_failed(self, make_scheduler, store, project, publisher) -> None:
        executor = FakeExecutor(results=[FixResult(success=False, reason="tests still failing")])
        scheduler = make_scheduler(executor=executor)
        await scheduler.start()

        await scheduler.submit(make_event(), project)
        await scheduler.join()

        issue = await store.get_issue("1001")
        assert issue.status == IssueStatus.failed.value
        assert issue.pr_url is None
        assert publisher.requests == []
        logs = await store.logs_for_issue("1001")
        assert logs[-1].message == "Fix failed: tests still failing"

    async def test_executor_exception_marks_issue_error(self, make_scheduler, store, project) -> None:
        executor = FakeExecutor(results=[RuntimeError("agent crashed")])
        scheduler = make_scheduler(executor=executor)
        await scheduler.start()

        await scheduler.submit(make_event(), project)
        await scheduler.join()

        assert (await store.get_issue("1001")).status == IssueStatus.error.value
        last = (await store.logs_for_issue("1001"))[-1]
        assert last.source == "error"
        assert last.message == "agent crashed"
        assert scheduler.active_jobs == 0

    async def test_publish_error_marks_issue_error(self, make_scheduler, store, project) -> None:
        scheduler = make_scheduler(publisher=FakePublisher(error=PublishError("GitHub rejected pull request (422)")))
        await scheduler.start()

        await scheduler.submit(make_event(), project)
        await scheduler.join()

        issue = await store.get_issue("1001")
        assert issue.status == IssueStatus.error.value
        assert issue.pr_url is None

    async def test_attempt_budget_is_enforced(self, make_scheduler, store, project) -> None:
        failure = FixResult(success=False, reason="no luck")
        executor = FakeExecutor(results=[failure, failure])
        scheduler = make_scheduler(executor=executor, max_attempts=2)
        await scheduler.start()

        for _ in range(2):
            assert await scheduler.submit(make_event(), project) is SubmitOutcome.dispatched
            await scheduler.join()
        assert await scheduler.submit(make_event(), project) is SubmitOutcome.skipped
        assert (await store.get_issue("1001")).attempts == 2
        assert len(executor.calls) == 2

    async def test_open_pull_request_is_not_retried(self, make_scheduler, project) -> None:
        executor = FakeExecutor()
        scheduler = make_scheduler(executor=executor)
        await scheduler.start()

        await scheduler.submit(make_event(), project)
        await scheduler.join()
        assert await scheduler.submit(make_event(), project) is SubmitOutcome.skipped
        assert executor.calls == ["1001"]


class TestRetry:
    async def test_retry_refunds_one_attempt(self, make_scheduler, store, project) -> None:
        failure = FixResult(success=False, reason="no luck")
        enricher = GatedEnricher()
        scheduler = make_scheduler(executor=FakeExecutor(results=[failure, failure]), enricher=enricher)
        await scheduler.start()
        for _ in range(2):
            await scheduler.submit(make_event(), project)
            await scheduler.join()
        assert (await store.get_issue("1001")).attempts == 2

        retry_task = asyncio.create_task(scheduler.retry("1001"))
        await enricher.entered.wait()
        issue = await store.get_issue("1001")
        assert issue.status == IssueStatus.pending.value
        assert issue.attempts == 1

        enricher.gate.set()
        assert await retry_task is SubmitOutcome.dispatched
        await scheduler.join()

        issue = await store.get_issue("1001")
        assert issue.status == IssueStatus.pr_open.value
        assert issue.pr_url == "https://github.com/acme/web-api/pull/1"
        assert issue.attempts == 2
        messages = [entry.message for entry in await store.logs_for_issue("1001")]
        assert "Manual retry requested." in messages

    async def test_webhook_during_retry_is_dropped(self, make_scheduler, resolver, store, project) -> None:
        executor = FakeExecutor(results=[FixResult(success=False, reason="no luck")])
        gated = GatedResolver(resolver)
        scheduler = make_scheduler(executor=executor, resolver=gated)
        await scheduler.start()
        await scheduler.submit(make_event(), project)
        await scheduler.join()

        retry_task = asyncio.create_task(scheduler.retry("1001"))
        await gated.entered.wait()
        assert scheduler.is_in_flight("1001")
        assert await scheduler.submit(make_event(), project) is SubmitOutcome.duplicate
        issue = await store.get_issue("1001")
        assert issue.status == IssueStatus.failed.value
        assert issue.attempts == 1

        gated.gate.set()
        assert await retry_task is SubmitOutcome.dispatched
        await scheduler.join()

        issue = await store.get_issue("1001")
        assert issue.status == IssueStatus.pr_open.value
        assert issue.attempts == 1
        assert executor.calls == ["1001", "1001"]
        assert not scheduler.is_in_flight("1001")

    async def test_retry_unknown_issue(self, make_scheduler) -> None:
        scheduler = make_scheduler()
        await scheduler.start()
        with pytest.raises(IssueNotFoundError):
            await scheduler.retry("nope")

    async def test_retry_running_issue(self, make_scheduler, project) -> None:
        gate = asyncio.Event()
        scheduler = make_scheduler(executor=FakeExecutor(gate=gate))
        await scheduler.start()
        await scheduler.submit(make_event(), project)
        await asyncio.sleep(0.05)

        with pytest.raises(IssueBusyError):
            await scheduler.retry("1001")
        gate.set()
        await scheduler.join()

    async def test_retry_without_project_mapping(self, make_scheduler, store, session_factory, project) -> None:
        await store.create_issue_if_absent(make_event(), project)
        async with session_factory() as session:
            repo = ProjectRepository(session)
            await repo.delete(await repo.get("web-api"))

        scheduler = make_scheduler()
        await scheduler.start()
        with pytest.raises(ProjectMappingMissingError):
            await scheduler.retry("1001")
        assert not scheduler.is_in_flight("1001")

    async def test_failed_retry_releases_reservation(self, make_scheduler, store, project) -> None:
        class BrokenEnricher:
            async def enrich(self, event):
                raise RuntimeError("enricher down")

        await store.create_issue_if_absent(make_event(), project)
        scheduler = make_scheduler(enricher=BrokenEnricher())
        await scheduler.start()

        with pytest.raises(RuntimeError):
            await scheduler.retry("1001")
        assert not scheduler.is_in_flight("1001")
        assert await scheduler.submit(make_event(), project) is SubmitOutcome.dispatched
        await scheduler.join()


class TestRecovery:
    async def _stuck_issue(self, store, project, **event_kwargs) -> str:
        event = make_event(**event_kwargs)
        await store.create_issue_if_absent(event, project)
        await store.increment_attempts(event.issue_id)
        await store.increment_attempts(event.issue_id)
        await store.mark_status(event.issue_id, IssueStatus.in_progress)
        return event.issue_id

    async def test_stuck_issue_is_reset_and_resubmitted_once(self, make_scheduler, store, project, monkeypatch) -> None:
        issue_id = await self._stuck_issue(store, project)
        scheduler = make_scheduler()
        admitted = []

        async def fake_admit(event, resolved_project):
            admitted.append((event.issue_id, resolved_project.slug))
            return SubmitOutcome.dispatched

        monkeypatch.setattr(scheduler, "_admit", fake_admit)

        assert await scheduler.start() == 1
        issue = await store.get_issue(issue_id)
        assert issue.status == IssueStatus.pending.value
        assert issue.attempts == 1
        assert admitted == [(issue_id, "web-api")]
        messages = [entry.message for entry in await store.logs_for_issue(issue_id)]
        assert "Issue was stuck in_progress after restart, retrying." in messages

    async def test_recovered_issue_runs_to_completion(self, make_scheduler, store, project) -> None:
        issue_id = await self._stuck_issue(store, project)
        scheduler = make_scheduler()

        await scheduler.start()
        await scheduler.join()

        issue = await store.get_issue(issue_id)
        assert issue.status == IssueStatus.pr_open.value
        assert issue.attempts == 2

    async def test_stuck_issue_without_mapping_is_marked_error(self, make_scheduler, store, project) -> None:
        issue_id = await self._stuck_issue(store, project, issue_id="9", project_slug="ghost")
        scheduler = make_scheduler()

        assert await scheduler.start() == 0
        issue = await store.get_issue(issue_id)
        assert issue.status == IssueStatus.error.value
        messages = [entry.message for entry in await store.logs_for_issue(issue_id)]
        assert 'No project mapping found for "ghost"' in messages

    async def test_start_is_idempotent(self, make_scheduler, store, project) -> None:
        await self._stuck_issue(store, project)
        scheduler = make_scheduler()
        await scheduler.start()
        assert await scheduler.start() == 0
        await scheduler.join()
