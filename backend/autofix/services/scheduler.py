from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict

from loguru import logger

from autofix.core.errors import (
    IssueBusyError,
    IssueNotFoundError,
    ProjectMappingMissingError,
    SchedulerNotInitializedError,
)
from autofix.models.enums import IssueStatus, LogSource
from autofix.models.issue import Issue
from autofix.models.project import Project
from autofix.schemas.webhook import ParsedEvent
from autofix.services.enricher import EventEnricher
from autofix.services.events import NotificationBus, log_event, status_event
from autofix.services.fixer import FixExecutor
from autofix.services.github import PullRequestPublisher, PullRequestRequest
from autofix.services.issue_store import IssueStateStore
from autofix.services.projects import ProjectResolver


@dataclass
class QueuedJob:
    event: ParsedEvent
    project: Project


class SubmitOutcome(str, Enum):
    dispatched = "dispatched"
    queued = "queued"
    skipped = "skipped"
    duplicate = "duplicate"


class JobScheduler:
    """Concurrency-limited remediation pipeline.

    ``_lock`` guards ``_active_jobs``, ``_queue`` and ``_in_flight``. An issue
    id stays in ``_in_flight`` from admission until its job completes, so a
    single issue never has two jobs queued or running at once.
    """

    def __init__(
        self,
        *,
        store: IssueStateStore,
        bus: NotificationBus,
        executor: FixExecutor,
        publisher: PullRequestPublisher,
        resolver: ProjectResolver,
        enricher: EventEnricher | None = None,
        max_concurrent: int = 1,
        max_attempts: int = 2,
    ) -> None:
        self.store = store
        self.bus = bus
        self.executor = executor
        self.publisher = publisher
        self.resolver = resolver
        self.enricher = enricher
        self.max_concurrent = max(1, int(max_concurrent))
        self.max_attempts = max(1, int(max_attempts))

        self._lock = asyncio.Lock()
        self._active_jobs = 0
        self._queue: deque[QueuedJob] = deque()
        self._in_flight: set[str] = set()
        self._tasks: set[asyncio.Task] = set()
        self._started = False
        self._ready = asyncio.Event()

    @property
    def active_jobs(self) -> int:
        return self._active_jobs

    @property
    def queued_jobs(self) -> int:
        return len(self._queue)

    def is_in_flight(self, issue_id: str) -> bool:
        return issue_id in self._in_flight

    def snapshot(self) -> Dict[str, Any]:
        return {
            "active_jobs": self._active_jobs,
            "queued_jobs": len(self._queue),
            "max_concurrent": self.max_concurrent,
            "max_attempts": self.max_attempts,
            "ready": self._ready.is_set(),
        }

    async def start(self) -> int:
        """Recover jobs interrupted by the previous shutdown, then open admission.

        Returns the number of issues resubmitted.
        """
        if self._started:
            return 0
        self._started = True
        try:
            return await self._recover_interrupted()
        finally:
            self._ready.set()

    async def submit(self, event: ParsedEvent, project: Project) -> SubmitOutcome:
        self._ensure_started()
        await self._ready.wait()
        return await self._admit(event, project)

    async def retry(self, issue_id: str) -> SubmitOutcome:
        """Reset a finished issue to pending and run it again.

        The issue id is reserved in ``_in_flight`` before anything is reset, so
        a webhook for the same issue arriving mid-retry is dropped as a
        duplicate.
        """
        self._ensure_started()
        await self._ready.wait()
        issue = await self.store.get_issue(issue_id)
        if issue is None:
            raise IssueNotFoundError(issue_id)
        async with self._lock:
            if issue_id in self._in_flight:
                raise IssueBusyError(issue_id)
            self._in_flight.add(issue_id)

        job: QueuedJob | None = None
        try:
            project = await self.resolver.resolve(issue.project_slug)
            if project is None:
                raise ProjectMappingMissingError(issue.project_slug)

            await self.store.reset_to_pending(issue_id)
            self._broadcast_status(issue_id, IssueStatus.pending)
            await self._log(issue_id, LogSource.system, "Manual retry requested.")

            event = await self._rebuild_event(issue)
            job = QueuedJob(event=event, project=project)
        finally:
            if job is None:
                async with self._lock:
                    self._in_flight.discard(issue_id)

        logger.info("Re-queuing issue after manual retry", issue_id=issue_id, title=job.event.title)
        async with self._lock:
            return self._enqueue(job)

    async def on_job_complete(self, issue_id: str) -> None:
        async with self._lock:
            self._active_jobs -= 1
            self._in_flight.discard(issue_id)
            while self._queue and self._active_jobs < self.max_concurrent:
                self._dispatch(self._queue.popleft())

    async def join(self) -> None:
        """Wait until every dispatched and queued job has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _ensure_started(self) -> None:
        if not self._started:
            raise SchedulerNotInitializedError("Job scheduler has not been started")

    async def _admit(self, event: ParsedEvent, project: Project) -> SubmitOutcome:
        issue_id = event.issue_id
        async with self._lock:
            if issue_id in self._in_flight:
                logger.info("Issue already queued or running, dropping duplicate", issue_id=issue_id)
                return SubmitOutcome.duplicate
            if not await self.store.should_attempt(issue_id, self.max_attempts):
                logger.info("Skipping issue (already attempted or fixed)", issue_id=issue_id)
                return SubmitOutcome.skipped

            self._in_flight.add(issue_id)
            return self._enqueue(QueuedJob(event=event, project=project))

    def _enqueue(self, job: QueuedJob) -> SubmitOutcome:
        # caller holds self._lock and has reserved the issue in _in_flight
        if self._active_jobs < self.max_concurrent:
            self._dispatch(job)
            return SubmitOutcome.dispatched

        self._queue.append(job)
        logger.info(
            "Queuing issue",
            issue_id=job.event.issue_id,
            active_jobs=self._active_jobs,
            max_concurrent=self.max_concurrent,
            queued=len(self._queue),
        )
        return SubmitOutcome.queued

    def _dispatch(self, job: QueuedJob) -> None:
        # caller holds self._lock
        self._active_jobs += 1
        task = asyncio.create_task(self._run(job), name=f"autofix-job-{job.event.issue_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, job: QueuedJob) -> None:
        try:
            await self._process(job)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to record job outcome", issue_id=job.event.issue_id)
        finally:
            await self.on_job_complete(job.event.issue_id)

    async def _process(self, job: QueuedJob) -> None:
        event, project = job.event, job.project
        issue_id = event.issue_id

        async def on_log(source: str, message: str) -> None:
            await self._log(issue_id, source, message)

        logger.info("Processing issue", issue_id=issue_id, title=event.title, repo=project.repo)
        try:
            await self.store.create_issue_if_absent(event, project)
            await self.store.increment_attempts(issue_id)
            await self._set_status(issue_id, IssueStatus.in_progress)
            await on_log(LogSource.system.value, f"Processing issue: {event.title}")

            result = await self.executor.run(event, project, on_log)
            if not result.success:
                reason = result.reason or "unknown reason"
                logger.info("Fix failed", issue_id=issue_id, reason=reason)
                await self._set_status(issue_id, IssueStatus.failed)
                await on_log(LogSource.system.value, f"Fix failed: {reason}")
                return

            await on_log(LogSource.github.value, "Creating pull request...")
            pr_url = await self.publisher.publish(
                PullRequestRequest(
                    event=event,
                    project=project,
                    branch=result.branch or "",
                    changed_files=result.changed_files,
                )
            )
            await self._set_status(issue_id, IssueStatus.pr_open, pr_url=pr_url)
            await on_log(LogSource.github.value, f"Pull request created: {pr_url}")
            logger.info("Created pull request for issue", issue_id=issue_id, pr_url=pr_url)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Error fixing issue", issue_id=issue_id)
            await self._set_status(issue_id, IssueStatus.error)
            await on_log(LogSource.error.value, str(exc) or exc.__class__.__name__)

    async def _recover_interrupted(self) -> int:
        stuck = await self.store.list_in_progress()
        if not stuck:
            return 0

        logger.info("Found stuck issues, reprocessing", count=len(stuck))
        resubmitted = 0
        for issue in stuck:
            issue_id = issue.issue_id
            try:
                # the interrupted attempt does not count against the budget
                await self.store.reset_to_pending(issue_id)
                await self._log(issue_id, LogSource.system, "Issue was stuck in_progress after restart, retrying.")

                project = await self.resolver.resolve(issue.project_slug)
                if project is None:
                    logger.warning(
                        "No project mapping for stuck issue",
                        issue_id=issue_id,
                        project_slug=issue.project_slug,
                    )
                    await self._set_status(issue_id, IssueStatus.error)
                    await self._log(issue_id, LogSource.error, f'No project mapping found for "{issue.project_slug}"')
                    continue

                event = await self._rebuild_event(issue)
                logger.info("Re-queuing recovered issue", issue_id=issue_id, title=event.title)
                outcome = await self._admit(event, project)
                if outcome in (SubmitOutcome.dispatched, SubmitOutcome.queued):
                    resubmitted += 1
            except Exception:  # noqa: BLE001
                logger.exception("Failed to recover stuck issue", issue_id=issue_id)
        return resubmitted

    async def _rebuild_event(self, issue: Issue) -> ParsedEvent:
        event = ParsedEvent(
            issue_id=issue.issue_id,
            project_slug=issue.project_slug,
            title=issue.title,
            level=issue.level or "error",
            message=issue.error_message or issue.title,
            first_seen=issue.first_seen_at,
            stacktrace=None,
        )
        if self.enricher is not None:
            event = await self.enricher.enrich(event)
        return event

    async def _set_status(self, issue_id: str, status: IssueStatus, pr_url: str | None = None) -> None:
        await self.store.mark_status(issue_id, status, pr_url=pr_url)
        extra = {"prUrl": pr_url} if pr_url else {}
        self._broadcast_status(issue_id, status, **extra)

    def _broadcast_status(self, issue_id: str, status: IssueStatus, **extra: Any) -> None:
        self.bus.broadcast(issue_id, status_event(issue_id, status.value, **extra))

    async def _log(self, issue_id: str, source: LogSource | str, message: str) -> None:
        value = source.value if isinstance(source, LogSource) else source
        entry = await self.store.append_log(issue_id, value, message)
        self.bus.broadcast(issue_id, log_event(entry))
