"""Priority job scheduler with bounded concurrency, retries and timeouts.

The scheduler keeps every job in memory and writes state through a JobStore.
APScheduler drives the periodic pieces: the dispatch loop, per-job progress
tickers and delayed automatic retries. Each dispatched attempt runs its
executor on a worker thread that a supervisor thread joins with the job
timeout; whichever settles first wins.
"""

import copy
import itertools
import threading
import time
import uuid
from bisect import insort
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from talentmatch.config.models import SchedulerConfig
from talentmatch.logging import get_logger
from talentmatch.logging.context import log_context
from talentmatch.utils.timestamps import utc_now

from .exceptions import HandlerError, JobTimeoutError, JobValidationError
from .executors import JobDefinition, ProgressReporter
from .models import (
    BatchJob,
    ItemError,
    JobMetadata,
    JobOptions,
    JobPriority,
    JobProgress,
    JobResults,
    JobStatus,
    JobTiming,
    JobType,
    QueueItem,
    SchedulerStats,
)
from .store import InMemoryJobStore, JobStore

logger = get_logger(__name__, component="scheduler")

EVENTS = (
    "job_created",
    "job_started",
    "job_progress",
    "job_completed",
    "job_failed",
    "job_cancelled",
    "job_retried",
)

DISPATCH_JOB_ID = "batch-dispatch"

Listener = Callable[[BatchJob, Dict[str, Any]], None]


@dataclass
class _ActiveAttempt:
    attempt: int
    started_monotonic: float


class BatchScheduler:
    """
    Queues batch jobs and runs them by priority under a concurrency ceiling.

    Guarantees:
    - At most ``max_concurrent_jobs`` attempts hold a running slot at once
    - Waiting jobs are dispatched by priority, then creation time, then
      insertion order
    - A job is never dispatched twice for the same attempt
    - Results of abandoned attempts (timed out, cancelled at shutdown,
      superseded) never touch the job

    Listeners registered with add_listener() receive a snapshot of the job
    and a details dict. They are called outside the scheduler lock and their
    exceptions are logged, never propagated.
    """

    def __init__(
        self,
        config: Optional[SchedulerConfig] = None,
        job_store: Optional[JobStore] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the scheduler. Nothing runs until start() is called.

        Args:
            config: Scheduler settings (defaults apply when omitted)
            job_store: Persistence collaborator (in-memory when omitted)
            clock: Source of wall-clock timestamps for job timing fields
        """
        self.config = config or SchedulerConfig()
        self.job_store = job_store if job_store is not None else InMemoryJobStore()
        self._clock = clock

        self._lock = threading.RLock()
        self._state_changed = threading.Condition(self._lock)

        self._definitions: Dict[tuple, JobDefinition] = {}
        self._jobs: Dict[str, BatchJob] = {}
        self._waiting: List[QueueItem] = []
        self._running: Dict[str, _ActiveAttempt] = {}
        self._retry_timers: Dict[str, str] = {}
        self._progress_tickers: Dict[str, str] = {}
        self._published_progress: Dict[str, tuple] = {}
        self._attempt_notes: Dict[str, List[str]] = {}
        self._listeners: Dict[str, List[Listener]] = {event: [] for event in EVENTS}
        self._sequence = itertools.count()
        self._attempts = itertools.count(1)
        self._accepting = True

        self._scheduler = BackgroundScheduler(
            job_defaults={
                "max_instances": 1,
                "coalesce": True,
                # Late retries and ticks still run
                "misfire_grace_time": None,
            },
            timezone=timezone.utc,
        )

    # Registration and listeners

    def register_job_definition(self, definition: JobDefinition) -> None:
        """Register (or replace) the executor for a (type, name) pair."""
        with self._lock:
            self._definitions[definition.key] = definition

        logger.debug(
            f"Registered job definition {definition.type.value}/{definition.name}",
            extra={
                "event": "batch.definition.registered",
                "job_type": definition.type.value,
                "job_name": definition.name,
            },
        )

    def add_listener(self, event: str, callback: Listener) -> None:
        """Subscribe ``callback(job, details)`` to a lifecycle event.

        Raises:
            ValueError: If the event name is unknown
        """
        if event not in self._listeners:
            raise ValueError(f"Unknown event '{event}'. Expected one of: {', '.join(EVENTS)}")
        with self._lock:
            self._listeners[event].append(callback)

    def remove_listener(self, event: str, callback: Listener) -> None:
        with self._lock:
            if callback in self._listeners.get(event, []):
                self._listeners[event].remove(callback)

    # Public operations

    def create_job(
        self,
        job_type: Union[JobType, str],
        name: str,
        parameters: Optional[Dict[str, Any]] = None,
        options: Union[JobOptions, Dict[str, Any], None] = None,
    ) -> str:
        """
        Create a pending job and insert it into the waiting set.

        Args:
            job_type: Registered job type
            name: Registered definition name for that type
            parameters: Executor input, stored on the job as-is
            options: Priority, retry budget and labels

        Returns:
            The new job id

        Raises:
            JobValidationError: If the type, name, priority or options are invalid
        """
        try:
            job_type = JobType(job_type)
        except ValueError:
            raise JobValidationError(f"Unknown job type: {job_type!r}") from None

        options = _coerce_options(options)

        definition = self._definitions.get((job_type, name))
        if definition is None:
            raise JobValidationError(
                f"No job definition registered for {job_type.value}/{name}"
            )

        try:
            priority = JobPriority(
                options.priority or definition.default_priority or JobPriority.MEDIUM
            )
        except ValueError:
            raise JobValidationError(f"Unknown priority: {options.priority!r}") from None

        max_retries = (
            self.config.retry_attempts if options.max_retries is None else options.max_retries
        )
        if max_retries < 0:
            raise JobValidationError(f"max_retries cannot be negative: {max_retries}")

        job = BatchJob(
            id=str(uuid.uuid4()),
            type=job_type,
            name=name,
            priority=priority,
            parameters=dict(parameters or {}),
            description=options.description or definition.description,
            timing=JobTiming(
                created_at=self._clock(),
                estimated_duration=options.estimated_duration or definition.estimated_duration,
            ),
            metadata=JobMetadata(
                max_retries=max_retries,
                tags=list(options.tags),
                created_by=options.created_by,
            ),
        )

        with self._lock:
            self._jobs[job.id] = job
            self._enqueue(job)
            snapshot = self._snapshot(job)

        self._persist(snapshot, created=True)

        logger.info(
            f"Batch job created: {name}",
            extra={
                "event": "batch.job.created",
                "batch_job_id": job.id,
                "job_type": job_type.value,
                "job_name": name,
                "priority": priority.value,
                "max_retries": max_retries,
            },
        )
        self._emit("job_created", snapshot)
        return job.id

    def get_job(self, job_id: str) -> Optional[BatchJob]:
        """Snapshot of a job, or None if unknown."""
        with self._lock:
            job = self._jobs.get(job_id)
            return self._snapshot(job) if job else None

    def get_all_jobs(self) -> Dict[str, List[BatchJob]]:
        """Snapshots grouped as pending (dispatch order), running and completed.

        "completed" holds every job in a terminal state, including failed jobs
        that are waiting for an automatic retry.
        """
        with self._lock:
            pending = [self._snapshot(self._jobs[item.job_id]) for item in self._waiting]
            running = [self._snapshot(self._jobs[job_id]) for job_id in self._running]
            finished = [
                self._snapshot(job)
                for job in self._jobs.values()
                if job.is_terminal and job.id not in self._running
            ]

        finished.sort(key=lambda job: job.timing.completed_at or job.timing.created_at)
        return {"pending": pending, "running": running, "completed": finished}

    def cancel_job(self, job_id: str) -> bool:
        """
        Cancel a job.

        Pending jobs leave the waiting set immediately. Running jobs are only
        flagged: the executor sees ``progress.cancelled`` and the slot is
        released when the attempt settles. Completed, failed and cancelled
        jobs are final; a failed job with an automatic retry pending keeps it.

        Returns:
            True if the job was cancelled, False if unknown or already final
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return False

            previous = job.status
            if previous == JobStatus.PENDING:
                self._waiting = [item for item in self._waiting if item.job_id != job_id]
                job.status = JobStatus.CANCELLED
                job.timing.completed_at = self._clock()
            elif previous == JobStatus.RUNNING:
                job.status = JobStatus.CANCELLED
            else:
                return False

            self._attempt_notes.pop(job_id, None)
            snapshot = self._snapshot(job)
            self._state_changed.notify_all()

        self._persist(snapshot)

        logger.info(
            "Batch job cancelled",
            extra={
                "event": "batch.job.cancelled",
                "batch_job_id": job_id,
                "previous_status": previous.value,
            },
        )
        self._emit("job_cancelled", snapshot, previous_status=previous.value)
        return True

    def retry_job(self, job_id: str) -> bool:
        """
        Put a failed job back into the waiting set.

        Manual retries share the job's retry budget with automatic ones; a
        pending automatic retry is cancelled first.

        Returns:
            True if the job was re-queued, False if it is not failed or has no
            retries left
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status != JobStatus.FAILED:
                return False

            if job.retries_left == 0:
                logger.warning(
                    "Retry rejected: retry budget exhausted",
                    extra={
                        "event": "batch.job.retry_rejected",
                        "batch_job_id": job_id,
                        "retry_count": job.metadata.retry_count,
                        "max_retries": job.metadata.max_retries,
                    },
                )
                return False

            self._cancel_retry_timer(job_id)
            snapshot = self._requeue(job)

        self._after_requeue(snapshot, automatic=False)
        return True

    def wait_for_job(self, job_id: str, timeout: Optional[float] = None) -> Optional[BatchJob]:
        """
        Block until a job is settled: terminal, not holding a slot, and with
        no automatic retry pending.

        Args:
            job_id: Job to wait for
            timeout: Maximum seconds to wait (None waits forever)

        Returns:
            Snapshot of the job when settled or when the timeout expires
            (check ``status``), or None if the job is unknown
        """
        with self._state_changed:
            if job_id not in self._jobs:
                return None
            self._state_changed.wait_for(lambda: self._is_settled(job_id), timeout=timeout)
            return self._snapshot(self._jobs[job_id])

    def get_stats(self) -> SchedulerStats:
        """Counters over every job this scheduler knows about."""
        with self._lock:
            jobs = list(self._jobs.values())
            stats = SchedulerStats(
                queue_size=len(self._waiting),
                running_jobs=len(self._running),
            )

        by_type: Dict[str, int] = {}
        by_status: Dict[str, int] = {}
        durations = []
        for job in jobs:
            by_type[job.type.value] = by_type.get(job.type.value, 0) + 1
            by_status[job.status.value] = by_status.get(job.status.value, 0) + 1
            if job.status == JobStatus.COMPLETED and job.timing.actual_duration is not None:
                durations.append(job.timing.actual_duration)

        stats.completed_jobs = by_status.get(JobStatus.COMPLETED.value, 0)
        stats.failed_jobs = by_status.get(JobStatus.FAILED.value, 0)
        stats.cancelled_jobs = by_status.get(JobStatus.CANCELLED.value, 0)
        finished = stats.completed_jobs + stats.failed_jobs
        stats.success_rate = round(stats.completed_jobs / finished, 4) if finished else 0.0
        stats.average_processing_time = (
            round(sum(durations) / len(durations), 4) if durations else 0.0
        )
        stats.jobs_by_type = by_type
        stats.jobs_by_status = by_status
        return stats

    # Lifecycle

    def start(self) -> None:
        """Start the dispatch loop. The first tick runs immediately."""
        with self._lock:
            self._accepting = True

        if self._scheduler.running:
            return

        self._scheduler.add_job(
            func=self.dispatch_pending,
            trigger=IntervalTrigger(seconds=self.config.dispatch_interval, timezone=timezone.utc),
            id=DISPATCH_JOB_ID,
            name="Batch job dispatch",
            replace_existing=True,
            next_run_time=datetime.now(timezone.utc),
        )
        self._scheduler.start()

        logger.info(
            "Batch scheduler started",
            extra={
                "event": "batch.scheduler.started",
                "max_concurrent_jobs": self.config.max_concurrent_jobs,
                "dispatch_interval_seconds": self.config.dispatch_interval,
            },
        )

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """
        Stop dispatching and release every running slot.

        Pending automatic retries are dropped (the jobs stay failed and can be
        recovered later). With ``wait`` the call blocks up to ``timeout``
        seconds (default: ``shutdown_timeout``) for running attempts to
        settle; attempts still running afterwards are cancelled and their
        late results ignored.
        """
        timeout = self.config.shutdown_timeout if timeout is None else timeout

        logger.info(
            "Shutting down batch scheduler",
            extra={"event": "batch.scheduler.stopping", "wait_for_jobs": wait},
        )

        abandoned = []
        with self._lock:
            self._accepting = False
            for job_id in list(self._retry_timers):
                self._cancel_retry_timer(job_id)

            if wait and self._running:
                self._state_changed.wait_for(lambda: not self._running, timeout=timeout)

            for job_id in list(self._running):
                job = self._jobs[job_id]
                active = self._running.pop(job_id)
                self._stop_progress_ticker(job_id)
                job.status = JobStatus.CANCELLED
                job.results.warnings.append("Cancelled by scheduler shutdown")
                self._stamp_completion(job, active)
                abandoned.append(self._snapshot(job))
            self._state_changed.notify_all()

        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

        for snapshot in abandoned:
            self._persist(snapshot)
            self._emit("job_cancelled", snapshot, reason="shutdown")

        logger.info(
            "Batch scheduler shutdown complete",
            extra={"event": "batch.scheduler.stopped", "abandoned_jobs": len(abandoned)},
        )

    def is_running(self) -> bool:
        return self._scheduler.running

    def recover_jobs(self) -> int:
        """
        Re-queue unfinished jobs from the job store after a restart.

        - pending jobs are queued again as they were
        - jobs that were running count as a failed attempt: re-queued with
          retry_count + 1 while budget remains, otherwise marked failed
        - failed jobs with retry budget left are re-queued the same way

        Returns:
            Number of jobs put back into the waiting set
        """
        try:
            stored = self.job_store.load_unfinished_jobs()
        except Exception as e:
            logger.error(
                f"Could not load unfinished jobs: {e}",
                extra={"event": "batch.recovery.failed", "error": str(e)},
                exc_info=True,
            )
            return 0

        requeued = []
        exhausted = []
        with self._lock:
            for job in stored:
                if job.id in self._jobs:
                    continue

                if job.status == JobStatus.PENDING:
                    self._jobs[job.id] = job
                    self._enqueue(job)
                    requeued.append(self._snapshot(job))
                    continue

                if job.retries_left == 0:
                    if job.status == JobStatus.RUNNING:
                        job.status = JobStatus.FAILED
                        job.results.errors.append(
                            ItemError(item="job", error="Interrupted by restart; retry budget exhausted")
                        )
                        job.timing.completed_at = self._clock()
                        self._jobs[job.id] = job
                        exhausted.append(self._snapshot(job))
                    continue

                if job.status == JobStatus.RUNNING:
                    note = "Interrupted by restart"
                else:
                    note = _last_job_error(job) or "Failed before restart"
                self._jobs[job.id] = job
                requeued.append(self._requeue(job, note=note))

        for snapshot in requeued + exhausted:
            self._persist(snapshot)

        logger.info(
            f"Recovered {len(requeued)} unfinished jobs",
            extra={
                "event": "batch.recovery.completed",
                "requeued": len(requeued),
                "exhausted": len(exhausted),
            },
        )
        return len(requeued)

    # Dispatch and execution

    def dispatch_pending(self) -> List[str]:
        """
        Run one dispatch tick: start as many waiting jobs as there are free slots.

        Called by the interval loop once started; safe to call directly (e.g.
        from tests or admin tooling).

        Returns:
            Ids of the jobs started by this tick
        """
        launched = []
        with self._lock:
            if not self._accepting:
                return []

            available = self.config.max_concurrent_jobs - len(self._running)
            while available > 0 and self._waiting:
                item = self._waiting.pop(0)
                job = self._jobs.get(item.job_id)
                if job is None or job.status != JobStatus.PENDING:
                    continue

                attempt = next(self._attempts)
                job.status = JobStatus.RUNNING
                job.timing.started_at = self._clock()
                job.timing.completed_at = None
                job.timing.actual_duration = None
                self._running[job.id] = _ActiveAttempt(attempt, time.monotonic())
                self._start_progress_ticker(job.id)
                available -= 1
                launched.append((job, attempt, self._snapshot(job)))

            if launched:
                self._state_changed.notify_all()

        for job, attempt, snapshot in launched:
            self._persist(snapshot)
            logger.info(
                f"Batch job started: {job.name}",
                extra={
                    "event": "batch.job.started",
                    "batch_job_id": job.id,
                    "job_type": job.type.value,
                    "priority": job.priority.value,
                    "attempt": attempt,
                    "retry_count": job.metadata.retry_count,
                },
            )
            self._emit("job_started", snapshot, attempt=attempt)

            supervisor = threading.Thread(
                target=self._supervise,
                args=(job, attempt),
                name=f"batch-supervisor-{job.id[:8]}",
                daemon=True,
            )
            supervisor.start()

        return [job.id for job, _, _ in launched]

    def _supervise(self, job: BatchJob, attempt: int) -> None:
        """Run one attempt on a worker thread and settle it, honouring the timeout."""
        context = {"batch_job_id": job.id, "job_type": job.type.value, "attempt": attempt}

        with log_context(**context):
            definition = self._definitions.get((job.type, job.name))
            if definition is None:
                missing = LookupError(f"No executor registered for {job.type.value}/{job.name}")
                self._settle_failure(job.id, attempt, HandlerError(job.id, missing, attempt))
                return

            reporter = ProgressReporter(self, job.id, attempt)
            outcome: Dict[str, Any] = {}

            def run_executor():
                with log_context(**context):
                    try:
                        outcome["results"] = definition.executor.execute(job, reporter)
                    except Exception as e:
                        outcome["error"] = e

            worker = threading.Thread(
                target=run_executor,
                name=f"batch-worker-{job.id[:8]}",
                daemon=True,
            )
            worker.start()
            worker.join(self.config.job_timeout)

            if worker.is_alive():
                self._settle_failure(
                    job.id, attempt, JobTimeoutError(job.id, self.config.job_timeout)
                )
            elif "error" in outcome:
                self._settle_failure(job.id, attempt, HandlerError(job.id, outcome["error"], attempt))
            elif "results" not in outcome:
                exited = RuntimeError("Executor exited without returning")
                self._settle_failure(job.id, attempt, HandlerError(job.id, exited, attempt))
            else:
                results = outcome["results"]
                if results is not None and not isinstance(results, JobResults):
                    wrong = TypeError(
                        f"Executor returned {type(results).__name__}, expected JobResults"
                    )
                    self._settle_failure(job.id, attempt, HandlerError(job.id, wrong, attempt))
                else:
                    self._settle_success(job.id, attempt, results)

    def _settle_success(self, job_id: str, attempt: int, results: Optional[JobResults]) -> None:
        with self._lock:
            released = self._release(job_id, attempt)
            if released is None:
                return
            job, active = released

            was_cancelled = job.status == JobStatus.CANCELLED
            if not was_cancelled:
                job.status = JobStatus.COMPLETED
                job.results = results or JobResults()
                job.results.warnings[:0] = self._attempt_notes.pop(job_id, [])
                job.progress.complete()
            self._stamp_completion(job, active)
            snapshot = self._snapshot(job)
            self._state_changed.notify_all()

        self._persist(snapshot)
        if was_cancelled:
            return

        logger.info(
            f"Batch job completed: {snapshot.name}",
            extra={
                "event": "batch.job.completed",
                "batch_job_id": job_id,
                "duration_seconds": snapshot.timing.actual_duration,
                "processed": snapshot.results.processed,
                "successful": snapshot.results.successful,
                "failed": snapshot.results.failed,
            },
        )
        self._emit("job_completed", snapshot)

    def _settle_failure(self, job_id: str, attempt: int, error: Exception) -> None:
        retry_delay = None
        with self._lock:
            released = self._release(job_id, attempt)
            if released is None:
                return
            job, active = released

            was_cancelled = job.status == JobStatus.CANCELLED
            if not was_cancelled:
                job.status = JobStatus.FAILED
                job.results.errors.append(ItemError(item="job", error=str(error)))
                if job.retries_left > 0:
                    job.results.warnings[:0] = list(self._attempt_notes.get(job_id, []))
                    retry_delay = self.config.retry_delay * (
                        self.config.backoff_multiplier ** job.metadata.retry_count
                    )
                    self._schedule_retry(job_id, retry_delay)
                else:
                    job.results.warnings[:0] = self._attempt_notes.pop(job_id, [])
            self._stamp_completion(job, active)
            snapshot = self._snapshot(job)
            self._state_changed.notify_all()

        self._persist(snapshot)
        if was_cancelled:
            return

        permanent = retry_delay is None
        extra = {
            "event": "batch.job.timeout" if isinstance(error, JobTimeoutError) else "batch.job.failed",
            "batch_job_id": job_id,
            "error": str(error),
            "error_type": type(getattr(error, "cause", error)).__name__,
            "retry_count": snapshot.metadata.retry_count,
            "max_retries": snapshot.metadata.max_retries,
            "permanent": permanent,
        }
        if permanent:
            logger.error("Batch job failed permanently", extra=extra)
        else:
            extra["retry_in_seconds"] = retry_delay
            logger.warning("Batch job failed, scheduling retry", extra=extra)

        self._emit(
            "job_failed",
            snapshot,
            error=str(error),
            permanent=permanent,
            retry_in=retry_delay,
        )

    def _fire_retry(self, job_id: str) -> None:
        with self._lock:
            self._retry_timers.pop(job_id, None)
            job = self._jobs.get(job_id)
            if job is None or job.status != JobStatus.FAILED or job.retries_left == 0:
                return
            snapshot = self._requeue(job)

        self._after_requeue(snapshot, automatic=True)

    def _after_requeue(self, snapshot: BatchJob, automatic: bool) -> None:
        self._persist(snapshot)
        logger.info(
            "Batch job retried",
            extra={
                "event": "batch.job.retried",
                "batch_job_id": snapshot.id,
                "retry_count": snapshot.metadata.retry_count,
                "automatic": automatic,
            },
        )
        self._emit("job_retried", snapshot, automatic=automatic)

    # Hooks used by ProgressReporter

    def _attempt_is_live(self, job_id: str, attempt: int) -> bool:
        with self._lock:
            active = self._running.get(job_id)
            job = self._jobs.get(job_id)
            return (
                active is not None
                and active.attempt == attempt
                and job is not None
                and job.status == JobStatus.RUNNING
            )

    def _apply_progress(
        self,
        job_id: str,
        attempt: int,
        current: Optional[int] = None,
        total: Optional[int] = None,
        delta: int = 0,
    ) -> None:
        with self._lock:
            if not self._attempt_is_live(job_id, attempt):
                return
            progress = self._jobs[job_id].progress
            new_current = progress.current + delta if current is None else current
            progress.update(new_current, total if total is not None else progress.total)

    def _publish_progress(self, job_id: str) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job_id not in self._running or job.status != JobStatus.RUNNING:
                return
            marker = (job.progress.current, job.progress.total)
            changed = self._published_progress.get(job_id) != marker
            self._published_progress[job_id] = marker
            snapshot = self._snapshot(job)

        if changed:
            self._persist(snapshot)
        self._emit("job_progress", snapshot)

    # Internals (call with the lock held unless noted)

    def _enqueue(self, job: BatchJob) -> None:
        insort(
            self._waiting,
            QueueItem(
                job_id=job.id,
                priority_rank=JobPriority(job.priority).rank,
                created_at=job.timing.created_at,
                sequence=next(self._sequence),
                scheduled_time=self._clock(),
                retry_count=job.metadata.retry_count,
            ),
        )
        self._state_changed.notify_all()

    def _requeue(self, job: BatchJob, note: Optional[str] = None) -> BatchJob:
        note = note or _last_job_error(job)
        if note:
            attempt_number = job.metadata.retry_count + 1
            self._attempt_notes.setdefault(job.id, []).append(
                f"attempt {attempt_number} failed: {note}"
            )

        job.metadata.retry_count += 1
        job.status = JobStatus.PENDING
        job.progress = JobProgress()
        job.results = JobResults()
        job.timing.started_at = None
        job.timing.completed_at = None
        job.timing.actual_duration = None
        self._enqueue(job)
        return self._snapshot(job)

    def _release(self, job_id: str, attempt: int):
        """Free the running slot held by ``attempt``; None if the attempt is stale."""
        active = self._running.get(job_id)
        if active is None or active.attempt != attempt:
            logger.debug(
                "Ignoring outcome of an abandoned attempt",
                extra={"event": "batch.job.stale_result", "batch_job_id": job_id},
            )
            return None

        del self._running[job_id]
        self._stop_progress_ticker(job_id)
        self._published_progress.pop(job_id, None)
        return self._jobs[job_id], active

    def _stamp_completion(self, job: BatchJob, active: _ActiveAttempt) -> None:
        job.timing.completed_at = self._clock()
        job.timing.actual_duration = round(time.monotonic() - active.started_monotonic, 6)

    def _is_settled(self, job_id: str) -> bool:
        job = self._jobs[job_id]
        return (
            job.is_terminal
            and job_id not in self._running
            and job_id not in self._retry_timers
        )

    def _schedule_retry(self, job_id: str, delay: float) -> None:
        timer_id = f"retry-{job_id}"
        self._scheduler.add_job(
            func=self._fire_retry,
            trigger=DateTrigger(
                run_date=datetime.now(timezone.utc) + timedelta(seconds=delay),
                timezone=timezone.utc,
            ),
            args=[job_id],
            id=timer_id,
            name=f"Retry {job_id}",
            replace_existing=True,
        )
        self._retry_timers[job_id] = timer_id

    def _cancel_retry_timer(self, job_id: str) -> None:
        timer_id = self._retry_timers.pop(job_id, None)
        if timer_id is not None and self._scheduler.get_job(timer_id) is not None:
            self._scheduler.remove_job(timer_id)

    def _start_progress_ticker(self, job_id: str) -> None:
        ticker_id = f"progress-{job_id}"
        self._scheduler.add_job(
            func=self._publish_progress,
            trigger=IntervalTrigger(
                seconds=self.config.progress_update_interval, timezone=timezone.utc
            ),
            args=[job_id],
            id=ticker_id,
            name=f"Progress {job_id}",
            replace_existing=True,
        )
        self._progress_tickers[job_id] = ticker_id

    def _stop_progress_ticker(self, job_id: str) -> None:
        ticker_id = self._progress_tickers.pop(job_id, None)
        if ticker_id is not None and self._scheduler.get_job(ticker_id) is not None:
            self._scheduler.remove_job(ticker_id)

    def _snapshot(self, job: BatchJob) -> BatchJob:
        return copy.deepcopy(job)

    def _persist(self, job: BatchJob, created: bool = False) -> None:
        """Write job state through the store. Failures are logged, never raised.

        Called without the lock held.
        """
        if not self.config.enable_persistence:
            return

        try:
            if created:
                self.job_store.persist_job(job)
            else:
                self.job_store.update_persisted_job(job)
        except Exception as e:
            logger.warning(
                f"Failed to persist job state: {e}",
                extra={
                    "event": "batch.persistence.failed",
                    "batch_job_id": job.id,
                    "status": job.status.value,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )

    def _emit(self, event: str, job: BatchJob, **details: Any) -> None:
        """Call listeners outside the lock; their errors are logged."""
        with self._lock:
            listeners = list(self._listeners[event])

        for listener in listeners:
            try:
                listener(job, details)
            except Exception as e:
                logger.error(
                    f"Listener for {event} raised: {e}",
                    extra={
                        "event": "batch.listener.failed",
                        "listener_event": event,
                        "batch_job_id": job.id,
                        "error": str(e),
                    },
                    exc_info=True,
                )


def _coerce_options(options: Union[JobOptions, Dict[str, Any], None]) -> JobOptions:
    if options is None:
        return JobOptions()
    if isinstance(options, JobOptions):
        return options
    try:
        return JobOptions(**options)
    except TypeError as e:
        raise JobValidationError(f"Invalid job options: {e}") from None


def _last_job_error(job: BatchJob) -> Optional[str]:
    for entry in reversed(job.results.errors):
        if entry.item == "job":
            return entry.error
    return None
