"""Unit tests for the batch scheduler.

Tests the BatchScheduler including:
- Priority ordering and the concurrency ceiling
- Automatic and manual retries with a shared budget
- Timeouts and abandoned attempts
- Cancellation of pending and running jobs
- Listener isolation, persistence and crash recovery
"""

import threading
import time
from unittest.mock import Mock

import pytest

from talentmatch.batch import (
    BatchJob,
    BatchScheduler,
    InMemoryJobStore,
    JobDefinition,
    JobOptions,
    JobPriority,
    JobResults,
    JobStatus,
    JobType,
    JobValidationError,
)
from talentmatch.batch.store import JobStore
from talentmatch.config.models import SchedulerConfig
from talentmatch.persistence.exceptions import PersistenceError

WAIT = 5


def register(scheduler, fn, name="sample", job_type=JobType.ANALYTICS, **kwargs):
    scheduler.register_job_definition(
        JobDefinition(type=job_type, name=name, executor=fn, **kwargs)
    )


def ok(job, progress):
    return JobResults(processed=1, successful=1)


class TestJobCreation:
    """Tests for create_job validation and defaults."""

    def test_create_job_returns_pending_snapshot(self, scheduler):
        register(scheduler, ok, description="Sample job", default_priority=JobPriority.HIGH)

        job_id = scheduler.create_job(JobType.ANALYTICS, "sample", {"x": 1})
        job = scheduler.get_job(job_id)

        assert job.status == JobStatus.PENDING
        assert job.priority == JobPriority.HIGH
        assert job.description == "Sample job"
        assert job.parameters == {"x": 1}
        assert job.metadata.max_retries == scheduler.config.retry_attempts
        assert job.metadata.retry_count == 0

    def test_get_job_returns_copies(self, scheduler):
        register(scheduler, ok)
        job_id = scheduler.create_job("analytics", "sample")

        snapshot = scheduler.get_job(job_id)
        snapshot.status = JobStatus.COMPLETED

        assert scheduler.get_job(job_id).status == JobStatus.PENDING
        assert scheduler.get_job("missing") is None

    def test_options_override_defaults(self, scheduler):
        register(scheduler, ok)
        job_id = scheduler.create_job(
            JobType.ANALYTICS,
            "sample",
            options={"priority": "critical", "max_retries": 0, "tags": ["nightly"]},
        )
        job = scheduler.get_job(job_id)

        assert job.priority == JobPriority.CRITICAL
        assert job.metadata.max_retries == 0
        assert job.metadata.tags == ["nightly"]

    @pytest.mark.parametrize(
        "job_type,name,options",
        [
            ("reports", "sample", None),
            (JobType.ANALYTICS, "unregistered", None),
            (JobType.CLEANUP, "sample", None),
            (JobType.ANALYTICS, "sample", {"priority": "urgent"}),
            (JobType.ANALYTICS, "sample", {"max_retries": -1}),
            (JobType.ANALYTICS, "sample", {"colour": "blue"}),
        ],
    )
    def test_invalid_requests_raise(self, scheduler, job_type, name, options):
        register(scheduler, ok)
        with pytest.raises(JobValidationError):
            scheduler.create_job(job_type, name, options=options)

    def test_definition_requires_callable_executor(self):
        with pytest.raises(TypeError):
            JobDefinition(type=JobType.ANALYTICS, name="bad", executor="not callable")


class TestDispatch:
    """Tests for priority ordering and the concurrency ceiling."""

    def test_critical_job_overtakes_waiting_medium_jobs(self, fast_config):
        config = fast_config.model_copy(update={"max_concurrent_jobs": 1})
        scheduler = BatchScheduler(config=config)
        order = []
        register(scheduler, lambda job, progress: order.append(job.parameters["n"]))

        medium_ids = [
            scheduler.create_job(JobType.ANALYTICS, "sample", {"n": f"m{i}"}, {"priority": "medium"})
            for i in range(10)
        ]
        assert scheduler.dispatch_pending() == [medium_ids[0]]
        scheduler.wait_for_job(medium_ids[0], timeout=WAIT)

        critical_id = scheduler.create_job(
            JobType.ANALYTICS, "sample", {"n": "critical"}, JobOptions(priority=JobPriority.CRITICAL)
        )
        assert scheduler.dispatch_pending() == [critical_id]
        scheduler.wait_for_job(critical_id, timeout=WAIT)

        for job_id in medium_ids[1:]:
            scheduler.dispatch_pending()
            scheduler.wait_for_job(job_id, timeout=WAIT)

        assert order == ["m0", "critical"] + [f"m{i}" for i in range(1, 10)]

    def test_pending_order_is_priority_then_age(self, scheduler):
        register(scheduler, ok)
        low = scheduler.create_job(JobType.ANALYTICS, "sample", options={"priority": "low"})
        high = scheduler.create_job(JobType.ANALYTICS, "sample", options={"priority": "high"})
        medium = scheduler.create_job(JobType.ANALYTICS, "sample", options={"priority": "medium"})
        high_2 = scheduler.create_job(JobType.ANALYTICS, "sample", options={"priority": "high"})

        pending = [job.id for job in scheduler.get_all_jobs()["pending"]]
        assert pending == [high, high_2, medium, low]

    def test_dispatch_respects_concurrency_ceiling(self, scheduler):
        gate = threading.Event()
        register(scheduler, lambda job, progress: gate.wait(WAIT) and None)
        job_ids = [scheduler.create_job(JobType.ANALYTICS, "sample") for _ in range(5)]

        assert len(scheduler.dispatch_pending()) == 2
        assert scheduler.dispatch_pending() == []

        stats = scheduler.get_stats()
        assert stats.running_jobs == 2
        assert stats.queue_size == 3

        gate.set()
        for job_id in job_ids[:2]:
            assert scheduler.wait_for_job(job_id, timeout=WAIT).status == JobStatus.COMPLETED
        assert len(scheduler.dispatch_pending()) == 2

    def test_running_set_never_exceeds_ceiling(self, scheduler):
        lock = threading.Lock()
        in_flight = [0]
        peak = [0]

        def tracked(job, progress):
            with lock:
                in_flight[0] += 1
                peak[0] = max(peak[0], in_flight[0])
            time.sleep(0.03)
            with lock:
                in_flight[0] -= 1
            return None

        register(scheduler, tracked)
        job_ids = [scheduler.create_job(JobType.ANALYTICS, "sample") for _ in range(8)]
        scheduler.start()

        for job_id in job_ids:
            assert scheduler.wait_for_job(job_id, timeout=WAIT).status == JobStatus.COMPLETED
        assert peak[0] <= scheduler.config.max_concurrent_jobs

    def test_dispatch_stops_after_shutdown(self, scheduler):
        register(scheduler, ok)
        scheduler.shutdown(wait=False)
        scheduler.create_job(JobType.ANALYTICS, "sample")

        assert scheduler.dispatch_pending() == []


class TestExecution:
    """Tests for results, progress, retries and timeouts."""

    def test_results_and_progress_recorded(self, scheduler):
        def counting(job, progress):
            progress.set_total(10)
            for _ in range(10):
                progress.advance()
            results = JobResults()
            results.record_success(10)
            results.data["answer"] = 42
            return results

        register(scheduler, counting)
        job_id = scheduler.create_job(JobType.ANALYTICS, "sample")
        scheduler.dispatch_pending()
        job = scheduler.wait_for_job(job_id, timeout=WAIT)

        assert job.status == JobStatus.COMPLETED
        assert job.results.successful == 10
        assert job.results.data == {"answer": 42}
        assert job.progress.current == job.progress.total == 10
        assert job.progress.percentage == 100.0
        assert job.timing.started_at is not None
        assert job.timing.completed_at >= job.timing.started_at
        assert job.timing.actual_duration >= 0

    def test_retries_until_success(self, scheduler):
        calls = [0]

        def flaky(job, progress):
            calls[0] += 1
            if calls[0] <= 2:
                raise ConnectionError(f"transient failure {calls[0]}")
            return JobResults(processed=1, successful=1)

        register(scheduler, flaky)
        job_id = scheduler.create_job(JobType.ANALYTICS, "sample", options={"max_retries": 3})
        scheduler.start()
        job = scheduler.wait_for_job(job_id, timeout=WAIT)

        assert job.status == JobStatus.COMPLETED
        assert job.metadata.retry_count == 2
        assert calls[0] == 3
        assert job.results.warnings[:2] == [
            "attempt 1 failed: ConnectionError: transient failure 1",
            "attempt 2 failed: ConnectionError: transient failure 2",
        ]

    def test_permanent_failure_after_budget(self, scheduler):
        calls = [0]

        def broken(job, progress):
            calls[0] += 1
            raise ValueError("bad input")

        register(scheduler, broken)
        job_id = scheduler.create_job(JobType.ANALYTICS, "sample", options={"max_retries": 2})
        scheduler.start()
        job = scheduler.wait_for_job(job_id, timeout=WAIT)

        assert job.status == JobStatus.FAILED
        assert job.metadata.retry_count == 2
        assert calls[0] == 3
        assert job.results.errors[-1].item == "job"
        assert "bad input" in job.results.errors[-1].error
        assert scheduler.retry_job(job_id) is False

    def test_non_results_return_value_fails_attempt(self, scheduler):
        register(scheduler, lambda job, progress: {"processed": 1})
        job_id = scheduler.create_job(JobType.ANALYTICS, "sample", options={"max_retries": 0})
        scheduler.dispatch_pending()
        job = scheduler.wait_for_job(job_id, timeout=WAIT)

        assert job.status == JobStatus.FAILED
        assert "expected JobResults" in job.results.errors[-1].error

    def test_timeout_fails_attempt_and_ignores_late_result(self, fast_config):
        config = fast_config.model_copy(update={"job_timeout": 0.1})
        scheduler = BatchScheduler(config=config)
        release = threading.Event()
        finished = threading.Event()

        def slow(job, progress):
            release.wait(WAIT)
            finished.set()
            return JobResults(processed=1, successful=1)

        register(scheduler, slow)
        job_id = scheduler.create_job(JobType.ANALYTICS, "sample", options={"max_retries": 0})
        scheduler.dispatch_pending()
        job = scheduler.wait_for_job(job_id, timeout=WAIT)

        assert job.status == JobStatus.FAILED
        assert "timeout" in job.results.errors[-1].error
        assert scheduler.get_stats().running_jobs == 0

        release.set()
        assert finished.wait(WAIT)
        time.sleep(0.05)
        assert scheduler.get_job(job_id).status == JobStatus.FAILED

    def test_manual_retry_shares_budget(self, scheduler):
        failed = threading.Event()
        register(scheduler, lambda job, progress: 1 / 0)
        scheduler.add_listener("job_failed", lambda job, details: failed.set())

        job_id = scheduler.create_job(JobType.ANALYTICS, "sample", options={"max_retries": 1})
        scheduler.dispatch_pending()
        assert failed.wait(WAIT)

        assert scheduler.retry_job(job_id) is True
        job = scheduler.get_job(job_id)
        assert job.status == JobStatus.PENDING
        assert job.metadata.retry_count == 1

        scheduler.dispatch_pending()
        job = scheduler.wait_for_job(job_id, timeout=WAIT)
        assert job.status == JobStatus.FAILED
        assert scheduler.retry_job(job_id) is False

    def test_retry_rejects_non_failed_jobs(self, scheduler):
        register(scheduler, ok)
        job_id = scheduler.create_job(JobType.ANALYTICS, "sample")

        assert scheduler.retry_job(job_id) is False
        assert scheduler.retry_job("missing") is False

    def test_retry_delay_grows_by_backoff_multiplier(self, fast_config):
        config = fast_config.model_copy(update={"retry_delay": 0.01, "backoff_multiplier": 2.0})
        scheduler = BatchScheduler(config=config)
        delays = []
        exhausted = threading.Event()

        def on_failed(job, details):
            delays.append(details["retry_in"])
            if details["permanent"]:
                exhausted.set()

        scheduler.add_listener("job_failed", on_failed)
        register(scheduler, lambda job, progress: 1 / 0)

        job_id = scheduler.create_job(JobType.ANALYTICS, "sample", options={"max_retries": 3})
        scheduler.start()
        try:
            assert exhausted.wait(WAIT)
            job = scheduler.wait_for_job(job_id, timeout=WAIT)
        finally:
            scheduler.shutdown(wait=True)

        assert job.status == JobStatus.FAILED
        assert delays[:3] == pytest.approx([0.01, 0.02, 0.04])
        assert delays[3:] == [None]


class TestCancellation:
    """Tests for cancel_job."""

    def test_cancel_pending_job_is_never_dispatched(self, scheduler):
        executor = Mock(return_value=None)
        register(scheduler, executor)
        job_id = scheduler.create_job(JobType.ANALYTICS, "sample")

        assert scheduler.cancel_job(job_id) is True
        assert scheduler.dispatch_pending() == []
        assert scheduler.get_job(job_id).status == JobStatus.CANCELLED
        executor.assert_not_called()

    def test_cancel_twice_or_unknown_returns_false(self, scheduler):
        register(scheduler, ok)
        job_id = scheduler.create_job(JobType.ANALYTICS, "sample")
        scheduler.cancel_job(job_id)

        assert scheduler.cancel_job(job_id) is False
        assert scheduler.cancel_job("missing") is False

    def test_cancel_failed_job_keeps_pending_retry(self, fast_config):
        config = fast_config.model_copy(update={"retry_delay": 0.3})
        scheduler = BatchScheduler(config=config)
        calls = [0]
        failed = threading.Event()

        def fails_once(job, progress):
            calls[0] += 1
            if calls[0] == 1:
                raise ConnectionError("transient failure")
            return JobResults(processed=1, successful=1)

        register(scheduler, fails_once)
        scheduler.add_listener("job_failed", lambda job, details: failed.set())
        job_id = scheduler.create_job(JobType.ANALYTICS, "sample", options={"max_retries": 1})
        scheduler.start()
        try:
            assert failed.wait(WAIT)
            assert scheduler.cancel_job(job_id) is False
            assert scheduler.get_job(job_id).status == JobStatus.FAILED

            job = scheduler.wait_for_job(job_id, timeout=WAIT)
        finally:
            scheduler.shutdown(wait=True)

        assert job.status == JobStatus.COMPLETED
        assert job.metadata.retry_count == 1

    def test_cancel_running_job_is_cooperative(self, scheduler):
        started = threading.Event()
        observed = threading.Event()

        def cooperative(job, progress):
            started.set()
            deadline = time.monotonic() + WAIT
            while not progress.cancelled and time.monotonic() < deadline:
                time.sleep(0.01)
            observed.set()
            return JobResults(processed=1, successful=1)

        completed = Mock()
        scheduler.add_listener("job_completed", completed)
        register(scheduler, cooperative)
        job_id = scheduler.create_job(JobType.ANALYTICS, "sample")
        scheduler.dispatch_pending()
        assert started.wait(WAIT)

        assert scheduler.cancel_job(job_id) is True
        job = scheduler.wait_for_job(job_id, timeout=WAIT)

        assert observed.is_set()
        assert job.status == JobStatus.CANCELLED
        assert job.results.successful == 0
        assert scheduler.get_stats().running_jobs == 0
        completed.assert_not_called()

    def test_shutdown_cancels_running_jobs(self, scheduler):
        release = threading.Event()
        started = threading.Event()

        def stubborn(job, progress):
            started.set()
            release.wait(WAIT)
            return None

        cancelled = []
        scheduler.add_listener("job_cancelled", lambda job, details: cancelled.append(details))
        register(scheduler, stubborn)
        job_id = scheduler.create_job(JobType.ANALYTICS, "sample")
        scheduler.start()
        assert started.wait(WAIT)

        scheduler.shutdown(wait=True, timeout=0.1)
        release.set()

        job = scheduler.get_job(job_id)
        assert job.status == JobStatus.CANCELLED
        assert "Cancelled by scheduler shutdown" in job.results.warnings
        assert cancelled == [{"reason": "shutdown"}]
        assert not scheduler.is_running()


class TestListenersAndStats:
    """Tests for lifecycle events and statistics."""

    def test_lifecycle_events_emitted_in_order(self, scheduler):
        events = []
        for name in ("job_created", "job_started", "job_completed"):
            scheduler.add_listener(name, lambda job, details, name=name: events.append(name))
        register(scheduler, ok)

        job_id = scheduler.create_job(JobType.ANALYTICS, "sample")
        scheduler.dispatch_pending()
        scheduler.wait_for_job(job_id, timeout=WAIT)

        assert events == ["job_created", "job_started", "job_completed"]

    def test_listener_errors_are_isolated(self, scheduler):
        scheduler.add_listener("job_created", Mock(side_effect=RuntimeError("boom")))
        register(scheduler, ok)

        job_id = scheduler.create_job(JobType.ANALYTICS, "sample")
        assert scheduler.get_job(job_id) is not None

    def test_unknown_event_rejected(self, scheduler):
        with pytest.raises(ValueError):
            scheduler.add_listener("job_exploded", Mock())

    def test_stats(self, scheduler):
        register(scheduler, ok)
        register(scheduler, lambda job, progress: 1 / 0, name="broken")

        done = scheduler.create_job(JobType.ANALYTICS, "sample")
        broken = scheduler.create_job(JobType.ANALYTICS, "broken", options={"max_retries": 0})
        scheduler.dispatch_pending()
        scheduler.wait_for_job(done, timeout=WAIT)
        scheduler.wait_for_job(broken, timeout=WAIT)
        cancelled = scheduler.create_job(JobType.ANALYTICS, "sample")
        scheduler.cancel_job(cancelled)
        scheduler.create_job(JobType.ANALYTICS, "sample")

        stats = scheduler.get_stats()
        assert stats.completed_jobs == 1
        assert stats.failed_jobs == 1
        assert stats.cancelled_jobs == 1
        assert stats.queue_size == 1
        assert stats.success_rate == 0.5
        assert stats.jobs_by_type == {"analytics": 4}
        assert stats.jobs_by_status["pending"] == 1

        grouped = scheduler.get_all_jobs()
        assert len(grouped["pending"]) == 1
        assert len(grouped["running"]) == 0
        assert len(grouped["completed"]) == 3


class TestPersistenceAndRecovery:
    """Tests for job store writes and recover_jobs."""

    def test_empty_store_is_kept(self, fast_config):
        store = InMemoryJobStore()
        assert len(store) == 0

        scheduler = BatchScheduler(config=fast_config, job_store=store)

        assert scheduler.job_store is store

    def test_state_written_through_store(self, scheduler, job_store):
        register(scheduler, ok)
        job_id = scheduler.create_job(JobType.ANALYTICS, "sample")
        assert job_store.get(job_id).status == JobStatus.PENDING

        scheduler.dispatch_pending()
        scheduler.wait_for_job(job_id, timeout=WAIT)
        stored = job_store.get(job_id)

        assert stored.status == JobStatus.COMPLETED
        assert stored.results.successful == 1

    def test_store_failures_do_not_block_jobs(self, fast_config):
        store = Mock(spec=JobStore)
        store.persist_job.side_effect = PersistenceError("disk full")
        store.update_persisted_job.side_effect = PersistenceError("disk full")
        scheduler = BatchScheduler(config=fast_config, job_store=store)
        register(scheduler, ok)

        job_id = scheduler.create_job(JobType.ANALYTICS, "sample")
        scheduler.dispatch_pending()

        assert scheduler.wait_for_job(job_id, timeout=WAIT).status == JobStatus.COMPLETED
        assert store.update_persisted_job.called

    def test_persistence_can_be_disabled(self, fast_config):
        store = Mock(spec=JobStore)
        config = fast_config.model_copy(update={"enable_persistence": False})
        scheduler = BatchScheduler(config=config, job_store=store)
        register(scheduler, ok)

        scheduler.create_job(JobType.ANALYTICS, "sample")
        store.persist_job.assert_not_called()

    def test_recover_unfinished_jobs(self, fast_config):
        store = InMemoryJobStore()
        pending = BatchJob(id="pending", type=JobType.ANALYTICS, name="sample")
        interrupted = BatchJob(id="interrupted", type=JobType.ANALYTICS, name="sample",
                               status=JobStatus.RUNNING)
        exhausted = BatchJob(id="exhausted", type=JobType.ANALYTICS, name="sample",
                             status=JobStatus.RUNNING)
        exhausted.metadata.max_retries = 0
        finished = BatchJob(id="finished", type=JobType.ANALYTICS, name="sample",
                            status=JobStatus.COMPLETED)
        for job in (pending, interrupted, exhausted, finished):
            store.persist_job(job)

        scheduler = BatchScheduler(config=fast_config, job_store=store)
        register(scheduler, ok)

        assert scheduler.recover_jobs() == 2
        assert scheduler.get_job("pending").status == JobStatus.PENDING
        assert scheduler.get_job("interrupted").metadata.retry_count == 1
        assert scheduler.get_job("exhausted").status == JobStatus.FAILED
        assert scheduler.get_job("finished") is None

        scheduler.dispatch_pending()
        job = scheduler.wait_for_job("interrupted", timeout=WAIT)
        assert job.status == JobStatus.COMPLETED
        assert "attempt 1 failed: Interrupted by restart" in job.results.warnings

    def test_recover_logs_store_errors(self, fast_config):
        store = Mock(spec=JobStore)
        store.load_unfinished_jobs.side_effect = PersistenceError("unreachable")
        scheduler = BatchScheduler(config=fast_config, job_store=store)

        assert scheduler.recover_jobs() == 0


class TestSchedulerConfig:
    """Tests for scheduler configuration parsing."""

    def test_durations_parsed_to_seconds(self):
        config = SchedulerConfig(job_timeout="1h30m", retry_delay="PT2S", dispatch_interval="500ms")
        assert config.job_timeout == 5400
        assert config.retry_delay == 2
        assert config.dispatch_interval == 0.5
