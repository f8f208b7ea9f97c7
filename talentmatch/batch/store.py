"""Job state persistence contract and an in-memory implementation."""

import threading
from abc import ABC, abstractmethod
from typing import Dict, List

from talentmatch.persistence.exceptions import RecordNotFoundError

from .models import BatchJob, JobStatus

UNFINISHED_STATUSES = (JobStatus.PENDING, JobStatus.RUNNING, JobStatus.FAILED)


class JobStore(ABC):
    """Where the scheduler writes job state.

    Implementations raise PersistenceError subclasses on failure. The
    scheduler logs those errors and keeps going with its in-memory state.
    """

    @abstractmethod
    def persist_job(self, job: BatchJob) -> None:
        """Store a newly created job."""

    @abstractmethod
    def update_persisted_job(self, job: BatchJob) -> None:
        """Overwrite the stored state of an existing job."""

    @abstractmethod
    def load_unfinished_jobs(self) -> List[BatchJob]:
        """Jobs that were pending, running or awaiting a retry when last written.

        Failed jobs are included so that the caller can re-queue those with
        retry budget left; jobs with no budget left are ignored by recovery.
        """


class InMemoryJobStore(JobStore):
    """Thread-safe JobStore holding serialized snapshots in a dict."""

    def __init__(self):
        self._lock = threading.Lock()
        self._records: Dict[str, dict] = {}

    def persist_job(self, job: BatchJob) -> None:
        with self._lock:
            self._records[job.id] = job.to_dict()

    def update_persisted_job(self, job: BatchJob) -> None:
        with self._lock:
            if job.id not in self._records:
                raise RecordNotFoundError(f"Job {job.id} was never persisted")
            self._records[job.id] = job.to_dict()

    def load_unfinished_jobs(self) -> List[BatchJob]:
        with self._lock:
            records = list(self._records.values())
        jobs = [BatchJob.from_dict(record) for record in records]
        return [job for job in jobs if job.status in UNFINISHED_STATUSES]

    def get(self, job_id: str):
        """Stored snapshot of one job, or None."""
        with self._lock:
            record = self._records.get(job_id)
        return BatchJob.from_dict(record) if record else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
