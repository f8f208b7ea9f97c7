"""Executor contract, job definitions and the progress reporter handed to executors."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

from .models import BatchJob, JobPriority, JobResults, JobType

if TYPE_CHECKING:
    from .scheduler import BatchScheduler


class ProgressReporter:
    """Progress and cancellation channel for one job attempt.

    Writes from an attempt that has already been settled (timed out,
    cancelled and released, or superseded by a retry) are ignored.
    """

    def __init__(self, scheduler: "BatchScheduler", job_id: str, attempt: int):
        self._scheduler = scheduler
        self.job_id = job_id
        self.attempt = attempt

    def set_total(self, total: int) -> None:
        """Declare how many units of work the attempt will process."""
        self._scheduler._apply_progress(self.job_id, self.attempt, total=total)

    def advance(self, count: int = 1) -> None:
        """Mark ``count`` more units as done."""
        self._scheduler._apply_progress(self.job_id, self.attempt, delta=count)

    def update(self, current: int, total: Optional[int] = None) -> None:
        """Set absolute progress."""
        self._scheduler._apply_progress(self.job_id, self.attempt, current=current, total=total)

    @property
    def cancelled(self) -> bool:
        """True once the job was cancelled or this attempt was abandoned.

        Executors check this between chunks and stop early.
        """
        return not self._scheduler._attempt_is_live(self.job_id, self.attempt)


class JobExecutor(ABC):
    """Runs the work of one job type."""

    @abstractmethod
    def execute(self, job: BatchJob, progress: ProgressReporter) -> Optional[JobResults]:
        """Run one attempt of ``job``.

        Args:
            job: The job being run; read ``job.parameters``, do not mutate status
            progress: Reporter for progress and cooperative cancellation

        Returns:
            Results of the attempt (None is treated as empty results)

        Raises:
            Any exception fails the attempt; the scheduler records it and
            schedules a retry while budget remains.
        """


class FunctionExecutor(JobExecutor):
    """Adapts a plain ``fn(job, progress) -> JobResults`` callable."""

    def __init__(self, fn: Callable[[BatchJob, ProgressReporter], Optional[JobResults]]):
        self.fn = fn

    def execute(self, job: BatchJob, progress: ProgressReporter) -> Optional[JobResults]:
        return self.fn(job, progress)


@dataclass
class JobDefinition:
    """Registration of an executor under a (type, name) pair.

    Attributes:
        type: Job type the executor handles
        name: Job name; a type may register several named definitions
        executor: JobExecutor, or a plain callable wrapped in FunctionExecutor
        description: Default description of created jobs
        default_priority: Priority used when the request names none
        estimated_duration: Expected runtime in seconds, informational
    """

    type: JobType
    name: str
    executor: JobExecutor
    description: Optional[str] = None
    default_priority: Optional[JobPriority] = None
    estimated_duration: Optional[float] = None

    def __post_init__(self):
        self.type = JobType(self.type)
        if self.default_priority is not None:
            self.default_priority = JobPriority(self.default_priority)
        if not isinstance(self.executor, JobExecutor):
            if not callable(self.executor):
                raise TypeError("executor must be a JobExecutor or a callable")
            self.executor = FunctionExecutor(self.executor)

    @property
    def key(self):
        return (self.type, self.name)
