"""Data models for batch jobs, their progress and results."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from talentmatch.utils.timestamps import format_timestamp, parse_iso_datetime, utc_now


class JobType(str, Enum):
    """Kinds of batch work the scheduler knows how to run."""

    MATCHING = "matching"
    RECOMMENDATIONS = "recommendations"
    EMBEDDINGS = "embeddings"
    CLEANUP = "cleanup"
    ANALYTICS = "analytics"


class JobPriority(str, Enum):
    """Dispatch priority. Higher rank is dispatched first."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    JobPriority.LOW: 1,
    JobPriority.MEDIUM: 2,
    JobPriority.HIGH: 3,
    JobPriority.CRITICAL: 4,
}


class JobStatus(str, Enum):
    """Lifecycle states of a batch job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


@dataclass
class JobProgress:
    """Units of work done so far. ``current`` never exceeds ``total``."""

    current: int = 0
    total: int = 0
    percentage: float = 0.0

    def update(self, current: int, total: Optional[int] = None) -> None:
        if total is not None:
            self.total = max(0, int(total))
        self.current = max(0, int(current))
        if self.current > self.total:
            self.total = self.current
        self.percentage = round(100 * self.current / self.total, 2) if self.total else 0.0

    def complete(self) -> None:
        """Mark all known work as done."""
        self.current = self.total
        self.percentage = 100.0


@dataclass
class ItemError:
    """A failure attached to one work item (or to the whole job, item="job")."""

    item: str
    error: str


@dataclass
class JobResults:
    """
    Outcome counters accumulated while a job runs.

    Attributes:
        processed: Items attempted
        successful: Items that succeeded
        failed: Items that failed
        errors: One entry per failed item, plus job-level failures
        warnings: Non-fatal notes (skipped items, dry-run hints, ...)
        data: Free-form JSON-safe payload produced by the job
    """

    processed: int = 0
    successful: int = 0
    failed: int = 0
    errors: List[ItemError] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)

    def record_success(self, count: int = 1) -> None:
        self.processed += count
        self.successful += count

    def record_failure(self, item: str, error: str) -> None:
        self.processed += 1
        self.failed += 1
        self.errors.append(ItemError(item=item, error=error))

    def merge(self, other: "JobResults") -> None:
        """Fold another result set (e.g. one chunk) into this one."""
        self.processed += other.processed
        self.successful += other.successful
        self.failed += other.failed
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        self.data.update(other.data)


@dataclass
class JobTiming:
    """Wall-clock timestamps and durations (seconds) of a job."""

    created_at: datetime = field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    estimated_duration: Optional[float] = None
    actual_duration: Optional[float] = None


@dataclass
class JobMetadata:
    """Retry bookkeeping and caller-supplied labels."""

    retry_count: int = 0
    max_retries: int = 3
    tags: List[str] = field(default_factory=list)
    created_by: Optional[str] = None


@dataclass
class BatchJob:
    """A unit of batch work tracked by the scheduler."""

    id: str
    type: JobType
    name: str
    priority: JobPriority = JobPriority.MEDIUM
    status: JobStatus = JobStatus.PENDING
    parameters: Dict[str, Any] = field(default_factory=dict)
    description: Optional[str] = None
    progress: JobProgress = field(default_factory=JobProgress)
    results: JobResults = field(default_factory=JobResults)
    timing: JobTiming = field(default_factory=JobTiming)
    metadata: JobMetadata = field(default_factory=JobMetadata)

    @property
    def is_terminal(self) -> bool:
        return JobStatus(self.status).is_terminal

    @property
    def retries_left(self) -> int:
        return max(0, self.metadata.max_retries - self.metadata.retry_count)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe representation used by stores and the CLI summary."""
        return {
            "id": self.id,
            "type": JobType(self.type).value,
            "name": self.name,
            "priority": JobPriority(self.priority).value,
            "status": JobStatus(self.status).value,
            "parameters": self.parameters,
            "description": self.description,
            "progress": {
                "current": self.progress.current,
                "total": self.progress.total,
                "percentage": self.progress.percentage,
            },
            "results": {
                "processed": self.results.processed,
                "successful": self.results.successful,
                "failed": self.results.failed,
                "errors": [{"item": e.item, "error": e.error} for e in self.results.errors],
                "warnings": list(self.results.warnings),
                "data": self.results.data,
            },
            "timing": {
                "created_at": format_timestamp(self.timing.created_at),
                "started_at": format_timestamp(self.timing.started_at),
                "completed_at": format_timestamp(self.timing.completed_at),
                "estimated_duration": self.timing.estimated_duration,
                "actual_duration": self.timing.actual_duration,
            },
            "metadata": {
                "retry_count": self.metadata.retry_count,
                "max_retries": self.metadata.max_retries,
                "tags": list(self.metadata.tags),
                "created_by": self.metadata.created_by,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BatchJob":
        """Rebuild a job from ``to_dict`` output."""
        progress = data.get("progress") or {}
        results = data.get("results") or {}
        timing = data.get("timing") or {}
        metadata = data.get("metadata") or {}

        return cls(
            id=data["id"],
            type=JobType(data["type"]),
            name=data["name"],
            priority=JobPriority(data.get("priority", JobPriority.MEDIUM.value)),
            status=JobStatus(data.get("status", JobStatus.PENDING.value)),
            parameters=dict(data.get("parameters") or {}),
            description=data.get("description"),
            progress=JobProgress(
                current=progress.get("current", 0),
                total=progress.get("total", 0),
                percentage=progress.get("percentage", 0.0),
            ),
            results=JobResults(
                processed=results.get("processed", 0),
                successful=results.get("successful", 0),
                failed=results.get("failed", 0),
                errors=[ItemError(**entry) for entry in results.get("errors", [])],
                warnings=list(results.get("warnings", [])),
                data=dict(results.get("data") or {}),
            ),
            timing=JobTiming(
                created_at=parse_iso_datetime(timing.get("created_at")) or utc_now(),
                started_at=parse_iso_datetime(timing.get("started_at")),
                completed_at=parse_iso_datetime(timing.get("completed_at")),
                estimated_duration=timing.get("estimated_duration"),
                actual_duration=timing.get("actual_duration"),
            ),
            metadata=JobMetadata(
                retry_count=metadata.get("retry_count", 0),
                max_retries=metadata.get("max_retries", 3),
                tags=list(metadata.get("tags", [])),
                created_by=metadata.get("created_by"),
            ),
        )


@dataclass
class JobOptions:
    """Caller overrides for ``create_job``."""

    priority: Optional[JobPriority] = None
    max_retries: Optional[int] = None
    description: Optional[str] = None
    estimated_duration: Optional[float] = None
    tags: List[str] = field(default_factory=list)
    created_by: Optional[str] = None


@dataclass(order=True)
class QueueItem:
    """Waiting-set entry. Sorts by priority (high first), then age, then insertion."""

    sort_key: tuple = field(init=False, repr=False)
    job_id: str = field(compare=False)
    priority_rank: int = field(compare=False)
    created_at: datetime = field(compare=False)
    sequence: int = field(compare=False)
    scheduled_time: datetime = field(default_factory=utc_now, compare=False)
    retry_count: int = field(default=0, compare=False)

    def __post_init__(self):
        self.sort_key = (-self.priority_rank, self.created_at, self.sequence)


@dataclass
class SchedulerStats:
    """Point-in-time scheduler counters."""

    queue_size: int = 0
    running_jobs: int = 0
    completed_jobs: int = 0
    failed_jobs: int = 0
    cancelled_jobs: int = 0
    success_rate: float = 0.0
    average_processing_time: float = 0.0
    jobs_by_type: Dict[str, int] = field(default_factory=dict)
    jobs_by_status: Dict[str, int] = field(default_factory=dict)
