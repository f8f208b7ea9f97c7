"""Batch job scheduling and the domain batch entry points."""

from .collaborators import (
    EmbeddingService,
    InMemoryEmbeddingIndex,
    InMemoryMatchStore,
    InMemoryProfileProvider,
    MatchRecord,
    MatchStore,
    ProfileProvider,
)
from .exceptions import BatchError, HandlerError, JobTimeoutError, JobValidationError
from .executors import FunctionExecutor, JobDefinition, JobExecutor, ProgressReporter
from .models import (
    BatchJob,
    JobOptions,
    JobPriority,
    JobProgress,
    JobResults,
    JobStatus,
    JobType,
    SchedulerStats,
)
from .orchestrator import BatchOrchestrator
from .scheduler import BatchScheduler
from .store import InMemoryJobStore, JobStore

__all__ = [
    "BatchScheduler",
    "BatchOrchestrator",
    "BatchJob",
    "JobType",
    "JobPriority",
    "JobStatus",
    "JobProgress",
    "JobResults",
    "JobOptions",
    "SchedulerStats",
    "JobDefinition",
    "JobExecutor",
    "FunctionExecutor",
    "ProgressReporter",
    "JobStore",
    "InMemoryJobStore",
    "ProfileProvider",
    "InMemoryProfileProvider",
    "MatchStore",
    "InMemoryMatchStore",
    "MatchRecord",
    "EmbeddingService",
    "InMemoryEmbeddingIndex",
    "BatchError",
    "JobValidationError",
    "HandlerError",
    "JobTimeoutError",
]
