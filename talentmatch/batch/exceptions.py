"""Exceptions raised by the batch scheduler and its executors."""

from typing import Optional


class BatchError(Exception):
    """Base exception for batch scheduling errors."""

    pass


class JobValidationError(BatchError, ValueError):
    """A job request was rejected before it was queued.

    Examples:
    - No definition registered for the (type, name) pair
    - Unknown job type or priority string
    - Negative max_retries
    """

    pass


class HandlerError(BatchError):
    """An executor raised while running a job attempt.

    The original exception is kept as ``cause`` and chained as __cause__.
    """

    def __init__(self, job_id: str, cause: BaseException, attempt: Optional[int] = None) -> None:
        super().__init__(f"{type(cause).__name__}: {cause}")
        self.job_id = job_id
        self.cause = cause
        self.attempt = attempt
        self.__cause__ = cause


class JobTimeoutError(BatchError, TimeoutError):
    """A job attempt did not settle within the configured job timeout."""

    def __init__(self, job_id: str, timeout_seconds: float) -> None:
        super().__init__(f"Job exceeded timeout of {timeout_seconds:g}s")
        self.job_id = job_id
        self.timeout_seconds = timeout_seconds
