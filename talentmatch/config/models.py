"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import Dict, Union

from pydantic import BaseModel, Field, field_validator

from talentmatch.scoring.models import DEFAULT_WEIGHTS, MatchingAlgorithm

from .duration import DurationParseError, parse_duration

DurationValue = Union[str, int, float]


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


def _to_seconds(value: DurationValue) -> float:
    try:
        return parse_duration(value)
    except DurationParseError as e:
        raise ValueError(str(e)) from e


class SchedulerConfig(BaseModel):
    """Batch scheduler settings. Durations are stored as seconds."""

    max_concurrent_jobs: int = Field(5, ge=1, le=64, description="Concurrency ceiling")
    dispatch_interval: float = Field(1.0, description="Polling interval of the dispatch loop")
    job_timeout: float = Field(3600.0, description="Per-attempt timeout")
    progress_update_interval: float = Field(
        10.0, description="How often running jobs publish progress"
    )
    retry_attempts: int = Field(3, ge=0, le=20, description="Default max_retries for new jobs")
    retry_delay: float = Field(5.0, description="Base delay before the first automatic retry")
    backoff_multiplier: float = Field(
        2.0, ge=1.0, le=10.0, description="Exponential backoff multiplier between retries"
    )
    enable_persistence: bool = Field(True, description="Write job state through the job store")
    shutdown_timeout: float = Field(30.0, description="How long shutdown waits for running jobs")

    @field_validator(
        "dispatch_interval",
        "job_timeout",
        "progress_update_interval",
        "retry_delay",
        "shutdown_timeout",
        mode="before",
    )
    @classmethod
    def parse_durations(cls, v: DurationValue) -> float:
        """Accept "500ms", "10s", "PT1H" or plain seconds."""
        return _to_seconds(v)


class BatchConfig(BaseModel):
    """Work-splitting settings for the batch orchestrator."""

    chunk_size: int = Field(100, ge=1, le=10000, description="Items scored per chunk")
    recommendation_limit: int = Field(
        10, ge=1, le=500, description="Recommendations kept per candidate"
    )
    retention_days: int = Field(90, ge=1, description="Age after which match records expire")


class ScoringConfig(BaseModel):
    """Default scoring behaviour."""

    default_algorithm: MatchingAlgorithm = Field(
        MatchingAlgorithm.COMPREHENSIVE, description="Algorithm used when a request names none"
    )
    weights: Dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_WEIGHTS), description="Factor weights"
    )

    @field_validator("weights")
    @classmethod
    def validate_weights(cls, v: Dict[str, float]) -> Dict[str, float]:
        """Reject unknown factors and negative weights; fill in missing factors."""
        unknown = sorted(set(v) - set(DEFAULT_WEIGHTS))
        if unknown:
            raise ValueError(f"Unknown scoring factors: {', '.join(unknown)}")
        negative = sorted(name for name, weight in v.items() if weight < 0)
        if negative:
            raise ValueError(f"Weights cannot be negative: {', '.join(negative)}")
        return {**DEFAULT_WEIGHTS, **v}

    model_config = {"use_enum_values": True}


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object. Every section is optional."""

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
