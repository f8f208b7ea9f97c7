"""Configuration management for talentmatch."""

from .duration import DurationParseError, format_duration, parse_duration
from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import load_config, parse_config
from .models import (
    AppConfig,
    BatchConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    SchedulerConfig,
    ScoringConfig,
)

__all__ = [
    "load_config",
    "parse_config",
    "load_environment_config",
    "parse_duration",
    "format_duration",
    "AppConfig",
    "SchedulerConfig",
    "BatchConfig",
    "ScoringConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    "LogLevel",
    "LogFormat",
    "ConfigurationError",
    "DurationParseError",
]
