"""Non-fatal configuration checks."""

import warnings
from typing import Any, Dict, List

from .duration import DurationParseError, format_duration, parse_duration


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Check configuration for settings that are valid but probably unintended.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    warning_messages = []

    scheduler = config_dict.get("scheduler") or {}
    if isinstance(scheduler, dict):
        max_jobs = scheduler.get("max_concurrent_jobs")
        if isinstance(max_jobs, int) and max_jobs > 16:
            warning_messages.append(
                f"High max_concurrent_jobs ({max_jobs}) runs that many handler threads at once"
            )

        timeout = _seconds_or_none(scheduler.get("job_timeout"))
        progress = _seconds_or_none(scheduler.get("progress_update_interval"))
        if timeout is not None and progress is not None and progress >= timeout:
            warning_messages.append(
                f"progress_update_interval ({format_duration(progress)}) is not shorter than "
                f"job_timeout ({format_duration(timeout)}); running jobs will never report progress"
            )

        if scheduler.get("retry_attempts") == 0:
            warning_messages.append("retry_attempts is 0; failed jobs will not be retried")

    batch = config_dict.get("batch") or {}
    if isinstance(batch, dict):
        chunk_size = batch.get("chunk_size")
        if isinstance(chunk_size, int) and chunk_size > 5000:
            warning_messages.append(
                f"Large chunk_size ({chunk_size}) delays cancellation checks between chunks"
            )

    scoring = config_dict.get("scoring") or {}
    if isinstance(scoring, dict):
        weights = scoring.get("weights")
        if isinstance(weights, dict) and weights and all(
            isinstance(w, (int, float)) and w == 0 for w in weights.values()
        ):
            warning_messages.append("All configured scoring weights are zero")

    return warning_messages


def emit_warnings(warning_messages: List[str]) -> None:
    """Emit warning messages using Python's warnings module."""
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)


def _seconds_or_none(value: Any):
    if value is None:
        return None
    try:
        return parse_duration(value)
    except DurationParseError:
        # The schema reports malformed durations
        return None
