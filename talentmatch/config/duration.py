"""Duration parsing utilities for configuration."""

import re
from typing import Union


class DurationParseError(ValueError):
    """Raised when a duration value cannot be parsed."""


_UNIT_SECONDS = {
    "ms": 0.001,
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
}

_HUMAN_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*(ms|s|m|h|d)")
_ISO_PATTERN = re.compile(r"^P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+(?:\.\d+)?)S)?)?$")


def parse_duration(value: Union[str, int, float]) -> float:
    """
    Parse a duration to seconds.

    Accepts:
    - Numbers, interpreted as seconds: 30, 0.5
    - Human-readable strings: "500ms", "15s", "10m", "1h30m", "2d"
    - ISO-8601 durations: "PT15M", "PT1H", "PT0.5S", "P1D"

    Args:
        value: Duration to parse

    Returns:
        Duration in seconds

    Raises:
        DurationParseError: If the value is invalid or not positive

    Examples:
        >>> parse_duration("15m")
        900.0
        >>> parse_duration("PT1H")
        3600.0
        >>> parse_duration("250ms")
        0.25
    """
    if isinstance(value, bool):
        raise DurationParseError(f"Invalid duration: {value!r}")

    if isinstance(value, (int, float)):
        seconds = float(value)
    elif not isinstance(value, str):
        raise DurationParseError(f"Invalid duration: {value!r}")
    else:
        text = value.strip()
        if not text:
            raise DurationParseError("Duration string cannot be empty")
        if text.upper().startswith("P"):
            seconds = _parse_iso8601_duration(text)
        else:
            seconds = _parse_human_readable_duration(text)

    if seconds <= 0:
        raise DurationParseError(f"Duration must be positive: {value!r}")

    return seconds


def _parse_iso8601_duration(text: str) -> float:
    match = _ISO_PATTERN.match(text.upper())
    if not match:
        raise DurationParseError(
            f"Invalid ISO-8601 duration format: '{text}'. "
            "Expected format like 'P1D', 'PT1H30M', 'PT15M', or 'PT30S'"
        )

    days, hours, minutes, seconds = match.groups()

    total = 0.0
    if days:
        total += int(days) * 86400
    if hours:
        total += int(hours) * 3600
    if minutes:
        total += int(minutes) * 60
    if seconds:
        total += float(seconds)
    return total


def _parse_human_readable_duration(text: str) -> float:
    lowered = re.sub(r"\s+", "", text.lower())

    # A bare number is seconds
    if re.fullmatch(r"\d+(?:\.\d+)?", lowered):
        return float(lowered)

    matches = _HUMAN_PATTERN.findall(lowered)
    if not matches:
        raise DurationParseError(
            f"Invalid duration format: '{text}'. "
            "Expected format like '500ms', '15s', '10m', '1h' or combinations like '1h30m'"
        )

    if "".join(f"{num}{unit}" for num, unit in matches) != lowered:
        raise DurationParseError(
            f"Invalid characters in duration: '{text}'. "
            "Use only digits and units: ms, s, m, h, d"
        )

    return sum(float(num) * _UNIT_SECONDS[unit] for num, unit in matches)


def format_duration(seconds: float) -> str:
    """Render seconds as a short human-readable string ("1.5s", "2m", "1h")."""
    if seconds < 1:
        return f"{round(seconds * 1000)}ms"
    if seconds < 60:
        return f"{seconds:g}s"
    if seconds < 3600:
        return f"{seconds / 60:g}m"
    return f"{seconds / 3600:g}h"
