"""Root logger setup and the two output formats (JSON lines, key=value)."""

import json
import logging
import sys
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Literal, Optional, TextIO

from .context import get_log_context

LogFormat = Literal["json", "key-value"]

SERVICE_NAME = "talentmatch"

# Chatty third-party loggers kept at WARNING or above
QUIET_LOGGERS = ("apscheduler", "sqlalchemy.engine")

# Fields shown first in key-value lines, in this order
LEADING_FIELDS = ("event", "batch_job_id", "attempt")

# Attributes every LogRecord carries; anything else on a record is an extra
_BUILTIN_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName"}


def record_extras(record: logging.LogRecord, skip: Iterable[str] = ()) -> Dict[str, Any]:
    """Structured fields attached to ``record`` through ``extra`` or context."""
    skipped = set(skip)
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _BUILTIN_ATTRS and key not in skipped and not key.startswith("_")
    }


class ContextualFilter(logging.Filter):
    """Stamps service/environment on each record and fills in log context.

    Explicit ``extra`` fields win over context fields of the same name.
    """

    def __init__(self, service: str = SERVICE_NAME, environment: str = "local"):
        super().__init__()
        self.service = service
        self.environment = environment

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = self.service
        record.environment = self.environment
        for key, value in get_log_context().items():
            record.__dict__.setdefault(key, value)
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line.

    Fixed keys are ``timestamp`` (UTC, milliseconds), ``level``, ``logger``
    and ``message``; extras follow. Enums, datetimes and dataclasses (such as
    SchedulerStats) are converted to JSON types.
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: Dict[str, Any] = {
            "timestamp": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update({key: _to_json(value) for key, value in record_extras(record).items()})

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


class KeyValueFormatter(logging.Formatter):
    """Readable lines for terminals:

    2025-06-01 12:00:00 [INFO] talentmatch.batch.scheduler: Batch job completed event=batch.job.completed batch_job_id=5f0c... component=scheduler duration_seconds=1.2

    ``service`` and ``environment`` are left out; they are the same on every line.
    """

    def __init__(self, fmt: Optional[str] = None, datefmt: Optional[str] = None):
        super().__init__(
            fmt or "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt=datefmt or "%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = record_extras(record, skip=("service", "environment"))
        if not extras:
            return line

        ordered = [key for key in LEADING_FIELDS if key in extras]
        ordered += sorted(key for key in extras if key not in LEADING_FIELDS)
        pairs = " ".join(f"{key}={_to_text(extras[key])}" for key in ordered)
        return f"{line} {pairs}"


def _to_json(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    return value


def _to_text(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, datetime):
        return value.isoformat()
    text = str(value)
    if any(char in text for char in ' =,"'):
        return json.dumps(text)
    return text


def configure_logging(
    level: str = "INFO",
    format_type: LogFormat = "key-value",
    environment: str = "local",
    stream: Optional[TextIO] = None,
) -> None:
    """
    Replace the root logger's handlers with a single configured handler.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL (case-insensitive)
        format_type: 'json' or 'key-value'
        environment: Label stamped on every record (local, staging, production)
        stream: Output stream, stdout by default

    Raises:
        ValueError: If level or format_type is not recognised
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")

    formatters = {"json": JSONFormatter, "key-value": KeyValueFormatter}
    if format_type not in formatters:
        raise ValueError(f"Invalid log format: {format_type}. Must be 'json' or 'key-value'")

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(formatters[format_type]())
    handler.addFilter(ContextualFilter(service=SERVICE_NAME, environment=environment))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(numeric_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    logging.getLogger(__name__).info(
        f"Logging configured ({format_type}, {level.upper()})",
        extra={
            "event": "logging.configured",
            "component": "logging",
            "log_level": level.upper(),
            "log_format": format_type,
        },
    )
