"""Tests for logging configuration, formatters and context propagation."""

import io
import json
import logging
import sys
import threading

import pytest

from talentmatch.batch.models import JobStatus, SchedulerStats
from talentmatch.logging import ComponentLoggerAdapter, get_logger
from talentmatch.logging.config import (
    ContextualFilter,
    JSONFormatter,
    KeyValueFormatter,
    configure_logging,
)
from talentmatch.logging.context import (
    clear_log_context,
    get_log_context,
    log_context,
    pop_log_context,
    push_log_context,
)


@pytest.fixture(autouse=True)
def clean_context():
    """Clear logging context before and after each test."""
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def logger():
    test_logger = logging.getLogger("test_logger")
    test_logger.setLevel(logging.DEBUG)
    test_logger.handlers.clear()
    yield test_logger
    test_logger.handlers.clear()


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def make_record(logger, message="Test message", **extra):
    return logger.makeRecord("test", logging.INFO, "test.py", 1, message, (), None, extra=extra)


class TestJSONFormatter:
    def test_mandatory_fields(self, logger):
        log_obj = json.loads(JSONFormatter().format(make_record(logger)))

        assert log_obj["level"] == "INFO"
        assert log_obj["message"] == "Test message"
        assert log_obj["logger"] == "test"
        assert log_obj["timestamp"].endswith("Z")

    def test_extra_fields_are_json_safe(self, logger):
        record = make_record(
            logger, event="batch.job.completed", count=42, flag=True, status=JobStatus.COMPLETED
        )

        log_obj = json.loads(JSONFormatter().format(record))

        assert log_obj["event"] == "batch.job.completed"
        assert log_obj["count"] == 42
        assert log_obj["flag"] is True
        assert log_obj["status"] == "completed"

    def test_exception_info(self, logger):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logger.makeRecord(
                "test", logging.ERROR, "test.py", 1, "Failed", (), sys.exc_info()
            )

        log_obj = json.loads(JSONFormatter().format(record))
        assert "RuntimeError: boom" in log_obj["exc_info"]

    def test_dataclasses_serialized(self, logger):
        record = make_record(logger, stats=SchedulerStats(queue_size=3))

        log_obj = json.loads(JSONFormatter().format(record))

        assert log_obj["stats"]["queue_size"] == 3
        assert log_obj["stats"]["jobs_by_type"] == {}


class TestKeyValueFormatter:
    def test_leading_fields_then_sorted_extras(self, logger):
        formatter = KeyValueFormatter("%(levelname)s %(message)s")
        record = make_record(
            logger, event="batch.job.started", job_type="matching", note="two words", done=False
        )

        output = formatter.format(record)

        assert output == (
            'INFO Test message event=batch.job.started done=false '
            'job_type=matching note="two words"'
        )

    def test_skips_static_fields(self, logger):
        formatter = KeyValueFormatter("%(message)s")
        record = make_record(logger)
        ContextualFilter(service="svc", environment="test").filter(record)

        assert formatter.format(record) == "Test message"


class TestContextualFilter:
    def test_adds_static_and_context_fields(self, logger):
        record = make_record(logger, attempt=2)

        with log_context(batch_job_id="abc", attempt=1):
            ContextualFilter(service="svc", environment="test").filter(record)

        assert record.service == "svc"
        assert record.environment == "test"
        assert record.batch_job_id == "abc"
        # Explicit extras win over context
        assert record.attempt == 2


class TestConfigureLogging:
    def test_installs_single_handler(self, restore_root_logger):
        configure_logging(level="debug", format_type="json", environment="test")
        configure_logging(level="WARNING", format_type="key-value")

        root = restore_root_logger
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, KeyValueFormatter)
        assert logging.getLogger("apscheduler").level == logging.WARNING

    def test_writes_to_given_stream(self, restore_root_logger):
        stream = io.StringIO()
        configure_logging(level="INFO", format_type="json", environment="test", stream=stream)

        logging.getLogger("talentmatch.test").info("hello", extra={"event": "test.event"})

        last = json.loads(stream.getvalue().splitlines()[-1])
        assert last["message"] == "hello"
        assert last["event"] == "test.event"
        assert last["environment"] == "test"
        assert last["service"] == "talentmatch"

    @pytest.mark.parametrize("level,format_type", [("LOUD", "json"), ("INFO", "xml")])
    def test_rejects_invalid_settings(self, restore_root_logger, level, format_type):
        with pytest.raises(ValueError):
            configure_logging(level=level, format_type=format_type)


class TestLogContext:
    def test_push_and_pop(self):
        token = push_log_context(batch_job_id="abc")
        inner = push_log_context(attempt=1)
        assert get_log_context() == {"batch_job_id": "abc", "attempt": 1}

        pop_log_context(inner)
        assert get_log_context() == {"batch_job_id": "abc"}
        pop_log_context(token)
        assert get_log_context() == {}

    def test_context_manager_restores_on_error(self):
        with pytest.raises(KeyError):
            with log_context(batch_job_id="abc"):
                raise KeyError("x")

        assert get_log_context() == {}

    def test_get_returns_copy(self):
        push_log_context(batch_job_id="abc")
        get_log_context()["batch_job_id"] = "changed"

        assert get_log_context() == {"batch_job_id": "abc"}

    def test_threads_start_with_empty_context(self):
        seen = []
        push_log_context(batch_job_id="abc")

        thread = threading.Thread(target=lambda: seen.append(get_log_context()))
        thread.start()
        thread.join()

        assert seen == [{}]


class TestGetLogger:
    def test_component_adapter_merges_extra(self, caplog):
        logger = get_logger("talentmatch.test", component="scheduler")
        assert isinstance(logger, ComponentLoggerAdapter)

        with caplog.at_level(logging.INFO, logger="talentmatch.test"):
            logger.info("Hello", extra={"event": "test.event"})
            logger.info("Override", extra={"component": "custom"})

        assert caplog.records[0].component == "scheduler"
        assert caplog.records[0].event == "test.event"
        assert caplog.records[1].component == "custom"

    def test_plain_logger_without_component(self):
        assert isinstance(get_logger("talentmatch.test"), logging.Logger)
