# tests/test_logging_system.py - Structured logger
import io
import json

import pytest

from errors import RecordNotFoundError
from logging_system import (
    LogCategory, LogLevel, RequestContext, StructuredLogger, get_current_context,
    reset_current_context, set_current_context,
)


def make_logger(level: LogLevel = LogLevel.DEBUG, fmt: str = "json"):
    stream = io.StringIO()
    return StructuredLogger(min_level=level, fmt=fmt, stream=stream), stream


def lines(stream: io.StringIO):
    return [json.loads(line) for line in stream.getvalue().splitlines()]


def test_json_lines():
    logger, stream = make_logger()
    logger.info("Task created", category=LogCategory.BUSINESS, metadata={"task_id": "t1"}, user_id="u1")
    [entry] = lines(stream)
    assert entry["level"] == "info"
    assert entry["category"] == "business"
    assert entry["message"] == "Task created"
    assert entry["service"] == "productitask-api"
    assert entry["user_id"] == "u1"
    assert entry["metadata"] == {"task_id": "t1"}


def test_level_filtering():
    logger, stream = make_logger(LogLevel.WARNING)
    assert logger.debug("noise") is None
    assert logger.info("noise") is None
    logger.warning("careful")
    logger.critical("down")
    assert [e["level"] for e in lines(stream)] == ["warning", "critical"]
    assert len(logger.buffer.get_recent()) == 2


def test_request_context_is_attached():
    logger, stream = make_logger()
    context = RequestContext.create("req-1", "corr-1")
    context.user_id = "u1"
    token = set_current_context(context)
    try:
        logger.info("inside")
    finally:
        reset_current_context(token)
    logger.info("outside")

    inside, outside = lines(stream)
    assert (inside["request_id"], inside["correlation_id"], inside["user_id"]) == ("req-1", "corr-1", "u1")
    assert outside["request_id"] is None
    assert get_current_context() is None


def test_correlation_defaults_to_request_id():
    context = RequestContext.create("req-2")
    assert context.correlation_id == "req-2"
    assert RequestContext.create().request_id


def test_error_details_and_stack():
    logger, stream = make_logger()
    try:
        raise ValueError("bad value")
    except ValueError as exc:
        logger.error("Failed", error=exc)
    [entry] = lines(stream)
    assert entry["error"] == {"type": "ValueError", "message": "bad value"}
    assert "Traceback" in entry["stack_trace"]


def test_buffer_filter():
    logger, _ = make_logger()
    logger.info("login ok", category=LogCategory.AUTH)
    logger.warning("login failed", category=LogCategory.AUTH)
    logger.info("task created", category=LogCategory.BUSINESS)

    assert [e.message for e in logger.get_logs(category=LogCategory.AUTH)] == ["login failed", "login ok"]
    assert [e.message for e in logger.get_logs(level=LogLevel.WARNING)] == ["login failed"]
    assert [e.message for e in logger.get_logs(search="TASK")] == ["task created"]
    assert len(logger.get_logs(limit=1)) == 1
    assert logger.buffer.clear() == 3


def test_response_level_follows_status():
    logger, stream = make_logger()
    logger.response("GET", "/api/tasks", 200, 1.5)
    logger.response("GET", "/api/tasks/x", 404, 1.0)
    logger.response("GET", "/api/tasks", 503, 2.0)
    entries = lines(stream)
    assert [e["level"] for e in entries] == ["info", "warning", "error"]
    assert entries[0]["metadata"]["status_code"] == 200
    assert entries[0]["duration_ms"] == 1.5


def test_security_event():
    logger, stream = make_logger()
    logger.security_event("ownership_mismatch", metadata={"entity": "task"})
    [entry] = lines(stream)
    assert entry["category"] == "security"
    assert entry["level"] == "warning"
    assert entry["message"] == "Security event: ownership_mismatch"


def test_timed_operation_success_and_failure():
    logger, stream = make_logger()
    with logger.timed("get", "task", {"id": "t1"}):
        pass
    with pytest.raises(RecordNotFoundError):
        with logger.timed("get", "task"):
            raise RecordNotFoundError("Task", "t2")
    with pytest.raises(RuntimeError):
        with logger.timed("insert", "task"):
            raise RuntimeError("disk full")

    ok, missing, failed = lines(stream)
    assert ok["message"] == "task get"
    assert ok["metadata"] == {"operation": "get", "entity": "task", "id": "t1"}
    assert ok["duration_ms"] is not None
    assert missing["level"] == "debug"
    assert missing["error"]["type"] == "RecordNotFoundError"
    assert failed["level"] == "error"
    assert failed["message"] == "task insert failed"


def test_text_format():
    logger, stream = make_logger(fmt="text")
    token = set_current_context(RequestContext.create("abcdef123456"))
    try:
        logger.warning("Slow query", category=LogCategory.DATABASE, duration_ms=12.34)
    finally:
        reset_current_context(token)
    line = stream.getvalue().strip()
    assert "WARNING database: Slow query" in line
    assert "[rid=abcdef12]" in line
    assert "(12.3ms)" in line
