"""
Productitask: Structured Logging System

JSON (or plain text) log lines with request correlation, a bounded in-memory
buffer of recent entries, and timing helpers for storage operations.

The logger is an ordinary object: the application factory builds one per
process, calls ``setup()`` at boot and ``shutdown()`` when the process stops.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any, TextIO
from datetime import datetime, timezone
from enum import Enum
from collections import deque
import contextvars
import json
import logging
import sys
import time
import traceback
import uuid


class LogLevel(str, Enum):
    """Log severity levels"""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def numeric(self) -> int:
        levels = {"debug": 10, "info": 20, "warning": 30, "error": 40, "critical": 50}
        return levels.get(self.value, 20)


class LogCategory(str, Enum):
    """Log categories for filtering"""
    REQUEST = "request"
    RESPONSE = "response"
    DATABASE = "database"
    AUTH = "auth"
    SECURITY = "security"
    BUSINESS = "business"
    SYSTEM = "system"


@dataclass
class LogEntry:
    """A structured log entry"""
    id: str
    timestamp: str
    level: LogLevel
    category: LogCategory
    message: str
    service: str
    request_id: Optional[str] = None
    correlation_id: Optional[str] = None
    user_id: Optional[str] = None
    duration_ms: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    error: Optional[Dict[str, Any]] = None
    stack_trace: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "id": self.id,
            "timestamp": self.timestamp,
            "level": self.level.value,
            "category": self.category.value,
            "message": self.message,
            "service": self.service,
            "request_id": self.request_id,
            "correlation_id": self.correlation_id,
            "user_id": self.user_id,
            "duration_ms": self.duration_ms,
            "metadata": self.metadata,
        }
        if self.error:
            out["error"] = self.error
        if self.stack_trace:
            out["stack_trace"] = self.stack_trace
        return out

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    def to_text(self) -> str:
        line = f"{self.timestamp} [{self.service}] {self.level.value.upper()} {self.category.value}: {self.message}"
        if self.request_id:
            line += f" [rid={self.request_id[:8]}]"
        if self.duration_ms is not None:
            line += f" ({self.duration_ms:.1f}ms)"
        if self.error:
            line += f" error={self.error['type']}: {self.error['message']}"
        return line


@dataclass
class RequestContext:
    """Context for request tracing"""
    request_id: str
    correlation_id: str
    user_id: Optional[str] = None

    @staticmethod
    def create(request_id: Optional[str] = None, correlation_id: Optional[str] = None) -> "RequestContext":
        rid = request_id or str(uuid.uuid4())
        return RequestContext(request_id=rid, correlation_id=correlation_id or rid)


# Async-safe context var (works with FastAPI/asyncio)
_context_var: contextvars.ContextVar[Optional[RequestContext]] = contextvars.ContextVar(
    "request_context", default=None
)


def get_current_context() -> Optional[RequestContext]:
    return _context_var.get()


def set_current_context(context: RequestContext) -> contextvars.Token:
    return _context_var.set(context)


def reset_current_context(token: contextvars.Token) -> None:
    _context_var.reset(token)


class LogBuffer:
    """Bounded buffer of recent entries"""

    def __init__(self, max_size: int = 5000):
        self.max_size = max_size
        self._buffer: deque = deque(maxlen=max_size)

    def append(self, entry: LogEntry) -> None:
        self._buffer.append(entry)

    def get_recent(self, count: int = 100) -> List[LogEntry]:
        items = list(self._buffer)
        return items[-count:]

    def clear(self) -> int:
        count = len(self._buffer)
        self._buffer.clear()
        return count

    def filter(
        self,
        level: Optional[LogLevel] = None,
        category: Optional[LogCategory] = None,
        request_id: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 100,
    ) -> List[LogEntry]:
        results = []
        for entry in reversed(self._buffer):
            if level and entry.level.numeric < level.numeric:
                continue
            if category and entry.category != category:
                continue
            if request_id and entry.request_id != request_id:
                continue
            if search and search.lower() not in entry.message.lower():
                continue
            results.append(entry)
            if len(results) >= limit:
                break
        return results


class StructuredLogger:
    """Structured logger for the Productitask API"""

    def __init__(
        self,
        service_name: str = "productitask-api",
        min_level: LogLevel = LogLevel.INFO,
        fmt: str = "json",
        buffer_size: int = 5000,
        stream: Optional[TextIO] = None,
    ):
        self.service_name = service_name
        self.min_level = min_level
        self.fmt = fmt
        self.buffer = LogBuffer(buffer_size)
        # When no stream is given, errors go to stderr and the rest to stdout
        self.stream = stream

    def setup(self) -> None:
        """Route stdlib logging (uvicorn, sqlalchemy, our module loggers) at the same level."""
        logging.basicConfig(
            level=getattr(logging, self.min_level.value.upper(), logging.INFO),
            format="%(asctime)s [%(name)s] %(levelname)s %(message)s",
        )
        logging.getLogger().setLevel(self.min_level.numeric)
        self.info("Logger initialised", metadata={"level": self.min_level.value, "format": self.fmt})

    def shutdown(self) -> None:
        self.info("Logger shutting down")
        self.flush()

    def flush(self) -> None:
        for out in (self.stream,) if self.stream else (sys.stdout, sys.stderr):
            out.flush()

    def _create_entry(
        self,
        level: LogLevel,
        category: LogCategory,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        error: Optional[BaseException] = None,
        duration_ms: Optional[float] = None,
        user_id: Optional[str] = None,
    ) -> LogEntry:
        context = get_current_context()

        entry = LogEntry(
            id=str(uuid.uuid4())[:12],
            timestamp=datetime.now(timezone.utc).isoformat(),
            level=level,
            category=category,
            message=message,
            service=self.service_name,
            request_id=context.request_id if context else None,
            correlation_id=context.correlation_id if context else None,
            user_id=user_id or (context.user_id if context else None),
            duration_ms=round(duration_ms, 3) if duration_ms is not None else None,
            metadata=metadata or {},
        )

        if error is not None:
            entry.error = {"type": type(error).__name__, "message": str(error)}
            if error.__traceback__ is not None:
                entry.stack_trace = "".join(
                    traceback.format_exception(type(error), error, error.__traceback__)
                )

        return entry

    def _log(self, level: LogLevel, category: LogCategory, message: str, **kwargs) -> Optional[LogEntry]:
        if level.numeric < self.min_level.numeric:
            return None

        entry = self._create_entry(level, category, message, **kwargs)
        self.buffer.append(entry)

        line = entry.to_json() if self.fmt == "json" else entry.to_text()
        out = self.stream or (sys.stderr if level.numeric >= LogLevel.ERROR.numeric else sys.stdout)
        print(line, file=out)
        return entry

    def debug(self, message: str, category: LogCategory = LogCategory.SYSTEM, **kwargs) -> Optional[LogEntry]:
        return self._log(LogLevel.DEBUG, category, message, **kwargs)

    def info(self, message: str, category: LogCategory = LogCategory.SYSTEM, **kwargs) -> Optional[LogEntry]:
        return self._log(LogLevel.INFO, category, message, **kwargs)

    def warning(self, message: str, category: LogCategory = LogCategory.SYSTEM, **kwargs) -> Optional[LogEntry]:
        return self._log(LogLevel.WARNING, category, message, **kwargs)

    def error(self, message: str, category: LogCategory = LogCategory.SYSTEM, **kwargs) -> Optional[LogEntry]:
        return self._log(LogLevel.ERROR, category, message, **kwargs)

    def critical(self, message: str, category: LogCategory = LogCategory.SYSTEM, **kwargs) -> Optional[LogEntry]:
        return self._log(LogLevel.CRITICAL, category, message, **kwargs)

    # Convenience methods
    def response(self, method: str, path: str, status_code: int, duration_ms: float) -> Optional[LogEntry]:
        level = LogLevel.INFO if status_code < 400 else LogLevel.WARNING if status_code < 500 else LogLevel.ERROR
        return self._log(
            level,
            LogCategory.RESPONSE,
            f"{method} {path} → {status_code}",
            duration_ms=duration_ms,
            metadata={"method": method, "path": path, "status_code": status_code},
        )

    def security_event(self, event_type: str, **kwargs) -> Optional[LogEntry]:
        return self.warning(f"Security event: {event_type}", category=LogCategory.SECURITY, **kwargs)

    def timed(self, operation: str, entity: str, metadata: Optional[Dict[str, Any]] = None) -> "TimedOperation":
        return TimedOperation(self, operation, entity, metadata)

    def get_logs(self, **filters) -> List[LogEntry]:
        return self.buffer.filter(**filters)


class TimedOperation:
    """Context manager for timing storage operations"""

    def __init__(
        self,
        logger: StructuredLogger,
        operation: str,
        entity: str,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        self.logger = logger
        self.operation = operation
        self.entity = entity
        self.metadata = {"operation": operation, "entity": entity, **(metadata or {})}
        self.start_time: Optional[float] = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration_ms = (time.perf_counter() - self.start_time) * 1000
        if exc_type:
            # Missing records and rejected input are routine; only storage faults are errors
            status = getattr(exc_val, "status_code", 500)
            log = self.logger.error if status >= 500 else self.logger.debug
            log(
                f"{self.entity} {self.operation} failed",
                category=LogCategory.DATABASE,
                duration_ms=duration_ms,
                error=exc_val,
                metadata=self.metadata,
            )
        else:
            self.logger.debug(
                f"{self.entity} {self.operation}",
                category=LogCategory.DATABASE,
                duration_ms=duration_ms,
                metadata=self.metadata,
            )
        return False


def build_logger(settings, stream: Optional[TextIO] = None) -> StructuredLogger:
    """Create the process logger from settings."""
    return StructuredLogger(
        service_name="productitask-api",
        min_level=LogLevel(settings.log_level),
        fmt=settings.log_format,
        stream=stream,
    )
