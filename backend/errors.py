"""Error taxonomy and storage-error translation.

Every failure that reaches a client is one of the AppError subclasses below;
the global handlers in main.py turn them into the JSON error envelope.

translate_db_error() maps raw driver/ORM exceptions onto this taxonomy. It
works from PostgreSQL SQLSTATE codes when the driver exposes them and falls
back to matching SQLite and generic message text.
"""

import asyncio
import re
from typing import Any, Optional

from sqlalchemy import exc as sa_exc


class AppError(Exception):
    """Base class for errors with a defined HTTP representation."""

    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_error(self) -> dict:
        error = {"code": self.code, "message": self.message}
        if self.details is not None:
            error["details"] = self.details
        return error


# ─── 4xx ──────────────────────────────────────────────────────

class BadRequestError(AppError):
    status_code = 400
    code = "BAD_REQUEST"
    default_message = "Bad request"


class ValidationError(BadRequestError):
    code = "VALIDATION_ERROR"
    default_message = "Invalid request data"


class ForeignKeyError(BadRequestError):
    code = "FOREIGN_KEY_VIOLATION"

    def __init__(self, relation: str):
        super().__init__(f"Referenced {relation} does not exist", details={"relation": relation})
        self.relation = relation


class UnauthorizedError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Authentication required"


class ForbiddenError(AppError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Insufficient permissions"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class RecordNotFoundError(NotFoundError):
    def __init__(self, entity: str, record_id: str):
        super().__init__(f"{entity} with id {record_id} not found")
        self.entity = entity
        self.record_id = record_id


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Resource already exists"


class UniqueConstraintError(ConflictError):
    code = "UNIQUE_VIOLATION"

    def __init__(self, field: str):
        super().__init__(f"{field} already exists", details={"field": field})
        self.field = field


class RateLimitError(AppError):
    status_code = 429
    code = "RATE_LIMITED"
    default_message = "Too many requests"

    def __init__(self, message: Optional[str] = None, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


# ─── 5xx ──────────────────────────────────────────────────────

class InternalServerError(AppError):
    pass


class DatabaseError(AppError):
    code = "DATABASE_ERROR"
    default_message = "Database error occurred"

    def __init__(self, message: Optional[str] = None, raw: Optional[str] = None):
        super().__init__(message)
        # Driver text is kept for logs only, never sent to clients
        self.raw = raw


class DatabaseQueryError(DatabaseError):
    default_message = "Database query error"


class ServiceUnavailableError(AppError):
    status_code = 503
    code = "SERVICE_UNAVAILABLE"
    default_message = "Service temporarily unavailable"


class DatabaseConnectionError(DatabaseError):
    status_code = 503
    code = "SERVICE_UNAVAILABLE"
    default_message = "Database connection error. Please try again later."


# ============================================================
# STORAGE ERROR TRANSLATION
# ============================================================

# https://www.postgresql.org/docs/current/errcodes-appendix.html
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
NOT_NULL_VIOLATION = "23502"
UNDEFINED_TABLE = "42P01"
UNDEFINED_COLUMN = "42703"
CONNECTION_SQLSTATES = {"57P01", "57P02", "57P03", "53300"}

CONNECTION_MESSAGES = (
    "connection refused",
    "could not connect",
    "connection is closed",
    "connection was closed",
    "server closed the connection",
    "unable to open database",
    "timeout expired",
)

_UNIQUE_FIELD_PATTERNS = (
    re.compile(r"Key \((?P<field>[\w, ]+)\)=", re.IGNORECASE),
    re.compile(r"UNIQUE constraint failed: \w+\.(?P<field>\w+)", re.IGNORECASE),
    re.compile(r'unique constraint "(?:ix|uq)_\w+?_(?P<field>\w+)"', re.IGNORECASE),
    re.compile(r'unique constraint "\w*?_(?P<field>[a-z]+)_key"', re.IGNORECASE),
)

_FOREIGN_KEY_PATTERNS = (
    re.compile(r'is not present in table "(?P<relation>\w+)"', re.IGNORECASE),
    re.compile(r'references "(?P<relation>\w+)"', re.IGNORECASE),
    re.compile(r'foreign key constraint "\w+?_(?P<relation>[a-z]+)_id_fkey"', re.IGNORECASE),
)

_NOT_NULL_PATTERNS = (
    re.compile(r'null value in column "(?P<column>\w+)"', re.IGNORECASE),
    re.compile(r"NOT NULL constraint failed: \w+\.(?P<column>\w+)", re.IGNORECASE),
)


def _driver_error(exc: BaseException) -> BaseException:
    """The DBAPI exception underneath a SQLAlchemy wrapper, if any."""
    return getattr(exc, "orig", None) or exc


def _sqlstate(err: BaseException) -> Optional[str]:
    for candidate in (err, getattr(err, "__cause__", None)):
        if candidate is None:
            continue
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if isinstance(code, str) and code:
            return code
    return None


def _texts(err: BaseException) -> list:
    """Message and detail text of a driver error."""
    texts = [str(err)]
    for candidate in (err, getattr(err, "__cause__", None)):
        detail = getattr(candidate, "detail", None)
        if isinstance(detail, str) and detail:
            texts.append(detail)
    return texts


def _search(patterns, texts, group: str) -> Optional[str]:
    for text in texts:
        for pattern in patterns:
            match = pattern.search(text)
            if match:
                return match.group(group)
    return None


def _unique_field(err: BaseException) -> str:
    texts = _texts(err)
    constraint = getattr(getattr(err, "__cause__", None), "constraint_name", None)
    if isinstance(constraint, str):
        texts.append(f'unique constraint "{constraint}"')
    field = _search(_UNIQUE_FIELD_PATTERNS, texts, "field")
    return field.replace(", ", "_") if field else "Record"


def _foreign_key_relation(err: BaseException) -> str:
    texts = _texts(err)
    constraint = getattr(getattr(err, "__cause__", None), "constraint_name", None)
    if isinstance(constraint, str):
        texts.append(f'foreign key constraint "{constraint}"')
    relation = _search(_FOREIGN_KEY_PATTERNS, texts, "relation")
    if relation and relation.endswith("s") and not relation.endswith("ss"):
        relation = relation[:-1]
    return relation or "related record"


def _not_null_column(err: BaseException) -> str:
    column = getattr(getattr(err, "__cause__", None), "column_name", None)
    if isinstance(column, str) and column:
        return column
    return _search(_NOT_NULL_PATTERNS, _texts(err), "column") or "Required field"


def _is_connection_message(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in CONNECTION_MESSAGES)


def translate_db_error(exc: BaseException) -> AppError:
    """Convert a raw storage exception into an AppError."""
    if isinstance(exc, AppError):
        return exc

    if isinstance(exc, (OSError, asyncio.TimeoutError, sa_exc.TimeoutError, sa_exc.DisconnectionError)):
        return DatabaseConnectionError(raw=str(exc))

    if isinstance(exc, sa_exc.NoResultFound):
        return NotFoundError("Record not found")

    err = _driver_error(exc)
    message = str(err)
    sqlstate = _sqlstate(err)

    if sqlstate:
        if sqlstate.startswith("08") or sqlstate in CONNECTION_SQLSTATES:
            return DatabaseConnectionError(raw=message)
        if sqlstate == UNIQUE_VIOLATION:
            return UniqueConstraintError(_unique_field(err))
        if sqlstate == FOREIGN_KEY_VIOLATION:
            return ForeignKeyError(_foreign_key_relation(err))
        if sqlstate == NOT_NULL_VIOLATION:
            return BadRequestError(f"{_not_null_column(err)} cannot be null")
        if sqlstate == UNDEFINED_TABLE:
            return DatabaseQueryError("Table does not exist", raw=message)
        if sqlstate == UNDEFINED_COLUMN:
            return DatabaseQueryError("Column does not exist", raw=message)
        return DatabaseError(raw=message)

    lowered = message.lower()
    if "unique constraint failed" in lowered or "duplicate key" in lowered:
        return UniqueConstraintError(_unique_field(err))
    if "foreign key constraint" in lowered:
        return ForeignKeyError(_foreign_key_relation(err))
    if "not null constraint failed" in lowered or "violates not-null" in lowered:
        return BadRequestError(f"{_not_null_column(err)} cannot be null")
    if "no such table" in lowered:
        return DatabaseQueryError("Table does not exist", raw=message)
    if "no such column" in lowered:
        return DatabaseQueryError("Column does not exist", raw=message)
    if _is_connection_message(message):
        return DatabaseConnectionError(raw=message)
    if isinstance(err, OSError) or isinstance(exc, sa_exc.InterfaceError):
        return DatabaseConnectionError(raw=message)
    if "no rows found" in lowered:
        return NotFoundError("Record not found")

    return DatabaseError(raw=message)
