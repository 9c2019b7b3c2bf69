# validation.py - Shared request/response schema bases and validation error formatting
#
# Wire names are camelCase; models also accept snake_case on input.
# Partial updates (PATCH) reject an explicit null for any field that is not
# listed in NULLABLE, so a client cannot blank out a required column.

import re
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, FrozenSet, List, Optional

from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

HEX_COLOR = re.compile(r"^#([0-9A-Fa-f]{3}|[0-9A-Fa-f]{6})$")


class ApiModel(BaseModel):
    """Base for every schema that crosses the HTTP boundary."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        use_enum_values=True,
    )


class PatchModel(ApiModel):
    NULLABLE: ClassVar[FrozenSet[str]] = frozenset()

    @field_validator("*")
    @classmethod
    def reject_null(cls, v, info):
        if v is None and info.field_name not in cls.NULLABLE:
            raise ValueError("may not be null")
        return v

    def changes(self) -> Dict[str, Any]:
        """Only the fields the client actually sent, keyed by storage name."""
        return self.model_dump(exclude_unset=True)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes are taken to be UTC; aware ones are converted to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def validate_hex_color(value):
    if value is not None and not HEX_COLOR.match(value):
        raise ValueError("color must be a hex value like #RGB or #RRGGBB")
    return value


def _field_name(loc) -> str:
    # loc starts with the request part ("body", "query", "path", "header")
    parts = [str(p) for p in loc[1:]] if len(loc) > 1 else [str(p) for p in loc]
    return ".".join(parts) or "request"


def format_validation_errors(exc: RequestValidationError) -> List[Dict[str, str]]:
    """One entry per violated field: {field, location, message, type}."""
    details = []
    for err in exc.errors():
        loc = tuple(err.get("loc", ()))
        details.append({
            "field": _field_name(loc),
            "location": str(loc[0]) if loc else "request",
            "message": str(err.get("msg", "")),
            "type": str(err.get("type", "unknown")),
        })
    return details
