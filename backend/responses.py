# responses.py - Uniform JSON envelope
#   success: {"success": true, "data": ...}
#   list:    {"success": true, "data": [...], "meta": {"total": n}}
#   error:   {"success": false, "error": {"code", "message", "details"?}, "meta": {"requestId"}}

from typing import Any, Dict, Generic, List, Optional, TypeVar

from fastapi.responses import JSONResponse
from pydantic import BaseModel

from validation import ApiModel

T = TypeVar("T")


class ListMeta(ApiModel):
    total: int


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: T


class ListEnvelope(BaseModel, Generic[T]):
    success: bool = True
    data: List[T]
    meta: ListMeta


class MessageOut(ApiModel):
    message: str


def ok(data: Any) -> Dict[str, Any]:
    return {"success": True, "data": data}


def ok_list(items: List[Any]) -> Dict[str, Any]:
    return {"success": True, "data": items, "meta": {"total": len(items)}}


def error_body(error: Dict[str, Any], request_id: Optional[str] = None) -> Dict[str, Any]:
    return {"success": False, "error": error, "meta": {"requestId": request_id}}


def error_response(
    status_code: int,
    error: Dict[str, Any],
    request_id: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_body(error, request_id), headers=headers)
