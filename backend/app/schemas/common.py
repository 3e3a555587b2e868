from __future__ import annotations

from typing import Any, Dict, Generic, Optional, Sequence, TypeVar

from pydantic import BaseModel

T = TypeVar('T')


class Pagination(BaseModel, Generic[T]):
    items: Sequence[T]
    page: int = 1
    page_size: int = 25
    total: int


class ErrorBody(BaseModel):
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None


class ApiResponse(BaseModel, Generic[T]):
    """Envelope shared by every JSON endpoint."""

    success: bool = True
    data: Optional[T] = None
    error: Optional[ErrorBody] = None


def ok(data: Any) -> Dict[str, Any]:
    return {"success": True, "data": data, "error": None}


def failure(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "success": False,
        "data": None,
        "error": {"code": code, "message": message, "details": details or None},
    }
