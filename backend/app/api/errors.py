"""Map exceptions to the ``{success, data, error}`` envelope."""
from __future__ import annotations

from typing import Dict, Type

import structlog
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.domain import (
    Conflict,
    DomainException,
    Expired,
    InvalidStateTransition,
    NotFound,
    PermissionDenied,
    ValidationFailure,
)
from app.schemas.common import failure

logger = structlog.get_logger(__name__)

DOMAIN_STATUS_CODES: Dict[Type[DomainException], int] = {
    ValidationFailure: status.HTTP_400_BAD_REQUEST,
    PermissionDenied: status.HTTP_403_FORBIDDEN,
    NotFound: status.HTTP_404_NOT_FOUND,
    Conflict: status.HTTP_409_CONFLICT,
    InvalidStateTransition: status.HTTP_422_UNPROCESSABLE_ENTITY,
    Expired: status.HTTP_422_UNPROCESSABLE_ENTITY,
}

HTTP_ERROR_CODES: Dict[int, str] = {
    status.HTTP_400_BAD_REQUEST: "BAD_REQUEST",
    status.HTTP_401_UNAUTHORIZED: "UNAUTHENTICATED",
    status.HTTP_403_FORBIDDEN: "PERMISSION_DENIED",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
    status.HTTP_409_CONFLICT: "CONFLICT",
}


def status_code_for(exc: DomainException) -> int:
    for exc_type in type(exc).__mro__:
        if exc_type in DOMAIN_STATUS_CODES:
            return DOMAIN_STATUS_CODES[exc_type]
    return status.HTTP_422_UNPROCESSABLE_ENTITY


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    status_code = status_code_for(exc)
    logger.info(
        "domain_error",
        path=request.url.path,
        code=exc.code,
        status_code=status_code,
        message=exc.message,
        **{f"ctx_{key}": value for key, value in exc.context.items()},
    )
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(failure(exc.code, exc.message, exc.context)),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
    message = exc.detail if isinstance(exc.detail, str) else code
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(failure(code, message)),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=jsonable_encoder(
            failure("VALIDATION_FAILED", "Request validation failed", {"errors": exc.errors()})
        ),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", path=request.url.path, method=request.method)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=failure("INTERNAL_ERROR", "An unexpected error occurred"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainException, domain_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)
