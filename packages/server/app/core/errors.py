"""
Service error taxonomy and the JSON error envelope.

Every failure leaves the API as::

    {"error": {"code": "...", "message": "...", "status": 4xx}}
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from leadflow_shared.schemas.common import ErrorBody, ErrorResponse

log = structlog.get_logger()


class ServiceError(HTTPException):
    """Base class for expected, caller-visible failures."""

    status_code = 400
    code = "BAD_REQUEST"
    message = "Request failed"

    def __init__(self, message: str | None = None, *, code: str | None = None):
        self.code = code or self.code
        super().__init__(status_code=self.status_code, detail=message or self.message)


class ValidationFailed(ServiceError):
    status_code = 400
    code = "VALIDATION_FAILED"
    message = "Invalid request"


class PermissionDenied(ServiceError):
    status_code = 403
    code = "PERMISSION_DENIED"
    message = "Insufficient permissions"


class NotFound(ServiceError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Not found"


class Conflict(ServiceError):
    status_code = 409
    code = "CONFLICT"
    message = "Conflict"


class AuthenticationRequired(ServiceError):
    status_code = 401
    code = "AUTHENTICATION_REQUIRED"
    message = "Authentication required"


def error_body(code: str, message: str, status: int) -> dict:
    return ErrorResponse(error=ErrorBody(code=code, message=message, status=status)).model_dump()


_STATUS_CODES = {
    400: "BAD_REQUEST",
    401: "AUTHENTICATION_REQUIRED",
    403: "PERMISSION_DENIED",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
}


async def _service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, str(exc.detail), exc.status_code),
    )


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = _STATUS_CODES.get(exc.status_code, "HTTP_ERROR")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(code, str(exc.detail), exc.status_code),
        headers=getattr(exc, "headers", None),
    )


async def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    if location:
        message = f"{location}: {message}"
    return JSONResponse(
        status_code=422,
        content=error_body("VALIDATION_FAILED", message, 422),
    )


async def _store_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    log.error("store.error", path=request.url.path, error=type(exc).__name__)
    return JSONResponse(
        status_code=500,
        content=error_body("INTERNAL_ERROR", "Internal server error", 500),
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, _service_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(SQLAlchemyError, _store_error_handler)
