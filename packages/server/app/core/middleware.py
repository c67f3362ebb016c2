"""
HTTP middleware: request context, security headers and CSRF protection.
"""

from __future__ import annotations

import re
import secrets
import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from app.core.auth import CSRF_COOKIE, SESSION_COOKIE
from app.core.errors import error_body

log = structlog.get_logger()

SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}
REQUEST_ID_HEADER = "X-Request-ID"
CSRF_HEADER = "X-CSRF-Token"

_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


# ---------------------------------------------------------------------------
# Request context
# ---------------------------------------------------------------------------

class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Tag every log line of a request with its request id.

    A well-formed incoming X-Request-ID is kept so ids line up with the
    caller's logs; anything else is replaced. The id is echoed back.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER, "")
        request_id = incoming if _REQUEST_ID.match(incoming) else uuid.uuid4().hex

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id, method=request.method, path=request.url.path
        )
        started = time.perf_counter()

        response = await call_next(request)

        log.info(
            "request.completed",
            status=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


# ---------------------------------------------------------------------------
# Security Headers
# ---------------------------------------------------------------------------

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "0",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
}

# JSON responses never load anything.
API_CSP = "default-src 'none'; frame-ancestors 'none'"

# Swagger UI and ReDoc pull their bundles from the CDN.
DOCS_CSP = (
    "default-src 'self'; "
    "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
    "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
    "img-src 'self' data: https://fastapi.tiangolo.com; "
    "connect-src 'self'; "
    "frame-ancestors 'none'"
)
DOCS_PATHS = ("/docs", "/redoc")

HSTS = "max-age=63072000; includeSubDomains"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach security headers to every response."""

    def __init__(self, app: ASGIApp, hsts: bool = True):
        super().__init__(app)
        self.hsts = hsts

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers[header] = value
        is_docs = request.url.path.startswith(DOCS_PATHS)
        response.headers["Content-Security-Policy"] = DOCS_CSP if is_docs else API_CSP
        # Off in debug, where the server runs over plain http.
        if self.hsts:
            response.headers["Strict-Transport-Security"] = HSTS
        return response


# ---------------------------------------------------------------------------
# CSRF Protection (Double-Submit Cookie)
# ---------------------------------------------------------------------------

def _tokens_match(cookie_token: str | None, header_token: str | None) -> bool:
    if not cookie_token or not header_token:
        return False
    return secrets.compare_digest(cookie_token.encode(), header_token.encode())


class CSRFMiddleware(BaseHTTPMiddleware):
    """
    Double-submit cookie CSRF protection for cookie sessions.

    Skipped for safe methods, for bearer-token requests and for requests
    without a session cookie.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method in SAFE_METHODS:
            return await call_next(request)

        # Bearer tokens are not ambient credentials
        if request.headers.get("Authorization"):
            return await call_next(request)

        if SESSION_COOKIE not in request.cookies:
            return await call_next(request)

        if not _tokens_match(request.cookies.get(CSRF_COOKIE), request.headers.get(CSRF_HEADER)):
            log.warning("csrf.rejected", path=request.url.path)
            return JSONResponse(
                status_code=403,
                content=error_body(
                    "CSRF_VALIDATION_FAILED", "Invalid or missing CSRF token.", 403
                ),
            )

        return await call_next(request)
