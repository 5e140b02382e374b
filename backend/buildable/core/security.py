"""HTTP hardening: rate limit keys, security headers, body limits and audit logging."""

import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from .config import get_settings

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def get_user_or_ip(request: Request) -> str:
    """
    Rate limit key for a request.

    The auth dependency stores the caller's id on ``request.state``, so a
    signed-in user shares one budget across IP addresses. Anonymous callers
    are keyed by address.
    """
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"user:{user_id}"
    return get_remote_address(request)


def generation_rate_limit() -> str:
    return get_settings().generation_rate_limit


# Fixed one-minute windows over slowapi's in-memory storage
limiter = Limiter(key_func=get_user_or_ip, strategy="fixed-window")


def client_ip(request: Request) -> str:
    """Originating client address, looking through reverse proxy headers."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return request.client.host if request.client else "unknown"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds standard security headers to all responses."""

    HEADERS = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "strict-origin-when-cross-origin",
        "Content-Security-Policy": "default-src 'self'",
    }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        for name, value in self.HEADERS.items():
            response.headers.setdefault(name, value)
        return response


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Rejects requests whose declared Content-Length exceeds the configured cap."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        limit = get_settings().max_request_body_bytes
        declared = request.headers.get("content-length")

        if declared and declared.isdigit() and int(declared) > limit:
            logger.warning(
                f"Rejected {request.method} {request.url.path} from {client_ip(request)}: "
                f"body of {declared} bytes exceeds {limit}"
            )
            return JSONResponse(
                status_code=413,
                content={"error": "Request body too large", "limit": limit},
            )

        return await call_next(request)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Audit log line per request, tagged with a request id.

    Logs method, path, status code, duration, client IP and user ID (if
    authenticated). Does NOT log request/response bodies, which carry user
    prompts and generated code.
    """

    QUIET_PATHS = ("/health", "/", "/favicon.ico")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:16]
        request.state.request_id = request_id
        started = time.perf_counter()

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id

        path = request.url.path
        if path in self.QUIET_PATHS:
            return response

        entry = {
            "request_id": request_id,
            "method": request.method,
            "path": path,
            "status_code": response.status_code,
            "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            "client_ip": client_ip(request),
        }
        user_id = getattr(request.state, "user_id", None)
        if user_id:
            entry["user_id"] = user_id

        if response.status_code >= 500:
            logger.error(f"Request: {entry}")
        elif response.status_code >= 400:
            logger.warning(f"Request: {entry}")
        else:
            logger.info(f"Request: {entry}")

        return response
