"""
Security and error-rendering layer for the Folio API

Implements:
- Rate limiting (IP-based using slowapi)
- Security headers middleware with request IDs for audit logging
- Request size validation
- Uniform ``{"error": message}`` bodies for every non-2xx response

Limits and the production flag come from ``folio.config.Settings``.
"""

import ipaddress
import logging
import os
import time
import uuid
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from folio.config import Settings
from folio.errors import FolioError

logger = logging.getLogger(__name__)

# Number of trusted proxies in front of the application
TRUSTED_PROXY_COUNT = int(os.getenv("TRUSTED_PROXY_COUNT", "1"))


# =============================================================================
# Client IP / Rate Limiter
# =============================================================================

def _is_valid_ip(ip_str: str) -> bool:
    """Validate that a string is a valid IP address (IPv4 or IPv6)."""
    if not ip_str or len(ip_str) > 45:  # Max length for IPv6
        return False
    try:
        ipaddress.ip_address(ip_str)
        return True
    except ValueError:
        return False


def get_client_ip(request: Request) -> str:
    """
    Extract the client IP, trusting only the rightmost proxy hops of
    X-Forwarded-For.

    Example: "spoofed, real-client, proxy1" with TRUSTED_PROXY_COUNT=1
    Result: "real-client"
    """
    direct_ip = request.client.host if request.client else None

    if forwarded_for := request.headers.get("X-Forwarded-For"):
        if ips := [ip.strip() for ip in forwarded_for.split(",") if ip.strip()]:
            if len(ips) > TRUSTED_PROXY_COUNT:
                client_ip = ips[-(TRUSTED_PROXY_COUNT + 1)]
            else:
                client_ip = ips[0]

            if _is_valid_ip(client_ip):
                return client_ip
            logger.warning("Invalid IP in X-Forwarded-For header: %r", client_ip[:50])

    if real_ip := request.headers.get("X-Real-IP"):
        real_ip = real_ip.strip()
        if _is_valid_ip(real_ip):
            return real_ip
        logger.warning("Invalid X-Real-IP header: %r", real_ip[:50])

    return direct_ip if direct_ip and _is_valid_ip(direct_ip) else "unknown"


def build_limiter(settings: Settings) -> Limiter:
    """Create a limiter applying ``RATE_LIMIT_PER_MINUTE`` to every route."""
    return Limiter(
        key_func=get_client_ip,
        default_limits=[f"{settings.rate_limit_per_minute}/minute"],
        storage_uri="memory://",  # In-memory storage (use Redis for multi-instance)
        strategy="fixed-window",
    )


# =============================================================================
# Security Headers Middleware
# =============================================================================

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Adds security headers and an X-Request-ID to every response, and logs
    the request duration.
    """

    def __init__(self, app, production: bool = False):
        super().__init__(app)
        self.production = production

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        request.state.start_time = time.time()

        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = (
            "accelerometer=(), camera=(), geolocation=(), gyroscope=(), "
            "magnetometer=(), microphone=(), payment=(), usb=()"
        )

        # HSTS header - only in production with HTTPS
        if self.production:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains; preload"
            )

        response.headers["X-Request-ID"] = request_id

        if not response.headers.get("Cache-Control"):
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, private"

        duration = time.time() - request.state.start_time
        logger.info(
            "Request completed: %s %s status=%d duration=%.3fs request_id=%s client_ip=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration,
            request_id,
            get_client_ip(request),
        )
        return response


# =============================================================================
# Request Size Limit Middleware
# =============================================================================

class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """
    Rejects requests whose Content-Length exceeds MAX_REQUEST_SIZE_MB.
    """

    def __init__(self, app, max_size_mb: int = 30):
        super().__init__(app)
        self.max_size_mb = max_size_mb
        self.max_size_bytes = max_size_mb * 1024 * 1024

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if content_length := request.headers.get("content-length"):
            try:
                size = int(content_length)
            except ValueError:
                return JSONResponse(
                    status_code=400,
                    content={"error": "Invalid Content-Length header"},
                )
            if size > self.max_size_bytes:
                return JSONResponse(
                    status_code=413,
                    content={
                        "error": f"Request body too large. Maximum size is {self.max_size_mb}MB."
                    },
                )

        return await call_next(request)


# =============================================================================
# Error Handlers
# =============================================================================

def _error_response(request: Request, status_code: int, message: str) -> JSONResponse:
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))
    return JSONResponse(
        status_code=status_code,
        content={"error": message},
        headers={"X-Request-ID": request_id},
    )


async def folio_error_handler(request: Request, exc: FolioError) -> JSONResponse:
    """Render domain errors with the status each error class carries."""
    if exc.status_code >= 500:
        logger.error(
            "%s on %s %s: %s",
            type(exc).__name__,
            request.method,
            request.url.path,
            exc.message,
        )
    else:
        logger.info(
            "%s on %s %s: %s",
            type(exc).__name__,
            request.method,
            request.url.path,
            exc.message,
        )
    return _error_response(request, exc.status_code, exc.message)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _error_response(request, exc.status_code, detail)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Request validation failures are 400s, described by the first problem found."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "Invalid request")
        if location:
            message = f"{location}: {message}"
    else:
        message = "Invalid request"
    return _error_response(request, 400, message)


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(
        "Rate limit exceeded: client_ip=%s path=%s",
        get_client_ip(request),
        request.url.path,
    )
    response = _error_response(
        request, 429, "Rate limit exceeded. Please slow down your requests."
    )
    response.headers["Retry-After"] = "60"
    return response


def create_unhandled_exception_handler(production: bool) -> Callable:
    """
    In production unexpected errors return a generic message; in
    development the exception text is returned for debugging.
    """

    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        request_id = getattr(request.state, "request_id", "unknown")
        logger.error(
            "Unhandled exception: %s: %s request_id=%s path=%s method=%s",
            type(exc).__name__,
            exc,
            request_id,
            request.url.path,
            request.method,
            exc_info=True,
        )
        if production:
            message = "An internal server error occurred. Please try again later."
        else:
            message = f"{type(exc).__name__}: {exc}"
        return _error_response(request, 500, message)

    return unhandled_exception_handler


# =============================================================================
# Security Setup Function
# =============================================================================

def setup_security(app: FastAPI, settings: Settings) -> None:
    """
    Configure rate limiting, security headers, request size limits and
    error rendering for a FastAPI application.
    """
    app.state.limiter = build_limiter(settings)

    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(SecurityHeadersMiddleware, production=settings.is_production)
    app.add_middleware(
        RequestSizeLimitMiddleware, max_size_mb=settings.max_request_size_mb
    )

    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(FolioError, folio_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(
        Exception, create_unhandled_exception_handler(settings.is_production)
    )

    logger.info(
        "Security middleware configured: rate_limit=%d/min, "
        "max_request_size=%dMB, environment=%s",
        settings.rate_limit_per_minute,
        settings.max_request_size_mb,
        settings.environment,
    )
