"""
trustoracle.security — Request logging, request IDs, CORS, rate limiting and
error handlers shared by the API.
"""

import logging
import time
import uuid
from contextvars import ContextVar
from typing import Optional

from fastapi import Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

# ─── Context var for request ID ────────────────────────────────────

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


# ─── Structured JSON logging ──────────────────────────────────────

class RequestIdFilter(logging.Filter):
    def filter(self, record):
        record.request_id = request_id_var.get("")
        return True


def setup_structured_logging(level: str = "INFO") -> logging.Logger:
    """Configure JSON structured logging with request IDs."""
    from pythonjsonlogger.json import JsonFormatter

    logger = logging.getLogger("trustoracle")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s",
            rename_fields={"asctime": "timestamp", "levelname": "level"},
        )
        handler.setFormatter(formatter)
        handler.addFilter(RequestIdFilter())
        logger.addHandler(handler)

    return logger


logger = setup_structured_logging()


# ─── Request ID + Logging Middleware ──────────────────────────────

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Inject request ID, log requests with their payment tag, add security headers."""

    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        request_id_var.set(rid)

        t0 = time.time()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("Unhandled error", extra={"path": request.url.path})
            raise

        elapsed_ms = round((time.time() - t0) * 1000, 1)
        logger.info(
            "request",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": elapsed_ms,
                "payment_status": getattr(request.state, "payment_status", None),
                "client": request.client.host if request.client else "",
            },
        )

        response.headers["X-Request-ID"] = rid
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        return response


# ─── CORS configuration ──────────────────────────────────────────

def configure_cors(app, allowed_origins: Optional[list[str]] = None):
    """Add CORS middleware; no configured origins means allow all."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins or ["*"],
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-PAYMENT-RESPONSE"],
    )


# ─── Rate Limiter (slowapi) ───────────────────────────────────────

limiter = Limiter(key_func=get_remote_address)
_rate_limit = {"value": "120/minute"}


def rate_limit_value() -> str:
    """Per-route limit, read on every request so it follows the app settings."""
    return _rate_limit["value"]


def configure_limiter(rate_limit: str, enabled: bool = True) -> Limiter:
    """Point the shared limiter at this app's settings and clear its counters."""
    _rate_limit["value"] = rate_limit
    limiter.enabled = enabled
    limiter.reset()
    return limiter


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    """Custom 429 handler."""
    return JSONResponse(
        status_code=429,
        content={"error": "Rate limit exceeded", "details": "Try again later."},
        headers={"Retry-After": "60"},
    )


# ─── Global exception handler (never leak internals) ─────────────

async def generic_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception on %s: %s", request.url.path, type(exc).__name__)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# ─── Apply all security to a FastAPI app ──────────────────────────

def apply_security(app, settings):
    """One-call setup: rate limiting, CORS, logging middleware, error handlers.

    Call after the payment middleware is installed so request logging ends up
    outermost and sees the final payment tag.
    """
    app.state.limiter = configure_limiter(settings.rate_limit, settings.rate_limit_enabled)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
    configure_cors(app, settings.origins)
    app.add_middleware(RequestLoggingMiddleware)
