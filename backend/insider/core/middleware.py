"""
FastAPI middleware for request context and logging
"""
import re
import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from insider.core.logging_config import LoggingConfig

logger = LoggingConfig.get_logger(__name__)

# Client supplied ids end up in every log line of the request
_REQUEST_ID_PATTERN = re.compile(r"[A-Za-z0-9._-]{1,64}")

# Scraped by monitoring every few seconds
_QUIET_PATHS = ("/health", "/metrics")


def resolve_request_id(header_value: Optional[str]) -> str:
    """Reuse a well-formed incoming X-Request-ID, otherwise mint a new one"""
    if header_value and _REQUEST_ID_PATTERN.fullmatch(header_value):
        return header_value
    return uuid.uuid4().hex


def auth_scheme(request: Request) -> Optional[str]:
    """How the caller authenticates, without touching the credential itself"""
    if request.headers.get("authorization", "").lower().startswith("bearer "):
        return "bearer"
    if request.cookies.get("session_token"):
        return "cookie"
    return None


class LoggingContextMiddleware(BaseHTTPMiddleware):
    """Attach a request id and caller context to every log record of a request"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = resolve_request_id(request.headers.get("x-request-id"))
        path = request.url.path
        quiet = path.startswith(_QUIET_PATHS)

        LoggingConfig.set_context(
            request_id=request_id,
            method=request.method,
            path=path,
            client_host=request.client.host if request.client else None,
            auth=auth_scheme(request),
        )

        started = time.perf_counter()
        if not quiet:
            logger.info("Request started", extra={"query_params": str(request.query_params)})

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                exc_info=True,
                extra={
                    "error_type": type(e).__name__,
                    "duration_ms": int((time.perf_counter() - started) * 1000),
                }
            )
            raise
        else:
            duration_ms = int((time.perf_counter() - started) * 1000)
            if response.status_code >= 500:
                level = "error"
            elif response.status_code >= 400:
                level = "warning"
            else:
                level = "debug" if quiet else "info"
            getattr(logger, level)(
                "Request completed",
                extra={"status_code": response.status_code, "duration_ms": duration_ms}
            )

            response.headers["X-Request-ID"] = request_id
            response.headers["X-Response-Time"] = f"{duration_ms}ms"
            return response
        finally:
            LoggingConfig.clear_context()
