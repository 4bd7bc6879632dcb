"""
Custom middleware for request processing.
"""
import logging
import time
import uuid
from collections import defaultdict
from typing import Callable, Dict, List

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ..config import settings
from .telemetry import metrics_collector

logger = logging.getLogger(__name__)

# Long-lived streams and probes are not rate limited or timed
STREAM_PATHS = ("/livechat/stream", "/livechat/admin/stream")
UNLIMITED_PREFIXES = ("/health", "/metrics") + STREAM_PATHS


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Add unique request ID to each request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.request_id = request_id

        logger.debug(f"Request started: {request.method} {request.url.path} [{request_id}]")

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        return response


class TimingMiddleware(BaseHTTPMiddleware):
    """Add request timing information."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        response = await call_next(request)

        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)

        # Streams return their headers immediately; anything slow here is a handler
        if process_time > 1.0 and request.url.path not in STREAM_PATHS:
            logger.warning(
                f"Slow request: {request.method} {request.url.path} "
                f"took {process_time:.2f}s"
            )

        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Simple per-client sliding window rate limiting."""

    def __init__(self, app, calls: int = 100, period: int = 60):
        super().__init__(app)
        self.calls = calls
        self.period = period
        self.clients: Dict[str, List[float]] = defaultdict(list)

    def _get_client_id(self, request: Request) -> str:
        client = request.client
        return client.host if client else "unknown"

    def _is_rate_limited(self, client_id: str) -> bool:
        now = time.monotonic()
        cutoff = now - self.period

        self.clients[client_id] = [t for t in self.clients[client_id] if t > cutoff]

        if len(self.clients[client_id]) >= self.calls:
            return True

        self.clients[client_id].append(now)
        return False

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path.startswith(UNLIMITED_PREFIXES):
            return await call_next(request)

        client_id = self._get_client_id(request)

        if self._is_rate_limited(client_id):
            logger.warning(f"Rate limit exceeded for client: {client_id}")
            return JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "error": "Rate limit exceeded. Please try again later.",
                    "code": "rate_limited",
                },
                headers={
                    "Retry-After": str(self.period),
                    "X-RateLimit-Limit": str(self.calls),
                    "X-RateLimit-Period": str(self.period),
                },
            )

        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(self.calls)
        response.headers["X-RateLimit-Remaining"] = str(
            self.calls - len(self.clients[client_id])
        )

        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Last-resort handler for errors raised outside route handlers."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)

        except Exception as e:
            request_id = getattr(request.state, "request_id", "unknown")
            logger.error(
                f"Unhandled exception in request {request_id}: {str(e)}",
                exc_info=True
            )
            metrics_collector.record_error()
            debug = getattr(request.app.state, "settings", settings).debug

            return JSONResponse(
                status_code=500,
                content={
                    "success": False,
                    "error": "Internal server error",
                    "message": str(e) if debug else "An unexpected error occurred",
                    "request_id": request_id,
                },
            )
