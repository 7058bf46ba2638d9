"""
Access Logging Middleware

Tags every request with an X-Request-ID and writes one access log line
(method, path, status, duration, client IP). Request bodies are never read,
so passwords and codes cannot end up in the log.
"""

import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from app.api.dependencies import get_client_ip

logger = logging.getLogger("app.access")

SKIPPED_PATHS = ["/", "/health", "/docs", "/openapi.json"]


class AccessLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to log API access.

    Captures:
    - Request details (endpoint, method, IP)
    - Performance (duration)
    - Request tracking (request_id, echoed in the response headers)
    """

    def __init__(self, app: ASGIApp, enabled: bool = True):
        """
        Args:
            app: FastAPI application
            enabled: Whether access lines are written (the request id is always set)
        """
        super().__init__(app)
        self.enabled = enabled

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = int((time.perf_counter() - start_time) * 1000)

        response.headers["X-Request-ID"] = request_id

        if self.enabled and request.url.path not in SKIPPED_PATHS:
            level = logging.WARNING if response.status_code >= 500 else logging.INFO
            logger.log(
                level,
                f"{request.method} {request.url.path} -> {response.status_code} "
                f"in {duration_ms}ms ip={get_client_ip(request)} request_id={request_id}",
            )

        return response
