"""
Correlation ID middleware
=========================
Tags every request with an X-Correlation-ID so that the log lines written
while handling one HTTP call (phase submissions, uploads, compensating
deletes) can be grouped together.
"""
from __future__ import annotations

import time
import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)


class CorrelationMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        # Accept from client or generate fresh
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f} ms)",
            extra={"correlation_id": correlation_id},
        )

        response.headers["X-Correlation-ID"] = correlation_id
        return response
