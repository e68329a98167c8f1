"""
ASGI middleware for request_id + latency.
Why: every request, including stream opens, gets an id that shows up in the logs.
"""

import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from .logging import get_logger
from .metrics import metrics

_LOG = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.perf_counter()
        response = None
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            # For event streams this measures time to first byte, not stream lifetime.
            duration_ms = int((time.perf_counter() - start) * 1000)
            status = response.status_code if response is not None else 500
            metrics.increment_requests()
            metrics.record_latency(duration_ms)
            if status >= 500:
                metrics.increment_errors()
            _LOG.info(
                f"{request.method} {request.url.path} -> {status}",
                extra={
                    "request_id": request_id,
                    "path": request.url.path,
                    "method": request.method,
                    "status": status,
                    "duration_ms": duration_ms,
                },
            )
