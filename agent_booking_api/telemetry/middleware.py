"""
Telemetry Middleware for FastAPI

Tracks every HTTP request with timing and status, and tags the response
with its correlation ID.
"""

import time
from collections.abc import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .context import clear_request_context, generate_correlation_id, set_request_context
from .events import TelemetryEvents
from .tracker import track_event, track_exception


class TelemetryMiddleware(BaseHTTPMiddleware):
    """Request telemetry: received/completed/failed events and X-Request-ID."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process the request and track telemetry."""
        start_time = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or generate_correlation_id()

        # user_id is only known after auth; AuthMiddleware runs inside this one
        set_request_context(request_id=request_id)
        request.state.request_id = request_id

        endpoint = {"endpoint": request.url.path, "method": request.method}
        track_event(TelemetryEvents.REQUEST_RECEIVED, endpoint)

        try:
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start_time) * 1000
            track_event(
                TelemetryEvents.REQUEST_COMPLETED,
                {
                    **endpoint,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                    "user_id": getattr(request.state, "user_id", None),
                },
            )
            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            track_exception(e, {**endpoint, "duration_ms": duration_ms})
            track_event(
                TelemetryEvents.REQUEST_FAILED,
                {**endpoint, "duration_ms": duration_ms, "error_type": type(e).__name__},
            )
            raise

        finally:
            clear_request_context()
