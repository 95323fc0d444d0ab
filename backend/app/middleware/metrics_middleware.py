"""
ASGI middleware for tracking HTTP request metrics.
Records request count, duration, and errors.
"""
import re
import time
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from app.utils.metrics import http_requests_total, http_request_duration_seconds, errors_total

UUID_PATTERN = re.compile(
    r'[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}',
    flags=re.IGNORECASE
)
NUMERIC_SEGMENT_PATTERN = re.compile(r'/\d+(?=/|$)')

# Paths that are never labelled individually
UNMATCHED_PATH = "unmatched"


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to track HTTP metrics for Prometheus."""

    async def dispatch(self, request: Request, call_next):
        """Process request and record metrics."""
        # Skip metrics endpoint to avoid recursion
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.time()
        method = request.method

        try:
            response = await call_next(request)
        except Exception:
            errors_total.labels(error_type="exception").inc()
            raise

        path = self._route_path(request)
        status_code = response.status_code

        http_requests_total.labels(method=method, path=path, status=status_code).inc()
        http_request_duration_seconds.labels(method=method, path=path).observe(time.time() - start_time)

        # 401 and 429 are the metering outcomes worth alerting on separately
        if status_code in (401, 429):
            errors_total.labels(error_type=str(status_code)).inc()
        elif status_code >= 400:
            errors_total.labels(error_type=f"{status_code // 100}xx").inc()

        return response

    def _route_path(self, request: Request) -> str:
        """
        Label for the request path.
        Uses the matched route template; unknown paths share one label.
        """
        route = request.scope.get("route")
        if route is not None and getattr(route, "path", None):
            return route.path
        if request.scope.get("endpoint") is None:
            return UNMATCHED_PATH
        return self._normalize_path(request.url.path)

    @staticmethod
    def _normalize_path(path: str) -> str:
        """Replace UUIDs and numeric IDs with placeholders."""
        path = UUID_PATTERN.sub('{id}', path)
        return NUMERIC_SEGMENT_PATTERN.sub('/{id}', path)
