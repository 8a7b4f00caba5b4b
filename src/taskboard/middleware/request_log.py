"""Access log middleware.

One structured log line per request: method, path, status, duration,
and who made it ("user:<email> (role:<role>)" once the auth dependency
has run, otherwise "anonymous"). Successful health checks are skipped
to keep the log readable. A request whose handler raises is logged
with status 500 before the exception continues outward.
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger("taskboard.access")


class RequestLogMiddleware(BaseHTTPMiddleware):
    """Log every request once it has a response."""

    def __init__(self, app, skip_paths: tuple[str, ...] = ("/health",)):
        super().__init__(app)
        self.skip_paths = skip_paths

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.perf_counter()
        try:
            response: Response = await call_next(request)
        except Exception:
            self._log(request, 500, start)
            raise

        if request.url.path in self.skip_paths and response.status_code == 200:
            return response

        self._log(request, response.status_code, start)
        return response

    def _log(self, request: Request, status: int, start: float) -> None:
        identity = getattr(request.state, "identity", None)
        logger.info(
            "http.request",
            method=request.method,
            path=request.url.path,
            status=status,
            duration_ms=round((time.perf_counter() - start) * 1000, 1),
            user=identity.describe() if identity else "anonymous",
        )
