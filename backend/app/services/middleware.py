"""Request timing and tracing middleware for the ConstructAI BOQ API."""
import re
import time
import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("constructai-api.middleware")

SKIP_LOG_PATHS = {"/health"}
SESSION_PATH = re.compile(r"^/api/(?:sessions|reports)/([^/]+)")


def session_id_from_path(path: str):
    """Session id addressed by a request path, or None."""
    match = SESSION_PATH.match(path)
    if match is None or match.group(1) == "demo":
        return None
    return match.group(1)


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that:
    - Reuses an incoming X-Request-ID or assigns a new uuid4.
    - Measures end-to-end request duration in milliseconds.
    - Adds X-Request-ID and X-Process-Time headers to every response.
    - Emits one structured log line per request (except /health), tagged
      with the session id when the path addresses one.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start_time = time.perf_counter()

        # Route handlers can tag their own log lines with this
        request.state.request_id = request_id

        response: Response = await call_next(request)

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(duration_ms)

        if request.url.path not in SKIP_LOG_PATHS:
            logger.info(
                "request completed",
                extra={
                    "http_method": request.method,
                    "http_path": request.url.path,
                    "http_status": response.status_code,
                    "request_id": request_id,
                    "session_id": session_id_from_path(request.url.path),
                    "duration_ms": duration_ms,
                },
            )

        return response
