"""Request correlation and access logging."""

import re
import time
from uuid import uuid4

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

CORRELATION_HEADER = "X-Correlation-Id"

# Client-supplied ids are echoed into headers and logs, so keep them short and plain.
_CORRELATION_ID_RE = re.compile(r"^[A-Za-z0-9._\-]{1,128}$")

logger = structlog.get_logger(__name__)


def resolve_correlation_id(header_value: str | None) -> str:
    """Accept a well-formed client correlation id, otherwise mint a UUID4."""
    if header_value and _CORRELATION_ID_RE.match(header_value):
        return header_value
    return str(uuid4())


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Tag every request with a correlation id and log its outcome.

    The id is stored in request.state.correlation_id, bound to the structlog
    context for the duration of the request and echoed in the response.
    Bodies are never logged since they carry passwords and tokens.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        correlation_id = resolve_correlation_id(request.headers.get(CORRELATION_HEADER))
        request.state.correlation_id = correlation_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            correlation_id=correlation_id,
            method=request.method,
            path=request.url.path,
        )

        started = time.perf_counter()
        # Reported when call_next raises; the error handler answers 500.
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            logger.info(
                "request_completed",
                status_code=status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
            )

        response.headers[CORRELATION_HEADER] = correlation_id
        return response
