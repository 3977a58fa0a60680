"""
Middleware for request context
"""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from uuid import UUID, uuid4
import logging
import time

logger = logging.getLogger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware that assigns a request id (or keeps the caller's X-Request-ID),
    stores it on request.state and echoes it back so terminal logs and
    server logs can be correlated
    """

    HEADER = "X-Request-ID"

    async def dispatch(self, request: Request, call_next):
        incoming = request.headers.get(self.HEADER)
        try:
            request_id = str(UUID(incoming)) if incoming else str(uuid4())
        except ValueError:
            request_id = str(uuid4())
        request.state.request_id = request_id

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        logger.debug(
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"({elapsed_ms:.1f} ms) request_id={request_id}"
        )
        response.headers[self.HEADER] = request_id
        return response
