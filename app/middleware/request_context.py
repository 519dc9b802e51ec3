"""
RequestContext Middleware - Adds request tracking to all requests.

Every request gets a request_id, either the caller's X-Request-ID or a fresh
UUID. It is stored on request.state, bound into the structlog context so all
log lines emitted while serving the request carry it, and echoed back in the
X-Request-ID response header.

Usage:
    In endpoints:
        request.state.request_id
        request.state.ip_address
"""

import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LENGTH = 128


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Add request context to all incoming requests.

    Adds to request.state:
    - request_id: Caller supplied or generated id for tracing this request
    - ip_address: Direct client IP address
    """

    async def dispatch(self, request: Request, call_next):
        """Process request and add context."""
        request_id = self._incoming_request_id(request) or str(uuid.uuid4())
        request.state.request_id = request_id
        request.state.ip_address = request.client.host if request.client else None

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.debug(
            "Request started",
            method=request.method,
            path=request.url.path,
            ip_address=request.state.ip_address,
        )

        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.clear_contextvars()

        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    @staticmethod
    def _incoming_request_id(request: Request) -> str | None:
        value = request.headers.get(REQUEST_ID_HEADER, "").strip()
        if not value or len(value) > MAX_REQUEST_ID_LENGTH:
            return None
        return value
