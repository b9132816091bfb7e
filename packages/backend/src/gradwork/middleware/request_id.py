"""Request ID middleware — unique ID per HTTP request for log correlation.

Learn: The ID comes from an incoming X-Request-ID header (set by a proxy
or the frontend) or is generated here. It is bound to structlog's
contextvars, so every log line emitted while handling the request
carries it, and echoed back in the response header.

BaseHTTPMiddleware only sees HTTP requests; chat sessions bind their own
contract/user/connection ids instead.
"""

import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

HEADER = "X-Request-ID"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Generate and propagate a unique request ID."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(HEADER) or uuid.uuid4().hex

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        response: Response = await call_next(request)
        response.headers[HEADER] = request_id
        return response
