"""
CrudKit — Request ID Middleware
=================================

What:  Assigns a correlation ID to each request and echoes it in `X-Request-ID`.
How:   Reuses a client-supplied `X-Request-ID` header when present, otherwise
       generates a short UUID. The ID is stored in a ContextVar so loggers
       (access log, error translator) can include it, and in `request.state`
       for handlers.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: each concurrently running request sees its own value
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach a request ID to the context, `request.state` and the response headers."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())[:8]
        token = request_id_var.set(rid)
        request.state.request_id = rid
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers[REQUEST_ID_HEADER] = rid
        return response
