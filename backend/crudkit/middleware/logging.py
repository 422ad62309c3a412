"""
CrudKit — Request Logging Middleware
======================================

What:  One access-log line per request: method, path, status, duration.
How:   Measures wall time around the downstream app and logs at a level
       chosen by status class (5xx → ERROR, 4xx → WARNING, else INFO).
       Runs inside RequestIDMiddleware so the correlation ID is available.
       Exceptions no handler claimed are answered here by the error
       translator, so 500 responses keep their request ID.

Request bodies are never logged.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from crudkit.middleware.error_handler import translate_error
from crudkit.middleware.request_id import request_id_var

logger = logging.getLogger("crudkit.access")

# Probes hit these every few seconds
QUIET_PATHS = {"/health"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status code and duration for each request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        rid = request_id_var.get("")

        try:
            response = await call_next(request)
        except Exception as exc:
            # Unclaimed errors: the request ID is still bound here
            response = await translate_error(request, exc)

        if path in QUIET_PATHS:
            return response

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            request.method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )
        return response
