"""
StackIt Backend — Access Log Middleware
=========================================

What:  One log line per request on the `stackit.access` logger.
How:   Method, path, status, duration and client address, plus the request
       id. The level follows the status: 5xx ERROR, 4xx WARNING, else INFO.

Never logged: request bodies (passwords, question drafts), uploaded file
contents, the Authorization header.

/health and the static /api/files/ route are skipped; probes and image
loads would drown everything else.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from stackit.middleware.request_id import request_id_var

logger = logging.getLogger("stackit.access")

QUIET_PREFIXES = ("/health", "/api/files/")


def level_for_status(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path.startswith(QUIET_PREFIXES):
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        client_ip = request.client.host if request.client else "unknown"
        rid = request_id_var.get("")
        status = response.status_code

        logger.log(
            level_for_status(status),
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
