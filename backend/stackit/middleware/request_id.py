"""
StackIt Backend — Request ID Middleware
=========================================

What:  Gives every request a short correlation id, echoed as X-Request-ID.
How:   A client-supplied X-Request-ID is reused; otherwise the first 8
       characters of a UUID4. The id is kept in a ContextVar so exception
       handlers and the access log can read it without the Request object.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one event loop each see their own id
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def new_request_id() -> str:
    return uuid.uuid4().hex[:8]


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get("X-Request-ID") or new_request_id()
        # Not reset afterwards: the catch-all error handler runs outside
        # this middleware and still needs the id
        request_id_var.set(rid)
        request.state.request_id = rid
        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response
