"""
DGT Coach Backend: Request ID Middleware
==========================================

What:  Assigns an ID to each incoming request and echoes it in the response.
How:   Reuses the client's X-Request-ID header or generates a short UUID,
       stores it in a ContextVar, and sets it on the response headers.
Who:   Applied to every request; read by the access log, the exception
       handlers and GeminiService log lines.

The ID only correlates log lines. It is never used to look anything up,
so no request can observe another.

Unexpected exceptions are turned into a 500 `internal_error` body here,
inside the middleware chain, so the response still carries the request ID
and the CORS headers.
"""

import logging
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = logging.getLogger(__name__)

# Coroutine-local: concurrent requests on one event loop each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    """Build the `{"error", "code", "request_id"}` body shared by every failure."""
    return JSONResponse(
        status_code=status_code,
        content={
            "error": message,
            "code": code,
            "request_id": request_id_var.get(""),
        },
    )


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Behavior:
        1. Use the client's X-Request-ID header when present
        2. Otherwise generate an 8-character UUID prefix
        3. Store it in the ContextVar and in request.state
        4. Answer 500 internal_error for any exception nothing else handled
        5. Add it to the response headers
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]

        # Each request runs in its own task, so the value never leaks across requests
        request_id_var.set(rid)
        request.state.request_id = rid

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error("[%s] Unexpected error: %s", rid, str(e), exc_info=True)
            response = error_response(
                500,
                "internal_error",
                f"An unexpected error occurred while calling the API: {e}",
            )

        response.headers["X-Request-ID"] = rid
        return response
