"""
DGT Coach Backend: Body Size Limit Middleware
===============================================

What:  Rejects requests whose body is larger than MAX_BODY_SIZE (50MB).
How:   Pure ASGI middleware. A declared Content-Length is checked before
       anything is read; otherwise the body messages are counted as they
       arrive and the request is answered 413 as soon as the total passes
       the limit. The accepted body is replayed to the app unchanged.
Who:   Innermost middleware, so a rejection still carries the request ID
       and CORS headers.

The route reads the whole JSON body anyway, so holding it here costs no
extra memory beyond the limit itself.
"""

import logging
from typing import List, Optional

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from dgt_coach.config import settings
from dgt_coach.middleware.request_id import error_response

logger = logging.getLogger(__name__)


class BodySizeLimitMiddleware:
    def __init__(self, app: ASGIApp, max_body_size: Optional[int] = None):
        self.app = app
        self.max_body_size = max_body_size or settings.max_body_size

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        client = scope.get("client")
        client_ip = client[0] if client else "unknown"

        declared = Headers(scope=scope).get("content-length")
        if declared is not None:
            try:
                size = int(declared)
            except ValueError:
                response = error_response(400, "invalid_request", "Invalid Content-Length header.")
                await response(scope, receive, send)
                return
            if size > self.max_body_size:
                await self._reject_too_large(scope, receive, send, size, client_ip)
                return

        messages: List[Message] = []
        received = 0
        while True:
            message = await receive()
            messages.append(message)
            if message["type"] != "http.request":
                break
            received += len(message.get("body", b""))
            if received > self.max_body_size:
                await self._reject_too_large(scope, receive, send, received, client_ip)
                return
            if not message.get("more_body", False):
                break

        async def replay() -> Message:
            if messages:
                return messages.pop(0)
            return await receive()

        await self.app(scope, replay, send)

    async def _reject_too_large(
        self, scope: Scope, receive: Receive, send: Send, size: int, client_ip: str
    ) -> None:
        logger.warning(
            "Rejected body of at least %d bytes from %s (limit %d)",
            size,
            client_ip,
            self.max_body_size,
        )
        response = error_response(
            413,
            "payload_too_large",
            f"Request body exceeds the limit of {self.max_body_size} bytes.",
        )
        await response(scope, receive, send)
