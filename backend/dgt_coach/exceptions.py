"""
DGT Coach Backend: Custom Exception Hierarchy
===============================================

What:  Application-specific exceptions for the hard failures of a request.
How:   Each exception carries a message and optional context dict.
       Global exception handlers (registered in main.py) turn them into
       `{"error", "code", "request_id"}` JSON bodies.
Who:   Raised by the classifier, prompt assembler and Gemini service.

Exception Hierarchy:
    DGTCoachError (base)
    ├── InvalidRequestError          → 400 Bad Request (client can fix)
    ├── UpstreamServiceError         → 500 (Gemini answered with an error)
    └── EmptyUpstreamResponseError   → 500 (Gemini answered with no text)

Parse failures of the model's text are NOT exceptions. The normalizer returns
a ParseFailure and the route answers 200 with a fallback payload, so the
calling UI always has something to render.
"""

from typing import Any, Dict, Optional


class DGTCoachError(Exception):
    """
    Base exception for all DGT Coach application errors.

    Attributes:
        message:  User-facing error description (returned in the API response)
        context:  Additional debug info (logged, not returned to the client)
        code:     Machine-readable error code for the response body
        status_code: HTTP status used by the global handler
    """

    code = "internal_error"
    status_code = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class InvalidRequestError(DGTCoachError):
    """
    Raised when the request body does not select any analysis mode, or a
    selected mode's input cannot be used (e.g. undecodable base64).

    HTTP: 400 Bad Request

    Example response:
        {
            "error": "Invalid request: provide `image`, `context` + `question`, or `testTopics`.",
            "code": "invalid_request",
            "request_id": "a1b2c3d4"
        }
    """

    code = "invalid_request"
    status_code = 400

    def __init__(
        self,
        message: str = (
            "Invalid request: provide `image`, `context` + `question`, or `testTopics`."
        ),
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class UpstreamServiceError(DGTCoachError):
    """
    Raised when the Gemini API answers with a non-success status, or cannot
    be called at all (no API key configured).

    HTTP: 500 Internal Server Error

    The message embeds the upstream status and body so the client developer
    can see e.g. a 429 quota error without reading server logs.
    """

    code = "upstream_error"
    status_code = 500

    def __init__(
        self,
        upstream_status: Optional[int] = None,
        upstream_body: str = "",
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        if message is None:
            message = f"Upstream API error: {upstream_status} - {upstream_body}"
        ctx = context or {}
        if upstream_status is not None:
            ctx["upstream_status"] = upstream_status
        super().__init__(message=message, context=ctx)
        self.upstream_status = upstream_status
        self.upstream_body = upstream_body


class EmptyUpstreamResponseError(DGTCoachError):
    """
    Raised when Gemini answers successfully but the reply has no text
    (no candidates, no parts, a safety block, or an empty string).

    HTTP: 500 Internal Server Error
    """

    code = "empty_upstream_response"
    status_code = 500

    def __init__(
        self,
        message: str = "The AI service returned no text content.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
