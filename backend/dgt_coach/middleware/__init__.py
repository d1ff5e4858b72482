# Middleware package init
"""
DGT Coach Backend: Middleware Package
=======================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (order matters!):
    Request → [CORS] → [Request ID] → [Logging] → [GZip] → [Body Limit] → Route Handler

    1. CORS FIRST: every response, errors included, gets the CORS headers
    2. Request ID: correlation ID, and the 500 body for unhandled exceptions
    3. Logging: method, path, status and duration with the request ID
    4. Body Limit: 413 once the body passes MAX_BODY_SIZE, declared or streamed
"""
