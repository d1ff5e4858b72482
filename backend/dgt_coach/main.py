"""
DGT Coach Backend: FastAPI Application Factory
================================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn (`uvicorn dgt_coach.main:app`) and by the tests,
       which pass their own LLMService double.

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │                                                     │
    │  Middleware Chain:                                  │
    │  ┌──────┐ ┌──────────┐ ┌─────────┐ ┌────────────┐   │
    │  │ CORS │→│ Req ID   │→│ Logging │→│ Body Limit │   │
    │  └──────┘ └──────────┘ └─────────┘ └────────────┘   │
    │                                                     │
    │  Routes:                                            │
    │  ┌──────────────┐ ┌─────────────────┐               │
    │  │ POST /api    │ │ GET /health     │               │
    │  └──────────────┘ └─────────────────┘               │
    │                                                     │
    │  Exception Handlers:                                │
    │  ┌──────────────────────────────────────────────┐   │
    │  │ InvalidRequest→400 │ Upstream/Empty→500      │   │
    │  │ anything else→500 (in RequestIDMiddleware)   │   │
    │  └──────────────────────────────────────────────┘   │
    └─────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Initialize logging
    2. Validate configuration (missing API key is logged, not fatal)
    Shutdown:
    1. Log shutdown complete
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from dgt_coach import __version__
from dgt_coach.config import ResponseContract, settings
from dgt_coach.exceptions import DGTCoachError
from dgt_coach.middleware.body_limit import BodySizeLimitMiddleware
from dgt_coach.middleware.logging import RequestLoggingMiddleware
from dgt_coach.middleware.request_id import (
    RequestIDMiddleware,
    error_response,
    request_id_var,
)
from dgt_coach.routes import analyze, health
from dgt_coach.services.analysis_service import AnalysisService
from dgt_coach.services.llm_base import LLMService

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Output: stdout (captured by the container / Vercel runtime)
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("google").setLevel(logging.WARNING)
    logging.getLogger("grpc").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("=" * 60)
    logger.info("DGT Coach Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving: /health reports "degraded" and POST /api answers 500
        logger.error("Configuration error: %s", str(e))
        logger.error("Every AI request will fail until the configuration is fixed.")

    logger.info("Response contract: %s", app.state.analysis_service.contract.value)
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("DGT Coach Backend shutting down...")
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exceptions to `{"error", "code", "request_id"}` JSON responses.

    Handler hierarchy:
        DGTCoachError subclasses  → their own status (400 or 500)
        RequestValidationError    → 400 (malformed JSON, wrong field types)

    Any other exception is answered by RequestIDMiddleware, which sits inside
    CORS, so the 500 body keeps its request ID and CORS headers.
    """

    @app.exception_handler(DGTCoachError)
    async def handle_app_error(request: Request, exc: DGTCoachError):
        rid = request_id_var.get("")
        if exc.status_code >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, exc.code, exc.message, exc.context)
        else:
            logger.warning("[%s] %s: %s", rid, exc.code, exc.message)
        return error_response(exc.status_code, exc.code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', '')}"
            for err in exc.errors()
        )
        rid = request_id_var.get("")
        logger.warning("[%s] Malformed request body: %s", rid, problems)
        return error_response(400, "invalid_request", f"Invalid request body: {problems}")


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    llm_service: Optional[LLMService] = None,
    contract: Optional[ResponseContract] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        llm_service: Upstream model client. Defaults to a GeminiService built
                     from settings; tests pass a double.
        contract:    Response contract override (defaults to RESPONSE_CONTRACT).

    Returns:
        Fully configured FastAPI instance.
    """
    if llm_service is None:
        from dgt_coach.services.gemini_service import GeminiService
        llm_service = GeminiService()

    app = FastAPI(
        title="DGT Coach API",
        description=(
            "Spanish driving-theory study helper backed by Google Gemini. "
            "Analyzes photos of exam questions, answers follow-up questions "
            "and generates review tests."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Built here rather than in lifespan so the ASGI test transport
    # (which does not run lifespan) sees the same wiring.
    app.state.llm_service = llm_service
    app.state.analysis_service = AnalysisService(llm_service, contract)

    # ── Register Middleware ───────────────────────────────────────────────
    # Middleware executes in REVERSE order of addition (last added runs first).
    app.add_middleware(BodySizeLimitMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    origins = settings.cors_origins_list or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    register_exception_handlers(app)

    app.include_router(analyze.router)
    app.include_router(health.router)

    return app


# uvicorn expects `dgt_coach.main:app` to be importable
app = create_app()
