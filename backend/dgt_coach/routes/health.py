"""
DGT Coach Backend: Health Check Route
=======================================

What:  GET /health for uptime probes.
How:   Reports version, model, contract and whether an API key is configured.
       Makes no upstream call, so probing never spends Gemini quota.

Status levels:
    healthy:   API key configured
    degraded:  process is up but every POST /api will fail with 500
"""

import logging
import time

from fastapi import APIRouter, Depends

from dgt_coach import __version__
from dgt_coach.config import settings
from dgt_coach.routes.deps import get_analysis_service
from dgt_coach.schemas.analysis import HealthResponse
from dgt_coach.services.analysis_service import AnalysisService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(
    service: AnalysisService = Depends(get_analysis_service),
) -> HealthResponse:
    configured = await service.llm_service.health_check()
    if not configured:
        logger.warning("Health check: AI service has no API key configured")

    return HealthResponse(
        status="healthy" if configured else "degraded",
        version=__version__,
        model=getattr(service.llm_service, "model_name", settings.gemini_model),
        api_key_configured=configured,
        response_contract=service.contract.value,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
