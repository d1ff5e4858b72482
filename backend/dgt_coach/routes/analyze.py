"""
DGT Coach Backend: Analyze Route Handler
==========================================

What:  POST /api, the single endpoint the study app talks to.
How:   Validates the JSON body, delegates to AnalysisService, and returns the
       mode's envelope with only the keys that mode sets.
Who:   Called by the study app for photos, follow-up questions and review tests.

Responses:
    200  {"analysis": [...]}              image mode
    200  {"answer": "..."}                follow-up mode
    200  {"testQuestions": [...]}         test-generation mode
         (+ "parseFailed": true, "rawText": "..." when the model output was unusable)
    400  no recognised mode / malformed body        (InvalidRequestError)
    413  body above MAX_BODY_SIZE                   (BodySizeLimitMiddleware)
    500  Gemini error or empty reply                (UpstreamServiceError, EmptyUpstreamResponseError)
    500  anything unexpected, code internal_error   (RequestIDMiddleware)
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from dgt_coach.routes.deps import get_analysis_service
from dgt_coach.schemas.analysis import AnalysisRequest, ErrorResponse
from dgt_coach.services.analysis_service import AnalysisService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Analyze"])


@router.post(
    "/api",
    response_model=None,
    responses={
        200: {"description": "Envelope for the selected mode"},
        400: {"description": "No valid field combination", "model": ErrorResponse},
        413: {"description": "Body too large", "model": ErrorResponse},
        500: {"description": "AI service error", "model": ErrorResponse},
    },
    summary="Analyze an exam photo, answer a follow-up, or generate a review test",
    description=(
        "Send exactly one of: `image` (base64 JPEG), `context` + `question`, "
        "or `testTopics`. The first one present in that order is served."
    ),
)
async def analyze(
    body: AnalysisRequest,
    service: AnalysisService = Depends(get_analysis_service),
) -> JSONResponse:
    result = await service.analyze(body)
    return JSONResponse(content=result.to_payload())
