"""
DGT Coach Backend: Analysis Service (Orchestrator)
====================================================

What:  Runs one POST /api request end to end.
How:   classify → build prompt → one upstream call → normalize.
Who:   Called by the analyze route with the LLMService held on app.state.

Request Flow:
    1. classify_request()   may raise InvalidRequestError before any upstream call
    2. build_prompt()       may raise InvalidRequestError (bad base64)
    3. llm.generate()       may raise UpstreamServiceError / EmptyUpstreamResponseError
    4. normalize_*_reply()  never raises; parse problems become fallback payloads
"""

import logging
from typing import Optional, Union

from dgt_coach.config import ResponseContract, settings
from dgt_coach.schemas.analysis import (
    AnalysisMode,
    AnalysisRequest,
    FollowUpResponse,
    ImageAnalysisResponse,
    TestQuestionsResponse,
)
from dgt_coach.services.classifier import classify_request
from dgt_coach.services.llm_base import LLMService
from dgt_coach.services.normalizer import (
    normalize_follow_up_reply,
    normalize_image_reply,
    normalize_test_reply,
)
from dgt_coach.services.prompts import build_prompt

logger = logging.getLogger(__name__)

AnalysisResult = Union[ImageAnalysisResponse, FollowUpResponse, TestQuestionsResponse]


class AnalysisService:
    """
    Stateless orchestrator around one LLMService.

    Safe to share between concurrent requests: it only reads its two
    attributes, and everything request-specific lives in local variables.
    """

    def __init__(self, llm_service: LLMService, contract: Optional[ResponseContract] = None):
        self.llm_service = llm_service
        self.contract = contract or settings.response_contract

    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        mode = classify_request(request)
        prompt = build_prompt(request, mode, self.contract)

        logger.info(
            "Analysis request: mode=%s, contract=%s, parts=%d, json_output=%s",
            mode.value,
            self.contract.value,
            len(prompt.parts),
            prompt.json_output,
        )

        text = await self.llm_service.generate(prompt)
        logger.debug("Upstream reply for mode=%s: %d chars", mode.value, len(text))

        if mode is AnalysisMode.IMAGE:
            return normalize_image_reply(text, self.contract)
        if mode is AnalysisMode.TEST_GENERATION:
            return normalize_test_reply(text)
        return normalize_follow_up_reply(text)
