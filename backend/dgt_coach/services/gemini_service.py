"""
DGT Coach Backend: Google Gemini Service Implementation
=========================================================

What:  Concrete LLMService that sends an UpstreamPrompt to Gemini.
How:   Builds a GenerativeModel carrying the prompt's system instruction,
       sends one user turn of text and inline-image parts with
       generate_content_async, and translates provider errors.
Who:   Constructed by the app factory; called by AnalysisService.

Error translation:
    GoogleAPICallError (429, 400, 403, 500, ...)  → UpstreamServiceError(status, body)
    no API key configured                        → UpstreamServiceError
    reply with no text (blocked / no candidates) → EmptyUpstreamResponseError
    anything else raised by the SDK              → UpstreamServiceError

Retries:
    Tenacity wraps the raw call. RETRY_MAX_ATTEMPTS defaults to 1, so a
    request makes exactly one upstream call. When raised, only 503 and 504
    are retried; quota and client errors fail on the first attempt.
"""

import logging
import time
import uuid
from typing import Any, Dict, List, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential_jitter,
    retry_if_exception_type,
    before_sleep_log,
)

from dgt_coach.config import settings
from dgt_coach.exceptions import EmptyUpstreamResponseError, UpstreamServiceError
from dgt_coach.middleware.request_id import request_id_var
from dgt_coach.services.llm_base import ContentPart, LLMService, UpstreamPrompt

logger = logging.getLogger(__name__)

JSON_MIME_TYPE = "application/json"


class GeminiService(LLMService):
    """
    Google Gemini implementation of the upstream call.

    Holds only read-only configuration (API key, model name). A fresh
    GenerativeModel is built per call because the system instruction
    differs by mode, so concurrent requests share nothing mutable.
    """

    def __init__(self, api_key: Optional[str] = None, model_name: Optional[str] = None):
        self.api_key = settings.gemini_api_key if api_key is None else api_key
        self.model_name = model_name or settings.gemini_model

        # The SDK keeps auth in module-level state
        if self.has_api_key:
            genai.configure(api_key=self.api_key)

        logger.info(
            "GeminiService initialized with model=%s, api_key=%s, max_attempts=%d",
            self.model_name,
            "set" if self.has_api_key else "MISSING",
            settings.retry_max_attempts,
        )

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key) and self.api_key != "your_gemini_api_key_here"

    async def generate(self, prompt: UpstreamPrompt) -> str:
        """
        Send `prompt` to Gemini and return the reply text verbatim.

        Flow:
            1. Refuse early when no API key is configured
            2. Call Gemini (tenacity-wrapped, one attempt by default)
            3. Translate provider errors to UpstreamServiceError
            4. Pull the text out of the first candidate

        Raises:
            UpstreamServiceError: Provider error or missing configuration
            EmptyUpstreamResponseError: Success status, no text
        """
        request_id = request_id_var.get("") or str(uuid.uuid4())[:8]

        if not self.has_api_key:
            logger.error("[%s] Gemini call refused: GEMINI_API_KEY is not configured", request_id)
            raise UpstreamServiceError(
                message="AI service is not configured: GEMINI_API_KEY is missing.",
                context={"request_id": request_id},
            )

        try:
            response = await self._call_gemini_with_retry(prompt, request_id)
        except google_exceptions.GoogleAPICallError as e:
            status = int(e.code) if e.code is not None else None
            logger.error("[%s] Gemini API error %s: %s", request_id, status, e.message)
            raise UpstreamServiceError(
                upstream_status=status,
                upstream_body=e.message,
                context={"request_id": request_id, "error_type": type(e).__name__},
            ) from e
        except Exception as e:
            logger.error(
                "[%s] Unexpected Gemini error: %s",
                request_id,
                str(e),
                exc_info=True,
            )
            raise UpstreamServiceError(
                message=f"Unexpected error while calling the AI service: {e}",
                context={"request_id": request_id, "error_type": type(e).__name__},
            ) from e

        text = self._extract_text(response)
        if not text.strip():
            logger.error("[%s] Gemini returned no text content", request_id)
            raise EmptyUpstreamResponseError(context={"request_id": request_id})
        return text

    @retry(
        retry=retry_if_exception_type((
            google_exceptions.ServiceUnavailable,
            google_exceptions.DeadlineExceeded,
        )),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _call_gemini_with_retry(self, prompt: UpstreamPrompt, request_id: str) -> Any:
        """
        Internal method: the raw SDK call, and the only thing tenacity retries.

        Logs latency and reply size for every attempt.
        """
        start_time = time.time()

        model = genai.GenerativeModel(
            self.model_name,
            system_instruction=prompt.system_instruction,
        )
        generation_config = (
            {"response_mime_type": JSON_MIME_TYPE} if prompt.json_output else None
        )

        try:
            response = await model.generate_content_async(
                [{"role": "user", "parts": self._to_sdk_parts(prompt.parts)}],
                generation_config=generation_config,
            )
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.warning(
                "[%s] Gemini API call failed after %.0fms: %s",
                request_id,
                duration_ms,
                str(e),
            )
            raise

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "[%s] Gemini call completed in %.0fms (model=%s, json=%s)",
            request_id,
            duration_ms,
            self.model_name,
            prompt.json_output,
        )
        return response

    @staticmethod
    def _to_sdk_parts(parts: List[ContentPart]) -> List[Dict[str, Any]]:
        """Convert provider-neutral parts into the SDK's part dicts."""
        sdk_parts: List[Dict[str, Any]] = []
        for part in parts:
            if part.is_blob:
                sdk_parts.append(
                    {"inline_data": {"mime_type": part.mime_type, "data": part.data}}
                )
            else:
                sdk_parts.append({"text": part.text})
        return sdk_parts

    @staticmethod
    def _extract_text(response: Any) -> str:
        # response.text raises ValueError when the candidate has no parts
        # (safety block, recitation stop, empty candidate list).
        try:
            return response.text or ""
        except ValueError:
            return ""

    async def health_check(self) -> bool:
        """
        Report whether Gemini calls can be attempted.

        Checks configuration only, so it is free to call from /health.
        """
        return self.has_api_key
