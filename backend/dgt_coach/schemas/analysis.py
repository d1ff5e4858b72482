"""
DGT Coach Backend: Pydantic Request/Response Schemas
======================================================

What:  Pydantic models defining the API contract between the study app and backend.
How:   The request model validates field types; the response envelopes are
       dumped with `exclude_unset` so each mode returns only its own keys.
Who:   Used by the analyze route, AnalysisService and the normalizer.

Wire names are camelCase (`testQuestions`, `parseFailed`, ...) because the
client app was written against them; Python attributes stay snake_case.

Upstream payloads are passed through untouched. The envelope fields holding
model output are typed `List[Any]`, so a well-formed reply round-trips
exactly as the model produced it. AnalysisRecord documents the
image-mode shape and builds the fallback record.
"""

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class AnalysisMode(str, Enum):
    """The three things the endpoint can do, selected by field presence."""

    IMAGE = "image"
    FOLLOW_UP = "follow_up"
    TEST_GENERATION = "test_generation"


class AnalysisRequest(BaseModel):
    """
    What:  Body of POST /api.
    How:   Every field is optional; the classifier decides which mode applies.

    Variants:
        {"image": "<base64 jpeg>"}
        {"context": {...previous analysis...}, "question": "¿Por qué...?"}
        {"testTopics": ["señales de prioridad", "adelantamientos"]}
    """

    image: Optional[str] = Field(default=None, description="Base64-encoded JPEG photo")
    context: Optional[Any] = Field(
        default=None,
        description="Opaque prior analysis the follow-up question refers to",
    )
    question: Optional[str] = Field(default=None, description="Follow-up question text")
    test_topics: Optional[List[str]] = Field(
        default=None,
        alias="testTopics",
        description="Knowledge-point tags to build a review test from",
    )

    model_config = {"populate_by_name": True, "extra": "ignore"}


# ══════════════════════════════════════════════════════════════════════════
# Upstream Output Shapes
# ══════════════════════════════════════════════════════════════════════════


class AnalysisRecord(BaseModel):
    """One analysed exam question, as requested by the analysis instructions."""

    knowledgePoint: str
    translation: str
    correctAnswer: str
    explanation: str
    relatedPoints: str
    keywords: str


# ══════════════════════════════════════════════════════════════════════════
# Response Envelopes
# ══════════════════════════════════════════════════════════════════════════


class _Envelope(BaseModel):
    """Soft-failure markers shared by the JSON-producing modes."""

    parse_failed: Optional[bool] = Field(
        default=None,
        alias="parseFailed",
        description="Present and true when the model output could not be parsed",
    )
    raw_text: Optional[str] = Field(
        default=None,
        alias="rawText",
        description="Verbatim model output, present only on parse failure",
    )

    model_config = {"populate_by_name": True}

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


class ImageAnalysisResponse(_Envelope):
    """Image mode: one entry per complete question found in the photo."""

    analysis: List[Any] = Field(description="List of AnalysisRecord objects")


class FollowUpResponse(_Envelope):
    """Follow-up mode: free-text answer in Chinese."""

    answer: str


class TestQuestionsResponse(_Envelope):
    """
    Test-generation mode: usually three questions, each shaped
    `{question_es, question_zh, options: [str], correct_answer, explanation}`.
    """

    __test__ = False

    test_questions: List[Any] = Field(
        alias="testQuestions",
        description="List of generated review questions",
    )


class ErrorResponse(BaseModel):
    """
    What:  Error body for every 4xx/5xx answer.

    Example:
        {
            "error": "Upstream API error: 429 - Resource has been exhausted",
            "code": "upstream_error",
            "request_id": "a1b2c3d4"
        }
    """

    error: str = Field(description="Human-readable error message")
    code: str = Field(description="Machine-readable error code")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Liveness plus the configuration facts that explain most failures."""

    status: str = Field(description="healthy, or degraded when no API key is configured")
    version: str
    model: str = Field(description="Configured Gemini model")
    api_key_configured: bool
    response_contract: str
    uptime_seconds: float
