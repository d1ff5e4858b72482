"""
DGT Coach Backend: Response Normalizer
========================================

What:  Turns Gemini's reply text into the response envelope for each mode.
How:   Two extraction strategies, each returning a ParseOutcome that is
       either a ParseSuccess or a ParseFailure carrying the raw text:

       Strict JSON (canonical)
           json.loads() on the reply. No partial recovery, no schema check:
           a successful parse is returned untouched.

       Tagged (legacy, RESPONSE_CONTRACT=legacy_tags)
           [ANSWER]...[/ANSWER]-style marker pairs, first match, non-greedy,
           across lines. All six pairs must be present with content or the
           whole extraction fails. A half-filled record is never produced.

A ParseFailure is a soft failure: the caller answers 200 with a fallback
payload (`parseFailed: true`, `rawText: ...`) so the app always renders.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Tuple, Union

from dgt_coach.config import ResponseContract
from dgt_coach.schemas.analysis import (
    AnalysisRecord,
    FollowUpResponse,
    ImageAnalysisResponse,
    TestQuestionsResponse,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParseSuccess:
    value: Any


@dataclass(frozen=True)
class ParseFailure:
    raw_text: str
    reason: str


ParseOutcome = Union[ParseSuccess, ParseFailure]


# ══════════════════════════════════════════════════════════════════════════
# Strategy 1: Strict JSON
# ══════════════════════════════════════════════════════════════════════════

def parse_json_output(text: str) -> ParseOutcome:
    """Parse `text` as JSON, or report why it is not JSON."""
    try:
        return ParseSuccess(json.loads(text))
    except (json.JSONDecodeError, TypeError) as e:
        return ParseFailure(raw_text=text, reason=f"invalid JSON: {e}")


# ══════════════════════════════════════════════════════════════════════════
# Strategy 2: Legacy tag-delimited text
# ══════════════════════════════════════════════════════════════════════════

# (record field, marker name) in the order the legacy prompt lists them
LEGACY_TAGS: Tuple[Tuple[str, str], ...] = (
    ("knowledgePoint", "KNOWLEDGE"),
    ("translation", "TRANSLATION"),
    ("correctAnswer", "ANSWER"),
    ("explanation", "EXPLANATION"),
    ("relatedPoints", "RELATED"),
    ("keywords", "KEYWORDS"),
)

_TAG_PATTERNS = {
    marker: re.compile(rf"\[{marker}\](.*?)\[/{marker}\]", re.DOTALL)
    for _, marker in LEGACY_TAGS
}


def parse_tagged_output(text: str) -> ParseOutcome:
    """
    Extract one AnalysisRecord from tag-delimited text.

    Returns:
        ParseSuccess(AnalysisRecord) when every marker pair is present and
        non-blank, otherwise ParseFailure naming the missing markers.
    """
    fields = {}
    missing = []
    for field_name, marker in LEGACY_TAGS:
        match = _TAG_PATTERNS[marker].search(text)
        content = match.group(1).strip() if match else ""
        if not content:
            missing.append(marker)
            continue
        fields[field_name] = content

    if missing:
        return ParseFailure(raw_text=text, reason=f"missing markers: {', '.join(missing)}")
    return ParseSuccess(AnalysisRecord(**fields))


# ══════════════════════════════════════════════════════════════════════════
# Fallback payloads
# ══════════════════════════════════════════════════════════════════════════

UNDETERMINED_ANSWER = "undetermined"
FALLBACK_KNOWLEDGE_POINT = "解析失败"
FALLBACK_EXPLANATION_PREFIX = "AI回复解析失败，原始回复如下：\n"


def image_fallback(raw_text: str) -> ImageAnalysisResponse:
    """A renderable single-record analysis that shows the raw reply."""
    record = AnalysisRecord(
        knowledgePoint=FALLBACK_KNOWLEDGE_POINT,
        translation="无法解析题目内容。",
        correctAnswer=UNDETERMINED_ANSWER,
        explanation=FALLBACK_EXPLANATION_PREFIX + raw_text,
        relatedPoints="无",
        keywords="无",
    )
    return ImageAnalysisResponse(
        analysis=[record.model_dump()],
        parse_failed=True,
        raw_text=raw_text,
    )


def fallback_test_questions(raw_text: str) -> TestQuestionsResponse:
    return TestQuestionsResponse(test_questions=[], parse_failed=True, raw_text=raw_text)


# ══════════════════════════════════════════════════════════════════════════
# Per-mode normalization
# ══════════════════════════════════════════════════════════════════════════

def normalize_image_reply(
    text: str,
    contract: ResponseContract = ResponseContract.JSON,
) -> ImageAnalysisResponse:
    """
    Build the image-mode envelope from Gemini's reply.

    JSON contract: a list is returned as-is; a lone object (the model
    sometimes drops the array) becomes a one-element list; anything else,
    or unparseable text, yields the fallback.
    """
    if contract is ResponseContract.LEGACY_TAGS:
        outcome = parse_tagged_output(text)
        if isinstance(outcome, ParseFailure):
            logger.warning("Tagged analysis reply unusable (%s)", outcome.reason)
            return image_fallback(outcome.raw_text)
        return ImageAnalysisResponse(analysis=[outcome.value.model_dump()])

    outcome = parse_json_output(text)
    if isinstance(outcome, ParseFailure):
        logger.warning("Analysis reply is not JSON (%s); returning fallback", outcome.reason)
        return image_fallback(outcome.raw_text)

    value = outcome.value
    if isinstance(value, dict):
        value = [value]
    if not isinstance(value, list):
        logger.warning("Analysis reply is JSON %s, not an array", type(value).__name__)
        return image_fallback(text)
    if not value:
        # The instructions tell the model to drop truncated questions, so an
        # empty list usually means every question in the photo was cut off.
        logger.warning("Analysis reply contained no complete questions")
    return ImageAnalysisResponse(analysis=value)


def normalize_test_reply(text: str) -> TestQuestionsResponse:
    """Build the test-generation envelope; same JSON rules as image mode."""
    outcome = parse_json_output(text)
    if isinstance(outcome, ParseFailure):
        logger.warning("Test reply is not JSON (%s); returning fallback", outcome.reason)
        return fallback_test_questions(outcome.raw_text)

    value = outcome.value
    if isinstance(value, dict):
        value = [value]
    if not isinstance(value, list):
        logger.warning("Test reply is JSON %s, not an array", type(value).__name__)
        return fallback_test_questions(text)
    return TestQuestionsResponse(test_questions=value)


def normalize_follow_up_reply(text: str) -> FollowUpResponse:
    return FollowUpResponse(answer=text)
