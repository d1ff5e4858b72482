"""
DGT Coach Backend: Request Classifier
=======================================

What:  Decides which mode a POST /api body asks for.
How:   Field presence, in priority order:
           image                  → IMAGE
           context AND question   → FOLLOW_UP
           testTopics             → TEST_GENERATION
           otherwise              → InvalidRequestError (400)

A body carrying several variants is served by the highest-priority one.
"""

from typing import Any

from dgt_coach.exceptions import InvalidRequestError
from dgt_coach.schemas.analysis import AnalysisMode, AnalysisRequest


def _is_present(value: Any) -> bool:
    # Blank strings and empty lists count as absent; any other JSON value,
    # including an empty object, counts as present.
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple)):
        return len(value) > 0
    return True


def classify_request(request: AnalysisRequest) -> AnalysisMode:
    """
    Return the analysis mode for `request`.

    Raises:
        InvalidRequestError: No variant is satisfiable. Never falls back
            to a default mode.
    """
    if _is_present(request.image):
        return AnalysisMode.IMAGE
    if _is_present(request.context) and _is_present(request.question):
        return AnalysisMode.FOLLOW_UP
    if _is_present(request.test_topics):
        return AnalysisMode.TEST_GENERATION
    raise InvalidRequestError()
