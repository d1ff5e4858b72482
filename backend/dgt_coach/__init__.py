"""
DGT Coach Backend: Application Package Initializer
====================================================

What: Marks the `dgt_coach` directory as a Python package.
Who:  Imported by uvicorn (`dgt_coach.main:app`), pytest, and `python -m dgt_coach`.

Architecture Note:
    One route, no persistence. Each request flows through four layers:

    ┌─────────────────────────────────────┐
    │        Routes (API Layer)           │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   AnalysisService (orchestration)   │  ← classify → assemble → invoke → normalize
    ├─────────────────────────────────────┤
    │   LLMService (Gemini upstream)      │  ← one call per request
    ├─────────────────────────────────────┤
    │   Schemas (pydantic contracts)      │  ← request/response envelopes
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
