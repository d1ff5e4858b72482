# Services package init
"""
DGT Coach Backend: Services Layer
===================================

Service Inventory:
    - classifier:        picks the analysis mode from the request body
    - prompts:           system instructions and UpstreamPrompt assembly
    - LLMService:        abstract upstream interface (llm_base)
    - GeminiService:     Google Gemini implementation of LLMService
    - normalizer:        strict-JSON and legacy tag parsing, fallbacks
    - AnalysisService:   ties the above together for one request
"""
