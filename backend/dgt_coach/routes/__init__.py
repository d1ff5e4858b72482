# Routes package init
"""
DGT Coach Backend: API Routes Package
=======================================

Route Inventory:
    - analyze.py:  POST /api      (image analysis, follow-up, test generation)
    - health.py:   GET  /health   (liveness + configuration status)

Routes stay thin: they read the body, call AnalysisService, and return JSON.
"""
