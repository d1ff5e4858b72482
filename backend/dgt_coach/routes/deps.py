"""
FastAPI dependency that hands route handlers the service built by create_app().
"""

from fastapi import Request

from dgt_coach.services.analysis_service import AnalysisService


def get_analysis_service(request: Request) -> AnalysisService:
    return request.app.state.analysis_service
