"""APIRouter registration for the interview service."""

from __future__ import annotations

from fastapi import APIRouter

from aiohub.routes.answers_diff import router as answers_diff_router
from aiohub.routes.interview_sessions import router as interview_sessions_router

api_router = APIRouter()
api_router.include_router(interview_sessions_router, tags=["InterviewSessions"])
api_router.include_router(answers_diff_router, tags=["Autosave"])

__all__ = ["api_router"]
