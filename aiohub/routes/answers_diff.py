"""Answer diff-save endpoint.

Persists a single question's answer under optimistic concurrency keyed on
the session's `updatedAt`. Protocol logic lives in
`aiohub.logic.session_service`; this module only binds HTTP to it.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter

from aiohub.guards.session_access import LimitedCallerDep, SessionIdDep
from aiohub.logic import session_service
from aiohub.models.interview_session import (
    ConflictResponse,
    SaveAnswerDiffRequest,
    SaveAnswerDiffResponse,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/my/interview/sessions/{session_id}/answers/diff",
    summary="Save one answer if the caller's updatedAt is current",
    response_model=SaveAnswerDiffResponse,
    response_model_by_alias=True,
    responses={409: {"model": ConflictResponse}},
)
def save_answer_diff(session_id: SessionIdDep, caller: LimitedCallerDep, payload: SaveAnswerDiffRequest):
    updated = session_service.save_answer_diff(
        session_id,
        payload.question_id,
        payload.new_answer,
        payload.previous_updated_at,
        caller,
    )
    return SaveAnswerDiffResponse(
        updated_at=updated["updated_at"],
        version=updated["version"],
        answers=updated["answers"],
    )


__all__ = ["router", "save_answer_diff"]
