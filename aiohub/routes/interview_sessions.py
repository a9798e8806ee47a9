"""Interview session lifecycle routes.

Create, list, read, full-save, complete and soft-delete sessions owned by
or shared with the caller.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from aiohub.guards.session_access import CallerDep, LimitedCallerDep, SessionIdDep
from aiohub.logic import session_service
from aiohub.models.interview_session import (
    CompleteSessionRequest,
    ConflictResponse,
    InterviewSessionOut,
    SaveAnswersRequest,
    SaveAnswersResponse,
    SessionCreateRequest,
    SessionDeletedResponse,
    SessionDetailResponse,
    SessionListResponse,
)

router = APIRouter()
logger = logging.getLogger(__name__)

_BASE = "/my/interview/sessions"


@router.post(_BASE, summary="Create an interview session", status_code=201)
def create_session(caller: LimitedCallerDep, payload: SessionCreateRequest):
    created = session_service.create_session(caller, payload.content_type, payload.organization_id)
    logger.info("interview.session_created id=%s user_id=%s", created["id"], caller.user_id)
    return JSONResponse({"data": InterviewSessionOut(**created).model_dump()}, status_code=201)


@router.get(_BASE, summary="List the caller's sessions", response_model=SessionListResponse)
def list_sessions(caller: CallerDep):
    rows = session_service.list_sessions(caller)
    return SessionListResponse(data=[InterviewSessionOut(**row) for row in rows])


@router.get(
    _BASE + "/{session_id}",
    summary="Read a session",
    response_model=SessionDetailResponse,
    response_model_by_alias=True,
)
def get_session(session_id: SessionIdDep, caller: CallerDep):
    session, read_only = session_service.get_session_detail(session_id, caller)
    return SessionDetailResponse(data=InterviewSessionOut(**session), read_only=read_only)


@router.patch(
    _BASE + "/{session_id}",
    summary="Replace all answers if clientVersion is current",
    response_model=SaveAnswersResponse,
    response_model_by_alias=True,
    responses={409: {"model": ConflictResponse}},
)
def save_answers(session_id: SessionIdDep, caller: LimitedCallerDep, payload: SaveAnswersRequest):
    updated = session_service.save_answers_full(
        session_id, dict(payload.answers), payload.client_version, caller
    )
    return SaveAnswersResponse(new_version=updated["version"], updated_at=updated["updated_at"])


@router.post(
    _BASE + "/{session_id}/complete",
    summary="Mark a session completed",
    response_model=SessionDetailResponse,
    response_model_by_alias=True,
)
def complete_session(
    session_id: SessionIdDep,
    caller: LimitedCallerDep,
    payload: Optional[CompleteSessionRequest] = None,
):
    previous = payload.previous_updated_at if payload is not None else None
    updated = session_service.complete_session(session_id, caller, previous)
    return SessionDetailResponse(data=InterviewSessionOut(**updated), read_only=True)


@router.delete(_BASE + "/{session_id}", summary="Soft-delete a session", response_model=SessionDeletedResponse)
def delete_session(session_id: SessionIdDep, caller: LimitedCallerDep):
    session_service.delete_session(session_id, caller)
    return SessionDeletedResponse(id=session_id)


__all__ = ["router"]
