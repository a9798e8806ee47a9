"""Interview session operations.

Route handlers call into this module with an authenticated caller; it
enforces access, runs the optimistic-concurrency protocol against the
repository, publishes domain events and raises `aiohub.logic.errors`
exceptions for every non-success outcome.

Diff-save protocol (per attempt): Idle -> Comparing -> Applied | Conflicted | Failed.
The pre-read comparison rejects most stale writers cheaply; the guarded
UPDATE decides races between writers who read the same token.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from aiohub.logging_setup import safe_log
from aiohub.logic import repository_members, repository_sessions
from aiohub.logic.answer_diff import apply_answer_diff, is_delete, strip_deletes
from aiohub.logic.concurrency_token import next_token, normalize_token, tokens_match
from aiohub.logic.errors import (
    AnswerConflict,
    SessionAccessDenied,
    SessionNotFound,
    SessionReadOnly,
    SessionValidationError,
    TransientStoreError,
)
from aiohub.logic.events import (
    ANSWER_CONFLICT,
    ANSWER_SAVED,
    ANSWERS_REPLACED,
    QUESTION_ANSWERED,
    SESSION_COMPLETED,
    SESSION_CREATED,
    SESSION_DELETED,
    publish,
)

logger = logging.getLogger(__name__)

CONTENT_TYPES = ("service", "product", "faq", "case_study")


@dataclass(frozen=True)
class Caller:
    user_id: str


@contextmanager
def _store_errors(operation: str, **context: Any) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("interview.%s.failed %s", operation, context, exc_info=True)
        raise TransientStoreError() from exc


def conflict_snapshot(session: Dict[str, Any]) -> Dict[str, Any]:
    """Full current row handed to a losing writer so it can resync without a second read."""
    return {
        "id": session["id"],
        "version": int(session["version"]),
        "updatedAt": session["updated_at"],
        "answers": dict(session["answers"]),
    }


def _can_write(session_org: Optional[str], owner_id: str, caller: Caller) -> bool:
    if session_org:
        role = repository_members.get_member_role(session_org, caller.user_id)
        return role in repository_members.WRITE_ROLES
    return owner_id == caller.user_id


def _can_read(session_org: Optional[str], owner_id: str, caller: Caller) -> bool:
    if session_org:
        return repository_members.get_member_role(session_org, caller.user_id) is not None
    return owner_id == caller.user_id


def _load_for(session_id: str, caller: Caller, *, write: bool) -> Dict[str, Any]:
    """Not found, then read-only (writes only), then access."""
    with _store_errors("load", session_id=session_id):
        session = repository_sessions.get_session(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        if write and session["status"] == "completed":
            raise SessionReadOnly(session_id)
        check = _can_write if write else _can_read
        allowed = check(session["organization_id"], session["user_id"], caller)
    if not allowed:
        logger.warning(
            "interview.access_denied session_id=%s user_id=%s organization_id=%s",
            session_id,
            caller.user_id,
            session["organization_id"],
        )
        raise SessionAccessDenied()
    return session


def _raise_conflict(session: Dict[str, Any], *, question_id: Optional[str], caller: Caller,
                    presented: Any) -> None:
    safe_log(
        logger,
        logging.WARNING,
        "interview.diff_save.conflict",
        session_id=session["id"],
        question_id=question_id,
        user_id=caller.user_id,
        presented=presented,
        current_updated_at=session["updated_at"],
        current_version=session["version"],
    )
    publish(ANSWER_CONFLICT, {"session_id": session["id"], "question_id": question_id})
    raise AnswerConflict(conflict_snapshot(session))


def save_answer_diff(
    session_id: str,
    question_id: str,
    new_answer: Any,
    previous_updated_at: str,
    caller: Caller,
) -> Dict[str, Any]:
    """Apply one question's answer iff the caller holds the current token.

    Returns the updated session row. Raises AnswerConflict carrying the
    latest row when the token is stale or another writer won the race.
    """
    if not isinstance(question_id, str) or not question_id.strip():
        raise SessionValidationError("questionId must be a non-empty string")
    try:
        presented = normalize_token(previous_updated_at)
    except ValueError as exc:
        raise SessionValidationError("previousUpdatedAt must be an ISO-8601 timestamp") from exc

    session = _load_for(session_id, caller, write=True)

    # Comparing
    if not tokens_match(session["updated_at"], presented):
        _raise_conflict(session, question_id=question_id, caller=caller, presented=presented)

    updated_answers = apply_answer_diff(session["answers"], question_id, new_answer)
    new_token = next_token(session["updated_at"])
    with _store_errors("diff_save", session_id=session_id, question_id=question_id):
        updated = repository_sessions.update_answers_if_token(
            session_id, session["updated_at"], updated_answers, new_token
        )
        if updated is None:
            # Lost the race between our read and our write
            latest = repository_sessions.get_session(session_id)
    if updated is None:
        if latest is None:
            raise SessionNotFound(session_id)
        if latest["status"] == "completed":
            raise SessionReadOnly(session_id)
        _raise_conflict(latest, question_id=question_id, caller=caller, presented=presented)

    safe_log(
        logger,
        logging.INFO,
        "interview.diff_save.applied",
        session_id=session_id,
        question_id=question_id,
        user_id=caller.user_id,
        old_version=session["version"],
        new_version=updated["version"],
        updated_at=updated["updated_at"],
    )
    publish(
        ANSWER_SAVED,
        {
            "session_id": session_id,
            "question_id": question_id,
            "version": updated["version"],
            "deleted": is_delete(new_answer),
        },
    )
    if session["organization_id"] and isinstance(new_answer, str) and new_answer.strip():
        publish(
            QUESTION_ANSWERED,
            {
                "organization_id": session["organization_id"],
                "session_id": session_id,
                "question_id": question_id,
                "turn_index": 0,
            },
        )
    return updated


def save_answers_full(
    session_id: str,
    answers: Dict[str, Any],
    client_version: int,
    caller: Caller,
) -> Dict[str, Any]:
    """Replace every answer iff the caller's version is current."""
    if not isinstance(answers, dict):
        raise SessionValidationError("answers must be an object")
    if isinstance(client_version, bool) or not isinstance(client_version, int) or client_version < 0:
        raise SessionValidationError("clientVersion must be a non-negative integer")

    session = _load_for(session_id, caller, write=True)
    if int(session["version"]) != int(client_version):
        _raise_conflict(session, question_id=None, caller=caller, presented=client_version)

    with _store_errors("full_save", session_id=session_id):
        updated = repository_sessions.update_answers_if_version(
            session_id, client_version, strip_deletes(answers), next_token(session["updated_at"])
        )
        if updated is None:
            latest = repository_sessions.get_session(session_id)
    if updated is None:
        if latest is None:
            raise SessionNotFound(session_id)
        _raise_conflict(latest, question_id=None, caller=caller, presented=client_version)

    logger.info(
        "interview.full_save.applied session_id=%s user_id=%s client_version=%s new_version=%s",
        session_id,
        caller.user_id,
        client_version,
        updated["version"],
    )
    publish(ANSWERS_REPLACED, {"session_id": session_id, "version": updated["version"]})
    return updated


def create_session(caller: Caller, content_type: str, organization_id: Optional[str] = None) -> Dict[str, Any]:
    if content_type not in CONTENT_TYPES:
        raise SessionValidationError(f"content_type must be one of {list(CONTENT_TYPES)}")
    with _store_errors("create", user_id=caller.user_id):
        if organization_id:
            role = repository_members.get_member_role(organization_id, caller.user_id)
            if role not in repository_members.WRITE_ROLES:
                raise SessionAccessDenied()
        created = repository_sessions.create_session(caller.user_id, content_type, organization_id)
    publish(SESSION_CREATED, {"session_id": created["id"], "organization_id": organization_id})
    return created


def get_session_detail(session_id: str, caller: Caller) -> Tuple[Dict[str, Any], bool]:
    session = _load_for(session_id, caller, write=False)
    return session, session["status"] == "completed"


def list_sessions(caller: Caller) -> List[Dict[str, Any]]:
    with _store_errors("list", user_id=caller.user_id):
        return repository_sessions.list_sessions_for_user(caller.user_id)


def complete_session(session_id: str, caller: Caller, previous_updated_at: Optional[str] = None) -> Dict[str, Any]:
    """Move a session to `completed`; later writes are rejected as read-only."""
    session = _load_for(session_id, caller, write=True)
    expected = session["updated_at"]
    if previous_updated_at is not None:
        try:
            presented = normalize_token(previous_updated_at)
        except ValueError as exc:
            raise SessionValidationError("previousUpdatedAt must be an ISO-8601 timestamp") from exc
        if not tokens_match(expected, presented):
            _raise_conflict(session, question_id=None, caller=caller, presented=presented)
    with _store_errors("complete", session_id=session_id):
        updated = repository_sessions.mark_completed(session_id, expected, next_token(expected))
        if updated is None:
            latest = repository_sessions.get_session(session_id)
    if updated is None:
        if latest is None:
            raise SessionNotFound(session_id)
        _raise_conflict(latest, question_id=None, caller=caller, presented=expected)
    publish(SESSION_COMPLETED, {"session_id": session_id, "version": updated["version"]})
    return updated


def delete_session(session_id: str, caller: Caller) -> None:
    """Soft-delete; allowed for the creator or an organization writer."""
    with _store_errors("load", session_id=session_id):
        session = repository_sessions.get_session(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        allowed = session["user_id"] == caller.user_id or (
            bool(session["organization_id"])
            and _can_write(session["organization_id"], session["user_id"], caller)
        )
    if not allowed:
        raise SessionAccessDenied()
    with _store_errors("delete", session_id=session_id):
        deleted = repository_sessions.soft_delete_session(session_id)
    if not deleted:
        raise SessionNotFound(session_id)
    logger.info(
        "interview.session_deleted session_id=%s deleted_by=%s owner=%s organization_id=%s",
        session_id,
        caller.user_id,
        session["user_id"],
        session["organization_id"],
    )
    publish(SESSION_DELETED, {"session_id": session_id})


__all__ = [
    "CONTENT_TYPES",
    "Caller",
    "conflict_snapshot",
    "save_answer_diff",
    "save_answers_full",
    "create_session",
    "get_session_detail",
    "list_sessions",
    "complete_session",
    "delete_session",
]
