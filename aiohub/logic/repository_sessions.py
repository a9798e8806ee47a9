"""Interview session data access helpers.

Encapsulates queries and writes against `ai_interview_sessions`. Every
mutation is a single guarded UPDATE so the compare and the write happen
atomically inside the database; callers learn whether they won from the
affected row count.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import text as sql_text
from sqlalchemy.engine import Connection

from aiohub.db.base import get_engine
from aiohub.logic.answer_diff import dump_answers, load_answers
from aiohub.logic.concurrency_token import now_token

logger = logging.getLogger(__name__)

_SESSION_COLUMNS = (
    "id, organization_id, user_id, content_type, status, answers, version, created_at, updated_at"
)


def _row_to_session(row: Any) -> Dict[str, Any]:
    m = row._mapping
    return {
        "id": str(m["id"]),
        "organization_id": (str(m["organization_id"]) if m["organization_id"] is not None else None),
        "user_id": str(m["user_id"]),
        "content_type": str(m["content_type"]),
        "status": str(m["status"]),
        "answers": load_answers(m["answers"]),
        "version": int(m["version"]),
        "created_at": str(m["created_at"]),
        "updated_at": str(m["updated_at"]),
    }


def _select_live(conn: Connection, session_id: str) -> Optional[Dict[str, Any]]:
    row = conn.execute(
        sql_text(
            f"SELECT {_SESSION_COLUMNS} FROM ai_interview_sessions "
            "WHERE id = :id AND deleted_at IS NULL"
        ),
        {"id": session_id},
    ).fetchone()
    return _row_to_session(row) if row is not None else None


def create_session(
    user_id: str,
    content_type: str,
    organization_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Insert a draft session with empty answers and version 0."""
    session_id = str(uuid.uuid4())
    stamp = now_token()
    eng = get_engine()
    with eng.begin() as conn:
        conn.execute(
            sql_text(
                """
                INSERT INTO ai_interview_sessions
                    (id, organization_id, user_id, content_type, status, answers, version, created_at, updated_at)
                VALUES (:id, :org, :uid, :ctype, 'draft', '{}', 0, :stamp, :stamp)
                """
            ),
            {
                "id": session_id,
                "org": organization_id,
                "uid": user_id,
                "ctype": content_type,
                "stamp": stamp,
            },
        )
        created = _select_live(conn, session_id)
    logger.info("session_insert id=%s org=%s user=%s", session_id, organization_id, user_id)
    return created  # type: ignore[return-value]


def get_session(session_id: str) -> Optional[Dict[str, Any]]:
    """Return the live (not soft-deleted) session row, or None."""
    eng = get_engine()
    with eng.connect() as conn:
        return _select_live(conn, session_id)


def list_sessions_for_user(user_id: str) -> List[Dict[str, Any]]:
    eng = get_engine()
    with eng.connect() as conn:
        rows = conn.execute(
            sql_text(
                f"SELECT {_SESSION_COLUMNS} FROM ai_interview_sessions "
                "WHERE user_id = :uid AND deleted_at IS NULL "
                "ORDER BY updated_at DESC, id"
            ),
            {"uid": user_id},
        ).fetchall()
    return [_row_to_session(r) for r in rows]


def update_answers_if_token(
    session_id: str,
    previous_updated_at: str,
    answers: Dict[str, Any],
    new_updated_at: str,
) -> Optional[Dict[str, Any]]:
    """Replace answers iff `updated_at` still equals `previous_updated_at`.

    Returns the updated row, or None when no row matched (stale token,
    deleted, or completed session). A draft session moves to in_progress.
    """
    eng = get_engine()
    with eng.begin() as conn:
        result = conn.execute(
            sql_text(
                """
                UPDATE ai_interview_sessions
                SET answers = :answers,
                    version = version + 1,
                    updated_at = :new_updated_at,
                    status = CASE WHEN status = 'draft' THEN 'in_progress' ELSE status END
                WHERE id = :id
                  AND updated_at = :previous_updated_at
                  AND deleted_at IS NULL
                  AND status <> 'completed'
                """
            ),
            {
                "answers": dump_answers(answers),
                "new_updated_at": new_updated_at,
                "id": session_id,
                "previous_updated_at": previous_updated_at,
            },
        )
        if result.rowcount != 1:
            return None
        return _select_live(conn, session_id)


def update_answers_if_version(
    session_id: str,
    client_version: int,
    answers: Dict[str, Any],
    new_updated_at: str,
) -> Optional[Dict[str, Any]]:
    """Replace the whole answers mapping iff `version` equals `client_version`."""
    eng = get_engine()
    with eng.begin() as conn:
        result = conn.execute(
            sql_text(
                """
                UPDATE ai_interview_sessions
                SET answers = :answers,
                    version = version + 1,
                    updated_at = :new_updated_at,
                    status = CASE WHEN status = 'draft' THEN 'in_progress' ELSE status END
                WHERE id = :id
                  AND version = :client_version
                  AND deleted_at IS NULL
                  AND status <> 'completed'
                """
            ),
            {
                "answers": dump_answers(answers),
                "new_updated_at": new_updated_at,
                "id": session_id,
                "client_version": int(client_version),
            },
        )
        if result.rowcount != 1:
            return None
        return _select_live(conn, session_id)


def mark_completed(session_id: str, previous_updated_at: str, new_updated_at: str) -> Optional[Dict[str, Any]]:
    eng = get_engine()
    with eng.begin() as conn:
        result = conn.execute(
            sql_text(
                """
                UPDATE ai_interview_sessions
                SET status = 'completed',
                    version = version + 1,
                    updated_at = :new_updated_at
                WHERE id = :id
                  AND updated_at = :previous_updated_at
                  AND deleted_at IS NULL
                  AND status <> 'completed'
                """
            ),
            {"id": session_id, "previous_updated_at": previous_updated_at, "new_updated_at": new_updated_at},
        )
        if result.rowcount != 1:
            return None
        return _select_live(conn, session_id)


def soft_delete_session(session_id: str) -> bool:
    """Flag the session deleted; returns False if it was already gone."""
    stamp = now_token()
    eng = get_engine()
    with eng.begin() as conn:
        result = conn.execute(
            sql_text(
                """
                UPDATE ai_interview_sessions
                SET deleted_at = :stamp
                WHERE id = :id AND deleted_at IS NULL
                """
            ),
            {"id": session_id, "stamp": stamp},
        )
    return result.rowcount == 1


__all__ = [
    "create_session",
    "get_session",
    "list_sessions_for_user",
    "update_answers_if_token",
    "update_answers_if_version",
    "mark_completed",
    "soft_delete_session",
]
