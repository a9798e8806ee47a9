"""Functional tests for the answer diff-save endpoint.

Drives `POST /api/v1/my/interview/sessions/{id}/answers/diff` through the
in-process FastAPI app against a file-backed SQLite database. Covers the
success path, conflict detection (pre-read and lost race), delete
semantics, retry after a transient failure and every error mode.
"""

from __future__ import annotations

import os
import threading
import uuid
from typing import Any, Dict, List

import jsonschema
import pytest
from sqlalchemy.exc import OperationalError

from aiohub.logic import repository_sessions, session_service
from aiohub.logic.errors import AnswerConflict
from aiohub.logic.events import get_buffered_events


SESSIONS = "/api/v1/my/interview/sessions"

CONFLICT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["success", "code", "message", "latest"],
    "properties": {
        "success": {"const": False},
        "code": {"const": "conflict"},
        "message": {"type": "string", "minLength": 1},
        "latest": {
            "type": "object",
            "required": ["id", "version", "updatedAt", "answers"],
            "properties": {
                "id": {"type": "string"},
                "version": {"type": "integer", "minimum": 0},
                "updatedAt": {"type": "string", "minLength": 1},
                "answers": {"type": "object"},
            },
        },
    },
}

ERROR_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["success", "code", "message", "title", "status"],
    "properties": {
        "success": {"const": False},
        "code": {"type": "string"},
        "message": {"type": "string"},
        "status": {"type": "integer"},
    },
}


def auth(user: str) -> Dict[str, str]:
    return {"X-User-Id": user}


def diff(client, session_id: str, user: str, question_id: str, new_answer: Any, previous: str):
    return client.post(
        f"{SESSIONS}/{session_id}/answers/diff",
        json={"questionId": question_id, "newAnswer": new_answer, "previousUpdatedAt": previous},
        headers=auth(user),
    )


def test_first_save_applies_answer_and_returns_new_token(client, make_session, user_id):
    session = make_session(user_id)
    t0 = session["updated_at"]

    resp = diff(client, session["id"], user_id, "q1", "hello", t0)

    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["ok"] is True
    assert body["version"] == 1
    assert body["answers"] == {"q1": "hello"}
    assert body["updatedAt"] != t0
    stored = repository_sessions.get_session(session["id"])
    assert stored["answers"] == {"q1": "hello"}
    assert stored["updated_at"] == body["updatedAt"]
    assert stored["status"] == "in_progress"


def test_stale_token_conflicts_with_winner_state(client, make_session, user_id):
    session = make_session(user_id)
    t1 = diff(client, session["id"], user_id, "q1", "hello", session["updated_at"]).json()["updatedAt"]

    # Both callers hold t1; X saves first
    x = diff(client, session["id"], user_id, "q2", "x", t1)
    assert x.status_code == 200
    t2 = x.json()["updatedAt"]

    y = diff(client, session["id"], user_id, "q3", "y", t1)

    assert y.status_code == 409
    assert y.headers["content-type"].startswith("application/problem+json")
    body = y.json()
    jsonschema.validate(body, CONFLICT_SCHEMA)
    assert body["latest"]["answers"] == {"q1": "hello", "q2": "x"}
    assert body["latest"]["updatedAt"] == t2
    assert body["latest"]["version"] == 2
    assert repository_sessions.get_session(session["id"])["answers"] == {"q1": "hello", "q2": "x"}


def test_equivalent_iso_spelling_of_token_is_accepted(client, make_session, user_id):
    session = make_session(user_id)
    token = session["updated_at"]
    assert token.endswith("Z")
    spelled = token[:-1] + "+00:00"

    resp = diff(client, session["id"], user_id, "q1", "a", spelled)

    assert resp.status_code == 200, resp.text


@pytest.mark.parametrize("cleared", [None, ""])
def test_null_or_empty_answer_removes_key(client, make_session, user_id, cleared):
    session = make_session(user_id)
    t1 = diff(client, session["id"], user_id, "q1", "hello", session["updated_at"]).json()["updatedAt"]

    resp = diff(client, session["id"], user_id, "q1", cleared, t1)

    assert resp.status_code == 200
    assert "q1" not in resp.json()["answers"]
    detail = client.get(f"{SESSIONS}/{session['id']}", headers=auth(user_id)).json()
    assert "q1" not in detail["data"]["answers"]


def test_omitted_new_answer_is_treated_as_delete(client, make_session, user_id):
    session = make_session(user_id)
    t1 = diff(client, session["id"], user_id, "q1", "hello", session["updated_at"]).json()["updatedAt"]

    resp = client.post(
        f"{SESSIONS}/{session['id']}/answers/diff",
        json={"questionId": "q1", "previousUpdatedAt": t1},
        headers=auth(user_id),
    )

    assert resp.status_code == 200
    assert resp.json()["answers"] == {}


def test_structured_answers_round_trip(client, make_session, user_id):
    session = make_session(user_id)
    value = {"choices": ["a", "b"], "score": 3, "notes": None}

    resp = diff(client, session["id"], user_id, "q-structured", value, session["updated_at"])

    assert resp.status_code == 200
    assert resp.json()["answers"]["q-structured"] == value


def test_unknown_session_is_not_found_and_creates_nothing(client, user_id):
    missing = str(uuid.uuid4())

    resp = diff(client, missing, user_id, "q1", "x", "2024-01-01T00:00:00.000000Z")

    assert resp.status_code == 404
    body = resp.json()
    jsonschema.validate(body, ERROR_SCHEMA)
    assert body["code"] == "not_found"
    assert repository_sessions.get_session(missing) is None


def test_soft_deleted_session_is_not_found(client, make_session, user_id):
    session = make_session(user_id)
    assert client.delete(f"{SESSIONS}/{session['id']}", headers=auth(user_id)).status_code == 200

    resp = diff(client, session["id"], user_id, "q1", "x", session["updated_at"])

    assert resp.status_code == 404


def test_completed_session_is_read_only(client, make_session, user_id):
    session = make_session(user_id)
    done = client.post(f"{SESSIONS}/{session['id']}/complete", headers=auth(user_id))
    assert done.status_code == 200, done.text

    resp = diff(client, session["id"], user_id, "q1", "x", done.json()["data"]["updated_at"])

    assert resp.status_code == 400
    assert resp.json()["code"] == "readonly_session"


def test_invalid_session_id_is_validation_error(client, user_id):
    resp = diff(client, "not-a-uuid", user_id, "q1", "x", "2024-01-01T00:00:00Z")

    assert resp.status_code == 400
    assert resp.json()["code"] == "validation_error"


@pytest.mark.parametrize(
    "payload",
    [
        {"newAnswer": "x", "previousUpdatedAt": "2024-01-01T00:00:00Z"},
        {"questionId": "", "newAnswer": "x", "previousUpdatedAt": "2024-01-01T00:00:00Z"},
        {"questionId": "   ", "newAnswer": "x", "previousUpdatedAt": "2024-01-01T00:00:00Z"},
        {"questionId": "q1", "newAnswer": "x"},
        {"questionId": "q1", "newAnswer": "x", "previousUpdatedAt": "yesterday"},
    ],
)
def test_malformed_body_is_validation_error(client, make_session, user_id, payload):
    session = make_session(user_id)

    resp = client.post(f"{SESSIONS}/{session['id']}/answers/diff", json=payload, headers=auth(user_id))

    assert resp.status_code == 400
    body = resp.json()
    jsonschema.validate(body, ERROR_SCHEMA)
    assert body["code"] == "validation_error"
    assert repository_sessions.get_session(session["id"])["version"] == 0


def test_missing_identity_is_unauthorized(client, make_session, user_id):
    session = make_session(user_id)

    resp = client.post(
        f"{SESSIONS}/{session['id']}/answers/diff",
        json={"questionId": "q1", "newAnswer": "x", "previousUpdatedAt": session["updated_at"]},
    )

    assert resp.status_code == 401
    assert resp.json()["code"] == "authentication_required"


def test_other_users_personal_session_is_forbidden(client, make_session, user_id):
    session = make_session(user_id)

    resp = diff(client, session["id"], f"intruder-{uuid.uuid4()}", "q1", "x", session["updated_at"])

    assert resp.status_code == 403
    assert resp.json()["code"] == "forbidden"
    assert repository_sessions.get_session(session["id"])["answers"] == {}


def test_org_viewer_cannot_write_but_editor_can(client, make_session, add_member, user_id):
    org = f"org-{uuid.uuid4()}"
    viewer = f"viewer-{uuid.uuid4()}"
    editor = f"editor-{uuid.uuid4()}"
    add_member(org, user_id, "admin")
    add_member(org, viewer, "viewer")
    add_member(org, editor, "editor")
    session = make_session(user_id, organization_id=org)

    denied = diff(client, session["id"], viewer, "q1", "x", session["updated_at"])
    allowed = diff(client, session["id"], editor, "q1", "x", session["updated_at"])

    assert denied.status_code == 403
    assert allowed.status_code == 200


def test_non_json_content_type_is_rejected_before_parsing(client, make_session, user_id):
    session = make_session(user_id)

    resp = client.post(
        f"{SESSIONS}/{session['id']}/answers/diff",
        content=b"questionId=q1",
        headers={**auth(user_id), "Content-Type": "application/x-www-form-urlencoded"},
    )

    assert resp.status_code == 415
    assert resp.headers["content-type"].startswith("application/problem+json")
    assert resp.json()["code"] == "unsupported_media_type"


def test_rate_limit_rejects_excess_requests_with_retry_after(make_session, user_id):
    from fastapi.testclient import TestClient
    from aiohub.config import AppConfig, AutosaveConfig, DatabaseConfig, RateLimitConfig
    from aiohub.logic.rate_limit import InMemoryRateLimitStore
    from aiohub.main import create_app

    session = make_session(user_id)
    cfg = AppConfig(
        database=DatabaseConfig(dsn=os.environ["TEST_DATABASE_URL"]),
        autosave=AutosaveConfig(),
        rate_limit=RateLimitConfig(window_seconds=60, max_requests=2),
    )
    with TestClient(create_app(cfg, rate_limit_store=InMemoryRateLimitStore())) as limited:
        token = session["updated_at"]
        for answer in ("a", "b"):
            ok = diff(limited, session["id"], user_id, "q1", answer, token)
            assert ok.status_code == 200
            token = ok.json()["updatedAt"]

        resp = diff(limited, session["id"], user_id, "q1", "c", token)

    assert resp.status_code == 429
    assert resp.json()["code"] == "rate_limited"
    assert int(resp.headers["Retry-After"]) >= 1
    assert repository_sessions.get_session(session["id"])["answers"] == {"q1": "b"}


def test_store_failure_is_transient_and_retry_applies(client, make_session, user_id, monkeypatch):
    session = make_session(user_id)
    real_update = repository_sessions.update_answers_if_token

    def failing_update(*args, **kwargs):
        raise OperationalError("UPDATE ai_interview_sessions", {}, Exception("connection reset"))

    monkeypatch.setattr(repository_sessions, "update_answers_if_token", failing_update)
    failed = diff(client, session["id"], user_id, "q1", "hello", session["updated_at"])
    assert failed.status_code == 500
    assert failed.json()["code"] == "database_error"
    assert repository_sessions.get_session(session["id"])["updated_at"] == session["updated_at"]

    monkeypatch.setattr(repository_sessions, "update_answers_if_token", real_update)
    retried = diff(client, session["id"], user_id, "q1", "hello", session["updated_at"])

    assert retried.status_code == 200
    assert retried.json()["answers"] == {"q1": "hello"}


def test_retry_after_someone_else_moved_token_conflicts_cleanly(client, make_session, user_id):
    session = make_session(user_id)
    other = diff(client, session["id"], user_id, "q2", "theirs", session["updated_at"])
    assert other.status_code == 200

    retried = diff(client, session["id"], user_id, "q1", "mine", session["updated_at"])

    assert retried.status_code == 409
    jsonschema.validate(retried.json(), CONFLICT_SCHEMA)
    assert repository_sessions.get_session(session["id"])["answers"] == {"q2": "theirs"}


def test_losing_the_race_after_the_read_reports_winner_state(make_session, user_id, monkeypatch):
    """A writer whose pre-read passed still loses if the guarded update finds a newer token."""
    session = make_session(user_id)
    caller = session_service.Caller(user_id=user_id)
    stale = repository_sessions.get_session(session["id"])
    winner = session_service.save_answer_diff(session["id"], "q1", "winner", stale["updated_at"], caller)

    calls: List[int] = []
    real_get = repository_sessions.get_session

    def get_stale_first(session_id: str):
        calls.append(1)
        return dict(stale) if len(calls) == 1 else real_get(session_id)

    monkeypatch.setattr(repository_sessions, "get_session", get_stale_first)

    with pytest.raises(AnswerConflict) as info:
        session_service.save_answer_diff(session["id"], "q1", "loser", stale["updated_at"], caller)

    assert info.value.latest["updatedAt"] == winner["updated_at"]
    assert info.value.latest["answers"] == {"q1": "winner"}
    assert real_get(session["id"])["answers"] == {"q1": "winner"}


def test_concurrent_saves_with_same_token_have_one_winner(make_session, user_id):
    session = make_session(user_id)
    caller = session_service.Caller(user_id=user_id)
    token = session["updated_at"]
    barrier = threading.Barrier(2)
    results: Dict[str, Any] = {}

    def attempt(name: str, value: str) -> None:
        barrier.wait()
        try:
            results[name] = session_service.save_answer_diff(session["id"], "q1", value, token, caller)
        except AnswerConflict as exc:
            results[name] = exc

    threads = [threading.Thread(target=attempt, args=(n, n)) for n in ("a", "b")]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    winners = {k: v for k, v in results.items() if isinstance(v, dict)}
    losers = {k: v for k, v in results.items() if isinstance(v, AnswerConflict)}
    assert len(winners) == 1 and len(losers) == 1
    (winner_name, winner), = winners.items()
    (loser,) = losers.values()
    assert loser.latest["updatedAt"] == winner["updated_at"]
    stored = repository_sessions.get_session(session["id"])
    assert stored["answers"] == {"q1": winner_name}
    assert stored["version"] == 1


def test_success_and_conflict_publish_events(client, make_session, add_member, user_id):
    org = f"org-{uuid.uuid4()}"
    add_member(org, user_id, "editor")
    session = make_session(user_id, organization_id=org)
    get_buffered_events(clear=True)

    diff(client, session["id"], user_id, "q1", "hello", session["updated_at"])
    diff(client, session["id"], user_id, "q2", "late", session["updated_at"])

    types = [e["type"] for e in get_buffered_events()]
    assert types == [
        "interview.answer_saved",
        "interview.question_answered",
        "interview.answer_conflict",
    ]


def test_request_id_is_echoed(client, make_session, user_id):
    session = make_session(user_id)

    resp = client.post(
        f"{SESSIONS}/{session['id']}/answers/diff",
        json={"questionId": "q1", "newAnswer": "x", "previousUpdatedAt": session["updated_at"]},
        headers={**auth(user_id), "X-Request-Id": "req-123"},
    )

    assert resp.headers["X-Request-Id"] == "req-123"
