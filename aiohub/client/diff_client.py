"""HTTP transport for the answer diff-save endpoint.

Wraps an `httpx.AsyncClient` and turns every response into one of three
outcomes so the autosave controller never inspects status codes itself.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

import httpx
from pydantic import ValidationError

from aiohub.models.interview_session import ConflictResponse, SaveAnswerDiffResponse

logger = logging.getLogger(__name__)

SESSIONS_PATH = "/api/v1/my/interview/sessions"


@dataclass(frozen=True)
class ConflictLatest:
    id: str
    version: int
    updated_at: str
    answers: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SaveApplied:
    updated_at: str
    version: int
    answers: Dict[str, Any]


@dataclass(frozen=True)
class SaveConflicted:
    latest: ConflictLatest


@dataclass(frozen=True)
class SaveFailed:
    message: str
    status: Optional[int] = None
    # True when nothing was applied and the same request may be retried
    transient: bool = True


SaveOutcome = Union[SaveApplied, SaveConflicted, SaveFailed]


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {response.status_code}"


class DiffSaveClient:
    """Client for `POST /my/interview/sessions/{id}/answers/diff`."""

    def __init__(self, http: httpx.AsyncClient, user_id: str, base_path: str = SESSIONS_PATH) -> None:
        self.http = http
        self.user_id = user_id
        self.base_path = base_path.rstrip("/")

    @property
    def _headers(self) -> Dict[str, str]:
        return {"X-User-Id": self.user_id, "Content-Type": "application/json"}

    async def save_diff(
        self,
        session_id: str,
        question_id: str,
        new_answer: Any,
        previous_updated_at: str,
    ) -> SaveOutcome:
        payload = {
            "questionId": question_id,
            "newAnswer": new_answer,
            "previousUpdatedAt": previous_updated_at,
        }
        try:
            response = await self.http.post(
                f"{self.base_path}/{session_id}/answers/diff", json=payload, headers=self._headers
            )
        except httpx.HTTPError as exc:
            logger.warning("autosave.transport_error session_id=%s error=%s", session_id, exc)
            return SaveFailed(message=str(exc) or exc.__class__.__name__, transient=True)

        if response.status_code == 200:
            try:
                body = SaveAnswerDiffResponse.model_validate(response.json())
            except (ValueError, ValidationError) as exc:
                return SaveFailed(message=f"Malformed save response: {exc}", status=200, transient=False)
            return SaveApplied(updated_at=body.updated_at, version=body.version, answers=dict(body.answers))

        if response.status_code == 409:
            try:
                conflict = ConflictResponse.model_validate(response.json())
            except (ValueError, ValidationError) as exc:
                return SaveFailed(message=f"Malformed conflict response: {exc}", status=409, transient=False)
            latest = conflict.latest
            return SaveConflicted(
                latest=ConflictLatest(
                    id=latest.id,
                    version=latest.version,
                    updated_at=latest.updated_at,
                    answers=dict(latest.answers),
                )
            )

        transient = response.status_code >= 500 or response.status_code == 429
        return SaveFailed(message=_error_message(response), status=response.status_code, transient=transient)

    async def fetch_session(self, session_id: str) -> Dict[str, Any]:
        """Return the session detail body (`{data, readOnly}`); raises on non-2xx."""
        response = await self.http.get(f"{self.base_path}/{session_id}", headers={"X-User-Id": self.user_id})
        response.raise_for_status()
        return response.json()


__all__ = [
    "ConflictLatest",
    "SaveApplied",
    "SaveConflicted",
    "SaveFailed",
    "SaveOutcome",
    "DiffSaveClient",
    "SESSIONS_PATH",
]
