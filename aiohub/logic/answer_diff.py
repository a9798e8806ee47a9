"""Single-key mutation of a session's answers mapping.

Answers are stored as one JSON object keyed by question id. An explicit
`None` or empty string removes the key; any other JSON value replaces it.
"""

from __future__ import annotations

import json
from typing import Any, Dict

from aiohub.logic.errors import SessionValidationError


def is_delete(value: Any) -> bool:
    return value is None or value == ""


def apply_answer_diff(answers: Dict[str, Any], question_id: str, new_answer: Any) -> Dict[str, Any]:
    """Return a new mapping with `question_id` set or removed.

    The input mapping is never mutated.
    """
    if not isinstance(question_id, str) or not question_id:
        raise SessionValidationError("questionId must be a non-empty string")
    updated = dict(answers or {})
    if is_delete(new_answer):
        updated.pop(question_id, None)
    else:
        updated[question_id] = new_answer
    return updated


def dump_answers(answers: Dict[str, Any]) -> str:
    """Serialize answers for storage; non-JSON values are a validation error."""
    try:
        return json.dumps(answers, ensure_ascii=False, sort_keys=True, allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise SessionValidationError(f"answers must be JSON-serializable: {exc}") from exc


def load_answers(raw: Any) -> Dict[str, Any]:
    """Decode the stored blob; dict values from drivers with native JSON pass through."""
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    parsed = json.loads(raw)
    if not isinstance(parsed, dict):
        raise ValueError("stored answers must be a JSON object")
    return parsed


def strip_deletes(answers: Dict[str, Any]) -> Dict[str, Any]:
    """Drop keys whose values carry delete semantics (used by full saves)."""
    return {key: value for key, value in (answers or {}).items() if not is_delete(value)}


__all__ = ["is_delete", "apply_answer_diff", "dump_answers", "load_answers", "strip_deletes"]
