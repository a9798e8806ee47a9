"""Centralised construction of error bodies.

Every error leaving the service has the same shape: the product envelope
`{success, code, message}` plus RFC 7807 `title` and `status`. Route and
middleware modules build bodies here instead of embedding literals.
"""

from __future__ import annotations

from typing import Any, Dict, Optional
import logging

from aiohub.config.error_mapping import status_for, title_for
from aiohub.logic.errors import AnswerConflict, InterviewSessionError


logger = logging.getLogger(__name__)


def problem(code: str, message: str, **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "success": False,
        "code": code,
        "message": message,
        "title": title_for(code),
        "status": status_for(code),
    }
    body.update(extra)
    try:
        logger.info("error_handler.handle", extra={"code": code})
    except Exception:
        pass
    return body


def problem_from_error(exc: InterviewSessionError) -> Dict[str, Any]:
    """Map a domain exception to its body; conflicts carry the latest row."""
    if isinstance(exc, AnswerConflict):
        return problem(exc.code, exc.message, latest=exc.latest)
    return problem(exc.code, exc.message)


def problem_validation(message: str, errors: Optional[list] = None) -> Dict[str, Any]:
    if errors:
        return problem("validation_error", message, errors=errors)
    return problem("validation_error", message)


def problem_unsupported_media_type() -> Dict[str, Any]:
    """Return a 415 body indicating Content-Type must be application/json."""
    return problem("unsupported_media_type", "Content-Type must be application/json")


def problem_internal_error() -> Dict[str, Any]:
    return problem("internal_error", "Internal server error")


__all__ = [
    "problem",
    "problem_from_error",
    "problem_validation",
    "problem_unsupported_media_type",
    "problem_internal_error",
]
