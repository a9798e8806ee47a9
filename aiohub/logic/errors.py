"""Domain exceptions for interview session operations.

Raised by the service layer and translated into JSON error bodies by
`aiohub.http.problem`. Each exception carries its error code so the
mapping to HTTP status lives in `aiohub.config.error_mapping` only.
"""

from __future__ import annotations

from typing import Any


class InterviewSessionError(Exception):
    code = "internal_error"

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message)
        self.message = message


class SessionValidationError(InterviewSessionError, ValueError):
    code = "validation_error"


class AuthenticationRequired(InterviewSessionError):
    code = "authentication_required"

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class SessionAccessDenied(InterviewSessionError):
    code = "forbidden"

    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(message)


class SessionNotFound(InterviewSessionError):
    code = "not_found"

    def __init__(self, session_id: str) -> None:
        super().__init__("Session not found")
        self.session_id = session_id


class SessionReadOnly(InterviewSessionError):
    code = "readonly_session"

    def __init__(self, session_id: str) -> None:
        super().__init__("Cannot modify completed session")
        self.session_id = session_id


class AnswerConflict(InterviewSessionError):
    """The caller's concurrency token is stale; nothing was applied."""

    code = "conflict"

    def __init__(self, latest: dict[str, Any]) -> None:
        super().__init__("Session has been updated elsewhere.")
        self.latest = latest


class TransientStoreError(InterviewSessionError):
    """Persistence failed before anything was applied; safe to retry."""

    code = "database_error"

    def __init__(self, message: str = "Failed to update session") -> None:
        super().__init__(message)


class RateLimited(InterviewSessionError):
    code = "rate_limited"

    def __init__(self, retry_after: int) -> None:
        super().__init__("Too many requests")
        self.retry_after = int(retry_after)


__all__ = [
    "InterviewSessionError",
    "SessionValidationError",
    "AuthenticationRequired",
    "SessionAccessDenied",
    "SessionNotFound",
    "SessionReadOnly",
    "AnswerConflict",
    "TransientStoreError",
    "RateLimited",
]
