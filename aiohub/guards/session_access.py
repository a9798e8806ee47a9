"""Request guards for the interview session routes.

FastAPI dependencies that resolve the caller, validate the session path
id and apply the per-caller rate limit before any handler body runs.
Ownership and membership checks need the stored row and live in
`aiohub.logic.session_service`.
"""

from __future__ import annotations

from typing import Annotated, Optional
import logging
import uuid

from fastapi import Depends, Header, Request

from aiohub.logic.errors import AuthenticationRequired, RateLimited, SessionValidationError
from aiohub.logic.rate_limit import RateLimiter
from aiohub.logic.session_service import Caller


logger = logging.getLogger(__name__)


def require_caller(x_user_id: Annotated[Optional[str], Header(alias="X-User-Id")] = None) -> Caller:
    """Resolve the authenticated caller from the gateway identity header."""
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationRequired()
    return Caller(user_id=x_user_id.strip())


def valid_session_id(session_id: str) -> str:
    try:
        return str(uuid.UUID(session_id))
    except (ValueError, AttributeError, TypeError) as exc:
        raise SessionValidationError("Invalid session ID") from exc


def rate_limit_guard(request: Request, caller: Annotated[Caller, Depends(require_caller)]) -> Caller:
    limiter: Optional[RateLimiter] = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        return caller
    decision = limiter.check(f"interview:{caller.user_id}")
    if not decision.allowed:
        logger.warning(
            "interview.rate_limited user_id=%s retry_after=%s", caller.user_id, decision.retry_after
        )
        raise RateLimited(decision.retry_after)
    return caller


CallerDep = Annotated[Caller, Depends(require_caller)]
LimitedCallerDep = Annotated[Caller, Depends(rate_limit_guard)]
SessionIdDep = Annotated[str, Depends(valid_session_id)]


__all__ = [
    "require_caller",
    "valid_session_id",
    "rate_limit_guard",
    "CallerDep",
    "LimitedCallerDep",
    "SessionIdDep",
]
