"""Problem+JSON exception handlers.

Translates domain exceptions, FastAPI validation errors, stray
HTTPExceptions and unexpected failures into application/problem+json
responses carrying the `{success, code, message}` envelope.
"""

from __future__ import annotations

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from aiohub.config.error_mapping import status_for
from aiohub.logic.errors import InterviewSessionError, RateLimited
from aiohub.logic.problem_factory import (
    problem,
    problem_from_error,
    problem_internal_error,
    problem_validation,
)

PROBLEM_MEDIA_TYPE = "application/problem+json"

logger = logging.getLogger(__name__)

_STATUS_CODES = {
    400: "validation_error",
    401: "authentication_required",
    403: "forbidden",
    404: "not_found",
    409: "conflict",
    415: "unsupported_media_type",
    429: "rate_limited",
}


async def handle_session_error(request: Request, exc: InterviewSessionError) -> JSONResponse:  # noqa: D401
    body = problem_from_error(exc)
    headers = None
    if isinstance(exc, RateLimited):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(
        body,
        status_code=status_for(exc.code),
        media_type=PROBLEM_MEDIA_TYPE,
        headers=headers,
    )


async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:  # noqa: D401
    status_code = int(getattr(exc, "status_code", 500) or 500)
    code = _STATUS_CODES.get(status_code, "internal_error")
    body = problem(code, str(exc.detail or ""))
    body["status"] = status_code
    headers = dict(exc.headers) if isinstance(getattr(exc, "headers", None), dict) else None
    return JSONResponse(body, status_code=status_code, media_type=PROBLEM_MEDIA_TYPE, headers=headers)


async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:  # noqa: D401
    errors = [
        {"loc": jsonable_encoder(err.get("loc", ())), "msg": str(err.get("msg", "")), "type": str(err.get("type", ""))}
        for err in exc.errors()
    ]
    first = errors[0]["msg"] if errors else None
    body = problem_validation(str(first or "Request validation failed"), errors)
    return JSONResponse(body, status_code=status_for("validation_error"), media_type=PROBLEM_MEDIA_TYPE)


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:  # noqa: D401
    logger.error("unexpected_error path=%s", request.url.path, exc_info=exc)
    return JSONResponse(problem_internal_error(), status_code=500, media_type=PROBLEM_MEDIA_TYPE)


__all__ = [
    "PROBLEM_MEDIA_TYPE",
    "handle_session_error",
    "handle_http_exception",
    "handle_request_validation_error",
    "handle_unexpected_error",
]
