"""Pre-body content-type middleware for interview session writes.

Rejects write requests whose Content-Type is present and not
application/json with 415 before routing, dependency evaluation or body
parsing. A missing Content-Type passes through; body validation then owns
the outcome.
"""

from __future__ import annotations

import json
import re
from typing import Iterable, Tuple

from fastapi import FastAPI

from aiohub.logic.problem_factory import problem_unsupported_media_type

_WRITE_METHODS = {"PATCH", "POST", "PUT"}
_SESSION_ROUTES = re.compile(r"/api/v1/my/interview/sessions(/.*)?")


class PreconditionsMiddleware:  # pragma: no cover - exercised by functional tests
    """ASGI middleware enforcing a JSON Content-Type on session write routes."""

    def __init__(self, app: FastAPI):
        self.app = app

    async def __call__(self, scope, receive, send):  # type: ignore[no-untyped-def]
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        method = str(scope.get("method") or "").upper()
        path = str(scope.get("path") or "")
        if method not in _WRITE_METHODS or not _SESSION_ROUTES.fullmatch(path):
            await self.app(scope, receive, send)
            return

        headers = dict(_decode_headers(scope.get("headers") or []))
        raw_ctype = headers.get("content-type", "")
        ctype_base = raw_ctype.split(";", 1)[0].strip().lower()
        if ctype_base and ctype_base != "application/json":
            body = json.dumps(problem_unsupported_media_type()).encode("utf-8")
            await send(
                {
                    "type": "http.response.start",
                    "status": 415,
                    "headers": [
                        (b"content-type", b"application/problem+json"),
                        (b"content-length", str(len(body)).encode("latin-1")),
                    ],
                }
            )
            await send({"type": "http.response.body", "body": body, "more_body": False})
            return

        await self.app(scope, receive, send)


def _decode_headers(scope_headers: Iterable[Tuple[bytes, bytes]]):  # type: ignore[no-untyped-def]
    for k, v in scope_headers:
        yield k.decode("latin-1").lower(), v.decode("latin-1")


__all__ = ["PreconditionsMiddleware"]
