"""Central error mapping for interview session failures.

Single source of truth for mapping domain outcomes to error codes, HTTP
statuses and titles. Route and handler modules import from here instead of
hardcoding strings or numbers.
"""

from __future__ import annotations

ERROR_MAP: dict[str, dict[str, object]] = {
    "validation_error": {"status": 400, "title": "Invalid Request"},
    "readonly_session": {"status": 400, "title": "Read-only Session"},
    "authentication_required": {"status": 401, "title": "Unauthorized"},
    "forbidden": {"status": 403, "title": "Forbidden"},
    "not_found": {"status": 404, "title": "Not Found"},
    "conflict": {"status": 409, "title": "Conflict"},
    "unsupported_media_type": {"status": 415, "title": "Unsupported Media Type"},
    "rate_limited": {"status": 429, "title": "Too Many Requests"},
    "database_error": {"status": 500, "title": "Internal Server Error"},
    "internal_error": {"status": 500, "title": "Internal Server Error"},
}


def status_for(code: str) -> int:
    return int(ERROR_MAP.get(code, ERROR_MAP["internal_error"])["status"])  # type: ignore[arg-type]


def title_for(code: str) -> str:
    return str(ERROR_MAP.get(code, ERROR_MAP["internal_error"])["title"])


__all__ = ["ERROR_MAP", "status_for", "title_for"]
