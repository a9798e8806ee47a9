"""Concurrency token helpers for diff-save.

The token is the session's `updated_at`, stored as canonical UTC text with
microsecond precision. Client tokens are parsed and re-rendered before
comparison so different ISO-8601 spellings of one instant compare equal.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

_CANONICAL_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
_ONE_TICK = timedelta(microseconds=1)


def format_token(moment: datetime) -> str:
    """Render an aware datetime as a canonical token."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime(_CANONICAL_FORMAT)


def parse_token(raw: str) -> datetime:
    """Parse an ISO-8601 token; naive values are taken as UTC.

    Raises ValueError for anything that is not an ISO-8601 timestamp.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise ValueError("timestamp must be a non-empty ISO-8601 string")
    text = raw.strip()
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def normalize_token(raw: str) -> str:
    return format_token(parse_token(raw))


def tokens_match(stored: str, presented: str) -> bool:
    try:
        return normalize_token(stored) == normalize_token(presented)
    except ValueError:
        return False


def now_token() -> str:
    return format_token(datetime.now(timezone.utc))


def next_token(previous: str, now: datetime | None = None) -> str:
    """Return a token strictly later than `previous`.

    If the clock has not advanced past the previous token (same tick or a
    rollback on the host), the new token is previous + 1µs.
    """
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    prior = parse_token(previous)
    if current <= prior:
        current = prior + _ONE_TICK
    return format_token(current)


__all__ = [
    "format_token",
    "parse_token",
    "normalize_token",
    "tokens_match",
    "now_token",
    "next_token",
]
