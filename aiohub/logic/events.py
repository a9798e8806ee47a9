"""Domain event constants and publisher.

Defines event type constants and a simple publish() callable used by
save, conflict and delete flows.
"""

from __future__ import annotations

from collections import deque
from typing import Any, Deque, Dict, List
import logging

logger = logging.getLogger(__name__)

ANSWER_SAVED = "interview.answer_saved"
ANSWER_CONFLICT = "interview.answer_conflict"
ANSWERS_REPLACED = "interview.answers_replaced"
QUESTION_ANSWERED = "interview.question_answered"
SESSION_CREATED = "interview.session_created"
SESSION_COMPLETED = "interview.session_completed"
SESSION_DELETED = "interview.session_deleted"

# Most recent events only; older entries fall off the left
EVENT_BUFFER_SIZE = 1000
EVENT_BUFFER: Deque[Dict[str, Any]] = deque(maxlen=EVENT_BUFFER_SIZE)


def publish(event_type: str, payload: Dict[str, Any]) -> None:
    """Publish a domain event.

    Events are logged for observability and the latest EVENT_BUFFER_SIZE
    are kept in memory. Publication is fire-and-forget: a failure here
    must never fail the write that triggered it.
    """
    try:
        logger.info("event_publish type=%s payload=%s", event_type, payload)
        EVENT_BUFFER.append({"type": event_type, "payload": dict(payload)})
    except Exception:
        logger.error("event_publish_failed type=%s", event_type, exc_info=True)


def get_buffered_events(clear: bool = True) -> List[Dict[str, Any]]:
    """Return buffered domain events; optionally clear the buffer."""
    events = list(EVENT_BUFFER)
    if clear:
        EVENT_BUFFER.clear()
    return events


__all__ = [
    "ANSWER_SAVED",
    "ANSWER_CONFLICT",
    "ANSWERS_REPLACED",
    "QUESTION_ANSWERED",
    "SESSION_CREATED",
    "SESSION_COMPLETED",
    "SESSION_DELETED",
    "publish",
    "get_buffered_events",
    "EVENT_BUFFER",
    "EVENT_BUFFER_SIZE",
]
