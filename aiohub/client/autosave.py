"""Debounced autosave for interview answers.

The controller keeps the local answers, remembers which questions changed
since their last acknowledged save and, once edits settle for the debounce
interval, sends one diff-save per changed question, in order, presenting
the most recently acknowledged `updatedAt` each time.

At most one save request is in flight per controller. A debounce that
fires while a batch is running is deferred until that batch finishes.
A conflict halts saving until `resolve_conflict` is called; nothing is
merged automatically.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol

from pydantic import JsonValue, TypeAdapter

from aiohub.client.diff_client import ConflictLatest, SaveApplied, SaveConflicted, SaveOutcome
from aiohub.config import AutosaveConfig
from aiohub.logic.answer_diff import apply_answer_diff

logger = logging.getLogger(__name__)

_ANSWER_ADAPTER: TypeAdapter = TypeAdapter(JsonValue)


class AutosaveStatus(str, Enum):
    IDLE = "idle"
    SAVING = "saving"
    SAVED = "saved"
    CONFLICT = "conflict"
    ERROR = "error"


class SaveTransport(Protocol):
    async def save_diff(
        self, session_id: str, question_id: str, new_answer: Any, previous_updated_at: str
    ) -> SaveOutcome: ...


class AutosaveController:
    def __init__(
        self,
        client: SaveTransport,
        session_id: str,
        *,
        answers: Optional[Dict[str, Any]] = None,
        updated_at: str,
        debounce: float = 1.0,
        saved_reset: float = 1.0,
        on_status: Optional[Callable[[AutosaveStatus], None]] = None,
    ) -> None:
        self.client = client
        self.session_id = session_id
        self.answers: Dict[str, Any] = dict(answers or {})
        self.updated_at = updated_at
        self.version: Optional[int] = None
        self.debounce = float(debounce)
        self.saved_reset = float(saved_reset)
        self.status = AutosaveStatus.IDLE
        self.error_message: Optional[str] = None
        self.conflict_latest: Optional[ConflictLatest] = None
        self._on_status = on_status
        # question ids in the order their latest edit settled
        self._dirty: "OrderedDict[str, None]" = OrderedDict()
        self._debounce_handle: Optional[asyncio.TimerHandle] = None
        self._reset_handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        self._in_flight = False
        self._deferred = False
        self._closed = False

    @classmethod
    def from_config(
        cls, client: SaveTransport, session_id: str, config: AutosaveConfig, **kwargs: Any
    ) -> "AutosaveController":
        """Build a controller whose timings come from the `autosave` config section."""
        kwargs.setdefault("debounce", config.debounce_seconds)
        kwargs.setdefault("saved_reset", config.saved_reset_seconds)
        return cls(client, session_id, **kwargs)

    @property
    def dirty_questions(self) -> List[str]:
        return list(self._dirty)

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def _set_status(self, status: AutosaveStatus) -> None:
        if status is self.status:
            return
        self.status = status
        if self._on_status is not None:
            try:
                self._on_status(status)
            except Exception:
                logger.error("autosave.status_callback_failed status=%s", status.value, exc_info=True)

    def set_answer(self, question_id: str, value: Any) -> None:
        """Record a local edit and restart the debounce timer.

        Raises pydantic `ValidationError` for values that cannot be sent as
        JSON; nothing is recorded in that case.
        """
        _ANSWER_ADAPTER.validate_python(value)
        self.answers = apply_answer_diff(self.answers, question_id, value)
        self._dirty.pop(question_id, None)
        self._dirty[question_id] = None
        if self.status is AutosaveStatus.CONFLICT or self._closed:
            return
        self._schedule()

    def _schedule(self) -> None:
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
        loop = asyncio.get_running_loop()
        self._debounce_handle = loop.call_later(self.debounce, self._on_debounce)

    def _on_debounce(self) -> None:
        self._debounce_handle = None
        if self._in_flight:
            self._deferred = True
            return
        self._start()

    def _start(self) -> None:
        if not self._dirty or self.status is AutosaveStatus.CONFLICT:
            return
        self._in_flight = True
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        try:
            while True:
                self._deferred = False
                if not await self._save_batch():
                    return
                if not (self._deferred and self._dirty) or self._closed:
                    return
        finally:
            self._in_flight = False

    async def _save_batch(self) -> bool:
        """Send every dirty question once; False when the batch was halted."""
        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None
        batch = list(self._dirty)
        self._dirty.clear()
        self.error_message = None
        self._set_status(AutosaveStatus.SAVING)

        for index, question_id in enumerate(batch):
            try:
                outcome = await self.client.save_diff(
                    self.session_id, question_id, self.answers.get(question_id), self.updated_at
                )
            except Exception as exc:
                # Unknown whether the write landed; keep the edit and let retry() decide
                self._requeue(batch[index:])
                self.error_message = f"Save failed: {exc}"
                logger.error(
                    "autosave.save_raised session_id=%s question_id=%s",
                    self.session_id,
                    question_id,
                    exc_info=True,
                )
                self._set_status(AutosaveStatus.ERROR)
                return False
            if isinstance(outcome, SaveApplied):
                self.updated_at = outcome.updated_at
                self.version = outcome.version
                continue

            self._requeue(batch[index:])
            if isinstance(outcome, SaveConflicted):
                self.conflict_latest = outcome.latest
                logger.warning(
                    "autosave.conflict session_id=%s question_id=%s latest_updated_at=%s",
                    self.session_id,
                    question_id,
                    outcome.latest.updated_at,
                )
                self._set_status(AutosaveStatus.CONFLICT)
            else:
                self.error_message = outcome.message
                logger.warning(
                    "autosave.failed session_id=%s question_id=%s transient=%s message=%s",
                    self.session_id,
                    question_id,
                    outcome.transient,
                    outcome.message,
                )
                self._set_status(AutosaveStatus.ERROR)
            return False

        self._set_status(AutosaveStatus.SAVED)
        if not self._closed:
            self._reset_handle = asyncio.get_running_loop().call_later(self.saved_reset, self._reset_saved)
        return True

    def _requeue(self, unsent: List[str]) -> None:
        # Failed and unsent questions go ahead of edits made during the batch
        merged: "OrderedDict[str, None]" = OrderedDict((q, None) for q in unsent)
        for question_id in self._dirty:
            merged.setdefault(question_id, None)
        self._dirty = merged

    def _reset_saved(self) -> None:
        self._reset_handle = None
        if self.status is AutosaveStatus.SAVED:
            self._set_status(AutosaveStatus.IDLE)

    def retry(self) -> None:
        """Resume saving after an error without waiting for another edit."""
        if self.status is not AutosaveStatus.ERROR or self._closed:
            return
        if self._in_flight:
            self._deferred = True
            return
        self._start()

    async def flush(self) -> None:
        """Save pending edits now and wait until no batch is running."""
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None
        if self._task is not None and not self._task.done():
            await self._task
        if self.status is AutosaveStatus.CONFLICT or self._closed:
            return
        self._start()
        if self._task is not None and not self._task.done():
            await self._task

    def resolve_conflict(self, use_latest: bool) -> None:
        """Leave the conflict state.

        `use_latest=True` replaces local answers with the server snapshot;
        otherwise local answers are kept. Both adopt the snapshot's token
        and drop the dirty queue.
        """
        latest = self.conflict_latest
        if latest is None:
            return
        if use_latest:
            self.answers = dict(latest.answers)
        self.updated_at = latest.updated_at
        self.version = latest.version
        self._dirty.clear()
        self.conflict_latest = None
        self.error_message = None
        logger.info(
            "autosave.conflict_resolved session_id=%s use_latest=%s updated_at=%s",
            self.session_id,
            use_latest,
            latest.updated_at,
        )
        self._set_status(AutosaveStatus.IDLE)

    async def aclose(self) -> None:
        """Cancel pending timers; an in-flight batch runs to completion."""
        self._closed = True
        for handle in (self._debounce_handle, self._reset_handle):
            if handle is not None:
                handle.cancel()
        self._debounce_handle = None
        self._reset_handle = None
        if self._task is not None and not self._task.done():
            await asyncio.shield(self._task)


__all__ = ["AutosaveStatus", "AutosaveController", "SaveTransport"]
