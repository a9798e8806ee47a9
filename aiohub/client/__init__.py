"""Client-side autosave for interview answers."""

from __future__ import annotations

from aiohub.client.autosave import AutosaveController, AutosaveStatus
from aiohub.client.diff_client import (
    ConflictLatest,
    DiffSaveClient,
    SaveApplied,
    SaveConflicted,
    SaveFailed,
)

__all__ = [
    "AutosaveController",
    "AutosaveStatus",
    "ConflictLatest",
    "DiffSaveClient",
    "SaveApplied",
    "SaveConflicted",
    "SaveFailed",
]
