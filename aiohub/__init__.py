"""FastAPI application package for the AIO Hub interview service.

Exposes the application factory. Diff-save and session lifecycle logic
lives in `aiohub/logic/`, route handlers in `aiohub/routes/` and the
client-side autosave controller in `aiohub/client/`.

`create_app` is resolved on first access so importing `aiohub.client`
does not load the server stack.
"""

from __future__ import annotations

from typing import Any


def __getattr__(name: str) -> Any:
    if name == "create_app":
        from aiohub.main import create_app

        return create_app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["create_app"]
