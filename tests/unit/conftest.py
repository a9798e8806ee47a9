from __future__ import annotations

"""Unit test bootstrap: async tests run on asyncio via the anyio plugin."""

import pytest


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"
