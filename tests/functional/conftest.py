from __future__ import annotations

"""Functional test bootstrap for the interview session API.

Points the service at a file-backed SQLite database under a pytest temp
directory and applies the project's migrations once per session. The
migration files are copied next to the database so the runner's journal
never lands in the repository.
"""

import os
import shutil
import uuid
from pathlib import Path
from typing import Callable, Dict, Optional

import pytest

_ROOT = Path(__file__).resolve().parents[2]

# Set before any engine is built; get_engine() reads these lazily
os.environ["AUTO_APPLY_MIGRATIONS"] = "0"
os.environ["RATE_LIMIT_MAX_REQUESTS"] = "100000"


@pytest.fixture(scope="session", autouse=True)
def functional_sqlite_bootstrap(tmp_path_factory: pytest.TempPathFactory):
    """Session-level bootstrap: fresh DB file plus migrations applied once."""
    from aiohub.db.base import get_engine, reset_engine
    from aiohub.db.migrations_runner import apply_migrations

    workdir = tmp_path_factory.mktemp("aiohub_db")
    db_file = workdir / "functional_tests.db"
    os.environ["TEST_DATABASE_URL"] = f"sqlite:///{db_file}"
    os.environ["DATABASE_URL"] = os.environ["TEST_DATABASE_URL"]

    migrations_dir = workdir / "migrations"
    shutil.copytree(_ROOT / "migrations", migrations_dir)

    reset_engine()
    apply_migrations(get_engine(), migrations_dir=migrations_dir)
    yield
    reset_engine()


@pytest.fixture(autouse=True)
def clear_events():
    from aiohub.logic.events import get_buffered_events

    get_buffered_events(clear=True)
    yield
    get_buffered_events(clear=True)


@pytest.fixture()
def client():
    from fastapi.testclient import TestClient
    from aiohub.main import create_app

    with TestClient(create_app()) as c:
        yield c


@pytest.fixture()
def user_id() -> str:
    return f"user-{uuid.uuid4()}"


def auth(user: str) -> Dict[str, str]:
    return {"X-User-Id": user}


@pytest.fixture()
def make_session(client) -> Callable[..., Dict[str, object]]:
    """Create a session through the API and return its `data` object."""

    def _make(user: str, *, organization_id: Optional[str] = None, content_type: str = "service"):
        body: Dict[str, object] = {"content_type": content_type}
        if organization_id:
            body["organization_id"] = organization_id
        resp = client.post("/api/v1/my/interview/sessions", json=body, headers=auth(user))
        assert resp.status_code == 201, resp.text
        return resp.json()["data"]

    return _make


@pytest.fixture()
def add_member():
    from aiohub.logic.repository_members import add_member as _add

    def _add_member(organization_id: str, user: str, role: str = "editor") -> None:
        _add(organization_id, user, role)

    return _add_member
