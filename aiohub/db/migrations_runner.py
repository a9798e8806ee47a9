"""Lightweight SQL migrations runner.

Applies .sql files in lexical order from the `migrations/` directory.
Skips rollback files and records applied filenames in a file-backed journal
(`migrations/_journal.json`) to avoid reapplying the same migration. Intended
for local development and CI; production environments should use the
platform's migration mechanism.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from sqlalchemy.engine import Connection, Engine

logger = logging.getLogger(__name__)

DEFAULT_MIGRATIONS_DIR = Path(__file__).resolve().parents[2] / "migrations"


def _iter_sql_files(root: Path) -> Iterable[Path]:
    for p in sorted(root.glob("*.sql")):
        # Skip rollback scripts in forward runs
        if "rollback" in p.name.lower():
            continue
        yield p


def _exec_sql_compat(conn: Connection, sql: str) -> None:
    """Execute SQL text, tolerating multi-statement files on SQLite.

    SQLite's DB-API (pysqlite) does not allow multiple statements in a single
    execute() call, so statements are split on ';' for SQLite only. Other
    dialects receive the full script as-is.
    """
    name = (getattr(conn.dialect, "name", "") or "").lower()
    if "sqlite" in name:
        for stmt in sql.split(";"):
            s = "\n".join(
                line for line in (stmt or "").splitlines() if not line.strip().startswith("--")
            ).strip()
            if not s:
                continue
            if s.upper() in {"BEGIN", "COMMIT", "END"}:
                continue
            conn.exec_driver_sql(s)
        return
    conn.exec_driver_sql(sql)


def apply_migrations(engine: Engine, migrations_dir: str | os.PathLike[str] | None = None) -> list[str]:
    """Apply pending migrations and return the filenames applied by this call."""
    root = Path(migrations_dir) if migrations_dir is not None else DEFAULT_MIGRATIONS_DIR
    if not root.exists():
        logger.warning("migrations_dir_missing path=%s", str(root))
        return []

    journal_path = root / "_journal.json"

    journal_entries: list[dict] = []
    applied: set[str] = set()
    if journal_path.exists():
        try:
            data = json.loads(journal_path.read_text(encoding="utf-8"))
            if isinstance(data, list):
                journal_entries = [e for e in data if isinstance(e, dict)]
                applied = {
                    Path(e.get("filename", "")).name
                    for e in journal_entries
                    if isinstance(e.get("filename"), str)
                }
        except (OSError, json.JSONDecodeError):
            # Start fresh on any parse error; migrations are idempotent DDL
            logger.error("migration_journal_parse_failed path=%s", str(journal_path), exc_info=True)
            journal_entries = []
            applied = set()

    newly_applied: list[str] = []
    with engine.begin() as conn:
        for sql_path in _iter_sql_files(root):
            fname = sql_path.name
            if fname in applied:
                continue
            sql = sql_path.read_text(encoding="utf-8")
            if not sql.strip():
                continue
            _exec_sql_compat(conn, sql)
            logger.info("migration_applied file=%s", fname)
            newly_applied.append(fname)

            entry = {
                "filename": f"migrations/{fname}",
                # ISO-8601 UTC without fractional seconds (e.g., 2024-01-01T00:00:00Z)
                "applied_at": datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
            }
            journal_entries.append(entry)
            _atomic_write_json(journal_path, journal_entries)
    return newly_applied


def _atomic_write_json(path: Path, content: list[dict]) -> None:
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(json.dumps(content, ensure_ascii=False, indent=2), encoding="utf-8")
    os.replace(tmp_path, path)


__all__ = ["apply_migrations", "DEFAULT_MIGRATIONS_DIR"]
