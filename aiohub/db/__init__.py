"""Database bootstrap utilities for the interview service.

Exposes engine construction and the migrations runner that applies SQL
files from the project's migrations/ directory. The DB layer does not leak
ORM models into route handlers.
"""

from aiohub.db.base import get_engine, reset_engine
from aiohub.db.migrations_runner import apply_migrations

__all__ = [
    "get_engine",
    "reset_engine",
    "apply_migrations",
]
