"""Organization membership lookups for the session access guard."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import text as sql_text

from aiohub.db.base import get_engine

WRITE_ROLES = frozenset({"admin", "editor"})


def get_member_role(organization_id: str, user_id: str) -> Optional[str]:
    eng = get_engine()
    with eng.connect() as conn:
        row = conn.execute(
            sql_text(
                "SELECT role FROM organization_members "
                "WHERE organization_id = :org AND user_id = :uid"
            ),
            {"org": organization_id, "uid": user_id},
        ).fetchone()
    return str(row[0]) if row is not None else None


def add_member(organization_id: str, user_id: str, role: str = "editor") -> None:
    """Insert or update a membership row (seeding and admin tooling)."""
    eng = get_engine()
    with eng.begin() as conn:
        conn.execute(
            sql_text("DELETE FROM organization_members WHERE organization_id = :org AND user_id = :uid"),
            {"org": organization_id, "uid": user_id},
        )
        conn.execute(
            sql_text(
                "INSERT INTO organization_members (organization_id, user_id, role) "
                "VALUES (:org, :uid, :role)"
            ),
            {"org": organization_id, "uid": user_id, "role": role},
        )


__all__ = ["WRITE_ROLES", "get_member_role", "add_member"]
