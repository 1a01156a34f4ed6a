"""
Dialect helpers for bulk upserts.

Postgres and SQLite both support INSERT ... ON CONFLICT with an `excluded`
pseudo-table; SQLAlchemy exposes them through dialect-specific insert()
constructs with the same API.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


def upsert_insert(session: AsyncSession, model: Any) -> Any:
    """Return an ON CONFLICT-capable insert() for the session's database."""
    if session.get_bind().dialect.name == "postgresql":
        return postgresql.insert(model)
    return sqlite.insert(model)


def excluded_columns(stmt: Any, columns: list[str]) -> dict[str, Any]:
    """Map each column to excluded.<column> for an ON CONFLICT DO UPDATE set_."""
    return {name: getattr(stmt.excluded, name) for name in columns}
