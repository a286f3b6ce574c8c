from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

__all__ = ["upsert"]


async def upsert(
    session: AsyncSession,
    table: Any,
    values: dict[str, Any],
    *,
    conflict_on: Sequence[str],
) -> None:
    """INSERT .. ON CONFLICT DO UPDATE for PostgreSQL and SQLite."""

    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(table)
    elif dialect == "sqlite":
        stmt = sqlite_insert(table)
    else:
        raise NotImplementedError(f"upsert is not supported for {dialect}")
    stmt = stmt.values(**values)
    update_cols = {
        key: stmt.excluded[key] for key in values if key not in set(conflict_on)
    }
    stmt = stmt.on_conflict_do_update(index_elements=list(conflict_on), set_=update_cols)
    await session.execute(stmt)
