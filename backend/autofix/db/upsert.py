from typing import Any

from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


async def insert_ignore(session: AsyncSession, table: Table, key: str, values: dict[str, Any]) -> bool:
    """Insert a row unless one with the same key already exists.

    Returns True when a new row was written.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(table).values(**values).on_conflict_do_nothing(index_elements=[key])
    elif dialect == "sqlite":
        stmt = sqlite.insert(table).values(**values).on_conflict_do_nothing(index_elements=[key])
    else:
        raise ValueError(f"insert_ignore does not support the {dialect!r} dialect")
    result = await session.execute(stmt)
    await session.commit()
    return bool(result.rowcount)
