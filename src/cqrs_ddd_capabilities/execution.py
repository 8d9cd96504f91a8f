"""
Async execution of built statements.

Every run helper accepts either a borrowed ``AsyncEngine`` (a transaction
is opened and committed per call) or an explicit ``AsyncConnection`` /
``AsyncSession`` owned by the caller (the caller's transaction is used as
is and never committed here).
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

    from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncSession
    from sqlalchemy.sql import Executable

    Connectable = Union[AsyncConnection, AsyncSession]

logger = logging.getLogger("cqrs_ddd.capabilities.execution")

Record = dict[str, Any]


@asynccontextmanager
async def connection_scope(
    engine: AsyncEngine | None,
    conn: Connectable | None = None,
) -> AsyncIterator[Connectable]:
    """Yield *conn* unchanged, or a fresh transactional connection."""
    if conn is not None:
        yield conn
        return
    if engine is None:
        raise ValueError(
            "No AsyncEngine configured: pass engine= at construction or conn= "
            "to the exec call"
        )
    async with engine.begin() as connection:
        yield connection


async def fetch_all(
    conn: Connectable,
    stmt: Executable,
    params: Mapping[str, Any] | None = None,
) -> list[Record]:
    result = await conn.execute(stmt, dict(params) if params else None)
    return [dict(row._mapping) for row in result]


async def fetch_one(
    conn: Connectable,
    stmt: Executable,
    params: Mapping[str, Any] | None = None,
) -> Record | None:
    result = await conn.execute(stmt, dict(params) if params else None)
    row = result.first()
    return dict(row._mapping) if row is not None else None


async def fetch_float(
    conn: Connectable,
    stmt: Executable,
    params: Mapping[str, Any] | None = None,
) -> float:
    """Scalar result as ``float``; ``NULL`` yields ``0.0``."""
    result = await conn.execute(stmt, dict(params) if params else None)
    value = result.scalar()
    return 0.0 if value is None else float(value)


async def execute_count(
    conn: Connectable,
    stmt: Executable,
    params: Mapping[str, Any] | None = None,
) -> int:
    """Execute and return the affected-row count."""
    result = await conn.execute(stmt, dict(params) if params else None)
    count = int(getattr(result, "rowcount", 0) or 0)
    logger.debug("Statement affected %d row(s)", count)
    return count
