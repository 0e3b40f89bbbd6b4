"""Base repository pattern for database operations."""

from __future__ import annotations

from typing import Any, List, Optional, Sequence, Tuple

import aiosqlite

from database.connection import get_db_pool


class BaseRepository:
    """Base repository with common database operations."""

    @staticmethod
    async def execute(query: str, params: Sequence[Any] = ()) -> int:
        """Execute a query and return the number of affected rows."""
        pool = get_db_pool()
        async with pool.connection() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.rowcount

    @staticmethod
    async def insert(query: str, params: Sequence[Any] = ()) -> int:
        """Execute an INSERT and return the new row id."""
        pool = get_db_pool()
        async with pool.connection() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.lastrowid

    @staticmethod
    async def fetch_one(query: str, params: Sequence[Any] = ()) -> Optional[aiosqlite.Row]:
        """Fetch a single row."""
        pool = get_db_pool()
        async with pool.connection() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchone()

    @staticmethod
    async def fetch_all(query: str, params: Sequence[Any] = ()) -> List[aiosqlite.Row]:
        """Fetch all rows."""
        pool = get_db_pool()
        async with pool.connection() as conn:
            cursor = await conn.execute(query, params)
            return [row async for row in cursor]

    @staticmethod
    async def fetch_column(query: str, params: Sequence[Any] = ()) -> List[Any]:
        """Fetch first column from all rows."""
        rows = await BaseRepository.fetch_all(query, params)
        return [row[0] for row in rows]

    @staticmethod
    async def transaction(queries: Sequence[Tuple[str, Sequence[Any]]]) -> None:
        """Execute multiple queries in a transaction."""
        pool = get_db_pool()
        async with pool.connection() as conn:
            await conn.execute("BEGIN")
            try:
                for query, params in queries:
                    await conn.execute(query, params)
                await conn.commit()
            except Exception:
                await conn.rollback()
                raise
