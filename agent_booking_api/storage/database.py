"""Database management with PostgreSQL via asyncpg."""

import logging
from typing import Any

import asyncpg

from ..config import settings
from .base import (
    DuplicateRecordError,
    Record,
    RecordStore,
    check_entity,
    normalize_where,
)
from .memory import MemoryStore
from .schema import TABLE_COLUMNS

logger = logging.getLogger(__name__)

_SQL_OPERATORS = {
    "eq": "=",
    "ne": "<>",
    "lt": "<",
    "lte": "<=",
    "gt": ">",
    "gte": ">=",
}


class Database(RecordStore):
    """Async PostgreSQL record store using asyncpg."""

    def __init__(self, db_url: str):
        """Initialize database with connection URL."""
        self.db_url = db_url
        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        """Establish database connection pool and initialize schema."""
        if self._pool is not None:
            return

        self._pool = await asyncpg.create_pool(
            self.db_url,
            min_size=settings.database_pool_min_size,
            max_size=settings.database_pool_max_size,
            command_timeout=60,
        )

        from .schema import INIT_SCHEMA

        async with self._pool.acquire() as conn:
            await conn.execute(INIT_SCHEMA)

        logger.info(f"Database connected: {self.db_url.split('@')[-1]}")  # Don't log password

    async def disconnect(self) -> None:
        """Close database connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("Database disconnected")

    async def ping(self) -> bool:
        """Run a trivial query to check connectivity."""
        pool = self._require_pool()
        async with pool.acquire() as conn:
            return await conn.fetchval("SELECT 1") == 1

    async def find_by_id(self, entity: str, record_id: str) -> Record | None:
        """Get one record by primary key."""
        key = check_entity(entity)
        pool = self._require_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(f"SELECT * FROM {entity} WHERE {key} = $1", record_id)

        return dict(row) if row else None

    async def find_where(
        self,
        entity: str,
        where: dict[str, Any] | None = None,
        order_by: list[tuple[str, str]] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Record]:
        """List records matching a filter."""
        check_entity(entity)
        pool = self._require_pool()

        clause, params = self._where_clause(entity, where, start=1)
        query = f"SELECT * FROM {entity}{clause}"

        if order_by:
            ordering = []
            for field, direction in order_by:
                self._check_column(entity, field)
                if direction.lower() not in ("asc", "desc"):
                    raise ValueError(f"Invalid sort direction: {direction}")
                ordering.append(f"{field} {direction.upper()}")
            query += f" ORDER BY {', '.join(ordering)}"

        if limit is not None:
            params.append(limit)
            query += f" LIMIT ${len(params)}"
        if offset:
            params.append(offset)
            query += f" OFFSET ${len(params)}"

        async with pool.acquire() as conn:
            rows = await conn.fetch(query, *params)

        return [dict(row) for row in rows]

    async def create(self, entity: str, fields: Record) -> Record:
        """Insert a record and return the stored row."""
        check_entity(entity)
        pool = self._require_pool()

        columns = list(fields)
        for column in columns:
            self._check_column(entity, column)
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"INSERT INTO {entity} ({', '.join(columns)}) "
                    f"VALUES ({placeholders}) RETURNING *",
                    *fields.values(),
                )
        except asyncpg.UniqueViolationError as e:
            raise DuplicateRecordError(str(e)) from e

        logger.debug(f"Created {entity} record")
        return dict(row)

    async def update(self, entity: str, target: str | dict[str, Any], fields: Record) -> int:
        """Update records by primary key or filter."""
        key = check_entity(entity)
        pool = self._require_pool()

        if not fields:
            return 0
        if key in fields:
            raise ValueError(f"Cannot change primary key '{key}'")

        updates = []
        params: list[Any] = []
        for column, value in fields.items():
            self._check_column(entity, column)
            params.append(value)
            updates.append(f"{column} = ${len(params)}")

        where = {key: target} if isinstance(target, str) else target
        clause, where_params = self._where_clause(entity, where, start=len(params) + 1)
        params.extend(where_params)

        try:
            async with pool.acquire() as conn:
                result = await conn.execute(
                    f"UPDATE {entity} SET {', '.join(updates)}{clause}",
                    *params,
                )
        except asyncpg.UniqueViolationError as e:
            raise DuplicateRecordError(str(e)) from e

        # Extract count from result string "UPDATE N"
        return int(result.split()[-1]) if result else 0

    async def count(self, entity: str, where: dict[str, Any] | None = None) -> int:
        """Count records matching a filter."""
        check_entity(entity)
        pool = self._require_pool()

        clause, params = self._where_clause(entity, where, start=1)
        async with pool.acquire() as conn:
            count = await conn.fetchval(f"SELECT COUNT(*) FROM {entity}{clause}", *params)

        return count or 0

    def _require_pool(self) -> asyncpg.Pool:
        if not self._pool:
            raise RuntimeError("Database not connected")
        return self._pool

    @staticmethod
    def _check_column(entity: str, column: str) -> None:
        if column not in TABLE_COLUMNS[entity]:
            raise ValueError(f"Unknown column for {entity}: {column}")

    def _where_clause(
        self, entity: str, where: dict[str, Any] | None, start: int
    ) -> tuple[str, list[Any]]:
        """Build ' WHERE ...' with positional parameters numbered from start."""
        parts: list[str] = []
        params: list[Any] = []
        idx = start

        for field, cond in normalize_where(where):
            self._check_column(entity, field)
            if cond.op == "in":
                parts.append(f"{field} = ANY(${idx})")
                params.append(list(cond.value))
                idx += 1
            elif cond.value is None and cond.op in ("eq", "ne"):
                parts.append(f"{field} IS {'NOT ' if cond.op == 'ne' else ''}NULL")
            else:
                parts.append(f"{field} {_SQL_OPERATORS[cond.op]} ${idx}")
                params.append(cond.value)
                idx += 1

        if not parts:
            return "", params
        return " WHERE " + " AND ".join(parts), params


# Global store instance
_db: RecordStore | None = None


async def init_database() -> RecordStore:
    """Initialize and return the global record store."""
    global _db
    if _db is None:
        if settings.database_backend == "memory":
            _db = MemoryStore()
        else:
            _db = Database(settings.get_database_url())
        await _db.connect()

    return _db


async def close_database() -> None:
    """Disconnect and forget the global record store."""
    global _db
    if _db is not None:
        await _db.disconnect()
        _db = None
