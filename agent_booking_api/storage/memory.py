"""In-process record store used for tests and single-node development."""

import copy
import itertools
import logging
from datetime import UTC, datetime
from typing import Any

from .base import (
    ENTITY_KEYS,
    DuplicateRecordError,
    Record,
    RecordStore,
    check_entity,
    normalize_where,
)

logger = logging.getLogger(__name__)


class MemoryStore(RecordStore):
    """Record store keeping every table in a dict.

    Operations never await, so each one is atomic on the event loop.
    Records are copied on the way in and out; callers cannot mutate
    stored state by accident.
    """

    def __init__(self) -> None:
        self._tables: dict[str, dict[str, Record]] = {entity: {} for entity in ENTITY_KEYS}
        self._seq = itertools.count(1)
        self._connected = False

    async def connect(self) -> None:
        self._connected = True
        logger.info("Memory store ready")

    async def disconnect(self) -> None:
        self._connected = False
        logger.info("Memory store closed")

    async def ping(self) -> bool:
        return True

    async def find_by_id(self, entity: str, record_id: str) -> Record | None:
        check_entity(entity)
        record = self._tables[entity].get(record_id)
        return copy.deepcopy(record) if record is not None else None

    async def find_where(
        self,
        entity: str,
        where: dict[str, Any] | None = None,
        order_by: list[tuple[str, str]] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Record]:
        check_entity(entity)
        rows = self._select(entity, where)

        # Stable sorts applied from the least to the most significant key
        for field, direction in reversed(order_by or []):
            descending = direction.lower() == "desc"
            present = [r for r in rows if r.get(field) is not None]
            missing = [r for r in rows if r.get(field) is None]
            present.sort(key=lambda r: r[field], reverse=descending)
            # NULLS LAST for asc, NULLS FIRST for desc (PostgreSQL default)
            rows = missing + present if descending else present + missing

        rows = rows[offset:]
        if limit is not None:
            rows = rows[:limit]
        return [copy.deepcopy(r) for r in rows]

    async def create(self, entity: str, fields: Record) -> Record:
        key = check_entity(entity)
        record_id = fields.get(key)
        if not record_id:
            raise ValueError(f"{entity} record requires '{key}'")
        if record_id in self._tables[entity]:
            raise DuplicateRecordError(f"{entity} '{record_id}' already exists")

        now = datetime.now(UTC)
        record = copy.deepcopy(fields)
        record.setdefault("created_at", now)
        record.setdefault("updated_at", now)
        record["seq"] = next(self._seq)
        self._tables[entity][record_id] = record

        logger.debug(f"Created {entity}: {record_id}")
        return copy.deepcopy(record)

    async def update(self, entity: str, target: str | dict[str, Any], fields: Record) -> int:
        key = check_entity(entity)
        if isinstance(target, str):
            record = self._tables[entity].get(target)
            rows = [record] if record is not None else []
        else:
            rows = self._select(entity, target)

        if key in fields:
            raise ValueError(f"Cannot change primary key '{key}'")

        now = datetime.now(UTC)
        for row in rows:
            row.update(copy.deepcopy(fields))
            row["updated_at"] = now

        return len(rows)

    async def count(self, entity: str, where: dict[str, Any] | None = None) -> int:
        check_entity(entity)
        return len(self._select(entity, where))

    def _select(self, entity: str, where: dict[str, Any] | None) -> list[Record]:
        conditions = normalize_where(where)
        return [
            row
            for row in self._tables[entity].values()
            if all(cond.matches(row.get(field)) for field, cond in conditions)
        ]
