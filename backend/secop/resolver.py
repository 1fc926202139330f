"""
Entity resolution for organizations and suppliers.

Natural keys (tax id, supplier document/code/name) resolve to surrogate ids
through a bounded in-memory cache. Unseen keys are staged into a per-kind
BulkBuffer and written with one multi-row INSERT OR IGNORE; the ids are then
re-read from the store by natural key, so a key already present in the
store (or inserted twice in one statement) always maps to its stored row.
"""
from collections import Counter
from enum import Enum
from typing import Dict, List, Optional, Set

import aiosqlite
import structlog
from cachetools import LRUCache

from secop.config.constants import (
    DEFAULT_CACHE_SIZE,
    DEFAULT_FLUSH_THRESHOLD,
    MAX_INSERT_PARAMS,
    MAX_SQL_PARAMS,
)
from secop.schema import ENTITY_TABLE, SUPPLIER_TABLE, LookupTable, insert_sql, row_params

logger = structlog.get_logger("secop.resolver")


class EntityKind(str, Enum):
    ORGANIZATION = "organization"
    SUPPLIER = "supplier"


LOOKUP_TABLES: Dict[EntityKind, LookupTable] = {
    EntityKind.ORGANIZATION: ENTITY_TABLE,
    EntityKind.SUPPLIER: SUPPLIER_TABLE,
}


class BulkBuffer:
    """Pending new lookup rows for one table, flushed as a multi-row insert."""

    def __init__(self, table: LookupTable, threshold: int = DEFAULT_FLUSH_THRESHOLD):
        self.table = table
        self.threshold = threshold
        self._pending: Dict[str, dict] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, key: str) -> bool:
        return key in self._pending

    @property
    def is_full(self) -> bool:
        return len(self._pending) >= self.threshold

    def add(self, key: str, attrs: dict) -> bool:
        """Queue a row; the first attributes seen for a key win. Returns is_full."""
        if key not in self._pending:
            self._pending[key] = attrs
        return self.is_full

    def clear(self) -> None:
        self._pending.clear()

    async def flush(self, conn: aiosqlite.Connection) -> tuple[List[str], int]:
        """
        Write every pending row and empty the buffer.

        Returns the flushed natural keys and the number of rows the store
        actually inserted (existing keys are ignored, not errors).
        """
        if not self._pending:
            return [], 0

        keys = list(self._pending)
        columns = self.table.columns
        rows_per_statement = max(1, MAX_INSERT_PARAMS // len(columns))
        rows = list(self._pending.values())

        inserted = 0
        for start in range(0, len(rows), rows_per_statement):
            chunk = rows[start:start + rows_per_statement]
            params = [value for row in chunk for value in row_params(row, columns)]
            cursor = await conn.execute(insert_sql(self.table.name, columns, rows=len(chunk)), params)
            inserted += max(cursor.rowcount, 0)
            await cursor.close()

        self._pending.clear()
        return keys, inserted


class EntityResolver:
    """Natural key -> surrogate id for organizations and suppliers."""

    def __init__(self, cache_size: int = DEFAULT_CACHE_SIZE,
                 flush_threshold: int = DEFAULT_FLUSH_THRESHOLD):
        self.cache_size = cache_size
        self._caches: Dict[EntityKind, LRUCache] = {
            kind: LRUCache(maxsize=cache_size) for kind in EntityKind
        }
        self._buffers: Dict[EntityKind, BulkBuffer] = {
            kind: BulkBuffer(LOOKUP_TABLES[kind], flush_threshold) for kind in EntityKind
        }
        # keys cached since the last commit; evicted again on rollback
        self._uncommitted: Dict[EntityKind, Set[str]] = {kind: set() for kind in EntityKind}
        self.stats: Counter = Counter()

    def cached(self, kind: EntityKind, key: str) -> Optional[int]:
        return self._caches[kind].get(key)

    def cache_size_of(self, kind: EntityKind) -> int:
        return len(self._caches[kind])

    def pending(self, kind: EntityKind) -> int:
        return len(self._buffers[kind])

    def stage(self, kind: EntityKind, key: str, attrs: dict) -> Optional[int]:
        """
        Return the cached id for ``key``, or queue ``attrs`` for insertion.

        A staged key has no id until its buffer is flushed; callers must
        flush before using the id as a foreign key.
        """
        entity_id = self._caches[kind].get(key)
        if entity_id is not None:
            self.stats[f"{kind.value}_hits"] += 1
            return entity_id
        self.stats[f"{kind.value}_misses"] += 1
        self._buffers[kind].add(key, attrs)
        return None

    def needs_flush(self, kind: EntityKind) -> bool:
        return self._buffers[kind].is_full

    async def flush(self, conn: aiosqlite.Connection, kind: EntityKind) -> int:
        """Flush one kind's buffer and cache the stored ids. Returns rows inserted."""
        keys, inserted = await self._buffers[kind].flush(conn)
        if not keys:
            return 0

        ids = await self._fetch_ids(conn, kind, keys)
        cache = self._caches[kind]
        for key, entity_id in ids.items():
            cache[key] = entity_id
        self._uncommitted[kind].update(ids)

        missing = len(keys) - len(ids)
        if missing:
            logger.warning("entity_ids_missing_after_flush", kind=kind.value, missing=missing)

        self.stats[f"{kind.value}_inserted"] += inserted
        self.stats[f"{kind.value}_flushes"] += 1
        logger.debug("entity_buffer_flushed", kind=kind.value, rows=len(keys), inserted=inserted)
        return inserted

    async def flush_all(self, conn: aiosqlite.Connection) -> int:
        inserted = 0
        for kind in EntityKind:
            inserted += await self.flush(conn, kind)
        return inserted

    async def lookup(self, conn: aiosqlite.Connection, kind: EntityKind, key: str) -> Optional[int]:
        """Cached id, else the stored id (cached on the way out), else None."""
        entity_id = self._caches[kind].get(key)
        if entity_id is not None:
            return entity_id
        ids = await self._fetch_ids(conn, kind, [key])
        entity_id = ids.get(key)
        if entity_id is not None:
            self._caches[kind][key] = entity_id
        return entity_id

    async def resolve(self, conn: aiosqlite.Connection, kind: EntityKind,
                      key: str, attrs: dict) -> int:
        """Synchronous resolution: stage, flush if needed, return the real id."""
        entity_id = self.stage(kind, key, attrs)
        if entity_id is not None:
            return entity_id
        await self.flush(conn, kind)
        entity_id = await self.lookup(conn, kind, key)
        if entity_id is None:
            raise LookupError(f"{kind.value} {key!r} was not stored")
        return entity_id

    async def _fetch_ids(self, conn: aiosqlite.Connection, kind: EntityKind,
                         keys: List[str]) -> Dict[str, int]:
        table = LOOKUP_TABLES[kind]
        found: Dict[str, int] = {}
        for start in range(0, len(keys), MAX_SQL_PARAMS):
            chunk = keys[start:start + MAX_SQL_PARAMS]
            placeholders = ', '.join('?' for _ in chunk)
            sql = (f"SELECT {table.key_column}, {table.id_column} FROM {table.name} "
                   f"WHERE {table.key_column} IN ({placeholders})")
            async with conn.execute(sql, chunk) as cursor:
                async for key, entity_id in cursor:
                    found[key] = entity_id
        return found

    async def preload(self, conn: aiosqlite.Connection) -> Dict[str, int]:
        """Warm both caches with the most recent rows already in the store."""
        loaded = {}
        for kind, table in LOOKUP_TABLES.items():
            sql = (f"SELECT {table.key_column}, {table.id_column} FROM {table.name} "
                   f"ORDER BY {table.id_column} DESC LIMIT ?")
            cache = self._caches[kind]
            async with conn.execute(sql, (self.cache_size,)) as cursor:
                async for key, entity_id in cursor:
                    cache[key] = entity_id
            loaded[kind.value] = len(cache)
        logger.info("entity_cache_preloaded", **loaded)
        return loaded

    def commit(self) -> None:
        """The owning transaction committed: cached ids are now durable."""
        for keys in self._uncommitted.values():
            keys.clear()

    def rollback(self) -> None:
        """The owning transaction rolled back: forget its ids and pending rows."""
        for kind in EntityKind:
            cache = self._caches[kind]
            for key in self._uncommitted[kind]:
                cache.pop(key, None)
            self._uncommitted[kind].clear()
            self._buffers[kind].clear()
