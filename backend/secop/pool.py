"""
Connection pool for the bulk-load window.

Holds a fixed number of pre-tuned aiosqlite sessions. Sessions are checked
out in round-robin order (idle sessions queue FIFO) and a checked-out
session belongs to exactly one batch until it is returned, so no two
transactions ever share a session.
"""
import asyncio
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, List

import aiosqlite
import structlog

from secop.config.constants import DEFAULT_BUSY_TIMEOUT_MS, DEFAULT_POOL_SIZE
from secop.errors import PoolClosedError, StoreUnavailableError

logger = structlog.get_logger("secop.pool")


# Applied once per session at acquisition time
SESSION_PRAGMAS = (
    "PRAGMA journal_mode = WAL",
    # Relaxed durability: fsync at checkpoints only
    "PRAGMA synchronous = NORMAL",
    "PRAGMA foreign_keys = ON",
    "PRAGMA temp_store = MEMORY",
    "PRAGMA cache_size = -64000",
)

# defer_foreign_keys resets at every COMMIT, so it is issued per transaction
TRANSACTION_PRAGMAS = (
    "PRAGMA defer_foreign_keys = ON",
)


class ConnectionPool:
    """Fixed-size pool of tuned sessions with checkout/return semantics."""

    def __init__(self, db_path: Path, size: int = DEFAULT_POOL_SIZE,
                 busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS):
        self.db_path = Path(db_path)
        self.size = size
        self.busy_timeout_ms = busy_timeout_ms
        self._sessions: List[aiosqlite.Connection] = []
        self._idle: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self.checkouts = 0

    @classmethod
    async def open(cls, db_path: Path, size: int = DEFAULT_POOL_SIZE,
                   busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> "ConnectionPool":
        pool = cls(db_path, size, busy_timeout_ms)
        try:
            for _ in range(size):
                conn = await pool._connect()
                pool._sessions.append(conn)
                pool._idle.put_nowait(conn)
        except sqlite3.Error as e:
            await pool.close()
            raise StoreUnavailableError(
                f"Cannot open database {pool.db_path}: {e}",
                details={"db_path": str(pool.db_path)},
            ) from e
        logger.info("pool_opened", db_path=str(pool.db_path), sessions=size)
        return pool

    async def _connect(self) -> aiosqlite.Connection:
        # isolation_level=None: the driver never opens implicit transactions;
        # every write goes through an explicit BEGIN ... COMMIT
        conn = await aiosqlite.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000,
            isolation_level=None,
        )
        try:
            await conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")
            for pragma in SESSION_PRAGMAS:
                await conn.execute(pragma)
        except sqlite3.Error:
            await conn.close()
            raise
        return conn

    @property
    def idle(self) -> int:
        return self._idle.qsize()

    @property
    def closed(self) -> bool:
        return self._closed

    async def next(self) -> aiosqlite.Connection:
        """Check out the next session in rotation, waiting if all are busy."""
        if self._closed:
            raise PoolClosedError("Connection pool is closed")
        conn = await self._idle.get()
        self.checkouts += 1
        return conn

    def release(self, conn: aiosqlite.Connection) -> None:
        """Return a session to the back of the rotation."""
        if self._closed:
            return
        if conn not in self._sessions:
            raise ValueError("Session does not belong to this pool")
        self._idle.put_nowait(conn)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[aiosqlite.Connection]:
        """Context manager owning one session for its whole lifetime."""
        conn = await self.next()
        try:
            yield conn
        finally:
            self.release(conn)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for conn in self._sessions:
            await conn.close()
        logger.info("pool_closed", sessions=len(self._sessions), checkouts=self.checkouts)
        self._sessions.clear()
