"""
Batch transaction coordinator.

Rows accumulate in memory until the batch is full; the batch is then
committed as one all-or-nothing transaction on a single pooled session:

    Idle -> Accumulating -> Committing -> Idle
                                 |
                                 +-> RollingBack -> Idle

Inside the transaction, lookup entities for the whole batch are staged and
flushed first, so every contract is inserted with real foreign keys.
"""
import asyncio
import sqlite3
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

import aiosqlite
import structlog

from secop.context import IngestionContext
from secop.errors import BatchFailedError, StoreUnavailableError
from secop.mapping import MappedRow, map_row
from secop.pool import TRANSACTION_PRAGMAS, ConnectionPool
from secop.resolver import EntityKind
from secop.schema import (
    BANK_COLUMNS,
    CONTRACT_COLUMNS,
    FINANCE_COLUMNS,
    REPRESENTATIVE_COLUMNS,
    RESOURCES_COLUMNS,
    RESPONSIBLE_COLUMNS,
    insert_sql,
    row_params,
)

logger = structlog.get_logger("secop.batch")

REPRESENTATIVE_SQL = insert_sql('representante_legal', ('entidad_id',) + REPRESENTATIVE_COLUMNS)
CONTRACT_SQL = insert_sql('contrato', CONTRACT_COLUMNS)
FINANCE_SQL = insert_sql('contrato_finanzas', ('contrato_id',) + FINANCE_COLUMNS)
RESOURCES_SQL = insert_sql('contrato_recursos', ('contrato_id',) + RESOURCES_COLUMNS)
BANK_SQL = insert_sql('contrato_bancario', ('contrato_id',) + BANK_COLUMNS)
RESPONSIBLE_SQL = insert_sql('contrato_responsable', ('contrato_id',) + RESPONSIBLE_COLUMNS)


class BatchState(str, Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"
    COMMITTING = "committing"
    ROLLING_BACK = "rolling_back"


@dataclass
class BatchResult:
    """Outcome of one batch; counters only reach the context on commit."""
    number: int
    size: int
    first_row: int
    last_row: int
    processed: int = 0
    skipped: int = 0
    errors: int = 0
    duplicates: int = 0
    committed: bool = False
    error: Optional[str] = None


class BatchCoordinator:
    """Groups source rows into fixed-size transactions on pooled sessions."""

    def __init__(self, pool: ConnectionPool, context: IngestionContext, batch_size: int):
        self.pool = pool
        self.context = context
        self.batch_size = batch_size
        self.state = BatchState.IDLE
        self._rows: List[Tuple[int, Dict]] = []

    @property
    def pending(self) -> int:
        return len(self._rows)

    @property
    def is_full(self) -> bool:
        return len(self._rows) >= self.batch_size

    def add(self, row_number: int, record: Dict) -> bool:
        """Append a source row to the open batch. Returns True when it is full."""
        self._rows.append((row_number, record))
        self.state = BatchState.ACCUMULATING
        return self.is_full

    async def commit_pending(self) -> Optional[BatchResult]:
        """Commit whatever has accumulated; the open batch is always emptied."""
        if not self._rows:
            return None
        rows, self._rows = self._rows, []
        return await self.run_batch(rows)

    async def run_batch(self, rows: List[Tuple[int, Dict]]) -> BatchResult:
        ctx = self.context
        ctx.batches += 1
        result = BatchResult(
            number=ctx.batches,
            size=len(rows),
            first_row=rows[0][0],
            last_row=rows[-1][0],
        )
        self.state = BatchState.COMMITTING

        mapped = self._map_rows(rows, result)

        async with self.pool.session() as conn:
            await self._begin(conn)
            try:
                await self._persist(conn, mapped, result)
                await conn.execute("COMMIT")
            except Exception as e:
                self.state = BatchState.ROLLING_BACK
                await self._rollback(conn)
                ctx.resolver.rollback()
                self._record_failure(result, BatchFailedError(result.number, result.size, e))
                self.state = BatchState.IDLE
                return result

        ctx.resolver.commit()
        result.committed = True
        ctx.processed += result.processed
        ctx.skipped += result.skipped
        ctx.errors += result.errors
        ctx.duplicates += result.duplicates
        ctx.last_committed_row = result.last_row
        self.state = BatchState.IDLE

        logger.info(
            "batch_committed",
            batch=result.number,
            rows=result.size,
            processed=ctx.processed,
            skipped=ctx.skipped,
            errors=ctx.errors,
            duplicates=ctx.duplicates,
            rate=round(ctx.rate, 1),
        )
        return result

    def _map_rows(self, rows: List[Tuple[int, Dict]], result: BatchResult) -> List[MappedRow]:
        mapped = []
        for row_number, record in rows:
            try:
                row = map_row(record)
            except Exception as e:
                result.errors += 1
                self.context.log_row_error(row_number, e)
                continue
            if row is None:
                result.skipped += 1
                continue
            mapped.append(row)
        return mapped

    async def _begin(self, conn: aiosqlite.Connection) -> None:
        try:
            await conn.execute("BEGIN")
            for pragma in TRANSACTION_PRAGMAS:
                await conn.execute(pragma)
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Cannot begin transaction: {e}") from e

    async def _rollback(self, conn: aiosqlite.Connection) -> None:
        if not conn.in_transaction:
            return
        try:
            await conn.execute("ROLLBACK")
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Rollback failed: {e}") from e

    def _record_failure(self, result: BatchResult, error: BatchFailedError) -> None:
        ctx = self.context
        # coarse accounting: every row of the batch counts as an error
        result.processed = result.skipped = result.duplicates = 0
        result.errors = result.size
        result.error = str(error.__cause__)
        ctx.errors += result.size
        ctx.failed_batches += 1
        logger.error(
            "batch_rolled_back",
            batch=result.number,
            rows=result.size,
            first_row=result.first_row,
            last_row=result.last_row,
            error=result.error,
            error_type=type(error.__cause__).__name__,
        )

    async def _persist(self, conn: aiosqlite.Connection, mapped: List[MappedRow],
                       result: BatchResult) -> None:
        resolver = self.context.resolver

        # Stage every lookup entity of the batch, flushing at the threshold
        for row in mapped:
            resolver.stage(EntityKind.ORGANIZATION, row.entity_key, row.entity)
            if resolver.needs_flush(EntityKind.ORGANIZATION):
                await resolver.flush(conn, EntityKind.ORGANIZATION)
            if row.supplier_key:
                resolver.stage(EntityKind.SUPPLIER, row.supplier_key, row.supplier)
                if resolver.needs_flush(EntityKind.SUPPLIER):
                    await resolver.flush(conn, EntityKind.SUPPLIER)
        await resolver.flush_all(conn)

        for row in mapped:
            entity_id = await resolver.lookup(conn, EntityKind.ORGANIZATION, row.entity_key)
            if entity_id is None:
                raise LookupError(f"organization {row.entity_key!r} has no stored id")
            supplier_id = None
            if row.supplier_key:
                supplier_id = await resolver.lookup(conn, EntityKind.SUPPLIER, row.supplier_key)
                if supplier_id is None:
                    raise LookupError(f"supplier {row.supplier_key!r} has no stored id")

            if await insert_contract_rows(conn, row, entity_id, supplier_id):
                result.processed += 1
            else:
                result.duplicates += 1


async def _insert_dependent(conn: aiosqlite.Connection, sql: str, contract_pk: int,
                            values: Dict, columns: Tuple[str, ...]) -> None:
    cursor = await conn.execute(sql, (contract_pk,) + row_params(values, columns))
    await cursor.close()


async def insert_contract_rows(conn: aiosqlite.Connection, row: MappedRow,
                               entity_id: int, supplier_id: Optional[int]) -> bool:
    """
    Insert one contract and its dependent rows.

    Returns False when the contract id already exists; the insert is then a
    no-op and no dependent rows are written.
    """
    if row.representative:
        cursor = await conn.execute(
            REPRESENTATIVE_SQL,
            (entity_id,) + row_params(row.representative, REPRESENTATIVE_COLUMNS),
        )
        await cursor.close()

    contract = dict(row.contract, entidad_id=entity_id, proveedor_id=supplier_id)
    async with conn.execute(CONTRACT_SQL, row_params(contract, CONTRACT_COLUMNS)) as cursor:
        inserted = cursor.rowcount > 0
        contract_pk = cursor.lastrowid
    if not inserted:
        return False

    # finance and resources are independent of each other
    await asyncio.gather(
        _insert_dependent(conn, FINANCE_SQL, contract_pk, row.finance, FINANCE_COLUMNS),
        _insert_dependent(conn, RESOURCES_SQL, contract_pk, row.resources, RESOURCES_COLUMNS),
    )

    if row.bank:
        await _insert_dependent(conn, BANK_SQL, contract_pk, row.bank, BANK_COLUMNS)
    for responsible in row.responsibles:
        await _insert_dependent(conn, RESPONSIBLE_SQL, contract_pk, responsible, RESPONSIBLE_COLUMNS)
    return True
