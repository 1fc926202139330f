"""
Batch Transaction Tests

Tests for all-or-nothing batch commits and per-row accounting.
"""
import sqlite3

import aiosqlite

from secop import batch
from secop.batch import BatchCoordinator, BatchState
from secop.resolver import EntityKind

from conftest import make_record


def numbered(*records):
    return [(i, record) for i, record in enumerate(records, start=1)]


class TestAccumulation:
    """Test filling and draining the open batch."""

    async def test_add_reports_full(self, pool, context):
        coordinator = BatchCoordinator(pool, context, batch_size=2)
        assert coordinator.add(1, make_record()) is False
        assert coordinator.state == BatchState.ACCUMULATING
        assert coordinator.add(2, make_record()) is True
        assert coordinator.pending == 2

    async def test_commit_pending_empties_batch(self, pool, context):
        coordinator = BatchCoordinator(pool, context, batch_size=10)
        coordinator.add(1, make_record())
        result = await coordinator.commit_pending()
        assert result.committed
        assert coordinator.pending == 0
        assert coordinator.state == BatchState.IDLE

    async def test_nothing_pending(self, pool, context):
        coordinator = BatchCoordinator(pool, context, batch_size=10)
        assert await coordinator.commit_pending() is None
        assert context.batches == 0


class TestCommittedBatch:
    """Test what a committed batch writes."""

    async def test_contract_with_dependents(self, pool, context, count_rows):
        coordinator = BatchCoordinator(pool, context, batch_size=10)
        result = await coordinator.run_batch(numbered(make_record()))

        assert result.committed
        assert result.processed == 1
        assert context.processed == 1
        assert context.last_committed_row == 1
        assert await count_rows(pool, 'entidad') == 1
        assert await count_rows(pool, 'proveedor') == 1
        assert await count_rows(pool, 'representante_legal') == 1
        assert await count_rows(pool, 'contrato') == 1
        assert await count_rows(pool, 'contrato_finanzas') == 1
        assert await count_rows(pool, 'contrato_recursos') == 1
        assert await count_rows(pool, 'contrato_bancario') == 1
        assert await count_rows(pool, 'contrato_responsable') == 2

    async def test_foreign_keys_point_at_lookup_rows(self, pool, context):
        coordinator = BatchCoordinator(pool, context, batch_size=10)
        await coordinator.run_batch(numbered(make_record()))

        async with pool.session() as conn:
            async with conn.execute(
                "SELECT c.entidad_id, e.entidad_id, c.proveedor_id, p.proveedor_id "
                "FROM contrato c JOIN entidad e ON e.entidad_id = c.entidad_id "
                "JOIN proveedor p ON p.proveedor_id = c.proveedor_id"
            ) as cursor:
                rows = await cursor.fetchall()
        assert len(rows) == 1
        entity_fk, entity_pk, supplier_fk, supplier_pk = rows[0]
        assert entity_fk == entity_pk
        assert supplier_fk == supplier_pk
        assert context.resolver.cached(EntityKind.ORGANIZATION, '900123456') == entity_pk

    async def test_shared_organization_stored_once(self, pool, context, count_rows):
        coordinator = BatchCoordinator(pool, context, batch_size=10)
        rows = numbered(
            make_record({'ID Contrato': 'C-001'}),
            make_record({'ID Contrato': 'C-002', 'Documento Proveedor': '800999000'}),
        )
        await coordinator.run_batch(rows)

        assert await count_rows(pool, 'entidad') == 1
        assert await count_rows(pool, 'proveedor') == 2
        assert await count_rows(pool, 'contrato') == 2
        assert await count_rows(pool, 'representante_legal') == 1

    async def test_duplicate_contract_is_noop(self, pool, context, count_rows):
        """A repeated contract id writes nothing and no dependent rows."""
        coordinator = BatchCoordinator(pool, context, batch_size=10)
        rows = numbered(
            make_record({'ID Contrato': 'C-001'}),
            make_record({'ID Contrato': 'C-001', 'Valor del Contrato': '999'}),
        )
        result = await coordinator.run_batch(rows)

        assert result.processed == 1
        assert result.duplicates == 1
        assert context.errors == 0
        assert await count_rows(pool, 'contrato') == 1
        assert await count_rows(pool, 'contrato_finanzas') == 1
        assert await count_rows(pool, 'contrato_finanzas', 'valor_del_contrato = ?', (999,)) == 0

    async def test_contract_without_supplier(self, pool, context, count_rows):
        coordinator = BatchCoordinator(pool, context, batch_size=10)
        record = make_record({'Documento Proveedor': '', 'Proveedor Adjudicado': ''})
        await coordinator.run_batch(numbered(record))

        assert await count_rows(pool, 'proveedor') == 0
        assert await count_rows(pool, 'contrato', 'proveedor_id IS NULL') == 1

    async def test_insert_closes_every_cursor(self, pool, monkeypatch):
        row = batch.map_row(make_record())
        async with pool.session() as conn:
            await conn.execute("INSERT INTO entidad (nit_entidad) VALUES ('900123456')")

            open_cursors = set()
            original_init = aiosqlite.Cursor.__init__
            original_close = aiosqlite.Cursor.close

            def tracking_init(self, *args, **kwargs):
                original_init(self, *args, **kwargs)
                open_cursors.add(self)

            async def tracking_close(self):
                open_cursors.discard(self)
                await original_close(self)

            monkeypatch.setattr(aiosqlite.Cursor, "__init__", tracking_init)
            monkeypatch.setattr(aiosqlite.Cursor, "close", tracking_close)

            assert await batch.insert_contract_rows(conn, row, 1, None) is True
            assert await batch.insert_contract_rows(conn, row, 1, None) is False
            assert not open_cursors


class TestRowAccounting:
    """Skips and mapping errors stay row-level."""

    async def test_missing_tax_id_is_skipped(self, pool, context, count_rows):
        coordinator = BatchCoordinator(pool, context, batch_size=10)
        rows = numbered(
            make_record({'ID Contrato': 'C-001', 'Nit Entidad': ''}),
            make_record({'ID Contrato': 'C-002'}),
        )
        result = await coordinator.run_batch(rows)

        assert result.committed
        assert context.skipped == 1
        assert context.processed == 1
        assert context.errors == 0
        assert await count_rows(pool, 'contrato', "id_contrato = 'C-001'") == 0

    async def test_mapping_error_counts_one_row(self, pool, context, count_rows, monkeypatch):
        original = batch.map_row

        def flaky_map(record):
            if record['ID Contrato'] == 'C-BAD':
                raise ValueError("unexpected cell")
            return original(record)

        monkeypatch.setattr(batch, "map_row", flaky_map)
        coordinator = BatchCoordinator(pool, context, batch_size=10)
        rows = numbered(
            make_record({'ID Contrato': 'C-001'}),
            make_record({'ID Contrato': 'C-BAD'}),
            make_record({'ID Contrato': 'C-003'}),
        )
        result = await coordinator.run_batch(rows)

        assert result.committed
        assert context.errors == 1
        assert context.processed == 2
        assert await count_rows(pool, 'contrato') == 2


class TestAtomicity:
    """A failing batch leaves no trace in the store or the caches."""

    async def test_failure_rolls_back_whole_batch(self, pool, context, count_rows, monkeypatch):
        original = batch.insert_contract_rows
        calls = []

        async def failing_insert(conn, row, entity_id, supplier_id):
            calls.append(row.contract_id)
            if len(calls) == 2:
                raise sqlite3.IntegrityError("simulated constraint failure")
            return await original(conn, row, entity_id, supplier_id)

        monkeypatch.setattr(batch, "insert_contract_rows", failing_insert)
        coordinator = BatchCoordinator(pool, context, batch_size=10)
        rows = numbered(
            make_record({'ID Contrato': 'C-001'}),
            make_record({'ID Contrato': 'C-002', 'Nit Entidad': '800111222'}),
            make_record({'ID Contrato': 'C-003'}),
        )
        result = await coordinator.run_batch(rows)

        assert not result.committed
        assert "simulated" in result.error
        assert context.errors == 3
        assert context.processed == 0
        assert context.failed_batches == 1
        assert context.last_committed_row == 0
        for table in ('entidad', 'proveedor', 'representante_legal', 'contrato', 'contrato_finanzas'):
            assert await count_rows(pool, table) == 0, table
        assert context.resolver.cached(EntityKind.ORGANIZATION, '900123456') is None
        assert coordinator.state == BatchState.IDLE

    async def test_next_batch_after_failure(self, pool, context, count_rows, monkeypatch):
        """Ids learned by the failed batch are not reused afterwards."""
        async def always_fail(conn, row, entity_id, supplier_id):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(batch, "insert_contract_rows", always_fail)
        coordinator = BatchCoordinator(pool, context, batch_size=10)
        await coordinator.run_batch(numbered(make_record({'ID Contrato': 'C-001'})))
        monkeypatch.undo()

        result = await coordinator.run_batch([(2, make_record({'ID Contrato': 'C-002'}))])

        assert result.committed
        assert context.errors == 1
        assert context.processed == 1
        assert context.last_committed_row == 2
        assert await count_rows(pool, 'contrato') == 1
        assert await count_rows(pool, 'entidad') == 1
