"""
SECOP streaming importer.

Drives the pipeline end to end: stream reader -> batch coordinator ->
checkpoint manager. A single task runs the whole import; the stream is
only advanced between batch commits, so at most one batch plus the
pending lookup rows are held in memory.
"""
import asyncio
import signal
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import structlog

from secop.batch import BatchCoordinator
from secop.checkpoint import CheckpointManager
from secop.config.settings import ImportSettings
from secop.context import IngestionContext
from secop.errors import SourceFileNotFoundError
from secop.pool import ConnectionPool
from secop.reader import iter_rows
from secop.resolver import EntityResolver
from secop.schema import create_schema, table_counts

logger = structlog.get_logger("secop.importer")


@dataclass
class ImportSummary:
    """Final figures of one run."""
    source: str
    rows_read: int
    rows_replayed: int
    processed: int
    processed_this_run: int
    skipped: int
    errors: int
    duplicates: int
    batches: int
    failed_batches: int
    last_committed_row: int
    elapsed_seconds: float
    interrupted: bool = False
    table_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def effectiveness(self) -> float:
        """Imported contracts as a percentage of rows read."""
        if not self.rows_read:
            return 0.0
        return 100.0 * self.processed / self.rows_read

    @property
    def rows_per_second(self) -> float:
        if self.elapsed_seconds <= 0:
            return 0.0
        return self.processed_this_run / self.elapsed_seconds


class SecopImporter:
    """Imports one SECOP contracts CSV into the normalized schema."""

    def __init__(self, settings: ImportSettings, context: Optional[IngestionContext] = None,
                 handle_signals: bool = True):
        self.settings = settings
        self.context = context or IngestionContext(
            resolver=EntityResolver(settings.cache_size, settings.flush_threshold)
        )
        self.handle_signals = handle_signals
        self.checkpoints = CheckpointManager(settings.checkpoint_path, settings.checkpoint_interval)

    async def run(self, csv_path: Path, reset: bool = False) -> ImportSummary:
        path = Path(csv_path)
        if not path.is_file():
            raise SourceFileNotFoundError(f"File not found: {path}", {"path": str(path)})

        ctx = self.context
        settings = self.settings

        if reset:
            self.checkpoints.clear()
        checkpoint = self.checkpoints.load()
        if checkpoint:
            ctx.resume_from(checkpoint.last_processed_row, checkpoint.total_processed)
        resume_row = ctx.last_committed_row

        structlog.contextvars.bind_contextvars(source_file=path.name, run_id=uuid.uuid4().hex[:8])
        logger.info(
            "import_started",
            db_path=str(settings.db_path),
            batch_size=settings.batch_size,
            pool_size=settings.pool_size,
            resume_after_row=resume_row,
        )

        pool = None
        counts: Dict[str, int] = {}
        try:
            pool = await ConnectionPool.open(settings.db_path, settings.pool_size, settings.busy_timeout_ms)
            async with pool.session() as conn:
                await create_schema(conn)
                if settings.preload_cache:
                    await ctx.resolver.preload(conn)

            coordinator = BatchCoordinator(pool, ctx, settings.batch_size)
            installed = self._install_signal_handlers()
            try:
                await self._stream(path, coordinator, resume_row)
            finally:
                self._remove_signal_handlers(installed)

            async with pool.session() as conn:
                counts = await table_counts(conn)
        finally:
            if pool is not None:
                # last fully committed offset only; an in-flight batch is replayed next run
                self.checkpoints.save(ctx.last_committed_row, ctx.processed, ctx.elapsed_seconds)
                await pool.close()
            structlog.contextvars.unbind_contextvars("source_file", "run_id")

        summary = ImportSummary(
            source=str(path),
            rows_read=ctx.rows_read,
            rows_replayed=ctx.rows_replayed,
            processed=ctx.processed,
            processed_this_run=ctx.processed_this_run,
            skipped=ctx.skipped,
            errors=ctx.errors,
            duplicates=ctx.duplicates,
            batches=ctx.batches,
            failed_batches=ctx.failed_batches,
            last_committed_row=ctx.last_committed_row,
            elapsed_seconds=ctx.elapsed_seconds,
            interrupted=ctx.stop_requested,
            table_counts=counts,
        )
        logger.info(
            "import_finished",
            rows_read=summary.rows_read,
            processed=summary.processed,
            skipped=summary.skipped,
            errors=summary.errors,
            duplicates=summary.duplicates,
            effectiveness=round(summary.effectiveness, 2),
            rows_per_second=round(summary.rows_per_second, 1),
            interrupted=summary.interrupted,
        )
        return summary

    async def _stream(self, path: Path, coordinator: BatchCoordinator, resume_row: int) -> None:
        ctx = self.context
        settings = self.settings

        for row_number, record in iter_rows(path, chunk_size=settings.batch_size,
                                            encoding=settings.encoding,
                                            delimiter=settings.delimiter):
            if ctx.stop_requested:
                break
            ctx.rows_read += 1
            if ctx.rows_read % settings.progress_every == 0:
                logger.info("rows_read", rows_read=ctx.rows_read, processed=ctx.processed)

            if row_number <= resume_row:
                ctx.rows_replayed += 1
                continue

            if coordinator.add(row_number, record):
                await self._commit(coordinator)

        if ctx.stop_requested:
            logger.warning("import_interrupted", reason=ctx.stop_reason,
                           discarded_rows=coordinator.pending,
                           last_committed_row=ctx.last_committed_row)
            return
        await self._commit(coordinator)

    async def _commit(self, coordinator: BatchCoordinator) -> None:
        ctx = self.context
        result = await coordinator.commit_pending()
        if result is not None and result.committed:
            self.checkpoints.record_commit(ctx.last_committed_row, ctx.processed, ctx.elapsed_seconds)

    def _install_signal_handlers(self) -> List[Tuple[signal.Signals, Any]]:
        if not self.handle_signals:
            return []
        loop = asyncio.get_running_loop()
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            previous = signal.getsignal(sig)
            try:
                loop.add_signal_handler(sig, self.context.request_stop, sig.name)
            except (NotImplementedError, RuntimeError):
                # Windows event loops and non-main threads cannot install handlers
                logger.debug("signal_handler_unavailable", signal=sig.name)
                continue
            installed.append((sig, previous))
        return installed

    def _remove_signal_handlers(self, installed: List[Tuple[signal.Signals, Any]]) -> None:
        if not installed:
            return
        loop = asyncio.get_running_loop()
        for sig, previous in installed:
            loop.remove_signal_handler(sig)
            # removal installs the default handler, not the one found at install time
            if previous is not None:
                signal.signal(sig, previous)
