"""
Command-line entry point.

Usage:
    secop-import contratos.csv --db secop.db --batch-size 2000
    python -m secop contratos.csv --reset
"""
import argparse
import asyncio
from pathlib import Path
from typing import List, Optional

import structlog

from secop.config.constants import DEFAULT_BATCH_SIZE, DEFAULT_POOL_SIZE
from secop.config.settings import ImportSettings
from secop.config.structlog_config import configure
from secop.errors import IngestError
from secop.importer import ImportSummary, SecopImporter

logger = structlog.get_logger("secop.cli")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="secop-import",
        description="Import a SECOP public-procurement contracts CSV into a normalized SQLite database",
    )
    parser.add_argument("csv", type=Path, help="Path to the SECOP contracts CSV")
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="SQLite database file (default: $SECOP_DATABASE_PATH or secop_contratos.db)",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help=f"Rows per transaction (default: {DEFAULT_BATCH_SIZE})",
    )
    parser.add_argument(
        "--pool-size",
        type=int,
        default=None,
        help=f"Pooled database sessions (default: {DEFAULT_POOL_SIZE})",
    )
    parser.add_argument(
        "--checkpoint",
        type=Path,
        default=None,
        help="Checkpoint file (default: <db stem>.checkpoint.json beside the database)",
    )
    parser.add_argument(
        "--checkpoint-interval",
        type=int,
        default=None,
        help="Committed rows between checkpoint writes (default: every batch)",
    )
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Delete an existing checkpoint and import from the first row",
    )
    parser.add_argument(
        "--preload-cache",
        action="store_true",
        help="Warm the entity caches from the database before importing",
    )
    parser.add_argument("--encoding", default=None, help="Source encoding (default: detected)")
    parser.add_argument("--delimiter", default=None, help="Field delimiter (default: ',')")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: $SECOP_LOG_LEVEL or INFO)",
    )
    parser.add_argument("--json-logs", action="store_true", help="Force JSON log output")
    return parser


def print_summary(summary: ImportSummary) -> None:
    print("\n" + "=" * 60)
    print("IMPORT INTERRUPTED" if summary.interrupted else "IMPORT COMPLETE")
    print("=" * 60)
    print(f"Source: {summary.source}")
    print(f"Rows read: {summary.rows_read:,}")
    if summary.rows_replayed:
        print(f"Rows covered by checkpoint: {summary.rows_replayed:,}")
    print(f"Contracts imported: {summary.processed:,} ({summary.processed_this_run:,} this run)")
    print(f"Skipped: {summary.skipped:,}")
    print(f"Errors: {summary.errors:,}")
    print(f"Duplicates: {summary.duplicates:,}")
    print(f"Batches: {summary.batches:,} ({summary.failed_batches:,} rolled back)")
    print(f"Effectiveness: {summary.effectiveness:.2f}%")
    print(f"Elapsed: {summary.elapsed_seconds / 60:.1f} min ({summary.rows_per_second:,.0f} rows/s)")
    if summary.table_counts:
        print("Tables:")
        for table, count in summary.table_counts.items():
            print(f"  {table:24} {count:>12,}")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = ImportSettings.from_env().override(
            db_path=args.db,
            batch_size=args.batch_size,
            pool_size=args.pool_size,
            checkpoint_path=args.checkpoint,
            checkpoint_interval=args.checkpoint_interval,
            preload_cache=args.preload_cache or None,
            encoding=args.encoding,
            delimiter=args.delimiter,
            log_level=args.log_level,
        )
    except IngestError as e:
        configure(args.log_level or "INFO", json_logs=args.json_logs or None)
        logger.error("invalid_configuration", error=e.message, **e.details)
        return EXIT_FAILURE

    configure(settings.log_level, json_logs=args.json_logs or None)

    importer = SecopImporter(settings)
    try:
        summary = asyncio.run(importer.run(args.csv, reset=args.reset))
    except KeyboardInterrupt:
        # only reached where the loop could not install signal handlers
        logger.warning("import_interrupted", last_committed_row=importer.context.last_committed_row)
        return EXIT_INTERRUPTED
    except IngestError as e:
        logger.error("import_failed", error_code=e.error_code, error=e.message, **e.details)
        return EXIT_FAILURE

    print_summary(summary)
    return EXIT_INTERRUPTED if summary.interrupted else EXIT_OK
