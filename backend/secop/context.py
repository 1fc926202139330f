"""Run-wide ingestion state: counters, entity resolver and the stop flag."""
import time
from dataclasses import dataclass, field

import structlog

from secop.config.constants import MAX_LOGGED_ROW_ERRORS
from secop.resolver import EntityResolver

logger = structlog.get_logger("secop.context")


@dataclass
class IngestionContext:
    """Owns everything that changes while a run streams the file."""
    resolver: EntityResolver = field(default_factory=EntityResolver)

    rows_read: int = 0
    rows_replayed: int = 0          # read but discarded because a checkpoint covers them
    processed: int = 0              # includes the total restored from a checkpoint
    resumed_total: int = 0
    skipped: int = 0
    errors: int = 0
    duplicates: int = 0
    batches: int = 0
    failed_batches: int = 0
    last_committed_row: int = 0

    stop_requested: bool = False
    stop_reason: str = ""
    logged_row_errors: int = 0
    started_at: float = field(default_factory=time.monotonic)

    def resume_from(self, last_row: int, total_processed: int) -> None:
        self.last_committed_row = last_row
        self.processed = total_processed
        self.resumed_total = total_processed

    def request_stop(self, reason: str = "interrupted") -> None:
        if not self.stop_requested:
            logger.warning("stop_requested", reason=reason)
        self.stop_requested = True
        self.stop_reason = reason

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self.started_at

    @property
    def processed_this_run(self) -> int:
        return self.processed - self.resumed_total

    @property
    def rate(self) -> float:
        """Contracts imported per second during this run."""
        elapsed = self.elapsed_seconds
        return self.processed_this_run / elapsed if elapsed > 0 else 0.0

    def log_row_error(self, row: int, error: Exception) -> None:
        """Log the first few row failures in full; later ones are only counted."""
        self.logged_row_errors += 1
        if self.logged_row_errors <= MAX_LOGGED_ROW_ERRORS:
            logger.error("row_failed", row=row, error=str(error), error_type=type(error).__name__)
        elif self.logged_row_errors == MAX_LOGGED_ROW_ERRORS + 1:
            logger.warning("row_error_logging_suppressed", after=MAX_LOGGED_ROW_ERRORS)
