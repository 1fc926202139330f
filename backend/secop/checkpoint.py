"""
Import checkpoints.

A checkpoint records the last source row whose batch committed and the
running total of imported contracts. It is rewritten in place after
committed batches; on start-up every row at or before the recorded offset
is read and discarded.
"""
import json
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = structlog.get_logger("secop.checkpoint")


class CheckpointRecord(BaseModel):
    """Persisted progress marker. Serialized with camelCase keys."""
    model_config = ConfigDict(populate_by_name=True)

    last_processed_row: int = Field(0, ge=0, alias="lastProcessedRow")
    total_processed: int = Field(0, ge=0, alias="totalProcessed")
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat(timespec="seconds"))
    elapsed_minutes: int = Field(0, ge=0, alias="elapsedMinutes")


class CheckpointManager:
    """Loads and rewrites the checkpoint file for one import target."""

    def __init__(self, path: Path, interval: int = 0):
        self.path = Path(path)
        self.interval = interval
        self.last_saved_row = 0
        # minutes accumulated by earlier runs, from the loaded checkpoint
        self.previous_minutes = 0

    def load(self) -> Optional[CheckpointRecord]:
        """Return the stored checkpoint, or None to start from the beginning."""
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                record = CheckpointRecord.model_validate(json.load(f))
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning("checkpoint_unreadable", path=str(self.path), error=str(e))
            return None

        self.last_saved_row = record.last_processed_row
        self.previous_minutes = record.elapsed_minutes
        logger.info(
            "checkpoint_loaded",
            last_processed_row=record.last_processed_row,
            total_processed=record.total_processed,
            saved_at=record.timestamp,
        )
        return record

    def save(self, last_row: int, total_processed: int, run_seconds: float = 0.0) -> Optional[CheckpointRecord]:
        """Atomically rewrite the checkpoint. Returns None if the write failed."""
        record = CheckpointRecord(
            last_processed_row=last_row,
            total_processed=total_processed,
            elapsed_minutes=self.previous_minutes + int(run_seconds // 60),
        )
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(record.model_dump_json(by_alias=True))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.warning("checkpoint_save_failed", path=str(self.path), error=str(e))
            return None

        self.last_saved_row = last_row
        logger.debug("checkpoint_saved", last_processed_row=last_row, total_processed=total_processed)
        return record

    def record_commit(self, last_row: int, total_processed: int, run_seconds: float = 0.0) -> bool:
        """Save after a committed batch once ``interval`` rows have passed (0 = always)."""
        if self.interval and last_row - self.last_saved_row < self.interval:
            return False
        return self.save(last_row, total_processed, run_seconds) is not None

    def clear(self) -> None:
        """Remove the checkpoint file."""
        if self.path.exists():
            try:
                self.path.unlink()
                logger.info("checkpoint_cleared", path=str(self.path))
            except OSError as e:
                logger.warning("checkpoint_clear_failed", path=str(self.path), error=str(e))
