"""Environment-driven settings for an import run."""
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

from secop.config.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_BUSY_TIMEOUT_MS,
    DEFAULT_CACHE_SIZE,
    DEFAULT_FLUSH_THRESHOLD,
    DEFAULT_POOL_SIZE,
    PROGRESS_EVERY_ROWS,
)
from secop.errors import ConfigurationError

# Database path - configurable via env var, defaults to ./secop_contratos.db
DB_PATH = Path(os.environ.get("SECOP_DATABASE_PATH", "secop_contratos.db"))


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


@dataclass
class ImportSettings:
    """Tunable parameters for one import run."""
    db_path: Path = DB_PATH
    batch_size: int = DEFAULT_BATCH_SIZE
    pool_size: int = DEFAULT_POOL_SIZE
    flush_threshold: int = DEFAULT_FLUSH_THRESHOLD
    cache_size: int = DEFAULT_CACHE_SIZE
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS
    progress_every: int = PROGRESS_EVERY_ROWS

    # Checkpoint file; defaults to "<db stem>.checkpoint.json" beside the database
    checkpoint_path: Optional[Path] = None
    # Rows committed between checkpoint writes; 0 means after every batch
    checkpoint_interval: int = 0

    preload_cache: bool = False
    encoding: Optional[str] = None
    delimiter: str = ","
    log_level: str = "INFO"

    def __post_init__(self):
        self.db_path = Path(self.db_path)
        if self.checkpoint_path is None:
            self.checkpoint_path = self.db_path.with_name(f"{self.db_path.stem}.checkpoint.json")
        else:
            self.checkpoint_path = Path(self.checkpoint_path)

        for name in ("batch_size", "pool_size", "flush_threshold", "cache_size", "progress_every"):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be positive", {name: getattr(self, name)})
        if self.checkpoint_interval < 0:
            raise ConfigurationError("checkpoint_interval cannot be negative")
        if self.busy_timeout_ms < 0:
            raise ConfigurationError("busy_timeout_ms cannot be negative")

    @classmethod
    def from_env(cls) -> "ImportSettings":
        checkpoint = os.environ.get("SECOP_CHECKPOINT_PATH")
        return cls(
            db_path=Path(os.environ.get("SECOP_DATABASE_PATH", str(DB_PATH))),
            batch_size=_env_int("SECOP_BATCH_SIZE", DEFAULT_BATCH_SIZE),
            pool_size=_env_int("SECOP_POOL_SIZE", DEFAULT_POOL_SIZE),
            flush_threshold=_env_int("SECOP_FLUSH_THRESHOLD", DEFAULT_FLUSH_THRESHOLD),
            cache_size=_env_int("SECOP_CACHE_SIZE", DEFAULT_CACHE_SIZE),
            busy_timeout_ms=_env_int("SECOP_BUSY_TIMEOUT_MS", DEFAULT_BUSY_TIMEOUT_MS),
            checkpoint_path=Path(checkpoint) if checkpoint else None,
            checkpoint_interval=_env_int("SECOP_CHECKPOINT_INTERVAL", 0),
            log_level=os.environ.get("SECOP_LOG_LEVEL", "INFO"),
        )

    def override(self, **changes) -> "ImportSettings":
        """Return a copy with the non-None values in ``changes`` applied."""
        changes = {k: v for k, v in changes.items() if v is not None}
        derived = self.db_path.with_name(f"{self.db_path.stem}.checkpoint.json")
        if "db_path" in changes and "checkpoint_path" not in changes and self.checkpoint_path == derived:
            changes["checkpoint_path"] = None
        return replace(self, **changes)
