"""
SECOP contracts loader

Streams the Colombian SECOP public-procurement contracts CSV into a
normalized SQLite schema: contracting organizations and suppliers are
de-duplicated by natural key, each contract is written with its finance,
resources, bank and responsible-person rows, and progress is
checkpointed so an interrupted import resumes where it stopped.

Modules:
- reader: streaming CSV decoding
- mapping: source header mapping and row transformation
- resolver: cached, batched organization/supplier resolution
- batch: all-or-nothing batch transactions
- checkpoint: resumable progress markers
- importer: end-to-end run orchestration
"""

__version__ = "1.0.0"

from .config.settings import ImportSettings
from .importer import ImportSummary, SecopImporter

__all__ = [
    "ImportSettings",
    "ImportSummary",
    "SecopImporter",
]
