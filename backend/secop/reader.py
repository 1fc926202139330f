"""
Streaming CSV reader.

Yields ``(row_number, record)`` pairs, 1-based over data rows, decoding
the file in pandas chunks so memory stays bounded regardless of file
size. Iteration is pull-based: while the consumer awaits a batch commit
no further chunk is decoded.
"""
import codecs
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple

import pandas as pd
import structlog

from secop.mapping import canonical_headers

logger = structlog.get_logger("secop.reader")

# utf-8-sig also accepts plain UTF-8; latin-1 decodes any byte so it goes last
ENCODINGS = ('utf-8-sig', 'cp1252', 'latin-1')

SAMPLE_BYTES = 1 << 20


def detect_encoding(path: Path, sample_bytes: int = SAMPLE_BYTES) -> str:
    """Return the first candidate encoding that decodes the head of the file."""
    with open(path, 'rb') as f:
        sample = f.read(sample_bytes)
    for encoding in ENCODINGS:
        decoder = codecs.getincrementaldecoder(encoding)()
        try:
            # final=False tolerates a multi-byte character cut at the sample edge
            decoder.decode(sample, final=False)
        except UnicodeDecodeError:
            logger.debug("encoding_rejected", encoding=encoding, path=str(path))
            continue
        return encoding
    return ENCODINGS[-1]


def iter_rows(
    path: Path,
    chunk_size: int = 2000,
    encoding: Optional[str] = None,
    delimiter: str = ',',
) -> Iterator[Tuple[int, Dict[str, str]]]:
    """Lazily yield every data row as a dict keyed by canonical header names."""
    path = Path(path)
    encoding = encoding or detect_encoding(path)
    logger.info("stream_opened", path=str(path), encoding=encoding, chunk_size=chunk_size)

    try:
        reader = pd.read_csv(
            path,
            sep=delimiter,
            dtype=str,
            keep_default_na=False,
            na_filter=False,
            skip_blank_lines=True,
            encoding=encoding,
            encoding_errors='replace',
            chunksize=chunk_size,
        )
    except pd.errors.EmptyDataError:
        logger.warning("stream_empty", path=str(path))
        return

    row_number = 0
    header_map = None
    with reader:
        for chunk in reader:
            if header_map is None:
                header_map = canonical_headers(chunk.columns)
                renamed = sum(1 for src, dst in header_map.items() if src != dst)
                if renamed:
                    logger.info("headers_normalized", renamed=renamed)
            chunk = chunk.rename(columns=header_map)
            for record in chunk.to_dict('records'):
                row_number += 1
                yield row_number, record
