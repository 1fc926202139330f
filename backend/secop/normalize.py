"""
Field normalization for raw SECOP values.

Pure, stateless helpers consumed by the row mapper. Every function accepts
the raw cell value (usually a string, possibly None) and never raises on
malformed input: unparseable values become None (or False for booleans).
"""

import math
import re
from datetime import date, datetime
from typing import Any, Optional, Union

from secop.config.constants import TRUE_TOKENS

# Currency symbols, thousands separators and any whitespace (incl. NBSP)
_NUMBER_NOISE = re.compile(r'[$€£¥,\s ]')

# What is left must be a plain decimal: no exponent, no underscores
_PLAIN_DECIMAL = re.compile(r'^[+-]?\d+(?:\.\d+)?$')

# DD/MM/YYYY, optionally followed by a time component
_SLASH_DATE = re.compile(r'^(\d{1,2})/(\d{1,2})/(\d{4})(?:\s|$)')


def clean_text(value: Any) -> Optional[str]:
    """Coerce to text and strip surrounding whitespace; empty becomes None."""
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    value = value.strip()
    return value or None


def truncate(value: Any, max_len: int) -> Optional[str]:
    """
    Cut a value to at most ``max_len`` characters.

    Returns None for None or the empty string; anything else is coerced
    to text first.

    >>> truncate('abcdef', 3)
    'abc'
    """
    if value is None or value == '':
        return None
    return str(value)[:max_len]


def parse_number(value: Any) -> Optional[float]:
    """
    Parse a currency-formatted number such as ``"$1,234.56"``.

    Returns None when the cleaned text is empty or is not a finite decimal.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None

    cleaned = _NUMBER_NOISE.sub('', str(value))
    if not _PLAIN_DECIMAL.match(cleaned):
        return None
    number = float(cleaned)
    return number if math.isfinite(number) else None


def parse_date(value: Any) -> Optional[Union[date, datetime]]:
    """
    Parse ``DD/MM/YYYY`` or any ISO-8601 string.

    Slash dates yield a ``date``; ISO strings carrying a time component yield
    a ``datetime``. Impossible calendar dates (31/02/2020) return None.
    """
    text = clean_text(value)
    if text is None:
        return None

    if '/' in text:
        match = _SLASH_DATE.match(text)
        if match is None:
            return None
        day, month, year = match.groups()
        try:
            return date(int(year), int(month), int(day))
        except ValueError:
            return None

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if 'T' not in text and ' ' not in text and ':' not in text:
        return parsed.date()
    return parsed


def normalize_boolean(value: Any) -> bool:
    """True for si/sí/true/1/yes (case-insensitive, trimmed); False otherwise."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUE_TOKENS
