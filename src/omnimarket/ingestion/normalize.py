"""Safe coercion of untrusted upstream fields (numbers, dates, text)."""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

# Leading numeric prefix of a string, the way parseFloat reads "12abc" as 12.
_NUMBER_PREFIX = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

# Volume columns are DECIMAL(38, 10): at most 28 integer digits.
MAX_VOLUME = Decimal(10) ** 28

_ZERO = Decimal(0)


def safe_parse_number(value: Any) -> Decimal:
    """Parse a number from any JSON value, exactly. None, junk, NaN, +/-inf -> 0.

    Strings are read up to their first non-numeric character ("12abc" -> 12).
    Sign is preserved; magnitudes too large for storage count as junk.
    """
    if value is None:
        return _ZERO
    if isinstance(value, str):
        match = _NUMBER_PREFIX.match(value.strip())
        if match is None:
            return _ZERO
        value = match.group(0)
    elif isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return _ZERO
        value = repr(value)
    elif not isinstance(value, (int, Decimal)):
        return _ZERO
    try:
        num = Decimal(value)
    except (InvalidOperation, ValueError):
        return _ZERO
    if not num.is_finite() or num.copy_abs() >= MAX_VOLUME:
        return _ZERO
    return num


def format_decimal(value: Decimal | float | int) -> str:
    """Render a number as a plain decimal string: -5 -> "-5", 12.50 -> "12.5", 5e-05 -> "0.00005"."""
    if not isinstance(value, Decimal):
        value = Decimal(repr(value)) if isinstance(value, float) else Decimal(value)
    if value == 0:
        return "0"
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def coerce_volume(value: Any) -> str:
    return format_decimal(safe_parse_number(value))


def safe_parse_date(value: Any) -> datetime | None:
    """Parse ISO-8601 strings, epoch milliseconds or datetimes into aware UTC datetimes.

    Falsy values (None, "", 0) and anything unparseable return None; never raises.
    """
    if not value or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)):
        if math.isnan(value) or math.isinf(value):
            return None
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def clip_text(value: Any, max_len: int, default: str = "", *, strip: bool = True) -> str:
    """Truncate text; non-strings and blanks fall back to default.

    Titles are stripped before truncation; pass strip=False to keep long-form
    text such as resolution rules as sent.
    """
    if not isinstance(value, str):
        return default
    text = value.strip() if strip else value
    if not text.strip():
        return default
    return text[:max_len]


def first_present(*values: Any) -> Any:
    """First truthy value, mirroring `a or b or c` over raw JSON fields."""
    for v in values:
        if v:
            return v
    return None
