"""Small utilities shared across modules."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime
from typing import Any

from loguru import logger


def date_from_untis_int(value: int) -> date:
    """Decode an integer YYYYMMDD value using integer arithmetic.

    20240910 -> date(2024, 9, 10)
    """

    v = int(value)
    return date(v // 10000, (v % 10000) // 100, v % 100)


def date_from_untis_string(value: str | int) -> date:
    """Decode an 8-digit YYYYMMDD string by slicing 4/2/2 characters."""

    s = str(value).strip()
    if len(s) != 8 or not s.isdigit():
        raise ValueError(f"not a YYYYMMDD value: {value!r}")
    return date(int(s[0:4]), int(s[4:6]), int(s[6:8]))


def untis_int_from_date(d: date) -> int:
    return d.year * 10000 + d.month * 100 + d.day


def format_time_untis(value: int) -> str:
    """Format integer HHMM time (845) as "8:45". Hours are not padded."""

    t = int(value)
    hours = t // 100
    minutes = t % 100
    return f"{hours}:{minutes:02d}"


def format_date_untis(value: str | int) -> str:
    """Format YYYYMMDD as DD.MM.YYYY."""

    s = str(value)
    return f"{s[6:8]}.{s[4:6]}.{s[0:4]}"


def format_date_iso(value: Any) -> str:
    """Return 'YYYY-MM-DD HH:MM:SS' for a datetime or epoch milliseconds.

    Unparseable values are returned as an empty string.
    """

    if value is None or value == "":
        return ""
    try:
        if isinstance(value, datetime):
            dt = value
        elif isinstance(value, (int, float)):
            dt = datetime.fromtimestamp(float(value) / 1000.0)
        else:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except (ValueError, OverflowError, OSError):
        return ""
    return dt.strftime("%Y-%m-%d %H:%M:%S")


def _log_samples(records: Sequence[Any], *, max_items: int = 5) -> None:
    """Log a handful of normalized records for quick visibility in debug logs."""

    for sample in records[:max_items]:
        logger.debug("Sample: {}", sample)
