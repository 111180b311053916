from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Optional

SECONDS_PER_DAY = 24 * 60 * 60


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    ISO-8601 string -> UTC-naive datetime.

    Blank input returns None. Offsets (including a trailing 'Z') are
    converted to UTC; a value without an offset is taken to be UTC already.
    Raises ValueError on anything unparseable.
    """
    if value is not None and not isinstance(value, str):
        raise ValueError(f"Expected an ISO-8601 string, got {type(value).__name__}")
    text = (value or "").strip()
    if not text:
        return None
    if text[-1] in "zZ":
        text = f"{text[:-1]}+00:00"
    return _as_utc_naive(datetime.fromisoformat(text))


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """UTC timestamp with second precision and a trailing 'Z' (naive = UTC)."""
    if dt is None:
        return None
    return _as_utc_naive(dt).replace(microsecond=0).isoformat() + "Z"


def month_key(dt: datetime) -> str:
    """Calendar-month period marker, e.g. '2026-10'."""
    return f"{dt.year:04d}-{dt.month:02d}"


def day_key(dt: datetime) -> str:
    """Calendar-day period marker, e.g. '2026-10-17'."""
    return f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d}"


def days_until(target: datetime, now: datetime) -> int:
    """Whole days from now until target, rounded up (negative once past)."""
    return math.ceil((target - now).total_seconds() / SECONDS_PER_DAY)
