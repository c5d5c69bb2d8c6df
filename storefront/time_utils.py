from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (how timestamps are stored)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_date(value) -> Optional[date]:
    """
    "YYYY-MM-DD" -> date. Blank -> None.

    Longer ISO strings ("2026-10-21T09:00:00Z") keep only their date part.
    Raises ValueError for anything else.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return date.fromisoformat(text[:10])


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Whole-second ISO-8601 string ending in "Z"; naive values are UTC."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"


def month_period(dt: Optional[datetime] = None) -> str:
    """Calendar month key used in order numbers, e.g. "202610"."""
    dt = dt or utcnow()
    return f"{dt.year}{dt.month:02d}"
