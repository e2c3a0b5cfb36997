"""
Date helpers for carrier payloads: legacy WCF "/Date(ms)/" values and the
handful of human formats Blue Dart and Shiprocket return.
"""
import re
import time
from datetime import date, datetime, timezone
from typing import Optional

_LEGACY_DATE_RE = re.compile(r"/Date\((-?\d+)([+-]\d{4})?\)/")

_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d",
    "%d-%b-%Y",
    "%d-%b-%y",
    "%d %b %Y",
    "%b %d, %Y",
    "%d/%m/%Y",
    "%d-%m-%Y",
)


def legacy_date_now(now_ms: Optional[int] = None) -> str:
    """Pickup date in the "/Date(ms)/" form the Blue Dart transit API expects."""
    ms = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"/Date({ms})/"


def parse_carrier_date(value) -> Optional[date]:
    """Best-effort parse to a calendar date; None when unparseable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    m = _LEGACY_DATE_RE.search(text)
    if m:
        # Epoch ms is UTC; the calendar day that matters is the local one (IST unless an offset is given)
        ms = int(m.group(1))
        offset = m.group(2)
        if offset:
            sign = 1 if offset[0] == "+" else -1
            ms += sign * (int(offset[1:3]) * 60 + int(offset[3:5])) * 60 * 1000
        else:
            ms += 330 * 60 * 1000
        try:
            return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).date()
        except (ValueError, OverflowError, OSError):
            return None
    for fmt in _FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def format_edd(day: date) -> str:
    """20-OCT-26 style."""
    return day.strftime("%d-%b-%y").upper()


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
