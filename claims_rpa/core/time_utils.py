"""Timestamp and clinic-calendar helpers."""

import re
from datetime import date, datetime, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo

from dateutil import parser as date_parser

from claims_rpa.core.config import settings

DateLike = Union[date, datetime, str, None]

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_PORTAL_DATE_RE = re.compile(r"^\d{2}/\d{2}/\d{4}$")


def utc_now() -> datetime:
    """Return the current time as a timezone-aware ``datetime`` in UTC."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Normalise ``dt`` to a timezone-aware UTC ``datetime``."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def clinic_today(tz_name: Optional[str] = None) -> date:
    """Today's date in the clinic's timezone (Asia/Singapore by default)."""
    return datetime.now(ZoneInfo(tz_name or settings.timezone)).date()


def is_iso_date(value: Optional[str]) -> bool:
    return isinstance(value, str) and bool(_ISO_DATE_RE.match(value))


def parse_date(value: DateLike) -> Optional[date]:
    """Parse YYYY-MM-DD, DD/MM/YYYY or a date/datetime into a ``date``."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if _ISO_DATE_RE.match(text):
        return date.fromisoformat(text)
    return date_parser.parse(text, dayfirst=True).date()


def format_portal_date(value: DateLike) -> Optional[str]:
    """Format a date the way claim portals expect it (DD/MM/YYYY)."""
    if value is None or value == "":
        return None
    if isinstance(value, str) and _PORTAL_DATE_RE.match(value.strip()):
        return value.strip()
    parsed = parse_date(value)
    return parsed.strftime("%d/%m/%Y") if parsed else None


__all__ = [
    "clinic_today",
    "ensure_utc",
    "format_portal_date",
    "is_iso_date",
    "parse_date",
    "utc_now",
]
