#!/usr/bin/env python3
"""
Best-effort date parsing for feed timestamps.

Feeds publish dates in a handful of RFC 1123 / RFC 3339 variations. The
layouts below are tried in order and the first one that matches wins.

Named zone abbreviations (``EST``, ``CEST``, ``IST``...) are not globally
unique, so any abbreviation is read as UTC. This is a known approximation:
a feed publishing ``10:00 PST`` is taken to mean ``10:00 UTC``.
"""

import re
from datetime import datetime, timezone, timedelta
from typing import Callable, List, Optional, Tuple

from config import get_logger

logger = get_logger("dates")

_NAMED_ZONE_RE = re.compile(r"^(?P<stamp>.+?)\s+(?P<zone>[A-Z]{3,5})$")
_RFC3339_RE = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2})[Tt](?P<time>\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<frac>\d+))?(?P<tz>[Zz]|[+-]\d{2}:\d{2})$"
)


def _numeric_zone(fmt: str) -> Callable[[str], datetime]:
    def _parse(raw: str) -> datetime:
        return datetime.strptime(raw, fmt)
    return _parse


def _named_zone(fmt: str) -> Callable[[str], datetime]:
    def _parse(raw: str) -> datetime:
        match = _NAMED_ZONE_RE.match(raw)
        if not match:
            raise ValueError(f"no zone abbreviation in {raw!r}")
        return datetime.strptime(match.group("stamp"), fmt).replace(tzinfo=timezone.utc)
    return _parse


def _rfc3339(raw: str) -> datetime:
    match = _RFC3339_RE.match(raw)
    if not match:
        raise ValueError(f"not an RFC 3339 timestamp: {raw!r}")
    dt = datetime.strptime(f"{match.group('date')}T{match.group('time')}", "%Y-%m-%dT%H:%M:%S")
    frac = match.group("frac")
    if frac:
        dt = dt.replace(microsecond=int(frac[:6].ljust(6, "0")))
    tz = match.group("tz")
    if tz in ("Z", "z"):
        return dt.replace(tzinfo=timezone.utc)
    sign = -1 if tz[0] == "-" else 1
    hours, minutes = int(tz[1:3]), int(tz[4:6])
    return dt.replace(tzinfo=timezone(sign * timedelta(hours=hours, minutes=minutes)))


def _date_only(raw: str) -> datetime:
    return datetime.strptime(raw, "%Y-%m-%d").replace(tzinfo=timezone.utc)


# %d accepts one- and two-digit days, so each RFC 1123 layout also covers its
# single-digit-day variant.
LAYOUTS: List[Tuple[str, Callable[[str], datetime]]] = [
    ("rfc1123-numeric-zone", _numeric_zone("%a, %d %b %Y %H:%M:%S %z")),
    ("rfc1123-named-zone", _named_zone("%a, %d %b %Y %H:%M:%S")),
    ("rfc1123-full-month", _named_zone("%a, %d %B %Y %H:%M:%S")),
    ("rfc3339", _rfc3339),
    ("iso8601-numeric-offset", _numeric_zone("%Y-%m-%dT%H:%M:%S%z")),
    ("date-only", _date_only),
]


def parse_time(raw: Optional[str]) -> Optional[datetime]:
    """Parse a feed timestamp into a timezone-aware datetime.

    Returns None when no layout matches; callers decide whether that drops an
    entry or leaves a feed-level date unset.
    """
    if raw is None:
        return None
    raw = raw.strip()
    if not raw:
        return None
    for _name, parser in LAYOUTS:
        try:
            return parser(raw)
        except (ValueError, OverflowError):
            continue
    logger.debug(f"failed to parse time string {raw!r}")
    return None


def format_time(dt: Optional[datetime]) -> str:
    """Render a datetime as ``2006-01-02 15:04 UTC`` for humans."""
    if dt is None:
        return ""
    zone = dt.tzname()
    if zone is None:
        return dt.strftime("%Y-%m-%d %H:%M")
    # fixed offsets have no abbreviation, tzname() gives "UTC+02:00" for them
    if not zone.isalpha():
        return dt.strftime("%Y-%m-%d %H:%M %z")
    return dt.strftime("%Y-%m-%d %H:%M %Z")


def format_layout_time(layout: str, dt: Optional[datetime]) -> str:
    """Render a datetime with an arbitrary strftime layout."""
    if dt is None:
        return ""
    return dt.strftime(layout)


def format_rfc3339(dt: datetime) -> str:
    """Render a datetime in the RFC 3339 form that parse_time reads back."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()
