"""
Best-effort date normalization.

Listing pages show dates in whatever shape their designers like this month
("Sat, Feb 15 • 7:00 PM", "Tomorrow at 8pm", "2025-02-15T19:00:00+11:00").
normalize_datetime turns any of them into a timezone-aware instant and never
raises: when nothing parses it returns the current time, which is lossy but
keeps the candidate usable.
"""

import logging
import re
from datetime import UTC, datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

_SYDNEY = ZoneInfo("Australia/Sydney")

# Abbreviations the listing pages print next to times
TZ_ABBREVIATIONS: dict[str, tzinfo] = {
    "AEST": _SYDNEY,
    "AEDT": _SYDNEY,
    "UTC": UTC,
    "GMT": UTC,
}

SEPARATORS = re.compile(r"\s*[•·|]\s*|\s+at\s+", re.IGNORECASE)
TRAILING_NOISE = re.compile(r"\s*\+\s*\d+\s+more\b.*$", re.IGNORECASE)
RELATIVE_DAY = re.compile(r"^\s*(today|tonight|tomorrow)\b(.*)$", re.IGNORECASE)

# Decorated formats, tried in order after a direct parse fails
DECORATED_PATTERNS: tuple[re.Pattern, ...] = (
    # "Sat, Feb 15 • 7:00 PM"
    re.compile(r"(\w+),?\s*(\w+)\s+(\d+)\s*[•·]\s*(\d+):(\d+)\s*(AM|PM)", re.IGNORECASE),
    # "February 15, 2025"
    re.compile(r"(\w+)\s+(\d+),?\s*(\d{4})", re.IGNORECASE),
)


def _resolve_tz(name: str | tzinfo | None) -> tzinfo:
    if isinstance(name, tzinfo):
        return name
    if not name:
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{name}', using UTC")
        return UTC


def _direct_parse(text: str, base: datetime, tz: tzinfo) -> datetime | None:
    """Parse text as-is; missing parts are taken from base (a naive local midnight)."""
    try:
        parsed = date_parser.parse(text, default=base, tzinfos=TZ_ABBREVIATIONS)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed.astimezone(UTC)


def _clean(text: str) -> str:
    text = TRAILING_NOISE.sub("", text)
    text = SEPARATORS.sub(" ", text)
    return " ".join(text.split())


def _parse_relative(text: str, local_now: datetime, tz: tzinfo) -> datetime | None:
    match = RELATIVE_DAY.match(text)
    if not match:
        return None
    day = local_now.date()
    if match.group(1).lower() == "tomorrow":
        day += timedelta(days=1)
    base = datetime(day.year, day.month, day.day)
    rest = _clean(match.group(2))
    if not rest:
        return base.replace(tzinfo=tz).astimezone(UTC)
    return _direct_parse(rest, base, tz)


def _parse_decorated(text: str, local_now: datetime, base: datetime, tz: tzinfo) -> datetime | None:
    relative = _parse_relative(text, local_now, tz)
    if relative is not None:
        return relative

    for pattern in DECORATED_PATTERNS:
        if pattern.search(text):
            reparsed = _direct_parse(_clean(text), base, tz)
            if reparsed is not None:
                return reparsed

    # Last chance: the separators alone may have been the problem
    cleaned = _clean(text)
    if cleaned != text:
        return _direct_parse(cleaned, base, tz)
    return None


def parse_datetime(
    raw_text: str | None,
    *,
    default_tz: str | tzinfo | None = "UTC",
    now: datetime | None = None,
) -> datetime | None:
    """
    Parse a free-text date/time into an aware UTC datetime.

    Args:
        raw_text: Date text as shown by the source (may be empty)
        default_tz: Zone applied to values without an explicit offset
        now: Reference instant for the default year and for "today"/"tomorrow"

    Returns:
        Parsed instant, or None when the text is empty or unparseable
    """
    now = now or datetime.now(UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)

    text = (raw_text or "").strip()
    if not text:
        return None

    try:
        tz = _resolve_tz(default_tz)
        local_now = now.astimezone(tz)
        base = datetime(local_now.year, local_now.month, local_now.day)

        parsed = _direct_parse(text, base, tz)
        if parsed is None:
            parsed = _parse_decorated(text, local_now, base, tz)
        return parsed
    except Exception as e:
        logger.debug(f"Date normalization error for {text!r}: {e}")
        return None


def normalize_datetime(
    raw_text: str | None,
    *,
    default_tz: str | tzinfo | None = "UTC",
    now: datetime | None = None,
) -> datetime:
    """
    Convert a free-text date/time into an aware UTC datetime. Never raises.

    Same as parse_datetime, except that empty or unparseable text yields the
    current time (`now`) instead of None.
    """
    now = now or datetime.now(UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)

    parsed = parse_datetime(raw_text, default_tz=default_tz, now=now)
    if parsed is None:
        if raw_text and raw_text.strip():
            logger.debug(f"Unparseable date {raw_text!r}, falling back to current time")
        return now
    return parsed
