"""Release date normalization and lookup-date selection."""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

_CANONICAL_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
# Two unrelated defaults: a part dateutil fills in from one of them shows up as
# a disagreement between the two parses
_PARSE_DEFAULTS = (datetime(2000, 1, 1), datetime(2001, 2, 2))
_MONTH_DAY_YEAR_RE = re.compile(r"([A-Za-z]{3})[a-z]*\.?\s+(\d{1,2}),?\s+(\d{4})")

_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

LOOKUP_RELEASE = "release"
LOOKUP_TODAY_PAST = "today_release_passed"
LOOKUP_TODAY_UNRESOLVED = "today_no_release_date"


@dataclass(frozen=True)
class LookupDate:
    """Date sent to the theatre lookup and why it was chosen."""

    value: str  # YYYY-MM-DD
    source: str


def date_from_parts(year, month, day) -> str | None:
    """Assemble YYYY-MM-DD from separate fields, None if they don't form a date."""
    try:
        return date(int(year), int(month), int(day)).isoformat()
    except (TypeError, ValueError):
        return None


def _parse_full_date(text: str) -> str | None:
    """dateutil parse that rejects input missing a year, month or day."""
    try:
        first, second = (date_parser.parse(text, default=d).date() for d in _PARSE_DEFAULTS)
    except (ValueError, OverflowError):
        return None
    if first != second:
        return None
    return first.isoformat()


def normalize_release_date(raw) -> str | None:
    """Convert a date representation to YYYY-MM-DD.

    Canonical strings pass through untouched. Other strings go through
    dateutil, then a "Mon DD, YYYY" pattern. Dicts with year/month/day
    keys are assembled directly. Returns None when nothing works.
    """
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date().isoformat()
    if isinstance(raw, date):
        return raw.isoformat()
    if isinstance(raw, dict):
        return date_from_parts(raw.get("year"), raw.get("month"), raw.get("day"))

    text = str(raw).strip()
    if not text:
        return None
    if _CANONICAL_RE.match(text):
        return text

    parsed = _parse_full_date(text)
    if parsed is not None:
        return parsed

    m = _MONTH_DAY_YEAR_RE.search(text)
    if m:
        month = _MONTHS.get(m.group(1).lower())
        if month:
            return date_from_parts(m.group(3), month, m.group(2))
    return None


def choose_lookup_date(release_date: str | None, today: date) -> LookupDate:
    """Pick the date to query theatre listings for.

    A release date already in the past is replaced by today, since the
    listing endpoint returns nothing useful for past dates.
    """
    normalized = normalize_release_date(release_date)
    try:
        released = date.fromisoformat(normalized) if normalized else None
    except ValueError:
        released = None
    if released is None:
        logger.warning(
            "No release date resolved (raw=%r), using today %s", release_date, today
        )
        return LookupDate(today.isoformat(), LOOKUP_TODAY_UNRESOLVED)

    if released < today:
        return LookupDate(today.isoformat(), LOOKUP_TODAY_PAST)
    return LookupDate(normalized, LOOKUP_RELEASE)
