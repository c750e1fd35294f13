from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Any

from dateutil import parser as dateutil_parser

LOGGER = logging.getLogger(__name__)

MONTHS = {
    "jan": 1, "january": 1,
    "feb": 2, "february": 2,
    "mar": 3, "march": 3,
    "apr": 4, "april": 4,
    "may": 5,
    "jun": 6, "june": 6,
    "jul": 7, "july": 7,
    "aug": 8, "august": 8,
    "sep": 9, "sept": 9, "september": 9,
    "oct": 10, "october": 10,
    "nov": 11, "november": 11,
    "dec": 12, "december": 12,
}

ISO_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
DAY_FIRST_RE = re.compile(r"^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})$")
AMBIGUOUS_RE = re.compile(r"^(\d{1,2})[/\-](\d{1,2})[/\-](\d{4})$")
DAY_MONTH_NAME_YEAR_RE = re.compile(r"^(\d{1,2})\s+([A-Za-z]{3,})\s+(\d{4})$")
MONTH_NAME_DAY_YEAR_RE = re.compile(r"^([A-Za-z]{3,})\s+(\d{1,2}),?\s+(\d{4})$")
YEAR_MONTH_NAME_DAY_RE = re.compile(r"^(\d{4})\s+([A-Za-z]{3,})\s+(\d{1,2})$")

# Two unrelated defaults: a fallback parse that only agrees with itself when
# the text supplied year, month and day.
_FALLBACK_DEFAULTS = (datetime(2000, 1, 1), datetime(2001, 2, 2))


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _month_number(name: str) -> int | None:
    return MONTHS.get(name.lower())


def _parse_iso(text: str) -> tuple[bool, date | None]:
    match = ISO_RE.match(text)
    if not match:
        return False, None
    year, month, day = (int(part) for part in match.groups())
    return True, _safe_date(year, month, day)


def _parse_day_first(text: str) -> tuple[bool, date | None]:
    match = DAY_FIRST_RE.match(text)
    if not match:
        return False, None
    day, month, year = (int(part) for part in match.groups())
    return True, _safe_date(year, month, day)


def _parse_ambiguous(text: str) -> tuple[bool, date | None]:
    match = AMBIGUOUS_RE.match(text)
    if not match:
        return False, None
    first, second, year = (int(part) for part in match.groups())
    if first > 12:
        return True, _safe_date(year, second, first)
    if second > 12:
        return True, _safe_date(year, first, second)
    return True, _safe_date(year, second, first)


def _parse_named(text: str) -> date | None:
    match = DAY_MONTH_NAME_YEAR_RE.match(text)
    if match:
        day, month_name, year = match.groups()
        month = _month_number(month_name)
        if month is not None:
            parsed = _safe_date(int(year), month, int(day))
            if parsed is not None:
                return parsed

    match = MONTH_NAME_DAY_YEAR_RE.match(text)
    if match:
        month_name, day, year = match.groups()
        month = _month_number(month_name)
        if month is not None:
            parsed = _safe_date(int(year), month, int(day))
            if parsed is not None:
                return parsed

    match = YEAR_MONTH_NAME_DAY_RE.match(text)
    if match:
        year, month_name, day = match.groups()
        month = _month_number(month_name)
        if month is not None:
            parsed = _safe_date(int(year), month, int(day))
            if parsed is not None:
                return parsed

    return None


def _parse_fallback(text: str) -> date | None:
    results: list[date] = []
    for default in _FALLBACK_DEFAULTS:
        try:
            results.append(dateutil_parser.parse(text, default=default).date())
        except (ValueError, OverflowError):
            return None
    if results[0] != results[1]:
        LOGGER.debug("Rejected incomplete date text %r", text)
        return None
    return results[0]


def parse_date_text(raw_text: str) -> date | None:
    """Parse free-form date text into a calendar date.

    Numeric forms are tried first (ISO, day-month-year, then the
    day/month disambiguation for ``/`` and ``-``), then month-name forms,
    then dateutil. A numeric shape that matched but never produced a real
    date returns None rather than letting the fallback reinterpret it.
    """
    text = raw_text.strip()
    if not text:
        return None

    numeric_shape = False
    for branch in (_parse_iso, _parse_day_first, _parse_ambiguous):
        matched, parsed = branch(text)
        if parsed is not None:
            return parsed
        numeric_shape = numeric_shape or matched
    if numeric_shape:
        return None

    parsed = _parse_named(text)
    if parsed is not None:
        return parsed

    return _parse_fallback(text)


def parse_journal_day(value: Any) -> date | None:
    """Parse a YYYYMMDD journal day such as 20090416."""
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    if len(text) != 8 or not text.isdigit():
        return None
    return _safe_date(int(text[:4]), int(text[4:6]), int(text[6:8]))


def parse_epoch_millis(value: int | float) -> date | None:
    try:
        return datetime.fromtimestamp(value / 1000).date()
    except (OverflowError, OSError, ValueError):
        return None


def parse_date(value: Any) -> date | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        return parse_epoch_millis(value)
    if isinstance(value, str):
        return parse_date_text(value)
    if isinstance(value, dict):
        if value.get("journal"):
            return parse_date(value["journal"])
        if value.get("date"):
            return parse_date(value["date"])
    return None


def format_journal_date(value: date) -> str:
    return value.isoformat()


def format_birthday_preview(value: date) -> str:
    return f"{value:%a}, {value:%B} {value.day}, {value.year}"
