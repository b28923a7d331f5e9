"""Normalization of statement date strings to ISO `YYYY-MM-DD`."""

import re
from datetime import date

MONTHS = {
    "jan": 1,
    "january": 1,
    "feb": 2,
    "february": 2,
    "mar": 3,
    "march": 3,
    "apr": 4,
    "april": 4,
    "may": 5,
    "jun": 6,
    "june": 6,
    "jul": 7,
    "july": 7,
    "aug": 8,
    "august": 8,
    "sep": 9,
    "sept": 9,
    "september": 9,
    "oct": 10,
    "october": 10,
    "nov": 11,
    "november": 11,
    "dec": 12,
    "december": 12,
}

_US_SLASH = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_US_DASH = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")
_ISO = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_MONTH_NAME = re.compile(r"^([A-Za-z]+)\.?\s+(\d{1,2}),?\s+(\d{4})$")


def _build(year: str, month: int | str, day: str) -> str | None:
    try:
        return date(int(year), int(month), int(day)).isoformat()
    except ValueError:
        return None


def normalize_date(raw: str | None) -> str | None:
    """Parse a statement date into `YYYY-MM-DD`.

    Accepts `MM/DD/YYYY`, `MM-DD-YYYY`, `YYYY-MM-DD` and `Month D, YYYY` (full or abbreviated
    month names, any case, comma optional). Month and day are taken by position, never guessed.

    Returns:
        The canonical date, or None when the input matches no format or names an impossible date.
    """
    if not raw:
        return None
    text = raw.strip()
    for pattern in (_US_SLASH, _US_DASH):
        match = pattern.match(text)
        if match:
            month, day, year = match.groups()
            return _build(year, month, day)
    match = _ISO.match(text)
    if match:
        year, month, day = match.groups()
        return _build(year, month, day)
    match = _MONTH_NAME.match(text)
    if match:
        name, day, year = match.groups()
        month_number = MONTHS.get(name.lower())
        if month_number is None:
            return None
        return _build(year, month_number, day)
    return None
