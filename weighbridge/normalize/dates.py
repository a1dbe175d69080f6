from __future__ import annotations

import math
import numbers
import re
from datetime import date, datetime, timedelta
from typing import Any

from dateutil import parser as dateparser

"""Calendar normalization for weighbridge cell values.

Every accepted input becomes a Gregorian ``YYYY-MM-DD`` string; anything else
becomes ``None``. ``normalize_date`` never raises, callers drop the row.

Buddhist Era years (CE + 543) are recognised by magnitude: any 4-digit year
above 2400 is BE.
"""

__all__ = [
    "normalize_date",
    "to_buddhist_era",
    "be_to_ce_year",
    "serial_to_date",
    "normalize_date_input",
]

BE_OFFSET = 543
BE_THRESHOLD = 2400

# Day zero is 1899-12-30, which absorbs the spreadsheet 1900 leap-year quirk
# for every serial from 61 (1900-03-01) on.
SERIAL_EPOCH = datetime(1899, 12, 30)
MAX_SERIAL = 2958466  # 9999-12-31

_NUMERIC_DMY = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{2,4})(?:[ T].*)?$")
_ISO_YMD = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[ T].*)?$")
_MONTH_WORD = re.compile(r"(\d{1,2})[\s\-/]*([A-Za-z\u0E00-\u0E7F.]+)[\s\-/]*(\d{2,4})")
_THAI_CHARS = re.compile(r"[\u0E00-\u0E7F]")
_FOUR_DIGIT_YEAR = re.compile(r"\b(\d{4})\b")

# Keys are lowercased with dots removed.
MONTHS: dict[str, int] = {
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
    "มค": 1, "มกราคม": 1,
    "กพ": 2, "กุมภาพันธ์": 2,
    "มีค": 3, "มีนาคม": 3,
    "เมย": 4, "เมษายน": 4,
    "พค": 5, "พฤษภาคม": 5,
    "มิย": 6, "มิถุนายน": 6,
    "กค": 7, "กรกฎาคม": 7,
    "สค": 8, "สิงหาคม": 8,
    "กย": 9, "กันยายน": 9,
    "ตค": 10, "ตุลาคม": 10,
    "พย": 11, "พฤศจิกายน": 11,
    "ธค": 12, "ธันวาคม": 12,
}


def be_to_ce_year(year: int) -> int:
    return year - BE_OFFSET if year > BE_THRESHOLD else year


def _iso(year: int, month: int, day: int) -> str | None:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def serial_to_date(serial: float) -> str | None:
    if not (0 < serial < MAX_SERIAL):
        return None
    try:
        return (SERIAL_EPOCH + timedelta(days=float(serial))).date().isoformat()
    except (OverflowError, ValueError):
        return None


def _month_number(word: str) -> int | None:
    return MONTHS.get(word.lower().replace(".", "").strip())


def _from_numeric_dmy(text: str) -> str | None:
    m = _NUMERIC_DMY.match(text)
    if not m:
        return None
    dd, mm, yy = m.groups()
    if len(yy) == 3:
        return None
    year = int(f"20{yy}" if len(yy) == 2 else yy)
    return _iso(be_to_ce_year(year), int(mm), int(dd))


def _from_iso(text: str) -> str | None:
    m = _ISO_YMD.match(text)
    if not m:
        return None
    yyyy, mm, dd = m.groups()
    return _iso(be_to_ce_year(int(yyyy)), int(mm), int(dd))


def _from_month_word(text: str) -> str | None:
    m = _MONTH_WORD.search(text)
    if not m:
        return None
    day_raw, month_raw, year_raw = m.groups()
    month = _month_number(month_raw)
    if month is None or len(year_raw) == 3:
        return None
    year = int(year_raw)
    if len(year_raw) == 2:
        # Thai exports abbreviate the BE year ("68" == 2568)
        year = (2500 + year) if _THAI_CHARS.search(month_raw) else (2000 + year)
    return _iso(be_to_ce_year(year), month, int(day_raw))


def _from_fallback(text: str) -> str | None:
    m = _FOUR_DIGIT_YEAR.search(text)
    if not m:
        return None
    year = int(m.group(1))
    if year > BE_THRESHOLD:
        text = text[: m.start(1)] + str(year - BE_OFFSET) + text[m.end(1):]
    try:
        parsed = dateparser.parse(text, dayfirst=True, default=datetime(2000, 1, 1))
    except (ValueError, OverflowError):
        return None
    return parsed.date().isoformat()


def normalize_date(value: Any) -> str | None:
    """Convert a raw cell value to ``YYYY-MM-DD`` (Gregorian) or ``None``.

    Resolution order:
    1. datetime / date objects (pandas reads date-formatted cells this way)
    2. numeric spreadsheet serials
    3. ``dd/mm/yyyy``, ``dd-mm-yy`` (2-digit years get a ``20`` prefix) and ``yyyy-mm-dd``
    4. ``<day> <month name> <year>`` with Thai or English month names,
       separated by spaces, hyphens or slashes (``15-Mar-25``)
    5. a flexible parse, when the text carries a 4-digit year

    >>> normalize_date("15/03/2568")
    '2025-03-15'
    >>> normalize_date(45000)
    '2023-03-15'
    >>> normalize_date("15 มี.ค. 68")
    '2025-03-15'
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        # pandas.Timestamp is a datetime subclass
        if value != value:  # NaT
            return None
        return _iso(be_to_ce_year(value.year), value.month, value.day)
    if isinstance(value, date):
        return _iso(be_to_ce_year(value.year), value.month, value.day)
    if isinstance(value, numbers.Real):
        number = float(value)
        if math.isnan(number) or math.isinf(number):
            return None
        return serial_to_date(number)

    text = re.sub(r"\s+", " ", str(value).replace("\u200b", "")).strip()
    if not text:
        return None
    for resolver in (_from_numeric_dmy, _from_iso, _from_month_word, _from_fallback):
        result = resolver(text)
        if result:
            return result
    return None


def to_buddhist_era(iso_date: str) -> str:
    """``2025-03-15`` -> ``2568-03-15``; empty input stays empty."""
    if not iso_date:
        return ""
    year, month, day = iso_date.split("-")
    return f"{int(year) + BE_OFFSET}-{month}-{day}"


def normalize_date_input(value: Any) -> str:
    """Like normalize_date, for query input: raises ValueError instead of returning None."""
    result = normalize_date(value)
    if result is None:
        raise ValueError(f"unrecognised date: {value!r}")
    return result
