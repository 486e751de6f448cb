"""Date parsing helpers for statement cells."""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any

import pandas as pd
from openpyxl.utils.datetime import CALENDAR_WINDOWS_1900, from_excel


DATETIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%d.%m.%Y %H:%M:%S",
    "%d.%m.%Y %H:%M",
    "%d.%m.%Y",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d",
)

# 1900-01-01 .. 9999-12-31 in the 1900 date system
_MIN_SERIAL = 1
_MAX_SERIAL = 2958465

# numbers typed as text count as Excel serials only from this date on
EARLIEST_TEXT_SERIAL_DATE = datetime(1990, 1, 1)

_TIME_RE = re.compile(r"\d{1,2}:\d{2}(?::\d{2}(?:\.\d+)?)?")
_YEAR_RE = re.compile(r"(?<!\d)\d{4}(?!\d)")
_NUMBER_RE = re.compile(r"\d+")
_MONTH_NAME_RE = re.compile(r"[^\W\d_]{3,}")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc_naive(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def from_excel_serial(serial: float, epoch: datetime = CALENDAR_WINDOWS_1900) -> datetime:
    if not _MIN_SERIAL <= serial <= _MAX_SERIAL:
        raise ValueError(f"Date serial out of range: {serial}")
    converted = from_excel(serial, epoch=epoch)
    if isinstance(converted, datetime):
        return converted
    if isinstance(converted, date):
        return datetime(converted.year, converted.month, converted.day)
    raise ValueError(f"Date serial is a time of day: {serial}")


def _parse_text(text: str) -> datetime:
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass
    for fmt in DATETIME_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue

    # pandas fills missing parts with defaults, so it only gets complete dates
    if _has_full_date(text):
        parsed = pd.to_datetime(text, errors="coerce", dayfirst=True)
        if isinstance(parsed, pd.Timestamp) and pd.notna(parsed):
            return parsed.to_pydatetime()
    raise ValueError(f"Unable to parse date: {text!r}")


def _has_full_date(text: str) -> bool:
    """True when ``text`` names a year, a month and a day ("5 March 2024", "2024 3 5")."""
    date_part = _TIME_RE.sub(" ", text)
    if _YEAR_RE.search(date_part) is None:
        return False
    numbers = _NUMBER_RE.findall(date_part)
    if len(numbers) >= 3:
        return True
    return len(numbers) == 2 and _MONTH_NAME_RE.search(date_part) is not None


def _text_serial(serial: float, epoch: datetime) -> datetime:
    converted = from_excel_serial(serial, epoch=epoch)
    if converted < EARLIEST_TEXT_SERIAL_DATE:
        raise ValueError(f"Implausible date serial: {serial}")
    return converted


def parse_cell_date(value: Any, *, epoch: datetime = CALENDAR_WINDOWS_1900) -> date:
    """Coerce a worksheet cell to a calendar date.

    Accepts ``datetime``/``date`` objects, numeric Excel serials (interpreted
    in the workbook's ``epoch``) and textual dates. Text holding only a number
    is a serial when it lands on or after ``EARLIEST_TEXT_SERIAL_DATE``;
    other text must carry a full day, month and year. Raises ``ValueError``
    for empty, partial or unparsable cells; there is no default date.
    """
    if value is None:
        raise ValueError("Date cell is empty")
    if isinstance(value, datetime):
        return as_utc_naive(value).date()
    if isinstance(value, date):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Unable to parse date: {value!r}")
    if isinstance(value, (int, float)):
        return from_excel_serial(float(value), epoch=epoch).date()

    text = str(value).strip()
    if not text:
        raise ValueError("Date cell is empty")
    try:
        serial = float(text)
    except ValueError:
        return as_utc_naive(_parse_text(text)).date()
    return _text_serial(serial, epoch).date()
