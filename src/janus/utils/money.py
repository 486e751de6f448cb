"""Money helpers: locale-tolerant amount parsing and cash-flow signs."""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any


ZERO = Decimal("0")

_CURRENCY_MARKERS = ("US$", "USD", "PLN", "EUR", "GBP", "CHF", "ZŁ", "$", "€", "£")
_SPACE_CHARS = (" ", "\u00a0", "\u202f", "\u2009", "'")
_NUMBER_RE = re.compile(r"^\d+(\.\d+)?$")


def _normalize_separators(text: str, decimal_separator: str | None) -> str:
    if decimal_separator == ",":
        return text.replace(".", "").replace(",", ".")
    if decimal_separator == ".":
        return text.replace(",", "")

    has_comma = "," in text
    has_dot = "." in text
    if has_comma and has_dot:
        # whichever separator comes last is the decimal one
        if text.rfind(",") > text.rfind("."):
            return text.replace(".", "").replace(",", ".")
        return text.replace(",", "")
    if has_comma:
        if text.count(",") > 1:
            return text.replace(",", "")
        return text.replace(",", ".")
    if has_dot and text.count(".") > 1:
        return text.replace(".", "")
    return text


def parse_decimal(value: Any, *, decimal_separator: str | None = None) -> Decimal | None:
    """Parse a spreadsheet cell into a ``Decimal``.

    Numbers pass through unchanged. Text may carry currency markers, space or
    NBSP thousands separators, a comma or dot decimal separator, a leading
    sign (including the unicode minus) or accounting parentheses. With
    ``decimal_separator=None`` a single comma is read as the decimal
    separator, which is how Polish statements print amounts.

    Returns ``None`` for empty cells and raises ``ValueError`` for text that
    is not a number.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            raise ValueError(f"Not a finite number: {value!r}")
        return Decimal(str(value))

    text = str(value).strip()
    if not text:
        return None

    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1].strip()

    text = text.upper()
    for marker in _CURRENCY_MARKERS:
        text = text.replace(marker, "")
    for char in _SPACE_CHARS:
        text = text.replace(char, "")
    text = text.replace("\u2212", "-")

    if text.startswith("+"):
        text = text[1:]
    elif text.startswith("-"):
        negative = not negative
        text = text[1:]
    elif text.endswith("-"):
        negative = not negative
        text = text[:-1]

    text = _normalize_separators(text, decimal_separator)
    if not _NUMBER_RE.match(text):
        raise ValueError(f"Not a number: {value!r}")
    try:
        parsed = Decimal(text)
    except InvalidOperation as exc:
        raise ValueError(f"Not a number: {value!r}") from exc
    return -parsed if negative else parsed


def signed_amount(magnitude: Decimal, outflow: bool) -> Decimal:
    """Return ``magnitude`` with the sign of a cash flow; outflows are negative."""
    absolute = abs(magnitude)
    return -absolute if outflow else absolute
