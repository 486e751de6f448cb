from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from hashlib import sha256
from typing import Any


def _normalize_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, Enum):
        value = value.value
    return str(value).strip().upper()


def _normalize_decimal(value: Any) -> str:
    if value is None:
        return ""
    try:
        parsed = Decimal(str(value).strip())
    except InvalidOperation:
        return ""
    if parsed == 0:
        return "0"
    return format(parsed.normalize(), "f")


def _normalize_date(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


def transaction_dedupe_key(row: Mapping[str, Any], occurrence: int = 1) -> str:
    """Stable identity of an imported transaction within one user's ledger.

    Vendor operation ids are unique per broker account, so they win when
    present; otherwise the key hashes the normalized economic fields. Rows
    without an id that repeat within one statement are told apart by their
    ``occurrence`` (1-based, in statement order), which a re-import of the
    same statement reproduces.
    """
    source_id = _normalize_text(row.get("source_id"))
    if source_id:
        return f"XTB:{source_id}"

    parts = [
        _normalize_date(row.get("transaction_date")),
        _normalize_text(row.get("transaction_type")),
        _normalize_text(row.get("account_type")),
        _normalize_text(row.get("ticker")),
        _normalize_decimal(row.get("quantity")),
        _normalize_decimal(row.get("price")),
        _normalize_decimal(row.get("total_amount")),
        _normalize_decimal(row.get("commission")),
        _normalize_text(row.get("notes")),
    ]
    digest = sha256("|".join(parts).encode("utf-8")).hexdigest()
    if occurrence > 1:
        return f"SIG:{digest}:{occurrence}"
    return f"SIG:{digest}"
