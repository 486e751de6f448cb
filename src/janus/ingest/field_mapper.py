"""Coerce classified statement rows into ``NormalizedTransaction`` records."""

from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal
from typing import Any

from openpyxl.utils.datetime import CALENDAR_WINDOWS_1900

from janus.db.models import (
    OUTFLOW_TYPES,
    TICKER_TYPES,
    TRADE_TYPES,
    AccountType,
    TransactionType,
)
from janus.ingest.classifier import infer_account_type
from janus.ingest.columns import ColumnMap
from janus.ingest.records import NormalizedTransaction, RawStatementRow
from janus.utils.dates import parse_cell_date
from janus.utils.exceptions import RowParseError
from janus.utils.money import ZERO, parse_decimal, signed_amount

# "OPEN BUY 10 @ 150.50", "CLOSE BUY 3/3.2344 @ 10.992", "SELL 5.5 @ 200"
_QUANTITY_RE = re.compile(r"(?:BUY|SELL)\s+(\d+(?:[.,]\d+)?)(?:\s*@|/)", re.IGNORECASE)
_PRICE_RE = re.compile(r"@\s*(\d+(?:[.,]\d+)?)")


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_ticker(value: Any) -> str | None:
    text = _text(value)
    return text.upper() if text else None


def normalize_source_id(value: Any) -> str | None:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return _text(value)


def extract_quantity(comment: str | None) -> Decimal | None:
    match = _QUANTITY_RE.search(comment or "")
    if match is None:
        return None
    return parse_decimal(match.group(1).replace(",", "."))


def extract_price(comment: str | None) -> Decimal | None:
    match = _PRICE_RE.search(comment or "")
    if match is None:
        return None
    return parse_decimal(match.group(1).replace(",", "."))


def _decimal_cell(
    row: RawStatementRow, columns: ColumnMap, field: str, decimal_separator: str | None
) -> Decimal | None:
    value = row.cell(columns.get(field))
    try:
        return parse_decimal(value, decimal_separator=decimal_separator)
    except ValueError as exc:
        raise RowParseError(row.row_number, f"invalid {field} {value!r}") from exc


def _trade_details(
    row: RawStatementRow,
    columns: ColumnMap,
    comment: str | None,
    decimal_separator: str | None,
) -> tuple[Decimal | None, Decimal | None]:
    quantity = _decimal_cell(row, columns, "quantity", decimal_separator)
    price = _decimal_cell(row, columns, "price", decimal_separator)
    if quantity is None:
        quantity = extract_quantity(comment)
    if price is None:
        price = extract_price(comment)
    return quantity, price


def map_row(
    row: RawStatementRow,
    columns: ColumnMap,
    transaction_type: TransactionType,
    *,
    batch_id: str,
    account_type: AccountType | None = None,
    decimal_separator: str | None = None,
    epoch: datetime = CALENDAR_WINDOWS_1900,
) -> NormalizedTransaction:
    """Map one row; raises ``RowParseError`` when a cell cannot be coerced."""
    raw_date = row.cell(columns.get("date"))
    try:
        transaction_date = parse_cell_date(raw_date, epoch=epoch)
    except (ValueError, OverflowError) as exc:
        raise RowParseError(row.row_number, f"invalid date {raw_date!r}") from exc

    amount = _decimal_cell(row, columns, "amount", decimal_separator)
    if amount is None:
        raise RowParseError(row.row_number, "missing amount")
    if transaction_type is TransactionType.OTHER:
        total_amount = amount
    else:
        total_amount = signed_amount(amount, outflow=transaction_type in OUTFLOW_TYPES)

    comment = _text(row.cell(columns.get("comment")))

    quantity: Decimal | None = None
    price: Decimal | None = None
    if transaction_type in TRADE_TYPES:
        quantity, price = _trade_details(row, columns, comment, decimal_separator)

    commission = _decimal_cell(row, columns, "commission", decimal_separator)

    return NormalizedTransaction(
        transaction_date=transaction_date,
        transaction_type=transaction_type,
        total_amount=total_amount,
        import_batch_id=batch_id,
        ticker=normalize_ticker(row.cell(columns.get("symbol")))
        if transaction_type in TICKER_TYPES
        else None,
        quantity=quantity,
        price=price,
        commission=abs(commission) if commission is not None else ZERO,
        notes=comment,
        account_type=account_type or infer_account_type(comment),
        source_id=normalize_source_id(row.cell(columns.get("source_id"))),
        source_label=_text(row.cell(columns.get("type"))) or "",
        row_number=row.row_number,
    )
