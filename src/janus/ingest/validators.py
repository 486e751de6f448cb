from __future__ import annotations

from datetime import date

from janus.db.models import TRADE_TYPES
from janus.ingest.records import NormalizedTransaction
from janus.utils.exceptions import RowValidationError


def validate_transaction(record: NormalizedTransaction, *, today: date) -> list[RowValidationError]:
    """Check a mapped row against the transaction invariants.

    Returns every violation found; an empty list means the record is valid.
    """
    row_number = record.row_number
    errors: list[RowValidationError] = []

    if (record.quantity is None) != (record.price is None):
        errors.append(
            RowValidationError(row_number, "quantity and price must both be present or both absent")
        )
    if record.quantity is not None and record.transaction_type not in TRADE_TYPES:
        errors.append(
            RowValidationError(
                row_number,
                f"quantity is only allowed on buy/sell rows, not {record.transaction_type.value}",
            )
        )
    if record.quantity is not None and record.quantity < 0:
        errors.append(RowValidationError(row_number, f"quantity must be non-negative, got {record.quantity}"))
    if record.price is not None and record.price < 0:
        errors.append(RowValidationError(row_number, f"price must be non-negative, got {record.price}"))
    if record.commission < 0:
        errors.append(
            RowValidationError(row_number, f"commission must be non-negative, got {record.commission}")
        )
    if record.transaction_date > today:
        errors.append(
            RowValidationError(
                row_number,
                f"transaction date {record.transaction_date.isoformat()} is in the future",
            )
        )
    return errors
