"""Transaction storage: batch inserts for imports and paginated listing."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, func, insert, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from janus.db.models import AccountType, Transaction, TransactionType
from janus.ingest.dedupe import transaction_dedupe_key
from janus.ingest.records import StatementImportResult
from janus.utils.dates import as_utc_naive, utc_now
from janus.utils.exceptions import (
    QueryValidationError,
    TransactionNotFoundError,
    TransactionValidationError,
)
from janus.utils.logging import get_logger
from janus.utils.money import parse_decimal

logger = get_logger(__name__)

SORTABLE_FIELDS = {
    "transaction_date": Transaction.transaction_date,
    "created_at": Transaction.created_at,
    "total_amount": Transaction.total_amount,
    "ticker": Transaction.ticker,
    "transaction_type": Transaction.transaction_type,
}
MAX_PAGE_SIZE = 100
MAX_TICKER_LENGTH = 20
MAX_NOTES_LENGTH = 500


@contextmanager
def session_scope(engine: Engine):
    session = Session(engine)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@dataclass(frozen=True)
class BatchInsertSummary:
    import_batch_id: str
    inserted: int
    skipped_duplicates: int


@dataclass(frozen=True)
class TransactionQuery:
    page: int = 1
    limit: int = 20
    sort_by: str = "transaction_date"
    order: str = "desc"
    transaction_type: TransactionType | None = None
    ticker: str | None = None
    account_type: AccountType | None = None

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> TransactionQuery:
        """Build a query from raw request parameters (strings or ``None``)."""
        errors: list[str] = []

        def _int_param(name: str, default: int, low: int, high: int | None = None) -> int:
            raw = params.get(name)
            if raw is None or str(raw).strip() == "":
                return default
            try:
                value = int(str(raw).strip())
            except ValueError:
                errors.append(f"{name} must be an integer")
                return default
            if value < low or (high is not None and value > high):
                bound = f"between {low} and {high}" if high is not None else f"at least {low}"
                errors.append(f"{name} must be {bound}")
            return value

        page = _int_param("page", 1, 1)
        limit = _int_param("limit", 20, 1, MAX_PAGE_SIZE)

        sort_by = str(params.get("sortBy") or params.get("sort_by") or "transaction_date").strip()
        if sort_by not in SORTABLE_FIELDS:
            errors.append("Invalid sortBy field")

        order = str(params.get("order") or "desc").strip().lower()
        if order not in {"asc", "desc"}:
            errors.append('Order must be either "asc" or "desc"')

        transaction_type = None
        raw_type = str(params.get("type") or "").strip().lower()
        if raw_type:
            try:
                transaction_type = TransactionType(raw_type)
            except ValueError:
                errors.append(f"Unknown transaction type {raw_type!r}")

        account_type = None
        raw_account = str(params.get("account") or "").strip().upper()
        if raw_account:
            try:
                account_type = AccountType(raw_account)
            except ValueError:
                errors.append(f"Unknown account type {raw_account!r}")

        if errors:
            raise QueryValidationError("; ".join(errors))

        ticker = str(params.get("ticker") or "").strip().upper() or None
        return cls(
            page=page,
            limit=limit,
            sort_by=sort_by,
            order=order,
            transaction_type=transaction_type,
            ticker=ticker,
            account_type=account_type,
        )


def _parse_iso_date(raw: Any) -> date:
    if isinstance(raw, datetime):
        return as_utc_naive(raw).date()
    if isinstance(raw, date):
        return raw
    text = str(raw).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return as_utc_naive(datetime.fromisoformat(text)).date()


def parse_transaction_input(params: Mapping[str, Any], *, partial: bool = False) -> dict[str, Any]:
    """Validate manual create/update parameters into ``Transaction`` column values.

    Keys follow the DTO names (``transactionDate``, ``type``, ``account``,
    ``totalAmount`` ...). A create needs date, type, account and total amount;
    with ``partial`` only the keys present are checked and returned. ``None``
    clears the optional fields. Every problem is reported in one
    ``TransactionValidationError``.
    """
    errors: list[str] = []
    values: dict[str, Any] = {}

    def _lookup(*names: str) -> tuple[bool, Any]:
        for name in names:
            if name in params:
                return True, params[name]
        return False, None

    def _required(*names: str) -> Any:
        present, raw = _lookup(*names)
        if raw is not None and str(raw).strip() != "":
            return raw
        if present or not partial:
            errors.append(f"{names[0]} is required")
        return None

    def _number(name: str, raw: Any) -> Decimal | None:
        try:
            return parse_decimal(raw, decimal_separator=".")
        except ValueError:
            errors.append(f"{name} must be a number")
            return None

    raw = _required("transactionDate")
    if raw is not None:
        try:
            values["transaction_date"] = _parse_iso_date(raw)
        except ValueError:
            errors.append("Invalid date format. Expected ISO 8601.")

    raw = _required("type", "transactionType")
    if raw is not None:
        try:
            values["transaction_type"] = TransactionType(str(raw).strip().lower())
        except ValueError:
            errors.append(f"Unknown transaction type {str(raw).strip().lower()!r}")

    raw = _required("account", "accountType")
    if raw is not None:
        try:
            values["account_type"] = AccountType(str(raw).strip().upper())
        except ValueError:
            errors.append(f"Unknown account type {str(raw).strip().upper()!r}")

    raw = _required("totalAmount")
    if raw is not None:
        amount = _number("totalAmount", raw)
        if amount is not None:
            values["total_amount"] = amount

    present, raw = _lookup("ticker")
    if present:
        ticker = None if raw is None else str(raw).strip().upper()
        if ticker is not None and not 1 <= len(ticker) <= MAX_TICKER_LENGTH:
            errors.append(f"ticker must be 1 to {MAX_TICKER_LENGTH} characters")
        values["ticker"] = ticker

    for name, column in (("quantity", "quantity"), ("price", "price")):
        present, raw = _lookup(name)
        if not present:
            continue
        number = _number(name, raw)
        if number is not None and number <= 0:
            errors.append(f"{name} must be positive")
        values[column] = number

    present, raw = _lookup("commission")
    if present or not partial:
        commission = _number("commission", raw) or Decimal("0")
        if commission < 0:
            errors.append("commission must not be negative")
        values["commission"] = commission

    present, raw = _lookup("notes")
    if present:
        notes = None if raw is None else str(raw)
        if notes is not None and len(notes) > MAX_NOTES_LENGTH:
            errors.append(f"notes must be at most {MAX_NOTES_LENGTH} characters")
        values["notes"] = notes or None

    if errors:
        raise TransactionValidationError("; ".join(errors))
    return values


@dataclass(frozen=True)
class TransactionPage:
    data: list[Transaction]
    total_items: int
    current_page: int
    limit: int
    total_pages: int = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "total_pages", math.ceil(self.total_items / self.limit))

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": [transaction_to_dto(row) for row in self.data],
            "pagination": {
                "totalItems": self.total_items,
                "totalPages": self.total_pages,
                "currentPage": self.current_page,
                "limit": self.limit,
            },
        }


def _decimal_or_none(value: Any) -> float | None:
    return float(value) if value is not None else None


def transaction_to_dto(row: Transaction) -> dict[str, Any]:
    return {
        "id": row.id,
        "userId": row.user_id,
        "transactionDate": row.transaction_date.isoformat(),
        "transactionType": row.transaction_type.value,
        "accountType": row.account_type.value,
        "ticker": row.ticker,
        "quantity": _decimal_or_none(row.quantity),
        "price": _decimal_or_none(row.price),
        "totalAmount": float(row.total_amount),
        "commission": float(row.commission),
        "notes": row.notes,
        "importedFromFile": row.imported_from_file,
        "importBatchId": row.import_batch_id,
        "createdAt": row.created_at.isoformat(),
        "updatedAt": row.updated_at.isoformat(),
    }


def _chunked(rows: list[dict], batch_size: int) -> Iterable[list[dict]]:
    for start in range(0, len(rows), batch_size):
        yield rows[start : start + batch_size]


def _existing_dedupe_keys(
    session: Session, user_id: str, keys: list[str], query_chunk_size: int = 1000
) -> set[str]:
    existing: set[str] = set()
    for start in range(0, len(keys), query_chunk_size):
        chunk = keys[start : start + query_chunk_size]
        stmt = select(Transaction.dedupe_key).where(
            Transaction.user_id == user_id, Transaction.dedupe_key.in_(chunk)
        )
        existing.update(str(value) for value in session.scalars(stmt).all() if value)
    return existing


def insert_import_batch(
    session: Session,
    user_id: str,
    result: StatementImportResult,
    batch_size: int = 2000,
) -> BatchInsertSummary:
    """Insert an import result's transactions for ``user_id``.

    Rows whose dedupe key is already stored for the user are skipped, as are
    repeated vendor ids within the batch. Identical rows without a vendor id
    are distinct transactions and get numbered signature keys. Nothing is
    committed here; the caller's ``session_scope`` makes the batch
    all-or-nothing.
    """
    prepared: list[dict] = []
    seen: set[str] = set()
    occurrences: dict[str, int] = {}
    for record in result.imported:
        row = record.to_row()
        key = transaction_dedupe_key(row)
        if key.startswith("SIG:"):
            occurrences[key] = occurrences.get(key, 0) + 1
            key = transaction_dedupe_key(row, occurrence=occurrences[key])
        if key in seen:
            logger.info("Skipping row %s: operation id repeated in batch", record.row_number)
            continue
        seen.add(key)
        row["dedupe_key"] = key
        row["user_id"] = user_id
        row["imported_from_file"] = True
        prepared.append(row)

    existing = _existing_dedupe_keys(session, user_id, [row["dedupe_key"] for row in prepared])
    new_rows = [row for row in prepared if row["dedupe_key"] not in existing]
    if existing:
        logger.info(
            "Batch %s: %d rows already stored for user %s",
            result.batch_id,
            len(prepared) - len(new_rows),
            user_id,
        )

    for chunk in _chunked(new_rows, batch_size=batch_size):
        session.execute(insert(Transaction), chunk)
    session.flush()

    summary = BatchInsertSummary(
        import_batch_id=result.batch_id,
        inserted=len(new_rows),
        skipped_duplicates=len(result.imported) - len(new_rows),
    )
    logger.info(
        "Stored batch %s for user %s: %d inserted, %d duplicates skipped",
        summary.import_batch_id,
        user_id,
        summary.inserted,
        summary.skipped_duplicates,
    )
    return summary


def list_transactions(session: Session, user_id: str, query: TransactionQuery) -> TransactionPage:
    conditions = [Transaction.user_id == user_id]
    if query.transaction_type is not None:
        conditions.append(Transaction.transaction_type == query.transaction_type)
    if query.ticker:
        conditions.append(Transaction.ticker == query.ticker)
    if query.account_type is not None:
        conditions.append(Transaction.account_type == query.account_type)

    total = int(
        session.scalar(select(func.count()).select_from(Transaction).where(*conditions)) or 0
    )

    sort_column = SORTABLE_FIELDS[query.sort_by]
    ordering = sort_column.asc() if query.order == "asc" else sort_column.desc()
    stmt = (
        select(Transaction)
        .where(*conditions)
        .order_by(ordering, Transaction.id)
        .offset((query.page - 1) * query.limit)
        .limit(query.limit)
    )
    rows = list(session.scalars(stmt).all())
    return TransactionPage(data=rows, total_items=total, current_page=query.page, limit=query.limit)


def list_batch_transactions(session: Session, user_id: str, import_batch_id: str) -> list[Transaction]:
    stmt = (
        select(Transaction)
        .where(Transaction.user_id == user_id, Transaction.import_batch_id == import_batch_id)
        .order_by(Transaction.transaction_date, Transaction.id)
    )
    return list(session.scalars(stmt).all())


def get_transaction(session: Session, user_id: str, transaction_id: str) -> Transaction:
    row = session.scalar(
        select(Transaction).where(
            Transaction.id == transaction_id, Transaction.user_id == user_id
        )
    )
    if row is None:
        raise TransactionNotFoundError("Transaction not found")
    return row


def create_transaction(session: Session, user_id: str, params: Mapping[str, Any]) -> Transaction:
    """Store a manually entered transaction; it carries no import batch or dedupe key."""
    values = parse_transaction_input(params)
    row = Transaction(user_id=user_id, imported_from_file=False, **values)
    session.add(row)
    session.flush()
    logger.info("Created transaction %s for user %s", row.id, user_id)
    return row


def update_transaction(
    session: Session, user_id: str, transaction_id: str, params: Mapping[str, Any]
) -> Transaction:
    values = parse_transaction_input(params, partial=True)
    row = get_transaction(session, user_id, transaction_id)
    for column, value in values.items():
        setattr(row, column, value)
    row.updated_at = as_utc_naive(utc_now())
    session.flush()
    logger.info("Updated transaction %s for user %s: %s", row.id, user_id, sorted(values))
    return row


def delete_transaction(session: Session, user_id: str, transaction_id: str) -> None:
    row = get_transaction(session, user_id, transaction_id)
    session.delete(row)
    session.flush()


def delete_import_batch(session: Session, user_id: str, import_batch_id: str) -> int:
    result = session.execute(
        delete(Transaction).where(
            Transaction.user_id == user_id, Transaction.import_batch_id == import_batch_id
        )
    )
    return int(result.rowcount or 0)
