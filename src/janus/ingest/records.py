from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

from janus.db.models import AccountType, TransactionType
from janus.utils.exceptions import RowParseError


@dataclass(frozen=True, slots=True)
class RawStatementRow:
    row_number: int
    cells: tuple[Any, ...]

    def cell(self, index: int | None) -> Any:
        if index is None or index >= len(self.cells):
            return None
        return self.cells[index]

    def is_blank(self) -> bool:
        return all(value is None or str(value).strip() == "" for value in self.cells)


@dataclass(frozen=True, slots=True)
class NormalizedTransaction:
    transaction_date: date
    transaction_type: TransactionType
    total_amount: Decimal
    import_batch_id: str
    ticker: str | None = None
    quantity: Decimal | None = None
    price: Decimal | None = None
    commission: Decimal = Decimal("0")
    notes: str | None = None
    account_type: AccountType = AccountType.STANDARD
    source_id: str | None = None
    source_label: str = ""
    row_number: int = 0

    def to_row(self) -> dict[str, Any]:
        """Column values for the ``transactions`` table, minus ownership fields."""
        row = asdict(self)
        row.pop("source_label")
        row.pop("row_number")
        return row


@dataclass(frozen=True)
class ImportTransactionsResponse:
    message: str
    imported_count: int
    import_batch_id: str
    rejected: list[RowParseError] = field(default_factory=list)

    @property
    def rejected_count(self) -> int:
        return len(self.rejected)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "importedCount": self.imported_count,
            "importBatchId": self.import_batch_id,
            "rejectedCount": self.rejected_count,
            "rejected": [error.to_dict() for error in self.rejected],
        }


@dataclass(frozen=True)
class StatementImportResult:
    batch_id: str
    imported: list[NormalizedTransaction]
    rejected: list[RowParseError]
    worksheet: str = ""
    header_row: int = 0

    def to_response(self, imported_count: int | None = None) -> ImportTransactionsResponse:
        count = len(self.imported) if imported_count is None else imported_count
        return ImportTransactionsResponse(
            message=f"Successfully imported {count} transactions",
            imported_count=count,
            import_batch_id=self.batch_id,
            rejected=list(self.rejected),
        )
