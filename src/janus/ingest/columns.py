from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from janus.ingest.records import RawStatementRow
from janus.utils.exceptions import HeaderNotFoundError

STATEMENT_CANONICAL_FIELDS = [
    "source_id",
    "type",
    "date",
    "comment",
    "symbol",
    "amount",
    "quantity",
    "price",
    "commission",
]

STATEMENT_REQUIRED_FIELDS = ["type", "date", "amount"]

STATEMENT_FIELD_ALIASES = {
    "source_id": {"id", "operation id", "transaction id", "position", "pozycja"},
    "type": {"type", "typ", "operation type", "operation", "typ operacji"},
    "date": {"time", "czas", "date", "data", "open time", "close time", "data operacji"},
    "comment": {"comment", "komentarz", "description", "opis", "notes"},
    "symbol": {"symbol", "ticker", "instrument", "walor"},
    "amount": {"amount", "kwota", "value", "wartość", "net amount"},
    "quantity": {"volume", "quantity", "wolumen", "ilość", "liczba"},
    "price": {"price", "cena", "open price", "unit price"},
    "commission": {"commission", "prowizja", "fee", "opłata"},
}


def _normalize(text: Any) -> str:
    return " ".join(str(text).strip().lower().replace("_", " ").split())


@dataclass(frozen=True)
class ColumnMap:
    """Canonical statement field to 0-based cell index."""

    indexes: dict[str, int]

    def get(self, field: str) -> int | None:
        return self.indexes.get(field)

    def __contains__(self, field: str) -> bool:
        return field in self.indexes


def infer_column_map(header_cells: tuple[Any, ...]) -> dict[str, int]:
    mapping: dict[str, int] = {}
    for index, value in enumerate(header_cells):
        if value is None:
            continue
        normalized = _normalize(value)
        if not normalized:
            continue
        for field in STATEMENT_CANONICAL_FIELDS:
            if field in mapping:
                continue
            if normalized in STATEMENT_FIELD_ALIASES[field]:
                mapping[field] = index
                break
    return mapping


def missing_required_fields(mapping: dict[str, int]) -> list[str]:
    return [field for field in STATEMENT_REQUIRED_FIELDS if field not in mapping]


def find_header(rows: Iterator[RawStatementRow], scan_limit: int = 40) -> tuple[ColumnMap, int]:
    """Consume ``rows`` up to and including the header row.

    The iterator is left positioned on the first data row.
    """
    best_missing: list[str] = list(STATEMENT_REQUIRED_FIELDS)
    for scanned, row in enumerate(rows, start=1):
        mapping = infer_column_map(row.cells)
        missing = missing_required_fields(mapping)
        if not missing:
            return ColumnMap(indexes=mapping), row.row_number
        if len(missing) < len(best_missing):
            best_missing = missing
        if scanned >= scan_limit:
            break
    raise HeaderNotFoundError(
        f"No header row with columns {', '.join(STATEMENT_REQUIRED_FIELDS)} found "
        f"in the first {scan_limit} rows (missing: {', '.join(best_missing)})."
    )
