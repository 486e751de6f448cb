"""Brokerage statement import: workbook bytes in, normalized transactions out."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from uuid import uuid4

from janus.config.settings import Settings, get_settings
from janus.db.models import AccountType
from janus.ingest.classifier import classify_row
from janus.ingest.columns import ColumnMap, find_header
from janus.ingest.field_mapper import map_row
from janus.ingest.records import NormalizedTransaction, RawStatementRow, StatementImportResult
from janus.ingest.validators import validate_transaction
from janus.ingest.workbook import iter_rows, locate_worksheet, open_workbook
from janus.utils.dates import as_utc_naive, utc_now
from janus.utils.exceptions import RowParseError, RowValidationError
from janus.utils.logging import get_logger

logger = get_logger(__name__)


def _is_footer(row: RawStatementRow, columns: ColumnMap) -> bool:
    """Blank rows and the trailing "Total" row carry neither a type nor a date."""
    if row.is_blank():
        return True
    type_cell = row.cell(columns.get("type"))
    date_cell = row.cell(columns.get("date"))
    return all(value is None or str(value).strip() == "" for value in (type_cell, date_cell))


def import_statement(
    data: bytes,
    *,
    now: datetime | None = None,
    account_type: AccountType | None = None,
    settings: Settings | None = None,
) -> StatementImportResult:
    """Parse an XTB statement workbook into normalized transactions.

    A fresh batch id is generated before anything is read, so every result,
    including one where all rows were rejected, can be traced. Structural
    problems (unreadable file, missing or ambiguous worksheet, no header) raise
    a ``StructuralError``; row problems are collected in ``rejected`` and the
    import carries on.

    Args:
        data: Raw bytes of the uploaded ``.xlsx`` file.
        now: Import instant; rows dated after its calendar day are rejected.
        account_type: Forces the account type instead of inferring it from
            row comments.
        settings: Importer settings; defaults to ``get_settings()``.
    """
    batch_id = str(uuid4())
    settings = settings or get_settings()
    today = as_utc_naive(now or utc_now()).date()

    imported: list[NormalizedTransaction] = []
    rejected: list[RowParseError] = []
    first_seen: dict[str, int] = {}

    with open_workbook(data) as workbook:
        sheet_name = locate_worksheet(workbook, settings.statement_worksheets)
        rows = iter_rows(workbook, sheet_name)
        columns, header_row = find_header(rows, scan_limit=settings.header_scan_rows)
        logger.info(
            "Importing batch %s from worksheet %r (header on row %d)",
            batch_id,
            sheet_name,
            header_row,
        )

        for row in rows:
            if _is_footer(row, columns):
                continue

            try:
                record = map_row(
                    row,
                    columns,
                    classify_row(row, columns),
                    batch_id=batch_id,
                    account_type=account_type,
                    decimal_separator=settings.decimal_separator,
                    epoch=workbook.epoch,
                )
            except RowParseError as exc:
                logger.warning("Rejected %s", exc)
                rejected.append(exc)
                continue

            reasons = [error.reason for error in validate_transaction(record, today=today)]
            source_id = record.source_id
            if source_id is not None and source_id in first_seen:
                reasons.append(
                    f"duplicate operation id {source_id} (first seen on row {first_seen[source_id]})"
                )

            if reasons:
                error = RowValidationError(row.row_number, "; ".join(reasons))
                logger.warning("Rejected %s", error)
                rejected.append(error)
                continue

            if source_id is not None:
                first_seen[source_id] = row.row_number
            imported.append(record)

    logger.info(
        "Batch %s finished: %d imported, %d rejected",
        batch_id,
        len(imported),
        len(rejected),
    )
    return StatementImportResult(
        batch_id=batch_id,
        imported=imported,
        rejected=rejected,
        worksheet=sheet_name,
        header_row=header_row,
    )


def import_statement_file(path: str | Path, **kwargs) -> StatementImportResult:
    return import_statement(Path(path).read_bytes(), **kwargs)
