from __future__ import annotations

import re
import zipfile
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from io import BytesIO

import pytest

from janus.config.settings import get_settings
from janus.db.models import TRADE_TYPES, AccountType, TransactionType
from janus.ingest.classifier import XTB_TYPE_LABELS
from janus.ingest.statement_import import import_statement
from janus.utils.exceptions import (
    HeaderNotFoundError,
    RowParseError,
    RowValidationError,
    StructuralError,
    WorkbookReadError,
    WorksheetNotFoundError,
)

IMPORT_NOW = datetime(2025, 1, 1, 12, 0, 0)


def _rewrite_member(data: bytes, member: str, transform) -> bytes:
    """Copy an xlsx package, passing one member's bytes through ``transform``."""
    source = zipfile.ZipFile(BytesIO(data))
    buffer = BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as target:
        for item in source.infolist():
            payload = source.read(item.filename)
            if item.filename == member:
                payload = transform(payload)
            target.writestr(item, payload)
    return buffer.getvalue()


def test_sample_statement_imports_two_rows_and_rejects_garbage(sample_statement):
    result = import_statement(sample_statement, now=IMPORT_NOW)

    assert len(result.imported) == 2
    assert len(result.rejected) == 1
    assert result.worksheet == "CASH OPERATION HISTORY"
    assert result.header_row == 11

    # header on worksheet row 11, so the third data row is worksheet row 14
    rejected = result.rejected[0]
    assert isinstance(rejected, RowParseError)
    assert rejected.row_number == 14
    assert "invalid date" in rejected.reason

    withdrawal, purchase = result.imported
    assert withdrawal.transaction_type == TransactionType.WITHDRAWAL
    assert withdrawal.transaction_date == date(2024, 1, 5)
    assert withdrawal.total_amount == Decimal("-500")
    assert withdrawal.ticker is None
    assert withdrawal.quantity is None and withdrawal.price is None
    assert withdrawal.source_id == "1001"

    assert purchase.transaction_type == TransactionType.BUY
    assert purchase.transaction_date == date(2024, 1, 6)
    assert purchase.ticker == "AAPL.US"
    assert purchase.quantity == Decimal("10")
    assert purchase.price == Decimal("150")
    assert purchase.total_amount == Decimal("-1500")
    assert purchase.commission == Decimal("0")
    assert purchase.notes == "OPEN BUY 10 @ 150"

    assert {record.import_batch_id for record in result.imported} == {result.batch_id}


def test_reimport_produces_new_batch_and_leaves_first_untouched(sample_statement):
    first = import_statement(sample_statement, now=IMPORT_NOW)
    snapshot = list(first.imported)

    second = import_statement(sample_statement, now=IMPORT_NOW)

    assert first.batch_id != second.batch_id
    assert first.imported == snapshot
    assert all(record.import_batch_id == first.batch_id for record in first.imported)
    assert [replace(record, import_batch_id="") for record in first.imported] == [
        replace(record, import_batch_id="") for record in second.imported
    ]


def test_missing_worksheet_raises_before_any_row(statement_builder, sample_statement_rows):
    data = statement_builder(sample_statement_rows, sheet_name="Sheet1")

    with pytest.raises(WorksheetNotFoundError) as excinfo:
        import_statement(data, now=IMPORT_NOW)

    assert excinfo.value.matches == []
    assert "Sheet1" in excinfo.value.available
    assert isinstance(excinfo.value, StructuralError)


def test_ambiguous_worksheets_are_rejected(statement_builder, sample_statement_rows):
    data = statement_builder(
        sample_statement_rows, extra_sheets=("Cash Operation History ",)
    )

    with pytest.raises(WorksheetNotFoundError, match="Ambiguous statement"):
        import_statement(data, now=IMPORT_NOW)


def test_recognized_type_with_bad_date_is_rejected_not_defaulted(statement_builder):
    data = statement_builder(
        [
            (1, "Deposit", "31/02/2024", "BLIK deposit", None, 1000),
            (2, "Deposit", None, "BLIK deposit", None, 1000),
        ]
    )

    result = import_statement(data, now=IMPORT_NOW)

    assert result.imported == []
    assert [error.row_number for error in result.rejected] == [12, 13]
    assert all("date" in error.reason for error in result.rejected)


def test_amount_sign_follows_transaction_type(statement_builder):
    data = statement_builder(
        [
            (1, "Withdrawal", datetime(2024, 3, 1), None, None, 500),
            (2, "Dividend", datetime(2024, 3, 2), "AAPL.US USD 0.2400/ SHR", "AAPL.US", 20),
            (3, "Withholding tax", datetime(2024, 3, 2), "AAPL.US USD WHT 15%", "AAPL.US", 3),
            (4, "Deposit", datetime(2024, 3, 3), None, None, -250),
            (5, "Stocks/ETF sale", datetime(2024, 3, 4), "CLOSE BUY 2 @ 180.5", "MSFT.US", -361),
            (6, "Subaccount Transfer", datetime(2024, 3, 5), None, None, -75),
        ]
    )

    result = import_statement(data, now=IMPORT_NOW)

    assert result.rejected == []
    amounts = {record.source_id: record.total_amount for record in result.imported}
    assert amounts == {
        "1": Decimal("-500"),
        "2": Decimal("20"),
        "3": Decimal("-3"),
        "4": Decimal("250"),
        "5": Decimal("361"),
        "6": Decimal("-75"),
    }
    tax = next(record for record in result.imported if record.source_id == "3")
    assert tax.ticker is None
    other = next(record for record in result.imported if record.source_id == "6")
    assert other.transaction_type == TransactionType.OTHER
    assert other.source_label == "Subaccount Transfer"


@pytest.mark.parametrize("label", sorted(XTB_TYPE_LABELS) + ["Mystery operation"])
def test_quantity_and_price_are_paired_for_every_classification(statement_builder, label):
    data = statement_builder(
        [(1, label, datetime(2024, 5, 1), "OPEN BUY 3/3.2344 @ 10.992", "CDR.PL", 100)]
    )

    result = import_statement(data, now=IMPORT_NOW)

    assert result.rejected == []
    (record,) = result.imported
    assert (record.quantity is None) == (record.price is None)
    if record.transaction_type in TRADE_TYPES:
        assert record.quantity == Decimal("3")
        assert record.price == Decimal("10.992")
    else:
        assert record.quantity is None


def test_future_dated_rows_are_flagged(statement_builder):
    data = statement_builder(
        [
            (1, "Deposit", datetime(2025, 1, 1, 23, 59), None, None, 100),
            (2, "Deposit", datetime(2025, 1, 2, 0, 1), None, None, 100),
        ]
    )

    result = import_statement(data, now=IMPORT_NOW)

    assert [record.source_id for record in result.imported] == ["1"]
    (error,) = result.rejected
    assert isinstance(error, RowValidationError)
    assert error.row_number == 13
    assert "in the future" in error.reason


def test_duplicate_operation_ids_are_rejected_on_later_rows(statement_builder):
    data = statement_builder(
        [
            (77, "Deposit", datetime(2024, 1, 1), None, None, 100),
            (77, "Deposit", datetime(2024, 1, 1), None, None, 100),
        ]
    )

    result = import_statement(data, now=IMPORT_NOW)

    assert len(result.imported) == 1
    assert result.rejected[0].row_number == 13
    assert "first seen on row 12" in result.rejected[0].reason


def test_blank_and_total_rows_are_skipped(statement_builder):
    data = statement_builder(
        [
            (1, "Deposit", datetime(2024, 1, 1), None, None, 100),
            (None, None, None, None, None, None),
            (2, "Deposit", datetime(2024, 1, 2), None, None, 200),
        ],
        total_row=True,
    )

    result = import_statement(data, now=IMPORT_NOW)

    assert len(result.imported) == 2
    assert result.rejected == []


def test_textual_and_serial_dates(statement_builder):
    data = statement_builder(
        [
            (1, "Deposit", "05.01.2024 10:15:00", None, None, 100),
            (2, "Deposit", 45296, None, None, 100),
            (3, "Deposit", "2024-01-05", None, None, 100),
        ]
    )

    result = import_statement(data, now=IMPORT_NOW)

    assert result.rejected == []
    assert {record.transaction_date for record in result.imported} == {date(2024, 1, 5)}


@pytest.mark.parametrize("when", ["now", "today", "March", "12", "Q1"])
def test_partial_text_dates_are_rejected(statement_builder, when):
    data = statement_builder([(1, "Deposit", when, "BLIK deposit", None, 1000)])

    result = import_statement(data, now=IMPORT_NOW)

    assert result.imported == []
    assert [error.row_number for error in result.rejected] == [12]
    assert "date" in result.rejected[0].reason


def test_polish_headers_and_locale_amounts(statement_builder):
    data = statement_builder(
        [
            (1, "Wypłata", "05.01.2024", "Wypłata IKE", None, "-1 234,50"),
            (2, "Dywidenda", "06.01.2024", None, "pkn.pl", "20,5"),
        ],
        header=("ID", "Typ", "Czas", "Komentarz", "Symbol", "Kwota"),
    )

    result = import_statement(data, now=IMPORT_NOW)

    assert result.rejected == []
    withdrawal, dividend = result.imported
    assert withdrawal.transaction_type == TransactionType.WITHDRAWAL
    assert withdrawal.total_amount == Decimal("-1234.50")
    assert withdrawal.account_type == AccountType.IKE
    assert dividend.total_amount == Decimal("20.5")
    assert dividend.ticker == "PKN.PL"


def test_unparsable_amount_is_rejected(statement_builder):
    data = statement_builder([(1, "Deposit", datetime(2024, 1, 1), None, None, "lots")])

    result = import_statement(data, now=IMPORT_NOW)

    assert result.imported == []
    assert result.rejected[0].reason == "invalid amount 'lots'"


def test_all_rows_rejected_still_returns_batch(statement_builder):
    data = statement_builder([(1, "Deposit", "never", None, None, 10)])

    result = import_statement(data, now=IMPORT_NOW)

    assert result.imported == []
    assert len(result.rejected) == 1
    assert result.batch_id
    response = result.to_response().to_dict()
    assert response["importedCount"] == 0
    assert response["importBatchId"] == result.batch_id
    assert response["rejected"] == [{"rowNumber": 12, "reason": "invalid date 'never'"}]


def test_account_type_override(sample_statement):
    result = import_statement(sample_statement, now=IMPORT_NOW, account_type=AccountType.IKZE)

    assert {record.account_type for record in result.imported} == {AccountType.IKZE}


def test_missing_header_is_structural(statement_builder, sample_statement_rows):
    data = statement_builder(sample_statement_rows, header=("ID", "Kind", "When", "Memo"))

    with pytest.raises(HeaderNotFoundError):
        import_statement(data, now=IMPORT_NOW)


@pytest.mark.parametrize("payload", [b"", b"not a spreadsheet", b"PK\x03\x04broken"])
def test_unreadable_files_are_structural(payload):
    with pytest.raises(WorkbookReadError):
        import_statement(payload, now=IMPORT_NOW)


def test_custom_worksheet_label_from_settings(statement_builder, sample_statement_rows, monkeypatch):
    monkeypatch.setenv("JANUS_STATEMENT_WORKSHEETS", "HISTORIA OPERACJI GOTÓWKOWYCH")
    data = statement_builder(sample_statement_rows, sheet_name="HISTORIA OPERACJI GOTÓWKOWYCH")

    result = import_statement(data, now=IMPORT_NOW, settings=get_settings())

    assert len(result.imported) == 2


def test_response_message_matches_import_count(sample_statement):
    result = import_statement(sample_statement, now=IMPORT_NOW)

    response = result.to_response()

    assert response.message == "Successfully imported 2 transactions"
    assert response.rejected_count == 1
    assert response.to_dict()["rejected"][0]["rowNumber"] == 14


@pytest.mark.parametrize(
    "member", ["[Content_Types].xml", "xl/workbook.xml", "xl/worksheets/sheet1.xml"]
)
def test_corrupt_package_xml_is_structural(sample_statement, member):
    data = _rewrite_member(sample_statement, member, lambda _payload: b"<not xml")

    with pytest.raises(WorkbookReadError):
        import_statement(data, now=IMPORT_NOW)


def test_understated_sheet_dimension_does_not_truncate_rows(sample_statement):
    data = _rewrite_member(
        sample_statement,
        "xl/worksheets/sheet1.xml",
        lambda payload: re.sub(rb'<dimension ref="[^"]*"\s*/>', b'<dimension ref="A1:B2"/>', payload),
    )

    result = import_statement(data, now=IMPORT_NOW)

    assert result.header_row == 11
    assert len(result.imported) == 2
    assert [error.row_number for error in result.rejected] == [14]
