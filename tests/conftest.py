from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime
from io import BytesIO
from typing import Any

import pytest
from openpyxl import Workbook
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from janus.db.models import Base

XTB_HEADER = ("ID", "Type", "Time", "Comment", "Symbol", "Amount")
XTB_SHEET = "CASH OPERATION HISTORY"
XTB_PREAMBLE = [
    ("Name and surname", "Jan Kowalski"),
    ("Account", "51307109"),
    ("Currency", "PLN"),
    ("Balance", 12500.0),
    (),
    (),
    ("Equity", 12500.0),
    (),
    (),
    (),
]
IMPORT_NOW = datetime(2025, 1, 1, 12, 0, 0)


def build_statement(
    rows: Iterable[Sequence[Any]],
    *,
    sheet_name: str = XTB_SHEET,
    header: Sequence[str] = XTB_HEADER,
    preamble: Sequence[Sequence[Any]] = tuple(XTB_PREAMBLE),
    extra_sheets: Sequence[str] = ("CLOSED POSITION HISTORY", "OPEN POSITION"),
    total_row: bool = True,
) -> bytes:
    """Build an XTB-shaped workbook; column A stays empty like the real export."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = sheet_name
    for values in preamble:
        sheet.append([None, *values] if values else [None])
    sheet.append([None, *header])
    for values in rows:
        sheet.append([None, *values])
    if total_row:
        sheet.append([None, None, None, None, "Total", None, 1234.5])
    for name in extra_sheets:
        workbook.create_sheet(name).append(["Position", "Symbol", "Type"])

    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def db_session() -> Session:
    engine = create_engine("sqlite:///:memory:", future=True)
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        yield session


@pytest.fixture
def sample_statement_rows() -> list[tuple]:
    return [
        (1001, "Withdrawal", datetime(2024, 1, 5, 9, 30), "Withdrawal to bank account", None, -500),
        (
            1002,
            "Stocks/ETF purchase",
            datetime(2024, 1, 6, 15, 45),
            "OPEN BUY 10 @ 150",
            "aapl.us ",
            -1500,
        ),
        ("x", "garbage row", "not a date at all", None, None, "???"),
    ]


@pytest.fixture
def sample_statement(sample_statement_rows) -> bytes:
    return build_statement(sample_statement_rows)


@pytest.fixture
def statement_builder():
    return build_statement
