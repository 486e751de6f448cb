"""Spreadsheet access for statement imports.

Wraps openpyxl behind two operations: open a workbook from uploaded bytes and
stream the rows of one named worksheet as ``RawStatementRow`` values.
"""

from __future__ import annotations

import zipfile
from collections.abc import Iterator
from datetime import datetime
from io import BytesIO
from typing import Any
from xml.etree.ElementTree import ParseError

from openpyxl import load_workbook
from openpyxl.utils.datetime import CALENDAR_WINDOWS_1900
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.xml import LXML

from janus.ingest.records import RawStatementRow
from janus.utils.exceptions import WorkbookReadError, WorksheetNotFoundError
from janus.utils.logging import get_logger

logger = get_logger(__name__)

# openpyxl parses package XML with lxml when it is installed, ElementTree otherwise
if LXML:
    from lxml.etree import XMLSyntaxError

    _XML_ERRORS: tuple[type[Exception], ...] = (ParseError, XMLSyntaxError)
else:
    _XML_ERRORS = (ParseError,)

_READ_ERRORS = (
    InvalidFileException,
    zipfile.BadZipFile,
    KeyError,
    OSError,
    ValueError,
    *_XML_ERRORS,
)


def _normalize_name(name: str) -> str:
    return " ".join(str(name).strip().upper().split())


class StatementWorkbook:
    """Read-only workbook opened from bytes. Close it, or use it as a context manager."""

    def __init__(self, workbook: Any):
        self._workbook = workbook

    def __enter__(self) -> StatementWorkbook:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def sheet_names(self) -> list[str]:
        return list(self._workbook.sheetnames)

    @property
    def epoch(self) -> datetime:
        return getattr(self._workbook, "epoch", CALENDAR_WINDOWS_1900)

    def worksheet(self, name: str) -> Any:
        return self._workbook[name]

    def close(self) -> None:
        self._workbook.close()


def open_workbook(data: bytes) -> StatementWorkbook:
    if not data:
        raise WorkbookReadError("Uploaded file is empty.")
    try:
        workbook = load_workbook(BytesIO(data), read_only=True, data_only=True)
    except _READ_ERRORS as exc:
        raise WorkbookReadError(f"Unable to read spreadsheet: {exc}") from exc
    return StatementWorkbook(workbook)


def locate_worksheet(workbook: StatementWorkbook, labels: tuple[str, ...]) -> str:
    """Return the name of the only worksheet matching one of ``labels``."""
    wanted = {_normalize_name(label) for label in labels}
    available = workbook.sheet_names
    matches = [name for name in available if _normalize_name(name) in wanted]
    if len(matches) != 1:
        logger.warning(
            "Worksheet lookup for %s matched %d sheets (available: %s)",
            labels,
            len(matches),
            available,
        )
        raise WorksheetNotFoundError(tuple(labels), matches, available)
    return matches[0]


def iter_rows(
    workbook: StatementWorkbook, sheet_name: str, start_row: int = 1
) -> Iterator[RawStatementRow]:
    """Stream rows lazily; the sheet XML is only parsed while iterating.

    The stored sheet dimension is ignored, since exports that declare a
    smaller range than they hold would otherwise be truncated. Parse failures
    part way through the sheet surface as ``WorkbookReadError``.
    """
    worksheet = workbook.worksheet(sheet_name)
    worksheet.reset_dimensions()
    try:
        for row_number, values in enumerate(
            worksheet.iter_rows(min_row=start_row, values_only=True), start=start_row
        ):
            yield RawStatementRow(row_number=row_number, cells=tuple(values))
    except _READ_ERRORS as exc:
        logger.warning("Worksheet %r could not be read: %s", sheet_name, exc)
        raise WorkbookReadError(f'Unable to read worksheet "{sheet_name}": {exc}') from exc
