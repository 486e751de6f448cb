"""Exception hierarchy shared by the importer, storage and providers."""

from __future__ import annotations


class JanusError(Exception):
    """Base exception for Janus."""


class StatementImportError(JanusError):
    """Base exception for statement import failures."""


class StructuralError(StatementImportError):
    """The statement cannot be processed at all; nothing is imported."""


class WorkbookReadError(StructuralError):
    """The uploaded bytes are not a readable spreadsheet."""


class WorksheetNotFoundError(StructuralError):
    """No worksheet, or more than one, matches the operation-history label."""

    def __init__(self, labels: tuple[str, ...], matches: list[str], available: list[str]):
        self.labels = labels
        self.matches = matches
        self.available = available
        wanted = ", ".join(f'"{label}"' for label in labels)
        if matches:
            found = ", ".join(f'"{name}"' for name in matches)
            message = f"Ambiguous statement: worksheets {found} all match {wanted}."
        else:
            message = (
                f"Worksheet {wanted} not found in Excel file. "
                "Please upload a valid XTB export file."
            )
        super().__init__(message)


class HeaderNotFoundError(StructuralError):
    """The operation-history worksheet has no recognizable header row."""


class RowParseError(StatementImportError):
    """One statement row could not be coerced; the import continues."""

    def __init__(self, row_number: int, reason: str):
        self.row_number = row_number
        self.reason = reason
        super().__init__(f"Row {row_number}: {reason}")

    def to_dict(self) -> dict[str, int | str]:
        return {"rowNumber": self.row_number, "reason": self.reason}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RowParseError):
            return NotImplemented
        return (
            type(self) is type(other)
            and self.row_number == other.row_number
            and self.reason == other.reason
        )

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.row_number, self.reason))


class RowValidationError(RowParseError):
    """A coerced row violates a transaction invariant."""


class QueryValidationError(JanusError):
    """Invalid listing parameters for stored transactions."""


class TransactionNotFoundError(JanusError):
    """The transaction does not exist or belongs to another user."""


class TransactionValidationError(JanusError):
    """Invalid fields for a manually created or edited transaction."""
