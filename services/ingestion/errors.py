"""Errors raised and collected by spreadsheet ingestion."""

from __future__ import annotations

from dataclasses import dataclass


class IngestionValidationError(ValueError):
    """Raised when an upload is rejected before any row is processed."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


@dataclass(frozen=True, slots=True)
class RowError:
    """A failure confined to a single spreadsheet row.

    ``row_number`` is the 1-based row number as shown by spreadsheet tools.
    """

    row_number: int
    message: str

    def __str__(self) -> str:
        return f"Row {self.row_number}: {self.message}"


__all__ = ["IngestionValidationError", "RowError"]
