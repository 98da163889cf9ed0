"""Exceptions raised by record store backends."""

from __future__ import annotations


class StoreError(RuntimeError):
    """Raised when a record store operation fails."""

    def __init__(self, message: str, *, table: str | None = None) -> None:
        super().__init__(message)
        self.table = table


class StoreTimeoutError(StoreError):
    """Raised when a record store call exceeds its time budget."""


class RecordNotFoundError(StoreError):
    """Raised when a record addressed by identifier does not exist."""

    def __init__(self, table: str, identifier: str) -> None:
        super().__init__(f"No record '{identifier}' in '{table}'", table=table)
        self.identifier = identifier


__all__ = ["RecordNotFoundError", "StoreError", "StoreTimeoutError"]
