"""Protocol and filter primitives shared by record store backends."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Literal, Mapping, Protocol, Sequence

CLINICS = "clinics"
VENDORS = "vendors"
PATIENTS = "patients"
PERIOD_REPORTS = "period_reports"
PATIENT_VENDORS = "patient_vendors"
FILE_UPLOADS = "file_uploads"

TABLES: tuple[str, ...] = (
    CLINICS,
    VENDORS,
    PATIENTS,
    PERIOD_REPORTS,
    PATIENT_VENDORS,
    FILE_UPLOADS,
)

FilterOp = Literal["eq", "neq", "gte", "lte", "in", "ilike", "iexact"]

Row = dict[str, Any]


@dataclass(frozen=True, slots=True)
class Filter:
    """A single column predicate.

    ``ilike`` follows SQL semantics with ``%`` as the wildcard; ``iexact`` is a
    case-insensitive equality check.
    """

    column: str
    op: FilterOp
    value: Any

    @classmethod
    def eq(cls, column: str, value: Any) -> "Filter":
        return cls(column, "eq", value)

    @classmethod
    def gte(cls, column: str, value: Any) -> "Filter":
        return cls(column, "gte", value)

    @classmethod
    def lte(cls, column: str, value: Any) -> "Filter":
        return cls(column, "lte", value)

    @classmethod
    def isin(cls, column: str, values: Sequence[Any]) -> "Filter":
        return cls(column, "in", tuple(values))

    @classmethod
    def iexact(cls, column: str, value: str) -> "Filter":
        return cls(column, "iexact", value)

    def matches(self, row: Mapping[str, Any]) -> bool:
        """Evaluate the predicate against an in-memory row."""

        current = _comparable(row.get(self.column))
        expected = self.value
        if self.op == "eq":
            return current == _comparable(expected)
        if self.op == "neq":
            return current != _comparable(expected)
        if self.op == "in":
            return current in {_comparable(value) for value in expected}
        if current is None:
            return False
        if self.op == "gte":
            return current >= _comparable(expected)
        if self.op == "lte":
            return current <= _comparable(expected)
        if self.op == "iexact":
            return str(current).casefold() == str(expected).casefold()
        if self.op == "ilike":
            return _like(str(current).casefold(), str(expected).casefold())
        raise ValueError(f"Unsupported filter operation '{self.op}'")


def _comparable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return value.isoformat()
    return value


def _like(text: str, pattern: str) -> bool:
    parts = pattern.split("%")
    if len(parts) == 1:
        return text == pattern
    if not text.startswith(parts[0]) or not text.endswith(parts[-1]):
        return False
    position = len(parts[0])
    end = len(text) - len(parts[-1])
    for fragment in parts[1:-1]:
        found = text.find(fragment, position, end)
        if found < 0:
            return False
        position = found + len(fragment)
    return position <= end


class RecordStore(Protocol):
    """Async table-oriented storage used by every service."""

    async def select(
        self,
        table: str,
        *,
        filters: Sequence[Filter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        """Return rows of ``table`` matching every filter."""

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Row]:
        """Insert ``rows`` atomically and return them with identifiers assigned."""

    async def insert_ignore_conflict(
        self,
        table: str,
        row: Mapping[str, Any],
        conflict_columns: Sequence[str],
    ) -> Row | None:
        """Insert ``row`` unless a row sharing ``conflict_columns`` exists.

        Returns the inserted row, or ``None`` when the insert was skipped.
        """

    async def update(
        self, table: str, filters: Sequence[Filter], values: Mapping[str, Any]
    ) -> list[Row]:
        """Apply ``values`` to matching rows and return the updated rows."""

    async def delete(self, table: str, filters: Sequence[Filter]) -> int:
        """Delete matching rows and return how many were removed."""

    async def close(self) -> None:
        """Release any held resources."""


__all__ = [
    "CLINICS",
    "FILE_UPLOADS",
    "Filter",
    "FilterOp",
    "PATIENTS",
    "PATIENT_VENDORS",
    "PERIOD_REPORTS",
    "RecordStore",
    "Row",
    "TABLES",
    "VENDORS",
]
