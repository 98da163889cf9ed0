"""In-memory record store used for tests, local runs and the CLI dry path."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping, Sequence
from typing import Any
from uuid import uuid4

from shared.models import utcnow

from .errors import StoreError
from .interfaces import TABLES, Filter, Row


class InMemoryRecordStore:
    """Dictionary backed :class:`~services.records.interfaces.RecordStore`."""

    def __init__(self, seed: Mapping[str, Iterable[Mapping[str, Any]]] | None = None) -> None:
        self._tables: dict[str, list[Row]] = {table: [] for table in TABLES}
        self._lock = asyncio.Lock()
        for table, rows in (seed or {}).items():
            for row in rows:
                self._tables[self._table(table)].append(self._prepare(row))

    def _table(self, table: str) -> str:
        if table not in self._tables:
            raise StoreError(f"Unknown table '{table}'", table=table)
        return table

    @staticmethod
    def _prepare(row: Mapping[str, Any]) -> Row:
        prepared = dict(row)
        prepared.setdefault("id", uuid4().hex)
        if prepared.get("created_at") is None:
            prepared["created_at"] = utcnow()
        return prepared

    def _matching(self, table: str, filters: Sequence[Filter]) -> list[Row]:
        return [
            row
            for row in self._tables[self._table(table)]
            if all(condition.matches(row) for condition in filters)
        ]

    async def select(
        self,
        table: str,
        *,
        filters: Sequence[Filter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        async with self._lock:
            rows = [dict(row) for row in self._matching(table, filters)]
        if order_by:
            present = [row for row in rows if row.get(order_by) is not None]
            missing = [row for row in rows if row.get(order_by) is None]
            present.sort(key=lambda row: row[order_by], reverse=descending)
            rows = present + missing
        if limit is not None:
            rows = rows[: max(limit, 0)]
        return rows

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Row]:
        prepared = [self._prepare(row) for row in rows]
        async with self._lock:
            self._tables[self._table(table)].extend(prepared)
        return [dict(row) for row in prepared]

    async def insert_ignore_conflict(
        self,
        table: str,
        row: Mapping[str, Any],
        conflict_columns: Sequence[str],
    ) -> Row | None:
        filters = [Filter.eq(column, row.get(column)) for column in conflict_columns]
        async with self._lock:
            if self._matching(table, filters):
                return None
            prepared = self._prepare(row)
            self._tables[table].append(prepared)
        return dict(prepared)

    async def update(
        self, table: str, filters: Sequence[Filter], values: Mapping[str, Any]
    ) -> list[Row]:
        async with self._lock:
            matched = self._matching(table, filters)
            for row in matched:
                row.update(values)
            return [dict(row) for row in matched]

    async def delete(self, table: str, filters: Sequence[Filter]) -> int:
        async with self._lock:
            matched = {id(row) for row in self._matching(table, filters)}
            self._tables[table] = [
                row for row in self._tables[table] if id(row) not in matched
            ]
        return len(matched)

    async def close(self) -> None:
        return None


__all__ = ["InMemoryRecordStore"]
