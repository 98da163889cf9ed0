"""SQLAlchemy async record store."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any, AsyncIterator
from uuid import uuid4

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    delete,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from shared.config import DatabaseSettings
from shared.models import utcnow
from shared.observability.logger import get_logger

from .errors import StoreError
from .interfaces import (
    CLINICS,
    FILE_UPLOADS,
    PATIENT_VENDORS,
    PATIENTS,
    PERIOD_REPORTS,
    VENDORS,
    Filter,
    RecordStore,
    Row,
)
from .memory import InMemoryRecordStore

logger = get_logger(__name__)

metadata = MetaData()


def _id_column() -> Column:
    return Column("id", String(36), primary_key=True)


def _created_column() -> Column:
    return Column("created_at", DateTime, nullable=False)


clinics_table = Table(
    CLINICS,
    metadata,
    _id_column(),
    Column("name", String(255), nullable=False),
    Column("license_number", String(64)),
    Column("phone", String(64)),
    Column("email", String(255)),
    Column("address", String(512)),
    Column("status", String(16), nullable=False, default="active"),
    _created_column(),
)

vendors_table = Table(
    VENDORS,
    metadata,
    _id_column(),
    Column("name", String(255), nullable=False),
    Column("clinic_id", String(36), index=True),
    Column("contact_person", String(255)),
    Column("license_number", String(64)),
    Column("phone", String(64)),
    Column("email", String(255)),
    Column("address", String(512)),
    Column("status", String(16), nullable=False, default="active"),
    _created_column(),
)

patients_table = Table(
    PATIENTS,
    metadata,
    _id_column(),
    Column("clinic_id", String(36), nullable=False, index=True),
    Column("k_number", String(64), nullable=False),
    Column("first_name", String(255), nullable=False, default=""),
    Column("last_name", String(255), nullable=False, default=""),
    Column("category", String(64), nullable=False),
    Column("status", String(16), nullable=False, default="active"),
    Column("preferred_vendor_id", String(36)),
    Column("date_of_birth", Date),
    Column("phone", String(64)),
    Column("email", String(255)),
    _created_column(),
    UniqueConstraint("clinic_id", "k_number", name="uq_patients_clinic_k_number"),
)

period_reports_table = Table(
    PERIOD_REPORTS,
    metadata,
    _id_column(),
    Column("patient_id", String(36), nullable=False, index=True),
    Column("vendor_id", String(36), index=True),
    Column("clinic_id", String(36), index=True),
    Column("report_month", Date, nullable=False, index=True),
    Column("amount", Float, nullable=False, default=0.0),
    Column("quantity", Float),
    Column("product_name", String(255)),
    _created_column(),
)

patient_vendors_table = Table(
    PATIENT_VENDORS,
    metadata,
    _id_column(),
    Column("patient_id", String(36), nullable=False),
    Column("vendor_id", String(36), nullable=False),
    _created_column(),
    UniqueConstraint("patient_id", "vendor_id", name="uq_patient_vendors_pair"),
)

file_uploads_table = Table(
    FILE_UPLOADS,
    metadata,
    _id_column(),
    Column("clinic_id", String(36), index=True),
    Column("file_name", String(512), nullable=False),
    Column("upload_type", String(32), nullable=False),
    Column("records_count", Integer, nullable=False, default=0),
    Column("status", String(32), nullable=False),
    Column("uploaded_by", String(255)),
    _created_column(),
)


class SQLRecordStore:
    """Record store backed by a SQLAlchemy :class:`AsyncEngine`."""

    def __init__(
        self,
        database_url: str | None = None,
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        if engine is None and database_url is None:
            raise ValueError("Either database_url or engine must be provided")
        self._engine: AsyncEngine = engine or create_async_engine(database_url)

    @asynccontextmanager
    async def transaction(self, table: str) -> AsyncIterator[AsyncConnection]:
        """Provide a transactional connection scope translating driver errors."""

        try:
            async with self._engine.begin() as connection:
                yield connection
        except IntegrityError:
            raise
        except (SQLAlchemyError, OSError) as exc:
            logger.error("record_store_query_failed", table=table, error=str(exc))
            raise StoreError(f"Record store call on '{table}' failed: {exc}", table=table) from exc

    async def bootstrap_schema(self) -> None:
        """Create the record tables when they are missing."""

        async with self.transaction("*") as connection:
            await connection.run_sync(metadata.create_all)

    def _table(self, name: str) -> Table:
        table = metadata.tables.get(name)
        if table is None:
            raise StoreError(f"Unknown table '{name}'", table=name)
        return table

    @staticmethod
    def _coerce(table: Table, column: str, value: Any) -> Any:
        if isinstance(value, str) and column in table.c:
            column_type = table.c[column].type
            if isinstance(column_type, Date):
                return date.fromisoformat(value[:10])
            if isinstance(column_type, DateTime):
                return datetime.fromisoformat(value)
        return value

    def _condition(self, table: Table, condition: Filter) -> Any:
        if condition.column not in table.c:
            raise StoreError(
                f"Unknown column '{condition.column}' on '{table.name}'", table=table.name
            )
        column = table.c[condition.column]
        value = condition.value
        if condition.op == "in":
            return column.in_([self._coerce(table, condition.column, item) for item in value])
        value = self._coerce(table, condition.column, value)
        if condition.op == "eq":
            return column.is_(None) if value is None else column == value
        if condition.op == "neq":
            return column.is_not(None) if value is None else column != value
        if condition.op == "gte":
            return column >= value
        if condition.op == "lte":
            return column <= value
        if condition.op == "ilike":
            return column.ilike(value)
        if condition.op == "iexact":
            return func.lower(column) == str(value).lower()
        raise StoreError(f"Unsupported filter operation '{condition.op}'", table=table.name)

    def _prepare(self, table: Table, row: Mapping[str, Any]) -> Row:
        prepared = {
            key: self._coerce(table, key, value)
            for key, value in row.items()
            if key in table.c
        }
        if not prepared.get("id"):
            prepared["id"] = uuid4().hex
        if prepared.get("created_at") is None:
            prepared["created_at"] = utcnow()
        return prepared

    async def select(
        self,
        table: str,
        *,
        filters: Sequence[Filter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        target = self._table(table)
        statement = select(target)
        conditions = [self._condition(target, condition) for condition in filters]
        if conditions:
            statement = statement.where(*conditions)
        if order_by:
            column = target.c[order_by]
            statement = statement.order_by(column.desc() if descending else column.asc())
        if limit is not None:
            statement = statement.limit(max(limit, 0))
        async with self.transaction(table) as connection:
            result = await connection.execute(statement)
            return [dict(row) for row in result.mappings()]

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Row]:
        target = self._table(table)
        prepared = [self._prepare(target, row) for row in rows]
        if not prepared:
            return []
        try:
            async with self.transaction(table) as connection:
                await connection.execute(insert(target), prepared)
        except IntegrityError as exc:
            logger.error("record_store_insert_failed", table=table, error=str(exc))
            raise StoreError(f"Insert into '{table}' violated a constraint", table=table) from exc
        return prepared

    async def insert_ignore_conflict(
        self,
        table: str,
        row: Mapping[str, Any],
        conflict_columns: Sequence[str],
    ) -> Row | None:
        target = self._table(table)
        prepared = self._prepare(target, row)
        dialect = self._engine.dialect.name
        if dialect == "postgresql":
            statement = postgresql.insert(target).on_conflict_do_nothing(
                index_elements=list(conflict_columns)
            )
        elif dialect == "sqlite":
            statement = sqlite.insert(target).on_conflict_do_nothing(
                index_elements=list(conflict_columns)
            )
        else:
            statement = insert(target)
        try:
            async with self.transaction(table) as connection:
                result = await connection.execute(statement, prepared)
        except IntegrityError:
            return None
        if result.rowcount == 0:
            return None
        return prepared

    async def update(
        self, table: str, filters: Sequence[Filter], values: Mapping[str, Any]
    ) -> list[Row]:
        target = self._table(table)
        conditions = [self._condition(target, condition) for condition in filters]
        changes = {
            key: self._coerce(target, key, value)
            for key, value in values.items()
            if key in target.c and key != "id"
        }
        try:
            async with self.transaction(table) as connection:
                matched = await connection.execute(select(target.c.id).where(*conditions))
                identifiers = [row[0] for row in matched]
                if not identifiers:
                    return []
                if changes:
                    await connection.execute(
                        update(target).where(target.c.id.in_(identifiers)).values(**changes)
                    )
                result = await connection.execute(
                    select(target).where(target.c.id.in_(identifiers))
                )
                return [dict(row) for row in result.mappings()]
        except IntegrityError as exc:
            logger.error("record_store_update_failed", table=table, error=str(exc))
            raise StoreError(f"Update of '{table}' violated a constraint", table=table) from exc

    async def delete(self, table: str, filters: Sequence[Filter]) -> int:
        target = self._table(table)
        conditions = [self._condition(target, condition) for condition in filters]
        async with self.transaction(table) as connection:
            result = await connection.execute(delete(target).where(*conditions))
            return int(result.rowcount or 0)

    async def close(self) -> None:
        """Dispose of the underlying engine."""

        await self._engine.dispose()


async def build_record_store(settings: DatabaseSettings) -> RecordStore:
    """Return the store selected by ``settings``.

    Without a database URL an :class:`InMemoryRecordStore` is returned.
    """

    if not settings.url:
        logger.info("record_store_selected", backend="memory")
        return InMemoryRecordStore()
    store = SQLRecordStore(settings.url)
    if settings.bootstrap_schema:
        await store.bootstrap_schema()
    logger.info("record_store_selected", backend=store._engine.dialect.name)
    return store


__all__ = [
    "SQLRecordStore",
    "build_record_store",
    "metadata",
]
