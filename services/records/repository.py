"""Typed facade over a :class:`RecordStore` used by ingestion, analytics and the API."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from datetime import date
from typing import Any, TypeVar

from shared.config import RecordStoreSettings
from shared.models import (
    Clinic,
    FileUpload,
    Patient,
    PeriodReport,
    RecordStatus,
    Vendor,
    coerce_month,
)
from shared.observability.logger import get_logger

from .errors import RecordNotFoundError, StoreTimeoutError
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
from .resilience import RetryPolicy, call_async_with_retry

logger = get_logger(__name__)

T = TypeVar("T")


def _status_value(status: RecordStatus | str | None) -> str | None:
    if isinstance(status, RecordStatus):
        return status.value
    return status


class ClinicRecords:
    """Domain level access to clinics, vendors, patients and reports.

    Every store call is bounded by ``call_timeout_seconds``. Reads are retried
    with exponential backoff; writes run exactly once.
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        settings: RecordStoreSettings | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        resolved = settings or RecordStoreSettings()
        self._store = store
        self._timeout = resolved.call_timeout_seconds
        self._retry_policy = retry_policy or RetryPolicy.from_settings(resolved)

    @property
    def store(self) -> RecordStore:
        return self._store

    async def _bounded(self, operation: str, table: str, factory: Callable[[], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(factory(), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            logger.warning(
                "record_store_timeout",
                operation=operation,
                table=table,
                timeout_seconds=self._timeout,
            )
            raise StoreTimeoutError(
                f"{operation} on '{table}' exceeded {self._timeout}s", table=table
            ) from exc

    async def _read(
        self,
        table: str,
        *,
        filters: Sequence[Filter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Row]:
        async def attempt() -> list[Row]:
            return await self._bounded(
                "select",
                table,
                lambda: self._store.select(
                    table,
                    filters=filters,
                    order_by=order_by,
                    descending=descending,
                    limit=limit,
                ),
            )

        return await call_async_with_retry(attempt, policy=self._retry_policy)

    async def _insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Row]:
        return await self._bounded("insert", table, lambda: self._store.insert(table, rows))

    async def _update(
        self, table: str, identifier: str, values: Mapping[str, Any]
    ) -> Row:
        rows = await self._bounded(
            "update",
            table,
            lambda: self._store.update(table, [Filter.eq("id", identifier)], values),
        )
        if not rows:
            raise RecordNotFoundError(table, identifier)
        return rows[0]

    async def _get(self, table: str, identifier: str) -> Row:
        rows = await self._read(table, filters=[Filter.eq("id", identifier)], limit=1)
        if not rows:
            raise RecordNotFoundError(table, identifier)
        return rows[0]

    # Clinics -----------------------------------------------------------------

    async def list_clinics(self, *, status: RecordStatus | str | None = None) -> list[Clinic]:
        filters = [Filter.eq("status", _status_value(status))] if status else []
        rows = await self._read(CLINICS, filters=filters, order_by="name")
        return [Clinic.model_validate(row) for row in rows]

    async def get_clinic(self, clinic_id: str) -> Clinic:
        return Clinic.model_validate(await self._get(CLINICS, clinic_id))

    async def create_clinic(self, clinic: Clinic) -> Clinic:
        rows = await self._insert(CLINICS, [clinic.to_row()])
        return Clinic.model_validate(rows[0])

    async def update_clinic(self, clinic_id: str, values: Mapping[str, Any]) -> Clinic:
        return Clinic.model_validate(await self._update(CLINICS, clinic_id, values))

    # Vendors -----------------------------------------------------------------

    async def list_vendors(
        self,
        *,
        clinic_id: str | None = None,
        status: RecordStatus | str | None = None,
    ) -> list[Vendor]:
        """Return vendors ordered by name, keeping the first row per name."""

        filters: list[Filter] = []
        if clinic_id:
            filters.append(Filter.eq("clinic_id", clinic_id))
        if status:
            filters.append(Filter.eq("status", _status_value(status)))
        rows = await self._read(VENDORS, filters=filters, order_by="name")
        seen: set[str] = set()
        vendors: list[Vendor] = []
        for row in rows:
            vendor = Vendor.model_validate(row)
            if vendor.name in seen:
                continue
            seen.add(vendor.name)
            vendors.append(vendor)
        return vendors

    async def get_vendor(self, vendor_id: str) -> Vendor:
        return Vendor.model_validate(await self._get(VENDORS, vendor_id))

    async def create_vendor(self, vendor: Vendor) -> Vendor:
        rows = await self._insert(VENDORS, [vendor.to_row()])
        return Vendor.model_validate(rows[0])

    async def update_vendor(self, vendor_id: str, values: Mapping[str, Any]) -> Vendor:
        return Vendor.model_validate(await self._update(VENDORS, vendor_id, values))

    # Patients ----------------------------------------------------------------

    async def list_patients(
        self,
        *,
        clinic_id: str | None = None,
        status: RecordStatus | str | None = None,
        patient_ids: Iterable[str] | None = None,
        category: str | None = None,
    ) -> list[Patient]:
        filters: list[Filter] = []
        if clinic_id:
            filters.append(Filter.eq("clinic_id", clinic_id))
        if status:
            filters.append(Filter.eq("status", _status_value(status)))
        if category:
            filters.append(Filter.eq("category", category))
        if patient_ids is not None:
            identifiers = sorted(set(patient_ids))
            if not identifiers:
                return []
            filters.append(Filter.isin("id", identifiers))
        rows = await self._read(PATIENTS, filters=filters, order_by="last_name")
        return [Patient.model_validate(row) for row in rows]

    async def search_patients(
        self,
        text: str,
        *,
        clinic_id: str | None = None,
        limit: int = 50,
    ) -> list[Patient]:
        """Case-insensitive substring search over names and natural keys."""

        pattern = f"%{text.strip()}%"
        base = [Filter.eq("clinic_id", clinic_id)] if clinic_id else []
        found: dict[str, Patient] = {}
        for column in ("first_name", "last_name", "k_number"):
            rows = await self._read(
                PATIENTS,
                filters=[*base, Filter(column, "ilike", pattern)],
                order_by="last_name",
                limit=limit,
            )
            for row in rows:
                patient = Patient.model_validate(row)
                found.setdefault(patient.id or "", patient)
        return sorted(found.values(), key=lambda patient: (patient.last_name, patient.first_name))[
            :limit
        ]

    async def get_patient(self, patient_id: str) -> Patient:
        return Patient.model_validate(await self._get(PATIENTS, patient_id))

    async def find_patient_by_key(self, clinic_id: str, k_number: str) -> Patient | None:
        rows = await self._read(
            PATIENTS,
            filters=[Filter.eq("clinic_id", clinic_id), Filter.eq("k_number", k_number)],
            limit=1,
        )
        return Patient.model_validate(rows[0]) if rows else None

    async def find_patient_by_name(
        self, clinic_id: str, first_name: str, last_name: str
    ) -> Patient | None:
        rows = await self._read(
            PATIENTS,
            filters=[
                Filter.eq("clinic_id", clinic_id),
                Filter.iexact("first_name", first_name),
                Filter.iexact("last_name", last_name),
            ],
            order_by="created_at",
            limit=1,
        )
        return Patient.model_validate(rows[0]) if rows else None

    async def create_patient(self, patient: Patient) -> Patient:
        rows = await self._insert(PATIENTS, [patient.to_row()])
        return Patient.model_validate(rows[0])

    async def create_patient_if_absent(self, patient: Patient) -> Patient | None:
        """Insert ``patient`` unless its natural key already exists in the clinic."""

        row = await self._bounded(
            "insert_ignore_conflict",
            PATIENTS,
            lambda: self._store.insert_ignore_conflict(
                PATIENTS, patient.to_row(), ("clinic_id", "k_number")
            ),
        )
        return Patient.model_validate(row) if row is not None else None

    async def update_patient(self, patient_id: str, values: Mapping[str, Any]) -> Patient:
        return Patient.model_validate(await self._update(PATIENTS, patient_id, values))

    async def delete_patients(self, patient_ids: Iterable[str]) -> int:
        identifiers = sorted(set(patient_ids))
        if not identifiers:
            return 0
        return await self._bounded(
            "delete",
            PATIENTS,
            lambda: self._store.delete(PATIENTS, [Filter.isin("id", identifiers)]),
        )

    async def delete_patient(self, patient_id: str) -> None:
        removed = await self.delete_patients([patient_id])
        if not removed:
            raise RecordNotFoundError(PATIENTS, patient_id)

    # Vendor associations -----------------------------------------------------

    async def link_patient_vendor(self, patient_id: str, vendor_id: str) -> bool:
        """Associate a patient with a vendor; returns ``False`` when already linked."""

        row = await self._bounded(
            "insert_ignore_conflict",
            PATIENT_VENDORS,
            lambda: self._store.insert_ignore_conflict(
                PATIENT_VENDORS,
                {"patient_id": patient_id, "vendor_id": vendor_id},
                ("patient_id", "vendor_id"),
            ),
        )
        return row is not None

    async def unlink_patient_vendor(self, patient_ids: Iterable[str], vendor_id: str) -> int:
        identifiers = sorted(set(patient_ids))
        if not identifiers:
            return 0
        return await self._bounded(
            "delete",
            PATIENT_VENDORS,
            lambda: self._store.delete(
                PATIENT_VENDORS,
                [Filter.isin("patient_id", identifiers), Filter.eq("vendor_id", vendor_id)],
            ),
        )

    async def associated_patient_ids(self, vendor_id: str) -> set[str]:
        """Return patients linked to ``vendor_id`` or preferring it."""

        links = await self._read(PATIENT_VENDORS, filters=[Filter.eq("vendor_id", vendor_id)])
        preferring = await self._read(
            PATIENTS, filters=[Filter.eq("preferred_vendor_id", vendor_id)]
        )
        identifiers = {str(row["patient_id"]) for row in links}
        identifiers.update(str(row["id"]) for row in preferring)
        return identifiers

    # Period reports ----------------------------------------------------------

    async def list_reports(
        self,
        *,
        clinic_id: str | None = None,
        vendor_id: str | None = None,
        month_from: date | str | None = None,
        month_to: date | str | None = None,
        patient_ids: Iterable[str] | None = None,
    ) -> list[PeriodReport]:
        filters: list[Filter] = []
        if clinic_id:
            filters.append(Filter.eq("clinic_id", clinic_id))
        if vendor_id:
            filters.append(Filter.eq("vendor_id", vendor_id))
        if month_from is not None:
            filters.append(Filter.gte("report_month", coerce_month(month_from)))
        if month_to is not None:
            filters.append(Filter.lte("report_month", coerce_month(month_to)))
        if patient_ids is not None:
            identifiers = sorted(set(patient_ids))
            if not identifiers:
                return []
            filters.append(Filter.isin("patient_id", identifiers))
        rows = await self._read(
            PERIOD_REPORTS, filters=filters, order_by="report_month", descending=True
        )
        return [PeriodReport.model_validate(row) for row in rows]

    async def insert_reports(self, reports: Sequence[PeriodReport]) -> list[PeriodReport]:
        """Insert ``reports`` in a single batch. Never retried."""

        if not reports:
            return []
        rows = await self._insert(PERIOD_REPORTS, [report.to_row() for report in reports])
        return [PeriodReport.model_validate(row) for row in rows]

    # Upload log --------------------------------------------------------------

    async def record_upload(self, upload: FileUpload) -> FileUpload:
        rows = await self._insert(FILE_UPLOADS, [upload.to_row()])
        return FileUpload.model_validate(rows[0])

    async def list_uploads(self, *, clinic_id: str | None = None, limit: int = 50) -> list[FileUpload]:
        filters = [Filter.eq("clinic_id", clinic_id)] if clinic_id else []
        rows = await self._read(
            FILE_UPLOADS, filters=filters, order_by="created_at", descending=True, limit=limit
        )
        return [FileUpload.model_validate(row) for row in rows]


__all__ = ["ClinicRecords"]
