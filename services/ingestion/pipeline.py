"""Spreadsheet ingestion pipeline.

A run performs the following steps:

1. Validate the upload parameters and read the first sheet of the file.
2. Locate the header row by keyword and resolve column positions.
3. For every data row, resolve or create the patient (by natural key or by
   name, depending on the profile) and build a :class:`PeriodReport`.
4. Insert all collected reports in one batch once the row loop finishes.
5. Log the upload in ``file_uploads`` and emit an audit event.

Row level failures are collected and never abort the run. The batch insert is
the only step whose failure is reported as a run level ``store_error``.
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Sequence

from pydantic import ValidationError

from shared.config import AnalyticsSettings, IngestionSettings
from shared.models import (
    FileUpload,
    Patient,
    PeriodReport,
    RecordStatus,
    UploadKind,
    coerce_month,
)
from shared.observability.audit import AuditRepository, record_activity_audit
from shared.observability.logger import get_logger
from services.records import ClinicRecords, StoreError

from .cells import decode_date, decode_number, decode_text, is_blank, split_full_name
from .errors import IngestionValidationError, RowError
from .headers import locate_header_row, normalize_label, resolve_columns
from .profiles import IngestionProfile, MatchStrategy, get_profile
from .workbook import read_first_sheet

__all__ = [
    "IngestionSummary",
    "SpreadsheetIngestionPipeline",
    "UploadRequest",
]

logger = get_logger(__name__)

_ROSTER_MISSING_FIELDS = "Missing required fields (Name and K Number)"
_GENERATED_KEY_ATTEMPTS = 3


@dataclass(slots=True)
class UploadRequest:
    """Parameters accompanying one uploaded spreadsheet."""

    kind: UploadKind
    clinic_id: str | None
    content: bytes | None
    filename: str | None = None
    vendor_id: str | None = None
    report_month: str | date | None = None
    actor_id: str | None = None


@dataclass(slots=True)
class IngestionSummary:
    """Counts and bounded error list describing a finished run."""

    kind: UploadKind
    file_name: str | None = None
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    additional_error_count: int = 0
    patients_created: int = 0
    reports_inserted: int = 0
    cancelled: bool = False
    store_error: str | None = None

    @property
    def status(self) -> str:
        if self.cancelled:
            return "cancelled"
        if self.store_error is not None:
            return "failed"
        if self.failed:
            return "completed_with_errors"
        return "completed"

    def as_dict(self) -> dict[str, Any]:
        return {
            "kind": UploadKind(self.kind).value,
            "file_name": self.file_name,
            "status": self.status,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "errors": list(self.errors),
            "additional_error_count": self.additional_error_count,
            "patients_created": self.patients_created,
            "reports_inserted": self.reports_inserted,
            "cancelled": self.cancelled,
            "store_error": self.store_error,
        }


@dataclass(slots=True)
class _RunState:
    """Mutable bookkeeping shared by the row handlers of one run."""

    request: UploadRequest
    profile: IngestionProfile
    columns: dict[str, int]
    report_month: date | None
    summary: IngestionSummary
    row_errors: list[RowError] = field(default_factory=list)
    reports: list[PeriodReport] = field(default_factory=list)
    created_patient_ids: list[str] = field(default_factory=list)
    patients_by_key: dict[str, Patient] = field(default_factory=dict)
    linked_patient_ids: set[str] = field(default_factory=set)
    new_link_patient_ids: list[str] = field(default_factory=list)
    replaced_preferences: dict[str, str | None] = field(default_factory=dict)
    already_reported: set[str] = field(default_factory=set)

    @property
    def clinic_id(self) -> str:
        assert self.request.clinic_id is not None
        return self.request.clinic_id


def _cell(row: Sequence[Any], columns: dict[str, int], name: str) -> Any:
    index = columns.get(name)
    if index is None or index >= len(row):
        return None
    return row[index]


class SpreadsheetIngestionPipeline:
    """Turn an uploaded spreadsheet into patients and period reports."""

    def __init__(
        self,
        records: ClinicRecords,
        *,
        settings: IngestionSettings | None = None,
        analytics: AnalyticsSettings | None = None,
        audit_repository: AuditRepository | None = None,
    ) -> None:
        self._records = records
        self._settings = settings or IngestionSettings()
        self._analytics = analytics or AnalyticsSettings()
        self._audit_repository = audit_repository

    # Validation --------------------------------------------------------------

    def _validate(self, request: UploadRequest, profile: IngestionProfile) -> date | None:
        if not request.clinic_id:
            raise IngestionValidationError("A clinic must be selected", field="clinic_id")
        if not request.content:
            raise IngestionValidationError("A spreadsheet file is required", field="file")
        if profile.requires_vendor and not request.vendor_id:
            raise IngestionValidationError("A vendor must be selected", field="vendor_id")
        if not profile.requires_month:
            return None
        if request.report_month is None or request.report_month == "":
            raise IngestionValidationError("A report month is required", field="report_month")
        try:
            return coerce_month(request.report_month)
        except ValueError as exc:
            raise IngestionValidationError(
                f"Report month must be formatted as YYYY-MM, got {request.report_month!r}",
                field="report_month",
            ) from exc

    async def _prepare(
        self, request: UploadRequest
    ) -> tuple[IngestionProfile, date | None, list[list[Any]], int, dict[str, int]]:
        profile = get_profile(request.kind)
        report_month = self._validate(request, profile)
        rows = await asyncio.to_thread(read_first_sheet, request.content or b"", request.filename)
        header_index = locate_header_row(rows, profile.header_keywords)
        columns = resolve_columns(rows[header_index], profile.columns)
        if profile.emits_reports and "name" not in columns and "k_number" not in columns:
            raise IngestionValidationError(
                "The header row has no patient name or K number column", field="file"
            )
        return profile, report_month, rows, header_index, columns

    # Run ---------------------------------------------------------------------

    async def run(
        self,
        request: UploadRequest,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> IngestionSummary:
        """Ingest ``request`` and return the run summary.

        Raises :class:`IngestionValidationError` before any row is touched when
        the parameters or the file are unusable. Setting ``cancel_event`` stops
        the run before the next row; nothing further is written apart from the
        upload log entry.
        """

        profile, report_month, rows, header_index, columns = await self._prepare(request)
        summary = IngestionSummary(kind=profile.kind, file_name=request.filename)
        state = _RunState(
            request=request,
            profile=profile,
            columns=columns,
            report_month=report_month,
            summary=summary,
        )
        logger.info(
            "ingestion_started",
            kind=profile.kind.value,
            clinic_id=request.clinic_id,
            vendor_id=request.vendor_id,
            file_name=request.filename,
            header_row=header_index + 1,
            columns=sorted(columns),
        )

        if profile.emits_reports and self._settings.dedupe_reports:
            state.already_reported = await self._reported_patient_ids(state)

        header = rows[header_index]
        for offset, row in enumerate(rows[header_index + 1 :], start=header_index + 2):
            if cancel_event is not None and cancel_event.is_set():
                summary.cancelled = True
                logger.info("ingestion_cancelled", row_number=offset)
                break
            if all(is_blank(cell) for cell in row):
                continue
            summary.processed += 1
            try:
                if profile.emits_reports:
                    await self._handle_report_row(state, row, header)
                else:
                    await self._handle_roster_row(state, row)
            except StoreError as exc:
                self._fail(state, offset, f"Record store error: {exc}")
            except _RowFailure as failure:
                self._fail(state, offset, failure.message)
            await asyncio.sleep(0)

        if not summary.cancelled:
            await self._flush_reports(state)
        else:
            summary.succeeded -= len(state.reports)
            summary.skipped += len(state.reports)
            state.reports.clear()

        self._finalize_errors(state)
        await self._log_upload(state)
        await record_activity_audit(
            "spreadsheet_ingested",
            actor=request.actor_id,
            subject=request.filename,
            clinic_id=request.clinic_id,
            success=summary.store_error is None and not summary.cancelled,
            metadata=summary.as_dict(),
            repository=self._audit_repository,
        )
        logger.info(
            "ingestion_completed",
            kind=profile.kind.value,
            clinic_id=request.clinic_id,
            processed=summary.processed,
            succeeded=summary.succeeded,
            failed=summary.failed,
            skipped=summary.skipped,
            patients_created=summary.patients_created,
            reports_inserted=summary.reports_inserted,
            cancelled=summary.cancelled,
        )
        return summary

    # Row handlers ------------------------------------------------------------

    async def _handle_report_row(
        self, state: _RunState, row: Sequence[Any], header: Sequence[Any]
    ) -> None:
        profile, columns = state.profile, state.columns
        strategy = profile.match_strategy(columns)
        primary = "k_number" if strategy is MatchStrategy.NATURAL_KEY else "name"
        primary_text = decode_text(_cell(row, columns, primary))
        if not primary_text.ok:
            state.summary.skipped += 1
            return
        header_text = decode_text(_cell(header, columns, primary))
        if normalize_label(primary_text.value) == normalize_label(header_text.value):
            state.summary.skipped += 1
            return

        first_name, last_name = split_full_name(
            decode_text(_cell(row, columns, "name")).value,
            strip_dots=profile.strip_name_dots,
        )
        if strategy is MatchStrategy.NATURAL_KEY:
            patient = await self._resolve_by_key(
                state, primary_text.value, first_name, last_name
            )
        else:
            if not first_name:
                raise _RowFailure("Patient name is empty")
            patient = await self._resolve_by_name(state, first_name, last_name)
        assert patient.id is not None

        if profile.link_vendor and state.request.vendor_id:
            await self._link_vendor(state, patient)

        if patient.id in state.already_reported:
            state.summary.skipped += 1
            return

        # Unreadable amounts count as zero rather than failing the row.
        amount = decode_number(_cell(row, columns, "net_amount"))
        if not amount.ok and "gross_amount" in columns:
            amount = decode_number(_cell(row, columns, "gross_amount"))
        amount_value = amount.or_default(0.0)
        if amount_value < 0:
            raise _RowFailure(f"Amount cannot be negative ({amount_value})")

        quantity: float | None = None
        if "quantity" in columns:
            quantity = decode_number(_cell(row, columns, "quantity")).or_default(0.0)

        product = decode_text(_cell(row, columns, "product"))
        try:
            report = PeriodReport(
                patient_id=patient.id,
                vendor_id=state.request.vendor_id,
                clinic_id=state.clinic_id,
                report_month=state.report_month,
                amount=amount_value,
                quantity=quantity,
                product_name=product.or_default(self._settings.default_product_name),
            )
        except ValidationError as exc:
            raise _RowFailure(f"Invalid report values: {exc.errors()[0]['msg']}") from exc
        state.reports.append(report)
        state.summary.succeeded += 1

    async def _handle_roster_row(self, state: _RunState, row: Sequence[Any]) -> None:
        columns = state.columns
        key = decode_text(_cell(row, columns, "k_number"))
        first_name = decode_text(_cell(row, columns, "first_name")).value
        last_name = decode_text(_cell(row, columns, "last_name")).value
        if not first_name and not last_name:
            first_name, last_name = split_full_name(
                decode_text(_cell(row, columns, "name")).value
            )
        if not key.ok or not first_name:
            raise _RowFailure(_ROSTER_MISSING_FIELDS)

        status_text = decode_text(_cell(row, columns, "status")).value.lower()
        status = RecordStatus.INACTIVE if status_text == "inactive" else RecordStatus.ACTIVE
        phone = decode_text(_cell(row, columns, "phone"))
        email = decode_text(_cell(row, columns, "email"))
        candidate = Patient(
            clinic_id=state.clinic_id,
            k_number=key.value,
            first_name=first_name,
            last_name=last_name,
            category=self._category(decode_text(_cell(row, columns, "category")).value),
            status=status,
            date_of_birth=decode_date(_cell(row, columns, "date_of_birth")).value,
            phone=phone.value if phone.ok else None,
            email=email.value if email.ok else None,
        )
        created = await self._records.create_patient_if_absent(candidate)
        if created is None:
            state.summary.skipped += 1
            return
        assert created.id is not None
        state.created_patient_ids.append(created.id)
        state.summary.patients_created += 1
        state.summary.succeeded += 1

    # Patient resolution ------------------------------------------------------

    async def _resolve_by_key(
        self, state: _RunState, k_number: str, first_name: str, last_name: str
    ) -> Patient:
        cached = state.patients_by_key.get(k_number)
        if cached is not None:
            return cached
        patient = await self._records.find_patient_by_key(state.clinic_id, k_number)
        if patient is None:
            patient = await self._create(
                state,
                Patient(
                    clinic_id=state.clinic_id,
                    k_number=k_number,
                    first_name=first_name,
                    last_name=last_name,
                    category=self._analytics.default_category,
                    preferred_vendor_id=state.request.vendor_id if state.profile.link_vendor else None,
                ),
            )
        state.patients_by_key[k_number] = patient
        return patient

    async def _resolve_by_name(self, state: _RunState, first_name: str, last_name: str) -> Patient:
        cache_key = f"name:{first_name.casefold()}|{last_name.casefold()}"
        cached = state.patients_by_key.get(cache_key)
        if cached is not None:
            return cached
        patient = await self._records.find_patient_by_name(state.clinic_id, first_name, last_name)
        if patient is None:
            patient = await self._create_with_generated_key(
                state,
                Patient(
                    clinic_id=state.clinic_id,
                    k_number=self._generate_key(),
                    first_name=first_name,
                    last_name=last_name,
                    category=self._analytics.default_category,
                    preferred_vendor_id=state.request.vendor_id if state.profile.link_vendor else None,
                ),
            )
        state.patients_by_key[cache_key] = patient
        return patient

    async def _create(self, state: _RunState, candidate: Patient) -> Patient:
        created = await self._records.create_patient_if_absent(candidate)
        if created is None:
            # Another writer stored the same natural key first.
            existing = await self._records.find_patient_by_key(state.clinic_id, candidate.k_number)
            if existing is None:
                raise _RowFailure(f"Patient {candidate.k_number} could not be created")
            return existing
        return self._track_created(state, created)

    async def _create_with_generated_key(self, state: _RunState, candidate: Patient) -> Patient:
        for _ in range(_GENERATED_KEY_ATTEMPTS):
            created = await self._records.create_patient_if_absent(candidate)
            if created is not None:
                return self._track_created(state, created)
            candidate = candidate.model_copy(update={"k_number": self._generate_key()})
        raise _RowFailure("Could not generate a unique K number")

    def _track_created(self, state: _RunState, created: Patient) -> Patient:
        assert created.id is not None
        state.created_patient_ids.append(created.id)
        state.summary.patients_created += 1
        logger.debug("ingestion_patient_created", patient_id=created.id, clinic_id=state.clinic_id)
        return created

    async def _link_vendor(self, state: _RunState, patient: Patient) -> None:
        vendor_id = state.request.vendor_id
        assert vendor_id is not None and patient.id is not None
        if patient.id in state.linked_patient_ids:
            return
        if await self._records.link_patient_vendor(patient.id, vendor_id):
            state.new_link_patient_ids.append(patient.id)
        if patient.preferred_vendor_id != vendor_id:
            state.replaced_preferences[patient.id] = patient.preferred_vendor_id
            await self._records.update_patient(patient.id, {"preferred_vendor_id": vendor_id})
        state.linked_patient_ids.add(patient.id)

    def _generate_key(self) -> str:
        return f"{self._settings.natural_key_prefix}{int(time.time() * 1000)}{random.randint(0, 999)}"

    def _category(self, text: str) -> str:
        lowered = text.strip().casefold()
        for category in self._analytics.categories:
            if category.casefold() == lowered:
                return category
        return self._analytics.default_category

    # Batch, bookkeeping ------------------------------------------------------

    async def _reported_patient_ids(self, state: _RunState) -> set[str]:
        existing = await self._records.list_reports(
            clinic_id=state.clinic_id,
            vendor_id=state.request.vendor_id,
            month_from=state.report_month,
            month_to=state.report_month,
        )
        return {report.patient_id for report in existing}

    async def _flush_reports(self, state: _RunState) -> None:
        summary = state.summary
        if not state.reports:
            return
        try:
            inserted = await self._records.insert_reports(state.reports)
        except StoreError as exc:
            pending = len(state.reports)
            summary.store_error = f"Failed to insert {pending} reports: {exc}"
            summary.succeeded -= pending
            summary.failed += pending
            logger.error(
                "ingestion_report_insert_failed",
                clinic_id=state.clinic_id,
                pending=pending,
                error=str(exc),
            )
            if self._settings.compensate_on_failure:
                await self._compensate(state)
            return
        summary.reports_inserted = len(inserted)

    async def _compensate(self, state: _RunState) -> None:
        """Undo the patient side effects of a run whose reports were not stored."""

        vendor_id = state.request.vendor_id
        created = set(state.created_patient_ids)
        try:
            unlinked = 0
            if vendor_id and state.new_link_patient_ids:
                unlinked = await self._records.unlink_patient_vendor(
                    state.new_link_patient_ids, vendor_id
                )
            for patient_id, previous in state.replaced_preferences.items():
                if patient_id not in created:
                    await self._records.update_patient(
                        patient_id, {"preferred_vendor_id": previous}
                    )
            removed = await self._records.delete_patients(state.created_patient_ids)
        except StoreError as exc:
            logger.error(
                "ingestion_compensation_failed",
                clinic_id=state.clinic_id,
                patient_ids=state.created_patient_ids,
                error=str(exc),
            )
            return
        state.summary.patients_created -= removed
        logger.warning(
            "ingestion_patients_compensated",
            clinic_id=state.clinic_id,
            removed=removed,
            unlinked=unlinked,
            restored_preferences=len(state.replaced_preferences.keys() - created),
        )

    def _fail(self, state: _RunState, row_number: int, message: str) -> None:
        state.row_errors.append(RowError(row_number=row_number, message=message))
        state.summary.failed += 1

    def _finalize_errors(self, state: _RunState) -> None:
        limit = self._settings.max_reported_errors
        state.summary.errors = [str(error) for error in state.row_errors[:limit]]
        state.summary.additional_error_count = max(len(state.row_errors) - limit, 0)

    async def _log_upload(self, state: _RunState) -> None:
        summary = state.summary
        try:
            await self._records.record_upload(
                FileUpload(
                    clinic_id=state.clinic_id,
                    file_name=state.request.filename or "upload",
                    upload_type=state.profile.kind.value,
                    records_count=summary.succeeded,
                    status=summary.status,
                    uploaded_by=state.request.actor_id,
                )
            )
        except StoreError as exc:
            logger.warning("ingestion_upload_log_failed", clinic_id=state.clinic_id, error=str(exc))


class _RowFailure(Exception):
    """Signal that the current row cannot be ingested."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
