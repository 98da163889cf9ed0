"""Request and response payloads for the dashboard API."""

from __future__ import annotations

from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from shared.models import Clinic, Patient, PeriodReport, RecordStatus, Vendor
from services.analytics import (
    DashboardSummary,
    MonthlyStats,
    NonOrderingReport,
    PatientActivity,
    ReconciliationResult,
)


class _UpdatePayload(BaseModel):
    """Partial update: only fields sent by the client are applied."""

    model_config = ConfigDict(use_enum_values=True, extra="forbid")

    def changes(self) -> dict[str, Any]:
        return self.model_dump(mode="python", exclude_unset=True)


class ClinicCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    name: str = Field(min_length=1)
    license_number: str | None = None
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    status: RecordStatus = RecordStatus.ACTIVE


class ClinicUpdate(_UpdatePayload):
    name: str | None = Field(default=None, min_length=1)
    license_number: str | None = None
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    status: RecordStatus | None = None


class VendorCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    name: str = Field(min_length=1)
    clinic_id: str | None = None
    contact_person: str | None = None
    license_number: str | None = None
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    status: RecordStatus = RecordStatus.ACTIVE


class VendorUpdate(_UpdatePayload):
    name: str | None = Field(default=None, min_length=1)
    clinic_id: str | None = None
    contact_person: str | None = None
    license_number: str | None = None
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    status: RecordStatus | None = None


class PatientCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    clinic_id: str
    k_number: str = Field(min_length=1)
    first_name: str = Field(min_length=1)
    last_name: str = ""
    category: str | None = Field(
        default=None, description="Defaults to the configured default category"
    )
    status: RecordStatus = RecordStatus.ACTIVE
    preferred_vendor_id: str | None = None
    date_of_birth: date | None = None
    phone: str | None = None
    email: str | None = None


class PatientUpdate(_UpdatePayload):
    k_number: str | None = Field(default=None, min_length=1)
    first_name: str | None = Field(default=None, min_length=1)
    last_name: str | None = None
    category: str | None = None
    status: RecordStatus | None = None
    preferred_vendor_id: str | None = None
    date_of_birth: date | None = None
    phone: str | None = None
    email: str | None = None


class ClinicCollectionResponse(BaseModel):
    clinics: list[Clinic] = Field(default_factory=list)


class VendorCollectionResponse(BaseModel):
    vendors: list[Vendor] = Field(default_factory=list)


class PatientCollectionResponse(BaseModel):
    patients: list[Patient] = Field(default_factory=list)


class UploadSummaryResponse(BaseModel):
    """Outcome of one spreadsheet upload."""

    kind: str
    file_name: str | None = None
    status: str
    processed: int
    succeeded: int
    failed: int
    skipped: int
    errors: list[str] = Field(default_factory=list)
    additional_error_count: int = 0
    patients_created: int = 0
    reports_inserted: int = 0
    cancelled: bool = False
    store_error: str | None = None


class VendorReportLine(BaseModel):
    report: PeriodReport
    k_number: str | None = None
    patient_name: str | None = None


class VendorReportResponse(BaseModel):
    reports: list[VendorReportLine] = Field(default_factory=list)
    report_count: int = 0
    total_amount: float = 0.0
    total_quantity: float = 0.0


class PatientReportHistoryResponse(BaseModel):
    """One patient's period reports, newest month first, with totals."""

    patient: Patient
    reports: list[PeriodReport] = Field(default_factory=list)
    report_count: int = 0
    total_amount: float = 0.0
    total_quantity: float = 0.0


class PatientActivityEntry(BaseModel):
    patient: Patient
    total_spent: float
    last_activity_month: date | None = None
    report_count: int = 0

    @classmethod
    def from_activity(cls, activity: PatientActivity) -> "PatientActivityEntry":
        return cls(
            patient=activity.patient,
            total_spent=round(activity.total_spent, 2),
            last_activity_month=activity.last_activity_month,
            report_count=activity.report_count,
        )


class PatientActivityResponse(BaseModel):
    patients: list[PatientActivityEntry] = Field(default_factory=list)


class NonOrderingEntry(BaseModel):
    patient: Patient
    last_activity_month: date | None = None
    months_inactive: int


class NonOrderingResponse(BaseModel):
    """Non-ordering patients per category with the thresholds applied."""

    categories: dict[str, list[NonOrderingEntry]] = Field(default_factory=dict)
    counts: dict[str, int] = Field(default_factory=dict)
    thresholds: dict[str, int] = Field(default_factory=dict)

    @classmethod
    def from_report(
        cls, report: NonOrderingReport, thresholds: dict[str, int]
    ) -> "NonOrderingResponse":
        return cls(
            categories={
                category: [
                    NonOrderingEntry(
                        patient=entry.patient,
                        last_activity_month=entry.last_activity_month,
                        months_inactive=entry.months_inactive,
                    )
                    for entry in entries
                ]
                for category, entries in report.by_category.items()
            },
            counts=report.counts(),
            thresholds=thresholds,
        )


class CategoryMonthEntry(BaseModel):
    active_patients: int
    patients_ordered: int
    total_amount: float
    percent_ordered: float
    average_per_patient: float


class MonthlyTrendEntry(BaseModel):
    month: str
    total_amount: float
    patients_ordered: int
    categories: dict[str, CategoryMonthEntry] = Field(default_factory=dict)

    @classmethod
    def from_stats(cls, stats: MonthlyStats) -> "MonthlyTrendEntry":
        return cls(
            month=stats.month,
            total_amount=round(stats.total_amount, 2),
            patients_ordered=stats.patients_ordered,
            categories={
                name: CategoryMonthEntry(
                    active_patients=item.active_patients,
                    patients_ordered=item.patients_ordered,
                    total_amount=round(item.total_amount, 2),
                    percent_ordered=round(item.percent_ordered, 1),
                    average_per_patient=round(item.average_per_patient, 2),
                )
                for name, item in stats.categories.items()
            },
        )


class TrendingResponse(BaseModel):
    months: list[MonthlyTrendEntry] = Field(default_factory=list)


class ReconciliationResponse(BaseModel):
    """Reconciliation counts with presentation percentages."""

    vendor_id: str
    month: date
    total_patients: int
    reported_patients: int
    missing_count: int
    reported_percent: float
    missing_percent: float
    missing_patients: list[Patient] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: ReconciliationResult) -> "ReconciliationResponse":
        total = result.total_patients

        def percent(part: int) -> float:
            return round(part / total * 100, 1) if total else 0.0

        return cls(
            vendor_id=result.vendor_id,
            month=result.month,
            total_patients=total,
            reported_patients=result.reported_patients,
            missing_count=result.missing_count,
            reported_percent=percent(result.reported_patients),
            missing_percent=percent(result.missing_count),
            missing_patients=result.missing_patients,
        )


class DashboardResponse(BaseModel):
    total_patients: int
    active_patients: int
    patients_by_category: dict[str, int] = Field(default_factory=dict)
    active_vendors: int
    reports_this_month: int
    amount_this_month: float

    @classmethod
    def from_summary(cls, summary: DashboardSummary) -> "DashboardResponse":
        return cls(
            total_patients=summary.total_patients,
            active_patients=summary.active_patients,
            patients_by_category=dict(summary.patients_by_category),
            active_vendors=summary.active_vendors,
            reports_this_month=summary.reports_this_month,
            amount_this_month=round(summary.amount_this_month, 2),
        )


__all__ = [
    "ClinicCollectionResponse",
    "ClinicCreate",
    "ClinicUpdate",
    "DashboardResponse",
    "MonthlyTrendEntry",
    "NonOrderingResponse",
    "PatientActivityEntry",
    "PatientActivityResponse",
    "PatientCollectionResponse",
    "PatientCreate",
    "PatientReportHistoryResponse",
    "PatientUpdate",
    "ReconciliationResponse",
    "TrendingResponse",
    "UploadSummaryResponse",
    "VendorCollectionResponse",
    "VendorCreate",
    "VendorReportLine",
    "VendorReportResponse",
    "VendorUpdate",
]
