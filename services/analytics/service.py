"""Async services that load records and run the pure engines."""

from __future__ import annotations

from datetime import date

from shared.models import RecordStatus, coerce_month
from shared.observability.logger import get_logger
from services.records import ClinicRecords

from .activity import (
    MonthlyStats,
    NonOrderingReport,
    PatientActivity,
    classify_non_ordering,
    compute_monthly_stats,
    summarize_patient_activity,
)
from .dashboard import DashboardSummary, compute_dashboard_summary
from .policy import CategoryPolicy
from .reconciliation import ReconciliationResult, reconcile_vendor_month

__all__ = ["ActivityReportService", "VendorReconciliationService"]

logger = get_logger(__name__)


class ActivityReportService:
    """Clinic scoped activity, trending, non-ordering and dashboard reports."""

    def __init__(self, records: ClinicRecords, policy: CategoryPolicy) -> None:
        self._records = records
        self._policy = policy

    @property
    def policy(self) -> CategoryPolicy:
        return self._policy

    async def patient_activity(self, clinic_id: str | None) -> list[PatientActivity]:
        patients = await self._records.list_patients(clinic_id=clinic_id)
        reports = await self._records.list_reports(clinic_id=clinic_id)
        return summarize_patient_activity(patients, reports)

    async def monthly_trends(
        self,
        clinic_id: str | None,
        *,
        month_from: date | str | None = None,
        month_to: date | str | None = None,
    ) -> list[MonthlyStats]:
        patients = await self._records.list_patients(clinic_id=clinic_id)
        reports = await self._records.list_reports(
            clinic_id=clinic_id, month_from=month_from, month_to=month_to
        )
        return compute_monthly_stats(patients, reports, self._policy)

    async def non_ordering(
        self,
        clinic_id: str | None,
        *,
        today: date | None = None,
        policy: CategoryPolicy | None = None,
    ) -> NonOrderingReport:
        patients = await self._records.list_patients(
            clinic_id=clinic_id, status=RecordStatus.ACTIVE
        )
        reports = await self._records.list_reports(
            clinic_id=clinic_id, patient_ids=[patient.id for patient in patients if patient.id]
        )
        report = classify_non_ordering(
            patients, reports, policy or self._policy, today or date.today()
        )
        logger.info("non_ordering_computed", clinic_id=clinic_id, counts=report.counts())
        return report

    async def dashboard(self, clinic_id: str | None, *, today: date | None = None) -> DashboardSummary:
        current = coerce_month(today or date.today())
        patients = await self._records.list_patients(clinic_id=clinic_id)
        vendors = await self._records.list_vendors(clinic_id=clinic_id)
        reports = await self._records.list_reports(clinic_id=clinic_id, month_from=current)
        return compute_dashboard_summary(patients, vendors, reports, self._policy, current)


class VendorReconciliationService:
    """Reconcile a vendor's associated patients against one month of reports."""

    def __init__(self, records: ClinicRecords) -> None:
        self._records = records

    async def reconcile(
        self, clinic_id: str | None, vendor_id: str, month: date | str
    ) -> ReconciliationResult:
        target_month = coerce_month(month)
        associated = await self._records.associated_patient_ids(vendor_id)
        if not associated:
            logger.info("reconciliation_no_patients", vendor_id=vendor_id, month=str(target_month))
            return ReconciliationResult.empty(vendor_id, target_month)

        patients = await self._records.list_patients(
            clinic_id=clinic_id, status=RecordStatus.ACTIVE, patient_ids=associated
        )
        reports = await self._records.list_reports(
            clinic_id=clinic_id,
            vendor_id=vendor_id,
            month_from=target_month,
            month_to=target_month,
            patient_ids=associated,
        )
        result = reconcile_vendor_month(vendor_id, target_month, associated, patients, reports)
        logger.info(
            "reconciliation_computed",
            vendor_id=vendor_id,
            month=str(target_month),
            total=result.total_patients,
            reported=result.reported_patients,
            missing=result.missing_count,
        )
        return result
