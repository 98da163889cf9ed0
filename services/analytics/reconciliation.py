"""Vendor/month reconciliation of associated patients against reports."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date

from shared.models import Patient, PeriodReport, coerce_month

__all__ = ["ReconciliationResult", "reconcile_vendor_month"]


@dataclass(frozen=True, slots=True)
class ReconciliationResult:
    """Counts plus the patients with no report for the vendor and month."""

    vendor_id: str
    month: date
    total_patients: int = 0
    reported_patients: int = 0
    missing_patients: list[Patient] = field(default_factory=list)

    @property
    def missing_count(self) -> int:
        return len(self.missing_patients)

    @classmethod
    def empty(cls, vendor_id: str, month: date) -> "ReconciliationResult":
        return cls(vendor_id=vendor_id, month=month)


def reconcile_vendor_month(
    vendor_id: str,
    month: date | str,
    associated_patient_ids: Iterable[str],
    patients: Iterable[Patient],
    reports: Iterable[PeriodReport],
) -> ReconciliationResult:
    """Find active associated patients that have no report for ``vendor_id`` in ``month``.

    Reports are narrowed to the vendor, the month and the associated patients
    before the reported set is built, so stray reports never affect counts.
    """

    target_month = coerce_month(month)
    associated = set(associated_patient_ids)
    if not associated:
        return ReconciliationResult.empty(vendor_id, target_month)

    roster = [
        patient
        for patient in patients
        if patient.id in associated and patient.is_active
    ]
    roster_ids = {patient.id for patient in roster}
    reported = {
        report.patient_id
        for report in reports
        if report.vendor_id == vendor_id
        and report.report_month == target_month
        and report.patient_id in roster_ids
    }
    missing = [patient for patient in roster if patient.id not in reported]
    return ReconciliationResult(
        vendor_id=vendor_id,
        month=target_month,
        total_patients=len(roster),
        reported_patients=len(reported),
        missing_patients=missing,
    )
