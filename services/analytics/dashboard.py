"""Headline counts shown on the clinic dashboard."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date

from shared.models import Patient, PeriodReport, RecordStatus, Vendor, first_of_month

from .policy import CategoryPolicy

__all__ = ["DashboardSummary", "compute_dashboard_summary"]


@dataclass(frozen=True, slots=True)
class DashboardSummary:
    total_patients: int = 0
    active_patients: int = 0
    patients_by_category: dict[str, int] = field(default_factory=dict)
    active_vendors: int = 0
    reports_this_month: int = 0
    amount_this_month: float = 0.0


def compute_dashboard_summary(
    patients: Iterable[Patient],
    vendors: Iterable[Vendor],
    reports: Iterable[PeriodReport],
    policy: CategoryPolicy,
    today: date,
) -> DashboardSummary:
    """Count patients, active vendors and reports dated in or after the current month."""

    patient_list = list(patients)
    by_category = {category: 0 for category in policy.categories}
    for patient in patient_list:
        if patient.category in by_category:
            by_category[patient.category] += 1
    current = first_of_month(today)
    recent = [report for report in reports if report.report_month >= current]
    return DashboardSummary(
        total_patients=len(patient_list),
        active_patients=sum(1 for patient in patient_list if patient.is_active),
        patients_by_category=by_category,
        active_vendors=sum(
            1 for vendor in vendors if vendor.status == RecordStatus.ACTIVE.value
        ),
        reports_this_month=len(recent),
        amount_this_month=sum(report.amount for report in recent),
    )
