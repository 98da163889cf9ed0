"""Pure aggregation of patient activity from period reports.

Every function here is deterministic and free of I/O. Missing amounts count as
zero and patients without reports are treated as never having ordered.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date

from shared.models import Patient, PeriodReport

from .months import month_key, months_between
from .policy import CategoryPolicy

__all__ = [
    "CategoryMonthStats",
    "MonthlyStats",
    "NonOrderingPatient",
    "NonOrderingReport",
    "PatientActivity",
    "classify_non_ordering",
    "compute_monthly_stats",
    "summarize_patient_activity",
]


@dataclass(frozen=True, slots=True)
class PatientActivity:
    """Lifetime spend and most recent report month for one patient."""

    patient: Patient
    total_spent: float
    last_activity_month: date | None
    report_count: int = 0


@dataclass(frozen=True, slots=True)
class CategoryMonthStats:
    category: str
    active_patients: int
    patients_ordered: int
    total_amount: float
    percent_ordered: float
    average_per_patient: float


@dataclass(frozen=True, slots=True)
class MonthlyStats:
    """Aggregates for one ``YYYY-MM`` bucket, split by category."""

    month: str
    categories: dict[str, CategoryMonthStats]

    @property
    def total_amount(self) -> float:
        return sum(stats.total_amount for stats in self.categories.values())

    @property
    def patients_ordered(self) -> int:
        return sum(stats.patients_ordered for stats in self.categories.values())


@dataclass(frozen=True, slots=True)
class NonOrderingPatient:
    patient: Patient
    last_activity_month: date | None
    months_inactive: int


@dataclass(frozen=True, slots=True)
class NonOrderingReport:
    """Non-ordering patients grouped by configured category."""

    by_category: dict[str, list[NonOrderingPatient]] = field(default_factory=dict)

    def for_category(self, category: str) -> list[NonOrderingPatient]:
        return self.by_category.get(category, [])

    def counts(self) -> dict[str, int]:
        return {category: len(entries) for category, entries in self.by_category.items()}


def _index_reports(
    reports: Iterable[PeriodReport],
) -> tuple[dict[str, float], dict[str, date], dict[str, int]]:
    totals: dict[str, float] = defaultdict(float)
    latest: dict[str, date] = {}
    counts: dict[str, int] = defaultdict(int)
    for report in reports:
        if not report.patient_id:
            continue
        totals[report.patient_id] += report.amount or 0.0
        counts[report.patient_id] += 1
        current = latest.get(report.patient_id)
        if report.report_month and (current is None or report.report_month > current):
            latest[report.patient_id] = report.report_month
    return totals, latest, counts


def summarize_patient_activity(
    patients: Iterable[Patient], reports: Iterable[PeriodReport]
) -> list[PatientActivity]:
    """Return total spend and last activity month for every patient, in input order."""

    totals, latest, counts = _index_reports(reports)
    return [
        PatientActivity(
            patient=patient,
            total_spent=totals.get(patient.id or "", 0.0),
            last_activity_month=latest.get(patient.id or ""),
            report_count=counts.get(patient.id or "", 0),
        )
        for patient in patients
    ]


def compute_monthly_stats(
    patients: Iterable[Patient],
    reports: Iterable[PeriodReport],
    policy: CategoryPolicy,
) -> list[MonthlyStats]:
    """Group reports into calendar months and summarise each category.

    The active patient count used as denominator is today's snapshot and is
    applied to every month. Buckets are returned newest first.
    """

    patient_list = list(patients)
    category_of = {patient.id: patient.category for patient in patient_list if patient.id}
    active_counts = {category: 0 for category in policy.categories}
    for patient in patient_list:
        if patient.is_active and patient.category in active_counts:
            active_counts[patient.category] += 1

    ordered: dict[str, dict[str, set[str]]] = defaultdict(lambda: defaultdict(set))
    amounts: dict[str, dict[str, float]] = defaultdict(lambda: defaultdict(float))
    for report in reports:
        category = category_of.get(report.patient_id)
        if category not in active_counts or report.report_month is None:
            continue
        key = month_key(report.report_month)
        ordered[key][category].add(report.patient_id)
        amounts[key][category] += report.amount or 0.0

    stats: list[MonthlyStats] = []
    for key in sorted(ordered, reverse=True):
        per_category: dict[str, CategoryMonthStats] = {}
        for category in policy.categories:
            active = active_counts[category]
            distinct = len(ordered[key].get(category, ()))
            total = amounts[key].get(category, 0.0)
            per_category[category] = CategoryMonthStats(
                category=category,
                active_patients=active,
                patients_ordered=distinct,
                total_amount=total,
                percent_ordered=(distinct / active * 100) if active else 0.0,
                average_per_patient=(total / active) if active else 0.0,
            )
        stats.append(MonthlyStats(month=key, categories=per_category))
    return stats


def classify_non_ordering(
    patients: Iterable[Patient],
    reports: Iterable[PeriodReport],
    policy: CategoryPolicy,
    today: date,
) -> NonOrderingReport:
    """Return active patients whose inactivity meets their category's threshold.

    Patients that never ordered are assigned ``policy.never_ordered_months``.
    Each list is ordered by months inactive, longest first.
    """

    _, latest, _ = _index_reports(reports)
    by_category: dict[str, list[NonOrderingPatient]] = {
        category: [] for category in policy.categories
    }
    for patient in patients:
        if not patient.is_active or patient.category not in by_category:
            continue
        threshold = policy.threshold_for(patient.category)
        if threshold is None:
            continue
        last = latest.get(patient.id or "")
        inactive = (
            months_between(last, today) if last is not None else policy.never_ordered_months
        )
        if inactive >= threshold:
            by_category[patient.category].append(
                NonOrderingPatient(
                    patient=patient, last_activity_month=last, months_inactive=inactive
                )
            )
    for entries in by_category.values():
        entries.sort(
            key=lambda entry: (
                -entry.months_inactive,
                entry.patient.last_name.casefold(),
                entry.patient.first_name.casefold(),
            )
        )
    return NonOrderingReport(by_category=by_category)
