"""Tests for the pure activity aggregation engine."""

from __future__ import annotations

from datetime import date

import pytest

from shared.models import Patient, PeriodReport, RecordStatus
from services.analytics import (
    CategoryPolicy,
    classify_non_ordering,
    compute_monthly_stats,
    summarize_patient_activity,
)

TODAY = date(2024, 12, 10)


def _patient(identifier: str, category: str = "Veteran", **extra) -> Patient:
    return Patient(
        id=identifier,
        clinic_id="c1",
        k_number=f"K{identifier}",
        first_name=extra.pop("first_name", identifier.upper()),
        last_name=extra.pop("last_name", "Test"),
        category=category,
        **extra,
    )


def _report(patient_id: str, month: date | str, amount: float = 0.0) -> PeriodReport:
    return PeriodReport(patient_id=patient_id, vendor_id="v1", report_month=month, amount=amount)


@pytest.fixture
def policy() -> CategoryPolicy:
    return CategoryPolicy()


def test_total_spent_sums_all_reports_per_patient() -> None:
    patients = [_patient("a"), _patient("b"), _patient("c")]
    reports = [
        _report("a", "2024-09", 100.0),
        _report("a", "2024-11", 25.5),
        _report("b", "2024-10", 40.0),
        _report("zz", "2024-10", 999.0),
    ]

    activity = summarize_patient_activity(patients, reports)

    assert [entry.patient.id for entry in activity] == ["a", "b", "c"]
    assert activity[0].total_spent == pytest.approx(125.5)
    assert activity[0].last_activity_month == date(2024, 11, 1)
    assert activity[0].report_count == 2
    assert activity[1].total_spent == pytest.approx(40.0)
    assert activity[2].total_spent == 0.0
    assert activity[2].last_activity_month is None


def test_empty_inputs_produce_empty_outputs(policy: CategoryPolicy) -> None:
    assert summarize_patient_activity([], []) == []
    assert compute_monthly_stats([], [], policy) == []
    report = classify_non_ordering([], [], policy, TODAY)
    assert report.counts() == {"Veteran": 0, "Civilian": 0}


def test_reports_in_same_calendar_month_share_a_bucket(policy: CategoryPolicy) -> None:
    patients = [_patient("a"), _patient("b")]
    reports = [
        _report("a", date(2024, 10, 15), 10.0),
        _report("b", date(2024, 10, 3), 20.0),
        _report("a", date(2024, 11, 1), 5.0),
    ]

    stats = compute_monthly_stats(patients, reports, policy)

    assert [bucket.month for bucket in stats] == ["2024-11", "2024-10"]
    october = stats[1]
    assert october.patients_ordered == 2
    assert october.total_amount == pytest.approx(30.0)


def test_monthly_stats_use_current_active_denominator(policy: CategoryPolicy) -> None:
    patients = [
        _patient("v1"),
        _patient("v2"),
        _patient("v3", status=RecordStatus.INACTIVE),
        _patient("c1", category="Civilian"),
    ]
    reports = [
        _report("v1", "2024-10", 50.0),
        _report("v1", "2024-10", 10.0),
        _report("v3", "2024-10", 30.0),
        _report("c1", "2024-09", 15.0),
    ]

    stats = compute_monthly_stats(patients, reports, policy)
    by_month = {bucket.month: bucket for bucket in stats}

    veteran = by_month["2024-10"].categories["Veteran"]
    assert veteran.active_patients == 2
    assert veteran.patients_ordered == 2
    assert veteran.percent_ordered == pytest.approx(100.0)
    assert veteran.total_amount == pytest.approx(90.0)
    assert veteran.average_per_patient == pytest.approx(45.0)

    civilian_october = by_month["2024-10"].categories["Civilian"]
    assert civilian_october.patients_ordered == 0
    assert civilian_october.percent_ordered == 0.0
    assert by_month["2024-09"].categories["Civilian"].percent_ordered == pytest.approx(100.0)


def test_percent_ordered_is_zero_without_active_patients(policy: CategoryPolicy) -> None:
    patients = [_patient("v1", status=RecordStatus.INACTIVE)]

    stats = compute_monthly_stats(patients, [_report("v1", "2024-10", 5.0)], policy)

    veteran = stats[0].categories["Veteran"]
    assert veteran.active_patients == 0
    assert veteran.percent_ordered == 0.0
    assert veteran.average_per_patient == 0.0


def test_never_ordered_patient_gets_sentinel(policy: CategoryPolicy) -> None:
    report = classify_non_ordering([_patient("1")], [], policy, TODAY)

    [entry] = report.for_category("Veteran")
    assert entry.patient.id == "1"
    assert entry.months_inactive == 12
    assert entry.last_activity_month is None


def test_non_ordering_uses_category_thresholds(policy: CategoryPolicy) -> None:
    patients = [
        _patient("v-recent"),
        _patient("v-two"),
        _patient("c-two", category="Civilian"),
        _patient("c-three", category="Civilian"),
        _patient("v-inactive", status=RecordStatus.INACTIVE),
    ]
    reports = [
        _report("v-recent", "2024-11", 10.0),
        _report("v-two", "2024-10", 10.0),
        _report("c-two", "2024-10", 10.0),
        _report("c-three", "2024-09", 10.0),
    ]

    report = classify_non_ordering(patients, reports, policy, TODAY)

    assert [entry.patient.id for entry in report.for_category("Veteran")] == ["v-two"]
    assert [entry.patient.id for entry in report.for_category("Civilian")] == ["c-three"]
    assert report.for_category("Civilian")[0].months_inactive == 3


def test_future_activity_is_clamped_to_zero_months(policy: CategoryPolicy) -> None:
    zero_threshold = policy.with_threshold("Veteran", 0)

    report = classify_non_ordering(
        [_patient("a")], [_report("a", "2025-03", 1.0)], zero_threshold, TODAY
    )

    assert report.for_category("Veteran")[0].months_inactive == 0


def test_non_ordering_lists_longest_inactive_first(policy: CategoryPolicy) -> None:
    patients = [_patient("a", last_name="Young"), _patient("b", last_name="Adams"), _patient("c")]
    reports = [_report("a", "2024-06", 1.0), _report("b", "2024-06", 1.0)]

    entries = classify_non_ordering(patients, reports, policy, TODAY).for_category("Veteran")

    assert [entry.patient.id for entry in entries] == ["c", "b", "a"]
    assert [entry.months_inactive for entry in entries] == [12, 6, 6]


@pytest.mark.parametrize("category", ["Veteran", "Civilian"])
def test_raising_threshold_never_increases_count(policy: CategoryPolicy, category: str) -> None:
    patients = [_patient(f"p{i}", category=category) for i in range(8)]
    reports = [_report(f"p{i}", f"2024-{12 - i:02d}", 1.0) for i in range(6)]

    counts = [
        len(
            classify_non_ordering(
                patients, reports, policy.with_threshold(category, threshold), TODAY
            ).for_category(category)
        )
        for threshold in range(0, 15)
    ]

    assert counts == sorted(counts, reverse=True)
    assert counts[0] == 8
    assert counts[-1] == 0


def test_policy_from_settings_is_configurable() -> None:
    from shared.config import AnalyticsSettings

    settings = AnalyticsSettings(
        categories=["Veteran", "Civilian", "Senior"],
        non_ordering_thresholds={"Veteran": 1, "Civilian": 4, "Senior": 6},
        never_ordered_months=24,
    )

    policy = CategoryPolicy.from_settings(settings)

    assert policy.categories == ("Veteran", "Civilian", "Senior")
    assert policy.threshold_for("Senior") == 6
    assert policy.threshold_for("Unknown") is None
    report = classify_non_ordering([_patient("s", category="Senior")], [], policy, TODAY)
    assert report.for_category("Senior")[0].months_inactive == 24
