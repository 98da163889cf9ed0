"""Tests for dashboard headline counts and the activity report service."""

from __future__ import annotations

from datetime import date

import pytest

from shared.models import Patient, PeriodReport, RecordStatus, Vendor
from services.analytics import ActivityReportService, CategoryPolicy, compute_dashboard_summary
from services.records import ClinicRecords


def test_dashboard_summary_counts() -> None:
    patients = [
        Patient(id="1", clinic_id="c1", k_number="K1", category="Veteran"),
        Patient(id="2", clinic_id="c1", k_number="K2", category="Civilian", status=RecordStatus.INACTIVE),
        Patient(id="3", clinic_id="c1", k_number="K3", category="Civilian"),
    ]
    vendors = [Vendor(name="Acme"), Vendor(name="Closed", status=RecordStatus.INACTIVE)]
    reports = [
        PeriodReport(patient_id="1", report_month="2024-12", amount=40.0),
        PeriodReport(patient_id="3", report_month="2024-12", amount=2.5),
        PeriodReport(patient_id="3", report_month="2024-11", amount=100.0),
    ]

    summary = compute_dashboard_summary(patients, vendors, reports, CategoryPolicy(), date(2024, 12, 18))

    assert summary.total_patients == 3
    assert summary.active_patients == 2
    assert summary.patients_by_category == {"Veteran": 1, "Civilian": 2}
    assert summary.active_vendors == 1
    assert summary.reports_this_month == 2
    assert summary.amount_this_month == pytest.approx(42.5)


async def _seed(records: ClinicRecords) -> dict[str, Patient]:
    patients = {
        "vet": await records.create_patient(Patient(clinic_id="c1", k_number="K1", first_name="Vera", category="Veteran")),
        "civ": await records.create_patient(Patient(clinic_id="c1", k_number="K2", first_name="Cal", category="Civilian")),
        "other": await records.create_patient(Patient(clinic_id="c2", k_number="K3", first_name="Otto")),
    }
    await records.insert_reports(
        [
            PeriodReport(patient_id=patients["vet"].id, clinic_id="c1", vendor_id="v1", report_month="2024-08", amount=20.0),
            PeriodReport(patient_id=patients["civ"].id, clinic_id="c1", vendor_id="v1", report_month="2024-11", amount=35.0),
            PeriodReport(patient_id=patients["other"].id, clinic_id="c2", vendor_id="v1", report_month="2024-11", amount=99.0),
        ]
    )
    return patients


@pytest.mark.asyncio
async def test_activity_service_scopes_to_clinic(records: ClinicRecords) -> None:
    patients = await _seed(records)
    service = ActivityReportService(records, CategoryPolicy())

    activity = await service.patient_activity("c1")
    trends = await service.monthly_trends("c1", month_from="2024-09")
    non_ordering = await service.non_ordering("c1", today=date(2024, 12, 5))

    assert {entry.patient.id: entry.total_spent for entry in activity} == {
        patients["vet"].id: 20.0,
        patients["civ"].id: 35.0,
    }
    assert [bucket.month for bucket in trends] == ["2024-11"]
    assert [entry.patient.id for entry in non_ordering.for_category("Veteran")] == [patients["vet"].id]
    assert non_ordering.for_category("Civilian") == []


@pytest.mark.asyncio
async def test_activity_service_accepts_threshold_override(records: ClinicRecords) -> None:
    patients = await _seed(records)
    service = ActivityReportService(records, CategoryPolicy())

    report = await service.non_ordering(
        "c1", today=date(2024, 12, 5), policy=service.policy.with_threshold("Veteran", 6)
    )

    assert report.for_category("Veteran") == []
    assert patients["vet"].id not in {entry.patient.id for entry in report.for_category("Civilian")}


@pytest.mark.asyncio
async def test_dashboard_service_counts_current_month(records: ClinicRecords) -> None:
    await _seed(records)
    await records.create_vendor(Vendor(name="Acme", clinic_id="c1"))
    service = ActivityReportService(records, CategoryPolicy())

    summary = await service.dashboard("c1", today=date(2024, 11, 30))

    assert summary.total_patients == 2
    assert summary.active_vendors == 1
    assert summary.reports_this_month == 1
    assert summary.amount_this_month == pytest.approx(35.0)
