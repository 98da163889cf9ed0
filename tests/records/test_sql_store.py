"""Tests for the SQLAlchemy record store against a file-backed SQLite database."""

from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest
import pytest_asyncio

pytest.importorskip("aiosqlite")

from shared.config import DatabaseSettings  # noqa: E402
from shared.models import Patient, PeriodReport  # noqa: E402
from services.records import (  # noqa: E402
    PATIENT_VENDORS,
    PATIENTS,
    ClinicRecords,
    Filter,
    InMemoryRecordStore,
    SQLRecordStore,
    StoreError,
    build_record_store,
)


@pytest_asyncio.fixture
async def sql_store(tmp_path: Path):
    store = SQLRecordStore(f"sqlite+aiosqlite:///{tmp_path / 'records.db'}")
    await store.bootstrap_schema()
    yield store
    await store.close()


@pytest.mark.asyncio
async def test_insert_and_select_round_trip(sql_store: SQLRecordStore) -> None:
    inserted = await sql_store.insert(
        PATIENTS,
        [
            {"clinic_id": "c1", "k_number": "K2", "first_name": "Bea", "last_name": "Young", "category": "Civilian"},
            {"clinic_id": "c1", "k_number": "K1", "first_name": "Al", "last_name": "Adams", "category": "Veteran"},
        ],
    )

    assert all(row["id"] for row in inserted)
    rows = await sql_store.select(
        PATIENTS, filters=[Filter.eq("clinic_id", "c1")], order_by="last_name"
    )
    assert [row["k_number"] for row in rows] == ["K1", "K2"]

    matched = await sql_store.select(PATIENTS, filters=[Filter("last_name", "ilike", "%OUN%")])
    assert [row["k_number"] for row in matched] == ["K2"]

    exact = await sql_store.select(PATIENTS, filters=[Filter.iexact("first_name", "AL")])
    assert [row["k_number"] for row in exact] == ["K1"]


@pytest.mark.asyncio
async def test_insert_ignore_conflict_uses_unique_constraint(sql_store: SQLRecordStore) -> None:
    row = {"patient_id": "p1", "vendor_id": "v1"}

    first = await sql_store.insert_ignore_conflict(PATIENT_VENDORS, row, ("patient_id", "vendor_id"))
    second = await sql_store.insert_ignore_conflict(PATIENT_VENDORS, row, ("patient_id", "vendor_id"))

    assert first is not None
    assert second is None
    assert len(await sql_store.select(PATIENT_VENDORS)) == 1


@pytest.mark.asyncio
async def test_duplicate_natural_key_insert_raises_store_error(sql_store: SQLRecordStore) -> None:
    row = {"clinic_id": "c1", "k_number": "K1", "category": "Veteran"}
    await sql_store.insert(PATIENTS, [row])

    with pytest.raises(StoreError):
        await sql_store.insert(PATIENTS, [row])


@pytest.mark.asyncio
async def test_update_and_delete(sql_store: SQLRecordStore) -> None:
    [row] = await sql_store.insert(
        PATIENTS, [{"clinic_id": "c1", "k_number": "K1", "category": "Veteran"}]
    )

    updated = await sql_store.update(
        PATIENTS, [Filter.eq("id", row["id"])], {"status": "inactive", "date_of_birth": "1980-02-03"}
    )
    assert updated[0]["status"] == "inactive"
    assert updated[0]["date_of_birth"] == date(1980, 2, 3)

    assert await sql_store.update(PATIENTS, [Filter.eq("id", "missing")], {"status": "active"}) == []
    assert await sql_store.delete(PATIENTS, [Filter.isin("id", [row["id"], "missing"])]) == 1


@pytest.mark.asyncio
async def test_repository_over_sql_store(sql_store: SQLRecordStore) -> None:
    records = ClinicRecords(sql_store)
    patient = await records.create_patient(Patient(clinic_id="c1", k_number="K9", first_name="Ana"))
    await records.insert_reports(
        [
            PeriodReport(patient_id=patient.id, vendor_id="v1", clinic_id="c1", report_month="2024-10", amount=120.5),
            PeriodReport(patient_id=patient.id, vendor_id="v1", clinic_id="c1", report_month="2024-11", amount=80),
        ]
    )

    reports = await records.list_reports(clinic_id="c1", month_from="2024-11")

    assert [report.report_month for report in reports] == [date(2024, 11, 1)]
    assert reports[0].amount == pytest.approx(80.0)
    assert await records.create_patient_if_absent(Patient(clinic_id="c1", k_number="K9")) is None


@pytest.mark.asyncio
async def test_unknown_table_is_rejected(sql_store: SQLRecordStore) -> None:
    with pytest.raises(StoreError):
        await sql_store.select("prescriptions")


@pytest.mark.asyncio
async def test_build_record_store_without_url_returns_memory_store(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.delenv("CLINIC_DASHBOARD_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    store = await build_record_store(DatabaseSettings())

    assert isinstance(store, InMemoryRecordStore)


@pytest.mark.asyncio
async def test_build_record_store_bootstraps_sql_schema(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("CLINIC_DASHBOARD_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'boot.db'}")
    monkeypatch.setenv("CLINIC_DASHBOARD_DATABASE_BOOTSTRAP_SCHEMA", "true")
    settings = DatabaseSettings()

    store = await build_record_store(settings)
    try:
        assert isinstance(store, SQLRecordStore)
        assert await store.select(PATIENTS) == []
    finally:
        await store.close()
