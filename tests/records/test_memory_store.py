"""Tests for the in-memory record store."""

from __future__ import annotations

from datetime import date

import pytest

from services.records import (
    PATIENT_VENDORS,
    PATIENTS,
    PERIOD_REPORTS,
    Filter,
    InMemoryRecordStore,
    StoreError,
)


@pytest.mark.asyncio
async def test_insert_assigns_identifiers_and_timestamps() -> None:
    store = InMemoryRecordStore()

    rows = await store.insert(PATIENTS, [{"clinic_id": "c1", "k_number": "K1"}])

    assert rows[0]["id"]
    assert rows[0]["created_at"] is not None
    assert await store.select(PATIENTS) == rows


@pytest.mark.asyncio
async def test_select_filters_and_orders() -> None:
    store = InMemoryRecordStore(
        seed={
            PATIENTS: [
                {"id": "p1", "clinic_id": "c1", "first_name": "Alice", "last_name": "Zimmer"},
                {"id": "p2", "clinic_id": "c1", "first_name": "alicia", "last_name": "Adams"},
                {"id": "p3", "clinic_id": "c2", "first_name": "Bob", "last_name": "Moss"},
            ]
        }
    )

    rows = await store.select(
        PATIENTS,
        filters=[Filter.eq("clinic_id", "c1"), Filter("first_name", "ilike", "%ALI%")],
        order_by="last_name",
    )
    assert [row["id"] for row in rows] == ["p2", "p1"]

    exact = await store.select(PATIENTS, filters=[Filter.iexact("first_name", "ALICE")])
    assert [row["id"] for row in exact] == ["p1"]

    limited = await store.select(PATIENTS, order_by="last_name", descending=True, limit=1)
    assert [row["id"] for row in limited] == ["p1"]

    among = await store.select(PATIENTS, filters=[Filter.isin("id", ["p1", "p3"])])
    assert {row["id"] for row in among} == {"p1", "p3"}


@pytest.mark.asyncio
async def test_month_range_filters_compare_dates() -> None:
    store = InMemoryRecordStore(
        seed={
            PERIOD_REPORTS: [
                {"id": "r1", "patient_id": "p1", "report_month": date(2024, 9, 1)},
                {"id": "r2", "patient_id": "p1", "report_month": date(2024, 10, 1)},
                {"id": "r3", "patient_id": "p1", "report_month": date(2024, 11, 1)},
            ]
        }
    )

    rows = await store.select(
        PERIOD_REPORTS,
        filters=[
            Filter.gte("report_month", date(2024, 10, 1)),
            Filter.lte("report_month", "2024-10-01"),
        ],
    )

    assert [row["id"] for row in rows] == ["r2"]


@pytest.mark.asyncio
async def test_insert_ignore_conflict_skips_existing_natural_key() -> None:
    store = InMemoryRecordStore()
    row = {"clinic_id": "c1", "k_number": "K100", "first_name": "Dana"}

    first = await store.insert_ignore_conflict(PATIENTS, row, ("clinic_id", "k_number"))
    second = await store.insert_ignore_conflict(PATIENTS, row, ("clinic_id", "k_number"))
    other_clinic = await store.insert_ignore_conflict(
        PATIENTS, {**row, "clinic_id": "c2"}, ("clinic_id", "k_number")
    )

    assert first is not None
    assert second is None
    assert other_clinic is not None
    assert len(await store.select(PATIENTS)) == 2


@pytest.mark.asyncio
async def test_update_and_delete_return_affected_rows() -> None:
    store = InMemoryRecordStore(
        seed={PATIENT_VENDORS: [{"id": "l1", "patient_id": "p1", "vendor_id": "v1"}]}
    )

    updated = await store.update(PATIENT_VENDORS, [Filter.eq("id", "l1")], {"vendor_id": "v2"})
    assert updated[0]["vendor_id"] == "v2"

    assert await store.delete(PATIENT_VENDORS, [Filter.eq("vendor_id", "v1")]) == 0
    assert await store.delete(PATIENT_VENDORS, [Filter.eq("vendor_id", "v2")]) == 1
    assert await store.select(PATIENT_VENDORS) == []


@pytest.mark.asyncio
async def test_unknown_table_raises_store_error() -> None:
    store = InMemoryRecordStore()

    with pytest.raises(StoreError):
        await store.select("prescriptions")
