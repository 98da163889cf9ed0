"""FastAPI dependency providers for the dashboard API."""

from __future__ import annotations

from fastapi import Depends, Request

from shared.config import Settings, get_settings
from services.analytics import (
    ActivityReportService,
    CategoryPolicy,
    VendorReconciliationService,
)
from services.ingestion import SpreadsheetIngestionPipeline
from services.records import ClinicRecords, RecordStore, build_record_store

_record_store: RecordStore | None = None


async def get_record_store(settings: Settings = Depends(get_settings)) -> RecordStore:
    """Return the shared record store, creating it on first use."""

    global _record_store
    if _record_store is None:
        _record_store = await build_record_store(settings.database)
    return _record_store


async def close_record_store() -> None:
    global _record_store
    if _record_store is not None:
        await _record_store.close()
        _record_store = None


def get_clinic_records(
    store: RecordStore = Depends(get_record_store),
    settings: Settings = Depends(get_settings),
) -> ClinicRecords:
    return ClinicRecords(store, settings=settings.records)


def get_category_policy(settings: Settings = Depends(get_settings)) -> CategoryPolicy:
    return CategoryPolicy.from_settings(settings.analytics)


def get_activity_service(
    records: ClinicRecords = Depends(get_clinic_records),
    policy: CategoryPolicy = Depends(get_category_policy),
) -> ActivityReportService:
    return ActivityReportService(records, policy)


def get_reconciliation_service(
    records: ClinicRecords = Depends(get_clinic_records),
) -> VendorReconciliationService:
    return VendorReconciliationService(records)


def get_ingestion_pipeline(
    records: ClinicRecords = Depends(get_clinic_records),
    settings: Settings = Depends(get_settings),
) -> SpreadsheetIngestionPipeline:
    return SpreadsheetIngestionPipeline(
        records, settings=settings.ingestion, analytics=settings.analytics
    )


def get_actor_id(request: Request) -> str | None:
    """Return the actor bound by :class:`CorrelationIdMiddleware`."""

    return getattr(request.state, "actor_id", None)


__all__ = [
    "close_record_store",
    "get_activity_service",
    "get_actor_id",
    "get_category_policy",
    "get_clinic_records",
    "get_ingestion_pipeline",
    "get_reconciliation_service",
    "get_record_store",
]
