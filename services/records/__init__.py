"""Record store access for clinics, vendors, patients and period reports."""

from .errors import RecordNotFoundError, StoreError, StoreTimeoutError
from .interfaces import (
    CLINICS,
    FILE_UPLOADS,
    PATIENT_VENDORS,
    PATIENTS,
    PERIOD_REPORTS,
    TABLES,
    VENDORS,
    Filter,
    RecordStore,
)
from .memory import InMemoryRecordStore
from .repository import ClinicRecords
from .resilience import RetryPolicy, call_async_with_retry
from .sql import SQLRecordStore, build_record_store

__all__ = [
    "CLINICS",
    "ClinicRecords",
    "FILE_UPLOADS",
    "Filter",
    "InMemoryRecordStore",
    "PATIENTS",
    "PATIENT_VENDORS",
    "PERIOD_REPORTS",
    "RecordNotFoundError",
    "RecordStore",
    "RetryPolicy",
    "SQLRecordStore",
    "StoreError",
    "StoreTimeoutError",
    "TABLES",
    "VENDORS",
    "build_record_store",
    "call_async_with_retry",
]
