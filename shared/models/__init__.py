"""Shared record models."""

from .records import (
    Clinic,
    FileUpload,
    Patient,
    PatientVendorLink,
    PeriodReport,
    RecordStatus,
    StoredRecord,
    UploadKind,
    Vendor,
    coerce_month,
    first_of_month,
    utcnow,
)

__all__ = [
    "Clinic",
    "FileUpload",
    "Patient",
    "PatientVendorLink",
    "PeriodReport",
    "RecordStatus",
    "StoredRecord",
    "UploadKind",
    "Vendor",
    "coerce_month",
    "first_of_month",
    "utcnow",
]
