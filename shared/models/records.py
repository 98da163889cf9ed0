"""Record models for the clinic dashboard store."""

from __future__ import annotations

from datetime import UTC, date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    """Return a naive UTC timestamp compatible with ``timestamp`` columns."""

    return datetime.now(UTC).replace(tzinfo=None)


def first_of_month(value: date | datetime) -> date:
    """Return the first day of the calendar month containing ``value``."""

    if isinstance(value, datetime):
        value = value.date()
    return value.replace(day=1)


def coerce_month(value: Any) -> date:
    """Parse ``value`` into a first-of-month :class:`date`.

    Accepts dates, datetimes and ISO strings in ``YYYY-MM`` or ``YYYY-MM-DD``
    form.
    """

    if isinstance(value, (date, datetime)):
        return first_of_month(value)
    if isinstance(value, str):
        text = value.strip()
        if len(text) == 7:
            text = f"{text}-01"
        return first_of_month(date.fromisoformat(text[:10]))
    raise ValueError(f"Cannot interpret {value!r} as a month")


class RecordStatus(str, Enum):
    """Lifecycle status shared by patients, clinics and vendors."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class UploadKind(str, Enum):
    """Spreadsheet upload flavours accepted by ingestion."""

    VENDOR_REPORT = "vendor_report"
    PHARMACY_REPORT = "pharmacy_report"
    PATIENT_ROSTER = "patient_roster"


class StoredRecord(BaseModel):
    """Columns every stored record carries."""

    model_config = ConfigDict(
        populate_by_name=True, use_enum_values=True, validate_default=True, extra="ignore"
    )

    id: str | None = Field(default=None, description="Store assigned identifier")
    created_at: datetime | None = Field(default=None)

    def to_row(self) -> dict[str, Any]:
        """Return the non-null column values for insertion."""

        return self.model_dump(mode="python", exclude_none=True)


class Clinic(StoredRecord):
    name: str
    license_number: str | None = None
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    status: RecordStatus = RecordStatus.ACTIVE


class Vendor(StoredRecord):
    name: str
    clinic_id: str | None = Field(default=None, description="Owning clinic, if any")
    contact_person: str | None = None
    license_number: str | None = None
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    status: RecordStatus = RecordStatus.ACTIVE


class Patient(StoredRecord):
    """A clinic patient identified by a per-clinic natural key."""

    clinic_id: str
    k_number: str = Field(description="Natural key, unique per clinic")
    first_name: str = ""
    last_name: str = ""
    category: str = Field(default="Veteran", description="Patient category axis value")
    status: RecordStatus = RecordStatus.ACTIVE
    preferred_vendor_id: str | None = None
    date_of_birth: date | None = None
    phone: str | None = None
    email: str | None = None

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    @property
    def is_active(self) -> bool:
        return self.status == RecordStatus.ACTIVE


class PatientVendorLink(StoredRecord):
    patient_id: str
    vendor_id: str


class PeriodReport(StoredRecord):
    """One patient's transactions with one vendor in one calendar month."""

    patient_id: str
    vendor_id: str | None = None
    clinic_id: str | None = None
    report_month: date
    amount: float = Field(default=0.0, ge=0)
    quantity: float | None = Field(default=None, description="Grams sold, when reported")
    product_name: str | None = None

    @field_validator("report_month", mode="before")
    @classmethod
    def normalize_month(cls, value: Any) -> date:
        return coerce_month(value)

    @field_validator("amount", mode="before")
    @classmethod
    def default_missing_amount(cls, value: Any) -> Any:
        return 0.0 if value is None or value == "" else value

    @property
    def month_key(self) -> str:
        return self.report_month.strftime("%Y-%m")


class FileUpload(StoredRecord):
    """Log entry describing one processed spreadsheet upload."""

    clinic_id: str | None = None
    file_name: str
    upload_type: str
    records_count: int = 0
    status: str = "completed"
    uploaded_by: str | None = None


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
