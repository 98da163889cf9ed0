"""Per-kind descriptions of how a spreadsheet maps onto patients and reports."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from shared.models import UploadKind


class MatchStrategy(str, Enum):
    """How a row is resolved to a stored patient."""

    NATURAL_KEY = "natural_key"
    NAME = "name"


@dataclass(frozen=True)
class IngestionProfile:
    """Header keywords, column keywords and behaviour for one upload kind.

    ``columns`` is ordered: fields listed first claim their column before
    later fields are resolved.
    """

    kind: UploadKind
    header_keywords: tuple[str, ...]
    columns: Mapping[str, tuple[str, ...]]
    emits_reports: bool = True
    link_vendor: bool = False
    strip_name_dots: bool = False

    @property
    def requires_vendor(self) -> bool:
        return self.emits_reports

    @property
    def requires_month(self) -> bool:
        return self.emits_reports

    def match_strategy(self, columns: Mapping[str, int]) -> MatchStrategy:
        if "k_number" in columns:
            return MatchStrategy.NATURAL_KEY
        return MatchStrategy.NAME


VENDOR_REPORT = IngestionProfile(
    kind=UploadKind.VENDOR_REPORT,
    # "affliate" is how the vendor export spells the column.
    header_keywords=("patient initials", "affliate", "affiliate"),
    columns={
        "name": ("patient initials", "patient name"),
        "net_amount": ("net sales",),
        "gross_amount": ("gross sales",),
        "quantity": ("grams", "quantity"),
        "product": ("product",),
    },
    link_vendor=True,
    strip_name_dots=True,
)

PHARMACY_REPORT = IngestionProfile(
    kind=UploadKind.PHARMACY_REPORT,
    header_keywords=(
        "patient id",
        "patient name",
        "patient initals",
        "patient initials",
        "k number",
    ),
    columns={
        "k_number": ("k number", "knumber", "patient id"),
        "name": ("patient name", "patient initials", "patient initals"),
        "product": ("product name", "product"),
        "quantity": ("quantity", "grams"),
        "net_amount": ("amount", "net sales", "total"),
    },
)

PATIENT_ROSTER = IngestionProfile(
    kind=UploadKind.PATIENT_ROSTER,
    header_keywords=("k number", "knumber", "first name", "name"),
    columns={
        "k_number": ("k number", "knumber", "kid", "kno"),
        "first_name": ("first name", "firstname"),
        "last_name": ("last name", "lastname"),
        "name": ("patient name", "full name", "name"),
        "category": ("category", "patient type", "type"),
        "status": ("status",),
        "date_of_birth": ("date of birth", "dob", "birth date"),
        "phone": ("phone",),
        "email": ("email",),
    },
    emits_reports=False,
)

PROFILES: dict[UploadKind, IngestionProfile] = {
    profile.kind: profile for profile in (VENDOR_REPORT, PHARMACY_REPORT, PATIENT_ROSTER)
}


def get_profile(kind: UploadKind | str) -> IngestionProfile:
    return PROFILES[UploadKind(kind)]


__all__ = [
    "IngestionProfile",
    "MatchStrategy",
    "PATIENT_ROSTER",
    "PHARMACY_REPORT",
    "PROFILES",
    "VENDOR_REPORT",
    "get_profile",
]
