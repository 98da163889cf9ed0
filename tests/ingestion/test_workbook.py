"""Tests for reading uploaded spreadsheets."""

from __future__ import annotations

import pytest

from services.ingestion import IngestionValidationError
from services.ingestion.workbook import read_first_sheet


def test_reads_first_sheet_of_xlsx(make_workbook) -> None:
    content = make_workbook([["K Number", "Amount"], ["K1", 12.5]])

    rows = read_first_sheet(content, "report.xlsx")

    assert rows[0] == ["K Number", "Amount"]
    assert rows[1] == ["K1", 12.5]


def test_detects_xlsx_without_extension(make_workbook) -> None:
    content = make_workbook([["Patient Name"], ["Jane Doe"]])

    rows = read_first_sheet(content, None)

    assert rows[1] == ["Jane Doe"]


def test_reads_csv_with_byte_order_mark() -> None:
    content = "\ufeffK Number,Amount\nK1,$10.00\n".encode("utf-8")

    rows = read_first_sheet(content, "report.csv")

    assert rows == [["K Number", "Amount"], ["K1", "$10.00"]]


def test_reads_latin1_csv() -> None:
    content = "Patient Name,Amount\nJos\xe9 Ruiz,5\n".encode("latin-1")

    rows = read_first_sheet(content, "report.CSV")

    assert rows[1][0] == "José Ruiz"


def test_empty_file_is_rejected() -> None:
    with pytest.raises(IngestionValidationError) as excinfo:
        read_first_sheet(b"", "report.xlsx")

    assert excinfo.value.field == "file"


def test_legacy_xls_is_rejected() -> None:
    with pytest.raises(IngestionValidationError, match=".xls"):
        read_first_sheet(b"\xd0\xcf\x11\xe0", "report.xls")


def test_corrupt_workbook_is_rejected() -> None:
    with pytest.raises(IngestionValidationError):
        read_first_sheet(b"PK\x03\x04not really a zip", "report.xlsx")
