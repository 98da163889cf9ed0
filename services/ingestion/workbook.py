"""Read the first sheet of an uploaded spreadsheet into rows of cell values."""

from __future__ import annotations

import csv
import io
import zipfile
from pathlib import PurePath
from typing import Any

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from .errors import IngestionValidationError

_EXCEL_SUFFIXES = {".xlsx", ".xlsm", ".xltx", ".xltm"}
_ZIP_MAGIC = b"PK\x03\x04"

SheetRows = list[list[Any]]


def _read_excel(content: bytes) -> SheetRows:
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        raise IngestionValidationError(f"Unable to read spreadsheet: {exc}", field="file") from exc
    try:
        if not workbook.worksheets:
            return []
        sheet = workbook.worksheets[0]
        return [list(row) for row in sheet.iter_rows(values_only=True)]
    finally:
        workbook.close()


def _read_csv(content: bytes) -> SheetRows:
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        text = content.decode("latin-1")
    try:
        return [list(row) for row in csv.reader(io.StringIO(text))]
    except csv.Error as exc:
        raise IngestionValidationError(f"Unable to read CSV file: {exc}", field="file") from exc


def read_first_sheet(content: bytes, filename: str | None = None) -> SheetRows:
    """Return every row of the first sheet in ``content``.

    ``.csv`` files are parsed as text; other files are opened with openpyxl.
    Legacy ``.xls`` workbooks are rejected.
    """

    if not content:
        raise IngestionValidationError("Uploaded file is empty", field="file")
    suffix = PurePath(filename or "").suffix.lower()
    if suffix == ".xls":
        raise IngestionValidationError(
            "Legacy .xls workbooks are not supported; save the file as .xlsx", field="file"
        )
    if suffix == ".csv":
        return _read_csv(content)
    if suffix in _EXCEL_SUFFIXES or content.startswith(_ZIP_MAGIC):
        return _read_excel(content)
    return _read_csv(content)


__all__ = ["SheetRows", "read_first_sheet"]
