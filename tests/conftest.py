"""Shared fixtures for the clinic dashboard test suite."""

from __future__ import annotations

import io
import sys
from pathlib import Path
from typing import Any, Callable, Sequence

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from shared.config import RecordStoreSettings  # noqa: E402
from services.records import ClinicRecords, InMemoryRecordStore  # noqa: E402

WorkbookFactory = Callable[[Sequence[Sequence[Any]]], bytes]


@pytest.fixture
def fast_store_settings() -> RecordStoreSettings:
    """Record store settings without backoff delays."""

    return RecordStoreSettings(
        call_timeout_seconds=0.5,
        read_attempts=3,
        initial_backoff_seconds=0.0,
        max_backoff_seconds=0.0,
    )


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def records(store: InMemoryRecordStore, fast_store_settings: RecordStoreSettings) -> ClinicRecords:
    return ClinicRecords(store, settings=fast_store_settings)


@pytest.fixture
def make_workbook() -> WorkbookFactory:
    """Return a helper that renders rows into an in-memory ``.xlsx`` file."""

    from openpyxl import Workbook

    def _build(rows: Sequence[Sequence[Any]]) -> bytes:
        workbook = Workbook()
        sheet = workbook.active
        for row in rows:
            sheet.append(list(row))
        buffer = io.BytesIO()
        workbook.save(buffer)
        return buffer.getvalue()

    return _build
