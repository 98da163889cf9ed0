from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable

import pytest

from scripts import ingest_spreadsheet
from services.records import InMemoryRecordStore, StoreError


class _StubStore(InMemoryRecordStore):
    instances: list["_StubStore"] = []

    def __init__(self, database_url: str) -> None:
        super().__init__()
        self.database_url = database_url
        self.bootstrapped = False
        self.closed = False
        type(self).instances.append(self)

    async def bootstrap_schema(self) -> None:
        self.bootstrapped = True

    async def close(self) -> None:
        self.closed = True


class _BrokenStore(_StubStore):
    async def insert(self, table, rows):  # type: ignore[override]
        raise StoreError("database is read-only", table=table)


@pytest.fixture(autouse=True)
def _reset_store_instances() -> Iterable[None]:
    _StubStore.instances.clear()
    yield
    _StubStore.instances.clear()


@pytest.fixture
def pharmacy_file(tmp_path: Path) -> Path:
    path = tmp_path / "pharmacy.csv"
    path.write_text("K Number,Patient Name,Amount\nK1,Jane Doe,20\nK2,Bo Chan,abc\n,,\n")
    return path


def test_main_ingests_file_and_prints_summary(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], pharmacy_file: Path
) -> None:
    monkeypatch.setattr(ingest_spreadsheet, "SQLRecordStore", _StubStore)

    exit_code = ingest_spreadsheet.main(
        [
            "pharmacy_report",
            str(pharmacy_file),
            "--clinic-id",
            "c1",
            "--vendor-id",
            "v1",
            "--report-month",
            "2024-10",
            "--database-url",
            "sqlite+aiosqlite:///clinic.db",
            "--bootstrap-schema",
            "--dump-summary",
        ]
    )

    assert exit_code == 0
    [store] = _StubStore.instances
    assert store.database_url == "sqlite+aiosqlite:///clinic.db"
    assert store.bootstrapped is True
    assert store.closed is True

    output = capsys.readouterr().out
    assert "Ingested 2 of 2 rows from pharmacy.csv (0 failed, 0 skipped)" in output
    summary = json.loads(
        next(line for line in output.splitlines() if line.startswith('{"kind"'))
    )
    assert summary["kind"] == "pharmacy_report"
    assert summary["reports_inserted"] == 2
    assert summary["patients_created"] == 2


def test_main_requires_database_url(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], pharmacy_file: Path
) -> None:
    monkeypatch.setattr(ingest_spreadsheet, "SQLRecordStore", _StubStore)
    settings = ingest_spreadsheet.get_settings()
    monkeypatch.setattr(settings.database, "url", None)

    exit_code = ingest_spreadsheet.main(["pharmacy_report", str(pharmacy_file), "--clinic-id", "c1"])

    assert exit_code == 2
    assert "database URL" in capsys.readouterr().err
    assert _StubStore.instances == []


def test_main_reports_rejected_upload(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], pharmacy_file: Path
) -> None:
    monkeypatch.setattr(ingest_spreadsheet, "SQLRecordStore", _StubStore)

    exit_code = ingest_spreadsheet.main(
        [
            "pharmacy_report",
            str(pharmacy_file),
            "--clinic-id",
            "c1",
            "--report-month",
            "2024-10",
            "--database-url",
            "sqlite+aiosqlite:///clinic.db",
        ]
    )

    assert exit_code == 2
    assert "Upload rejected: A vendor must be selected" in capsys.readouterr().err
    assert _StubStore.instances[0].closed is True


def test_main_missing_file(capsys: pytest.CaptureFixture[str], tmp_path: Path) -> None:
    exit_code = ingest_spreadsheet.main(
        ["patient_roster", str(tmp_path / "missing.xlsx"), "--clinic-id", "c1"]
    )

    assert exit_code == 2
    assert "File not found" in capsys.readouterr().err


def test_main_returns_failure_when_batch_insert_fails(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], pharmacy_file: Path
) -> None:
    monkeypatch.setattr(ingest_spreadsheet, "SQLRecordStore", _BrokenStore)

    exit_code = ingest_spreadsheet.main(
        [
            "pharmacy_report",
            str(pharmacy_file),
            "--clinic-id",
            "c1",
            "--vendor-id",
            "v1",
            "--report-month",
            "2024-10",
            "--database-url",
            "sqlite+aiosqlite:///clinic.db",
        ]
    )

    assert exit_code == 1
    assert "Ingested 0 of 2 rows" in capsys.readouterr().out
