"""Ingest a vendor report, pharmacy report or patient roster into a record store."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Iterable

from shared.config import get_settings
from shared.models import UploadKind
from shared.observability.logger import configure_logging
from services.ingestion import (
    IngestionValidationError,
    SpreadsheetIngestionPipeline,
    UploadRequest,
)
from services.records import ClinicRecords, SQLRecordStore, StoreError


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=(
            "Read the first sheet of a spreadsheet and store its patients and "
            "period reports for a clinic."
        )
    )
    parser.add_argument(
        "kind",
        choices=[kind.value for kind in UploadKind],
        help="Spreadsheet flavour to ingest.",
    )
    parser.add_argument("file", type=Path, help="Path to the .xlsx or .csv file.")
    parser.add_argument("--clinic-id", dest="clinic_id", required=True)
    parser.add_argument(
        "--vendor-id",
        dest="vendor_id",
        help="Vendor the report belongs to (required for report kinds).",
    )
    parser.add_argument(
        "--report-month",
        dest="report_month",
        help="Reporting month as YYYY-MM (required for report kinds).",
    )
    parser.add_argument(
        "--database-url",
        dest="database_url",
        help="SQLAlchemy async URL. Defaults to CLINIC_DASHBOARD_DATABASE_URL.",
    )
    parser.add_argument(
        "--bootstrap-schema",
        dest="bootstrap_schema",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Create the record tables before ingesting.",
    )
    parser.add_argument("--actor-id", dest="actor_id", help="Actor recorded on the upload log.")
    parser.add_argument(
        "--dump-summary",
        action="store_true",
        help="Print the full ingestion summary as JSON.",
    )
    return parser


async def _run_async(args: argparse.Namespace) -> int:
    settings = get_settings()
    database_url = args.database_url or settings.database.url
    if not database_url:
        print("A database URL is required (--database-url).", file=sys.stderr)
        return 2
    bootstrap = (
        settings.database.bootstrap_schema
        if args.bootstrap_schema is None
        else args.bootstrap_schema
    )

    store = SQLRecordStore(database_url)
    try:
        if bootstrap:
            await store.bootstrap_schema()
        pipeline = SpreadsheetIngestionPipeline(
            ClinicRecords(store, settings=settings.records),
            settings=settings.ingestion,
            analytics=settings.analytics,
        )
        summary = await pipeline.run(
            UploadRequest(
                kind=UploadKind(args.kind),
                clinic_id=args.clinic_id,
                content=args.file.read_bytes(),
                filename=args.file.name,
                vendor_id=args.vendor_id,
                report_month=args.report_month,
                actor_id=args.actor_id,
            )
        )
    finally:
        await store.close()

    print(
        f"Ingested {summary.succeeded} of {summary.processed} rows from {args.file.name} "
        f"({summary.failed} failed, {summary.skipped} skipped)"
    )
    if args.dump_summary:
        print(json.dumps(summary.as_dict()))
    return 1 if summary.store_error else 0


def main(argv: Iterable[str] | None = None) -> int:
    parser = _build_parser()
    parsed_args = parser.parse_args(None if argv is None else list(argv))
    settings = get_settings()
    configure_logging(service_name="ingest_spreadsheet", level=settings.logging.level)
    if not parsed_args.file.is_file():
        print(f"File not found: {parsed_args.file}", file=sys.stderr)
        return 2
    try:
        return asyncio.run(_run_async(parsed_args))
    except IngestionValidationError as exc:
        print(f"Upload rejected: {exc}", file=sys.stderr)
        return 2
    except StoreError as exc:
        print(f"Record store error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:  # pragma: no cover - manual cancellation guard
        return 130


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
