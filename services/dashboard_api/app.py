"""Clinic dashboard FastAPI application."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator

from fastapi import (
    APIRouter,
    Depends,
    FastAPI,
    File,
    Form,
    HTTPException,
    Query,
    Request,
    UploadFile,
    status,
)
from fastapi.responses import JSONResponse, Response

from shared.config import get_settings
from shared.http.errors import (
    RecordNotFoundProblem,
    RecordStoreUnavailableError,
    UploadRejectedError,
    register_exception_handlers,
    render_problem,
)
from shared.models import Clinic, Patient, RecordStatus, UploadKind, Vendor, coerce_month
from shared.observability.audit import record_activity_audit
from shared.observability.logger import configure_logging, get_logger
from shared.observability.middleware import (
    CorrelationIdMiddleware,
    RequestTimingMiddleware,
)
from services.analytics import (
    ActivityReportService,
    CategoryPolicy,
    VendorReconciliationService,
)
from services.ingestion import (
    IngestionValidationError,
    SpreadsheetIngestionPipeline,
    UploadRequest,
)
from services.records import (
    ClinicRecords,
    RecordNotFoundError,
    StoreError,
    StoreTimeoutError,
)

from .dependencies import (
    close_record_store,
    get_activity_service,
    get_actor_id,
    get_category_policy,
    get_clinic_records,
    get_ingestion_pipeline,
    get_reconciliation_service,
)
from .schemas import (
    ClinicCollectionResponse,
    ClinicCreate,
    ClinicUpdate,
    DashboardResponse,
    MonthlyTrendEntry,
    NonOrderingResponse,
    PatientActivityEntry,
    PatientActivityResponse,
    PatientCollectionResponse,
    PatientCreate,
    PatientReportHistoryResponse,
    PatientUpdate,
    ReconciliationResponse,
    TrendingResponse,
    UploadSummaryResponse,
    VendorCollectionResponse,
    VendorCreate,
    VendorReportLine,
    VendorReportResponse,
    VendorUpdate,
)

SERVICE_NAME = "clinic_dashboard"

_settings = get_settings()
configure_logging(service_name=_settings.app.service_name, level=_settings.logging.level)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    await close_record_store()


app = FastAPI(title="Clinic Dashboard Service", lifespan=lifespan)
app.add_middleware(RequestTimingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
register_exception_handlers(app)


async def _store_error_handler(request: Request, exc: Exception) -> JSONResponse:
    if isinstance(exc, RecordNotFoundError):
        return render_problem(request, RecordNotFoundProblem(exc.table or "", exc.identifier))
    reason = "timeout" if isinstance(exc, StoreTimeoutError) else "store_error"
    logger.error("record_store_unavailable", path=request.url.path, reason=reason, error=str(exc))
    return render_problem(request, RecordStoreUnavailableError(reason=reason))


async def _ingestion_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, IngestionValidationError)
    fields = [exc.field] if exc.field else None
    return render_problem(request, UploadRejectedError(str(exc), fields=fields))


app.add_exception_handler(StoreError, _store_error_handler)
app.add_exception_handler(IngestionValidationError, _ingestion_error_handler)


def _parse_month(value: str | None, name: str) -> date | None:
    if value is None or value == "":
        return None
    try:
        return coerce_month(value)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"detail": f"{name} must be formatted as YYYY-MM", "field": name},
        ) from exc


def _check_category(category: str, policy: CategoryPolicy) -> None:
    if category not in policy.categories:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "detail": f"Unknown patient category '{category}'",
                "allowed": list(policy.categories),
            },
        )


@app.get("/health", tags=["health"])
async def health() -> dict[str, str]:
    """Return a simple health payload for orchestration checks."""

    return {"status": "ok", "service": SERVICE_NAME}


clinics_router = APIRouter(prefix="/clinics", tags=["clinics"])
vendors_router = APIRouter(prefix="/vendors", tags=["vendors"])
patients_router = APIRouter(prefix="/patients", tags=["patients"])
uploads_router = APIRouter(prefix="/uploads", tags=["uploads"])
reports_router = APIRouter(prefix="/reports", tags=["reports"])


# Clinics -----------------------------------------------------------------


@clinics_router.get("", response_model=ClinicCollectionResponse)
async def list_clinics(
    status_filter: RecordStatus | None = Query(default=None, alias="status"),
    records: ClinicRecords = Depends(get_clinic_records),
) -> ClinicCollectionResponse:
    return ClinicCollectionResponse(clinics=await records.list_clinics(status=status_filter))


@clinics_router.post("", response_model=Clinic, status_code=status.HTTP_201_CREATED)
async def create_clinic(
    payload: ClinicCreate,
    records: ClinicRecords = Depends(get_clinic_records),
) -> Clinic:
    clinic = await records.create_clinic(Clinic(**payload.model_dump()))
    await record_activity_audit("clinic_created", subject=clinic.id, clinic_id=clinic.id, success=True)
    return clinic


@clinics_router.patch("/{clinic_id}", response_model=Clinic)
async def update_clinic(
    clinic_id: str,
    payload: ClinicUpdate,
    records: ClinicRecords = Depends(get_clinic_records),
) -> Clinic:
    clinic = await records.update_clinic(clinic_id, payload.changes())
    await record_activity_audit(
        "clinic_updated",
        subject=clinic_id,
        clinic_id=clinic_id,
        success=True,
        metadata={"fields": sorted(payload.changes())},
    )
    return clinic


# Vendors -----------------------------------------------------------------


@vendors_router.get("", response_model=VendorCollectionResponse)
async def list_vendors(
    clinic_id: str | None = Query(default=None),
    status_filter: RecordStatus | None = Query(default=None, alias="status"),
    records: ClinicRecords = Depends(get_clinic_records),
) -> VendorCollectionResponse:
    """Return vendors ordered by name with duplicate names collapsed."""

    vendors = await records.list_vendors(clinic_id=clinic_id, status=status_filter)
    return VendorCollectionResponse(vendors=vendors)


@vendors_router.post("", response_model=Vendor, status_code=status.HTTP_201_CREATED)
async def create_vendor(
    payload: VendorCreate,
    records: ClinicRecords = Depends(get_clinic_records),
) -> Vendor:
    vendor = await records.create_vendor(Vendor(**payload.model_dump()))
    await record_activity_audit(
        "vendor_created", subject=vendor.id, clinic_id=vendor.clinic_id, success=True
    )
    return vendor


@vendors_router.patch("/{vendor_id}", response_model=Vendor)
async def update_vendor(
    vendor_id: str,
    payload: VendorUpdate,
    records: ClinicRecords = Depends(get_clinic_records),
) -> Vendor:
    vendor = await records.update_vendor(vendor_id, payload.changes())
    await record_activity_audit(
        "vendor_updated",
        subject=vendor_id,
        clinic_id=vendor.clinic_id,
        success=True,
        metadata={"fields": sorted(payload.changes())},
    )
    return vendor


# Patients ----------------------------------------------------------------


@patients_router.get("", response_model=PatientCollectionResponse)
async def list_patients(
    clinic_id: str | None = Query(default=None),
    status_filter: RecordStatus | None = Query(default=None, alias="status"),
    category: str | None = Query(default=None),
    search: str | None = Query(default=None, min_length=1, description="Name or K number"),
    records: ClinicRecords = Depends(get_clinic_records),
) -> PatientCollectionResponse:
    if search:
        patients = await records.search_patients(search, clinic_id=clinic_id)
        if status_filter is not None:
            patients = [patient for patient in patients if patient.status == status_filter]
        if category:
            patients = [patient for patient in patients if patient.category == category]
    else:
        patients = await records.list_patients(
            clinic_id=clinic_id, status=status_filter, category=category
        )
    return PatientCollectionResponse(patients=patients)


@patients_router.get("/{patient_id}", response_model=Patient)
async def get_patient(
    patient_id: str,
    records: ClinicRecords = Depends(get_clinic_records),
) -> Patient:
    return await records.get_patient(patient_id)


@patients_router.get("/{patient_id}/reports", response_model=PatientReportHistoryResponse)
async def patient_report_history(
    patient_id: str,
    records: ClinicRecords = Depends(get_clinic_records),
) -> PatientReportHistoryResponse:
    patient = await records.get_patient(patient_id)
    reports = await records.list_reports(patient_ids=[patient_id])
    return PatientReportHistoryResponse(
        patient=patient,
        reports=reports,
        report_count=len(reports),
        total_amount=round(sum(report.amount for report in reports), 2),
        total_quantity=round(sum(report.quantity or 0.0 for report in reports), 2),
    )


@patients_router.post("", response_model=Patient, status_code=status.HTTP_201_CREATED)
async def create_patient(
    payload: PatientCreate,
    records: ClinicRecords = Depends(get_clinic_records),
    policy: CategoryPolicy = Depends(get_category_policy),
) -> Patient:
    values = payload.model_dump()
    values["category"] = payload.category or policy.default_category
    _check_category(values["category"], policy)
    created = await records.create_patient_if_absent(Patient(**values))
    if created is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"K number '{payload.k_number}' already exists in this clinic.",
        )
    await record_activity_audit(
        "patient_created", subject=created.id, clinic_id=created.clinic_id, success=True
    )
    return created


@patients_router.patch("/{patient_id}", response_model=Patient)
async def update_patient(
    patient_id: str,
    payload: PatientUpdate,
    records: ClinicRecords = Depends(get_clinic_records),
    policy: CategoryPolicy = Depends(get_category_policy),
) -> Patient:
    changes = payload.changes()
    if changes.get("category") is not None:
        _check_category(changes["category"], policy)
    patient = await records.update_patient(patient_id, changes)
    await record_activity_audit(
        "patient_updated",
        subject=patient_id,
        clinic_id=patient.clinic_id,
        success=True,
        metadata={"fields": sorted(changes)},
    )
    return patient


@patients_router.delete("/{patient_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_patient(
    patient_id: str,
    records: ClinicRecords = Depends(get_clinic_records),
) -> Response:
    await records.delete_patient(patient_id)
    await record_activity_audit("patient_deleted", subject=patient_id, success=True)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Uploads -----------------------------------------------------------------


@uploads_router.post("/{kind}", response_model=UploadSummaryResponse)
async def upload_spreadsheet(
    kind: UploadKind,
    file: UploadFile | None = File(default=None),
    clinic_id: str | None = Form(default=None),
    vendor_id: str | None = Form(default=None),
    report_month: str | None = Form(default=None),
    actor_id: str | None = Depends(get_actor_id),
    pipeline: SpreadsheetIngestionPipeline = Depends(get_ingestion_pipeline),
) -> UploadSummaryResponse:
    """Ingest a vendor report, pharmacy report or patient roster spreadsheet."""

    content = await file.read() if file is not None else None
    summary = await pipeline.run(
        UploadRequest(
            kind=kind,
            clinic_id=clinic_id,
            content=content,
            filename=file.filename if file is not None else None,
            vendor_id=vendor_id,
            report_month=report_month,
            actor_id=actor_id,
        )
    )
    return UploadSummaryResponse(**summary.as_dict())


# Reports -----------------------------------------------------------------


@reports_router.get("/vendor", response_model=VendorReportResponse)
async def vendor_reports(
    clinic_id: str | None = Query(default=None),
    vendor_id: str | None = Query(default=None),
    month: str | None = Query(default=None, description="YYYY-MM"),
    month_from: str | None = Query(default=None, description="YYYY-MM"),
    month_to: str | None = Query(default=None, description="YYYY-MM"),
    records: ClinicRecords = Depends(get_clinic_records),
) -> VendorReportResponse:
    """List period reports with patient names and totals."""

    single = _parse_month(month, "month")
    reports = await records.list_reports(
        clinic_id=clinic_id,
        vendor_id=vendor_id,
        month_from=single or _parse_month(month_from, "month_from"),
        month_to=single or _parse_month(month_to, "month_to"),
    )
    patients = await records.list_patients(patient_ids={report.patient_id for report in reports})
    by_id = {patient.id: patient for patient in patients}
    lines = [
        VendorReportLine(
            report=report,
            k_number=by_id[report.patient_id].k_number if report.patient_id in by_id else None,
            patient_name=by_id[report.patient_id].full_name if report.patient_id in by_id else None,
        )
        for report in reports
    ]
    return VendorReportResponse(
        reports=lines,
        report_count=len(lines),
        total_amount=round(sum(report.amount for report in reports), 2),
        total_quantity=round(sum(report.quantity or 0.0 for report in reports), 2),
    )


@reports_router.get("/activity", response_model=PatientActivityResponse)
async def patient_activity(
    clinic_id: str | None = Query(default=None),
    service: ActivityReportService = Depends(get_activity_service),
) -> PatientActivityResponse:
    activity = await service.patient_activity(clinic_id)
    return PatientActivityResponse(
        patients=[PatientActivityEntry.from_activity(entry) for entry in activity]
    )


@reports_router.get("/non-ordering", response_model=NonOrderingResponse)
async def non_ordering(
    clinic_id: str | None = Query(default=None),
    service: ActivityReportService = Depends(get_activity_service),
) -> NonOrderingResponse:
    """Active patients whose inactivity reaches their category threshold."""

    report = await service.non_ordering(clinic_id)
    return NonOrderingResponse.from_report(
        report, dict(service.policy.non_ordering_threshold_by_category)
    )


@reports_router.get("/trending", response_model=TrendingResponse)
async def trending(
    clinic_id: str | None = Query(default=None),
    month_from: str | None = Query(default=None, description="YYYY-MM"),
    month_to: str | None = Query(default=None, description="YYYY-MM"),
    service: ActivityReportService = Depends(get_activity_service),
) -> TrendingResponse:
    stats = await service.monthly_trends(
        clinic_id,
        month_from=_parse_month(month_from, "month_from"),
        month_to=_parse_month(month_to, "month_to"),
    )
    return TrendingResponse(months=[MonthlyTrendEntry.from_stats(entry) for entry in stats])


@reports_router.get("/reconciliation", response_model=ReconciliationResponse)
async def reconciliation(
    vendor_id: str = Query(...),
    month: str = Query(..., description="YYYY-MM"),
    clinic_id: str | None = Query(default=None),
    service: VendorReconciliationService = Depends(get_reconciliation_service),
) -> ReconciliationResponse:
    target = _parse_month(month, "month")
    if target is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"detail": "month is required", "field": "month"},
        )
    result = await service.reconcile(clinic_id, vendor_id, target)
    return ReconciliationResponse.from_result(result)


@app.get("/dashboard", response_model=DashboardResponse, tags=["reports"])
async def dashboard(
    clinic_id: str | None = Query(default=None),
    service: ActivityReportService = Depends(get_activity_service),
) -> DashboardResponse:
    return DashboardResponse.from_summary(await service.dashboard(clinic_id))


app.include_router(clinics_router)
app.include_router(vendors_router)
app.include_router(patients_router)
app.include_router(uploads_router)
app.include_router(reports_router)


def get_app() -> FastAPI:
    """Return the FastAPI app instance."""

    return app


__all__ = ["app", "get_app"]
