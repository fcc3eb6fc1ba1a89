from datetime import date

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session

from backend.config import settings
from backend.database import get_db
from backend.routers.deps import get_app_settings
from backend.schemas.lab_report import (
    AnnotationUpdate,
    LabReport,
    LabReportCreate,
    MarkerRenameRequest,
    ReportAnnotations,
    ReportListItem,
    SamplingTiming,
)
from backend.schemas.settings import AppSettings, ImportRequest
from backend.services import report_store
from backend.services.calculated_markers import enrich_report_with_calculated_markers
from backend.services.extraction_client import ExtractionError, extract_pdf
from backend.services.merge_suggestions import detect_marker_merge_suggestions

router = APIRouter(prefix="/api/reports", tags=["reports"])


def _list_item(report: LabReport) -> ReportListItem:
    return ReportListItem(
        id=report.id,
        source_file_name=report.source_file_name,
        test_date=report.test_date,
        created_at=report.created_at,
        total_markers=len(report.markers),
        abnormal_markers=sum(1 for m in report.markers if m.abnormal in {"high", "low"}),
        dosage_mg_per_week=report.annotations.dosage_mg_per_week,
        sampling_timing=report.annotations.sampling_timing,
        is_baseline=report.is_baseline,
        needs_review=report.extraction.needs_review,
    )


def _merge_suggestions(report: LabReport, existing: list[str]):
    incoming = [m.canonical_marker for m in report.markers]
    return detect_marker_merge_suggestions(incoming, existing)


@router.post("")
def create_report(
    payload: LabReportCreate,
    db: Session = Depends(get_db),
    app_settings: AppSettings = Depends(get_app_settings),
):
    existing = report_store.known_canonical_markers(db)
    report = report_store.create_report(db, payload, app_settings)
    return {
        "statusCode": 200,
        "message": "Report created",
        "data": {
            "report": report,
            "merge_suggestions": _merge_suggestions(report, existing),
        },
    }


@router.post("/upload")
async def upload_report(
    file: UploadFile = File(...),
    dosage_mg_per_week: float | None = Form(default=None, ge=0),
    sampling_timing: SamplingTiming = Form(default="unknown"),
    test_date: date | None = Form(default=None),
    db: Session = Depends(get_db),
    app_settings: AppSettings = Depends(get_app_settings),
):
    if not file.filename or not file.filename.lower().endswith(".pdf"):
        raise HTTPException(status_code=400, detail="Please upload a PDF file")

    file_bytes = await file.read()
    max_size_bytes = settings.max_upload_size_mb * 1024 * 1024
    if len(file_bytes) > max_size_bytes:
        raise HTTPException(status_code=400, detail=f"File too large. Max size is {settings.max_upload_size_mb}MB")

    try:
        draft = extract_pdf(file_bytes=file_bytes, file_name=file.filename)
    except ExtractionError as exc:
        raise HTTPException(status_code=502, detail=exc.code) from exc

    annotations = ReportAnnotations.model_validate(
        {
            "dosage_mg_per_week": dosage_mg_per_week,
            "sampling_timing": sampling_timing,
        }
    )
    existing = report_store.known_canonical_markers(db)
    report = report_store.ingest_extraction_draft(db, draft, app_settings, annotations=annotations, test_date=test_date)
    return {
        "statusCode": 200,
        "message": "Report processed successfully",
        "data": {
            "report": report,
            "total_markers": len(report.markers),
            "needs_review": report.extraction.needs_review,
            "merge_suggestions": _merge_suggestions(report, existing),
        },
    }


@router.get("")
def list_reports(db: Session = Depends(get_db)):
    reports = report_store.list_reports(db)
    return {
        "statusCode": 200,
        "message": "Success",
        "data": {
            "reports": [_list_item(report) for report in reversed(reports)],
            "total": len(reports),
        },
    }


@router.get("/export")
def export_reports(db: Session = Depends(get_db)):
    return {"statusCode": 200, "message": "Success", "data": report_store.export_state(db)}


@router.post("/import")
def import_reports(payload: ImportRequest, db: Session = Depends(get_db)):
    try:
        imported = report_store.import_state(db, payload.data, mode=payload.mode)
    except report_store.ImportValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {
        "statusCode": 200,
        "message": "Import completed",
        "data": {"imported": imported, "mode": payload.mode},
    }


@router.get("/{report_id}")
def get_report(
    report_id: str,
    db: Session = Depends(get_db),
    app_settings: AppSettings = Depends(get_app_settings),
):
    report = report_store.get_report(db, report_id)
    if not report:
        raise HTTPException(status_code=404, detail="Report not found")
    enriched = enrich_report_with_calculated_markers(
        report, app_settings.enable_calculated_free_testosterone
    )
    return {"statusCode": 200, "message": "Success", "data": enriched}


@router.patch("/{report_id}/annotations")
def update_annotations(report_id: str, payload: AnnotationUpdate, db: Session = Depends(get_db)):
    report = report_store.update_annotations(db, report_id, payload)
    if not report:
        raise HTTPException(status_code=404, detail="Report not found")
    return {"statusCode": 200, "message": "Annotations updated", "data": report}


@router.post("/{report_id}/markers/rename")
def rename_marker(report_id: str, payload: MarkerRenameRequest, db: Session = Depends(get_db)):
    if report_store.get_report(db, report_id) is None:
        raise HTTPException(status_code=404, detail="Report not found")
    renamed = report_store.rename_marker(db, payload.source_marker, payload.target_marker, report_id=report_id)
    return {
        "statusCode": 200,
        "message": "Marker renamed",
        "data": {"renamed": renamed, "report": report_store.get_report(db, report_id)},
    }


@router.delete("/{report_id}")
def delete_report(report_id: str, db: Session = Depends(get_db)):
    if not report_store.delete_report(db, report_id):
        raise HTTPException(status_code=404, detail="Report not found")
    return {
        "statusCode": 200,
        "message": "Report deleted",
        "data": None,
    }
