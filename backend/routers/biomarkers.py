from collections import defaultdict

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from backend.database import get_db
from backend.routers.deps import get_analysis_reports, get_app_settings
from backend.schemas.analytics import MergeSuggestionRequest
from backend.schemas.biomarker import BiomarkerCategoryCount, BiomarkerSummaryItem
from backend.schemas.lab_report import LabReport
from backend.schemas.settings import AppSettings
from backend.seed.marker_catalog import marker_category
from backend.services.merge_suggestions import detect_marker_merge_suggestions
from backend.services.report_store import collect_marker_names, known_canonical_markers
from backend.services.trend_analyzer import build_marker_series, classify_marker_trend

router = APIRouter(prefix="/api/biomarkers", tags=["biomarkers"])


def _summary_items(reports: list[LabReport], unit_system: str) -> list[BiomarkerSummaryItem]:
    items = []
    for marker in collect_marker_names(reports):
        series = build_marker_series(reports, marker, unit_system)
        if not series:
            continue
        latest = series[-1]
        items.append(
            BiomarkerSummaryItem(
                biomarker=marker,
                category=marker_category(marker),
                latest_value=latest.value,
                unit=latest.unit,
                reference_min=latest.reference_min,
                reference_max=latest.reference_max,
                abnormal=latest.abnormal,
                report_date=latest.date,
                points=len(series),
            )
        )
    return sorted(items, key=lambda x: (x.category, x.biomarker))


@router.get("/summary")
def summary(
    reports: list[LabReport] = Depends(get_analysis_reports),
    app_settings: AppSettings = Depends(get_app_settings),
):
    return {"statusCode": 200, "message": "Success", "data": _summary_items(reports, app_settings.unit_system)}


@router.get("/categories")
def categories(
    reports: list[LabReport] = Depends(get_analysis_reports),
    app_settings: AppSettings = Depends(get_app_settings),
):
    grouped: dict[str, dict[str, int]] = defaultdict(lambda: {"total": 0, "flagged": 0, "normal": 0})
    for item in _summary_items(reports, app_settings.unit_system):
        grouped[item.category]["total"] += 1
        if item.abnormal in {"high", "low"}:
            grouped[item.category]["flagged"] += 1
        else:
            grouped[item.category]["normal"] += 1

    data = [
        BiomarkerCategoryCount(category=category, **counts)
        for category, counts in sorted(grouped.items(), key=lambda kv: kv[0])
    ]
    return {"statusCode": 200, "message": "Success", "data": data}


@router.get("/{marker}/history")
def history(
    marker: str,
    reports: list[LabReport] = Depends(get_analysis_reports),
    app_settings: AppSettings = Depends(get_app_settings),
):
    series = build_marker_series(reports, marker, app_settings.unit_system)
    if not series and marker not in collect_marker_names(reports):
        raise HTTPException(status_code=404, detail=f"No measurements for marker {marker!r}")
    return {
        "statusCode": 200,
        "message": "Success",
        "data": {
            "marker": marker,
            "category": marker_category(marker),
            "points": series,
            "trend": classify_marker_trend(series, marker),
        },
    }


@router.post("/merge-suggestions")
def merge_suggestions(payload: MergeSuggestionRequest, db: Session = Depends(get_db)):
    existing = payload.existing if payload.existing is not None else known_canonical_markers(db)
    return {
        "statusCode": 200,
        "message": "Success",
        "data": detect_marker_merge_suggestions(payload.incoming, existing),
    }
