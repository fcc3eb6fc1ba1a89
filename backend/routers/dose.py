from fastapi import APIRouter, Depends, Query

from backend.routers.deps import get_analysis_reports, get_app_settings
from backend.schemas.lab_report import LabReport
from backend.schemas.settings import AppSettings
from backend.seed.marker_catalog import PRIMARY_MARKERS
from backend.services.dose_response import (
    build_dose_correlation_insights,
    estimate_dose_response,
    get_dose_priors,
)
from backend.services.protocol_impact import build_protocol_impact_dose_events
from backend.services.report_store import collect_marker_names
from backend.services.trend_analyzer import build_dose_phase_blocks

router = APIRouter(prefix="/api/dose", tags=["dose"])


def _requested_markers(markers: list[str] | None, reports: list[LabReport]) -> list[str]:
    if markers:
        return list(dict.fromkeys(markers))
    present = set(collect_marker_names(reports))
    return [name for name in PRIMARY_MARKERS if name in present]


@router.get("/response")
def dose_response(
    markers: list[str] | None = Query(default=None),
    reports: list[LabReport] = Depends(get_analysis_reports),
    app_settings: AppSettings = Depends(get_app_settings),
):
    predictions = estimate_dose_response(reports, _requested_markers(markers, reports), app_settings.unit_system)
    return {"statusCode": 200, "message": "Success", "data": predictions}


@router.get("/correlations")
def correlations(
    limit: int = Query(default=6, ge=1, le=50),
    reports: list[LabReport] = Depends(get_analysis_reports),
    app_settings: AppSettings = Depends(get_app_settings),
):
    insights = build_dose_correlation_insights(
        reports,
        collect_marker_names(reports),
        app_settings.unit_system,
        limit=limit,
    )
    return {"statusCode": 200, "message": "Success", "data": insights}


@router.get("/priors")
def priors(
    markers: list[str] | None = Query(default=None),
    app_settings: AppSettings = Depends(get_app_settings),
):
    return {"statusCode": 200, "message": "Success", "data": get_dose_priors(app_settings.unit_system, markers)}


@router.get("/protocol-impact")
def protocol_impact(
    window_size: int | None = Query(default=None),
    reports: list[LabReport] = Depends(get_analysis_reports),
    app_settings: AppSettings = Depends(get_app_settings),
):
    # Out-of-range windows are clamped, not rejected.
    events = build_protocol_impact_dose_events(
        reports,
        app_settings.unit_system,
        window_size=window_size if window_size is not None else app_settings.protocol_window_size,
    )
    return {"statusCode": 200, "message": "Success", "data": events}


@router.get("/phases")
def phases(reports: list[LabReport] = Depends(get_analysis_reports)):
    return {"statusCode": 200, "message": "Success", "data": build_dose_phase_blocks(reports)}
