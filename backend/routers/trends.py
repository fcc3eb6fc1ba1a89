from fastapi import APIRouter, Depends

from backend.routers.deps import get_analysis_reports, get_app_settings
from backend.schemas.lab_report import LabReport
from backend.schemas.settings import AppSettings
from backend.seed.marker_catalog import marker_category
from backend.services.report_store import collect_marker_names
from backend.services.stability import build_trt_stability_series, compute_trt_stability_index
from backend.services.trend_analyzer import build_marker_series, classify_marker_trend, compute_delta

router = APIRouter(prefix="/api/trends", tags=["trends"])


@router.get("/overview")
def overview(
    reports: list[LabReport] = Depends(get_analysis_reports),
    app_settings: AppSettings = Depends(get_app_settings),
):
    output = []
    for name in collect_marker_names(reports):
        series = build_marker_series(reports, name, app_settings.unit_system)
        if not series:
            continue
        summary = classify_marker_trend(series, name)
        prev = series[-2].value if len(series) >= 2 else None
        curr = series[-1].value
        delta = compute_delta(prev, curr)
        output.append({
            **summary.model_dump(),
            "category": marker_category(name),
            "unit": series[-1].unit,
            "previous": prev,
            "current": curr,
            "delta_percent": round(delta, 2) if delta is not None else None,
            "latest_abnormal": series[-1].abnormal,
            "previous_report_date": series[-2].date.isoformat() if prev is not None else None,
            "latest_report_date": series[-1].date.isoformat(),
        })

    output.sort(key=lambda x: (x["delta_percent"] is None, -abs(x["delta_percent"] or 0.0)))
    return {"statusCode": 200, "message": "Success", "data": output}


@router.get("/stability")
def stability(
    reports: list[LabReport] = Depends(get_analysis_reports),
    app_settings: AppSettings = Depends(get_app_settings),
):
    return {
        "statusCode": 200,
        "message": "Success",
        "data": compute_trt_stability_index(reports, app_settings.unit_system),
    }


@router.get("/stability/series")
def stability_series(
    reports: list[LabReport] = Depends(get_analysis_reports),
    app_settings: AppSettings = Depends(get_app_settings),
):
    return {
        "statusCode": 200,
        "message": "Success",
        "data": build_trt_stability_series(reports, app_settings.unit_system),
    }
