from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from backend.routers.deps import get_analysis_reports, get_app_settings
from backend.schemas.lab_report import LabReport
from backend.schemas.settings import AppSettings
from backend.services.ai_analysis import AnalysisError, build_analysis_payload, request_ai_analysis

router = APIRouter(prefix="/api/analysis", tags=["analysis"])


class AnalysisRequest(BaseModel):
    analysis_type: Literal["full", "latest_comparison"] = "full"
    context: str | None = None


@router.post("")
def run_analysis(
    payload: AnalysisRequest,
    reports: list[LabReport] = Depends(get_analysis_reports),
    app_settings: AppSettings = Depends(get_app_settings),
):
    if not reports:
        raise HTTPException(status_code=400, detail="No reports available for analysis")

    body = build_analysis_payload(reports, app_settings, payload.analysis_type, payload.context)
    try:
        text = request_ai_analysis(body)
    except AnalysisError as exc:
        status_code = 503 if exc.code == "AI_ANALYSIS_DISABLED" else 502
        raise HTTPException(status_code=status_code, detail=exc.code) from exc
    return {
        "statusCode": 200,
        "message": "Success",
        "data": {"analysis_type": payload.analysis_type, "text": text},
    }
