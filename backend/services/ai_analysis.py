import logging
from collections.abc import Sequence
from typing import Literal

import requests

from backend.config import settings
from backend.schemas.lab_report import LabReport
from backend.schemas.settings import AppSettings
from backend.seed.marker_catalog import PRIMARY_MARKERS
from backend.services.dose_response import estimate_dose_response
from backend.services.protocol_impact import build_protocol_impact_dose_events
from backend.services.report_store import collect_marker_names
from backend.services.stability import compute_trt_stability_index
from backend.services.trend_analyzer import build_trend_summaries
from backend.services.unit_conversion import convert_by_system, convert_optional

logger = logging.getLogger(__name__)

AnalysisType = Literal["full", "latest_comparison"]


class AnalysisError(Exception):
    """Failure talking to the AI analysis proxy. ``code`` is a stable message key."""

    def __init__(self, code: str, detail: str | None = None):
        super().__init__(detail or code)
        self.code = code
        self.detail = detail


def _report_payload(report: LabReport, app_settings: AppSettings) -> dict:
    # Free-text notes stay local; only structured context is shared.
    markers = []
    for marker in report.markers:
        converted = convert_by_system(marker.canonical_marker, marker.value, marker.unit, app_settings.unit_system)
        markers.append(
            {
                "marker": marker.canonical_marker,
                "value": round(converted.value, 3),
                "unit": converted.unit,
                "reference_min": convert_optional(
                    marker.canonical_marker, marker.reference_min, marker.unit, app_settings.unit_system
                ),
                "reference_max": convert_optional(
                    marker.canonical_marker, marker.reference_max, marker.unit, app_settings.unit_system
                ),
                "abnormal": marker.abnormal,
                "is_calculated": marker.is_calculated,
            }
        )
    return {
        "date": report.test_date.isoformat(),
        "dosage_mg_per_week": report.annotations.dosage_mg_per_week,
        "protocol": report.annotations.protocol,
        "supplements": report.annotations.supplements,
        "symptoms": report.annotations.symptoms,
        "sampling_timing": report.annotations.sampling_timing,
        "is_baseline": report.is_baseline,
        "markers": markers,
    }


def build_analysis_payload(
    reports: Sequence[LabReport],
    app_settings: AppSettings,
    analysis_type: AnalysisType = "full",
    context: str | None = None,
) -> dict:
    unit_system = app_settings.unit_system
    selected = list(reports[-2:]) if analysis_type == "latest_comparison" else list(reports)
    markers = collect_marker_names(reports)
    primary = [name for name in PRIMARY_MARKERS if name in markers]

    return {
        "analysis_type": analysis_type,
        "language": app_settings.language,
        "unit_system": unit_system,
        "context": context or "",
        "reports": [_report_payload(report, app_settings) for report in selected],
        "trend_summaries": [
            summary.model_dump(mode="json") for summary in build_trend_summaries(reports, markers, unit_system)
        ],
        "stability": compute_trt_stability_index(reports, unit_system).model_dump(mode="json"),
        "dose_predictions": [
            prediction.model_dump(mode="json", exclude={"excluded_points", "prior"})
            for prediction in estimate_dose_response(reports, primary, unit_system)
        ],
        "protocol_impact": [
            event.model_dump(mode="json", exclude={"rows"})
            for event in build_protocol_impact_dose_events(
                reports, unit_system, window_size=app_settings.protocol_window_size
            )
        ],
    }


def request_ai_analysis(payload: dict, url: str | None = None, timeout: float | None = None) -> str:
    target = url or settings.ai_analysis_url
    if not target:
        raise AnalysisError("AI_ANALYSIS_DISABLED")

    try:
        response = requests.post(target, json=payload, timeout=timeout or settings.external_timeout_seconds)
    except requests.RequestException as exc:
        logger.warning("AI analysis proxy unreachable at %s: %s", target, exc)
        raise AnalysisError("AI_PROXY_UNREACHABLE", str(exc)) from exc

    if not response.ok:
        logger.warning("AI analysis failed with status %s", response.status_code)
        raise AnalysisError(f"AI_REQUEST_FAILED:{response.status_code}")

    try:
        body = response.json()
    except ValueError as exc:
        raise AnalysisError("AI_INVALID_RESPONSE") from exc
    text = body.get("text") if isinstance(body, dict) else None
    if not isinstance(text, str):
        raise AnalysisError("AI_INVALID_RESPONSE")
    return text
