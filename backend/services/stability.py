from collections.abc import Sequence

from backend.schemas.analytics import TrtStabilityPoint, TrtStabilityResult
from backend.schemas.lab_report import LabReport
from backend.seed.marker_catalog import CORE_STABILITY_MARKERS
from backend.services.statistics import clamp, coefficient_of_variation, mean
from backend.services.trend_analyzer import build_marker_series, point_key, sort_reports_chronological
from backend.services.unit_conversion import UnitSystem

CV_PENALTY = 220.0


def cv_to_score(cv: float) -> float:
    return clamp(100.0 - cv * CV_PENALTY, 0.0, 100.0)


def compute_trt_stability_index(reports: Sequence[LabReport], unit_system: UnitSystem) -> TrtStabilityResult:
    """Composite 0-100 consistency score over the core TRT markers.

    Markers with fewer than two points are left out of the average. When no
    core marker qualifies the score is ``None``, never 0.
    """
    components: dict[str, float] = {}
    variation: dict[str, float] = {}
    for marker in CORE_STABILITY_MARKERS:
        values = [p.value for p in build_marker_series(reports, marker, unit_system)]
        if len(values) < 2:
            continue
        cv = coefficient_of_variation(values)
        if cv is None:
            continue
        variation[marker] = round(cv, 4)
        components[marker] = round(cv_to_score(cv), 2)

    if not components:
        return TrtStabilityResult(score=None, components={}, variation={})
    return TrtStabilityResult(
        score=round(mean(list(components.values()))),
        components=components,
        variation=variation,
    )


def build_trt_stability_series(reports: Sequence[LabReport], unit_system: UnitSystem) -> list[TrtStabilityPoint]:
    ordered = sort_reports_chronological(reports)
    points = []
    for index, report in enumerate(ordered):
        result = compute_trt_stability_index(ordered[: index + 1], unit_system)
        if result.score is None:
            continue
        points.append(TrtStabilityPoint(key=point_key(report), date=report.test_date, report_id=report.id, score=result.score))
    return points
