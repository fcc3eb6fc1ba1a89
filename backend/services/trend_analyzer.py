from collections.abc import Iterable, Sequence

from backend.config import settings
from backend.schemas.analytics import DosePhaseBlock, MarkerSeriesPoint, MarkerTrendSummary, PointContext
from backend.schemas.lab_report import LabReport, MarkerValue
from backend.services.statistics import is_finite_number, linear_fit, mean, population_std, residuals
from backend.services.unit_conversion import UnitSystem, convert_by_system, convert_optional

VOLATILE_MIN_POINTS = 4


def to_float(value) -> float | None:
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    cleaned = "".join(ch for ch in str(value).replace(",", ".") if ch.isdigit() or ch in {".", "-"})
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def compute_delta(prev: float | None, curr: float | None) -> float | None:
    if prev is None or curr is None or abs(prev) <= 1e-6:
        return None
    return ((curr - prev) / abs(prev)) * 100.0


def point_key(report: LabReport) -> str:
    return f"{report.test_date.isoformat()}__{report.id}"


def sort_reports_chronological(reports: Iterable[LabReport]) -> list[LabReport]:
    return sorted(reports, key=lambda r: (r.test_date, r.created_at))


def filter_reports_by_sampling(reports: Sequence[LabReport], sampling_filter: str) -> list[LabReport]:
    if sampling_filter == "all":
        return list(reports)
    return [r for r in reports if r.annotations.sampling_timing == sampling_filter]


def select_marker(markers: Iterable[MarkerValue], canonical_marker: str) -> MarkerValue | None:
    # Measured rows win over calculated ones, then higher confidence; sorted() is
    # stable so equal rows keep report order (first encountered wins).
    candidates = [
        m for m in markers
        if m.canonical_marker == canonical_marker and is_finite_number(m.value)
    ]
    if not candidates:
        return None
    return sorted(candidates, key=lambda m: (m.is_calculated, -m.confidence))[0]


def find_marker_in_report(report: LabReport, canonical_marker: str) -> MarkerValue | None:
    return select_marker(report.markers, canonical_marker)


def _context(report: LabReport) -> PointContext:
    annotations = report.annotations
    return PointContext(
        dosage_mg_per_week=annotations.dosage_mg_per_week,
        protocol=annotations.protocol,
        supplements=annotations.supplements,
        symptoms=annotations.symptoms,
        notes=annotations.notes,
        sampling_timing=annotations.sampling_timing,
    )


def _round3(value: float | None) -> float | None:
    return None if value is None else round(value, 3)


def build_marker_series(
    reports: Sequence[LabReport],
    marker: str,
    unit_system: UnitSystem,
) -> list[MarkerSeriesPoint]:
    series: list[MarkerSeriesPoint] = []
    for report in sort_reports_chronological(reports):
        value = find_marker_in_report(report, marker)
        if value is None:
            continue
        converted = convert_by_system(value.canonical_marker, value.value, value.unit, unit_system)
        if not is_finite_number(converted.value):
            continue
        series.append(
            MarkerSeriesPoint(
                key=point_key(report),
                date=report.test_date,
                report_id=report.id,
                created_at=report.created_at,
                value=round(converted.value, 3),
                unit=converted.unit,
                reference_min=_round3(convert_optional(value.canonical_marker, value.reference_min, value.unit, unit_system)),
                reference_max=_round3(convert_optional(value.canonical_marker, value.reference_max, value.unit, unit_system)),
                abnormal=value.abnormal,
                is_calculated=value.is_calculated,
                context=_context(report),
            )
        )
    return series


def classify_marker_trend(
    series: Sequence[MarkerSeriesPoint],
    marker: str,
    window: int | None = None,
    min_points: int | None = None,
    slope_threshold: float | None = None,
    volatility_threshold: float | None = None,
) -> MarkerTrendSummary:
    """Label the recent direction of a marker series.

    Fits OLS over (index, value) for the last ``window`` points. Slope and
    residual spread are expressed relative to the window mean so markers of
    different magnitude share the same thresholds.
    """
    window = window or settings.trend_window
    min_points = min_points or settings.trend_min_points
    slope_threshold = settings.trend_slope_threshold if slope_threshold is None else slope_threshold
    volatility_threshold = settings.trend_volatility_threshold if volatility_threshold is None else volatility_threshold

    values = [p.value for p in series if is_finite_number(p.value)][-window:]
    if len(values) < min_points:
        return MarkerTrendSummary(
            marker=marker,
            direction="insufficient",
            mean=mean(values),
            std_dev=population_std(values),
            n_points=len(values),
            explanation=f"Only {len(values)} data point(s) for {marker}; at least {min_points} are needed to classify a trend.",
        )

    xs = list(range(len(values)))
    fit = linear_fit(xs, values)
    avg = mean(values)
    std_dev = population_std(values)
    scale = abs(avg) if abs(avg) > 1e-9 else (max(abs(v) for v in values) or 1.0)
    relative_slope = fit.slope / scale
    residual_cv = population_std(residuals(xs, values, fit.slope, fit.intercept)) / scale

    if relative_slope > slope_threshold:
        direction = "rising"
        explanation = f"{marker} rose by about {relative_slope * 100:.1f}% of its mean per measurement over the last {len(values)} results."
    elif relative_slope < -slope_threshold:
        direction = "falling"
        explanation = f"{marker} fell by about {abs(relative_slope) * 100:.1f}% of its mean per measurement over the last {len(values)} results."
    elif len(values) >= VOLATILE_MIN_POINTS and residual_cv > volatility_threshold:
        direction = "volatile"
        explanation = f"{marker} has no clear direction but varies by about {residual_cv * 100:.1f}% around its trend line."
    else:
        direction = "stable"
        explanation = f"{marker} stayed within a narrow band over the last {len(values)} results."

    return MarkerTrendSummary(
        marker=marker,
        direction=direction,
        slope=round(fit.slope, 4),
        std_dev=round(std_dev, 4),
        mean=round(avg, 4),
        n_points=len(values),
        explanation=explanation,
    )


def build_trend_summaries(
    reports: Sequence[LabReport],
    markers: Iterable[str],
    unit_system: UnitSystem,
) -> list[MarkerTrendSummary]:
    return [
        classify_marker_trend(build_marker_series(reports, marker, unit_system), marker)
        for marker in markers
    ]


def build_dose_phase_blocks(reports: Sequence[LabReport]) -> list[DosePhaseBlock]:
    ordered = sort_reports_chronological(reports)
    return [
        DosePhaseBlock(
            id=f"{current.id}-{following.id}",
            from_key=point_key(current),
            to_key=point_key(following),
            dosage_mg_per_week=current.annotations.dosage_mg_per_week,
            protocol=current.annotations.protocol,
        )
        for current, following in zip(ordered, ordered[1:])
    ]
