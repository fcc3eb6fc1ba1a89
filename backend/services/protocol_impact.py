from collections.abc import Sequence

from backend.config import settings
from backend.schemas.analytics import ProtocolImpactDoseEvent, ProtocolImpactMarkerRow
from backend.schemas.lab_report import LabReport
from backend.services.statistics import clamp, is_finite_number, mean
from backend.services.trend_analyzer import compute_delta, find_marker_in_report, sort_reports_chronological
from backend.services.unit_conversion import UnitSystem, convert_by_system

MIN_WINDOW = 1
MAX_WINDOW = 4
TOP_IMPACTS = 3


def clamp_window_size(window_size: int | None) -> int:
    if window_size is None:
        window_size = settings.protocol_window_size
    return int(clamp(window_size, MIN_WINDOW, MAX_WINDOW))


def _same_dose_run(ordered: list[LabReport], start: int, step: int, dose: float | None, limit: int) -> list[LabReport]:
    run = []
    index = start
    while 0 <= index < len(ordered) and len(run) < limit:
        if ordered[index].annotations.dosage_mg_per_week != dose:
            break
        run.append(ordered[index])
        index += step
    return run if step > 0 else list(reversed(run))


def _window_values(window: list[LabReport], marker: str, unit_system: UnitSystem) -> tuple[list[float], str | None]:
    values, unit = [], None
    for report in window:
        marker_value = find_marker_in_report(report, marker)
        if marker_value is None:
            continue
        converted = convert_by_system(marker_value.canonical_marker, marker_value.value, marker_value.unit, unit_system)
        if not is_finite_number(converted.value):
            continue
        values.append(converted.value)
        unit = unit or converted.unit
    return values, unit


def _trend(delta_abs: float | None, delta_pct: float | None, flat_threshold_pct: float) -> str:
    if delta_abs is None:
        return "insufficient"
    if delta_pct is not None:
        if abs(delta_pct) <= flat_threshold_pct:
            return "flat"
        return "up" if delta_pct > 0 else "down"
    if abs(delta_abs) <= 1e-9:
        return "flat"
    return "up" if delta_abs > 0 else "down"


def _confidence(before: list[float], after: list[float], before_avg: float | None, delta_abs: float | None):
    counts = f"{len(before)}/{len(after)} points"
    if not before or not after:
        side = "before" if not before else "after"
        return "low", f"Insufficient data: no {side} measurements ({counts})"
    if len(before) < 2 or len(after) < 2:
        return "low", f"{counts}; too few for a reliable comparison"
    if delta_abs is None or abs(delta_abs) <= 1e-9:
        return "medium", f"{counts}; no net change"
    direction = 1 if delta_abs > 0 else -1
    consistent = all((value - before_avg) * direction > 0 for value in after)
    if consistent:
        return "high", f"{counts}; consistent direction"
    return "medium", f"{counts}; mixed direction"


def _round(value: float | None, digits: int = 3) -> float | None:
    return None if value is None else round(value, digits)


def _marker_rows(
    before: list[LabReport],
    after: list[LabReport],
    unit_system: UnitSystem,
    flat_threshold_pct: float,
) -> list[ProtocolImpactMarkerRow]:
    markers: list[str] = []
    for report in before + after:
        for marker in report.markers:
            if not marker.is_calculated and marker.canonical_marker not in markers:
                markers.append(marker.canonical_marker)

    rows = []
    for marker in markers:
        before_values, before_unit = _window_values(before, marker, unit_system)
        after_values, after_unit = _window_values(after, marker, unit_system)
        if not before_values and not after_values:
            continue
        before_avg = mean(before_values)
        after_avg = mean(after_values)
        delta_abs = after_avg - before_avg if before_avg is not None and after_avg is not None else None
        delta_pct = compute_delta(before_avg, after_avg)
        confidence, reason = _confidence(before_values, after_values, before_avg, delta_abs)
        rows.append(
            ProtocolImpactMarkerRow(
                marker=marker,
                unit=before_unit or after_unit or "",
                before_avg=_round(before_avg),
                after_avg=_round(after_avg),
                delta_abs=_round(delta_abs),
                delta_pct=_round(delta_pct, 1),
                before_count=len(before_values),
                after_count=len(after_values),
                trend=_trend(delta_abs, delta_pct, flat_threshold_pct),
                confidence=confidence,
                confidence_reason=reason,
            )
        )

    rows.sort(key=lambda row: (row.delta_pct is None, -abs(row.delta_pct or 0.0)))
    return rows


def build_protocol_impact_dose_events(
    reports: Sequence[LabReport],
    unit_system: UnitSystem,
    window_size: int | None = None,
    flat_threshold_pct: float | None = None,
) -> list[ProtocolImpactDoseEvent]:
    """Before/after marker comparison around every dose change.

    Windows hold up to ``window_size`` reports at the old and new dose and stop
    at the next dose change in either direction.
    """
    window = clamp_window_size(window_size)
    flat_threshold_pct = settings.protocol_flat_threshold_pct if flat_threshold_pct is None else flat_threshold_pct
    ordered = sort_reports_chronological(reports)

    events = []
    for index in range(1, len(ordered)):
        previous, current = ordered[index - 1], ordered[index]
        from_dose = previous.annotations.dosage_mg_per_week
        to_dose = current.annotations.dosage_mg_per_week
        if from_dose == to_dose:
            continue

        before = _same_dose_run(ordered, index - 1, -1, from_dose, window)
        after = _same_dose_run(ordered, index, 1, to_dose, window)
        rows = _marker_rows(before, after, unit_system, flat_threshold_pct)
        events.append(
            ProtocolImpactDoseEvent(
                id=f"{previous.id}-{current.id}",
                from_dose=from_dose,
                to_dose=to_dose,
                change_date=current.test_date,
                before_report_ids=[r.id for r in before],
                after_report_ids=[r.id for r in after],
                before_count=len(before),
                after_count=len(after),
                rows=rows,
                top_impacts=[row for row in rows if row.delta_pct is not None][:TOP_IMPACTS],
            )
        )
    return events
