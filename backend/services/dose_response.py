import logging
from collections import Counter
from collections.abc import Iterable, Sequence
from typing import NamedTuple

from backend.config import settings
from backend.schemas.analytics import (
    DoseCorrelationInsight,
    DosePrediction,
    DosePrior,
    DoseScenario,
    ExcludedDosePoint,
)
from backend.schemas.lab_report import LabReport
from backend.seed.dose_priors import list_dose_priors, lookup_dose_prior
from backend.services.statistics import (
    MAD_SCALE,
    is_finite_number,
    linear_fit,
    mean,
    median,
    median_absolute_deviation,
    pearson,
    population_std,
    residuals,
    theil_sen_fit,
)
from backend.services.trend_analyzer import find_marker_in_report, sort_reports_chronological
from backend.services.unit_conversion import UnitSystem, convert_by_system

logger = logging.getLogger(__name__)

POSITIVE_DOSE_MARKERS = frozenset({"Testosterone", "Free Testosterone", "Free Androgen Index"})
SCENARIO_DOSES = (80.0, 100.0, 120.0, 140.0, 160.0, 180.0)
MIN_SUGGESTED_DOSE = 40.0
SUGGESTED_DOSE_STEP = 20.0
OUTLIER_MAD_MULTIPLIER = 3.0
UNCLEAR_MIN_ABS_R = 0.2
UNCLEAR_MIN_RELATIVE_EFFECT = 0.03
NO_DOSE_VARIANCE_REASON = "All usable samples were taken at the same dose; there is no dose variance to fit."

STATUS_ORDER = {"clear": 0, "unclear": 1, "insufficient": 2}
CONFIDENCE_ORDER = {"high": 0, "medium": 1, "low": 2}


class DoseSample(NamedTuple):
    report: LabReport
    dose: float
    value: float
    unit: str


def _excluded(sample: DoseSample, reason: str) -> ExcludedDosePoint:
    return ExcludedDosePoint(
        report_id=sample.report.id,
        date=sample.report.test_date,
        dose_mg_per_week=sample.dose,
        value=round(sample.value, 3),
        unit=sample.unit,
        reason=reason,
    )


def collect_dose_samples(
    reports: Sequence[LabReport],
    marker: str,
    unit_system: UnitSystem,
) -> tuple[list[DoseSample], list[ExcludedDosePoint]]:
    samples: list[DoseSample] = []
    excluded: list[ExcludedDosePoint] = []
    for report in sort_reports_chronological(reports):
        marker_value = find_marker_in_report(report, marker)
        if marker_value is None:
            continue
        converted = convert_by_system(marker_value.canonical_marker, marker_value.value, marker_value.unit, unit_system)
        dose = report.annotations.dosage_mg_per_week
        reason = None
        if dose is None:
            reason = "No dose recorded for this report"
        elif not is_finite_number(dose):
            reason = "Recorded dose is not a finite number"
        elif not is_finite_number(converted.value):
            reason = "Marker value is not a finite number"
        if reason:
            excluded.append(
                ExcludedDosePoint(
                    report_id=report.id,
                    date=report.test_date,
                    dose_mg_per_week=dose if is_finite_number(dose) else None,
                    value=round(converted.value, 3) if is_finite_number(converted.value) else None,
                    unit=converted.unit,
                    reason=reason,
                )
            )
            continue
        samples.append(DoseSample(report, float(dose), float(converted.value), converted.unit))
    return samples, excluded


def _select_dominant_unit(samples: list[DoseSample]) -> tuple[list[DoseSample], list[ExcludedDosePoint]]:
    if not samples:
        return samples, []
    counts = Counter(s.unit for s in samples)
    top = max(counts.values())
    tied = {unit for unit, count in counts.items() if count == top}
    # On a tie the unit of the most recent sample wins.
    preferred = next(s.unit for s in reversed(samples) if s.unit in tied)
    kept = [s for s in samples if s.unit == preferred]
    excluded = [
        _excluded(s, f"Unit {s.unit or 'unknown'} differs from the dominant unit {preferred}")
        for s in samples if s.unit != preferred
    ]
    return kept, excluded


def _apply_sampling_policy(samples: list[DoseSample]):
    trough = [s for s in samples if s.report.annotations.sampling_timing == "trough"]
    if not trough:
        warning = None
        if samples:
            warning = "No trough-timed samples recorded; all samples were used regardless of sampling timing."
        return samples, [], "all", warning
    excluded = [
        _excluded(s, f"Sampling timing '{s.report.annotations.sampling_timing}' excluded; only trough samples are used")
        for s in samples if s.report.annotations.sampling_timing != "trough"
    ]
    return trough, excluded, "trough", None


def _filter_outliers(samples: list[DoseSample]) -> tuple[list[DoseSample], list[ExcludedDosePoint]]:
    if len(samples) < 4:
        return samples, []
    values = [s.value for s in samples]
    center = median(values)
    mad = median_absolute_deviation(values)
    if not mad or mad <= 1e-9:
        return samples, []
    limit = OUTLIER_MAD_MULTIPLIER * MAD_SCALE * mad
    kept = [s for s in samples if abs(s.value - center) <= limit]
    if len(kept) == len(samples) or len(kept) < 3 or len({s.dose for s in kept}) < 2:
        return samples, []
    excluded = [
        _excluded(s, "Outlier: more than 3 robust deviations from the median value")
        for s in samples if abs(s.value - center) > limit
    ]
    return kept, excluded


def _r_squared(xs: list[float], ys: list[float], slope: float, intercept: float) -> float:
    avg = mean(ys)
    ss_tot = sum((y - avg) ** 2 for y in ys)
    if ss_tot <= 1e-12:
        return 0.0
    ss_res = sum(r ** 2 for r in residuals(xs, ys, slope, intercept))
    return max(0.0, 1.0 - ss_res / ss_tot)


def _confidence(n: int, r_squared: float, residual_cv: float) -> str:
    if n >= 6 and r_squared >= 0.5 and residual_cv <= 0.15:
        return "high"
    if n >= 4 and r_squared >= 0.25:
        return "medium"
    return "low"


def _predict(intercept: float, slope: float, dose: float) -> float:
    return round(max(0.0, intercept + slope * dose), 3)


def _attach_prior(marker: str, unit_system: UnitSystem, samples: list[DoseSample]) -> DosePrior | None:
    raw = lookup_dose_prior(marker, unit_system)
    if raw is None:
        return None
    prior = DosePrior(**raw)
    anchor = next((s for s in reversed(samples) if s.unit == prior.unit), None)
    if anchor is not None:
        prior.anchor_dose = anchor.dose
        prior.anchor_value = round(anchor.value, 3)
        prior.intercept = round(anchor.value - prior.slope_per_mg * anchor.dose, 4)
    return prior


def _insufficient(
    marker: str,
    unit_system: UnitSystem,
    reason: str,
    samples: list[DoseSample],
    all_samples: list[DoseSample],
    excluded: list[ExcludedDosePoint],
    sampling_mode: str,
    sampling_warning: str | None,
) -> DosePrediction:
    prior = _attach_prior(marker, unit_system, all_samples)
    return DosePrediction(
        marker=marker,
        unit=samples[-1].unit if samples else (all_samples[-1].unit if all_samples else None),
        unit_system=unit_system,
        status="insufficient",
        reason=reason,
        estimate_source="literature_prior" if prior else "none",
        sample_count=len(samples),
        current_dose=samples[-1].dose if samples else None,
        excluded_points=excluded,
        used_report_dates=[s.report.test_date for s in samples],
        sampling_mode=sampling_mode,
        sampling_warning=sampling_warning,
        prior=prior,
    )


def estimate_marker_dose_response(
    reports: Sequence[LabReport],
    marker: str,
    unit_system: UnitSystem,
    min_samples: int | None = None,
    min_spread: float | None = None,
) -> DosePrediction:
    min_samples = min_samples or settings.dose_min_samples
    min_spread = settings.dose_min_spread_mg if min_spread is None else min_spread

    collected, excluded = collect_dose_samples(reports, marker, unit_system)
    samples, unit_excluded = _select_dominant_unit(collected)
    samples, timing_excluded, sampling_mode, sampling_warning = _apply_sampling_policy(samples)
    samples, outlier_excluded = _filter_outliers(samples)
    excluded = excluded + unit_excluded + timing_excluded + outlier_excluded
    if excluded:
        logger.debug("Dose response for %s excluded %d point(s)", marker, len(excluded))

    n = len(samples)
    doses = [s.dose for s in samples]
    values = [s.value for s in samples]

    if n < min_samples:
        reason = f"Only {n} usable sample(s) with both a dose and a value; at least {min_samples} are needed."
        return _insufficient(marker, unit_system, reason, samples, collected, excluded, sampling_mode, sampling_warning)

    spread = max(doses) - min(doses)
    if spread < min_spread:
        if spread == 0:
            reason = NO_DOSE_VARIANCE_REASON
        else:
            reason = f"Doses span only {spread:g} mg/week; at least {min_spread:g} mg/week is needed."
        return _insufficient(marker, unit_system, reason, samples, collected, excluded, sampling_mode, sampling_warning)

    fit = linear_fit(doses, values)
    if fit is None:
        return _insufficient(
            marker, unit_system, NO_DOSE_VARIANCE_REASON, samples, collected, excluded, sampling_mode, sampling_warning
        )
    slope, intercept, model_type = fit.slope, fit.intercept, "linear"
    robust = theil_sen_fit(doses, values)
    if robust is not None and robust[0] * slope < 0:
        slope, intercept = robust
        model_type = "theil-sen"

    r_squared = fit.r_squared if model_type == "linear" else _r_squared(doses, values, slope, intercept)
    r = pearson(doses, values) or 0.0
    avg = mean(values)
    residual_spread = population_std(residuals(doses, values, slope, intercept))
    residual_cv = residual_spread / abs(avg) if abs(avg) > 1e-9 else float("inf")
    confidence = _confidence(n, r_squared, residual_cv)

    relative_effect = abs(slope) * spread / abs(avg) if abs(avg) > 1e-9 else 0.0
    if marker in POSITIVE_DOSE_MARKERS and slope < 0:
        status, reason = "unclear", f"{marker} is expected to rise with dose but the fitted slope is negative."
    elif abs(r) < UNCLEAR_MIN_ABS_R:
        status, reason = "unclear", "Dose explains little of the variation in this marker (|r| < 0.2)."
    elif relative_effect < UNCLEAR_MIN_RELATIVE_EFFECT:
        status, reason = "unclear", "Predicted change across the observed dose range is below 3%."
    else:
        status = "clear"
        reason = f"{'Linear' if model_type == 'linear' else 'Robust (Theil-Sen)'} fit on {n} samples, R² {r_squared:.2f}."

    current_dose = samples[-1].dose
    prediction = DosePrediction(
        marker=marker,
        unit=samples[-1].unit,
        unit_system=unit_system,
        status=status,
        reason=reason,
        estimate_source="user_fit",
        model_type=model_type,
        sample_count=n,
        slope=round(slope, 6),
        intercept=round(intercept, 4),
        r_squared=round(r_squared, 4),
        correlation_r=round(r, 4),
        confidence=confidence,
        current_dose=current_dose,
        excluded_points=excluded,
        used_report_dates=[s.report.test_date for s in samples],
        sampling_mode=sampling_mode,
        sampling_warning=sampling_warning,
    )
    if status != "clear":
        return prediction

    low, high = min(doses), max(doses)
    suggested = min(max(current_dose - SUGGESTED_DOSE_STEP, max(MIN_SUGGESTED_DOSE, low - SUGGESTED_DOSE_STEP)), high + SUGGESTED_DOSE_STEP)
    prediction.current_estimate = _predict(intercept, slope, current_dose)
    prediction.suggested_dose = suggested
    prediction.suggested_estimate = _predict(intercept, slope, suggested)
    prediction.scenarios = [
        DoseScenario(dose_mg_per_week=dose, predicted_value=_predict(intercept, slope, dose))
        for dose in SCENARIO_DOSES
        if low <= dose <= high
    ]
    return prediction


def estimate_dose_response(
    reports: Sequence[LabReport],
    markers: Iterable[str],
    unit_system: UnitSystem,
) -> list[DosePrediction]:
    predictions = [estimate_marker_dose_response(reports, marker, unit_system) for marker in markers]
    return sorted(
        predictions,
        key=lambda p: (STATUS_ORDER[p.status], CONFIDENCE_ORDER[p.confidence], -abs(p.correlation_r or 0.0)),
    )


def build_dose_correlation_insights(
    reports: Sequence[LabReport],
    markers: Iterable[str],
    unit_system: UnitSystem,
    limit: int = 6,
) -> list[DoseCorrelationInsight]:
    insights = []
    for marker in markers:
        samples, _ = collect_dose_samples(reports, marker, unit_system)
        r = pearson([s.dose for s in samples], [s.value for s in samples])
        if r is None:
            continue
        insights.append(DoseCorrelationInsight(marker=marker, r=round(r, 3), n=len(samples)))
    insights.sort(key=lambda item: abs(item.r), reverse=True)
    return insights[:limit]


def get_dose_priors(unit_system: UnitSystem, markers: Iterable[str] | None = None) -> list[DosePrior]:
    return [DosePrior(**prior) for prior in list_dose_priors(unit_system, markers)]
