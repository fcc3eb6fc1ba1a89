import logging
import math
from collections.abc import Sequence

from backend.schemas.lab_report import LabReport, MarkerValue
from backend.services.statistics import is_finite_number
from backend.services.trend_analyzer import select_marker
from backend.services.unit_conversion import convert_by_system, normalize_unit_token

logger = logging.getLogger(__name__)

# Mass-action constants for calculated free testosterone (Vermeulen et al., JCEM 1999).
K_ALB = 3.6e4
K_SHBG = 1e9
ALBUMIN_MOLAR_MASS = 66500.0

HOMA_IR_DIVISOR = 22.5
GLUCOSE_MGDL_TO_MMOL = 0.0555
INSULIN_PMOL_PER_MICROUNIT = 6.0


def _eu_value(markers: Sequence[MarkerValue], canonical_marker: str, expected_unit: str | None = None):
    marker = select_marker(markers, canonical_marker)
    if marker is None:
        return None
    converted = convert_by_system(canonical_marker, marker.value, marker.unit, "eu")
    if not is_finite_number(converted.value):
        return None
    if expected_unit and converted.unit != expected_unit:
        return None
    return converted


def _glucose_mmol(value: float, unit: str) -> float | None:
    token = normalize_unit_token(unit)
    if token in {"", "mmol/l", "mmoll"}:
        return value
    if token in {"mg/dl", "mgdl"}:
        return value * GLUCOSE_MGDL_TO_MMOL
    return None


def _insulin_micro_units(value: float, unit: str) -> float | None:
    token = normalize_unit_token(unit).replace("µ", "u").replace("μ", "u")
    if token in {"", "mu/l", "mul", "miu/l", "uu/ml", "uiu/ml", "mu/ml"}:
        return value
    if token in {"pmol/l", "pmoll"}:
        return value / INSULIN_PMOL_PER_MICROUNIT
    return None


def _albumin_g_per_l(value: float, unit: str) -> float | None:
    token = normalize_unit_token(unit)
    if token in {"g/l", "gl"}:
        return value
    if token in {"g/dl", "gdl"}:
        return value * 10
    return None


def calculate_free_testosterone(total_t_nmol: float, shbg_nmol: float, albumin_g_l: float) -> float | None:
    """Solve the testosterone binding equilibrium for free T in nmol/L."""
    inputs = (total_t_nmol, shbg_nmol, albumin_g_l)
    if not all(is_finite_number(v) and v > 0 for v in inputs):
        return None

    total_t = total_t_nmol * 1e-9
    shbg = shbg_nmol * 1e-9
    albumin = albumin_g_l / ALBUMIN_MOLAR_MASS

    non_specific = 1 + K_ALB * albumin
    a = K_SHBG * non_specific
    b = non_specific + K_SHBG * shbg - K_SHBG * total_t
    c = -total_t
    discriminant = b * b - 4 * a * c
    if discriminant < 0:
        return None

    roots = [(-b + math.sqrt(discriminant)) / (2 * a), (-b - math.sqrt(discriminant)) / (2 * a)]
    candidates = sorted(r for r in roots if math.isfinite(r) and r >= 0)
    if not candidates:
        return None
    return candidates[0] * 1e9


def _calculated(name: str, value: float, unit: str) -> MarkerValue:
    return MarkerValue(
        marker=name,
        canonical_marker=name,
        value=round(value, 3),
        unit=unit,
        confidence=1.0,
        is_calculated=True,
    )


def _calculated_free_testosterone(report: LabReport, measured: Sequence[MarkerValue]) -> MarkerValue | None:
    testosterone = _eu_value(measured, "Testosterone", "nmol/L")
    shbg = _eu_value(measured, "SHBG", "nmol/L")
    albumin_marker = select_marker(measured, "Albumine")
    if testosterone is None or shbg is None or albumin_marker is None:
        logger.debug("Calculated free T skipped for %s: missing total T, SHBG or albumin", report.test_date)
        return None

    albumin = _albumin_g_per_l(albumin_marker.value, albumin_marker.unit)
    if albumin is None:
        logger.debug("Calculated free T skipped for %s: unsupported albumin unit %r", report.test_date, albumin_marker.unit)
        return None

    free_t = calculate_free_testosterone(testosterone.value, shbg.value, albumin)
    if free_t is None:
        logger.debug("Calculated free T skipped for %s: solver found no root", report.test_date)
        return None
    return _calculated("Free Testosterone", free_t, "nmol/L")


def derive_calculated_markers(report: LabReport, enable_calculated_free_testosterone: bool = False) -> list[MarkerValue]:
    measured = [m for m in report.markers if not m.is_calculated]
    measured_names = {m.canonical_marker for m in measured}
    derived: list[MarkerValue] = []

    def add(marker: MarkerValue | None) -> None:
        if marker is None or marker.canonical_marker in measured_names:
            return
        if any(item.canonical_marker == marker.canonical_marker for item in derived):
            return
        derived.append(marker)

    testosterone = _eu_value(measured, "Testosterone")
    estradiol = _eu_value(measured, "Estradiol")
    if testosterone and estradiol and estradiol.value > 1e-6:
        add(_calculated("T/E2 Ratio", testosterone.value * 1000 / estradiol.value, "ratio"))

    ldl = _eu_value(measured, "LDL Cholesterol")
    hdl = _eu_value(measured, "HDL Cholesterol")
    if ldl and hdl and hdl.value > 1e-6:
        add(_calculated("LDL/HDL Ratio", ldl.value / hdl.value, "ratio"))

    total_cholesterol = _eu_value(measured, "Cholesterol")
    if total_cholesterol and hdl and total_cholesterol.unit == hdl.unit:
        add(_calculated("Non-HDL Cholesterol", total_cholesterol.value - hdl.value, total_cholesterol.unit))

    glucose = select_marker(measured, "Glucose Nuchter")
    insulin = select_marker(measured, "Insuline")
    if glucose and insulin:
        glucose_mmol = _glucose_mmol(glucose.value, glucose.unit)
        insulin_units = _insulin_micro_units(insulin.value, insulin.unit)
        if glucose_mmol is not None and insulin_units is not None:
            add(_calculated("HOMA-IR", glucose_mmol * insulin_units / HOMA_IR_DIVISOR, "index"))

    shbg = _eu_value(measured, "SHBG")
    if testosterone and shbg and shbg.value > 1e-6:
        add(_calculated("Free Androgen Index", 100 * testosterone.value / shbg.value, "index"))

    if enable_calculated_free_testosterone:
        add(_calculated_free_testosterone(report, measured))

    return derived


def enrich_report_with_calculated_markers(report: LabReport, enable_calculated_free_testosterone: bool = False) -> LabReport:
    measured = [m for m in report.markers if not m.is_calculated]
    stripped = report.model_copy(update={"markers": measured})
    derived = derive_calculated_markers(stripped, enable_calculated_free_testosterone)
    return report.model_copy(update={"markers": measured + derived})


def enrich_reports_with_calculated_markers(
    reports: Sequence[LabReport],
    enable_calculated_free_testosterone: bool = False,
) -> list[LabReport]:
    return [enrich_report_with_calculated_markers(r, enable_calculated_free_testosterone) for r in reports]
