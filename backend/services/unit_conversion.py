import math
import re
from types import MappingProxyType
from typing import Literal, NamedTuple

from backend.seed.marker_catalog import MARKER_ALIASES

UnitSystem = Literal["eu", "us"]
AbnormalFlag = Literal["high", "low", "normal", "unknown"]

UNKNOWN_MARKER = "Unknown Marker"

TESTOSTERONE_NMOL_TO_NGDL = 28.84
TESTOSTERONE_NGML_TO_NMOL = 100 / TESTOSTERONE_NMOL_TO_NGDL
FREE_TESTOSTERONE_NMOL_TO_PGML = 288.4
ESTRADIOL_PGML_TO_PMOL = 3.671
HEMOGLOBIN_GPL_TO_MMOLL = 0.06206
HEMOGLOBIN_GPDL_TO_MMOLL = 0.6206
MCH_PG_TO_FMOL = 0.06206

HEMATOCRIT_RATIO_UNITS = frozenset({"l/l", "ll", "ratio", "fraction"})
HEMATOCRIT_RATIO_CUTOFF = 1.5


class ConversionRule(NamedTuple):
    eu_unit: str
    us_unit: str
    eu_to_us: float


class ConvertedValue(NamedTuple):
    value: float
    unit: str


class NormalizedMeasurement(NamedTuple):
    canonical_marker: str
    value: float
    unit: str
    reference_min: float | None
    reference_max: float | None


CONVERSION_RULES = MappingProxyType(
    {
        "Testosterone": ConversionRule("nmol/L", "ng/dL", TESTOSTERONE_NMOL_TO_NGDL),
        "Free Testosterone": ConversionRule("nmol/L", "pg/mL", FREE_TESTOSTERONE_NMOL_TO_PGML),
        "Estradiol": ConversionRule("pmol/L", "pg/mL", 1 / ESTRADIOL_PGML_TO_PMOL),
    }
)


def _unit_factors(target_unit: str, factors: dict[str, float]) -> MappingProxyType:
    # Lab PDFs regularly drop the slash ("nmoll"), so both spellings map to the same factor.
    table = {}
    for token, factor in factors.items():
        table[token] = (target_unit, factor)
        table[token.replace("/", "")] = (target_unit, factor)
    return MappingProxyType(table)


UNIT_NORMALIZATION = MappingProxyType(
    {
        "Testosterone": _unit_factors(
            "nmol/L",
            {"nmol/l": 1.0, "ng/ml": TESTOSTERONE_NGML_TO_NMOL, "ng/dl": 1 / TESTOSTERONE_NMOL_TO_NGDL},
        ),
        "Free Testosterone": _unit_factors(
            "nmol/L",
            {"nmol/l": 1.0, "pmol/l": 1 / 1000, "pg/ml": 1 / FREE_TESTOSTERONE_NMOL_TO_PGML},
        ),
        "Estradiol": _unit_factors("pmol/L", {"pmol/l": 1.0, "pg/ml": ESTRADIOL_PGML_TO_PMOL}),
        "SHBG": _unit_factors("nmol/L", {"nmol/l": 1.0}),
        "Hemoglobin": _unit_factors(
            "mmol/L",
            {"mmol/l": 1.0, "g/l": HEMOGLOBIN_GPL_TO_MMOLL, "g/dl": HEMOGLOBIN_GPDL_TO_MMOLL},
        ),
        "MCHC": _unit_factors(
            "mmol/L",
            {"mmol/l": 1.0, "g/l": HEMOGLOBIN_GPL_TO_MMOLL, "g/dl": HEMOGLOBIN_GPDL_TO_MMOLL},
        ),
        "MCH": _unit_factors("fmol", {"fmol": 1.0, "pg": MCH_PG_TO_FMOL}),
    }
)


def normalize_marker_text(text: str) -> str:
    lowered = re.sub(r"[^a-z0-9]+", " ", text.lower())
    return re.sub(r"\s+", " ", lowered).strip()


def normalize_unit_token(unit: str | None) -> str:
    return re.sub(r"\s+", "", (unit or "").lower())


def _build_alias_entries() -> tuple[tuple[str, str, re.Pattern], ...]:
    lookup: dict[str, str] = {}
    for canonical, aliases in MARKER_ALIASES.items():
        for alias in (canonical, *aliases):
            normalized = normalize_marker_text(alias)
            if normalized:
                lookup.setdefault(normalized, canonical)
    ordered = sorted(lookup.items(), key=lambda item: len(item[0]), reverse=True)
    return tuple((alias, canonical, re.compile(rf"\b{re.escape(alias)}\b")) for alias, canonical in ordered)


ALIAS_ENTRIES = _build_alias_entries()
EXACT_ALIASES = MappingProxyType({alias: canonical for alias, canonical, _ in ALIAS_ENTRIES})

_TESTOSTERONE_RE = re.compile(r"\b(?:testosterone|testosteron)\b")
_BIOAVAILABLE_RE = re.compile(r"\bbioavailable\b")
_FREE_RE = re.compile(r"\b(?:free|vrij|vrije)\b")


def canonicalize_marker(raw_label: str | None) -> str:
    normalized = normalize_marker_text(raw_label or "")
    if not normalized:
        return UNKNOWN_MARKER

    if _TESTOSTERONE_RE.search(normalized):
        if _BIOAVAILABLE_RE.search(normalized):
            return "Bioavailable Testosterone"
        if _FREE_RE.search(normalized):
            return "Free Testosterone"

    exact = EXACT_ALIASES.get(normalized)
    if exact:
        return exact

    for _, canonical, pattern in ALIAS_ENTRIES:
        if pattern.search(normalized):
            return canonical

    return " ".join(raw_label.split())


def _scale(value: float | None, factor: float) -> float | None:
    return None if value is None else value * factor


def _looks_like_ratio(value: float | None) -> bool:
    return value is not None and value <= HEMATOCRIT_RATIO_CUTOFF


def normalize_units(
    canonical_marker: str,
    value: float,
    unit: str,
    reference_min: float | None,
    reference_max: float | None,
) -> NormalizedMeasurement:
    unit_token = normalize_unit_token(unit)
    table = UNIT_NORMALIZATION.get(canonical_marker)
    if table and unit_token in table:
        target_unit, factor = table[unit_token]
        return NormalizedMeasurement(
            canonical_marker,
            value * factor,
            target_unit,
            _scale(reference_min, factor),
            _scale(reference_max, factor),
        )

    if canonical_marker != "Hematocrit":
        return NormalizedMeasurement(canonical_marker, value, unit, reference_min, reference_max)

    has_ratio_hint = (
        unit_token in HEMATOCRIT_RATIO_UNITS
        or _looks_like_ratio(value)
        or _looks_like_ratio(reference_min)
        or _looks_like_ratio(reference_max)
    )
    if not has_ratio_hint:
        return NormalizedMeasurement(canonical_marker, value, "%", reference_min, reference_max)

    def to_percent(item: float | None) -> float | None:
        return item * 100 if _looks_like_ratio(item) else item

    return NormalizedMeasurement(
        canonical_marker,
        to_percent(value),
        "%",
        to_percent(reference_min),
        to_percent(reference_max),
    )


def normalize_marker_measurement(
    marker: str,
    value: float,
    unit: str | None,
    reference_min: float | None = None,
    reference_max: float | None = None,
) -> NormalizedMeasurement:
    """Canonicalize a raw row and bring value and range to the marker's canonical unit."""
    canonical_marker = canonicalize_marker(marker)
    return normalize_units(canonical_marker, value, unit or "", reference_min, reference_max)


def convert_by_system(
    canonical_marker: str,
    value: float,
    source_unit: str | None,
    target_system: UnitSystem,
) -> ConvertedValue:
    source_unit = source_unit or ""
    normalized = normalize_units(canonical_marker, value, source_unit, None, None)
    unit = normalized.unit or source_unit

    rule = CONVERSION_RULES.get(canonical_marker)
    if rule is None:
        return ConvertedValue(normalized.value, unit)

    unit_token = normalize_unit_token(unit)
    is_eu = unit_token == normalize_unit_token(rule.eu_unit)
    is_us = unit_token == normalize_unit_token(rule.us_unit)

    if target_system == "us":
        if is_us:
            return ConvertedValue(normalized.value, rule.us_unit)
        if is_eu:
            return ConvertedValue(normalized.value * rule.eu_to_us, rule.us_unit)
        return ConvertedValue(normalized.value, unit)

    if is_eu:
        return ConvertedValue(normalized.value, rule.eu_unit)
    if is_us:
        return ConvertedValue(normalized.value / rule.eu_to_us, rule.eu_unit)
    return ConvertedValue(normalized.value, unit)


def convert_optional(
    canonical_marker: str,
    value: float | None,
    source_unit: str | None,
    target_system: UnitSystem,
) -> float | None:
    if value is None:
        return None
    return convert_by_system(canonical_marker, value, source_unit, target_system).value


def derive_abnormal_flag(
    value: float | None,
    reference_min: float | None,
    reference_max: float | None,
) -> AbnormalFlag:
    if value is None or not math.isfinite(value):
        return "unknown"
    if reference_min is not None and value < reference_min:
        return "low"
    if reference_max is not None and value > reference_max:
        return "high"
    if reference_min is None and reference_max is None:
        return "unknown"
    return "normal"
