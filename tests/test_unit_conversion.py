import math

import pytest

from backend.services.unit_conversion import (
    UNKNOWN_MARKER,
    canonicalize_marker,
    convert_by_system,
    derive_abnormal_flag,
    normalize_marker_measurement,
)


@pytest.mark.parametrize(
    "label, expected",
    [
        ("Testosteron totaal", "Testosterone"),
        ("TESTOSTERONE, TOTAL", "Testosterone"),
        ("Vrij testosteron", "Free Testosterone"),
        ("Testosterone, free (calc.)", "Free Testosterone"),
        ("Bioavailable testosterone", "Bioavailable Testosterone"),
        ("Oestradiol", "Estradiol"),
        ("Hematocriet", "Hematocrit"),
        ("Sex hormone binding globulin", "SHBG"),
        ("Free T4", "Free T4"),
    ],
)
def test_canonicalize_known_labels(label, expected):
    assert canonicalize_marker(label) == expected


def test_canonicalize_is_idempotent():
    for label in ["Testosteron totaal", "vrije testosteron", "E2", "Some Custom Marker"]:
        once = canonicalize_marker(label)
        assert canonicalize_marker(once) == once


def test_canonicalize_unknown_label_is_trimmed():
    assert canonicalize_marker("  Vitamin   K2  ") == "Vitamin K2"
    assert canonicalize_marker("") == UNKNOWN_MARKER
    assert canonicalize_marker(None) == UNKNOWN_MARKER


def test_testosterone_round_trip_between_systems():
    us = convert_by_system("Testosterone", 20.0, "nmol/L", "us")
    assert us.unit == "ng/dL"
    assert us.value == pytest.approx(576.8)

    back = convert_by_system("Testosterone", us.value, us.unit, "eu")
    assert back.unit == "nmol/L"
    assert back.value == pytest.approx(20.0)


def test_estradiol_converts_pg_to_pmol():
    result = convert_by_system("Estradiol", 30.0, "pg/mL", "eu")
    assert result.unit == "pmol/L"
    assert result.value == pytest.approx(110.13, rel=1e-3)


def test_unknown_marker_passes_through_unchanged():
    result = convert_by_system("Ferritin", 120.0, "ug/L", "us")
    assert result.value == 120.0
    assert result.unit == "ug/L"


def test_hematocrit_ratio_becomes_percent():
    measurement = normalize_marker_measurement("Hematocriet", 0.48, "L/L", 0.40, 0.50)
    assert measurement.canonical_marker == "Hematocrit"
    assert measurement.unit == "%"
    assert measurement.value == pytest.approx(48.0)
    assert measurement.reference_min == pytest.approx(40.0)
    assert measurement.reference_max == pytest.approx(50.0)


def test_testosterone_ng_ml_normalized_to_nmol():
    measurement = normalize_marker_measurement("Testosterone", 5.768, "ng/ml")
    assert measurement.unit == "nmol/L"
    assert measurement.value == pytest.approx(20.0, rel=1e-3)


def test_abnormal_flag():
    assert derive_abnormal_flag(5, 8, 30) == "low"
    assert derive_abnormal_flag(35, 8, 30) == "high"
    assert derive_abnormal_flag(15, 8, 30) == "normal"
    assert derive_abnormal_flag(15, None, None) == "unknown"
    assert derive_abnormal_flag(math.nan, 8, 30) == "unknown"
