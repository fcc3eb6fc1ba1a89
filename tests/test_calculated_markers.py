import pytest

from backend.services.calculated_markers import (
    calculate_free_testosterone,
    derive_calculated_markers,
    enrich_report_with_calculated_markers,
)


def _by_name(markers):
    return {m.canonical_marker: m for m in markers}


def test_ratios_and_indices(make_report):
    report = make_report(
        {
            "Testosterone": (20.0, "nmol/L"),
            "Estradiol": (100.0, "pmol/L"),
            "SHBG": (40.0, "nmol/L"),
            "Glucose Nuchter": (5.0, "mmol/L"),
            "Insuline": (9.0, "mU/L"),
        }
    )
    derived = _by_name(derive_calculated_markers(report))
    assert derived["T/E2 Ratio"].value == pytest.approx(200.0)
    assert derived["Free Androgen Index"].value == pytest.approx(50.0)
    assert derived["HOMA-IR"].value == pytest.approx(2.0)
    assert all(m.is_calculated and m.source == "calculated" for m in derived.values())
    assert "Free Testosterone" not in derived


def test_measured_marker_wins_over_calculated(make_report):
    report = make_report(
        {
            "Testosterone": (20.0, "nmol/L"),
            "SHBG": (40.0, "nmol/L"),
            "Free Androgen Index": (48.0, "%"),
        }
    )
    assert "Free Androgen Index" not in _by_name(derive_calculated_markers(report))


def test_calculated_free_testosterone_when_enabled(make_report):
    report = make_report(
        {
            "Testosterone": (20.0, "nmol/L"),
            "SHBG": (40.0, "nmol/L"),
            "Albumine": (45.0, "g/L"),
        }
    )
    derived = _by_name(derive_calculated_markers(report, enable_calculated_free_testosterone=True))
    assert 0.3 < derived["Free Testosterone"].value < 0.45
    assert derived["Free Testosterone"].unit == "nmol/L"


def test_free_testosterone_solver_rejects_bad_input():
    assert calculate_free_testosterone(0, 40, 45) is None
    assert calculate_free_testosterone(20, float("nan"), 45) is None


def test_enrich_replaces_stale_calculated_rows(make_report):
    report = make_report({"Testosterone": (20.0, "nmol/L"), "Estradiol": (100.0, "pmol/L")})
    enriched = enrich_report_with_calculated_markers(report)
    twice = enrich_report_with_calculated_markers(enriched)
    assert [m.canonical_marker for m in twice.markers] == [m.canonical_marker for m in enriched.markers]
    assert sum(1 for m in twice.markers if m.is_calculated) == 1
