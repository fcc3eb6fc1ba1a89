from datetime import date, datetime

from backend.schemas.lab_report import MarkerValue
from backend.services.trend_analyzer import (
    build_dose_phase_blocks,
    build_marker_series,
    classify_marker_trend,
    compute_delta,
    to_float,
)


def _series(make_report, values, marker="Testosterone", unit="nmol/L"):
    reports = [make_report({marker: (value, unit)}) for value in values]
    return build_marker_series(reports, marker, "eu")


def test_rising_series(make_report):
    summary = classify_marker_trend(_series(make_report, [10, 15, 22]), "Testosterone")
    assert summary.direction == "rising"
    assert summary.slope > 0
    assert summary.n_points == 3


def test_falling_series(make_report):
    summary = classify_marker_trend(_series(make_report, [22, 15, 10]), "Testosterone")
    assert summary.direction == "falling"


def test_stable_series(make_report):
    summary = classify_marker_trend(_series(make_report, [20, 20.2, 19.9, 20.1]), "Testosterone")
    assert summary.direction == "stable"


def test_volatile_series(make_report):
    summary = classify_marker_trend(_series(make_report, [20, 30, 20, 20, 30, 20]), "Testosterone")
    assert summary.direction == "volatile"


def test_three_point_zigzag_is_stable_not_volatile(make_report):
    summary = classify_marker_trend(_series(make_report, [10, 20, 10]), "Testosterone")
    assert summary.direction == "stable"
    assert summary.n_points == 3


def test_fewer_than_three_points_is_insufficient(make_report):
    summary = classify_marker_trend(_series(make_report, [10, 20]), "Testosterone")
    assert summary.direction == "insufficient"
    assert summary.slope is None
    assert summary.n_points == 2


def test_series_is_chronological_and_converted(make_report):
    late = make_report({"Testosterone": (20.0, "nmol/L")}, test_date=date(2024, 6, 1))
    early = make_report({"Testosterone": (10.0, "nmol/L")}, test_date=date(2024, 1, 1))
    series = build_marker_series([late, early], "Testosterone", "us")
    assert [p.date for p in series] == [date(2024, 1, 1), date(2024, 6, 1)]
    assert series[0].unit == "ng/dL"
    assert series[0].value == 288.4
    assert series[0].key == f"2024-01-01__{early.id}"


def test_series_skips_reports_without_marker(make_report):
    reports = [
        make_report({"Testosterone": (20.0, "nmol/L")}),
        make_report({"Estradiol": (90.0, "pmol/L")}),
    ]
    assert len(build_marker_series(reports, "Testosterone", "eu")) == 1
    assert build_marker_series(reports, "SHBG", "eu") == []


def test_dose_phase_blocks(make_report):
    reports = [
        make_report({"Testosterone": (20.0, "nmol/L")}, dose=100),
        make_report({"Testosterone": (22.0, "nmol/L")}, dose=120),
        make_report({"Testosterone": (25.0, "nmol/L")}, dose=120),
    ]
    blocks = build_dose_phase_blocks(reports)
    assert len(blocks) == 2
    assert blocks[0].dosage_mg_per_week == 100
    assert blocks[0].id == f"{reports[0].id}-{reports[1].id}"


def test_to_float_and_delta_helpers():
    assert to_float("12,5") == 12.5
    assert to_float("<0.1") == 0.1
    assert to_float("n/a") is None
    assert compute_delta(100, 120) == 20.0
    assert compute_delta(0, 5) is None


def test_duplicate_rows_prefer_measured_then_confidence_then_first(make_report):
    report = make_report({})
    report.markers = [
        MarkerValue(marker="T calc", canonical_marker="Testosterone", value=30.0, unit="nmol/L", is_calculated=True),
        MarkerValue(marker="T low conf", canonical_marker="Testosterone", value=20.0, unit="nmol/L", confidence=0.6),
        MarkerValue(marker="T first", canonical_marker="Testosterone", value=22.0, unit="nmol/L", confidence=0.9),
        MarkerValue(marker="T second", canonical_marker="Testosterone", value=24.0, unit="nmol/L", confidence=0.9),
    ]
    series = build_marker_series([report], "Testosterone", "eu")
    assert [p.value for p in series] == [22.0]
    assert series[0].is_calculated is False

    report.markers = report.markers[:1]
    series = build_marker_series([report], "Testosterone", "eu")
    assert series[0].is_calculated is True


def test_same_day_reports_are_ordered_by_created_at(make_report):
    same_day = date(2024, 4, 1)
    first = make_report({"SHBG": (30.0, "nmol/L")}, test_date=same_day)
    second = make_report({"SHBG": (35.0, "nmol/L")}, test_date=same_day)
    second.created_at = datetime(2024, 4, 1, 8, 0)
    first.created_at = datetime(2024, 4, 1, 9, 0)

    series = build_marker_series([first, second], "SHBG", "eu")
    assert [p.report_id for p in series] == [second.id, first.id]


def test_non_finite_values_are_dropped_from_series(make_report):
    reports = [
        make_report({"SHBG": (30.0, "nmol/L")}),
        make_report({"SHBG": (float("nan"), "nmol/L")}),
        make_report({"SHBG": (32.0, "nmol/L")}),
    ]
    assert [p.value for p in build_marker_series(reports, "SHBG", "eu")] == [30.0, 32.0]
