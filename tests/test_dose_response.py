import math

import pytest

from backend.services import dose_response
from backend.services.dose_response import (
    build_dose_correlation_insights,
    estimate_dose_response,
    estimate_marker_dose_response,
    get_dose_priors,
)


def _estradiol_reports(make_report, points, sampling_timing="unknown"):
    return [
        make_report({"Estradiol": (value, "pmol/L")}, dose=dose, sampling_timing=sampling_timing)
        for dose, value in points
    ]


def test_clear_positive_fit(make_report):
    reports = _estradiol_reports(make_report, [(60, 80), (100, 110), (140, 140)])
    prediction = estimate_marker_dose_response(reports, "Estradiol", "eu")

    assert prediction.status == "clear"
    assert prediction.estimate_source == "user_fit"
    assert prediction.model_type == "linear"
    assert prediction.slope == pytest.approx(0.75)
    assert prediction.correlation_r == pytest.approx(1.0)
    assert prediction.current_dose == 140
    assert prediction.current_estimate == pytest.approx(140.0)
    assert prediction.suggested_dose == 120
    assert prediction.suggested_estimate == pytest.approx(125.0)
    assert [s.dose_mg_per_week for s in prediction.scenarios] == [80.0, 100.0, 120.0, 140.0]
    assert prediction.sampling_mode == "all"
    assert prediction.sampling_warning


def test_estimate_is_deterministic(make_report):
    reports = _estradiol_reports(make_report, [(60, 80), (100, 118), (140, 135), (120, 121)])
    first = estimate_marker_dose_response(reports, "Estradiol", "eu")
    second = estimate_marker_dose_response(list(reversed(reports)), "Estradiol", "eu")
    assert first.model_dump() == second.model_dump()


def test_insufficient_samples_fall_back_to_prior(make_report):
    reports = _estradiol_reports(make_report, [(100, 90), (140, 120)])
    prediction = estimate_marker_dose_response(reports, "Estradiol", "eu")

    assert prediction.status == "insufficient"
    assert prediction.slope is None
    assert prediction.intercept is None
    assert prediction.estimate_source == "literature_prior"
    assert prediction.prior.unit == "pmol/L"
    assert prediction.prior.anchor_dose == 140
    assert prediction.prior.anchor_value == 120


def test_no_dose_variance_is_insufficient(make_report):
    reports = _estradiol_reports(make_report, [(100, 90), (100, 100), (100, 95)])
    prediction = estimate_marker_dose_response(reports, "Estradiol", "eu")
    assert prediction.status == "insufficient"
    assert "same dose" in prediction.reason


def test_missing_dose_points_are_excluded(make_report):
    reports = _estradiol_reports(make_report, [(60, 80), (100, 110), (140, 140)])
    reports.append(make_report({"Estradiol": (95.0, "pmol/L")}, dose=None))
    prediction = estimate_marker_dose_response(reports, "Estradiol", "eu")
    assert prediction.sample_count == 3
    assert any(point.reason == "No dose recorded for this report" for point in prediction.excluded_points)


def test_trough_samples_take_precedence(make_report):
    reports = _estradiol_reports(make_report, [(60, 80), (100, 110), (140, 140)], sampling_timing="trough")
    reports.append(make_report({"Estradiol": (300.0, "pmol/L")}, dose=120, sampling_timing="peak"))
    prediction = estimate_marker_dose_response(reports, "Estradiol", "eu")
    assert prediction.sampling_mode == "trough"
    assert prediction.sample_count == 3
    assert prediction.sampling_warning is None


def test_negative_slope_on_testosterone_is_unclear(make_report):
    reports = [
        make_report({"Testosterone": (value, "nmol/L")}, dose=dose)
        for dose, value in [(60, 30), (100, 25), (140, 20)]
    ]
    prediction = estimate_marker_dose_response(reports, "Testosterone", "eu")
    assert prediction.status == "unclear"
    assert prediction.scenarios == []


def test_predictions_sorted_by_status(make_report):
    reports = [
        make_report({"Estradiol": (e2, "pmol/L"), "SHBG": (30.0, "nmol/L")}, dose=dose)
        for dose, e2 in [(60, 80), (100, 110), (140, 140)]
    ]
    predictions = estimate_dose_response(reports, ["SHBG", "Estradiol"], "eu")
    assert predictions[0].marker == "Estradiol"
    assert predictions[0].status == "clear"


def test_correlation_insights(make_report):
    reports = _estradiol_reports(make_report, [(60, 80), (100, 110), (140, 140)])
    insights = build_dose_correlation_insights(reports, ["Estradiol"], "eu")
    assert len(insights) == 1
    assert insights[0].r == pytest.approx(1.0)
    assert insights[0].n == 3


def test_priors_are_per_unit_system():
    eu = {p.marker: p for p in get_dose_priors("eu")}
    us = {p.marker: p for p in get_dose_priors("us")}
    assert eu["Testosterone"].unit == "nmol/L"
    assert us["Testosterone"].unit == "ng/dL"
    assert eu["Testosterone"].evidence
    assert [p.marker for p in get_dose_priors("eu", ["Hematocrit"])] == ["Hematocrit"]


def test_non_finite_doses_and_values_never_reach_the_fit(make_report, monkeypatch):
    real_fit = dose_response.linear_fit

    def checked_fit(xs, ys):
        assert all(math.isfinite(v) for v in [*xs, *ys])
        return real_fit(xs, ys)

    monkeypatch.setattr(dose_response, "linear_fit", checked_fit)

    reports = _estradiol_reports(make_report, [(60, 80), (100, 110), (140, 140)])
    nan_dose = make_report({"Estradiol": (120.0, "pmol/L")}, dose=100)
    nan_dose.annotations.dosage_mg_per_week = float("nan")
    reports.append(nan_dose)
    reports.append(make_report({"Estradiol": (float("nan"), "pmol/L")}, dose=120))

    prediction = estimate_marker_dose_response(reports, "Estradiol", "eu")
    assert prediction.status == "clear"
    assert prediction.sample_count == 3
    assert prediction.slope == pytest.approx(0.75)
    excluded = {point.report_id: point for point in prediction.excluded_points}
    assert excluded[nan_dose.id].reason == "Recorded dose is not a finite number"
    assert excluded[nan_dose.id].dose_mg_per_week is None


def test_zero_spread_setting_still_reports_no_dose_variance(make_report):
    reports = _estradiol_reports(make_report, [(100, 90), (100, 100), (100, 95)])
    prediction = estimate_marker_dose_response(reports, "Estradiol", "eu", min_spread=0)
    assert prediction.status == "insufficient"
    assert "no dose variance" in prediction.reason
    assert prediction.slope is None
