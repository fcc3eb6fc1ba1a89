from backend.services.stability import build_trt_stability_series, compute_trt_stability_index, cv_to_score


def test_no_data_gives_no_score(make_report):
    assert compute_trt_stability_index([], "eu").score is None
    single = [make_report({"Testosterone": (20.0, "nmol/L")})]
    assert compute_trt_stability_index(single, "eu").score is None


def test_score_within_bounds(make_report):
    reports = [
        make_report({"Testosterone": (20.0, "nmol/L"), "Estradiol": (100.0, "pmol/L")}),
        make_report({"Testosterone": (22.0, "nmol/L"), "Estradiol": (110.0, "pmol/L")}),
    ]
    result = compute_trt_stability_index(reports, "eu")
    assert 0 <= result.score <= 100
    assert set(result.components) == {"Testosterone", "Estradiol"}
    assert result.score == 90


def test_identical_values_score_100(make_report):
    reports = [make_report({"Hematocrit": (45.0, "%")}) for _ in range(3)]
    assert compute_trt_stability_index(reports, "eu").score == 100


def test_cv_to_score_clamps():
    assert cv_to_score(0.0) == 100.0
    assert cv_to_score(5.0) == 0.0


def test_series_starts_once_a_marker_has_two_points(make_report):
    reports = [make_report({"SHBG": (value, "nmol/L")}) for value in (30.0, 32.0, 31.0)]
    series = build_trt_stability_series(reports, "eu")
    assert [p.report_id for p in series] == [reports[1].id, reports[2].id]
