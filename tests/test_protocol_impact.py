from datetime import date

from backend.services.protocol_impact import build_protocol_impact_dose_events, clamp_window_size


def test_missing_after_values_give_low_confidence(make_report):
    before = make_report({"Testosterone": (20.0, "nmol/L"), "Estradiol": (100.0, "pmol/L")}, dose=100)
    after = make_report({"Estradiol": (120.0, "pmol/L")}, dose=150)

    events = build_protocol_impact_dose_events([before, after], "eu", window_size=2)
    assert len(events) == 1
    event = events[0]
    assert event.id == f"{before.id}-{after.id}"
    assert event.from_dose == 100
    assert event.to_dose == 150

    rows = {row.marker: row for row in event.rows}
    testosterone = rows["Testosterone"]
    assert testosterone.before_avg == 20.0
    assert testosterone.after_avg is None
    assert testosterone.delta_pct is None
    assert testosterone.trend == "insufficient"
    assert testosterone.confidence == "low"
    assert testosterone.confidence_reason == "Insufficient data: no after measurements (1/0 points)"

    estradiol = rows["Estradiol"]
    assert estradiol.delta_pct == 20.0
    assert estradiol.trend == "up"
    assert [row.marker for row in event.top_impacts] == ["Estradiol"]


def test_windows_stop_at_next_dose_change(make_report):
    reports = [
        make_report({"Testosterone": (20.0, "nmol/L")}, dose=100),
        make_report({"Testosterone": (20.0, "nmol/L")}, dose=100),
        make_report({"Testosterone": (25.0, "nmol/L")}, dose=150),
        make_report({"Testosterone": (26.0, "nmol/L")}, dose=150),
        make_report({"Testosterone": (30.0, "nmol/L")}, dose=200),
    ]
    events = build_protocol_impact_dose_events(reports, "eu", window_size=4)
    assert [(e.from_dose, e.to_dose) for e in events] == [(100, 150), (150, 200)]

    first = events[0]
    assert first.before_count == 2
    assert first.after_count == 2
    row = first.rows[0]
    assert row.delta_pct == 27.5
    assert row.trend == "up"
    assert row.confidence == "high"

    second = events[1]
    assert second.before_report_ids == [reports[2].id, reports[3].id]
    assert second.after_report_ids == [reports[4].id]


def test_small_change_is_flat(make_report):
    reports = [
        make_report({"SHBG": (40.0, "nmol/L")}, dose=100),
        make_report({"SHBG": (40.4, "nmol/L")}, dose=120),
    ]
    row = build_protocol_impact_dose_events(reports, "eu")[0].rows[0]
    assert row.trend == "flat"


def test_first_recorded_dose_counts_as_change(make_report):
    reports = [
        make_report({"Testosterone": (12.0, "nmol/L")}, dose=None, test_date=date(2024, 1, 1)),
        make_report({"Testosterone": (24.0, "nmol/L")}, dose=125, test_date=date(2024, 3, 1)),
    ]
    events = build_protocol_impact_dose_events(reports, "eu")
    assert len(events) == 1
    assert events[0].from_dose is None
    assert events[0].change_date == date(2024, 3, 1)


def test_no_dose_change_no_events(make_report):
    reports = [make_report({"Testosterone": (20.0, "nmol/L")}, dose=100) for _ in range(3)]
    assert build_protocol_impact_dose_events(reports, "eu") == []


def test_window_size_is_clamped():
    assert clamp_window_size(0) == 1
    assert clamp_window_size(9) == 4
    assert clamp_window_size(3) == 3
