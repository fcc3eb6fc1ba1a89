from datetime import date

import pytest

from backend.schemas.lab_report import (
    AnnotationUpdate,
    ExtractionDraft,
    ExtractionMeta,
    LabReportCreate,
    MarkerValueInput,
)
from backend.schemas.settings import AppSettings, AppSettingsUpdate
from backend.services import report_store


def _create(db_session, markers, test_date=date(2024, 1, 1), **kwargs):
    payload = LabReportCreate(
        test_date=test_date,
        markers=[MarkerValueInput(**row) for row in markers],
        **kwargs,
    )
    return report_store.create_report(db_session, payload, report_store.load_settings(db_session))


def test_create_report_canonicalizes_and_normalizes(db_session):
    report = _create(
        db_session,
        [
            {"marker": "Hematocriet", "value": 0.52, "unit": "L/L", "reference_min": 0.40, "reference_max": 0.50},
            {"marker": "Testosteron totaal", "value": 18.5, "unit": "nmol/L", "reference_min": 8, "reference_max": 29},
        ],
    )
    markers = {m.canonical_marker: m for m in report.markers}
    assert markers["Hematocrit"].unit == "%"
    assert markers["Hematocrit"].value == pytest.approx(52.0)
    assert markers["Hematocrit"].abnormal == "high"
    assert markers["Testosterone"].abnormal == "normal"
    assert markers["Testosterone"].marker == "Testosteron totaal"

    stored = report_store.get_report(db_session, report.id)
    assert [m.canonical_marker for m in stored.markers] == ["Hematocrit", "Testosterone"]


def test_only_one_baseline(db_session):
    first = _create(db_session, [], is_baseline=True)
    second = _create(db_session, [], test_date=date(2024, 2, 1), is_baseline=True)
    assert report_store.get_report(db_session, first.id).is_baseline is False
    assert report_store.get_report(db_session, second.id).is_baseline is True


def test_update_annotations_can_clear_dose(db_session):
    report = _create(db_session, [])
    updated = report_store.update_annotations(
        db_session, report.id, AnnotationUpdate(dosage_mg_per_week=125, sampling_timing="trough")
    )
    assert updated.annotations.dosage_mg_per_week == 125
    assert updated.annotations.sampling_timing == "trough"

    cleared = report_store.update_annotations(db_session, report.id, AnnotationUpdate(dosage_mg_per_week=None))
    assert cleared.annotations.dosage_mg_per_week is None
    assert cleared.annotations.sampling_timing == "trough"
    assert report_store.update_annotations(db_session, "missing", AnnotationUpdate()) is None


def test_rename_marker_recomputes_abnormal_and_remembers_alias(db_session):
    report = _create(
        db_session,
        [{"marker": "Hkt", "value": 0.55, "unit": "L/L", "reference_min": 40, "reference_max": 50}],
    )
    assert report.markers[0].canonical_marker == "Hkt"
    assert report.markers[0].abnormal == "low"

    renamed = report_store.rename_marker(db_session, "Hkt", "Hematocrit", report_id=report.id)
    assert renamed == 1

    marker = report_store.get_report(db_session, report.id).markers[0]
    assert marker.canonical_marker == "Hematocrit"
    assert marker.value == pytest.approx(55.0)
    assert marker.unit == "%"
    assert marker.abnormal == "high"

    assert report_store.load_settings(db_session).marker_alias_overrides == {"hkt": "Hematocrit"}
    again = _create(db_session, [{"marker": "HKT", "value": 45, "unit": "%"}], test_date=date(2024, 3, 1))
    assert again.markers[0].canonical_marker == "Hematocrit"


def test_extraction_draft_without_date_needs_review(db_session):
    draft = ExtractionDraft(
        source_file_name="lab.pdf",
        markers=[MarkerValueInput(marker="E2", value=110, unit="pmol/L")],
        extraction=ExtractionMeta(provider="gemini", model="gemini-flash", confidence=0.9),
    )
    report = report_store.ingest_extraction_draft(db_session, draft, AppSettings())
    assert report.test_date == date.today()
    assert report.extraction.needs_review is True
    assert report.markers[0].canonical_marker == "Estradiol"


def test_update_settings_merges_fields(db_session):
    updated = report_store.update_settings(db_session, AppSettingsUpdate(unit_system="us"))
    assert updated.unit_system == "us"
    assert updated.protocol_window_size == 2
    assert report_store.load_settings(db_session).unit_system == "us"


def test_analysis_reports_add_calculated_markers_and_filter(db_session):
    _create(
        db_session,
        [{"marker": "Testosterone", "value": 20, "unit": "nmol/L"}, {"marker": "Estradiol", "value": 100, "unit": "pmol/L"}],
        annotations={"sampling_timing": "trough"},
    )
    _create(db_session, [{"marker": "Testosterone", "value": 30, "unit": "nmol/L"}], test_date=date(2024, 2, 1))

    everything = report_store.analysis_reports(db_session, AppSettings())
    assert len(everything) == 2
    assert any(m.canonical_marker == "T/E2 Ratio" for m in everything[0].markers)

    trough_only = report_store.analysis_reports(db_session, AppSettings(sampling_filter="trough"))
    assert len(trough_only) == 1


def test_export_then_import_replace(db_session):
    _create(db_session, [{"marker": "SHBG", "value": 35, "unit": "nmol/L"}], is_baseline=True)
    _create(db_session, [{"marker": "SHBG", "value": 38, "unit": "nmol/L"}], test_date=date(2024, 2, 1))

    dump = report_store.export_state(db_session).model_dump(mode="json")
    assert dump["schema_version"] == 2

    assert report_store.import_state(db_session, dump, mode="append") == 0
    assert report_store.import_state(db_session, dump, mode="replace") == 2
    reports = report_store.list_reports(db_session)
    assert len(reports) == 2
    assert sum(1 for r in reports if r.is_baseline) == 1


def test_import_legacy_camel_case_blob(db_session):
    legacy = {
        "schemaVersion": 1,
        "reports": [
            {
                "id": "a",
                "testDate": "2024-01-01",
                "isBaseline": True,
                "annotations": {"dosageMgPerWeek": 120, "samplingTiming": "trough"},
                "markers": [
                    {"marker": "Testosteron totaal", "value": "20", "unit": "nmol/L", "referenceMin": 8, "referenceMax": 29},
                    {"marker": "T/E2 Ratio", "value": 200, "unit": "ratio", "isCalculated": True},
                ],
            },
            {"id": "b", "testDate": "2024-02-01", "isBaseline": True, "markers": []},
            {"id": "c", "markers": []},
        ],
    }
    assert report_store.import_state(db_session, legacy) == 2

    first = report_store.get_report(db_session, "a")
    assert first.is_baseline is True
    assert first.annotations.dosage_mg_per_week == 120
    assert [m.canonical_marker for m in first.markers] == ["Testosterone"]
    assert first.markers[0].abnormal == "normal"
    assert report_store.get_report(db_session, "b").is_baseline is False


@pytest.mark.parametrize("payload", [{"schema_version": 99}, ["not", "a", "dict"]])
def test_import_rejects_invalid_payload(db_session, payload):
    with pytest.raises(report_store.ImportValidationError):
        report_store.import_state(db_session, payload)


def test_delete_report(db_session):
    report = _create(db_session, [{"marker": "SHBG", "value": 35, "unit": "nmol/L"}])
    assert report_store.delete_report(db_session, report.id) is True
    assert report_store.get_report(db_session, report.id) is None
    assert report_store.delete_report(db_session, report.id) is False
