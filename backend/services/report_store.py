import json
import logging
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from uuid import uuid4

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.models.app_settings import AppSettingsRecord
from backend.models.lab_report import LabReportRecord, MarkerValueRecord
from backend.schemas.lab_report import (
    AnnotationUpdate,
    ExtractionDraft,
    ExtractionMeta,
    LabReport,
    LabReportCreate,
    MarkerValue,
    MarkerValueInput,
    ReportAnnotations,
)
from backend.schemas.settings import APP_SCHEMA_VERSION, AppSettings, AppSettingsUpdate, StoredAppData
from backend.services.calculated_markers import enrich_reports_with_calculated_markers
from backend.services.classifier import load_catalog, normalize_alias_overrides, resolve_canonical_marker
from backend.services.trend_analyzer import filter_reports_by_sampling, sort_reports_chronological
from backend.services.unit_conversion import canonicalize_marker, normalize_marker_text, normalize_units

logger = logging.getLogger(__name__)


class ImportValidationError(ValueError):
    pass


# ---------------------------------------------------------------------------
# ORM <-> schema
# ---------------------------------------------------------------------------

def record_to_report(record: LabReportRecord) -> LabReport:
    return LabReport(
        id=record.id,
        source_file_name=record.source_file_name,
        test_date=record.test_date,
        created_at=record.created_at,
        markers=[
            MarkerValue(
                id=row.id,
                marker=row.marker,
                canonical_marker=row.canonical_marker,
                value=row.value,
                unit=row.unit,
                reference_min=row.reference_min,
                reference_max=row.reference_max,
                confidence=row.confidence,
            )
            for row in record.markers
        ],
        annotations=ReportAnnotations(
            dosage_mg_per_week=record.dosage_mg_per_week,
            protocol=record.protocol,
            supplements=record.supplements,
            symptoms=record.symptoms,
            notes=record.notes,
            sampling_timing=record.sampling_timing,
        ),
        extraction=ExtractionMeta(
            provider=record.extraction_provider,
            model=record.extraction_model,
            confidence=record.extraction_confidence,
            needs_review=record.needs_review,
        ),
        is_baseline=record.is_baseline,
    )


def _marker_records(markers: Iterable[MarkerValue]) -> list[MarkerValueRecord]:
    return [
        MarkerValueRecord(
            id=marker.id,
            position=position,
            marker=marker.marker,
            canonical_marker=marker.canonical_marker,
            value=marker.value,
            unit=marker.unit,
            reference_min=marker.reference_min,
            reference_max=marker.reference_max,
            abnormal=marker.abnormal,
            confidence=marker.confidence,
        )
        for position, marker in enumerate(m for m in markers if not m.is_calculated)
    ]


def report_to_record(report: LabReport) -> LabReportRecord:
    annotations = report.annotations
    return LabReportRecord(
        id=report.id,
        source_file_name=report.source_file_name,
        test_date=report.test_date,
        created_at=report.created_at,
        dosage_mg_per_week=annotations.dosage_mg_per_week,
        protocol=annotations.protocol,
        supplements=annotations.supplements,
        symptoms=annotations.symptoms,
        notes=annotations.notes,
        sampling_timing=annotations.sampling_timing,
        extraction_provider=report.extraction.provider,
        extraction_model=report.extraction.model,
        extraction_confidence=report.extraction.confidence,
        needs_review=report.extraction.needs_review,
        is_baseline=report.is_baseline,
        markers=_marker_records(report.markers),
    )


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

def _settings_from_record(record: AppSettingsRecord) -> AppSettings:
    try:
        overrides = json.loads(record.marker_alias_overrides or "{}")
    except json.JSONDecodeError:
        logger.warning("Ignoring unreadable marker alias overrides")
        overrides = {}
    return AppSettings(
        unit_system=record.unit_system,
        language=record.language,
        sampling_filter=record.sampling_filter,
        enable_calculated_free_testosterone=record.enable_calculated_free_testosterone,
        protocol_window_size=record.protocol_window_size,
        marker_alias_overrides=overrides if isinstance(overrides, dict) else {},
    )


def load_settings(db: Session) -> AppSettings:
    record = db.get(AppSettingsRecord, 1)
    if record is None:
        return AppSettings()
    return _settings_from_record(record)


def save_settings(db: Session, new_settings: AppSettings) -> AppSettings:
    record = db.get(AppSettingsRecord, 1) or AppSettingsRecord(id=1)
    record.unit_system = new_settings.unit_system
    record.language = new_settings.language
    record.sampling_filter = new_settings.sampling_filter
    record.enable_calculated_free_testosterone = new_settings.enable_calculated_free_testosterone
    record.protocol_window_size = new_settings.protocol_window_size
    record.marker_alias_overrides = json.dumps(normalize_alias_overrides(new_settings.marker_alias_overrides))
    db.add(record)
    db.commit()
    return _settings_from_record(record)


def update_settings(db: Session, update: AppSettingsUpdate) -> AppSettings:
    current = load_settings(db)
    merged = current.model_copy(update=update.model_dump(exclude_unset=True, exclude_none=True))
    return save_settings(db, AppSettings.model_validate(merged.model_dump()))


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

def build_marker_values(
    rows: Iterable[MarkerValueInput],
    overrides: Mapping[str, str] | None = None,
    catalog: Mapping[str, list[str]] | None = None,
) -> list[MarkerValue]:
    markers = []
    for row in rows:
        resolution = resolve_canonical_marker(row.marker, overrides=overrides, catalog=catalog)
        normalized = normalize_units(
            resolution.canonical_marker,
            row.value,
            row.unit or "",
            row.reference_min,
            row.reference_max,
        )
        markers.append(
            MarkerValue(
                marker=row.marker.strip(),
                canonical_marker=normalized.canonical_marker,
                value=normalized.value,
                unit=normalized.unit,
                reference_min=normalized.reference_min,
                reference_max=normalized.reference_max,
                confidence=min(row.confidence, resolution.confidence) if resolution.method in {"fuzzy", "unknown"} else row.confidence,
            )
        )
    return markers


def list_reports(db: Session) -> list[LabReport]:
    records = db.scalars(select(LabReportRecord).order_by(LabReportRecord.test_date, LabReportRecord.created_at)).all()
    return [record_to_report(record) for record in records]


def get_report(db: Session, report_id: str) -> LabReport | None:
    record = db.get(LabReportRecord, report_id)
    return record_to_report(record) if record else None


def _clear_other_baselines(db: Session, keep_id: str) -> None:
    for record in db.scalars(select(LabReportRecord).where(LabReportRecord.is_baseline.is_(True))).all():
        if record.id != keep_id:
            record.is_baseline = False


def save_report(db: Session, report: LabReport) -> LabReport:
    record = report_to_record(report)
    db.add(record)
    if report.is_baseline:
        _clear_other_baselines(db, report.id)
    db.commit()
    logger.info("Stored report %s (%s) with %d markers", report.id, report.test_date, len(record.markers))
    return record_to_report(record)


def create_report(db: Session, payload: LabReportCreate, app_settings: AppSettings) -> LabReport:
    report = LabReport(
        source_file_name=payload.source_file_name,
        test_date=payload.test_date,
        markers=build_marker_values(payload.markers, app_settings.marker_alias_overrides, load_catalog(db)),
        annotations=payload.annotations,
        extraction=payload.extraction,
        is_baseline=payload.is_baseline,
    )
    return save_report(db, report)


def ingest_extraction_draft(
    db: Session,
    draft: ExtractionDraft,
    app_settings: AppSettings,
    annotations: ReportAnnotations | None = None,
    test_date: date | None = None,
) -> LabReport:
    resolved_date = test_date or draft.test_date
    needs_review = draft.extraction.needs_review
    if resolved_date is None:
        resolved_date = date.today()
        needs_review = True
    payload = LabReportCreate(
        source_file_name=draft.source_file_name,
        test_date=resolved_date,
        markers=draft.markers,
        annotations=annotations or ReportAnnotations(),
        extraction=draft.extraction.model_copy(update={"needs_review": needs_review}),
    )
    return create_report(db, payload, app_settings)


def delete_report(db: Session, report_id: str) -> bool:
    record = db.get(LabReportRecord, report_id)
    if record is None:
        return False
    db.delete(record)
    db.commit()
    return True


def update_annotations(db: Session, report_id: str, update: AnnotationUpdate) -> LabReport | None:
    record = db.get(LabReportRecord, report_id)
    if record is None:
        return None
    changes = update.model_dump(exclude_unset=True)
    is_baseline = changes.pop("is_baseline", None)
    for field, value in changes.items():
        if value is None and field != "dosage_mg_per_week":
            continue
        setattr(record, field, value)
    if is_baseline is not None:
        record.is_baseline = is_baseline
        if is_baseline:
            _clear_other_baselines(db, record.id)
    db.commit()
    return record_to_report(record)


def rename_marker(
    db: Session,
    source_marker: str,
    target_marker: str,
    report_id: str | None = None,
    remember_alias: bool = True,
) -> int:
    """Move every row of ``source_marker`` onto ``target_marker``.

    Values are re-normalized to the target's canonical unit and the abnormal
    flag is recomputed from the new value and range.
    """
    target = canonicalize_marker(target_marker)
    query = select(MarkerValueRecord).where(MarkerValueRecord.canonical_marker == source_marker)
    if report_id is not None:
        query = query.where(MarkerValueRecord.report_id == report_id)
    rows = db.scalars(query).all()

    raw_labels = set()
    for row in rows:
        normalized = normalize_units(target, row.value, row.unit, row.reference_min, row.reference_max)
        current = MarkerValue(
            id=row.id,
            marker=row.marker,
            canonical_marker=row.canonical_marker,
            value=row.value,
            unit=row.unit,
            reference_min=row.reference_min,
            reference_max=row.reference_max,
            confidence=row.confidence,
        )
        updated = current.with_changes(
            canonical_marker=target,
            value=normalized.value,
            unit=normalized.unit,
            reference_min=normalized.reference_min,
            reference_max=normalized.reference_max,
        )
        row.canonical_marker = updated.canonical_marker
        row.value = updated.value
        row.unit = updated.unit
        row.reference_min = updated.reference_min
        row.reference_max = updated.reference_max
        row.abnormal = updated.abnormal
        raw_labels.add(row.marker)

    if remember_alias and raw_labels:
        app_settings = load_settings(db)
        overrides = dict(app_settings.marker_alias_overrides)
        for label in raw_labels:
            overrides[normalize_marker_text(label)] = target
        save_settings(db, app_settings.model_copy(update={"marker_alias_overrides": overrides}))

    db.commit()
    logger.info("Renamed %d marker row(s) from %r to %r", len(rows), source_marker, target)
    return len(rows)


def known_canonical_markers(db: Session) -> list[str]:
    rows = db.execute(select(MarkerValueRecord.canonical_marker).distinct()).all()
    return sorted(name for (name,) in rows)


def analysis_reports(db: Session, app_settings: AppSettings, apply_sampling_filter: bool = True) -> list[LabReport]:
    reports = enrich_reports_with_calculated_markers(
        list_reports(db),
        app_settings.enable_calculated_free_testosterone,
    )
    if apply_sampling_filter:
        reports = filter_reports_by_sampling(reports, app_settings.sampling_filter)
    return sort_reports_chronological(reports)


def collect_marker_names(reports: Iterable[LabReport]) -> list[str]:
    names: dict[str, None] = {}
    for report in reports:
        for marker in report.markers:
            names.setdefault(marker.canonical_marker, None)
    return list(names)


# ---------------------------------------------------------------------------
# State import / export
# ---------------------------------------------------------------------------

_LEGACY_KEYS = {
    "sourceFileName": "source_file_name",
    "testDate": "test_date",
    "createdAt": "created_at",
    "isBaseline": "is_baseline",
    "canonicalMarker": "canonical_marker",
    "referenceMin": "reference_min",
    "referenceMax": "reference_max",
    "isCalculated": "is_calculated",
    "dosageMgPerWeek": "dosage_mg_per_week",
    "samplingTiming": "sampling_timing",
    "needsReview": "needs_review",
    "unitSystem": "unit_system",
    "samplingFilter": "sampling_filter",
    "enableCalculatedFreeTestosterone": "enable_calculated_free_testosterone",
    "protocolWindowSize": "protocol_window_size",
    "markerAliasOverrides": "marker_alias_overrides",
    "schemaVersion": "schema_version",
}


def _snake_keys(raw):
    if isinstance(raw, list):
        return [_snake_keys(item) for item in raw]
    if isinstance(raw, dict):
        return {
            _LEGACY_KEYS.get(key, key): (value if key in {"markerAliasOverrides", "marker_alias_overrides"} else _snake_keys(value))
            for key, value in raw.items()
        }
    return raw


def _coerce_marker(raw: dict) -> MarkerValue | None:
    if raw.get("is_calculated"):
        return None
    label = str(raw.get("marker") or raw.get("canonical_marker") or "").strip()
    try:
        value = float(raw.get("value"))
    except (TypeError, ValueError):
        return None
    canonical = canonicalize_marker(raw.get("canonical_marker") or label)
    normalized = normalize_units(canonical, value, raw.get("unit") or "", raw.get("reference_min"), raw.get("reference_max"))
    try:
        return MarkerValue(
            id=str(raw.get("id") or uuid4()),
            marker=label or canonical,
            canonical_marker=canonical,
            value=normalized.value,
            unit=normalized.unit,
            reference_min=normalized.reference_min,
            reference_max=normalized.reference_max,
            confidence=raw.get("confidence", 1.0),
        )
    except ValidationError:
        return None


def coerce_stored_data(raw: dict) -> StoredAppData:
    """Parse a state dump, tolerating legacy camelCase blobs and partial rows."""
    if not isinstance(raw, dict):
        raise ImportValidationError("Import payload must be a JSON object")
    data = _snake_keys(raw)
    version = data.get("schema_version", 1)
    if not isinstance(version, int) or version > APP_SCHEMA_VERSION:
        raise ImportValidationError(f"Unsupported schema version: {version}")

    reports: list[LabReport] = []
    baseline_seen = False
    skipped = 0
    for raw_report in data.get("reports") or []:
        if not isinstance(raw_report, dict):
            skipped += 1
            continue
        markers = [m for m in (_coerce_marker(item) for item in raw_report.get("markers") or [] if isinstance(item, dict)) if m]
        try:
            report = LabReport(
                id=str(raw_report.get("id") or uuid4()),
                source_file_name=raw_report.get("source_file_name") or "Imported report",
                test_date=raw_report.get("test_date"),
                created_at=raw_report.get("created_at") or datetime.utcnow(),
                markers=markers,
                annotations=ReportAnnotations.model_validate(raw_report.get("annotations") or {}),
                extraction=ExtractionMeta.model_validate(raw_report.get("extraction") or {}),
                is_baseline=bool(raw_report.get("is_baseline")) and not baseline_seen,
            )
        except ValidationError as exc:
            logger.warning("Skipping invalid report in import: %s", exc.errors()[:1])
            skipped += 1
            continue
        baseline_seen = baseline_seen or report.is_baseline
        reports.append(report)

    if skipped:
        logger.info("Import skipped %d invalid report(s)", skipped)

    try:
        imported_settings = AppSettings.model_validate(data.get("settings") or {})
    except ValidationError:
        logger.warning("Import settings invalid; keeping defaults")
        imported_settings = AppSettings()
    return StoredAppData(schema_version=APP_SCHEMA_VERSION, reports=reports, settings=imported_settings)


def export_state(db: Session) -> StoredAppData:
    return StoredAppData(reports=list_reports(db), settings=load_settings(db))


def import_state(db: Session, raw: dict, mode: str = "append") -> int:
    stored = coerce_stored_data(raw)
    if mode == "replace":
        for record in db.scalars(select(LabReportRecord)).all():
            db.delete(record)
        db.flush()
        save_settings(db, stored.settings)

    existing_ids = set(db.scalars(select(LabReportRecord.id)).all())
    has_baseline = any(db.scalars(select(LabReportRecord.id).where(LabReportRecord.is_baseline.is_(True))).all())
    imported = 0
    for report in stored.reports:
        if report.id in existing_ids:
            continue
        if report.is_baseline and has_baseline:
            report = report.model_copy(update={"is_baseline": False})
        db.add(report_to_record(report))
        has_baseline = has_baseline or report.is_baseline
        imported += 1
    db.commit()
    logger.info("Imported %d report(s) in %s mode", imported, mode)
    return imported
