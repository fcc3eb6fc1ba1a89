import logging
from datetime import date, datetime

import requests

from backend.config import settings
from backend.schemas.lab_report import ExtractionDraft, ExtractionMeta, MarkerValueInput
from backend.services.statistics import clamp
from backend.services.trend_analyzer import to_float

logger = logging.getLogger(__name__)

KNOWN_PROVIDERS = {"claude", "gemini", "fallback", "manual"}
REVIEW_CONFIDENCE_THRESHOLD = 0.65


class ExtractionError(Exception):
    """Failure talking to the PDF extraction proxy. ``code`` is a stable message key."""

    def __init__(self, code: str, detail: str | None = None):
        super().__init__(detail or code)
        self.code = code
        self.detail = detail


def _safe_date(value) -> date | None:
    if not value:
        return None
    for fmt in ("%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y", "%m/%d/%Y"):
        try:
            return datetime.strptime(str(value).strip(), fmt).date()
        except ValueError:
            continue
    return None


def _pick(row: dict, *keys):
    for key in keys:
        if key in row and row[key] is not None:
            return row[key]
    return None


def parse_extraction_payload(payload: dict, file_name: str) -> ExtractionDraft:
    markers = []
    for row in payload.get("markers") or []:
        if not isinstance(row, dict):
            continue
        label = str(_pick(row, "marker", "name", "test_name") or "").strip()
        value = to_float(_pick(row, "value"))
        if not label or value is None:
            logger.debug("Dropping extracted row without label or numeric value: %r", row)
            continue
        confidence = to_float(_pick(row, "confidence"))
        markers.append(
            MarkerValueInput(
                marker=label,
                value=value,
                unit=_pick(row, "unit"),
                reference_min=to_float(_pick(row, "referenceMin", "reference_min")),
                reference_max=to_float(_pick(row, "referenceMax", "reference_max")),
                confidence=clamp(confidence if confidence is not None else 0.5, 0.0, 1.0),
            )
        )

    provider = str(payload.get("provider") or "fallback")
    confidence = to_float(payload.get("confidence"))
    confidence = clamp(confidence if confidence is not None else 0.5, 0.0, 1.0)
    needs_review = bool(payload.get("needsReview", payload.get("needs_review", False)))
    needs_review = needs_review or confidence < REVIEW_CONFIDENCE_THRESHOLD or not markers

    return ExtractionDraft(
        source_file_name=str(payload.get("sourceFileName") or file_name),
        test_date=_safe_date(_pick(payload, "testDate", "test_date")),
        markers=markers,
        extraction=ExtractionMeta(
            provider=provider if provider in KNOWN_PROVIDERS else "fallback",
            model=str(payload.get("model") or "unknown"),
            confidence=confidence,
            needs_review=needs_review,
        ),
    )


def extract_pdf(file_bytes: bytes, file_name: str, url: str | None = None, timeout: float | None = None) -> ExtractionDraft:
    target = url or settings.pdf_extraction_url
    try:
        response = requests.post(
            target,
            files={"file": (file_name, file_bytes, "application/pdf")},
            timeout=timeout or settings.external_timeout_seconds,
        )
    except requests.RequestException as exc:
        logger.warning("PDF extraction proxy unreachable at %s: %s", target, exc)
        raise ExtractionError("PDF_PROXY_UNREACHABLE", str(exc)) from exc

    if not response.ok:
        logger.warning("PDF extraction failed with status %s", response.status_code)
        raise ExtractionError(f"PDF_EXTRACTION_FAILED:{response.status_code}")

    try:
        payload = response.json()
    except ValueError as exc:
        raise ExtractionError("PDF_EXTRACTION_INVALID_RESPONSE") from exc
    if not isinstance(payload, dict):
        raise ExtractionError("PDF_EXTRACTION_INVALID_RESPONSE")
    return parse_extraction_payload(payload, file_name)
