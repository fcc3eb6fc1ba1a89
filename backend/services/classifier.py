import json
import re
from collections.abc import Mapping
from typing import Literal, NamedTuple

from rapidfuzz import fuzz
from sqlalchemy.orm import Session

from backend.config import settings
from backend.models.biomarker import BiomarkerReference
from backend.seed.marker_catalog import MARKER_ALIASES
from backend.services.unit_conversion import (
    EXACT_ALIASES,
    UNKNOWN_MARKER,
    canonicalize_marker,
    normalize_marker_text,
)

MatchMode = Literal["conservative", "balanced", "aggressive"]
ResolutionMethod = Literal["override", "exact_alias", "pattern", "fuzzy", "unknown"]

MODE_THRESHOLD_OFFSETS = {"conservative": 5, "balanced": 0, "aggressive": -10}
MAX_MARKER_WORDS = 7


class CanonicalResolution(NamedTuple):
    canonical_marker: str
    confidence: float
    method: ResolutionMethod
    matched_alias: str | None = None


def _normalize(text: str) -> str:
    return re.sub(r"[^a-z0-9]", "", text.lower())


def _load_aliases(raw_aliases: str | None) -> list[str]:
    if not raw_aliases:
        return []
    try:
        parsed = json.loads(raw_aliases)
        if isinstance(parsed, list):
            return [str(item) for item in parsed]
    except json.JSONDecodeError:
        return []
    return []


def load_catalog(db: Session) -> dict[str, list[str]]:
    """Alias catalog as stored in ``biomarker_reference``; falls back to the built-in table."""
    rows = db.query(BiomarkerReference).all()
    if not rows:
        return {name: list(aliases) for name, aliases in MARKER_ALIASES.items()}
    return {row.standard_name: _load_aliases(row.common_aliases) for row in rows}


def normalize_alias_overrides(overrides: Mapping[str, str] | None) -> dict[str, str]:
    cleaned: dict[str, str] = {}
    for raw_key, target in (overrides or {}).items():
        key = normalize_marker_text(str(raw_key))
        if not key or not str(target).strip():
            continue
        cleaned[key] = canonicalize_marker(str(target))
    return cleaned


def _looks_like_narrative(normalized: str) -> bool:
    return len(normalized.split()) > MAX_MARKER_WORDS


def _fuzzy_match(name: str, catalog: Mapping[str, list[str]], threshold: int) -> tuple[str | None, str | None, float]:
    name_norm = _normalize(name)
    best_score = -1.0
    best_name = None
    best_alias = None
    for standard_name, aliases in catalog.items():
        for alias in [standard_name, *aliases]:
            score = fuzz.ratio(name_norm, _normalize(alias))
            if score > best_score:
                best_score, best_name, best_alias = score, standard_name, alias
    if best_score >= threshold:
        return best_name, best_alias, best_score
    return None, None, best_score


def resolve_canonical_marker(
    raw_name: str,
    overrides: Mapping[str, str] | None = None,
    mode: MatchMode = "balanced",
    catalog: Mapping[str, list[str]] | None = None,
) -> CanonicalResolution:
    """Resolve a raw lab label with a confidence score and the method that matched."""
    normalized = normalize_marker_text(raw_name or "")
    if not normalized:
        return CanonicalResolution(UNKNOWN_MARKER, 0.0, "unknown")

    override = normalize_alias_overrides(overrides).get(normalized)
    if override:
        return CanonicalResolution(override, 1.0, "override", normalized)

    exact = EXACT_ALIASES.get(normalized)
    if exact:
        return CanonicalResolution(exact, 0.99, "exact_alias", normalized)

    if _looks_like_narrative(normalized):
        return CanonicalResolution(UNKNOWN_MARKER, 0.0, "unknown")

    canonical = canonicalize_marker(raw_name)
    if canonical in MARKER_ALIASES:
        return CanonicalResolution(canonical, 0.9, "pattern")

    threshold = settings.classifier_fuzzy_threshold + MODE_THRESHOLD_OFFSETS[mode]
    match, alias, score = _fuzzy_match(raw_name, catalog or MARKER_ALIASES, threshold)
    if match is not None:
        return CanonicalResolution(match, round(0.9 * score / 100, 3), "fuzzy", alias)

    return CanonicalResolution(canonical, 0.5, "unknown")
