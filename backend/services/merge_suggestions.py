import re
from collections.abc import Iterable

from backend.config import settings
from backend.schemas.analytics import MarkerMergeSuggestion
from backend.services.unit_conversion import UNKNOWN_MARKER, normalize_marker_text

TOKEN_WEIGHT = 0.65
BIGRAM_WEIGHT = 0.35
CONTAINMENT_SCORE = 0.9

_URINE_RE = re.compile(r"\burine\b")


def _dice(left: set, right: set) -> float:
    if not left and not right:
        return 0.0
    return 2 * len(left & right) / (len(left) + len(right))


def _bigrams(text: str) -> set[str]:
    # Spaces stay in so word boundaries count as bigrams.
    return {text[i:i + 2] for i in range(len(text) - 1)}


def marker_similarity(left: str, right: str) -> float:
    a = normalize_marker_text(left)
    b = normalize_marker_text(right)
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    if a in b or b in a:
        return CONTAINMENT_SCORE
    token_score = _dice(set(a.split()), set(b.split()))
    bigram_score = _dice(_bigrams(a), _bigrams(b))
    return TOKEN_WEIGHT * token_score + BIGRAM_WEIGHT * bigram_score


def marker_specimen(name: str) -> str:
    return "urine" if _URINE_RE.search(normalize_marker_text(name)) else "blood"


def detect_marker_merge_suggestions(
    incoming: Iterable[str],
    existing: Iterable[str],
    threshold: float | None = None,
) -> list[MarkerMergeSuggestion]:
    threshold = settings.merge_suggestion_threshold if threshold is None else threshold
    known = list(dict.fromkeys(existing))
    known_set = set(known)

    best_by_pair: dict[tuple[str, str], float] = {}
    for source in dict.fromkeys(incoming):
        if source in known_set or source == UNKNOWN_MARKER:
            continue
        specimen = marker_specimen(source)
        best_target, best_score = None, 0.0
        for target in known:
            if target == UNKNOWN_MARKER or marker_specimen(target) != specimen:
                continue
            score = marker_similarity(source, target)
            if score > best_score:
                best_target, best_score = target, score
        if best_target is None or best_score < threshold:
            continue
        pair = (source, best_target)
        best_by_pair[pair] = max(best_by_pair.get(pair, 0.0), best_score)

    return [
        MarkerMergeSuggestion(source_canonical=source, target_canonical=target, score=round(score, 2))
        for (source, target), score in best_by_pair.items()
    ]
