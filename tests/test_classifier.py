from backend.services.classifier import normalize_alias_overrides, resolve_canonical_marker


def test_exact_alias():
    resolution = resolve_canonical_marker("Testosteron totaal")
    assert resolution.canonical_marker == "Testosterone"
    assert resolution.method == "exact_alias"
    assert resolution.confidence == 0.99


def test_override_takes_precedence():
    resolution = resolve_canonical_marker("TT serum", overrides={"TT Serum": "Testosterone"})
    assert resolution.canonical_marker == "Testosterone"
    assert resolution.method == "override"
    assert resolution.confidence == 1.0


def test_pattern_match_for_free_testosterone():
    resolution = resolve_canonical_marker("Testosterone free, dialysis")
    assert resolution.canonical_marker == "Free Testosterone"
    assert resolution.method == "pattern"


def test_fuzzy_match_for_typo():
    resolution = resolve_canonical_marker("Hematocrt")
    assert resolution.canonical_marker == "Hematocrit"
    assert resolution.method == "fuzzy"
    assert 0 < resolution.confidence < 0.9


def test_narrative_text_is_unknown():
    resolution = resolve_canonical_marker("This result should be interpreted with caution by your doctor")
    assert resolution.canonical_marker == "Unknown Marker"
    assert resolution.confidence == 0.0


def test_unmatched_label_passes_through():
    resolution = resolve_canonical_marker("Zonuline")
    assert resolution.canonical_marker == "Zonuline"
    assert resolution.method == "unknown"


def test_override_keys_are_normalized():
    assert normalize_alias_overrides({" HKT (calc) ": "hematocriet", "": "x"}) == {"hkt calc": "Hematocrit"}
