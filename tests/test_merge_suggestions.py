import pytest

from backend.services.merge_suggestions import detect_marker_merge_suggestions, marker_similarity


def test_similarity_is_symmetric_and_bounded():
    pairs = [("Testosterone", "Testosterone Serum"), ("LDL Cholesterol", "HDL Cholesterol"), ("TSH", "Ferritin")]
    for left, right in pairs:
        score = marker_similarity(left, right)
        assert score == marker_similarity(right, left)
        assert 0.0 <= score <= 1.0
    assert marker_similarity("SHBG", "shbg") == 1.0


def test_contained_name_is_suggested():
    suggestions = detect_marker_merge_suggestions(["Testosterone Serum"], ["Testosterone", "Estradiol"])
    assert len(suggestions) == 1
    assert suggestions[0].source_canonical == "Testosterone Serum"
    assert suggestions[0].target_canonical == "Testosterone"
    assert suggestions[0].score == 0.9


def test_known_and_unknown_markers_are_skipped():
    assert detect_marker_merge_suggestions(["Testosterone", "Unknown Marker"], ["Testosterone"]) == []


def test_urine_and_blood_are_never_merged():
    assert detect_marker_merge_suggestions(["Creatinine Urine"], ["Creatinine"]) == []


def test_threshold_is_respected():
    assert detect_marker_merge_suggestions(["Testosterone Serum"], ["Testosterone"], threshold=0.95) == []


def test_similarity_counts_word_boundary_bigrams():
    # tokens 2/3 shared, bigrams (spaces included) 10/12 shared
    assert marker_similarity("Free T4 Serum", "Free T3 Serum") == pytest.approx(0.725)
