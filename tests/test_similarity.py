import pytest

from app.services.similarity import calculate_similarity


def test_similarity_is_one_minus_edit_distance_over_longer_length():
    # three edits over seven characters
    assert calculate_similarity("kitten", "sitting") == pytest.approx(1 - 3 / 7)
    assert calculate_similarity("", "abc") == 0.0


def test_similarity_ignores_case_and_whitespace():
    assert calculate_similarity("  Priya Sharma ", "priya sharma") == 1.0


def test_similarity_empty_strings_are_equal():
    assert calculate_similarity("", "") == 1.0
    assert calculate_similarity("   ", "") == 1.0


def test_similarity_scales_with_distance():
    # one insertion over ten characters
    assert calculate_similarity("jon smith", "john smith") == pytest.approx(0.9)
    assert calculate_similarity("abc", "xyz") == 0.0


def test_similarity_is_symmetric():
    assert calculate_similarity("Bloom Florals", "Blooms Floral") == calculate_similarity(
        "Blooms Floral", "Bloom Florals"
    )
