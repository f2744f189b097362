import pytest

from chronoclue.core.utils.text_validation import (
    coverage_era_bucket,
    derive_era,
    digit_count,
    has_leakage,
    has_proper_noun,
    is_valid_word_count,
    metadata_era_bucket,
    normalize_whitespace,
)


@pytest.mark.parametrize(
    "text",
    [
        "The treaty is signed at Westphalia in 1648",
        "A new century dawns over Rome",
        "Scholars in Baghdad mark the turn of the millennium",
        "Venice thrives in the sixteenth century",
        "Octavian takes the title Augustus, AD reckoning later begins",
        "Pilgrims arrive in Jerusalem in 33 A.D.",
        "Seventeen seventy-six brings a declaration in Philadelphia",
        "Two thousand pilgrims reach Mecca",
    ],
)
def test_has_leakage_flags_year_revealing_text(text):
    assert has_leakage(text)


@pytest.mark.parametrize(
    "text",
    [
        "Pericles addresses the assembly in Athens",
        "Nine ships leave Lisbon for the Indies",
        "Advances in Canada draw attention from London",
        "Cedric leads the advance across Wessex",
    ],
)
def test_has_leakage_allows_clean_text(text):
    assert not has_leakage(text)


@pytest.mark.parametrize(
    "text,expected",
    [
        ("Cleopatra meets envoys", True),
        ("Envoys reach Kyoto", True),
        ("The assembly votes", False),
        ("the assembly votes", False),
        ("", False),
    ],
)
def test_has_proper_noun(text, expected):
    assert has_proper_noun(text) is expected


def test_word_count_limit_is_inclusive():
    assert is_valid_word_count(" ".join(["word"] * 20))
    assert not is_valid_word_count(" ".join(["word"] * 21))
    assert is_valid_word_count("one two three", limit=3)


def test_normalize_whitespace_collapses_runs():
    assert normalize_whitespace("  Caesar \n crosses\tthe  Rubicon ") == "Caesar crosses the Rubicon"


@pytest.mark.parametrize("year,era", [(-776, "BCE"), (0, "BCE"), (1, "CE"), (2008, "CE")])
def test_derive_era(year, era):
    assert derive_era(year) == era


@pytest.mark.parametrize(
    "year,bucket",
    [(-44, "ancient"), (499, "ancient"), (500, "medieval"), (1499, "medieval"), (1500, "modern")],
)
def test_metadata_era_bucket(year, bucket):
    assert metadata_era_bucket(year) == bucket


@pytest.mark.parametrize(
    "year,bucket",
    [(-776, "ancient"), (500, "ancient"), (501, "medieval"), (1499, "medieval"), (1500, "modern")],
)
def test_coverage_era_bucket(year, bucket):
    assert coverage_era_bucket(year) == bucket


@pytest.mark.parametrize("year,digits", [(0, 1), (7, 1), (-44, 2), (-776, 3), (2008, 4), (12345, 4)])
def test_digit_count_is_clamped(year, digits):
    assert digit_count(year) == digits
