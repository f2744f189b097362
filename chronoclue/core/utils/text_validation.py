"""Deterministic clue text checks and era helpers."""

import re

from chronoclue.core.constants import MAX_CLUE_WORDS
from chronoclue.core.models import Era, EraBucket

# Numerals of two or more digits reveal too much; single digits are allowed.
_MULTI_DIGIT = re.compile(r"\d{2,}")
_CENTURY_TERMS = re.compile(
    r"\b(centur(?:y|ies)|millenni(?:um|a)|decades?)\b", re.IGNORECASE
)
_ORDINAL_CENTURY = re.compile(
    r"\b(?:\d+(?:st|nd|rd|th)|first|second|third|fourth|fifth|sixth|seventh|eighth|"
    r"ninth|tenth|eleventh|twelfth|thirteenth|fourteenth|fifteenth|sixteenth|"
    r"seventeenth|eighteenth|nineteenth|twentieth|twenty-first)[\s-]+century\b",
    re.IGNORECASE,
)
# Era markers are matched case-sensitively so "ad" and "ce" inside words don't trip it.
_ERA_MARKERS = re.compile(r"\b(?:BCE|CE|BC|AD)\b|\b(?:A\.D\.|B\.C\.|B\.C\.E\.|C\.E\.)")
_SPELLED_YEAR = re.compile(
    r"\b(?:ten|eleven|twelve|thirteen|fourteen|fifteen|sixteen|seventeen|eighteen|"
    r"nineteen|twenty)[\s-]+(?:hundred|oh|o'|"
    r"(?:ten|eleven|twelve|thirteen|fourteen|fifteen|sixteen|seventeen|eighteen|nineteen)|"
    r"(?:twenty|thirty|forty|fifty|sixty|seventy|eighty|ninety)(?:[\s-]+\w+)?)\b",
    re.IGNORECASE,
)
_THOUSAND = re.compile(r"\b(?:one|two)\s+thousand\b", re.IGNORECASE)

_WORD = re.compile(r"[A-Za-z][A-Za-z'\-]*")

# Capitalized sentence openers that are not proper nouns
_COMMON_OPENERS = frozenset(
    {
        "a", "an", "the", "in", "on", "at", "after", "before", "during", "as",
        "while", "when", "with", "without", "from", "for", "by", "of", "to",
        "new", "this", "that", "these", "those", "some", "many", "several",
        "two", "three", "four", "five", "six", "seven", "eight", "nine", "one",
        "his", "her", "its", "their", "our", "local", "rival", "royal",
    }
)


def has_leakage(text: str) -> bool:
    """Check whether clue text reveals its year directly."""
    return any(
        pattern.search(text)
        for pattern in (
            _MULTI_DIGIT,
            _CENTURY_TERMS,
            _ORDINAL_CENTURY,
            _ERA_MARKERS,
            _SPELLED_YEAR,
            _THOUSAND,
        )
    )


def has_proper_noun(text: str) -> bool:
    """Check whether clue text names a person, place or institution."""
    words = _WORD.findall(text)
    if not words:
        return False
    if any(word[0].isupper() for word in words[1:]):
        return True
    first = words[0]
    return first[0].isupper() and first.lower() not in _COMMON_OPENERS


def is_valid_word_count(text: str, limit: int = MAX_CLUE_WORDS) -> bool:
    return len(text.split()) <= limit


def normalize_whitespace(value: str) -> str:
    return " ".join(value.split())


def derive_era(year: int) -> Era:
    """Year 0 and below are BCE."""
    return "BCE" if year <= 0 else "CE"


def metadata_era_bucket(year: int) -> EraBucket:
    """Era bucket the generator is asked to tag clues with."""
    if year < 500:
        return "ancient"
    if year < 1500:
        return "medieval"
    return "modern"


def coverage_era_bucket(year: int) -> EraBucket:
    """Era bucket used for inventory coverage and batch balancing (500 is ancient)."""
    if year <= 500:
        return "ancient"
    if year <= 1499:
        return "medieval"
    return "modern"


def digit_count(year: int) -> int:
    """Number of digits in |year|, clamped to [1, 4]."""
    return min(4, max(1, len(str(abs(int(year))))))
