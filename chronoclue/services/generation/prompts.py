"""Prompt templates for the generator, critic and reviser stages."""

import json
from collections.abc import Sequence

from chronoclue.core.constants import ALLOWED_CATEGORIES, MAX_CLUE_WORDS
from chronoclue.core.models import CandidateEvent, CritiqueResult, Era
from chronoclue.core.utils.text_validation import digit_count

GENERATOR_SYSTEM_PROMPT = f"""You are the Chronoclue Generator, a historian and puzzle maker writing clues for a daily year-guessing game.

CRITICAL RULES:
1. Every event MUST come from the exact target year provided
2. No numerals of ten or more (write "twelve" not "12")
3. No century, decade or millennium terms
4. No BCE/CE/AD/BC terminology
5. Present tense, at most {MAX_CLUE_WORDS} words per event
6. Include proper nouns (people, places, institutions)
7. Vary topics across politics, science, culture, technology, sports, economy, war, religion and exploration
8. Vary geography: include several regions, not only Western events

OUTPUT: Valid JSON matching the schema, with 12-18 diverse candidates.

ANCIENT YEARS (one to three digits):
- Prefer figure-centric clues such as "Caesar falls at the Theatre of Pompey"
- Name dynasties, rulers and cultural movements without date indicators

If the year has few documented events, focus on what IS known rather than forcing diversity."""

CRITIC_SYSTEM_PROMPT = """You are the Chronoclue Critic, a precision editor scoring historical event clues.

SCORING CRITERIA (0-1 scale):
- factual: Is this event real and accurately dated?
- leak_risk: Could this clue reveal the year? (0 = no risk, 1 = obvious giveaway)
- ambiguity: Could this event be confused with adjacent years?
- guessability: Does this help players infer the year? (0 = useless, 1 = perfect hint)
- diversity: Does this add topical or geographic variety to the set?

PASS THRESHOLDS:
- factual >= 0.75
- leak_risk <= 0.15
- ambiguity <= 0.25
- guessability >= 0.4

For failing events give brief issues (1-2 words each) and rewrite_hints (3-5 words each).
Keep arrays short."""

REVISER_SYSTEM_PROMPT = f"""You are the Chronoclue Reviser. Rewrite ONLY the failing events using the critic's feedback.

KEEP ALL CONSTRAINTS:
- Present tense, at most {MAX_CLUE_WORDS} words
- No numerals of ten or more, no century/decade/BCE/CE terms
- Include proper nouns

REWRITING STRATEGIES:
- Drop dates and numbers: "Napoleon is crowned" not "Napoleon is crowned in 1804"
- Prefer proper nouns: "Paris" not "the capital"
- Change the framing and verbs while keeping the historical fact

OUTPUT: Valid JSON with the rewritten events."""

_EARLY_CE_CONTEXT = (
    "Context: Early Roman Empire period. Focus on emperors, dynasties and major figures.",
    "Possible figures: emperors (Augustus, Tiberius, Nero, Vespasian, Trajan), philosophers, military leaders.",
    "Cultural movements: early Christianity, Roman architecture, Silk Road trade.",
    "Prefer figure-centric events: 'Emperor X ascends the throne' rather than 'Rome experiences change'.",
)

_BCE_CONTEXT = (
    "Context: Ancient world. Emphasize specific figures and dynasties.",
    "Build events around people: 'Caesar conquers Gaul' NOT 'Rome expands territory'.",
    "Key civilizations: Egypt (pharaohs), Greece (philosophers, city-states), Rome (consuls, generals), Persia (kings), China (dynasties).",
    "Use active voice with named individuals.",
)

_HELLENISTIC_CONTEXT = (
    "Hellenistic period: Alexander's successors, Ptolemies, Seleucids, Roman Republic expansion."
)
_CLASSICAL_CONTEXT = (
    "Classical period: Greek city-states, Persian Empire, early Roman Republic, Warring States China."
)
_EARLY_CIVILIZATIONS_CONTEXT = (
    "Early civilizations: Bronze Age, early dynasties, formation of major cultural centers."
)

_EARLY_MODERN_CONTEXT = (
    "Context: Early modern period. Renaissance, Reformation, Age of Exploration.",
    "Contemporaries: Europe, the Ottoman Empire, Ming/Qing China, Mughal India, Aztec and Inca empires.",
    "Topics: religious conflicts, voyages of exploration, scientific discoveries, artistic movements, dynastic changes.",
    "If documentation is limited, prioritize known figures and major political changes.",
)


def year_label(year: int, era: Era) -> int:
    return abs(year) if era == "BCE" else year


def era_context(year: int, era: Era) -> str:
    """Extra guidance for sparsely documented periods (empty for well-covered years)."""
    digits = digit_count(year)
    absolute = abs(year)

    if era == "CE" and digits <= 2:
        lines = list(_EARLY_CE_CONTEXT)
    elif era == "BCE":
        lines = list(_BCE_CONTEXT)
        # Larger BCE numbers are earlier
        if 30 <= absolute <= 300:
            lines.append(_HELLENISTIC_CONTEXT)
        elif 300 < absolute <= 500:
            lines.append(_CLASSICAL_CONTEXT)
        elif absolute > 500:
            lines.append(_EARLY_CIVILIZATIONS_CONTEXT)
    elif era == "CE" and 1500 <= year <= 1700 and digits == 4:
        lines = list(_EARLY_MODERN_CONTEXT)
    else:
        return ""

    return "\n\n" + "\n".join(lines)


def build_generator_prompt(year: int, era: Era, min_count: int = 12, max_count: int = 18) -> str:
    label = year_label(year, era)
    digits = digit_count(year)
    categories = json.dumps(list(ALLOWED_CATEGORIES))

    return f"""Target year: {label} ({era}){era_context(year, era)}

Generate {min_count}-{max_count} historical events that occurred in {label} {era}.

Requirements:
- All events from {label} exactly
- Present tense, at most {MAX_CLUE_WORDS} words
- No year leakage (no numbers of ten or more, no century terms)
- Topical diversity and geographic diversity (not all Western)
- Difficulty range: mix obscure (1-2) and recognizable (4-5)
- For each event, estimate metadata:
  - difficulty (1-5)
  - category array drawn from {categories}
  - era bucket: "ancient" (<500 CE), "medieval" (500-1500 CE), "modern" (1500+ CE)
  - fame_level (1-5): how well known the event is
  - tags: 2-5 short free-form strings

Return JSON in this EXACT format:
{{
  "year": {{"value": {year}, "era": "{era}", "digits": {digits}}},
  "candidates": [
    {{
      "canonical_title": "Brief title",
      "event_text": "Present tense description under {MAX_CLUE_WORDS} words",
      "geo": "Geographic region or country",
      "difficulty_guess": 3,
      "confidence": 0.8,
      "leak_flags": {{"has_digits": false, "has_century_terms": false, "has_spelled_year": false}},
      "metadata": {{
        "difficulty": 3,
        "category": ["politics", "science"],
        "era": "modern",
        "fame_level": 4,
        "tags": ["industrial", "europe"]
      }}
    }}
  ]
}}"""


def build_critic_prompt(year: int, era: Era, candidates: Sequence[CandidateEvent]) -> str:
    payload = json.dumps(
        [candidate.model_dump(exclude_none=True) for candidate in candidates], indent=2
    )
    return f"""Target year: {year_label(year, era)} ({era})

Evaluate these candidate events for quality and year leakage.

Candidates:
{payload}

CRITICAL: Your response MUST be a valid JSON array starting with [ and ending with ].
Return EXACTLY {len(candidates)} critique objects, in the same order as the candidates:

[
  {{
    "passed": true,
    "scores": {{"factual": 0.9, "leak_risk": 0.1, "ambiguity": 0.2, "guessability": 0.7, "diversity": 0.8}},
    "issues": [],
    "rewrite_hints": []
  }}
]

BE CONCISE: issues and hints at most 1-5 words each."""


def build_reviser_prompt(year: int, era: Era, failing: Sequence[CritiqueResult]) -> str:
    payload = json.dumps(
        [
            {
                "event": failure.event.model_dump(exclude_none=True),
                "issues": failure.issues,
                "hints": failure.rewrite_hints,
            }
            for failure in failing
        ],
        indent=2,
    )
    return f"""Target year: {year_label(year, era)} ({era})

Rewrite these failing events using the critic's hints.

Failing events:
{payload}

CRITICAL: Your response MUST be a valid JSON array starting with [ and ending with ].
Return EXACTLY {len(failing)} rewritten events, in the same order, in this format:

[
  {{
    "canonical_title": "Brief title",
    "event_text": "Improved clue text",
    "geo": "Geographic location",
    "difficulty_guess": 3,
    "confidence": 0.8,
    "leak_flags": {{"has_digits": false, "has_century_terms": false, "has_spelled_year": false}},
    "metadata": {{"difficulty": 3, "category": ["politics"], "era": "modern", "fame_level": 3, "tags": ["europe"]}}
  }}
]"""
