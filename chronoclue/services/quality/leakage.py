"""Semantic leakage validator.

Scores clue text against a library of phrases known to give the year away.
Texts are embedded as hashed bag-of-words vectors so the check is
deterministic and needs no external service. The library grows as the
critic rejects clues with a high blended leak risk.
"""

import hashlib
import json
import re
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np
from loguru import logger

from chronoclue.core.constants import (
    LEARNED_PHRASE_MAX_CHARS,
    METADATA_QUALITY_MIN,
    SEMANTIC_LEAKAGE_MAX,
)
from chronoclue.core.models import EventMetadata
from chronoclue.services.quality.phrase_store import LeakPhraseStore

SEED_PHRASES_PATH = Path(__file__).resolve().parents[2] / "data" / "leaky_phrases.json"

METADATA_FIELDS = ("difficulty", "category", "era", "fame_level", "tags")

# Placeholder scores for dimensions the validator does not measure
NEUTRAL_SCORE = 0.5

_TOKEN = re.compile(r"[a-z0-9]+")
_STOPWORDS = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "by", "for", "from", "in",
        "into", "is", "it", "its", "of", "on", "or", "that", "the", "their",
        "this", "to", "was", "were", "with",
    }
)


@dataclass
class LeakyPhrase:
    phrase: str
    year_range: tuple[int, int]
    embedding: np.ndarray = field(repr=False)
    learned: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"phrase": self.phrase, "year_range": list(self.year_range)}


@dataclass(frozen=True)
class LeakageScore:
    score: float
    closest: LeakyPhrase | None = None


@dataclass(frozen=True)
class ValidatorScores:
    semantic_leakage: float
    metadata_quality: float
    factual: float = NEUTRAL_SCORE
    ambiguity: float = NEUTRAL_SCORE
    guessability: float = NEUTRAL_SCORE


@dataclass(frozen=True)
class ValidationResult:
    passed: bool
    scores: ValidatorScores
    reasoning: str
    suggestions: list[str] = field(default_factory=list)


def tokenize(text: str) -> list[str]:
    return [token for token in _TOKEN.findall(text.lower()) if token not in _STOPWORDS]


def _bucket(token: str, dims: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big") % dims


class SemanticLeakageDetector:
    """Nearest-phrase leakage scorer over hashed bag-of-words embeddings."""

    def __init__(
        self,
        phrases: Iterable[dict[str, Any]] | None = None,
        dims: int = 256,
        phrases_file: Path | None = SEED_PHRASES_PATH,
    ):
        """Initialize detector.

        Args:
            phrases: Seed entries ({"phrase", "year_range"}); loaded from
                ``phrases_file`` when omitted
            dims: Embedding dimensionality
            phrases_file: JSON seed library
        """
        if dims < 2:
            raise ValueError(f"dims must be at least 2, got {dims}")
        self._dims = dims
        self._lock = threading.Lock()
        self._phrases: list[LeakyPhrase] = []
        self._matrix: np.ndarray | None = None

        if phrases is None:
            phrases = self._load_seed_file(phrases_file)
        for entry in phrases:
            self._phrases.append(self._make_phrase(entry, learned=False))

    @property
    def dims(self) -> int:
        return self._dims

    @property
    def phrases(self) -> list[LeakyPhrase]:
        with self._lock:
            return list(self._phrases)

    @property
    def learned_count(self) -> int:
        with self._lock:
            return sum(1 for phrase in self._phrases if phrase.learned)

    def embed(self, text: str) -> np.ndarray:
        """Hashed bag-of-words vector, L2-normalized (all zeros for empty text)."""
        vector = np.zeros(self._dims, dtype=np.float64)
        for token in tokenize(text):
            vector[_bucket(token, self._dims)] += 1.0
        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return vector

    def score(self, text: str) -> LeakageScore:
        with self._lock:
            if not self._phrases:
                return LeakageScore(score=0.0)
            if self._matrix is None:
                self._matrix = np.vstack([phrase.embedding for phrase in self._phrases])
            matrix = self._matrix
            phrases = list(self._phrases)

        query = self.embed(text)
        if not query.any():
            return LeakageScore(score=0.0)

        # Rows and query are unit vectors, so the dot product is the cosine
        similarities = matrix @ query
        best = int(np.argmax(similarities))
        best_score = float(similarities[best])
        if best_score <= 0:
            return LeakageScore(score=0.0)
        return LeakageScore(score=min(1.0, max(0.0, best_score)), closest=phrases[best])

    def contains(self, phrase: str) -> bool:
        with self._lock:
            return any(existing.phrase == phrase for existing in self._phrases)

    def add_phrase(
        self, phrase: str, year_range: tuple[int, int], max_learned: int | None = None
    ) -> bool:
        """Add a learned phrase; returns False if it is already known.

        When ``max_learned`` is set, the oldest learned phrases are evicted to
        stay within it. Seed phrases are never evicted.
        """
        entry = self._make_phrase({"phrase": phrase, "year_range": year_range}, learned=True)
        with self._lock:
            if any(existing.phrase == entry.phrase for existing in self._phrases):
                return False
            self._phrases.append(entry)
            if max_learned is not None:
                self._evict_learned(max_learned)
            self._matrix = None
            return True

    def _evict_learned(self, max_learned: int) -> None:
        """Drop oldest learned phrases beyond the cap (must hold lock)."""
        learned = [phrase for phrase in self._phrases if phrase.learned]
        excess = len(learned) - max_learned
        if excess <= 0:
            return
        evicted = {id(phrase) for phrase in learned[:excess]}
        self._phrases = [phrase for phrase in self._phrases if id(phrase) not in evicted]
        logger.debug(f"Evicted {excess} learned leak phrase(s)")

    def _make_phrase(self, entry: dict[str, Any], learned: bool) -> LeakyPhrase:
        year_range = entry.get("year_range") or (0, 0)
        return LeakyPhrase(
            phrase=str(entry["phrase"]),
            year_range=(int(year_range[0]), int(year_range[1])),
            embedding=self.embed(str(entry["phrase"])),
            learned=learned,
        )

    @staticmethod
    def _load_seed_file(path: Path | None) -> list[dict[str, Any]]:
        if path is None:
            return []
        store_path = Path(path)
        if not store_path.exists():
            logger.warning(f"Leak phrase seed file not found: {store_path}")
            return []
        try:
            data = json.loads(store_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse leak phrase seed file {store_path}: {e}")
            return []
        return [entry for entry in data if isinstance(entry, dict) and entry.get("phrase")]


def score_metadata(metadata: EventMetadata | dict[str, Any] | None) -> float:
    """Share of the standard metadata fields that are present."""
    if metadata is None:
        return 0.0
    if isinstance(metadata, EventMetadata):
        present = set(metadata.present_fields())
    elif isinstance(metadata, dict):
        present = {key for key, value in metadata.items() if value is not None}
    else:
        return 0.0
    return sum(1 for key in METADATA_FIELDS if key in present) / len(METADATA_FIELDS)


class QualityValidator:
    """Independent, non-probabilistic second opinion for the critic."""

    def __init__(
        self,
        detector: SemanticLeakageDetector | None = None,
        phrase_store: LeakPhraseStore | None = None,
        max_learned_phrases: int = 10_000,
    ):
        self._detector = detector or SemanticLeakageDetector()
        self._store = phrase_store
        self._max_learned = max_learned_phrases

        if self._store is not None:
            restored = 0
            for entry in self._store.load():
                if self._detector.add_phrase(
                    entry["phrase"],
                    tuple(entry.get("year_range") or (0, 0)),
                    max_learned=self._max_learned,
                ):
                    restored += 1
            if restored:
                logger.info(f"Restored {restored} learned leak phrases from {self._store.path}")

    @property
    def detector(self) -> SemanticLeakageDetector:
        return self._detector

    def validate_event(
        self,
        event_text: str,
        year: int,
        metadata: EventMetadata | dict[str, Any] | None = None,
    ) -> ValidationResult:
        leak = self._detector.score(event_text)
        metadata_quality = score_metadata(metadata)
        scores = ValidatorScores(
            semantic_leakage=leak.score, metadata_quality=metadata_quality
        )

        suggestions = []
        if leak.score >= SEMANTIC_LEAKAGE_MAX:
            suggestions.append("Remove phrases that reveal the year")
        if metadata_quality < METADATA_QUALITY_MIN:
            suggestions.append("Add/normalize metadata fields")

        if leak.closest is not None:
            reasoning = f'Closest leak phrase: "{leak.closest.phrase}" (score {leak.score:.2f})'
        else:
            reasoning = "No strong leakage detected"

        return ValidationResult(
            passed=leak.score < SEMANTIC_LEAKAGE_MAX
            and metadata_quality >= METADATA_QUALITY_MIN,
            scores=scores,
            reasoning=reasoning,
            suggestions=suggestions,
        )

    def learn_from_rejected(self, event_text: str, year_range: tuple[int, int]) -> bool:
        """Feed a rejected clue back into the phrase library.

        Returns:
            True if the phrase was new
        """
        if not event_text.strip():
            return False
        phrase = event_text.lower()[:LEARNED_PHRASE_MAX_CHARS]
        added = self._detector.add_phrase(phrase, year_range, max_learned=self._max_learned)
        if not added:
            return False

        logger.debug(f"Learned leak phrase for {year_range}: {phrase!r}")
        if self._store is not None:
            try:
                self._store.append(
                    {"phrase": phrase, "year_range": list(year_range)},
                    max_entries=self._max_learned,
                )
            except OSError as e:
                logger.warning(f"Failed to persist learned leak phrase: {e}")
        return True
