"""Quality score snapshots persisted with each generation log entry."""

from collections.abc import Sequence
from dataclasses import asdict, dataclass, field
from typing import Any

from chronoclue.core.models import CandidateEvent, CritiqueResult

QUALITY_SCORES_VERSION = 1

# overall = sum(weight * dimension), with leak_risk and ambiguity inverted
OVERALL_WEIGHTS = {
    "factual": 0.35,
    "guessability": 0.35,
    "leak_risk": 0.2,
    "ambiguity": 0.1,
}


@dataclass(frozen=True)
class ScoreAverages:
    factual: float = 0.0
    leak_risk: float = 0.0
    ambiguity: float = 0.0
    guessability: float = 0.0
    diversity: float | None = None

    def to_dict(self) -> dict[str, float]:
        data = asdict(self)
        if self.diversity is None:
            data.pop("diversity")
        return data


@dataclass(frozen=True)
class QualityScores:
    """Aggregate critic scores for one run."""

    version: int = QUALITY_SCORES_VERSION
    candidate_count: int = 0
    pass_count: int = 0
    selected_count: int = 0
    avg: ScoreAverages = field(default_factory=ScoreAverages)
    selected_avg: ScoreAverages = field(default_factory=ScoreAverages)
    overall: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "candidateCount": self.candidate_count,
            "passCount": self.pass_count,
            "selectedCount": self.selected_count,
            "avg": self.avg.to_dict(),
            "selectedAvg": self.selected_avg.to_dict(),
            "overall": self.overall,
        }


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def _average(critiques: Sequence[CritiqueResult]) -> ScoreAverages:
    if not critiques:
        return ScoreAverages()

    count = len(critiques)
    diversities = [c.scores.diversity for c in critiques if c.scores.diversity is not None]
    return ScoreAverages(
        factual=sum(c.scores.factual for c in critiques) / count,
        leak_risk=sum(c.scores.leak_risk for c in critiques) / count,
        ambiguity=sum(c.scores.ambiguity for c in critiques) / count,
        guessability=sum(c.scores.guessability for c in critiques) / count,
        # Missing diversity counts as zero
        diversity=sum(diversities) / count if diversities else None,
    )


def overall_score(averages: ScoreAverages) -> float:
    raw = (
        OVERALL_WEIGHTS["factual"] * averages.factual
        + OVERALL_WEIGHTS["guessability"] * averages.guessability
        + OVERALL_WEIGHTS["leak_risk"] * (1 - averages.leak_risk)
        + OVERALL_WEIGHTS["ambiguity"] * (1 - averages.ambiguity)
    )
    return round(_clamp01(raw), 4)


def compute_quality_scores(
    critiques: Sequence[CritiqueResult], selected: Sequence[CandidateEvent]
) -> QualityScores:
    """Summarize a critique set and the events selected from it.

    Selected events are matched back to critiques by exact clue text; when
    nothing matches, the selected average falls back to the overall one.
    """
    if not critiques:
        return QualityScores()

    avg = _average(critiques)
    selected_texts = {event.event_text for event in selected}
    matched = [c for c in critiques if c.event.event_text in selected_texts]
    selected_avg = _average(matched) if matched else avg

    return QualityScores(
        candidate_count=len(critiques),
        pass_count=sum(1 for c in critiques if c.passed),
        selected_count=len(selected),
        avg=avg,
        selected_avg=selected_avg,
        overall=overall_score(selected_avg),
    )
