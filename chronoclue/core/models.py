"""Domain models shared across pipeline stages.

Everything that crosses the LLM boundary is a pydantic model so a malformed
response fails validation at the point it is received. Content-level problems
(metadata out of range, unknown categories) are left to the quality gate.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from chronoclue.core.exceptions.pipeline import ContractViolationError

Era = Literal["BCE", "CE"]
EraBucket = Literal["ancient", "medieval", "modern"]

ERA_BUCKETS: tuple[EraBucket, ...] = ("ancient", "medieval", "modern")


class LeakFlags(BaseModel):
    """Self-reported leakage flags attached by the generator."""

    model_config = ConfigDict(frozen=True)

    has_digits: bool = False
    has_century_terms: bool = False
    has_spelled_year: bool = False

    def any(self) -> bool:
        return self.has_digits or self.has_century_terms or self.has_spelled_year


class EventMetadata(BaseModel):
    """Optional enrichment used for diversity-aware puzzle composition."""

    model_config = ConfigDict(frozen=True)

    difficulty: int | None = None
    category: list[str] | None = None
    era: str | None = None
    fame_level: int | None = None
    tags: list[str] | None = None

    def present_fields(self) -> list[str]:
        return [name for name, value in self.model_dump().items() if value is not None]


class CandidateEvent(BaseModel):
    """A proposed clue for a target year."""

    model_config = ConfigDict(frozen=True)

    canonical_title: str
    event_text: str
    geo: str
    difficulty_guess: int = Field(ge=1, le=5)
    confidence: float = Field(ge=0.0, le=1.0)
    leak_flags: LeakFlags = Field(default_factory=LeakFlags)
    metadata: EventMetadata | None = None


class ScoreVector(BaseModel):
    """Critic scores, each in [0, 1]."""

    model_config = ConfigDict(frozen=True)

    factual: float = Field(ge=0.0, le=1.0)
    leak_risk: float = Field(ge=0.0, le=1.0)
    ambiguity: float = Field(ge=0.0, le=1.0)
    guessability: float = Field(ge=0.0, le=1.0)
    diversity: float | None = Field(default=None, ge=0.0, le=1.0)


class CritiqueResult(BaseModel):
    """One candidate with its scores and verdict for a single critique cycle."""

    model_config = ConfigDict(frozen=True)

    event: CandidateEvent
    passed: bool
    scores: ScoreVector
    issues: list[str] = Field(default_factory=list)
    rewrite_hints: list[str] = Field(default_factory=list)


class GeneratorYear(BaseModel):
    value: int
    era: Era
    digits: int = Field(ge=1, le=4)


class GeneratorOutput(BaseModel):
    year: GeneratorYear
    candidates: list[CandidateEvent]


class CriticVerdict(BaseModel):
    """Model-side verdict for one candidate. The echoed event is ignored."""

    passed: bool
    scores: ScoreVector
    issues: list[str] = Field(default_factory=list)
    rewrite_hints: list[str] = Field(default_factory=list)
    event: dict[str, Any] | None = None


class CriticOutput(BaseModel):
    critiques: list[CriticVerdict]


class ReviserOutput(BaseModel):
    rewrites: list[CandidateEvent]


def parse_model_output(model: type[BaseModel], data: Any, stage: str) -> Any:
    """Validate a structured LLM payload, converting failures to contract violations."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ContractViolationError(
            f"{stage} response does not match {model.__name__}: {e.error_count()} error(s): {e}"
        ) from e
