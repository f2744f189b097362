"""Quality gate: deterministic checks, model critique and semantic validation.

Each candidate is judged by three independent checks whose verdicts are
merged into a single CritiqueResult. The merged leak risk blends the model
score with the semantic validator so neither can wave a leaky clue through
on its own.
"""

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger
from pydantic import TypeAdapter

from chronoclue.core.constants import (
    ALLOWED_CATEGORIES,
    AMBIGUITY_MAX,
    FACTUAL_MIN,
    GUESSABILITY_MIN,
    LEAK_LEARNING_THRESHOLD,
    LEAK_RISK_MAX,
    LLM_LEAK_WEIGHT,
    MAX_CLUE_WORDS,
    VALIDATOR_LEAK_WEIGHT,
)
from chronoclue.core.exceptions import ContractViolationError
from chronoclue.core.models import (
    CandidateEvent,
    CriticOutput,
    CriticVerdict,
    CritiqueResult,
    Era,
    ScoreVector,
    parse_model_output,
)
from chronoclue.core.utils.stage_logging import log_stage_error, log_stage_success
from chronoclue.core.utils.text_validation import (
    has_leakage,
    has_proper_noun,
    is_valid_word_count,
    metadata_era_bucket,
)
from chronoclue.interfaces.llm_provider import LLMProvider
from chronoclue.services.generation.models import CritiqueOutcome, LLMCallInfo
from chronoclue.services.generation.prompts import CRITIC_SYSTEM_PROMPT, build_critic_prompt
from chronoclue.services.quality.leakage import QualityValidator, ValidationResult

STAGE = "Critic"

VALIDATOR_ISSUE = "Validator flagged potential leakage"

_CRITIC_SCHEMA = TypeAdapter(list[CriticVerdict]).json_schema()


@dataclass
class CheckResult:
    issues: list[str] = field(default_factory=list)
    rewrite_hints: list[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return bool(self.issues)

    def add(self, issue: str, hint: str) -> None:
        self.issues.append(issue)
        self.rewrite_hints.append(hint)


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def dedupe(values: Iterable[str]) -> list[str]:
    """Drop empty strings and repeats, keeping first occurrence order."""
    return list(dict.fromkeys(value for value in values if value))


def validate_metadata(candidate: CandidateEvent, year: int) -> CheckResult:
    result = CheckResult()
    metadata = candidate.metadata
    if metadata is None:
        result.add("Missing metadata", "Add difficulty, category, era, fame_level, tags")
        return result

    if metadata.difficulty is not None and not 1 <= metadata.difficulty <= 5:
        result.add("Metadata difficulty out of range", "Set difficulty between 1 and 5")
    if metadata.fame_level is not None and not 1 <= metadata.fame_level <= 5:
        result.add("Metadata fame_level out of range", "Set fame_level between 1 and 5")
    if metadata.category and any(cat not in ALLOWED_CATEGORIES for cat in metadata.category):
        result.add("Metadata category not in allowed list", "Use allowed categories only")

    expected_era = metadata_era_bucket(year)
    if metadata.era and metadata.era != expected_era:
        result.add("Metadata era does not match year", f"Set era to {expected_era}")
    return result


def run_deterministic_checks(candidate: CandidateEvent, year: int) -> CheckResult:
    result = CheckResult()
    text = candidate.event_text

    if candidate.leak_flags.any() or has_leakage(text):
        result.add(
            "Contains year leakage (numbers, century terms, or BCE/CE references)",
            "Remove numbers of ten or more, century references, and BCE/CE terms",
        )
    if not is_valid_word_count(text, MAX_CLUE_WORDS):
        result.add(
            f"Exceeds {MAX_CLUE_WORDS}-word limit",
            f"Condense clue to {MAX_CLUE_WORDS} words or fewer",
        )
    if not has_proper_noun(text):
        result.add(
            "Missing proper noun to anchor the clue",
            "Add a specific person, place, or institution",
        )

    metadata_result = validate_metadata(candidate, year)
    result.issues.extend(metadata_result.issues)
    result.rewrite_hints.extend(metadata_result.rewrite_hints)
    return result


def enforce_thresholds(scores: ScoreVector) -> CheckResult:
    result = CheckResult()
    if scores.factual < FACTUAL_MIN:
        result.add(
            f"Factual score below {FACTUAL_MIN}",
            "Verify the event date or choose a more verifiable clue",
        )
    if scores.leak_risk > LEAK_RISK_MAX:
        result.add(
            f"Leak risk above {LEAK_RISK_MAX}",
            "Remove wording that directly reveals the year",
        )
    if scores.ambiguity > AMBIGUITY_MAX:
        result.add(
            f"Ambiguity above {AMBIGUITY_MAX}",
            "Anchor the clue with details unique to the target year",
        )
    if scores.guessability < GUESSABILITY_MIN:
        result.add(
            f"Guessability below {GUESSABILITY_MIN}",
            "Highlight why this year stands out compared to nearby years",
        )
    return result


def merge_critique(
    candidate: CandidateEvent,
    verdict: CriticVerdict,
    deterministic: CheckResult,
    validation: ValidationResult,
) -> CritiqueResult:
    blended = verdict.scores.model_copy(
        update={
            "leak_risk": clamp01(
                LLM_LEAK_WEIGHT * verdict.scores.leak_risk
                + VALIDATOR_LEAK_WEIGHT * validation.scores.semantic_leakage
            )
        }
    )
    threshold = enforce_thresholds(blended)

    issues = dedupe(
        [
            *deterministic.issues,
            *threshold.issues,
            *([] if validation.passed else [VALIDATOR_ISSUE]),
            *verdict.issues,
        ]
    )
    hints = dedupe(
        [
            *deterministic.rewrite_hints,
            *threshold.rewrite_hints,
            *validation.suggestions,
            *verdict.rewrite_hints,
        ]
    )

    return CritiqueResult(
        event=candidate,
        passed=verdict.passed
        and not deterministic.failed
        and not threshold.failed
        and validation.passed,
        scores=blended,
        issues=issues,
        rewrite_hints=hints,
    )


def align_verdicts(verdicts: list[CriticVerdict], count: int) -> list[CriticVerdict]:
    """Match the verdict list to the candidate count.

    Raises:
        ContractViolationError: If fewer verdicts than candidates came back
    """
    if len(verdicts) < count:
        raise ContractViolationError(
            f"Critic returned {len(verdicts)} results but {count} candidates were provided"
        )
    return verdicts[:count]


def _parse_verdicts(data: Any) -> list[CriticVerdict]:
    # Models sometimes wrap the array in an object
    payload = {"critiques": data} if isinstance(data, list) else data
    output: CriticOutput = parse_model_output(CriticOutput, payload, "critic")
    return output.critiques


class QualityGate:
    """Critique stage merging deterministic, model and validator verdicts."""

    def __init__(self, llm: LLMProvider, validator: QualityValidator | None = None):
        self._llm = llm
        self._validator = validator or QualityValidator()

    @property
    def validator(self) -> QualityValidator:
        return self._validator

    async def critique(
        self, year: int, era: Era, candidates: list[CandidateEvent]
    ) -> CritiqueOutcome:
        """Score every candidate for ``year``.

        Raises:
            ContractViolationError: If the critic response is malformed or short
            LLMProviderError: If the completion service keeps failing
        """
        if not candidates:
            return CritiqueOutcome(results=[], llm=None, deterministic_failures=0)

        deterministic = [run_deterministic_checks(candidate, year) for candidate in candidates]

        try:
            response = await self._llm.complete_structured(
                build_critic_prompt(year, era, candidates),
                _CRITIC_SCHEMA,
                system=CRITIC_SYSTEM_PROMPT,
            )
        except Exception as e:
            log_stage_error(STAGE, e, year=year, era=era, candidate_count=len(candidates))
            raise

        log_stage_success(
            STAGE,
            "LLM call succeeded",
            request_id=response.request_id,
            tokens=response.usage.total_tokens,
            year=year,
        )

        verdicts = _parse_verdicts(response.data)
        if len(verdicts) > len(candidates):
            logger.bind(stage=STAGE).warning(
                f"[{STAGE}] Truncating {len(verdicts)} critic results to "
                f"{len(candidates)} candidates for {year}"
            )
        verdicts = align_verdicts(verdicts, len(candidates))

        results = []
        for candidate, verdict, checks in zip(candidates, verdicts, deterministic):
            validation = self._validator.validate_event(
                candidate.event_text, year, candidate.metadata
            )
            results.append(merge_critique(candidate, verdict, checks, validation))

        # Learning may persist to disk, so it runs in the thread pool
        for result in results:
            if not result.passed and result.scores.leak_risk > LEAK_LEARNING_THRESHOLD:
                await asyncio.to_thread(
                    self._validator.learn_from_rejected, result.event.event_text, (year, year)
                )

        return CritiqueOutcome(
            results=results,
            llm=LLMCallInfo.from_response(response),
            deterministic_failures=sum(1 for checks in deterministic if checks.failed),
        )
