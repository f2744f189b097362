"""Candidate generation stage."""

from loguru import logger

from chronoclue.core.exceptions import ContractViolationError
from chronoclue.core.models import (
    CandidateEvent,
    Era,
    GeneratorOutput,
    GeneratorYear,
    parse_model_output,
)
from chronoclue.core.utils.stage_logging import log_stage_error, log_stage_success
from chronoclue.core.utils.text_validation import digit_count, normalize_whitespace
from chronoclue.interfaces.llm_provider import LLMProvider
from chronoclue.services.generation.models import GenerationOutcome, LLMCallInfo
from chronoclue.services.generation.prompts import (
    GENERATOR_SYSTEM_PROMPT,
    build_generator_prompt,
)

STAGE = "Generator"


def sanitize_candidate(candidate: CandidateEvent) -> CandidateEvent:
    return candidate.model_copy(
        update={
            "canonical_title": candidate.canonical_title.strip(),
            "event_text": normalize_whitespace(candidate.event_text),
            "geo": candidate.geo.strip(),
        }
    )


class CandidateGenerator:
    """Drafts candidate clues for a year."""

    def __init__(self, llm: LLMProvider, min_candidates: int = 12, max_candidates: int = 18):
        self._llm = llm
        self._min_candidates = min_candidates
        self._max_candidates = max_candidates

    async def generate(self, year: int, era: Era) -> GenerationOutcome:
        """Generate between ``min_candidates`` and ``max_candidates`` clues.

        Raises:
            ContractViolationError: If the response is malformed or too short
            LLMProviderError: If the completion service keeps failing
        """
        summary = GeneratorYear(value=year, era=era, digits=digit_count(year))

        try:
            response = await self._llm.complete_structured(
                build_generator_prompt(year, era, self._min_candidates, self._max_candidates),
                GeneratorOutput.model_json_schema(),
                system=GENERATOR_SYSTEM_PROMPT,
            )
        except Exception as e:
            log_stage_error(STAGE, e, year=year, era=era)
            raise

        output: GeneratorOutput = parse_model_output(GeneratorOutput, response.data, "generator")
        if output.year.value != year or output.year.era != era:
            logger.bind(stage=STAGE).warning(
                f"[{STAGE}] LLM year mismatch: expected {year} {era}, "
                f"got {output.year.value} {output.year.era} (request {response.request_id})"
            )

        candidates = [sanitize_candidate(candidate) for candidate in output.candidates]
        if len(candidates) < self._min_candidates:
            raise ContractViolationError(
                f"Generator returned {len(candidates)} candidates for {year}, "
                f"expected at least {self._min_candidates}"
            )
        if len(candidates) > self._max_candidates:
            logger.bind(stage=STAGE).warning(
                f"[{STAGE}] Truncating {len(candidates)} candidates to {self._max_candidates}"
            )
            candidates = candidates[: self._max_candidates]

        log_stage_success(
            STAGE,
            "LLM call succeeded",
            request_id=response.request_id,
            model=response.model,
            tokens=response.usage.total_tokens,
            year=year,
        )
        return GenerationOutcome(
            year=summary, candidates=candidates, llm=LLMCallInfo.from_response(response)
        )
