"""Revision stage: rewrites failing candidates using critic feedback."""

from typing import Any

from loguru import logger
from pydantic import TypeAdapter

from chronoclue.core.models import (
    CandidateEvent,
    CritiqueResult,
    Era,
    ReviserOutput,
    parse_model_output,
)
from chronoclue.core.utils.stage_logging import log_stage_error, log_stage_success
from chronoclue.interfaces.llm_provider import LLMProvider
from chronoclue.services.generation.generator import sanitize_candidate
from chronoclue.services.generation.models import LLMCallInfo, RevisionOutcome
from chronoclue.services.generation.prompts import REVISER_SYSTEM_PROMPT, build_reviser_prompt

STAGE = "Reviser"

_REVISER_SCHEMA = TypeAdapter(list[CandidateEvent]).json_schema()


def _parse_rewrites(data: Any) -> list[CandidateEvent]:
    payload = {"rewrites": data} if isinstance(data, list) else data
    output: ReviserOutput = parse_model_output(ReviserOutput, payload, "reviser")
    return output.rewrites


class CandidateReviser:
    """Rewrites failing clues, one rewrite per failure in the same order."""

    def __init__(self, llm: LLMProvider):
        self._llm = llm

    async def revise(self, failing: list[CritiqueResult], year: int, era: Era) -> RevisionOutcome:
        """Best-effort rewrite of ``failing``.

        The result may hold fewer rewrites than failures; callers keep the
        original candidate for any failure without a rewrite.
        """
        if not failing:
            return RevisionOutcome(rewrites=[], llm=None)

        try:
            response = await self._llm.complete_structured(
                build_reviser_prompt(year, era, failing),
                _REVISER_SCHEMA,
                system=REVISER_SYSTEM_PROMPT,
            )
        except Exception as e:
            log_stage_error(STAGE, e, year=year, era=era, failing_count=len(failing))
            raise

        log_stage_success(
            STAGE,
            "LLM call succeeded",
            request_id=response.request_id,
            tokens=response.usage.total_tokens,
            year=year,
        )

        rewrites = _parse_rewrites(response.data)
        if len(rewrites) > len(failing):
            logger.bind(stage=STAGE).warning(
                f"[{STAGE}] Truncating {len(rewrites)} rewrites to {len(failing)} failures"
            )
            rewrites = rewrites[: len(failing)]
        elif len(rewrites) < len(failing):
            logger.bind(stage=STAGE).warning(
                f"[{STAGE}] Got {len(rewrites)} rewrites for {len(failing)} failures; "
                f"keeping originals for the rest"
            )

        revised = []
        for rewrite, failure in zip(rewrites, failing):
            rewrite = sanitize_candidate(rewrite)
            if rewrite.metadata is None and failure.event.metadata is not None:
                rewrite = rewrite.model_copy(update={"metadata": failure.event.metadata})
            revised.append(rewrite)

        return RevisionOutcome(rewrites=revised, llm=LLMCallInfo.from_response(response))
