"""Test-only fakes for the LLM boundary and the pipeline stages.

These fakes never call external services:
- ScriptedLLMProvider returns queued payloads and records every call.
- The fake stages return canned candidates and critiques so orchestrator
  and batch tests control exactly which years pass.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from chronoclue.core.models import (
    CandidateEvent,
    CritiqueResult,
    EventMetadata,
    GeneratorYear,
    ScoreVector,
)
from chronoclue.core.utils.text_validation import digit_count, metadata_era_bucket
from chronoclue.interfaces.llm_provider import (
    CostBreakdown,
    LLMProvider,
    LLMResponse,
    TokenUsage,
)
from chronoclue.services.generation.models import (
    CritiqueOutcome,
    GenerationOutcome,
    LLMCallInfo,
    RevisionOutcome,
)

PLACES = (
    "Athens", "Carthage", "Kyoto", "Cairo", "Lisbon", "Delhi", "Cusco",
    "Timbuktu", "Venice", "Samarkand", "Nara", "Aksum", "Cordoba", "Hangzhou",
    "Novgorod", "Tenochtitlan", "Zanzibar", "Baghdad",
)


def make_candidate(
    text: str = "Pericles addresses the assembly in Athens",
    year: int = 1990,
    with_metadata: bool = True,
    **overrides: Any,
) -> CandidateEvent:
    data: dict[str, Any] = {
        "canonical_title": text[:40],
        "event_text": text,
        "geo": "Europe",
        "difficulty_guess": 3,
        "confidence": 0.8,
    }
    if with_metadata:
        data["metadata"] = EventMetadata(
            difficulty=3,
            category=["politics"],
            era=metadata_era_bucket(year),
            fame_level=3,
            tags=["test"],
        )
    data.update(overrides)
    return CandidateEvent(**data)


def make_candidates(year: int, count: int = 12, prefix: str = "Envoys reach") -> list[CandidateEvent]:
    return [
        make_candidate(f"{prefix} {PLACES[i % len(PLACES)]} on mission {chr(65 + i)}", year=year)
        for i in range(count)
    ]


def make_scores(**overrides: float) -> ScoreVector:
    data = {"factual": 0.9, "leak_risk": 0.05, "ambiguity": 0.1, "guessability": 0.7}
    data.update(overrides)
    return ScoreVector(**data)


def make_critique(
    event: CandidateEvent, passed: bool = True, **score_overrides: float
) -> CritiqueResult:
    return CritiqueResult(
        event=event,
        passed=passed,
        scores=make_scores(**score_overrides),
        issues=[] if passed else ["Leak risk above 0.15"],
        rewrite_hints=[] if passed else ["Remove wording that directly reveals the year"],
    )


def call_info(cost_usd: float = 0.01, tokens: int = 100, **overrides: Any) -> LLMCallInfo:
    data: dict[str, Any] = {
        "request_id": "req-test",
        "model": "fake-model",
        "usage": TokenUsage(input_tokens=tokens, output_tokens=tokens // 2),
        "cost_usd": cost_usd,
        "cache_hit": False,
        "fallback_from": None,
    }
    data.update(overrides)
    return LLMCallInfo(**data)


@dataclass
class StructuredCall:
    prompt: str
    json_schema: dict[str, Any] | None
    system: str | None


class ScriptedLLMProvider(LLMProvider):
    """Returns queued payloads in order; raises queued exceptions."""

    def __init__(self, responses: list[Any] | None = None, *, model: str = "fake-model"):
        self._responses = list(responses or [])
        self._model = model
        self.calls: list[StructuredCall] = []

    def queue(self, *responses: Any) -> None:
        self._responses.extend(responses)

    @property
    def name(self) -> str:
        return "fake"

    @property
    def model(self) -> str:
        return self._model

    async def complete(
        self,
        prompt: str,
        system: str | None = None,
        max_completion_tokens: int | None = None,
        timeout: float | None = None,
    ) -> LLMResponse:
        self.calls.append(StructuredCall(prompt=prompt, json_schema=None, system=system))
        payload = self._next()
        content = payload if isinstance(payload, str) else json.dumps(payload)
        return self._response(content, None)

    async def complete_structured(
        self,
        prompt: str,
        json_schema: dict[str, Any],
        system: str | None = None,
        max_completion_tokens: int | None = None,
        timeout: float | None = None,
    ) -> LLMResponse:
        self.calls.append(StructuredCall(prompt=prompt, json_schema=json_schema, system=system))
        payload = self._next()
        return self._response(json.dumps(payload), payload)

    def estimate_tokens(self, text: str) -> int:
        return len(text) // 4

    def get_usage_stats(self) -> dict[str, Any]:
        return {"requests_made": len(self.calls)}

    def _next(self) -> Any:
        if not self._responses:
            raise AssertionError("ScriptedLLMProvider ran out of responses")
        payload = self._responses.pop(0)
        if isinstance(payload, BaseException):
            raise payload
        return payload

    def _response(self, content: str, data: Any) -> LLMResponse:
        return LLMResponse(
            content=content,
            model=self._model,
            usage=TokenUsage(input_tokens=100, output_tokens=50),
            cost=CostBreakdown(total_usd=0.001),
            data=data,
            request_id=f"req-{len(self.calls)}",
        )


class FakeGenerator:
    def __init__(self, candidates_for: Callable[[int], list[CandidateEvent]] | None = None):
        self._candidates_for = candidates_for or (lambda year: make_candidates(year))
        self.calls: list[int] = []

    async def generate(self, year: int, era: str) -> GenerationOutcome:
        self.calls.append(year)
        return GenerationOutcome(
            year=GeneratorYear(value=year, era=era, digits=digit_count(year)),
            candidates=self._candidates_for(year),
            llm=call_info(),
        )


class FakeCritic:
    """Critic whose verdict per candidate comes from ``judge(year, candidate)``."""

    def __init__(
        self,
        judge: Callable[[int, CandidateEvent], CritiqueResult] | None = None,
        error: BaseException | None = None,
    ):
        self._judge = judge or (lambda year, candidate: make_critique(candidate))
        self._error = error
        self.calls: list[tuple[int, list[CandidateEvent]]] = []

    async def critique(
        self, year: int, era: str, candidates: list[CandidateEvent]
    ) -> CritiqueOutcome:
        self.calls.append((year, list(candidates)))
        if self._error is not None:
            raise self._error
        if not candidates:
            return CritiqueOutcome(results=[], llm=None)
        return CritiqueOutcome(
            results=[self._judge(year, candidate) for candidate in candidates],
            llm=call_info(),
        )


class FakeReviser:
    """Rewrites each failing candidate by appending a marker to its text."""

    def __init__(self, limit: int | None = None, suffix: str = " (revised)"):
        self._limit = limit
        self._suffix = suffix
        self.calls: list[list[CritiqueResult]] = []

    async def revise(self, failing: list[CritiqueResult], year: int, era: str) -> RevisionOutcome:
        self.calls.append(list(failing))
        if not failing:
            return RevisionOutcome(rewrites=[], llm=None)
        source = failing if self._limit is None else failing[: self._limit]
        rewrites = [
            failure.event.model_copy(
                update={"event_text": failure.event.event_text + self._suffix}
            )
            for failure in source
        ]
        return RevisionOutcome(rewrites=rewrites, llm=call_info())
