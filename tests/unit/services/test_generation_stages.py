"""Tests for the generator and reviser stages."""

import pytest

from chronoclue.core.exceptions import ContractViolationError, LLMProviderError
from chronoclue.services.generation import CandidateGenerator, CandidateReviser
from chronoclue.services.generation.prompts import (
    GENERATOR_SYSTEM_PROMPT,
    build_generator_prompt,
    era_context,
)
from tests.helpers.fake_llm_providers import (
    ScriptedLLMProvider,
    make_candidate,
    make_candidates,
    make_critique,
)


def generator_payload(year=1990, era="CE", count=12, **year_overrides):
    year_data = {"value": year, "era": era, "digits": len(str(abs(year)))}
    year_data.update(year_overrides)
    return {
        "year": year_data,
        "candidates": [candidate.model_dump() for candidate in make_candidates(year, count)],
    }


@pytest.mark.asyncio
async def test_generator_returns_candidates_and_usage():
    llm = ScriptedLLMProvider([generator_payload(count=14)])
    generator = CandidateGenerator(llm)

    outcome = await generator.generate(1990, "CE")

    assert len(outcome.candidates) == 14
    assert outcome.year.value == 1990
    assert outcome.year.digits == 4
    assert outcome.llm.cost_usd == pytest.approx(0.001)
    assert llm.calls[0].system == GENERATOR_SYSTEM_PROMPT
    assert "Target year: 1990 (CE)" in llm.calls[0].prompt


@pytest.mark.asyncio
async def test_generator_uses_absolute_year_for_bce():
    llm = ScriptedLLMProvider([generator_payload(year=-44, era="BCE")])

    outcome = await CandidateGenerator(llm).generate(-44, "BCE")

    assert outcome.year.era == "BCE"
    assert "Target year: 44 (BCE)" in llm.calls[0].prompt


@pytest.mark.asyncio
async def test_generator_rejects_too_few_candidates():
    llm = ScriptedLLMProvider([generator_payload(count=5)])

    with pytest.raises(ContractViolationError, match="at least 12"):
        await CandidateGenerator(llm).generate(1990, "CE")


@pytest.mark.asyncio
async def test_generator_truncates_extra_candidates():
    llm = ScriptedLLMProvider([generator_payload(count=18)])

    outcome = await CandidateGenerator(llm, min_candidates=6, max_candidates=10).generate(1990, "CE")

    assert len(outcome.candidates) == 10


@pytest.mark.asyncio
async def test_generator_tolerates_year_mismatch():
    llm = ScriptedLLMProvider([generator_payload(value=1991)])

    outcome = await CandidateGenerator(llm).generate(1990, "CE")

    assert outcome.year.value == 1990
    assert len(outcome.candidates) == 12


@pytest.mark.asyncio
async def test_generator_normalizes_whitespace():
    payload = generator_payload()
    payload["candidates"][0]["event_text"] = "  Envoys   reach\nAthens  "

    outcome = await CandidateGenerator(ScriptedLLMProvider([payload])).generate(1990, "CE")

    assert outcome.candidates[0].event_text == "Envoys reach Athens"


@pytest.mark.asyncio
async def test_generator_rejects_malformed_payload():
    llm = ScriptedLLMProvider([{"candidates": "nope"}])

    with pytest.raises(ContractViolationError):
        await CandidateGenerator(llm).generate(1990, "CE")


@pytest.mark.asyncio
async def test_generator_propagates_provider_errors():
    llm = ScriptedLLMProvider([LLMProviderError("bad request", status_code=400)])

    with pytest.raises(LLMProviderError):
        await CandidateGenerator(llm).generate(1990, "CE")


def test_era_context_for_sparse_periods():
    assert "Hellenistic" in era_context(-100, "BCE")
    assert "Classical" in era_context(-400, "BCE")
    assert "Early civilizations" in era_context(-700, "BCE")
    assert "Early Roman Empire" in era_context(14, "CE")
    assert "Early modern" in era_context(1600, "CE")
    assert era_context(1990, "CE") == ""


def test_generator_prompt_lists_count_range():
    prompt = build_generator_prompt(1815, "CE", 12, 18)

    assert "Generate 12-18 historical events that occurred in 1815 CE." in prompt
    assert '"digits": 4' in prompt


def _failures(*texts):
    return [make_critique(make_candidate(text), passed=False) for text in texts]


@pytest.mark.asyncio
async def test_reviser_skips_call_without_failures():
    llm = ScriptedLLMProvider()

    outcome = await CandidateReviser(llm).revise([], 1990, "CE")

    assert outcome.rewrites == []
    assert outcome.llm is None
    assert llm.calls == []


@pytest.mark.asyncio
async def test_reviser_returns_rewrites_in_order():
    failing = _failures("Envoys reach Athens", "Envoys reach Kyoto")
    rewrites = [
        make_candidate("Pericles greets envoys in Athens").model_dump(),
        make_candidate("Court poets welcome envoys to Kyoto").model_dump(),
    ]
    llm = ScriptedLLMProvider([rewrites])

    outcome = await CandidateReviser(llm).revise(failing, 1990, "CE")

    assert [r.event_text for r in outcome.rewrites] == [
        "Pericles greets envoys in Athens",
        "Court poets welcome envoys to Kyoto",
    ]
    assert outcome.llm is not None
    assert "Leak risk above 0.15" in llm.calls[0].prompt


@pytest.mark.asyncio
async def test_reviser_carries_over_missing_metadata():
    failing = _failures("Envoys reach Athens")
    rewrite = make_candidate("Pericles greets envoys in Athens", with_metadata=False)
    llm = ScriptedLLMProvider([[rewrite.model_dump(exclude_none=True)]])

    outcome = await CandidateReviser(llm).revise(failing, 1990, "CE")

    assert outcome.rewrites[0].metadata == failing[0].event.metadata


@pytest.mark.asyncio
async def test_reviser_allows_short_and_truncates_long_responses():
    failing = _failures("Envoys reach Athens", "Envoys reach Kyoto")
    one = [make_candidate("Pericles greets envoys in Athens").model_dump()]
    three = one * 3
    llm = ScriptedLLMProvider([one, three])
    reviser = CandidateReviser(llm)

    short = await reviser.revise(failing, 1990, "CE")
    long = await reviser.revise(failing, 1990, "CE")

    assert len(short.rewrites) == 1
    assert len(long.rewrites) == 2


@pytest.mark.asyncio
async def test_reviser_rejects_malformed_rewrites():
    llm = ScriptedLLMProvider([[{"event_text": "missing fields"}]])

    with pytest.raises(ContractViolationError):
        await CandidateReviser(llm).revise(_failures("Envoys reach Athens"), 1990, "CE")
