"""Tests for the OpenRouter provider (HTTP layer mocked)."""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from chronoclue.core.config.llm_config import LLMConfig
from chronoclue.core.exceptions import (
    ConfigurationError,
    LLMProviderError,
    LLMResponseError,
)
from chronoclue.interfaces.llm_provider import TokenUsage
from chronoclue.providers.llm.openrouter_provider import (
    OpenRouterProvider,
    build_cache_key,
    calculate_cost,
    extract_json,
)

SCHEMA = {"type": "array"}
SYSTEM = "You are the Chronoclue Critic."


def completion(content, usage=None, headers=None, status_code=200, **body):
    payload = {
        "id": "gen-123",
        "choices": [{"message": {"content": content}, "finish_reason": "stop"}],
    }
    if usage is not None:
        payload["usage"] = usage
    payload.update(body)
    return httpx.Response(status_code, json=payload, headers=headers or {})


def error_response(status_code, text="upstream error"):
    return httpx.Response(status_code, text=text)


def make_provider(sleep=None, **overrides):
    kwargs = {
        "api_key": "sk-or-test",
        "model": "primary/model",
        "stage": "critic",
        "max_attempts": 3,
        "backoff_base": 1.0,
        "sleep": sleep or AsyncMock(),
        "rng": lambda: 0.5,
    }
    kwargs.update(overrides)
    return OpenRouterProvider(**kwargs)


@pytest.mark.asyncio
async def test_structured_completion_parses_payload_and_prices_usage():
    provider = make_provider()
    data = [{"passed": True}]

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.return_value = completion(
            json.dumps(data), usage={"prompt_tokens": 1000, "completion_tokens": 500}
        )
        response = await provider.complete_structured("Evaluate", SCHEMA, system=SYSTEM)

    assert response.data == data
    assert response.request_id == "gen-123"
    assert response.model == "primary/model"
    assert response.usage == TokenUsage(input_tokens=1000, output_tokens=500)
    assert response.cost.input_usd == pytest.approx(0.002)
    assert response.cost.output_usd == pytest.approx(0.006)
    assert response.cost.total_usd == pytest.approx(0.008)
    assert not response.cache_hit
    assert response.fallback_from is None

    call = mock_post.call_args
    payload = call.kwargs["json"]
    assert payload["model"] == "primary/model"
    assert payload["messages"][0] == {"role": "system", "content": SYSTEM}
    assert payload["response_format"]["json_schema"]["name"] == "critic_output"
    assert payload["response_format"]["json_schema"]["schema"] == SCHEMA
    assert payload["reasoning"] == {"effort": "medium"}


@pytest.mark.asyncio
async def test_request_headers_include_auth_and_cache_key():
    provider = make_provider()

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.return_value = completion("[]")
        await provider.complete_structured("Evaluate", SCHEMA, system=SYSTEM)

    headers = mock_post.call_args.kwargs["headers"]
    assert headers["Authorization"] == "Bearer sk-or-test"
    assert headers["X-Title"] == "Chronoclue"
    assert headers["X-Cache-Key"] == build_cache_key("critic", SYSTEM)
    assert headers["X-Cache-Key"].startswith("chronoclue:critic:")
    assert headers["X-Cache-Enable"] == "true"


@pytest.mark.asyncio
async def test_cache_headers_omitted_without_system_prompt():
    provider = make_provider()

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.return_value = completion("hello")
        response = await provider.complete("Say hello")

    assert "X-Cache-Key" not in mock_post.call_args.kwargs["headers"]
    assert response.content == "hello"
    assert response.data is None


@pytest.mark.asyncio
async def test_rate_limit_is_retried_with_backoff():
    sleep = AsyncMock()
    provider = make_provider(sleep=sleep)

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.side_effect = [error_response(429), error_response(503), completion("[]")]
        response = await provider.complete_structured("Evaluate", SCHEMA)

    assert response.data == []
    assert mock_post.call_count == 3
    assert [call.args[0] for call in sleep.await_args_list] == [1.0, 2.0]
    assert provider.get_usage_stats()["retries"] == 2


@pytest.mark.asyncio
async def test_backoff_is_capped():
    sleep = AsyncMock()
    provider = make_provider(sleep=sleep, backoff_base=10.0, max_backoff=15.0)

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.side_effect = [error_response(500), error_response(500), completion("[]")]
        await provider.complete_structured("Evaluate", SCHEMA)

    assert [call.args[0] for call in sleep.await_args_list] == [10.0, 15.0]


@pytest.mark.asyncio
async def test_timeouts_are_retried():
    provider = make_provider()

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.side_effect = [httpx.ReadTimeout("slow"), completion("[]")]
        response = await provider.complete_structured("Evaluate", SCHEMA)

    assert response.data == []
    assert mock_post.call_count == 2


@pytest.mark.asyncio
async def test_client_errors_are_not_retried():
    sleep = AsyncMock()
    provider = make_provider(sleep=sleep)

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.return_value = error_response(400, "bad schema")
        with pytest.raises(LLMProviderError) as exc_info:
            await provider.complete_structured("Evaluate", SCHEMA)

    assert exc_info.value.status_code == 400
    assert not exc_info.value.is_retryable
    assert "bad schema" in str(exc_info.value)
    assert mock_post.call_count == 1
    sleep.assert_not_awaited()
    assert provider.get_usage_stats()["errors"] == 1


@pytest.mark.asyncio
async def test_fallback_model_after_primary_exhausts_retries():
    provider = make_provider(max_attempts=2, fallback_model="fallback/model")

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.side_effect = [error_response(503), error_response(503), completion("[]")]
        response = await provider.complete_structured("Evaluate", SCHEMA)

    assert response.model == "fallback/model"
    assert response.fallback_from == "primary/model"
    assert mock_post.call_args.kwargs["json"]["model"] == "fallback/model"
    assert provider.get_usage_stats()["fallbacks"] == 1


@pytest.mark.asyncio
async def test_fallback_failure_propagates():
    provider = make_provider(max_attempts=1, fallback_model="fallback/model")

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.side_effect = [error_response(500), error_response(502)]
        with pytest.raises(LLMProviderError) as exc_info:
            await provider.complete_structured("Evaluate", SCHEMA)

    assert exc_info.value.status_code == 502


@pytest.mark.asyncio
async def test_cache_hit_discounts_input_cost():
    provider = make_provider()

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.return_value = completion(
            "[]",
            usage={"prompt_tokens": 1000, "completion_tokens": 0},
            headers={"x-openrouter-cache": "HIT"},
        )
        response = await provider.complete_structured("Evaluate", SCHEMA, system=SYSTEM)

    assert response.cache_hit
    assert response.cache_status == "HIT"
    assert response.cost.input_usd == pytest.approx(0.0002)
    assert response.cost.cache_savings_usd == pytest.approx(0.0018)
    assert provider.get_usage_stats()["cache_hits"] == 1


@pytest.mark.asyncio
async def test_reasoning_tokens_read_from_details():
    provider = make_provider()

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.return_value = completion(
            "[]",
            usage={
                "prompt_tokens": 10,
                "completion_tokens": 20,
                "completion_tokens_details": {"reasoning_tokens": 7},
            },
        )
        response = await provider.complete_structured("Evaluate", SCHEMA)

    assert response.usage.reasoning_tokens == 7
    assert response.tokens_used == 37


@pytest.mark.asyncio
async def test_missing_usage_is_estimated():
    provider = make_provider()

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.return_value = completion("[1, 2]")
        response = await provider.complete_structured("x" * 40, SCHEMA)

    assert response.usage.input_tokens == 10
    assert response.usage.output_tokens == 2


@pytest.mark.asyncio
async def test_empty_content_raises_response_error():
    provider = make_provider()

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.return_value = completion("   ")
        with pytest.raises(LLMResponseError, match="empty response"):
            await provider.complete_structured("Evaluate", SCHEMA)


@pytest.mark.asyncio
async def test_error_body_raises_provider_error():
    provider = make_provider()

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.return_value = completion(
            "", error={"message": "model overloaded", "code": 503}
        )
        with pytest.raises(LLMProviderError, match="model overloaded"):
            await provider.complete_structured("Evaluate", SCHEMA)

    assert mock_post.call_count == 3


@pytest.mark.asyncio
async def test_rate_limit_in_error_body_is_retried():
    sleep = AsyncMock()
    provider = make_provider(sleep=sleep, max_attempts=2)

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.side_effect = [
            completion("", error={"message": "rate limited upstream", "code": 429}),
            completion("[]"),
        ]
        response = await provider.complete_structured("Evaluate", SCHEMA)

    assert response.data == []
    assert mock_post.call_count == 2
    assert sleep.await_count == 1
    assert provider.get_usage_stats()["retries"] == 1


@pytest.mark.asyncio
async def test_client_error_in_body_is_not_retried():
    provider = make_provider()

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.return_value = completion(
            "", error={"message": "invalid schema", "code": 400}
        )
        with pytest.raises(LLMProviderError, match="invalid schema"):
            await provider.complete_structured("Evaluate", SCHEMA)

    assert mock_post.call_count == 1


@pytest.mark.asyncio
async def test_unparseable_primary_output_falls_back():
    provider = make_provider(fallback_model="fallback/model")

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.side_effect = [completion("sorry, I cannot help"), completion("[]")]
        response = await provider.complete_structured("Evaluate", SCHEMA)

    assert response.data == []
    assert response.model == "fallback/model"
    assert response.fallback_from == "primary/model"
    assert mock_post.call_count == 2
    assert mock_post.call_args.kwargs["json"]["model"] == "fallback/model"
    assert provider.get_usage_stats()["fallbacks"] == 1


@pytest.mark.asyncio
async def test_empty_primary_output_falls_back():
    provider = make_provider(fallback_model="fallback/model")

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.side_effect = [completion(""), completion('{"critiques": []}')]
        response = await provider.complete_structured("Evaluate", SCHEMA)

    assert response.data == {"critiques": []}
    assert response.fallback_from == "primary/model"


@pytest.mark.asyncio
async def test_unparseable_fallback_output_propagates():
    provider = make_provider(fallback_model="fallback/model")

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.side_effect = [completion("no json here"), completion("still none")]
        with pytest.raises(LLMResponseError, match="not valid JSON"):
            await provider.complete_structured("Evaluate", SCHEMA)

    assert provider.get_usage_stats()["errors"] == 1


@pytest.mark.asyncio
async def test_cache_status_ignored_when_caching_disabled():
    provider = make_provider(cache_system_prompt=False)

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.return_value = completion(
            "[]",
            usage={"prompt_tokens": 1000, "completion_tokens": 0},
            headers={"x-openrouter-cache": "HIT"},
        )
        response = await provider.complete_structured("Evaluate", SCHEMA, system=SYSTEM)

    assert not response.cache_hit
    assert response.cache_key is None
    assert response.cost.input_usd == pytest.approx(0.002)
    assert response.cost.cache_savings_usd == 0
    assert provider.get_usage_stats()["cache_misses"] == 1


def test_missing_api_key_is_configuration_error():
    with pytest.raises(ConfigurationError):
        OpenRouterProvider(api_key="", model="primary/model")


def test_from_config_requires_api_key(clean_environment):
    with pytest.raises(ConfigurationError):
        OpenRouterProvider.from_config(LLMConfig(), "generator")


def test_from_config_uses_stage_settings(clean_environment):
    config = LLMConfig(api_key="sk-or-config")

    provider = OpenRouterProvider.from_config(config, "critic")

    assert provider.stage == "critic"
    assert provider.model == config.critic.model


def test_calculate_cost_without_cache():
    cost = calculate_cost(TokenUsage(input_tokens=2_000_000, output_tokens=1_000_000), False)

    assert cost.input_usd == pytest.approx(4.0)
    assert cost.output_usd == pytest.approx(12.0)
    assert cost.cache_savings_usd == 0
    assert cost.total_usd == pytest.approx(16.0)


@pytest.mark.parametrize(
    "text,expected",
    [
        ('[{"a": 1}]', [{"a": 1}]),
        ('```json\n{"a": 1}\n```', {"a": 1}),
        ('Here you go: {"a": [1, 2]} hope it helps', {"a": [1, 2]}),
        ("Result:\n[1, 2, 3]\nDone", [1, 2, 3]),
    ],
)
def test_extract_json(text, expected):
    assert extract_json(text) == expected


def test_extract_json_rejects_prose():
    with pytest.raises(LLMResponseError):
        extract_json("I could not produce an answer")
