"""OpenRouter LLM provider for the clue generation stages.

Talks to the OpenRouter chat-completions endpoint over httpx and layers on
the behavior every stage needs:
- Exponential backoff with jitter for rate limits, server errors and
  transport failures
- One retry series on a fallback model once the primary model gives up
- System prompt caching through OpenRouter cache headers
- Token usage and USD cost accounting per call

API: https://openrouter.ai/api/v1/chat/completions
Auth: API key from https://openrouter.ai/keys
"""

import asyncio
import hashlib
import json
import math
import random
import re
import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from loguru import logger

from chronoclue.core.config.llm_config import LLMConfig
from chronoclue.core.constants import (
    CACHED_INPUT_RATIO,
    PRICE_INPUT_PER_MILLION,
    PRICE_OUTPUT_PER_MILLION,
    PRICE_REASONING_PER_MILLION,
)
from chronoclue.core.exceptions import (
    ConfigurationError,
    LLMProviderError,
    LLMResponseError,
)
from chronoclue.interfaces.llm_provider import (
    CostBreakdown,
    LLMProvider,
    LLMResponse,
    TokenUsage,
)

CACHE_KEY_PREFIX = "chronoclue"
CACHE_STATUS_HEADERS = ("x-openrouter-cache", "x-cache", "x-cache-status")
DEFAULT_REFERER = "https://github.com/chronoclue/chronoclue"
DEFAULT_TITLE = "Chronoclue"

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


def extract_json(text: str) -> Any:
    """Pull a JSON value out of model output.

    Tries a fenced code block, then the whole text, then the outermost
    object slice, then the outermost array slice.

    Raises:
        LLMResponseError: If no candidate parses
    """
    candidates: list[str] = []
    fenced = _FENCED_JSON.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    candidates.append(text.strip())
    for opener, closer in (("{", "}"), ("[", "]")):
        start = text.find(opener)
        end = text.rfind(closer)
        if start != -1 and end > start:
            candidates.append(text[start : end + 1])

    for candidate in candidates:
        if not candidate:
            continue
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue

    preview = text[:200].replace("\n", " ")
    raise LLMResponseError(f"Model output is not valid JSON: {preview!r}")


def estimate_token_count(text: str) -> int:
    """Rough token estimate used when the service reports no usage (~4 chars per token)."""
    return math.ceil(len(text) / 4) if text else 0


def calculate_cost(usage: TokenUsage, cache_hit: bool) -> CostBreakdown:
    """Price a completion. Cached input is billed at a tenth of the normal rate."""
    full_input = usage.input_tokens / 1_000_000 * PRICE_INPUT_PER_MILLION
    input_usd = full_input * CACHED_INPUT_RATIO if cache_hit else full_input
    output_usd = usage.output_tokens / 1_000_000 * PRICE_OUTPUT_PER_MILLION
    reasoning_usd = usage.reasoning_tokens / 1_000_000 * PRICE_REASONING_PER_MILLION
    savings = full_input - input_usd
    return CostBreakdown(
        input_usd=round(input_usd, 6),
        output_usd=round(output_usd, 6),
        reasoning_usd=round(reasoning_usd, 6),
        cache_savings_usd=round(savings, 6),
        total_usd=round(input_usd + output_usd + reasoning_usd, 6),
    )


def build_cache_key(stage: str, system: str) -> str:
    digest = hashlib.sha256(system.encode("utf-8")).hexdigest()
    return f"{CACHE_KEY_PREFIX}:{stage}:{digest}"


class OpenRouterProvider(LLMProvider):
    """OpenRouter chat-completions provider bound to one pipeline stage.

    Each stage (generator, critic, reviser) gets its own instance so the
    model, temperature and reasoning effort follow the stage settings.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        stage: str = "generator",
        base_url: str = "https://openrouter.ai/api/v1/chat/completions",
        fallback_model: str | None = None,
        temperature: float = 0.35,
        max_output_tokens: int = 6_000,
        thinking_level: str = "medium",
        timeout: float = 120.0,
        max_attempts: int = 3,
        backoff_base: float = 1.0,
        max_backoff: float = 15.0,
        jitter_ratio: float = 0.25,
        cache_system_prompt: bool = True,
        cache_ttl_seconds: int = 86_400,
        referer: str = DEFAULT_REFERER,
        title: str = DEFAULT_TITLE,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ):
        """Initialize OpenRouter provider.

        Args:
            api_key: OpenRouter API key
            model: Primary model for this stage
            stage: Stage name, used in cache keys and logs
            fallback_model: Model tried after the primary exhausts its retries
            max_attempts: Attempts per model
            sleep: Awaitable sleep used between retries (injectable for tests)
            rng: Uniform [0, 1) source for backoff jitter
        """
        if not api_key:
            raise ConfigurationError(
                "OpenRouter API key is required. Set CHRONOCLUE_LLM_API_KEY or OPENROUTER_API_KEY."
            )

        self._api_key = api_key
        self._model = model
        self._stage = stage
        self._base_url = base_url
        self._fallback_model = fallback_model if fallback_model != model else None
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens
        self._thinking_level = thinking_level
        self._timeout = timeout
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base
        self._max_backoff = max_backoff
        self._jitter_ratio = jitter_ratio
        self._cache_system_prompt = cache_system_prompt
        self._cache_ttl_seconds = cache_ttl_seconds
        self._referer = referer
        self._title = title
        self._sleep = sleep
        self._rng = rng

        # Usage tracking
        self._usage_stats: dict[str, Any] = {
            "requests_made": 0,
            "retries": 0,
            "fallbacks": 0,
            "errors": 0,
            "prompt_tokens": 0,
            "completion_tokens": 0,
            "reasoning_tokens": 0,
            "total_tokens": 0,
            "cache_hits": 0,
            "cache_misses": 0,
            "total_cost_usd": 0.0,
        }

    @classmethod
    def from_config(cls, config: LLMConfig, stage: str, **kwargs: Any) -> "OpenRouterProvider":
        """Create a provider for one stage from LLMConfig.

        Raises:
            ConfigurationError: If no API key is configured
        """
        if not config.is_configured():
            raise ConfigurationError(
                "OpenRouter API key is required. Set CHRONOCLUE_LLM_API_KEY or OPENROUTER_API_KEY."
            )
        stage_config = getattr(config, stage, None)
        if stage_config is None:
            raise ConfigurationError(f"Unknown pipeline stage '{stage}'")

        assert config.api_key is not None
        return cls(
            api_key=config.api_key.get_secret_value(),
            model=stage_config.model,
            stage=stage,
            base_url=config.base_url,
            fallback_model=config.fallback_model,
            temperature=stage_config.temperature,
            max_output_tokens=stage_config.max_output_tokens,
            thinking_level=stage_config.thinking_level,
            timeout=config.timeout,
            max_attempts=config.max_attempts,
            backoff_base=config.backoff_base,
            max_backoff=config.max_backoff,
            jitter_ratio=config.jitter_ratio,
            cache_system_prompt=config.cache_system_prompt,
            cache_ttl_seconds=config.cache_ttl_seconds,
            **kwargs,
        )

    @property
    def name(self) -> str:
        return "openrouter"

    @property
    def model(self) -> str:
        return self._model

    @property
    def stage(self) -> str:
        return self._stage

    async def complete(
        self,
        prompt: str,
        system: str | None = None,
        max_completion_tokens: int | None = None,
        timeout: float | None = None,
    ) -> LLMResponse:
        payload = self._build_payload(prompt, system, max_completion_tokens)
        return await self._request(payload, prompt, system, timeout)

    async def complete_structured(
        self,
        prompt: str,
        json_schema: dict[str, Any],
        system: str | None = None,
        max_completion_tokens: int | None = None,
        timeout: float | None = None,
    ) -> LLMResponse:
        payload = self._build_payload(prompt, system, max_completion_tokens)
        payload["response_format"] = {
            "type": "json_schema",
            "json_schema": {
                "name": f"{self._stage}_output",
                "strict": True,
                "schema": json_schema,
            },
        }
        return await self._request(payload, prompt, system, timeout, structured=True)

    def estimate_tokens(self, text: str) -> int:
        return estimate_token_count(text)

    def get_usage_stats(self) -> dict[str, Any]:
        return dict(self._usage_stats)

    def _build_payload(
        self, prompt: str, system: str | None, max_completion_tokens: int | None
    ) -> dict[str, Any]:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        return {
            "model": self._model,
            "messages": messages,
            "temperature": self._temperature,
            "max_output_tokens": max_completion_tokens or self._max_output_tokens,
            "reasoning": {"effort": self._thinking_level},
        }

    def _build_headers(self, cache_key: str | None) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self._referer,
            "X-Title": self._title,
        }
        if cache_key:
            headers["X-Cache-Key"] = cache_key
            headers["X-Cache-TTL"] = str(self._cache_ttl_seconds)
            headers["X-Cache-Enable"] = "true"
        return headers

    async def _request(
        self,
        payload: dict[str, Any],
        prompt: str,
        system: str | None,
        timeout: float | None,
        structured: bool = False,
    ) -> LLMResponse:
        """Call the primary model, then the fallback model if the primary fails.

        Any primary failure switches to the fallback: exhausted retries,
        non-retryable errors, and empty or unparseable output alike.
        """
        cache_key = (
            build_cache_key(self._stage, system)
            if self._cache_system_prompt and system
            else None
        )
        headers = self._build_headers(cache_key)
        request_timeout = timeout if timeout is not None else self._timeout
        started = time.perf_counter()

        async def call(model: str, fallback_from: str | None) -> LLMResponse:
            response = await self._send_with_retries(
                model, {**payload, "model": model}, headers, request_timeout
            )
            result = self._parse_response(
                response,
                model=model,
                prompt=prompt,
                system=system,
                cache_key=cache_key,
                fallback_from=fallback_from,
                latency_ms=(time.perf_counter() - started) * 1000,
            )
            if structured:
                result.data = extract_json(result.content)
            return result

        try:
            return await call(self._model, None)
        except (LLMProviderError, LLMResponseError) as e:
            if not self._fallback_model:
                self._usage_stats["errors"] += 1
                raise
            logger.warning(
                f"[{self._stage}] {self._model} failed ({e}), "
                f"falling back to {self._fallback_model}"
            )
            self._usage_stats["fallbacks"] += 1
            try:
                return await call(self._fallback_model, self._model)
            except (LLMProviderError, LLMResponseError):
                self._usage_stats["errors"] += 1
                raise

    async def _send_with_retries(
        self,
        model: str,
        payload: dict[str, Any],
        headers: dict[str, str],
        timeout: float,
    ) -> httpx.Response:
        """Run one retry series against a single model.

        Error statuses and error bodies returned with a 200 go through the
        same retry policy.
        """
        last_error: LLMProviderError | None = None
        for attempt in range(self._max_attempts):
            try:
                logger.debug(
                    f"[{self._stage}] POST {model} (attempt {attempt + 1}/{self._max_attempts})"
                )
                async with httpx.AsyncClient(timeout=timeout) as client:
                    response = await client.post(
                        self._base_url, json=payload, headers=headers
                    )
                self._usage_stats["requests_made"] += 1
                if response.status_code >= 400:
                    raise LLMProviderError(
                        f"OpenRouter returned {response.status_code} for {model}: "
                        f"{_response_text(response)}",
                        status_code=response.status_code,
                    )
                body_error = _body_error(response)
                if body_error is not None:
                    raise body_error
                return response
            except httpx.TimeoutException as e:
                last_error = LLMProviderError(f"Request to {model} timed out: {e}")
            except httpx.TransportError as e:
                last_error = LLMProviderError(f"Network error calling {model}: {e}")
            except LLMProviderError as e:
                last_error = e

            if not last_error.is_retryable or attempt >= self._max_attempts - 1:
                break
            delay = self._backoff_delay(attempt)
            self._usage_stats["retries"] += 1
            logger.warning(
                f"[{self._stage}] {last_error}; retrying in {delay:.2f}s "
                f"(attempt {attempt + 1}/{self._max_attempts})"
            )
            await self._sleep(delay)

        assert last_error is not None
        raise last_error

    def _backoff_delay(self, attempt: int) -> float:
        base = self._backoff_base * (2**attempt)
        jitter = 1 + (self._rng() * 2 - 1) * self._jitter_ratio
        return min(self._max_backoff, max(0.0, base * jitter))

    def _parse_response(
        self,
        response: httpx.Response,
        *,
        model: str,
        prompt: str,
        system: str | None,
        cache_key: str | None,
        fallback_from: str | None,
        latency_ms: float,
    ) -> LLMResponse:
        try:
            body = response.json()
        except ValueError as e:
            raise LLMResponseError(f"OpenRouter returned a non-JSON body: {e}") from e
        if not isinstance(body, dict):
            raise LLMResponseError(f"OpenRouter returned an unexpected body for {model}")

        choices = body.get("choices") or []
        if not choices:
            raise LLMResponseError(f"OpenRouter returned no choices for {model}")
        message = choices[0].get("message") or {}
        content = _message_text(message.get("content"))
        finish_reason = choices[0].get("finish_reason")
        if not content.strip():
            logger.error(
                f"[{self._stage}] {model} returned empty content (finish_reason={finish_reason})"
            )
            raise LLMResponseError(
                f"LLM returned empty response (finish_reason={finish_reason})"
            )

        usage = self._extract_usage(body.get("usage"), prompt, system, content)
        cache_status = _cache_status(response)
        cache_hit = (
            self._cache_system_prompt
            and cache_status is not None
            and "hit" in cache_status.lower()
        )
        cost = calculate_cost(usage, cache_hit)

        self._usage_stats["prompt_tokens"] += usage.input_tokens
        self._usage_stats["completion_tokens"] += usage.output_tokens
        self._usage_stats["reasoning_tokens"] += usage.reasoning_tokens
        self._usage_stats["total_tokens"] += usage.total_tokens
        self._usage_stats["cache_hits" if cache_hit else "cache_misses"] += 1
        self._usage_stats["total_cost_usd"] = round(
            self._usage_stats["total_cost_usd"] + cost.total_usd, 6
        )

        if cost.cache_savings_usd > 0:
            logger.debug(
                f"[{self._stage}] cache hit saved ${cost.cache_savings_usd:.6f}"
            )

        return LLMResponse(
            content=content,
            model=model,
            usage=usage,
            cost=cost,
            request_id=body.get("id"),
            latency_ms=latency_ms,
            cache_hit=cache_hit,
            cache_key=cache_key,
            cache_status=cache_status,
            fallback_from=fallback_from,
            finish_reason=finish_reason,
        )

    def _extract_usage(
        self, raw: Any, prompt: str, system: str | None, content: str
    ) -> TokenUsage:
        if isinstance(raw, dict) and (
            raw.get("prompt_tokens") is not None or raw.get("completion_tokens") is not None
        ):
            reasoning = raw.get("reasoning_tokens")
            if reasoning is None:
                details = raw.get("completion_tokens_details") or {}
                reasoning = details.get("reasoning_tokens", 0)
            return TokenUsage(
                input_tokens=int(raw.get("prompt_tokens") or 0),
                output_tokens=int(raw.get("completion_tokens") or 0),
                reasoning_tokens=int(reasoning or 0),
            )

        return TokenUsage(
            input_tokens=estimate_token_count((system or "") + prompt),
            output_tokens=estimate_token_count(content),
        )


def _message_text(content: Any) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part.get("text", "") for part in content if isinstance(part, dict)
        )
    return str(content)


def _body_error(response: httpx.Response) -> LLMProviderError | None:
    """Error reported inside a successful response body, if any."""
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict) or not body.get("error"):
        return None

    error = body["error"]
    message = error.get("message", error) if isinstance(error, dict) else error
    code = error.get("code") if isinstance(error, dict) else None
    return LLMProviderError(
        f"OpenRouter error: {message}",
        status_code=code if isinstance(code, int) else None,
    )


def _cache_status(response: httpx.Response) -> str | None:
    for header in CACHE_STATUS_HEADERS:
        value = response.headers.get(header)
        if value:
            return value
    return None


def _response_text(response: httpx.Response) -> str:
    text = response.text
    return text[:500] if isinstance(text, str) else ""
