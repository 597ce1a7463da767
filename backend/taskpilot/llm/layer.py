"""LLM Layer — the assistant's only path to the Anthropic Messages API.

One call shape: a system prompt plus a role/content history in, the raw
Message plus usage metadata out. Transient API errors (rate limits,
connection drops, 5xx) are retried with exponential backoff. After
repeated failures a circuit breaker rejects calls until a cool-down has
passed, so a dead API costs one fast error per chat turn instead of a
full retry cycle.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, TypeVar

import anthropic

from taskpilot.config import MODEL_MAP, ModelTier, settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class LLMResponse:
    """Usage metadata of one completed call."""

    model_version: str = ""  # model id echoed by the API
    input_tokens: int = 0
    output_tokens: int = 0
    cached_input_tokens: int = 0
    stop_reason: str = ""
    cost: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class TierPricing:
    """USD per million tokens."""

    input: float
    output: float
    cache_read: float


PRICING: dict[str, TierPricing] = {
    "opus": TierPricing(input=15.0, output=75.0, cache_read=1.50),
    "sonnet": TierPricing(input=3.0, output=15.0, cache_read=0.30),
    "haiku": TierPricing(input=0.80, output=4.0, cache_read=0.08),
}


def estimate_cost(
    model_tier: ModelTier,
    input_tokens: int,
    output_tokens: int,
    cached_input_tokens: int = 0,
) -> float:
    """Dollar cost of a call; cached input is billed at the cache-read rate."""
    price = PRICING[model_tier]
    fresh_input = max(input_tokens - cached_input_tokens, 0)
    total = (
        fresh_input * price.input
        + cached_input_tokens * price.cache_read
        + output_tokens * price.output
    )
    return round(total / 1_000_000, 6)


def cached_system(text: str) -> list[dict]:
    """System prompt as a single ephemeral-cache block."""
    return [{"type": "text", "text": text, "cache_control": {"type": "ephemeral"}}]


def extract_text(message: Any) -> str:
    """Concatenate the text blocks of a Message-like object."""
    blocks = getattr(message, "content", None) or []
    return "".join(getattr(b, "text", "") for b in blocks if getattr(b, "type", "") == "text")


# === Failure handling ===


class CircuitOpenError(Exception):
    """The breaker is open; the call was not attempted."""


class CircuitBreaker:
    """Fails fast after ``threshold`` consecutive failures.

    While open, calls are rejected until ``cooldown`` seconds have passed
    since the last failure. The next call is then let through as a trial call:
    success closes the breaker, another failure re-opens it.
    """

    def __init__(
        self,
        threshold: int = 5,
        cooldown: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.threshold = threshold
        self.cooldown = cooldown
        self.failures = 0
        self._clock = clock
        self._opened_at: float | None = None

    @property
    def state(self) -> str:
        if self._opened_at is None:
            return "closed"
        if self._clock() - self._opened_at < self.cooldown:
            return "open"
        return "half_open"

    def check(self) -> None:
        if self.state == "open":
            raise CircuitOpenError(
                f"Anthropic API disabled for {self.cooldown:.0f}s after {self.failures} failures"
            )

    def success(self) -> None:
        self.failures = 0
        self._opened_at = None

    def failure(self) -> None:
        self.failures += 1
        if self.failures >= self.threshold:
            if self._opened_at is None:
                logger.warning("Circuit breaker opened after %d consecutive failures", self.failures)
            self._opened_at = self._clock()


TRANSIENT_ERRORS = (
    anthropic.RateLimitError,
    anthropic.APIConnectionError,
    anthropic.InternalServerError,
)


def backoff_delay(attempt: int, base: float = 1.0, cap: float = 30.0) -> float:
    return min(cap, base * 2 ** attempt)


async def call_with_retry(
    make_call: Callable[[], Awaitable[T]],
    retries: int = 3,
    base_delay: float = 1.0,
    breaker: CircuitBreaker | None = None,
) -> T:
    """Await ``make_call()`` until it succeeds or ``retries`` run out.

    Only TRANSIENT_ERRORS are retried. Any other error is counted by the
    breaker and re-raised immediately.
    """
    if breaker is not None:
        breaker.check()
    attempt = 0
    while True:
        try:
            result = await make_call()
        except TRANSIENT_ERRORS as e:
            if breaker is not None:
                breaker.failure()
            if attempt >= retries:
                raise
            delay = backoff_delay(attempt, base_delay)
            attempt += 1
            logger.warning(
                "Anthropic call failed (%s), retry %d/%d in %.1fs",
                type(e).__name__, attempt, retries, delay,
            )
            await asyncio.sleep(delay)
        except Exception:
            if breaker is not None:
                breaker.failure()
            raise
        else:
            if breaker is not None:
                breaker.success()
            return result


# === Layer ===


class LLMLayer:
    """Anthropic client wrapper used by the project assistant."""

    def __init__(self, api_key: str | None = None, client: Any = None) -> None:
        self.client = client or anthropic.AsyncAnthropic(
            api_key=api_key or settings.anthropic_api_key
        )
        self.breaker = CircuitBreaker(
            threshold=settings.llm_breaker_threshold,
            cooldown=settings.llm_breaker_cooldown,
        )

    def request_params(
        self,
        messages: list[dict],
        model_tier: ModelTier,
        system: str | list[dict] | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "model": MODEL_MAP[model_tier],
            "messages": messages,
            "max_tokens": max_tokens or settings.default_max_tokens,
            "temperature": settings.default_temperature if temperature is None else temperature,
        }
        if system:
            params["system"] = system
        return params

    async def complete_raw(
        self,
        messages: list[dict],
        model_tier: ModelTier,
        system: str | list[dict] | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> tuple[anthropic.types.Message, LLMResponse]:
        """One completion.

        Args:
            messages: Alternating user/assistant turns, ending with the user.
            model_tier: "opus", "sonnet", or "haiku".
            system: Prompt string or cache_control blocks.
            max_tokens: Output cap; defaults to settings.default_max_tokens.
            temperature: Defaults to settings.default_temperature.

        Returns:
            The Anthropic Message and its usage metadata.
        """
        params = self.request_params(messages, model_tier, system, max_tokens, temperature)
        response = await call_with_retry(
            lambda: self.client.messages.create(**params),
            retries=settings.llm_max_retries,
            breaker=self.breaker,
        )
        return response, self.usage_metadata(response, model_tier)

    def usage_metadata(self, response: Any, model_tier: ModelTier) -> LLMResponse:
        usage = response.usage
        input_tokens = getattr(usage, "input_tokens", 0) or 0
        output_tokens = getattr(usage, "output_tokens", 0) or 0
        cached = getattr(usage, "cache_read_input_tokens", 0) or 0
        return LLMResponse(
            model_version=getattr(response, "model", ""),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cached_input_tokens=cached,
            stop_reason=getattr(response, "stop_reason", "") or "",
            cost=estimate_cost(model_tier, input_tokens, output_tokens, cached),
        )

    def build_cached_system(self, text: str) -> list[dict]:
        return cached_system(text)
