"""Scripted stand-in for LLMLayer (tests, local runs without an API key)."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field

from taskpilot.config import ModelTier
from taskpilot.llm.layer import LLMResponse, cached_system

DEFAULT_REPLY = '{"actions": [], "responseMessage": "Mock response"}'


@dataclass
class MockUsage:
    input_tokens: int = 100
    output_tokens: int = 50
    cache_read_input_tokens: int = 0


@dataclass
class MockTextBlock:
    text: str
    type: str = "text"


@dataclass
class MockMessage:
    """Just enough of anthropic.types.Message for extract_text and metadata."""

    content: list[MockTextBlock]
    model: str = "mock-model"
    stop_reason: str = "end_turn"
    usage: MockUsage = field(default_factory=MockUsage)

    @classmethod
    def from_text(cls, text: str) -> MockMessage:
        return cls(content=[MockTextBlock(text=text)])


class MockLLMLayer:
    """Plays back canned reply texts.

    Usage:
        mock = MockLLMLayer(replies=['{"actions": [], "responseMessage": "Hi"}'])
        message, meta = await mock.complete_raw(messages=[...], model_tier="sonnet")

    Replies are consumed in order and the last one repeats. With ``error``
    every call raises it instead. Each call's arguments land in ``call_log``.
    """

    def __init__(self, replies: list[str] | None = None, error: Exception | None = None) -> None:
        self._replies = deque(replies or [DEFAULT_REPLY])
        self.error = error
        self.call_log: list[dict] = []

    def _next_reply(self) -> str:
        return self._replies.popleft() if len(self._replies) > 1 else self._replies[0]

    async def complete_raw(
        self,
        messages: list[dict],
        model_tier: ModelTier,
        system: str | list[dict] | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> tuple[MockMessage, LLMResponse]:
        self.call_log.append({
            "model_tier": model_tier,
            "messages": [dict(m) for m in messages],
            "system": system,
            "max_tokens": max_tokens,
            "temperature": temperature,
        })
        if self.error is not None:
            raise self.error
        message = MockMessage.from_text(self._next_reply())
        meta = LLMResponse(
            model_version=f"mock-{model_tier}",
            input_tokens=message.usage.input_tokens,
            output_tokens=message.usage.output_tokens,
            stop_reason=message.stop_reason,
        )
        return message, meta

    def build_cached_system(self, text: str) -> list[dict]:
        return cached_system(text)
