"""Canned-response LLM provider for tests and offline development."""

from collections.abc import AsyncIterator
from typing import Any

from chandler.providers.llm.base import LLMMessage, LLMProvider, LLMResponse, TokenUsage


def _approx_tokens(text: str) -> int:
    return len(text) // 4


class MockLLMProvider(LLMProvider):
    """Answers from a trigger table without any network access.

    A trigger matches when it appears anywhere in the last message, so a
    rendered classification prompt can be matched on the shopper text it
    embeds. Every call is recorded in ``call_history`` before any
    configured ``error`` is raised.
    """

    def __init__(
        self,
        default_response: str = "Mock response",
        default_model: str = "mock-model",
        responses: dict[str, str] | None = None,
        stream_chunk_size: int = 10,
        error: Exception | None = None,
    ):
        self.default_response = default_response
        self.default_model = default_model
        self.responses = dict(responses or {})
        self.stream_chunk_size = max(1, stream_chunk_size)
        self.error = error
        self.call_history: list[dict[str, Any]] = []

    @property
    def provider_name(self) -> str:
        return "mock"

    def _reply_for(self, messages: list[LLMMessage]) -> str:
        if not messages:
            return self.default_response
        last = messages[-1].content
        return next(
            (reply for trigger, reply in self.responses.items() if trigger in last),
            self.default_response,
        )

    async def generate(
        self,
        messages: list[LLMMessage],
        *,
        model: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.7,
        stop_sequences: list[str] | None = None,
        **kwargs: Any,
    ) -> LLMResponse:
        model = model or self.default_model
        self.call_history.append({
            "messages": messages,
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "stop_sequences": stop_sequences,
            "kwargs": kwargs,
        })
        if self.error is not None:
            raise self.error

        content = self._reply_for(messages)[: max_tokens * 4]
        prompt_tokens = sum(_approx_tokens(m.content) for m in messages)
        completion_tokens = _approx_tokens(content)
        return LLMResponse(
            content=content,
            model=model,
            finish_reason="stop",
            usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
        )

    async def generate_stream(
        self,
        messages: list[LLMMessage],
        *,
        model: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.7,
        stop_sequences: list[str] | None = None,
        **kwargs: Any,
    ) -> AsyncIterator[str]:
        response = await self.generate(
            messages,
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            stop_sequences=stop_sequences,
            **kwargs,
        )
        content = response.content
        size = self.stream_chunk_size
        for start in range(0, len(content), size):
            yield content[start : start + size]
