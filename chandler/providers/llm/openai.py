"""OpenAI-compatible chat completions provider over httpx."""

import json
from collections.abc import AsyncIterator
from typing import Any

import httpx

from chandler.observability.logging import get_logger
from chandler.providers.llm.base import (
    AuthenticationError,
    ContentFilterError,
    LLMMessage,
    LLMProvider,
    LLMResponse,
    ModelError,
    ProviderError,
    ProviderRateLimitError,
    TokenUsage,
)

logger = get_logger(__name__)


class OpenAICompatibleProvider(LLMProvider):
    """Provider for any endpoint speaking the chat completions protocol."""

    def __init__(
        self,
        api_key: str | None,
        *,
        model: str,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._model = model
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @property
    def provider_name(self) -> str:
        return "openai"

    async def aclose(self) -> None:
        await self._client.aclose()

    def _payload(
        self,
        messages: list[LLMMessage],
        model: str | None,
        max_tokens: int,
        temperature: float,
        stop_sequences: list[str] | None,
        stream: bool,
        extra: dict[str, Any],
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model or self._model,
            "messages": [m.model_dump() for m in messages],
            "max_tokens": max_tokens,
            "temperature": temperature,
            "stream": stream,
            **extra,
        }
        if stop_sequences:
            payload["stop"] = stop_sequences
        return payload

    @staticmethod
    def _raise_for_status(response: httpx.Response, body: str) -> None:
        if response.status_code < 400:
            return
        if response.status_code == 401:
            raise AuthenticationError("Invalid or missing API key")
        if response.status_code == 429:
            raise ProviderRateLimitError("Provider rate limit exceeded")
        if response.status_code == 404:
            raise ModelError(body or "Model not found")
        if response.status_code == 400 and "content_filter" in body:
            raise ContentFilterError("Content blocked by provider filter")
        raise ProviderError(f"Provider returned {response.status_code}: {body[:200]}")

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
        payload = self._payload(
            messages, model, max_tokens, temperature, stop_sequences, False, kwargs
        )
        try:
            response = await self._client.post("/chat/completions", json=payload)
        except httpx.HTTPError as e:
            raise ProviderError(f"Provider request failed: {e}") from e
        self._raise_for_status(response, response.text)

        data = response.json()
        choice = data["choices"][0]
        usage = data.get("usage")
        return LLMResponse(
            content=choice["message"].get("content") or "",
            model=data.get("model", payload["model"]),
            finish_reason=choice.get("finish_reason"),
            usage=TokenUsage.model_validate(usage) if usage else None,
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
        payload = self._payload(
            messages, model, max_tokens, temperature, stop_sequences, True, kwargs
        )
        try:
            async with self._client.stream("POST", "/chat/completions", json=payload) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    self._raise_for_status(response, body)
                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if data == "[DONE]":
                        break
                    try:
                        event = json.loads(data)
                    except json.JSONDecodeError:
                        logger.warning("llm_stream_malformed_event", provider=self.provider_name)
                        continue
                    choices = event.get("choices") or []
                    delta = choices[0].get("delta", {}).get("content") if choices else None
                    if delta:
                        yield delta
        except httpx.HTTPError as e:
            raise ProviderError(f"Provider stream failed: {e}") from e
