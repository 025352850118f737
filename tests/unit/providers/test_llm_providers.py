"""Unit tests for LLM providers and prompt templates."""

import json

import httpx
import pytest

from chandler.config.models.providers import LLMProviderConfig
from chandler.providers.llm import (
    AuthenticationError,
    ContentFilterError,
    LLMMessage,
    MockLLMProvider,
    ModelError,
    OpenAICompatibleProvider,
    ProviderError,
    ProviderRateLimitError,
    TemplateLoader,
    create_llm_provider,
)

MESSAGES = [LLMMessage(role="user", content="Hello")]


def provider(handler) -> OpenAICompatibleProvider:
    return OpenAICompatibleProvider(
        "sk-test",
        model="test-model",
        base_url="https://llm.test/v1/",
        transport=httpx.MockTransport(handler),
    )


class TestMockLLMProvider:
    """Tests for MockLLMProvider."""

    @pytest.mark.asyncio
    async def test_triggers(self) -> None:
        """Triggers match substrings of the last message."""
        llm = MockLLMProvider(responses={"refund": "Refunds take 5 days."})

        matched = await llm.generate([LLMMessage(role="user", content="about my refund please")])
        unmatched = await llm.generate(MESSAGES)

        assert matched.content == "Refunds take 5 days."
        assert unmatched.content == "Mock response"
        assert len(llm.call_history) == 2

    @pytest.mark.asyncio
    async def test_stream_chunks(self) -> None:
        """Streaming splits the response into fixed-size pieces."""
        llm = MockLLMProvider(default_response="abcdefg", stream_chunk_size=3)
        assert [chunk async for chunk in llm.generate_stream(MESSAGES)] == ["abc", "def", "g"]

    @pytest.mark.asyncio
    async def test_configured_error(self) -> None:
        """A configured error is raised after the call is recorded."""
        llm = MockLLMProvider(error=ModelError("gone"))
        with pytest.raises(ModelError):
            await llm.generate(MESSAGES)
        assert llm.call_history[0]["model"] == "mock-model"


class TestOpenAICompatibleProvider:
    """Tests for OpenAICompatibleProvider over a mock transport."""

    @pytest.mark.asyncio
    async def test_generate(self) -> None:
        """Completions are parsed into an LLMResponse."""
        payloads: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            payloads.append(json.loads(request.content))
            assert request.url.path == "/v1/chat/completions"
            assert request.headers["Authorization"] == "Bearer sk-test"
            return httpx.Response(
                200,
                json={
                    "model": "test-model",
                    "choices": [{"message": {"content": "Hi!"}, "finish_reason": "stop"}],
                    "usage": {"prompt_tokens": 3, "completion_tokens": 1, "total_tokens": 4},
                },
            )

        llm = provider(handler)
        response = await llm.generate(MESSAGES, max_tokens=50, stop_sequences=["\n"])
        await llm.aclose()

        assert response.content == "Hi!"
        assert response.usage.total_tokens == 4
        assert payloads[0]["stop"] == ["\n"]
        assert payloads[0]["stream"] is False
        assert payloads[0]["messages"] == [{"role": "user", "content": "Hello"}]

    @pytest.mark.asyncio
    async def test_stream(self) -> None:
        """Streamed deltas are yielded until [DONE]."""
        body = "\n".join(
            [
                'data: {"choices": [{"delta": {"role": "assistant"}}]}',
                'data: {"choices": [{"delta": {"content": "Hel"}}]}',
                ": keep-alive",
                "data: not json",
                'data: {"choices": [{"delta": {"content": "lo"}}]}',
                "data: [DONE]",
                'data: {"choices": [{"delta": {"content": "ignored"}}]}',
            ]
        )

        def handler(request: httpx.Request) -> httpx.Response:
            assert json.loads(request.content)["stream"] is True
            return httpx.Response(200, content=body.encode())

        llm = provider(handler)
        chunks = [chunk async for chunk in llm.generate_stream(MESSAGES)]
        await llm.aclose()

        assert chunks == ["Hel", "lo"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status", "body", "error"),
        [
            (401, "unauthorized", AuthenticationError),
            (429, "slow down", ProviderRateLimitError),
            (404, "no such model", ModelError),
            (400, '{"error": {"code": "content_filter"}}', ContentFilterError),
            (500, "boom", ProviderError),
        ],
    )
    async def test_status_mapping(self, status: int, body: str, error: type[Exception]) -> None:
        """HTTP failures map onto provider error types."""
        llm = provider(lambda request: httpx.Response(status, text=body))
        with pytest.raises(error):
            await llm.generate(MESSAGES)
        await llm.aclose()

    @pytest.mark.asyncio
    async def test_stream_status_mapping(self) -> None:
        """Streaming requests map failures the same way."""
        llm = provider(lambda request: httpx.Response(401, text="bad key"))
        with pytest.raises(AuthenticationError):
            [chunk async for chunk in llm.generate_stream(MESSAGES)]
        await llm.aclose()

    @pytest.mark.asyncio
    async def test_transport_failure(self) -> None:
        """Network errors become ProviderError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        llm = provider(handler)
        with pytest.raises(ProviderError, match="request failed"):
            await llm.generate(MESSAGES)
        await llm.aclose()


class TestTemplates:
    """Tests for the bundled prompt templates."""

    def test_intent_prompt(self) -> None:
        """The intent prompt lists intents and embeds the message."""
        text = TemplateLoader().render(
            "intent_classification.jinja2",
            message="need 40 chairs",
            mode="b2b",
            intents=["search", "checkout"],
            last_search=None,
            cart_items=2,
        )
        assert "- search\n- checkout" in text
        assert "Cart has 2 item(s)." in text
        assert "Last search" not in text
        assert text.rstrip().endswith("need 40 chairs")

    def test_response_prompt_without_facts(self) -> None:
        """Without facts the prompt says nothing was retrieved."""
        text = TemplateLoader().render("response_generation.jinja2", message="hi", mode="b2b", facts=[])
        assert "business buyers" in text
        assert "No store data was retrieved" in text


class TestCreateLLMProvider:
    """Tests for create_llm_provider."""

    def test_default_is_mock(self) -> None:
        """The default config builds the mock provider."""
        assert isinstance(create_llm_provider(LLMProviderConfig()), MockLLMProvider)

    @pytest.mark.asyncio
    async def test_openai(self) -> None:
        """The openai provider is built with the configured key."""
        llm = create_llm_provider(LLMProviderConfig(provider="openai", api_key="sk-1"))
        assert isinstance(llm, OpenAICompatibleProvider)
        assert llm.provider_name == "openai"
        await llm.aclose()
