from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from ai_bridge.llm_adapter.errors import (
    ConfigurationError,
    MissingCredentialError,
    ProviderTimeoutError,
    RequestValidationError,
    TransientProviderError,
)
from ai_bridge.llm_adapter.models import ErrorKind, GenerationRequest
from ai_bridge.llm_adapter.openai_provider import OpenAIProvider
from ai_bridge.llm_adapter.registry import ModelRegistry

_REQ = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def _completion(text="Hello!", prompt_tokens=9, completion_tokens=3):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


def _stream_event(text=None, usage=None):
    choices = [SimpleNamespace(delta=SimpleNamespace(content=text))] if text is not None else []
    return SimpleNamespace(choices=choices, usage=usage)


async def _events(*events):
    for event in events:
        yield event


def _provider(create, **kwargs):
    client = MagicMock()
    client.chat.completions.create = create
    client.close = AsyncMock()
    kwargs.setdefault("api_key", "sk-test-key-123456")
    kwargs.setdefault("backoff_base_ms", 0)
    return OpenAIProvider(ModelRegistry.default(), client=client, **kwargs), client


def _request(**kwargs):
    return GenerationRequest(model_id="gpt-4o-mini", prompt_text="Say hello", **kwargs)


class TestOpenAIProvider:

    @pytest.mark.asyncio
    async def test_generate_maps_parameters_and_usage(self):
        create = AsyncMock(return_value=_completion())
        adapter, _ = _provider(create)

        result = await adapter.generate(_request(temperature=0.0, max_output_tokens=50))

        kwargs = create.await_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["max_tokens"] == 50
        assert kwargs["temperature"] == 0.0
        assert kwargs["messages"] == [{"role": "user", "content": "Say hello"}]
        assert "stop" not in kwargs
        assert result.text == "Hello!"
        assert result.token_usage.prompt_tokens == 9
        assert result.provider_id == "openai"

    @pytest.mark.asyncio
    async def test_stop_sequences_are_forwarded(self):
        create = AsyncMock(return_value=_completion())
        adapter, _ = _provider(create)

        await adapter.generate(_request(stop_sequences=("END",)))
        assert create.await_args.kwargs["stop"] == ["END"]

    @pytest.mark.asyncio
    async def test_stream_collects_deltas_and_final_usage(self):
        create = AsyncMock(
            return_value=_events(
                _stream_event("Hel"),
                _stream_event("lo"),
                _stream_event(None, SimpleNamespace(prompt_tokens=4, completion_tokens=2)),
            )
        )
        adapter, _ = _provider(create)
        chunks = []

        result = await adapter.generate_stream(_request(streaming=True), chunks.append)

        assert create.await_args.kwargs["stream"] is True
        assert create.await_args.kwargs["stream_options"] == {"include_usage": True}
        assert [c.text for c in chunks] == ["Hel", "lo", ""]
        assert result.text == "Hello"
        assert result.token_usage.total_tokens == 6

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self):
        rate_limited = openai.RateLimitError(
            "slow down", response=httpx.Response(429, request=_REQ), body=None
        )
        create = AsyncMock(side_effect=[rate_limited, _completion()])
        adapter, _ = _provider(create)

        result = await adapter.generate(_request())
        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_missing_key_fails_without_calling_the_api(self):
        create = AsyncMock(return_value=_completion())
        adapter, _ = _provider(create, api_key=None)

        with pytest.raises(MissingCredentialError) as exc_info:
            await adapter.generate(_request())
        assert exc_info.value.kind is ErrorKind.MISSING_CREDENTIAL
        create.assert_not_awaited()

    def test_local_provider_needs_no_key(self):
        adapter = OpenAIProvider(ModelRegistry.default(), provider_id="local")
        assert adapter.has_credential

    @pytest.mark.parametrize(
        "exc, expected",
        [
            (openai.APITimeoutError(request=_REQ), ProviderTimeoutError),
            (openai.APIConnectionError(request=_REQ), TransientProviderError),
            (
                openai.InternalServerError("down", response=httpx.Response(503, request=_REQ), body=None),
                TransientProviderError,
            ),
            (
                openai.AuthenticationError("bad key", response=httpx.Response(401, request=_REQ), body=None),
                ConfigurationError,
            ),
            (
                openai.BadRequestError("bad", response=httpx.Response(400, request=_REQ), body=None),
                RequestValidationError,
            ),
            (
                openai.APIStatusError("teapot", response=httpx.Response(418, request=_REQ), body=None),
                ConfigurationError,
            ),
        ],
    )
    def test_error_classification(self, exc, expected):
        adapter, _ = _provider(AsyncMock())
        assert type(adapter._classify(exc)) is expected

    @pytest.mark.asyncio
    async def test_aclose_closes_the_client(self):
        adapter, client = _provider(AsyncMock())
        await adapter.aclose()
        client.close.assert_awaited_once()
