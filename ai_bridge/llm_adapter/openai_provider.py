"""
OpenAI-compatible provider adapter.

Works with any API that speaks the OpenAI Chat Completions protocol:
  - OpenAI      (base_url=https://api.openai.com/v1)
  - Groq        (base_url=https://api.groq.com/openai/v1)         -- free tier
  - Google      (base_url=https://generativelanguage.googleapis.com/v1beta/openai)  -- free tier
  - OpenRouter  (base_url=https://openrouter.ai/api/v1)           -- free models
  - local       Any OpenAI-compatible local server (Ollama, LM Studio)

The SDK's own retry loop is disabled; retries, backoff and timeouts are
owned by ProviderAdapter so every vendor behaves the same.
"""

from __future__ import annotations

from typing import Any, AsyncIterator

import openai
from openai import AsyncOpenAI

from ai_bridge.llm_adapter.base import ProviderAdapter, ProviderReply, TransportChunk
from ai_bridge.llm_adapter.errors import (
    ConfigurationError,
    GenerationError,
    ProviderTimeoutError,
    RequestValidationError,
    TransientProviderError,
)
from ai_bridge.llm_adapter.models import GenerationRequest, ModelDescriptor
from ai_bridge.llm_adapter.registry import ModelRegistry

BASE_URLS: dict[str, str] = {
    "openai":     "https://api.openai.com/v1",
    "groq":       "https://api.groq.com/openai/v1",
    "gemini":     "https://generativelanguage.googleapis.com/v1beta/openai/",
    "openrouter": "https://openrouter.ai/api/v1",
    "local":      "http://localhost:11434/v1",
}


class OpenAIProvider(ProviderAdapter):
    """
    OpenAI Chat Completions adapter.

    ``provider_id`` selects the default base URL; the logical model id from
    the registry is sent as the vendor model name.
    """

    def __init__(
        self,
        registry: ModelRegistry,
        provider_id: str = "openai",
        api_key: str | None = None,
        base_url: str | None = None,
        client: AsyncOpenAI | None = None,
        **kwargs,
    ) -> None:
        # local servers (Ollama / LM Studio) do not check the key
        if not api_key and provider_id == "local":
            api_key = "local-placeholder-key"
        super().__init__(provider_id, registry, api_key=api_key, **kwargs)
        self._base_url = base_url or BASE_URLS.get(provider_id, BASE_URLS["openai"])
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self._api_key,
                base_url=self._base_url,
                timeout=self.timeout_ms / 1000,
                max_retries=0,
            )
        return self._client

    def _params(self, request: GenerationRequest, descriptor: ModelDescriptor) -> dict[str, Any]:
        params: dict[str, Any] = {
            "model": descriptor.id,
            "messages": [{"role": "user", "content": request.prompt_text}],
            "temperature": request.temperature,
            "top_p": request.top_p,
            "max_tokens": request.max_output_tokens,
        }
        if request.stop_sequences:
            params["stop"] = list(request.stop_sequences)
        return params

    async def _complete(
        self, request: GenerationRequest, descriptor: ModelDescriptor
    ) -> ProviderReply:
        response = await self._get_client().chat.completions.create(
            **self._params(request, descriptor)
        )

        choice = response.choices[0]
        usage = response.usage

        return ProviderReply(
            text=choice.message.content or "",
            prompt_tokens=usage.prompt_tokens if usage else None,
            completion_tokens=usage.completion_tokens if usage else None,
        )

    async def _stream(
        self, request: GenerationRequest, descriptor: ModelDescriptor
    ) -> AsyncIterator[TransportChunk]:
        stream = await self._get_client().chat.completions.create(
            **self._params(request, descriptor),
            stream=True,
            stream_options={"include_usage": True},
        )
        async for event in stream:
            usage = getattr(event, "usage", None)
            text = ""
            if event.choices:
                text = event.choices[0].delta.content or ""
            yield TransportChunk(
                text=text,
                prompt_tokens=usage.prompt_tokens if usage else None,
                completion_tokens=usage.completion_tokens if usage else None,
            )

    def _classify(self, exc: Exception) -> GenerationError:
        message = f"{self.provider_id}: {exc}"
        if isinstance(exc, openai.APITimeoutError):
            return ProviderTimeoutError(message)
        if isinstance(exc, (openai.APIConnectionError, openai.RateLimitError, openai.InternalServerError)):
            return TransientProviderError(message)
        if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError, openai.NotFoundError)):
            return ConfigurationError(message)
        if isinstance(exc, (openai.BadRequestError, openai.UnprocessableEntityError)):
            return RequestValidationError(message)
        if isinstance(exc, openai.APIStatusError):
            if exc.status_code >= 500 or exc.status_code in (408, 409, 429):
                return TransientProviderError(message)
            return ConfigurationError(message)
        return super()._classify(exc)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
