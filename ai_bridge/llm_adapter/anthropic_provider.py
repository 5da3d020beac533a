"""Anthropic Messages API adapter (plain httpx, SSE streaming)."""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator

import httpx

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

logger = logging.getLogger(__name__)

ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"

_TRANSIENT_STATUS = {408, 409, 429, 500, 502, 503, 504, 529}


class AnthropicProvider(ProviderAdapter):
    """Anthropic API provider (Claude Sonnet, Haiku, etc.)."""

    def __init__(
        self,
        registry: ModelRegistry,
        provider_id: str = "anthropic",
        api_key: str | None = None,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        **kwargs,
    ) -> None:
        super().__init__(provider_id, registry, api_key=api_key, **kwargs)
        self._base_url = (base_url or ANTHROPIC_BASE_URL).rstrip("/")
        self._http = http_client

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.timeout_ms / 1000)
        return self._http

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self._api_key or "",
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }

    def _payload(self, request: GenerationRequest, descriptor: ModelDescriptor) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": descriptor.id,
            "messages": [{"role": "user", "content": request.prompt_text}],
            "max_tokens": request.max_output_tokens,
            "temperature": request.temperature,
            "top_p": request.top_p,
        }
        if request.stop_sequences:
            payload["stop_sequences"] = list(request.stop_sequences)
        return payload

    async def _complete(
        self, request: GenerationRequest, descriptor: ModelDescriptor
    ) -> ProviderReply:
        response = await self._client().post(
            f"{self._base_url}/messages",
            headers=self._headers(),
            json=self._payload(request, descriptor),
        )
        response.raise_for_status()

        data = response.json()
        text = "".join(
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        )
        usage = data.get("usage") or {}
        return ProviderReply(
            text=text,
            prompt_tokens=usage.get("input_tokens"),
            completion_tokens=usage.get("output_tokens"),
        )

    async def _stream(
        self, request: GenerationRequest, descriptor: ModelDescriptor
    ) -> AsyncIterator[TransportChunk]:
        payload = {**self._payload(request, descriptor), "stream": True}
        async with self._client().stream(
            "POST",
            f"{self._base_url}/messages",
            headers=self._headers(),
            json=payload,
        ) as response:
            if response.is_error:
                await response.aread()
                response.raise_for_status()

            async for line in response.aiter_lines():
                if not line.startswith("data:"):
                    continue
                event = json.loads(line[len("data:"):].strip())
                kind = event.get("type")

                if kind == "message_start":
                    usage = event.get("message", {}).get("usage") or {}
                    yield TransportChunk(prompt_tokens=usage.get("input_tokens"))
                elif kind == "content_block_delta":
                    delta = event.get("delta", {})
                    if delta.get("type") == "text_delta":
                        yield TransportChunk(text=delta.get("text", ""))
                elif kind == "message_delta":
                    usage = event.get("usage") or {}
                    yield TransportChunk(completion_tokens=usage.get("output_tokens"))
                elif kind == "error":
                    error = event.get("error", {})
                    raise TransientProviderError(
                        f"{self.provider_id} stream error: {error.get('message', error)}"
                    )

    def _classify(self, exc: Exception) -> GenerationError:
        message = f"{self.provider_id}: {exc}"
        if isinstance(exc, httpx.TimeoutException):
            return ProviderTimeoutError(message)
        if isinstance(exc, httpx.HTTPStatusError):
            status = exc.response.status_code
            if status in _TRANSIENT_STATUS or status >= 500:
                return TransientProviderError(message)
            if status in (400, 413, 422):
                return RequestValidationError(message)
            return ConfigurationError(message)
        if isinstance(exc, httpx.TransportError):
            return TransientProviderError(message)
        if isinstance(exc, (json.JSONDecodeError, KeyError)):
            logger.warning("Malformed response from %s: %s", self.provider_id, exc)
        return super()._classify(exc)

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
