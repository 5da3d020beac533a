"""
Deterministic mock provider for testing and development.

Always returns the same output for the same prompt hash, making the entire
pipeline reproducible without network calls or credentials.
"""

from __future__ import annotations

import asyncio
import hashlib
from typing import AsyncIterator

from ai_bridge.llm_adapter.base import ProviderAdapter, ProviderReply, TransportChunk
from ai_bridge.llm_adapter.models import GenerationRequest, ModelDescriptor
from ai_bridge.llm_adapter.registry import ModelRegistry

_MOCK_PREFIX = "[MOCK] "


class MockProvider(ProviderAdapter):

    requires_credential = False

    def __init__(
        self,
        registry: ModelRegistry,
        provider_id: str = "mock",
        latency_ms: int = 0,
        **kwargs,
    ) -> None:
        super().__init__(provider_id, registry, **kwargs)
        self._latency = latency_ms / 1000
        self.call_count = 0

    def _render(self, request: GenerationRequest) -> str:
        prompt_hash = hashlib.sha256(request.prompt_text.encode()).hexdigest()
        words = (
            f"{_MOCK_PREFIX}Deterministic response for prompt hash "
            f"{prompt_hash[:12]} from {request.model_id}."
        ).split(" ")
        # honour the output budget the way a real model would truncate
        return " ".join(words[: request.max_output_tokens])

    async def _complete(
        self, request: GenerationRequest, descriptor: ModelDescriptor
    ) -> ProviderReply:
        self.call_count += 1
        if self._latency:
            await asyncio.sleep(self._latency)
        content = self._render(request)
        return ProviderReply(
            text=content,
            prompt_tokens=len(request.prompt_text.split()),
            completion_tokens=len(content.split()),
        )

    async def _stream(
        self, request: GenerationRequest, descriptor: ModelDescriptor
    ) -> AsyncIterator[TransportChunk]:
        self.call_count += 1
        content = self._render(request)
        words = content.split(" ")
        for i, word in enumerate(words):
            if self._latency:
                await asyncio.sleep(self._latency / len(words))
            yield TransportChunk(text=word if i == 0 else " " + word)
        yield TransportChunk(
            prompt_tokens=len(request.prompt_text.split()),
            completion_tokens=len(words),
        )
