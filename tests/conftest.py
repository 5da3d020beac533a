from __future__ import annotations

import asyncio

import pytest

from ai_bridge.llm_adapter.base import ProviderAdapter, ProviderReply, TransportChunk
from ai_bridge.llm_adapter.cache import ResponseCache
from ai_bridge.llm_adapter.models import GenerationRequest
from ai_bridge.llm_adapter.registry import ModelRegistry
from ai_bridge.orchestration.orchestrator import Orchestrator
from ai_bridge.orchestration.usage import UsageTracker

MODELS = [
    {"id": "model-a", "providerId": "scripted", "inputCostPerKTokens": 0.001,
     "outputCostPerKTokens": 0.002, "maxContextTokens": 4096, "typicalLatencyMs": 100},
    {"id": "model-b", "providerId": "scripted", "inputCostPerKTokens": 0.01,
     "outputCostPerKTokens": 0.02, "maxContextTokens": 100, "typicalLatencyMs": 50},
    {"id": "model-c", "providerId": "ghost", "inputCostPerKTokens": 0.0,
     "outputCostPerKTokens": 0.0, "maxContextTokens": 4096, "typicalLatencyMs": 1},
]


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedProvider(ProviderAdapter):
    """
    In-process provider double.

    ``replies`` feeds ``_complete`` (ProviderReply or exception per call);
    ``streams`` feeds ``_stream`` (one list of TransportChunk/exception per
    call). Without a script it echoes the prompt.
    """

    requires_credential = False

    def __init__(
        self,
        registry: ModelRegistry,
        provider_id: str = "scripted",
        replies=None,
        streams=None,
        delay: float = 0.0,
        **kwargs,
    ) -> None:
        kwargs.setdefault("backoff_base_ms", 0)
        super().__init__(provider_id, registry, **kwargs)
        self.replies = list(replies or [])
        self.streams = list(streams or [])
        self.delay = delay
        self.calls = 0
        self.active = 0
        self.peak = 0
        self.cancelled = False

    async def _complete(self, request, descriptor):
        self.calls += 1
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        finally:
            self.active -= 1

        item = self.replies.pop(0) if self.replies else ProviderReply(
            f"echo: {request.prompt_text}", prompt_tokens=10, completion_tokens=5
        )
        if isinstance(item, BaseException):
            raise item
        return item

    async def _stream(self, request, descriptor):
        self.calls += 1
        if self.streams:
            pieces = self.streams.pop(0)
        else:
            pieces = [TransportChunk(text=w) for w in ("echo:", " ", request.prompt_text)]
            pieces.append(TransportChunk(prompt_tokens=10, completion_tokens=5))
        for piece in pieces:
            if isinstance(piece, BaseException):
                raise piece
            if self.delay:
                try:
                    await asyncio.sleep(self.delay)
                except asyncio.CancelledError:
                    self.cancelled = True
                    raise
            yield piece


@pytest.fixture
def registry() -> ModelRegistry:
    return ModelRegistry.from_entries(MODELS)


@pytest.fixture
def provider(registry) -> ScriptedProvider:
    return ScriptedProvider(registry)


@pytest.fixture
def tracker() -> UsageTracker:
    return UsageTracker()


@pytest.fixture
def make_orchestrator(registry, tracker):
    def _make(adapter: ProviderAdapter, **kwargs) -> Orchestrator:
        kwargs.setdefault("cache", ResponseCache(max_entries=16))
        return Orchestrator(
            registry=registry,
            adapters={adapter.provider_id: adapter},
            listeners=[tracker.record],
            **kwargs,
        )

    return _make


def make_request(prompt: str = "hello", model_id: str = "model-a", **kwargs) -> GenerationRequest:
    kwargs.setdefault("max_output_tokens", 16)
    return GenerationRequest(model_id=model_id, prompt_text=prompt, **kwargs)
