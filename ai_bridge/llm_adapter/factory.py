"""
Component factory -- builds a fully wired Orchestrator from BridgeConfig.

Supported providers:

  mock        Built-in deterministic provider, no API key needed
  openai      OpenAI API        -- needs OPENAI_API_KEY
  anthropic   Anthropic API     -- needs ANTHROPIC_API_KEY
  groq        Groq API          -- needs GROQ_API_KEY
  gemini      Google AI         -- needs GEMINI_API_KEY
  openrouter  OpenRouter        -- needs OPENROUTER_API_KEY
  local       Any OpenAI-compatible local server
                                   e.g. Ollama / LM Studio (no key required)

Adapters are built for every enabled provider, with or without a key: a
provider missing its key fails each request with MissingCredentialError
instead of failing startup. Nothing here is cached at module level; callers
own the objects they build.
"""

from __future__ import annotations

import logging

from ai_bridge.config import BridgeConfig
from ai_bridge.llm_adapter.anthropic_provider import AnthropicProvider
from ai_bridge.llm_adapter.base import ProviderAdapter
from ai_bridge.llm_adapter.cache import ResponseCache
from ai_bridge.llm_adapter.mock_provider import MockProvider
from ai_bridge.llm_adapter.openai_provider import BASE_URLS, OpenAIProvider
from ai_bridge.llm_adapter.registry import ModelRegistry
from ai_bridge.llm_adapter.store import RedisStore
from ai_bridge.observability.metrics import observe_result
from ai_bridge.orchestration.hooks import hooks_by_name
from ai_bridge.orchestration.orchestrator import Orchestrator
from ai_bridge.orchestration.usage import UsageTracker

logger = logging.getLogger(__name__)


def build_registry(config: BridgeConfig) -> ModelRegistry:
    if config.registry_path:
        return ModelRegistry.from_file(config.registry_path)
    return ModelRegistry.default()


def build_adapters(
    config: BridgeConfig, registry: ModelRegistry
) -> dict[str, ProviderAdapter]:
    policy = {
        "max_retries": config.max_retries,
        "timeout_ms": config.request_timeout_ms,
        "backoff_base_ms": config.backoff_base_ms,
    }
    adapters: dict[str, ProviderAdapter] = {}
    for provider_id, settings in config.providers.items():
        if provider_id == "mock":
            adapter: ProviderAdapter = MockProvider(registry, **policy)
        elif provider_id == "anthropic":
            adapter = AnthropicProvider(
                registry,
                api_key=settings.api_key,
                base_url=settings.base_url,
                **policy,
            )
        elif provider_id in BASE_URLS:
            adapter = OpenAIProvider(
                registry,
                provider_id=provider_id,
                api_key=settings.api_key,
                base_url=settings.base_url,
                **policy,
            )
        else:
            continue
        adapters[provider_id] = adapter
        logger.info(
            "Provider adapter ready: %s (credential=%s)",
            provider_id,
            adapter.has_credential,
        )
    return adapters


def build_cache(config: BridgeConfig) -> ResponseCache:
    store = RedisStore.from_url(config.redis_url) if config.redis_url else None
    return ResponseCache(max_entries=config.cache_max_entries, store=store)


def build_orchestrator(
    config: BridgeConfig | None = None,
    tracker: UsageTracker | None = None,
) -> Orchestrator:
    """
    Wire registry, adapters, cache, hooks and listeners from ``config``.

    The tracker, when given, is registered as a result listener alongside
    the Prometheus observer.
    """
    config = config or BridgeConfig.from_env()
    registry = build_registry(config)
    listeners = [observe_result]
    if tracker is not None:
        listeners.append(tracker.record)

    orchestrator = Orchestrator(
        registry=registry,
        adapters=build_adapters(config, registry),
        cache=build_cache(config),
        hooks=hooks_by_name(config.post_process_hooks),
        listeners=listeners,
        cache_ttl_seconds=config.cache_ttl_seconds,
        max_in_flight=config.max_in_flight,
        selection_policy=config.selection_policy,
    )
    logger.info(
        "Orchestrator initialized: %d models, providers=%s, cached_in_redis=%s",
        len(registry),
        ",".join(config.providers),
        bool(config.redis_url),
    )
    return orchestrator
