from __future__ import annotations

import os
from dataclasses import dataclass, field

from ai_bridge.llm_adapter.errors import ConfigurationError
from ai_bridge.orchestration.selection import SelectionPolicy

# provider id -> (api key variable, base url variable)
PROVIDER_ENV: dict[str, tuple[str | None, str | None]] = {
    "openai":     ("OPENAI_API_KEY", "OPENAI_BASE_URL"),
    "anthropic":  ("ANTHROPIC_API_KEY", "ANTHROPIC_BASE_URL"),
    "groq":       ("GROQ_API_KEY", "GROQ_BASE_URL"),
    "gemini":     ("GEMINI_API_KEY", "GEMINI_BASE_URL"),
    "openrouter": ("OPENROUTER_API_KEY", "OPENROUTER_BASE_URL"),
    "local":      (None, "LOCAL_LLM_BASE_URL"),
    "mock":       (None, None),
}


@dataclass(frozen=True)
class ProviderSettings:
    provider_id: str
    api_key: str | None = field(default=None, repr=False)
    base_url: str | None = None


def _int(environ: dict[str, str], name: str, default: int, minimum: int = 0) -> int:
    raw = environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


def _csv(raw: str) -> tuple[str, ...]:
    return tuple(p.strip() for p in raw.split(",") if p.strip())


@dataclass(frozen=True)
class BridgeConfig:
    registry_path: str | None
    max_retries: int
    request_timeout_ms: int
    backoff_base_ms: int
    cache_max_entries: int
    cache_ttl_seconds: int
    max_in_flight: int
    redis_url: str | None
    selection_policy: SelectionPolicy
    enabled_providers: tuple[str, ...]
    post_process_hooks: tuple[str, ...]
    providers: dict[str, ProviderSettings] = field(default_factory=dict, repr=False)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> BridgeConfig:
        env = dict(os.environ if environ is None else environ)

        policy_raw = env.get("MODEL_SELECTION_POLICY", "balanced").strip().lower()
        try:
            policy = SelectionPolicy(policy_raw)
        except ValueError:
            raise ConfigurationError(
                f"MODEL_SELECTION_POLICY must be one of "
                f"{', '.join(p.value for p in SelectionPolicy)}, got {policy_raw!r}"
            ) from None

        enabled = _csv(env.get("ENABLED_PROVIDERS", "")) or tuple(PROVIDER_ENV)
        unknown = [p for p in enabled if p not in PROVIDER_ENV]
        if unknown:
            raise ConfigurationError(
                f"Unknown provider(s) in ENABLED_PROVIDERS: {', '.join(unknown)}. "
                f"Available: {', '.join(PROVIDER_ENV)}"
            )

        providers = {}
        for provider_id in enabled:
            key_var, url_var = PROVIDER_ENV[provider_id]
            providers[provider_id] = ProviderSettings(
                provider_id=provider_id,
                api_key=(env.get(key_var) or None) if key_var else None,
                base_url=(env.get(url_var) or None) if url_var else None,
            )

        return cls(
            registry_path=env.get("MODEL_REGISTRY_PATH") or None,
            max_retries=_int(env, "LLM_MAX_RETRIES", 3, minimum=1),
            request_timeout_ms=_int(env, "LLM_REQUEST_TIMEOUT_MS", 60_000, minimum=1),
            backoff_base_ms=_int(env, "LLM_BACKOFF_BASE_MS", 500),
            cache_max_entries=_int(env, "CACHE_MAX_ENTRIES", 1024, minimum=1),
            cache_ttl_seconds=_int(env, "CACHE_TTL_SECONDS", 3600, minimum=1),
            max_in_flight=_int(env, "MAX_IN_FLIGHT", 16, minimum=1),
            redis_url=env.get("REDIS_URL") or None,
            selection_policy=policy,
            enabled_providers=enabled,
            post_process_hooks=_csv(env.get("POST_PROCESS_HOOKS", "strip_whitespace")),
            providers=providers,
        )

    def secrets(self) -> list[str]:
        return [p.api_key for p in self.providers.values() if p.api_key]
