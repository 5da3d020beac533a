"""
Static model registry.

Maps logical model ids to their provider and cost/latency profile. The table
is loaded once at startup, either from the built-in defaults or from a JSON
file, and never mutated afterwards: adding a model means shipping a new
table.

JSON table format (list of objects, or ``{"models": [...]}``)::

    [
      {"id": "gpt-4o-mini", "providerId": "openai",
       "inputCostPerKTokens": 0.00015, "outputCostPerKTokens": 0.0006,
       "maxContextTokens": 128000, "typicalLatencyMs": 900}
    ]
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Iterator

from ai_bridge.llm_adapter.errors import ConfigurationError, UnknownModelError
from ai_bridge.llm_adapter.models import ModelDescriptor

logger = logging.getLogger(__name__)

DEFAULT_MODELS: tuple[dict[str, Any], ...] = (
    {"id": "gpt-4o", "providerId": "openai", "inputCostPerKTokens": 0.0025,
     "outputCostPerKTokens": 0.01, "maxContextTokens": 128000, "typicalLatencyMs": 2500},
    {"id": "gpt-4o-mini", "providerId": "openai", "inputCostPerKTokens": 0.00015,
     "outputCostPerKTokens": 0.0006, "maxContextTokens": 128000, "typicalLatencyMs": 900},
    {"id": "claude-sonnet-4-20250514", "providerId": "anthropic", "inputCostPerKTokens": 0.003,
     "outputCostPerKTokens": 0.015, "maxContextTokens": 200000, "typicalLatencyMs": 2800},
    {"id": "claude-3-5-haiku-20241022", "providerId": "anthropic", "inputCostPerKTokens": 0.0008,
     "outputCostPerKTokens": 0.004, "maxContextTokens": 200000, "typicalLatencyMs": 1100},
    {"id": "llama-3.3-70b-versatile", "providerId": "groq", "inputCostPerKTokens": 0.00059,
     "outputCostPerKTokens": 0.00079, "maxContextTokens": 128000, "typicalLatencyMs": 500},
    {"id": "gemini-2.0-flash", "providerId": "gemini", "inputCostPerKTokens": 0.0001,
     "outputCostPerKTokens": 0.0004, "maxContextTokens": 1000000, "typicalLatencyMs": 800},
    {"id": "mock-deterministic", "providerId": "mock", "inputCostPerKTokens": 0.0,
     "outputCostPerKTokens": 0.0, "maxContextTokens": 32000, "typicalLatencyMs": 5},
)


class ModelRegistry:
    """Read-only lookup of ModelDescriptors; safe to share without locking."""

    def __init__(self, descriptors: Iterable[ModelDescriptor]) -> None:
        table: dict[str, ModelDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.id in table:
                raise ConfigurationError(
                    f"Duplicate model id '{descriptor.id}' in model table"
                )
            table[descriptor.id] = descriptor
        self._models = MappingProxyType(table)

    @classmethod
    def from_entries(cls, entries: Iterable[dict[str, Any]]) -> ModelRegistry:
        return cls(ModelDescriptor.model_validate(entry) for entry in entries)

    @classmethod
    def default(cls) -> ModelRegistry:
        return cls.from_entries(DEFAULT_MODELS)

    @classmethod
    def from_file(cls, path: str | Path) -> ModelRegistry:
        path = Path(path)
        try:
            raw = json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"Cannot load model table {path}: {exc}") from exc

        entries = raw.get("models", []) if isinstance(raw, dict) else raw
        registry = cls.from_entries(entries)
        logger.info("Loaded %d model(s) from %s", len(registry), path)
        return registry

    def resolve(self, model_id: str) -> ModelDescriptor:
        try:
            return self._models[model_id]
        except KeyError:
            raise UnknownModelError(model_id) from None

    def list_by_provider(self, provider_id: str) -> list[ModelDescriptor]:
        return [m for m in self._models.values() if m.provider_id == provider_id]

    def models(self) -> list[ModelDescriptor]:
        return list(self._models.values())

    def providers(self) -> set[str]:
        return {m.provider_id for m in self._models.values()}

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._models

    def __len__(self) -> int:
        return len(self._models)

    def __iter__(self) -> Iterator[ModelDescriptor]:
        return iter(self._models.values())
