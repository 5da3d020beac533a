import json

import pytest

from ai_bridge.llm_adapter.errors import ConfigurationError, UnknownModelError
from ai_bridge.llm_adapter.models import ModelDescriptor
from ai_bridge.llm_adapter.registry import ModelRegistry

from conftest import MODELS


class TestModelRegistry:

    def test_resolve_known_model(self, registry):
        descriptor = registry.resolve("model-a")
        assert descriptor.provider_id == "scripted"
        assert descriptor.max_context_tokens == 4096

    def test_resolve_unknown_model(self, registry):
        with pytest.raises(UnknownModelError) as exc_info:
            registry.resolve("gpt-17")
        assert exc_info.value.model_id == "gpt-17"

    def test_list_by_provider(self, registry):
        ids = [d.id for d in registry.list_by_provider("scripted")]
        assert ids == ["model-a", "model-b"]
        assert registry.list_by_provider("nobody") == []

    def test_container_protocol(self, registry):
        assert "model-c" in registry
        assert "model-z" not in registry
        assert len(registry) == 3
        assert registry.providers() == {"scripted", "ghost"}

    def test_duplicate_ids_are_rejected(self):
        with pytest.raises(ConfigurationError):
            ModelRegistry.from_entries([MODELS[0], MODELS[0]])

    def test_default_table_is_valid(self):
        registry = ModelRegistry.default()
        assert "mock-deterministic" in registry
        assert {"openai", "anthropic", "mock"} <= registry.providers()

    def test_from_file_accepts_list_and_wrapped_forms(self, tmp_path):
        as_list = tmp_path / "models.json"
        as_list.write_text(json.dumps(MODELS))
        wrapped = tmp_path / "wrapped.json"
        wrapped.write_text(json.dumps({"models": MODELS}))

        assert len(ModelRegistry.from_file(as_list)) == 3
        assert len(ModelRegistry.from_file(wrapped)) == 3

    def test_from_file_reports_unreadable_tables(self, tmp_path):
        broken = tmp_path / "broken.json"
        broken.write_text("[{")

        with pytest.raises(ConfigurationError):
            ModelRegistry.from_file(broken)
        with pytest.raises(ConfigurationError):
            ModelRegistry.from_file(tmp_path / "missing.json")


class TestModelDescriptor:

    def test_cost_estimate(self, registry):
        descriptor = registry.resolve("model-a")
        # 2000 prompt tokens at 0.001/k + 500 completion tokens at 0.002/k
        assert descriptor.estimate_cost(2000, 500) == pytest.approx(0.003)

    def test_negative_cost_is_rejected(self):
        with pytest.raises(ValueError):
            ModelDescriptor.model_validate(
                {**MODELS[0], "inputCostPerKTokens": -1}
            )

    def test_descriptors_are_immutable(self, registry):
        with pytest.raises(ValueError):
            registry.resolve("model-a").max_context_tokens = 1
