import logging

import pytest

from ai_bridge.config import BridgeConfig
from ai_bridge.llm_adapter.errors import ConfigurationError
from ai_bridge.llm_adapter.factory import build_adapters, build_orchestrator, build_registry
from ai_bridge.llm_adapter.mock_provider import MockProvider
from ai_bridge.llm_adapter.openai_provider import OpenAIProvider
from ai_bridge.orchestration.selection import SelectionPolicy
from ai_bridge.orchestration.usage import UsageTracker


class TestBridgeConfig:

    def test_defaults(self):
        config = BridgeConfig.from_env({})

        assert config.max_retries == 3
        assert config.request_timeout_ms == 60_000
        assert config.cache_ttl_seconds == 3600
        assert config.selection_policy is SelectionPolicy.BALANCED
        assert config.redis_url is None
        assert "mock" in config.enabled_providers
        assert config.secrets() == []

    def test_reads_overrides_and_credentials(self):
        config = BridgeConfig.from_env(
            {
                "LLM_MAX_RETRIES": "5",
                "MAX_IN_FLIGHT": "4",
                "MODEL_SELECTION_POLICY": "Cheapest",
                "ENABLED_PROVIDERS": "openai, mock",
                "OPENAI_API_KEY": "sk-test-0123456789",
                "OPENAI_BASE_URL": "http://proxy.internal/v1",
            }
        )

        assert config.max_retries == 5
        assert config.max_in_flight == 4
        assert config.selection_policy is SelectionPolicy.CHEAPEST
        assert config.enabled_providers == ("openai", "mock")
        assert config.providers["openai"].base_url == "http://proxy.internal/v1"
        assert config.secrets() == ["sk-test-0123456789"]

    def test_credentials_stay_out_of_repr(self):
        config = BridgeConfig.from_env({"OPENAI_API_KEY": "sk-test-0123456789"})
        assert "sk-test-0123456789" not in repr(config)
        assert "sk-test-0123456789" not in repr(config.providers["openai"])

    @pytest.mark.parametrize(
        "env",
        [
            {"LLM_MAX_RETRIES": "zero"},
            {"LLM_MAX_RETRIES": "0"},
            {"MODEL_SELECTION_POLICY": "random"},
            {"ENABLED_PROVIDERS": "openai,skynet"},
        ],
    )
    def test_invalid_values(self, env):
        with pytest.raises(ConfigurationError):
            BridgeConfig.from_env(env)


class TestFactory:

    def test_adapters_follow_enabled_providers(self):
        config = BridgeConfig.from_env({"ENABLED_PROVIDERS": "mock,openai,local"})
        adapters = build_adapters(config, build_registry(config))

        assert set(adapters) == {"mock", "openai", "local"}
        assert isinstance(adapters["mock"], MockProvider)
        assert isinstance(adapters["openai"], OpenAIProvider)
        assert not adapters["openai"].has_credential
        assert adapters["local"].has_credential

    def test_registry_from_file(self, tmp_path):
        table = tmp_path / "models.json"
        table.write_text(
            '[{"id": "m", "providerId": "mock", "inputCostPerKTokens": 0,'
            ' "outputCostPerKTokens": 0, "maxContextTokens": 100}]'
        )
        config = BridgeConfig.from_env({"MODEL_REGISTRY_PATH": str(table)})
        assert [d.id for d in build_registry(config)] == ["m"]

    def test_registry_load_is_logged_once(self, tmp_path, caplog):
        table = tmp_path / "models.json"
        table.write_text(
            '[{"id": "m", "providerId": "mock", "inputCostPerKTokens": 0,'
            ' "outputCostPerKTokens": 0, "maxContextTokens": 100}]'
        )
        config = BridgeConfig.from_env({"MODEL_REGISTRY_PATH": str(table)})

        with caplog.at_level(logging.INFO, logger="ai_bridge"):
            build_registry(config)

        loaded = [r for r in caplog.records if "from " + str(table) in r.getMessage()]
        assert len(loaded) == 1

    @pytest.mark.asyncio
    async def test_built_orchestrator_serves_mock_requests(self):
        from ai_bridge.llm_adapter.models import GenerationRequest

        tracker = UsageTracker()
        orchestrator = build_orchestrator(
            BridgeConfig.from_env({"ENABLED_PROVIDERS": "mock"}), tracker=tracker
        )
        result = await orchestrator.submit(
            GenerationRequest(model_id="mock-deterministic", prompt_text="ping")
        )

        assert result.ok
        assert result.text.startswith("[MOCK]")
        assert tracker.snapshot().total_requests == 1
        await orchestrator.aclose()
