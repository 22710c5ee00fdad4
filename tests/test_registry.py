import json

import httpx
import pytest

from fakes import FakeFleet, definition
from llmrouter.config import Config
from llmrouter.errors import ProviderConfigError
from llmrouter.models import FreePricing
from llmrouter.provider.anthropic import AnthropicProvider
from llmrouter.provider.ollama import OllamaProvider
from llmrouter.provider.openai import OpenAICompatibleProvider
from llmrouter.registry import ProviderRegistry, create_provider, parse_provider_config
from llmrouter.settings import LLM_SETTINGS_KEY, MemorySettingsStore


def _raw(**overrides: "object") -> "dict":
    raw = definition("alpha")
    raw["model"] = raw.pop("defaultModel")
    raw.update(overrides)
    return raw


class TestParseProviderConfig:
    def test_valid(self) -> "None":
        config = parse_provider_config(_raw(priority=2))
        assert config.key == "alpha"
        assert config.model == "alpha-model"
        assert config.priority == 2
        assert config.pricing == FreePricing()

    @pytest.mark.parametrize(
        "overrides",
        [
            {"family": "cohere"},
            {"endpoint": "not-a-url"},
            {"model": "  "},
            {"priority": 11},
            {"priority": "1"},
            {"apiKeyRequired": True, "apiKey": ""},
            {"pricing": {"type": "flat"}},
            {"pricing": {"type": "input_output", "modelPricing": ["x"]}},
            {"enabled": "maybe"},
            {"apiKeyRequired": 1},
        ],
    )
    def test_invalid(self, overrides: "dict") -> "None":
        with pytest.raises(ProviderConfigError) as excinfo:
            parse_provider_config(_raw(**overrides))
        assert excinfo.value.provider == "alpha"

    @pytest.mark.parametrize(
        "raw, expected",
        [("false", False), (" True ", True), ("0", False), (True, True)],
    )
    def test_enabled_accepts_text_flags(
        self, raw: "object", expected: "bool"
    ) -> "None":
        assert parse_provider_config(_raw(enabled=raw)).enabled is expected


class TestCreateProvider:
    def test_picks_adapter_by_family(self) -> "None":
        client = httpx.AsyncClient()
        assert isinstance(
            create_provider(parse_provider_config(_raw()), client),
            OpenAICompatibleProvider,
        )
        assert isinstance(
            create_provider(parse_provider_config(_raw(family="ollama")), client),
            OllamaProvider,
        )
        assert isinstance(
            create_provider(parse_provider_config(_raw(family="anthropic")), client),
            AnthropicProvider,
        )


def _registry(
    store: "MemorySettingsStore", catalog: "list[dict]"
) -> "ProviderRegistry":
    return ProviderRegistry(
        store,
        Config(),
        httpx.AsyncClient(),
        provider_factory=FakeFleet(),
        catalog=catalog,
    )


class TestProviderRegistry:
    def test_skips_malformed_provider(self) -> "None":
        catalog = [
            definition("good"),
            definition("broken", pricing={"type": "flat", "costPer1k": "x"}),
            definition(
                "listed",
                pricing={"type": "input_output", "modelPricing": ["x"]},
            ),
            definition("keyless", apiKeyRequired=True),
        ]
        registry = _registry(MemorySettingsStore(), catalog)

        change = registry.load_providers()

        assert list(registry.snapshot) == ["good"]
        assert change.added == {"good"}

    def test_default_catalog_needs_cloud_keys(self) -> "None":
        registry = ProviderRegistry(
            MemorySettingsStore(),
            Config(groq_api_key="gsk"),
            httpx.AsyncClient(),
            provider_factory=FakeFleet(),
        )
        registry.load_providers()
        assert sorted(registry.snapshot) == ["groq", "ollama"]

    def test_settings_flags_apply(self) -> "None":
        store = MemorySettingsStore(
            {
                LLM_SETTINGS_KEY: json.dumps(
                    {"providers": {"alpha": {"enabled": False, "priority": 7}}}
                )
            }
        )
        registry = _registry(store, [definition("alpha")])
        registry.load_providers()
        config = registry.get("alpha").config
        assert config.enabled is False
        assert config.priority == 7

    def test_reload_reports_changes_and_keeps_unchanged_adapters(self) -> "None":
        store = MemorySettingsStore()
        catalog = [definition("alpha"), definition("beta"), definition("gamma")]
        registry = _registry(store, catalog)
        registry.load_providers()
        before = registry.snapshot

        store.set("llm_provider_alpha_endpoint", "https://alpha-2.example/v1")
        catalog.pop()
        change = registry.load_providers()

        assert change.changed == {"alpha"}
        assert change.removed == {"gamma"}
        assert change.stale_keys == {"alpha", "gamma"}
        assert registry.get("beta") is before["beta"]
        assert registry.get("alpha") is not before["alpha"]
        # the old snapshot is untouched
        old_endpoint = before["alpha"].config.endpoint
        assert old_endpoint == "https://alpha.example/v1/chat/completions"
        assert "gamma" in before

    def test_priority_change_is_not_a_connection_change(self) -> "None":
        store = MemorySettingsStore()
        registry = _registry(store, [definition("alpha")])
        registry.load_providers()

        flags = {"providers": {"alpha": {"priority": 1}}}
        store.set(LLM_SETTINGS_KEY, json.dumps(flags))
        change = registry.load_providers()

        assert change.changed == frozenset()
        assert registry.get("alpha").config.priority == 1

    def test_set_model(self) -> "None":
        store = MemorySettingsStore()
        registry = _registry(store, [definition("alpha")])
        registry.load_providers()

        assert registry.set_model("alpha", " alpha-large ") is True
        assert registry.get("alpha").config.model == "alpha-large"
        assert store.get("llm_provider_alpha_model") == "alpha-large"

        # survives a reload
        registry.load_providers()
        assert registry.get("alpha").config.model == "alpha-large"

    def test_set_model_rejects_unknown_key_and_empty_model(self) -> "None":
        store = MemorySettingsStore()
        registry = _registry(store, [definition("alpha")])
        registry.load_providers()

        assert registry.set_model("nope", "m") is False
        assert registry.set_model("alpha", "") is False
        assert registry.get("alpha").config.model == "alpha-model"
        assert store.get("llm_provider_alpha_model") is None
