import json
import os

from llmrouter.config import Config
from llmrouter.settings import (
    LLM_SETTINGS_KEY,
    JsonFileSettingsStore,
    MemorySettingsStore,
    load_router_settings,
    provider_definitions,
)


class TestLoadRouterSettings:
    def test_defaults_when_absent(self) -> "None":
        settings = load_router_settings(MemorySettingsStore())
        assert settings.latency_weight == 0.7
        assert settings.cost_weight == 0.3
        assert settings.providers["ollama"] == {"enabled": True, "priority": 1}

    def test_reads_and_clamps_weights(self) -> "None":
        store = MemorySettingsStore(
            {
                LLM_SETTINGS_KEY: json.dumps(
                    {
                        "latencyWeight": 1.5,
                        "costWeight": -0.2,
                        "providers": {"groq": {"enabled": False}},
                    }
                )
            }
        )
        settings = load_router_settings(store)
        assert settings.latency_weight == 1.0
        assert settings.cost_weight == 0.0
        assert settings.providers["groq"] == {"enabled": False, "priority": 2}

    def test_unparseable_settings_fall_back(self) -> "None":
        store = MemorySettingsStore({LLM_SETTINGS_KEY: "{not json"})
        settings = load_router_settings(store)
        assert settings.latency_weight == 0.7

    def test_providers_not_an_object_fall_back(self) -> "None":
        store = MemorySettingsStore(
            {LLM_SETTINGS_KEY: json.dumps({"latencyWeight": 0.1, "providers": ["x"]})}
        )
        settings = load_router_settings(store)
        assert settings.latency_weight == 0.7
        assert settings.providers["groq"] == {"enabled": True, "priority": 2}


class TestProviderDefinitions:
    def test_merges_store_and_environment(self) -> "None":
        store = MemorySettingsStore(
            {
                "llm_provider_openai_model": "gpt-4o",
                "llm_provider_groq_api_key": "gsk-stored",
            }
        )
        config = Config(openai_api_key="sk-env", groq_api_key="gsk-env")
        definitions = {
            d["key"]: d
            for d in provider_definitions(store, config, load_router_settings(store))
        }

        assert definitions["openai"]["model"] == "gpt-4o"
        assert definitions["openai"]["apiKey"] == "sk-env"
        # stored key wins over the environment
        assert definitions["groq"]["apiKey"] == "gsk-stored"
        assert definitions["anthropic"]["model"] == "claude-3-sonnet-20240229"

    def test_ollama_endpoint_resolution(self) -> "None":
        settings = load_router_settings(MemorySettingsStore())
        config = Config(ollama_base_url="http://gpu-box:11434")

        def ollama(store: "MemorySettingsStore") -> "dict":
            return next(
                d
                for d in provider_definitions(store, config, settings)
                if d["key"] == "ollama"
            )

        assert ollama(MemorySettingsStore())["endpoint"] == "http://gpu-box:11434"
        legacy = ollama(MemorySettingsStore({"ollama_endpoint": "http://legacy:1"}))
        assert legacy["endpoint"] == "http://legacy:1"
        assert legacy["modelsEndpoint"] == "http://legacy:1/api/tags"
        explicit = ollama(
            MemorySettingsStore({"llm_provider_ollama_endpoint": "http://new:2/"})
        )
        assert explicit["modelsEndpoint"] == "http://new:2/api/tags"


class TestJsonFileSettingsStore:
    def test_set_and_get(self, tmp_path: "os.PathLike") -> "None":
        path = os.path.join(tmp_path, "settings.json")
        store = JsonFileSettingsStore(path)
        assert store.get("missing") is None

        store.set("llm_provider_groq_model", "gemma-7b-it")

        assert JsonFileSettingsStore(path).get("llm_provider_groq_model") == (
            "gemma-7b-it"
        )
        with open(path, encoding="utf-8") as fh:
            assert json.load(fh) == {"llm_provider_groq_model": "gemma-7b-it"}
