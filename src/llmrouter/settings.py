"""
Settings store contract and the provider definitions derived from it.

The store is a flat key/value mapping owned by the application (a
database table in production). The router only reads the keys below
and writes the per-provider model selection:

    llm_settings                  JSON: weights plus per-provider
                                  enabled/priority flags
    llm_provider_<key>_api_key    API key
    llm_provider_<key>_model      selected model id
    llm_provider_<key>_endpoint   endpoint override
"""

import copy
import json
import os
import tempfile
import threading
from dataclasses import dataclass, field
from typing import Any, Protocol

import structlog

from llmrouter.config import Config

logger = structlog.get_logger()

LLM_SETTINGS_KEY = "llm_settings"

DEFAULT_LATENCY_WEIGHT = 0.7
DEFAULT_COST_WEIGHT = 0.3

DEFAULT_PROVIDER_FLAGS: "dict[str, dict[str, Any]]" = {
    "ollama": {"enabled": True, "priority": 1},
    "groq": {"enabled": True, "priority": 2},
    "openai": {"enabled": True, "priority": 3},
    "anthropic": {"enabled": True, "priority": 4},
}

# built-in providers. A modelsEndpoint starting with "/" is relative
# to the (possibly overridden) endpoint.
PROVIDER_CATALOG: "list[dict[str, Any]]" = [
    {
        "key": "ollama",
        "name": "Ollama",
        "family": "ollama",
        "endpoint": "http://localhost:11434",
        "modelsEndpoint": "/api/tags",
        "apiKeyRequired": False,
        "defaultModel": "llama3.2:3b",
        "pricing": {"type": "free"},
    },
    {
        "key": "groq",
        "name": "Groq",
        "family": "openai",
        "endpoint": "https://api.groq.com/openai/v1/chat/completions",
        "modelsEndpoint": "https://api.groq.com/openai/v1/models",
        "apiKeyRequired": True,
        "defaultModel": "mixtral-8x7b-32768",
        "pricing": {
            "type": "input_output",
            "inputCostPer1k": 0.0001,
            "outputCostPer1k": 0.0001,
            "modelPricing": {
                "mixtral-8x7b-32768": {
                    "inputCostPer1k": 0.0001,
                    "outputCostPer1k": 0.0001,
                },
                "llama-3.1-8b-instant": {
                    "inputCostPer1k": 0.00005,
                    "outputCostPer1k": 0.00005,
                },
                "llama-3.1-70b-versatile": {
                    "inputCostPer1k": 0.0007,
                    "outputCostPer1k": 0.0008,
                },
                "gemma-7b-it": {
                    "inputCostPer1k": 0.00005,
                    "outputCostPer1k": 0.00005,
                },
            },
        },
    },
    {
        "key": "openai",
        "name": "OpenAI",
        "family": "openai",
        "endpoint": "https://api.openai.com/v1/chat/completions",
        "modelsEndpoint": "https://api.openai.com/v1/models",
        "apiKeyRequired": True,
        "defaultModel": "gpt-3.5-turbo",
        "pricing": {
            "type": "input_output",
            "inputCostPer1k": 0.0005,
            "outputCostPer1k": 0.0015,
            "modelPricing": {
                "gpt-3.5-turbo": {"inputCostPer1k": 0.0005, "outputCostPer1k": 0.0015},
                "gpt-4": {"inputCostPer1k": 0.03, "outputCostPer1k": 0.06},
                "gpt-4-turbo": {"inputCostPer1k": 0.01, "outputCostPer1k": 0.03},
                "gpt-4o": {"inputCostPer1k": 0.005, "outputCostPer1k": 0.015},
                "gpt-4o-mini": {"inputCostPer1k": 0.00015, "outputCostPer1k": 0.0006},
            },
        },
    },
    {
        "key": "anthropic",
        "name": "Anthropic",
        "family": "anthropic",
        "endpoint": "https://api.anthropic.com/v1/messages",
        "modelsEndpoint": "https://api.anthropic.com/v1/models",
        "apiKeyRequired": True,
        "defaultModel": "claude-3-sonnet-20240229",
        "pricing": {
            "type": "input_output",
            "inputCostPer1k": 0.003,
            "outputCostPer1k": 0.015,
            "modelPricing": {
                "claude-3-sonnet-20240229": {
                    "inputCostPer1k": 0.003,
                    "outputCostPer1k": 0.015,
                },
                "claude-3-haiku-20240307": {
                    "inputCostPer1k": 0.00025,
                    "outputCostPer1k": 0.00125,
                },
                "claude-3-opus-20240229": {
                    "inputCostPer1k": 0.015,
                    "outputCostPer1k": 0.075,
                },
            },
        },
    },
]


class SettingsStore(Protocol):
    def get(self, key: "str") -> "str | None": ...

    def set(self, key: "str", value: "str") -> "None": ...


class MemorySettingsStore:
    def __init__(self, initial: "dict[str, str] | None" = None) -> "None":
        self._lock: "threading.Lock" = threading.Lock()
        self._values: "dict[str, str]" = dict(initial or {})

    def get(self, key: "str") -> "str | None":
        with self._lock:
            return self._values.get(key)

    def set(self, key: "str", value: "str") -> "None":
        with self._lock:
            self._values[key] = value


class JsonFileSettingsStore:
    """
    JsonFileSettingsStore keeps settings in a single JSON object on
    disk. Writes go through a temporary file and an atomic rename.
    """

    def __init__(self, path: "str") -> "None":
        self._path = path
        self._lock: "threading.Lock" = threading.Lock()

    def _read(self) -> "dict[str, str]":
        try:
            with open(self._path, encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"settings file {self._path} is not a JSON object")
        return {str(k): str(v) for k, v in data.items()}

    def get(self, key: "str") -> "str | None":
        with self._lock:
            return self._read().get(key)

    def set(self, key: "str", value: "str") -> "None":
        with self._lock:
            data = self._read()
            data[key] = value
            directory = os.path.dirname(os.path.abspath(self._path))
            fd, tmp = tempfile.mkstemp(dir=directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, sort_keys=True)
            os.replace(tmp, self._path)


@dataclass
class RouterSettings:
    latency_weight: "float" = DEFAULT_LATENCY_WEIGHT
    cost_weight: "float" = DEFAULT_COST_WEIGHT
    # provider key -> {"enabled": bool, "priority": int}
    providers: "dict[str, dict[str, Any]]" = field(
        default_factory=lambda: copy.deepcopy(DEFAULT_PROVIDER_FLAGS)
    )


def _weight(value: "Any", default: "float", name: "str") -> "float":
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        if value is not None:
            logger.warning("llm_settings_weight_invalid", weight=name, value=value)
        return default
    return min(max(float(value), 0.0), 1.0)


def load_router_settings(store: "SettingsStore") -> "RouterSettings":
    """
    reads llm_settings, falling back to defaults when it is absent
    or unparseable. Weights are clamped into 0..1.
    """
    raw = store.get(LLM_SETTINGS_KEY)
    if not raw:
        return RouterSettings()

    try:
        data = json.loads(raw)
    except ValueError:
        logger.warning("llm_settings_unparseable")
        return RouterSettings()
    if not isinstance(data, dict):
        logger.warning("llm_settings_unparseable")
        return RouterSettings()

    overrides = data.get("providers") or {}
    if not isinstance(overrides, dict):
        logger.warning("llm_settings_unparseable", field="providers")
        return RouterSettings()

    providers = copy.deepcopy(DEFAULT_PROVIDER_FLAGS)
    for key, flags in overrides.items():
        if isinstance(flags, dict):
            providers.setdefault(key, {}).update(flags)

    return RouterSettings(
        latency_weight=_weight(
            data.get("latencyWeight"), DEFAULT_LATENCY_WEIGHT, "latency"
        ),
        cost_weight=_weight(data.get("costWeight"), DEFAULT_COST_WEIGHT, "cost"),
        providers=providers,
    )


def provider_definitions(
    store: "SettingsStore",
    config: "Config",
    settings: "RouterSettings",
    catalog: "list[dict[str, Any]]" = PROVIDER_CATALOG,
) -> "list[dict[str, Any]]":
    """
    merges every catalog entry with its stored overrides into the raw
    definition the registry validates. Nothing is validated here.
    """
    definitions = []
    for entry in catalog:
        key = entry.get("key", "")
        flags = settings.providers.get(key, {})

        endpoint = store.get(f"llm_provider_{key}_endpoint")
        if not endpoint and key == "ollama":
            # legacy key of the admin UI, then the environment
            endpoint = store.get("ollama_endpoint") or config.ollama_base_url
        endpoint = endpoint or entry.get("endpoint", "")

        models_endpoint = entry.get("modelsEndpoint", "")
        if models_endpoint.startswith("/"):
            models_endpoint = endpoint.rstrip("/") + models_endpoint

        definition = dict(entry)
        definition.update(
            endpoint=endpoint,
            modelsEndpoint=models_endpoint,
            model=store.get(f"llm_provider_{key}_model") or entry.get("defaultModel"),
            apiKey=store.get(f"llm_provider_{key}_api_key") or config.api_key_for(key),
            enabled=flags.get("enabled", entry.get("enabled", True)),
            priority=flags.get("priority", entry.get("priority", 5)),
        )
        definitions.append(definition)
    return definitions
