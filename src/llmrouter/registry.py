import dataclasses
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping

import httpx
import structlog

from llmrouter.config import Config
from llmrouter.errors import ProviderConfigError
from llmrouter.models import ProviderConfig
from llmrouter.pricing import parse_pricing
from llmrouter.provider.anthropic import AnthropicProvider
from llmrouter.provider.base import ChatProvider
from llmrouter.provider.ollama import OllamaProvider
from llmrouter.provider.openai import OpenAICompatibleProvider
from llmrouter.settings import (
    PROVIDER_CATALOG,
    RouterSettings,
    SettingsStore,
    load_router_settings,
    provider_definitions,
)

logger = structlog.get_logger()

ProviderFactory = Callable[[ProviderConfig, httpx.AsyncClient], ChatProvider]

_FAMILIES: "dict[str, Callable[..., ChatProvider]]" = {
    "ollama": OllamaProvider,
    "openai": OpenAICompatibleProvider,
    "anthropic": AnthropicProvider,
}


def create_provider(
    config: "ProviderConfig", client: "httpx.AsyncClient"
) -> "ChatProvider":
    """
    builds the adapter for the config's provider family.
    """
    return _FAMILIES[config.family](config, client)


_TRUE = frozenset({"true", "1", "yes", "on"})
_FALSE = frozenset({"false", "0", "no", "off", ""})


def _flag(key: "str", name: "str", value: "Any") -> "bool":
    """
    reads a boolean setting. Stores that keep everything as text
    hand over "true"/"false", which are accepted too.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
    raise ProviderConfigError(key, f"{name} {value!r} is not a boolean")


def parse_provider_config(raw: "Mapping[str, Any]") -> "ProviderConfig":
    """
    validates one merged provider definition.

    Raises ProviderConfigError naming the provider when anything
    needed to call it is missing or malformed.
    """
    key = str(raw.get("key") or "")
    if not key:
        raise ProviderConfigError("<unnamed>", "provider key is missing")

    family = raw.get("family")
    if family not in _FAMILIES:
        raise ProviderConfigError(key, f"unsupported provider family {family!r}")

    endpoint = str(raw.get("endpoint") or "")
    if not endpoint.startswith(("http://", "https://")):
        raise ProviderConfigError(key, f"invalid endpoint {endpoint!r}")

    model = str(raw.get("model") or "").strip()
    if not model:
        raise ProviderConfigError(key, "model id is empty")

    api_key = str(raw.get("apiKey") or "")
    api_key_required = _flag(key, "apiKeyRequired", raw.get("apiKeyRequired", False))
    if api_key_required and not api_key:
        raise ProviderConfigError(key, "API key is not configured")

    priority = raw.get("priority", 5)
    if isinstance(priority, bool) or not isinstance(priority, int):
        raise ProviderConfigError(key, f"priority {priority!r} is not an integer")
    if not 1 <= priority <= 10:
        raise ProviderConfigError(key, f"priority {priority} is outside 1..10")

    return ProviderConfig(
        key=key,
        name=str(raw.get("name") or key),
        family=family,
        endpoint=endpoint,
        models_endpoint=str(raw.get("modelsEndpoint") or endpoint),
        model=model,
        pricing=parse_pricing(key, raw.get("pricing")),
        api_key=api_key,
        api_key_required=api_key_required,
        enabled=_flag(key, "enabled", raw.get("enabled", True)),
        priority=priority,
    )


@dataclass(frozen=True)
class RegistryChange:
    added: "frozenset[str]" = field(default_factory=frozenset)
    removed: "frozenset[str]" = field(default_factory=frozenset)
    # endpoint, model, key or family differs from the previous load
    changed: "frozenset[str]" = field(default_factory=frozenset)

    @property
    def stale_keys(self) -> "frozenset[str]":
        """
        providers whose cached answers are no longer valid.
        """
        return self.removed | self.changed


class ProviderRegistry:
    """
    ProviderRegistry owns the configured providers and publishes them
    as an immutable snapshot (key -> adapter).

    Every load replaces the snapshot as a whole, so a caller holding
    the previous one keeps a consistent view. Adapters whose config
    did not change are carried over as-is.
    """

    def __init__(
        self,
        store: "SettingsStore",
        config: "Config",
        client: "httpx.AsyncClient",
        provider_factory: "ProviderFactory" = create_provider,
        catalog: "list[dict[str, Any]]" = PROVIDER_CATALOG,
    ) -> "None":
        self._store = store
        self._config = config
        self._client = client
        self._factory = provider_factory
        self._catalog = catalog
        self._settings: "RouterSettings" = RouterSettings()
        self._snapshot: "Mapping[str, ChatProvider]" = MappingProxyType({})

    @property
    def snapshot(self) -> "Mapping[str, ChatProvider]":
        return self._snapshot

    @property
    def settings(self) -> "RouterSettings":
        return self._settings

    def get(self, key: "str") -> "ChatProvider | None":
        return self._snapshot.get(key)

    def load_providers(self) -> "RegistryChange":
        """
        (re)reads settings and publishes a new snapshot. A provider
        with a bad definition is skipped with a warning; the others
        load normally.
        """
        self._settings = load_router_settings(self._store)
        previous = self._snapshot
        providers: "dict[str, ChatProvider]" = {}

        for raw in provider_definitions(
            self._store, self._config, self._settings, self._catalog
        ):
            try:
                config = parse_provider_config(raw)
            except ProviderConfigError as exc:
                logger.warning(
                    "provider_config_skipped", provider=exc.provider, error=str(exc)
                )
                continue

            old = previous.get(config.key)
            if old is not None and old.config == config:
                providers[config.key] = old
            else:
                providers[config.key] = self._factory(config, self._client)

        change = RegistryChange(
            added=frozenset(providers.keys() - previous.keys()),
            removed=frozenset(previous.keys() - providers.keys()),
            changed=frozenset(
                key
                for key in providers.keys() & previous.keys()
                if previous[key].config.connection_changed(providers[key].config)
            ),
        )
        self._snapshot = MappingProxyType(providers)
        logger.info(
            "providers_loaded",
            providers=sorted(providers),
            added=sorted(change.added),
            removed=sorted(change.removed),
            changed=sorted(change.changed),
        )
        return change

    def set_model(self, key: "str", model: "str") -> "bool":
        """
        switches a provider to another model and persists the choice.
        Returns False for an unknown provider or an empty model id.
        """
        model = model.strip()
        current = self._snapshot.get(key)
        if current is None or not model:
            return False

        if current.config.model != model:
            config = dataclasses.replace(current.config, model=model)
            providers = dict(self._snapshot)
            providers[key] = self._factory(config, self._client)
            self._snapshot = MappingProxyType(providers)

        self._store.set(f"llm_provider_{key}_model", model)
        logger.info("provider_model_updated", provider=key, model=model)
        return True
