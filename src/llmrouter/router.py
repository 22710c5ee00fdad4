import asyncio
import dataclasses
import json
import os
from typing import Any

import httpx
import structlog
from prometheus_client import CollectorRegistry

from llmrouter.cache import ResponseCache, make_cache_key
from llmrouter.config import Config
from llmrouter.errors import (
    NoProviderAvailable,
    ProviderTransportError,
    UnknownProviderKey,
)
from llmrouter.executor import Executor
from llmrouter.metrics import MetricsUpdater
from llmrouter.models import (
    GenerationRequest,
    GenerationResult,
    UsageEvent,
    UsageSummary,
)
from llmrouter.pricing import pricing_to_dict
from llmrouter.prober import HealthProber
from llmrouter.registry import ProviderFactory, ProviderRegistry, create_provider
from llmrouter.selector import Selector, Weights
from llmrouter.settings import PROVIDER_CATALOG, MemorySettingsStore, SettingsStore
from llmrouter.usage import UsageAccountant

logger = structlog.get_logger()


class LLMRouter:
    """
    LLMRouter ties the provider registry, health prober, selector,
    executor, response cache and usage accountant together behind
    the surface the HTTP handlers use.

    It is built once by the application (see create_router) and owns
    its lifecycle: start() begins probing, close() stops it and
    releases the HTTP client. Admin operations report expected
    failures (unknown provider, empty input) as False.
    """

    def __init__(
        self,
        config: "Config",
        store: "SettingsStore",
        client: "httpx.AsyncClient",
        metrics: "MetricsUpdater",
        provider_factory: "ProviderFactory" = create_provider,
        catalog: "list[dict[str, Any]]" = PROVIDER_CATALOG,
        cache: "ResponseCache | None" = None,
        prober: "HealthProber | None" = None,
    ) -> "None":
        self._config = config
        self._client = client
        self._metrics = metrics
        self._accountant = UsageAccountant()
        self._cache = cache or ResponseCache(
            ttl_seconds=config.cache_ttl, max_size=config.cache_max_size
        )
        self._prober = prober or HealthProber(
            metrics,
            interval_seconds=config.probe_interval,
            timeout_seconds=config.probe_timeout,
            concurrency=config.probe_concurrency,
            stale_after_seconds=config.stale_after,
        )
        self._registry = ProviderRegistry(
            store, config, client, provider_factory=provider_factory, catalog=catalog
        )
        self._selector = Selector(self._prober, self._accountant)
        self._executor = Executor(
            self._accountant, metrics, timeout_seconds=config.request_timeout
        )
        self._refresh_lock: "asyncio.Lock" = asyncio.Lock()
        self._started = False

        self._load_usage()
        self._registry.load_providers()
        self._sync_providers()

    @property
    def usage(self) -> "UsageAccountant":
        return self._accountant

    @property
    def weights(self) -> "Weights":
        settings = self._registry.settings
        return Weights(latency=settings.latency_weight, cost=settings.cost_weight)

    def _sync_providers(self) -> "None":
        snapshot = self._registry.snapshot
        self._prober.sync(snapshot.keys())
        for key in snapshot:
            self._accountant.register(key)

    def start(self) -> "None":
        """
        starts the background probe loop; the first cycle begins
        right away. Calling it again is a no-op.
        """
        if self._started:
            return
        self._started = True
        self._prober.start(lambda: self._registry.snapshot)
        logger.info("router_started", providers=sorted(self._registry.snapshot))

    async def stop(self) -> "None":
        await self._prober.stop()
        self._started = False

    async def close(self) -> "None":
        """
        stops probing, persists usage and closes the HTTP client.
        """
        try:
            await self.stop()
            self._save_usage()
        finally:
            await self._client.aclose()

    async def wait_for_initialization(self) -> "None":
        """
        returns once the first probe cycle completed, whatever its
        outcome. Starts the router if nobody did.
        """
        self.start()
        await self._prober.wait_for_initialization()

    async def route(self, request: "GenerationRequest") -> "GenerationResult":
        """
        selects a provider, answers from the cache when possible and
        calls the provider otherwise.

        A provider that fails is marked down and the next best one is
        tried. NoProviderAvailable is raised once nothing eligible is
        left; with an explicit provider override the transport error
        of that provider is raised instead.
        """
        with structlog.contextvars.bound_contextvars(request_id=request.request_id):
            return await self._route(request)

    async def _route(self, request: "GenerationRequest") -> "GenerationResult":
        await self.wait_for_initialization()
        # pinned for the whole request, refreshes publish a new one
        providers = self._registry.snapshot
        weights = self.weights
        failed: "set[str]" = set()
        last_error: "ProviderTransportError | None" = None

        while True:
            try:
                provider = self._selector.select(
                    providers, weights, override=request.provider, exclude=failed
                )
            except NoProviderAvailable as exc:
                if last_error is not None:
                    raise NoProviderAvailable(
                        "all eligible providers failed"
                    ) from last_error
                logger.warning("no_provider_available", reason=exc.reason)
                raise

            cache_key = make_cache_key(provider.key, request)
            cached = self._cache.get(cache_key)
            self._metrics.inc_cache_lookup(cached is not None)
            if cached is not None:
                logger.debug("cache_hit", provider=provider.key)
                return dataclasses.replace(cached, cached=True)

            try:
                result = await self._executor.execute(provider, request)
            except ProviderTransportError as exc:
                self._prober.mark_unavailable(provider.key, str(exc))
                self._cache.invalidate_provider(provider.key)
                if request.provider is not None:
                    raise
                logger.warning("provider_failed_falling_back", provider=provider.key)
                failed.add(provider.key)
                last_error = exc
                continue

            # a refresh may have replaced the provider meanwhile
            if self._registry.get(provider.key) is provider:
                self._cache.set(cache_key, provider.key, result)
            return result

    async def test_provider(
        self, key: "str", request: "GenerationRequest"
    ) -> "GenerationResult":
        """
        calls one provider directly, skipping selection and cache.
        Usage is still recorded, as a "test" request.
        """
        provider = self._registry.get(key)
        if provider is None:
            raise UnknownProviderKey(key)
        request = dataclasses.replace(request, provider=key, request_type="test")
        return await self._executor.execute(provider, request)

    async def refresh_providers(self) -> "None":
        """
        re-reads provider settings, drops cached answers of providers
        that changed or went away and runs a probe cycle right away.
        """
        async with self._refresh_lock:
            change = self._registry.load_providers()
            self._sync_providers()
            for key in change.stale_keys:
                self._cache.invalidate_provider(key)

            await self._prober.probe_all(self._registry.snapshot)

            for key in self._registry.snapshot:
                if not self._prober.is_usable(key):
                    self._cache.invalidate_provider(key)
        logger.info("providers_refreshed")

    async def update_provider_model(self, key: "str", model: "str") -> "bool":
        previous = self._registry.get(key)
        if not self._registry.set_model(key, model):
            logger.warning("provider_model_update_rejected", provider=key)
            return False
        if previous is not None and previous.config.model != model.strip():
            self._cache.invalidate_provider(key)
        return True

    async def list_provider_models(self, key: "str") -> "list[str]":
        """
        model ids offered by the provider's models endpoint.
        """
        provider = self._registry.get(key)
        if provider is None:
            raise UnknownProviderKey(key)
        try:
            return await provider.list_models()
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderTransportError(key, str(exc) or type(exc).__name__) from exc

    def clear_cache(self) -> "None":
        self._cache.clear()
        logger.info("cache_cleared")

    def get_cache_stats(self) -> "dict[str, float]":
        return self._cache.stats()

    def get_provider_stats(self) -> "dict[str, dict[str, Any]]":
        """
        public view of every configured provider. API keys are never
        included.
        """
        stats: "dict[str, dict[str, Any]]" = {}
        for key, provider in self._registry.snapshot.items():
            config = provider.config
            state = self._prober.state(key)
            stats[key] = {
                "name": config.name,
                "endpoint": config.endpoint,
                "model": config.model,
                "enabled": config.enabled,
                "priority": config.priority,
                "is_available": self._prober.is_usable(key),
                "avg_latency_ms": state.avg_latency_ms if state else None,
                "last_probe_at": state.last_probe_at if state else None,
                "last_error": state.last_error if state else None,
                "pricing": pricing_to_dict(config.pricing),
            }
        return stats

    def get_all_usage_summaries(self) -> "list[UsageSummary]":
        return self._accountant.get_all_usage_summaries()

    def get_usage_history(
        self,
        provider: "str | None" = None,
        user_id: "str | None" = None,
        limit: "int" = 100,
    ) -> "list[UsageEvent]":
        return self._accountant.get_usage_history(provider, user_id, limit)

    def reset_usage_summary(self, key: "str") -> "bool":
        reset = self._accountant.reset_usage_summary(key)
        if reset:
            logger.info("usage_reset", provider=key)
        return reset

    def _load_usage(self) -> "None":
        path = self._config.usage_file
        if not path or not os.path.exists(path):
            return
        try:
            with open(path, encoding="utf-8") as fh:
                rows = json.load(fh)
            if not isinstance(rows, list):
                raise ValueError("usage file is not a JSON list")
            self._accountant.load(rows)
        except (OSError, ValueError, TypeError, AttributeError) as exc:
            # counters start from zero, the file is overwritten on close
            logger.warning("usage_load_failed", path=path, error=str(exc))
            return
        logger.info("usage_loaded", path=path)

    def _save_usage(self) -> "None":
        path = self._config.usage_file
        if not path:
            return
        tmp = f"{path}.tmp"
        try:
            with open(tmp, "w", encoding="utf-8") as fh:
                json.dump(self._accountant.dump(), fh, indent=2)
            os.replace(tmp, path)
        except OSError:
            logger.exception("usage_save_failed", path=path)
            if os.path.exists(tmp):
                os.remove(tmp)
            return
        logger.info("usage_saved", path=path)


def create_router(
    config: "Config",
    store: "SettingsStore | None" = None,
    *,
    client: "httpx.AsyncClient | None" = None,
    metrics: "MetricsUpdater | None" = None,
    provider_factory: "ProviderFactory" = create_provider,
    catalog: "list[dict[str, Any]]" = PROVIDER_CATALOG,
) -> "LLMRouter":
    """
    builds a router with its own HTTP client and, unless given one, a
    private metrics registry. The router is not started.
    """
    return LLMRouter(
        config,
        store or MemorySettingsStore(),
        client or httpx.AsyncClient(timeout=config.request_timeout),
        metrics or MetricsUpdater(registry=CollectorRegistry()),
        provider_factory=provider_factory,
        catalog=catalog,
    )
