from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

from llmrouter.models import Usage


class MetricsUpdater:
    """
    applies router events (probes, generations, cache lookups) to
    Prometheus metrics. Every family is labeled by provider key.
    """

    def __init__(self, registry: "CollectorRegistry" = REGISTRY) -> "None":
        self._registry: "CollectorRegistry" = registry
        self._requests: "Counter" = Counter(
            "llmrouter_requests_total",
            "Generation requests served by a provider",
            ["provider", "outcome"],
            registry=registry,
        )
        self._tokens: "Counter" = Counter(
            "llmrouter_tokens_total",
            "Tokens consumed per provider",
            ["provider", "direction"],
            registry=registry,
        )
        self._cost: "Counter" = Counter(
            "llmrouter_cost_usd_total",
            "Computed cost in USD per provider",
            ["provider"],
            registry=registry,
        )
        self._available: "Gauge" = Gauge(
            "llmrouter_provider_available",
            "1 when the last probe of the provider succeeded",
            ["provider"],
            registry=registry,
        )
        self._latency: "Gauge" = Gauge(
            "llmrouter_provider_latency_ms",
            "Moving average probe latency in milliseconds",
            ["provider"],
            registry=registry,
        )
        self._probe_duration: "Histogram" = Histogram(
            "llmrouter_probe_duration_seconds",
            "Duration of provider probes",
            ["provider"],
            registry=registry,
        )
        self._cache_lookups: "Counter" = Counter(
            "llmrouter_cache_lookups_total",
            "Response cache lookups by result",
            ["result"],
            registry=registry,
        )

    def observe_probe(
        self,
        provider: "str",
        available: "bool",
        duration_seconds: "float",
        avg_latency_ms: "float | None",
    ) -> "None":
        self._probe_duration.labels(provider=provider).observe(duration_seconds)
        self._available.labels(provider=provider).set(1 if available else 0)
        if avg_latency_ms is not None:
            self._latency.labels(provider=provider).set(avg_latency_ms)

    def observe_generation(
        self, provider: "str", usage: "Usage", cost_usd: "float"
    ) -> "None":
        """
        updates request, token and cost counters after a successful call.
        """
        self._requests.labels(provider=provider, outcome="success").inc()
        self._tokens.labels(provider=provider, direction="input").inc(
            usage.prompt_tokens
        )
        self._tokens.labels(provider=provider, direction="output").inc(
            usage.completion_tokens
        )
        self._cost.labels(provider=provider).inc(cost_usd)

    def inc_generation_error(self, provider: "str") -> "None":
        self._requests.labels(provider=provider, outcome="error").inc()

    def inc_cache_lookup(self, hit: "bool") -> "None":
        self._cache_lookups.labels(result="hit" if hit else "miss").inc()
