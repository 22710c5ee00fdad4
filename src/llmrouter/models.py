import uuid
from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True, slots=True)
class ModelRate:
    input_cost_per_1k: "float | None" = None
    output_cost_per_1k: "float | None" = None
    cost_per_1k: "float | None" = None


@dataclass(frozen=True, slots=True)
class FreePricing:
    type: "str" = "free"


@dataclass(frozen=True, slots=True)
class FlatPricing:
    cost_per_1k: "float"
    type: "str" = "flat"


@dataclass(frozen=True, slots=True)
class InputOutputPricing:
    input_cost_per_1k: "float"
    output_cost_per_1k: "float"
    # per-model overrides of the provider-wide rates
    model_pricing: "dict[str, ModelRate]" = field(default_factory=dict)
    type: "str" = "input_output"


@dataclass(frozen=True, slots=True)
class UnknownPricing:
    """
    UnknownPricing keeps a provider usable when its settings carry a
    pricing type this package does not understand. It always costs 0.
    """

    type: "str"


Pricing = Union[FreePricing, FlatPricing, InputOutputPricing, UnknownPricing]


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    """
    ProviderConfig is the static description of one backend, as
    loaded from the built-in catalog and the settings store.
    """

    key: "str"
    name: "str"
    # one of "ollama", "openai", "anthropic"
    family: "str"
    endpoint: "str"
    models_endpoint: "str"
    model: "str"
    pricing: "Pricing"
    api_key: "str" = ""
    api_key_required: "bool" = False
    enabled: "bool" = True
    # 1..10, lower wins ties
    priority: "int" = 5

    def connection_changed(self, other: "ProviderConfig") -> "bool":
        """
        reports whether cached answers from self are invalid for other.
        """
        return (
            self.endpoint != other.endpoint
            or self.model != other.model
            or self.api_key != other.api_key
            or self.family != other.family
        )


@dataclass(slots=True)
class ProviderState:
    """
    ProviderState is the live, probe-derived view of a provider.
    Updated in place by the health prober.
    """

    key: "str"
    is_available: "bool" = False
    avg_latency_ms: "float | None" = None
    last_probe_at: "float | None" = None
    last_error: "str | None" = None


@dataclass(frozen=True, slots=True)
class Usage:
    prompt_tokens: "int" = 0
    completion_tokens: "int" = 0
    total_tokens: "int" = 0


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    prompt: "str"
    user_id: "str"
    max_tokens: "int" = 1000
    temperature: "float" = 0.7
    # bypass selection and route to this provider key
    provider: "str | None" = None
    request_id: "str" = field(default_factory=lambda: uuid.uuid4().hex)
    # "chat" for user traffic, "test" for admin diagnostics
    request_type: "str" = "chat"


@dataclass(frozen=True, slots=True)
class GenerationResult:
    provider: "str"
    model: "str"
    content: "str"
    usage: "Usage"
    latency_ms: "float"
    cost_usd: "float" = 0.0
    cached: "bool" = False


@dataclass(slots=True)
class UsageSummary:
    """
    UsageSummary holds the cumulative counters of a single provider
    since its last reset.
    """

    provider: "str"
    total_prompt_tokens: "int" = 0
    total_completion_tokens: "int" = 0
    total_tokens: "int" = 0
    total_cost: "float" = 0.0
    request_count: "int" = 0
    last_reset_at: "float | None" = None
    updated_at: "float | None" = None


@dataclass(frozen=True, slots=True)
class UsageEvent:
    provider: "str"
    model: "str"
    usage: "Usage"
    cost_usd: "float"
    request_type: "str"
    created_at: "float"
    # not kept for "test" requests
    user_id: "str | None" = None
