"""
Pricing descriptors and cost computation.

Descriptors are stored in settings as plain mappings using the
camelCase keys of the admin UI, e.g.

    {"type": "input_output", "inputCostPer1k": 0.0005,
     "outputCostPer1k": 0.0015, "modelPricing": {...}}
"""

import math
from typing import Any, Mapping

import structlog

from llmrouter.errors import ProviderConfigError
from llmrouter.models import (
    FlatPricing,
    FreePricing,
    InputOutputPricing,
    ModelRate,
    Pricing,
    UnknownPricing,
    Usage,
)

logger = structlog.get_logger()


def _rate(provider: "str", raw: "Mapping[str, Any]", name: "str") -> "float | None":
    value = raw.get(name)
    if value is None:
        return None
    # bool is an int subclass, reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ProviderConfigError(provider, f"pricing field {name} is not a number")
    if not math.isfinite(value) or value < 0:
        raise ProviderConfigError(
            provider, f"pricing field {name} is negative or not finite"
        )
    return float(value)


def parse_pricing(provider: "str", raw: "Mapping[str, Any] | None") -> "Pricing":
    """
    builds a typed pricing descriptor from its settings mapping.

    Raises ProviderConfigError for a descriptor that is missing or
    carries invalid rates. An unrecognized type is not an error: it
    yields UnknownPricing, which costs nothing.
    """
    if not isinstance(raw, Mapping):
        raise ProviderConfigError(provider, "pricing descriptor is missing")

    kind = raw.get("type")
    if kind == "free":
        return FreePricing()

    if kind == "flat":
        cost = _rate(provider, raw, "costPer1k")
        if cost is None:
            raise ProviderConfigError(provider, "flat pricing requires costPer1k")
        return FlatPricing(cost_per_1k=cost)

    if kind == "input_output":
        model_pricing: "dict[str, ModelRate]" = {}
        overrides = raw.get("modelPricing") or {}
        if not isinstance(overrides, Mapping):
            raise ProviderConfigError(provider, "modelPricing is not a mapping")
        for model, entry in overrides.items():
            if not isinstance(entry, Mapping):
                raise ProviderConfigError(
                    provider, f"model pricing for {model} is not a mapping"
                )
            model_pricing[model] = ModelRate(
                input_cost_per_1k=_rate(provider, entry, "inputCostPer1k"),
                output_cost_per_1k=_rate(provider, entry, "outputCostPer1k"),
                cost_per_1k=_rate(provider, entry, "costPer1k"),
            )
        return InputOutputPricing(
            input_cost_per_1k=_rate(provider, raw, "inputCostPer1k") or 0.0,
            output_cost_per_1k=_rate(provider, raw, "outputCostPer1k") or 0.0,
            model_pricing=model_pricing,
        )

    logger.warning("pricing_type_unknown", provider=provider, type=kind)
    return UnknownPricing(type=str(kind))


def pricing_to_dict(pricing: "Pricing") -> "dict[str, Any]":
    """
    inverse of parse_pricing, used for provider stats.
    """
    if isinstance(pricing, FlatPricing):
        return {"type": "flat", "costPer1k": pricing.cost_per_1k}

    if isinstance(pricing, InputOutputPricing):
        out: "dict[str, Any]" = {
            "type": "input_output",
            "inputCostPer1k": pricing.input_cost_per_1k,
            "outputCostPer1k": pricing.output_cost_per_1k,
        }
        if pricing.model_pricing:
            out["modelPricing"] = {
                model: {
                    k: v
                    for k, v in (
                        ("inputCostPer1k", rate.input_cost_per_1k),
                        ("outputCostPer1k", rate.output_cost_per_1k),
                        ("costPer1k", rate.cost_per_1k),
                    )
                    if v is not None
                }
                for model, rate in pricing.model_pricing.items()
            }
        return out

    return {"type": pricing.type}


def _input_output_rates(
    pricing: "InputOutputPricing", model: "str | None"
) -> "tuple[float, float]":
    input_rate = pricing.input_cost_per_1k
    output_rate = pricing.output_cost_per_1k
    rate = pricing.model_pricing.get(model or "")
    if rate is not None:
        # a single costPer1k on a model applies to both directions
        if rate.cost_per_1k is not None:
            input_rate = output_rate = rate.cost_per_1k
        if rate.input_cost_per_1k is not None:
            input_rate = rate.input_cost_per_1k
        if rate.output_cost_per_1k is not None:
            output_rate = rate.output_cost_per_1k
    return input_rate, output_rate


def compute_cost(
    pricing: "Pricing | Any", usage: "Usage", model: "str | None" = None
) -> "float":
    """
    returns the USD cost of usage under the given pricing descriptor.
    Never raises: anything unrecognized costs 0 and is logged.
    """
    if isinstance(pricing, FreePricing):
        return 0.0

    if isinstance(pricing, FlatPricing):
        return (usage.total_tokens / 1000) * pricing.cost_per_1k

    if isinstance(pricing, InputOutputPricing):
        input_rate, output_rate = _input_output_rates(pricing, model)
        return (usage.prompt_tokens / 1000) * input_rate + (
            usage.completion_tokens / 1000
        ) * output_rate

    logger.warning(
        "pricing_unrecognized",
        type=getattr(pricing, "type", type(pricing).__name__),
    )
    return 0.0


def nominal_rate_per_1k(pricing: "Pricing", model: "str | None" = None) -> "float":
    """
    single per-1k-token figure used to compare providers when no
    usage has been observed yet.
    """
    if isinstance(pricing, FlatPricing):
        return pricing.cost_per_1k

    if isinstance(pricing, InputOutputPricing):
        input_rate, output_rate = _input_output_rates(pricing, model)
        return (input_rate + output_rate) / 2

    return 0.0
