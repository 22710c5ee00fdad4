"""
Provider selection.

Each eligible provider gets

    score = latency_weight * norm(latency) + cost_weight * norm(cost)

where norm() is min-max normalization over the eligible set, so
both terms live in 0..1 whatever the units. A dimension without
spread (one candidate, or identical values) contributes 0. The
lowest score wins; ties go to the lower priority value, then to
the provider key.
"""

from dataclasses import dataclass
from typing import AbstractSet, Mapping, Sequence

import structlog

from llmrouter.errors import NoProviderAvailable, UnknownProviderKey
from llmrouter.models import ProviderConfig
from llmrouter.pricing import nominal_rate_per_1k
from llmrouter.prober import HealthProber
from llmrouter.provider.base import ChatProvider
from llmrouter.usage import UsageAccountant

logger = structlog.get_logger()

# scores closer than this are treated as equal
_SCORE_PRECISION = 9


@dataclass(frozen=True, slots=True)
class Weights:
    latency: "float" = 0.7
    cost: "float" = 0.3


@dataclass(frozen=True, slots=True)
class Candidate:
    key: "str"
    priority: "int"
    latency_ms: "float"
    cost_per_1k: "float"


def _min_max(values: "Sequence[float]") -> "list[float]":
    low, high = min(values), max(values)
    if high <= low:
        return [0.0 for _ in values]
    return [(v - low) / (high - low) for v in values]


def rank(
    candidates: "Sequence[Candidate]", weights: "Weights"
) -> "list[tuple[float, Candidate]]":
    """
    returns (score, candidate) pairs, best first.
    """
    if not candidates:
        return []

    latency = _min_max([c.latency_ms for c in candidates])
    cost = _min_max([c.cost_per_1k for c in candidates])
    scored = [
        (weights.latency * lat + weights.cost * cst, c)
        for lat, cst, c in zip(latency, cost, candidates)
    ]
    scored.sort(
        key=lambda sc: (round(sc[0], _SCORE_PRECISION), sc[1].priority, sc[1].key)
    )
    return scored


class Selector:
    """
    Selector picks exactly one provider for a request from the
    registry snapshot, using the prober's view of availability and
    latency and the accountant's view of cost.
    """

    def __init__(self, prober: "HealthProber", accountant: "UsageAccountant") -> "None":
        self._prober = prober
        self._accountant = accountant

    def cost_per_1k(self, config: "ProviderConfig") -> "float":
        """
        observed blended rate once the provider has used tokens,
        nominal rate of its pricing descriptor before that.
        """
        observed = self._accountant.effective_cost_per_1k(config.key)
        if observed is not None:
            return observed
        return nominal_rate_per_1k(config.pricing, config.model)

    def candidates(
        self,
        providers: "Mapping[str, ChatProvider]",
        override: "str | None" = None,
        exclude: "AbstractSet[str]" = frozenset(),
    ) -> "list[Candidate]":
        if override is not None and override not in providers:
            raise UnknownProviderKey(override)

        result = []
        for key, provider in providers.items():
            if override is not None and key != override:
                continue
            if key in exclude or not provider.config.enabled:
                continue
            if not self._prober.is_usable(key):
                continue
            state = self._prober.state(key)
            result.append(
                Candidate(
                    key=key,
                    priority=provider.config.priority,
                    latency_ms=(state.avg_latency_ms if state else None) or 0.0,
                    cost_per_1k=self.cost_per_1k(provider.config),
                )
            )
        return result

    def select(
        self,
        providers: "Mapping[str, ChatProvider]",
        weights: "Weights",
        override: "str | None" = None,
        exclude: "AbstractSet[str]" = frozenset(),
    ) -> "ChatProvider":
        """
        raises UnknownProviderKey when override names no configured
        provider and NoProviderAvailable when nothing is eligible.
        """
        ranked = rank(self.candidates(providers, override, exclude), weights)
        if not ranked:
            if override is not None:
                raise NoProviderAvailable(f"provider {override} is disabled or down")
            raise NoProviderAvailable()

        score, best = ranked[0]
        logger.debug(
            "provider_selected",
            provider=best.key,
            score=round(score, 4),
            candidates=[c.key for _, c in ranked],
        )
        return providers[best.key]
