import asyncio
import time

import httpx
import structlog

from llmrouter.errors import ProviderTransportError
from llmrouter.metrics import MetricsUpdater
from llmrouter.models import GenerationRequest, GenerationResult
from llmrouter.pricing import compute_cost
from llmrouter.provider.base import ChatProvider
from llmrouter.provider.wire import WireResponse, normalize
from llmrouter.usage import UsageAccountant

logger = structlog.get_logger()

# failures that count against the provider; anything else is a bug
_TRANSPORT_ERRORS = (httpx.HTTPError, TimeoutError, ValueError)


class Executor:
    """
    Executor performs the actual call to one provider: it applies the
    per-call timeout, retries once on transport failure, normalizes
    the response, prices it and records the usage.
    """

    def __init__(
        self,
        accountant: "UsageAccountant",
        metrics: "MetricsUpdater",
        timeout_seconds: "float" = 30.0,
        retries: "int" = 1,
    ) -> "None":
        self._accountant = accountant
        self._metrics = metrics
        self._timeout = timeout_seconds
        self._retries = retries

    async def _call(
        self, provider: "ChatProvider", request: "GenerationRequest"
    ) -> "WireResponse":
        last_error: "Exception | None" = None
        for attempt in range(self._retries + 1):
            try:
                return await asyncio.wait_for(
                    provider.generate(request), timeout=self._timeout
                )
            except _TRANSPORT_ERRORS as exc:
                last_error = exc
                logger.warning(
                    "provider_call_failed",
                    provider=provider.key,
                    attempt=attempt + 1,
                    error=str(exc) or type(exc).__name__,
                )

        self._metrics.inc_generation_error(provider.key)
        if isinstance(last_error, TimeoutError):
            message = f"request timed out after {self._timeout}s"
        else:
            message = str(last_error) or type(last_error).__name__
        raise ProviderTransportError(provider.key, message) from last_error

    async def execute(
        self, provider: "ChatProvider", request: "GenerationRequest"
    ) -> "GenerationResult":
        """
        calls provider and returns the normalized result. Raises
        ProviderTransportError once the retry is used up.
        """
        config = provider.config
        start = time.monotonic()
        response = await self._call(provider, request)
        latency_ms = (time.monotonic() - start) * 1000

        content, usage = normalize(response)
        cost = compute_cost(config.pricing, usage, config.model)

        self._accountant.record_usage(
            config.key,
            usage,
            cost,
            model=config.model,
            user_id=request.user_id,
            request_type=request.request_type,
        )
        self._metrics.observe_generation(config.key, usage, cost)
        logger.info(
            "provider_call_done",
            provider=config.key,
            model=config.model,
            request_id=request.request_id,
            total_tokens=usage.total_tokens,
            cost_usd=cost,
            latency_ms=round(latency_ms, 1),
        )

        return GenerationResult(
            provider=config.key,
            model=config.model,
            content=content,
            usage=usage,
            latency_ms=latency_ms,
            cost_usd=cost,
        )
