import asyncio

import httpx
import pytest

from fakes import FakeProvider
from llmrouter.errors import ProviderTransportError
from llmrouter.executor import Executor
from llmrouter.metrics import MetricsUpdater
from llmrouter.models import (
    GenerationRequest,
    InputOutputPricing,
    Pricing,
    ProviderConfig,
    UnknownPricing,
)
from llmrouter.provider.wire import AnthropicMessageResponse
from llmrouter.usage import UsageAccountant


def _config(key: "str" = "p", pricing: "Pricing | None" = None) -> "ProviderConfig":
    return ProviderConfig(
        key=key,
        name=key,
        family="openai",
        endpoint=f"https://{key}.example",
        models_endpoint=f"https://{key}.example/models",
        model="m",
        pricing=pricing
        or InputOutputPricing(input_cost_per_1k=0.002, output_cost_per_1k=0.004),
    )


class HangingProvider(FakeProvider):
    async def generate(self, request: "GenerationRequest") -> "object":
        self.calls += 1
        await asyncio.sleep(10)


class SparseProvider(FakeProvider):
    """
    answers in the Anthropic shape without any usage block.
    """

    async def generate(self, request: "GenerationRequest") -> "object":
        self.calls += 1
        return AnthropicMessageResponse.from_json(
            {"content": [{"type": "text", "text": "partial"}]}
        )


class BadPayloadProvider(FakeProvider):
    async def generate(self, request: "GenerationRequest") -> "object":
        self.calls += 1
        raise ValueError("Expecting value: line 1 column 1 (char 0)")


REQUEST = GenerationRequest(prompt="hello", user_id="u1")


class TestExecute:
    @pytest.mark.asyncio
    async def test_normalizes_prices_and_records(
        self, metrics: "MetricsUpdater", registry: "object"
    ) -> "None":
        accountant = UsageAccountant()
        executor = Executor(accountant, metrics)
        provider = FakeProvider(_config(), usage=(1000, 500))

        result = await executor.execute(provider, REQUEST)

        assert result.provider == "p"
        assert result.model == "m"
        assert result.content == "p:hello"
        assert result.usage.total_tokens == 1500
        assert result.cost_usd == 0.004
        assert result.cached is False
        assert result.latency_ms >= 0

        summary = accountant.get_usage_summary("p")
        assert summary.total_tokens == 1500
        assert summary.request_count == 1
        assert accountant.get_usage_history()[0].user_id == "u1"
        assert registry.get_sample_value(
            "llmrouter_tokens_total", {"provider": "p", "direction": "input"}
        ) == 1000.0

    @pytest.mark.asyncio
    async def test_retries_once_then_succeeds(
        self, metrics: "MetricsUpdater"
    ) -> "None":
        executor = Executor(UsageAccountant(), metrics)
        provider = FakeProvider(_config(), fail_calls=1)

        result = await executor.execute(provider, REQUEST)

        assert provider.calls == 2
        assert result.content == "p:hello"

    @pytest.mark.asyncio
    async def test_gives_up_after_one_retry(self, metrics: "MetricsUpdater") -> "None":
        accountant = UsageAccountant()
        executor = Executor(accountant, metrics)
        provider = FakeProvider(_config(), fail_calls=5)

        with pytest.raises(ProviderTransportError) as excinfo:
            await executor.execute(provider, REQUEST)

        assert excinfo.value.provider == "p"
        assert isinstance(excinfo.value.__cause__, httpx.ConnectError)
        assert provider.calls == 2
        assert accountant.get_usage_summary("p") is None

    @pytest.mark.asyncio
    async def test_timeout_is_a_transport_error(
        self, metrics: "MetricsUpdater"
    ) -> "None":
        executor = Executor(UsageAccountant(), metrics, timeout_seconds=0.05)
        provider = HangingProvider(_config())

        with pytest.raises(ProviderTransportError, match="timed out"):
            await executor.execute(provider, REQUEST)
        assert provider.calls == 2

    @pytest.mark.asyncio
    async def test_undecodable_payload_is_a_transport_error(
        self, metrics: "MetricsUpdater"
    ) -> "None":
        executor = Executor(UsageAccountant(), metrics, retries=0)
        provider = BadPayloadProvider(_config())

        with pytest.raises(ProviderTransportError):
            await executor.execute(provider, REQUEST)
        assert provider.calls == 1

    @pytest.mark.asyncio
    async def test_missing_usage_defaults_to_zero(
        self, metrics: "MetricsUpdater"
    ) -> "None":
        executor = Executor(UsageAccountant(), metrics)

        result = await executor.execute(SparseProvider(_config()), REQUEST)

        assert result.content == "partial"
        assert result.usage.total_tokens == 0
        assert result.cost_usd == 0.0

    @pytest.mark.asyncio
    async def test_unknown_pricing_costs_nothing(
        self, metrics: "MetricsUpdater"
    ) -> "None":
        executor = Executor(UsageAccountant(), metrics)
        provider = FakeProvider(_config(pricing=UnknownPricing(type="tiered")))

        result = await executor.execute(provider, REQUEST)

        assert result.cost_usd == 0.0
        assert result.usage.total_tokens == 15
