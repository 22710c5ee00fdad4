import pytest
from prometheus_client import CollectorRegistry

from fakes import FakeClock
from llmrouter.config import Config
from llmrouter.metrics import MetricsUpdater


@pytest.fixture()
def registry() -> "CollectorRegistry":
    """
    fresh Prometheus registry to avoid cross-test state.
    """
    return CollectorRegistry()


@pytest.fixture()
def metrics(registry: "CollectorRegistry") -> "MetricsUpdater":
    return MetricsUpdater(registry=registry)


@pytest.fixture()
def config() -> "Config":
    # single probe cycle, no background timer and no staleness
    return Config(probe_interval=0, probe_timeout=0.5, request_timeout=1.0)


@pytest.fixture()
def clock() -> "FakeClock":
    return FakeClock()
