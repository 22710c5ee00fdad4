import asyncio
import time
from typing import Callable, Iterable, Mapping

import structlog

from llmrouter.metrics import MetricsUpdater
from llmrouter.models import ProviderState
from llmrouter.provider.base import ChatProvider

logger = structlog.get_logger()

# weight of the newest latency sample in the moving average
_DEFAULT_EMA_ALPHA = 0.3


class HealthProber:
    """
    HealthProber is responsible for knowing which providers currently
    accept requests and how fast they answer. It keeps exactly one
    ProviderState per configured provider and updates it in place.

    Probing runs as an explicit background task (start/stop) that
    sleeps between cycles, and can be triggered on demand with
    trigger_now(). Cycles never overlap.
    """

    def __init__(
        self,
        metrics: "MetricsUpdater",
        interval_seconds: "float" = 60.0,
        timeout_seconds: "float" = 5.0,
        concurrency: "int" = 4,
        stale_after_seconds: "float | None" = None,
        ema_alpha: "float" = _DEFAULT_EMA_ALPHA,
        clock: "Callable[[], float]" = time.time,
    ) -> "None":
        self._metrics = metrics
        self._interval = interval_seconds
        self._timeout = timeout_seconds
        self._concurrency = max(1, concurrency)
        self._stale_after = stale_after_seconds
        self._alpha = ema_alpha
        self._clock = clock
        self._states: "dict[str, ProviderState]" = {}
        self._initialized: "asyncio.Event" = asyncio.Event()
        self._stop_event: "asyncio.Event" = asyncio.Event()
        self._cycle_lock: "asyncio.Lock" = asyncio.Lock()
        self._task: "asyncio.Task[None] | None" = None
        self._targets: "Callable[[], Mapping[str, ChatProvider]]" = dict

    @property
    def initialized(self) -> "bool":
        return self._initialized.is_set()

    @property
    def running(self) -> "bool":
        return self._task is not None and not self._task.done()

    def sync(self, keys: "Iterable[str]") -> "None":
        """
        creates states for new provider keys and drops states of keys
        that are no longer configured. Existing states are kept.
        """
        wanted = set(keys)
        for key in list(self._states):
            if key not in wanted:
                del self._states[key]
        for key in wanted:
            self._states.setdefault(key, ProviderState(key=key))

    def state(self, key: "str") -> "ProviderState | None":
        return self._states.get(key)

    def is_usable(self, key: "str") -> "bool":
        """
        True when the last probe succeeded and is not stale.
        """
        state = self._states.get(key)
        if state is None or not state.is_available or state.last_probe_at is None:
            return False
        if self._stale_after is None:
            return True
        return self._clock() - state.last_probe_at <= self._stale_after

    def mark_unavailable(self, key: "str", error: "str") -> "None":
        state = self._states.get(key)
        if state is not None:
            state.is_available = False
            state.last_error = error

    async def probe_all(self, providers: "Mapping[str, ChatProvider]") -> "None":
        """
        probes every enabled provider concurrently, at most
        `concurrency` at a time, each under its own timeout.
        Completing a cycle marks the prober initialized even if every
        probe failed.
        """
        async with self._cycle_lock:
            try:
                self.sync(providers.keys())
                semaphore = asyncio.Semaphore(self._concurrency)
                targets = [p for p in providers.values() if p.config.enabled]

                logger.debug("probe_cycle_start", providers=[p.key for p in targets])
                results = await asyncio.gather(
                    *(self._probe_one(p, semaphore) for p in targets),
                    return_exceptions=True,
                )
                for provider, result in zip(targets, results):
                    if isinstance(result, Exception):
                        logger.error(
                            "provider_probe_crashed",
                            provider=provider.key,
                            error=repr(result),
                        )
                        self.mark_unavailable(provider.key, repr(result))
                logger.debug("probe_cycle_end")
            finally:
                self._initialized.set()

    async def _probe_one(
        self, provider: "ChatProvider", semaphore: "asyncio.Semaphore"
    ) -> "None":
        async with semaphore:
            start = time.monotonic()
            error: "str | None" = None
            try:
                await asyncio.wait_for(
                    provider.probe(self._timeout), timeout=self._timeout
                )
            except TimeoutError:
                error = f"probe timed out after {self._timeout}s"
            except Exception as exc:
                error = str(exc) or type(exc).__name__
            duration = time.monotonic() - start

        state = self._states.get(provider.key)
        # removed by a concurrent sync
        if state is None:
            return

        state.last_probe_at = self._clock()
        if error is None:
            sample = duration * 1000
            if state.avg_latency_ms is None:
                state.avg_latency_ms = sample
            else:
                state.avg_latency_ms = (
                    self._alpha * sample + (1 - self._alpha) * state.avg_latency_ms
                )
            state.is_available = True
            state.last_error = None
            logger.info(
                "provider_probe_ok",
                provider=provider.key,
                latency_ms=round(sample, 1),
                avg_latency_ms=round(state.avg_latency_ms, 1),
            )
        else:
            state.is_available = False
            state.last_error = error
            logger.warning("provider_probe_failed", provider=provider.key, error=error)

        self._metrics.observe_probe(
            provider.key, state.is_available, duration, state.avg_latency_ms
        )

    async def wait_for_initialization(self) -> "None":
        await self._initialized.wait()

    async def trigger_now(self) -> "None":
        """
        runs one probe cycle against the current targets and returns
        once it completed.
        """
        await self.probe_all(self._targets())

    def start(self, targets: "Callable[[], Mapping[str, ChatProvider]]") -> "None":
        """
        starts the background probe loop. targets is called at every
        cycle so refreshed providers are picked up. No-op if already
        running.
        """
        self._targets = targets
        if self.running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name="llmrouter-prober")

    async def stop(self) -> "None":
        """
        signals the probe loop to stop and waits for it to exit.
        """
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None

    async def _run(self) -> "None":
        while not self._stop_event.is_set():
            try:
                await self.trigger_now()
            except Exception:
                logger.exception("probe_cycle_error")

            # a non-positive interval means a single cycle
            if self._interval <= 0:
                return

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except TimeoutError:
                pass
