import dataclasses
import threading
import time
from collections import deque
from typing import Any, Callable, Iterable

from llmrouter.models import Usage, UsageEvent, UsageSummary

# events kept in memory for get_usage_history()
_DEFAULT_HISTORY_SIZE = 1000


class UsageAccountant:
    """
    UsageAccountant: Is a thread-safe store of cumulative token and
    cost counters, one UsageSummary per provider.

    Every update happens under a single lock, so concurrent call
    completions never lose increments. Summaries can be dumped and
    loaded by a persistence collaborator to survive restarts.
    """

    def __init__(
        self,
        history_size: "int" = _DEFAULT_HISTORY_SIZE,
        clock: "Callable[[], float]" = time.time,
    ) -> "None":
        self._lock: "threading.Lock" = threading.Lock()
        self._summaries: "dict[str, UsageSummary]" = {}
        self._history: "deque[UsageEvent]" = deque(maxlen=history_size)
        self._clock = clock

    def register(self, provider: "str") -> "None":
        """
        ensures a summary exists for provider so it shows up in
        get_all_usage_summaries() before its first call.
        """
        with self._lock:
            self._summaries.setdefault(provider, UsageSummary(provider=provider))

    def record_usage(
        self,
        provider: "str",
        usage: "Usage",
        cost: "float",
        model: "str" = "",
        user_id: "str | None" = None,
        request_type: "str" = "chat",
    ) -> "None":
        now = self._clock()
        with self._lock:
            summary = self._summaries.setdefault(
                provider, UsageSummary(provider=provider)
            )
            summary.total_prompt_tokens += usage.prompt_tokens
            summary.total_completion_tokens += usage.completion_tokens
            summary.total_tokens += usage.total_tokens
            summary.total_cost += cost
            summary.request_count += 1
            summary.updated_at = now

            self._history.append(
                UsageEvent(
                    provider=provider,
                    model=model,
                    usage=usage,
                    cost_usd=cost,
                    request_type=request_type,
                    created_at=now,
                    # diagnostics are not attributed to a user
                    user_id=user_id if request_type != "test" else None,
                )
            )

    def get_usage_summary(self, provider: "str") -> "UsageSummary | None":
        with self._lock:
            summary = self._summaries.get(provider)
            return dataclasses.replace(summary) if summary else None

    def get_all_usage_summaries(self) -> "list[UsageSummary]":
        """
        snapshot of every summary, most expensive first.
        """
        with self._lock:
            snapshot = [dataclasses.replace(s) for s in self._summaries.values()]
        return sorted(snapshot, key=lambda s: s.total_cost, reverse=True)

    def reset_usage_summary(self, provider: "str") -> "bool":
        """
        zeroes the counters of provider. Returns False, changing
        nothing, if the provider has no summary.
        """
        now = self._clock()
        with self._lock:
            if provider not in self._summaries:
                return False
            self._summaries[provider] = UsageSummary(
                provider=provider, last_reset_at=now, updated_at=now
            )
            return True

    def get_usage_history(
        self,
        provider: "str | None" = None,
        user_id: "str | None" = None,
        limit: "int" = 100,
    ) -> "list[UsageEvent]":
        """
        most recent events first, optionally filtered.
        """
        with self._lock:
            events = list(self._history)

        matched: "list[UsageEvent]" = []
        for event in reversed(events):
            if provider is not None and event.provider != provider:
                continue
            if user_id is not None and event.user_id != user_id:
                continue
            matched.append(event)
            if len(matched) >= limit:
                break
        return matched

    def get_total_usage_stats(self) -> "dict[str, Any]":
        summaries = self.get_all_usage_summaries()
        return {
            "total_providers": len(summaries),
            "total_requests": sum(s.request_count for s in summaries),
            "total_tokens": sum(s.total_tokens for s in summaries),
            "total_cost": sum(s.total_cost for s in summaries),
            "providers": summaries,
        }

    def effective_cost_per_1k(self, provider: "str") -> "float | None":
        """
        observed blended cost per 1k tokens, None before any tokens
        were recorded for provider.
        """
        with self._lock:
            summary = self._summaries.get(provider)
            if summary is None or summary.total_tokens <= 0:
                return None
            return summary.total_cost / summary.total_tokens * 1000

    def dump(self) -> "list[dict[str, Any]]":
        with self._lock:
            return [dataclasses.asdict(s) for s in self._summaries.values()]

    def load(self, rows: "Iterable[dict[str, Any]]") -> "None":
        """
        replaces summaries with previously dumped rows. Unknown fields
        are ignored so older dumps keep loading.
        """
        names = {f.name for f in dataclasses.fields(UsageSummary)}
        loaded = {}
        for row in rows:
            summary = UsageSummary(**{k: v for k, v in row.items() if k in names})
            loaded[summary.provider] = summary
        with self._lock:
            self._summaries.update(loaded)
