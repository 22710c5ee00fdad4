import hashlib
import json
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable

from llmrouter.models import GenerationRequest, GenerationResult


@dataclass(slots=True)
class CacheEntry:
    provider: "str"
    result: "GenerationResult"
    inserted_at: "float"


def make_cache_key(provider: "str", request: "GenerationRequest") -> "str":
    """
    derives the cache key for a request routed to provider.

    Only what changes the answer goes in: user id and request id
    are left out, whitespace runs in the prompt are collapsed and
    temperature is rounded to two decimals.
    """
    payload = {
        "provider": provider,
        "prompt": " ".join(request.prompt.split()),
        "max_tokens": request.max_tokens,
        "temperature": round(float(request.temperature), 2),
    }
    digest = hashlib.sha256(
        json.dumps(payload, sort_keys=True).encode("utf-8")
    ).hexdigest()
    return f"{provider}|{digest}"


class ResponseCache:
    """
    ResponseCache: Is a thread-safe TTL cache of generation results.

    Entries older than ttl are never returned; they are dropped when
    looked up. Once max_size is reached the least recently used
    entry is evicted. Hits and misses are counted for stats().
    """

    def __init__(
        self,
        ttl_seconds: "float" = 6 * 60 * 60,
        max_size: "int" = 1000,
        clock: "Callable[[], float]" = time.monotonic,
    ) -> "None":
        self._ttl = ttl_seconds
        self._max_size = max_size
        self._clock = clock
        self._lock: "threading.Lock" = threading.Lock()
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._hits = 0
        self._misses = 0

    def get(self, key: "str") -> "GenerationResult | None":
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            if self._clock() - entry.inserted_at >= self._ttl:
                del self._entries[key]
                self._misses += 1
                return None

            self._entries.move_to_end(key)
            self._hits += 1
            return entry.result

    def set(self, key: "str", provider: "str", result: "GenerationResult") -> "None":
        with self._lock:
            self._entries[key] = CacheEntry(
                provider=provider, result=result, inserted_at=self._clock()
            )
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_size:
                self._entries.popitem(last=False)

    def invalidate_provider(self, provider: "str") -> "int":
        """
        drops every entry produced by provider. Returns the number of
        dropped entries.
        """
        with self._lock:
            to_remove = [k for k, e in self._entries.items() if e.provider == provider]
            for k in to_remove:
                del self._entries[k]
            return len(to_remove)

    def clear(self) -> "None":
        with self._lock:
            self._entries.clear()

    def stats(self) -> "dict[str, float]":
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "size": len(self._entries),
                "max_size": self._max_size,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / lookups if lookups else 0.0,
            }
