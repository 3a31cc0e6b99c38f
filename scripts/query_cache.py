#!/usr/bin/env python3
"""recallhook query cache -- bounded LRU with TTL and fuzzy key matching.

Users rephrase: "what port does the gateway use" and "which port does the
gateway use" should share one ranking. A lookup first tries the exact key,
then the live entry whose token set has the highest Jaccard similarity at
or above ``fuzzy_threshold``.

Cached empty lists are real hits ("searched, found nothing"); a miss is
``None``.
"""

from __future__ import annotations

import os
import sys
import threading
import time
from collections import OrderedDict
from typing import Callable

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
from _rank_constants import DEFAULT_CACHE_SIZE, DEFAULT_CACHE_TTL_MS, DEFAULT_FUZZY_THRESHOLD
from observability import get_logger, metrics
from result_filters import jaccard_similarity, word_tokens

__all__ = ["QueryCache"]

_log = get_logger("query_cache")


class _Entry:
    __slots__ = ("tokens", "results", "inserted_at")

    def __init__(self, tokens: frozenset[str], results: list, inserted_at: float):
        self.tokens = tokens
        self.results = results
        self.inserted_at = inserted_at


class QueryCache:
    """LRU + TTL cache keyed by prompt text, with fuzzy fallback.

    Args:
        max_size: Maximum live entries; inserting past it evicts the LRU one.
        ttl_ms: Entry lifetime. An entry older than this is expired.
        fuzzy_threshold: Minimum token Jaccard for a fuzzy hit. 1.0 disables
            fuzzy matching.
        clock: Monotonic seconds source, injectable for tests.

    Invalid arguments are logged and replaced by their defaults.
    """

    def __init__(
        self,
        max_size: int = DEFAULT_CACHE_SIZE,
        ttl_ms: float = DEFAULT_CACHE_TTL_MS,
        fuzzy_threshold: float = DEFAULT_FUZZY_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not isinstance(max_size, int) or max_size < 1:
            _log.warning("cache_invalid_max_size", value=max_size, default=DEFAULT_CACHE_SIZE)
            max_size = DEFAULT_CACHE_SIZE
        if not isinstance(ttl_ms, (int, float)) or ttl_ms <= 0:
            _log.warning("cache_invalid_ttl", value=ttl_ms, default=DEFAULT_CACHE_TTL_MS)
            ttl_ms = DEFAULT_CACHE_TTL_MS
        if not isinstance(fuzzy_threshold, (int, float)) or not 0 < fuzzy_threshold <= 1:
            _log.warning("cache_invalid_fuzzy_threshold", value=fuzzy_threshold,
                         default=DEFAULT_FUZZY_THRESHOLD)
            fuzzy_threshold = DEFAULT_FUZZY_THRESHOLD

        self.max_size = max_size
        self.ttl_s = ttl_ms / 1000.0
        self.fuzzy_threshold = float(fuzzy_threshold)
        self._clock = clock
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._lock = threading.Lock()

    def _expired(self, entry: _Entry, now: float) -> bool:
        return now - entry.inserted_at > self.ttl_s

    def get(self, key: str) -> list | None:
        """Cached results for ``key`` or a close rephrasing, else None."""
        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)
            if entry is not None:
                if not self._expired(entry, now):
                    self._entries.move_to_end(key)
                    metrics.inc("cache_exact_hits")
                    return entry.results
                del self._entries[key]

            if self.fuzzy_threshold >= 1.0:
                metrics.inc("cache_misses")
                return None

            tokens = word_tokens(key)
            best_key = None
            best_sim = 0.0
            for cached_key, cached in list(self._entries.items()):
                if self._expired(cached, now):
                    del self._entries[cached_key]
                    continue
                sim = jaccard_similarity(tokens, cached.tokens)
                if sim >= self.fuzzy_threshold and sim > best_sim:
                    best_key = cached_key
                    best_sim = sim

            if best_key is None:
                metrics.inc("cache_misses")
                return None
            self._entries.move_to_end(best_key)
            metrics.inc("cache_fuzzy_hits")
            _log.debug("cache_fuzzy_hit", similarity=round(best_sim, 3))
            return self._entries[best_key].results

    def set(self, key: str, results: list) -> None:
        """Insert or replace ``key`` as most recently used."""
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            self._entries[key] = _Entry(word_tokens(key), results, self._clock())
            if len(self._entries) > self.max_size:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    @property
    def size(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
