#!/usr/bin/env python3
"""recallhook vector search client -- lazy provider, sticky failure, timeout race.

The vector provider is anything with
``search(query, max_results=, min_score=, session_key=) -> list[dict]``.
It is created on first use by a factory. A factory that returns None or
raises marks the signal unavailable for the life of the client; a slow
search only loses that one query.

Searches run on a small thread pool so the orchestrator can compute the
keyword signals on its own thread while the vector call is in flight.
"""

from __future__ import annotations

import os
import sys
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Callable

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
from observability import get_logger, metrics

__all__ = ["VectorSearchClient", "normalize_hit"]

_log = get_logger("memory_client")


def normalize_hit(hit: dict) -> dict:
    """Map a provider hit onto the chunk shape (text, source, path, lines, score)."""
    lines = hit.get("lines") or ""
    start, end = hit.get("start_line"), hit.get("end_line")
    if not lines and start and end:
        lines = f"{start}-{end}"
    score = hit.get("score")
    return {
        "text": hit.get("snippet") or hit.get("text") or "",
        "source": hit.get("source") or "memory",
        "path": hit.get("path") or "",
        "lines": lines,
        "score": float(score) if isinstance(score, (int, float)) else 0.0,
    }


class VectorSearchClient:
    """Owns the vector provider and the worker pool that queries it."""

    def __init__(self, manager_factory: Callable[[], Any] | None, max_workers: int = 4) -> None:
        self._factory = manager_factory
        self._manager = None
        self._init_failed = manager_factory is None
        self._init_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers,
                                            thread_name_prefix="recallhook-vector")

    @property
    def available(self) -> bool:
        """False once initialization has failed; True before the first attempt."""
        return not self._init_failed

    def _get_manager(self):
        if self._init_failed:
            return None
        if self._manager is not None:
            return self._manager
        with self._init_lock:
            if self._init_failed:
                return None
            if self._manager is not None:
                return self._manager
            try:
                manager = self._factory()
            except Exception as exc:
                self._init_failed = True
                metrics.inc("vector_init_failures")
                _log.error("vector_manager_init_failed", error=str(exc))
                return None
            if manager is None:
                self._init_failed = True
                _log.warning("vector_manager_unavailable")
                return None
            self._manager = manager
            _log.info("vector_manager_initialized")
            return manager

    def _run_search(self, query: str, max_results: int, min_score: float, session_key):
        manager = self._get_manager()
        if manager is None:
            return []
        hits = manager.search(query, max_results=max_results, min_score=min_score,
                              session_key=session_key)
        return list(hits or [])

    def submit(
        self,
        query: str,
        max_results: int = 5,
        min_score: float = 0.3,
        session_key: str | None = None,
    ) -> Future | None:
        """Start a search on the pool. None when the signal is known unavailable."""
        if self._init_failed:
            return None
        return self._executor.submit(self._run_search, query, max_results, min_score, session_key)

    def collect(self, future: Future | None, timeout_ms: float = 2000, min_score: float = 0.0) -> list[dict]:
        """Wait for ``future`` up to ``timeout_ms``; any failure is an empty result."""
        if future is None:
            return []
        try:
            hits = future.result(timeout=timeout_ms / 1000.0)
        except FutureTimeout:
            future.cancel()
            metrics.inc("vector_timeouts")
            _log.warning("vector_search_timeout", timeout_ms=timeout_ms)
            return []
        except Exception as exc:
            metrics.inc("vector_errors")
            _log.warning("vector_search_failed", error=str(exc))
            return []
        chunks = [normalize_hit(h) for h in hits if isinstance(h, dict)]
        return [c for c in chunks if c["score"] >= min_score]

    def search(
        self,
        query: str,
        max_results: int = 5,
        min_score: float = 0.3,
        timeout_ms: float = 2000,
        session_key: str | None = None,
    ) -> list[dict]:
        future = self.submit(query, max_results=max_results, min_score=min_score,
                             session_key=session_key)
        return self.collect(future, timeout_ms=timeout_ms, min_score=min_score)

    def reset(self) -> None:
        """Forget the cached provider and any recorded init failure."""
        with self._init_lock:
            self._manager = None
            self._init_failed = self._factory is None

    def close(self) -> None:
        self._executor.shutdown(wait=False)
