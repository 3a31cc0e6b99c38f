#!/usr/bin/env python3
"""recallhook hook metrics -- per-call outcomes, latency and score windows.

Each handled prompt ends in exactly one outcome:

    injection      context was injected
    cache_hit      answered from the query cache
    skip_pattern   gated by an intent-gating pattern
    short_prompt   prompt below the minimum length
    no_results     nothing survived ranking and filtering
    error          the pipeline raised and was contained

A summary line is logged every ``summary_interval`` calls.
"""

from __future__ import annotations

import os
import sys
import threading
import time
from collections import deque

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
from observability import get_logger, metrics, percentile

__all__ = ["OUTCOMES", "HookMetrics"]

_log = get_logger("hook_metrics")

OUTCOMES = ("injection", "cache_hit", "skip_pattern", "short_prompt", "no_results", "error")


class HookMetrics:
    """Rolling statistics for one hook instance."""

    def __init__(self, summary_interval: int = 100, window: int = 1000) -> None:
        self.summary_interval = summary_interval
        self.window = window
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self._total = 0
            self._outcomes = dict.fromkeys(OUTCOMES, 0)
            self._latencies: deque[float] = deque(maxlen=self.window)
            self._top_scores: deque[float] = deque(maxlen=self.window)
            self._keyword_used = 0
            self._started = time.monotonic()

    def record(self, outcome: str, latency_ms: float | None = None,
               top_score: float | None = None, keyword_used: bool = False) -> None:
        if outcome not in self._outcomes:
            raise ValueError(f"unknown outcome: {outcome}")
        with self._lock:
            self._total += 1
            self._outcomes[outcome] += 1
            if latency_ms is not None:
                self._latencies.append(float(latency_ms))
            if top_score is not None:
                self._top_scores.append(float(top_score))
            if keyword_used:
                self._keyword_used += 1
            total = self._total

        metrics.inc(f"hook_{outcome}")
        if self.summary_interval > 0 and total % self.summary_interval == 0:
            self.log_summary()

    def snapshot(self) -> dict:
        with self._lock:
            total = self._total
            outcomes = dict(self._outcomes)
            latencies = sorted(self._latencies)
            scores = list(self._top_scores)
            keyword_used = self._keyword_used
            uptime_s = time.monotonic() - self._started

        if latencies:
            latency = {
                "p50": percentile(latencies, 0.5),
                "p95": percentile(latencies, 0.95),
                "p99": percentile(latencies, 0.99),
                "avg": round(sum(latencies) / len(latencies), 2),
                "min": latencies[0],
                "max": latencies[-1],
            }
        else:
            latency = {"p50": 0, "p95": 0, "p99": 0, "avg": 0, "min": 0, "max": 0}

        return {
            "total_calls": total,
            **outcomes,
            "injection_rate": outcomes["injection"] / total if total else 0.0,
            "cache_hit_rate": outcomes["cache_hit"] / total if total else 0.0,
            "latency_ms": latency,
            "top_score_avg": sum(scores) / len(scores) if scores else 0.0,
            "keyword_used": keyword_used,
            "uptime_s": round(uptime_s, 3),
        }

    def log_summary(self) -> None:
        snap = self.snapshot()
        _log.info(
            "hook_metrics_summary",
            calls=snap["total_calls"],
            injection_rate=round(snap["injection_rate"], 3),
            cache_hit_rate=round(snap["cache_hit_rate"], 3),
            p50_ms=snap["latency_ms"]["p50"],
            p95_ms=snap["latency_ms"]["p95"],
            top_score_avg=round(snap["top_score_avg"], 3),
            keyword_used=snap["keyword_used"],
        )
