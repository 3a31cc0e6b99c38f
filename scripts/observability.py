#!/usr/bin/env python3
"""recallhook observability -- structured logging, metrics, timing.

Provides:
- Structured JSON logging via stdlib logging (one line per event on stderr)
- In-process counters plus rolling observation windows with percentiles
- Timing context manager for latency tracking

Usage:
    from observability import get_logger, metrics, timed

    log = get_logger("hook_handler")
    log.info("injecting", count=2, top_score=0.81)

    metrics.inc("vector_timeouts")
    metrics.observe("rank_ms", 12.5)

    with timed("rank", log):
        results = hook.rank(prompt)

Environment:
    RECALLHOOK_LOG_LEVEL  -- DEBUG/INFO/WARNING/ERROR (default INFO)
"""

from __future__ import annotations

import json
import logging
import os
import sys
import threading
import time
from collections import deque
from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime, timezone

LOGGER_NAMESPACE = "recallhook"
LOG_LEVEL_ENV = "RECALLHOOK_LOG_LEVEL"

# Rolling window size for each named observation series
DEFAULT_WINDOW = 1000


# ---------------------------------------------------------------------------
# Structured JSON Formatter
# ---------------------------------------------------------------------------

class JSONFormatter(logging.Formatter):
    """Emit log records as single-line JSON."""

    def format(self, record):
        entry = {
            "ts": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname.lower(),
            "component": getattr(record, "component", record.name),
            "event": record.getMessage(),
        }
        data = getattr(record, "data", None)
        if data:
            entry["data"] = data
        return json.dumps(entry, default=str)


class StructuredLogger:
    """Logger that takes an event name plus keyword arguments as structured data."""

    def __init__(self, name: str):
        self.name = name
        self._logger = logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")
        if not self._logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(JSONFormatter())
            self._logger.addHandler(handler)
            level_name = os.environ.get(LOG_LEVEL_ENV, "INFO").upper()
            self._logger.setLevel(getattr(logging, level_name, logging.INFO))
            self._logger.propagate = False

    def _log(self, level: int, event: str, **kwargs) -> None:
        if not self._logger.isEnabledFor(level):
            return
        record = self._logger.makeRecord(
            name=self._logger.name,
            level=level,
            fn="",
            lno=0,
            msg=event,
            args=(),
            exc_info=None,
        )
        record.component = self.name
        record.data = kwargs if kwargs else None
        self._logger.handle(record)

    def debug(self, event: str, **kwargs) -> None:
        self._log(logging.DEBUG, event, **kwargs)

    def info(self, event: str, **kwargs) -> None:
        self._log(logging.INFO, event, **kwargs)

    def warning(self, event: str, **kwargs) -> None:
        self._log(logging.WARNING, event, **kwargs)

    def error(self, event: str, **kwargs) -> None:
        self._log(logging.ERROR, event, **kwargs)


def get_logger(component: str) -> StructuredLogger:
    """Get a structured logger for a component."""
    return StructuredLogger(component)


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

def percentile(sorted_values: list[float], fraction: float) -> float:
    """Nearest-rank percentile over an already sorted list (0 when empty)."""
    if not sorted_values:
        return 0.0
    idx = min(int(len(sorted_values) * fraction), len(sorted_values) - 1)
    return sorted_values[idx]


class Metrics:
    """In-process metrics collector.

    Counters are cumulative. Observations keep only the most recent
    ``window`` values per name, so long-running hosts stay bounded.
    Safe to call from the vector-search worker threads.
    """

    def __init__(self, window: int = DEFAULT_WINDOW) -> None:
        self._window = window
        self._counters: dict[str, int | float] = {}
        self._observations: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

    def inc(self, name: str, value: int | float = 1) -> None:
        """Increment a counter."""
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + value

    def observe(self, name: str, value: float) -> None:
        """Record an observation (latency, score, size)."""
        with self._lock:
            series = self._observations.get(name)
            if series is None:
                series = self._observations[name] = deque(maxlen=self._window)
            series.append(value)

    def get(self, name: str) -> int | float:
        """Get counter value."""
        return self._counters.get(name, 0)

    def values(self, name: str) -> list[float]:
        """Current window of observations for ``name``."""
        with self._lock:
            return list(self._observations.get(name, ()))

    def summary(self) -> dict:
        """Return counters plus per-series count/min/max/avg/p50/p95."""
        with self._lock:
            result: dict = {"counters": dict(self._counters)}
            series = {name: sorted(vals) for name, vals in self._observations.items() if vals}
        for name, vals in series.items():
            result.setdefault("observations", {})[name] = {
                "count": len(vals),
                "min": vals[0],
                "max": vals[-1],
                "avg": sum(vals) / len(vals),
                "p50": percentile(vals, 0.5),
                "p95": percentile(vals, 0.95),
            }
        return result

    def reset(self) -> None:
        """Reset all metrics."""
        with self._lock:
            self._counters.clear()
            self._observations.clear()


# Global metrics instance
metrics = Metrics()


# ---------------------------------------------------------------------------
# Timing
# ---------------------------------------------------------------------------

@contextmanager
def timed(operation: str, logger: StructuredLogger | None = None) -> Generator[None, None, None]:
    """Time a block and record ``<operation>_ms`` in the global metrics."""
    start = time.monotonic()
    try:
        yield
    finally:
        elapsed_ms = (time.monotonic() - start) * 1000
        metrics.observe(f"{operation}_ms", elapsed_ms)
        if logger:
            logger.debug(f"{operation}_complete", duration_ms=round(elapsed_ms, 2))
