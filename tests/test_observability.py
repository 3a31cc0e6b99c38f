#!/usr/bin/env python3
"""Tests for observability.py -- structured logging, rolling metrics, timing."""

import json
import logging
import os
import sys
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "scripts"))
from observability import JSONFormatter, Metrics, get_logger, percentile, timed


class TestStructuredLogger(unittest.TestCase):
    def test_get_logger_returns_logger(self):
        log = get_logger("test-component")
        self.assertEqual(log.name, "test-component")

    def test_logging_doesnt_raise(self):
        log = get_logger("test")
        log.debug("test_event", key="value")
        log.info("test_info", count=5)
        log.warning("test_warn")
        log.error("test_error", detail="something failed")


class TestMetrics(unittest.TestCase):
    def test_inc_default(self):
        m = Metrics()
        m.inc("requests")
        self.assertEqual(m.get("requests"), 1)

    def test_inc_custom_value(self):
        m = Metrics()
        m.inc("bytes", 1024)
        self.assertEqual(m.get("bytes"), 1024)

    def test_inc_accumulates(self):
        m = Metrics()
        m.inc("count")
        m.inc("count")
        m.inc("count", 3)
        self.assertEqual(m.get("count"), 5)

    def test_get_missing_returns_zero(self):
        m = Metrics()
        self.assertEqual(m.get("nonexistent"), 0)

    def test_observe_records_values(self):
        m = Metrics()
        m.observe("latency_ms", 10.5)
        m.observe("latency_ms", 20.3)
        m.observe("latency_ms", 15.0)
        summary = m.summary()
        self.assertIn("observations", summary)
        obs = summary["observations"]["latency_ms"]
        self.assertEqual(obs["count"], 3)
        self.assertAlmostEqual(obs["min"], 10.5)
        self.assertAlmostEqual(obs["max"], 20.3)
        self.assertAlmostEqual(obs["avg"], (10.5 + 20.3 + 15.0) / 3)

    def test_summary_counters(self):
        m = Metrics()
        m.inc("a", 10)
        m.inc("b", 20)
        summary = m.summary()
        self.assertEqual(summary["counters"]["a"], 10)
        self.assertEqual(summary["counters"]["b"], 20)

    def test_summary_no_observations(self):
        m = Metrics()
        m.inc("x")
        summary = m.summary()
        self.assertNotIn("observations", summary)

    def test_reset_clears_all(self):
        m = Metrics()
        m.inc("count", 5)
        m.observe("lat", 10.0)
        m.reset()
        self.assertEqual(m.get("count"), 0)
        self.assertEqual(m.summary(), {"counters": {}})


class TestJSONFormatter(unittest.TestCase):
    def _record(self, data=None):
        record = logging.LogRecord("recallhook.cache", logging.WARNING, "", 0, "cache_miss", (), None)
        record.component = "cache"
        record.data = data
        return record

    def test_single_line_json(self):
        line = JSONFormatter().format(self._record({"query_len": 12}))
        self.assertNotIn("\n", line)
        entry = json.loads(line)
        self.assertEqual(entry["level"], "warning")
        self.assertEqual(entry["component"], "cache")
        self.assertEqual(entry["event"], "cache_miss")
        self.assertEqual(entry["data"], {"query_len": 12})

    def test_no_data_key_when_empty(self):
        entry = json.loads(JSONFormatter().format(self._record()))
        self.assertNotIn("data", entry)


class TestRollingWindow(unittest.TestCase):
    def test_window_bounds_series(self):
        m = Metrics(window=3)
        for v in range(10):
            m.observe("rank_ms", float(v))
        self.assertEqual(m.values("rank_ms"), [7.0, 8.0, 9.0])

    def test_values_missing(self):
        self.assertEqual(Metrics().values("nothing"), [])

    def test_summary_percentiles(self):
        m = Metrics()
        for v in range(1, 101):
            m.observe("lat", float(v))
        obs = m.summary()["observations"]["lat"]
        self.assertEqual(obs["p50"], 51.0)
        self.assertEqual(obs["p95"], 96.0)


class TestPercentile(unittest.TestCase):
    def test_empty(self):
        self.assertEqual(percentile([], 0.5), 0.0)

    def test_upper_clamped(self):
        self.assertEqual(percentile([1.0, 2.0], 1.0), 2.0)

    def test_single(self):
        self.assertEqual(percentile([4.0], 0.99), 4.0)


class TestTimed(unittest.TestCase):
    def test_timed_records_metric(self):
        m = Metrics()
        # Replace global metrics temporarily
        import observability
        original = observability.metrics
        observability.metrics = m
        try:
            with timed("test_op"):
                pass  # instant
            summary = m.summary()
            self.assertIn("test_op_ms", summary.get("observations", {}))
            self.assertEqual(summary["observations"]["test_op_ms"]["count"], 1)
        finally:
            observability.metrics = original

    def test_timed_with_logger(self):
        log = get_logger("test")
        with timed("fast_op", logger=log):
            pass  # trivial


if __name__ == "__main__":
    unittest.main()
