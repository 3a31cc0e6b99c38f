#!/usr/bin/env python3
"""Tests for hook_metrics.py -- outcome counters, latency windows, summaries."""

import os
import sys
import unittest
from unittest import mock

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "scripts"))
from hook_metrics import OUTCOMES, HookMetrics


class TestHookMetrics(unittest.TestCase):
    def setUp(self):
        self.m = HookMetrics(summary_interval=0)

    def test_empty_snapshot(self):
        snap = self.m.snapshot()
        self.assertEqual(snap["total_calls"], 0)
        self.assertEqual(snap["injection_rate"], 0.0)
        self.assertEqual(snap["latency_ms"]["p95"], 0)
        for outcome in OUTCOMES:
            self.assertEqual(snap[outcome], 0)

    def test_counts_and_rates(self):
        self.m.record("injection", latency_ms=10, top_score=0.8, keyword_used=True)
        self.m.record("injection", latency_ms=20, top_score=0.6)
        self.m.record("cache_hit", latency_ms=1)
        self.m.record("short_prompt")
        snap = self.m.snapshot()
        self.assertEqual(snap["total_calls"], 4)
        self.assertEqual(snap["injection"], 2)
        self.assertEqual(snap["injection_rate"], 0.5)
        self.assertEqual(snap["cache_hit_rate"], 0.25)
        self.assertAlmostEqual(snap["top_score_avg"], 0.7)
        self.assertEqual(snap["keyword_used"], 1)
        self.assertEqual(snap["latency_ms"]["min"], 1.0)
        self.assertEqual(snap["latency_ms"]["max"], 20.0)

    def test_window_bounds_latencies(self):
        m = HookMetrics(summary_interval=0, window=2)
        for ms in (100, 1, 2):
            m.record("no_results", latency_ms=ms)
        self.assertEqual(m.snapshot()["latency_ms"]["max"], 2.0)

    def test_unknown_outcome(self):
        with self.assertRaises(ValueError):
            self.m.record("exploded")

    def test_reset(self):
        self.m.record("error")
        self.m.reset()
        self.assertEqual(self.m.snapshot()["total_calls"], 0)

    def test_summary_every_interval(self):
        m = HookMetrics(summary_interval=3)
        with mock.patch.object(m, "log_summary") as log_summary:
            for _ in range(7):
                m.record("skip_pattern")
        self.assertEqual(log_summary.call_count, 2)

    def test_log_summary_runs(self):
        self.m.record("injection", latency_ms=5, top_score=0.9)
        self.m.log_summary()


if __name__ == "__main__":
    unittest.main()
