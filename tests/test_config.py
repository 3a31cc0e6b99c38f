#!/usr/bin/env python3
"""Tests for config.py -- defaults, coercion, rrf_weights merging, file loading."""

import json
import os
import shutil
import sys
import tempfile
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "scripts"))
from config import CONFIG_FILE, DEFAULTS, default_utility_path, load_config, resolve_config


class TestResolveConfig(unittest.TestCase):
    def test_defaults(self):
        cfg = resolve_config()
        self.assertEqual(cfg, DEFAULTS)
        self.assertEqual(cfg["max_results"], 3)
        self.assertEqual(cfg["min_score"], 0.5)
        self.assertEqual(cfg["rrf_weights"], {"vector": 0.4, "bm25": 0.3, "recency": 0.2, "entity": 0.1})

    def test_defaults_not_shared(self):
        cfg = resolve_config()
        cfg["rrf_weights"]["vector"] = 9
        self.assertEqual(DEFAULTS["rrf_weights"]["vector"], 0.4)

    def test_override(self):
        cfg = resolve_config({"max_results": 5, "enable_rrf": True})
        self.assertEqual(cfg["max_results"], 5)
        self.assertTrue(cfg["enable_rrf"])
        self.assertEqual(cfg["timeout_ms"], 2000)

    def test_string_coercion(self):
        cfg = resolve_config({"max_results": "4", "min_score": "0.6", "enable_bm25": "yes"})
        self.assertEqual(cfg["max_results"], 4)
        self.assertEqual(cfg["min_score"], 0.6)
        self.assertIs(cfg["enable_bm25"], True)

    def test_int_for_float(self):
        cfg = resolve_config({"half_life_hours": 48})
        self.assertEqual(cfg["half_life_hours"], 48.0)
        self.assertIsInstance(cfg["half_life_hours"], float)

    def test_invalid_values_keep_default(self):
        cfg = resolve_config({"min_score": "high", "max_results": True, "format_template": 5,
                              "enable_mmr": "maybe"})
        self.assertEqual(cfg["min_score"], 0.5)
        self.assertEqual(cfg["max_results"], 3)
        self.assertEqual(cfg["format_template"], "xml")
        self.assertTrue(cfg["enable_mmr"])

    def test_none_keeps_default(self):
        self.assertEqual(resolve_config({"max_results": None})["max_results"], 3)

    def test_unknown_keys_ignored(self):
        cfg = resolve_config({"bogus": 1})
        self.assertNotIn("bogus", cfg)

    def test_not_a_dict(self):
        self.assertEqual(resolve_config(["max_results"]), DEFAULTS)

    def test_rrf_weights_merge(self):
        cfg = resolve_config({"rrf_weights": {"vector": 0.6, "shiny": 1, "entity": "0"}})
        self.assertEqual(cfg["rrf_weights"], {"vector": 0.6, "bm25": 0.3, "recency": 0.2, "entity": 0.0})

    def test_rrf_weights_bad_type(self):
        cfg = resolve_config({"rrf_weights": [0.5]})
        self.assertEqual(cfg["rrf_weights"]["vector"], 0.4)

    def test_nullable_keys_accept_values(self):
        cfg = resolve_config({"skip_patterns": ["^foo"], "utility_path": "/tmp/u.json"})
        self.assertEqual(cfg["skip_patterns"], ["^foo"])
        self.assertEqual(cfg["utility_path"], "/tmp/u.json")


class TestLoadConfig(unittest.TestCase):
    def setUp(self):
        self.td = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.td, ignore_errors=True)

    def test_missing_file(self):
        self.assertEqual(load_config(self.td), DEFAULTS)

    def test_reads_file(self):
        with open(os.path.join(self.td, CONFIG_FILE), "w") as f:
            json.dump({"max_results": 7, "enable_fts": True}, f)
        cfg = load_config(self.td)
        self.assertEqual(cfg["max_results"], 7)
        self.assertTrue(cfg["enable_fts"])

    def test_broken_json(self):
        with open(os.path.join(self.td, CONFIG_FILE), "w") as f:
            f.write("{max_results: 7")
        self.assertEqual(load_config(self.td), DEFAULTS)

    def test_default_utility_path(self):
        self.assertEqual(default_utility_path(self.td),
                         os.path.join(self.td, ".recallhook", "utility-scores.json"))


if __name__ == "__main__":
    unittest.main()
