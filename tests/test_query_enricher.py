#!/usr/bin/env python3
"""Tests for query_enricher.py -- entity patterns and relative time windows."""

import os
import sys
import unittest
from datetime import datetime, timezone

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "scripts"))
from query_enricher import (
    TemporalWindow,
    enrich_query,
    extract_entities,
    parse_temporal_expression,
)

NOW = datetime(2026, 3, 15, 14, 30, tzinfo=timezone.utc)


class TestExtractEntities(unittest.TestCase):
    def test_file_paths(self):
        ents = extract_entities("check src/index.js and ./utils/helper.ts please")
        self.assertIn("src/index.js", ents)
        self.assertIn("./utils/helper.ts", ents)

    def test_version_numbers_are_not_paths(self):
        self.assertNotIn("1.2.3", extract_entities("upgrade to 1.2.3 now"))

    def test_short_paths_dropped(self):
        self.assertNotIn("a.b", extract_entities("value a.b here"))

    def test_error_codes(self):
        ents = extract_entities("Got NETSDK1005 and ERR_MODULE_404 today")
        self.assertIn("NETSDK1005", ents)
        self.assertIn("ERR_MODULE_404", ents)

    def test_camel_case(self):
        self.assertIn("TelegramBotService", extract_entities("the TelegramBotService crashed"))

    def test_single_capitalised_word_is_not_camel_case(self):
        self.assertEqual(extract_entities("Hello there"), [])

    def test_scoped_package(self):
        self.assertIn("@anthropic/sdk", extract_entities("install @anthropic/sdk first"))

    def test_quoted_strings(self):
        ents = extract_entities('search for "rate limit" and \'retry policy\'')
        self.assertIn("rate limit", ents)
        self.assertIn("retry policy", ents)

    def test_deduplicated(self):
        ents = extract_entities("NETSDK1005 again NETSDK1005")
        self.assertEqual(ents.count("NETSDK1005"), 1)

    def test_empty(self):
        self.assertEqual(extract_entities(""), [])


class TestParseTemporal(unittest.TestCase):
    def test_yesterday(self):
        w = parse_temporal_expression("what did we do yesterday", NOW)
        self.assertEqual(w.start_date, datetime(2026, 3, 14, tzinfo=timezone.utc))
        self.assertEqual(w.end_date, datetime(2026, 3, 14, 23, 59, 59, 999999, tzinfo=timezone.utc))

    def test_today(self):
        w = parse_temporal_expression("anything today?", NOW)
        self.assertEqual(w.start_date, datetime(2026, 3, 15, tzinfo=timezone.utc))
        self.assertTrue(w.contains(NOW))

    def test_last_week(self):
        w = parse_temporal_expression("decisions from last week", NOW)
        self.assertEqual(w.start_date, datetime(2026, 3, 8, tzinfo=timezone.utc))
        self.assertEqual(w.end_date, NOW)

    def test_last_n_days(self):
        w = parse_temporal_expression("errors in the past 3 days", NOW)
        self.assertEqual(w.start_date, datetime(2026, 3, 12, tzinfo=timezone.utc))
        self.assertEqual(w.end_date, NOW)

    def test_last_n_hours(self):
        w = parse_temporal_expression("last 2 hours of logs", NOW)
        self.assertEqual(w.start_date, datetime(2026, 3, 15, 12, 30, tzinfo=timezone.utc))

    def test_n_days_ago(self):
        w = parse_temporal_expression("the fix from 3 days ago", NOW)
        self.assertEqual(w.start_date, datetime(2026, 3, 12, tzinfo=timezone.utc))
        self.assertEqual(w.end_date.date(), datetime(2026, 3, 12).date())

    def test_first_rule_wins(self):
        w = parse_temporal_expression("yesterday or last week", NOW)
        self.assertEqual(w.start_date, datetime(2026, 3, 14, tzinfo=timezone.utc))

    def test_case_insensitive(self):
        self.assertIsNotNone(parse_temporal_expression("YESTERDAY", NOW))

    def test_no_match(self):
        self.assertIsNone(parse_temporal_expression("how does the gateway work", NOW))
        self.assertIsNone(parse_temporal_expression("", NOW))

    def test_huge_day_span_opens_at_earliest(self):
        w = parse_temporal_expression("what happened in the last 99999999999 days", NOW)
        self.assertEqual(w.start_date, datetime.min.replace(tzinfo=timezone.utc))
        self.assertEqual(w.end_date, NOW)

    def test_span_just_past_range_opens_at_earliest(self):
        w = parse_temporal_expression("the past 800000 days", NOW)
        self.assertEqual(w.start_date, datetime.min.replace(tzinfo=timezone.utc))

    def test_huge_hour_span_opens_at_earliest(self):
        w = parse_temporal_expression("last 99999999999999 hours", NOW)
        self.assertEqual(w.start_date, datetime.min.replace(tzinfo=timezone.utc))

    def test_huge_days_ago_matches_nothing(self):
        self.assertIsNone(parse_temporal_expression("the fix from 99999999999 days ago", NOW))

    def test_naive_now_treated_as_utc(self):
        w = parse_temporal_expression("today", datetime(2026, 3, 15, 10, 0))
        self.assertEqual(w.start_date.tzinfo, timezone.utc)


class TestTemporalWindow(unittest.TestCase):
    def test_inclusive_bounds(self):
        start = datetime(2026, 1, 1, tzinfo=timezone.utc)
        end = datetime(2026, 1, 2, tzinfo=timezone.utc)
        w = TemporalWindow(start, end)
        self.assertTrue(w.contains(start))
        self.assertTrue(w.contains(end))
        self.assertFalse(w.contains(datetime(2026, 1, 3, tzinfo=timezone.utc)))

    def test_open_bounds(self):
        w = TemporalWindow(None, None)
        self.assertFalse(w.is_bounded)
        self.assertTrue(w.contains(NOW))


class TestEnrichQuery(unittest.TestCase):
    def test_combines_entities_and_window(self):
        e = enrich_query("NETSDK1005 yesterday", NOW)
        self.assertEqual(e.original_prompt, "NETSDK1005 yesterday")
        self.assertEqual(e.entities, ["NETSDK1005"])
        self.assertIsNotNone(e.temporal_filter)

    def test_plain_prompt(self):
        e = enrich_query("how does this work", NOW)
        self.assertEqual(e.entities, [])
        self.assertIsNone(e.temporal_filter)


if __name__ == "__main__":
    unittest.main()
