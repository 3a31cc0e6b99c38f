#!/usr/bin/env python3
"""Tests for vector_provider.py -- cosine scoring with an injected encoder."""

import os
import sys
import unittest
from unittest import mock

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "scripts"))
import vector_provider
from vector_provider import EmbeddingSearchManager, cosine_similarity, make_manager_factory

_VOCAB = ["gateway", "port", "database", "migration", "cache"]


class BagOfWordsEncoder:
    """Deterministic stand-in for a sentence-transformers model."""

    def __init__(self):
        self.batches = []

    def encode(self, texts, show_progress_bar=False):
        self.batches.append(list(texts))
        return [[float(t.lower().count(w)) for w in _VOCAB] for t in texts]


CHUNKS = [
    {"text": "gateway port 8080", "path": "a.md", "lines": "1-1", "source": "memory"},
    {"text": "database migration notes", "path": "b.md", "lines": "1-1", "source": "memory"},
    {"text": "cache warmup", "path": "c.md", "lines": "", "source": "memory"},
]


class TestCosine(unittest.TestCase):
    def test_identical(self):
        self.assertAlmostEqual(cosine_similarity([1, 2], [1, 2]), 1.0)

    def test_orthogonal(self):
        self.assertEqual(cosine_similarity([1, 0], [0, 1]), 0.0)

    def test_degenerate(self):
        self.assertEqual(cosine_similarity([], [1]), 0.0)
        self.assertEqual(cosine_similarity([0, 0], [1, 1]), 0.0)
        self.assertEqual(cosine_similarity([1], [1, 2]), 0.0)


class TestEmbeddingSearchManager(unittest.TestCase):
    def setUp(self):
        self.encoder = BagOfWordsEncoder()
        self.manager = EmbeddingSearchManager(CHUNKS, model=self.encoder)

    def test_best_match_first(self):
        hits = self.manager.search("which port does the gateway use", max_results=2)
        self.assertEqual(hits[0]["path"], "a.md")
        self.assertEqual(hits[0]["snippet"], "gateway port 8080")
        self.assertAlmostEqual(hits[0]["score"], 1.0)

    def test_min_score_filter(self):
        hits = self.manager.search("gateway", min_score=0.5)
        self.assertEqual([h["path"] for h in hits], ["a.md"])

    def test_corpus_embedded_once(self):
        self.manager.search("gateway")
        self.manager.search("cache")
        corpus_batches = [b for b in self.encoder.batches if len(b) == len(CHUNKS)]
        self.assertEqual(len(corpus_batches), 1)

    def test_empty_query(self):
        self.assertEqual(self.manager.search(""), [])

    def test_empty_corpus(self):
        self.assertEqual(EmbeddingSearchManager([], model=self.encoder).search("x"), [])


class TestFactory(unittest.TestCase):
    def test_unavailable_returns_none(self):
        with mock.patch.object(vector_provider, "is_available", return_value=False):
            self.assertIsNone(make_manager_factory(lambda: CHUNKS))

    def test_factory_builds_manager(self):
        with mock.patch.object(vector_provider, "is_available", return_value=True):
            factory = make_manager_factory(lambda: CHUNKS, model_name="tiny-model")
        manager = factory()
        self.assertIsInstance(manager, EmbeddingSearchManager)
        self.assertEqual(manager.model_name, "tiny-model")
        self.assertEqual(len(manager.chunks), 3)


if __name__ == "__main__":
    unittest.main()
