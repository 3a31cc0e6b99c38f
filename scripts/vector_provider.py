#!/usr/bin/env python3
"""recallhook local vector provider -- sentence-transformers over memory chunks.

Embeds the loaded memory chunks once with a local model and answers
``search()`` by cosine similarity. It satisfies the same contract as any
external provider handed to VectorSearchClient, so it is only a default.

Install the model dependency with: pip install 'recallhook[embeddings]'
"""

from __future__ import annotations

import importlib.util
import math
import os
import sys
import threading
from typing import Any

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
from observability import get_logger, metrics, timed

__all__ = [
    "DEFAULT_MODEL",
    "EmbeddingSearchManager",
    "cosine_similarity",
    "is_available",
    "make_manager_factory",
]

_log = get_logger("vector_provider")

DEFAULT_MODEL = "all-MiniLM-L6-v2"


def is_available() -> bool:
    """True when sentence-transformers can be imported."""
    return importlib.util.find_spec("sentence_transformers") is not None


def cosine_similarity(vec1, vec2) -> float:
    """Cosine similarity; 0.0 for empty, mismatched or zero-norm vectors."""
    if not vec1 or not vec2 or len(vec1) != len(vec2):
        return 0.0
    dot = sum(a * b for a, b in zip(vec1, vec2))
    norm1 = math.sqrt(sum(a * a for a in vec1))
    norm2 = math.sqrt(sum(b * b for b in vec2))
    if norm1 == 0 or norm2 == 0:
        return 0.0
    return dot / (norm1 * norm2)


def _as_list(vec) -> list[float]:
    return vec.tolist() if hasattr(vec, "tolist") else list(vec)


class EmbeddingSearchManager:
    """In-memory semantic search over a fixed chunk list.

    Args:
        chunks: Chunk dicts with text/source/path/lines.
        model_name: sentence-transformers model to load on first search.
        model: Pre-built encoder exposing ``encode(list[str])``; skips loading.
    """

    def __init__(self, chunks: list[dict], model_name: str = DEFAULT_MODEL, model: Any = None) -> None:
        self.chunks = list(chunks)
        self.model_name = model_name
        self._model = model
        self._embeddings: list[list[float]] | None = None
        self._lock = threading.Lock()

    @property
    def model(self):
        """Lazy-load the embedding model on first access."""
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            cache_dir = os.environ.get("SENTENCE_TRANSFORMERS_HOME")
            self._model = SentenceTransformer(self.model_name, cache_folder=cache_dir)
            _log.info("embedding_model_loaded", model=self.model_name)
        return self._model

    def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        with timed("embed_batch"):
            vectors = self.model.encode(texts, show_progress_bar=False)
        metrics.inc("embeddings_generated", len(texts))
        return [_as_list(v) for v in vectors]

    def _ensure_embedded(self) -> list[list[float]]:
        with self._lock:
            if self._embeddings is None:
                self._embeddings = self.embed([c.get("text", "") for c in self.chunks])
                _log.info("corpus_embedded", chunks=len(self._embeddings), model=self.model_name)
            return self._embeddings

    def search(self, query: str, max_results: int = 5, min_score: float = 0.0,
               session_key: str | None = None) -> list[dict]:
        """Top chunks by cosine similarity, filtered to ``score >= min_score``."""
        if not query or not self.chunks:
            return []
        corpus = self._ensure_embedded()
        query_vecs = self.embed([query])
        if not query_vecs:
            return []
        qvec = query_vecs[0]

        scored = []
        for chunk, vec in zip(self.chunks, corpus):
            score = cosine_similarity(qvec, vec)
            if score >= min_score:
                scored.append((score, chunk))
        scored.sort(key=lambda item: item[0], reverse=True)

        return [
            {
                "snippet": chunk.get("text", ""),
                "source": chunk.get("source") or "memory",
                "path": chunk.get("path", ""),
                "lines": chunk.get("lines", ""),
                "score": score,
            }
            for score, chunk in scored[:max_results]
        ]


def make_manager_factory(chunks_loader, model_name: str = DEFAULT_MODEL):
    """Factory for VectorSearchClient, or None when embeddings are not installed.

    ``chunks_loader`` is called at first use so the corpus reflects the
    memory files at that time.
    """
    if not is_available():
        _log.info("vector_provider_unavailable", reason="sentence_transformers not installed")
        return None

    def factory():
        return EmbeddingSearchManager(chunks_loader(), model_name=model_name)

    return factory
