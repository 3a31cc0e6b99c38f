#!/usr/bin/env python3
"""recallhook keyword index -- in-memory Okapi BM25 over memory chunks.

Complements vector search: BM25 is good at the exact matches embeddings
tend to blur (error codes, file paths, identifiers, package names).

The index is additive-only. Adding documents invalidates the average
document length until the next build(); search() rebuilds on demand.
"""

from __future__ import annotations

import math
import os
import re
import sys
import threading
import time

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
from _rank_constants import BM25_B, BM25_BOOST_FACTOR, BM25_K1
from observability import get_logger, metrics

__all__ = ["Bm25Index", "tokenize"]

_log = get_logger("bm25_index")

# Word characters plus . @ / - so paths, emails and dotted names stay whole
_TOKEN_RE = re.compile(r"\b[\w.@/\-]+\b")


def tokenize(text: str) -> list[str]:
    """Lowercase and split into index terms."""
    return _TOKEN_RE.findall((text or "").lower())


class _Document:
    __slots__ = ("text", "source", "path", "lines", "term_freqs", "length")

    def __init__(self, text: str, source: str, path: str, lines: str):
        tokens = tokenize(text)
        freqs: dict[str, int] = {}
        for tok in tokens:
            freqs[tok] = freqs.get(tok, 0) + 1
        self.text = text
        self.source = source
        self.path = path
        self.lines = lines
        self.term_freqs = freqs
        self.length = len(tokens)


class Bm25Index:
    """In-memory inverted index scored with Okapi BM25 (k1=1.2, b=0.75)."""

    def __init__(self) -> None:
        self._docs: list[_Document] = []
        self._postings: dict[str, set[int]] = {}
        self._avg_doc_length = 0.0
        self._built = False
        self._last_build_time = 0.0
        self._lock = threading.Lock()

    # -- mutation -----------------------------------------------------------

    def add_document(self, text: str, source: str = "memory", path: str = "", lines: str = "") -> None:
        """Append one document. The index is unbuilt until the next build()."""
        doc = _Document(text or "", source or "memory", path or "", lines or "")
        with self._lock:
            idx = len(self._docs)
            self._docs.append(doc)
            for term in doc.term_freqs:
                self._postings.setdefault(term, set()).add(idx)
            self._built = False

    def add_chunk(self, chunk: dict) -> None:
        """Add a chunk dict with text/source/path/lines keys."""
        self.add_document(
            chunk.get("text", ""),
            chunk.get("source", "memory"),
            chunk.get("path", ""),
            chunk.get("lines", ""),
        )

    def build(self) -> None:
        """Recompute the average document length and mark the index ready."""
        with self._lock:
            self._build_locked()
        _log.debug("bm25_index_built", documents=len(self._docs),
                   avg_doc_length=round(self._avg_doc_length, 2))

    def _build_locked(self) -> None:
        if self._docs:
            self._avg_doc_length = sum(d.length for d in self._docs) / len(self._docs)
        else:
            self._avg_doc_length = 0.0
        self._built = True
        self._last_build_time = time.time()

    def clear(self) -> None:
        """Drop every document and reset to the unbuilt state."""
        with self._lock:
            self._docs = []
            self._postings = {}
            self._avg_doc_length = 0.0
            self._built = False
            self._last_build_time = 0.0

    # -- introspection ------------------------------------------------------

    @property
    def size(self) -> int:
        return len(self._docs)

    def __len__(self) -> int:
        return len(self._docs)

    @property
    def is_built(self) -> bool:
        return self._built

    @property
    def last_build_time(self) -> float:
        """Wall-clock time of the last build, 0.0 if never built."""
        return self._last_build_time

    # -- search -------------------------------------------------------------

    def search(self, query: str, max_results: int = 10, boost_terms=None) -> list[dict]:
        """Rank documents against ``query`` by BM25 score, descending.

        Args:
            query: Free-text query, tokenized like the documents.
            max_results: Maximum number of hits to return.
            boost_terms: Terms whose contribution is doubled (matched
                case-insensitively against query tokens), typically the
                entities extracted from the prompt.

        Returns:
            Chunk dicts (text, source, path, lines, score). Documents that
            share no term with the query are never returned.
        """
        query_tokens = tokenize(query)
        if not query_tokens:
            return []
        boost = {t.lower() for t in (boost_terms or ())}

        with self._lock:
            if not self._built:
                self._build_locked()
            n_docs = len(self._docs)
            if n_docs == 0:
                return []

            candidates: set[int] = set()
            for tok in query_tokens:
                candidates |= self._postings.get(tok, set())
            if not candidates:
                return []

            avg_len = self._avg_doc_length or 1.0
            scored: list[tuple[int, float]] = []
            for idx in sorted(candidates):
                doc = self._docs[idx]
                score = 0.0
                for tok in query_tokens:
                    tf = doc.term_freqs.get(tok, 0)
                    if tf == 0:
                        continue
                    df = len(self._postings[tok])
                    idf = math.log((n_docs - df + 0.5) / (df + 0.5) + 1)
                    tf_norm = (tf * (BM25_K1 + 1)) / (
                        tf + BM25_K1 * (1 - BM25_B + BM25_B * (doc.length / avg_len))
                    )
                    term_score = idf * tf_norm
                    if tok in boost:
                        term_score *= BM25_BOOST_FACTOR
                    score += term_score
                if score > 0:
                    scored.append((idx, score))

            # Stable: equal scores keep insertion order
            scored.sort(key=lambda item: item[1], reverse=True)
            top = scored[:max_results]
            results = [
                {
                    "text": self._docs[idx].text,
                    "source": self._docs[idx].source,
                    "path": self._docs[idx].path,
                    "lines": self._docs[idx].lines,
                    "score": score,
                }
                for idx, score in top
            ]

        metrics.inc("bm25_searches")
        return results
