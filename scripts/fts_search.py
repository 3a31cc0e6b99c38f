#!/usr/bin/env python3
"""recallhook FTS5 keyword search -- read-only queries against a host memory index.

Reads the ``chunks_fts`` FTS5 table of an existing memory database. Two
deliberate differences from a naive MATCH:

1. Tokens are OR-joined after stop-word removal, so conversational queries
   ("do you remember when we...") still match.
2. FTS5 bm25() ranks are negative; they are negated and squashed into 0..1
   with r / (r + 2) instead of being clipped.

The database is never written.
"""

from __future__ import annotations

import math
import os
import re
import sqlite3
import sys

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
from observability import get_logger, metrics

__all__ = [
    "STOP_WORDS",
    "tokenize_query",
    "build_fts_query",
    "normalize_rank",
    "resolve_db_path",
    "search_fts",
]

_log = get_logger("fts_search")

STOP_WORDS = frozenset({
    "a", "an", "the", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would", "shall",
    "should", "may", "might", "must", "can", "could",
    "i", "me", "my", "we", "our", "you", "your", "he", "she", "it",
    "they", "them", "their", "its", "this", "that", "these", "those",
    "of", "in", "to", "for", "with", "on", "at", "from", "by", "about",
    "as", "into", "through", "during", "before", "after", "above", "below",
    "and", "but", "or", "nor", "not", "so", "if", "then", "than",
    "when", "where", "how", "what", "which", "who", "whom", "why",
    "all", "each", "every", "both", "few", "more", "most", "other",
    "some", "such", "no", "only", "same", "just", "also", "very",
    "up", "out", "over", "any", "here", "there",
    "remember", "tell", "know", "think", "use", "using", "used",
})

_TOKEN_RE = re.compile(r"[a-z0-9_.\-]+")

# Default index location: ~/.recallhook/index/<agent_id>.sqlite
DEFAULT_INDEX_DIR = os.path.join(os.path.expanduser("~"), ".recallhook", "index")

_QUERY_SQL = (
    "SELECT text, path, source, start_line, end_line, bm25(chunks_fts) AS rank "
    "FROM chunks_fts WHERE chunks_fts MATCH ? ORDER BY rank ASC LIMIT ?"
)


def tokenize_query(query: str) -> list[str]:
    """Lowercased search terms with stop words and 1-char tokens removed."""
    tokens = _TOKEN_RE.findall((query or "").lower())
    return [t for t in tokens if len(t) >= 2 and t not in STOP_WORDS]


def build_fts_query(query: str) -> str | None:
    """OR-joined quoted terms for MATCH, or None when nothing is left."""
    tokens = tokenize_query(query)
    if not tokens:
        return None
    return " OR ".join('"' + t.replace('"', "") + '"' for t in tokens)


def normalize_rank(rank) -> float:
    """Map a negative FTS5 bm25() rank to 0..1."""
    if not isinstance(rank, (int, float)) or not math.isfinite(rank):
        return 0.0
    relevance = -rank
    if relevance <= 0:
        return 0.0
    return relevance / (relevance + 2)


def resolve_db_path(db_path: str | None = None, agent_id: str = "main",
                    index_dir: str | None = None) -> str | None:
    """First existing file of: explicit path, ``<agent_id>.sqlite``, ``main.sqlite``."""
    if db_path and os.path.isfile(db_path):
        return db_path
    base = index_dir or DEFAULT_INDEX_DIR
    candidates = [os.path.join(base, f"{agent_id}.sqlite"), os.path.join(base, "main.sqlite")]
    for candidate in candidates:
        if os.path.isfile(candidate):
            return candidate
    return None


def _lines(start, end) -> str:
    if start and end:
        return f"{start}-{end}"
    return ""


def search_fts(query: str, max_results: int = 5, db_path: str | None = None,
               agent_id: str = "main", index_dir: str | None = None) -> list[dict]:
    """Keyword search over ``chunks_fts``. Returns chunk dicts, best first.

    Any failure (missing database, missing table, FTS5 unavailable) yields
    an empty list and a warning.
    """
    fts_query = build_fts_query(query)
    if not fts_query:
        return []
    path = resolve_db_path(db_path, agent_id, index_dir)
    if not path:
        _log.warning("fts_db_not_found", agent_id=agent_id)
        return []

    conn = None
    try:
        conn = sqlite3.connect(f"file:{path}?mode=ro", uri=True)
        conn.row_factory = sqlite3.Row
        rows = conn.execute(_QUERY_SQL, (fts_query, max_results * 2)).fetchall()
    except sqlite3.Error as exc:
        metrics.inc("fts_errors")
        _log.warning("fts_search_failed", path=path, error=str(exc))
        return []
    finally:
        if conn is not None:
            conn.close()

    results = [
        {
            "text": row["text"] or "",
            "source": row["source"] or "memory",
            "path": row["path"] or "",
            "lines": _lines(row["start_line"], row["end_line"]),
            "score": normalize_rank(row["rank"]),
        }
        for row in rows
    ]
    results.sort(key=lambda r: r["score"], reverse=True)
    metrics.inc("fts_searches")
    return results[:max_results]
