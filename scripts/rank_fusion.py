#!/usr/bin/env python3
"""recallhook rank fusion -- Reciprocal Rank Fusion over four signals.

Signals: vector similarity, BM25 keyword score, path-date recency and
entity overlap. Their raw scores live on incompatible scales (cosine,
unbounded BM25, ordinal dates), so fusion only uses each signal's rank:

    RRF(doc) = sum_s( weight_s / (k + rank_s(doc)) )

A document absent from a signal gets rank N + 1, where N is the number
of distinct documents in the fusion call.
"""

from __future__ import annotations

import os
import sys
from datetime import datetime, timezone

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
from _rank_constants import (
    _PATH_DATE_RE,
    DEFAULT_RRF_K,
    DEFAULT_RRF_WEIGHTS,
    IDENTITY_PREFIX_CHARS,
)
from observability import get_logger, metrics

__all__ = [
    "doc_key",
    "parse_path_date",
    "fuse_results",
    "apply_temporal_window",
    "squash_score",
    "boost_with_keywords",
    "rescale_fused_scores",
]

_log = get_logger("rank_fusion")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Identity and dates
# ---------------------------------------------------------------------------

def doc_key(doc: dict) -> str:
    """Deduplication key: the path, or the first 100 characters of text."""
    path = doc.get("path")
    if path:
        return path
    return (doc.get("text") or "")[:IDENTITY_PREFIX_CHARS]


def parse_path_date(path: str | None) -> datetime | None:
    """First valid YYYY-MM-DD in ``path`` as midnight UTC, else None."""
    if not path:
        return None
    for m in _PATH_DATE_RE.finditer(path):
        try:
            return datetime(int(m.group(1)), int(m.group(2)), int(m.group(3)), tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


# ---------------------------------------------------------------------------
# Rank maps
# ---------------------------------------------------------------------------

def _positional_ranks(results: list[dict]) -> dict[str, int]:
    """1-based position of each key's first appearance in a pre-sorted list."""
    ranks: dict[str, int] = {}
    for pos, doc in enumerate(results, start=1):
        ranks.setdefault(doc_key(doc), pos)
    return ranks


def _recency_ranks(docs: list[dict]) -> dict[str, int]:
    """Newest path date gets rank 1; undated documents sort as the epoch.

    Empty when no document carries a date, so every document falls back
    to the shared sentinel rank.
    """
    dated = [(doc_key(d), parse_path_date(d.get("path"))) for d in docs]
    if all(when is None for _, when in dated):
        return {}
    ordered = sorted(dated, key=lambda item: item[1] or _EPOCH, reverse=True)
    return {key: pos for pos, (key, _) in enumerate(ordered, start=1)}


def _entity_ranks(docs: list[dict], entities: list[str] | None) -> dict[str, int]:
    """More case-insensitive entity mentions rank higher.

    Empty when there are no entities or no document mentions any of them.
    """
    if not entities:
        return {}
    lowered = [e.lower() for e in entities]
    counted = []
    for d in docs:
        text = (d.get("text") or "").lower()
        counted.append((doc_key(d), sum(1 for e in lowered if e in text)))
    if not any(count for _, count in counted):
        return {}
    counted.sort(key=lambda item: item[1], reverse=True)
    return {key: pos for pos, (key, _) in enumerate(counted, start=1)}


# ---------------------------------------------------------------------------
# Fusion
# ---------------------------------------------------------------------------

def fuse_results(
    vector_results: list[dict] | None = None,
    bm25_results: list[dict] | None = None,
    weights: dict[str, float] | None = None,
    k: int = DEFAULT_RRF_K,
    max_results: int = 5,
    temporal_filter=None,
    entities: list[str] | None = None,
) -> list[dict]:
    """Fuse vector and keyword rankings with weighted RRF.

    Args:
        vector_results: Vector hits, pre-sorted by similarity descending.
        bm25_results: Keyword hits, pre-sorted by BM25 score descending.
        weights: Per-signal weights (vector, bm25, recency, entity).
            Missing signals weigh 0. Defaults to 0.4/0.3/0.2/0.1.
        k: RRF smoothing constant.
        max_results: Number of fused results to return.
        temporal_filter: Optional TemporalWindow applied after ranking.
        entities: Extracted query entities for the entity-overlap signal.

    Returns:
        Copies of the first-seen chunk per identity key, with ``score`` set
        to the fused score and ``_rrf_details`` holding the four ranks.
    """
    vector_results = vector_results or []
    bm25_results = bm25_results or []
    weights = DEFAULT_RRF_WEIGHTS if weights is None else weights

    docs: dict[str, dict] = {}
    for doc in (*vector_results, *bm25_results):
        docs.setdefault(doc_key(doc), doc)
    if not docs:
        return []

    all_docs = list(docs.values())
    vector_ranks = _positional_ranks(vector_results)
    bm25_ranks = _positional_ranks(bm25_results)
    recency_ranks = _recency_ranks(all_docs)
    entity_ranks = _entity_ranks(all_docs, entities)

    sentinel = len(docs) + 1
    w_vector = weights.get("vector", 0.0)
    w_bm25 = weights.get("bm25", 0.0)
    w_recency = weights.get("recency", 0.0)
    w_entity = weights.get("entity", 0.0)

    fused = []
    for key, doc in docs.items():
        details = {
            "vector_rank": vector_ranks.get(key, sentinel),
            "bm25_rank": bm25_ranks.get(key, sentinel),
            "recency_rank": recency_ranks.get(key, sentinel),
            "entity_rank": entity_ranks.get(key, sentinel),
        }
        score = (
            w_vector / (k + details["vector_rank"])
            + w_bm25 / (k + details["bm25_rank"])
            + w_recency / (k + details["recency_rank"])
            + w_entity / (k + details["entity_rank"])
        )
        item = dict(doc)
        item["score"] = score
        item["_rrf_details"] = details
        fused.append(item)

    fused.sort(key=lambda item: item["score"], reverse=True)
    fused = apply_temporal_window(fused, temporal_filter)

    metrics.inc("rrf_fusions")
    _log.debug("rrf_fused", vector=len(vector_results), bm25=len(bm25_results),
               unique=len(docs), kept=min(len(fused), max_results))
    return fused[:max_results]


def apply_temporal_window(results: list[dict], window) -> list[dict]:
    """Drop dated chunks outside ``window``; undated chunks always pass."""
    if window is None or not window.is_bounded:
        return results
    kept = []
    for doc in results:
        when = parse_path_date(doc.get("path"))
        if when is None or window.contains(when):
            kept.append(doc)
    return kept


# ---------------------------------------------------------------------------
# Score-scale helpers used by the orchestrator
# ---------------------------------------------------------------------------

def squash_score(raw: float, half_point: float = 2.0) -> float:
    """Map an unbounded positive keyword score into [0, 1): s / (s + c)."""
    if raw <= 0:
        return 0.0
    return raw / (raw + half_point)


def boost_with_keywords(
    vector_results: list[dict],
    keyword_results: list[dict],
    weight: float,
) -> list[dict]:
    """Add keyword evidence onto vector scores without rank fusion.

    Keyword scores must already be in [0, 1]. A chunk seen by both signals
    gets ``min(1, vector + weight * keyword)``; keyword-only chunks enter
    with ``weight * keyword``. The merged list is re-sorted by score.
    """
    if not keyword_results or weight <= 0:
        return list(vector_results)
    kw_scores: dict[str, float] = {}
    kw_docs: dict[str, dict] = {}
    for doc in keyword_results:
        key = doc_key(doc)
        if key not in kw_scores:
            kw_scores[key] = float(doc.get("score") or 0.0)
            kw_docs[key] = doc

    merged = []
    seen = set()
    for doc in vector_results:
        key = doc_key(doc)
        if key in seen:
            continue
        seen.add(key)
        item = dict(doc)
        if key in kw_scores:
            item["score"] = min(1.0, float(doc.get("score") or 0.0) + weight * kw_scores[key])
            item["keyword_boosted"] = True
        merged.append(item)
    for key, doc in kw_docs.items():
        if key in seen:
            continue
        item = dict(doc)
        item["score"] = weight * kw_scores[key]
        merged.append(item)

    merged.sort(key=lambda item: item["score"], reverse=True)
    return merged


def rescale_fused_scores(fused: list[dict], vector_results: list[dict]) -> list[dict]:
    """Put fused results back on a 0..1 scale for the downstream filters.

    ``rrf_score`` keeps the raw fused value, ``score`` becomes the fused
    value relative to the best one (top = 1.0) and ``relevance`` carries
    an absolute quality estimate: the vector similarity when the vector
    signal saw the chunk, otherwise the squashed keyword score.
    """
    if not fused:
        return []
    top = fused[0]["score"] or 1.0
    vector_scores = {}
    for doc in vector_results:
        vector_scores.setdefault(doc_key(doc), float(doc.get("score") or 0.0))

    rescaled = []
    for doc in fused:
        item = dict(doc)
        key = doc_key(doc)
        item["rrf_score"] = doc["score"]
        item["score"] = doc["score"] / top
        if key in vector_scores:
            item["relevance"] = vector_scores[key]
        else:
            item["relevance"] = float(doc.get("keyword_score") or 0.0)
        rescaled.append(item)
    return rescaled
