#!/usr/bin/env python3
"""recallhook result filters -- temporal decay, adaptive count, MMR diversity.

All three operate on chunk dicts that already carry a ``score`` and return
new lists; input dicts are never mutated.
"""

from __future__ import annotations

import math
import os
import re
import sys
from datetime import datetime, timezone

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
from _rank_constants import (
    DEFAULT_MMR_LAMBDA,
    NOISE_THRESHOLD,
    STRONG_MAX_RESULTS,
    STRONG_THRESHOLD,
)
from rank_fusion import parse_path_date

__all__ = [
    "apply_temporal_decay",
    "adaptive_filter",
    "mmr_filter",
    "jaccard_similarity",
    "word_tokens",
]

_WORD_RE = re.compile(r"\w+")


# ---------------------------------------------------------------------------
# Temporal decay
# ---------------------------------------------------------------------------

def apply_temporal_decay(
    results: list[dict],
    half_life_hours: float,
    now: datetime | None = None,
) -> list[dict]:
    """Exponentially decay scores by the age of the date in each path.

    ``score *= exp(-ln2 / half_life * age_hours)``; future dates count as
    age 0. Undated chunks keep their score. The result is re-sorted by the
    decayed score and each item records its pre-decay ``original_score``.
    """
    if half_life_hours <= 0 or not results:
        return results
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    decay_rate = math.log(2) / half_life_hours
    decayed = []
    for doc in results:
        item = dict(doc)
        score = float(doc.get("score") or 0.0)
        item["original_score"] = score
        when = parse_path_date(doc.get("path"))
        if when is not None:
            age_hours = max(0.0, (now - when).total_seconds() / 3600.0)
            item["score"] = score * math.exp(-decay_rate * age_hours)
        decayed.append(item)

    decayed.sort(key=lambda item: item["score"], reverse=True)
    return decayed


# ---------------------------------------------------------------------------
# Adaptive result count
# ---------------------------------------------------------------------------

def adaptive_filter(results: list[dict], max_results: int, score_key: str = "score") -> list[dict]:
    """Choose how many results to keep from the top score.

    top < 0.4   -> nothing (noise)
    top > 0.7   -> at most 2 (a strong match needs little support)
    otherwise   -> at most ``max_results``
    """
    if not results:
        return []
    top = results[0].get(score_key)
    top = float(top) if top is not None else 0.0
    if top < NOISE_THRESHOLD:
        return []
    if top > STRONG_THRESHOLD:
        return results[:min(STRONG_MAX_RESULTS, max_results)]
    return results[:max_results]


# ---------------------------------------------------------------------------
# Maximal Marginal Relevance
# ---------------------------------------------------------------------------

def word_tokens(text: str) -> frozenset[str]:
    """Lowercase word set used for redundancy checks."""
    return frozenset(_WORD_RE.findall((text or "").lower()))


def jaccard_similarity(a, b) -> float:
    """|a & b| / |a | b|; two empty sets are identical, one empty set shares nothing."""
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def mmr_filter(
    results: list[dict],
    mmr_lambda: float = DEFAULT_MMR_LAMBDA,
    max_results: int | None = None,
) -> list[dict]:
    """Greedy MMR re-selection.

    The best result is always first. Each later pick maximises
    ``lambda * score - (1 - lambda) * max_sim``, where ``max_sim`` is the
    highest Jaccard similarity to anything already selected. Ties go to
    the candidate that appeared earlier in the input.
    """
    if len(results) <= 1:
        return list(results)
    limit = len(results) if max_results is None else min(max_results, len(results))
    if limit <= 0:
        return []

    tokens = [word_tokens(doc.get("text", "")) for doc in results]
    selected = [0]
    remaining = list(range(1, len(results)))

    while remaining and len(selected) < limit:
        best_idx = -1
        best_value = -math.inf
        for idx in remaining:
            max_sim = max(jaccard_similarity(tokens[idx], tokens[s]) for s in selected)
            relevance = float(results[idx].get("score") or 0.0)
            value = mmr_lambda * relevance - (1 - mmr_lambda) * max_sim
            if value > best_value:
                best_value = value
                best_idx = idx
        selected.append(best_idx)
        remaining.remove(best_idx)

    return [results[i] for i in selected]
