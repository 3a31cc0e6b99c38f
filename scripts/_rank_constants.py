"""Ranking pipeline constants -- BM25 params, fusion weights, filter thresholds, cache limits."""

from __future__ import annotations

import re

__all__ = [
    "BM25_K1", "BM25_B", "BM25_BOOST_FACTOR",
    "DEFAULT_RRF_K", "DEFAULT_RRF_WEIGHTS", "RRF_SIGNALS",
    "IDENTITY_PREFIX_CHARS", "_PATH_DATE_RE",
    "NOISE_THRESHOLD", "STRONG_THRESHOLD", "STRONG_MAX_RESULTS",
    "DEFAULT_MMR_LAMBDA",
    "DEFAULT_CACHE_SIZE", "DEFAULT_CACHE_TTL_MS", "DEFAULT_FUZZY_THRESHOLD",
    "NEUTRAL_UTILITY", "MIN_RETRIEVALS_FOR_SCORE",
    "BAYESIAN_PRIOR_CITATIONS", "BAYESIAN_PRIOR_RETRIEVALS",
    "CITATION_THRESHOLD", "SAVE_DEBOUNCE_S",
]

# BM25 parameters (Okapi defaults)
BM25_K1 = 1.2   # Term frequency saturation
BM25_B = 0.75   # Document length normalization

# Multiplier for query terms that are also extracted entities
BM25_BOOST_FACTOR = 2.0

# Reciprocal Rank Fusion
DEFAULT_RRF_K = 60
RRF_SIGNALS = ("vector", "bm25", "recency", "entity")
DEFAULT_RRF_WEIGHTS = {
    "vector": 0.4,
    "bm25": 0.3,
    "recency": 0.2,
    "entity": 0.1,
}

# Identity key falls back to this many leading characters of text
IDENTITY_PREFIX_CHARS = 100

# First YYYY-MM-DD anywhere in a chunk path (daily memory files)
_PATH_DATE_RE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")

# Adaptive result count: top score bands
NOISE_THRESHOLD = 0.4    # below: drop everything
STRONG_THRESHOLD = 0.7   # above: keep only the tightest results
STRONG_MAX_RESULTS = 2

DEFAULT_MMR_LAMBDA = 0.7

# Query cache
DEFAULT_CACHE_SIZE = 20
DEFAULT_CACHE_TTL_MS = 5 * 60 * 1000
DEFAULT_FUZZY_THRESHOLD = 0.85

# Utility tracker -- Beta(1,1) prior
NEUTRAL_UTILITY = 0.5
MIN_RETRIEVALS_FOR_SCORE = 3
BAYESIAN_PRIOR_CITATIONS = 1
BAYESIAN_PRIOR_RETRIEVALS = 2
CITATION_THRESHOLD = 0.3
SAVE_DEBOUNCE_S = 5.0
