# recallhook — relevance-ranked memory injection for AI agents
# Package: recallhook (maps to scripts/ via pyproject.toml package-dir)

"""recallhook: multi-signal memory ranking for prompt injection.

Core modules:
    bm25_index        — In-memory Okapi BM25 keyword index
    query_enricher    — Entity extraction + relative time windows
    rank_fusion       — Weighted Reciprocal Rank Fusion (vector/bm25/recency/entity)
    result_filters    — Temporal decay, adaptive result count, MMR diversity
    query_cache       — LRU + TTL query cache with fuzzy matching
    utility_tracker   — Bayesian retrieval/citation feedback, debounced persistence
    hook_handler      — RecallHook orchestrator (gating, search, ranking, formatting)
    memory_client     — Vector search client (lazy init, timeout race)
    vector_provider   — Local sentence-transformers provider
    fts_search        — Read-only SQLite FTS5 keyword search
    context_formatter — XML / Markdown rendering within a character budget
    skip_patterns     — Intent-gating regex table
    memory_files      — Markdown memory files -> chunks
    config            — Defaults + recallhook.json loading
    hook_metrics      — Per-call outcome and latency statistics
    observability     — Structured JSON logging + metrics
"""

__version__ = "2.0.0"
