#!/usr/bin/env python3
"""recallhook orchestrator -- ranks memories for a prompt and renders the injection.

Per prompt:

    gate (length, skip patterns) -> cache -> enrich
      -> [vector search on the pool | BM25 / FTS on this thread]
      -> fuse (RRF) or keyword-boost -> temporal window -> decay
      -> utility feedback -> adaptive count -> MMR -> cache -> format

Every optional signal degrades to "contributes nothing". handle_prompt,
handle_response and rank never raise: failures are logged, counted as
an ``error`` outcome and look like "no relevant memories" to the caller.
"""

from __future__ import annotations

import os
import sys
import time
from datetime import datetime
from typing import Any, Callable

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
from bm25_index import Bm25Index
from config import default_utility_path, resolve_config
from context_formatter import format_context
from fts_search import search_fts
from hook_metrics import HookMetrics
from memory_client import VectorSearchClient
from memory_files import load_memory_chunks
from observability import get_logger, metrics, timed
from query_cache import QueryCache
from query_enricher import enrich_query, extract_entities
from rank_fusion import (
    apply_temporal_window,
    boost_with_keywords,
    doc_key,
    fuse_results,
    rescale_fused_scores,
    squash_score,
)
from result_filters import adaptive_filter, apply_temporal_decay, mmr_filter
from skip_patterns import compile_skip_patterns, match_skip_pattern
from utility_tracker import UtilityTracker
from vector_provider import make_manager_factory

__all__ = ["RecallHook"]

_log = get_logger("hook_handler")

_DEFAULT_SESSION = "default"


class RecallHook:
    """Owns the index, cache, tracker and vector client for one workspace.

    Args:
        config: User configuration, merged over the defaults.
        workspace: Workspace root; memory files and state live under it.
        manager_factory: Vector provider factory. Defaults to the local
            sentence-transformers provider over the memory files; pass
            None explicitly with ``enable_vector`` off to run keyword-only.
        tracker: Pre-built UtilityTracker. Ignored unless the feedback loop
            is enabled; when enabled and omitted, one is created at
            ``utility_path`` (default ``.recallhook/utility-scores.json``).
        cache_clock: Monotonic clock for the query cache.
    """

    def __init__(
        self,
        config: dict | None = None,
        workspace: str | None = None,
        manager_factory: Callable[[], Any] | None = None,
        tracker: UtilityTracker | None = None,
        cache_clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = resolve_config(config)
        self.workspace = os.path.abspath(workspace or ".")
        cfg = self.config

        self.index = Bm25Index()
        self.cache = QueryCache(
            max_size=cfg["cache_size"],
            ttl_ms=cfg["cache_ttl_ms"],
            fuzzy_threshold=cfg["fuzzy_cache_threshold"],
            clock=cache_clock,
        )
        self.metrics = HookMetrics()
        self.skip_patterns = (
            compile_skip_patterns(cfg["skip_patterns"]) if cfg["enable_skip_patterns"] else {}
        )

        if not cfg["enable_vector"]:
            manager_factory = None
        elif manager_factory is None:
            manager_factory = make_manager_factory(self._load_chunks, cfg["vector_model"])
        self.vector = VectorSearchClient(manager_factory)

        self.tracker = tracker if cfg["enable_feedback_loop"] else None
        if self.tracker is None and cfg["enable_feedback_loop"]:
            path = cfg["utility_path"] or default_utility_path(self.workspace)
            self.tracker = UtilityTracker(path)
        if self.tracker is not None and not self.tracker.loaded:
            self.tracker.load()

        self._call_count = 0
        if cfg["enable_bm25"]:
            self.reindex()

        _log.info(
            "recall_hook_init",
            workspace=self.workspace,
            max_results=cfg["max_results"],
            min_score=cfg["min_score"],
            timeout_ms=cfg["timeout_ms"],
            bm25=cfg["enable_bm25"],
            rrf=cfg["enable_rrf"],
            mmr=cfg["enable_mmr"],
            fts=cfg["enable_fts"],
            feedback=self.tracker is not None,
        )

    # -- corpus -------------------------------------------------------------

    def _load_chunks(self) -> list[dict]:
        memory_dir = os.path.join(self.workspace, self.config["memory_dir"])
        return load_memory_chunks(memory_dir, self.workspace)

    def reindex(self) -> dict:
        """Rebuild the BM25 index from the memory files and drop cached rankings."""
        chunks = self._load_chunks()
        self.index.clear()
        for chunk in chunks:
            self.index.add_chunk(chunk)
        self.index.build()
        self.cache.clear()
        self.vector.reset()
        _log.info("reindexed", chunks=len(chunks))
        return {"chunks": len(chunks), "indexed": self.index.size}

    @property
    def call_count(self) -> int:
        return self._call_count

    # -- ranking ------------------------------------------------------------

    def _keyword_results(self, prompt: str, entities: list[str], pool: int) -> list[dict]:
        """BM25 and FTS hits with ``score`` and ``keyword_score`` on a 0..1 scale, best first.

        The unbounded BM25 value is kept as ``bm25_score``.
        """
        cfg = self.config
        hits = []
        if cfg["enable_bm25"] and self.index.size:
            for hit in self.index.search(prompt, max_results=pool, boost_terms=entities):
                hit["bm25_score"] = hit["score"]
                hit["score"] = hit["keyword_score"] = squash_score(hit["bm25_score"])
                hits.append(hit)
        if cfg["enable_fts"]:
            for hit in search_fts(prompt, max_results=pool, db_path=cfg["fts_db_path"],
                                  agent_id=cfg["agent_id"]):
                hit["keyword_score"] = hit["score"]
                hits.append(hit)
        hits.sort(key=lambda h: h["keyword_score"], reverse=True)
        return hits

    def _apply_feedback(self, results: list[dict]) -> list[dict]:
        scores = self.tracker.get_utility_scores(results)
        weighted = []
        for doc in results:
            item = dict(doc)
            item["score"] = item["score"] * (0.5 + scores.get(doc_key(doc), 0.5))
            weighted.append(item)
        weighted.sort(key=lambda item: item["score"], reverse=True)
        return weighted

    def _rank(self, prompt: str, session_key: str | None, now: datetime | None) -> tuple[list[dict], bool]:
        cfg = self.config
        max_results = cfg["max_results"]
        pool = max(max_results * 2, 10)

        enriched = enrich_query(prompt, now=now) if cfg["enable_temporal_parsing"] else None
        entities = enriched.entities if enriched else extract_entities(prompt)
        window = enriched.temporal_filter if enriched else None

        future = self.vector.submit(prompt, max_results=pool, min_score=cfg["min_score"],
                                    session_key=session_key)
        keyword = self._keyword_results(prompt, entities, pool)
        vector = self.vector.collect(future, timeout_ms=cfg["timeout_ms"], min_score=cfg["min_score"])

        if cfg["enable_rrf"]:
            fused = fuse_results(vector, keyword, weights=cfg["rrf_weights"], k=cfg["rrf_k"],
                                 max_results=pool, temporal_filter=window, entities=entities)
            results = rescale_fused_scores(fused, vector)
            score_key = "relevance"
        else:
            boost = cfg["fts_boost_weight"] if keyword else 0.0
            results = boost_with_keywords(vector, keyword, boost)
            results = apply_temporal_window(results, window)
            score_key = "score"

        if cfg["half_life_hours"] > 0:
            results = apply_temporal_decay(results, cfg["half_life_hours"], now=now)
        if self.tracker is not None:
            results = self._apply_feedback(results)

        if cfg["adaptive_results"]:
            results = adaptive_filter(results, max_results, score_key=score_key)
        else:
            results = results[:max_results]
        if cfg["enable_mmr"]:
            results = mmr_filter(results, cfg["mmr_lambda"], max_results)

        _log.debug("ranked", vector=len(vector), keyword=len(keyword), entities=len(entities),
                   temporal=window is not None, results=len(results))
        return results, bool(keyword)

    def rank(self, prompt: str, session_key: str | None = None, now: datetime | None = None) -> list[dict]:
        """Ranked chunks for ``prompt`` (no gating, no cache). Empty on any failure."""
        if not isinstance(prompt, str) or not prompt.strip():
            return []
        try:
            with timed("rank"):
                results, _ = self._rank(prompt.strip(), session_key, now)
            return results
        except Exception as exc:
            metrics.inc("rank_errors")
            _log.error("rank_failed", error=str(exc))
            return []

    # -- hook entry points --------------------------------------------------

    def handle_prompt(self, prompt: str, session_key: str | None = None,
                      now: datetime | None = None) -> str | None:
        """Context block to prepend to ``prompt``, or None for no injection."""
        self._call_count += 1
        call = self._call_count
        start = time.monotonic()
        try:
            return self._handle_prompt(call, start, prompt, session_key, now)
        except Exception as exc:
            elapsed = (time.monotonic() - start) * 1000
            self.metrics.record("error", latency_ms=elapsed)
            _log.error("hook_failed", call=call, error=str(exc))
            return None

    def _handle_prompt(self, call: int, start: float, prompt, session_key, now) -> str | None:
        cfg = self.config
        log = cfg["log_injections"]
        session = session_key or _DEFAULT_SESSION

        if not isinstance(prompt, str):
            self.metrics.record("short_prompt")
            return None
        trimmed = prompt.strip()
        if len(trimmed) < cfg["skip_short_prompts"]:
            self.metrics.record("short_prompt")
            if log:
                _log.info("skip_short_prompt", call=call, chars=len(trimmed))
            return None

        pattern = match_skip_pattern(trimmed, self.skip_patterns)
        if pattern:
            self.metrics.record("skip_pattern")
            if log:
                _log.info("skip_pattern", call=call, pattern=pattern)
            return None

        cached = self.cache.get(trimmed)
        if cached is not None:
            elapsed = (time.monotonic() - start) * 1000
            context = self._render(cached)
            if context and self.tracker is not None:
                self.tracker.record_injection(session, cached)
            self.metrics.record("cache_hit", latency_ms=elapsed,
                                top_score=cached[0]["score"] if cached else None)
            if log:
                _log.info("cache_hit", call=call, count=len(cached), injected=bool(context))
            return context or None

        with timed("rank"):
            results, keyword_used = self._rank(trimmed, session_key, now)
        self.cache.set(trimmed, results)
        elapsed = (time.monotonic() - start) * 1000

        if not results:
            self.metrics.record("no_results", latency_ms=elapsed, keyword_used=keyword_used)
            if log:
                _log.info("no_relevant_memories", call=call, elapsed_ms=round(elapsed, 1))
            return None

        context = self._render(results)
        if not context:
            self.metrics.record("no_results", latency_ms=elapsed, keyword_used=keyword_used)
            if log:
                _log.info("empty_context", call=call, count=len(results))
            return None

        if self.tracker is not None:
            self.tracker.record_injection(session, results)
        top = results[0]["score"]
        self.metrics.record("injection", latency_ms=elapsed, top_score=top, keyword_used=keyword_used)
        if log:
            _log.info("injecting", call=call, count=len(results),
                      elapsed_ms=round(elapsed, 1), top_score=round(top, 3))
        return context

    def _render(self, results: list[dict]) -> str:
        if not results:
            return ""
        return format_context(results, self.config["format_template"], self.config["max_context_chars"])

    def handle_response(self, response_text: str, session_key: str | None = None) -> int:
        """Feed the agent's response to the utility tracker. Returns citations credited.

        An empty response still consumes the session's pending injection.
        """
        if self.tracker is None:
            return 0
        try:
            return self.tracker.record_response(session_key or _DEFAULT_SESSION, response_text)
        except Exception as exc:
            metrics.inc("feedback_errors")
            _log.error("record_response_failed", error=str(exc))
            return 0

    def close(self) -> None:
        """Flush utility state and stop the vector worker pool."""
        if self.tracker is not None:
            self.tracker.destroy()
        self.vector.close()
