#!/usr/bin/env python3
"""recallhook utility tracker -- learns which memories actually get used.

Every injection bumps ``retrievals`` for each injected chunk. When the
agent's response arrives, chunks whose significant words show up in it
get a ``citations`` bump. The utility score is the Beta(1,1)-smoothed
citation rate, held at a neutral 0.5 until a chunk has been retrieved
three times.

Storage is a flat JSON object ``{key: {"retrievals": n, "citations": m}}``.
Writes are debounced: mutations set a dirty flag and arm a single timer,
and the timer flushes under a file lock with an atomic replace.
"""

from __future__ import annotations

import json
import os
import re
import sys
import threading

from filelock import FileLock

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
from _rank_constants import (
    BAYESIAN_PRIOR_CITATIONS,
    BAYESIAN_PRIOR_RETRIEVALS,
    CITATION_THRESHOLD,
    MIN_RETRIEVALS_FOR_SCORE,
    NEUTRAL_UTILITY,
    SAVE_DEBOUNCE_S,
)
from observability import get_logger, metrics
from rank_fusion import doc_key

__all__ = ["UtilityTracker", "default_storage_path"]

_log = get_logger("utility_tracker")

_SPLIT_RE = re.compile(r"[\s/\-_.,:;!?()]+")
_MIN_WORD_LEN = 4


def default_storage_path(base_dir: str | None = None) -> str:
    """``<base_dir>/utility-scores.json``, or under ``~/.recallhook`` by default."""
    if base_dir:
        return os.path.join(base_dir, "utility-scores.json")
    return os.path.join(os.path.expanduser("~"), ".recallhook", "utility-scores.json")


def _significant_words(text: str) -> list[str]:
    return [w for w in _SPLIT_RE.split(text.lower()) if len(w) >= _MIN_WORD_LEN]


class UtilityTracker:
    """Retrieval/citation counters per chunk identity key.

    Args:
        storage_path: JSON file holding the counters.
        debounce_s: Delay between the first unsaved mutation and the write.
        citation_threshold: Fraction of a chunk's significant words that must
            appear in a response for the chunk to count as cited.
    """

    def __init__(
        self,
        storage_path: str,
        debounce_s: float = SAVE_DEBOUNCE_S,
        citation_threshold: float = CITATION_THRESHOLD,
    ) -> None:
        self.storage_path = storage_path
        self.debounce_s = debounce_s
        self.citation_threshold = citation_threshold
        self._scores: dict[str, dict[str, int]] = {}
        self._pending: dict[str, list[tuple[str, str]]] = {}
        self._dirty = False
        self._timer: threading.Timer | None = None
        self._loaded = False
        self._lock = threading.Lock()

    # -- persistence --------------------------------------------------------

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def dirty(self) -> bool:
        return self._dirty

    def load(self) -> None:
        """Merge counters from storage. A missing or unreadable file means empty."""
        try:
            with open(self.storage_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            data = {}
        except (OSError, json.JSONDecodeError) as exc:
            _log.warning("utility_load_failed", path=self.storage_path, error=str(exc))
            data = {}

        with self._lock:
            if isinstance(data, dict):
                for key, val in data.items():
                    if isinstance(val, dict) and isinstance(val.get("retrievals"), int):
                        self._scores[key] = {
                            "retrievals": val.get("retrievals") or 0,
                            "citations": int(val.get("citations") or 0),
                        }
            self._loaded = True
        _log.debug("utility_loaded", path=self.storage_path, entries=len(self._scores))

    def save(self) -> bool:
        """Write counters if anything changed. Returns True when a write happened.

        A failed write leaves the tracker dirty so the next flush retries.
        """
        with self._lock:
            if not self._dirty:
                return False
            snapshot = {k: dict(v) for k, v in self._scores.items()}
            self._dirty = False

        tmp_path = self.storage_path + ".tmp"
        try:
            parent = os.path.dirname(os.path.abspath(self.storage_path))
            os.makedirs(parent, exist_ok=True)
            with FileLock(self.storage_path + ".lock", timeout=10):
                with open(tmp_path, "w", encoding="utf-8") as f:
                    json.dump(snapshot, f, indent=2)
                os.replace(tmp_path, self.storage_path)
        except Exception as exc:
            with self._lock:
                self._dirty = True
            metrics.inc("utility_save_failures")
            _log.warning("utility_save_failed", path=self.storage_path, error=str(exc))
            return False

        metrics.inc("utility_saves")
        return True

    def _schedule_save(self) -> None:
        # Caller holds self._lock
        self._dirty = True
        if self._timer is not None:
            return
        timer = threading.Timer(self.debounce_s, self._flush_from_timer)
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _flush_from_timer(self) -> None:
        with self._lock:
            self._timer = None
        self.save()

    def destroy(self) -> None:
        """Cancel the armed timer and flush any unsaved state."""
        with self._lock:
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        self.save()

    # -- recording ----------------------------------------------------------

    def record_injection(self, session_key: str, chunks: list[dict]) -> None:
        """Count a retrieval for every injected chunk and remember them for the session."""
        if not chunks:
            return
        entries = []
        for chunk in chunks:
            if not chunk.get("path") and not chunk.get("text"):
                continue
            entries.append((doc_key(chunk), chunk.get("text") or ""))
        if not entries:
            return

        with self._lock:
            self._pending[session_key] = entries
            for key, _ in entries:
                record = self._scores.setdefault(key, {"retrievals": 0, "citations": 0})
                record["retrievals"] += 1
            self._schedule_save()

    def record_response(self, session_key: str, response_text: str) -> int:
        """Credit citations for the session's pending injection. Returns the count credited."""
        with self._lock:
            pending = self._pending.pop(session_key, None)
            if not pending or not response_text:
                return 0

            lowered = response_text.lower()
            cited = 0
            for key, text in pending:
                words = _significant_words(text or key)
                if not words:
                    continue
                matches = sum(1 for w in words if w in lowered)
                if matches / len(words) >= self.citation_threshold:
                    record = self._scores.get(key)
                    if record is not None:
                        record["citations"] += 1
                        cited += 1
            self._schedule_save()

        if cited:
            metrics.inc("utility_citations", cited)
        return cited

    # -- scores -------------------------------------------------------------

    def get_utility_score(self, key: str) -> float:
        """(citations + 1) / (retrievals + 2), or 0.5 below three retrievals."""
        record = self._scores.get(key)
        if record is None or record["retrievals"] < MIN_RETRIEVALS_FOR_SCORE:
            return NEUTRAL_UTILITY
        return (record["citations"] + BAYESIAN_PRIOR_CITATIONS) / (
            record["retrievals"] + BAYESIAN_PRIOR_RETRIEVALS
        )

    def get_utility_scores(self, chunks: list[dict]) -> dict[str, float]:
        scores = {}
        for chunk in chunks:
            key = doc_key(chunk)
            if key:
                scores[key] = self.get_utility_score(key)
        return scores

    def get_all_entries(self) -> list[dict]:
        with self._lock:
            items = [(k, dict(v)) for k, v in self._scores.items()]
        return [
            {"key": key, **record, "utility_score": self.get_utility_score(key)}
            for key, record in items
        ]

    def get_summary(self) -> dict:
        entries = self.get_all_entries()
        total_retrievals = sum(e["retrievals"] for e in entries)
        total_citations = sum(e["citations"] for e in entries)
        return {
            "tracked_chunks": len(entries),
            "total_retrievals": total_retrievals,
            "total_citations": total_citations,
            "overall_citation_rate": total_citations / total_retrievals if total_retrievals else 0.0,
            "avg_utility_score": (
                sum(e["utility_score"] for e in entries) / len(entries) if entries else NEUTRAL_UTILITY
            ),
        }

    def clear(self) -> None:
        """Forget every counter and pending injection."""
        with self._lock:
            self._scores.clear()
            self._pending.clear()
            self._schedule_save()
