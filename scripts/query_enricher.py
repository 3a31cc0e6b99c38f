#!/usr/bin/env python3
"""recallhook query enrichment -- entity extraction and relative time windows.

Regex only, deterministic, no NLP model. Entities feed the BM25 boost set
and the entity-overlap fusion signal; the temporal window filters fused
results by the date embedded in each chunk path.

All day boundaries are computed in UTC.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

__all__ = [
    "ENTITY_PATTERNS",
    "TemporalWindow",
    "EnrichedQuery",
    "extract_entities",
    "parse_temporal_expression",
    "enrich_query",
]


# ---------------------------------------------------------------------------
# Entity patterns: name -> (compiled regex, capture group)
# ---------------------------------------------------------------------------

ENTITY_PATTERNS = {
    # src/index.js, ./utils/helper.ts, config.yaml
    "file_path": (re.compile(r"(?:^|[\s(])([./]?[\w\-./]+\.\w{1,6})\b"), 1),
    # NETSDK1005, ERR_MODULE_404, HTTP_500
    "error_code": (re.compile(r"\b([A-Z][A-Z_]*\d+[A-Z0-9]*)\b"), 1),
    # TelegramBotService, QueryCache
    "camel_case": (re.compile(r"\b([A-Z][a-z]+(?:[A-Z][a-z]+)+)\b"), 1),
    # @scope/name
    "scoped_package": (re.compile(r"@[\w\-]+/[\w\-]+"), 0),
    # "like this" or 'like this'
    "quoted": (re.compile(r"[\"']([^\"']{2,50})[\"']"), 1),
}

_MIN_PATH_LEN = 4


def extract_entities(text: str) -> list[str]:
    """Extract structured entities from a prompt.

    Returns a deduplicated list (first-seen order) drawn from every pattern
    in ENTITY_PATTERNS. Path-like matches that start with a digit or are
    shorter than 4 characters are dropped (version numbers, "a.b").
    """
    if not text:
        return []
    found: dict[str, None] = {}
    for name, (pattern, group) in ENTITY_PATTERNS.items():
        for m in pattern.finditer(text):
            value = m.group(group)
            if name == "file_path" and (value[0].isdigit() or len(value) < _MIN_PATH_LEN):
                continue
            found.setdefault(value, None)
    return list(found)


# ---------------------------------------------------------------------------
# Temporal expressions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TemporalWindow:
    """Inclusive UTC date range. Either bound may be open (None)."""
    start_date: datetime | None
    end_date: datetime | None

    def contains(self, moment: datetime) -> bool:
        if self.start_date is not None and moment < self.start_date:
            return False
        if self.end_date is not None and moment > self.end_date:
            return False
        return True

    @property
    def is_bounded(self) -> bool:
        return self.start_date is not None or self.end_date is not None


_YESTERDAY_RE = re.compile(r"\byesterday\b")
_TODAY_RE = re.compile(r"\btoday\b")
_WEEK_RE = re.compile(r"\b(?:last|this|past)\s+week\b")
_LAST_N_DAYS_RE = re.compile(r"\b(?:last|past)\s+(\d+)\s+days?\b")
_LAST_N_HOURS_RE = re.compile(r"\b(?:last|past)\s+(\d+)\s+hours?\b")
_N_DAYS_AGO_RE = re.compile(r"\b(\d+)\s+days?\s+ago\b")

# Lower bound for "last N days/hours" spans older than datetime can represent
_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


def _utc(now: datetime | None) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def _day_start(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def _shift_back(ref: datetime, amount: str, unit: str) -> datetime | None:
    """``ref`` minus ``amount`` ``unit``s, or None when that leaves the datetime range."""
    try:
        return ref - timedelta(**{unit: int(amount)})
    except (OverflowError, ValueError):
        return None


def _full_day(moment: datetime) -> TemporalWindow:
    start = _day_start(moment)
    return TemporalWindow(start, start.replace(hour=23, minute=59, second=59, microsecond=999999))


def parse_temporal_expression(text: str, now: datetime | None = None) -> TemporalWindow | None:
    """Resolve a relative time reference in ``text`` to a UTC window.

    Recognised, first match wins:
        yesterday, today              -> that calendar day
        last/this/past week           -> start of day 7 days ago .. now
        last/past N days              -> start of day N days ago .. now
        last/past N hours             -> now - N hours .. now
        N days ago                    -> that calendar day

    A "last N" span older than datetime can represent opens at
    ``datetime.min``; an unrepresentable "N days ago" matches nothing.

    Returns None when ``text`` is empty or nothing matches.
    """
    if not text:
        return None
    ref = _utc(now)
    lower = text.lower()

    if _YESTERDAY_RE.search(lower):
        return _full_day(ref - timedelta(days=1))

    if _TODAY_RE.search(lower):
        return _full_day(ref)

    if _WEEK_RE.search(lower):
        return TemporalWindow(_day_start(ref - timedelta(days=7)), ref)

    m = _LAST_N_DAYS_RE.search(lower)
    if m:
        start = _shift_back(ref, m.group(1), "days")
        return TemporalWindow(_day_start(start) if start else _EARLIEST, ref)

    m = _LAST_N_HOURS_RE.search(lower)
    if m:
        return TemporalWindow(_shift_back(ref, m.group(1), "hours") or _EARLIEST, ref)

    m = _N_DAYS_AGO_RE.search(lower)
    if m:
        day = _shift_back(ref, m.group(1), "days")
        return _full_day(day) if day else None

    return None


# ---------------------------------------------------------------------------
# Combined enrichment
# ---------------------------------------------------------------------------

@dataclass
class EnrichedQuery:
    original_prompt: str
    entities: list[str] = field(default_factory=list)
    temporal_filter: TemporalWindow | None = None


def enrich_query(text: str, now: datetime | None = None) -> EnrichedQuery:
    """Entities plus temporal window for ``text``; the prompt passes through."""
    return EnrichedQuery(
        original_prompt=text,
        entities=extract_entities(text),
        temporal_filter=parse_temporal_expression(text, now),
    )
