#!/usr/bin/env python3
"""recallhook intent gating -- prompts that never need memory recall.

Named regex table, matched against the stripped prompt. A match skips
the whole pipeline (no search, no cache write, no injection).
Deterministic, regex-based, no model required.
"""

from __future__ import annotations

import os
import re
import sys

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
from observability import get_logger

__all__ = ["DEFAULT_SKIP_PATTERNS", "compile_skip_patterns", "match_skip_pattern"]

_log = get_logger("skip_patterns")

DEFAULT_SKIP_PATTERNS = {
    "greeting": r"^(hi|hello|hey|yo|howdy|good\s+(morning|afternoon|evening))\b[\s!.,]*(there|all|everyone)?[\s!.]*$",
    "acknowledgement": r"^(thanks|thank\s+you|thx|ty|cheers|great|nice|cool|awesome|perfect|got\s+it)\b[\s!.,]*(a\s+lot|so\s+much)?[\s!.]*$",
    "confirmation": r"^(ok(ay)?|yes|yep|yeah|sure|no|nope|do\s+it|go\s+ahead|sounds\s+good|lgtm)[\s!.]*$",
    "slash_command": r"^/[\w-]+",
    "heartbeat": r"^\s*(heartbeat|ping|health\s*check|keep\s*alive)\b",
}


def compile_skip_patterns(overrides=None) -> dict[str, re.Pattern]:
    """Compile the gating table, case-insensitive.

    ``overrides`` replaces the defaults: a dict of name -> pattern, or a
    list of patterns (named ``custom_<i>``). Each pattern is compiled on
    its own; an invalid one is logged and skipped without affecting the
    rest.
    """
    if overrides is None:
        table = dict(DEFAULT_SKIP_PATTERNS)
    elif isinstance(overrides, dict):
        table = dict(overrides)
    elif isinstance(overrides, (list, tuple)):
        table = {f"custom_{i}": p for i, p in enumerate(overrides)}
    else:
        _log.warning("skip_patterns_invalid_type", type=type(overrides).__name__)
        table = dict(DEFAULT_SKIP_PATTERNS)

    compiled = {}
    for name, pattern in table.items():
        if not isinstance(pattern, str) or not pattern:
            _log.warning("skip_pattern_invalid", name=name, error="pattern must be a non-empty string")
            continue
        try:
            compiled[name] = re.compile(pattern, re.IGNORECASE)
        except re.error as exc:
            _log.warning("skip_pattern_invalid", name=name, pattern=pattern, error=str(exc))
    return compiled


def match_skip_pattern(prompt: str, compiled: dict[str, re.Pattern]) -> str | None:
    """Name of the first pattern matching ``prompt``, else None."""
    text = (prompt or "").strip()
    for name, pattern in compiled.items():
        if pattern.search(text):
            return name
    return None
