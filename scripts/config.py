#!/usr/bin/env python3
"""recallhook configuration -- defaults, recallhook.json loading, coercion.

Configuration (recallhook.json at the workspace root):
    {
      "max_results": 3,
      "min_score": 0.5,
      "enable_bm25": true,
      "enable_rrf": true,
      "rrf_weights": {"vector": 0.5, "bm25": 0.3},
      "half_life_hours": 48
    }

Unknown keys are warned about and ignored. Values of the wrong type are
coerced where that is unambiguous, otherwise the default is kept.
"""

from __future__ import annotations

import copy
import json
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
from _rank_constants import (
    DEFAULT_CACHE_SIZE,
    DEFAULT_CACHE_TTL_MS,
    DEFAULT_FUZZY_THRESHOLD,
    DEFAULT_MMR_LAMBDA,
    DEFAULT_RRF_K,
    DEFAULT_RRF_WEIGHTS,
    RRF_SIGNALS,
)
from observability import get_logger

__all__ = ["CONFIG_FILE", "DEFAULTS", "resolve_config", "load_config", "default_utility_path"]

_log = get_logger("config")

CONFIG_FILE = "recallhook.json"
STATE_DIR = ".recallhook"

DEFAULTS = {
    "max_results": 3,
    "min_score": 0.5,
    "max_context_chars": 2000,
    "timeout_ms": 2000,
    "log_injections": True,
    "format_template": "xml",
    "skip_short_prompts": 20,
    "half_life_hours": 24.0,
    "skip_patterns": None,
    "enable_skip_patterns": True,
    "enable_bm25": False,
    "enable_rrf": False,
    "rrf_weights": dict(DEFAULT_RRF_WEIGHTS),
    "rrf_k": DEFAULT_RRF_K,
    "enable_temporal_parsing": False,
    "enable_feedback_loop": False,
    "enable_mmr": True,
    "mmr_lambda": DEFAULT_MMR_LAMBDA,
    "fuzzy_cache_threshold": DEFAULT_FUZZY_THRESHOLD,
    "cache_size": DEFAULT_CACHE_SIZE,
    "cache_ttl_ms": DEFAULT_CACHE_TTL_MS,
    "adaptive_results": True,
    "enable_fts": False,
    "fts_boost_weight": 0.3,
    "fts_db_path": None,
    "agent_id": "main",
    "memory_dir": "memory",
    "utility_path": None,
    "enable_vector": True,
    "vector_model": "all-MiniLM-L6-v2",
}

_VALID_KEYS = frozenset(DEFAULTS)

_BOOL_TRUE = {"1", "true", "yes", "on"}
_BOOL_FALSE = {"0", "false", "no", "off"}


def _coerce(value, default):
    """Coerce ``value`` to the type of ``default``. Raises ValueError/TypeError."""
    if default is None:
        return value
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in _BOOL_TRUE | _BOOL_FALSE:
            return value.lower() in _BOOL_TRUE
        if isinstance(value, int):
            return bool(value)
        raise ValueError(f"not a boolean: {value!r}")
    if isinstance(default, int):
        if isinstance(value, bool):
            raise TypeError("boolean where integer expected")
        return int(value)
    if isinstance(default, float):
        if isinstance(value, bool):
            raise TypeError("boolean where number expected")
        return float(value)
    if isinstance(default, str):
        if not isinstance(value, str):
            raise TypeError(f"not a string: {value!r}")
        return value
    return value


def _resolve_weights(user_weights) -> dict[str, float]:
    weights = dict(DEFAULT_RRF_WEIGHTS)
    if not isinstance(user_weights, dict):
        _log.warning("config_invalid_value", key="rrf_weights", error="must be an object")
        return weights
    for signal, value in user_weights.items():
        if signal not in RRF_SIGNALS:
            _log.warning("config_unknown_rrf_signal", signal=signal)
            continue
        try:
            weights[signal] = float(value)
        except (TypeError, ValueError) as exc:
            _log.warning("config_invalid_value", key=f"rrf_weights.{signal}", error=str(exc))
    return weights


def resolve_config(user: dict | None = None) -> dict:
    """Merge ``user`` over DEFAULTS; ``rrf_weights`` merges per signal."""
    config = copy.deepcopy(DEFAULTS)
    if not user:
        return config
    if not isinstance(user, dict):
        _log.warning("config_invalid", reason="config is not an object")
        return config

    unknown = set(user) - _VALID_KEYS
    if unknown:
        _log.warning("config_unknown_keys", keys=sorted(unknown))

    for key, value in user.items():
        if key not in _VALID_KEYS:
            continue
        if key == "rrf_weights":
            config[key] = _resolve_weights(value)
            continue
        if value is None:
            continue
        try:
            config[key] = _coerce(value, DEFAULTS[key])
        except (TypeError, ValueError) as exc:
            _log.warning("config_invalid_value", key=key, error=str(exc))
    return config


def load_config(workspace: str) -> dict:
    """Resolved config from ``<workspace>/recallhook.json``, defaults if absent or broken."""
    config_path = os.path.join(workspace, CONFIG_FILE)
    if not os.path.isfile(config_path):
        return resolve_config()
    try:
        with open(config_path, encoding="utf-8") as f:
            user = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        _log.warning("config_load_failed", path=config_path, error=str(exc))
        return resolve_config()
    return resolve_config(user)


def default_utility_path(workspace: str) -> str:
    return os.path.join(workspace, STATE_DIR, "utility-scores.json")
