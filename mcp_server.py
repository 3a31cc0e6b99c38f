#!/usr/bin/env python3
"""recallhook MCP Server — relevance-ranked memory injection for coding agents.

Exposes the recallhook ranking pipeline as a Model Context Protocol server,
so any MCP-compatible client can ask for the memory context to prepend to
a prompt and report the agent's response back for utility feedback.

Tools (7):
    inject_context   — Ranked, formatted memory context for a prompt (or "")
    record_response  — Report the agent response for citation tracking
    search_memory    — Ranked chunks for a query as JSON (no gating, no cache)
    index_stats      — BM25 index size, cache size, vector availability
    reindex          — Rebuild the BM25 index from the memory files
    utility_stats    — Utility tracker summary and per-chunk scores
    hook_metrics     — Outcome counters, latency percentiles, global metrics

Transport:
    stdio (default)
    http  (for remote / multi-client)

Usage:
    # stdio
    python3 mcp_server.py

    # http
    python3 mcp_server.py --transport http --port 8765

    # with custom workspace
    RECALLHOOK_WORKSPACE=/path/to/workspace python3 mcp_server.py

Client config:
    {
      "mcpServers": {
        "recallhook": {
          "command": "recallhook-mcp",
          "env": {"RECALLHOOK_WORKSPACE": "/path/to/workspace"}
        }
      }
    }
"""

from __future__ import annotations

import json
import os
import sys
import threading

# Add scripts/ to path for recallhook imports
SCRIPT_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "scripts")
if not os.path.isdir(SCRIPT_DIR):
    # Installed: the scripts/ modules ship as the recallhook package
    import recallhook
    SCRIPT_DIR = os.path.dirname(os.path.abspath(recallhook.__file__))
sys.path.insert(0, SCRIPT_DIR)

from fastmcp import FastMCP  # noqa: E402

from config import load_config  # noqa: E402
from hook_handler import RecallHook  # noqa: E402
from observability import get_logger, metrics  # noqa: E402

_log = get_logger("mcp_server")

WORKSPACE_ENV = "RECALLHOOK_WORKSPACE"

# ---------------------------------------------------------------------------
# Server setup
# ---------------------------------------------------------------------------

mcp = FastMCP(
    name="recallhook",
    instructions=(
        "recallhook: relevance-ranked memory for coding agents. Call inject_context "
        "with the user's prompt and prepend the returned block when it is non-empty. "
        "Call record_response with the agent's reply so useful memories rank higher."
    ),
)

_hook: RecallHook | None = None
_hook_lock = threading.Lock()


def _workspace() -> str:
    """Resolve workspace path from environment."""
    ws = os.environ.get(WORKSPACE_ENV, ".")
    return os.path.abspath(ws)


def _get_hook() -> RecallHook:
    """Process-wide RecallHook for the configured workspace, built on first use."""
    global _hook
    with _hook_lock:
        if _hook is None:
            ws = _workspace()
            _hook = RecallHook(load_config(ws), workspace=ws)
        return _hook


def _reset_hook() -> None:
    """Close and drop the shared hook (workspace or config changed)."""
    global _hook
    with _hook_lock:
        if _hook is not None:
            _hook.close()
        _hook = None


def _public(chunk: dict) -> dict:
    """Chunk fields safe to return to clients."""
    out = {k: chunk.get(k) for k in ("text", "source", "path", "lines")}
    out["score"] = round(float(chunk.get("score") or 0.0), 4)
    for extra in ("relevance", "rrf_score", "original_score"):
        if extra in chunk:
            out[extra] = round(float(chunk[extra]), 4)
    if "_rrf_details" in chunk:
        out["ranks"] = chunk["_rrf_details"]
    return out


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

@mcp.tool
def inject_context(prompt: str, session_key: str = "default") -> str:
    """Memory context to prepend to a prompt.

    Args:
        prompt: The user's prompt text.
        session_key: Conversation identifier used to correlate record_response.

    Returns:
        Formatted context block, or an empty string when nothing relevant was found.
    """
    context = _get_hook().handle_prompt(prompt, session_key=session_key)
    metrics.inc("mcp_inject_context")
    return context or ""


@mcp.tool
def record_response(response: str, session_key: str = "default") -> str:
    """Report the agent's response for the last injection in this session.

    Args:
        response: The agent's full response text.
        session_key: Same key that was passed to inject_context.

    Returns:
        JSON with the number of memories credited as cited.
    """
    cited = _get_hook().handle_response(response, session_key=session_key)
    metrics.inc("mcp_record_response")
    return json.dumps({"session_key": session_key, "cited": cited})


@mcp.tool
def search_memory(query: str) -> str:
    """Ranked memory chunks for a query, without gating or caching.

    Args:
        query: Free-text search query.

    Returns:
        JSON list of chunks (text, source, path, lines, score, ...).
    """
    if not query or not query.strip():
        return json.dumps({"error": "query is required"})
    results = _get_hook().rank(query)
    metrics.inc("mcp_search_memory")
    _log.info("mcp_search_memory", results=len(results))
    return json.dumps([_public(r) for r in results], indent=2)


@mcp.tool
def index_stats() -> str:
    """BM25 index size, cache occupancy and signal availability.

    Returns:
        JSON with workspace statistics.
    """
    hook = _get_hook()
    stats = {
        "workspace": hook.workspace,
        "bm25_enabled": hook.config["enable_bm25"],
        "bm25_documents": hook.index.size,
        "bm25_built": hook.index.is_built,
        "bm25_last_build": hook.index.last_build_time,
        "cache_entries": hook.cache.size,
        "vector_enabled": hook.config["enable_vector"],
        "vector_available": hook.vector.available,
        "fts_enabled": hook.config["enable_fts"],
        "feedback_enabled": hook.tracker is not None,
        "calls": hook.call_count,
    }
    metrics.inc("mcp_index_stats")
    return json.dumps(stats, indent=2)


@mcp.tool
def reindex() -> str:
    """Rebuild the BM25 index from the memory files and clear cached rankings.

    Returns:
        JSON with the number of chunks indexed.
    """
    try:
        result = _get_hook().reindex()
    except OSError as exc:
        _log.error("mcp_reindex_failed", error=str(exc))
        return json.dumps({"error": str(exc)})
    metrics.inc("mcp_reindex")
    _log.info("mcp_reindex", results=result)
    return json.dumps(result, indent=2)


@mcp.tool
def utility_stats(limit: int = 20) -> str:
    """Utility tracker summary plus the most-retrieved chunks.

    Args:
        limit: Maximum number of per-chunk entries to include.

    Returns:
        JSON with summary and entries, or an error when feedback is disabled.
    """
    tracker = _get_hook().tracker
    if tracker is None:
        return json.dumps({"error": "feedback loop is disabled (enable_feedback_loop)"})
    entries = sorted(tracker.get_all_entries(), key=lambda e: e["retrievals"], reverse=True)
    return json.dumps({"summary": tracker.get_summary(), "entries": entries[:max(0, limit)]}, indent=2)


@mcp.tool
def hook_metrics() -> str:
    """Per-call outcome counters and latency percentiles.

    Returns:
        JSON with the hook snapshot and the process-wide metrics summary.
    """
    snapshot = _get_hook().metrics.snapshot()
    return json.dumps({"hook": snapshot, "process": metrics.summary()}, indent=2, default=str)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main():
    """Entry point for the MCP server (used by console_scripts and __main__)."""
    import argparse

    parser = argparse.ArgumentParser(description="recallhook MCP Server")
    parser.add_argument("--transport", choices=["stdio", "http"], default="stdio",
                        help="Transport protocol (default: stdio)")
    parser.add_argument("--port", type=int, default=8765,
                        help="HTTP port (only used with --transport http)")
    parser.add_argument("--workspace", default=None,
                        help=f"Workspace root (or set {WORKSPACE_ENV} env var)")
    args = parser.parse_args()

    if args.workspace:
        os.environ[WORKSPACE_ENV] = args.workspace

    _log.info("mcp_server_start", transport=args.transport, workspace=_workspace())
    try:
        if args.transport == "http":
            mcp.run(transport="sse", port=args.port)
        else:
            mcp.run()
    finally:
        _reset_hook()


if __name__ == "__main__":
    main()
