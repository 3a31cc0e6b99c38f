#!/usr/bin/env python3
"""recallhook context formatting -- render ranked chunks for prompt injection.

Two layouts, both bounded by a character budget:

    xml       <relevant_memories><memory source=.. path=.. score=..>...</memory>
    markdown  --- fenced block with a quoted header per memory

When the next entry overflows the budget it is truncated with "..." if
more than 50 characters of room remain, otherwise dropped. An empty
string means nothing fit.
"""

from __future__ import annotations

__all__ = ["format_as_xml", "format_as_markdown", "format_context"]

_XML_ENTRY_OVERHEAD = 120
_MD_ENTRY_OVERHEAD = 10
_MIN_TRUNCATED_CHARS = 50
_ELLIPSIS = "..."


def _escape_attr(value) -> str:
    return (str(value).replace("&", "&amp;").replace('"', "&quot;")
            .replace("<", "&lt;").replace(">", "&gt;"))


def _escape_text(value) -> str:
    return str(value).replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _score(result: dict) -> str:
    return f"{float(result.get('score') or 0.0):.3f}"


def _xml_entry(result: dict, text: str) -> str:
    attrs = [f'source="{_escape_attr(result.get("source") or "memory")}"']
    if result.get("path"):
        attrs.append(f'path="{_escape_attr(result["path"])}"')
    if result.get("lines"):
        attrs.append(f'lines="{_escape_attr(result["lines"])}"')
    attrs.append(f'score="{_score(result)}"')
    return f"  <memory {' '.join(attrs)}>\n    {_escape_text(text)}\n  </memory>"


def format_as_xml(results: list[dict], max_chars: int = 2000) -> str:
    if not results:
        return ""
    lines = ["<relevant_memories>"]
    used = 0
    for r in results:
        text = (r.get("text") or "").strip()
        if not text:
            continue
        overhead = _XML_ENTRY_OVERHEAD + len(r.get("path") or "")
        if used + len(text) + overhead > max_chars:
            room = max_chars - used - overhead - len(_ELLIPSIS)
            if room > _MIN_TRUNCATED_CHARS:
                lines.append(_xml_entry(r, text[:room] + _ELLIPSIS))
            break
        lines.append(_xml_entry(r, text))
        used += len(text) + overhead

    if len(lines) == 1:
        return ""
    lines.append("</relevant_memories>")
    return "\n".join(lines)


def _markdown_header(result: dict) -> str:
    parts = [f"> *{result.get('source') or 'memory'}*"]
    if result.get("path"):
        parts.append(f"`{result['path']}`")
    if result.get("lines"):
        parts.append(f"lines {result['lines']}")
    parts.append(f"(score: {_score(result)})")
    return " | ".join(parts)


def format_as_markdown(results: list[dict], max_chars: int = 2000) -> str:
    if not results:
        return ""
    lines = ["---", "**Relevant Memories:**", ""]
    preamble = len(lines)
    used = 0
    for r in results:
        text = (r.get("text") or "").strip()
        if not text:
            continue
        header = _markdown_header(r)
        overhead = len(header) + _MD_ENTRY_OVERHEAD
        if used + len(text) + overhead > max_chars:
            room = max_chars - used - overhead - len(_ELLIPSIS)
            if room > _MIN_TRUNCATED_CHARS:
                lines.extend([header, text[:room] + _ELLIPSIS, ""])
            break
        lines.extend([header, text, ""])
        used += len(text) + overhead

    if len(lines) == preamble:
        return ""
    lines.append("---")
    return "\n".join(lines)


def format_context(results: list[dict], format_template: str = "xml", max_context_chars: int = 2000) -> str:
    """Render with the named template; anything but "markdown" means XML."""
    if not results:
        return ""
    if format_template == "markdown":
        return format_as_markdown(results, max_context_chars)
    return format_as_xml(results, max_context_chars)
