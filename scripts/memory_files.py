#!/usr/bin/env python3
"""recallhook memory corpus -- Markdown memory files as indexable chunks.

Layout (paths relative to the workspace):
    memory/2026-03-01.md      daily notes; the date feeds recency and decay
    memory/projects/api.md    topical notes, never decayed

Files are split at headings, then packed paragraph by paragraph into
chunks of at most ``max_chunk_chars``. Every chunk records its 1-based
line range as "start-end".
"""

from __future__ import annotations

import os
import re
import sys

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
from observability import get_logger

__all__ = ["DEFAULT_CHUNK_CHARS", "split_markdown_chunks", "load_memory_chunks"]

_log = get_logger("memory_files")

DEFAULT_CHUNK_CHARS = 800

_HEADING_RE = re.compile(r"^#{1,6}\s")


def _sections(lines: list[str]) -> list[list[tuple[int, str]]]:
    sections: list[list[tuple[int, str]]] = []
    current: list[tuple[int, str]] = []
    for lineno, line in enumerate(lines, start=1):
        if _HEADING_RE.match(line) and current:
            sections.append(current)
            current = []
        current.append((lineno, line))
    if current:
        sections.append(current)
    return sections


def _paragraphs(section: list[tuple[int, str]]) -> list[list[tuple[int, str]]]:
    paras: list[list[tuple[int, str]]] = []
    current: list[tuple[int, str]] = []
    for lineno, line in section:
        if line.strip():
            current.append((lineno, line))
        elif current:
            paras.append(current)
            current = []
    if current:
        paras.append(current)
    return paras


def split_markdown_chunks(text: str, max_chunk_chars: int = DEFAULT_CHUNK_CHARS) -> list[dict]:
    """Split Markdown into ``{"text", "lines"}`` chunks.

    A section is never merged with the next one. A single paragraph larger
    than ``max_chunk_chars`` becomes its own chunk rather than being cut.
    """
    chunks = []

    def flush(buf: list[tuple[int, str]]) -> None:
        body = "\n".join(line for _, line in buf).strip()
        if body:
            chunks.append({"text": body, "lines": f"{buf[0][0]}-{buf[-1][0]}"})

    for section in _sections((text or "").splitlines()):
        buf: list[tuple[int, str]] = []
        size = 0
        for para in _paragraphs(section):
            para_size = sum(len(line) + 1 for _, line in para)
            if buf and size + para_size > max_chunk_chars:
                flush(buf)
                buf, size = [], 0
            buf.extend(para)
            size += para_size
        if buf:
            flush(buf)
    return chunks


def load_memory_chunks(memory_dir: str, workspace: str | None = None,
                       max_chunk_chars: int = DEFAULT_CHUNK_CHARS) -> list[dict]:
    """Chunks for every ``*.md`` under ``memory_dir``, in sorted path order.

    ``path`` is relative to ``workspace`` (default: the parent of
    ``memory_dir``) with forward slashes. Unreadable files are skipped
    with a warning.
    """
    if not os.path.isdir(memory_dir):
        return []
    base = workspace or os.path.dirname(os.path.abspath(memory_dir))

    md_files = []
    for root, dirs, files in os.walk(memory_dir):
        dirs[:] = sorted(d for d in dirs if not d.startswith("."))
        md_files.extend(os.path.join(root, f) for f in files if f.endswith(".md"))

    chunks = []
    for path in sorted(md_files):
        try:
            with open(path, "r", encoding="utf-8") as f:
                content = f.read()
        except (OSError, UnicodeDecodeError) as exc:
            _log.warning("memory_file_unreadable", path=path, error=str(exc))
            continue
        rel = os.path.relpath(path, base).replace(os.sep, "/")
        for chunk in split_markdown_chunks(content, max_chunk_chars):
            chunk["source"] = "memory"
            chunk["path"] = rel
            chunks.append(chunk)

    _log.debug("memory_chunks_loaded", files=len(md_files), chunks=len(chunks))
    return chunks
