#!/usr/bin/env python3
"""Tests for memory_files.py -- Markdown chunking and corpus loading."""

import os
import shutil
import sys
import tempfile
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "scripts"))
from memory_files import load_memory_chunks, split_markdown_chunks


class TestSplit(unittest.TestCase):
    def test_split_at_headings(self):
        chunks = split_markdown_chunks("# A\npara one\n\n# B\npara two\n")
        self.assertEqual(chunks, [
            {"text": "# A\npara one", "lines": "1-2"},
            {"text": "# B\npara two", "lines": "4-5"},
        ])

    def test_paragraphs_packed(self):
        text = "first paragraph\n\nsecond paragraph\n"
        self.assertEqual(len(split_markdown_chunks(text)), 1)
        self.assertEqual(split_markdown_chunks(text)[0]["lines"], "1-3")

    def test_budget_splits_paragraphs(self):
        text = ("a" * 30) + "\n\n" + ("b" * 30) + "\n"
        chunks = split_markdown_chunks(text, max_chunk_chars=40)
        self.assertEqual([c["lines"] for c in chunks], ["1-1", "3-3"])

    def test_oversized_paragraph_kept_whole(self):
        chunks = split_markdown_chunks("x" * 2000, max_chunk_chars=100)
        self.assertEqual(len(chunks), 1)
        self.assertEqual(len(chunks[0]["text"]), 2000)

    def test_empty(self):
        self.assertEqual(split_markdown_chunks(""), [])
        self.assertEqual(split_markdown_chunks("\n\n  \n"), [])


class TestLoad(unittest.TestCase):
    def setUp(self):
        self.td = tempfile.mkdtemp()
        self.mem = os.path.join(self.td, "memory")
        os.makedirs(os.path.join(self.mem, "projects"))
        os.makedirs(os.path.join(self.mem, ".archive"))
        for rel, text in (("2026-03-02.md", "second day"), ("2026-03-01.md", "first day"),
                          (os.path.join("projects", "api.md"), "api notes"),
                          (os.path.join(".archive", "old.md"), "hidden"),
                          ("notes.txt", "not markdown")):
            with open(os.path.join(self.mem, rel), "w", encoding="utf-8") as f:
                f.write(text + "\n")

    def tearDown(self):
        shutil.rmtree(self.td, ignore_errors=True)

    def test_sorted_relative_paths(self):
        chunks = load_memory_chunks(self.mem, self.td)
        self.assertEqual([c["path"] for c in chunks],
                         ["memory/2026-03-01.md", "memory/2026-03-02.md", "memory/projects/api.md"])
        self.assertTrue(all(c["source"] == "memory" for c in chunks))

    def test_default_base_is_parent(self):
        chunks = load_memory_chunks(self.mem)
        self.assertEqual(chunks[0]["path"], "memory/2026-03-01.md")

    def test_missing_dir(self):
        self.assertEqual(load_memory_chunks(os.path.join(self.td, "nope")), [])

    def test_undecodable_file_skipped(self):
        with open(os.path.join(self.mem, "bad.md"), "wb") as f:
            f.write(b"\xff\xfe\xfa binary")
        paths = [c["path"] for c in load_memory_chunks(self.mem, self.td)]
        self.assertNotIn("memory/bad.md", paths)
        self.assertEqual(len(paths), 3)


if __name__ == "__main__":
    unittest.main()
