from __future__ import annotations

from datetime import datetime
import tempfile
import unittest
from pathlib import Path

from projman.errors import InvalidNote, NoteNotFound
from projman.notes import find_note_by_id, parse_note_frontmatter, split_frontmatter
from tests.helpers import UTC


NOTE = """---
id: 7f3a
title: "Crash on login"
created: 2026-03-01T10:15:00Z
tags:
  - auth
  - crash
---
# Crash on login
"""


class TestFrontmatter(unittest.TestCase):
    def test_split_reads_scalars_and_lists(self) -> None:
        data = split_frontmatter(NOTE)
        self.assertEqual("7f3a", data["id"])
        self.assertEqual("Crash on login", data["title"])
        self.assertEqual(["auth", "crash"], data["tags"])

    def test_split_needs_both_boundaries(self) -> None:
        self.assertIsNone(split_frontmatter("# just markdown\n"))
        self.assertIsNone(split_frontmatter("---\nid: 1\n"))


class TestNotesOnDisk(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.notes = Path(self._tmp.name)

    def test_find_and_parse(self) -> None:
        (self.notes / "a.md").write_text("---\nid: other\n---\n", encoding="utf-8")
        (self.notes / "b.md").write_text(NOTE, encoding="utf-8")
        (self.notes / "c.txt").write_text(NOTE, encoding="utf-8")

        path = find_note_by_id(self.notes, "7f3a")
        self.assertEqual("b.md", path.name)

        meta = parse_note_frontmatter(path)
        self.assertEqual("7f3a", meta.id)
        self.assertEqual(datetime(2026, 3, 1, 10, 15, tzinfo=UTC), meta.created_at)
        self.assertIsNotNone(meta.updated_at.tzinfo)

    def test_missing_note_or_directory(self) -> None:
        with self.assertRaises(NoteNotFound):
            find_note_by_id(self.notes, "nope")
        with self.assertRaises(NoteNotFound):
            find_note_by_id(self.notes / "absent", "7f3a")

    def test_invalid_notes(self) -> None:
        plain = self.notes / "plain.md"
        plain.write_text("no frontmatter\n", encoding="utf-8")
        with self.assertRaises(InvalidNote):
            parse_note_frontmatter(plain)

        bad_stamp = self.notes / "bad.md"
        bad_stamp.write_text("---\nid: x\ncreated: last tuesday\n---\n", encoding="utf-8")
        with self.assertRaises(InvalidNote):
            parse_note_frontmatter(bad_stamp)

        with self.assertRaises(InvalidNote):
            parse_note_frontmatter(self.notes / "missing.md")


if __name__ == "__main__":
    unittest.main()
