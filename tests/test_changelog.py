from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from openpyxl import Workbook, load_workbook

from sheet_remedy.changelog import (
    append_entry,
    coerce_like,
    edit_token,
    is_marked_for_deletion,
    parse_edit,
    parse_log,
    remove_entry,
    replay_workbook,
)


def write_sheet(path: Path, rows: list[list]) -> Path:
    workbook = Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(row)
    workbook.save(path)
    return path


class ChangeLogCodecTests(unittest.TestCase):
    def test_append_to_empty_log(self):
        self.assertEqual(append_entry(None, "Name", "KEEP"), "Name:KEEP")
        self.assertEqual(append_entry("", "Name", "KEEP"), "Name:KEEP")

    def test_second_decision_replaces_the_column_token(self):
        log = append_entry(None, "Name", "KEEP")
        log = append_entry(log, "Name", "DELETE_ROW")
        self.assertEqual(log, "Name:DELETE_ROW")

    def test_tokens_for_other_columns_are_preserved_in_order(self):
        log = append_entry("Name:KEEP", "City", "parise→Paris")
        self.assertEqual(log, "Name:KEEP|City:parise→Paris")
        self.assertEqual(append_entry(log, "Name", "bob→Bob"), "Name:bob→Bob|City:parise→Paris")

    def test_parse_and_remove(self):
        entries = parse_log("Name:KEEP|City:parise→Paris|garbage")
        self.assertEqual(entries, {"Name": "KEEP", "City": "parise→Paris"})
        self.assertEqual(remove_entry("Name:KEEP|City:x→y", "Name"), "City:x→y")

    def test_edit_tokens(self):
        self.assertEqual(edit_token("old", "new"), "old→new")
        self.assertEqual(edit_token(None, "new"), "→new")
        self.assertEqual(parse_edit("a→b→c"), ("a", "b→c"))
        self.assertIsNone(parse_edit("KEEP"))

    def test_deletion_marker(self):
        self.assertTrue(is_marked_for_deletion("Name:DELETE_ROW"))
        self.assertTrue(is_marked_for_deletion(None, "DUPLICATE"))
        self.assertFalse(is_marked_for_deletion("Name:KEEP", ""))

    def test_coerce_like_keeps_numbers_numeric(self):
        self.assertEqual(coerce_like(12, "13"), 13)
        self.assertEqual(coerce_like(1.5, "2.25"), 2.25)
        self.assertEqual(coerce_like("abc", "13"), "13")
        self.assertIsNone(coerce_like("abc", ""))


class ReplayTests(unittest.TestCase):
    def test_replay_applies_edits_deletes_rows_and_strips_reserved_columns(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            source = write_sheet(
                Path(tmpdir) / "work.xlsx",
                [
                    ["Name", "City", "Count", "_CHANGES_LOG", "_ROW_DELETE"],
                    ["alice", "parise", 1, "City:parise→Paris|Count:1→10", None],
                    ["bob", "London", 2, "Name:DELETE_ROW", "DUPLICATE"],
                    ["carol", "Tokyo", 3, "Name:KEEP", None],
                    ["dave", "Sydney", 4, None, "DUPLICATE"],
                ],
            )
            output = Path(tmpdir) / "out" / "work_CLEANED.xlsx"
            stats = replay_workbook(source, output)

            self.assertEqual(stats.edits_applied, 2)
            self.assertEqual(stats.rows_deleted, 2)
            self.assertEqual(stats.rows_remaining, 2)

            sheet = load_workbook(output).active
            rows = list(sheet.iter_rows(values_only=True))
            self.assertEqual(rows[0], ("Name", "City", "Count"))
            self.assertEqual(rows[1], ("alice", "Paris", 10))
            self.assertEqual(rows[2], ("carol", "Tokyo", 3))
            self.assertEqual(len(rows), 3)

    def test_rejected_edit_blanks_the_cell(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            source = write_sheet(
                Path(tmpdir) / "work.xlsx",
                [["Name", "_CHANGES_LOG"], ["junk", "Name:junk→"]],
            )
            output = Path(tmpdir) / "work_CLEANED.xlsx"
            replay_workbook(source, output)
            sheet = load_workbook(output).active
            self.assertIsNone(sheet.cell(row=2, column=1).value)
            self.assertEqual(sheet.max_column, 1)

    def test_replaying_twice_gives_the_same_result(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            source = write_sheet(
                Path(tmpdir) / "work.xlsx",
                [["Name", "_CHANGES_LOG"], ["bob", "Name:bob→Bob"]],
            )
            first = Path(tmpdir) / "first.xlsx"
            second = Path(tmpdir) / "second.xlsx"
            replay_workbook(source, first)
            replay_workbook(source, second)
            self.assertEqual(
                list(load_workbook(first).active.values),
                list(load_workbook(second).active.values),
            )


if __name__ == "__main__":
    unittest.main()
