from __future__ import annotations

import tempfile
import unittest
from pathlib import Path
from unittest import mock

from openpyxl import Workbook, load_workbook

from sheet_remedy.ai import AISuggestion
from sheet_remedy.errors import InputError, UnknownColumnError, UnsupportedFileError
from sheet_remedy.storage import CHANGES_LOG_COLUMN, ROW_DELETE_COLUMN
from sheet_remedy.workbook import (
    WorkbookSession,
    build_review,
    export_cleaned,
    prepare_working_copy,
    read_columns,
)


def write_xlsx(path: Path, rows: list[list]) -> Path:
    workbook = Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(row)
    workbook.save(path)
    return path


def cell_log(path: Path, row_number: int):
    sheet = load_workbook(path).active
    headers = {cell.value: cell.column for cell in sheet[1]}
    log = sheet.cell(row=row_number, column=headers[CHANGES_LOG_COLUMN]).value
    flag = sheet.cell(row=row_number, column=headers[ROW_DELETE_COLUMN]).value if ROW_DELETE_COLUMN in headers else None
    return log, flag


class WorkingCopyTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmpdir = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def test_csv_upload_is_converted_with_change_log_column(self):
        upload = self.tmpdir / "assets.csv"
        upload.write_text("Name;City\nalice;parise\nbob;London\n", encoding="utf-8")
        working = prepare_working_copy(upload, self.tmpdir / "work")
        self.assertEqual(working.name, "assets.xlsx")
        sheet = load_workbook(working).active
        self.assertEqual([cell.value for cell in sheet[1]], ["Name", "City", CHANGES_LOG_COLUMN])
        self.assertEqual(sheet.cell(row=2, column=2).value, "parise")

    def test_latin1_csv_is_decoded(self):
        upload = self.tmpdir / "cities.csv"
        upload.write_bytes("City,Country\nZürich,Schweiz\nMünchen,Deutschland\nKöln,Deutschland\n".encode("latin-1"))
        columns = read_columns(upload)
        self.assertEqual(list(columns), ["City", "Country"])
        self.assertEqual(len(columns["City"]), 3)
        self.assertIn("Schweiz", columns["Country"])

    def test_unsupported_upload_is_rejected(self):
        upload = self.tmpdir / "notes.pdf"
        upload.write_bytes(b"%PDF")
        with self.assertRaises(UnsupportedFileError):
            prepare_working_copy(upload, self.tmpdir / "work")

    def test_session_hides_reserved_columns(self):
        upload = write_xlsx(self.tmpdir / "in.xlsx", [["Name", "Port"], ["alice", 80], ["bob", 443]])
        session = WorkbookSession.from_upload(upload, self.tmpdir / "work")
        self.assertEqual(list(session.columns), ["Name", "Port"])
        self.assertEqual(session.column_values("Port"), [80, 443])
        with self.assertRaises(UnknownColumnError):
            session.column_values(CHANGES_LOG_COLUMN)


class SessionDecisionTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmpdir = Path(self._tmp.name)
        upload = write_xlsx(
            self.tmpdir / "assets.xlsx",
            [
                ["Asset", "City", "Port"],
                ["X", "parise", 80],
                ["Y", "London", 443],
                ["X", "tokyo", 8080],
                ["Z", "Sydney", 22],
                ["X", "paris", 21],
            ],
        )
        self.session = WorkbookSession.from_upload(upload, self.tmpdir / "work")

    def tearDown(self):
        self._tmp.cleanup()

    def test_keep_then_delete_replaces_the_token(self):
        self.session.log_change(3, "Asset", "KEEP")
        self.session.log_change(3, "Asset", "DELETE_ROW")
        log, flag = cell_log(self.session.path, 3)
        self.assertEqual(log, "Asset:DELETE_ROW")
        self.assertEqual(flag, "DUPLICATE")

        self.session.log_change(3, "Asset", "KEEP")
        log, flag = cell_log(self.session.path, 3)
        self.assertEqual(log, "Asset:KEEP")
        self.assertIsNone(flag)

    def test_clear_change_resets_the_row(self):
        self.session.log_change(4, "Asset", "DELETE_ROW")
        self.session.clear_change(4, "Asset")
        log, flag = cell_log(self.session.path, 4)
        self.assertIsNone(log)
        self.assertIsNone(flag)

    def test_update_cell_statuses(self):
        self.assertEqual(self.session.update_cell(2, "City", "Paris"), "changed")
        self.assertEqual(self.session.update_cell(3, "City", "London"), "kept")
        self.assertEqual(self.session.update_cell(4, "City", ""), "rejected")
        self.assertEqual(self.session.column_values("City")[:3], ["Paris", "London", None])
        self.assertEqual(cell_log(self.session.path, 2)[0], "City:parise→Paris")
        self.assertEqual(cell_log(self.session.path, 4)[0], "City:tokyo→")
        self.assertEqual([d.action for d in self.session.decisions], ["changed", "kept", "rejected"])

    def test_update_cell_keeps_numbers_numeric(self):
        self.session.update_cell(2, "Port", "8081")
        self.assertEqual(self.session.column_values("Port")[0], 8081)

    def test_scan_results_are_cached_until_the_column_changes(self):
        first = self.session.scan("city-normalization", "City", "string")
        self.assertIs(self.session.scan("city-normalization", "City", "string"), first)
        self.session.update_cell(2, "City", "Paris")
        second = self.session.scan("city-normalization", "City", "string")
        self.assertIsNot(second, first)
        self.assertEqual([issue.row_number for issue in second.issues], [4, 6])

    def test_apply_duplicates_marks_rows_for_deletion(self):
        result = self.session.scan("duplicates", "Asset", "string")
        self.assertEqual([issue.row_number for issue in result.issues], [4, 6])
        applied = self.session.apply_fixes("Asset", "duplicates", result.issues)
        self.assertEqual(applied, 2)
        self.assertEqual(cell_log(self.session.path, 4), ("Asset:DELETE_ROW", "DUPLICATE"))
        self.assertTrue(all(issue.status == "changed" for issue in result.issues))

    def test_apply_fixes_writes_values_and_skips_sentinels(self):
        result = self.session.scan("capitalization", "City", "string")
        applied = self.session.apply_fixes("City", "capitalization", result.issues)
        self.assertEqual(applied, 3)
        self.assertEqual(self.session.column_values("City"), ["Parise", "London", "Tokyo", "Sydney", "Paris"])

    def test_row_outside_data_is_rejected(self):
        with self.assertRaises(InputError):
            self.session.log_change(1, "Asset", "KEEP")
        with self.assertRaises(InputError):
            self.session.log_change(99, "Asset", "KEEP")

    def test_unknown_column_is_rejected(self):
        with self.assertRaises(UnknownColumnError):
            self.session.log_change(2, "Nope", "KEEP")

    def test_scan_cache_tracks_subtype_and_reference_data(self):
        serial = self.session.scan("data-format-validation", "City", "string", "serial-number")
        url = self.session.scan("data-format-validation", "City", "string", "url")
        self.assertIsNot(url, serial)
        self.assertIs(self.session.scan("data-format-validation", "City", "string", "serial-number"), serial)

        paris_only = self.session.scan("reference-validation", "City", "string", reference_index={"paris": "Paris"})
        london_only = self.session.scan("reference-validation", "City", "string", reference_index={"london": "London"})
        self.assertIsNot(london_only, paris_only)
        self.assertNotIn(3, [issue.row_number for issue in london_only.issues])
        self.assertIn(3, [issue.row_number for issue in paris_only.issues])

    def test_logged_edit_writes_the_cell(self):
        first = self.session.scan("capitalization", "City", "string")
        self.session.log_change(2, "City", "EDIT", new="Paris")
        self.assertEqual(self.session.column_values("City")[0], "Paris")
        self.assertEqual(cell_log(self.session.path, 2)[0], "City:parise→Paris")
        self.assertIsNot(self.session.scan("capitalization", "City", "string"), first)

    def test_invented_ai_rows_do_not_block_apply(self):
        suggester = mock.Mock(available=True)
        suggester.suggest.return_value = AISuggestion(
            issues=[
                {"rowNumber": 2, "currentValue": "parise", "suggestedFix": "Paris"},
                {"rowNumber": 99, "currentValue": "Atlantis", "suggestedFix": "Atlanta"},
            ],
        )
        result = self.session.scan("ai-validation", "City", "string", ai_suggester=suggester)
        self.assertEqual([issue.row_number for issue in result.issues], [2])
        self.assertEqual(self.session.apply_fixes("City", "ai-validation", result.issues), 1)
        self.assertEqual(self.session.column_values("City")[0], "Paris")

    def test_duplicate_rows_lists_the_group_with_decisions(self):
        self.session.log_change(4, "Asset", "DELETE_ROW")
        self.session.log_change(6, "Asset", "KEEP")
        rows = self.session.duplicate_rows("Asset", "X")
        self.assertEqual([row.row_number for row in rows], [2, 4, 6])
        self.assertEqual([row.status for row in rows], [None, "deleted", "kept"])
        self.assertEqual([row.marked_for_deletion for row in rows], [False, True, False])
        self.assertEqual(rows[0].data, {"Asset": "X", "City": "parise", "Port": 80})
        self.assertEqual(self.session.duplicate_rows("Asset", "nope"), [])

    def test_edited_rows_leave_the_duplicate_group(self):
        self.session.log_change(4, "Asset", "EDIT", new="X-2")
        self.assertEqual([row.row_number for row in self.session.duplicate_rows("Asset", "X")], [2, 6])
        (edited,) = self.session.duplicate_rows("Asset", "X-2")
        self.assertEqual(edited.status, "changed")
        self.assertEqual((edited.original_value, edited.new_value), ("X", "X-2"))

    def test_update_change_revises_a_tracked_edit(self):
        self.session.update_cell(2, "City", "Paris")
        self.assertEqual(self.session.update_change(2, "City", "Paris FR"), "changed")
        self.assertEqual(cell_log(self.session.path, 2)[0], "City:parise→Paris FR")
        self.assertEqual(self.session.column_values("City")[0], "Paris FR")

        output, _ = export_cleaned(self.session, self.tmpdir / "out")
        rows = list(load_workbook(output).active.iter_rows(values_only=True))
        self.assertEqual(rows[1], ("X", "Paris FR", 80))

        self.assertEqual(self.session.update_change(2, "City", "parise"), "kept")
        self.assertEqual(cell_log(self.session.path, 2)[0], "City:KEEP")

    def test_update_change_on_untracked_cell(self):
        self.assertEqual(self.session.update_change(3, "Port", "8443"), "changed")
        self.assertEqual(self.session.column_values("Port")[1], 8443)
        self.assertEqual(cell_log(self.session.path, 3)[0], "Port:443→8443")
        self.assertEqual(self.session.update_change(5, "City", ""), "rejected")


    def test_review_and_export(self):
        self.session.update_cell(2, "City", "Paris")
        self.session.update_cell(3, "City", "")
        self.session.log_change(4, "Asset", "DELETE_ROW")
        self.session.log_change(5, "Asset", "KEEP")

        review = build_review(self.session.path)
        self.assertEqual(
            review["counts"],
            {"changed": 1, "rejected": 1, "kept": 1, "deleted": 1, "total": 4},
        )
        self.assertEqual(review["headers"], ["Asset", "City", "Port"])
        self.assertEqual([row["row_number"] for row in review["rows"]], [2, 3, 4, 5])

        output, stats = export_cleaned(self.session, self.tmpdir / "out")
        self.assertEqual(output.name, "assets_CLEANED.xlsx")
        self.assertEqual(stats.rows_deleted, 1)
        rows = list(load_workbook(output).active.iter_rows(values_only=True))
        self.assertEqual(rows[0], ("Asset", "City", "Port"))
        self.assertEqual(rows[1], ("X", "Paris", 80))
        self.assertEqual(rows[2], ("Y", None, 443))
        self.assertEqual(len(rows), 5)


if __name__ == "__main__":
    unittest.main()
