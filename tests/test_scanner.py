from __future__ import annotations

import unittest
from datetime import datetime
from unittest import mock

from sheet_remedy.ai import AISuggestion
from sheet_remedy.cache import IssueCache
from sheet_remedy.capitalization import smart_capitalize
from sheet_remedy.errors import UnsupportedActionError
from sheet_remedy.fixes import MANUAL_CHECK_REQUIRED
from sheet_remedy.scanner import (
    MAX_ISSUES,
    REFERENCE_VALID,
    STATUS_KEPT,
    ScanResult,
    canonical_city,
    scan,
)
from sheet_remedy.similarity import edit_distance, is_similar, similar_values


def scan_rows(action, values, column_type="string", subtype=None, **kwargs):
    return scan(action, "Column", column_type, subtype, values, **kwargs)


class DuplicateAndEmptyScanTests(unittest.TestCase):
    def test_duplicates_reference_first_occurrence(self):
        result = scan_rows("duplicates", ["X", "Y", "X", "Z", "X"])
        self.assertEqual([issue.row_number for issue in result.issues], [4, 6])
        for issue in result.issues:
            self.assertEqual(issue.suggested_fix, "Delete (keep first occurrence in row 2)")
            self.assertEqual(issue.reason, "Duplicate of row 2")

    def test_duplicates_ignore_empty_and_null_tokens(self):
        result = scan_rows("duplicates", ["", "", "null", "null", None, None])
        self.assertEqual(result.issues, [])

    def test_empty_scan(self):
        result = scan_rows("empty", ["a", "", None, "b"])
        self.assertEqual([issue.row_number for issue in result.issues], [3, 4])
        self.assertEqual(result.issues[0].current_value, "(empty)")
        self.assertEqual(result.issues[0].suggested_fix, "N/A or Unknown")

    def test_results_are_capped(self):
        result = scan_rows("empty", [None] * (MAX_ISSUES + 20))
        self.assertEqual(len(result.issues), MAX_ISSUES)

    def test_rescanning_unchanged_data_is_deterministic(self):
        values = ["X", "y  z", "X", None, "paris"]
        for action in ("duplicates", "empty", "whitespace", "capitalization"):
            with self.subTest(action=action):
                self.assertEqual(scan_rows(action, values), scan_rows(action, values))


class FormatScanTests(unittest.TestCase):
    def test_typed_midnight_datetimes_are_valid(self):
        values = [datetime(2025, 1, 5), datetime(2025, 1, 5, 10)]
        result = scan_rows("data-format-validation", values, column_type="date", subtype="servicenow-datetime")
        self.assertEqual(result.issues, [])

    def test_format_scan_suggests_fixes(self):
        result = scan_rows("data-format-validation", ["AB12", "A1 B@2", ""], subtype="serial-number")
        self.assertEqual(len(result.issues), 1)
        issue = result.issues[0]
        self.assertEqual(issue.row_number, 3)
        self.assertEqual(issue.suggested_fix, "A1B2")
        self.assertEqual(issue.severity, "error")

    def test_boolean_normalization_uses_canonical_value(self):
        result = scan_rows("data-format-validation", ["y", "Yes", "nope"], "boolean", "yes-no")
        self.assertEqual([(i.row_number, i.suggested_fix) for i in result.issues], [(2, "Yes"), (4, MANUAL_CHECK_REQUIRED)])


class CosmeticScanTests(unittest.TestCase):
    def test_whitespace(self):
        result = scan_rows("whitespace", ["  New   York ", "Paris", 12])
        self.assertEqual(len(result.issues), 1)
        self.assertEqual(result.issues[0].suggested_fix, "New York")

    def test_capitalization_skips_codes(self):
        result = scan_rows("capitalization", ["john smith", "INC0012345", "Paris"])
        self.assertEqual(len(result.issues), 1)
        self.assertEqual(result.issues[0].suggested_fix, "John Smith")

    def test_special_characters(self):
        result = scan_rows("special-chars", ["Server#1!", "web-01.local"])
        self.assertEqual(len(result.issues), 1)
        self.assertEqual(result.issues[0].suggested_fix, "Server1")
        self.assertEqual(result.issues[0].reason, "Special characters: # !")

    def test_city_normalization(self):
        result = scan_rows("city-normalization", ["parise", "Paris", "Atlantis"])
        self.assertEqual([(i.row_number, i.suggested_fix) for i in result.issues], [(2, "Paris")])
        self.assertEqual(canonical_city("hong  kong"), "Hong Kong")

    def test_currency_and_commas(self):
        self.assertEqual(scan_rows("currency", ["$1200", "15"], "number").issues[0].suggested_fix, "1200")
        self.assertEqual(scan_rows("commas", ["1,234.56"], "number").issues[0].suggested_fix, "1234.56")

    def test_unknown_action_raises(self):
        with self.assertRaises(UnsupportedActionError):
            scan_rows("sparkle", ["x"])


class ReferenceScanTests(unittest.TestCase):
    INDEX = {"dell latitude 5420": "Dell Latitude 5420", "hp elitebook 840": "HP EliteBook 840"}

    def test_mismatches_get_similar_suggestions(self):
        result = scan_rows(
            "reference-validation",
            ["dell latitude 5420", "Dell Latitud 5420", "Commodore 64", ""],
            reference_index=self.INDEX,
        )
        self.assertEqual(len(result.issues), 2)
        similar, unknown = result.issues
        self.assertEqual(similar.row_number, 3)
        self.assertEqual(similar.suggested_fix, "Dell Latitude 5420")
        self.assertTrue(similar.reason.startswith("Not in reference data. Similar: "))
        self.assertEqual(unknown.suggested_fix, MANUAL_CHECK_REQUIRED)

    def test_list_all_includes_valid_and_empty_rows(self):
        result = scan_rows(
            "reference-validation",
            ["HP EliteBook 840", None],
            reference_index=self.INDEX,
            list_all=True,
        )
        valid, empty = result.issues
        self.assertEqual(valid.suggested_fix, REFERENCE_VALID)
        self.assertEqual(valid.status, STATUS_KEPT)
        self.assertEqual(empty.current_value, "(empty)")

    def test_missing_reference_data_degrades(self):
        result = scan_rows("reference-validation", ["x"])
        self.assertTrue(result.degraded)
        self.assertEqual(result.issues, [])


class AIScanTests(unittest.TestCase):
    def test_ai_suggestions_become_issues(self):
        suggester = mock.Mock(available=True)
        suggester.suggest.return_value = AISuggestion(
            issues=[
                {"rowNumber": 3, "currentValue": "Nwe York", "suggestedFix": "New York", "reason": "Typo"},
                {"rowNumber": "bad"},
            ],
            tokens_used=120,
        )
        result = scan_rows("ai-validation", ["Paris", "Nwe York"], ai_suggester=suggester)
        self.assertEqual(result.tokens_used, 120)
        self.assertEqual(len(result.issues), 1)
        self.assertEqual(result.issues[0].suggested_fix, "New York")
        suggester.suggest.assert_called_once_with("Column", ["Paris", "Nwe York"])

    def test_ai_rows_outside_the_data_or_with_other_values_are_dropped(self):
        suggester = mock.Mock(available=True)
        suggester.suggest.return_value = AISuggestion(
            issues=[
                {"rowNumber": 99, "currentValue": "Atlantis", "suggestedFix": "Atlanta"},
                {"rowNumber": 1, "currentValue": "Column", "suggestedFix": "Col"},
                {"rowNumber": 2, "currentValue": "Lyon", "suggestedFix": "Paris"},
                {"rowNumber": 3, "currentValue": "Nwe York", "suggestedFix": "New York"},
                {"rowNumber": 4, "currentValue": "(empty)", "suggestedFix": "Unknown"},
            ],
        )
        result = scan_rows("ai-validation", ["Paris", "Nwe York", None], ai_suggester=suggester)
        self.assertEqual([issue.row_number for issue in result.issues], [3, 4])
        self.assertEqual(result.issues[1].current_value, "")

    def test_unavailable_ai_degrades(self):
        result = scan_rows("ai-validation", ["x"], ai_suggester=mock.Mock(available=False))
        self.assertTrue(result.degraded)
        self.assertEqual(scan_rows("ai-validation", ["x"]).issues, [])


class SimilarityTests(unittest.TestCase):
    def test_is_similar(self):
        self.assertTrue(is_similar("paris", "parise", 2))
        self.assertFalse(is_similar("paris", "london", 2))
        self.assertTrue(is_similar("", "", 0))

    def test_edit_distance(self):
        self.assertEqual(edit_distance("kitten", "sitting"), 3)
        self.assertEqual(edit_distance("", "abc"), 3)

    def test_similar_values_respects_limit(self):
        self.assertEqual(similar_values("cat", ["bat", "hat", "rat", "dog"], 1, 2), ["bat", "hat"])

    def test_similar_values_puts_closest_first(self):
        self.assertEqual(similar_values("paris", ["parisienne", "pariss", "paris"], 3, 3), ["paris", "pariss"])


class SmartCapitalizeTests(unittest.TestCase):
    def test_title_case_with_connectors(self):
        outcome = smart_capitalize("the lord of the rings")
        self.assertEqual(outcome["suggested_fix"], "The Lord of the Rings")
        self.assertFalse(outcome["should_skip"])

    def test_name_prefixes(self):
        self.assertEqual(smart_capitalize("mcdonald")["suggested_fix"], "McDonald")
        self.assertEqual(smart_capitalize("o'brien")["suggested_fix"], "O'Brien")
        self.assertEqual(smart_capitalize("machine room")["suggested_fix"], "Machine Room")

    def test_codes_and_mixed_case_are_skipped(self):
        for value in ("INC0012345", "00:1A:2B:3C:4D:5E", "iPhone", "JavaScript", "10.0.0.1"):
            with self.subTest(value=value):
                self.assertTrue(smart_capitalize(value)["should_skip"])

    def test_emails_are_lowercased(self):
        outcome = smart_capitalize("John.Smith@Example.com")
        self.assertEqual(outcome["suggested_fix"], "john.smith@example.com")

    def test_non_strings_are_skipped(self):
        self.assertTrue(smart_capitalize(42)["should_skip"])


class IssueCacheTests(unittest.TestCase):
    def test_invalidation_is_per_column(self):
        cache = IssueCache()
        cache.put("A", "whitespace", ScanResult())
        cache.put("A", "empty", ScanResult())
        cache.put("B", "empty", ScanResult())
        self.assertEqual(cache.invalidate_column("A"), 2)
        self.assertIsNone(cache.get("A", "empty"))
        self.assertIsNotNone(cache.get("B", "empty"))

    def test_degraded_results_are_not_cached(self):
        cache = IssueCache()
        cache.put("A", "ai-validation", ScanResult(error="down"))
        self.assertEqual(len(cache), 0)


if __name__ == "__main__":
    unittest.main()
