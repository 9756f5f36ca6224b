from __future__ import annotations

import unittest
from datetime import datetime

from sheet_remedy.errors import InputError, UnknownColumnError
from sheet_remedy.profiling import (
    ColumnConfig,
    apply_config,
    default_config,
    detect_column_type,
    profile_column,
    profile_table,
)
from sheet_remedy.quality import count_duplicates, dimension_score, has_consistency_issue, score_quality


class ProfilingTests(unittest.TestCase):
    def test_detect_column_type(self):
        cases = [
            (["yes", "no", "Y", True], "boolean"),
            (["1", "2.5", 3, "-4"], "number"),
            (["2025-01-05", datetime(2024, 3, 1), "2023-12-31"], "date"),
            (["AB12", "CD34", "EF56", "plain"], "alphanumeric"),
            (["alice", "bob", "carol"], "string"),
            ([None, ""], "string"),
        ]
        for values, expected in cases:
            with self.subTest(expected=expected):
                self.assertEqual(detect_column_type(values), expected)

    def test_profile_column_counts(self):
        profile = profile_column("Asset", ["X", "Y", "X", "", None, "X"])
        self.assertEqual(profile.total_records, 6)
        self.assertEqual(profile.empty_records, 2)
        self.assertEqual(profile.duplicate_records, 2)
        self.assertEqual(profile.unique_value_count, 2)
        self.assertEqual(profile.non_empty_records, 4)

    def test_profile_table_completeness(self):
        result = profile_table({"A": ["x", None, "y", "z"], "B": ["1", "2", "", "4"]})
        self.assertEqual(result["total_records"], 4)
        self.assertEqual(result["total_columns"], 2)
        self.assertEqual(result["completeness_score"], 75)
        self.assertEqual([profile.name for profile in result["columns"]], ["A", "B"])

    def test_apply_config_sets_flags(self):
        profile = profile_column("Asset", ["X"])
        config = ColumnConfig(name="Asset", column_type="string", is_unique_qualifier=True, is_reference_data=True)
        applied = apply_config(profile, config)
        self.assertTrue(applied.is_unique_qualifier)
        self.assertTrue(applied.is_reference_data)
        self.assertEqual(default_config(profile).column_type, profile.inferred_type)

    def test_apply_config_rejects_mismatches(self):
        profile = profile_column("Asset", ["X"])
        with self.assertRaises(UnknownColumnError):
            apply_config(profile, ColumnConfig(name="Other", column_type="string"))
        with self.assertRaises(InputError):
            apply_config(profile, ColumnConfig(name="Asset", column_type="blob"))


class QualityScoreTests(unittest.TestCase):
    def test_clean_table_scores_100(self):
        columns = {"Name": ["Alice", "Bob"], "Port": [80, 443]}
        configs = {
            "Name": ColumnConfig(name="Name", column_type="string", is_unique_qualifier=True),
            "Port": ColumnConfig(name="Port", column_type="number"),
        }
        score = score_quality(columns, configs)
        self.assertEqual(score["quality_score"], 100)
        self.assertEqual(score["total_issues"], 0)
        self.assertEqual(score["breakdown"]["accuracy"]["weight"], 0.0)
        self.assertEqual(score["breakdown"]["uniqueness"]["weight"], 0.375)

    def test_duplicates_and_validity_lower_the_score(self):
        columns = {"Asset": ["X", "Y", "X", "Z"], "Port": ["80", "abc", "443", "22"]}
        configs = {
            "Asset": ColumnConfig(name="Asset", column_type="string", is_unique_qualifier=True),
            "Port": ColumnConfig(name="Port", column_type="number"),
        }
        score = score_quality(columns, configs)
        self.assertEqual(score["breakdown"]["uniqueness"]["issues"], 1)
        self.assertEqual(score["breakdown"]["uniqueness"]["score"], 75)
        self.assertEqual(score["breakdown"]["validity"]["issues"], 1)
        self.assertLess(score["quality_score"], 100)

    def test_reference_columns_use_full_weights(self):
        columns = {"Model": ["A", "B", "C", "D"]}
        configs = {"Model": ColumnConfig(name="Model", column_type="string", is_reference_data=True)}
        score = score_quality(columns, configs, accuracy_issues={"Model": 2})
        self.assertEqual(score["breakdown"]["accuracy"]["weight"], 0.2)
        self.assertEqual(score["breakdown"]["accuracy"]["score"], 50)

    def test_helpers(self):
        self.assertEqual(count_duplicates(["a", "a", "", "", "null", "null", "b"]), 1)
        self.assertEqual(dimension_score(0, 0), 100.0)
        self.assertEqual(dimension_score(5, 4), 0.0)
        self.assertTrue(has_consistency_issue(" padded"))
        self.assertTrue(has_consistency_issue("john smith"))
        self.assertFalse(has_consistency_issue("Paris"))
        self.assertFalse(has_consistency_issue(42))


if __name__ == "__main__":
    unittest.main()
