from __future__ import annotations

import unittest
from datetime import date, datetime, time

from sheet_remedy.fixes import MANUAL_CHECK_REQUIRED, format_mac, generate_fix
from sheet_remedy.validator import validate


class StringValidationTests(unittest.TestCase):
    def test_ipv4_octets_are_range_checked(self):
        bad = validate("10.0.0.256", "ip-address-v4", "string")
        self.assertFalse(bad.valid)
        self.assertIn("256", bad.reason)
        self.assertEqual(bad.severity, "error")
        self.assertTrue(validate("10.0.0.1", "ip-address-v4", "string").valid)

    def test_length_reason_embeds_actual_length(self):
        result = validate("001A2B3C4D5E", "mac-address", "string")
        self.assertFalse(result.valid)
        self.assertTrue(result.reason.endswith("Found 12."), result.reason)

    def test_serial_with_illegal_characters(self):
        result = validate("A1 B@2", "serial-number", "string")
        self.assertFalse(result.valid)
        self.assertEqual(result.suggested_fix, "clean")

    def test_empty_values_are_valid_and_flagged(self):
        for value in ("", None):
            with self.subTest(value=value):
                result = validate(value, "serial-number", "string")
                self.assertTrue(result.valid)
                self.assertTrue(result.is_empty)
                self.assertFalse(result.is_issue)


class NumberValidationTests(unittest.TestCase):
    def test_integer_rejects_decimals(self):
        result = validate("12.5", "integer", "number")
        self.assertFalse(result.valid)
        self.assertEqual(result.reason, "Value must be a whole number (no decimals). Found: 12.5.")

    def test_negative_integer_is_a_warning(self):
        result = validate("-5", "integer", "number")
        self.assertTrue(result.valid)
        self.assertTrue(result.warning)
        self.assertTrue(result.is_issue)

    def test_negative_positive_integer_is_invalid(self):
        self.assertFalse(validate("-5", "positive-integer", "number").valid)

    def test_percentage_range_and_decimals(self):
        self.assertFalse(validate("150", "percentage", "number").valid)
        too_precise = validate("12.3456", "percentage", "number")
        self.assertFalse(too_precise.valid)
        self.assertEqual(too_precise.severity, "warning")
        self.assertTrue(validate("99.5", "percentage", "number").valid)

    def test_typed_numbers_validate(self):
        self.assertTrue(validate(8080, "port-number", "number").valid)
        self.assertFalse(validate(70000, "port-number", "number").valid)

    def test_generic_number_without_subtype(self):
        result = validate("abc", None, "number")
        self.assertFalse(result.valid)
        self.assertEqual(result.reason, "Value must be a number. Found: abc")


class DateAndBooleanValidationTests(unittest.TestCase):
    def test_date_format_and_calendar(self):
        self.assertTrue(validate("2025-01-05", "date-only", "date").valid)
        self.assertIn("YYYY-MM-DD", validate("05/01/2025", "date-only", "date").reason)
        self.assertIn("month and day", validate("2025-02-30", "date-only", "date").reason)

    def test_typed_datetime_is_rendered_before_validation(self):
        self.assertTrue(validate(datetime(2025, 1, 5), "date-only", "date").valid)
        self.assertTrue(validate(datetime(2025, 1, 5, 14, 30), "datetime", "date").valid)

    def test_midnight_datetime_cells_keep_their_time(self):
        for subtype in ("datetime", "servicenow-datetime"):
            with self.subTest(subtype=subtype):
                self.assertTrue(validate(datetime(2025, 1, 5), subtype, "date").valid)
        self.assertTrue(validate(date(2025, 1, 5), "datetime", "date").valid)
        self.assertFalse(validate(time(9, 30), "date-only", "date").valid)

    def test_boolean_normalization(self):
        result = validate("y", "yes-no", "boolean")
        self.assertTrue(result.valid)
        self.assertTrue(result.needs_normalization)
        self.assertEqual(result.suggested_fix, "Yes")
        self.assertFalse(validate("Yes", "yes-no", "boolean").is_issue)

    def test_boolean_outside_vocabulary(self):
        self.assertFalse(validate("maybe", "standard", "boolean").valid)
        self.assertTrue(validate(True, "standard", "boolean").valid)


class GenerateFixTests(unittest.TestCase):
    def test_string_fixes(self):
        cases = [
            ("A1 B@2", "serial-number", "A1B2"),
            ("001A2B3C4D5E", "mac-address", "00:1A:2B:3C:4D:5E"),
            ("my host!", "hostname", "MY-HOST"),
            ("example.com", "url", "https://example.com"),
            ("Web.Example.COM!", "fqdn", "web.example.com"),
            ("10.0.0.256", "ip-address-v4", MANUAL_CHECK_REQUIRED),
        ]
        for value, subtype, expected in cases:
            with self.subTest(subtype=subtype):
                self.assertEqual(generate_fix(value, subtype, "string"), expected)

    def test_number_fixes_round_half_up(self):
        self.assertEqual(generate_fix("12.5", "integer", "number"), "13")
        self.assertEqual(generate_fix("-5", "positive-integer", "number"), "5")
        self.assertEqual(generate_fix("150", "percentage", "number"), "100.00")
        self.assertEqual(generate_fix("12.3456", "percentage", "number"), "12.35")
        self.assertEqual(generate_fix("abc", "integer", "number"), MANUAL_CHECK_REQUIRED)

    def test_date_fixes_reformat_parseable_values(self):
        self.assertEqual(generate_fix("2025/01/05", "date-only", "date"), "2025-01-05")
        self.assertEqual(generate_fix("not a date 1", "date-only", "date"), MANUAL_CHECK_REQUIRED)

    def test_boolean_fix_uses_output_vocabulary(self):
        self.assertEqual(generate_fix("TRUE", "one-zero", "boolean"), "1")

    def test_fix_without_rule_or_value(self):
        self.assertEqual(generate_fix("", "serial-number", "string"), "")
        self.assertEqual(generate_fix("whatever", None, "string"), MANUAL_CHECK_REQUIRED)

    def test_unrepairable_mac_is_returned_unchanged(self):
        self.assertEqual(format_mac("zz"), "zz")


if __name__ == "__main__":
    unittest.main()
