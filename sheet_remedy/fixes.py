"""Deterministic best-effort fixes keyed by a subtype's fix strategy."""

from __future__ import annotations

import re
from typing import Any

from sheet_remedy.catalog import (
    DEFAULT_CATALOG,
    BooleanRule,
    DateRule,
    NumberRule,
    StringRule,
    SubtypeCatalog,
)
from sheet_remedy.values import cell_text, format_fixed, is_empty, parse_datetime, parse_number

MANUAL_CHECK_REQUIRED = "MANUAL_CHECK_REQUIRED"

NON_SERIAL_RE = re.compile(r"[^A-Za-z0-9\-_]")
WHITESPACE_RE = re.compile(r"\s+")
NON_HOSTNAME_RE = re.compile(r"[^A-Za-z0-9\-]")
NON_FQDN_RE = re.compile(r"[^a-z0-9\-.]")
NON_PHONE_RE = re.compile(r"[^0-9+\-()\s]")
NON_HEX_RE = re.compile(r"[^0-9A-Fa-f]")
SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


def format_mac(text: str) -> str:
    hex_only = NON_HEX_RE.sub("", text).upper()
    if len(hex_only) != 12:
        return text
    return ":".join(hex_only[i : i + 2] for i in range(0, 12, 2))


def fix_string(text: str, rule: StringRule) -> str:
    strategy = rule.fix
    if strategy == "clean":
        return NON_SERIAL_RE.sub("", text)
    if strategy == "clean-hostname":
        return NON_HOSTNAME_RE.sub("", WHITESPACE_RE.sub("-", text.strip())).upper()
    if strategy == "clean-fqdn":
        return NON_FQDN_RE.sub("", text.lower())
    if strategy == "clean-phone":
        return NON_PHONE_RE.sub("", text)
    if strategy == "format-mac":
        return format_mac(text)
    if strategy == "add-protocol":
        stripped = text.strip()
        return stripped if SCHEME_RE.match(stripped) else "https://" + stripped
    if strategy == "truncate":
        return text[: rule.max_length]
    return MANUAL_CHECK_REQUIRED


def fix_number(value: Any, rule: NumberRule) -> str:
    number = parse_number(value)
    if number is None:
        return MANUAL_CHECK_REQUIRED
    strategy = rule.fix
    if strategy == "round":
        return format_fixed(number, 0)
    if strategy == "abs-round":
        return format_fixed(abs(number), 0)
    if strategy == "round-1":
        return format_fixed(number, 1)
    if strategy == "abs-round-1":
        return format_fixed(abs(number), 1)
    if strategy == "round-2":
        return format_fixed(number, 2)
    if strategy == "clamp-round":
        low = rule.min_value if rule.min_value is not None else number
        high = rule.max_value if rule.max_value is not None else number
        return format_fixed(max(low, min(high, number)), rule.decimals)
    return MANUAL_CHECK_REQUIRED


def fix_date(value: Any, rule: DateRule) -> str:
    parsed = parse_datetime(value)
    if parsed is None:
        return MANUAL_CHECK_REQUIRED
    if rule.fix == "format-date":
        return parsed.strftime("%Y-%m-%d")
    if rule.fix == "format-datetime":
        return parsed.strftime("%Y-%m-%d %H:%M:%S")
    if rule.fix == "format-time":
        return parsed.strftime("%H:%M:%S")
    return MANUAL_CHECK_REQUIRED


def fix_boolean(value: Any, rule: BooleanRule) -> str:
    return rule.canonical(cell_text(value)) or MANUAL_CHECK_REQUIRED


def generate_fix(
    value: Any,
    subtype_id: str | None,
    column_type: str,
    catalog: SubtypeCatalog = DEFAULT_CATALOG,
) -> str:
    """Suggest a corrected value; never raises, ambiguity yields the sentinel.

    ``column_type`` is accepted for symmetry with ``validate``; generic
    type-level problems have no deterministic fix.
    """
    if is_empty(value):
        return ""
    rule = catalog.get(subtype_id)
    try:
        if isinstance(rule, StringRule):
            return fix_string(cell_text(value), rule)
        if isinstance(rule, NumberRule):
            return fix_number(value, rule)
        if isinstance(rule, DateRule):
            return fix_date(value, rule)
        if isinstance(rule, BooleanRule):
            return fix_boolean(value, rule)
    except (ValueError, TypeError, OverflowError):
        return MANUAL_CHECK_REQUIRED
    return MANUAL_CHECK_REQUIRED
