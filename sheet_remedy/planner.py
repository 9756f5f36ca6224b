"""Assemble the ordered remediation actions offered for one column."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from sheet_remedy.catalog import ALPHANUMERIC, DEFAULT_CATALOG, NUMBER, STRING, SubtypeCatalog, describe_rule
from sheet_remedy.detector import detect_subtype
from sheet_remedy.profiling import ColumnProfile

SEVERITY_CRITICAL = "critical"
SEVERITY_WARNING = "warning"
SEVERITY_INFO = "info"
SEVERITY_ORDER = {SEVERITY_CRITICAL: 0, SEVERITY_WARNING: 1, SEVERITY_INFO: 2}

DUPLICATES = "duplicates"
EMPTY = "empty"
FORMAT_VALIDATION = "data-format-validation"
WHITESPACE = "whitespace"
CAPITALIZATION = "capitalization"
SPECIAL_CHARS = "special-chars"
CITY_NORMALIZATION = "city-normalization"
CURRENCY = "currency"
COMMAS = "commas"
REFERENCE_VALIDATION = "reference-validation"
AI_VALIDATION = "ai-validation"

ACTION_TYPES = (
    DUPLICATES,
    EMPTY,
    FORMAT_VALIDATION,
    WHITESPACE,
    CAPITALIZATION,
    SPECIAL_CHARS,
    CITY_NORMALIZATION,
    CURRENCY,
    COMMAS,
    REFERENCE_VALIDATION,
    AI_VALIDATION,
)

MANY_DUPLICATES_SHARE = 0.10
EMPTY_CRITICAL_PERCENT = 20
EMPTY_WARNING_PERCENT = 5
PLACE_NAME_HINTS = ("city", "location", "site")


@dataclass
class Action:
    type: str
    title: str
    description: str
    severity: str
    issue_count: int | None = None
    subtype: str | None = None
    auto_detected: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _percent(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return int(part / whole * 100 + 0.5)


def duplicates_action(profile: ColumnProfile) -> Action | None:
    count = profile.duplicate_records
    if count <= 0:
        return None
    percent = _percent(count, profile.total_records)
    if profile.is_unique_qualifier:
        return Action(
            type=DUPLICATES,
            title="Remove Duplicates (CRITICAL)",
            description=(
                f"This column is marked as a unique qualifier but has {count} duplicate values. "
                "Unique qualifiers must have zero duplicates."
            ),
            severity=SEVERITY_CRITICAL,
            issue_count=count,
        )
    many = count > profile.total_records * MANY_DUPLICATES_SHARE
    return Action(
        type=DUPLICATES,
        title="Review Duplicate Values",
        description=f"Found {count} duplicate values ({percent}% of records). Review if this is expected.",
        severity=SEVERITY_WARNING if many else SEVERITY_INFO,
        issue_count=count,
    )


def empty_action(profile: ColumnProfile) -> Action | None:
    count = profile.empty_records
    if count <= 0:
        return None
    percent = _percent(count, profile.total_records)
    if percent > EMPTY_CRITICAL_PERCENT:
        severity = SEVERITY_CRITICAL
    elif percent > EMPTY_WARNING_PERCENT:
        severity = SEVERITY_WARNING
    else:
        severity = SEVERITY_INFO
    return Action(
        type=EMPTY,
        title=f"Fill {count} Empty Values",
        description=f"{percent}% of records are empty.",
        severity=severity,
        issue_count=count,
    )


def format_validation_action(
    column_type: str,
    subtype: str | None,
    auto_detected: bool,
    catalog: SubtypeCatalog,
) -> Action:
    rule = catalog.get(subtype)
    if rule is None:
        description = f"Check that every value is a valid {column_type} value."
        subtype = None
        auto_detected = False
    else:
        origin = "auto-detected from the column name" if auto_detected else "configured"
        description = f"Validate values as {describe_rule(rule)}; subtype {origin}."
    return Action(
        type=FORMAT_VALIDATION,
        title="Validate Data Format",
        description=description,
        severity=SEVERITY_WARNING,
        subtype=subtype,
        auto_detected=auto_detected,
    )


def cosmetic_actions(column_name: str, column_type: str) -> list[Action]:
    actions: list[Action] = []
    if column_type in (STRING, ALPHANUMERIC):
        actions.append(
            Action(WHITESPACE, "Trim Whitespace", "Remove leading/trailing spaces and collapse repeated spaces.", SEVERITY_INFO)
        )
        actions.append(
            Action(CAPITALIZATION, "Standardize Capitalization", "Convert inconsistent casing to Title Case, leaving codes alone.", SEVERITY_INFO)
        )
        actions.append(
            Action(SPECIAL_CHARS, "Remove Special Characters", "Strip characters other than letters, digits, spaces, hyphens, underscores and periods.", SEVERITY_INFO)
        )
        lowered = column_name.lower()
        if any(hint in lowered for hint in PLACE_NAME_HINTS):
            actions.append(
                Action(CITY_NORMALIZATION, "Normalize City Names", "Fix typos and standardize city names (e.g., parise -> Paris).", SEVERITY_WARNING)
            )
    elif column_type == NUMBER:
        actions.append(
            Action(CURRENCY, "Remove Currency Symbols", "Strip $, €, £, ¥ and ₹ from numeric values.", SEVERITY_INFO)
        )
        actions.append(
            Action(COMMAS, "Remove Commas", "Convert formatted numbers (1,234.56) to plain numbers (1234.56).", SEVERITY_INFO)
        )
    return actions


def resolve_subtype(
    column_name: str,
    column_type: str,
    subtype: str | None,
    catalog: SubtypeCatalog = DEFAULT_CATALOG,
) -> tuple[str | None, bool]:
    """The configured subtype when it fits the column type, else the detected one."""
    if subtype and catalog.is_valid_for(subtype, column_type):
        return subtype, False
    detected = detect_subtype(column_name, column_type, catalog)
    return detected, detected is not None


def plan_actions(
    column_name: str,
    column_type: str,
    stats: ColumnProfile,
    subtype: str | None = None,
    catalog: SubtypeCatalog = DEFAULT_CATALOG,
) -> list[Action]:
    """Ordered actions: duplicates, empty, format, cosmetic, reference, AI.

    ``subtype`` is the user's choice; when absent the detector guesses one from
    the column name and the format action is flagged as auto-detected.
    """
    subtype, auto_detected = resolve_subtype(column_name, column_type, subtype, catalog)

    actions: list[Action] = []
    for action in (duplicates_action(stats), empty_action(stats)):
        if action is not None:
            actions.append(action)
    actions.append(format_validation_action(column_type, subtype, auto_detected, catalog))
    actions.extend(cosmetic_actions(column_name, column_type))
    if stats.is_reference_data:
        actions.append(
            Action(
                REFERENCE_VALIDATION,
                "Validate Against Reference Data",
                "Check that every value exists in the configured ServiceNow reference table.",
                SEVERITY_INFO,
            )
        )
    actions.append(
        Action(
            AI_VALIDATION,
            "AI-Powered Smart Analysis",
            "Ask the AI assistant for issues the rule-based checks might miss.",
            SEVERITY_INFO,
        )
    )
    return actions
