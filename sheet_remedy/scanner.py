"""Row-level issue scanning, one strategy per action type."""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Mapping, Sequence

from sheet_remedy.capitalization import smart_capitalize
from sheet_remedy.catalog import DEFAULT_CATALOG, SubtypeCatalog
from sheet_remedy.errors import AIUnavailableError, ExternalServiceError, UnsupportedActionError
from sheet_remedy.fixes import MANUAL_CHECK_REQUIRED, generate_fix
from sheet_remedy.planner import (
    AI_VALIDATION,
    CAPITALIZATION,
    CITY_NORMALIZATION,
    COMMAS,
    CURRENCY,
    DUPLICATES,
    EMPTY,
    FORMAT_VALIDATION,
    REFERENCE_VALIDATION,
    SPECIAL_CHARS,
    WHITESPACE,
    resolve_subtype,
)
from sheet_remedy.similarity import is_similar, similar_values
from sheet_remedy.validator import validate
from sheet_remedy.values import NULL_TOKENS, cell_text, is_empty

logger = logging.getLogger(__name__)

MAX_ISSUES = 100
FIRST_DATA_ROW = 2

STATUS_PENDING = "pending"
STATUS_KEPT = "kept"
STATUS_REJECTED = "rejected"
STATUS_CHANGED = "changed"
ISSUE_STATUSES = (STATUS_PENDING, STATUS_KEPT, STATUS_REJECTED, STATUS_CHANGED)

EMPTY_DISPLAY = "(empty)"
EMPTY_SUGGESTION = "N/A or Unknown"
REFERENCE_VALID = "✓ Valid"

WHITESPACE_RUN_RE = re.compile(r"\s+")
SPECIAL_CHAR_RE = re.compile(r"[^A-Za-z0-9 _.\-]")
CURRENCY_RE = re.compile(r"[$€£¥₹]")

CITY_GAZETTEER = {
    "paris": "Paris",
    "parise": "Paris",
    "london": "London",
    "sydney": "Sydney",
    "tokyo": "Tokyo",
    "singapore": "Singapore",
    "hongkong": "Hong Kong",
    "losangeles": "Los Angeles",
    "brisbane": "Brisbane",
    "melbourne": "Melbourne",
    "auckland": "Auckland",
}
CITY_THRESHOLD = 2
REFERENCE_THRESHOLD = 3
REFERENCE_SUGGESTION_LIMIT = 3


@dataclass
class Issue:
    row_number: int
    current_value: str
    suggested_fix: str
    reason: str | None = None
    severity: str | None = None
    status: str = STATUS_PENDING

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ScanResult:
    issues: list[Issue] = field(default_factory=list)
    tokens_used: int = 0
    error: str | None = None

    @property
    def degraded(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "issues": [issue.to_dict() for issue in self.issues],
            "tokens_used": self.tokens_used,
            "error": self.error,
        }


def row_number(index: int) -> int:
    return index + FIRST_DATA_ROW


def _text_cells(column_data: Sequence[Any]):
    """Yield ``(index, value)`` for string cells that are not empty."""
    for index, value in enumerate(column_data):
        if isinstance(value, str) and value:
            yield index, value


def scan_duplicates(column_data: Sequence[Any]) -> list[Issue]:
    groups: dict[str, list[int]] = {}
    for index, value in enumerate(column_data):
        key = cell_text(value)
        if key == "" or key in NULL_TOKENS:
            continue
        groups.setdefault(key, []).append(index)

    issues = []
    for key, indices in groups.items():
        if len(indices) < 2:
            continue
        first_row = row_number(indices[0])
        for index in indices[1:]:
            issues.append(
                Issue(
                    row_number=row_number(index),
                    current_value=key,
                    suggested_fix=f"Delete (keep first occurrence in row {first_row})",
                    reason=f"Duplicate of row {first_row}",
                )
            )
    issues.sort(key=lambda issue: issue.row_number)
    return issues


def scan_empty(column_data: Sequence[Any]) -> list[Issue]:
    return [
        Issue(row_number(index), EMPTY_DISPLAY, EMPTY_SUGGESTION, reason="Empty value")
        for index, value in enumerate(column_data)
        if is_empty(value)
    ]


def scan_format(
    column_data: Sequence[Any],
    subtype: str | None,
    column_type: str,
    catalog: SubtypeCatalog,
) -> list[Issue]:
    issues = []
    for index, value in enumerate(column_data):
        if is_empty(value):
            continue
        result = validate(value, subtype, column_type, catalog)
        if not result.is_issue:
            continue
        if result.needs_normalization and result.suggested_fix is not None:
            suggestion = result.suggested_fix
        else:
            suggestion = generate_fix(value, subtype, column_type, catalog)
        issues.append(
            Issue(
                row_number=row_number(index),
                current_value=cell_text(value),
                suggested_fix=suggestion,
                reason=result.reason,
                severity=result.severity,
            )
        )
    return issues


def scan_whitespace(column_data: Sequence[Any]) -> list[Issue]:
    issues = []
    for index, value in _text_cells(column_data):
        collapsed = WHITESPACE_RUN_RE.sub(" ", value).strip()
        if collapsed != value:
            issues.append(Issue(row_number(index), value, collapsed, reason="Extra whitespace"))
    return issues


def scan_capitalization(column_data: Sequence[Any]) -> list[Issue]:
    issues = []
    for index, value in _text_cells(column_data):
        outcome = smart_capitalize(value)
        if outcome["should_skip"] or outcome["suggested_fix"] == value:
            continue
        issues.append(Issue(row_number(index), value, outcome["suggested_fix"], reason=outcome["reason"]))
    return issues


def scan_special_chars(column_data: Sequence[Any]) -> list[Issue]:
    issues = []
    for index, value in _text_cells(column_data):
        found = list(dict.fromkeys(SPECIAL_CHAR_RE.findall(value)))
        if not found:
            continue
        cleaned = SPECIAL_CHAR_RE.sub("", value).strip()
        issues.append(
            Issue(row_number(index), value, cleaned, reason="Special characters: " + " ".join(found))
        )
    return issues


def canonical_city(value: str) -> str | None:
    key = WHITESPACE_RUN_RE.sub("", value.strip().lower())
    if key in CITY_GAZETTEER:
        return CITY_GAZETTEER[key]
    for candidate, name in CITY_GAZETTEER.items():
        if is_similar(key, candidate, CITY_THRESHOLD):
            return name
    return None


def scan_cities(column_data: Sequence[Any]) -> list[Issue]:
    issues = []
    for index, value in _text_cells(column_data):
        name = canonical_city(value)
        if name and name != value:
            issues.append(Issue(row_number(index), value, name, reason=f"Standardized city name: {name}"))
    return issues


def _strip_pattern(column_data: Sequence[Any], pattern: re.Pattern, reason: str) -> list[Issue]:
    issues = []
    for index, value in _text_cells(column_data):
        if pattern.search(value):
            issues.append(Issue(row_number(index), value, pattern.sub("", value).strip(), reason=reason))
    return issues


def scan_currency(column_data: Sequence[Any]) -> list[Issue]:
    return _strip_pattern(column_data, CURRENCY_RE, "Currency symbol in numeric value")


def scan_commas(column_data: Sequence[Any]) -> list[Issue]:
    return _strip_pattern(column_data, re.compile(","), "Thousands separator in numeric value")


def scan_reference(
    column_data: Sequence[Any],
    reference_index: Mapping[str, str],
    list_all: bool = False,
) -> list[Issue]:
    """Compare values case-insensitively against ``reference_index`` (lowercase -> canonical)."""
    issues = []
    for index, value in enumerate(column_data):
        if is_empty(value) or not cell_text(value).strip():
            if list_all:
                issues.append(Issue(row_number(index), EMPTY_DISPLAY, "N/A", reason="Empty value"))
            continue
        text = cell_text(value).strip()
        lowered = text.lower()
        if lowered in reference_index:
            if list_all:
                issues.append(
                    Issue(row_number(index), text, REFERENCE_VALID, reason="Found in reference data", status=STATUS_KEPT)
                )
            continue
        matches = similar_values(lowered, reference_index.keys(), REFERENCE_THRESHOLD, REFERENCE_SUGGESTION_LIMIT)
        if matches:
            names = [reference_index[match] for match in matches]
            issues.append(
                Issue(row_number(index), text, names[0], reason="Not in reference data. Similar: " + ", ".join(names))
            )
        else:
            issues.append(
                Issue(
                    row_number(index),
                    text,
                    MANUAL_CHECK_REQUIRED,
                    reason="Not found in reference data and no similar matches",
                )
            )
    return issues


def _issue_from_suggestion(entry: Mapping[str, Any], column_data: Sequence[Any]) -> Issue | None:
    try:
        number = int(entry["rowNumber"])
    except (KeyError, TypeError, ValueError):
        return None
    index = number - FIRST_DATA_ROW
    if not 0 <= index < len(column_data):
        logger.debug("Dropping AI suggestion for row %s outside the data", number)
        return None
    actual = cell_text(column_data[index])
    claimed = entry.get("currentValue")
    claimed_text = cell_text(claimed).strip()
    if claimed_text == EMPTY_DISPLAY:
        claimed_text = ""
    if claimed is not None and claimed_text != actual.strip():
        logger.debug("Dropping AI suggestion for row %d: value does not match the sheet", number)
        return None
    return Issue(
        row_number=number,
        current_value=actual,
        suggested_fix=cell_text(entry.get("suggestedFix")),
        reason=entry.get("reason"),
    )


def scan_ai(column_name: str, column_data: Sequence[Any], ai_suggester) -> ScanResult:
    if ai_suggester is None or not getattr(ai_suggester, "available", True):
        raise AIUnavailableError("AI assistant is not configured.")
    suggestion = ai_suggester.suggest(column_name, column_data)
    issues = [
        issue
        for issue in (_issue_from_suggestion(entry, column_data) for entry in suggestion.issues)
        if issue is not None
    ]
    return ScanResult(issues=issues[:MAX_ISSUES], tokens_used=suggestion.tokens_used, error=suggestion.error)


SIMPLE_STRATEGIES: dict[str, Callable[[Sequence[Any]], list[Issue]]] = {
    DUPLICATES: scan_duplicates,
    EMPTY: scan_empty,
    WHITESPACE: scan_whitespace,
    CAPITALIZATION: scan_capitalization,
    SPECIAL_CHARS: scan_special_chars,
    CITY_NORMALIZATION: scan_cities,
    CURRENCY: scan_currency,
    COMMAS: scan_commas,
}

SUPPORTED_ACTIONS = (*SIMPLE_STRATEGIES, FORMAT_VALIDATION, REFERENCE_VALIDATION, AI_VALIDATION)


def scan(
    action_type: str,
    column_name: str,
    column_type: str,
    subtype: str | None,
    column_data: Sequence[Any],
    *,
    reference_index: Mapping[str, str] | None = None,
    ai_suggester=None,
    list_all: bool = False,
    catalog: SubtypeCatalog = DEFAULT_CATALOG,
) -> ScanResult:
    """Find the offending rows of one column for one action.

    Results are capped at ``MAX_ISSUES``. Reference and AI scans degrade to a
    result carrying ``error`` when their collaborator is missing or fails.
    """
    logger.debug("Scanning %s for %s issues (%d rows)", column_name, action_type, len(column_data))

    if action_type in SIMPLE_STRATEGIES:
        issues = SIMPLE_STRATEGIES[action_type](column_data)
    elif action_type == FORMAT_VALIDATION:
        subtype, _ = resolve_subtype(column_name, column_type, subtype, catalog)
        issues = scan_format(column_data, subtype, column_type, catalog)
    elif action_type == REFERENCE_VALIDATION:
        if reference_index is None:
            return ScanResult(error=f"No reference data available for column {column_name}.")
        issues = scan_reference(column_data, reference_index, list_all=list_all)
    elif action_type == AI_VALIDATION:
        try:
            result = scan_ai(column_name, column_data, ai_suggester)
        except ExternalServiceError as exc:
            logger.warning("AI validation for %s degraded: %s", column_name, exc)
            return ScanResult(error=str(exc))
        logger.info("AI validation for %s returned %d issues", column_name, len(result.issues))
        return result
    else:
        raise UnsupportedActionError(action_type)

    return ScanResult(issues=issues[:MAX_ISSUES])
