"""Dataset quality score across uniqueness, validity, consistency and accuracy."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Mapping, Sequence

from sheet_remedy.capitalization import smart_capitalize
from sheet_remedy.catalog import ALPHANUMERIC, DEFAULT_CATALOG, STRING, SubtypeCatalog
from sheet_remedy.detector import detect_subtype
from sheet_remedy.profiling import ColumnConfig
from sheet_remedy.scanner import SPECIAL_CHAR_RE, WHITESPACE_RUN_RE
from sheet_remedy.validator import validate
from sheet_remedy.values import NULL_TOKENS, cell_text, is_empty

WEIGHTS = {"uniqueness": 0.30, "validity": 0.30, "consistency": 0.20, "accuracy": 0.20}
WEIGHTS_WITHOUT_REFERENCE = {"uniqueness": 0.375, "validity": 0.375, "consistency": 0.25, "accuracy": 0.0}


@dataclass
class Dimension:
    score: float
    weight: float
    issues: int
    base: int

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["score"] = int(self.score + 0.5)
        return data


def dimension_score(issues: int, base: int) -> float:
    if base <= 0:
        return 100.0
    return max(0.0, 100.0 - issues / base * 100.0)


def count_duplicates(values: Sequence[Any]) -> int:
    seen: set[str] = set()
    duplicates = 0
    for value in values:
        key = cell_text(value)
        if key == "" or key in NULL_TOKENS:
            continue
        if key in seen:
            duplicates += 1
        else:
            seen.add(key)
    return duplicates


def count_validity_issues(
    values: Sequence[Any],
    config: ColumnConfig,
    catalog: SubtypeCatalog = DEFAULT_CATALOG,
) -> int:
    subtype = config.subtype
    if not subtype and config.auto_detect:
        subtype = detect_subtype(config.name, config.column_type, catalog)
    return sum(
        1
        for value in values
        if not is_empty(value) and validate(value, subtype, config.column_type, catalog).is_issue
    )


def has_consistency_issue(value: Any) -> bool:
    if not isinstance(value, str) or not value:
        return False
    if WHITESPACE_RUN_RE.sub(" ", value).strip() != value:
        return True
    outcome = smart_capitalize(value)
    if not outcome["should_skip"] and outcome["suggested_fix"] != value:
        return True
    return SPECIAL_CHAR_RE.search(value) is not None


def score_quality(
    columns: Mapping[str, Sequence[Any]],
    configs: Mapping[str, ColumnConfig],
    accuracy_issues: Mapping[str, int] | None = None,
    catalog: SubtypeCatalog = DEFAULT_CATALOG,
) -> dict[str, Any]:
    """Weighted 0-100 score; accuracy weight is redistributed when no reference columns exist.

    ``accuracy_issues`` maps reference-data columns to the number of values a
    reference scan reported as mismatches.
    """
    accuracy_issues = accuracy_issues or {}
    totals = {name: 0 for name in WEIGHTS}
    bases = {name: 0 for name in WEIGHTS}

    for name, values in columns.items():
        config = configs.get(name)
        if config is None:
            continue
        non_empty = [value for value in values if not is_empty(value)]
        if config.is_unique_qualifier:
            totals["uniqueness"] += count_duplicates(values)
            bases["uniqueness"] += len(values)
        totals["validity"] += count_validity_issues(values, config, catalog)
        bases["validity"] += len(non_empty)
        if config.column_type in (STRING, ALPHANUMERIC):
            totals["consistency"] += sum(1 for value in values if has_consistency_issue(value))
            bases["consistency"] += sum(1 for value in non_empty if isinstance(value, str))
        if config.is_reference_data:
            totals["accuracy"] += accuracy_issues.get(name, 0)
            bases["accuracy"] += len(non_empty)

    weights = WEIGHTS if bases["accuracy"] > 0 else WEIGHTS_WITHOUT_REFERENCE
    dimensions = {
        name: Dimension(dimension_score(totals[name], bases[name]), weights[name], totals[name], bases[name])
        for name in WEIGHTS
    }
    total = sum(dimension.score * dimension.weight for dimension in dimensions.values())
    return {
        "quality_score": int(total + 0.5),
        "breakdown": {name: dimension.to_dict() for name, dimension in dimensions.items()},
        "total_issues": sum(totals.values()),
    }
