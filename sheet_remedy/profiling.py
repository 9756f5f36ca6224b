"""Column profiling: inferred type, emptiness, duplicates and user flags."""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import asdict, dataclass, replace
from datetime import date, datetime, time
from typing import Any, Iterable, Mapping, Sequence

from sheet_remedy.catalog import ALPHANUMERIC, BOOLEAN, COLUMN_TYPES, DATE, NUMBER, STRING
from sheet_remedy.errors import InputError, UnknownColumnError
from sheet_remedy.values import cell_text, is_empty, parse_datetime, parse_number

BOOLEAN_WORDS = {"true", "false", "yes", "no", "y", "n"}
ALPHANUMERIC_RE = re.compile(r"[a-zA-Z0-9]+")
HAS_LETTER_RE = re.compile(r"[a-zA-Z]")
HAS_DIGIT_RE = re.compile(r"[0-9]")

BOOLEAN_SHARE = 0.8
NUMBER_SHARE = 0.8
DATE_SHARE = 0.8
ALPHANUMERIC_SHARE = 0.5


@dataclass(frozen=True)
class ColumnProfile:
    name: str
    inferred_type: str
    total_records: int
    empty_records: int
    duplicate_records: int
    unique_value_count: int
    is_unique_qualifier: bool = False
    is_reference_data: bool = False

    @property
    def non_empty_records(self) -> int:
        return self.total_records - self.empty_records

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ColumnConfig:
    """User choices from the configuration phase for one column."""

    name: str
    column_type: str
    subtype: str | None = None
    auto_detect: bool = True
    is_unique_qualifier: bool = False
    is_reference_data: bool = False
    reference_table: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _is_boolean_like(value: Any) -> bool:
    if isinstance(value, bool):
        return True
    return isinstance(value, str) and value.strip().lower() in BOOLEAN_WORDS


def _is_date_like(value: Any) -> bool:
    if isinstance(value, (datetime, date, time)):
        return True
    if not isinstance(value, str):
        return False
    return parse_datetime(value) is not None


def _is_alphanumeric_token(value: Any) -> bool:
    text = cell_text(value)
    return bool(
        ALPHANUMERIC_RE.fullmatch(text) and HAS_LETTER_RE.search(text) and HAS_DIGIT_RE.search(text)
    )


def detect_column_type(values: Sequence[Any]) -> str:
    present = [value for value in values if not is_empty(value)]
    if not present:
        return STRING
    total = len(present)

    if sum(_is_boolean_like(value) for value in present) / total > BOOLEAN_SHARE:
        return BOOLEAN
    if sum(parse_number(value) is not None for value in present) / total > NUMBER_SHARE:
        return NUMBER
    if sum(_is_date_like(value) for value in present) / total > DATE_SHARE:
        return DATE
    if sum(_is_alphanumeric_token(value) for value in present) / total > ALPHANUMERIC_SHARE:
        return ALPHANUMERIC
    return STRING


def profile_column(name: str, values: Sequence[Any]) -> ColumnProfile:
    counts = Counter(cell_text(value) for value in values if not is_empty(value))
    empty = sum(1 for value in values if is_empty(value))
    duplicates = sum(count - 1 for count in counts.values() if count > 1)
    return ColumnProfile(
        name=name,
        inferred_type=detect_column_type(values),
        total_records=len(values),
        empty_records=empty,
        duplicate_records=duplicates,
        unique_value_count=len(counts),
    )


def completeness_score(profiles: Iterable[ColumnProfile]) -> int:
    profiles = list(profiles)
    total_cells = sum(profile.total_records for profile in profiles)
    if total_cells == 0:
        return 100
    empty_cells = sum(profile.empty_records for profile in profiles)
    return int((total_cells - empty_cells) / total_cells * 100 + 0.5)


def profile_table(columns: Mapping[str, Sequence[Any]]) -> dict[str, Any]:
    profiles = [profile_column(name, values) for name, values in columns.items()]
    row_count = max((profile.total_records for profile in profiles), default=0)
    return {
        "total_records": row_count,
        "total_columns": len(profiles),
        "completeness_score": completeness_score(profiles),
        "columns": profiles,
    }


def default_config(profile: ColumnProfile) -> ColumnConfig:
    return ColumnConfig(name=profile.name, column_type=profile.inferred_type)


def apply_config(profile: ColumnProfile, config: ColumnConfig) -> ColumnProfile:
    if config.name != profile.name:
        raise UnknownColumnError(config.name)
    if config.column_type not in COLUMN_TYPES:
        raise InputError(f"Unsupported column type for {config.name}: {config.column_type}")
    return replace(
        profile,
        is_unique_qualifier=config.is_unique_qualifier,
        is_reference_data=config.is_reference_data,
    )
