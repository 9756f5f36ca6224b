"""Per-cell validation against a subtype rule or a generic column type."""

from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import date, datetime
from typing import Any

from sheet_remedy.catalog import (
    BOOLEAN,
    BOOLEAN_FALSE_WORDS,
    BOOLEAN_TRUE_WORDS,
    DATE,
    DEFAULT_CATALOG,
    FIX_MANUAL,
    NUMBER,
    BooleanRule,
    DateRule,
    NumberRule,
    StringRule,
    SubtypeCatalog,
    SubtypeRule,
)
from sheet_remedy.values import cell_text, decimal_places, is_empty, parse_datetime, parse_number

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"


@dataclass(frozen=True)
class Validation:
    valid: bool
    warning: bool = False
    needs_normalization: bool = False
    is_empty: bool = False
    reason: str | None = None
    severity: str | None = None
    suggested_fix: str | None = None

    @property
    def is_issue(self) -> bool:
        return not self.valid or self.warning or self.needs_normalization

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


VALID = Validation(valid=True)
EMPTY = Validation(valid=True, is_empty=True)


def _invalid(reason: str, fix: str | None, severity: str = SEVERITY_ERROR) -> Validation:
    return Validation(valid=False, reason=reason, severity=severity, suggested_fix=fix)


def validate_string(text: str, rule: StringRule) -> Validation:
    length = len(text)
    if length < rule.min_length:
        return _invalid(rule.reason_too_short.format(length=length), rule.fix)
    if length > rule.max_length:
        return _invalid(rule.reason_too_long.format(length=length), rule.fix)
    if not rule.matches(text):
        return _invalid(rule.reason_invalid_format or f"Invalid {rule.name} format.", rule.fix)
    if rule.validate_octets:
        for octet in text.split("."):
            if not 0 <= int(octet) <= 255:
                return _invalid((rule.reason_invalid_octet or "").format(octet=octet), FIX_MANUAL)
    return VALID


def validate_number(value: Any, rule: NumberRule) -> Validation:
    text = cell_text(value).strip()
    number = parse_number(value)
    if number is None:
        return _invalid(f"Value must be a number. Found: {text}", FIX_MANUAL)
    if rule.decimals == 0 and not number.is_integer():
        template = rule.reason_not_integer or "Value must be a whole number. Found: {value}."
        return _invalid(template.format(value=text), rule.fix)
    if decimal_places(text) > rule.decimals:
        template = rule.reason_too_many_decimals or "Too many decimal places. Found: {value}."
        return _invalid(template.format(value=text), rule.fix, SEVERITY_WARNING)
    if number < 0:
        if not rule.allow_negative:
            template = rule.reason_negative or "Value cannot be negative. Found: {value}."
            return _invalid(template.format(value=text), rule.fix)
        if rule.reason_negative_warning:
            return Validation(
                valid=True,
                warning=True,
                reason=rule.reason_negative_warning.format(value=text),
                severity=SEVERITY_WARNING,
            )
    out_of_range = (rule.min_value is not None and number < rule.min_value) or (
        rule.max_value is not None and number > rule.max_value
    )
    if out_of_range:
        template = rule.reason_out_of_range or "Value out of range. Found: {value}."
        return _invalid(template.format(value=text), rule.fix)
    return VALID


def _date_text(value: Any, rule: DateRule) -> str:
    # Typed cells carry no format of their own; render them in the rule's format.
    if isinstance(value, datetime):
        return value.strftime(rule.parse_format)
    if isinstance(value, date) and "%Y" in rule.parse_format:
        return datetime.combine(value, datetime.min.time()).strftime(rule.parse_format)
    return cell_text(value).strip()


def validate_date(value: Any, rule: DateRule) -> Validation:
    text = _date_text(value, rule)
    if not rule.matches(text):
        return _invalid(rule.reason_invalid_format.format(value=text), rule.fix)
    try:
        datetime.strptime(text, rule.parse_format)
    except ValueError:
        return _invalid(rule.reason_invalid_value.format(value=text), rule.fix)
    return VALID


def validate_boolean(value: Any, rule: BooleanRule) -> Validation:
    text = cell_text(value)
    canonical = rule.canonical(text)
    if canonical is None:
        return _invalid(rule.reason_invalid.format(value=text), FIX_MANUAL)
    if text != canonical:
        return Validation(
            valid=True,
            needs_normalization=True,
            reason=f'Boolean value "{text}" should be normalized to "{canonical}".',
            severity=SEVERITY_WARNING,
            suggested_fix=canonical,
        )
    return VALID


def validate_generic(value: Any, column_type: str) -> Validation:
    text = cell_text(value).strip()
    if column_type == NUMBER:
        number = parse_number(value)
        if number is None:
            return _invalid(f"Value must be a number. Found: {text}", FIX_MANUAL)
        if number < 0:
            return Validation(
                valid=True,
                warning=True,
                reason=f"Negative value detected: {text}. Verify this is intentional.",
                severity=SEVERITY_WARNING,
            )
    elif column_type == DATE:
        if parse_datetime(value) is None:
            return _invalid(f"Invalid date format. Found: {text}", FIX_MANUAL)
    elif column_type == BOOLEAN:
        lowered = text.lower()
        if lowered not in BOOLEAN_TRUE_WORDS and lowered not in BOOLEAN_FALSE_WORDS:
            return _invalid(f"Value must be a boolean (true/false, yes/no, 1/0). Found: {text}.", FIX_MANUAL)
    return VALID


def validate_with_rule(value: Any, rule: SubtypeRule) -> Validation:
    if isinstance(rule, StringRule):
        return validate_string(cell_text(value), rule)
    if isinstance(rule, NumberRule):
        return validate_number(value, rule)
    if isinstance(rule, DateRule):
        return validate_date(value, rule)
    if isinstance(rule, BooleanRule):
        return validate_boolean(value, rule)
    raise TypeError(f"Unsupported rule type: {type(rule).__name__}")


def validate(
    value: Any,
    subtype_id: str | None,
    column_type: str,
    catalog: SubtypeCatalog = DEFAULT_CATALOG,
) -> Validation:
    if is_empty(value):
        return EMPTY
    rule = catalog.get(subtype_id)
    if rule is None:
        return validate_generic(value, column_type)
    return validate_with_rule(value, rule)
