"""
catalog.py — Immutable registry of column subtypes and their format rules.

Four disjoint families (string, number, date, boolean) keyed by subtype id.
The detector, validator and fix generator all take a ``SubtypeCatalog`` so a
custom registry can be injected; ``DEFAULT_CATALOG`` carries the ServiceNow
CMDB field rules.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import ClassVar, Iterable, Iterator, Mapping, Union

from sheet_remedy.errors import UnknownSubtypeError

STRING = "string"
NUMBER = "number"
DATE = "date"
BOOLEAN = "boolean"
ALPHANUMERIC = "alphanumeric"

COLUMN_TYPES = (STRING, NUMBER, DATE, BOOLEAN, ALPHANUMERIC)
FAMILIES = (STRING, NUMBER, DATE, BOOLEAN)
FAMILY_FOR_COLUMN_TYPE = {
    STRING: STRING,
    ALPHANUMERIC: STRING,
    NUMBER: NUMBER,
    DATE: DATE,
    BOOLEAN: BOOLEAN,
}

FIX_MANUAL = "manual"
BOOLEAN_TRUE_WORDS = ("true", "1", "yes", "y", "on")
BOOLEAN_FALSE_WORDS = ("false", "0", "no", "n", "off")


@dataclass(frozen=True)
class StringRule:
    family: ClassVar[str] = STRING

    id: str
    name: str
    min_length: int
    max_length: int
    pattern: re.Pattern | None
    reason_too_short: str
    reason_too_long: str
    reason_invalid_format: str | None
    fix: str
    validate_octets: bool = False
    reason_invalid_octet: str | None = None

    def matches(self, value: str) -> bool:
        return self.pattern is None or self.pattern.fullmatch(value) is not None


@dataclass(frozen=True)
class NumberRule:
    family: ClassVar[str] = NUMBER

    id: str
    name: str
    min_value: float | None
    max_value: float | None
    decimals: int
    allow_negative: bool
    fix: str
    reason_not_integer: str | None = None
    reason_out_of_range: str | None = None
    reason_negative: str | None = None
    reason_negative_warning: str | None = None
    reason_too_many_decimals: str | None = None


@dataclass(frozen=True)
class DateRule:
    family: ClassVar[str] = DATE

    id: str
    name: str
    display_format: str
    pattern: re.Pattern
    parse_format: str
    reason_invalid_format: str
    reason_invalid_value: str
    fix: str

    def matches(self, value: str) -> bool:
        return self.pattern.fullmatch(value) is not None


@dataclass(frozen=True)
class BooleanRule:
    family: ClassVar[str] = BOOLEAN

    id: str
    name: str
    output_true: str
    output_false: str
    reason_invalid: str
    true_values: tuple[str, ...] = BOOLEAN_TRUE_WORDS
    false_values: tuple[str, ...] = BOOLEAN_FALSE_WORDS
    fix: str = "normalize-boolean"

    def canonical(self, value: str) -> str | None:
        lowered = value.strip().lower()
        if lowered in self.true_values:
            return self.output_true
        if lowered in self.false_values:
            return self.output_false
        return None


SubtypeRule = Union[StringRule, NumberRule, DateRule, BooleanRule]


class SubtypeCatalog:
    """Read-only registry; subtype ids must be unique across all families."""

    def __init__(self, rules: Iterable[SubtypeRule]) -> None:
        by_id: dict[str, SubtypeRule] = {}
        families: dict[str, dict[str, SubtypeRule]] = {family: {} for family in FAMILIES}
        for rule in rules:
            if rule.id in by_id:
                raise ValueError(
                    f"Subtype id '{rule.id}' is declared in both the {by_id[rule.id].family} "
                    f"and {rule.family} families"
                )
            by_id[rule.id] = rule
            families[rule.family][rule.id] = rule
        self._by_id = MappingProxyType(by_id)
        self._families = MappingProxyType(
            {family: MappingProxyType(entries) for family, entries in families.items()}
        )

    def __contains__(self, subtype_id: object) -> bool:
        return subtype_id in self._by_id

    def __iter__(self) -> Iterator[str]:
        return iter(self._by_id)

    def __len__(self) -> int:
        return len(self._by_id)

    def get(self, subtype_id: str | None) -> SubtypeRule | None:
        if not subtype_id:
            return None
        return self._by_id.get(subtype_id)

    def require(self, subtype_id: str) -> SubtypeRule:
        rule = self.get(subtype_id)
        if rule is None:
            raise UnknownSubtypeError(subtype_id)
        return rule

    def family_of(self, subtype_id: str) -> str | None:
        rule = self.get(subtype_id)
        return rule.family if rule else None

    def family(self, name: str) -> Mapping[str, SubtypeRule]:
        return self._families[name]

    def subtypes_for(self, column_type: str) -> Mapping[str, SubtypeRule]:
        family = FAMILY_FOR_COLUMN_TYPE.get(column_type)
        if family is None:
            return MappingProxyType({})
        return self._families[family]

    def is_valid_for(self, subtype_id: str, column_type: str) -> bool:
        return subtype_id in self.subtypes_for(column_type)

    def describe(self, subtype_id: str) -> str:
        return describe_rule(self.require(subtype_id))


def _format_bound(value: float | None) -> str:
    if value is None:
        return "unbounded"
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,}"


def describe_rule(rule: SubtypeRule) -> str:
    if isinstance(rule, StringRule):
        if rule.min_length == rule.max_length:
            size = f"exactly {rule.max_length} characters"
        else:
            size = f"{rule.min_length}-{rule.max_length} characters"
        shape = ", format checked" if rule.pattern is not None else ""
        return f"{rule.name} ({size}{shape})"
    if isinstance(rule, NumberRule):
        places = "whole numbers" if rule.decimals == 0 else f"up to {rule.decimals} decimal places"
        return (
            f"{rule.name} (range {_format_bound(rule.min_value)} to "
            f"{_format_bound(rule.max_value)}, {places})"
        )
    if isinstance(rule, DateRule):
        return f"{rule.name} (format {rule.display_format})"
    return f"{rule.name} (normalized to {rule.output_true}/{rule.output_false})"


SERIAL_PATTERN = re.compile(r"[A-Za-z0-9\-_]+")

STRING_RULES = (
    StringRule(
        id="serial-number",
        name="Serial Number",
        min_length=1,
        max_length=40,
        pattern=SERIAL_PATTERN,
        reason_too_short="Serial Number cannot be empty. Found {length}.",
        reason_too_long="Serial Number should not exceed 40 characters (ServiceNow default). Found {length}.",
        reason_invalid_format="Serial Number should only contain letters, numbers, hyphens, and underscores.",
        fix="clean",
    ),
    StringRule(
        id="mac-address",
        name="MAC Address",
        min_length=17,
        max_length=17,
        pattern=re.compile(r"([0-9A-Fa-f]{2}:){5}[0-9A-Fa-f]{2}"),
        reason_too_short="MAC Address must be exactly 17 characters (format XX:XX:XX:XX:XX:XX). Found {length}.",
        reason_too_long="MAC Address must be exactly 17 characters (format XX:XX:XX:XX:XX:XX). Found {length}.",
        reason_invalid_format="MAC Address must be 6 hex pairs separated by colons (e.g., 00:1A:2B:3C:4D:5E).",
        fix="format-mac",
    ),
    StringRule(
        id="ip-address-v4",
        name="IP Address (IPv4)",
        min_length=7,
        max_length=15,
        pattern=re.compile(r"([0-9]{1,3}\.){3}[0-9]{1,3}"),
        reason_too_short="IPv4 Address minimum is 7 characters (e.g., 0.0.0.0). Found {length}.",
        reason_too_long="IPv4 Address maximum is 15 characters (e.g., 255.255.255.255). Found {length}.",
        reason_invalid_format="Invalid IPv4 address. Must be 4 numbers (0-255) separated by dots.",
        fix=FIX_MANUAL,
        validate_octets=True,
        reason_invalid_octet="Invalid IPv4 address. Each octet must be between 0 and 255. Found invalid value: {octet}.",
    ),
    StringRule(
        id="ip-address-v6",
        name="IP Address (IPv6)",
        min_length=3,
        max_length=39,
        pattern=re.compile(r"([0-9a-fA-F]{0,4}:){2,7}[0-9a-fA-F]{0,4}"),
        reason_too_short="IPv6 Address minimum is 3 characters (e.g., ::1). Found {length}.",
        reason_too_long="IPv6 Address maximum is 39 characters. Found {length}.",
        reason_invalid_format="Invalid IPv6 address format.",
        fix=FIX_MANUAL,
    ),
    StringRule(
        id="hostname",
        name="Hostname",
        min_length=1,
        max_length=63,
        pattern=re.compile(r"[A-Za-z0-9][A-Za-z0-9\-]*[A-Za-z0-9]|[A-Za-z0-9]"),
        reason_too_short="Hostname cannot be empty. Found {length}.",
        reason_too_long="Hostname cannot exceed 63 characters (DNS label limit per RFC 1035). Found {length}.",
        reason_invalid_format=(
            "Hostname can only contain letters, numbers, and hyphens. "
            "Cannot start or end with hyphen. No spaces allowed."
        ),
        fix="clean-hostname",
    ),
    StringRule(
        id="asset-tag",
        name="Asset Tag",
        min_length=1,
        max_length=20,
        pattern=SERIAL_PATTERN,
        reason_too_short="Asset Tag cannot be empty. Found {length}.",
        reason_too_long="Asset Tag should not exceed 20 characters (typical org standard). Found {length}.",
        reason_invalid_format="Asset Tag should only contain letters, numbers, hyphens, and underscores.",
        fix="clean",
    ),
    StringRule(
        id="location",
        name="Location",
        min_length=1,
        max_length=100,
        pattern=None,
        reason_too_short="Location cannot be empty. Found {length}.",
        reason_too_long="Location exceeds 100 character limit (ServiceNow cmn_location.name max). Found {length}.",
        reason_invalid_format=None,
        fix="truncate",
    ),
    StringRule(
        id="name",
        name="Name",
        min_length=1,
        max_length=100,
        pattern=None,
        reason_too_short="Name cannot be empty. Found {length}.",
        reason_too_long="Name exceeds 100 character limit. Found {length}.",
        reason_invalid_format=None,
        fix="truncate",
    ),
    StringRule(
        id="model",
        name="Model",
        min_length=1,
        max_length=100,
        pattern=None,
        reason_too_short="Model cannot be empty. Found {length}.",
        reason_too_long="Model exceeds 100 character limit. Found {length}.",
        reason_invalid_format=None,
        fix="truncate",
    ),
    StringRule(
        id="manufacturer",
        name="Manufacturer",
        min_length=1,
        max_length=100,
        pattern=None,
        reason_too_short="Manufacturer cannot be empty. Found {length}.",
        reason_too_long="Manufacturer exceeds 100 character limit. Found {length}.",
        reason_invalid_format=None,
        fix="truncate",
    ),
    StringRule(
        id="os-version",
        name="OS Version",
        min_length=1,
        max_length=100,
        pattern=None,
        reason_too_short="OS Version cannot be empty. Found {length}.",
        reason_too_long="OS Version exceeds 100 character limit. Found {length}.",
        reason_invalid_format=None,
        fix="truncate",
    ),
    StringRule(
        id="fqdn",
        name="FQDN",
        min_length=5,
        max_length=255,
        pattern=re.compile(r"[a-zA-Z0-9][a-zA-Z0-9\-.]*[a-zA-Z0-9]"),
        reason_too_short="FQDN should be at least 5 characters (e.g., a.b.c). Found {length}.",
        reason_too_long="FQDN cannot exceed 255 characters (DNS limit). Found {length}.",
        reason_invalid_format=(
            "FQDN can only contain letters, numbers, hyphens, and dots. "
            "Must start and end with alphanumeric."
        ),
        fix="clean-fqdn",
    ),
    StringRule(
        id="uuid",
        name="UUID/GUID",
        min_length=36,
        max_length=36,
        pattern=re.compile(r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"),
        reason_too_short="UUID must be exactly 36 characters (format 8-4-4-4-12 hex). Found {length}.",
        reason_too_long="UUID must be exactly 36 characters (format 8-4-4-4-12 hex). Found {length}.",
        reason_invalid_format="UUID must be in format XXXXXXXX-XXXX-XXXX-XXXX-XXXXXXXXXXXX (hex characters only).",
        fix=FIX_MANUAL,
    ),
    StringRule(
        id="sys-id",
        name="ServiceNow sys_id",
        min_length=32,
        max_length=32,
        pattern=re.compile(r"[0-9a-fA-F]{32}"),
        reason_too_short="sys_id must be exactly 32 hex characters. Found {length}.",
        reason_too_long="sys_id must be exactly 32 hex characters. Found {length}.",
        reason_invalid_format="sys_id must contain only hexadecimal characters (0-9, a-f).",
        fix=FIX_MANUAL,
    ),
    StringRule(
        id="short-description",
        name="Short Description",
        min_length=1,
        max_length=160,
        pattern=re.compile(r"[^\n\r]*"),
        reason_too_short="Short Description cannot be empty. Found {length}.",
        reason_too_long="Short Description exceeds ServiceNow 160 character limit. Found {length}.",
        reason_invalid_format="Short Description cannot contain line breaks. Use Description field for multi-line text.",
        fix="truncate",
    ),
    StringRule(
        id="description",
        name="Description",
        min_length=1,
        max_length=4000,
        pattern=None,
        reason_too_short="Description cannot be empty. Found {length}.",
        reason_too_long="Description exceeds ServiceNow 4000 character limit. Found {length}.",
        reason_invalid_format=None,
        fix="truncate",
    ),
    StringRule(
        id="email",
        name="Email Address",
        min_length=5,
        max_length=100,
        pattern=re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+"),
        reason_too_short="Email Address should be at least 5 characters (e.g., a@b.c). Found {length}.",
        reason_too_long="Email Address should not exceed 100 characters. Found {length}.",
        reason_invalid_format="Invalid email format. Must contain @ and a valid domain (e.g., user@domain.com).",
        fix=FIX_MANUAL,
    ),
    StringRule(
        id="url",
        name="URL",
        min_length=10,
        max_length=1000,
        pattern=re.compile(r"https?://.+", re.DOTALL),
        reason_too_short="URL should be at least 10 characters. Found {length}.",
        reason_too_long="URL should not exceed 1000 characters. Found {length}.",
        reason_invalid_format="URL must start with http:// or https://",
        fix="add-protocol",
    ),
    StringRule(
        id="phone-number",
        name="Phone Number",
        min_length=8,
        max_length=20,
        pattern=re.compile(r"\+?[0-9\s\-()]+"),
        reason_too_short="Phone Number should be at least 8 characters. Found {length}.",
        reason_too_long="Phone Number should not exceed 20 characters (E.164 format). Found {length}.",
        reason_invalid_format="Phone Number should only contain digits, +, -, (, ), and spaces.",
        fix="clean-phone",
    ),
)

NUMBER_RULES = (
    NumberRule(
        id="integer",
        name="Integer",
        min_value=-2147483647,
        max_value=2147483647,
        decimals=0,
        allow_negative=True,
        fix="round",
        reason_not_integer="Value must be a whole number (no decimals). Found: {value}.",
        reason_out_of_range="Integer must be between -2,147,483,647 and 2,147,483,647. Found: {value}.",
        reason_negative_warning="Negative value detected: {value}. Verify this is intentional.",
    ),
    NumberRule(
        id="positive-integer",
        name="Positive Integer",
        min_value=0,
        max_value=2147483647,
        decimals=0,
        allow_negative=False,
        fix="abs-round",
        reason_not_integer="Value must be a whole number (no decimals). Found: {value}.",
        reason_out_of_range="Positive Integer must be between 0 and 2,147,483,647. Found: {value}.",
        reason_negative="Value cannot be negative. Found: {value}.",
    ),
    NumberRule(
        id="port-number",
        name="Port Number",
        min_value=0,
        max_value=65535,
        decimals=0,
        allow_negative=False,
        fix=FIX_MANUAL,
        reason_not_integer="Port number must be a whole number. Found: {value}.",
        reason_out_of_range="Port number must be between 0 and 65535. Found: {value}.",
        reason_negative="Port number cannot be negative. Found: {value}.",
    ),
    NumberRule(
        id="percentage",
        name="Percentage",
        min_value=0,
        max_value=100,
        decimals=2,
        allow_negative=False,
        fix="clamp-round",
        reason_out_of_range="Percentage must be between 0 and 100. Found: {value}.",
        reason_negative="Percentage cannot be negative. Found: {value}.",
        reason_too_many_decimals="Percentage should have at most 2 decimal places. Found: {value}.",
    ),
    NumberRule(
        id="currency",
        name="Currency",
        min_value=None,
        max_value=None,
        decimals=2,
        allow_negative=True,
        fix="round-2",
        reason_too_many_decimals="Currency should have exactly 2 decimal places. Found: {value}.",
        reason_negative_warning="Negative currency value detected: {value}. Verify this is intentional.",
    ),
    NumberRule(
        id="decimal",
        name="Decimal",
        min_value=None,
        max_value=None,
        decimals=2,
        allow_negative=True,
        fix="round-2",
        reason_too_many_decimals="Decimal should have at most 2 decimal places. Found: {value}.",
        reason_negative_warning="Negative value detected: {value}. Verify this is intentional.",
    ),
    NumberRule(
        id="memory-mb",
        name="Memory (MB)",
        min_value=0,
        max_value=16777216,
        decimals=0,
        allow_negative=False,
        fix="abs-round",
        reason_not_integer="Memory (MB) must be a whole number. Found: {value}.",
        reason_out_of_range="Memory (MB) must be between 0 and 16,777,216. Found: {value}.",
        reason_negative="Memory cannot be negative. Found: {value}.",
    ),
    NumberRule(
        id="memory-gb",
        name="Memory (GB)",
        min_value=0,
        max_value=16384,
        decimals=1,
        allow_negative=False,
        fix="abs-round-1",
        reason_out_of_range="Memory (GB) must be between 0 and 16,384. Found: {value}.",
        reason_negative="Memory cannot be negative. Found: {value}.",
        reason_too_many_decimals="Memory (GB) should have at most 1 decimal place. Found: {value}.",
    ),
    NumberRule(
        id="cpu-count",
        name="CPU Count",
        min_value=1,
        max_value=1024,
        decimals=0,
        allow_negative=False,
        fix=FIX_MANUAL,
        reason_not_integer="CPU Count must be a whole number. Found: {value}.",
        reason_out_of_range="CPU Count must be between 1 and 1024. Found: {value}.",
        reason_negative="CPU Count cannot be negative or zero. Found: {value}.",
    ),
    NumberRule(
        id="disk-gb",
        name="Disk Size (GB)",
        min_value=0,
        max_value=1048576,
        decimals=0,
        allow_negative=False,
        fix="abs-round",
        reason_not_integer="Disk Size must be a whole number. Found: {value}.",
        reason_out_of_range="Disk Size (GB) must be between 0 and 1,048,576. Found: {value}.",
        reason_negative="Disk Size cannot be negative. Found: {value}.",
    ),
)

DATETIME_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2} [0-9]{2}:[0-9]{2}:[0-9]{2}")

DATE_RULES = (
    DateRule(
        id="date-only",
        name="Date Only",
        display_format="YYYY-MM-DD",
        pattern=re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}"),
        parse_format="%Y-%m-%d",
        reason_invalid_format="Date must be in YYYY-MM-DD format (e.g., 2025-01-05). Found: {value}.",
        reason_invalid_value="Invalid date. Please check month and day values. Found: {value}.",
        fix="format-date",
    ),
    DateRule(
        id="datetime",
        name="DateTime",
        display_format="YYYY-MM-DD HH:mm:ss",
        pattern=DATETIME_PATTERN,
        parse_format="%Y-%m-%d %H:%M:%S",
        reason_invalid_format="DateTime must be in YYYY-MM-DD HH:mm:ss format. Found: {value}.",
        reason_invalid_value="Invalid date/time. Please check all values. Found: {value}.",
        fix="format-datetime",
    ),
    DateRule(
        id="time-only",
        name="Time Only",
        display_format="HH:mm:ss",
        pattern=re.compile(r"[0-9]{2}:[0-9]{2}:[0-9]{2}"),
        parse_format="%H:%M:%S",
        reason_invalid_format="Time must be in HH:mm:ss format (e.g., 14:30:00). Found: {value}.",
        reason_invalid_value="Invalid time. Hours must be 0-23, minutes and seconds 0-59. Found: {value}.",
        fix="format-time",
    ),
    DateRule(
        id="servicenow-datetime",
        name="ServiceNow DateTime",
        display_format="YYYY-MM-DD HH:mm:ss",
        pattern=DATETIME_PATTERN,
        parse_format="%Y-%m-%d %H:%M:%S",
        reason_invalid_format="ServiceNow DateTime must be in YYYY-MM-DD HH:mm:ss format. Found: {value}.",
        reason_invalid_value="Invalid date/time for ServiceNow. Found: {value}.",
        fix="format-datetime",
    ),
)

BOOLEAN_RULES = (
    BooleanRule(
        id="standard",
        name="Boolean (true/false)",
        output_true="true",
        output_false="false",
        reason_invalid="Value must be a boolean (true/false, yes/no, 1/0). Found: {value}.",
    ),
    BooleanRule(
        id="yes-no",
        name="Boolean (Yes/No)",
        output_true="Yes",
        output_false="No",
        reason_invalid="Value must be Yes or No. Found: {value}.",
    ),
    BooleanRule(
        id="one-zero",
        name="Boolean (1/0)",
        output_true="1",
        output_false="0",
        reason_invalid="Value must be 1 or 0. Found: {value}.",
    ),
)


def build_default_catalog() -> SubtypeCatalog:
    return SubtypeCatalog(STRING_RULES + NUMBER_RULES + DATE_RULES + BOOLEAN_RULES)


DEFAULT_CATALOG = build_default_catalog()
