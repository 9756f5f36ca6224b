"""Guess a column's subtype from its header name."""

from __future__ import annotations

import re

from sheet_remedy.catalog import BOOLEAN, DATE, DEFAULT_CATALOG, FAMILY_FOR_COLUMN_TYPE, NUMBER, STRING, SubtypeCatalog

# Priority order matters: the first keyword found in the normalized name wins.
# Short keywords only match a whole "_"-separated token so "description" never
# hits "ip" and "machine" never hits "mac".
KEYWORD_TABLE: dict[str, tuple[tuple[str, str, bool], ...]] = {
    STRING: (
        ("short_description", "short-description", False),
        ("shortdescription", "short-description", False),
        ("description", "description", False),
        ("mac_address", "mac-address", False),
        ("macaddress", "mac-address", False),
        ("mac", "mac-address", True),
        ("serial_number", "serial-number", False),
        ("serialnumber", "serial-number", False),
        ("serial", "serial-number", False),
        ("sn", "serial-number", True),
        ("ipv6", "ip-address-v6", False),
        ("ipv4", "ip-address-v4", False),
        ("ip_address", "ip-address-v4", False),
        ("ipaddress", "ip-address-v4", False),
        ("ip", "ip-address-v4", True),
        ("fqdn", "fqdn", False),
        ("dns_name", "fqdn", False),
        ("dnsname", "fqdn", False),
        ("hostname", "hostname", False),
        ("host_name", "hostname", False),
        ("host", "hostname", False),
        ("email", "email", False),
        ("mail", "email", False),
        ("telephone", "phone-number", False),
        ("phone", "phone-number", False),
        ("mobile", "phone-number", False),
        ("tel", "phone-number", True),
        ("sys_id", "sys-id", False),
        ("sysid", "sys-id", False),
        ("uuid", "uuid", False),
        ("guid", "uuid", False),
        ("asset_tag", "asset-tag", False),
        ("assettag", "asset-tag", False),
        ("asset", "asset-tag", False),
        ("url", "url", False),
        ("website", "url", False),
        ("link", "url", False),
        ("location", "location", False),
        ("site", "location", False),
        ("os_version", "os-version", False),
        ("osversion", "os-version", False),
        ("manufacturer", "manufacturer", False),
        ("vendor", "manufacturer", False),
        ("model", "model", False),
        ("name", "name", False),
    ),
    NUMBER: (
        ("port", "port-number", True),
        ("percentage", "percentage", False),
        ("percent", "percentage", False),
        ("pct", "percentage", True),
        ("cpu", "cpu-count", False),
        ("cores", "cpu-count", False),
        ("memory_gb", "memory-gb", False),
        ("ram_gb", "memory-gb", False),
        ("memory", "memory-mb", False),
        ("ram", "memory-mb", True),
        ("disk", "disk-gb", False),
        ("storage", "disk-gb", False),
        ("currency", "currency", False),
        ("price", "currency", False),
        ("cost", "currency", False),
        ("amount", "currency", False),
        ("decimal", "decimal", False),
        ("count", "positive-integer", True),
        ("quantity", "positive-integer", False),
        ("qty", "positive-integer", True),
    ),
    DATE: (
        ("sys_created_on", "servicenow-datetime", False),
        ("sys_updated_on", "servicenow-datetime", False),
        ("datetime", "datetime", False),
        ("date_time", "datetime", False),
        ("timestamp", "datetime", False),
        ("date", "date-only", False),
        ("time", "time-only", False),
    ),
    BOOLEAN: (
        ("yes_no", "yes-no", False),
        ("yesno", "yes-no", False),
        ("flag", "one-zero", False),
        ("active", "standard", False),
        ("enabled", "standard", False),
        ("is", "standard", True),
        ("has", "standard", True),
    ),
}

_SEPARATORS = re.compile(r"[\s\-]+")


def normalize_column_name(column_name: str) -> str:
    return _SEPARATORS.sub("_", str(column_name).strip().lower())


def _keyword_matches(normalized: str, tokens: list[str], keyword: str, whole_token: bool) -> bool:
    if whole_token:
        return keyword in tokens
    return keyword in normalized


def detect_subtype(
    column_name: str,
    column_type: str,
    catalog: SubtypeCatalog = DEFAULT_CATALOG,
) -> str | None:
    family = FAMILY_FOR_COLUMN_TYPE.get(column_type)
    if family is None:
        return None
    normalized = normalize_column_name(column_name)
    if not normalized:
        return None
    tokens = [token for token in normalized.split("_") if token]
    allowed = catalog.subtypes_for(column_type)
    keywords = KEYWORD_TABLE.get(family, ())

    for keyword, subtype_id, _ in keywords:
        if normalized == keyword and subtype_id in allowed:
            return subtype_id
    for keyword, subtype_id, whole_token in keywords:
        if subtype_id in allowed and _keyword_matches(normalized, tokens, keyword, whole_token):
            return subtype_id
    return None
