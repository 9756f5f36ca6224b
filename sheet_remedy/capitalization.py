"""Title-casing that leaves codes, identifiers and deliberate casing alone."""

from __future__ import annotations

import re
from typing import Any

RECORD_NUMBER_PATTERNS = [
    re.compile(prefix + r"[0-9]{7,}", re.IGNORECASE)
    for prefix in ("INC", "REQ", "RITM", "CHG", "PRB", "TASK", "SCTASK", "KB", "STRY", "PTASK", "PRJ", "SECRQ")
]

CODE_PATTERNS = [
    re.compile(r"[a-f0-9]{32}", re.IGNORECASE),
    re.compile(r"[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}", re.IGNORECASE),
    re.compile(r"([0-9A-Fa-f]{2}[:-]){5}[0-9A-Fa-f]{2}"),
    re.compile(r"([0-9]{1,3}\.){3}[0-9]{1,3}"),
    re.compile(r"([0-9a-f]{1,4}:){7}[0-9a-f]{1,4}", re.IGNORECASE),
    re.compile(r"[a-z]{1,4}[0-9]{2,}[a-z0-9]*", re.IGNORECASE),
    re.compile(r"[A-Z]{2,5}[-_][A-Z0-9]+[-_]?[A-Z0-9]*", re.IGNORECASE),
    re.compile(r"[0-9]+\.[0-9]+(\.[0-9]+)*"),
    re.compile(r"(CN|OU|DC)=.*", re.IGNORECASE | re.DOTALL),
    re.compile(r"(?=.*[a-zA-Z])(?=.*[0-9])[a-zA-Z0-9]{6,}"),
    re.compile(r"[A-Z0-9]{8,}"),
    re.compile(r"[A-Za-z0-9]+_[A-Za-z0-9_]*[0-9]+[A-Za-z0-9_]*"),
]

EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
ACRONYM_RE = re.compile(r"[A-Z]{2,5}")
CAMEL_RE = re.compile(r"[a-z][A-Z]")
LEADING_LOWER_RE = re.compile(r"^[a-z][A-Z]")
WORD_SPLIT_RE = re.compile(r"\s+")

LOWERCASE_PREFIXES = {"de", "van", "von", "der", "la", "del", "di", "da"}
CONNECTOR_WORDS = {"and", "or", "the", "a", "an", "of", "in", "on", "at", "to", "for", "by", "with", "as"}
MAC_WORDS = ("machine", "macro", "macaroni", "macabre", "mace")


def is_record_number(value: str) -> bool:
    text = value.strip()
    return any(pattern.fullmatch(text) for pattern in RECORD_NUMBER_PATTERNS)


def is_code(value: str) -> bool:
    text = value.strip()
    if is_record_number(text):
        return True
    return any(pattern.fullmatch(text) for pattern in CODE_PATTERNS)


def is_email(value: str) -> bool:
    return EMAIL_RE.fullmatch(value.strip()) is not None


def _single_case(text: str) -> bool:
    return text == text.upper() or text == text.lower()


def is_camel_case(value: str) -> bool:
    text = value.strip()
    if _single_case(text):
        return False
    return CAMEL_RE.search(text) is not None


def has_intentional_mixed_case(value: str) -> bool:
    text = value.strip()
    if _single_case(text):
        return False
    lowered = text.lower()
    if lowered.startswith("mc") and len(text) > 2 and text[2].isalpha() and text[2] == text[2].upper():
        return True
    if lowered.startswith("mac") and len(text) > 3 and text[3].isalpha() and text[3] == text[3].upper():
        return True
    if lowered.startswith("o'") and len(text) > 2 and text[2].isalpha() and text[2] == text[2].upper():
        return True
    if LEADING_LOWER_RE.match(text):
        return True
    return is_camel_case(text)


def capitalize_word(word: str, first: bool) -> str:
    if not word:
        return word
    lowered = word.lower()
    if ACRONYM_RE.fullmatch(word):
        return word
    if lowered.startswith("mc") and len(word) > 2:
        return "Mc" + word[2].upper() + word[3:].lower()
    if lowered.startswith("mac") and len(word) > 3 and word[3].isalpha() and not lowered.startswith(MAC_WORDS):
        return "Mac" + word[3].upper() + word[4:].lower()
    if lowered.startswith("o'") and len(word) > 2:
        return "O'" + word[2].upper() + word[3:].lower()
    if not first and (lowered in LOWERCASE_PREFIXES or lowered in CONNECTOR_WORDS):
        return lowered
    return word[0].upper() + word[1:].lower()


def _skip(value: Any, reason: str | None = None) -> dict[str, Any]:
    return {"suggested_fix": value, "reason": reason, "should_skip": True}


def smart_capitalize(value: Any) -> dict[str, Any]:
    """Return ``{suggested_fix, reason, should_skip}`` for one cell value."""
    if not isinstance(value, str) or not value.strip():
        return _skip(value)
    text = value.strip()

    if is_record_number(text):
        return _skip(text, "ServiceNow record number - kept as-is")
    if is_code(text):
        return _skip(text, "Code/identifier detected - kept as-is")
    if is_email(text):
        lowered = text.lower()
        if lowered != text:
            return {"suggested_fix": lowered, "reason": "Email address - converted to lowercase", "should_skip": False}
        return _skip(text)
    if is_camel_case(text):
        return _skip(text, "CamelCase/PascalCase detected - kept as-is")
    if has_intentional_mixed_case(text):
        return _skip(text, "Intentional mixed case detected - kept as-is")

    words = WORD_SPLIT_RE.split(text)
    result = " ".join(capitalize_word(word, index == 0) for index, word in enumerate(words))
    if result != text:
        return {"suggested_fix": result, "reason": "Standardized to Title Case", "should_skip": False}
    return _skip(text)
