"""Scan results cached per column, action type and scan settings until the column changes."""

from __future__ import annotations

import logging
from typing import Hashable

from sheet_remedy.scanner import ScanResult

logger = logging.getLogger(__name__)

CacheKey = tuple[str, str, Hashable]


class IssueCache:
    def __init__(self) -> None:
        self._entries: dict[CacheKey, ScanResult] = {}

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, column: str, action_type: str, settings: Hashable = ()) -> ScanResult | None:
        """``settings`` holds whatever else shaped the result (type, subtype, reference data)."""
        return self._entries.get((column, action_type, settings))

    def put(self, column: str, action_type: str, result: ScanResult, settings: Hashable = ()) -> None:
        # Degraded results are never cached.
        if result.degraded:
            return
        self._entries[(column, action_type, settings)] = result

    def invalidate_column(self, column: str) -> int:
        stale = [key for key in self._entries if key[0] == column]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug("Invalidated %d cached scans for %s", len(stale), column)
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()
