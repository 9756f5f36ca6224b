"""Per-row decision trail stored in the ``_CHANGES_LOG`` column, and its replay.

A row's log is a ``|``-joined list of ``Column:ACTION`` tokens where ACTION is
``DELETE_ROW``, ``KEEP`` or ``Old→New``. Each column holds at most one token.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from sheet_remedy.storage import (
    CHANGES_LOG_COLUMN,
    RESERVED_COLUMNS,
    ROW_DELETE_COLUMN,
    atomic_save,
    header_map,
    open_workbook,
)
from sheet_remedy.values import is_empty, parse_number

logger = logging.getLogger(__name__)

DELETE_ROW = "DELETE_ROW"
KEEP = "KEEP"
EDIT = "EDIT"
CHANGE_TYPES = (DELETE_ROW, KEEP, EDIT)
ARROW = "→"
TOKEN_SEPARATOR = "|"


def edit_token(old: Any, new: Any) -> str:
    return f"{'' if is_empty(old) else old}{ARROW}{'' if is_empty(new) else new}"


def parse_edit(action: str) -> tuple[str, str] | None:
    if ARROW not in action:
        return None
    old, new = action.split(ARROW, 1)
    return old, new


def parse_log(log: Any) -> dict[str, str]:
    """Column -> action, in the order the tokens appear."""
    if is_empty(log):
        return {}
    entries: dict[str, str] = {}
    for token in str(log).split(TOKEN_SEPARATOR):
        column, sep, action = token.partition(":")
        column = column.strip()
        if not sep or not column:
            continue
        entries[column] = action
    return entries


def format_log(entries: dict[str, str]) -> str:
    return TOKEN_SEPARATOR.join(f"{column}:{action}" for column, action in entries.items())


def append_entry(existing_log: Any, column_name: str, action: str) -> str:
    """Replace this column's token, or append one when the column has none."""
    entries = parse_log(existing_log)
    entries[column_name] = action
    return format_log(entries)


def remove_entry(existing_log: Any, column_name: str) -> str:
    entries = parse_log(existing_log)
    entries.pop(column_name, None)
    return format_log(entries)


def is_marked_for_deletion(log: Any, row_delete: Any = None) -> bool:
    if not is_empty(row_delete) and str(row_delete).strip():
        return True
    return DELETE_ROW in parse_log(log).values()


@dataclass
class ReplayStats:
    edits_applied: int = 0
    rows_deleted: int = 0
    rows_remaining: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def coerce_like(original: Any, new_text: str) -> Any:
    """Keep numeric cells numeric when the replacement text is a number."""
    if new_text == "":
        return None
    if isinstance(original, bool) or not isinstance(original, (int, float)):
        return new_text
    number = parse_number(new_text)
    if number is None:
        return new_text
    return int(number) if number.is_integer() else number


def replay_sheet(sheet) -> ReplayStats:
    headers = header_map(sheet)
    log_column = headers.get(CHANGES_LOG_COLUMN)
    delete_column = headers.get(ROW_DELETE_COLUMN)
    stats = ReplayStats()
    doomed: list[int] = []

    for row in range(2, sheet.max_row + 1):
        log = sheet.cell(row=row, column=log_column).value if log_column else None
        flag = sheet.cell(row=row, column=delete_column).value if delete_column else None
        for column, action in parse_log(log).items():
            edit = parse_edit(action)
            target = headers.get(column)
            if edit is None or target is None or column in RESERVED_COLUMNS:
                continue
            cell = sheet.cell(row=row, column=target)
            cell.value = coerce_like(cell.value, edit[1])
            stats.edits_applied += 1
        if is_marked_for_deletion(log, flag):
            doomed.append(row)

    for row in sorted(doomed, reverse=True):
        sheet.delete_rows(row, 1)
    stats.rows_deleted = len(doomed)

    for column in sorted((headers[name] for name in RESERVED_COLUMNS if name in headers), reverse=True):
        sheet.delete_cols(column, 1)

    stats.rows_remaining = max(sheet.max_row - 1, 0)
    return stats


def replay_workbook(source: Path, output: Path) -> ReplayStats:
    """Apply logged edits, drop marked rows and strip the reserved columns."""
    workbook = open_workbook(source)
    stats = replay_sheet(workbook.worksheets[0])
    atomic_save(workbook, output)
    logger.info(
        "Replayed %s -> %s: %d edits, %d rows deleted",
        source.name,
        output.name,
        stats.edits_applied,
        stats.rows_deleted,
    )
    return stats
