"""The on-disk working copy and every decision recorded against it.

Each mutating operation re-reads the workbook, changes it in memory and
rewrites the whole file. One user per working copy is assumed; two sessions
mutating the same file race with undefined results.
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Iterable

import chardet
import pandas as pd
from openpyxl import Workbook

from sheet_remedy.cache import IssueCache
from sheet_remedy.catalog import DEFAULT_CATALOG, SubtypeCatalog
from sheet_remedy.changelog import (
    DELETE_ROW,
    EDIT,
    KEEP,
    ReplayStats,
    append_entry,
    coerce_like,
    edit_token,
    is_marked_for_deletion,
    parse_edit,
    parse_log,
    remove_entry,
    replay_workbook,
)
from sheet_remedy.contracts import utc_now_iso
from sheet_remedy.errors import InputError, PersistenceError, UnknownColumnError, UnsupportedFileError
from sheet_remedy.fixes import MANUAL_CHECK_REQUIRED
from sheet_remedy.planner import DUPLICATES, REFERENCE_VALIDATION, resolve_subtype
from sheet_remedy.profiling import profile_table
from sheet_remedy.scanner import (
    EMPTY_DISPLAY,
    REFERENCE_VALID,
    STATUS_CHANGED,
    STATUS_KEPT,
    STATUS_REJECTED,
    Issue,
    ScanResult,
    scan,
)
from sheet_remedy.storage import (
    CHANGES_LOG_COLUMN,
    RESERVED_COLUMNS,
    ROW_DELETE_COLUMN,
    atomic_save,
    ensure_column,
    header_map,
    open_workbook,
)
from sheet_remedy.values import cell_text, is_empty

logger = logging.getLogger(__name__)

TEXT_FORMATS = {".csv", ".tsv", ".txt"}
EXCEL_FORMATS = {".xlsx", ".xlsm"}
SUPPORTED_FORMATS = TEXT_FORMATS | EXCEL_FORMATS
DELETION_REASON = "DUPLICATE"
CLEANED_SUFFIX = "_CLEANED"

# Suggestions that describe a decision rather than a value to write.
NON_VALUE_SUGGESTIONS = {MANUAL_CHECK_REQUIRED, REFERENCE_VALID, EMPTY_DISPLAY}


@dataclass
class Table:
    headers: list[str]
    columns: dict[str, list[Any]]
    row_count: int

    def column(self, name: str) -> list[Any]:
        if name not in self.columns:
            raise UnknownColumnError(name)
        return self.columns[name]


def detect_encoding(raw: bytes) -> str:
    result = chardet.detect(raw)
    encoding = result.get("encoding") or "utf-8"
    if encoding.lower() == "ascii":
        return "utf-8"
    return encoding


def _detect_delimiter(text: str, suffix: str) -> str:
    if suffix == ".tsv":
        return "\t"
    sample = "\n".join([line for line in text.splitlines() if line.strip()][:25])
    try:
        return csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
    except csv.Error:
        return ","


def read_delimited(path: Path) -> pd.DataFrame:
    """Decode a CSV/TSV upload with the detected encoding and load it with pandas."""
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise PersistenceError(f"Could not read {path}: {exc}") from exc
    encoding = detect_encoding(raw)
    try:
        text = raw.decode(encoding)
    except (LookupError, UnicodeDecodeError):
        text = raw.decode("latin-1")
    text = text.lstrip("﻿")
    if not text.strip():
        raise UnsupportedFileError(f"{path.name} is empty")
    delimiter = _detect_delimiter(text, path.suffix.lower())
    try:
        frame = pd.read_csv(io.StringIO(text), sep=delimiter, skip_blank_lines=False)
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise UnsupportedFileError(f"Could not parse {path.name}: {exc}") from exc
    logger.debug("Read %s as %s with delimiter %r", path.name, encoding, delimiter)
    return frame


def frame_to_workbook(frame: pd.DataFrame) -> Workbook:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Data"
    sheet.append([str(name) for name in frame.columns])
    cleaned = frame.astype(object).where(frame.notna(), None)
    for row in cleaned.itertuples(index=False, name=None):
        sheet.append(list(row))
    return workbook


def prepare_working_copy(upload: Path, workdir: Path) -> Path:
    """Copy an upload into ``workdir`` as ``.xlsx`` with the change-log column present."""
    suffix = upload.suffix.lower()
    if suffix not in SUPPORTED_FORMATS:
        raise UnsupportedFileError(f"Unsupported file type: {upload.suffix or '(none)'}")
    if not upload.exists():
        raise InputError(f"File not found: {upload}")

    workdir.mkdir(parents=True, exist_ok=True)
    target = workdir / f"{upload.stem}.xlsx"
    if suffix in TEXT_FORMATS:
        workbook = frame_to_workbook(read_delimited(upload))
    else:
        # Formula cells are frozen to their cached values.
        workbook = open_workbook(upload, data_only=True)
    ensure_column(workbook.worksheets[0], CHANGES_LOG_COLUMN)
    atomic_save(workbook, target)
    logger.info("Prepared working copy %s from %s", target, upload.name)
    return target


def _trim_trailing_blank(rows: list[tuple]) -> list[tuple]:
    while rows and all(is_empty(value) for value in rows[-1]):
        rows.pop()
    return rows


def load_table(path: Path) -> Table:
    """Read the first sheet: row 1 is headers, typed values kept as-is."""
    workbook = open_workbook(path, data_only=True)
    sheet = workbook.worksheets[0]
    header_cells = next(sheet.iter_rows(min_row=1, max_row=1, values_only=True), ())
    headers = [
        str(value) if not is_empty(value) else f"Column {index}"
        for index, value in enumerate(header_cells, start=1)
    ]
    rows = _trim_trailing_blank(list(sheet.iter_rows(min_row=2, max_col=len(headers), values_only=True)))
    columns: dict[str, list[Any]] = {}
    for position, name in enumerate(headers):
        if name in columns:
            continue
        columns[name] = [row[position] if position < len(row) else None for row in rows]
    return Table(headers=headers, columns=columns, row_count=len(rows))


def data_columns(table: Table) -> dict[str, list[Any]]:
    return {name: values for name, values in table.columns.items() if name not in RESERVED_COLUMNS}


@dataclass(frozen=True)
class Decision:
    row_number: int
    column: str
    action: str
    old_value: str | None = None
    new_value: str | None = None
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class DecisionLog:
    """Append-only in-memory record of every decision made this session."""

    def __init__(self) -> None:
        self._decisions: list[Decision] = []

    def record(self, row_number: int, column: str, action: str, old_value: Any = None, new_value: Any = None) -> Decision:
        decision = Decision(
            row_number=row_number,
            column=column,
            action=action,
            old_value=None if old_value is None else cell_text(old_value),
            new_value=None if new_value is None else cell_text(new_value),
        )
        self._decisions.append(decision)
        return decision

    def __iter__(self):
        return iter(self._decisions)

    def __len__(self) -> int:
        return len(self._decisions)

    def for_row(self, row_number: int) -> list[Decision]:
        return [decision for decision in self._decisions if decision.row_number == row_number]

    def to_list(self) -> list[dict[str, Any]]:
        return [decision.to_dict() for decision in self._decisions]


class WorkbookSession:
    def __init__(self, path: Path, catalog: SubtypeCatalog = DEFAULT_CATALOG) -> None:
        self.path = Path(path)
        self.catalog = catalog
        self.cache = IssueCache()
        self.decisions = DecisionLog()
        self.table = load_table(self.path)

    @classmethod
    def from_upload(cls, upload: Path, workdir: Path, catalog: SubtypeCatalog = DEFAULT_CATALOG) -> "WorkbookSession":
        return cls(prepare_working_copy(upload, workdir), catalog=catalog)

    @property
    def columns(self) -> dict[str, list[Any]]:
        return data_columns(self.table)

    def column_values(self, column: str) -> list[Any]:
        if column in RESERVED_COLUMNS:
            raise UnknownColumnError(column)
        return self.table.column(column)

    def reload(self) -> None:
        self.table = load_table(self.path)
        self.cache.clear()

    def profile(self) -> dict[str, Any]:
        return profile_table(self.columns)

    def scan(
        self,
        action_type: str,
        column: str,
        column_type: str,
        subtype: str | None = None,
        *,
        reference_index=None,
        ai_suggester=None,
        list_all: bool = False,
        refresh: bool = False,
    ) -> ScanResult:
        values = self.column_values(column)
        settings = self._scan_settings(action_type, column, column_type, subtype, reference_index)
        cached = None if refresh or list_all else self.cache.get(column, action_type, settings)
        if cached is not None:
            return cached
        result = scan(
            action_type,
            column,
            column_type,
            subtype,
            values,
            reference_index=reference_index,
            ai_suggester=ai_suggester,
            list_all=list_all,
            catalog=self.catalog,
        )
        if not list_all:
            self.cache.put(column, action_type, result, settings)
        return result

    def _scan_settings(self, action_type, column, column_type, subtype, reference_index) -> tuple:
        resolved, _ = resolve_subtype(column, column_type, subtype, self.catalog)
        reference = None
        if action_type == REFERENCE_VALIDATION and reference_index is not None:
            reference = frozenset(reference_index.items())
        return (column_type, resolved, reference)

    def _check_row(self, row_number: int) -> int:
        if not 2 <= row_number <= self.table.row_count + 1:
            raise InputError(f"Row {row_number} is outside the data rows 2..{self.table.row_count + 1}")
        return row_number

    def _column_index(self, sheet, column: str) -> int:
        headers = header_map(sheet)
        if column in RESERVED_COLUMNS or column not in headers:
            raise UnknownColumnError(column)
        return headers[column]

    def _write_log(self, sheet, row_number: int, column: str, action: str | None, row_delete: str | None) -> None:
        log_index = ensure_column(sheet, CHANGES_LOG_COLUMN)
        log_cell = sheet.cell(row=row_number, column=log_index)
        if action is None:
            log_cell.value = remove_entry(log_cell.value, column) or None
        else:
            log_cell.value = append_entry(log_cell.value, column, action)
        if row_delete is not None:
            delete_index = ensure_column(sheet, ROW_DELETE_COLUMN)
            sheet.cell(row=row_number, column=delete_index).value = row_delete or None

    def _commit(self, workbook) -> None:
        atomic_save(workbook, self.path)
        self.table = load_table(self.path)

    def log_change(
        self,
        row_number: int,
        column: str,
        change_type: str,
        original: Any = None,
        new: Any = None,
    ) -> str:
        """Record DELETE_ROW, KEEP or EDIT for one cell and return the logged action."""
        self._check_row(row_number)
        if change_type == DELETE_ROW:
            action, row_delete = DELETE_ROW, DELETION_REASON
        elif change_type == KEEP:
            action, row_delete = KEEP, ""
        elif change_type == EDIT:
            if original is None:
                original = self.column_values(column)[row_number - 2]
            action, row_delete = edit_token(original, new), ""
        else:
            raise InputError(f"Unsupported change type: {change_type}")

        workbook = open_workbook(self.path)
        sheet = workbook.worksheets[0]
        target = self._column_index(sheet, column)
        if change_type == EDIT:
            current = self.column_values(column)[row_number - 2]
            new_text = "" if is_empty(new) else cell_text(new)
            sheet.cell(row=row_number, column=target).value = coerce_like(current, new_text)
        self._write_log(sheet, row_number, column, action, row_delete)
        self._commit(workbook)
        if change_type == EDIT:
            self.cache.invalidate_column(column)
        self.decisions.record(row_number, column, change_type, original, new)
        logger.info("Logged row %d %s:%s", row_number, column, action)
        return action

    def clear_change(self, row_number: int, column: str) -> None:
        """Reset a row: drop this column's token and the deletion flag."""
        self._check_row(row_number)
        workbook = open_workbook(self.path)
        sheet = workbook.worksheets[0]
        self._write_log(sheet, row_number, column, None, "")
        self._commit(workbook)
        self.decisions.record(row_number, column, "RESET")

    def delete_row(self, row_number: int, column: str | None = None) -> None:
        self.log_change(row_number, column or self.table.headers[0], DELETE_ROW)

    def update_cell(self, row_number: int, column: str, new_value: Any) -> str:
        """Write one cell and track it as changed, rejected (blanked) or kept."""
        self._check_row(row_number)
        original = self.column_values(column)[row_number - 2]
        new_text = "" if is_empty(new_value) else cell_text(new_value)
        if new_text == "":
            status = STATUS_REJECTED
        elif new_text != cell_text(original):
            status = STATUS_CHANGED
        else:
            status = STATUS_KEPT

        workbook = open_workbook(self.path)
        sheet = workbook.worksheets[0]
        target = self._column_index(sheet, column)
        if status != STATUS_KEPT:
            sheet.cell(row=row_number, column=target).value = coerce_like(original, new_text)
            action = edit_token(original, new_text)
        else:
            action = KEEP
        self._write_log(sheet, row_number, column, action, "")
        self._commit(workbook)
        self.cache.invalidate_column(column)
        self.decisions.record(row_number, column, status, original, new_text)
        logger.info("Row %d %s %s", row_number, column, status)
        return status

    def duplicate_rows(self, column: str, value: Any) -> list["DuplicateRow"]:
        """Every row whose ``column`` holds ``value``, with its data and logged decision."""
        target = cell_text(value)
        values = self.column_values(column)
        data = self.columns
        logs = self.table.columns.get(CHANGES_LOG_COLUMN, [None] * self.table.row_count)
        flags = self.table.columns.get(ROW_DELETE_COLUMN, [None] * self.table.row_count)
        rows = []
        for index, cell in enumerate(values):
            if cell_text(cell) != target:
                continue
            action = parse_log(logs[index]).get(column)
            edit = parse_edit(action) if action else None
            rows.append(
                DuplicateRow(
                    row_number=index + 2,
                    data={name: column_data[index] for name, column_data in data.items()},
                    status=_classify(action) if action else None,
                    marked_for_deletion=is_marked_for_deletion(logs[index], flags[index]),
                    original_value=edit[0] if edit else None,
                    new_value=edit[1] if edit else None,
                )
            )
        return rows

    def update_change(self, row_number: int, column: str, new_value: Any) -> str:
        """Revise a tracked value from review; the token keeps the pre-edit original."""
        self._check_row(row_number)
        current = self.column_values(column)[row_number - 2]
        logs = self.table.columns.get(CHANGES_LOG_COLUMN, [None] * self.table.row_count)
        existing = parse_log(logs[row_number - 2]).get(column)
        edit = parse_edit(existing) if existing else None
        original = edit[0] if edit is not None else cell_text(current)
        new_text = "" if is_empty(new_value) else cell_text(new_value)
        action = KEEP if new_text == original else edit_token(original, new_text)

        workbook = open_workbook(self.path)
        sheet = workbook.worksheets[0]
        target = self._column_index(sheet, column)
        sheet.cell(row=row_number, column=target).value = coerce_like(current, new_text)
        self._write_log(sheet, row_number, column, action, None)
        self._commit(workbook)
        self.cache.invalidate_column(column)
        status = _classify(action)
        self.decisions.record(row_number, column, status, original, new_text)
        logger.info("Revised row %d %s (%s)", row_number, column, status)
        return status

    def apply_fixes(self, column: str, action_type: str, issues: Iterable[Issue]) -> int:
        """Apply accepted issues; duplicates mark rows, everything else writes the fix."""
        values = self.column_values(column)
        workbook = open_workbook(self.path)
        sheet = workbook.worksheets[0]
        target = self._column_index(sheet, column)
        applied = 0
        for issue in issues:
            row_number = self._check_row(issue.row_number)
            if action_type == DUPLICATES:
                self._write_log(sheet, row_number, column, DELETE_ROW, DELETION_REASON)
                self.decisions.record(row_number, column, DELETE_ROW)
            else:
                fix = issue.suggested_fix
                if fix is None or fix in NON_VALUE_SUGGESTIONS:
                    continue
                original = values[row_number - 2]
                if cell_text(original) == fix:
                    continue
                sheet.cell(row=row_number, column=target).value = coerce_like(original, fix)
                self._write_log(sheet, row_number, column, edit_token(original, fix), "")
                self.decisions.record(row_number, column, EDIT, original, fix)
            issue.status = STATUS_CHANGED
            applied += 1
        if applied:
            self._commit(workbook)
            self.cache.invalidate_column(column)
        logger.info("Applied %d %s fixes to %s", applied, action_type, column)
        return applied


@dataclass
class DuplicateRow:
    row_number: int
    data: dict[str, Any]
    status: str | None = None
    marked_for_deletion: bool = False
    original_value: str | None = None
    new_value: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ReviewRow:
    row_number: int
    changes: dict[str, str]
    marked_for_deletion: bool
    deletion_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _classify(action: str) -> str:
    if action == DELETE_ROW:
        return "deleted"
    if action == KEEP:
        return "kept"
    edit = parse_edit(action)
    if edit is not None and edit[1] == "":
        return "rejected"
    return "changed"


def build_review(path: Path) -> dict[str, Any]:
    """Tracked decisions per row plus changed/rejected/kept/deleted counts."""
    table = load_table(path)
    logs = table.columns.get(CHANGES_LOG_COLUMN, [None] * table.row_count)
    flags = table.columns.get(ROW_DELETE_COLUMN, [None] * table.row_count)
    counts = {"changed": 0, "rejected": 0, "kept": 0, "deleted": 0}
    rows: list[ReviewRow] = []
    for index in range(table.row_count):
        entries = parse_log(logs[index])
        deleted = is_marked_for_deletion(logs[index], flags[index])
        if not entries and not deleted:
            continue
        for action in entries.values():
            kind = _classify(action)
            if kind != "deleted":
                counts[kind] += 1
        if deleted:
            counts["deleted"] += 1
        reason = cell_text(flags[index]) or (DELETION_REASON if deleted else None)
        rows.append(ReviewRow(index + 2, entries, deleted, reason if deleted else None))
    counts["total"] = sum(counts.values())
    return {
        "headers": [name for name in table.headers if name not in RESERVED_COLUMNS],
        "row_count": table.row_count,
        "rows": [row.to_dict() for row in rows],
        "counts": counts,
    }


def cleaned_name(path: Path) -> str:
    return f"{path.stem}{CLEANED_SUFFIX}.xlsx"


def export_cleaned(session: WorkbookSession | Path, out_dir: Path) -> tuple[Path, ReplayStats]:
    source = session.path if isinstance(session, WorkbookSession) else Path(session)
    output = Path(out_dir) / cleaned_name(source)
    stats = replay_workbook(source, output)
    return output, stats


def read_columns(path: Path) -> dict[str, list[Any]]:
    """Data columns of any supported input, without creating a working copy."""
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_FORMATS:
        raise UnsupportedFileError(f"Unsupported file type: {path.suffix or '(none)'}")
    if not path.exists():
        raise InputError(f"File not found: {path}")
    if suffix in TEXT_FORMATS:
        frame = read_delimited(path)
        cleaned = frame.astype(object).where(frame.notna(), None)
        return {str(name): cleaned[name].tolist() for name in cleaned.columns}
    return data_columns(load_table(path))
