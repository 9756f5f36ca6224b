"""Workbook file access: loading, header lookup and atomic rewrites."""

from __future__ import annotations

import logging
import os
import tempfile
import zipfile
from pathlib import Path

from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from sheet_remedy.errors import PersistenceError

logger = logging.getLogger(__name__)

CHANGES_LOG_COLUMN = "_CHANGES_LOG"
ROW_DELETE_COLUMN = "_ROW_DELETE"
RESERVED_COLUMNS = (CHANGES_LOG_COLUMN, ROW_DELETE_COLUMN)


def open_workbook(path: Path, *, data_only: bool = False) -> Workbook:
    try:
        return load_workbook(path, data_only=data_only)
    except (OSError, InvalidFileException, zipfile.BadZipFile, KeyError, ValueError) as exc:
        raise PersistenceError(f"Could not read workbook {path}: {exc}") from exc


def atomic_save(workbook: Workbook, output_path: Path) -> None:
    """Write to a sibling temp file, then move it over ``output_path``."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{output_path.stem}.", suffix=output_path.suffix, dir=str(output_path.parent))
    os.close(fd)
    temp_path = Path(tmp_name)
    try:
        workbook.save(temp_path)
        os.replace(temp_path, output_path)
    except OSError as exc:
        raise PersistenceError(f"Could not write workbook {output_path}: {exc}") from exc
    finally:
        if temp_path.exists():
            temp_path.unlink()
    logger.debug("Saved workbook %s", output_path)


def header_map(sheet) -> dict[str, int]:
    """Header text -> 1-based column index, from row 1."""
    headers: dict[str, int] = {}
    for cell in sheet[1]:
        if cell.value is None:
            continue
        name = str(cell.value)
        headers.setdefault(name, cell.column)
    return headers


def ensure_column(sheet, name: str) -> int:
    headers = header_map(sheet)
    if name in headers:
        return headers[name]
    index = max(headers.values(), default=0) + 1
    sheet.cell(row=1, column=index).value = name
    return index
