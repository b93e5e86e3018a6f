# backend/spreadsheet.py
"""Spreadsheet codec: uploaded bytes <-> grid (a header row followed by data rows).

xlsx goes through openpyxl, csv through pandas. Everything above this module
works on plain lists of cells and never touches a workbook.
"""
from __future__ import annotations

import csv
import io
import json
import re
import zipfile
from datetime import date, datetime, time, timedelta
from typing import Any, List, Optional

import pandas as pd
from openpyxl import Workbook, load_workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException

from errors import ValidationFailed

Grid = List[List[Any]]

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
CSV_MEDIA_TYPE = "text/csv"

_WS_RE = re.compile(r"\s+")

# leading characters spreadsheet programs read as the start of a formula
_FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def normalize_key(text: Any) -> str:
    """'Full  Name ' -> 'full_name'"""
    s = "" if text is None else str(text)
    return _WS_RE.sub("_", s.strip().lower())


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and pd.isna(value):
        return True
    return isinstance(value, str) and value.strip() == ""


def cell_value(value: Any) -> Any:
    """Make a parsed cell storable in a JSON document."""
    if is_blank(value):
        return None
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, timedelta):
        # duration cells, e.g. "5:00:00"
        return str(value)
    return value


def _suffix(filename: Optional[str]) -> str:
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[-1].strip().lower()


def read_grid(content: bytes, filename: Optional[str] = None) -> Grid:
    if not content:
        raise ValidationFailed("Uploaded file is empty.")
    if _suffix(filename) == "csv":
        return _read_csv(content)
    return _read_xlsx(content)


def _read_csv(content: bytes) -> Grid:
    opts = dict(header=None, dtype=str, keep_default_na=False, encoding="utf-8-sig", engine="python")
    try:
        width = pd.read_csv(io.BytesIO(content), nrows=1, **opts).shape[1]
        # cells past the header width are cut; short lines are padded with NaN
        df = pd.read_csv(io.BytesIO(content), on_bad_lines=lambda bad: bad[:width], **opts)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, csv.Error, UnicodeDecodeError) as exc:
        raise ValidationFailed(f"Could not read CSV file: {exc}") from exc
    return [[_csv_cell(v) for v in row] for row in df.values.tolist()]


def _csv_cell(value: Any) -> Any:
    if is_blank(value):
        return None
    if isinstance(value, str) and value[:1] == "'" and value[1:2] in _FORMULA_PREFIXES:
        return value[1:]
    return value


def _read_xlsx(content: bytes) -> Grid:
    try:
        wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        raise ValidationFailed(f"Could not read spreadsheet: {exc}") from exc
    try:
        ws = wb.active
        return [list(row) for row in ws.iter_rows(values_only=True)]
    finally:
        wb.close()


def _sheet_value(value: Any) -> Any:
    if value is None or value == "":
        return None
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return value


def _xlsx_value(value: Any) -> Any:
    value = _sheet_value(value)
    if isinstance(value, str):
        # control characters are not allowed in worksheet XML
        value = ILLEGAL_CHARACTERS_RE.sub("", value)
    return value


def _csv_value(value: Any) -> Any:
    value = _sheet_value(value)
    if isinstance(value, str) and value[:1] in _FORMULA_PREFIXES:
        # a leading quote keeps spreadsheet programs from evaluating the cell;
        # _csv_cell takes it off again on import
        return "'" + value
    return value


def write_xlsx(grid: Grid, sheet_title: str = "Tracker") -> bytes:
    """Serialize a grid; the first row is bolded and columns are sized to their content.

    Every string is written as text, so stored values such as "=1+1" never become formulas.
    """
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_title[:31]
    for row in grid:
        ws.append([_xlsx_value(v) for v in row])
        for cell in ws[ws.max_row]:
            if cell.data_type == "f":
                cell.data_type = "s"

    if grid and grid[0]:
        for cell in ws[1]:
            cell.font = Font(bold=True)
        ncols = max(len(r) for r in grid)
        for idx in range(ncols):
            widest = max(
                (len(str(r[idx])) for r in grid if idx < len(r) and r[idx] is not None),
                default=0,
            )
            ws.column_dimensions[get_column_letter(idx + 1)].width = min(max(widest + 2, 12), 60)

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def write_csv(grid: Grid) -> bytes:
    if not grid:
        return b""
    df = pd.DataFrame(
        [[_csv_value(v) for v in row] for row in grid[1:]],
        columns=[_csv_value(v) for v in grid[0]],
    )
    return df.to_csv(index=False).encode("utf-8")
