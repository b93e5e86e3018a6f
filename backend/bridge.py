# backend/bridge.py
"""Moves tracker tables in and out of spreadsheet grids.

Export projects the enabled headers over the stored row documents. Import goes
the other way but never touches the header registry: keys are derived from the
uploaded header row and only used to build the row documents.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, NamedTuple, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import crud
from errors import ValidationFailed
from schemas import ImportResult, RowError
from spreadsheet import (
    CSV_MEDIA_TYPE, XLSX_MEDIA_TYPE, Grid, cell_value, is_blank, normalize_key,
    read_grid, write_csv, write_xlsx,
)

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("xlsx", "csv")

# illustrative values for the template's sample row
SAMPLE_VALUES: Dict[str, str] = {
    "name": "Quarterly access review",
    "description": "Review of privileged accounts",
    "status": "Open",
    "owner": "Jane Doe",
    "date": "2025-01-31",
    "priority": "High",
    "comments": "Optional notes",
}


class DerivedHeader(NamedTuple):
    key: str
    label: str


# -----------------------------------------------------------------------------
# Export

def export_grid(db: Session, tracker_id: int) -> Grid:
    headers = crud.list_headers(db, tracker_id, only_enabled=True)
    grid: Grid = [[h.label for h in headers]]
    for row in crud.all_rows(db, tracker_id):
        data = row.data or {}
        grid.append([data.get(h.key, "") for h in headers])
    return grid


def export_file(db: Session, tracker_id: int, fmt: str = "xlsx") -> Tuple[bytes, str, str]:
    """Returns (content, media type, download name)."""
    fmt = (fmt or "xlsx").lower()
    if fmt not in EXPORT_FORMATS:
        raise ValidationFailed(f"Unsupported export format {fmt!r}; use one of {', '.join(EXPORT_FORMATS)}.")
    grid = export_grid(db, tracker_id)
    filename = f"tracker_{tracker_id}_export_{date.today().isoformat()}.{fmt}"
    if fmt == "csv":
        return write_csv(grid), CSV_MEDIA_TYPE, filename
    return write_xlsx(grid, sheet_title="Tracker Data"), XLSX_MEDIA_TYPE, filename


# -----------------------------------------------------------------------------
# Template

def template_grid(db: Session, tracker_id: int) -> Grid:
    headers = crud.list_headers(db, tracker_id, only_enabled=True)
    if headers:
        cols = [(h.key, h.label) for h in headers]
    else:
        cols = [(key, label) for key, label, enabled in crud.DEFAULT_HEADERS if enabled]
    return [
        [label for _, label in cols],
        [SAMPLE_VALUES.get(key, f"Sample {label}") for key, label in cols],
    ]


def template_file(db: Session, tracker_id: int) -> Tuple[bytes, str, str]:
    grid = template_grid(db, tracker_id)
    return write_xlsx(grid, sheet_title="Template"), XLSX_MEDIA_TYPE, f"tracker_{tracker_id}_template.xlsx"


# -----------------------------------------------------------------------------
# Import

def derive_headers(first_row: Sequence[Any]) -> List[DerivedHeader]:
    cells = list(first_row)
    while cells and is_blank(cells[-1]):
        cells.pop()
    out: List[DerivedHeader] = []
    for idx, cell in enumerate(cells):
        label = "" if is_blank(cell) else str(cell).strip()
        key = normalize_key(label) if label else f"column_{idx + 1}"
        out.append(DerivedHeader(key, label or key))
    return out


def build_document(headers: Sequence[DerivedHeader], row: Sequence[Any]) -> Dict[str, Any]:
    """Cells past the last header are dropped; blank cells are left out.

    Two headers normalizing to the same key: the later cell wins.
    """
    doc: Dict[str, Any] = {}
    for header, cell in zip(headers, row):
        value = cell_value(cell)
        if value is None:
            continue
        doc[header.key] = value
    return doc


def import_grid(db: Session, tracker_id: int, grid: Grid, commit: bool = True) -> ImportResult:
    if not grid:
        raise ValidationFailed("The spreadsheet is empty.")
    headers = derive_headers(grid[0])
    if not headers:
        raise ValidationFailed("The spreadsheet has no header row.")

    attempted = 0
    imported = 0
    errors: List[RowError] = []
    # uncommitted rows written so far; a rollback drops them and they get written again
    pending: List[Dict[str, Any]] = []
    # spreadsheet line numbers, the header being line 1
    for line, row in enumerate(grid[1:], start=2):
        if all(is_blank(c) for c in row):
            continue
        attempted += 1
        doc = build_document(headers, row)
        try:
            crud.create_row(db, tracker_id, doc, commit=commit)
        except (SQLAlchemyError, ValueError, TypeError) as exc:
            db.rollback()
            for kept in pending:
                crud.create_row(db, tracker_id, kept, commit=False)
            logger.warning("tracker id=%s: import of line %d failed: %s", tracker_id, line, exc)
            errors.append(RowError(row=line, error=str(exc)))
            continue
        if not commit:
            pending.append(doc)
        imported += 1

    logger.info("tracker id=%s: imported %d of %d rows", tracker_id, imported, attempted)
    return ImportResult(attempted=attempted, imported=imported, errors=errors)


def import_file(db: Session, tracker_id: int, content: bytes, filename: str) -> ImportResult:
    return import_grid(db, tracker_id, read_grid(content, filename))
