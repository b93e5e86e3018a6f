from __future__ import annotations
import logging
import math
from typing import Any, Dict, Iterable, List, Tuple

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.sql import Select

from errors import NotFound, ValidationFailed
from models import Tracker, TrackerHeader, TrackerRow
from schemas import (
    AnyTracker, HeaderIn, Page, RootTracker, RowOut, TrackerCreate, TrackerItem, TrackerUpdate
)

logger = logging.getLogger(__name__)

# (key, label, enabled) seeded by initialize_headers, in column order
DEFAULT_HEADERS: List[Tuple[str, str, bool]] = [
    ("name", "Name", True),
    ("description", "Description", True),
    ("status", "Status", True),
    ("owner", "Owner", True),
    ("date", "Date", True),
    ("priority", "Priority", False),
    ("comments", "Comments", False),
]

# -----------------------------------------------------------------------------
# Pagination

def paginate(db: Session, stmt: Select, page: int, size: int) -> Tuple[List[Any], int]:
    total = db.execute(
        select(func.count()).select_from(stmt.order_by(None).subquery())
    ).scalar_one()
    items = db.execute(stmt.limit(size).offset((page - 1) * size)).scalars().all()
    return list(items), int(total)

def make_page(items: List[Any], total: int, page: int, size: int) -> Dict[str, Any]:
    return {
        "total_items": total,
        "items": items,
        "total_pages": math.ceil(total / size) if size else 0,
        "current_page": page,
    }

# -----------------------------------------------------------------------------
# Tracker hierarchy

def to_variant(t: Tracker) -> AnyTracker:
    if t.parent_id is not None:
        return TrackerItem.model_validate(t)
    items = [TrackerItem.model_validate(i) for i in t.items]
    attrs = {
        f: getattr(t, f)
        for f in RootTracker.model_fields
        if f not in ("kind", "item_count", "items")
    }
    return RootTracker(**attrs, item_count=len(items), items=items)

def get_tracker(db: Session, tracker_id: int) -> Tracker:
    t = db.get(Tracker, tracker_id)
    if t is None:
        raise NotFound(f"Tracker with id={tracker_id} not found.")
    return t

def list_roots(db: Session, search: str = "", page: int = 1, size: int = 10) -> Page[RootTracker]:
    stmt = select(Tracker).where(Tracker.parent_id.is_(None))
    search = (search or "").strip()
    if search:
        pat = f"%{search}%"
        stmt = stmt.where(or_(
            Tracker.name.ilike(pat),
            Tracker.description.ilike(pat),
            Tracker.ownership.ilike(pat),
        ))
    stmt = stmt.options(selectinload(Tracker.items)).order_by(Tracker.id.asc())
    rows, total = paginate(db, stmt, page, size)
    return Page[RootTracker](**make_page([to_variant(t) for t in rows], total, page, size))

def list_items(db: Session, parent_id: int) -> List[TrackerItem]:
    res = db.execute(
        select(Tracker).where(Tracker.parent_id == parent_id).order_by(Tracker.id.asc())
    ).scalars().all()
    return [TrackerItem.model_validate(t) for t in res]

def _apply_item_rules(attrs: Dict[str, Any]) -> None:
    # items carry no link, and take their name from the description when unnamed
    if not (attrs.get("name") or "").strip() and attrs.get("description"):
        attrs["name"] = attrs["description"]
    attrs["link"] = None

def _require_name(attrs: Dict[str, Any]) -> None:
    if not (attrs.get("name") or "").strip():
        raise ValidationFailed("Tracker name is required.")

def create_tracker(db: Session, payload: TrackerCreate) -> Tracker:
    attrs = payload.model_dump()
    parent_id = attrs.pop("parent_id")
    if parent_id is not None:
        parent = db.get(Tracker, parent_id)
        if parent is None:
            raise NotFound(f"Parent tracker with id={parent_id} not found.")
        if parent.parent_id is not None:
            raise ValidationFailed("Tracker items cannot have items of their own.")
        _apply_item_rules(attrs)
    _require_name(attrs)

    t = Tracker(parent_id=parent_id, **attrs)
    db.add(t)
    db.commit()
    db.refresh(t)
    return t

def update_tracker(db: Session, tracker_id: int, payload: TrackerUpdate) -> Tracker:
    t = get_tracker(db, tracker_id)
    attrs = payload.model_dump(exclude_unset=True)
    if t.parent_id is not None:
        _apply_item_rules(attrs)
    if "name" in attrs:
        _require_name(attrs)
    for k, v in attrs.items():
        setattr(t, k, v)
    db.commit()
    db.refresh(t)
    return t

def delete_tracker(db: Session, tracker_id: int) -> AnyTracker:
    """Delete a tracker with its table data; a root takes its items with it.

    Returns a snapshot of what was deleted.
    """
    t = get_tracker(db, tracker_id)
    snapshot = to_variant(t)

    ids = [t.id]
    if t.parent_id is None:
        ids += db.execute(select(Tracker.id).where(Tracker.parent_id == t.id)).scalars().all()

    db.execute(delete(TrackerRow).where(TrackerRow.tracker_id.in_(ids)))
    db.execute(delete(TrackerHeader).where(TrackerHeader.tracker_id.in_(ids)))
    if t.parent_id is None:
        db.execute(delete(Tracker).where(Tracker.parent_id == t.id))
    db.execute(delete(Tracker).where(Tracker.id == t.id))
    db.commit()
    logger.info("deleted tracker id=%s with %d related tracker(s)", tracker_id, len(ids) - 1)
    return snapshot

# -----------------------------------------------------------------------------
# Headers

def list_headers(db: Session, tracker_id: int, only_enabled: bool = False) -> List[TrackerHeader]:
    stmt = select(TrackerHeader).where(TrackerHeader.tracker_id == tracker_id)
    if only_enabled:
        stmt = stmt.where(TrackerHeader.enabled.is_(True))
    stmt = stmt.order_by(TrackerHeader.order.asc(), TrackerHeader.id.asc())
    return list(db.execute(stmt).scalars().all())

def initialize_headers(db: Session, tracker_id: int) -> bool:
    """Seed DEFAULT_HEADERS. Returns False (and changes nothing) if headers exist."""
    existing = db.execute(
        select(func.count()).select_from(TrackerHeader).where(TrackerHeader.tracker_id == tracker_id)
    ).scalar_one()
    if existing:
        return False
    for order, (key, label, enabled) in enumerate(DEFAULT_HEADERS, start=1):
        db.add(TrackerHeader(tracker_id=tracker_id, key=key, label=label, enabled=enabled, order=order))
    db.commit()
    return True

def set_headers(db: Session, tracker_id: int, entries: Iterable[HeaderIn]) -> Dict[str, int]:
    """Upsert headers by id. Entries without an id are inserted; ids owned by
    another tracker are skipped. Headers not mentioned are left alone.
    """
    counts = {"inserted": 0, "updated": 0, "ignored": 0}
    for entry in entries:
        if entry.id is None:
            db.add(TrackerHeader(
                tracker_id=tracker_id,
                key=entry.key,
                label=entry.label,
                enabled=entry.enabled,
                order=entry.order,
            ))
            counts["inserted"] += 1
        else:
            header = db.execute(
                select(TrackerHeader)
                .where(TrackerHeader.id == entry.id, TrackerHeader.tracker_id == tracker_id)
            ).scalar_one_or_none()
            if header is None:
                logger.debug("ignoring header id=%s, not part of tracker id=%s", entry.id, tracker_id)
                counts["ignored"] += 1
                continue
            header.key = entry.key
            header.label = entry.label
            header.enabled = entry.enabled
            header.order = entry.order
            counts["updated"] += 1
        # one commit per entry: earlier entries stay written if a later one fails
        db.commit()
    return counts

# -----------------------------------------------------------------------------
# Rows

def list_rows(db: Session, tracker_id: int, page: int = 1, size: int = 10) -> Page[RowOut]:
    stmt = (
        select(TrackerRow)
        .where(TrackerRow.tracker_id == tracker_id)
        .order_by(TrackerRow.id.desc())
    )
    rows, total = paginate(db, stmt, page, size)
    return Page[RowOut](**make_page([RowOut.model_validate(r) for r in rows], total, page, size))

def all_rows(db: Session, tracker_id: int) -> List[TrackerRow]:
    res = db.execute(
        select(TrackerRow).where(TrackerRow.tracker_id == tracker_id).order_by(TrackerRow.id.desc())
    ).scalars().all()
    return list(res)

def get_row(db: Session, tracker_id: int, row_id: int) -> TrackerRow:
    row = db.execute(
        select(TrackerRow).where(TrackerRow.id == row_id, TrackerRow.tracker_id == tracker_id)
    ).scalar_one_or_none()
    if row is None:
        raise NotFound(f"Row with id={row_id} not found in tracker id={tracker_id}.")
    return row

def create_row(db: Session, tracker_id: int, data: Dict[str, Any], commit: bool = True) -> TrackerRow:
    row = TrackerRow(tracker_id=tracker_id, data=dict(data))
    db.add(row)
    if commit:
        db.commit()
        db.refresh(row)
    else:
        db.flush()
    return row

def update_row(db: Session, tracker_id: int, row_id: int, data: Dict[str, Any]) -> TrackerRow:
    row = get_row(db, tracker_id, row_id)
    row.data = dict(data)
    db.commit()
    db.refresh(row)
    return row

def delete_row(db: Session, tracker_id: int, row_id: int) -> None:
    row = get_row(db, tracker_id, row_id)
    db.delete(row)
    db.commit()

def count_rows(db: Session, tracker_id: int) -> int:
    return int(db.execute(
        select(func.count()).select_from(TrackerRow).where(TrackerRow.tracker_id == tracker_id)
    ).scalar_one())
