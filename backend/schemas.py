from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from spreadsheet import normalize_key

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    total_items: int
    items: List[T]
    total_pages: int
    current_page: int


class Message(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Trackers

class TrackerFields(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    ownership: Optional[str] = None
    link: Optional[str] = None
    reviewer: Optional[str] = None
    frequency: Optional[str] = None
    status: Optional[str] = None
    remarks: Optional[str] = None
    timelines: Optional[str] = None


class TrackerCreate(TrackerFields):
    parent_id: Optional[int] = None


class TrackerUpdate(TrackerFields):
    # no parent_id: a tracker keeps its role from creation on
    pass


class _TrackerOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    ownership: Optional[str] = None
    reviewer: Optional[str] = None
    frequency: Optional[str] = None
    status: Optional[str] = None
    remarks: Optional[str] = None
    timelines: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TrackerItem(_TrackerOut):
    """Leaf of the hierarchy: always has a parent, never a link or items."""
    kind: Literal["item"] = "item"
    parent_id: int


class RootTracker(_TrackerOut):
    kind: Literal["root"] = "root"
    link: Optional[str] = None
    item_count: int = 0
    items: List[TrackerItem] = Field(default_factory=list)


AnyTracker = Union[RootTracker, TrackerItem]


# ---------------------------------------------------------------------------
# Headers

class HeaderIn(BaseModel):
    id: Optional[int] = None
    key: str = ""
    label: str = Field(min_length=1)
    enabled: bool = True
    order: int = 1

    @model_validator(mode="after")
    def _derive_key(self) -> "HeaderIn":
        if not self.label.strip():
            raise ValueError("Header label must not be blank.")
        self.key = self.key.strip() or normalize_key(self.label)
        return self


class HeaderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tracker_id: int
    key: str
    label: str
    enabled: bool
    order: int


class HeaderBatch(BaseModel):
    headers: List[HeaderIn]


class SetHeadersResult(BaseModel):
    inserted: int
    updated: int
    ignored: int
    headers: List[HeaderOut]


class InitializeResult(BaseModel):
    initialized: bool
    message: str
    headers: List[HeaderOut]


# ---------------------------------------------------------------------------
# Rows

class RowIn(BaseModel):
    data: Dict[str, Any] = Field(default_factory=dict)


class RowOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tracker_id: int
    data: Dict[str, Any]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TableData(BaseModel):
    headers: List[HeaderOut]
    rows: Page[RowOut]


# ---------------------------------------------------------------------------
# Import

class RowError(BaseModel):
    row: int
    error: str


class ImportResult(BaseModel):
    attempted: int
    imported: int
    errors: List[RowError] = Field(default_factory=list)
