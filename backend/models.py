# backend/models.py
from sqlalchemy import (
    JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, func
)
from sqlalchemy.orm import relationship
from db import Base  # we defined Base in db.py

# Using ORM classes that map to the tables

class Tracker(Base):
    """A root tracker (parent_id is NULL) or one of its items."""
    __tablename__ = "soc_trackers"
    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(String(1024))
    parent_id = Column(Integer, ForeignKey("soc_trackers.id", ondelete="CASCADE"), index=True)
    link = Column(String(1024))
    ownership = Column(String(255))
    reviewer = Column(String(255))
    frequency = Column(String(255))
    status = Column(String(255))
    remarks = Column(String(1024))
    timelines = Column(String(255))
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    items = relationship("Tracker", back_populates="parent", order_by="Tracker.id")
    parent = relationship("Tracker", back_populates="items", remote_side=[id])

    @property
    def is_item(self) -> bool:
        return self.parent_id is not None

class TrackerHeader(Base):
    __tablename__ = "tracker_headers"
    id = Column(Integer, primary_key=True)
    tracker_id = Column(Integer, ForeignKey("soc_trackers.id", ondelete="CASCADE"), nullable=False, index=True)
    key = Column(String(255), nullable=False)
    label = Column(String(255), nullable=False)
    enabled = Column(Boolean, nullable=False, default=True)
    order = Column("order", Integer, nullable=False, default=1)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_tracker_headers_tracker_order", "tracker_id", "order"),
    )

class TrackerRow(Base):
    __tablename__ = "tracker_rows"
    id = Column(Integer, primary_key=True)
    tracker_id = Column(Integer, ForeignKey("soc_trackers.id", ondelete="CASCADE"), nullable=False, index=True)
    # schema-less document, keys usually match TrackerHeader.key
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

class ActivityLog(Base):
    __tablename__ = "activity_logs"
    id = Column(Integer, primary_key=True)
    user_id = Column(String(255), nullable=False, default="anonymous")
    action = Column(String(32), nullable=False)
    description = Column(Text, nullable=False)
    entity_type = Column(String(64))
    entity_id = Column(Integer)
    timestamp = Column(DateTime, server_default=func.now(), nullable=False)
