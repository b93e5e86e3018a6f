# backend/audit.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import BackgroundTasks
from sqlalchemy import insert
from sqlalchemy.exc import SQLAlchemyError

from db import SessionLocal
from models import ActivityLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditEvent:
    actor_id: str
    action: str
    description: str
    entity_type: str = "tracker"
    entity_id: Optional[int] = None


def write_audit(event: AuditEvent) -> None:
    """Store one event in activity_logs. Failures are logged, never raised."""
    db = SessionLocal()
    try:
        db.execute(
            insert(ActivityLog).values(
                user_id=event.actor_id or "anonymous",
                action=event.action,
                description=event.description,
                entity_type=event.entity_type,
                entity_id=event.entity_id,
            )
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("could not write audit event %s", event)
    finally:
        db.close()


class AuditTrail:
    """Collects events for the current request; they are written after the response."""

    def __init__(self, tasks: BackgroundTasks, actor_id: str):
        self.tasks = tasks
        self.actor_id = actor_id or "anonymous"

    def emit(self, action: str, description: str,
             entity_type: str = "tracker", entity_id: Optional[int] = None) -> AuditEvent:
        event = AuditEvent(self.actor_id, action, description, entity_type, entity_id)
        self.tasks.add_task(write_audit, event)
        return event
