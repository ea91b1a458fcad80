from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.activity_log import ActivityLog
from app.models.user import User

logger = logging.getLogger(__name__)

MAX_TRAIL_ROWS = 500


def log_activity(
    db: Session,
    *,
    user: User | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    details: dict | None = None,
) -> ActivityLog:
    """Stage an audit row in the caller's transaction; the caller commits."""
    record = ActivityLog(
        user_id=user.id if user is not None else None,
        actor_role=user.role.value if user is not None else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details or {},
    )
    db.add(record)
    logger.debug("Activity %s on %s %s by %s", action, entity_type, entity_id, record.user_id)
    return record


def activity_trail(
    db: Session,
    *,
    entity_type: str | None = None,
    entity_id: str | None = None,
    user_id: str | None = None,
    action_prefix: str | None = None,
    limit: int = 100,
) -> list[ActivityLog]:
    query = select(ActivityLog)
    if entity_type:
        query = query.where(ActivityLog.entity_type == entity_type)
    if entity_id:
        query = query.where(ActivityLog.entity_id == entity_id)
    if user_id:
        query = query.where(ActivityLog.user_id == user_id)
    if action_prefix:
        query = query.where(ActivityLog.action.startswith(action_prefix))
    query = query.order_by(ActivityLog.created_at.desc(), ActivityLog.id).limit(min(limit, MAX_TRAIL_ROWS))
    return list(db.execute(query).scalars())
