from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.models.notification import Notification, NotificationPriority, NotificationType

logger = logging.getLogger(__name__)


def create_notification(
    db: Session,
    *,
    user_id: str,
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.system,
    priority: NotificationPriority = NotificationPriority.medium,
    related_id: str | None = None,
    related_model: str | None = None,
) -> Notification:
    record = Notification(
        user_id=user_id,
        title=title.strip(),
        message=message.strip(),
        notification_type=notification_type,
        priority=priority,
        related_id=related_id,
        related_model=related_model,
    )
    db.add(record)
    db.flush()
    logger.debug("Queued %s notification %s for user %s", notification_type.value, record.id, user_id)
    return record
