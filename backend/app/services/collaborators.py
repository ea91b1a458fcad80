from __future__ import annotations

from datetime import date, datetime
import logging
from typing import Any, Protocol
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.models.notification import NotificationPriority, NotificationType
from app.models.user import User, UserRole
from app.services.notifications import create_notification
from app.services.time_range import DAY_ORDER

logger = logging.getLogger(__name__)

ACTION_SUBSTITUTION_REQUEST = "substitution.request"
ACTION_SUBSTITUTION_DECIDE = "substitution.decide"
ACTION_SUBSTITUTION_COMPLETE = "substitution.complete"
ACTION_SUBSTITUTION_DELETE = "substitution.delete"
ACTION_SUBSTITUTION_ASSIGN = "substitution.assign"


class FacultyDirectory(Protocol):
    def exists(self, user_id: str) -> bool: ...

    def role(self, user_id: str) -> UserRole | None: ...

    def administrator_ids(self) -> list[str]: ...


class AuthorizationPredicate(Protocol):
    def is_allowed(self, actor: User | None, action: str, resource: Any = None) -> bool: ...


class Notifier(Protocol):
    def send(
        self,
        recipient_id: str,
        title: str,
        message: str,
        priority: NotificationPriority = NotificationPriority.medium,
        **context: Any,
    ) -> None: ...


class Clock(Protocol):
    def today(self) -> date: ...

    def now(self) -> datetime: ...

    def weekday_of(self, value: date) -> str: ...


def weekday_name(value: date) -> str:
    return DAY_ORDER[value.weekday()]


class DbFacultyDirectory:
    def __init__(self, db: Session) -> None:
        self._db = db

    def _get(self, user_id: str | None) -> User | None:
        if not user_id:
            return None
        user = self._db.get(User, user_id)
        if user is None or not user.is_active:
            return None
        return user

    def exists(self, user_id: str) -> bool:
        return self._get(user_id) is not None

    def role(self, user_id: str) -> UserRole | None:
        user = self._get(user_id)
        return user.role if user is not None else None

    def administrator_ids(self) -> list[str]:
        return list(
            self._db.execute(
                select(User.id).where(User.role == UserRole.admin, User.is_active.is_(True))
            ).scalars()
        )


class RoleAuthorization:
    """Default role policy: admins may do everything, faculty act on their own requests."""

    OWNER_ACTIONS = {
        ACTION_SUBSTITUTION_REQUEST,
        ACTION_SUBSTITUTION_DELETE,
        ACTION_SUBSTITUTION_ASSIGN,
    }

    def is_allowed(self, actor: User | None, action: str, resource: Any = None) -> bool:
        if actor is None or not actor.is_active:
            return False
        if actor.role == UserRole.admin:
            return True
        if action in self.OWNER_ACTIONS and actor.role == UserRole.faculty:
            owner_id = getattr(resource, "original_faculty_id", None)
            if owner_id is None and isinstance(resource, dict):
                owner_id = resource.get("original_faculty_id")
            return owner_id == actor.id
        return False


class DbNotifier:
    """Writes in-app notifications on the caller's session, one commit each.

    Callers send only after their own change is committed, so a failed write
    rolls back nothing but the notification. Delivery problems never reach the caller.
    """

    def __init__(self, db: Session) -> None:
        self._db = db

    def send(
        self,
        recipient_id: str,
        title: str,
        message: str,
        priority: NotificationPriority = NotificationPriority.medium,
        **context: Any,
    ) -> None:
        try:
            create_notification(
                self._db,
                user_id=recipient_id,
                title=title,
                message=message,
                notification_type=context.get("notification_type", NotificationType.substitution),
                priority=priority,
                related_id=context.get("related_id"),
                related_model=context.get("related_model"),
            )
            self._db.commit()
        except SQLAlchemyError:
            self._db.rollback()
            logger.warning("Notification delivery failed for user %s", recipient_id, exc_info=True)


class SystemClock:
    def __init__(self, timezone_name: str | None = None) -> None:
        self._zone = ZoneInfo(timezone_name or get_settings().institution_timezone)

    def now(self) -> datetime:
        return datetime.now(self._zone)

    def today(self) -> date:
        return self.now().date()

    def weekday_of(self, value: date) -> str:
        return weekday_name(value)
