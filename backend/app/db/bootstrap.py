from __future__ import annotations

import logging

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

import app.models  # noqa: F401
from app.core.config import get_settings
from app.db.base import Base
from app.db.session import engine as default_engine

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "users": {"id", "email", "role", "is_active"},
    "subjects": {"id", "subject_code"},
    "class_groups": {"id", "department", "semester"},
    "timetables": {"id", "class_id", "day"},
    "time_slots": {"id", "timetable_id", "start_time", "end_time", "faculty_id", "classroom"},
    "schedules": {"id", "date", "day", "faculty_id", "status", "substitute_faculty_id"},
    "substitutions": {"id", "date", "original_faculty_id", "time_slot", "status", "schedule_id"},
    "notifications": {"id", "user_id", "priority", "related_id", "read_at"},
    "activity_logs": {"id", "action", "actor_role", "entity_type", "entity_id"},
    "special_classes": {"id", "faculty_id", "date", "day", "start_time", "end_time", "status"},
    "special_class_registrations": {"special_class_id", "student_id"},
}

NOTIFICATION_DELIVERY_COLUMNS = {
    "priority": "VARCHAR(6) NOT NULL DEFAULT 'medium'",
    "related_id": "VARCHAR(36)",
    "related_model": "VARCHAR(50)",
    "read_at": "TIMESTAMP",
}


def _ensure_notification_delivery_columns(engine: Engine) -> None:
    with engine.begin() as connection:
        inspector = inspect(connection)
        if "notifications" not in set(inspector.get_table_names()):
            return
        column_names = {item["name"] for item in inspector.get_columns("notifications")}
        for column_name, ddl in NOTIFICATION_DELIVERY_COLUMNS.items():
            if column_name in column_names:
                continue
            if column_name == "read_at" and connection.dialect.name == "postgresql":
                ddl = "TIMESTAMP WITH TIME ZONE"
            connection.execute(text(f"ALTER TABLE notifications ADD COLUMN {column_name} {ddl}"))
            logger.info("Added notifications.%s column", column_name)


def missing_schema(engine: Engine) -> list[str]:
    with engine.connect() as connection:
        inspector = inspect(connection)
        table_names = set(inspector.get_table_names())
        missing: list[str] = []
        for table_name, required in REQUIRED_COLUMNS.items():
            if table_name not in table_names:
                missing.append(table_name)
                continue
            existing = {item["name"] for item in inspector.get_columns(table_name)}
            missing.extend(f"{table_name}.{column_name}" for column_name in sorted(required - existing))
        return missing


def ensure_runtime_schema(engine: Engine | None = None) -> None:
    engine = engine or default_engine
    settings = get_settings()
    try:
        if settings.auto_create_schema:
            Base.metadata.create_all(bind=engine)
            _ensure_notification_delivery_columns(engine)
        missing = missing_schema(engine)
    except SQLAlchemyError as exc:  # pragma: no cover - runtime environment dependent
        logger.exception("Runtime schema bootstrap failed")
        raise RuntimeError("Runtime schema bootstrap failed") from exc
    if missing:
        raise RuntimeError(f"Missing required schema objects: {', '.join(missing)}")
