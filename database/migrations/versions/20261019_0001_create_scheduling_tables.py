"""create scheduling tables

Revision ID: 20261019_0001
Revises: None
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


user_role_enum = sa.Enum("admin", "faculty", "student", name="user_role")
schedule_status_enum = sa.Enum("active", "substituted", "cancelled", name="schedule_status")
substitution_status_enum = sa.Enum("pending", "approved", "rejected", "completed", name="substitution_status")
notification_type_enum = sa.Enum(
    "substitution",
    "class_update",
    "schedule_change",
    "system",
    "assignment",
    name="notification_type",
)
notification_priority_enum = sa.Enum("low", "medium", "high", name="notification_priority")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("role", user_role_enum, nullable=False),
        sa.Column("department", sa.String(length=200), nullable=True),
        sa.Column("semester", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "subjects",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("subject_name", sa.String(length=200), nullable=False),
        sa.Column("subject_code", sa.String(length=50), nullable=False),
        sa.Column("credits", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("department", sa.String(length=200), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_subjects_subject_code", "subjects", ["subject_code"], unique=True)

    op.create_table(
        "class_groups",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("class_name", sa.String(length=200), nullable=False),
        sa.Column("course_code", sa.String(length=50), nullable=False),
        sa.Column("department", sa.String(length=200), nullable=False),
        sa.Column("semester", sa.Integer(), nullable=False),
        sa.Column("faculty_id", sa.String(length=36), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_class_groups_department", "class_groups", ["department"])

    op.create_table(
        "timetables",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("class_id", sa.String(length=36), nullable=False),
        sa.Column("day", sa.String(length=16), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("class_id", "day", name="uq_timetables_class_day"),
    )
    op.create_index("ix_timetables_class_id", "timetables", ["class_id"])

    op.create_table(
        "time_slots",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column(
            "timetable_id",
            sa.String(length=36),
            sa.ForeignKey("timetables.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("subject_id", sa.String(length=36), nullable=False),
        sa.Column("faculty_id", sa.String(length=36), nullable=False),
        sa.Column("classroom", sa.String(length=100), nullable=False),
    )
    op.create_index("ix_time_slots_timetable_id", "time_slots", ["timetable_id"])
    op.create_index("ix_time_slots_subject_id", "time_slots", ["subject_id"])
    op.create_index("ix_time_slots_faculty_id", "time_slots", ["faculty_id"])

    op.create_table(
        "schedules",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("day", sa.String(length=16), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("classroom", sa.String(length=100), nullable=False),
        sa.Column("class_id", sa.String(length=36), nullable=True),
        sa.Column("faculty_id", sa.String(length=36), nullable=False),
        sa.Column("subject_id", sa.String(length=36), nullable=False),
        sa.Column("status", schedule_status_enum, nullable=False, server_default="active"),
        sa.Column("substitute_faculty_id", sa.String(length=36), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("updated_by", sa.String(length=36), nullable=True),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_schedules_date", "schedules", ["date"])
    op.create_index("ix_schedules_faculty_id", "schedules", ["faculty_id"])
    op.create_index("ix_schedules_substitute_faculty_id", "schedules", ["substitute_faculty_id"])

    op.create_table(
        "substitutions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("original_faculty_id", sa.String(length=36), nullable=False),
        sa.Column("substitute_faculty_id", sa.String(length=36), nullable=True),
        sa.Column("subject_id", sa.String(length=36), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("classroom", sa.String(length=100), nullable=False),
        sa.Column("time_slot", sa.String(length=11), nullable=False),
        sa.Column("status", substitution_status_enum, nullable=False, server_default="pending"),
        sa.Column("schedule_id", sa.String(length=36), nullable=True),
        sa.Column("requested_by_id", sa.String(length=36), nullable=True),
        sa.Column("decided_by_id", sa.String(length=36), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_substitutions_date", "substitutions", ["date"])
    op.create_index("ix_substitutions_original_faculty_id", "substitutions", ["original_faculty_id"])
    op.create_index("ix_substitutions_substitute_faculty_id", "substitutions", ["substitute_faculty_id"])
    op.create_index("ix_substitutions_status", "substitutions", ["status"])
    op.create_index("ix_substitutions_schedule_id", "substitutions", ["schedule_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("notification_type", notification_type_enum, nullable=False, server_default="system"),
        sa.Column("priority", notification_priority_enum, nullable=False, server_default="medium"),
        sa.Column("related_id", sa.String(length=36), nullable=True),
        sa.Column("related_model", sa.String(length=50), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("actor_role", sa.String(length=20), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=True),
        sa.Column("entity_id", sa.String(length=80), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_user_id", "activity_logs", ["user_id"])
    op.create_index("ix_activity_logs_created_at", "activity_logs", ["created_at"])
    op.create_index("ix_activity_logs_entity", "activity_logs", ["entity_type", "entity_id"])


def downgrade() -> None:
    op.drop_table("activity_logs")
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_table("substitutions")
    op.drop_table("schedules")
    op.drop_table("time_slots")
    op.drop_table("timetables")
    op.drop_table("class_groups")
    op.drop_index("ix_subjects_subject_code", table_name="subjects")
    op.drop_table("subjects")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    bind = op.get_bind()
    for enum in (
        notification_priority_enum,
        notification_type_enum,
        substitution_status_enum,
        schedule_status_enum,
        user_role_enum,
    ):
        enum.drop(bind, checkfirst=True)
