"""create special classes

Revision ID: 20261019_0002
Revises: 20261019_0001
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels = None
depends_on = None


special_class_type_enum = sa.Enum(
    "extra_class",
    "makeup_class",
    "workshop",
    "seminar",
    "exam",
    "project_presentation",
    name="special_class_type",
)
special_class_status_enum = sa.Enum("scheduled", "ongoing", "completed", "cancelled", name="special_class_status")


def upgrade() -> None:
    op.create_table(
        "special_classes",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("class_code", sa.String(length=50), nullable=False),
        sa.Column("subject", sa.String(length=200), nullable=False),
        sa.Column("faculty_id", sa.String(length=36), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("day", sa.String(length=16), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("room", sa.String(length=100), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=False),
        sa.Column("type", special_class_type_enum, nullable=False),
        sa.Column("max_students", sa.Integer(), nullable=True),
        sa.Column("status", special_class_status_enum, nullable=False),
        sa.Column("materials", sa.Text(), nullable=True),
        sa.Column("prerequisites", sa.String(length=500), nullable=True),
        sa.Column("created_by_id", sa.String(length=36), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_special_classes_status", "special_classes", ["status"])
    op.create_index("ix_special_classes_date_start", "special_classes", ["date", "start_time"])
    op.create_index("ix_special_classes_faculty_date", "special_classes", ["faculty_id", "date"])
    op.create_index("ix_special_classes_room_date", "special_classes", ["room", "date", "start_time"])

    op.create_table(
        "special_class_registrations",
        sa.Column(
            "special_class_id",
            sa.String(length=36),
            sa.ForeignKey("special_classes.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("student_id", sa.String(length=36), primary_key=True),
        sa.Column("registered_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_special_class_registrations_student_id",
        "special_class_registrations",
        ["student_id"],
    )


def downgrade() -> None:
    op.drop_index("ix_special_class_registrations_student_id", table_name="special_class_registrations")
    op.drop_table("special_class_registrations")
    op.drop_table("special_classes")
    bind = op.get_bind()
    for enum in (special_class_status_enum, special_class_type_enum):
        enum.drop(bind, checkfirst=True)
