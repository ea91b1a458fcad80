import uuid
from datetime import date as date_type, datetime
from enum import Enum

from sqlalchemy import Date, DateTime, Enum as SAEnum, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class SubstitutionStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    completed = "completed"


class Substitution(Base):
    __tablename__ = "substitutions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    date: Mapped[date_type] = mapped_column(Date, nullable=False, index=True)
    original_faculty_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    substitute_faculty_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    subject_id: Mapped[str] = mapped_column(String(36), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    classroom: Mapped[str] = mapped_column(String(100), nullable=False)
    time_slot: Mapped[str] = mapped_column(String(11), nullable=False)
    status: Mapped[SubstitutionStatus] = mapped_column(
        SAEnum(SubstitutionStatus, name="substitution_status"),
        nullable=False,
        default=SubstitutionStatus.pending,
        index=True,
    )
    schedule_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    requested_by_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    decided_by_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())
