import uuid
from datetime import date as date_type, datetime
from enum import Enum

from sqlalchemy import Date, DateTime, Enum as SAEnum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.db.base import Base


class SpecialClassType(str, Enum):
    extra_class = "extra_class"
    makeup_class = "makeup_class"
    workshop = "workshop"
    seminar = "seminar"
    exam = "exam"
    project_presentation = "project_presentation"


class SpecialClassStatus(str, Enum):
    scheduled = "scheduled"
    ongoing = "ongoing"
    completed = "completed"
    cancelled = "cancelled"


class SpecialClass(Base):
    __tablename__ = "special_classes"
    __table_args__ = (
        Index("ix_special_classes_date_start", "date", "start_time"),
        Index("ix_special_classes_faculty_date", "faculty_id", "date"),
        Index("ix_special_classes_room_date", "room", "date", "start_time"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    class_code: Mapped[str] = mapped_column(String(50), nullable=False)
    subject: Mapped[str] = mapped_column(String(200), nullable=False)
    faculty_id: Mapped[str] = mapped_column(String(36), nullable=False)
    date: Mapped[date_type] = mapped_column(Date, nullable=False)
    day: Mapped[str] = mapped_column(String(16), nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    room: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    type: Mapped[SpecialClassType] = mapped_column(
        SAEnum(SpecialClassType, name="special_class_type"),
        nullable=False,
        default=SpecialClassType.extra_class,
    )
    max_students: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[SpecialClassStatus] = mapped_column(
        SAEnum(SpecialClassStatus, name="special_class_status"),
        nullable=False,
        default=SpecialClassStatus.scheduled,
        index=True,
    )
    materials: Mapped[str | None] = mapped_column(Text, nullable=True)
    prerequisites: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_by_id: Mapped[str] = mapped_column(String(36), nullable=False)
    registrations: Mapped[list["SpecialClassRegistration"]] = relationship(
        back_populates="special_class",
        cascade="all, delete-orphan",
        order_by="[SpecialClassRegistration.registered_at, SpecialClassRegistration.student_id]",
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    @property
    def duration_minutes(self) -> int:
        start_hours, start_minutes = (int(part) for part in self.start_time.split(":"))
        end_hours, end_minutes = (int(part) for part in self.end_time.split(":"))
        return (end_hours * 60 + end_minutes) - (start_hours * 60 + start_minutes)

    @property
    def registered_student_ids(self) -> list[str]:
        return [item.student_id for item in self.registrations]

    @property
    def is_full(self) -> bool:
        return self.max_students is not None and len(self.registrations) >= self.max_students

    @property
    def available_spots(self) -> int | None:
        if self.max_students is None:
            return None
        return max(0, self.max_students - len(self.registrations))


class SpecialClassRegistration(Base):
    __tablename__ = "special_class_registrations"

    special_class_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("special_classes.id", ondelete="CASCADE"),
        primary_key=True,
    )
    student_id: Mapped[str] = mapped_column(String(36), primary_key=True, index=True)
    registered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    special_class: Mapped[SpecialClass] = relationship(back_populates="registrations")
