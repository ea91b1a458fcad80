from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.exceptions import IllegalTransition, InvalidReference, NotFoundError, RegistrationRefused, Unauthorized
from app.db.transactions import commit_or_fail
from app.models.notification import NotificationPriority, NotificationType
from app.models.special_class import (
    SpecialClass,
    SpecialClassRegistration,
    SpecialClassStatus,
    SpecialClassType,
)
from app.models.user import User, UserRole
from app.services.audit import log_activity
from app.services.collaborators import (
    Clock,
    DbFacultyDirectory,
    DbNotifier,
    FacultyDirectory,
    Notifier,
    SystemClock,
)
from app.services.conflict_detector import ConflictDetector
from app.services.locks import KeyedLockRegistry, faculty_key, get_lock_registry, special_class_key
from app.services.time_range import TimeRange

logger = logging.getLogger(__name__)

MAX_STUDENTS_LIMIT = 200
UPCOMING_LIMIT = 100
OPEN_STATUSES = (SpecialClassStatus.scheduled, SpecialClassStatus.ongoing)

SPECIAL_CLASS_TRANSITIONS: dict[SpecialClassStatus, set[SpecialClassStatus]] = {
    SpecialClassStatus.scheduled: {
        SpecialClassStatus.ongoing,
        SpecialClassStatus.completed,
        SpecialClassStatus.cancelled,
    },
    SpecialClassStatus.ongoing: {SpecialClassStatus.completed, SpecialClassStatus.cancelled},
    SpecialClassStatus.completed: set(),
    SpecialClassStatus.cancelled: set(),
}

SPECIAL_CLASS_PATCHABLE_FIELDS = (
    "class_code",
    "subject",
    "faculty_id",
    "date",
    "start_time",
    "end_time",
    "room",
    "description",
    "type",
    "max_students",
    "materials",
    "prerequisites",
)
RESCHEDULING_FIELDS = {"faculty_id", "date", "start_time", "end_time"}


@dataclass(frozen=True)
class SpecialClassInput:
    class_code: str
    subject: str
    date: date
    start_time: str
    end_time: str
    room: str
    description: str
    type: SpecialClassType = SpecialClassType.extra_class
    faculty_id: str | None = None
    max_students: int | None = None
    materials: str | None = None
    prerequisites: str | None = None


def _required_text(value: str | None, field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise InvalidReference(f"{field} is required", details={"field": field})
    return text


def _optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


def _validate_capacity(max_students: int | None) -> None:
    if max_students is not None and not 1 <= max_students <= MAX_STUDENTS_LIMIT:
        raise InvalidReference(
            f"max_students must be between 1 and {MAX_STUDENTS_LIMIT}",
            details={"max_students": max_students},
        )


class SpecialClassService:
    """Extra classes, makeup sessions, workshops and exams held on a single date."""

    def __init__(
        self,
        db: Session,
        *,
        detector: ConflictDetector | None = None,
        directory: FacultyDirectory | None = None,
        notifier: Notifier | None = None,
        clock: Clock | None = None,
        locks: KeyedLockRegistry | None = None,
    ) -> None:
        self._db = db
        self._clock = clock or SystemClock()
        self._detector = detector or ConflictDetector(db, self._clock)
        self._directory = directory or DbFacultyDirectory(db)
        self._notifier = notifier or DbNotifier(db)
        self._locks = locks or get_lock_registry()

    def _load(self, special_class_id: str) -> SpecialClass:
        special_class = self._db.get(SpecialClass, special_class_id)
        if special_class is None:
            raise NotFoundError("SpecialClass", special_class_id)
        return special_class

    def _validate_faculty(self, faculty_id: str) -> None:
        if not self._directory.exists(faculty_id) or self._directory.role(faculty_id) != UserRole.faculty:
            raise InvalidReference("Invalid faculty member", details={"faculty_id": faculty_id})

    def _require_student(self, actor: User | None, action: str, special_class_id: str) -> User:
        if actor is None or actor.role != UserRole.student:
            raise Unauthorized(action, special_class_id)
        return actor

    def _notify_students(self, special_class: SpecialClass, *, title: str, message: str) -> None:
        for student_id in special_class.registered_student_ids:
            try:
                self._notifier.send(
                    student_id,
                    title,
                    message,
                    NotificationPriority.high,
                    notification_type=NotificationType.class_update,
                    related_id=special_class.id,
                    related_model="SpecialClass",
                )
            except Exception:
                logger.warning("Notifier raised for special class %s student %s", special_class.id, student_id,
                               exc_info=True)

    def get(self, special_class_id: str) -> SpecialClass:
        return self._load(special_class_id)

    def create(self, actor: User | None, payload: SpecialClassInput) -> SpecialClass:
        if actor is None or actor.role not in (UserRole.admin, UserRole.faculty):
            raise Unauthorized("special_class.create")
        faculty_id = payload.faculty_id or (actor.id if actor.role == UserRole.faculty else None)
        if not faculty_id:
            raise InvalidReference("faculty_id is required")
        if actor.role == UserRole.faculty and faculty_id != actor.id:
            raise Unauthorized("special_class.create", faculty_id)
        self._validate_faculty(faculty_id)
        time_range = TimeRange.from_bounds(payload.start_time, payload.end_time)
        _validate_capacity(payload.max_students)
        day = self._clock.weekday_of(payload.date)

        special_class = SpecialClass(
            class_code=_required_text(payload.class_code, "class_code").upper(),
            subject=_required_text(payload.subject, "subject"),
            faculty_id=faculty_id,
            date=payload.date,
            day=day,
            start_time=time_range.start_hhmm,
            end_time=time_range.end_hhmm,
            room=_required_text(payload.room, "room"),
            description=_required_text(payload.description, "description"),
            type=payload.type,
            max_students=payload.max_students,
            status=SpecialClassStatus.scheduled,
            materials=_optional_text(payload.materials),
            prerequisites=_optional_text(payload.prerequisites),
            created_by_id=actor.id,
        )

        with self._locks.hold(faculty_key(faculty_id)):
            self._detector.ensure_available(faculty_id, day, time_range, on_date=payload.date)
            self._db.add(special_class)
            self._db.flush()
            log_activity(
                self._db,
                user=actor,
                action="special_class.create",
                entity_type="special_class",
                entity_id=special_class.id,
                details={"date": payload.date.isoformat(), "time": time_range.format(), "type": payload.type.value},
            )
            commit_or_fail(self._db)

        logger.info("Created special class %s for faculty %s on %s", special_class.id, faculty_id, payload.date)
        return special_class

    def update(self, actor: User | None, special_class_id: str, patch: Mapping[str, object]) -> SpecialClass:
        special_class = self._load(special_class_id)
        is_admin = actor is not None and actor.role == UserRole.admin
        if actor is None or not (
            is_admin or actor.id in (special_class.created_by_id, special_class.faculty_id)
        ):
            raise Unauthorized("special_class.update", special_class_id)

        target_status = patch.get("status")
        if target_status is not None:
            target_status = SpecialClassStatus(target_status)
            allowed = SPECIAL_CLASS_TRANSITIONS[special_class.status]
            if target_status != special_class.status and target_status not in allowed:
                raise IllegalTransition(
                    f"Cannot move special class from {special_class.status.value} to {target_status.value}",
                    details={"from": special_class.status.value, "to": target_status.value},
                )

        changes = {field: patch[field] for field in SPECIAL_CLASS_PATCHABLE_FIELDS if patch.get(field) is not None}
        if changes and special_class.status not in OPEN_STATUSES:
            raise IllegalTransition(
                "Closed special classes cannot be edited",
                details={"status": special_class.status.value},
            )
        faculty_id = changes.get("faculty_id", special_class.faculty_id)
        if faculty_id != special_class.faculty_id:
            if not is_admin:
                raise Unauthorized("special_class.reassign", special_class_id)
            self._validate_faculty(faculty_id)
        on_date = changes.get("date", special_class.date)
        time_range = TimeRange.from_bounds(
            changes.get("start_time", special_class.start_time),
            changes.get("end_time", special_class.end_time),
        )
        max_students = changes.get("max_students", special_class.max_students)
        _validate_capacity(max_students)
        day = self._clock.weekday_of(on_date)
        rescheduled = bool(RESCHEDULING_FIELDS & changes.keys())

        with self._locks.hold(
            faculty_key(special_class.faculty_id),
            faculty_key(faculty_id),
            special_class_key(special_class.id),
        ):
            stays_open = (target_status or special_class.status) in OPEN_STATUSES
            if rescheduled and stays_open:
                self._detector.ensure_available(
                    faculty_id, day, time_range, exclude_id=special_class.id, on_date=on_date
                )
            self._db.expire(special_class, ["registrations"])
            if max_students is not None and max_students < len(special_class.registrations):
                raise RegistrationRefused(
                    "max_students cannot drop below the number of registered students",
                    details={"max_students": max_students, "registered": len(special_class.registrations)},
                )

            for field in ("class_code", "subject", "room", "description"):
                if field in changes:
                    value = _required_text(str(changes[field]), field)
                    setattr(special_class, field, value.upper() if field == "class_code" else value)
            for field in ("materials", "prerequisites"):
                if field in changes:
                    setattr(special_class, field, _optional_text(str(changes[field])))
            if "type" in changes:
                special_class.type = SpecialClassType(changes["type"])
            special_class.faculty_id = faculty_id
            special_class.date = on_date
            special_class.day = day
            special_class.start_time = time_range.start_hhmm
            special_class.end_time = time_range.end_hhmm
            special_class.max_students = max_students
            previous_status = special_class.status
            if target_status is not None:
                special_class.status = target_status
            log_activity(
                self._db,
                user=actor,
                action="special_class.update",
                entity_type="special_class",
                entity_id=special_class.id,
                details={"fields": sorted(changes), "status": special_class.status.value},
            )
            commit_or_fail(self._db)

        logger.info("Updated special class %s", special_class.id)
        when = f"{special_class.date.isoformat()} {special_class.start_time}-{special_class.end_time}"
        if special_class.status == SpecialClassStatus.cancelled and previous_status != SpecialClassStatus.cancelled:
            self._notify_students(
                special_class,
                title="Special Class Cancelled",
                message=f"{special_class.subject} ({special_class.class_code}) on {when} has been cancelled.",
            )
        elif rescheduled:
            self._notify_students(
                special_class,
                title="Special Class Rescheduled",
                message=f"{special_class.subject} ({special_class.class_code}) now takes place on {when}.",
            )
        return special_class

    def delete(self, actor: User | None, special_class_id: str) -> bool:
        special_class = self._db.get(SpecialClass, special_class_id)
        if special_class is None:
            return False
        if actor is None or not (actor.role == UserRole.admin or actor.id == special_class.created_by_id):
            raise Unauthorized("special_class.delete", special_class_id)
        self._db.delete(special_class)
        log_activity(
            self._db,
            user=actor,
            action="special_class.delete",
            entity_type="special_class",
            entity_id=special_class_id,
        )
        commit_or_fail(self._db)
        logger.info("Deleted special class %s", special_class_id)
        return True

    def register(self, actor: User | None, special_class_id: str) -> SpecialClass:
        student = self._require_student(actor, "special_class.register", special_class_id)
        special_class = self._load(special_class_id)

        with self._locks.hold(special_class_key(special_class_id)):
            self._db.expire(special_class)
            if special_class.status != SpecialClassStatus.scheduled:
                raise RegistrationRefused(
                    "Registration is closed for this special class",
                    details={"status": special_class.status.value},
                )
            if student.id in special_class.registered_student_ids:
                raise RegistrationRefused("Student already registered", details={"student_id": student.id})
            if special_class.is_full:
                raise RegistrationRefused("Special class is full", details={"max_students": special_class.max_students})
            special_class.registrations.append(SpecialClassRegistration(student_id=student.id))
            log_activity(
                self._db,
                user=student,
                action="special_class.register",
                entity_type="special_class",
                entity_id=special_class_id,
            )
            commit_or_fail(self._db)

        logger.info("Student %s registered for special class %s", student.id, special_class_id)
        return special_class

    def unregister(self, actor: User | None, special_class_id: str) -> SpecialClass:
        student = self._require_student(actor, "special_class.unregister", special_class_id)
        special_class = self._load(special_class_id)

        with self._locks.hold(special_class_key(special_class_id)):
            self._db.expire(special_class)
            registration = next(
                (item for item in special_class.registrations if item.student_id == student.id),
                None,
            )
            if registration is None:
                return special_class
            special_class.registrations.remove(registration)
            log_activity(
                self._db,
                user=student,
                action="special_class.unregister",
                entity_type="special_class",
                entity_id=special_class_id,
            )
            commit_or_fail(self._db)

        logger.info("Student %s left special class %s", student.id, special_class_id)
        return special_class

    def upcoming(self, limit: int = 10) -> list[SpecialClass]:
        limit = max(1, min(limit, UPCOMING_LIMIT))
        query = (
            select(SpecialClass)
            .where(SpecialClass.date >= self._clock.today(), SpecialClass.status.in_(OPEN_STATUSES))
            .order_by(SpecialClass.date, SpecialClass.start_time, SpecialClass.id)
            .limit(limit)
        )
        return list(self._db.execute(query).scalars())

    def list(
        self,
        *,
        on_date: date | None = None,
        faculty_id: str | None = None,
        status: SpecialClassStatus | None = None,
        class_type: SpecialClassType | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> tuple[list[SpecialClass], int]:
        query = select(SpecialClass)
        if on_date is not None:
            query = query.where(SpecialClass.date == on_date)
        if faculty_id:
            query = query.where(SpecialClass.faculty_id == faculty_id)
        if status is not None:
            query = query.where(SpecialClass.status == status)
        if class_type is not None:
            query = query.where(SpecialClass.type == class_type)
        total = self._db.execute(select(func.count()).select_from(query.subquery())).scalar_one()
        items = self._db.execute(
            query.order_by(SpecialClass.date, SpecialClass.start_time, SpecialClass.id).limit(limit).offset(offset)
        ).scalars()
        return list(items), total
