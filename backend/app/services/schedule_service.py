from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, timezone
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import IllegalTransition, InvalidReference, NotFoundError
from app.db.transactions import commit_or_fail
from app.models.class_group import ClassGroup
from app.models.schedule import Schedule, ScheduleStatus
from app.models.subject import Subject
from app.models.substitution import Substitution
from app.models.user import User, UserRole
from app.services.audit import log_activity
from app.services.collaborators import Clock, DbFacultyDirectory, FacultyDirectory, SystemClock
from app.services.conflict_detector import ConflictDetector
from app.services.locks import KeyedLockRegistry, faculty_key, get_lock_registry
from app.services.substitution_workflow import ACTIVE_STATUSES, SubstitutionWorkflow
from app.services.time_range import TimeRange

logger = logging.getLogger(__name__)

SCHEDULE_PATCHABLE_FIELDS = ("date", "start_time", "end_time", "classroom", "class_id", "faculty_id", "subject_id", "notes")


@dataclass(frozen=True)
class ScheduleInput:
    date: date
    start_time: str
    end_time: str
    classroom: str
    faculty_id: str
    subject_id: str
    class_id: str | None = None
    notes: str | None = None


class ScheduleService:
    def __init__(
        self,
        db: Session,
        *,
        workflow: SubstitutionWorkflow | None = None,
        detector: ConflictDetector | None = None,
        directory: FacultyDirectory | None = None,
        clock: Clock | None = None,
        locks: KeyedLockRegistry | None = None,
    ) -> None:
        self._db = db
        self._clock = clock or SystemClock()
        self._detector = detector or ConflictDetector(db, self._clock)
        self._directory = directory or DbFacultyDirectory(db)
        self._locks = locks or get_lock_registry()
        self._workflow = workflow or SubstitutionWorkflow(
            db,
            directory=self._directory,
            clock=self._clock,
            detector=self._detector,
            locks=self._locks,
        )

    def _validate_references(self, faculty_id: str, subject_id: str, class_id: str | None) -> None:
        if not self._directory.exists(faculty_id) or self._directory.role(faculty_id) != UserRole.faculty:
            raise InvalidReference("Invalid faculty member", details={"faculty_id": faculty_id})
        if self._db.get(Subject, subject_id) is None:
            raise InvalidReference(f"Subject {subject_id} does not exist", details={"subject_id": subject_id})
        if class_id and self._db.get(ClassGroup, class_id) is None:
            raise InvalidReference(f"Class {class_id} does not exist", details={"class_id": class_id})

    def _load(self, schedule_id: str) -> Schedule:
        schedule = self._db.get(Schedule, schedule_id)
        if schedule is None:
            raise NotFoundError("Schedule", schedule_id)
        return schedule

    def get_schedule(self, schedule_id: str) -> Schedule:
        return self._load(schedule_id)

    def create_schedule(self, actor: User | None, payload: ScheduleInput) -> Schedule:
        time_range = TimeRange.from_bounds(payload.start_time, payload.end_time)
        classroom = (payload.classroom or "").strip()
        if not classroom:
            raise InvalidReference("Classroom is required")
        self._validate_references(payload.faculty_id, payload.subject_id, payload.class_id)
        day = self._clock.weekday_of(payload.date)

        with self._locks.hold(faculty_key(payload.faculty_id)):
            self._detector.ensure_available(payload.faculty_id, day, time_range, on_date=payload.date)
            schedule = Schedule(
                date=payload.date,
                day=day,
                start_time=time_range.start_hhmm,
                end_time=time_range.end_hhmm,
                classroom=classroom,
                class_id=payload.class_id,
                faculty_id=payload.faculty_id,
                subject_id=payload.subject_id,
                status=ScheduleStatus.active,
                notes=payload.notes,
                updated_by=actor.id if actor is not None else None,
                last_updated=datetime.now(timezone.utc),
            )
            self._db.add(schedule)
            self._db.flush()
            log_activity(
                self._db,
                user=actor,
                action="schedule.create",
                entity_type="schedule",
                entity_id=schedule.id,
                details={"date": payload.date.isoformat(), "time": time_range.format()},
            )
            commit_or_fail(self._db)

        logger.info("Created schedule %s for faculty %s on %s", schedule.id, schedule.faculty_id, schedule.date)
        return schedule

    def update_schedule(self, actor: User | None, schedule_id: str, patch: Mapping[str, object]) -> Schedule:
        schedule = self._load(schedule_id)
        if schedule.status == ScheduleStatus.cancelled:
            raise IllegalTransition("Cancelled schedules cannot be edited", details={"status": schedule.status.value})

        changes = {field: patch[field] for field in SCHEDULE_PATCHABLE_FIELDS if patch.get(field) is not None}
        on_date = changes.get("date", schedule.date)
        time_range = TimeRange.from_bounds(
            changes.get("start_time", schedule.start_time),
            changes.get("end_time", schedule.end_time),
        )
        faculty_id = changes.get("faculty_id", schedule.faculty_id)
        subject_id = changes.get("subject_id", schedule.subject_id)
        class_id = changes.get("class_id", schedule.class_id)
        classroom = str(changes.get("classroom", schedule.classroom)).strip()
        if not classroom:
            raise InvalidReference("Classroom is required")
        self._validate_references(faculty_id, subject_id, class_id)
        day = self._clock.weekday_of(on_date)

        with self._locks.hold(faculty_key(schedule.faculty_id), faculty_key(faculty_id)):
            self._detector.ensure_available(faculty_id, day, time_range, exclude_id=schedule.id, on_date=on_date)
            schedule.date = on_date
            schedule.day = day
            schedule.start_time = time_range.start_hhmm
            schedule.end_time = time_range.end_hhmm
            schedule.classroom = classroom
            schedule.class_id = class_id
            schedule.faculty_id = faculty_id
            schedule.subject_id = subject_id
            if "notes" in changes:
                schedule.notes = changes["notes"]
            schedule.updated_by = actor.id if actor is not None else None
            schedule.last_updated = datetime.now(timezone.utc)
            log_activity(
                self._db,
                user=actor,
                action="schedule.update",
                entity_type="schedule",
                entity_id=schedule.id,
                details={"fields": sorted(changes)},
            )
            commit_or_fail(self._db)

        logger.info("Updated schedule %s", schedule.id)
        return schedule

    def cancel_schedule(self, actor: User | None, schedule_id: str, notes: str | None = None) -> Schedule:
        schedule = self._load(schedule_id)
        if schedule.status == ScheduleStatus.cancelled:
            return schedule
        schedule.status = ScheduleStatus.cancelled
        if notes:
            schedule.notes = notes.strip()
        schedule.updated_by = actor.id if actor is not None else None
        schedule.last_updated = datetime.now(timezone.utc)
        log_activity(self._db, user=actor, action="schedule.cancel", entity_type="schedule", entity_id=schedule.id)
        commit_or_fail(self._db)
        logger.info("Cancelled schedule %s", schedule.id)
        return schedule

    def delete_schedule(self, actor: User | None, schedule_id: str) -> bool:
        schedule = self._db.get(Schedule, schedule_id)
        if schedule is None:
            return False
        referenced = self._db.execute(
            select(Substitution.id).where(
                Substitution.schedule_id == schedule_id,
                Substitution.status.in_(ACTIVE_STATUSES),
            )
        ).first()
        if referenced is not None:
            raise IllegalTransition(
                "Schedule is referenced by an open substitution",
                details={"substitution_id": referenced[0]},
            )
        self._db.delete(schedule)
        log_activity(self._db, user=actor, action="schedule.delete", entity_type="schedule", entity_id=schedule_id)
        commit_or_fail(self._db)
        logger.info("Deleted schedule %s", schedule_id)
        return True

    def request_substitution_for_schedule(
        self,
        actor: User | None,
        schedule_id: str,
        reason: str,
        substitute_faculty_id: str | None = None,
    ) -> Substitution:
        schedule = self._load(schedule_id)
        if schedule.status != ScheduleStatus.active:
            raise IllegalTransition(
                "Only active schedules can be substituted",
                details={"status": schedule.status.value},
            )
        return self._workflow.request(
            actor,
            original_faculty_id=schedule.faculty_id,
            date=schedule.date,
            subject_id=schedule.subject_id,
            classroom=schedule.classroom,
            time_slot=f"{schedule.start_time}-{schedule.end_time}",
            reason=reason,
            substitute_faculty_id=substitute_faculty_id,
            schedule_id=schedule.id,
        )

    def list_schedules(
        self,
        *,
        date_from: date | None = None,
        date_to: date | None = None,
        faculty_id: str | None = None,
        status: ScheduleStatus | None = None,
    ) -> list[Schedule]:
        query = select(Schedule)
        if date_from is not None:
            query = query.where(Schedule.date >= date_from)
        if date_to is not None:
            query = query.where(Schedule.date <= date_to)
        if faculty_id:
            query = query.where(
                (Schedule.faculty_id == faculty_id) | (Schedule.substitute_faculty_id == faculty_id)
            )
        if status is not None:
            query = query.where(Schedule.status == status)
        query = query.order_by(Schedule.date, Schedule.start_time, Schedule.id)
        return list(self._db.execute(query).scalars())
