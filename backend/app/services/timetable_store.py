from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
import logging
import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import InvalidReference, NotFoundError
from app.db.transactions import commit_or_fail
from app.models.class_group import ClassGroup
from app.models.subject import Subject
from app.models.timetable import TimeSlot, Timetable
from app.models.user import User, UserRole
from app.services.audit import log_activity
from app.services.collaborators import Clock, DbFacultyDirectory, FacultyDirectory, SystemClock
from app.services.conflict_detector import ConflictDetector
from app.services.locks import KeyedLockRegistry, faculty_key, get_lock_registry, timetable_key
from app.services.slot_keys import build_slot_key, split_slot_key
from app.services.time_range import DAY_VALUES, TimeRange, day_index

logger = logging.getLogger(__name__)

PATCHABLE_FIELDS = ("start_time", "end_time", "subject_id", "faculty_id", "classroom")


@dataclass(frozen=True)
class SlotInput:
    start_time: str
    end_time: str
    subject_id: str
    faculty_id: str
    classroom: str


@dataclass(frozen=True)
class SlotRecord:
    """A slot flattened together with its parent timetable's class and day."""

    key: str
    timetable_id: str
    slot_id: str
    class_id: str
    day: str
    start_time: str
    end_time: str
    subject_id: str
    faculty_id: str
    classroom: str

    @property
    def time_range(self) -> TimeRange:
        return TimeRange.from_bounds(self.start_time, self.end_time)


def _to_record(timetable: Timetable, slot: TimeSlot) -> SlotRecord:
    return SlotRecord(
        key=build_slot_key(timetable.id, slot.id),
        timetable_id=timetable.id,
        slot_id=slot.id,
        class_id=timetable.class_id,
        day=timetable.day,
        start_time=slot.start_time,
        end_time=slot.end_time,
        subject_id=slot.subject_id,
        faculty_id=slot.faculty_id,
        classroom=slot.classroom,
    )


class TimetableStore:
    def __init__(
        self,
        db: Session,
        *,
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

    def _validate_day(self, day: str) -> str:
        value = (day or "").strip()
        if value not in DAY_VALUES:
            raise InvalidReference(f"Invalid day '{day}'", details={"day": day})
        return value

    def _validate_class(self, class_id: str) -> None:
        if self._db.get(ClassGroup, class_id) is None:
            raise InvalidReference(f"Class {class_id} does not exist", details={"class_id": class_id})

    def _validate_subject(self, subject_id: str) -> None:
        if self._db.get(Subject, subject_id) is None:
            raise InvalidReference(f"Subject {subject_id} does not exist", details={"subject_id": subject_id})

    def _validate_faculty(self, faculty_id: str) -> None:
        if not self._directory.exists(faculty_id) or self._directory.role(faculty_id) != UserRole.faculty:
            raise InvalidReference("Invalid faculty member", details={"faculty_id": faculty_id})

    def _validate_classroom(self, classroom: str) -> str:
        value = (classroom or "").strip()
        if not value:
            raise InvalidReference("Classroom is required")
        return value

    def _get_timetable(self, class_id: str, day: str) -> Timetable | None:
        return self._db.execute(
            select(Timetable).where(Timetable.class_id == class_id, Timetable.day == day)
        ).scalar_one_or_none()

    def upsert_slot(self, class_id: str, day: str, slot: SlotInput, *, actor: User | None = None) -> SlotRecord:
        day = self._validate_day(day)
        time_range = TimeRange.from_bounds(slot.start_time, slot.end_time)
        classroom = self._validate_classroom(slot.classroom)
        self._validate_class(class_id)
        self._validate_subject(slot.subject_id)
        self._validate_faculty(slot.faculty_id)

        with self._locks.hold(faculty_key(slot.faculty_id), timetable_key(class_id, day)):
            self._detector.ensure_available(slot.faculty_id, day, time_range)

            timetable = self._get_timetable(class_id, day)
            if timetable is None:
                timetable = Timetable(id=str(uuid.uuid4()), class_id=class_id, day=day)
                self._db.add(timetable)
                logger.info("Created timetable %s for class %s on %s", timetable.id, class_id, day)

            record = TimeSlot(
                id=str(uuid.uuid4()),
                start_time=time_range.start_hhmm,
                end_time=time_range.end_hhmm,
                subject_id=slot.subject_id,
                faculty_id=slot.faculty_id,
                classroom=classroom,
            )
            timetable.slots[record.id] = record
            log_activity(
                self._db,
                user=actor,
                action="timetable.slot.create",
                entity_type="time_slot",
                entity_id=build_slot_key(timetable.id, record.id),
                details={"class_id": class_id, "day": day},
            )
            commit_or_fail(self._db)

        logger.info("Added slot %s to timetable %s (%s)", record.id, timetable.id, time_range.format())
        return _to_record(timetable, record)

    def update_slot(
        self,
        timetable_id: str,
        slot_id: str,
        patch: Mapping[str, str | None],
        *,
        actor: User | None = None,
    ) -> SlotRecord:
        timetable = self._db.get(Timetable, timetable_id)
        if timetable is None:
            raise NotFoundError("Timetable", timetable_id)
        slot = timetable.slots.get(slot_id)
        if slot is None:
            raise NotFoundError("TimeSlot", slot_id)

        changes = {field: patch[field] for field in PATCHABLE_FIELDS if patch.get(field) is not None}
        start_time = changes.get("start_time", slot.start_time)
        end_time = changes.get("end_time", slot.end_time)
        time_range = TimeRange.from_bounds(start_time, end_time)
        faculty_id = changes.get("faculty_id", slot.faculty_id)
        classroom = self._validate_classroom(changes.get("classroom", slot.classroom))
        if "subject_id" in changes:
            self._validate_subject(changes["subject_id"])
        if "faculty_id" in changes:
            self._validate_faculty(faculty_id)

        with self._locks.hold(
            faculty_key(slot.faculty_id),
            faculty_key(faculty_id),
            timetable_key(timetable.class_id, timetable.day),
        ):
            # The slot's own occupancy must not count against itself.
            self._detector.ensure_available(faculty_id, timetable.day, time_range, exclude_id=slot.id)

            slot.start_time = time_range.start_hhmm
            slot.end_time = time_range.end_hhmm
            slot.subject_id = changes.get("subject_id", slot.subject_id)
            slot.faculty_id = faculty_id
            slot.classroom = classroom
            log_activity(
                self._db,
                user=actor,
                action="timetable.slot.update",
                entity_type="time_slot",
                entity_id=build_slot_key(timetable_id, slot_id),
                details={"fields": sorted(changes)},
            )
            commit_or_fail(self._db)

        logger.info("Updated slot %s in timetable %s", slot_id, timetable_id)
        return _to_record(timetable, slot)

    def remove_slot(self, timetable_id: str, slot_id: str, *, actor: User | None = None) -> bool:
        """Remove a slot; returns False when it is already absent."""
        timetable = self._db.get(Timetable, timetable_id)
        if timetable is None or slot_id not in timetable.slots:
            logger.info("Slot %s in timetable %s already absent", slot_id, timetable_id)
            return False

        with self._locks.hold(timetable_key(timetable.class_id, timetable.day)):
            del timetable.slots[slot_id]
            if not timetable.slots:
                self._db.delete(timetable)
                logger.info("Deleted empty timetable %s", timetable_id)
            log_activity(
                self._db,
                user=actor,
                action="timetable.slot.delete",
                entity_type="time_slot",
                entity_id=build_slot_key(timetable_id, slot_id),
            )
            commit_or_fail(self._db)

        logger.info("Removed slot %s from timetable %s", slot_id, timetable_id)
        return True

    def remove_slot_by_key(self, composite_key: str, *, actor: User | None = None) -> bool:
        try:
            timetable_id, slot_id = split_slot_key(composite_key)
        except NotFoundError:
            logger.info("Slot key %r does not name a slot", composite_key)
            return False
        return self.remove_slot(timetable_id, slot_id, actor=actor)

    def list_slots(
        self,
        class_id: str | None = None,
        day: str | None = None,
        faculty_id: str | None = None,
    ) -> Iterator[SlotRecord]:
        query = select(Timetable, TimeSlot).join(TimeSlot, TimeSlot.timetable_id == Timetable.id)
        if class_id:
            query = query.where(Timetable.class_id == class_id)
        if day:
            query = query.where(Timetable.day == day)
        if faculty_id:
            query = query.where(TimeSlot.faculty_id == faculty_id)

        rows = self._db.execute(query).all()
        rows.sort(key=lambda row: (day_index(row[0].day), row[1].start_time, row[0].class_id, row[1].id))
        for timetable, slot in rows:
            yield _to_record(timetable, slot)

    def find_slot_by_id(self, composite_key: str) -> SlotRecord:
        timetable_id, slot_id = split_slot_key(composite_key)
        timetable = self._db.get(Timetable, timetable_id)
        if timetable is None or slot_id not in timetable.slots:
            raise NotFoundError("TimeSlot", composite_key)
        return _to_record(timetable, timetable.slots[slot_id])
