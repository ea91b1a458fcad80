from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date
import logging

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from app.core.exceptions import InvalidRange, InvalidTimeFormat, SchedulingConflict
from app.models.schedule import Schedule, ScheduleStatus
from app.models.special_class import SpecialClass, SpecialClassStatus
from app.models.substitution import Substitution, SubstitutionStatus
from app.models.timetable import TimeSlot, Timetable
from app.services.collaborators import Clock, SystemClock
from app.services.slot_keys import SLOT_KEY_SEPARATOR, build_slot_key
from app.services.time_range import TimeRange, overlaps, parse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Commitment:
    kind: str
    id: str
    time_range: TimeRange


@dataclass(frozen=True)
class ConflictCheck:
    ok: bool
    conflicting_id: str | None = None
    conflicting_kind: str | None = None


class ConflictDetector:
    """Read-only availability checks across slots, schedules, special classes and approved cover."""

    def __init__(self, db: Session, clock: Clock | None = None) -> None:
        self._db = db
        self._clock = clock or SystemClock()

    def _slot_commitments(self, faculty_id: str, day: str, on_date: date | None) -> Iterator[Commitment]:
        rows = self._db.execute(
            select(TimeSlot, Timetable.id)
            .join(Timetable, TimeSlot.timetable_id == Timetable.id)
            .where(TimeSlot.faculty_id == faculty_id, Timetable.day == day)
            .order_by(TimeSlot.start_time, TimeSlot.id)
        ).all()
        covers = self._covers_given_away(faculty_id, on_date) if on_date else []
        for slot, timetable_id in rows:
            slot_range = TimeRange.from_bounds(slot.start_time, slot.end_time)
            if any(
                subject_id == slot.subject_id and classroom == slot.classroom and overlaps(window, slot_range)
                for subject_id, classroom, window in covers
            ):
                # Someone else teaches this occurrence on that date.
                continue
            yield Commitment("time_slot", build_slot_key(timetable_id, slot.id), slot_range)

    def _covers_given_away(self, faculty_id: str, on_date: date) -> list[tuple[str, str, TimeRange]]:
        """Approved substitutions handing `faculty_id`'s teaching on `on_date` to someone else."""
        rows = self._db.execute(
            select(Substitution.id, Substitution.subject_id, Substitution.classroom, Substitution.time_slot).where(
                Substitution.original_faculty_id == faculty_id,
                Substitution.date == on_date,
                Substitution.status == SubstitutionStatus.approved,
                Substitution.substitute_faculty_id.is_not(None),
            )
        ).all()
        covers = []
        for substitution_id, subject_id, classroom, time_slot in rows:
            try:
                covers.append((subject_id, classroom, parse(time_slot)))
            except (InvalidTimeFormat, InvalidRange):
                logger.warning("Skipping substitution %s with unreadable time slot", substitution_id)
        return covers

    def _schedule_commitments(self, faculty_id: str, day: str, on_date: date | None) -> Iterator[Commitment]:
        # A substituted schedule stays with its original faculty only when nobody was assigned to cover it.
        query = select(Schedule).where(
            Schedule.day == day,
            or_(
                and_(Schedule.faculty_id == faculty_id, Schedule.status == ScheduleStatus.active),
                and_(
                    Schedule.faculty_id == faculty_id,
                    Schedule.status == ScheduleStatus.substituted,
                    Schedule.substitute_faculty_id.is_(None),
                ),
                and_(
                    Schedule.substitute_faculty_id == faculty_id,
                    Schedule.status == ScheduleStatus.substituted,
                ),
            ),
        )
        if on_date is not None:
            query = query.where(Schedule.date == on_date)
        else:
            query = query.where(Schedule.date >= self._clock.today())
        for schedule in self._db.execute(query.order_by(Schedule.date, Schedule.start_time, Schedule.id)).scalars():
            yield Commitment(
                "schedule",
                schedule.id,
                TimeRange.from_bounds(schedule.start_time, schedule.end_time),
            )

    def _cover_commitments(self, faculty_id: str, on_date: date) -> Iterator[Commitment]:
        query = (
            select(Substitution)
            .where(
                Substitution.substitute_faculty_id == faculty_id,
                Substitution.date == on_date,
                Substitution.status == SubstitutionStatus.approved,
            )
            .order_by(Substitution.time_slot, Substitution.id)
        )
        for substitution in self._db.execute(query).scalars():
            try:
                window = parse(substitution.time_slot)
            except (InvalidTimeFormat, InvalidRange):
                logger.warning("Skipping substitution %s with unreadable time slot", substitution.id)
                continue
            yield Commitment("substitution", substitution.id, window)

    def _special_class_commitments(self, faculty_id: str, day: str, on_date: date | None) -> Iterator[Commitment]:
        query = select(SpecialClass).where(
            SpecialClass.faculty_id == faculty_id,
            SpecialClass.day == day,
            SpecialClass.status.in_((SpecialClassStatus.scheduled, SpecialClassStatus.ongoing)),
        )
        if on_date is not None:
            query = query.where(SpecialClass.date == on_date)
        else:
            query = query.where(SpecialClass.date >= self._clock.today())
        query = query.order_by(SpecialClass.date, SpecialClass.start_time, SpecialClass.id)
        for special_class in self._db.execute(query).scalars():
            yield Commitment(
                "special_class",
                special_class.id,
                TimeRange.from_bounds(special_class.start_time, special_class.end_time),
            )

    def commitments(self, faculty_id: str, day: str, on_date: date | None = None) -> Iterator[Commitment]:
        yield from self._slot_commitments(faculty_id, day, on_date)
        yield from self._schedule_commitments(faculty_id, day, on_date)
        yield from self._special_class_commitments(faculty_id, day, on_date)
        if on_date is not None:
            yield from self._cover_commitments(faculty_id, on_date)

    def check_faculty_availability(
        self,
        faculty_id: str,
        day: str,
        time_range: TimeRange,
        exclude_id: str | None = None,
        on_date: date | None = None,
    ) -> ConflictCheck:
        """Report the first commitment of `faculty_id` overlapping `time_range` on `day`.

        Without `on_date` the check is for a recurring weekly slot and covers every
        upcoming schedule that falls on `day`; with `on_date` only that date counts.
        `exclude_id` may be a bare slot id, a composite slot key, a schedule id or a
        special class id.
        """
        for commitment in self.commitments(faculty_id, day, on_date):
            if exclude_id and _matches_exclusion(commitment, exclude_id):
                continue
            if overlaps(time_range, commitment.time_range):
                return ConflictCheck(ok=False, conflicting_id=commitment.id, conflicting_kind=commitment.kind)
        return ConflictCheck(ok=True)

    def ensure_available(
        self,
        faculty_id: str,
        day: str,
        time_range: TimeRange,
        exclude_id: str | None = None,
        on_date: date | None = None,
    ) -> None:
        result = self.check_faculty_availability(faculty_id, day, time_range, exclude_id=exclude_id, on_date=on_date)
        if not result.ok:
            logger.info(
                "Scheduling conflict for faculty %s on %s %s with %s %s",
                faculty_id,
                on_date.isoformat() if on_date else day,
                time_range.format(),
                result.conflicting_kind,
                result.conflicting_id,
            )
            raise SchedulingConflict(faculty_id, result.conflicting_id)


def _matches_exclusion(commitment: Commitment, exclude_id: str) -> bool:
    if commitment.id == exclude_id:
        return True
    if commitment.kind == "time_slot":
        _, _, slot_id = commitment.id.partition(SLOT_KEY_SEPARATOR)
        return slot_id == exclude_id
    return False
