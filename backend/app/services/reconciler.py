from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.substitution import Substitution, SubstitutionStatus
from app.models.timetable import TimeSlot, Timetable
from app.services.collaborators import Clock, SystemClock
from app.services.slot_keys import build_slot_key
from app.services.time_range import parse_time_to_minutes

logger = logging.getLogger(__name__)

PENDING_SUBSTITUTE_LABEL = "pending substitution"
OVERLAY_STATUSES = (SubstitutionStatus.approved, SubstitutionStatus.pending)


@dataclass(frozen=True)
class EffectiveSlot:
    slot_key: str
    class_id: str
    day: str
    start_time: str
    end_time: str
    subject_id: str
    classroom: str
    original_faculty_id: str
    faculty_id: str | None
    faculty_label: str | None = None
    substitution_id: str | None = None
    substitution_status: SubstitutionStatus | None = None

    @property
    def is_substituted(self) -> bool:
        return self.substitution_id is not None


@dataclass(frozen=True)
class ClassroomEntry:
    slot: EffectiveSlot
    state: str


@dataclass(frozen=True)
class DayOverview:
    date: date
    day: str
    entries: list[ClassroomEntry]
    counts: dict[str, int]


def _precedence(substitution: Substitution) -> tuple:
    # Approved beats pending, then the most recently created request wins.
    created = substitution.created_at or datetime.min
    if created.tzinfo is not None:
        created = created.replace(tzinfo=None)
    return (substitution.status == SubstitutionStatus.approved, created, substitution.id)


class ScheduleReconciler:
    def __init__(self, db: Session, clock: Clock | None = None) -> None:
        self._db = db
        self._clock = clock or SystemClock()

    def _substitutions_on(self, as_of_date: date, faculty_ids: set[str]) -> dict[tuple[str, str, str], Substitution]:
        if not faculty_ids:
            return {}
        rows = self._db.execute(
            select(Substitution).where(
                Substitution.date == as_of_date,
                Substitution.status.in_(OVERLAY_STATUSES),
                Substitution.original_faculty_id.in_(sorted(faculty_ids)),
            )
        ).scalars()
        chosen: dict[tuple[str, str, str], Substitution] = {}
        for substitution in rows:
            natural_key = (substitution.subject_id, substitution.original_faculty_id, substitution.classroom)
            current = chosen.get(natural_key)
            if current is None or _precedence(substitution) > _precedence(current):
                chosen[natural_key] = substitution
        return chosen

    def effective_slots(self, class_id: str, day: str, as_of_date: date) -> list[EffectiveSlot]:
        """Overlay the date's pending/approved substitutions onto a class's slots for `day`.

        Substitutions match slots by subject, original faculty and classroom. When
        `as_of_date` is not a `day`, the plain timetable is returned.
        """
        rows = self._db.execute(
            select(Timetable.id, TimeSlot)
            .join(TimeSlot, TimeSlot.timetable_id == Timetable.id)
            .where(Timetable.class_id == class_id, Timetable.day == day)
        ).all()
        rows.sort(key=lambda row: (parse_time_to_minutes(row[1].start_time), row[1].id))

        if self._clock.weekday_of(as_of_date) == day:
            overlay = self._substitutions_on(as_of_date, {slot.faculty_id for _, slot in rows})
        else:
            overlay = {}

        results: list[EffectiveSlot] = []
        for timetable_id, slot in rows:
            substitution = overlay.get((slot.subject_id, slot.faculty_id, slot.classroom))
            if substitution is None:
                faculty_id = slot.faculty_id
                label = None
            elif substitution.substitute_faculty_id:
                faculty_id = substitution.substitute_faculty_id
                label = None
            else:
                faculty_id = None
                label = PENDING_SUBSTITUTE_LABEL
            results.append(
                EffectiveSlot(
                    slot_key=build_slot_key(timetable_id, slot.id),
                    class_id=class_id,
                    day=day,
                    start_time=slot.start_time,
                    end_time=slot.end_time,
                    subject_id=slot.subject_id,
                    classroom=slot.classroom,
                    original_faculty_id=slot.faculty_id,
                    faculty_id=faculty_id,
                    faculty_label=label,
                    substitution_id=substitution.id if substitution else None,
                    substitution_status=substitution.status if substitution else None,
                )
            )
        return results

    def day_overview(
        self,
        class_ids: list[str],
        as_of_date: date | None = None,
        now: datetime | None = None,
    ) -> DayOverview:
        as_of_date = as_of_date or self._clock.today()
        now = now or self._clock.now()
        day = self._clock.weekday_of(as_of_date)
        today = self._clock.today()
        minute_now = now.hour * 60 + now.minute

        entries: list[ClassroomEntry] = []
        for class_id in dict.fromkeys(class_ids):
            for slot in self.effective_slots(class_id, day, as_of_date):
                entries.append(ClassroomEntry(slot=slot, state=_classify(slot, as_of_date, today, minute_now)))
        entries.sort(key=lambda entry: (parse_time_to_minutes(entry.slot.start_time), entry.slot.class_id))

        counts = Counter(entry.state for entry in entries)
        summary = {state: counts.get(state, 0) for state in ("current", "upcoming", "completed")}
        summary["total"] = len(entries)
        summary["substituted"] = sum(1 for entry in entries if entry.slot.is_substituted)
        logger.debug("Day overview for %d class(es) on %s: %s", len(class_ids), as_of_date, summary)
        return DayOverview(date=as_of_date, day=day, entries=entries, counts=summary)


def _classify(slot: EffectiveSlot, as_of_date: date, today: date, minute_now: int) -> str:
    if as_of_date < today:
        return "completed"
    if as_of_date > today:
        return "upcoming"
    start = parse_time_to_minutes(slot.start_time)
    end = parse_time_to_minutes(slot.end_time)
    if start <= minute_now < end:
        return "current"
    if minute_now < start:
        return "upcoming"
    return "completed"
