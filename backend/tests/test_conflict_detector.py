from datetime import timedelta

import pytest

from app.core.exceptions import SchedulingConflict
from app.models.schedule import Schedule, ScheduleStatus
from app.models.special_class import SpecialClass, SpecialClassStatus
from app.models.substitution import Substitution, SubstitutionStatus
from app.services.collaborators import weekday_name
from app.services.conflict_detector import ConflictDetector
from app.services.schedule_service import ScheduleInput, ScheduleService
from app.services.time_range import TimeRange
from app.services.timetable_store import SlotInput, TimetableStore


@pytest.fixture()
def detector(db, clock):
    return ConflictDetector(db, clock)


@pytest.fixture()
def refs(seed):
    return {"class": seed.class_group(), "subject": seed.subject(), "f1": seed.faculty(), "f2": seed.faculty()}


def add_schedule(db, refs, on_date, start, end, *, faculty="f1", status=ScheduleStatus.active, substitute=None):
    schedule = Schedule(
        date=on_date,
        day=weekday_name(on_date),
        start_time=start,
        end_time=end,
        classroom="B201",
        faculty_id=refs[faculty].id,
        subject_id=refs["subject"].id,
        status=status,
        substitute_faculty_id=refs[substitute].id if substitute else None,
    )
    db.add(schedule)
    db.commit()
    return schedule


def test_free_faculty_is_available(detector, refs):
    result = detector.check_faculty_availability(refs["f1"].id, "Monday", TimeRange.from_bounds("09:00", "10:00"))
    assert result.ok
    assert result.conflicting_id is None


def test_slot_commitment_is_reported_and_can_be_excluded(db, clock, detector, refs):
    store = TimetableStore(db, clock=clock, detector=detector)
    record = store.upsert_slot(
        refs["class"].id,
        "Monday",
        SlotInput("09:00", "10:00", refs["subject"].id, refs["f1"].id, "A101"),
    )
    window = TimeRange.from_bounds("09:30", "10:30")

    result = detector.check_faculty_availability(refs["f1"].id, "Monday", window)
    assert not result.ok
    assert result.conflicting_id == record.key
    assert result.conflicting_kind == "time_slot"

    assert detector.check_faculty_availability(refs["f1"].id, "Monday", window, exclude_id=record.slot_id).ok
    assert detector.check_faculty_availability(refs["f1"].id, "Monday", window, exclude_id=record.key).ok


def test_upcoming_schedules_block_recurring_slots(db, clock, detector, refs):
    next_monday = clock.today() + timedelta(days=7)
    schedule = add_schedule(db, refs, next_monday, "14:00", "15:00")

    result = detector.check_faculty_availability(refs["f1"].id, "Monday", TimeRange.from_bounds("14:30", "15:30"))
    assert result.conflicting_id == schedule.id


def test_past_and_cancelled_schedules_are_ignored(db, clock, detector, refs):
    add_schedule(db, refs, clock.today() - timedelta(days=7), "14:00", "15:00")
    add_schedule(db, refs, clock.today(), "14:00", "15:00", status=ScheduleStatus.cancelled)

    assert detector.check_faculty_availability(refs["f1"].id, "Monday", TimeRange.from_bounds("14:00", "15:00")).ok


def test_date_specific_check_only_counts_that_date(db, clock, detector, refs):
    add_schedule(db, refs, clock.today() + timedelta(days=7), "14:00", "15:00")
    window = TimeRange.from_bounds("14:00", "15:00")

    assert detector.check_faculty_availability(refs["f1"].id, "Monday", window, on_date=clock.today()).ok
    assert not detector.check_faculty_availability(
        refs["f1"].id, "Monday", window, on_date=clock.today() + timedelta(days=7)
    ).ok


def test_substitute_assignment_on_schedule_counts_for_substitute(db, clock, detector, refs):
    add_schedule(db, refs, clock.today(), "11:00", "12:00", status=ScheduleStatus.substituted, substitute="f2")

    result = detector.check_faculty_availability(
        refs["f2"].id, "Monday", TimeRange.from_bounds("11:30", "12:30"), on_date=clock.today()
    )
    assert not result.ok
    assert result.conflicting_kind == "schedule"


def test_approved_cover_counts_for_substitute_on_that_date(db, clock, detector, refs):
    cover = Substitution(
        date=clock.today(),
        original_faculty_id=refs["f1"].id,
        substitute_faculty_id=refs["f2"].id,
        subject_id=refs["subject"].id,
        reason="Conference",
        classroom="A101",
        time_slot="09:00-10:00",
        status=SubstitutionStatus.approved,
    )
    db.add(cover)
    db.commit()
    window = TimeRange.from_bounds("09:00", "10:00")

    result = detector.check_faculty_availability(refs["f2"].id, "Monday", window, on_date=clock.today())
    assert result.conflicting_id == cover.id
    assert detector.check_faculty_availability(
        refs["f2"].id, "Monday", window, on_date=clock.today() + timedelta(days=7)
    ).ok


def test_covered_slot_frees_original_faculty_on_that_date(db, clock, detector, refs):
    store = TimetableStore(db, clock=clock, detector=detector)
    store.upsert_slot(
        refs["class"].id,
        "Monday",
        SlotInput("09:00", "10:00", refs["subject"].id, refs["f1"].id, "A101"),
    )
    db.add(
        Substitution(
            date=clock.today(),
            original_faculty_id=refs["f1"].id,
            substitute_faculty_id=refs["f2"].id,
            subject_id=refs["subject"].id,
            reason="Conference",
            classroom="A101",
            time_slot="09:00-10:00",
            status=SubstitutionStatus.approved,
        )
    )
    db.commit()
    window = TimeRange.from_bounds("09:00", "10:00")

    assert detector.check_faculty_availability(refs["f1"].id, "Monday", window, on_date=clock.today()).ok
    assert not detector.check_faculty_availability(refs["f1"].id, "Monday", window).ok


def test_ensure_available_raises_with_conflicting_id(db, clock, detector, refs):
    schedule = add_schedule(db, refs, clock.today(), "09:00", "10:00")

    with pytest.raises(SchedulingConflict) as exc_info:
        detector.ensure_available(refs["f1"].id, "Monday", TimeRange.from_bounds("09:59", "11:00"))
    assert exc_info.value.details["conflicting_id"] == schedule.id


def approve_cover(db, refs, on_date, time_slot, *, classroom="A101"):
    cover = Substitution(
        date=on_date,
        original_faculty_id=refs["f1"].id,
        substitute_faculty_id=refs["f2"].id,
        subject_id=refs["subject"].id,
        reason="Conference",
        classroom=classroom,
        time_slot=time_slot,
        status=SubstitutionStatus.approved,
    )
    db.add(cover)
    db.commit()
    return cover


def test_cover_frees_only_the_slot_inside_its_window(db, clock, detector, refs):
    store = TimetableStore(db, clock=clock, detector=detector)
    for start, end in (("09:00", "10:00"), ("14:00", "15:00")):
        store.upsert_slot(
            refs["class"].id,
            "Monday",
            SlotInput(start, end, refs["subject"].id, refs["f1"].id, "A101"),
        )
    approve_cover(db, refs, clock.today(), "09:00-10:00")
    service = ScheduleService(db, clock=clock, detector=detector)

    with pytest.raises(SchedulingConflict):
        service.create_schedule(
            None,
            ScheduleInput(
                date=clock.today(),
                start_time="14:00",
                end_time="15:00",
                classroom="B201",
                faculty_id=refs["f1"].id,
                subject_id=refs["subject"].id,
            ),
        )
    assert detector.check_faculty_availability(
        refs["f1"].id, "Monday", TimeRange.from_bounds("09:00", "10:00"), on_date=clock.today()
    ).ok


def test_covered_schedule_frees_original_faculty_only_with_a_substitute(db, clock, detector, refs):
    window = TimeRange.from_bounds("11:00", "12:00")
    add_schedule(db, refs, clock.today(), "11:00", "12:00", status=ScheduleStatus.substituted, substitute="f2")

    assert detector.check_faculty_availability(refs["f1"].id, "Monday", window, on_date=clock.today()).ok

    uncovered = add_schedule(db, refs, clock.today(), "11:00", "12:00", status=ScheduleStatus.substituted)
    result = detector.check_faculty_availability(refs["f1"].id, "Monday", window, on_date=clock.today())
    assert result.conflicting_id == uncovered.id


def test_special_classes_count_until_cancelled(db, clock, detector, refs):
    special_class = SpecialClass(
        class_code="WS-1",
        subject="Docker workshop",
        faculty_id=refs["f1"].id,
        date=clock.today() + timedelta(days=7),
        day="Monday",
        start_time="16:00",
        end_time="18:00",
        room="Lab 2",
        description="Hands-on containers",
        created_by_id=refs["f1"].id,
    )
    db.add(special_class)
    db.commit()
    window = TimeRange.from_bounds("17:00", "18:00")

    result = detector.check_faculty_availability(refs["f1"].id, "Monday", window)
    assert result.conflicting_id == special_class.id
    assert result.conflicting_kind == "special_class"
    assert detector.check_faculty_availability(refs["f1"].id, "Monday", window, on_date=clock.today()).ok
    assert detector.check_faculty_availability(refs["f1"].id, "Monday", window, exclude_id=special_class.id).ok

    special_class.status = SpecialClassStatus.cancelled
    db.commit()
    assert detector.check_faculty_availability(refs["f1"].id, "Monday", window).ok
