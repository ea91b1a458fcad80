from dataclasses import replace
from datetime import timedelta

import pytest

from app.core.exceptions import IllegalTransition, InvalidReference, NotFoundError, SchedulingConflict
from app.models.schedule import ScheduleStatus
from app.models.substitution import SubstitutionStatus
from app.services.schedule_service import ScheduleInput, ScheduleService
from app.services.substitution_workflow import SubstitutionWorkflow
from app.services.timetable_store import SlotInput, TimetableStore


@pytest.fixture()
def service(db, clock):
    return ScheduleService(db, clock=clock)


@pytest.fixture()
def refs(seed):
    return {
        "admin": seed.admin(),
        "f1": seed.faculty(),
        "f2": seed.faculty(),
        "subject": seed.subject(),
        "class": seed.class_group(),
    }


def payload(refs, on_date, start="14:00", end="15:00", faculty="f1"):
    return ScheduleInput(
        date=on_date,
        start_time=start,
        end_time=end,
        classroom="B201",
        faculty_id=refs[faculty].id,
        subject_id=refs["subject"].id,
        class_id=refs["class"].id,
    )


def test_create_derives_weekday_and_starts_active(service, refs, clock):
    schedule = service.create_schedule(refs["admin"], payload(refs, clock.today() + timedelta(days=2)))

    assert schedule.day == "Wednesday"
    assert schedule.status == ScheduleStatus.active
    assert schedule.updated_by == refs["admin"].id


def test_create_conflicts_with_recurring_slot(service, refs, db, clock):
    TimetableStore(db, clock=clock).upsert_slot(
        refs["class"].id,
        "Monday",
        SlotInput("14:30", "15:30", refs["subject"].id, refs["f1"].id, "A101"),
    )

    with pytest.raises(SchedulingConflict):
        service.create_schedule(refs["admin"], payload(refs, clock.today()))
    # Tuesday is free.
    service.create_schedule(refs["admin"], payload(refs, clock.today() + timedelta(days=1)))


def test_create_conflicts_with_same_day_schedule(service, refs, clock):
    service.create_schedule(refs["admin"], payload(refs, clock.today()))

    with pytest.raises(SchedulingConflict):
        service.create_schedule(refs["admin"], payload(refs, clock.today(), "14:45", "15:30"))
    service.create_schedule(refs["admin"], payload(refs, clock.today(), "15:00", "16:00"))


def test_create_validates_references(service, refs, clock, seed):
    bad = payload(refs, clock.today())
    with pytest.raises(InvalidReference):
        service.create_schedule(refs["admin"], replace(bad, subject_id="missing"))
    with pytest.raises(InvalidReference):
        service.create_schedule(refs["admin"], replace(bad, faculty_id=seed.student().id))


def test_update_excludes_itself(service, refs, clock):
    schedule = service.create_schedule(refs["admin"], payload(refs, clock.today()))

    updated = service.update_schedule(refs["admin"], schedule.id, {"start_time": "14:30", "end_time": "15:30"})

    assert (updated.start_time, updated.end_time) == ("14:30", "15:30")


def test_update_moving_date_rederives_day(service, refs, clock):
    schedule = service.create_schedule(refs["admin"], payload(refs, clock.today()))

    updated = service.update_schedule(refs["admin"], schedule.id, {"date": clock.today() + timedelta(days=4)})

    assert updated.day == "Friday"


def test_cancel_frees_the_time(service, refs, clock):
    schedule = service.create_schedule(refs["admin"], payload(refs, clock.today()))

    cancelled = service.cancel_schedule(refs["admin"], schedule.id, notes="Holiday")

    assert cancelled.status == ScheduleStatus.cancelled
    assert cancelled.notes == "Holiday"
    service.create_schedule(refs["admin"], payload(refs, clock.today()))
    with pytest.raises(IllegalTransition):
        service.update_schedule(refs["admin"], schedule.id, {"classroom": "C1"})


def test_delete_refused_while_substitution_open(service, refs, clock):
    schedule = service.create_schedule(refs["admin"], payload(refs, clock.today()))
    substitution = service.request_substitution_for_schedule(refs["f1"], schedule.id, "Conference", refs["f2"].id)

    assert substitution.schedule_id == schedule.id
    assert substitution.time_slot == "14:00-15:00"
    assert substitution.status == SubstitutionStatus.pending
    with pytest.raises(IllegalTransition):
        service.delete_schedule(refs["admin"], schedule.id)


def test_delete_missing_schedule_returns_false(service, refs, clock):
    schedule = service.create_schedule(refs["admin"], payload(refs, clock.today()))

    assert service.delete_schedule(refs["admin"], schedule.id) is True
    assert service.delete_schedule(refs["admin"], schedule.id) is False
    with pytest.raises(NotFoundError):
        service.get_schedule(schedule.id)


def test_approved_schedule_substitution_marks_substitute(service, refs, clock, db):
    schedule = service.create_schedule(refs["admin"], payload(refs, clock.today()))
    substitution = service.request_substitution_for_schedule(refs["f1"], schedule.id, "Conference", refs["f2"].id)

    SubstitutionWorkflow(db, clock=clock).decide(refs["admin"], substitution.id, SubstitutionStatus.approved)

    db.refresh(schedule)
    assert schedule.status == ScheduleStatus.substituted
    assert schedule.substitute_faculty_id == refs["f2"].id
    listed = service.list_schedules(faculty_id=refs["f2"].id)
    assert [item.id for item in listed] == [schedule.id]
    # The substitute is now busy at that time on that date.
    with pytest.raises(SchedulingConflict):
        service.create_schedule(refs["admin"], payload(refs, clock.today(), faculty="f2"))


def test_list_filters_by_range_and_status(service, refs, clock):
    first = service.create_schedule(refs["admin"], payload(refs, clock.today()))
    second = service.create_schedule(refs["admin"], payload(refs, clock.today() + timedelta(days=1)))
    service.cancel_schedule(refs["admin"], second.id)

    assert [item.id for item in service.list_schedules(date_to=clock.today())] == [first.id]
    assert [item.id for item in service.list_schedules(status=ScheduleStatus.cancelled)] == [second.id]
