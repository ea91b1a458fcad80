from datetime import datetime, timedelta, timezone

import pytest

from app.models.substitution import Substitution, SubstitutionStatus
from app.services.reconciler import PENDING_SUBSTITUTE_LABEL, ScheduleReconciler
from app.services.timetable_store import SlotInput, TimetableStore


@pytest.fixture()
def setup(db, clock, seed):
    refs = {
        "class": seed.class_group(),
        "subject": seed.subject(),
        "f1": seed.faculty(),
        "f2": seed.faculty(),
        "f3": seed.faculty(),
    }
    store = TimetableStore(db, clock=clock)
    refs["late"] = store.upsert_slot(
        refs["class"].id, "Monday", SlotInput("11:00", "12:00", refs["subject"].id, refs["f3"].id, "B201")
    )
    refs["early"] = store.upsert_slot(
        refs["class"].id, "Monday", SlotInput("09:00", "10:00", refs["subject"].id, refs["f1"].id, "A101")
    )
    return refs


def add_substitution(db, refs, on_date, *, status, substitute="f2", classroom="A101"):
    substitution = Substitution(
        date=on_date,
        original_faculty_id=refs["f1"].id,
        substitute_faculty_id=refs[substitute].id if substitute else None,
        subject_id=refs["subject"].id,
        reason="Conference",
        classroom=classroom,
        time_slot="09:00-10:00",
        status=status,
    )
    db.add(substitution)
    db.commit()
    return substitution


def test_unsubstituted_day_reports_original_faculty_in_start_order(db, clock, setup):
    reconciler = ScheduleReconciler(db, clock)

    slots = reconciler.effective_slots(setup["class"].id, "Monday", clock.today())

    assert [slot.start_time for slot in slots] == ["09:00", "11:00"]
    assert [slot.faculty_id for slot in slots] == [setup["f1"].id, setup["f3"].id]
    assert not any(slot.is_substituted for slot in slots)


def test_approved_substitution_overlays_matching_slot(db, clock, setup):
    substitution = add_substitution(db, setup, clock.today(), status=SubstitutionStatus.approved)
    reconciler = ScheduleReconciler(db, clock)

    early, late = reconciler.effective_slots(setup["class"].id, "Monday", clock.today())

    assert early.faculty_id == setup["f2"].id
    assert early.original_faculty_id == setup["f1"].id
    assert early.substitution_id == substitution.id
    assert early.substitution_status == SubstitutionStatus.approved
    assert late.faculty_id == setup["f3"].id


def test_pending_without_substitute_is_labelled(db, clock, setup):
    add_substitution(db, setup, clock.today(), status=SubstitutionStatus.pending, substitute=None)

    early = ScheduleReconciler(db, clock).effective_slots(setup["class"].id, "Monday", clock.today())[0]

    assert early.faculty_id is None
    assert early.faculty_label == PENDING_SUBSTITUTE_LABEL
    assert early.substitution_status == SubstitutionStatus.pending


@pytest.mark.parametrize("status", [SubstitutionStatus.rejected, SubstitutionStatus.completed])
def test_closed_substitutions_are_not_overlaid(db, clock, setup, status):
    add_substitution(db, setup, clock.today(), status=status)

    early = ScheduleReconciler(db, clock).effective_slots(setup["class"].id, "Monday", clock.today())[0]

    assert early.faculty_id == setup["f1"].id


def test_other_dates_and_rooms_do_not_match(db, clock, setup):
    add_substitution(db, setup, clock.today() + timedelta(days=7), status=SubstitutionStatus.approved)
    add_substitution(db, setup, clock.today(), status=SubstitutionStatus.approved, classroom="Z999")

    early = ScheduleReconciler(db, clock).effective_slots(setup["class"].id, "Monday", clock.today())[0]

    assert early.faculty_id == setup["f1"].id


def test_date_on_another_weekday_matches_nothing(db, clock, setup):
    tuesday = clock.today() + timedelta(days=1)
    add_substitution(db, setup, tuesday, status=SubstitutionStatus.approved)

    early = ScheduleReconciler(db, clock).effective_slots(setup["class"].id, "Monday", tuesday)[0]

    assert early.faculty_id == setup["f1"].id


def test_approved_wins_over_pending(db, clock, setup):
    add_substitution(db, setup, clock.today(), status=SubstitutionStatus.pending, substitute="f3")
    approved = add_substitution(db, setup, clock.today(), status=SubstitutionStatus.approved)
    add_substitution(db, setup, clock.today(), status=SubstitutionStatus.pending, substitute=None)

    early = ScheduleReconciler(db, clock).effective_slots(setup["class"].id, "Monday", clock.today())[0]

    assert early.substitution_id == approved.id


def test_repeated_calls_are_stable(db, clock, setup):
    add_substitution(db, setup, clock.today(), status=SubstitutionStatus.approved)
    reconciler = ScheduleReconciler(db, clock)

    assert reconciler.effective_slots(setup["class"].id, "Monday", clock.today()) == reconciler.effective_slots(
        setup["class"].id, "Monday", clock.today()
    )


def test_day_overview_classifies_against_now(db, clock, setup):
    reconciler = ScheduleReconciler(db, clock)
    now = datetime(2026, 10, 19, 9, 30, tzinfo=timezone.utc)

    overview = reconciler.day_overview([setup["class"].id], clock.today(), now)

    assert overview.day == "Monday"
    assert [entry.state for entry in overview.entries] == ["current", "upcoming"]
    assert overview.counts == {"current": 1, "upcoming": 1, "completed": 0, "total": 2, "substituted": 0}


def test_day_overview_for_past_date_is_completed(db, clock, setup):
    last_monday = clock.today() - timedelta(days=7)

    overview = ScheduleReconciler(db, clock).day_overview([setup["class"].id], last_monday)

    assert overview.counts["completed"] == 2
