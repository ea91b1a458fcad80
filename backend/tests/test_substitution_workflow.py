from datetime import timedelta
import logging

import pytest
from sqlalchemy.exc import OperationalError

from app.core.exceptions import (
    IllegalTransition,
    InvalidReference,
    InvalidSubstitute,
    InvalidTimeFormat,
    SchedulingConflict,
    Unauthorized,
)
from app.models.notification import Notification, NotificationPriority
from app.models.schedule import Schedule, ScheduleStatus
from app.models.substitution import SubstitutionStatus
from app.services.substitution_workflow import SubstitutionWorkflow
from app.services.timetable_store import SlotInput, TimetableStore


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[dict] = []

    def send(self, recipient_id, title, message, priority=NotificationPriority.medium, **context):
        self.sent.append({"recipient_id": recipient_id, "title": title, "priority": priority, **context})

    def recipients(self, title: str) -> set[str]:
        return {item["recipient_id"] for item in self.sent if item["title"] == title}


class BrokenNotifier:
    def send(self, *args, **kwargs):
        raise ConnectionError("notification backend down")


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def workflow(db, clock, notifier):
    return SubstitutionWorkflow(db, notifier=notifier, clock=clock)


@pytest.fixture()
def people(seed):
    return {
        "admin": seed.admin(),
        "f1": seed.faculty(),
        "f2": seed.faculty(),
        "f3": seed.faculty(),
        "student": seed.student(),
        "subject": seed.subject(),
        "class": seed.class_group(),
    }


def request(workflow, people, actor="f1", **overrides):
    fields = {
        "original_faculty_id": people["f1"].id,
        "date": overrides.pop("date", None) or workflow._clock.today(),
        "subject_id": people["subject"].id,
        "classroom": "A101",
        "time_slot": "09:00-10:00",
        "reason": "Medical appointment",
        "substitute_faculty_id": people["f2"].id,
    }
    fields.update(overrides)
    return workflow.request(people[actor], **fields)


def test_request_creates_pending_and_notifies(workflow, people, notifier):
    substitution = request(workflow, people)

    assert substitution.status == SubstitutionStatus.pending
    assert substitution.requested_by_id == people["f1"].id
    assert substitution.time_slot == "09:00-10:00"
    assert notifier.recipients("New Substitution Assignment") == {people["f2"].id}
    assert notifier.recipients("New Substitution Request") == {people["admin"].id}
    high = [item for item in notifier.sent if item["priority"] == NotificationPriority.high]
    assert [item["recipient_id"] for item in high] == [people["f2"].id]
    assert all(item["related_id"] == substitution.id for item in notifier.sent)


def test_admin_may_request_for_any_faculty(workflow, people):
    substitution = request(workflow, people, actor="admin", substitute_faculty_id=None)
    assert substitution.original_faculty_id == people["f1"].id
    assert substitution.substitute_faculty_id is None


@pytest.mark.parametrize("actor", ["f3", "student"])
def test_only_owner_or_admin_may_request(workflow, people, actor):
    with pytest.raises(Unauthorized):
        request(workflow, people, actor=actor)


def test_request_validation(workflow, people, db):
    with pytest.raises(InvalidReference):
        request(workflow, people, subject_id="missing-subject")
    with pytest.raises(InvalidSubstitute):
        request(workflow, people, substitute_faculty_id=people["f1"].id)
    with pytest.raises(InvalidSubstitute):
        request(workflow, people, substitute_faculty_id=people["student"].id)
    with pytest.raises(InvalidTimeFormat):
        request(workflow, people, time_slot="9am to 10am")

    assert workflow.list() == []


def test_approval_notifies_everyone_involved(workflow, people, notifier):
    substitution = request(workflow, people)
    notifier.sent.clear()

    decided = workflow.decide(people["admin"], substitution.id, SubstitutionStatus.approved)

    assert decided.status == SubstitutionStatus.approved
    assert decided.decided_by_id == people["admin"].id
    assert decided.decided_at is not None
    assert people["f2"].id in notifier.recipients("Substitution Approved")
    assert {people["admin"].id, people["f1"].id} <= notifier.recipients("Substitution Approved")


def test_rejection_notifies_original_faculty(workflow, people, notifier):
    substitution = request(workflow, people)
    notifier.sent.clear()

    workflow.decide(people["admin"], substitution.id, SubstitutionStatus.rejected)

    assert notifier.recipients("Substitution Rejected") == {people["f1"].id}


def test_only_admin_decides(workflow, people):
    substitution = request(workflow, people)
    with pytest.raises(Unauthorized):
        workflow.decide(people["f1"], substitution.id, SubstitutionStatus.approved)


def test_status_never_moves_backwards(workflow, people):
    approved = request(workflow, people)
    workflow.decide(people["admin"], approved.id, SubstitutionStatus.approved)
    with pytest.raises(IllegalTransition):
        workflow.decide(people["admin"], approved.id, SubstitutionStatus.rejected)

    workflow.complete(people["admin"], approved.id)
    assert workflow.get(approved.id).status == SubstitutionStatus.completed
    with pytest.raises(IllegalTransition):
        workflow.complete(people["admin"], approved.id)
    with pytest.raises(IllegalTransition):
        workflow.decide(people["admin"], approved.id, SubstitutionStatus.approved)

    rejected = request(workflow, people, classroom="A102")
    workflow.decide(people["admin"], rejected.id, SubstitutionStatus.rejected)
    with pytest.raises(IllegalTransition):
        workflow.complete(people["admin"], rejected.id)
    with pytest.raises(IllegalTransition):
        workflow.decide(people["admin"], rejected.id, SubstitutionStatus.approved)


def test_pending_cannot_be_completed(workflow, people):
    substitution = request(workflow, people)
    with pytest.raises(IllegalTransition):
        workflow.complete(people["admin"], substitution.id)


def test_decision_must_be_approve_or_reject(workflow, people):
    substitution = request(workflow, people)
    with pytest.raises(IllegalTransition):
        workflow.decide(people["admin"], substitution.id, SubstitutionStatus.completed)


def test_conflicting_substitute_keeps_request_pending(workflow, people, db, clock):
    store = TimetableStore(db, clock=clock)
    store.upsert_slot(
        people["class"].id,
        "Monday",
        SlotInput("09:30", "10:30", people["subject"].id, people["f2"].id, "C301"),
    )
    substitution = request(workflow, people)

    with pytest.raises(SchedulingConflict):
        workflow.decide(people["admin"], substitution.id, SubstitutionStatus.approved)

    db.expire_all()
    assert workflow.get(substitution.id).status == SubstitutionStatus.pending


def test_approval_without_substitute_marks_linked_schedule(workflow, people, db, clock):
    schedule = Schedule(
        date=clock.today(),
        day="Monday",
        start_time="11:00",
        end_time="12:00",
        classroom="A101",
        faculty_id=people["f1"].id,
        subject_id=people["subject"].id,
    )
    db.add(schedule)
    db.commit()
    substitution = request(
        workflow,
        people,
        time_slot="11:00-12:00",
        substitute_faculty_id=None,
        schedule_id=schedule.id,
    )

    workflow.decide(people["admin"], substitution.id, SubstitutionStatus.approved)

    db.refresh(schedule)
    assert schedule.status == ScheduleStatus.substituted
    assert schedule.substitute_faculty_id is None


def test_delete_only_while_pending(workflow, people):
    pending = request(workflow, people)
    assert workflow.delete(people["f1"], pending.id) is True
    assert workflow.delete(people["f1"], pending.id) is False

    approved = request(workflow, people)
    workflow.decide(people["admin"], approved.id, SubstitutionStatus.approved)
    with pytest.raises(IllegalTransition):
        workflow.delete(people["admin"], approved.id)


def test_other_faculty_cannot_delete(workflow, people):
    pending = request(workflow, people)
    with pytest.raises(Unauthorized):
        workflow.delete(people["f3"], pending.id)


def test_assign_substitute_while_pending(workflow, people, notifier):
    pending = request(workflow, people, substitute_faculty_id=None)
    notifier.sent.clear()

    updated = workflow.assign_substitute(people["f1"], pending.id, people["f3"].id)

    assert updated.substitute_faculty_id == people["f3"].id
    assert notifier.recipients("New Substitution Assignment") == {people["f3"].id}
    with pytest.raises(InvalidSubstitute):
        workflow.assign_substitute(people["f1"], pending.id, people["f1"].id)

    workflow.decide(people["admin"], pending.id, SubstitutionStatus.approved)
    with pytest.raises(IllegalTransition):
        workflow.assign_substitute(people["admin"], pending.id, people["f2"].id)


def test_unavailable_and_cancel_prefix_reason(workflow, people):
    base = {
        "original_faculty_id": people["f1"].id,
        "date": workflow._clock.today(),
        "subject_id": people["subject"].id,
        "classroom": "A101",
        "time_slot": "09:00-10:00",
    }
    unavailable = workflow.mark_unavailable(people["f1"], reason="Family emergency", **base)
    cancelled = workflow.cancel_class(people["f1"], reason="Lab maintenance", **base)

    assert unavailable.reason == "Unavailable: Family emergency"
    assert cancelled.reason == "Class cancelled: Lab maintenance"
    assert unavailable.status == cancelled.status == SubstitutionStatus.pending


def test_complete_elapsed_only_touches_past_approved(workflow, people, clock):
    past = request(workflow, people, date=clock.today() - timedelta(days=7))
    current = request(workflow, people, classroom="A102")
    untouched = request(workflow, people, date=clock.today() - timedelta(days=7), classroom="A103")
    workflow.decide(people["admin"], past.id, SubstitutionStatus.approved)
    workflow.decide(people["admin"], current.id, SubstitutionStatus.approved)

    completed = workflow.complete_elapsed(people["admin"])

    assert [item.id for item in completed] == [past.id]
    assert workflow.get(current.id).status == SubstitutionStatus.approved
    assert workflow.get(untouched.id).status == SubstitutionStatus.pending


def test_list_filters(workflow, people, clock):
    first = request(workflow, people)
    second = request(workflow, people, date=clock.today() + timedelta(days=7), substitute_faculty_id=people["f3"].id)
    workflow.decide(people["admin"], second.id, SubstitutionStatus.approved)

    assert {item.id for item in workflow.list(status=SubstitutionStatus.pending)} == {first.id}
    assert {item.id for item in workflow.list(faculty_id=people["f3"].id)} == {second.id}
    assert {item.id for item in workflow.list(original_faculty_id=people["f1"].id)} == {first.id, second.id}
    assert {item.id for item in workflow.list(date_from=clock.today() + timedelta(days=1))} == {second.id}


def test_notifier_failures_do_not_undo_the_request(db, clock, people):
    workflow = SubstitutionWorkflow(db, notifier=BrokenNotifier(), clock=clock)

    substitution = request(workflow, people)

    assert workflow.get(substitution.id).status == SubstitutionStatus.pending


def test_default_notifier_writes_notifications(db, clock, people):
    workflow = SubstitutionWorkflow(db, clock=clock)

    substitution = request(workflow, people)

    rows = db.query(Notification).filter(Notification.related_id == substitution.id).all()
    assert {row.user_id for row in rows} == {people["f2"].id, people["admin"].id}
    assert {row.priority for row in rows} == {NotificationPriority.high, NotificationPriority.medium}


def test_failed_notification_write_keeps_committed_request(db, clock, people, monkeypatch, caplog):
    def refuse(*args, **kwargs):
        raise OperationalError("INSERT INTO notifications", {}, Exception("disk full"))

    monkeypatch.setattr("app.services.collaborators.create_notification", refuse)
    workflow = SubstitutionWorkflow(db, clock=clock)

    with caplog.at_level(logging.WARNING, logger="app.services.collaborators"):
        substitution = request(workflow, people)

    db.expire_all()
    assert workflow.get(substitution.id).status == SubstitutionStatus.pending
    assert db.query(Notification).count() == 0
    assert "Notification delivery failed" in caplog.text
