from __future__ import annotations

from datetime import date, datetime, timezone
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import IllegalTransition, InvalidReference, InvalidSubstitute, NotFoundError, Unauthorized
from app.db.transactions import commit_or_fail
from app.models.notification import NotificationPriority, NotificationType
from app.models.schedule import Schedule, ScheduleStatus
from app.models.subject import Subject
from app.models.substitution import Substitution, SubstitutionStatus
from app.models.user import User, UserRole
from app.services.audit import log_activity
from app.services.collaborators import (
    ACTION_SUBSTITUTION_ASSIGN,
    ACTION_SUBSTITUTION_COMPLETE,
    ACTION_SUBSTITUTION_DECIDE,
    ACTION_SUBSTITUTION_DELETE,
    ACTION_SUBSTITUTION_REQUEST,
    AuthorizationPredicate,
    Clock,
    DbFacultyDirectory,
    DbNotifier,
    FacultyDirectory,
    Notifier,
    RoleAuthorization,
    SystemClock,
)
from app.services.conflict_detector import ConflictDetector
from app.services.locks import KeyedLockRegistry, faculty_key, get_lock_registry
from app.services.time_range import parse

logger = logging.getLogger(__name__)

UNAVAILABLE_PREFIX = "Unavailable: "
CANCELLED_PREFIX = "Class cancelled: "

ALLOWED_TRANSITIONS: dict[SubstitutionStatus, set[SubstitutionStatus]] = {
    SubstitutionStatus.pending: {SubstitutionStatus.approved, SubstitutionStatus.rejected},
    SubstitutionStatus.approved: {SubstitutionStatus.completed},
    SubstitutionStatus.rejected: set(),
    SubstitutionStatus.completed: set(),
}
ACTIVE_STATUSES = (SubstitutionStatus.pending, SubstitutionStatus.approved)


def ensure_transition(current: SubstitutionStatus, target: SubstitutionStatus) -> None:
    if target not in ALLOWED_TRANSITIONS[current]:
        raise IllegalTransition(
            f"Cannot move substitution from {current.value} to {target.value}",
            details={"from": current.value, "to": target.value},
        )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_text(value: str | None) -> str | None:
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed or None


class SubstitutionWorkflow:
    def __init__(
        self,
        db: Session,
        *,
        directory: FacultyDirectory | None = None,
        authorizer: AuthorizationPredicate | None = None,
        notifier: Notifier | None = None,
        clock: Clock | None = None,
        detector: ConflictDetector | None = None,
        locks: KeyedLockRegistry | None = None,
    ) -> None:
        self._db = db
        self._directory = directory or DbFacultyDirectory(db)
        self._authorizer = authorizer or RoleAuthorization()
        self._notifier = notifier or DbNotifier(db)
        self._clock = clock or SystemClock()
        self._detector = detector or ConflictDetector(db, self._clock)
        self._locks = locks or get_lock_registry()

    # -- helpers -------------------------------------------------------------

    def _authorize(self, actor: User | None, action: str, resource) -> None:
        if not self._authorizer.is_allowed(actor, action, resource):
            raise Unauthorized(action, getattr(resource, "id", None))

    def _require_faculty(self, faculty_id: str) -> None:
        if not self._directory.exists(faculty_id):
            raise NotFoundError("Faculty", faculty_id)
        if self._directory.role(faculty_id) != UserRole.faculty:
            raise InvalidReference("Original faculty must be a faculty member", details={"faculty_id": faculty_id})

    def _validate_substitute(self, original_faculty_id: str, substitute_faculty_id: str | None) -> str | None:
        substitute_faculty_id = _normalize_text(substitute_faculty_id)
        if substitute_faculty_id is None:
            return None
        if substitute_faculty_id == original_faculty_id:
            raise InvalidSubstitute(
                "Substitute faculty must be different from the original faculty",
                details={"substitute_faculty_id": substitute_faculty_id},
            )
        if not self._directory.exists(substitute_faculty_id) or (
            self._directory.role(substitute_faculty_id) != UserRole.faculty
        ):
            raise InvalidSubstitute(
                "Substitute must reference an active faculty account",
                details={"substitute_faculty_id": substitute_faculty_id},
            )
        return substitute_faculty_id

    def _dispatch(self, recipient_ids: list[str], *, title: str, message: str, priority: NotificationPriority,
                  substitution: Substitution) -> None:
        for recipient_id in dict.fromkeys(item for item in recipient_ids if item):
            try:
                self._notifier.send(
                    recipient_id,
                    title,
                    message,
                    priority,
                    notification_type=NotificationType.substitution,
                    related_id=substitution.id,
                    related_model="Substitution",
                )
            except Exception:
                logger.warning("Notifier raised for substitution %s recipient %s", substitution.id, recipient_id,
                               exc_info=True)

    def _load(self, substitution_id: str) -> Substitution:
        substitution = self._db.get(Substitution, substitution_id)
        if substitution is None:
            raise NotFoundError("Substitution", substitution_id)
        return substitution

    # -- operations ----------------------------------------------------------

    def request(
        self,
        actor: User | None,
        *,
        original_faculty_id: str,
        date: date,
        subject_id: str,
        classroom: str,
        time_slot: str,
        reason: str,
        substitute_faculty_id: str | None = None,
        schedule_id: str | None = None,
    ) -> Substitution:
        self._authorize(actor, ACTION_SUBSTITUTION_REQUEST, {"original_faculty_id": original_faculty_id})
        self._require_faculty(original_faculty_id)
        if self._db.get(Subject, subject_id) is None:
            raise InvalidReference(f"Subject {subject_id} does not exist", details={"subject_id": subject_id})
        window = parse(time_slot)
        classroom = _normalize_text(classroom)
        if classroom is None:
            raise InvalidReference("Classroom is required")
        reason = _normalize_text(reason)
        if reason is None:
            raise InvalidReference("Reason is required")
        if schedule_id is not None and self._db.get(Schedule, schedule_id) is None:
            raise NotFoundError("Schedule", schedule_id)
        # Availability of a proposed substitute is only checked on approval.
        substitute_faculty_id = self._validate_substitute(original_faculty_id, substitute_faculty_id)

        substitution = Substitution(
            date=date,
            original_faculty_id=original_faculty_id,
            substitute_faculty_id=substitute_faculty_id,
            subject_id=subject_id,
            reason=reason,
            classroom=classroom,
            time_slot=window.format(),
            status=SubstitutionStatus.pending,
            schedule_id=schedule_id,
            requested_by_id=actor.id if actor is not None else None,
        )
        self._db.add(substitution)
        self._db.flush()
        log_activity(
            self._db,
            user=actor,
            action="substitution.request",
            entity_type="substitution",
            entity_id=substitution.id,
            details={"date": date.isoformat(), "time_slot": substitution.time_slot},
        )
        commit_or_fail(self._db)
        logger.info("Substitution %s requested for faculty %s on %s", substitution.id, original_faculty_id, date)

        when = f"{date.isoformat()} {substitution.time_slot}"
        if substitute_faculty_id:
            self._dispatch(
                [substitute_faculty_id],
                title="New Substitution Assignment",
                message=f"You have been proposed as a substitute in {substitution.classroom} on {when}.",
                priority=NotificationPriority.high,
                substitution=substitution,
            )
        self._dispatch(
            self._directory.administrator_ids(),
            title="New Substitution Request",
            message=f"A substitution was requested for {when}. Reason: {substitution.reason}",
            priority=NotificationPriority.medium,
            substitution=substitution,
        )
        return substitution

    def mark_unavailable(self, actor: User | None, **fields) -> Substitution:
        fields["reason"] = f"{UNAVAILABLE_PREFIX}{(fields.get('reason') or '').strip()}"
        return self.request(actor, **fields)

    def cancel_class(self, actor: User | None, **fields) -> Substitution:
        fields["reason"] = f"{CANCELLED_PREFIX}{(fields.get('reason') or '').strip()}"
        return self.request(actor, **fields)

    def decide(self, actor: User | None, substitution_id: str, outcome: SubstitutionStatus) -> Substitution:
        substitution = self._load(substitution_id)
        self._authorize(actor, ACTION_SUBSTITUTION_DECIDE, substitution)
        if outcome not in (SubstitutionStatus.approved, SubstitutionStatus.rejected):
            raise IllegalTransition(
                f"Decision must be approved or rejected, not {outcome.value}",
                details={"outcome": outcome.value},
            )

        with self._locks.hold(faculty_key(substitution.substitute_faculty_id)):
            self._db.refresh(substitution)
            ensure_transition(substitution.status, outcome)
            if outcome == SubstitutionStatus.approved and substitution.substitute_faculty_id:
                on_date = substitution.date
                self._detector.ensure_available(
                    substitution.substitute_faculty_id,
                    self._clock.weekday_of(on_date),
                    parse(substitution.time_slot),
                    on_date=on_date,
                )

            substitution.status = outcome
            substitution.decided_by_id = actor.id if actor is not None else None
            substitution.decided_at = _utc_now()
            if outcome == SubstitutionStatus.approved:
                self._mark_schedule_substituted(actor, substitution)
            log_activity(
                self._db,
                user=actor,
                action=f"substitution.{outcome.value}",
                entity_type="substitution",
                entity_id=substitution.id,
                details={"substitute_faculty_id": substitution.substitute_faculty_id},
            )
            commit_or_fail(self._db)

        logger.info("Substitution %s %s by %s", substitution.id, outcome.value, actor.id if actor else None)
        self._notify_decision(substitution)
        return substitution

    def _mark_schedule_substituted(self, actor: User | None, substitution: Substitution) -> None:
        if not substitution.schedule_id:
            return
        schedule = self._db.get(Schedule, substitution.schedule_id)
        if schedule is None:
            logger.warning("Substitution %s links missing schedule %s", substitution.id, substitution.schedule_id)
            return
        schedule.status = ScheduleStatus.substituted
        schedule.substitute_faculty_id = substitution.substitute_faculty_id
        schedule.updated_by = actor.id if actor is not None else None
        schedule.last_updated = _utc_now()

    def _notify_decision(self, substitution: Substitution) -> None:
        when = f"{substitution.date.isoformat()} {substitution.time_slot}"
        if substitution.status == SubstitutionStatus.approved:
            if substitution.substitute_faculty_id:
                self._dispatch(
                    [substitution.substitute_faculty_id],
                    title="Substitution Approved",
                    message=f"You will cover the class in {substitution.classroom} on {when}.",
                    priority=NotificationPriority.high,
                    substitution=substitution,
                )
            self._dispatch(
                self._directory.administrator_ids() + [substitution.original_faculty_id],
                title="Substitution Approved",
                message=(
                    f"Substitution for {when} in {substitution.classroom} was approved"
                    + ("." if substitution.substitute_faculty_id else "; substitute still to be assigned.")
                ),
                priority=NotificationPriority.medium,
                substitution=substitution,
            )
        else:
            self._dispatch(
                [substitution.original_faculty_id],
                title="Substitution Rejected",
                message=f"Your substitution request for {when} was rejected.",
                priority=NotificationPriority.medium,
                substitution=substitution,
            )

    def complete(self, actor: User | None, substitution_id: str) -> Substitution:
        substitution = self._load(substitution_id)
        self._authorize(actor, ACTION_SUBSTITUTION_COMPLETE, substitution)
        ensure_transition(substitution.status, SubstitutionStatus.completed)
        substitution.status = SubstitutionStatus.completed
        log_activity(
            self._db,
            user=actor,
            action="substitution.completed",
            entity_type="substitution",
            entity_id=substitution.id,
        )
        commit_or_fail(self._db)
        logger.info("Substitution %s completed", substitution.id)
        return substitution

    def complete_elapsed(self, actor: User | None, today: date | None = None) -> list[Substitution]:
        """Complete every approved substitution dated before `today`."""
        self._authorize(actor, ACTION_SUBSTITUTION_COMPLETE, None)
        cutoff = today or self._clock.today()
        elapsed = list(
            self._db.execute(
                select(Substitution).where(
                    Substitution.status == SubstitutionStatus.approved,
                    Substitution.date < cutoff,
                )
            ).scalars()
        )
        for substitution in elapsed:
            substitution.status = SubstitutionStatus.completed
        if elapsed:
            log_activity(
                self._db,
                user=actor,
                action="substitution.complete_elapsed",
                entity_type="substitution",
                details={"count": len(elapsed), "cutoff": cutoff.isoformat()},
            )
        commit_or_fail(self._db)
        logger.info("Completed %d elapsed substitution(s) before %s", len(elapsed), cutoff)
        return elapsed

    def assign_substitute(self, actor: User | None, substitution_id: str, substitute_faculty_id: str) -> Substitution:
        substitution = self._load(substitution_id)
        self._authorize(actor, ACTION_SUBSTITUTION_ASSIGN, substitution)
        if substitution.status != SubstitutionStatus.pending:
            raise IllegalTransition(
                "Substitute can only be changed while the request is pending",
                details={"status": substitution.status.value},
            )
        substitution.substitute_faculty_id = self._validate_substitute(
            substitution.original_faculty_id, substitute_faculty_id
        )
        log_activity(
            self._db,
            user=actor,
            action="substitution.assign",
            entity_type="substitution",
            entity_id=substitution.id,
            details={"substitute_faculty_id": substitution.substitute_faculty_id},
        )
        commit_or_fail(self._db)
        if substitution.substitute_faculty_id:
            self._dispatch(
                [substitution.substitute_faculty_id],
                title="New Substitution Assignment",
                message=(
                    f"You have been proposed as a substitute in {substitution.classroom} on "
                    f"{substitution.date.isoformat()} {substitution.time_slot}."
                ),
                priority=NotificationPriority.high,
                substitution=substitution,
            )
        return substitution

    def delete(self, actor: User | None, substitution_id: str) -> bool:
        substitution = self._db.get(Substitution, substitution_id)
        if substitution is None:
            return False
        self._authorize(actor, ACTION_SUBSTITUTION_DELETE, substitution)
        if substitution.status != SubstitutionStatus.pending:
            raise IllegalTransition(
                "Only pending substitution requests can be deleted",
                details={"status": substitution.status.value},
            )
        self._db.delete(substitution)
        log_activity(
            self._db,
            user=actor,
            action="substitution.delete",
            entity_type="substitution",
            entity_id=substitution_id,
        )
        commit_or_fail(self._db)
        logger.info("Substitution %s deleted", substitution_id)
        return True

    # -- read accessors ------------------------------------------------------

    def get(self, substitution_id: str) -> Substitution:
        return self._load(substitution_id)

    def list(
        self,
        *,
        status: SubstitutionStatus | None = None,
        original_faculty_id: str | None = None,
        substitute_faculty_id: str | None = None,
        faculty_id: str | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[Substitution]:
        query = select(Substitution)
        if status is not None:
            query = query.where(Substitution.status == status)
        if original_faculty_id:
            query = query.where(Substitution.original_faculty_id == original_faculty_id)
        if substitute_faculty_id:
            query = query.where(Substitution.substitute_faculty_id == substitute_faculty_id)
        if faculty_id:
            query = query.where(
                (Substitution.original_faculty_id == faculty_id)
                | (Substitution.substitute_faculty_id == faculty_id)
            )
        if date_from is not None:
            query = query.where(Substitution.date >= date_from)
        if date_to is not None:
            query = query.where(Substitution.date <= date_to)
        query = query.order_by(Substitution.date.desc(), Substitution.created_at.desc(), Substitution.id)
        return list(self._db.execute(query).scalars())
