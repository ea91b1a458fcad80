from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.api.deps import (
    get_clock,
    get_current_user,
    get_db,
    get_reconciler,
    get_schedule_service,
    get_timetable_store,
    get_workflow,
    require_roles,
)
from app.models.class_group import ClassGroup
from app.models.notification import Notification
from app.models.substitution import SubstitutionStatus
from app.models.user import User, UserRole
from app.schemas.dashboard import ClassroomEntryOut, FacultyDashboardOut, StudentDashboardOut
from app.schemas.schedule import ScheduleOut
from app.schemas.substitution import SubstitutionOut
from app.schemas.timetable import SlotOut
from app.services.collaborators import Clock
from app.services.reconciler import ScheduleReconciler
from app.services.schedule_service import ScheduleService
from app.services.substitution_workflow import ACTIVE_STATUSES, SubstitutionWorkflow
from app.services.timetable_store import TimetableStore

router = APIRouter()


def _student_class_ids(db: Session, user: User) -> list[str]:
    if user.department is None or user.semester is None:
        return []
    return list(
        db.execute(
            select(ClassGroup.id)
            .where(ClassGroup.department == user.department, ClassGroup.semester == user.semester)
            .order_by(ClassGroup.class_name)
        ).scalars()
    )


@router.get("/dashboard/student", response_model=StudentDashboardOut)
def student_dashboard(
    class_id: list[str] | None = Query(default=None),
    on_date: date | None = Query(default=None, alias="date"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    reconciler: ScheduleReconciler = Depends(get_reconciler),
    clock: Clock = Depends(get_clock),
) -> StudentDashboardOut:
    if current_user.role == UserRole.student:
        class_ids = _student_class_ids(db, current_user)
    elif class_id:
        class_ids = class_id
    else:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="class_id is required")

    overview = reconciler.day_overview(class_ids, on_date or clock.today(), clock.now())
    return StudentDashboardOut(
        date=overview.date,
        day=overview.day,
        class_ids=class_ids,
        entries=[ClassroomEntryOut.model_validate(entry) for entry in overview.entries],
        counts=overview.counts,
    )


@router.get("/dashboard/faculty", response_model=FacultyDashboardOut)
def faculty_dashboard(
    faculty_id: str | None = Query(default=None),
    on_date: date | None = Query(default=None, alias="date"),
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.faculty)),
    db: Session = Depends(get_db),
    store: TimetableStore = Depends(get_timetable_store),
    schedules: ScheduleService = Depends(get_schedule_service),
    workflow: SubstitutionWorkflow = Depends(get_workflow),
    clock: Clock = Depends(get_clock),
) -> FacultyDashboardOut:
    if current_user.role == UserRole.faculty or not faculty_id:
        faculty_id = current_user.id
    on_date = on_date or clock.today()
    day = clock.weekday_of(on_date)

    covering = [
        item
        for item in workflow.list(substitute_faculty_id=faculty_id, date_from=on_date)
        if item.status in ACTIVE_STATUSES
    ]
    requested = workflow.list(original_faculty_id=faculty_id, date_from=on_date)
    unread = db.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == faculty_id,
            Notification.is_read.is_(False),
        )
    ).scalar_one()

    return FacultyDashboardOut(
        date=on_date,
        day=day,
        slots=[SlotOut.model_validate(record) for record in store.list_slots(day=day, faculty_id=faculty_id)],
        schedules=[
            ScheduleOut.model_validate(item)
            for item in schedules.list_schedules(date_from=on_date, date_to=on_date, faculty_id=faculty_id)
        ],
        requested_substitutions=[
            SubstitutionOut.model_validate(item) for item in requested if item.status != SubstitutionStatus.rejected
        ],
        covering_substitutions=[SubstitutionOut.model_validate(item) for item in covering],
        unread_notifications=unread,
    )
