from datetime import date

from fastapi import APIRouter, Depends, Query, status

from app.api.deps import get_current_user, get_schedule_service, require_roles
from app.core.exceptions import Unauthorized
from app.models.schedule import ScheduleStatus
from app.models.user import User, UserRole
from app.schemas.schedule import (
    ScheduleCancel,
    ScheduleCreate,
    ScheduleOut,
    ScheduleSubstituteRequest,
    ScheduleUpdate,
)
from app.schemas.substitution import SubstitutionOut
from app.schemas.timetable import DeleteResult
from app.services.schedule_service import ScheduleInput, ScheduleService

router = APIRouter()


@router.get("/schedules", response_model=list[ScheduleOut])
def list_schedules(
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    faculty_id: str | None = Query(default=None),
    schedule_status: ScheduleStatus | None = Query(default=None, alias="status"),
    current_user: User = Depends(get_current_user),
    service: ScheduleService = Depends(get_schedule_service),
) -> list[ScheduleOut]:
    if current_user.role == UserRole.faculty:
        faculty_id = current_user.id
    return service.list_schedules(
        date_from=date_from,
        date_to=date_to,
        faculty_id=faculty_id,
        status=schedule_status,
    )


@router.post("/schedules", response_model=ScheduleOut, status_code=status.HTTP_201_CREATED)
def create_schedule(
    payload: ScheduleCreate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    service: ScheduleService = Depends(get_schedule_service),
) -> ScheduleOut:
    return service.create_schedule(current_user, ScheduleInput(**payload.model_dump()))


@router.get("/schedules/{schedule_id}", response_model=ScheduleOut)
def get_schedule(
    schedule_id: str,
    current_user: User = Depends(get_current_user),
    service: ScheduleService = Depends(get_schedule_service),
) -> ScheduleOut:
    return service.get_schedule(schedule_id)


@router.put("/schedules/{schedule_id}", response_model=ScheduleOut)
def update_schedule(
    schedule_id: str,
    payload: ScheduleUpdate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    service: ScheduleService = Depends(get_schedule_service),
) -> ScheduleOut:
    return service.update_schedule(current_user, schedule_id, payload.model_dump(exclude_unset=True))


@router.delete("/schedules/{schedule_id}", response_model=DeleteResult)
def delete_schedule(
    schedule_id: str,
    current_user: User = Depends(require_roles(UserRole.admin)),
    service: ScheduleService = Depends(get_schedule_service),
) -> DeleteResult:
    return DeleteResult(deleted=service.delete_schedule(current_user, schedule_id))


@router.post("/schedules/{schedule_id}/cancel", response_model=ScheduleOut)
def cancel_schedule(
    schedule_id: str,
    payload: ScheduleCancel | None = None,
    current_user: User = Depends(require_roles(UserRole.admin)),
    service: ScheduleService = Depends(get_schedule_service),
) -> ScheduleOut:
    return service.cancel_schedule(current_user, schedule_id, notes=payload.notes if payload else None)


@router.post(
    "/schedules/{schedule_id}/substitute",
    response_model=SubstitutionOut,
    status_code=status.HTTP_201_CREATED,
)
def request_schedule_substitution(
    schedule_id: str,
    payload: ScheduleSubstituteRequest,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.faculty)),
    service: ScheduleService = Depends(get_schedule_service),
) -> SubstitutionOut:
    schedule = service.get_schedule(schedule_id)
    if current_user.role == UserRole.faculty and schedule.faculty_id != current_user.id:
        raise Unauthorized("substitution.request", schedule_id)
    return service.request_substitution_for_schedule(
        current_user,
        schedule_id,
        payload.reason,
        substitute_faculty_id=payload.substitute_faculty_id,
    )
