from datetime import date

from fastapi import APIRouter, Depends, Query, status

from app.api.deps import get_current_user, get_special_class_service, require_roles
from app.models.special_class import SpecialClassStatus, SpecialClassType
from app.models.user import User, UserRole
from app.schemas.special_class import SpecialClassCreate, SpecialClassOut, SpecialClassPage, SpecialClassUpdate
from app.schemas.timetable import DeleteResult
from app.services.special_classes import UPCOMING_LIMIT, SpecialClassInput, SpecialClassService

router = APIRouter()


@router.get("/special-classes", response_model=SpecialClassPage)
def list_special_classes(
    on_date: date | None = Query(default=None, alias="date"),
    faculty_id: str | None = Query(default=None),
    class_status: SpecialClassStatus | None = Query(default=None, alias="status"),
    class_type: SpecialClassType | None = Query(default=None, alias="type"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=UPCOMING_LIMIT),
    current_user: User = Depends(get_current_user),
    service: SpecialClassService = Depends(get_special_class_service),
) -> SpecialClassPage:
    if current_user.role == UserRole.faculty:
        faculty_id = current_user.id
    items, total = service.list(
        on_date=on_date,
        faculty_id=faculty_id,
        status=class_status,
        class_type=class_type,
        limit=limit,
        offset=(page - 1) * limit,
    )
    return SpecialClassPage(total=total, items=[SpecialClassOut.model_validate(item) for item in items])


@router.get("/special-classes/upcoming", response_model=list[SpecialClassOut])
def list_upcoming_special_classes(
    limit: int = Query(default=10, ge=1, le=UPCOMING_LIMIT),
    current_user: User = Depends(get_current_user),
    service: SpecialClassService = Depends(get_special_class_service),
) -> list[SpecialClassOut]:
    return service.upcoming(limit)


@router.post("/special-classes", response_model=SpecialClassOut, status_code=status.HTTP_201_CREATED)
def create_special_class(
    payload: SpecialClassCreate,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.faculty)),
    service: SpecialClassService = Depends(get_special_class_service),
) -> SpecialClassOut:
    return service.create(current_user, SpecialClassInput(**payload.model_dump()))


@router.get("/special-classes/{special_class_id}", response_model=SpecialClassOut)
def get_special_class(
    special_class_id: str,
    current_user: User = Depends(get_current_user),
    service: SpecialClassService = Depends(get_special_class_service),
) -> SpecialClassOut:
    return service.get(special_class_id)


@router.put("/special-classes/{special_class_id}", response_model=SpecialClassOut)
def update_special_class(
    special_class_id: str,
    payload: SpecialClassUpdate,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.faculty)),
    service: SpecialClassService = Depends(get_special_class_service),
) -> SpecialClassOut:
    return service.update(current_user, special_class_id, payload.model_dump(exclude_unset=True))


@router.delete("/special-classes/{special_class_id}", response_model=DeleteResult)
def delete_special_class(
    special_class_id: str,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.faculty)),
    service: SpecialClassService = Depends(get_special_class_service),
) -> DeleteResult:
    return DeleteResult(deleted=service.delete(current_user, special_class_id))


@router.post("/special-classes/{special_class_id}/register", response_model=SpecialClassOut)
def register_for_special_class(
    special_class_id: str,
    current_user: User = Depends(require_roles(UserRole.student)),
    service: SpecialClassService = Depends(get_special_class_service),
) -> SpecialClassOut:
    return service.register(current_user, special_class_id)


@router.delete("/special-classes/{special_class_id}/register", response_model=SpecialClassOut)
def unregister_from_special_class(
    special_class_id: str,
    current_user: User = Depends(require_roles(UserRole.student)),
    service: SpecialClassService = Depends(get_special_class_service),
) -> SpecialClassOut:
    return service.unregister(current_user, special_class_id)
