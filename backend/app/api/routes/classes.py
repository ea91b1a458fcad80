from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, require_roles
from app.core.exceptions import InvalidReference
from app.models.class_group import ClassGroup
from app.models.user import User, UserRole
from app.schemas.academic import ClassGroupCreate, ClassGroupOut
from app.services.audit import log_activity
from app.services.collaborators import DbFacultyDirectory

router = APIRouter()


@router.get("/classes", response_model=list[ClassGroupOut])
def list_classes(
    department: str | None = Query(default=None),
    semester: int | None = Query(default=None, ge=1, le=12),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[ClassGroupOut]:
    query = select(ClassGroup).order_by(ClassGroup.department, ClassGroup.semester, ClassGroup.class_name)
    if department:
        query = query.where(ClassGroup.department == department)
    if semester is not None:
        query = query.where(ClassGroup.semester == semester)
    return list(db.execute(query).scalars())


@router.post("/classes", response_model=ClassGroupOut, status_code=status.HTTP_201_CREATED)
def create_class(
    payload: ClassGroupCreate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> ClassGroupOut:
    if payload.faculty_id:
        directory = DbFacultyDirectory(db)
        if directory.role(payload.faculty_id) != UserRole.faculty:
            raise InvalidReference("Invalid faculty member", details={"faculty_id": payload.faculty_id})
    class_group = ClassGroup(**payload.model_dump())
    db.add(class_group)
    db.flush()
    log_activity(
        db,
        user=current_user,
        action="class.create",
        entity_type="class_group",
        entity_id=class_group.id,
    )
    db.commit()
    db.refresh(class_group)
    return class_group


@router.get("/classes/{class_id}", response_model=ClassGroupOut)
def get_class(
    class_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ClassGroupOut:
    class_group = db.get(ClassGroup, class_id)
    if class_group is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Class not found")
    return class_group
