from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, require_roles
from app.models.subject import Subject
from app.models.user import User, UserRole
from app.schemas.academic import SubjectCreate, SubjectOut
from app.services.audit import log_activity

router = APIRouter()


@router.get("/subjects", response_model=list[SubjectOut])
def list_subjects(
    department: str | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[SubjectOut]:
    query = select(Subject).order_by(Subject.subject_code)
    if department:
        query = query.where(Subject.department == department)
    return list(db.execute(query).scalars())


@router.post("/subjects", response_model=SubjectOut, status_code=status.HTTP_201_CREATED)
def create_subject(
    payload: SubjectCreate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> SubjectOut:
    code = payload.subject_code.strip().upper()
    existing = db.execute(select(Subject).where(Subject.subject_code == code)).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Subject code already exists")
    subject = Subject(**payload.model_dump(exclude={"subject_code"}), subject_code=code)
    db.add(subject)
    db.flush()
    log_activity(db, user=current_user, action="subject.create", entity_type="subject", entity_id=subject.id)
    db.commit()
    db.refresh(subject)
    return subject
