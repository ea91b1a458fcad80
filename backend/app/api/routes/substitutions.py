from datetime import date

from fastapi import APIRouter, Depends, Query, status

from app.api.deps import get_current_user, get_workflow, require_roles
from app.core.exceptions import InvalidReference, Unauthorized
from app.models.substitution import SubstitutionStatus
from app.models.user import User, UserRole
from app.schemas.substitution import (
    ElapsedCompletionOut,
    FacultyAbsenceCreate,
    SubstituteAssignment,
    SubstitutionCreate,
    SubstitutionDecision,
    SubstitutionOut,
)
from app.schemas.timetable import DeleteResult
from app.services.substitution_workflow import SubstitutionWorkflow

router = APIRouter()


def _absence_fields(payload: FacultyAbsenceCreate, current_user: User) -> dict:
    fields = payload.model_dump()
    if current_user.role == UserRole.faculty:
        fields["original_faculty_id"] = current_user.id
    elif not fields.get("original_faculty_id"):
        raise InvalidReference("original_faculty_id is required")
    return fields


@router.get("/substitutions", response_model=list[SubstitutionOut])
def list_substitutions(
    substitution_status: SubstitutionStatus | None = Query(default=None, alias="status"),
    original_faculty_id: str | None = Query(default=None),
    substitute_faculty_id: str | None = Query(default=None),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.faculty)),
    workflow: SubstitutionWorkflow = Depends(get_workflow),
) -> list[SubstitutionOut]:
    return workflow.list(
        status=substitution_status,
        original_faculty_id=original_faculty_id,
        substitute_faculty_id=substitute_faculty_id,
        faculty_id=current_user.id if current_user.role == UserRole.faculty else None,
        date_from=date_from,
        date_to=date_to,
    )


@router.post("/substitutions", response_model=SubstitutionOut, status_code=status.HTTP_201_CREATED)
def create_substitution(
    payload: SubstitutionCreate,
    current_user: User = Depends(get_current_user),
    workflow: SubstitutionWorkflow = Depends(get_workflow),
) -> SubstitutionOut:
    return workflow.request(current_user, **payload.model_dump())


@router.post("/substitutions/unavailable", response_model=SubstitutionOut, status_code=status.HTTP_201_CREATED)
def mark_unavailable(
    payload: FacultyAbsenceCreate,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.faculty)),
    workflow: SubstitutionWorkflow = Depends(get_workflow),
) -> SubstitutionOut:
    return workflow.mark_unavailable(current_user, **_absence_fields(payload, current_user))


@router.post("/substitutions/cancel-class", response_model=SubstitutionOut, status_code=status.HTTP_201_CREATED)
def cancel_class(
    payload: FacultyAbsenceCreate,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.faculty)),
    workflow: SubstitutionWorkflow = Depends(get_workflow),
) -> SubstitutionOut:
    return workflow.cancel_class(current_user, **_absence_fields(payload, current_user))


@router.post("/substitutions/complete-elapsed", response_model=ElapsedCompletionOut)
def complete_elapsed_substitutions(
    current_user: User = Depends(get_current_user),
    workflow: SubstitutionWorkflow = Depends(get_workflow),
) -> ElapsedCompletionOut:
    completed = workflow.complete_elapsed(current_user)
    return ElapsedCompletionOut(completed=len(completed), ids=[item.id for item in completed])


@router.get("/substitutions/{substitution_id}", response_model=SubstitutionOut)
def get_substitution(
    substitution_id: str,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.faculty)),
    workflow: SubstitutionWorkflow = Depends(get_workflow),
) -> SubstitutionOut:
    substitution = workflow.get(substitution_id)
    if current_user.role == UserRole.faculty and current_user.id not in (
        substitution.original_faculty_id,
        substitution.substitute_faculty_id,
    ):
        raise Unauthorized("substitution.read", substitution_id)
    return substitution


@router.patch("/substitutions/{substitution_id}/status", response_model=SubstitutionOut)
def decide_substitution(
    substitution_id: str,
    payload: SubstitutionDecision,
    current_user: User = Depends(get_current_user),
    workflow: SubstitutionWorkflow = Depends(get_workflow),
) -> SubstitutionOut:
    return workflow.decide(current_user, substitution_id, SubstitutionStatus(payload.status))


@router.put("/substitutions/{substitution_id}/substitute", response_model=SubstitutionOut)
def assign_substitute(
    substitution_id: str,
    payload: SubstituteAssignment,
    current_user: User = Depends(get_current_user),
    workflow: SubstitutionWorkflow = Depends(get_workflow),
) -> SubstitutionOut:
    return workflow.assign_substitute(current_user, substitution_id, payload.substitute_faculty_id)


@router.post("/substitutions/{substitution_id}/complete", response_model=SubstitutionOut)
def complete_substitution(
    substitution_id: str,
    current_user: User = Depends(get_current_user),
    workflow: SubstitutionWorkflow = Depends(get_workflow),
) -> SubstitutionOut:
    return workflow.complete(current_user, substitution_id)


@router.delete("/substitutions/{substitution_id}", response_model=DeleteResult)
def delete_substitution(
    substitution_id: str,
    current_user: User = Depends(get_current_user),
    workflow: SubstitutionWorkflow = Depends(get_workflow),
) -> DeleteResult:
    return DeleteResult(deleted=workflow.delete(current_user, substitution_id))
