from datetime import date as date_type, datetime
from typing import Literal

from pydantic import BaseModel, Field

from app.models.substitution import SubstitutionStatus


class SubstitutionCreate(BaseModel):
    original_faculty_id: str = Field(min_length=1, max_length=36)
    date: date_type
    subject_id: str = Field(min_length=1, max_length=36)
    classroom: str = Field(min_length=1, max_length=100)
    time_slot: str = Field(min_length=9, max_length=13)
    reason: str = Field(min_length=3, max_length=1000)
    substitute_faculty_id: str | None = Field(default=None, max_length=36)
    schedule_id: str | None = Field(default=None, max_length=36)


class FacultyAbsenceCreate(BaseModel):
    """Faculty-initiated unavailability or cancellation; the caller is the original faculty."""

    date: date_type
    subject_id: str = Field(min_length=1, max_length=36)
    classroom: str = Field(min_length=1, max_length=100)
    time_slot: str = Field(min_length=9, max_length=13)
    reason: str = Field(min_length=3, max_length=1000)
    original_faculty_id: str | None = Field(default=None, max_length=36)
    substitute_faculty_id: str | None = Field(default=None, max_length=36)


class SubstitutionDecision(BaseModel):
    status: Literal["approved", "rejected"]


class SubstituteAssignment(BaseModel):
    substitute_faculty_id: str = Field(min_length=1, max_length=36)


class SubstitutionOut(BaseModel):
    id: str
    date: date_type
    original_faculty_id: str
    substitute_faculty_id: str | None = None
    subject_id: str
    reason: str
    classroom: str
    time_slot: str
    status: SubstitutionStatus
    schedule_id: str | None = None
    requested_by_id: str | None = None
    decided_by_id: str | None = None
    decided_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ElapsedCompletionOut(BaseModel):
    completed: int
    ids: list[str]
