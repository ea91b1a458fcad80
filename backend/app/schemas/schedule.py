from datetime import date as date_type, datetime

from pydantic import BaseModel, Field

from app.models.schedule import ScheduleStatus


class ScheduleCreate(BaseModel):
    date: date_type
    start_time: str = Field(min_length=4, max_length=5)
    end_time: str = Field(min_length=4, max_length=5)
    classroom: str = Field(min_length=1, max_length=100)
    faculty_id: str = Field(min_length=1, max_length=36)
    subject_id: str = Field(min_length=1, max_length=36)
    class_id: str | None = Field(default=None, max_length=36)
    notes: str | None = Field(default=None, max_length=1000)


class ScheduleUpdate(BaseModel):
    date: date_type | None = None
    start_time: str | None = Field(default=None, min_length=4, max_length=5)
    end_time: str | None = Field(default=None, min_length=4, max_length=5)
    classroom: str | None = Field(default=None, min_length=1, max_length=100)
    faculty_id: str | None = Field(default=None, min_length=1, max_length=36)
    subject_id: str | None = Field(default=None, min_length=1, max_length=36)
    class_id: str | None = Field(default=None, max_length=36)
    notes: str | None = Field(default=None, max_length=1000)


class ScheduleCancel(BaseModel):
    notes: str | None = Field(default=None, max_length=1000)


class ScheduleSubstituteRequest(BaseModel):
    reason: str = Field(min_length=3, max_length=1000)
    substitute_faculty_id: str | None = Field(default=None, max_length=36)


class ScheduleOut(BaseModel):
    id: str
    date: date_type
    day: str
    start_time: str
    end_time: str
    classroom: str
    class_id: str | None = None
    faculty_id: str
    subject_id: str
    status: ScheduleStatus
    substitute_faculty_id: str | None = None
    notes: str | None = None
    updated_by: str | None = None
    last_updated: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
