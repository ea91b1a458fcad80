from datetime import date as date_type, datetime

from pydantic import BaseModel, Field

from app.models.special_class import SpecialClassStatus, SpecialClassType


class SpecialClassCreate(BaseModel):
    class_code: str = Field(min_length=1, max_length=50)
    subject: str = Field(min_length=1, max_length=200)
    faculty_id: str | None = Field(default=None, max_length=36)
    date: date_type
    start_time: str = Field(min_length=4, max_length=5)
    end_time: str = Field(min_length=4, max_length=5)
    room: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=1, max_length=500)
    type: SpecialClassType = SpecialClassType.extra_class
    max_students: int | None = Field(default=None, ge=1, le=200)
    materials: str | None = Field(default=None, max_length=1000)
    prerequisites: str | None = Field(default=None, max_length=500)


class SpecialClassUpdate(BaseModel):
    class_code: str | None = Field(default=None, min_length=1, max_length=50)
    subject: str | None = Field(default=None, min_length=1, max_length=200)
    faculty_id: str | None = Field(default=None, min_length=1, max_length=36)
    date: date_type | None = None
    start_time: str | None = Field(default=None, min_length=4, max_length=5)
    end_time: str | None = Field(default=None, min_length=4, max_length=5)
    room: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, min_length=1, max_length=500)
    type: SpecialClassType | None = None
    max_students: int | None = Field(default=None, ge=1, le=200)
    materials: str | None = Field(default=None, max_length=1000)
    prerequisites: str | None = Field(default=None, max_length=500)
    status: SpecialClassStatus | None = None


class SpecialClassOut(BaseModel):
    id: str
    class_code: str
    subject: str
    faculty_id: str
    date: date_type
    day: str
    start_time: str
    end_time: str
    duration_minutes: int
    room: str
    description: str
    type: SpecialClassType
    max_students: int | None = None
    registered_student_ids: list[str] = []
    is_full: bool
    available_spots: int | None = None
    status: SpecialClassStatus
    materials: str | None = None
    prerequisites: str | None = None
    created_by_id: str
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class SpecialClassPage(BaseModel):
    total: int
    items: list[SpecialClassOut]
