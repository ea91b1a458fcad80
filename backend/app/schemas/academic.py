from datetime import datetime

from pydantic import BaseModel, Field


class ClassGroupCreate(BaseModel):
    class_name: str = Field(min_length=1, max_length=200)
    course_code: str = Field(min_length=1, max_length=50)
    department: str = Field(min_length=1, max_length=200)
    semester: int = Field(ge=1, le=12)
    faculty_id: str | None = Field(default=None, max_length=36)


class ClassGroupOut(BaseModel):
    id: str
    class_name: str
    course_code: str
    department: str
    semester: int
    faculty_id: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class SubjectCreate(BaseModel):
    subject_name: str = Field(min_length=1, max_length=200)
    subject_code: str = Field(min_length=1, max_length=50)
    credits: int = Field(default=3, ge=0, le=20)
    department: str | None = Field(default=None, max_length=200)


class SubjectOut(BaseModel):
    id: str
    subject_name: str
    subject_code: str
    credits: int
    department: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
