from pydantic import BaseModel, Field

from app.models.substitution import SubstitutionStatus


class SlotCreate(BaseModel):
    class_id: str = Field(min_length=1, max_length=36)
    day: str = Field(min_length=1, max_length=16)
    start_time: str = Field(min_length=4, max_length=5)
    end_time: str = Field(min_length=4, max_length=5)
    subject_id: str = Field(min_length=1, max_length=36)
    faculty_id: str = Field(min_length=1, max_length=36)
    classroom: str = Field(min_length=1, max_length=100)


class SlotUpdate(BaseModel):
    start_time: str | None = Field(default=None, min_length=4, max_length=5)
    end_time: str | None = Field(default=None, min_length=4, max_length=5)
    subject_id: str | None = Field(default=None, min_length=1, max_length=36)
    faculty_id: str | None = Field(default=None, min_length=1, max_length=36)
    classroom: str | None = Field(default=None, min_length=1, max_length=100)


class SlotOut(BaseModel):
    key: str
    timetable_id: str
    slot_id: str
    class_id: str
    day: str
    start_time: str
    end_time: str
    subject_id: str
    faculty_id: str
    classroom: str

    model_config = {"from_attributes": True}


class EffectiveSlotOut(BaseModel):
    slot_key: str
    class_id: str
    day: str
    start_time: str
    end_time: str
    subject_id: str
    classroom: str
    original_faculty_id: str
    faculty_id: str | None = None
    faculty_label: str | None = None
    substitution_id: str | None = None
    substitution_status: SubstitutionStatus | None = None
    is_substituted: bool = False

    model_config = {"from_attributes": True}


class DeleteResult(BaseModel):
    deleted: bool
