from datetime import date as date_type

from pydantic import BaseModel

from app.schemas.schedule import ScheduleOut
from app.schemas.substitution import SubstitutionOut
from app.schemas.timetable import EffectiveSlotOut, SlotOut


class ClassroomEntryOut(BaseModel):
    slot: EffectiveSlotOut
    state: str

    model_config = {"from_attributes": True}


class StudentDashboardOut(BaseModel):
    date: date_type
    day: str
    class_ids: list[str]
    entries: list[ClassroomEntryOut]
    counts: dict[str, int]


class FacultyDashboardOut(BaseModel):
    date: date_type
    day: str
    slots: list[SlotOut]
    schedules: list[ScheduleOut]
    requested_substitutions: list[SubstitutionOut]
    covering_substitutions: list[SubstitutionOut]
    unread_notifications: int
