from datetime import date

from fastapi import APIRouter, Depends, Query, status

from app.api.deps import get_clock, get_current_user, get_reconciler, get_timetable_store, require_roles
from app.models.user import User, UserRole
from app.schemas.timetable import DeleteResult, EffectiveSlotOut, SlotCreate, SlotOut, SlotUpdate
from app.services.collaborators import Clock
from app.services.reconciler import ScheduleReconciler
from app.services.slot_keys import split_slot_key
from app.services.timetable_store import SlotInput, TimetableStore

router = APIRouter()


@router.get("/timetables", response_model=list[SlotOut])
def list_timetable_slots(
    class_id: str | None = Query(default=None),
    day: str | None = Query(default=None),
    faculty_id: str | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    store: TimetableStore = Depends(get_timetable_store),
) -> list[SlotOut]:
    return [SlotOut.model_validate(record) for record in store.list_slots(class_id, day, faculty_id)]


@router.post("/timetables", response_model=SlotOut, status_code=status.HTTP_201_CREATED)
def create_timetable_slot(
    payload: SlotCreate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    store: TimetableStore = Depends(get_timetable_store),
) -> SlotOut:
    record = store.upsert_slot(
        payload.class_id,
        payload.day,
        SlotInput(
            start_time=payload.start_time,
            end_time=payload.end_time,
            subject_id=payload.subject_id,
            faculty_id=payload.faculty_id,
            classroom=payload.classroom,
        ),
        actor=current_user,
    )
    return SlotOut.model_validate(record)


@router.get("/timetables/effective", response_model=list[EffectiveSlotOut])
def get_effective_timetable(
    class_id: str = Query(min_length=1),
    day: str = Query(min_length=1),
    on_date: date | None = Query(default=None, alias="date"),
    current_user: User = Depends(get_current_user),
    reconciler: ScheduleReconciler = Depends(get_reconciler),
    clock: Clock = Depends(get_clock),
) -> list[EffectiveSlotOut]:
    slots = reconciler.effective_slots(class_id, day, on_date or clock.today())
    return [EffectiveSlotOut.model_validate(slot) for slot in slots]


@router.get("/timetables/slots/{slot_key}", response_model=SlotOut)
def get_timetable_slot(
    slot_key: str,
    current_user: User = Depends(get_current_user),
    store: TimetableStore = Depends(get_timetable_store),
) -> SlotOut:
    return SlotOut.model_validate(store.find_slot_by_id(slot_key))


@router.put("/timetables/slots/{slot_key}", response_model=SlotOut)
def update_timetable_slot(
    slot_key: str,
    payload: SlotUpdate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    store: TimetableStore = Depends(get_timetable_store),
) -> SlotOut:
    timetable_id, slot_id = split_slot_key(slot_key)
    record = store.update_slot(timetable_id, slot_id, payload.model_dump(exclude_unset=True), actor=current_user)
    return SlotOut.model_validate(record)


@router.delete("/timetables/slots/{slot_key}", response_model=DeleteResult)
def delete_timetable_slot(
    slot_key: str,
    current_user: User = Depends(require_roles(UserRole.admin)),
    store: TimetableStore = Depends(get_timetable_store),
) -> DeleteResult:
    return DeleteResult(deleted=store.remove_slot_by_key(slot_key, actor=current_user))
