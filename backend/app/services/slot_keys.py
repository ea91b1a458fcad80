from __future__ import annotations

from app.core.exceptions import NotFoundError

SLOT_KEY_SEPARATOR = "_"


def build_slot_key(timetable_id: str, slot_id: str) -> str:
    return f"{timetable_id}{SLOT_KEY_SEPARATOR}{slot_id}"


def split_slot_key(composite_key: str) -> tuple[str, str]:
    """Split ``"<timetableId>_<slotId>"`` on the first separator."""
    timetable_id, separator, slot_id = (composite_key or "").partition(SLOT_KEY_SEPARATOR)
    if not separator or not timetable_id or not slot_id:
        raise NotFoundError("TimeSlot", composite_key)
    return timetable_id, slot_id
