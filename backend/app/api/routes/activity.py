from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_roles
from app.models.user import User, UserRole
from app.schemas.activity import ActivityLogOut
from app.services.audit import MAX_TRAIL_ROWS, activity_trail

router = APIRouter()


@router.get("/activity/logs", response_model=list[ActivityLogOut])
def list_activity_logs(
    entity_type: str | None = Query(default=None),
    entity_id: str | None = Query(default=None),
    user_id: str | None = Query(default=None),
    action: str | None = Query(default=None, description="Action prefix, e.g. 'substitution.'"),
    limit: int = Query(default=100, ge=1, le=MAX_TRAIL_ROWS),
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> list[ActivityLogOut]:
    return activity_trail(
        db,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        action_prefix=action,
        limit=limit,
    )
