from collections.abc import Callable, Generator, Iterable

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from app.core.security import decode_token
from app.db.session import SessionLocal
from app.models.user import User, UserRole
from app.services.collaborators import Clock, SystemClock
from app.services.reconciler import ScheduleReconciler
from app.services.schedule_service import ScheduleService
from app.services.special_classes import SpecialClassService
from app.services.substitution_workflow import SubstitutionWorkflow
from app.services.timetable_store import TimetableStore

security = HTTPBearer()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    token = credentials.credentials
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(token)
        user_id = payload.get("sub")
        if user_id is None:
            raise credentials_exception
    except JWTError as exc:
        raise credentials_exception from exc

    user = db.get(User, user_id)
    if user is None:
        raise credentials_exception
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive")
    return user


def require_roles(*roles: UserRole) -> Callable[[User], User]:
    allowed_roles: Iterable[UserRole] = set(roles)

    def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed_roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return current_user

    return role_checker


def get_clock() -> Clock:
    return SystemClock()


def get_timetable_store(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)) -> TimetableStore:
    return TimetableStore(db, clock=clock)


def get_workflow(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)) -> SubstitutionWorkflow:
    return SubstitutionWorkflow(db, clock=clock)


def get_schedule_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    workflow: SubstitutionWorkflow = Depends(get_workflow),
) -> ScheduleService:
    return ScheduleService(db, workflow=workflow, clock=clock)


def get_reconciler(db: Session = Depends(get_db), clock: Clock = Depends(get_clock)) -> ScheduleReconciler:
    return ScheduleReconciler(db, clock=clock)


def get_special_class_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> SpecialClassService:
    return SpecialClassService(db, clock=clock)
