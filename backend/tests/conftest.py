import os

# Must be set before app modules build the engine and settings.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")

from datetime import date, datetime, timezone  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.api.deps import get_clock, get_db  # noqa: E402
from app.core.security import create_access_token  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.main import app  # noqa: E402
from app.models.class_group import ClassGroup  # noqa: E402
from app.models.subject import Subject  # noqa: E402
from app.models.user import User, UserRole  # noqa: E402
from app.services.collaborators import weekday_name  # noqa: E402
from app.services.locks import get_lock_registry  # noqa: E402

# A Monday.
TODAY = date(2026, 10, 19)


class FixedClock:
    def __init__(self, today: date = TODAY, now: datetime | None = None) -> None:
        self._today = today
        self._now = now or datetime(today.year, today.month, today.day, 9, 30, tzinfo=timezone.utc)

    def today(self) -> date:
        return self._today

    def now(self) -> datetime:
        return self._now

    def weekday_of(self, value: date) -> str:
        return weekday_name(value)


class Seeder:
    """Creates reference rows directly through the session."""

    def __init__(self, db) -> None:
        self.db = db
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    def user(self, role: UserRole = UserRole.faculty, **fields) -> User:
        index = self._next()
        user = User(
            name=fields.pop("name", f"{role.value.title()} {index}"),
            email=fields.pop("email", f"{role.value}{index}@example.com"),
            role=role,
            **fields,
        )
        self.db.add(user)
        self.db.commit()
        return user

    def admin(self, **fields) -> User:
        return self.user(UserRole.admin, **fields)

    def faculty(self, **fields) -> User:
        return self.user(UserRole.faculty, **fields)

    def student(self, **fields) -> User:
        return self.user(UserRole.student, **fields)

    def subject(self, **fields) -> Subject:
        index = self._next()
        subject = Subject(
            subject_name=fields.pop("subject_name", f"Subject {index}"),
            subject_code=fields.pop("subject_code", f"SUB{index:03d}"),
            **fields,
        )
        self.db.add(subject)
        self.db.commit()
        return subject

    def class_group(self, **fields) -> ClassGroup:
        index = self._next()
        class_group = ClassGroup(
            class_name=fields.pop("class_name", f"CSE-{index}"),
            course_code=fields.pop("course_code", "BTECH-CSE"),
            department=fields.pop("department", "CSE"),
            semester=fields.pop("semester", 3),
            **fields,
        )
        self.db.add(class_group)
        self.db.commit()
        return class_group


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture()
def session_factory():
    get_lock_registry().clear()
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def file_session_factory(tmp_path):
    """A file-backed database where every session gets its own connection."""
    get_lock_registry().clear()
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'timeweave.db'}",
        connect_args={"check_same_thread": False, "timeout": 10},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def clock():
    return FixedClock()


@pytest.fixture()
def seed(db):
    return Seeder(db)


@pytest.fixture()
def client(session_factory, clock):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture()
def auth():
    return auth_headers
