import pytest
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.db import bootstrap


@pytest.fixture()
def engine():
    engine = create_engine("sqlite+pysqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    yield engine
    engine.dispose()


def test_bootstrap_creates_missing_tables(engine):
    bootstrap.ensure_runtime_schema(engine)

    assert bootstrap.missing_schema(engine) == []


def test_bootstrap_without_auto_create_reports_missing_schema(engine, monkeypatch):
    monkeypatch.setattr(bootstrap, "get_settings", lambda: Settings(auto_create_schema=False))

    with pytest.raises(RuntimeError, match="Missing required schema objects"):
        bootstrap.ensure_runtime_schema(engine)


def test_bootstrap_adds_notification_delivery_columns(engine):
    with engine.begin() as connection:
        connection.execute(
            text(
                "CREATE TABLE notifications ("
                "id VARCHAR(36) PRIMARY KEY, user_id VARCHAR(36) NOT NULL, title VARCHAR(200) NOT NULL, "
                "message TEXT NOT NULL, notification_type VARCHAR(15) NOT NULL, is_read BOOLEAN NOT NULL, "
                "created_at TIMESTAMP)"
            )
        )

    bootstrap.ensure_runtime_schema(engine)

    columns = {item["name"] for item in inspect(engine).get_columns("notifications")}
    assert {"priority", "related_id", "related_model", "read_at"} <= columns
