from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import get_settings

settings = get_settings()

_url = make_url(settings.database_url)
_engine_kwargs: dict = {"pool_pre_ping": True}
if _url.get_backend_name() == "sqlite":
    _engine_kwargs["connect_args"] = {"check_same_thread": False}
    if _url.database in (None, "", ":memory:"):
        # An in-memory database lives in one connection; share it across threads.
        _engine_kwargs["poolclass"] = StaticPool

engine = create_engine(_url, **_engine_kwargs)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
