from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from finbuddy.core.config import Settings


def build_engine(settings: Settings) -> Engine:
    connect_args: dict[str, object] = {}
    kwargs: dict[str, object] = {}
    if settings.database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        if ":memory:" in settings.database_url:
            # one shared connection, otherwise every thread sees its own empty database
            kwargs["poolclass"] = StaticPool
    return create_engine(settings.database_url, future=True, connect_args=connect_args, **kwargs)


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)
