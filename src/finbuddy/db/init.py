from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from finbuddy.db.base import Base
from finbuddy.db.models import LatestNews

LOGGER = logging.getLogger(__name__)


def _ensure_sqlite_directory(engine: Engine) -> None:
    url = engine.url
    if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
        return
    Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)


def init_db(engine: Engine) -> list[str]:
    """Create the news tables when missing; returns the tables created by this call."""
    _ensure_sqlite_directory(engine)
    existing = set(inspect(engine).get_table_names())
    Base.metadata.create_all(bind=engine)

    created = [name for name in Base.metadata.tables if name not in existing]
    if created:
        LOGGER.info("Created tables: %s", ", ".join(created))
    elif LatestNews.__tablename__ in existing:
        LOGGER.debug("Schema already present at %s", engine.url.render_as_string(hide_password=True))
    return created
