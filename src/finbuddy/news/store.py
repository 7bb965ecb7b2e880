from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

from sqlalchemy import delete, func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from finbuddy.core.exceptions import StorageUnavailableError
from finbuddy.db.models import LatestNews
from finbuddy.news.models import NewsItem

LOGGER = logging.getLogger(__name__)


class BaseNewsStore(ABC):
    """Minimal CRUD surface over the persisted news collection."""

    @abstractmethod
    def exists_by_headline(self, headline: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def insert_many(self, items: Iterable[NewsItem]) -> int:
        raise NotImplementedError

    @abstractmethod
    def latest(self, limit: int) -> list[NewsItem]:
        raise NotImplementedError

    @abstractmethod
    def ids_beyond(self, keep: int) -> list[int]:
        raise NotImplementedError

    @abstractmethod
    def delete_by_ids(self, ids: list[int]) -> int:
        raise NotImplementedError

    @abstractmethod
    def count(self) -> int:
        raise NotImplementedError

    @abstractmethod
    def ping(self) -> bool:
        raise NotImplementedError


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _news_item_from_row(row: LatestNews) -> NewsItem:
    return NewsItem(
        id=row.id,
        headline=row.headline,
        url=row.url,
        published_at=_as_utc(row.published_at),
        source=row.source,
        created_at=_as_utc(row.created_at),
    )


class SqlNewsStore(BaseNewsStore):
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self.session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            raise StorageUnavailableError(f"News store unavailable: {exc}") from exc

    def exists_by_headline(self, headline: str) -> bool:
        with self._session() as session:
            row = session.execute(select(LatestNews.id).where(LatestNews.headline == headline).limit(1)).first()
        return row is not None

    def insert_many(self, items: Iterable[NewsItem]) -> int:
        rows = list(items)
        if not rows:
            return 0

        now = datetime.now(UTC)
        with self._session() as session:
            # providers list newest first; insert oldest first so ids follow recency
            for item in reversed(rows):
                session.add(
                    LatestNews(
                        headline=item.headline,
                        url=item.url,
                        published_at=item.published_at,
                        source=item.source,
                        created_at=now,
                    )
                )
            session.commit()
        return len(rows)

    def latest(self, limit: int) -> list[NewsItem]:
        if limit <= 0:
            return []
        with self._session() as session:
            rows = session.execute(
                select(LatestNews).order_by(LatestNews.created_at.desc(), LatestNews.id.desc()).limit(limit)
            ).scalars()
            return [_news_item_from_row(row) for row in rows]

    def ids_beyond(self, keep: int) -> list[int]:
        with self._session() as session:
            rows = session.execute(
                select(LatestNews.id)
                .order_by(LatestNews.created_at.desc(), LatestNews.id.desc())
                .offset(max(keep, 0))
            ).all()
        return [int(row[0]) for row in rows]

    def delete_by_ids(self, ids: list[int]) -> int:
        if not ids:
            return 0
        with self._session() as session:
            result = session.execute(delete(LatestNews).where(LatestNews.id.in_(ids)))
            session.commit()
        return int(result.rowcount or 0)

    def count(self) -> int:
        with self._session() as session:
            return int(session.execute(select(func.count(LatestNews.id))).scalar_one())

    def ping(self) -> bool:
        try:
            with self._session() as session:
                session.execute(text("SELECT 1"))
        except StorageUnavailableError as exc:
            LOGGER.warning("News store ping failed: %s", exc)
            return False
        return True
