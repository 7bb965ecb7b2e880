from __future__ import annotations

import asyncio
import logging

from finbuddy.core.config import Settings
from finbuddy.core.exceptions import IngestionFailedError, StorageUnavailableError
from finbuddy.news.client import NewsClient, fallback_news
from finbuddy.news.models import IngestionReport, NewsHealth, NewsItem
from finbuddy.news.store import BaseNewsStore

LOGGER = logging.getLogger(__name__)


def dedupe_batch(items: list[NewsItem]) -> list[NewsItem]:
    seen: set[str] = set()
    out: list[NewsItem] = []
    for item in items:
        if item.headline in seen:
            continue
        seen.add(item.headline)
        out.append(item)
    return out


class NewsIngestionService:
    """Fetch, dedupe, store and trim the latest news collection."""

    def __init__(self, settings: Settings, store: BaseNewsStore, client: NewsClient) -> None:
        self.store = store
        self.client = client
        self.batch_size = settings.news_batch_size
        self.max_stored = settings.max_stored_news
        self._lock = asyncio.Lock()

    async def get_latest_for_context(self, limit: int) -> list[NewsItem]:
        return await asyncio.to_thread(self.store.latest, limit)

    async def ingest(self) -> IngestionReport:
        if self._lock.locked():
            raise IngestionFailedError("News ingestion already in progress")

        async with self._lock:
            fetched = await self.client.fetch_headlines(limit=self.batch_size)
            if not fetched:
                LOGGER.warning("News client returned nothing; using built-in news set")
                fetched = fallback_news()[: self.batch_size]

            try:
                report = await asyncio.to_thread(self._store_and_trim, dedupe_batch(fetched))
            except StorageUnavailableError as exc:
                LOGGER.error("News ingestion failed: %s", exc)
                raise IngestionFailedError(str(exc)) from exc

        LOGGER.info(
            "News ingestion complete | inserted=%d deleted=%d total=%d",
            report.inserted,
            report.deleted,
            report.total_stored,
        )
        return report

    def _store_and_trim(self, items: list[NewsItem]) -> IngestionReport:
        fresh: list[NewsItem] = []
        for item in items:
            if self.store.exists_by_headline(item.headline):
                LOGGER.debug("Skipping duplicate headline: %s", item.headline[:50])
                continue
            fresh.append(item)

        inserted = self.store.insert_many(fresh)
        stale_ids = self.store.ids_beyond(self.max_stored)
        deleted = self.store.delete_by_ids(stale_ids)
        return IngestionReport(inserted=inserted, deleted=deleted, total_stored=self.store.count())

    async def health_status(self) -> NewsHealth:
        healthy = await asyncio.to_thread(self.store.ping)
        news_count = 0
        last_update = None
        if healthy:
            try:
                news_count = await asyncio.to_thread(self.store.count)
                latest = await asyncio.to_thread(self.store.latest, 1)
            except StorageUnavailableError as exc:
                LOGGER.warning("News health check failed: %s", exc)
                healthy = False
            else:
                last_update = latest[0].created_at if latest else None
        return NewsHealth(
            database_healthy=healthy,
            news_count=news_count,
            api_configured=self.client.is_configured,
            last_update=last_update,
        )
