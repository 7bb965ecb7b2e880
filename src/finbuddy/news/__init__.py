"""News ingestion and storage."""

from finbuddy.news.client import NewsClient, fallback_news
from finbuddy.news.ingest import NewsIngestionService
from finbuddy.news.models import IngestionReport, NewsHealth, NewsItem
from finbuddy.news.store import BaseNewsStore, SqlNewsStore

__all__ = [
    "BaseNewsStore",
    "IngestionReport",
    "NewsClient",
    "NewsHealth",
    "NewsIngestionService",
    "NewsItem",
    "SqlNewsStore",
    "fallback_news",
]
