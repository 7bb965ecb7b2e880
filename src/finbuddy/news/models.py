from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from dateutil import parser as dtparser

MAX_HEADLINE_LENGTH = 500
URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


@dataclass(slots=True)
class NewsItem:
    headline: str
    url: str | None = None
    published_at: datetime | None = None
    source: str | None = None
    created_at: datetime | None = None
    id: int | None = None


@dataclass(slots=True)
class IngestionReport:
    inserted: int = 0
    deleted: int = 0
    total_stored: int = 0

    def as_payload(self) -> dict[str, int]:
        return {"inserted": self.inserted, "deleted": self.deleted, "totalStored": self.total_stored}


@dataclass(slots=True)
class NewsHealth:
    database_healthy: bool
    news_count: int
    api_configured: bool
    last_update: datetime | None = None

    def as_payload(self) -> dict[str, Any]:
        return {
            "databaseHealthy": self.database_healthy,
            "newsCount": self.news_count,
            "apiConfigured": self.api_configured,
            "lastUpdate": self.last_update.isoformat() if self.last_update else None,
        }


def clean_headline(raw: Any) -> str:
    text = _WHITESPACE.sub(" ", str(raw or "")).strip()
    return text[:MAX_HEADLINE_LENGTH]


def clean_url(raw: Any) -> str | None:
    url = str(raw or "").strip()
    if not url or not URL_PATTERN.match(url):
        return None
    return url


def clean_source(raw: Any) -> str | None:
    source = str(raw or "").strip()
    return source or None


def parse_timestamp(raw: Any) -> datetime | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        parsed = raw
    elif isinstance(raw, (int, float)):
        try:
            parsed = datetime.fromtimestamp(raw, tz=UTC)
        except (ValueError, OverflowError, OSError):
            return None
    else:
        try:
            parsed = dtparser.parse(str(raw))
        except (ValueError, OverflowError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def build_news_item(headline: Any, url: Any = None, published_at: Any = None, source: Any = None) -> NewsItem | None:
    """Normalise provider fields into a NewsItem; None when the headline is empty."""
    title = clean_headline(headline)
    if not title:
        return None
    return NewsItem(
        headline=title,
        url=clean_url(url),
        published_at=parse_timestamp(published_at),
        source=clean_source(source),
    )
