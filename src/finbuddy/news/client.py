from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from finbuddy.core.config import Settings
from finbuddy.news.models import NewsItem, build_news_item

LOGGER = logging.getLogger(__name__)

NEWSDATA_URL = "https://newsdata.io/api/1/news"
FINNHUB_URL = "https://finnhub.io/api/v1/news"

FALLBACK_HEADLINES: tuple[tuple[str, str, str], ...] = (
    ("Indian Stock Market Shows Steady Growth Amid Global Uncertainty", "https://example.com/news1", "Financial Express"),
    ("RBI Maintains Repo Rate at 6.5% in Latest Policy Review", "https://example.com/news2", "Economic Times"),
    ("Mutual Fund Inflows Hit Record High This Quarter", "https://example.com/news3", "Business Standard"),
    ("Tech Stocks Rally on Positive Earnings Outlook", "https://example.com/news4", "Mint"),
    ("Gold Prices Stabilize After Recent Volatility", "https://example.com/news5", "MoneyControl"),
)


class NewsProviderError(RuntimeError):
    """Raised when a news provider returns an unusable response."""


def fallback_news(now: datetime | None = None) -> list[NewsItem]:
    """Built-in headlines used when no provider is configured or reachable."""
    now = now or datetime.now(UTC)
    return [
        NewsItem(headline=headline, url=url, published_at=now - timedelta(hours=idx), source=source)
        for idx, (headline, url, source) in enumerate(FALLBACK_HEADLINES)
    ]


class NewsClient:
    def __init__(self, settings: Settings) -> None:
        self.newsdata_key = settings.news_api_key
        self.finnhub_key = settings.finnhub_api_key
        self.country = settings.news_country
        self.category = settings.news_category
        self.language = settings.news_language
        self.timeout_seconds = settings.news_fetch_timeout_seconds

    @property
    def is_configured(self) -> bool:
        return bool(self.newsdata_key or self.finnhub_key)

    async def fetch_headlines(self, limit: int = 10) -> list[NewsItem]:
        """Fetch the latest headlines, falling back to the built-in set.

        Providers are tried in order (NewsData.io, then Finnhub); the first one
        that returns at least one usable headline wins. Never raises.
        """
        if not self.is_configured:
            LOGGER.warning("NEWS_API_KEY and FINNHUB_API_KEY not set; using fallback news")
            return fallback_news()[:limit]

        providers = []
        if self.newsdata_key:
            providers.append(("newsdata", self._fetch_newsdata))
        if self.finnhub_key:
            providers.append(("finnhub", self._fetch_finnhub))

        for name, fetch in providers:
            try:
                items = await fetch(limit)
            except (httpx.HTTPError, NewsProviderError, ValueError) as exc:
                LOGGER.warning("News provider %s failed: %s", name, exc)
                continue
            if items:
                LOGGER.info("News provider %s returned %d headlines", name, len(items))
                return items[:limit]
            LOGGER.warning("News provider %s returned no headlines", name)

        LOGGER.warning("All news providers unavailable; using fallback news")
        return fallback_news()[:limit]

    async def _fetch_newsdata(self, limit: int) -> list[NewsItem]:
        params = {
            "apikey": self.newsdata_key,
            "country": self.country,
            "category": self.category,
            "language": self.language,
            "size": str(min(limit, 10)),
        }
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            response = await client.get(NEWSDATA_URL, params=params, headers={"Accept": "application/json"})
            response.raise_for_status()
            data = response.json()

        if not isinstance(data, dict) or data.get("status") != "success":
            message = data.get("message") if isinstance(data, dict) else None
            raise NewsProviderError(f"NewsData returned error: {message or 'unknown error'}")

        return _collect(
            (
                article.get("title"),
                article.get("link"),
                article.get("pubDate"),
                article.get("source_id") or "NewsData.io",
            )
            for article in data.get("results") or []
            if isinstance(article, dict)
        )

    async def _fetch_finnhub(self, limit: int) -> list[NewsItem]:
        params = {"category": "general", "token": self.finnhub_key}
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            response = await client.get(FINNHUB_URL, params=params, headers={"Accept": "application/json"})
            response.raise_for_status()
            data = response.json()

        if not isinstance(data, list):
            raise NewsProviderError("Finnhub returned invalid data format")

        return _collect(
            (
                article.get("headline"),
                article.get("url"),
                article.get("datetime"),
                article.get("source") or "Finnhub.io",
            )
            for article in data
            if isinstance(article, dict)
        )


def _collect(rows: Iterable[tuple[Any, Any, Any, Any]]) -> list[NewsItem]:
    out: list[NewsItem] = []
    for headline, url, published_at, source in rows:
        item = build_news_item(headline, url=url, published_at=published_at, source=source)
        if item is not None:
            out.append(item)
    return out
