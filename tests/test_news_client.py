from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from finbuddy.core.config import Settings
from finbuddy.news.client import FALLBACK_HEADLINES, NewsClient, fallback_news
from finbuddy.news.models import build_news_item, parse_timestamp


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _mock_response(json_data, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code=status_code,
        json=json_data,
        request=httpx.Request("GET", "https://mock"),
    )


def _settings(**overrides) -> Settings:
    defaults = dict(database_url="sqlite:///:memory:", news_api_key="news-key", finnhub_api_key=None)
    defaults.update(overrides)
    return Settings(**defaults)


NEWSDATA_RESPONSE = {
    "status": "success",
    "results": [
        {
            "title": "  Sensex   climbs 500 points  ",
            "link": "https://example.com/sensex",
            "pubDate": "2026-10-15 09:30:00",
            "source_id": "economictimes",
        },
        {
            "title": "RBI keeps repo rate unchanged",
            "link": "ftp://not-a-web-url",
            "pubDate": "not a date",
            "source_id": "",
        },
        {"title": "", "link": "https://example.com/empty"},
    ],
}

FINNHUB_RESPONSE = [
    {"headline": "Fed signals patience", "url": "https://example.com/fed", "datetime": 1760000000, "source": "Reuters"},
    {"headline": "", "url": "https://example.com/blank", "datetime": 1760000000},
]


# ---------------------------------------------------------------------------
# NewsData.io
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_newsdata_parses_and_normalises() -> None:
    with patch("finbuddy.news.client.httpx.AsyncClient") as MockClient:
        mock_client = AsyncMock()
        mock_client.get.return_value = _mock_response(NEWSDATA_RESPONSE)
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=False)
        MockClient.return_value = mock_client

        items = await NewsClient(_settings()).fetch_headlines(limit=10)

    assert [item.headline for item in items] == ["Sensex climbs 500 points", "RBI keeps repo rate unchanged"]
    assert items[0].url == "https://example.com/sensex"
    assert items[0].source == "economictimes"
    assert items[0].published_at == datetime(2026, 10, 15, 9, 30, tzinfo=UTC)
    assert items[1].url is None
    assert items[1].published_at is None
    assert items[1].source == "NewsData.io"

    params = mock_client.get.call_args.kwargs["params"]
    assert params["category"] == "business"
    assert params["country"] == "in"
    assert params["language"] == "en"


@pytest.mark.asyncio
async def test_newsdata_failure_falls_back_to_finnhub() -> None:
    with patch("finbuddy.news.client.httpx.AsyncClient") as MockClient:
        mock_client = AsyncMock()
        mock_client.get.side_effect = [
            _mock_response({"status": "error", "message": "quota"}, 200),
            _mock_response(FINNHUB_RESPONSE),
        ]
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=False)
        MockClient.return_value = mock_client

        items = await NewsClient(_settings(finnhub_api_key="fh-key")).fetch_headlines()

    assert len(items) == 1
    assert items[0].headline == "Fed signals patience"
    assert items[0].source == "Reuters"
    assert items[0].published_at == datetime.fromtimestamp(1760000000, tz=UTC)


@pytest.mark.asyncio
async def test_http_error_returns_fallback_set() -> None:
    with patch("finbuddy.news.client.httpx.AsyncClient") as MockClient:
        mock_client = AsyncMock()
        mock_client.get.return_value = _mock_response({"message": "server down"}, 500)
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=False)
        MockClient.return_value = mock_client

        items = await NewsClient(_settings()).fetch_headlines()

    assert [item.headline for item in items] == [row[0] for row in FALLBACK_HEADLINES]


@pytest.mark.asyncio
async def test_missing_credentials_returns_fallback_without_network() -> None:
    client = NewsClient(_settings(news_api_key=None))
    assert client.is_configured is False

    with patch("finbuddy.news.client.httpx.AsyncClient") as MockClient:
        items = await client.fetch_headlines(limit=3)

    MockClient.assert_not_called()
    assert len(items) == 3


# ---------------------------------------------------------------------------
# Normalisation helpers
# ---------------------------------------------------------------------------

def test_fallback_news_is_ordered_newest_first() -> None:
    now = datetime(2026, 1, 1, 12, tzinfo=UTC)
    items = fallback_news(now)
    assert items[0].published_at == now
    assert all(a.published_at > b.published_at for a, b in zip(items, items[1:]))
    assert all(item.url and item.url.startswith("https://") for item in items)


def test_build_news_item_rejects_blank_headline() -> None:
    assert build_news_item("   ") is None
    assert build_news_item(None) is None


def test_build_news_item_caps_headline_length() -> None:
    item = build_news_item("x" * 800, source="  Mint ")
    assert item is not None
    assert len(item.headline) == 500
    assert item.source == "Mint"


def test_parse_timestamp_assumes_utc_for_naive_values() -> None:
    parsed = parse_timestamp("2026-10-15T08:00:00")
    assert parsed == datetime(2026, 10, 15, 8, tzinfo=UTC)
    assert parse_timestamp("") is None


@pytest.mark.parametrize("raw", [1_700_000_000_000, 10**20, float("inf"), -10**15])
def test_parse_timestamp_out_of_range_epoch_is_none(raw) -> None:
    assert parse_timestamp(raw) is None


@pytest.mark.asyncio
async def test_finnhub_bad_timestamp_keeps_rest_of_batch() -> None:
    rows = [
        {"headline": "Sensex closes higher", "url": "https://example.com/a", "datetime": 1_700_000_000_000},
        {"headline": "Rupee steadies", "url": "https://example.com/b", "datetime": 1760000000, "source": "Mint"},
    ]
    with patch("finbuddy.news.client.httpx.AsyncClient") as MockClient:
        mock_client = AsyncMock()
        mock_client.get.return_value = _mock_response(rows)
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=False)
        MockClient.return_value = mock_client

        items = await NewsClient(_settings(news_api_key=None, finnhub_api_key="fh-key")).fetch_headlines()

    assert [item.headline for item in items] == ["Sensex closes higher", "Rupee steadies"]
    assert items[0].published_at is None
    assert items[0].source == "Finnhub.io"
