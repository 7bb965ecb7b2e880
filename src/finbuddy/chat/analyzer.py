from __future__ import annotations

from typing import Any

# Temporal or market-currency intent. Substring match, so keep entries specific
# enough not to fire inside unrelated words ("now" would match "know").
NEWS_CONTEXT_KEYWORDS: tuple[str, ...] = (
    # time-sensitive
    "current",
    "today",
    "latest",
    "recent",
    "right now",
    "this week",
    "this month",
    "yesterday",
    "these days",
    # news
    "news",
    "headline",
    "breaking",
    "update",
    "happening",
    # market state
    "market conditions",
    "market today",
    "market trend",
    "market outlook",
    "market analysis",
    "stock market now",
    "crash",
    "volatility",
    # timing decisions
    "should i invest",
    "should i buy",
    "should i sell",
    "good time to invest",
    "buy stocks",
    "sell stocks",
    # indices and policy
    "nifty",
    "sensex",
    "nasdaq",
    "dow jones",
    "s&p 500",
    "repo rate",
    "rbi policy",
    "interest rate",
    "inflation",
    "earnings",
    "ipo",
)


def matched_keywords(message: Any) -> list[str]:
    if not isinstance(message, str):
        return []
    text = message.strip().lower()
    if not text:
        return []
    return [keyword for keyword in NEWS_CONTEXT_KEYWORDS if keyword in text]


def requires_news_context(message: Any) -> bool:
    """True when the message asks about current conditions and would benefit from headlines."""
    return bool(matched_keywords(message))
