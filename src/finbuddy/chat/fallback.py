from __future__ import annotations

import re
from typing import Any

# First matching rule wins; order runs from most to least specific.
FALLBACK_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (
        ("mutual fund",),
        "Mutual funds pool money from many investors to buy a diversified portfolio under professional "
        "management, which makes them a good starting point for beginners. Consider large-cap equity or "
        "balanced funds based on your risk tolerance, and a monthly SIP of ₹1000-5000 can build long-term wealth.",
    ),
    (
        ("sip",),
        "A SIP (Systematic Investment Plan) invests a fixed amount every month in a mutual fund, giving you "
        "rupee cost averaging and investing discipline. Start with ₹1000-5000 a month in a diversified equity "
        "fund with a good track record and a low expense ratio.",
    ),
    (
        ("stock", "equity", "share"),
        "Stocks can deliver good long-term returns but they are volatile. Start with blue-chip companies, "
        "diversify across sectors, research company fundamentals, and only invest money you will not need for "
        "at least five years.",
    ),
    (
        ("tax", "elss"),
        "ELSS mutual funds offer a deduction of up to ₹1.5 lakh under Section 80C with only a three-year "
        "lock-in. They are equity funds, so expect volatility, and make sure they fit your overall asset "
        "allocation rather than investing only to save tax.",
    ),
    (
        ("invest", "portfolio"),
        "Start investing early with a diversified portfolio. Build an emergency fund of six months of expenses "
        "first, then invest regularly through SIPs for long-term goals, and review and rebalance your "
        "allocation once a year.",
    ),
    (
        ("current", "market", "today"),
        "Market conditions change daily, so focus on long-term principles instead of trying to time the "
        "market. If your horizon is five years or more, short-term volatility matters less; keep your SIPs "
        "going and stay disciplined.",
    ),
)

DEFAULT_FALLBACK = (
    "I'm here to help with your financial questions! Ask me about mutual funds, SIPs, stock investing, tax "
    "planning or building your investment portfolio. For personalised advice, consult a qualified financial "
    "advisor who understands your situation."
)


def _keyword_pattern(keywords: tuple[str, ...]) -> re.Pattern[str]:
    # Leading word boundary only, so plurals still match ("stocks", "SIPs") but "gossip" does not.
    return re.compile("|".join(rf"\b{re.escape(keyword)}" for keyword in keywords))


_RULE_PATTERNS = tuple((_keyword_pattern(keywords), answer) for keywords, answer in FALLBACK_RULES)


def fallback_answer(message: Any) -> str:
    """Canned guidance used whenever model generation is unavailable."""
    text = message.lower() if isinstance(message, str) else ""
    for pattern, answer in _RULE_PATTERNS:
        if pattern.search(text):
            return answer
    return DEFAULT_FALLBACK
