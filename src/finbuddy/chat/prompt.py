from __future__ import annotations

import math
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from finbuddy.news.models import NewsItem

CHARS_PER_TOKEN = 4
DEFAULT_MAX_PROMPT_TOKENS = 2000
DEFAULT_MAX_NEWS_ITEMS = 3

PERSONA_PREAMBLE = (
    "You are FinBuddy, a helpful Indian financial advisor AI. You explain personal finance, investing, "
    "mutual funds, SIPs, stocks, tax planning and budgeting in clear, practical terms. Be encouraging "
    "but realistic, mention that investing involves risk, and suggest consulting a qualified financial "
    "advisor for personalised decisions."
)
NEWS_HEADER = "Recent Financial News Context:"
NEWS_HINT = "Use this news context only when it is relevant to the question."
HISTORY_HEADER = "Conversation so far:"
INSTRUCTION_SUFFIX = "Provide helpful, specific financial advice. Be concise but informative, in 2-3 sentences."
RESPONSE_MARKER = "Response:"

_INJECTION_PATTERNS = (
    re.compile(r"system\s*:", re.IGNORECASE),
    re.compile(r"assistant\s*:", re.IGNORECASE),
    re.compile(r"ignore\s+previous", re.IGNORECASE),
    re.compile(r"forget\s+instructions", re.IGNORECASE),
)


@dataclass(slots=True)
class MessageValidation:
    valid: bool
    error: str | None = None


@dataclass(slots=True)
class ConversationTurn:
    text: str
    is_user: bool


def validate_message(message: Any, min_length: int = 3, max_length: int = 1000) -> MessageValidation:
    if message is None or not isinstance(message, str):
        return MessageValidation(valid=False, error="Message is required")

    trimmed = message.strip()
    if not trimmed:
        return MessageValidation(valid=False, error="Message cannot be empty")
    if len(trimmed) < min_length:
        return MessageValidation(valid=False, error=f"Message too short (minimum {min_length} characters)")
    if len(trimmed) > max_length:
        return MessageValidation(valid=False, error=f"Message too long (maximum {max_length} characters)")
    if any(pattern.search(trimmed) for pattern in _INJECTION_PATTERNS):
        return MessageValidation(valid=False, error="Message contains invalid content")
    return MessageValidation(valid=True)


def estimate_tokens(text: str) -> int:
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def truncate_at_sentence(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    if max_chars <= 0:
        return ""
    window = text[:max_chars]
    cut = max(window.rfind("."), window.rfind("!"), window.rfind("?"))
    if cut > 0:
        return window[: cut + 1]
    return window.rstrip()


def _news_line(item: NewsItem) -> str:
    headline = item.headline.strip()
    return f"- {headline} ({item.source})" if item.source else f"- {headline}"


def render_prompt(
    persona: str,
    news_items: Sequence[NewsItem],
    user_message: str,
    history: Sequence[ConversationTurn] = (),
) -> str:
    sections = [persona.strip()]
    if news_items:
        lines = "\n".join(_news_line(item) for item in news_items)
        sections.append(f"{NEWS_HEADER}\n{lines}\n{NEWS_HINT}")
    if history:
        turns = "\n".join(f"{'User' if turn.is_user else 'FinBuddy'}: {turn.text.strip()}" for turn in history)
        sections.append(f"{HISTORY_HEADER}\n{turns}")
    sections.append(f"User Question: {user_message}")
    sections.append(INSTRUCTION_SUFFIX)
    sections.append(RESPONSE_MARKER)
    return "\n\n".join(sections)


def build_prompt(
    persona: str,
    news_items: Sequence[NewsItem],
    user_message: str,
    history: Sequence[ConversationTurn] | None = None,
    max_tokens: int = DEFAULT_MAX_PROMPT_TOKENS,
    max_news_items: int = DEFAULT_MAX_NEWS_ITEMS,
) -> str:
    """Assemble the generation prompt within an estimated token budget.

    Content is shed in a fixed order when the budget is exceeded: conversation
    turns (oldest first), then news items (from the end), then the tail of the
    user message at a sentence boundary. The persona is always kept whole.
    """
    news = list(news_items)[:max_news_items]
    turns = list(history or [])
    message = user_message.strip()

    prompt = render_prompt(persona, news, message, turns)
    while estimate_tokens(prompt) > max_tokens and turns:
        turns.pop(0)
        prompt = render_prompt(persona, news, message, turns)
    while estimate_tokens(prompt) > max_tokens and news:
        news.pop()
        prompt = render_prompt(persona, news, message, turns)

    if estimate_tokens(prompt) > max_tokens:
        overhead = len(render_prompt(persona, [], "", []))
        message = truncate_at_sentence(message, max_tokens * CHARS_PER_TOKEN - overhead)
        prompt = render_prompt(persona, [], message, [])
    return prompt
