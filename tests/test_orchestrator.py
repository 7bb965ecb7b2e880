from __future__ import annotations

import asyncio

import pytest

from finbuddy.chat.fallback import DEFAULT_FALLBACK, fallback_answer
from finbuddy.chat.orchestrator import ChatOrchestrator, ChatResponse
from finbuddy.chat.prompt import NEWS_HEADER, ConversationTurn
from finbuddy.core.config import Settings
from finbuddy.core.exceptions import StorageUnavailableError
from finbuddy.llm.types import ErrorKind, GenerationResult
from finbuddy.news.models import NewsItem


class FakeGenerator:
    def __init__(self, result: GenerationResult) -> None:
        self.result = result
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> GenerationResult:
        self.prompts.append(prompt)
        return self.result


class FakeNewsReader:
    def __init__(self, items: list[NewsItem] | None = None, error: Exception | None = None, delay: float = 0.0) -> None:
        self.items = items or []
        self.error = error
        self.delay = delay
        self.calls: list[int] = []

    async def get_latest_for_context(self, limit: int) -> list[NewsItem]:
        self.calls.append(limit)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.items[:limit]


OK_TEXT = "Diversify across asset classes and keep investing regularly for the long term."


def _settings(**overrides) -> Settings:
    defaults = dict(database_url="sqlite:///:memory:", generation_provider="mock")
    defaults.update(overrides)
    return Settings(**defaults)


@pytest.mark.asyncio
async def test_educational_query_skips_news() -> None:
    reader = FakeNewsReader([NewsItem(headline="Sensex up", source="Mint")])
    generator = FakeGenerator(GenerationResult.ok(OK_TEXT))
    orchestrator = ChatOrchestrator(_settings(), reader, generator)

    response = await orchestrator.handle("What is the difference between equity and debt mutual funds?")

    assert response == ChatResponse(success=True, message=OK_TEXT)
    assert reader.calls == []
    assert NEWS_HEADER not in generator.prompts[0]


@pytest.mark.asyncio
async def test_market_query_reads_news_into_prompt() -> None:
    items = [NewsItem(headline=f"Market headline {i}", source="ET") for i in range(5)]
    reader = FakeNewsReader(items)
    generator = FakeGenerator(GenerationResult.ok(OK_TEXT))
    orchestrator = ChatOrchestrator(_settings(), reader, generator)

    response = await orchestrator.handle("Should I invest in the market today given current conditions?")

    assert response.success is True
    assert reader.calls == [3]
    assert "- Market headline 0 (ET)" in generator.prompts[0]
    assert "Market headline 3" not in generator.prompts[0]


@pytest.mark.asyncio
async def test_market_query_with_empty_store_still_succeeds() -> None:
    generator = FakeGenerator(GenerationResult.ok(OK_TEXT))
    orchestrator = ChatOrchestrator(_settings(), FakeNewsReader([]), generator)

    response = await orchestrator.handle("Should I invest in the market today given current conditions?")

    assert response.success is True
    assert NEWS_HEADER not in generator.prompts[0]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "reader",
    [
        FakeNewsReader(error=StorageUnavailableError("db down")),
        FakeNewsReader([NewsItem(headline="late")], delay=1.0),
    ],
)
async def test_news_failures_degrade_to_no_context(reader: FakeNewsReader) -> None:
    generator = FakeGenerator(GenerationResult.ok(OK_TEXT))
    orchestrator = ChatOrchestrator(_settings(news_read_timeout_seconds=0.1), reader, generator)

    response = await orchestrator.handle("What is the latest news on Nifty?")

    assert response.success is True
    assert NEWS_HEADER not in generator.prompts[0]


@pytest.mark.asyncio
@pytest.mark.parametrize("kind", list(ErrorKind))
async def test_generation_failure_returns_fallback_answer(kind: ErrorKind) -> None:
    generator = FakeGenerator(GenerationResult.fail(kind, "down"))
    orchestrator = ChatOrchestrator(_settings(), None, generator)

    response = await orchestrator.handle("How do I start a SIP?")

    assert response.success is True
    assert response.message == fallback_answer("How do I start a SIP?")
    assert response.error is None


class StalledGenerator:
    def __init__(self) -> None:
        self.cancelled = False

    async def generate(self, prompt: str) -> GenerationResult:
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return GenerationResult.ok(OK_TEXT)


@pytest.mark.asyncio
async def test_slow_generation_is_cut_off_before_request_deadline() -> None:
    generator = StalledGenerator()
    orchestrator = ChatOrchestrator(_settings(request_timeout_seconds=1.0), None, generator)

    loop = asyncio.get_running_loop()
    started = loop.time()
    response = await orchestrator.handle("What is a mutual fund?")
    elapsed = loop.time() - started

    assert response.success is True
    assert response.message == fallback_answer("What is a mutual fund?")
    assert generator.cancelled is True
    assert elapsed < 1.0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("message", "error"),
    [
        (None, "Message is required"),
        ("", "Message cannot be empty"),
        ("hi", "Message too short (minimum 3 characters)"),
        ("a" * 1001, "Message too long (maximum 1000 characters)"),
    ],
)
async def test_invalid_messages_are_rejected_before_generation(message, error: str) -> None:
    generator = FakeGenerator(GenerationResult.ok(OK_TEXT))
    orchestrator = ChatOrchestrator(_settings(), FakeNewsReader(), generator)

    response = await orchestrator.handle(message)

    assert response.success is False
    assert response.message == ""
    assert response.error == error
    assert generator.prompts == []


@pytest.mark.asyncio
async def test_history_is_passed_into_prompt() -> None:
    generator = FakeGenerator(GenerationResult.ok(OK_TEXT))
    orchestrator = ChatOrchestrator(_settings(), None, generator)
    history = [ConversationTurn(text="I am 30 years old.", is_user=True)]

    await orchestrator.handle("How much equity should I hold?", history=history)

    assert "User: I am 30 years old." in generator.prompts[0]


def test_chat_response_shape_invariant() -> None:
    assert ChatResponse.ok("hello").as_payload() == {"success": True, "message": "hello"}
    assert ChatResponse.failure("bad").as_payload() == {"success": False, "message": "", "error": "bad"}
    with pytest.raises(ValueError):
        ChatResponse(success=True, message="")
    with pytest.raises(ValueError):
        ChatResponse(success=False, message="text", error="bad")


@pytest.mark.parametrize(
    ("message", "needle"),
    [
        ("Which mutual fund is good?", "Mutual funds pool money"),
        ("how does a SIP work", "Systematic Investment Plan"),
        ("Are stocks risky?", "Stocks can deliver"),
        ("How can I save tax with ELSS?", "ELSS mutual funds"),
        ("Help me build a portfolio", "diversified portfolio"),
        ("What about the market?", "Market conditions change daily"),
    ],
)
def test_fallback_answer_rules(message: str, needle: str) -> None:
    assert needle in fallback_answer(message)


def test_fallback_answer_default() -> None:
    assert fallback_answer("Hello there") == DEFAULT_FALLBACK
    assert fallback_answer(None) == DEFAULT_FALLBACK


@pytest.mark.parametrize("message", ["Any gossip worth hearing?", "Tell me about Mississippi", "Check this syntax"])
def test_fallback_rules_match_whole_words(message: str) -> None:
    assert fallback_answer(message) == DEFAULT_FALLBACK


def test_fallback_rules_match_plurals() -> None:
    assert "Systematic Investment Plan" in fallback_answer("Are SIPs worth it?")
