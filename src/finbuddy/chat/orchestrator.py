from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from enum import StrEnum
from typing import Any, Protocol

from pydantic import BaseModel, model_validator

from finbuddy.chat.analyzer import matched_keywords
from finbuddy.chat.fallback import fallback_answer
from finbuddy.chat.prompt import PERSONA_PREAMBLE, ConversationTurn, build_prompt, validate_message
from finbuddy.core.config import Settings
from finbuddy.core.exceptions import StorageUnavailableError
from finbuddy.llm.generation import BaseGenerationClient
from finbuddy.llm.types import ErrorKind, GenerationResult
from finbuddy.news.models import NewsItem

LOGGER = logging.getLogger(__name__)

# Share of the request deadline kept free after generation.
GENERATION_HEADROOM_RATIO = 0.1


class ChatStage(StrEnum):
    VALIDATING = "validating"
    ANALYZING_CONTEXT = "analyzing_context"
    FETCHING_NEWS = "fetching_news"
    BUILDING_PROMPT = "building_prompt"
    GENERATING = "generating"
    RESPONDING = "responding"


class ChatResponse(BaseModel):
    success: bool
    message: str = ""
    error: str | None = None

    @model_validator(mode="after")
    def _one_of_message_or_error(self) -> ChatResponse:
        if self.success and (not self.message or self.error):
            raise ValueError("successful response needs a message and no error")
        if not self.success and (self.message or not self.error):
            raise ValueError("failed response needs an error and an empty message")
        return self

    @classmethod
    def ok(cls, message: str) -> ChatResponse:
        return cls(success=True, message=message)

    @classmethod
    def failure(cls, error: str) -> ChatResponse:
        return cls(success=False, message="", error=error)

    def as_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class NewsContextReader(Protocol):
    async def get_latest_for_context(self, limit: int) -> list[NewsItem]: ...


class ChatOrchestrator:
    def __init__(
        self,
        settings: Settings,
        news_reader: NewsContextReader | None,
        generator: BaseGenerationClient,
        persona: str = PERSONA_PREAMBLE,
    ) -> None:
        self.settings = settings
        self.news_reader = news_reader
        self.generator = generator
        self.persona = persona

    async def handle(self, message: Any, history: Sequence[ConversationTurn] | None = None) -> ChatResponse:
        started = time.monotonic()
        self._enter(ChatStage.VALIDATING)
        validation = validate_message(
            message,
            min_length=self.settings.message_min_length,
            max_length=self.settings.message_max_length,
        )
        if not validation.valid:
            LOGGER.info("Rejected chat message: %s", validation.error)
            return ChatResponse.failure(validation.error or "Invalid message")
        text = message.strip()

        self._enter(ChatStage.ANALYZING_CONTEXT)
        keywords = matched_keywords(text)
        news: list[NewsItem] = []
        if keywords:
            LOGGER.debug("News context requested by keywords: %s", ", ".join(keywords[:4]))
            self._enter(ChatStage.FETCHING_NEWS)
            news = await self._read_news()

        self._enter(ChatStage.BUILDING_PROMPT)
        prompt = build_prompt(
            self.persona,
            news,
            text,
            history=history,
            max_tokens=self.settings.max_prompt_tokens,
            max_news_items=self.settings.max_context_news,
        )

        self._enter(ChatStage.GENERATING)
        result = await self._generate(prompt, started)
        if result.success:
            reply = result.text
        else:
            LOGGER.warning("Generation failed (%s): %s; using fallback answer", result.error, result.detail)
            reply = fallback_answer(text)

        self._enter(ChatStage.RESPONDING)
        return ChatResponse.ok(reply)

    async def _generate(self, prompt: str, started: float) -> GenerationResult:
        # Must finish inside the request deadline, leaving room to send the fallback answer.
        timeout = self.settings.request_timeout_seconds
        budget = timeout - GENERATION_HEADROOM_RATIO * timeout - (time.monotonic() - started)
        if budget <= 0:
            return GenerationResult.fail(ErrorKind.TIMEOUT, "no time left for generation")
        try:
            return await asyncio.wait_for(self.generator.generate(prompt), timeout=budget)
        except TimeoutError:
            return GenerationResult.fail(ErrorKind.TIMEOUT, f"generation exceeded {budget:.1f}s budget")

    async def _read_news(self) -> list[NewsItem]:
        if self.news_reader is None:
            return []
        try:
            return await asyncio.wait_for(
                self.news_reader.get_latest_for_context(self.settings.max_context_news),
                timeout=self.settings.news_read_timeout_seconds,
            )
        except TimeoutError:
            LOGGER.warning("News context read timed out after %.1fs", self.settings.news_read_timeout_seconds)
        except StorageUnavailableError as exc:
            LOGGER.warning("News context unavailable: %s", exc)
        return []

    @staticmethod
    def _enter(stage: ChatStage) -> None:
        LOGGER.debug("chat stage=%s", stage)
