from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Any

import httpx

from finbuddy.core.config import Settings
from finbuddy.llm.types import ErrorKind, GenerationResult

LOGGER = logging.getLogger(__name__)

MIN_RESPONSE_CHARS = 20
MAX_RESPONSE_CHARS = 1500

_ROLE_PREFIX = re.compile(r"^(?:response|finbuddy(?: response)?|assistant|ai)\s*:\s*", re.IGNORECASE)
_BLANK_LINES = re.compile(r"\n{3,}")
_SPACES = re.compile(r"[ \t]{2,}")


def clean_response(text: str) -> str:
    """Strip leaked role prefixes, squeeze whitespace and cap the length."""
    cleaned = (text or "").strip()
    while True:
        stripped = _ROLE_PREFIX.sub("", cleaned, count=1).strip()
        if stripped == cleaned:
            break
        cleaned = stripped
    cleaned = _BLANK_LINES.sub("\n\n", cleaned)
    cleaned = _SPACES.sub(" ", cleaned)

    if len(cleaned) > MAX_RESPONSE_CHARS:
        cut = cleaned.rfind(".", 0, MAX_RESPONSE_CHARS - 100)
        if cut > 1000:
            cleaned = cleaned[: cut + 1]
        else:
            cleaned = cleaned[: MAX_RESPONSE_CHARS - 100].rstrip() + "..."
    return cleaned


class BaseGenerationClient(ABC):
    @abstractmethod
    async def generate(self, prompt: str) -> GenerationResult:
        raise NotImplementedError


class MockGenerationClient(BaseGenerationClient):
    async def generate(self, prompt: str) -> GenerationResult:
        question = ""
        for line in prompt.splitlines():
            if line.startswith("User Question:"):
                question = line.removeprefix("User Question:").strip()
        text = (
            "Here is a general perspective on your question: focus on your goals, time horizon and risk "
            "tolerance, diversify, and review your plan regularly."
        )
        if question:
            text = f"You asked: {question[:120]} {text}"
        return GenerationResult.ok(text, model="mock")


class HuggingFaceGenerationClient(BaseGenerationClient):
    """Text generation through the Hugging Face inference API.

    The primary model is tried first; on a retryable failure (timeout, busy,
    unavailable, cold start) the fallback model gets one attempt, or the
    primary model a second one when no fallback is configured.
    """

    def __init__(self, settings: Settings) -> None:
        self.api_key = settings.hf_api_key
        self.base_url = settings.generation_base_url.rstrip("/")
        self.model = settings.generation_model
        self.fallback_model = settings.generation_fallback_model or settings.generation_model
        self.temperature = settings.generation_temperature
        self.max_new_tokens = settings.generation_max_new_tokens
        self.timeout_seconds = settings.generation_timeout_seconds

    async def generate(self, prompt: str) -> GenerationResult:
        if not self.api_key:
            LOGGER.warning("HF_API_KEY not set; generation unavailable")
            return GenerationResult.fail(ErrorKind.UNAUTHENTICATED, "HF_API_KEY is not configured")

        result = GenerationResult.fail(ErrorKind.UNAVAILABLE, "no generation attempt made")
        for model in (self.model, self.fallback_model):
            result = await self._attempt(model, prompt)
            if result.success or not result.retryable:
                return result
            LOGGER.warning("Generation with %s failed (%s): %s", model, result.error, result.detail)
        return result

    async def _attempt(self, model: str, prompt: str) -> GenerationResult:
        payload = {
            "inputs": prompt,
            "parameters": {
                "max_new_tokens": self.max_new_tokens,
                "temperature": self.temperature,
                "do_sample": True,
                "return_full_text": False,
            },
        }
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        url = f"{self.base_url}/{model}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            return GenerationResult.fail(ErrorKind.TIMEOUT, f"request timed out: {exc}", model=model)
        except httpx.HTTPError as exc:
            return GenerationResult.fail(ErrorKind.UNAVAILABLE, f"request failed: {exc}", model=model)

        status = response.status_code
        if status in (401, 403):
            return GenerationResult.fail(ErrorKind.UNAUTHENTICATED, f"HTTP {status}", model=model)
        if status == 429:
            return GenerationResult.fail(ErrorKind.BUSY, "rate limited by provider", model=model)
        if status >= 500:
            return GenerationResult.fail(ErrorKind.UNAVAILABLE, f"HTTP {status}: {_error_message(response)}", model=model)
        if status >= 400:
            return GenerationResult.fail(ErrorKind.MALFORMED, f"HTTP {status}: {_error_message(response)}", model=model)

        try:
            data = response.json()
        except ValueError:
            return GenerationResult.fail(ErrorKind.MALFORMED, "response body is not JSON", model=model)

        if isinstance(data, dict) and data.get("error"):
            # model still loading on the provider side
            if "estimated_time" in data or "loading" in str(data["error"]).lower():
                return GenerationResult.fail(ErrorKind.UNAVAILABLE, str(data["error"]), model=model)
            return GenerationResult.fail(ErrorKind.MALFORMED, str(data["error"]), model=model)

        text = clean_response(_extract_generated_text(data))
        if len(text) < MIN_RESPONSE_CHARS:
            return GenerationResult.fail(ErrorKind.MALFORMED, "generated text too short", model=model)
        return GenerationResult.ok(text, model=model)


def _extract_generated_text(data: Any) -> str:
    if isinstance(data, list) and data:
        data = data[0]
    if isinstance(data, dict):
        return str(data.get("generated_text") or "")
    return ""


def _error_message(response: httpx.Response) -> str:
    body = response.text.strip()
    if len(body) > 200:
        body = f"{body[:200]}..."
    return body


def build_generation_client(settings: Settings) -> BaseGenerationClient:
    if settings.generation_provider == "mock":
        return MockGenerationClient()
    if settings.generation_provider == "huggingface":
        return HuggingFaceGenerationClient(settings)
    raise ValueError(f"Unsupported generation provider: {settings.generation_provider}")
