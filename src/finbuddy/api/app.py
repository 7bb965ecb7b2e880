"""HTTP surface for the chat and news ingestion endpoints."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from finbuddy.chat.orchestrator import ChatOrchestrator
from finbuddy.chat.prompt import ConversationTurn
from finbuddy.chat.rate_limit import RateLimiter, build_rate_limiter, client_key
from finbuddy.core.config import Settings, get_settings
from finbuddy.core.exceptions import IngestionFailedError
from finbuddy.core.logging import configure_logging
from finbuddy.db.init import init_db
from finbuddy.db.session import build_engine, build_session_factory
from finbuddy.llm.generation import build_generation_client
from finbuddy.news.client import NewsClient
from finbuddy.news.ingest import NewsIngestionService
from finbuddy.news.store import SqlNewsStore

LOGGER = logging.getLogger(__name__)

CORS_ALLOW_HEADERS = "authorization, x-client-info, apikey, content-type"
CHAT_METHODS = "POST, OPTIONS"
NEWS_METHODS = "POST, GET, OPTIONS"
OTHER_METHODS = ["GET", "PUT", "PATCH", "DELETE", "HEAD"]


class HistoryTurn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str
    is_user: bool = Field(alias="isUser")


_history_adapter = TypeAdapter(list[HistoryTurn])


def cors_headers(methods: str) -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
        "Access-Control-Allow-Methods": methods,
    }


def _json(status_code: int, body: dict[str, Any], methods: str, extra: dict[str, str] | None = None) -> JSONResponse:
    headers = cors_headers(methods)
    if extra:
        headers.update(extra)
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def _error(status_code: int, error: str, methods: str = CHAT_METHODS, **extra: str) -> JSONResponse:
    return _json(status_code, {"success": False, "message": "", "error": error}, methods, extra or None)


def _parse_history(raw: Any) -> list[ConversationTurn] | None:
    if raw is None:
        return None
    turns = _history_adapter.validate_python(raw)
    return [ConversationTurn(text=turn.text, is_user=turn.is_user) for turn in turns]


def create_app(
    settings: Settings | None = None,
    orchestrator: ChatOrchestrator | None = None,
    ingestion: NewsIngestionService | None = None,
    rate_limiter: RateLimiter | None = None,
) -> FastAPI:
    """Wire the application; collaborators built from settings unless injected."""
    settings = settings or get_settings()
    configure_logging(settings)

    if ingestion is None:
        engine = build_engine(settings)
        init_db(engine)
        store = SqlNewsStore(build_session_factory(engine))
        ingestion = NewsIngestionService(settings, store, NewsClient(settings))
    if orchestrator is None:
        orchestrator = ChatOrchestrator(settings, ingestion, build_generation_client(settings))
    if rate_limiter is None:
        rate_limiter = build_rate_limiter(settings)

    app = FastAPI(title="FinBuddy API", description="Financial chat assistant backend", version="0.1.0")
    app.state.settings = settings
    app.state.orchestrator = orchestrator
    app.state.ingestion = ingestion
    app.state.rate_limiter = rate_limiter

    @app.options("/chat")
    async def chat_preflight() -> Response:
        return PlainTextResponse("ok", headers=cors_headers(CHAT_METHODS))

    @app.api_route("/chat", methods=OTHER_METHODS)
    async def chat_wrong_method() -> Response:
        return _error(405, "Method not allowed. Use POST.")

    @app.post("/chat")
    async def chat(request: Request) -> Response:
        if rate_limiter is not None:
            peer = request.client.host if request.client else None
            decision = rate_limiter.check(client_key(request.headers, peer))
            if not decision.allowed:
                return _error(
                    429,
                    "Rate limit exceeded. Please try again in a minute.",
                    **{"Retry-After": str(decision.retry_after)},
                )

        try:
            body = await request.json()
        except ValueError:
            return _error(400, "Invalid request format")
        if not isinstance(body, dict):
            return _error(400, "Invalid request format")

        try:
            history = _parse_history(body.get("conversationHistory"))
        except ValidationError:
            return _error(400, "Invalid conversation history")

        try:
            response = await asyncio.wait_for(
                orchestrator.handle(body.get("message"), history=history),
                timeout=settings.request_timeout_seconds,
            )
        except TimeoutError:
            LOGGER.warning("Chat request timed out after %.1fs", settings.request_timeout_seconds)
            return _error(408, "Request timed out. Please try again.")
        except Exception:
            LOGGER.exception("Unexpected chat failure")
            return _error(500, "Internal server error. Please try again later.")

        status_code = 200 if response.success else 400
        return _json(status_code, response.as_payload(), CHAT_METHODS)

    @app.options("/fetchNews")
    async def news_preflight() -> Response:
        return PlainTextResponse("ok", headers=cors_headers(NEWS_METHODS))

    @app.api_route("/fetchNews", methods=["PUT", "PATCH", "DELETE"])
    async def news_wrong_method() -> Response:
        return _json(405, {"success": False, "error": "Method not allowed. Use POST or GET."}, NEWS_METHODS)

    @app.post("/fetchNews")
    async def fetch_news() -> Response:
        try:
            report = await ingestion.ingest()
        except IngestionFailedError as exc:
            return _json(500, {"success": False, "error": exc.reason}, NEWS_METHODS)
        except Exception:
            LOGGER.exception("Unexpected news ingestion failure")
            return _json(500, {"success": False, "error": "Internal server error"}, NEWS_METHODS)

        return _json(
            200,
            {
                "success": True,
                "message": f"News updated: {report.inserted} new, {report.deleted} removed",
                "data": report.as_payload(),
            },
            NEWS_METHODS,
        )

    @app.get("/fetchNews")
    async def news_health() -> Response:
        health = await ingestion.health_status()
        return _json(200, {"success": True, "status": health.as_payload()}, NEWS_METHODS)

    return app
