from __future__ import annotations

import asyncio
import logging
from typing import Annotated

import typer
import uvicorn
from sqlalchemy import text

from finbuddy.api.app import create_app
from finbuddy.chat.orchestrator import ChatOrchestrator
from finbuddy.core.config import Settings, get_settings
from finbuddy.core.exceptions import IngestionFailedError
from finbuddy.core.logging import configure_logging
from finbuddy.db.init import init_db
from finbuddy.db.session import build_engine, build_session_factory
from finbuddy.llm.generation import build_generation_client
from finbuddy.news.client import NewsClient
from finbuddy.news.ingest import NewsIngestionService
from finbuddy.news.store import SqlNewsStore

app = typer.Typer(help="FinBuddy command-line interface")
LOGGER = logging.getLogger(__name__)


def _build_runtime() -> Settings:
    settings = get_settings()
    configure_logging(settings)
    return settings


def _build_ingestion(settings: Settings) -> NewsIngestionService:
    engine = build_engine(settings)
    init_db(engine)
    store = SqlNewsStore(build_session_factory(engine))
    return NewsIngestionService(settings, store, NewsClient(settings))


@app.command("init-db")
def init_db_command() -> None:
    settings = _build_runtime()
    engine = build_engine(settings)
    init_db(engine)
    typer.echo("Database initialized")


@app.command("ingest-news-once")
def ingest_news_once_command() -> None:
    settings = _build_runtime()
    service = _build_ingestion(settings)
    try:
        report = asyncio.run(service.ingest())
    except IngestionFailedError as exc:
        typer.echo(f"News ingestion failed: {exc.reason}")
        raise typer.Exit(code=1) from None

    typer.echo(f"News ingestion done | inserted={report.inserted} deleted={report.deleted} total={report.total_stored}")


@app.command("ask")
def ask_command(
    message: Annotated[str, typer.Argument(help="Question to send to the assistant")],
    with_news: Annotated[bool, typer.Option("--news/--no-news")] = True,
) -> None:
    settings = _build_runtime()
    reader = _build_ingestion(settings) if with_news else None
    orchestrator = ChatOrchestrator(settings, reader, build_generation_client(settings))

    response = asyncio.run(orchestrator.handle(message))
    if not response.success:
        typer.echo(f"Error: {response.error}")
        raise typer.Exit(code=1)
    typer.echo(response.message)


@app.command("healthcheck")
def healthcheck_command() -> None:
    settings = _build_runtime()
    ok = True

    try:
        engine = build_engine(settings)
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        typer.echo("[OK]  database reachable")
    except Exception as exc:
        typer.echo(f"[FAIL] database unreachable: {exc}")
        ok = False

    if settings.news_api_key or settings.finnhub_api_key:
        typer.echo("[OK]  news provider key configured")
    else:
        typer.echo("[WARN] no news provider key; built-in headlines will be used")

    if settings.generation_provider == "huggingface":
        if settings.hf_api_key:
            typer.echo("[OK]  HF_API_KEY")
        else:
            typer.echo("[WARN] missing HF_API_KEY; chat will answer with fallback guidance")
    else:
        typer.echo(f"[OK]  generation provider={settings.generation_provider}")

    if not ok:
        raise typer.Exit(code=1)


@app.command("serve")
def serve_command(
    host: Annotated[str | None, typer.Option()] = None,
    port: Annotated[int | None, typer.Option(min=1, max=65535)] = None,
) -> None:
    settings = _build_runtime()
    uvicorn.run(create_app(settings), host=host or settings.api_host, port=port or settings.api_port)


if __name__ == "__main__":
    app()
