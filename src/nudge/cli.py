"""Command line entry points for Nudge."""

from __future__ import annotations

import asyncio

import typer
from loguru import logger

from nudge.config import Settings, get_settings
from nudge.enrichment import EnrichmentCache
from nudge.errors import ConfigurationError
from nudge.executor import AutoFetchExecutor
from nudge.ledger import MessageRetryLedger
from nudge.logging_utils import configure_logging
from nudge.notifications import Notice
from nudge.nudges import NudgeClient
from nudge.render import Renderer
from nudge.transport import HttpTransport

QUIT_COMMANDS = frozenset({"/quit", "/exit", "quit", "exit", "q"})

app = typer.Typer(name="nudge", help="Nudge Coach client.", add_completion=False)


def _settings(api_base: str | None) -> Settings:
    settings = get_settings(api_base_url=api_base)
    configure_logging(profile="chat", level=settings.log_level)
    return settings


@app.command()
def chat(
    api_base: str | None = typer.Option(None, "--api-base", help="Override the API base URL"),
) -> None:
    """Chat with the nudge coach; failed messages can be retried in place."""

    settings = _settings(api_base)
    renderer = Renderer()
    try:
        asyncio.run(_chat(settings, renderer))
    except ConfigurationError as e:
        renderer.error(f"Failed to start chat: {e!s}")
        raise typer.Exit(1) from e


@app.command()
def fetch(
    target: str = typer.Argument(..., help="Endpoint path, e.g. /api/demo/portfolio"),
    api_base: str | None = typer.Option(None, "--api-base", help="Override the API base URL"),
) -> None:
    """Fetch one endpoint with GET and print the result."""

    settings = _settings(api_base)
    renderer = Renderer()
    try:
        succeeded = asyncio.run(_fetch(settings, target, renderer))
    except ConfigurationError as e:
        renderer.error(f"Failed to fetch: {e!s}")
        raise typer.Exit(1) from e
    if not succeeded:
        raise typer.Exit(1)


async def _fetch(settings: Settings, target: str, renderer: Renderer) -> bool:
    async with HttpTransport.from_settings(settings) as transport:
        executor: AutoFetchExecutor[object] = AutoFetchExecutor(transport, target)
        task = executor.activate()
        if task is not None:
            await task
    if executor.error is not None:
        renderer.error(executor.error)
        return False
    renderer.data(executor.data)
    return True


async def _chat(settings: Settings, renderer: Renderer) -> None:
    renderer.welcome(settings.api_base_url)
    async with HttpTransport.from_settings(settings) as transport:
        client = NudgeClient(transport, cache=EnrichmentCache.from_settings(settings), target=settings.nudge_path)
        ledger = MessageRetryLedger(client, notice=Notice(settings.notice_seconds), greeting=settings.greeting)
        unsubscribe_records = ledger.subscribe(renderer.records)
        unsubscribe_notice = ledger.notice.subscribe(renderer.notice)
        renderer.records(ledger.records)
        try:
            await _input_loop(ledger, renderer)
        finally:
            unsubscribe_records()
            unsubscribe_notice()
            ledger.close()


async def _input_loop(ledger: MessageRetryLedger, renderer: Renderer) -> None:
    while True:
        try:
            raw = await renderer.prompt()
        except (EOFError, KeyboardInterrupt):
            break
        line = raw.strip()
        if not line:
            continue
        if line.lower() in QUIT_COMMANDS:
            break
        if line.startswith("/retry"):
            record_id = line.removeprefix("/retry").strip()
            if await ledger.retry(record_id) is None:
                renderer.error(f"no message with id {record_id!r}")
            continue
        await ledger.send(line)
    logger.debug("chat.exit records={}", len(ledger.records))
    renderer.info("Goodbye!")
