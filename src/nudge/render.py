"""Terminal renderer for the chat surface."""

from __future__ import annotations

import json
from typing import Any

from prompt_toolkit import PromptSession
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console
from rich.markup import escape

from nudge.ledger import MessageRecord


class Renderer:
    """CLI renderer using Rich for terminal output."""

    def __init__(self, console: Console | None = None) -> None:
        self.console: Console = console or Console()
        self._prompt_session: PromptSession[str] | None = None
        self._shown: dict[str, str] = {}

    def welcome(self, api_base: str) -> None:
        self.console.print("[bold blue]Nudge Coach[/bold blue] - type a message, /retry <id> or /quit")
        self.console.print(f"[bold]API:[/bold] [cyan]{escape(api_base)}[/cyan]")

    def info(self, message: str) -> None:
        self.console.print(escape(message))

    def error(self, message: str) -> None:
        self.console.print(f"[bold red]Error:[/bold red] {escape(message)}")

    def notice(self, message: str | None) -> None:
        if message:
            self.console.print(f"[red]! {escape(message)}[/red]")

    def records(self, records: tuple[MessageRecord, ...]) -> None:
        """Print records that are new or whose display changed since the last call."""
        for record in records:
            line = self._format(record)
            if self._shown.get(record.id) == line:
                continue
            self._shown[record.id] = line
            self.console.print(line)

    def data(self, payload: Any) -> None:
        self.console.print_json(json.dumps(payload, default=str))

    async def prompt(self, message: str = "> ") -> str:
        if self._prompt_session is None:
            self._prompt_session = PromptSession()
        with patch_stdout():
            return await self._prompt_session.prompt_async(message)

    @staticmethod
    def _format(record: MessageRecord) -> str:
        text = escape(record.display_text)
        if record.origin == "remote":
            return f"[bold yellow]Nudge:[/bold yellow] {text}"
        if record.status == "pending":
            return f"[bold cyan]You:[/bold cyan] {text} [dim](sending)[/dim]"
        if record.status == "failed":
            return f"[bold cyan]You:[/bold cyan] [red]{text}[/red] [dim]/retry {record.id}[/dim]"
        return f"[bold cyan]You:[/bold cyan] {text}"
