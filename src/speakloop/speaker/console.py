"""Voice backend that prints to the terminal."""

from __future__ import annotations

import asyncio

from rich.console import Console
from rich.markup import escape


class ConsoleVoice:
    """Print spoken text with a speaking delay so interruptions are observable."""

    def __init__(
        self,
        console: Console | None = None,
        *,
        name: str = "speaker",
        chars_per_second: float = 24.0,
    ) -> None:
        self.console = console or Console()
        self.name = name
        self.chars_per_second = chars_per_second
        self.listening = False

    async def speak(self, text: str, *, audio: str | None = None) -> None:
        if audio:
            self.console.print(f"[dim]♪ {escape(audio)}[/dim]")
        self.console.print(f"[bold magenta]{escape(self.name)}[/bold magenta] {escape(text)}")
        if self.chars_per_second > 0:
            await asyncio.sleep(len(text) / self.chars_per_second)

    async def wake_up(self) -> None:
        self.listening = True
        self.console.print("[dim](listening)[/dim]")

    async def sleep(self) -> None:
        self.listening = False
        self.console.print("[dim](idle)[/dim]")

    async def switch_voice(self, name: str) -> bool:
        name = name.strip()
        if not name:
            return False
        self.name = name
        return True
