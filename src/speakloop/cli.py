"""speakloop CLI."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Optional

import typer
from prompt_toolkit import PromptSession
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console

from speakloop.app.runtime import VoiceRuntime
from speakloop.config import Settings, get_settings
from speakloop.errors import ConfigurationError
from speakloop.logging_utils import configure_logging
from speakloop.speaker.console import ConsoleVoice
from speakloop.types import Utterance

EXIT_COMMANDS = frozenset({"/quit", "/exit"})

app = typer.Typer(
    name="speakloop",
    help="Voice assistant loop with interruptible streaming answers.",
    add_completion=False,
    rich_markup_mode="rich",
)
console = Console()


def _build_runtime(model: Optional[str]) -> VoiceRuntime:
    settings = get_settings()
    if model:
        settings = settings.model_copy(update={"model": model})
    configure_logging(profile="chat", level=settings.log_level)
    try:
        return VoiceRuntime.build(settings, voice=_console_voice(settings))
    except ConfigurationError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(1) from exc


def _console_voice(settings: Settings) -> ConsoleVoice:
    return ConsoleVoice(console, name=settings.bot_name, chars_per_second=settings.console_chars_per_second)


async def _prompt_utterances(session: PromptSession[str]) -> AsyncIterator[Utterance]:
    while True:
        try:
            with patch_stdout(raw=True):
                text = await session.prompt_async("> ")
        except (EOFError, KeyboardInterrupt):
            return
        text = text.strip()
        if text in EXIT_COMMANDS:
            return
        if text:
            yield Utterance(text=text)


async def _say(runtime: VoiceRuntime, text: str) -> None:
    runtime.start()
    try:
        await runtime.submit(Utterance(text=text))
        command = await runtime.handle_once()
        if command is None:
            console.print("[dim]No command matched; start with a call keyword to ask the model.[/dim]")
    finally:
        runtime.close()


@app.command()
def chat(model: Optional[str] = typer.Option(None, help="Model in provider:model format")) -> None:
    """Start an interactive conversation. Typing while an answer plays interrupts it."""
    runtime = _build_runtime(model)
    console.print(f"[bold blue]speakloop[/bold blue] - talking to [magenta]{runtime.speaker.name}[/magenta]")
    console.print(f"[dim]model {runtime.settings.model}; /quit to leave[/dim]")
    asyncio.run(runtime.run(_prompt_utterances(PromptSession())))


@app.command()
def say(
    text: str,
    model: Optional[str] = typer.Option(None, help="Model in provider:model format"),
) -> None:
    """Handle a single utterance and exit."""
    runtime = _build_runtime(model)
    asyncio.run(_say(runtime, text))


if __name__ == "__main__":
    app()
