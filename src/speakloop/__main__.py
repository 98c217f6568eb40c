"""speakloop CLI entry point."""

from speakloop.cli import app

app()
