"""Loguru setup and the request id of the generation being served."""

from __future__ import annotations

import os
import sys
from contextvars import ContextVar
from logging import Handler
from typing import Literal, TextIO

import loguru
from loguru import logger
from rich import get_console
from rich.logging import RichHandler

LogProfile = Literal["default", "chat"]

DEFAULT_FORMAT = "{time:HH:mm:ss.SSS} | {level:<7} | {extra[request]:<8.8} | {name}:{line} | {message}"
CHAT_FORMAT = "[{extra[request]:.8}] {message}"

_request_context: ContextVar[str] = ContextVar("request", default="-")
_configured: LogProfile | None = None


def current_request() -> str:
    return _request_context.get()


def bind_request(request_id: str) -> None:
    """Tag log records from the current task (and tasks it spawns) with ``request_id``."""
    _request_context.set(request_id)


def _patch_record(record: loguru.Record) -> None:
    record["extra"]["request"] = current_request()


def _sink_for(profile: LogProfile) -> tuple[Handler | TextIO, str]:
    if profile == "chat":
        handler = RichHandler(
            console=get_console(),
            show_time=False,
            show_path=False,
            markup=False,
            rich_tracebacks=False,
        )
        return handler, CHAT_FORMAT
    return sys.stderr, DEFAULT_FORMAT


def configure_logging(*, profile: LogProfile = "default", level: str | None = None) -> None:
    """Route loguru to stderr, or through rich when sharing the terminal with a chat."""
    global _configured
    if profile == _configured:
        return

    sink, log_format = _sink_for(profile)
    logger.remove()
    logger.configure(patcher=_patch_record)
    logger.add(
        sink,
        level=(level or os.getenv("SPEAKLOOP_LOG_LEVEL", "INFO")).upper(),
        format=log_format,
        backtrace=False,
        diagnose=False,
    )
    _configured = profile
