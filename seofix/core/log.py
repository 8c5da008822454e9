"""
Logging

Every log line is one JSON object. While an engine run is active the
correlation id holds its FixSession id and ``current_website`` holds the
website being remediated; both are copied into each line.
"""

# pyright: basic

import logging
import sys
from contextvars import ContextVar
from typing import TextIO

from asgi_correlation_id.context import correlation_id
from loguru import logger

from seofix.core.config import settings
from seofix.schema.log_entry import LogEntry

__all__ = (
    "configure_logging",
    "current_website",
    "log_serializer",
    "logger",
    "make_sink",
)

current_website: ContextVar[str | None] = ContextVar("current_website", default=None)


class InterceptHandler(logging.Handler):
    """Route stdlib logging (redis, taskiq) into loguru."""

    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame.f_back and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def log_serializer(record) -> str:
    message = record["message"]
    if len(message) > settings.LOG_MESSAGE_MAX_LEN:
        message = message[: settings.LOG_MESSAGE_MAX_LEN - 3] + "..."

    website_id = record["extra"].get("website_id") or current_website.get()
    log_entry = LogEntry(
        asctime=record["time"],
        levelname=record["level"].name,
        logger=record["name"],
        fix_session_id=correlation_id.get() or None,
        website_id=website_id,
        message=message,
    )

    return log_entry.model_dump_json(exclude_none=True)


def make_sink(stream: TextIO | None = None):
    """Build a loguru sink; without a stream it writes to whatever sys.stdout is at call time."""

    def sink(message) -> None:
        out = sys.stdout if stream is None else stream
        out.write(log_serializer(message.record) + "\n")

    return sink


def configure_logging(level: str | None = None, stream: TextIO | None = None) -> int:
    """
    (Re)install the JSON sink and return its loguru handler id.

    Runs once at import and again on worker startup, since taskiq installs
    its own stdlib handlers.
    """
    if level is None:
        level = "DEBUG" if settings.DEBUG else "INFO"

    logger.remove()
    handler_id = logger.add(make_sink(stream), level=level)
    logging.basicConfig(handlers=[InterceptHandler()], level=logging.INFO, force=True)
    return handler_id


configure_logging()
