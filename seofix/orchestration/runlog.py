"""
Per-run human-readable log returned to callers alongside the result.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from seofix.core.log import logger

__all__ = ("RunLog",)

Level = Literal["info", "success", "warning", "error"]

_LOGURU_LEVELS: dict[str, str] = {
    "info": "INFO",
    "success": "SUCCESS",
    "warning": "WARNING",
    "error": "ERROR",
}


class RunLog:
    """Ordered, timestamped lines (``[HH:MM:SS] LEVEL message``), mirrored to loguru."""

    def __init__(self) -> None:
        self._lines: list[str] = []

    def add(self, message: str, level: Level = "info") -> None:
        stamp = datetime.now(UTC).strftime("%H:%M:%S")
        self._lines.append(f"[{stamp}] {level.upper()} {message}")
        logger.log(_LOGURU_LEVELS[level], message)

    def info(self, message: str) -> None:
        self.add(message, "info")

    def success(self, message: str) -> None:
        self.add(message, "success")

    def warning(self, message: str) -> None:
        self.add(message, "warning")

    def error(self, message: str) -> None:
        self.add(message, "error")

    @property
    def lines(self) -> list[str]:
        return list(self._lines)

    def __len__(self) -> int:
        return len(self._lines)
