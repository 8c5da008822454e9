"""
Local disk layout for per-website artifacts (reports, backups).
"""

import os
from pathlib import Path

import aiofiles

from seofix.core.config import settings

__all__ = (
    "get_website_dir",
    "read_json_text",
    "write_json_text",
)


def get_website_dir(website_id: str) -> Path:
    return Path(settings.STORAGE_DIR) / "websites" / website_id


async def write_json_text(path: Path, payload: str) -> str:
    """Write a serialized JSON document, creating parent directories."""
    os.makedirs(path.parent, exist_ok=True)
    async with aiofiles.open(path, "w") as f:
        await f.write(payload)
    return str(path)


async def read_json_text(path: Path) -> str:
    async with aiofiles.open(path, "r") as f:
        return await f.read()
