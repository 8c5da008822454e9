"""In-memory website directory."""

from __future__ import annotations

from seofix.schema.website import Website

__all__ = ("InMemoryWebsiteDirectory",)


class InMemoryWebsiteDirectory:
    def __init__(self, websites: list[Website] | None = None):
        self._websites: dict[str, Website] = {w.id: w for w in websites or []}

    def add(self, website: Website) -> None:
        self._websites[website.id] = website

    async def get_website(self, website_id: str, user_id: str) -> Website | None:
        website = self._websites.get(website_id)
        if website is None or website.user_id != user_id:
            return None
        return website
