"""
Activity log backends.

``RedisActivityLog`` keeps the newest entries per user in a capped Redis list
at ``seofix:activity:{user_id}``.
"""

from __future__ import annotations

from redis.asyncio import Redis
from redis.exceptions import RedisError

from seofix.core.config import settings
from seofix.core.errors import PersistenceError
from seofix.schema.fix import ActivityEntry

__all__ = ("InMemoryActivityLog", "RedisActivityLog")


class InMemoryActivityLog:
    def __init__(self) -> None:
        self.entries: list[ActivityEntry] = []

    async def append(self, entry: ActivityEntry) -> None:
        self.entries.append(entry)


class RedisActivityLog:
    def __init__(self, redis: Redis, prefix: str = "seofix", max_entries: int | None = None):
        self.redis = redis
        self.prefix = prefix
        self.max_entries = max_entries or settings.ACTIVITY_LOG_MAX_ENTRIES

    @classmethod
    def from_settings(cls) -> RedisActivityLog:
        return cls(
            Redis(
                host=settings.REDIS_HOST,
                port=settings.REDIS_PORT,
                db=settings.REDIS_DB_ISSUES,
                password=settings.REDIS_PASSWORD,
                decode_responses=True,
            )
        )

    async def close(self) -> None:
        await self.redis.aclose()

    def _key(self, user_id: str) -> str:
        return f"{self.prefix}:activity:{user_id}"

    async def append(self, entry: ActivityEntry) -> None:
        key = self._key(entry.user_id)
        try:
            pipe = self.redis.pipeline()
            pipe.lpush(key, entry.model_dump_json())  # type: ignore
            pipe.ltrim(key, 0, self.max_entries - 1)  # type: ignore
            await pipe.execute()
        except RedisError as exc:
            raise PersistenceError(f"Failed to append activity for user {entry.user_id}: {exc}") from exc

    async def recent(self, user_id: str, limit: int = 50) -> list[ActivityEntry]:
        try:
            rows = await self.redis.lrange(self._key(user_id), 0, limit - 1)  # type: ignore
        except RedisError as exc:
            raise PersistenceError(f"Failed to read activity for user {user_id}: {exc}") from exc
        return [ActivityEntry.model_validate_json(row) for row in rows]
