"""
Tracked issue persistence.

``InMemoryIssueStore`` keeps issues in a dict and is what tests and local runs
use. ``RedisIssueStore`` stores each issue as a Redis hash at
``seofix:issue:{id}`` and indexes ids per website in the set
``seofix:website:{website_id}:issues``.
"""

from __future__ import annotations

from typing import Sequence

from redis.asyncio import Redis
from redis.exceptions import RedisError

from seofix.core.config import settings
from seofix.core.errors import PersistenceError
from seofix.core.log import logger
from seofix.schema.issue import IssueStatus, TrackedIssue

__all__ = ("InMemoryIssueStore", "RedisIssueStore")


def _matches(
    issue: TrackedIssue,
    website_id: str,
    user_id: str,
    statuses: Sequence[IssueStatus] | None,
    auto_fixable_only: bool,
) -> bool:
    if issue.website_id != website_id or issue.user_id != user_id:
        return False
    if statuses is not None and issue.status not in statuses:
        return False
    if auto_fixable_only and not issue.auto_fixable:
        return False
    return True


class InMemoryIssueStore:
    """Dict-backed issue store. Returns copies so callers never alias stored state."""

    def __init__(self) -> None:
        self._issues: dict[str, TrackedIssue] = {}

    async def create(self, issue: TrackedIssue) -> TrackedIssue:
        if issue.id in self._issues:
            raise PersistenceError(f"Issue {issue.id} already exists")
        self._issues[issue.id] = issue.model_copy(deep=True)
        return issue.model_copy(deep=True)

    async def update(self, issue: TrackedIssue) -> TrackedIssue:
        if issue.id not in self._issues:
            raise PersistenceError(f"Issue {issue.id} does not exist")
        self._issues[issue.id] = issue.model_copy(deep=True)
        return issue.model_copy(deep=True)

    async def get(self, issue_id: str) -> TrackedIssue | None:
        issue = self._issues.get(issue_id)
        return issue.model_copy(deep=True) if issue else None

    async def query(
        self,
        website_id: str,
        user_id: str,
        *,
        statuses: Sequence[IssueStatus] | None = None,
        auto_fixable_only: bool = False,
    ) -> list[TrackedIssue]:
        return [
            issue.model_copy(deep=True)
            for issue in self._issues.values()
            if _matches(issue, website_id, user_id, statuses, auto_fixable_only)
        ]


class RedisIssueStore:
    """Redis-hash-backed issue store."""

    def __init__(self, redis: Redis, prefix: str = "seofix"):
        self.redis = redis
        self.prefix = prefix

    @classmethod
    def from_settings(cls) -> RedisIssueStore:
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

    def _key(self, issue_id: str) -> str:
        return f"{self.prefix}:issue:{issue_id}"

    def _index_key(self, website_id: str) -> str:
        return f"{self.prefix}:website:{website_id}:issues"

    def _mapping(self, issue: TrackedIssue) -> dict[str, str]:
        return {
            "id": issue.id,
            "website_id": issue.website_id,
            "user_id": issue.user_id,
            "issue_type": issue.issue_type,
            "status": str(issue.status),
            "data": issue.model_dump_json(),
        }

    async def create(self, issue: TrackedIssue) -> TrackedIssue:
        try:
            pipe = self.redis.pipeline()
            pipe.hset(self._key(issue.id), mapping=self._mapping(issue))  # type: ignore
            pipe.sadd(self._index_key(issue.website_id), issue.id)  # type: ignore
            await pipe.execute()
        except RedisError as exc:
            raise PersistenceError(f"Failed to create issue {issue.id}: {exc}") from exc
        logger.debug(f"Created tracked issue {issue.id} ({issue.issue_type}) for website {issue.website_id}")
        return issue

    async def update(self, issue: TrackedIssue) -> TrackedIssue:
        try:
            exists = await self.redis.exists(self._key(issue.id))
            if not exists:
                raise PersistenceError(f"Issue {issue.id} does not exist")
            await self.redis.hset(self._key(issue.id), mapping=self._mapping(issue))  # type: ignore
        except RedisError as exc:
            raise PersistenceError(f"Failed to update issue {issue.id}: {exc}") from exc
        return issue

    async def get(self, issue_id: str) -> TrackedIssue | None:
        try:
            data = await self.redis.hget(self._key(issue_id), "data")  # type: ignore
        except RedisError as exc:
            raise PersistenceError(f"Failed to read issue {issue_id}: {exc}") from exc
        return TrackedIssue.model_validate_json(data) if data else None

    async def query(
        self,
        website_id: str,
        user_id: str,
        *,
        statuses: Sequence[IssueStatus] | None = None,
        auto_fixable_only: bool = False,
    ) -> list[TrackedIssue]:
        try:
            ids = sorted(await self.redis.smembers(self._index_key(website_id)))  # type: ignore
            if not ids:
                return []
            pipe = self.redis.pipeline()
            for issue_id in ids:
                pipe.hget(self._key(issue_id), "data")  # type: ignore
            rows = await pipe.execute()
        except RedisError as exc:
            raise PersistenceError(f"Failed to query issues for website {website_id}: {exc}") from exc

        issues = [TrackedIssue.model_validate_json(row) for row in rows if row]
        return [i for i in issues if _matches(i, website_id, user_id, statuses, auto_fixable_only)]
