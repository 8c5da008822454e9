"""
Shared fixtures: in-memory stores, registry and an engine builder.

No real Redis, filesystem or website is touched by the unit tests.
"""

from __future__ import annotations

from typing import Any

import pytest

from seofix.fixes.registry import FixerRegistry
from seofix.orchestration.engine import RemediationEngine
from seofix.persistence.activity import InMemoryActivityLog
from seofix.persistence.backup import InMemoryBackupService
from seofix.persistence.reports import InMemoryReportStore
from seofix.persistence.websites import InMemoryWebsiteDirectory
from seofix.schema.website import Website
from seofix.tracking.store import InMemoryIssueStore
from seofix.tracking.tracker import IssueTracker
from tests.factories import USER_ID, WEBSITE_ID


# ─── Fixtures ────────────────────────────────────────────────────


@pytest.fixture
def website() -> Website:
    return Website(id=WEBSITE_ID, user_id=USER_ID, name="Example", url="https://example.com", keywords=["shoes"])


@pytest.fixture
def issue_store() -> InMemoryIssueStore:
    return InMemoryIssueStore()


@pytest.fixture
def tracker(issue_store: InMemoryIssueStore) -> IssueTracker:
    return IssueTracker(issue_store)


@pytest.fixture
def reports() -> InMemoryReportStore:
    return InMemoryReportStore()


@pytest.fixture
def activity() -> InMemoryActivityLog:
    return InMemoryActivityLog()


@pytest.fixture
def registry() -> FixerRegistry:
    return FixerRegistry()


@pytest.fixture
def make_engine(website, issue_store, reports, activity, registry):
    """Build an engine around the shared in-memory stores with test-friendly retry settings."""

    def _make(analyzer: Any, *, backup: Any = None, fixer_timeout: float | None = None) -> RemediationEngine:
        return RemediationEngine(
            websites=InMemoryWebsiteDirectory([website]),
            issues=issue_store,
            reports=reports,
            analyzer=analyzer,
            registry=registry,
            activity=activity,
            backup=backup if backup is not None else InMemoryBackupService(issue_store, reports),
            fixer_timeout=fixer_timeout if fixer_timeout is not None else 5.0,
            analyzer_max_retries=0,
            analyzer_retry_base_delay=0.0,
        )

    return _make
