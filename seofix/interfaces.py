"""
Contracts of the collaborators the engine consumes.

The engine never analyzes or mutates a website itself; everything it touches
is passed in through one of these interfaces.
"""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from seofix.schema.analysis import AnalysisReport
from seofix.schema.fix import ActivityEntry, FixBatch
from seofix.schema.issue import IssueStatus, TrackedIssue
from seofix.schema.website import Website

__all__ = (
    "ActivityLog",
    "Analyzer",
    "BackupService",
    "Fixer",
    "IssueStore",
    "ReportStore",
    "WebsiteDirectory",
)


@runtime_checkable
class Fixer(Protocol):
    """Remediates every issue of one issue type on a live website."""

    async def apply(self, target: Website, issues: Sequence[TrackedIssue]) -> FixBatch: ...


class Analyzer(Protocol):
    async def analyze(self, target: Website, keywords: list[str] | None = None) -> AnalysisReport: ...


class IssueStore(Protocol):
    """Persistence of tracked issues, scoped by (website_id, user_id)."""

    async def create(self, issue: TrackedIssue) -> TrackedIssue: ...

    async def update(self, issue: TrackedIssue) -> TrackedIssue: ...

    async def get(self, issue_id: str) -> TrackedIssue | None: ...

    async def query(
        self,
        website_id: str,
        user_id: str,
        *,
        statuses: Sequence[IssueStatus] | None = None,
        auto_fixable_only: bool = False,
    ) -> list[TrackedIssue]: ...


class ReportStore(Protocol):
    """Append-only store of Analyzer results."""

    async def append(self, report: AnalysisReport) -> AnalysisReport: ...

    async def latest(self, website_id: str) -> AnalysisReport | None: ...


class ActivityLog(Protocol):
    async def append(self, entry: ActivityEntry) -> None: ...


class BackupService(Protocol):
    """Best-effort pre-run snapshot; failures never block a run."""

    async def snapshot(self, target: Website, user_id: str, reason: str) -> str: ...


class WebsiteDirectory(Protocol):
    async def get_website(self, website_id: str, user_id: str) -> Website | None: ...
