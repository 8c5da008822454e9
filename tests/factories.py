"""
Builders and test doubles shared by the test modules.
"""

from __future__ import annotations

import asyncio
from typing import Any, Sequence

from seofix.fixes.common import fix_from_issue
from seofix.persistence.reports import InMemoryReportStore
from seofix.schema.analysis import AnalysisReport, AnalyzerIssue
from seofix.schema.fix import FixBatch
from seofix.schema.issue import IssueSeverity, TrackedIssue
from seofix.schema.website import Website
from seofix.tracking.tracker import IssueTracker

WEBSITE_ID = "site-1"
USER_ID = "user-1"


# ─── Builders ────────────────────────────────────────────────────


def make_analyzer_issue(
    issue_type: str | None,
    severity: IssueSeverity | str = IssueSeverity.warning,
    *,
    title: str | None = None,
    auto_fixable: bool = True,
    **overrides: Any,
) -> AnalyzerIssue:
    return AnalyzerIssue(
        type=issue_type,
        title=title or (issue_type or "untitled").replace("_", " ").capitalize(),
        description=f"Detected {issue_type}",
        severity=IssueSeverity(severity),
        auto_fixable=auto_fixable,
        current_value="before",
        recommended_value="after",
        **overrides,
    )


def make_report(score: float, issues: Sequence[AnalyzerIssue] = (), website_id: str = WEBSITE_ID) -> AnalysisReport:
    return AnalysisReport(website_id=website_id, score=score, issues=list(issues))


# ─── Test doubles ────────────────────────────────────────────────


class StubFixer:
    """Fixer double: records calls and succeeds, fails or raises on demand."""

    def __init__(
        self,
        *,
        succeed: bool = True,
        raises: BaseException | None = None,
        delay: float = 0.0,
        report_ids: bool = True,
        skip_first: bool = False,
    ):
        self.succeed = succeed
        self.raises = raises
        self.delay = delay
        self.report_ids = report_ids
        self.skip_first = skip_first
        self.calls: list[list[str]] = []

    async def apply(self, target: Website, issues: Sequence[TrackedIssue]) -> FixBatch:
        self.calls.append([i.id for i in issues])
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.raises is not None:
            raise self.raises

        reported = issues[1:] if self.skip_first else issues
        fixes = []
        for issue in reported:
            fix = fix_from_issue(
                issue,
                success=self.succeed,
                description=f"Fixed {issue.title}" if self.succeed else f"Could not fix {issue.title}",
                error=None if self.succeed else "fixer refused",
            )
            if not self.report_ids:
                fix = fix.model_copy(update={"source_issue_id": None})
            fixes.append(fix)
        return FixBatch(applied=fixes)


class ScriptedAnalyzer:
    """Analyzer double returning scripted scores; the last entry repeats."""

    def __init__(self, scores: Sequence[float], issues: Sequence[AnalyzerIssue] = (), *, fail: bool = False):
        self.scores = list(scores)
        self.issues = list(issues)
        self.fail = fail
        self.calls = 0

    async def analyze(self, target: Website, keywords: list[str] | None = None) -> AnalysisReport:
        self.calls += 1
        if self.fail:
            raise ConnectionError("analyzer unreachable")
        score = self.scores[min(self.calls - 1, len(self.scores) - 1)]
        return make_report(score, self.issues, website_id=target.id)


async def seed_scan(
    tracker: IssueTracker,
    reports: InMemoryReportStore,
    score: float,
    issues: Sequence[AnalyzerIssue],
) -> AnalysisReport:
    """Store an initial report and track its issues, as a prior analysis would."""
    report = make_report(score, issues)
    await reports.append(report)
    await tracker.record_scan(WEBSITE_ID, USER_ID, report.issues, report_id=report.id)
    return report
