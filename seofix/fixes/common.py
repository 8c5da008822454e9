"""Common helpers for Fixers and the orchestrator: grouping and Fix construction."""

from __future__ import annotations

from typing import Iterable

from seofix.schema.fix import SEVERITY_TO_IMPACT, Fix, FixImpact
from seofix.schema.issue import IssueSeverity, TrackedIssue

__all__ = (
    "failed_fix",
    "fix_from_issue",
    "group_by_type",
    "impact_for",
)


def impact_for(severity: IssueSeverity) -> FixImpact:
    return SEVERITY_TO_IMPACT[severity]


def group_by_type(issues: Iterable[TrackedIssue]) -> dict[str, list[TrackedIssue]]:
    """Group issues by issue type, keeping first-seen order of types and issues."""
    groups: dict[str, list[TrackedIssue]] = {}
    for issue in issues:
        groups.setdefault(issue.issue_type, []).append(issue)
    return groups


def fix_from_issue(
    issue: TrackedIssue,
    *,
    success: bool,
    description: str | None = None,
    after: str | None = None,
    error: str | None = None,
    fix_session_id: str | None = None,
) -> Fix:
    """Build a Fix for *issue*, carrying its element and before/after values."""
    return Fix(
        type=issue.issue_type,
        description=description or issue.description or issue.title,
        element=issue.element_path or issue.issue_type,
        before=issue.current_value or "Current state",
        after=after if after is not None else (issue.recommended_value or "Improved state"),
        success=success,
        impact=impact_for(issue.severity),
        error=error,
        source_issue_id=issue.id,
        fix_session_id=fix_session_id,
    )


def failed_fix(issue: TrackedIssue, error: str, *, fix_session_id: str | None = None) -> Fix:
    return fix_from_issue(
        issue,
        success=False,
        description=f"Fix failed: {issue.title}",
        after=issue.current_value or "Unchanged",
        error=error,
        fix_session_id=fix_session_id,
    )
