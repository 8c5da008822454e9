"""
Issue lifecycle tracking.

Every status change of a tracked issue goes through ``IssueTracker.update_status``,
which enforces ``VALID_TRANSITIONS`` and appends to the issue's status history.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Iterable, Sequence

from seofix.core.errors import InvalidTransitionError, NotFoundError, RemediationError
from seofix.core.log import logger
from seofix.interfaces import IssueStore
from seofix.schema.analysis import AnalyzerIssue
from seofix.schema.issue import (
    OPEN_STATUSES,
    IssueFilter,
    IssueStatus,
    IssueTrackingSummary,
    StatusChange,
    TrackedIssue,
)
from seofix.tracking.classification import classify_issue_type, element_path_for
from seofix.tracking.matching import find_matching_issue

__all__ = ("DetectionSummary", "IssueTracker", "VALID_TRANSITIONS")

VALID_TRANSITIONS: dict[IssueStatus, frozenset[IssueStatus]] = {
    IssueStatus.detected: frozenset({IssueStatus.fixing, IssueStatus.resolved}),
    IssueStatus.fixing: frozenset({IssueStatus.fixed, IssueStatus.detected}),
    IssueStatus.fixed: frozenset({IssueStatus.reappeared}),
    IssueStatus.resolved: frozenset({IssueStatus.reappeared}),
    IssueStatus.reappeared: frozenset({IssueStatus.fixing, IssueStatus.resolved}),
}


@dataclass
class DetectionSummary:
    created: list[str] = field(default_factory=list)
    reappeared: list[str] = field(default_factory=list)
    recovered: list[str] = field(default_factory=list)
    refreshed: list[str] = field(default_factory=list)
    issue_types: set[str] = field(default_factory=set)
    errors: list[str] = field(default_factory=list)


def _now() -> datetime:
    return datetime.now(UTC)


class IssueTracker:
    """Owns the tracked-issue state machine on top of an injected ``IssueStore``."""

    def __init__(self, store: IssueStore):
        self.store = store

    # ── Queries ──────────────────────────────────────────────────────────

    async def get(self, issue_id: str) -> TrackedIssue:
        issue = await self.store.get(issue_id)
        if issue is None:
            raise NotFoundError(f"Tracked issue {issue_id} not found")
        return issue

    async def get_active_fixable_issues(
        self,
        website_id: str,
        user_id: str,
        issue_filter: IssueFilter | None = None,
    ) -> list[TrackedIssue]:
        """Open issues (detected or reappeared), optionally auto-fixable only and type-restricted."""
        issue_filter = issue_filter or IssueFilter()
        issues = await self.store.query(
            website_id,
            user_id,
            statuses=sorted(OPEN_STATUSES),
            auto_fixable_only=issue_filter.auto_fixable_only,
        )
        if issue_filter.fix_types:
            allowed = set(issue_filter.fix_types)
            issues = [i for i in issues if i.issue_type in allowed]
        return issues

    async def summary(self, website_id: str, user_id: str) -> IssueTrackingSummary:
        issues = await self.store.query(website_id, user_id)
        counts = {status: 0 for status in IssueStatus}
        for issue in issues:
            counts[issue.status] += 1
        total = len(issues)
        done = counts[IssueStatus.fixed] + counts[IssueStatus.resolved]
        return IssueTrackingSummary(
            total_issues=total,
            detected=counts[IssueStatus.detected],
            fixing=counts[IssueStatus.fixing],
            fixed=counts[IssueStatus.fixed],
            resolved=counts[IssueStatus.resolved],
            reappeared=counts[IssueStatus.reappeared],
            auto_fixable=sum(1 for i in issues if i.auto_fixable),
            completion_percentage=round(done / total * 100) if total else 0,
            last_activity=max((i.last_seen_at for i in issues), default=None),
        )

    # ── Transitions ──────────────────────────────────────────────────────

    async def update_status(
        self,
        issue_id: str,
        new_status: IssueStatus,
        *,
        fix_session_id: str | None = None,
        note: str | None = None,
        error: str | None = None,
        seen_at: datetime | None = None,
    ) -> TrackedIssue:
        """
        Move an issue to ``new_status``.

        Raises NotFoundError for unknown ids and InvalidTransitionError when
        the change is not in ``VALID_TRANSITIONS``.
        """
        issue = await self.get(issue_id)
        current = issue.status
        if new_status not in VALID_TRANSITIONS[current]:
            raise InvalidTransitionError(issue_id, str(current), str(new_status))

        now = _now()
        history = list(issue.metadata.get("status_history", []))
        history.append(
            StatusChange(
                previous_status=current,
                new_status=new_status,
                timestamp=now,
                fix_session_id=fix_session_id,
                note=note,
                error=error,
            ).model_dump(mode="json")
        )
        metadata = {**issue.metadata, "status_history": history}

        updates: dict = {"status": new_status, "metadata": metadata}
        if new_status == IssueStatus.fixing:
            metadata["fix_attempts"] = int(metadata.get("fix_attempts", 0)) + 1
            updates["fix_session_id"] = fix_session_id
        elif new_status == IssueStatus.fixed:
            updates["fixed_at"] = now
        elif new_status == IssueStatus.resolved:
            updates["resolved_at"] = now
        elif new_status == IssueStatus.reappeared:
            metadata["reappeared_at"] = now.isoformat()
            metadata["detection_count"] = int(metadata.get("detection_count", 1)) + 1
        if error:
            metadata["last_fix_error"] = error
        if seen_at is not None:
            updates["last_seen_at"] = seen_at

        updated = await self.store.update(issue.model_copy(update=updates))
        logger.debug(f"Issue {issue_id} ({issue.issue_type}): {current} → {new_status}")
        return updated

    async def reset_stuck_fixing(
        self,
        website_id: str,
        user_id: str,
        *,
        fix_session_id: str | None = None,
    ) -> list[TrackedIssue]:
        """Return issues left in ``fixing`` by an interrupted run to ``detected``."""
        stuck = await self.store.query(website_id, user_id, statuses=[IssueStatus.fixing])
        reset: list[TrackedIssue] = []
        for issue in stuck:
            in_session = fix_session_id is not None and issue.fix_session_id == fix_session_id
            note = (
                "Fix may have been applied but status update failed"
                if in_session
                else "Reset from stuck fixing state"
            )
            try:
                reset.append(
                    await self.update_status(
                        issue.id,
                        IssueStatus.detected,
                        fix_session_id=fix_session_id,
                        note=note,
                    )
                )
            except RemediationError as exc:
                logger.warning(f"Could not reset stuck issue {issue.id}: {exc}")
        if reset:
            logger.info(f"Website {website_id}: reset {len(reset)} stuck fixing issue(s)")
        return reset

    # ── Detection reconciliation ─────────────────────────────────────────

    async def record_detection(
        self,
        website_id: str,
        user_id: str,
        fresh_issues: Iterable[AnalyzerIssue],
        *,
        report_id: str | None = None,
        fix_session_id: str | None = None,
    ) -> DetectionSummary:
        """
        Reconcile a fresh Analyzer issue list with tracked issues.

        Matched fixed/resolved issues reappear, matched fixing issues return to
        detected, matched open issues only get ``last_seen_at`` refreshed, and
        unmatched issues are created as detected.
        """
        summary = DetectionSummary()
        tracked: dict[str, TrackedIssue] = {
            i.id: i for i in await self.store.query(website_id, user_id)
        }

        for fresh in fresh_issues:
            issue_type = fresh.type or classify_issue_type(fresh.title)
            summary.issue_types.add(issue_type)
            try:
                match = find_matching_issue(issue_type, fresh, list(tracked.values()))
                if match is None:
                    created = await self._create(website_id, user_id, issue_type, fresh, report_id)
                    tracked[created.id] = created
                    summary.created.append(created.id)
                    continue

                updated = await self._reconcile_existing(match, fresh, summary, report_id, fix_session_id)
                tracked[updated.id] = updated
            except RemediationError as exc:
                message = f"Failed to track issue '{fresh.title}': {exc}"
                logger.warning(message)
                summary.errors.append(message)

        logger.info(
            f"Website {website_id}: issue tracking — {len(summary.created)} new, "
            f"{len(summary.reappeared)} reappeared, {len(summary.recovered)} recovered, "
            f"{len(summary.refreshed)} still open"
        )
        return summary

    async def resolve_absent(
        self,
        website_id: str,
        user_id: str,
        current_issue_types: Iterable[str],
        *,
        fix_session_id: str | None = None,
    ) -> list[TrackedIssue]:
        """
        Resolve open issues whose type is absent from the latest scan.

        Fixed issues are left alone: they stay as the record of a successful
        automated fix.
        """
        present = set(current_issue_types)
        open_issues = await self.store.query(website_id, user_id, statuses=sorted(OPEN_STATUSES))
        resolved: list[TrackedIssue] = []
        for issue in open_issues:
            if issue.issue_type in present:
                continue
            try:
                resolved.append(
                    await self.update_status(
                        issue.id,
                        IssueStatus.resolved,
                        fix_session_id=fix_session_id,
                        note="Issue no longer detected in latest analysis",
                    )
                )
            except RemediationError as exc:
                logger.warning(f"Could not resolve absent issue {issue.id}: {exc}")
        if resolved:
            logger.info(f"Website {website_id}: auto-resolved {len(resolved)} issue(s)")
        return resolved

    async def record_scan(
        self,
        website_id: str,
        user_id: str,
        fresh_issues: Sequence[AnalyzerIssue],
        *,
        report_id: str | None = None,
        fix_session_id: str | None = None,
    ) -> DetectionSummary:
        """``record_detection`` followed by ``resolve_absent`` for the same scan."""
        summary = await self.record_detection(
            website_id, user_id, fresh_issues, report_id=report_id, fix_session_id=fix_session_id,
        )
        await self.resolve_absent(website_id, user_id, summary.issue_types, fix_session_id=fix_session_id)
        return summary

    # ── Internals ────────────────────────────────────────────────────────

    async def _create(
        self,
        website_id: str,
        user_id: str,
        issue_type: str,
        fresh: AnalyzerIssue,
        report_id: str | None,
    ) -> TrackedIssue:
        now = _now()
        issue = TrackedIssue(
            website_id=website_id,
            user_id=user_id,
            issue_type=issue_type,
            title=fresh.title,
            description=fresh.description,
            severity=fresh.severity,
            auto_fixable=fresh.auto_fixable,
            status=IssueStatus.detected,
            element_path=fresh.element_path or element_path_for(fresh.title),
            current_value=fresh.current_value,
            recommended_value=fresh.recommended_value,
            detected_at=now,
            last_seen_at=now,
            metadata={
                "status_history": [
                    StatusChange(previous_status=None, new_status=IssueStatus.detected, timestamp=now).model_dump(
                        mode="json"
                    )
                ],
                "first_detected_in_report": report_id,
                "detection_count": 1,
            },
        )
        return await self.store.create(issue)

    async def _reconcile_existing(
        self,
        issue: TrackedIssue,
        fresh: AnalyzerIssue,
        summary: DetectionSummary,
        report_id: str | None,
        fix_session_id: str | None,
    ) -> TrackedIssue:
        now = _now()
        if issue.status in (IssueStatus.fixed, IssueStatus.resolved):
            issue = await self.update_status(
                issue.id,
                IssueStatus.reappeared,
                fix_session_id=fix_session_id,
                note=f"Detected again after being {issue.status}",
                seen_at=now,
            )
            summary.reappeared.append(issue.id)
        elif issue.status == IssueStatus.fixing:
            issue = await self.update_status(
                issue.id,
                IssueStatus.detected,
                fix_session_id=fix_session_id,
                note="Reset from stuck fixing status during new analysis",
                seen_at=now,
            )
            summary.recovered.append(issue.id)
        else:
            summary.refreshed.append(issue.id)

        return await self._refresh(issue, fresh, now, report_id)

    async def _refresh(
        self,
        issue: TrackedIssue,
        fresh: AnalyzerIssue,
        seen_at: datetime,
        report_id: str | None,
    ) -> TrackedIssue:
        updates: dict = {
            "last_seen_at": seen_at,
            "description": fresh.description or issue.description,
            "severity": fresh.severity,
            "auto_fixable": fresh.auto_fixable,
            "current_value": fresh.current_value if fresh.current_value is not None else issue.current_value,
            "recommended_value": (
                fresh.recommended_value if fresh.recommended_value is not None else issue.recommended_value
            ),
        }
        if report_id:
            updates["metadata"] = {**issue.metadata, "last_detected_in_report": report_id}
        return await self.store.update(issue.model_copy(update=updates))
