"""
Fix orchestrator — selects candidate issues, dispatches them to Fixers by
issue type and reconciles the results back into the issue tracker.
"""

from __future__ import annotations

import asyncio
from typing import Sequence

from seofix.core.errors import FixerError, InvalidTransitionError, NotFoundError, RemediationError
from seofix.core.log import logger
from seofix.fixes.common import failed_fix, fix_from_issue, group_by_type
from seofix.fixes.registry import FixerRegistry
from seofix.orchestration.runlog import RunLog
from seofix.schema.fix import Fix, FixBatch, FixOutcome, SkippedIssue
from seofix.schema.issue import IssueSeverity, IssueStatus, TrackedIssue
from seofix.schema.website import Website
from seofix.tracking.tracker import IssueTracker

__all__ = ("FixOrchestrator", "SEVERITY_WEIGHTS")

SEVERITY_WEIGHTS: dict[IssueSeverity, int] = {
    IssueSeverity.critical: 3,
    IssueSeverity.warning: 2,
    IssueSeverity.info: 1,
}


class FixOrchestrator:
    def __init__(
        self,
        tracker: IssueTracker,
        registry: FixerRegistry,
        *,
        fixer_timeout: float | None = None,
    ):
        self.tracker = tracker
        self.registry = registry
        self.fixer_timeout = fixer_timeout

    @staticmethod
    def prioritize_and_filter(
        issues: Sequence[TrackedIssue],
        allowed_types: Sequence[str] | None = None,
        max_changes: int | None = None,
    ) -> list[TrackedIssue]:
        """
        Apply the type allow-list, order by severity (critical first, stable)
        and keep at most ``max_changes`` issues.
        """
        selected = list(issues)
        if allowed_types:
            allowed = set(allowed_types)
            selected = [i for i in selected if i.issue_type in allowed]
        selected.sort(key=lambda i: SEVERITY_WEIGHTS[i.severity], reverse=True)
        if max_changes is not None:
            selected = selected[: max(max_changes, 0)]
        return selected

    async def apply_fixes(
        self,
        target: Website,
        candidates: Sequence[TrackedIssue],
        *,
        dry_run: bool,
        fix_session_id: str,
        registry: FixerRegistry | None = None,
        run_log: RunLog | None = None,
    ) -> FixOutcome:
        """
        Fix ``candidates`` against ``target``.

        In dry-run mode no Fixer is called and no issue status changes; every
        candidate with a registered Fixer becomes a simulated successful fix.
        """
        if registry is None:
            registry = self.registry
        if run_log is None:
            run_log = RunLog()
        outcome = FixOutcome()

        if dry_run:
            claimed = list(candidates)
        else:
            claimed = await self._claim(candidates, fix_session_id, outcome, run_log)

        groups = group_by_type(claimed)
        if groups:
            run_log.info(f"Processing fix types: {', '.join(groups)}")

        for issue_type, group in groups.items():
            batch = await self._run_group(target, issue_type, group, registry, dry_run, fix_session_id, run_log)
            fixes = self._reconcile_group(issue_type, group, batch, fix_session_id)
            outcome.applied.extend(fixes)
            outcome.errors.extend(batch.errors)

            for fix in fixes:
                if fix.success:
                    run_log.success(f"{issue_type}: {fix.description}")
                else:
                    run_log.error(f"{issue_type}: {fix.description} ({fix.error})")

            if not dry_run:
                await self._record_results(fixes, fix_session_id)

        logger.info(
            f"Fix pass complete — {len(outcome.successful)} succeeded, "
            f"{len(outcome.failed)} failed, {len(outcome.skipped)} skipped"
            + (" (dry run)" if dry_run else "")
        )
        return outcome

    async def _claim(
        self,
        candidates: Sequence[TrackedIssue],
        fix_session_id: str,
        outcome: FixOutcome,
        run_log: RunLog,
    ) -> list[TrackedIssue]:
        """Re-verify each candidate is still open and mark it ``fixing``."""
        claimed: list[TrackedIssue] = []
        for candidate in candidates:
            try:
                current = await self.tracker.get(candidate.id)
            except NotFoundError:
                self._skip(outcome, run_log, candidate, "missing", "no longer tracked")
                continue
            except RemediationError as exc:
                self._skip(outcome, run_log, candidate, str(candidate.status), f"could not verify status: {exc}")
                continue

            if not current.is_open:
                self._skip(outcome, run_log, current, str(current.status), f"already {current.status}")
                continue

            try:
                claimed.append(
                    await self.tracker.update_status(
                        current.id,
                        IssueStatus.fixing,
                        fix_session_id=fix_session_id,
                        note="Claimed by fix run",
                    )
                )
            except InvalidTransitionError as exc:
                self._skip(outcome, run_log, current, exc.current, f"claimed concurrently ({exc.current})")
            except RemediationError as exc:
                self._skip(outcome, run_log, current, str(current.status), f"could not mark as fixing: {exc}")

        if claimed:
            run_log.info(f"Marked {len(claimed)} issue(s) as fixing")
        return claimed

    @staticmethod
    def _skip(outcome: FixOutcome, run_log: RunLog, issue: TrackedIssue, status: str, reason: str) -> None:
        outcome.skipped.append(
            SkippedIssue(issue_id=issue.id, issue_type=issue.issue_type, status=status, reason=reason)
        )
        run_log.info(f"Skipping {issue.issue_type} issue {issue.id}: {reason}")

    async def _run_group(
        self,
        target: Website,
        issue_type: str,
        group: list[TrackedIssue],
        registry: FixerRegistry,
        dry_run: bool,
        fix_session_id: str,
        run_log: RunLog,
    ) -> FixBatch:
        fixer = registry.get(issue_type)
        if fixer is None:
            error = f"Fix type '{issue_type}' not implemented"
            run_log.warning(f"No fixer registered for {issue_type}")
            return FixBatch(
                applied=[failed_fix(i, error, fix_session_id=fix_session_id) for i in group],
                errors=[error],
            )

        if dry_run:
            return FixBatch(
                applied=[
                    fix_from_issue(
                        i,
                        success=True,
                        description=f"Would fix: {i.title}",
                        fix_session_id=fix_session_id,
                    )
                    for i in group
                ]
            )

        run_log.info(f"Processing {len(group)} fix(es) of type: {issue_type}")
        try:
            if self.fixer_timeout:
                return await asyncio.wait_for(fixer.apply(target, group), timeout=self.fixer_timeout)
            return await fixer.apply(target, group)
        except asyncio.TimeoutError:
            error = str(FixerError(issue_type, f"timed out after {self.fixer_timeout}s"))
        except Exception as exc:
            error = str(FixerError(issue_type, f"{type(exc).__name__}: {exc}"))

        logger.error(f"Fixer for {issue_type} failed: {error}")
        return FixBatch(
            applied=[failed_fix(i, error, fix_session_id=fix_session_id) for i in group],
            errors=[error],
        )

    @staticmethod
    def _reconcile_group(
        issue_type: str,
        group: list[TrackedIssue],
        batch: FixBatch,
        fix_session_id: str,
    ) -> list[Fix]:
        """
        Attach every returned Fix to an issue of the group.

        Fixes without a source issue id are assigned, in order, to issues the
        Fixer did not otherwise report on. Issues left without any Fix are
        failed.
        """
        by_id = {i.id: i for i in group}
        reported: set[str] = {f.source_issue_id for f in batch.applied if f.source_issue_id in by_id}
        unreported = [i.id for i in group if i.id not in reported]

        fixes: list[Fix] = []
        for fix in batch.applied:
            source = fix.source_issue_id
            if source is None and unreported:
                source = unreported.pop(0)
            if source not in by_id:
                logger.warning(f"{issue_type}: dropping fix for unknown issue {fix.source_issue_id}")
                continue
            fixes.append(fix.model_copy(update={"source_issue_id": source, "fix_session_id": fix_session_id}))

        covered = {f.source_issue_id for f in fixes}
        for issue in group:
            if issue.id not in covered:
                fixes.append(failed_fix(issue, "Fixer reported no result", fix_session_id=fix_session_id))
        return fixes

    async def _record_results(self, fixes: list[Fix], fix_session_id: str) -> None:
        """Mark each issue fixed if any of its fixes succeeded, otherwise detected."""
        per_issue: dict[str, list[Fix]] = {}
        for fix in fixes:
            if fix.source_issue_id:
                per_issue.setdefault(fix.source_issue_id, []).append(fix)

        for issue_id, issue_fixes in per_issue.items():
            succeeded = [f for f in issue_fixes if f.success]
            try:
                if succeeded:
                    await self.tracker.update_status(
                        issue_id,
                        IssueStatus.fixed,
                        fix_session_id=fix_session_id,
                        note=f"Successfully applied: {succeeded[0].description}",
                    )
                else:
                    error = next((f.error for f in issue_fixes if f.error), "Unknown error")
                    await self.tracker.update_status(
                        issue_id,
                        IssueStatus.detected,
                        fix_session_id=fix_session_id,
                        note=f"Fix failed: {error}",
                        error=error,
                    )
            except RemediationError as exc:
                logger.warning(f"Could not record fix result for issue {issue_id}: {exc}")
