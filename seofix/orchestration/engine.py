"""
Remediation engine — public entry points for single-shot and iterative fix runs.

Public calls never raise: every failure comes back as a result with
``success=False``, the collected errors and the run log so far.
"""

from __future__ import annotations

import asyncio
from typing import Sequence

from asgi_correlation_id.context import correlation_id
from pydantic import ValidationError as PydanticValidationError
from ulid import ULID

from seofix.core.config import settings
from seofix.core.errors import NoAnalysisError, NotFoundError, RemediationError, ValidationError
from seofix.core.log import current_website, logger
from seofix.fixes.registry import FixerRegistry
from seofix.interfaces import ActivityLog, Analyzer, BackupService, IssueStore, ReportStore, WebsiteDirectory
from seofix.orchestration.convergence import ConvergenceController
from seofix.orchestration.orchestrator import FixOrchestrator
from seofix.orchestration.reporting import build_stats, estimate_fix_time, iterative_recommendations
from seofix.orchestration.runlog import RunLog
from seofix.schema.analysis import AnalysisReport
from seofix.schema.convergence import ConvergenceOptions, IterativeFixResult, StopReason
from seofix.schema.fix import ActivityEntry, AvailableFixTypes, Fix, FixResult, FixStats, ReanalysisResult
from seofix.schema.issue import IssueFilter, IssueTrackingSummary
from seofix.schema.website import Website
from seofix.tracking.tracker import IssueTracker

__all__ = ("RemediationEngine",)

ACTIVITY_TYPE = "ai_fixes_applied"


class RemediationEngine:
    def __init__(
        self,
        *,
        websites: WebsiteDirectory,
        issues: IssueStore,
        reports: ReportStore,
        analyzer: Analyzer,
        registry: FixerRegistry,
        activity: ActivityLog | None = None,
        backup: BackupService | None = None,
        fixer_timeout: float | None = None,
        analyzer_max_retries: int | None = None,
        analyzer_retry_base_delay: float | None = None,
    ):
        self.websites = websites
        self.reports = reports
        self.activity = activity
        self.registry = registry
        self.tracker = IssueTracker(issues)
        self.orchestrator = FixOrchestrator(
            self.tracker,
            registry,
            fixer_timeout=settings.FIXER_TIMEOUT_SECONDS if fixer_timeout is None else fixer_timeout,
        )
        self.controller = ConvergenceController(
            self.tracker,
            self.orchestrator,
            analyzer,
            reports,
            backup,
            analyzer_max_retries=analyzer_max_retries,
            analyzer_retry_base_delay=analyzer_retry_base_delay,
        )

    # ── Single-shot ──────────────────────────────────────────────────────

    async def run_once(
        self,
        website_id: str,
        user_id: str,
        *,
        dry_run: bool = True,
        fix_types: Sequence[str] | None = None,
        max_changes: int | None = None,
        skip_backup: bool = False,
        reanalyze: bool = True,
        settle_delay: float | None = None,
    ) -> FixResult:
        """
        Select the active fixable issues, fix them once and optionally reanalyze.

        A dry run calls no Fixer and changes no issue status; its reanalysis is
        an estimate flagged ``simulated``.
        """
        fix_session_id = str(ULID())
        run_log = RunLog()
        token = correlation_id.set(fix_session_id)
        site_token = current_website.set(website_id)
        try:
            run_log.info(
                f"Starting fix run for website {website_id} (dry run: {dry_run}, session: {fix_session_id})"
            )
            if max_changes is not None and max_changes < 1:
                raise ValidationError(f"max_changes must be at least 1, got {max_changes}")
            if settle_delay is not None and settle_delay < 0:
                raise ValidationError(f"settle_delay must not be negative, got {settle_delay}")

            target, report = await self._prepare(website_id, user_id, run_log)
            single = await self.controller.run_single_pass(
                target,
                user_id,
                report.score,
                dry_run=dry_run,
                fix_session_id=fix_session_id,
                fix_types=fix_types,
                max_changes=max_changes,
                skip_backup=skip_backup,
                reanalyze=reanalyze,
                settle_delay=settings.SINGLE_PASS_SETTLE_DELAY_SECONDS if settle_delay is None else settle_delay,
                run_log=run_log,
            )

            outcome = single.outcome
            stats = build_stats(outcome.applied, total_issues_found=single.issues_found, skipped=len(outcome.skipped))
            if not outcome.applied and not outcome.skipped:
                message = "All fixable SEO issues have already been addressed."
            elif dry_run:
                message = f"Dry run complete. Found {stats.fixes_attempted} fixable issues."
            else:
                message = f"Applied {stats.fixes_successful} fixes successfully."
            reanalysis = single.reanalysis
            if reanalysis is not None and reanalysis.success:
                prefix = "Estimated SEO score" if reanalysis.simulated else "SEO score"
                message += (
                    f" {prefix}: {reanalysis.initial_score:.1f} → {reanalysis.final_score:.1f} "
                    f"({reanalysis.score_improvement:+.1f})"
                )
            run_log.success(message)

            if not dry_run and outcome.applied:
                await self._record_activity(target, user_id, fix_session_id, outcome.applied, reanalysis)

            return FixResult(
                success=True,
                dry_run=dry_run,
                fixes_applied=outcome.applied,
                stats=stats,
                errors=outcome.errors or None,
                message=message,
                log=run_log.lines,
                fix_session_id=fix_session_id,
                reanalysis=reanalysis,
            )
        except Exception as exc:
            error = self._describe_failure(exc, run_log)
            return FixResult(
                success=False,
                dry_run=dry_run,
                stats=FixStats(estimated_impact="none"),
                errors=[error],
                message=f"Fix run failed: {error}",
                log=run_log.lines,
                fix_session_id=fix_session_id,
            )
        finally:
            current_website.reset(site_token)
            correlation_id.reset(token)

    # ── Iterative ────────────────────────────────────────────────────────

    async def run_iteratively(
        self,
        website_id: str,
        user_id: str,
        *,
        target_score: float | None = None,
        max_iterations: int | None = None,
        min_improvement_threshold: float | None = None,
        fix_types: Sequence[str] | None = None,
        max_changes_per_iteration: int | None = None,
        skip_backup: bool = False,
        settle_delay: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> IterativeFixResult:
        """Fix, settle and reanalyze until the target, a stall, the iteration cap or cancellation."""
        fix_session_id = str(ULID())
        run_log = RunLog()
        token = correlation_id.set(fix_session_id)
        site_token = current_website.set(website_id)
        initial_score = 0.0
        requested_target = settings.TARGET_SCORE if target_score is None else target_score
        try:
            try:
                options = ConvergenceOptions(
                    target_score=requested_target,
                    max_iterations=settings.MAX_ITERATIONS if max_iterations is None else max_iterations,
                    min_improvement_threshold=(
                        settings.MIN_IMPROVEMENT_THRESHOLD
                        if min_improvement_threshold is None
                        else min_improvement_threshold
                    ),
                    max_changes_per_iteration=(
                        settings.MAX_CHANGES_PER_ITERATION
                        if max_changes_per_iteration is None
                        else max_changes_per_iteration
                    ),
                    settle_delay=settings.SETTLE_DELAY_SECONDS if settle_delay is None else settle_delay,
                    skip_backup=skip_backup,
                    fix_types=list(fix_types) if fix_types else None,
                )
            except PydanticValidationError as exc:
                problems = "; ".join(f"{'.'.join(map(str, e['loc']))}: {e['msg']}" for e in exc.errors())
                raise ValidationError(f"Invalid iterative fix options: {problems}") from exc

            run_log.info(
                f"Starting iterative fix run for website {website_id} "
                f"(target: {options.target_score:.1f}, max iterations: {options.max_iterations}, "
                f"session: {fix_session_id})"
            )
            target, report = await self._prepare(website_id, user_id, run_log)
            initial_score = report.score

            await self.tracker.reset_stuck_fixing(target.id, user_id, fix_session_id=fix_session_id)
            issues_found = len(
                await self.tracker.get_active_fixable_issues(
                    target.id, user_id, IssueFilter(fix_types=options.fix_types),
                )
            )

            convergence = await self.controller.run(
                target,
                user_id,
                initial_score,
                options,
                fix_session_id=fix_session_id,
                run_log=run_log,
                cancel_event=cancel_event,
            )
            await self.tracker.reset_stuck_fixing(target.id, user_id, fix_session_id=fix_session_id)

            improvement = convergence.score_improvement
            completed = len(convergence.iterations)
            fixes = convergence.applied_fixes
            stats = build_stats(fixes, total_issues_found=issues_found)
            message = (
                f"Iterative fixing stopped ({convergence.stop_reason}): score "
                f"{convergence.initial_score:.1f} → {convergence.final_score:.1f} "
                f"({improvement:+.1f}) after {completed} iteration(s)"
            )
            if convergence.stop_reason == StopReason.error:
                run_log.error(message)
            else:
                run_log.success(message)

            reanalysis = None
            if any(i.reanalyzed for i in convergence.iterations):
                reanalysis = ReanalysisResult(
                    initial_score=convergence.initial_score,
                    final_score=convergence.final_score,
                    score_improvement=improvement,
                    analysis_time=round(sum(i.duration_seconds for i in convergence.iterations), 3),
                )

            if fixes:
                await self._record_activity(
                    target,
                    user_id,
                    fix_session_id,
                    fixes,
                    reanalysis,
                    extra={
                        "iterations": completed,
                        "stop_reason": str(convergence.stop_reason),
                        "target_score": options.target_score,
                    },
                )

            return IterativeFixResult(
                success=convergence.stop_reason != StopReason.error,
                fixes_applied=fixes,
                stats=stats,
                errors=convergence.errors or None,
                message=message,
                log=run_log.lines,
                fix_session_id=fix_session_id,
                reanalysis=reanalysis,
                iterations=convergence.iterations,
                initial_score=convergence.initial_score,
                final_score=convergence.final_score,
                score_improvement=improvement,
                target_score=options.target_score,
                iterations_completed=completed,
                stop_reason=convergence.stop_reason,
                recommendations=iterative_recommendations(
                    convergence.stop_reason, convergence.final_score, improvement, completed,
                ),
            )
        except Exception as exc:
            error = self._describe_failure(exc, run_log)
            return IterativeFixResult(
                success=False,
                stats=FixStats(estimated_impact="none"),
                errors=[error],
                message=f"Iterative fix run failed: {error}",
                log=run_log.lines,
                fix_session_id=fix_session_id,
                initial_score=initial_score,
                final_score=initial_score,
                target_score=requested_target,
                stop_reason=StopReason.error,
                recommendations=iterative_recommendations(StopReason.error, initial_score, 0.0, 0),
            )
        finally:
            current_website.reset(site_token)
            correlation_id.reset(token)

    # ── Read-only queries ────────────────────────────────────────────────

    async def available_fix_types(self, website_id: str, user_id: str) -> AvailableFixTypes:
        """Issue types with active fixable issues, with counts and a rough time estimate."""
        try:
            issues = await self.tracker.get_active_fixable_issues(website_id, user_id)
        except RemediationError as exc:
            logger.warning(f"Website {website_id}: could not list fixable issues: {exc}")
            return AvailableFixTypes()

        breakdown: dict[str, int] = {}
        for issue in issues:
            breakdown[issue.issue_type] = breakdown.get(issue.issue_type, 0) + 1
        return AvailableFixTypes(
            available_fixes=list(breakdown),
            total_fixable_issues=len(issues),
            estimated_time=estimate_fix_time(len(issues)),
            breakdown=breakdown,
        )

    async def tracking_summary(self, website_id: str, user_id: str) -> IssueTrackingSummary:
        return await self.tracker.summary(website_id, user_id)

    # ── Internals ────────────────────────────────────────────────────────

    async def _prepare(self, website_id: str, user_id: str, run_log: RunLog) -> tuple[Website, AnalysisReport]:
        target = await self.websites.get_website(website_id, user_id)
        if target is None:
            raise NotFoundError(f"Website {website_id} not found or access denied")
        run_log.info(f"Loaded website: {target.name or target.id} ({target.url})")

        report = await self.reports.latest(website_id)
        if report is None:
            raise NoAnalysisError(f"Website {website_id} has no analysis yet; run an analysis first")
        run_log.info(f"Latest analysis {report.id}: score {report.score:.1f}, {len(report.issues)} issue(s)")
        return target, report

    async def _record_activity(
        self,
        target: Website,
        user_id: str,
        fix_session_id: str,
        fixes: list[Fix],
        reanalysis: ReanalysisResult | None,
        extra: dict | None = None,
    ) -> None:
        if self.activity is None:
            return
        successful = sum(1 for f in fixes if f.success)
        entry = ActivityEntry(
            user_id=user_id,
            website_id=target.id,
            type=ACTIVITY_TYPE,
            description=f"AI fixes: {successful} successful, {len(fixes) - successful} failed",
            metadata={
                "fix_session_id": fix_session_id,
                "fixes_applied": len(fixes),
                "fixes_successful": successful,
                "fixes_failed": len(fixes) - successful,
                "reanalysis": reanalysis.model_dump(mode="json") if reanalysis else None,
                **(extra or {}),
            },
        )
        try:
            await self.activity.append(entry)
        except RemediationError as exc:
            logger.warning(f"Website {target.id}: could not write activity log: {exc}")

    @staticmethod
    def _describe_failure(exc: Exception, run_log: RunLog) -> str:
        if isinstance(exc, RemediationError):
            error = str(exc)
        else:
            logger.exception(f"Unexpected error during fix run: {exc}")
            error = f"Unexpected error: {type(exc).__name__}: {exc}"
        run_log.error(error)
        return error
