"""
Convergence control — the fix → settle → reanalyze loop and its stop rules.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime
from time import perf_counter
from typing import Sequence

from seofix.core.config import settings
from seofix.core.errors import AnalyzerError, PersistenceError, RemediationError
from seofix.core.log import logger
from seofix.core.retry import with_retry
from seofix.interfaces import Analyzer, BackupService, ReportStore
from seofix.orchestration.estimator import estimate_score_impact
from seofix.orchestration.orchestrator import FixOrchestrator
from seofix.orchestration.runlog import RunLog
from seofix.schema.analysis import AnalysisReport
from seofix.schema.convergence import ConvergenceOptions, ConvergenceResult, IterationRecord, StopReason
from seofix.schema.fix import FixOutcome, ReanalysisResult
from seofix.schema.issue import IssueFilter
from seofix.schema.website import Website
from seofix.tracking.tracker import IssueTracker

__all__ = ("ConvergenceController", "SinglePassResult", "should_stop")


def should_stop(
    iterations: Sequence[IterationRecord],
    *,
    target_score: float,
    max_iterations: int,
    min_improvement_threshold: float,
) -> tuple[bool, StopReason | None]:
    """
    Determine whether the fix loop should stop after the latest iteration.

    Returns (should_stop, reason).
    """
    if not iterations:
        return False, None

    current = iterations[-1]

    # 1. Nothing was fixed → nothing to measure
    if current.fixes_successful == 0:
        return True, StopReason.no_improvement

    # 2. Target met
    if current.score_after >= target_score:
        return True, StopReason.target_reached

    # 3. Stalled
    if current.improvement < min_improvement_threshold:
        return True, StopReason.no_improvement

    # 4. Out of iterations
    if current.iteration >= max_iterations:
        return True, StopReason.max_iterations

    return False, None


@dataclass
class SinglePassResult:
    issues_found: int
    outcome: FixOutcome
    reanalysis: ReanalysisResult | None = None


def _now() -> datetime:
    return datetime.now(UTC)


class ConvergenceController:
    """Drives repeated fix passes until the score target, a stall or the iteration cap."""

    def __init__(
        self,
        tracker: IssueTracker,
        orchestrator: FixOrchestrator,
        analyzer: Analyzer,
        reports: ReportStore,
        backup: BackupService | None = None,
        *,
        analyzer_max_retries: int | None = None,
        analyzer_retry_base_delay: float | None = None,
    ):
        self.tracker = tracker
        self.orchestrator = orchestrator
        self.analyzer = analyzer
        self.reports = reports
        self.backup = backup
        self.analyzer_max_retries = (
            settings.ANALYZER_MAX_RETRIES if analyzer_max_retries is None else analyzer_max_retries
        )
        self.analyzer_retry_base_delay = (
            settings.ANALYZER_RETRY_BASE_DELAY if analyzer_retry_base_delay is None else analyzer_retry_base_delay
        )

    # ── Iterative mode ───────────────────────────────────────────────────

    async def run(
        self,
        target: Website,
        user_id: str,
        initial_score: float,
        options: ConvergenceOptions,
        *,
        fix_session_id: str,
        run_log: RunLog | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ConvergenceResult:
        if run_log is None:
            run_log = RunLog()
        result = ConvergenceResult(
            initial_score=initial_score,
            final_score=initial_score,
            stop_reason=StopReason.max_iterations,
        )

        if initial_score >= options.target_score:
            run_log.success(f"Score {initial_score:.1f} already meets target {options.target_score:.1f}")
            result.stop_reason = StopReason.target_reached
            return result

        run_log.info(
            f"Starting iterative fixes: score {initial_score:.1f}, target {options.target_score:.1f}, "
            f"max {options.max_iterations} iteration(s)"
        )

        backed_up = options.skip_backup
        try:
            for iteration in range(1, options.max_iterations + 1):
                if _cancelled(cancel_event):
                    run_log.warning(f"Cancelled before iteration {iteration}")
                    result.stop_reason = StopReason.cancelled
                    break

                score_before = result.final_score
                started_at = _now()
                t0 = perf_counter()
                run_log.info(f"Iteration {iteration}/{options.max_iterations}: current score {score_before:.1f}")

                await self.tracker.reset_stuck_fixing(target.id, user_id, fix_session_id=fix_session_id)
                issues = await self.tracker.get_active_fixable_issues(
                    target.id, user_id, IssueFilter(fix_types=options.fix_types),
                )
                candidates = self.orchestrator.prioritize_and_filter(
                    issues, options.fix_types, options.max_changes_per_iteration,
                )
                if not candidates:
                    run_log.success("No fixable issues remain")
                    result.stop_reason = StopReason.target_reached
                    break

                if not backed_up:
                    await self.take_backup(target, user_id, "pre_ai_fix_iterative", run_log)
                    backed_up = True

                outcome = await self.orchestrator.apply_fixes(
                    target, candidates, dry_run=False, fix_session_id=fix_session_id, run_log=run_log,
                )
                result.applied_fixes.extend(outcome.applied)
                result.errors.extend(outcome.errors)
                await self.tracker.reset_stuck_fixing(target.id, user_id, fix_session_id=fix_session_id)

                successful = len(outcome.successful)
                reanalyzed = False
                score_after = score_before

                if successful and _cancelled(cancel_event):
                    run_log.warning(f"Cancelled after applying fixes in iteration {iteration}")
                    result.stop_reason = StopReason.cancelled
                elif successful:
                    await self._settle(options.settle_delay, cancel_event)
                    if _cancelled(cancel_event):
                        run_log.warning(f"Cancelled while waiting to reanalyze in iteration {iteration}")
                        result.stop_reason = StopReason.cancelled
                    else:
                        report = await self.reanalyze(target, user_id, fix_session_id, result.errors)
                        score_after = report.score
                        reanalyzed = True

                record = IterationRecord(
                    iteration=iteration,
                    score_before=score_before,
                    score_after=score_after,
                    fixes_attempted=len(outcome.applied),
                    fixes_successful=successful,
                    improvement=score_after - score_before,
                    started_at=started_at,
                    finished_at=_now(),
                    duration_seconds=round(perf_counter() - t0, 3),
                    reanalyzed=reanalyzed,
                )
                result.iterations.append(record)
                result.final_score = score_after

                if result.stop_reason == StopReason.cancelled:
                    break

                run_log.info(
                    f"Iteration {iteration}: {successful}/{len(outcome.applied)} fixes succeeded, "
                    f"score {score_before:.1f} → {score_after:.1f} ({record.improvement:+.1f})"
                )

                stop, reason = should_stop(
                    result.iterations,
                    target_score=options.target_score,
                    max_iterations=options.max_iterations,
                    min_improvement_threshold=options.min_improvement_threshold,
                )
                if stop and reason is not None:
                    result.stop_reason = reason
                    run_log.info(f"Stopping: {reason}")
                    break
        except Exception as exc:
            message = f"Iterative fix run failed: {exc}"
            logger.exception(message)
            run_log.error(message)
            result.errors.append(message)
            result.stop_reason = StopReason.error

        return result

    # ── Single-shot mode ─────────────────────────────────────────────────

    async def run_single_pass(
        self,
        target: Website,
        user_id: str,
        initial_score: float,
        *,
        dry_run: bool,
        fix_session_id: str,
        fix_types: Sequence[str] | None = None,
        max_changes: int | None = None,
        skip_backup: bool = False,
        reanalyze: bool = True,
        settle_delay: float = 0.0,
        run_log: RunLog | None = None,
    ) -> SinglePassResult:
        """
        One selection → fix pass, optionally followed by a settle + reanalysis.

        Dry runs never mutate anything; their reanalysis is simulated from the
        score estimate.
        """
        if run_log is None:
            run_log = RunLog()

        if not dry_run:
            await self.tracker.reset_stuck_fixing(target.id, user_id, fix_session_id=fix_session_id)

        issues = await self.tracker.get_active_fixable_issues(
            target.id, user_id, IssueFilter(fix_types=list(fix_types) if fix_types else None),
        )
        run_log.info(f"Found {len(issues)} active fixable issue(s)")
        candidates = self.orchestrator.prioritize_and_filter(issues, fix_types, max_changes)
        if not candidates:
            return SinglePassResult(issues_found=len(issues), outcome=FixOutcome())

        if not dry_run and not skip_backup:
            await self.take_backup(target, user_id, "pre_ai_fix", run_log)

        outcome = await self.orchestrator.apply_fixes(
            target, candidates, dry_run=dry_run, fix_session_id=fix_session_id, run_log=run_log,
        )
        single = SinglePassResult(issues_found=len(issues), outcome=outcome)

        if dry_run:
            estimate = estimate_score_impact(outcome.applied)
            single.reanalysis = ReanalysisResult(
                initial_score=initial_score,
                final_score=min(100.0, initial_score + estimate),
                score_improvement=estimate,
                simulated=True,
            )
            run_log.info(f"Estimated score impact: +{estimate:.1f}")
            return single

        await self.tracker.reset_stuck_fixing(target.id, user_id, fix_session_id=fix_session_id)

        if reanalyze and outcome.successful:
            t0 = perf_counter()
            try:
                await self._settle(settle_delay, None)
                report = await self.reanalyze(target, user_id, fix_session_id, outcome.errors)
                single.reanalysis = ReanalysisResult(
                    initial_score=initial_score,
                    final_score=report.score,
                    score_improvement=report.score - initial_score,
                    analysis_time=round(perf_counter() - t0, 3),
                )
            except RemediationError as exc:
                run_log.error(f"Reanalysis failed: {exc}")
                single.reanalysis = ReanalysisResult(
                    initial_score=initial_score,
                    final_score=initial_score,
                    analysis_time=round(perf_counter() - t0, 3),
                    success=False,
                    error=str(exc),
                )
        return single

    # ── Shared steps ─────────────────────────────────────────────────────

    async def take_backup(self, target: Website, user_id: str, reason: str, run_log: RunLog) -> str | None:
        """Best-effort snapshot; a failure is logged and the run continues."""
        if self.backup is None:
            return None
        try:
            backup_id = await self.backup.snapshot(target, user_id, reason)
        except Exception as exc:
            run_log.warning(f"Backup failed, continuing without it: {exc}")
            return None
        run_log.info(f"Backup created: {backup_id}")
        return backup_id

    async def reanalyze(
        self,
        target: Website,
        user_id: str,
        fix_session_id: str,
        errors: list[str],
    ) -> AnalysisReport:
        """
        Run the Analyzer (with retries), persist the report and reconcile tracking.

        Analyzer failure raises AnalyzerError. Persistence failures after a
        successful analysis are appended to ``errors`` and do not raise.
        """
        try:
            report = await with_retry(
                self.analyzer.analyze,
                target,
                target.keywords or None,
                max_retries=self.analyzer_max_retries,
                base_delay=self.analyzer_retry_base_delay,
                label=f"analyze {target.id}",
            )
        except Exception as exc:
            raise AnalyzerError(f"Reanalysis of website {target.id} failed: {exc}") from exc

        report = report.model_copy(update={"fix_session_id": fix_session_id})
        try:
            await self.reports.append(report)
        except RemediationError as exc:
            logger.warning(f"Could not store report {report.id}: {exc}")
            errors.append(f"Failed to store analysis report: {exc}")

        try:
            summary = await self.tracker.record_scan(
                target.id, user_id, report.issues, report_id=report.id, fix_session_id=fix_session_id,
            )
            errors.extend(summary.errors)
        except PersistenceError as exc:
            logger.warning(f"Could not update issue tracking for website {target.id}: {exc}")
            errors.append(f"Failed to update issue tracking: {exc}")

        return report

    @staticmethod
    async def _settle(delay: float, cancel_event: asyncio.Event | None) -> None:
        if delay <= 0:
            return
        if cancel_event is None:
            await asyncio.sleep(delay)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass


def _cancelled(cancel_event: asyncio.Event | None) -> bool:
    return cancel_event is not None and cancel_event.is_set()
