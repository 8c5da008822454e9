"""
Tests for the convergence loop: stop rules and iterative engine runs.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from seofix.orchestration.convergence import should_stop
from seofix.schema.convergence import IterationRecord, StopReason
from seofix.schema.issue import IssueStatus
from tests.factories import USER_ID, WEBSITE_ID, ScriptedAnalyzer, StubFixer, make_analyzer_issue, seed_scan

ISSUES = [make_analyzer_issue("missing_alt_text", "warning"), make_analyzer_issue("poor_title_tag", "critical")]


def _record(iteration: int, before: float, after: float, successful: int = 1) -> IterationRecord:
    now = datetime.now(UTC)
    return IterationRecord(
        iteration=iteration,
        score_before=before,
        score_after=after,
        fixes_attempted=max(successful, 1),
        fixes_successful=successful,
        improvement=after - before,
        started_at=now,
        finished_at=now,
        duration_seconds=0.0,
    )


def _register_all(registry, fixer) -> None:
    registry.register("missing_alt_text", fixer)
    registry.register("poor_title_tag", fixer)


# ─── Stop rules ──────────────────────────────────────────────────


@pytest.mark.parametrize(
    "records,expected",
    [
        ([], (False, None)),
        ([_record(1, 70, 76)], (False, None)),
        ([_record(1, 70, 86)], (True, StopReason.target_reached)),
        ([_record(1, 70, 71)], (True, StopReason.no_improvement)),
        ([_record(1, 70, 70, successful=0)], (True, StopReason.no_improvement)),
        ([_record(1, 60, 66), _record(2, 66, 72), _record(3, 72, 78)], (True, StopReason.max_iterations)),
        ([_record(3, 72, 90)], (True, StopReason.target_reached)),
    ],
)
def test_should_stop(records, expected):
    assert should_stop(records, target_score=85, max_iterations=3, min_improvement_threshold=2) == expected


# ─── Iterative runs ──────────────────────────────────────────────


@pytest.mark.asyncio
async def test_iterates_until_target_reached(tracker, reports, registry, make_engine):
    await seed_scan(tracker, reports, 70, ISSUES)
    fixer = StubFixer()
    _register_all(registry, fixer)
    analyzer = ScriptedAnalyzer([76, 82, 88], ISSUES)

    result = await make_engine(analyzer).run_iteratively(WEBSITE_ID, USER_ID, target_score=85, settle_delay=0)

    assert result.success is True
    assert result.stop_reason == StopReason.target_reached
    assert [(i.score_before, i.score_after) for i in result.iterations] == [(70, 76), (76, 82), (82, 88)]
    assert result.iterations_completed == 3
    assert result.score_improvement == 18
    assert result.final_score == 88
    assert analyzer.calls == 3
    assert len(fixer.calls) == 6
    assert result.recommendations


@pytest.mark.asyncio
async def test_stops_on_plateau(tracker, reports, registry, make_engine):
    await seed_scan(tracker, reports, 70, ISSUES)
    _register_all(registry, StubFixer())
    analyzer = ScriptedAnalyzer([71], ISSUES)

    result = await make_engine(analyzer).run_iteratively(WEBSITE_ID, USER_ID, settle_delay=0)

    assert result.stop_reason == StopReason.no_improvement
    assert result.iterations_completed == 1
    assert result.iterations[0].improvement == 1


@pytest.mark.asyncio
async def test_iteration_count_is_bounded(tracker, reports, registry, make_engine):
    await seed_scan(tracker, reports, 60, ISSUES)
    _register_all(registry, StubFixer())
    analyzer = ScriptedAnalyzer([63, 66, 69, 72], ISSUES)

    result = await make_engine(analyzer).run_iteratively(
        WEBSITE_ID, USER_ID, target_score=95, max_iterations=2, settle_delay=0
    )

    assert result.stop_reason == StopReason.max_iterations
    assert result.iterations_completed == 2
    assert analyzer.calls == 2


@pytest.mark.asyncio
async def test_no_successful_fixes_stops_without_reanalysis(tracker, reports, registry, make_engine):
    await seed_scan(tracker, reports, 70, ISSUES)
    _register_all(registry, StubFixer(succeed=False))
    analyzer = ScriptedAnalyzer([90], ISSUES)

    result = await make_engine(analyzer).run_iteratively(WEBSITE_ID, USER_ID, settle_delay=0)

    assert result.stop_reason == StopReason.no_improvement
    [record] = result.iterations
    assert record.score_after == record.score_before == 70
    assert record.reanalyzed is False
    assert analyzer.calls == 0


@pytest.mark.asyncio
async def test_initial_score_at_target_does_nothing(tracker, reports, registry, make_engine):
    await seed_scan(tracker, reports, 90, ISSUES)
    fixer = StubFixer()
    _register_all(registry, fixer)
    backup = AsyncMock()

    result = await make_engine(ScriptedAnalyzer([95]), backup=backup).run_iteratively(
        WEBSITE_ID, USER_ID, settle_delay=0
    )

    assert result.stop_reason == StopReason.target_reached
    assert result.iterations == []
    assert fixer.calls == []
    backup.snapshot.assert_not_awaited()


@pytest.mark.asyncio
async def test_no_fixable_issues_counts_as_target_reached(tracker, reports, registry, make_engine):
    await seed_scan(tracker, reports, 50, [make_analyzer_issue("thin_content", auto_fixable=False)])

    backup = AsyncMock()

    result = await make_engine(ScriptedAnalyzer([60]), backup=backup).run_iteratively(
        WEBSITE_ID, USER_ID, settle_delay=0
    )

    assert result.stop_reason == StopReason.target_reached
    assert result.iterations_completed == 0
    backup.snapshot.assert_not_awaited()


@pytest.mark.asyncio
async def test_backup_taken_once_before_first_fix(tracker, reports, registry, make_engine):
    await seed_scan(tracker, reports, 50, ISSUES)
    _register_all(registry, StubFixer())
    backup = AsyncMock()

    result = await make_engine(ScriptedAnalyzer([60, 70, 80], ISSUES), backup=backup).run_iteratively(
        WEBSITE_ID, USER_ID, target_score=95, max_iterations=3, settle_delay=0
    )

    assert result.iterations_completed == 3
    backup.snapshot.assert_awaited_once()
    assert backup.snapshot.await_args.args[2] == "pre_ai_fix_iterative"


@pytest.mark.asyncio
async def test_analyzer_failure_keeps_partial_results(tracker, reports, registry, make_engine):
    await seed_scan(tracker, reports, 70, ISSUES)
    _register_all(registry, StubFixer())

    result = await make_engine(ScriptedAnalyzer([0], fail=True)).run_iteratively(
        WEBSITE_ID, USER_ID, settle_delay=0
    )

    assert result.success is False
    assert result.stop_reason == StopReason.error
    assert len(result.fixes_applied) == 2
    assert any("analyzer unreachable" in e for e in result.errors)
    assert result.final_score == 70
    assert any("ERROR" in line for line in result.log)


@pytest.mark.asyncio
async def test_backup_failure_is_not_fatal(tracker, reports, registry, make_engine):
    await seed_scan(tracker, reports, 70, ISSUES)
    _register_all(registry, StubFixer())
    backup = AsyncMock()
    backup.snapshot.side_effect = OSError("disk full")

    result = await make_engine(ScriptedAnalyzer([90], ISSUES), backup=backup).run_iteratively(
        WEBSITE_ID, USER_ID, settle_delay=0
    )

    assert result.success is True
    assert result.stop_reason == StopReason.target_reached
    assert any("Backup failed" in line for line in result.log)


@pytest.mark.asyncio
async def test_skip_backup(tracker, reports, registry, make_engine):
    await seed_scan(tracker, reports, 70, ISSUES)
    _register_all(registry, StubFixer())
    backup = AsyncMock()

    await make_engine(ScriptedAnalyzer([90], ISSUES), backup=backup).run_iteratively(
        WEBSITE_ID, USER_ID, settle_delay=0, skip_backup=True
    )

    backup.snapshot.assert_not_awaited()


@pytest.mark.asyncio
async def test_cancelled_before_first_iteration(tracker, reports, registry, make_engine):
    await seed_scan(tracker, reports, 70, ISSUES)
    fixer = StubFixer()
    _register_all(registry, fixer)
    cancel = asyncio.Event()
    cancel.set()

    result = await make_engine(ScriptedAnalyzer([90], ISSUES)).run_iteratively(
        WEBSITE_ID, USER_ID, settle_delay=0, cancel_event=cancel
    )

    assert result.stop_reason == StopReason.cancelled
    assert result.success is True
    assert fixer.calls == []


@pytest.mark.asyncio
async def test_cancelled_between_fix_and_reanalysis(tracker, reports, registry, make_engine):
    await seed_scan(tracker, reports, 70, ISSUES)
    cancel = asyncio.Event()

    class CancellingFixer(StubFixer):
        async def apply(self, target, issues):
            cancel.set()
            return await super().apply(target, issues)

    _register_all(registry, CancellingFixer())
    analyzer = ScriptedAnalyzer([90], ISSUES)

    result = await make_engine(analyzer).run_iteratively(WEBSITE_ID, USER_ID, settle_delay=0, cancel_event=cancel)

    assert result.stop_reason == StopReason.cancelled
    assert analyzer.calls == 0
    [record] = result.iterations
    assert record.reanalyzed is False
    assert record.fixes_successful == 2


@pytest.mark.asyncio
async def test_cancelled_while_settling_skips_reanalysis(tracker, reports, registry, make_engine):
    await seed_scan(tracker, reports, 70, ISSUES)
    _register_all(registry, StubFixer())
    analyzer = ScriptedAnalyzer([71], ISSUES)
    cancel = asyncio.Event()

    async def cancel_soon():
        await asyncio.sleep(0.1)
        cancel.set()

    canceller = asyncio.create_task(cancel_soon())
    result = await make_engine(analyzer).run_iteratively(WEBSITE_ID, USER_ID, settle_delay=2, cancel_event=cancel)
    await canceller

    assert result.stop_reason == StopReason.cancelled
    assert analyzer.calls == 0
    [record] = result.iterations
    assert record.reanalyzed is False
    assert result.final_score == 70


@pytest.mark.asyncio
async def test_iterative_run_leaves_no_issue_in_fixing(tracker, reports, registry, make_engine, issue_store):
    await seed_scan(tracker, reports, 70, ISSUES)
    _register_all(registry, StubFixer())

    await make_engine(ScriptedAnalyzer([90], [])).run_iteratively(WEBSITE_ID, USER_ID, settle_delay=0)

    statuses = {i.status for i in await issue_store.query(WEBSITE_ID, USER_ID)}
    assert IssueStatus.fixing not in statuses
    assert statuses == {IssueStatus.fixed}


@pytest.mark.parametrize(
    "kwargs,field",
    [
        ({"target_score": 40}, "target_score"),
        ({"target_score": 101}, "target_score"),
        ({"max_iterations": 0}, "max_iterations"),
        ({"max_iterations": 11}, "max_iterations"),
        ({"min_improvement_threshold": -1}, "min_improvement_threshold"),
        ({"max_changes_per_iteration": 0}, "max_changes_per_iteration"),
    ],
)
@pytest.mark.asyncio
async def test_invalid_options_are_rejected(tracker, reports, registry, make_engine, kwargs, field):
    await seed_scan(tracker, reports, 70, ISSUES)
    fixer = StubFixer()
    _register_all(registry, fixer)

    result = await make_engine(ScriptedAnalyzer([90])).run_iteratively(WEBSITE_ID, USER_ID, settle_delay=0, **kwargs)

    assert result.success is False
    assert result.stop_reason == StopReason.error
    assert field in result.errors[0]
    assert fixer.calls == []
