"""
Unit tests for FixOrchestrator — prioritization, dispatch and result reconciliation.
"""

from __future__ import annotations

import pytest

from seofix.core.errors import PersistenceError
from seofix.fixes.registry import FixerRegistry
from seofix.orchestration.orchestrator import FixOrchestrator
from seofix.orchestration.runlog import RunLog
from seofix.schema.issue import IssueStatus, TrackedIssue
from tests.factories import USER_ID, WEBSITE_ID, StubFixer, make_analyzer_issue


def _issue(issue_type: str, severity: str) -> TrackedIssue:
    return TrackedIssue(website_id=WEBSITE_ID, user_id=USER_ID, issue_type=issue_type, title=issue_type, severity=severity)


async def _track(tracker, *specs: tuple[str, str]) -> list[TrackedIssue]:
    await tracker.record_detection(WEBSITE_ID, USER_ID, [make_analyzer_issue(t, s) for t, s in specs])
    return await tracker.get_active_fixable_issues(WEBSITE_ID, USER_ID)


# ─── Prioritization ──────────────────────────────────────────────


def test_prioritize_keeps_critical_first_in_original_order():
    issues = [
        _issue("missing_alt_text", "warning"),
        _issue("missing_meta_description", "critical"),
        _issue("poor_title_tag", "critical"),
    ]

    selected = FixOrchestrator.prioritize_and_filter(issues, None, 2)

    assert [i.issue_type for i in selected] == ["missing_meta_description", "poor_title_tag"]


def test_prioritize_applies_allow_list_before_truncation():
    issues = [
        _issue("missing_alt_text", "info"),
        _issue("missing_meta_description", "critical"),
        _issue("internal_linking", "warning"),
    ]

    selected = FixOrchestrator.prioritize_and_filter(issues, ["missing_alt_text", "internal_linking"], 5)

    assert [i.issue_type for i in selected] == ["internal_linking", "missing_alt_text"]


def test_prioritize_without_limit_returns_everything():
    issues = [_issue("a", "info"), _issue("b", "warning"), _issue("c", "info")]

    assert [i.issue_type for i in FixOrchestrator.prioritize_and_filter(issues)] == ["b", "a", "c"]


# ─── Dispatch ────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_failing_fixer_is_isolated_to_its_group(tracker, website):
    candidates = await _track(tracker, ("internal_linking", "warning"), ("missing_alt_text", "warning"))
    registry = FixerRegistry()
    registry.register("internal_linking", StubFixer(raises=RuntimeError("CMS rejected the update")))
    registry.register("missing_alt_text", StubFixer())
    orchestrator = FixOrchestrator(tracker, registry, fixer_timeout=5)

    outcome = await orchestrator.apply_fixes(website, candidates, dry_run=False, fix_session_id="s1")

    by_type = {f.type: f for f in outcome.applied}
    assert by_type["missing_alt_text"].success is True
    assert by_type["internal_linking"].success is False
    assert "CMS rejected the update" in by_type["internal_linking"].error
    assert any("internal_linking" in e for e in outcome.errors)

    statuses = {i.issue_type: (await tracker.get(i.id)).status for i in candidates}
    assert statuses == {"missing_alt_text": IssueStatus.fixed, "internal_linking": IssueStatus.detected}
    assert all(f.fix_session_id == "s1" for f in outcome.applied)


@pytest.mark.asyncio
async def test_unregistered_type_fails_closed(tracker, website):
    candidates = await _track(tracker, ("missing_schema", "warning"))
    orchestrator = FixOrchestrator(tracker, FixerRegistry())

    outcome = await orchestrator.apply_fixes(website, candidates, dry_run=False, fix_session_id="s1")

    [fix] = outcome.applied
    assert fix.success is False
    assert fix.error == "Fix type 'missing_schema' not implemented"
    assert (await tracker.get(candidates[0].id)).status == IssueStatus.detected


@pytest.mark.asyncio
async def test_closed_candidates_are_skipped_not_failed(tracker, website):
    candidates = await _track(tracker, ("missing_alt_text", "warning"), ("poor_title_tag", "critical"))
    await tracker.update_status(candidates[1].id, IssueStatus.resolved)
    fixer = StubFixer()
    registry = FixerRegistry({"missing_alt_text": fixer, "poor_title_tag": fixer})
    orchestrator = FixOrchestrator(tracker, registry)

    outcome = await orchestrator.apply_fixes(website, candidates, dry_run=False, fix_session_id="s1")

    assert [f.source_issue_id for f in outcome.applied] == [candidates[0].id]
    [skipped] = outcome.skipped
    assert skipped.issue_id == candidates[1].id
    assert skipped.status == "resolved"
    assert fixer.calls == [[candidates[0].id]]


@pytest.mark.asyncio
async def test_fixer_timeout_fails_the_group(tracker, website):
    candidates = await _track(tracker, ("missing_alt_text", "warning"))
    registry = FixerRegistry({"missing_alt_text": StubFixer(delay=1.0)})
    orchestrator = FixOrchestrator(tracker, registry, fixer_timeout=0.05)

    outcome = await orchestrator.apply_fixes(website, candidates, dry_run=False, fix_session_id="s1")

    [fix] = outcome.applied
    assert fix.success is False
    assert "timed out" in fix.error
    assert (await tracker.get(candidates[0].id)).status == IssueStatus.detected


@pytest.mark.asyncio
async def test_unreported_candidates_are_failed(tracker, website):
    await tracker.record_detection(
        WEBSITE_ID,
        USER_ID,
        [make_analyzer_issue("missing_alt_text"), make_analyzer_issue("other", title="Favicon is missing")],
    )
    candidates = await tracker.get_active_fixable_issues(WEBSITE_ID, USER_ID)
    fixer = StubFixer(skip_first=True)
    registry = FixerRegistry({"missing_alt_text": fixer, "other": fixer})
    orchestrator = FixOrchestrator(tracker, registry)

    outcome = await orchestrator.apply_fixes(website, candidates, dry_run=False, fix_session_id="s1")

    # each group holds one issue, so skip_first leaves every group unreported
    assert len(outcome.applied) == 2
    assert all(not f.success and f.error == "Fixer reported no result" for f in outcome.applied)


@pytest.mark.asyncio
async def test_fixes_without_source_id_are_assigned_in_order(tracker, website):
    candidates = await _track(tracker, ("missing_alt_text", "warning"))
    registry = FixerRegistry({"missing_alt_text": StubFixer(report_ids=False)})
    orchestrator = FixOrchestrator(tracker, registry)

    outcome = await orchestrator.apply_fixes(website, candidates, dry_run=False, fix_session_id="s1")

    [fix] = outcome.applied
    assert fix.success is True
    assert fix.source_issue_id == candidates[0].id
    assert (await tracker.get(candidates[0].id)).status == IssueStatus.fixed


@pytest.mark.asyncio
async def test_dry_run_calls_no_fixer_and_changes_nothing(tracker, issue_store, website):
    candidates = await _track(tracker, ("missing_alt_text", "warning"), ("missing_schema", "info"))
    before = await issue_store.query(WEBSITE_ID, USER_ID)
    fixer = StubFixer()
    registry = FixerRegistry({"missing_alt_text": fixer})
    orchestrator = FixOrchestrator(tracker, registry)
    run_log = RunLog()

    outcome = await orchestrator.apply_fixes(website, candidates, dry_run=True, fix_session_id="s1", run_log=run_log)

    assert fixer.calls == []
    by_type = {f.type: f for f in outcome.applied}
    assert by_type["missing_alt_text"].success is True
    assert by_type["missing_alt_text"].before == "before"
    assert by_type["missing_alt_text"].after == "after"
    assert by_type["missing_schema"].success is False
    assert await issue_store.query(WEBSITE_ID, USER_ID) == before
    assert run_log.lines


@pytest.mark.asyncio
async def test_empty_registry_override_is_honoured(tracker, website):
    candidates = await _track(tracker, ("missing_alt_text", "warning"))
    fixer = StubFixer()
    orchestrator = FixOrchestrator(tracker, FixerRegistry({"missing_alt_text": fixer}))

    outcome = await orchestrator.apply_fixes(
        website, candidates, dry_run=False, fix_session_id="s1", registry=FixerRegistry()
    )

    assert fixer.calls == []
    [fix] = outcome.applied
    assert fix.success is False
    assert "not implemented" in fix.error


@pytest.mark.asyncio
async def test_persistence_failure_on_result_is_contained(tracker, website, monkeypatch):
    candidates = await _track(tracker, ("missing_alt_text", "warning"))
    registry = FixerRegistry({"missing_alt_text": StubFixer()})
    orchestrator = FixOrchestrator(tracker, registry)
    original = tracker.update_status

    async def flaky_update(issue_id, new_status, **kwargs):
        if new_status == IssueStatus.fixed:
            raise PersistenceError("store unavailable")
        return await original(issue_id, new_status, **kwargs)

    monkeypatch.setattr(tracker, "update_status", flaky_update)

    outcome = await orchestrator.apply_fixes(website, candidates, dry_run=False, fix_session_id="s1")

    assert outcome.applied[0].success is True
    assert (await tracker.get(candidates[0].id)).status == IssueStatus.fixing
