"""
Fix result, run result and activity models.
"""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from seofix.schema.issue import IssueSeverity


class FixImpact(StrEnum):
    high = "high"
    medium = "medium"
    low = "low"


SEVERITY_TO_IMPACT: dict[IssueSeverity, FixImpact] = {
    IssueSeverity.critical: FixImpact.high,
    IssueSeverity.warning: FixImpact.medium,
    IssueSeverity.info: FixImpact.low,
}


class Fix(BaseModel):
    """Result of one remediation attempt for one tracked issue."""

    type: str
    description: str
    element: str | None = None
    before: str | None = None
    after: str | None = None
    success: bool
    impact: FixImpact = FixImpact.medium
    error: str | None = None
    source_issue_id: str | None = None
    fix_session_id: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class FixBatch(BaseModel):
    """What a Fixer returns for one group of issues."""

    applied: list[Fix] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class SkippedIssue(BaseModel):
    """A candidate dropped before fixing because it was already closed."""

    issue_id: str
    issue_type: str
    status: str
    reason: str


class FixOutcome(BaseModel):
    """Merged result of one orchestrator pass."""

    applied: list[Fix] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    skipped: list[SkippedIssue] = Field(default_factory=list)

    @property
    def successful(self) -> list[Fix]:
        return [f for f in self.applied if f.success]

    @property
    def failed(self) -> list[Fix]:
        return [f for f in self.applied if not f.success]


class FixStats(BaseModel):
    total_issues_found: int = 0
    fixes_attempted: int = 0
    fixes_successful: int = 0
    fixes_failed: int = 0
    fixes_skipped: int = 0
    estimated_impact: str = "low"
    breakdown: dict[str, int] = Field(default_factory=dict, description="Successful fixes per issue type")


class ReanalysisResult(BaseModel):
    enabled: bool = True
    initial_score: float = 0.0
    final_score: float = 0.0
    score_improvement: float = 0.0
    analysis_time: float = 0.0
    success: bool = True
    error: str | None = None
    simulated: bool = False


class FixResult(BaseModel):
    """Outcome of a single-shot engine run."""

    success: bool
    dry_run: bool = False
    fixes_applied: list[Fix] = Field(default_factory=list)
    stats: FixStats = Field(default_factory=FixStats)
    errors: list[str] | None = None
    message: str = ""
    log: list[str] = Field(default_factory=list)
    fix_session_id: str
    reanalysis: ReanalysisResult | None = None


class AvailableFixTypes(BaseModel):
    available_fixes: list[str] = Field(default_factory=list)
    total_fixable_issues: int = 0
    estimated_time: str = "0 minutes"
    breakdown: dict[str, int] = Field(default_factory=dict)


class ActivityEntry(BaseModel):
    """Structured summary of a run, appended to the activity log."""

    user_id: str
    website_id: str
    type: str
    description: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
