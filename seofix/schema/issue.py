"""
Tracked issue models and lifecycle status.
"""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field
from ulid import ULID


class IssueSeverity(StrEnum):
    critical = "critical"
    warning = "warning"
    info = "info"


class IssueStatus(StrEnum):
    detected = "detected"
    fixing = "fixing"
    fixed = "fixed"
    resolved = "resolved"
    reappeared = "reappeared"


OPEN_STATUSES: frozenset[IssueStatus] = frozenset({IssueStatus.detected, IssueStatus.reappeared})


class StatusChange(BaseModel):
    """One entry of a tracked issue's append-only status history."""

    previous_status: IssueStatus | None
    new_status: IssueStatus
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    fix_session_id: str | None = None
    note: str | None = None
    error: str | None = None


class TrackedIssue(BaseModel):
    """Persistent record of one issue type detected on one website."""

    id: str = Field(default_factory=lambda: str(ULID()))
    website_id: str
    user_id: str
    issue_type: str
    title: str
    description: str = ""
    severity: IssueSeverity = IssueSeverity.warning
    auto_fixable: bool = False
    status: IssueStatus = IssueStatus.detected
    element_path: str | None = None
    current_value: str | None = None
    recommended_value: str | None = None
    detected_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    last_seen_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    fixed_at: datetime | None = None
    resolved_at: datetime | None = None
    fix_session_id: str | None = None
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="status_history, detection_count, fix_attempts, last_fix_error, report links",
    )

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    @property
    def status_history(self) -> list[StatusChange]:
        return [StatusChange.model_validate(entry) for entry in self.metadata.get("status_history", [])]


class IssueFilter(BaseModel):
    """Selection options for active fixable issues."""

    auto_fixable_only: bool = True
    fix_types: list[str] | None = None


class IssueTrackingSummary(BaseModel):
    """Per-status counts for one website."""

    total_issues: int = 0
    detected: int = 0
    fixing: int = 0
    fixed: int = 0
    resolved: int = 0
    reappeared: int = 0
    auto_fixable: int = 0
    completion_percentage: int = 0
    last_activity: datetime | None = None
