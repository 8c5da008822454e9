"""
Analyzer report models.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field
from ulid import ULID

from seofix.schema.issue import IssueSeverity


class AnalyzerIssue(BaseModel):
    """A single issue as reported by the Analyzer."""

    type: str | None = Field(default=None, description="Issue type key; derived from the title when missing")
    title: str
    description: str = ""
    severity: IssueSeverity = IssueSeverity.warning
    auto_fixable: bool = False
    element_path: str | None = None
    current_value: str | None = None
    recommended_value: str | None = None


class AnalysisReport(BaseModel):
    """Immutable Analyzer result for one website."""

    id: str = Field(default_factory=lambda: str(ULID()))
    website_id: str
    score: float = Field(ge=0.0, le=100.0)
    issues: list[AnalyzerIssue] = Field(default_factory=list)
    recommendations: list[Any] = Field(default_factory=list)
    fix_session_id: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
