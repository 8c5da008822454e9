"""
Convergence loop models.
"""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from seofix.schema.fix import Fix, FixResult


class StopReason(StrEnum):
    target_reached = "target_reached"
    max_iterations = "max_iterations"
    no_improvement = "no_improvement"
    error = "error"
    cancelled = "cancelled"


class IterationRecord(BaseModel):
    """Snapshot of one fix-then-measure pass."""

    iteration: int
    score_before: float
    score_after: float
    fixes_attempted: int
    fixes_successful: int
    improvement: float
    started_at: datetime
    finished_at: datetime
    duration_seconds: float
    reanalyzed: bool = True


class ConvergenceOptions(BaseModel):
    """Loop parameters; ranges mirror what the public API accepts."""

    target_score: float = Field(default=85.0, ge=50.0, le=100.0)
    max_iterations: int = Field(default=5, ge=1, le=10)
    min_improvement_threshold: float = Field(default=2.0, ge=0.0)
    max_changes_per_iteration: int = Field(default=20, ge=1)
    settle_delay: float = Field(default=5.0, ge=0.0, description="Seconds to wait before reanalysis")
    skip_backup: bool = False
    fix_types: list[str] | None = None


class ConvergenceResult(BaseModel):
    initial_score: float
    final_score: float
    iterations: list[IterationRecord] = Field(default_factory=list)
    stop_reason: StopReason
    applied_fixes: list[Fix] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    @property
    def score_improvement(self) -> float:
        return self.final_score - self.initial_score


class IterativeFixResult(FixResult):
    """Outcome of an iterate-until-stop engine run."""

    iterations: list[IterationRecord] = Field(default_factory=list)
    initial_score: float = 0.0
    final_score: float = 0.0
    score_improvement: float = 0.0
    target_score: float = 85.0
    iterations_completed: int = 0
    stop_reason: StopReason = StopReason.error
    recommendations: list[str] = Field(default_factory=list)
