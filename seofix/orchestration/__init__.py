"""Fix orchestration package — select → fix → reanalyze loop and the public engine."""

from seofix.orchestration.convergence import ConvergenceController, should_stop
from seofix.orchestration.engine import RemediationEngine
from seofix.orchestration.estimator import estimate_score_impact
from seofix.orchestration.orchestrator import FixOrchestrator

__all__ = (
    "ConvergenceController",
    "FixOrchestrator",
    "RemediationEngine",
    "estimate_score_impact",
    "should_stop",
)
