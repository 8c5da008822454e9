"""
Result summaries: run stats, impact tier, fix time estimate and follow-up
recommendations for iterative runs.
"""

from __future__ import annotations

from typing import Sequence

from seofix.schema.convergence import StopReason
from seofix.schema.fix import Fix, FixImpact, FixStats

__all__ = (
    "build_stats",
    "estimate_fix_time",
    "estimated_impact_tier",
    "iterative_recommendations",
)

MINUTES_PER_FIX = 2
MIN_FIX_MINUTES = 3


def estimated_impact_tier(fixes: Sequence[Fix]) -> str:
    high = sum(1 for f in fixes if f.success and f.impact == FixImpact.high)
    if high >= 5:
        return "very high"
    if high >= 3:
        return "high"
    if high >= 1:
        return "medium"
    return "low"


def build_stats(fixes: Sequence[Fix], *, total_issues_found: int, skipped: int = 0) -> FixStats:
    breakdown: dict[str, int] = {}
    for fix in fixes:
        if fix.success:
            breakdown[fix.type] = breakdown.get(fix.type, 0) + 1
    successful = sum(breakdown.values())
    return FixStats(
        total_issues_found=total_issues_found,
        fixes_attempted=len(fixes),
        fixes_successful=successful,
        fixes_failed=len(fixes) - successful,
        fixes_skipped=skipped,
        estimated_impact=estimated_impact_tier(fixes),
        breakdown=breakdown,
    )


def estimate_fix_time(fix_count: int) -> str:
    """2 minutes per fix, at least 3 minutes; ``"Xh Ym"`` from one hour up."""
    if fix_count <= 0:
        return "0 minutes"
    total = max(MIN_FIX_MINUTES, fix_count * MINUTES_PER_FIX)
    if total < 60:
        return f"{total} minutes"
    hours, minutes = divmod(total, 60)
    return f"{hours}h {minutes}m" if minutes else f"{hours}h"


def iterative_recommendations(
    stop_reason: StopReason,
    final_score: float,
    score_improvement: float,
    iterations_completed: int,
) -> list[str]:
    recommendations: list[str] = []

    if stop_reason == StopReason.target_reached:
        recommendations.append(f"Target reached: the website now scores {final_score:.1f}/100.")
        recommendations.append("Monitor the score weekly to keep it there.")
        if final_score < 95:
            recommendations.append("A detailed content audit could push the score past 95.")
    elif stop_reason == StopReason.max_iterations:
        recommendations.append(
            f"Reached the iteration limit. Score improved by {score_improvement:.1f} points."
        )
        recommendations.append("Address the remaining critical issues manually, then run again.")
        recommendations.append("Review technical SEO elements that need manual intervention.")
    elif stop_reason == StopReason.no_improvement:
        recommendations.append("Score improvement plateaued. Remaining issues likely need manual work.")
        recommendations.append("Focus on content quality and technical SEO elements.")
        recommendations.append("Review site structure and user experience factors.")
    elif stop_reason == StopReason.error:
        recommendations.append("The run hit errors. Check that the website is reachable and try again.")
        recommendations.append("Review the run log for issues that need manual attention.")
    elif stop_reason == StopReason.cancelled:
        recommendations.append("The run was cancelled. Start it again to continue from the current state.")

    if final_score < 70:
        recommendations.append("Focus on critical issues first: meta descriptions, title tags and images.")
    elif final_score < 85:
        recommendations.append("Work on advanced SEO: internal linking, content structure, technical tuning.")

    if iterations_completed > 0:
        average = score_improvement / iterations_completed
        if average > 5:
            recommendations.append(f"Strong improvement trend (+{average:.1f} points per iteration).")
        elif average > 2:
            recommendations.append(
                f"Steady improvement (+{average:.1f} points per iteration). Prioritize high-impact fixes."
            )

    return recommendations
