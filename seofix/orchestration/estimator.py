"""
Dry-run score impact estimate.

Only used to preview a dry run; real score deltas always come from the Analyzer.
"""

from __future__ import annotations

from typing import Iterable

from seofix.schema.fix import Fix, FixImpact

__all__ = ("MAX_ESTIMATE", "estimate_score_impact", "type_bonus")

IMPACT_WEIGHTS: dict[FixImpact, float] = {
    FixImpact.high: 8.0,
    FixImpact.medium: 4.0,
    FixImpact.low: 2.0,
}

MAX_ESTIMATE = 25.0


def type_bonus(issue_type: str) -> float:
    """Title and meta description fixes +3; alt text and heading fixes +2."""
    key = issue_type.lower()
    if "title" in key or "meta_description" in key:
        return 3.0
    if "alt_text" in key or "heading" in key or "h1" in key:
        return 2.0
    return 0.0


def estimate_score_impact(fixes: Iterable[Fix]) -> float:
    total = sum(IMPACT_WEIGHTS[f.impact] + type_bonus(f.type) for f in fixes if f.success)
    return min(total, MAX_ESTIMATE)
