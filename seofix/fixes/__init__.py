"""Fixer registry and helpers shared by fixer implementations."""

from seofix.fixes.common import failed_fix, fix_from_issue, group_by_type, impact_for
from seofix.fixes.registry import FixerRegistry

__all__ = (
    "FixerRegistry",
    "failed_fix",
    "fix_from_issue",
    "group_by_type",
    "impact_for",
)
