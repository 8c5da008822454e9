"""
Matching of freshly detected issues against tracked ones.

A tracked issue is identified by (website_id, issue_type). Matching tries, in
order:

1. the tracked issue with the same issue type;
2. for untyped (``other``) issues only, a tracked ``other`` issue whose
   normalized title is equal, or that shares a key SEO term or most of its
   significant words with the fresh title.

A title match is rejected when both sides carry an element path and the paths
differ.
"""

from __future__ import annotations

from typing import Sequence

from seofix.schema.analysis import AnalyzerIssue
from seofix.schema.issue import TrackedIssue
from seofix.tracking.classification import OTHER_ISSUE_TYPE
from seofix.util.text import normalize_title, title_tokens

__all__ = ("find_matching_issue", "titles_overlap")

KEY_TERMS: tuple[str, ...] = (
    "meta description",
    "title tag",
    "h1",
    "alt text",
    "viewport",
    "schema",
    "content quality",
    "readability",
)

# Share of the shorter title's significant words that must appear in the other.
TOKEN_OVERLAP_RATIO = 0.75


def titles_overlap(a: str, b: str) -> bool:
    """Fuzzy title equality used for untyped issues."""
    na, nb = normalize_title(a), normalize_title(b)
    if not na or not nb:
        return False
    if na == nb:
        return True

    padded_a, padded_b = f" {na} ", f" {nb} "
    if any(f" {term} " in padded_a and f" {term} " in padded_b for term in KEY_TERMS):
        return True

    ta, tb = title_tokens(a), title_tokens(b)
    shorter = min(len(ta), len(tb))
    if shorter == 0:
        return False
    return len(ta & tb) / shorter >= TOKEN_OVERLAP_RATIO


def _element_paths_conflict(tracked: TrackedIssue, fresh: AnalyzerIssue) -> bool:
    return bool(tracked.element_path and fresh.element_path and tracked.element_path != fresh.element_path)


def find_matching_issue(
    issue_type: str,
    fresh: AnalyzerIssue,
    tracked: Sequence[TrackedIssue],
) -> TrackedIssue | None:
    """Return the tracked issue *fresh* refers to, or None for a new issue."""
    if issue_type != OTHER_ISSUE_TYPE:
        for candidate in tracked:
            if candidate.issue_type == issue_type:
                return candidate
        return None

    for candidate in tracked:
        if candidate.issue_type != OTHER_ISSUE_TYPE:
            continue
        if _element_paths_conflict(candidate, fresh):
            continue
        if titles_overlap(candidate.title, fresh.title):
            return candidate
    return None
