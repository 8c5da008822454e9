"""Issue tracking package — lifecycle state machine and detection reconciliation."""

from seofix.tracking.matching import find_matching_issue
from seofix.tracking.store import InMemoryIssueStore, RedisIssueStore
from seofix.tracking.tracker import VALID_TRANSITIONS, DetectionSummary, IssueTracker

__all__ = (
    "DetectionSummary",
    "InMemoryIssueStore",
    "IssueTracker",
    "RedisIssueStore",
    "VALID_TRANSITIONS",
    "find_matching_issue",
)
