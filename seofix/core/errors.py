"""
Error taxonomy for the remediation engine.

Only setup failures and Analyzer failures abort a run; everything else is
contained at the Fixer group or persistence call that raised it.
"""

from __future__ import annotations

__all__ = (
    "AnalyzerError",
    "FixerError",
    "InvalidTransitionError",
    "NoAnalysisError",
    "NotFoundError",
    "PersistenceError",
    "RemediationError",
    "ValidationError",
)


class RemediationError(Exception):
    """Base class for all engine errors."""


class NotFoundError(RemediationError):
    """Website or tracked issue is missing, or the user has no access to it."""


class NoAnalysisError(RemediationError):
    """No Analyzer report exists yet for the website."""


class ValidationError(RemediationError):
    """Run options are out of range."""


class InvalidTransitionError(RemediationError):
    """A status change is not allowed by the issue lifecycle."""

    def __init__(self, issue_id: str, current: str, requested: str):
        self.issue_id = issue_id
        self.current = current
        self.requested = requested
        super().__init__(f"Issue {issue_id}: invalid transition {current} → {requested}")


class FixerError(RemediationError):
    """A Fixer raised while processing its group of issues."""

    def __init__(self, issue_type: str, message: str):
        self.issue_type = issue_type
        super().__init__(f"{issue_type}: {message}")


class AnalyzerError(RemediationError):
    """Reanalysis failed."""


class PersistenceError(RemediationError):
    """A tracking, report, activity or backup write failed."""
