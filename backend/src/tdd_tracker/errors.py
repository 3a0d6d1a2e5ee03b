"""Failure kinds of one ingestion attempt.

Fatal kinds abort the run and carry the identity being processed so the
operator can retry it. Degraded kinds are logged by the assembler and folded
into a zero/empty value; they are never raised past it.
"""

from __future__ import annotations

from typing import Optional


class TrackerError(Exception):
    """Base class for every error raised by tdd_tracker."""

    def __init__(self, message: str, ref: Optional[str] = None) -> None:
        super().__init__(message)
        self.ref = ref


class FatalError(TrackerError):
    pass


class DegradedError(TrackerError):
    pass


class ReferenceResolutionError(FatalError):
    pass


class CommitLookupError(FatalError):
    pass


class StorePersistenceError(FatalError):
    pass


class RemoteUrlUnavailable(DegradedError):
    pass


class DiffComputationFailure(DegradedError):
    pass


class TestRunnerFailure(DegradedError):
    __test__ = False  # not a pytest class


class ReportUnreadable(DegradedError):
    pass


class AmbiguousRepositoryError(TrackerError):
    """A repository name matched more than one stored repository."""
