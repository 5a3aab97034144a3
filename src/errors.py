"""Error taxonomy for the Mockup Sync pipeline.

Per-slug errors (:class:`ParseError`, :class:`StagingError`,
:class:`PolicyViolation`) are caught at the step boundary and recorded in the
run ledger.  Run-fatal errors (:class:`DiscoveryConflict`, :class:`CommitError`)
propagate to the pipeline, which rolls back when writes have happened.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path


class MockSyncError(Exception):
    """Base class for every error raised by the pipeline."""

    def __init__(
        self,
        message: str,
        *,
        slug: str | None = None,
        paths: Iterable[str | Path] = (),
    ) -> None:
        self.slug = slug
        self.paths = tuple(str(p) for p in paths)
        super().__init__(message)

    def as_record(self) -> str:
        """One-line rendering stored in ledger ``errors`` lists."""
        return f"{type(self).__name__}: {self}"


class ConfigError(MockSyncError):
    """The configuration is readable but semantically unusable."""


class DiscoveryConflict(MockSyncError):
    """Two distinct files normalise to the same slug with incompatible composition."""


class ParseError(MockSyncError):
    """A single entity's mockup could not be parsed."""


class StagingError(MockSyncError):
    """Candidate generation or validation failed; nothing was written for the slug."""


class CommitError(MockSyncError):
    """An atomic move failed after staging; the whole run must be rolled back."""


class PolicyViolation(MockSyncError):
    """A write was attempted without permission; the step becomes report-only."""


class RollbackError(MockSyncError):
    """A journal entry could not be restored (e.g. its backup is missing)."""
