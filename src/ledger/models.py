"""Pydantic v2 models for the run ledger.

A :class:`RunLog` is the JSON document written once per run
(``agent-run-<timestamp>.json``); it holds one :class:`RunRecord` per entity
key plus run-level :class:`RunEvent` entries.  The :class:`LedgerIndex` is the
derived latest-state view the comparator reads on the next run.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from src.inventory.models import OutputArtifact
from src.utils import utc_now


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class Action(str, Enum):
    """What the executor did for a key."""
    GENERATED = "generated"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"
    ROLLED_BACK = "rolled-back"


class RunStatus(str, Enum):
    """Terminal (or in-flight) state of a run."""
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    ROLLED_BACK = "rolled-back"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

class RunRecord(BaseModel):
    """One row per entity key per run."""

    run_id: str
    key: str
    slug: str
    variant: Optional[str] = None
    decision: str = Field(..., description="new|unchanged|update-available|orphaned|skipped|variant-without-base")
    action: Action
    step_type: str = Field(default="report", description="generate|update|report")
    severity: str = Field(default="info")
    reason: str = ""
    started_at: str = Field(default_factory=utc_now)
    finished_at: str = Field(default_factory=utc_now)
    errors: list[str] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)
    mockup_fingerprint: Optional[str] = None
    generated_from_fingerprint: Optional[str] = Field(
        default=None, description="Provenance of the key's artifacts after this run"
    )
    artifacts: list[OutputArtifact] = Field(default_factory=list)
    written: list[str] = Field(default_factory=list, description="Paths actually written")
    declined: list[str] = Field(default_factory=list, description="Paths declined at confirmation")


class RunEvent(BaseModel):
    """Run-level discovery or execution event."""

    at: str = Field(default_factory=utc_now)
    stage: str
    level: str = Field(default="info", description="'info', 'warning' or 'error'")
    message: str


class RunLog(BaseModel):
    """The per-run ledger document."""

    run_id: str
    command: str = "generate"
    started_at: str = Field(default_factory=utc_now)
    finished_at: Optional[str] = None
    status: RunStatus = RunStatus.IN_PROGRESS
    exit_code: Optional[int] = None
    policy: dict[str, object] = Field(default_factory=dict)
    events: list[RunEvent] = Field(default_factory=list)
    records: list[RunRecord] = Field(default_factory=list)
    shared_paths: list[str] = Field(
        default_factory=list, description="Shared files (route registry) this run wrote"
    )

    def latest_records(self) -> dict[str, RunRecord]:
        """The last record per key within this run."""
        latest: dict[str, RunRecord] = {}
        for record in self.records:
            latest[record.key] = record
        return latest


# ---------------------------------------------------------------------------
# Latest-state index
# ---------------------------------------------------------------------------

class IndexEntry(BaseModel):
    """Authoritative state of one key after all applied runs."""

    key: str
    slug: str
    variant: Optional[str] = None
    generated_from_fingerprint: Optional[str] = None
    artifacts: list[OutputArtifact] = Field(default_factory=list)
    retired: list[str] = Field(default_factory=list)
    last_record: Optional[RunRecord] = None

    @property
    def last_run_id(self) -> str | None:
        return self.last_record.run_id if self.last_record else None

    @property
    def last_errors(self) -> list[str]:
        return list(self.last_record.errors) if self.last_record else []


class LedgerIndex(BaseModel):
    """Derived latest-state index (``index.json``)."""

    entries: dict[str, IndexEntry] = Field(default_factory=dict)
    shared_paths: list[str] = Field(default_factory=list)
    applied_runs: list[str] = Field(default_factory=list)
    updated_at: str = Field(default_factory=utc_now)

    def artifacts(self) -> list[OutputArtifact]:
        """Every recorded artifact across all keys."""
        return [a for entry in self.entries.values() for a in entry.artifacts]

    def owners(self) -> dict[str, str]:
        """Output path -> owning entity key."""
        owners: dict[str, str] = {}
        for entry in self.entries.values():
            for path in entry.retired:
                owners[path] = entry.key
            for artifact in entry.artifacts:
                owners[artifact.path] = entry.key
        return owners

    def retired_paths(self) -> list[str]:
        """Paths a key generated once and no longer emits."""
        return sorted(path for entry in self.entries.values() for path in entry.retired)

    def apply(self, log: RunLog) -> None:
        """Fold one run log into the index.  Applying the same run twice is a no-op.

        Artifact state only moves for completed runs; a rolled-back or failed
        run still updates each key's ``last_record`` for audit.
        """
        if log.run_id in self.applied_runs:
            return
        completed = log.status is RunStatus.COMPLETED
        for record in log.records:
            entry = self.entries.get(record.key) or IndexEntry(
                key=record.key, slug=record.slug, variant=record.variant
            )
            entry.last_record = record
            if completed and record.action in (Action.GENERATED, Action.UPDATED):
                entry.generated_from_fingerprint = record.generated_from_fingerprint
                current = {a.path for a in record.artifacts}
                dropped = {a.path for a in entry.artifacts} - current
                entry.retired = sorted((set(entry.retired) | dropped) - current)
                entry.artifacts = list(record.artifacts)
            self.entries[record.key] = entry
        if completed:
            self.shared_paths = sorted(set(self.shared_paths) | set(log.shared_paths))
        self.applied_runs.append(log.run_id)
        self.updated_at = utc_now()
