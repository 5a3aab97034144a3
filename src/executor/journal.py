"""Write-ahead commit journal.

Before the executor moves a staged file over its target, it appends a
:class:`JournalEntry` describing the target's prior state (absent, or a
byte-for-byte backup) and persists the journal.  The rollback controller can
therefore undo any prefix of a run's writes, including after a crash, by
walking the entries in reverse.

Layout::

    <state_dir>/journal/<run_id>/journal.json
    <state_dir>/journal/<run_id>/backups/<seq>.bak
"""

from __future__ import annotations

import shutil
from enum import Enum
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field

from src.config import Config
from src.utils import utc_now, write_json


class JournalState(str, Enum):
    OPEN = "open"
    ROLLING_BACK = "rolling-back"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled-back"


class JournalEntry(BaseModel):
    """One journaled write."""

    seq: int
    key: str
    path: str = Field(..., description="Target, POSIX path relative to the project root")
    prior: Literal["absent", "file"]
    backup: Optional[str] = Field(default=None, description="Backup file name when prior is 'file'")
    created_dirs: list[str] = Field(
        default_factory=list, description="Directories created for the write, outermost first"
    )
    committed_fingerprint: Optional[str] = None
    restored: bool = False


class JournalDocument(BaseModel):
    run_id: str
    state: JournalState = JournalState.OPEN
    created_at: str = Field(default_factory=utc_now)
    updated_at: str = Field(default_factory=utc_now)
    entries: list[JournalEntry] = Field(default_factory=list)


def journal_path(config: Config, run_id: str) -> Path:
    return config.journal_dir / run_id / "journal.json"


def load_journal(config: Config, run_id: str) -> JournalDocument | None:
    path = journal_path(config, run_id)
    if not path.exists():
        return None
    return JournalDocument.model_validate_json(path.read_text(encoding="utf-8"))


def save_journal(config: Config, document: JournalDocument) -> None:
    document.updated_at = utc_now()
    write_json(document.model_dump(mode="json"), journal_path(config, document.run_id))


def open_runs(config: Config) -> list[str]:
    """Run ids whose journal never reached a terminal state, oldest first."""
    if not config.journal_dir.is_dir():
        return []
    pending: list[str] = []
    for child in sorted(config.journal_dir.iterdir()):
        document = load_journal(config, child.name) if child.is_dir() else None
        if document and document.state in (JournalState.OPEN, JournalState.ROLLING_BACK):
            pending.append(document.run_id)
    return pending


class CommitJournal:
    """Journal for the run currently executing."""

    def __init__(self, config: Config, run_id: str) -> None:
        self.config = config
        self.document = JournalDocument(run_id=run_id)
        self.backup_dir = config.journal_dir / run_id / "backups"
        save_journal(config, self.document)

    @property
    def run_id(self) -> str:
        return self.document.run_id

    @property
    def entries(self) -> list[JournalEntry]:
        return self.document.entries

    @property
    def state(self) -> JournalState:
        return self.document.state

    def begin(self, key: str, target: Path, fingerprint: str | None = None) -> JournalEntry:
        """Record *target*'s prior state.  Must be called before the write."""
        seq = len(self.document.entries)
        created = _missing_parents(target, self.config.project_root)
        entry = JournalEntry(
            seq=seq,
            key=key,
            path=self.config.relative(target),
            prior="file" if target.exists() else "absent",
            created_dirs=[self.config.relative(d) for d in created],
            committed_fingerprint=fingerprint,
        )
        if entry.prior == "file":
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            entry.backup = f"{seq:05d}.bak"
            shutil.copy2(target, self.backup_dir / entry.backup)
        self.document.entries.append(entry)
        save_journal(self.config, self.document)
        return entry

    def close(self) -> None:
        """Mark the run's writes durable and drop the backups."""
        self.document.state = JournalState.COMMITTED
        save_journal(self.config, self.document)
        if self.backup_dir.exists():
            shutil.rmtree(self.backup_dir)

    def touched_keys(self) -> list[str]:
        seen: dict[str, None] = {}
        for entry in self.document.entries:
            seen.setdefault(entry.key)
        return list(seen)


def _missing_parents(target: Path, stop: Path) -> list[Path]:
    """Ancestors of *target* that do not exist yet, outermost first."""
    missing: list[Path] = []
    parent = target.parent
    stop = stop.resolve()
    while not parent.exists() and parent.resolve() != stop:
        missing.append(parent)
        if parent.parent == parent:
            break
        parent = parent.parent
    return list(reversed(missing))
