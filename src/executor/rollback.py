"""Rollback controller: undoes a run's journaled writes.

Entries are processed newest first.  Each restored entry is marked and the
journal persisted before moving on, so a rollback interrupted half-way can
simply be re-invoked; invoking it on an already rolled-back run is a no-op.
"""

from __future__ import annotations

import shutil
from pathlib import Path

from pydantic import BaseModel, Field
from rich.console import Console

from src.config import Config
from src.errors import RollbackError
from src.ledger import LedgerStore, RunStatus
from src.utils import atomic_write, console

from .journal import JournalEntry, JournalState, load_journal, open_runs, save_journal


class RollbackReport(BaseModel):
    """What one rollback invocation did."""

    run_id: str
    restored: list[str] = Field(default_factory=list, description="Files given back their prior content")
    removed: list[str] = Field(default_factory=list, description="Files that did not exist before the run")
    removed_dirs: list[str] = Field(default_factory=list)
    already_rolled_back: bool = False

    @property
    def touched(self) -> int:
        return len(self.restored) + len(self.removed)


class RollbackController:
    """Restores the output tree to its state before a run."""

    def __init__(self, config: Config, out: Console | None = None) -> None:
        self.config = config
        self.console = out or console

    def rollback(self, run_id: str) -> RollbackReport:
        """Undo every write journaled for *run_id*.

        Raises:
            RollbackError: When no journal exists for the run, the run was
                already committed, or a required backup is missing.
        """
        document = load_journal(self.config, run_id)
        if document is None:
            raise RollbackError(f"No commit journal for run {run_id}")
        report = RollbackReport(run_id=run_id)
        if document.state is JournalState.ROLLED_BACK:
            report.already_rolled_back = True
            return report
        if document.state is JournalState.COMMITTED:
            raise RollbackError(f"Run {run_id} was committed; its backups are gone")

        document.state = JournalState.ROLLING_BACK
        save_journal(self.config, document)

        backup_dir = self.config.journal_dir / run_id / "backups"
        for entry in reversed(document.entries):
            if entry.restored:
                continue
            self._undo(entry, backup_dir, report)
            entry.restored = True
            save_journal(self.config, document)

        document.state = JournalState.ROLLED_BACK
        save_journal(self.config, document)
        if backup_dir.exists():
            shutil.rmtree(backup_dir)
        return report

    def _undo(self, entry: JournalEntry, backup_dir: Path, report: RollbackReport) -> None:
        target = self.config.project_root / entry.path
        if entry.prior == "file":
            backup = backup_dir / (entry.backup or "")
            if not entry.backup or not backup.is_file():
                raise RollbackError(
                    f"Backup for {entry.path} is missing", slug=entry.key, paths=[entry.path]
                )
            atomic_write(target, backup.read_bytes())
            report.restored.append(entry.path)
        else:
            target.unlink(missing_ok=True)
            report.removed.append(entry.path)
        for rel in reversed(entry.created_dirs):
            directory = self.config.project_root / rel
            if directory.is_dir() and not any(directory.iterdir()):
                directory.rmdir()
                report.removed_dirs.append(rel)

    def recover(self, store: LedgerStore) -> list[RollbackReport]:
        """Close out runs interrupted by a crash.

        Open journals are rolled back.  A run log still marked in-progress
        afterwards is closed as completed when its journal was committed, and
        as rolled back otherwise.
        """
        reports: list[RollbackReport] = []
        for run_id in open_runs(self.config):
            report = self.rollback(run_id)
            self.console.print(
                f"  [yellow]Recovered interrupted run {run_id}: "
                f"{len(report.restored)} restored, {len(report.removed)} removed[/yellow]"
            )
            reports.append(report)
        for run_id in store.in_progress_runs():
            document = load_journal(self.config, run_id)
            if document is not None and document.state is JournalState.COMMITTED:
                store.close_interrupted(
                    run_id, "run interrupted after commit; writes kept", RunStatus.COMPLETED
                )
            else:
                store.close_interrupted(run_id, "run interrupted; writes rolled back")
        return reports
