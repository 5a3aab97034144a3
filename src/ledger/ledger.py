"""Run ledger: append-only per-run logs plus a derived latest-state index.

Layout under ``<state_dir>``::

    runs/agent-run-<timestamp>.json   one RunLog per run (append-only)
    index.json                        LedgerIndex, maintained incrementally

The index is a cache: it can always be rebuilt by replaying every terminal
run log in timestamp order, and it is rebuilt automatically when missing or
unreadable.  The ledger is the only cross-run state the comparator depends
on besides the two trees themselves.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

from pydantic import ValidationError
from rich.console import Console

from src.config import Config
from src.utils import console, utc_now, write_json

from .models import (
    Action,
    IndexEntry,
    LedgerIndex,
    RunEvent,
    RunLog,
    RunRecord,
    RunStatus,
)

RUN_LOG_PREFIX = "agent-run-"


def run_log_name(run_id: str) -> str:
    """File name of the run log for *run_id*."""
    return f"{RUN_LOG_PREFIX}{run_id}.json"


# ---------------------------------------------------------------------------
# Per-run ledger
# ---------------------------------------------------------------------------


class RunLedger:
    """Append-only record of one run.

    Every call to :meth:`record` or :meth:`event` rewrites the run's JSON
    document atomically, so a crash mid-run still leaves a readable log with
    status ``in-progress`` for the recovery pass to close.
    """

    def __init__(
        self,
        config: Config,
        run_id: str,
        *,
        command: str = "generate",
        policy: dict[str, Any] | None = None,
    ) -> None:
        self.config = config
        self.path = config.runs_dir / run_log_name(run_id)
        self.log = RunLog(run_id=run_id, command=command, policy=policy or {})
        self.flush()

    @property
    def run_id(self) -> str:
        return self.log.run_id

    def record(
        self,
        key: str,
        slug: str,
        decision: str,
        action: Action,
        errors: Iterable[str] = (),
        **fields: Any,
    ) -> RunRecord:
        """Append one record for *key* and persist the log."""
        record = RunRecord(
            run_id=self.run_id,
            key=key,
            slug=slug,
            decision=decision,
            action=action,
            errors=list(errors),
            **fields,
        )
        self.log.records.append(record)
        self.flush()
        return record

    def event(self, stage: str, message: str, level: str = "info") -> RunEvent:
        """Append a run-level event and persist the log."""
        event = RunEvent(stage=stage, message=message, level=level)
        self.log.events.append(event)
        self.flush()
        return event

    def add_shared_path(self, path: str) -> None:
        if path not in self.log.shared_paths:
            self.log.shared_paths.append(path)

    def finalize(self, status: RunStatus, exit_code: int) -> RunLog:
        """Stamp the terminal status and exit code."""
        self.log.status = status
        self.log.exit_code = exit_code
        self.log.finished_at = utc_now()
        self.flush()
        return self.log

    def flush(self) -> None:
        write_json(self.log.model_dump(mode="json"), self.path)


# ---------------------------------------------------------------------------
# Cross-run store
# ---------------------------------------------------------------------------


class LedgerStore:
    """Reads run logs and maintains the latest-state index.

    A ``readonly`` store (used by ``plan``) derives the same index but never
    persists it.
    """

    def __init__(
        self, config: Config, out: Console | None = None, *, readonly: bool = False
    ) -> None:
        self.config = config
        self.console = out or console
        self.readonly = readonly
        self._index: LedgerIndex | None = None

    # -- Run logs ----------------------------------------------------------

    def run_log_paths(self) -> list[Path]:
        """Every run log, oldest first (names sort by timestamp)."""
        if not self.config.runs_dir.is_dir():
            return []
        return sorted(self.config.runs_dir.glob(f"{RUN_LOG_PREFIX}*.json"))

    def iter_run_logs(self) -> Iterator[RunLog]:
        for path in self.run_log_paths():
            yield self.load_run_log(path)

    def load_run_log(self, path: Path) -> RunLog:
        return RunLog.model_validate_json(path.read_text(encoding="utf-8"))

    def find_run_log(self, run_id: str) -> RunLog | None:
        path = self.config.runs_dir / run_log_name(run_id)
        return self.load_run_log(path) if path.exists() else None

    def save_run_log(self, log: RunLog) -> None:
        write_json(log.model_dump(mode="json"), self.config.runs_dir / run_log_name(log.run_id))

    # -- Index -------------------------------------------------------------

    @property
    def index(self) -> LedgerIndex:
        if self._index is None:
            self._index = self.load_index()
        return self._index

    def load_index(self) -> LedgerIndex:
        """Load ``index.json``, rebuilding it when missing or corrupt.

        Terminal run logs not yet folded into the index (e.g. after a crash
        between writing the log and updating the index) are applied in order.
        """
        path = self.config.index_path
        if not path.exists():
            return self.rebuild_index()
        try:
            index = LedgerIndex.model_validate_json(path.read_text(encoding="utf-8"))
        except (ValidationError, json.JSONDecodeError, OSError) as exc:
            self.console.print(
                f"  [yellow]Ledger index unreadable ({type(exc).__name__}); rebuilding from run logs.[/yellow]"
            )
            return self.rebuild_index()
        pending = [
            log
            for log in self.iter_run_logs()
            if log.status is not RunStatus.IN_PROGRESS and log.run_id not in index.applied_runs
        ]
        for log in pending:
            index.apply(log)
        if pending:
            self._write_index(index)
        return index

    def rebuild_index(self) -> LedgerIndex:
        """Replay every terminal run log into a fresh index and persist it."""
        index = LedgerIndex()
        for log in self.iter_run_logs():
            if log.status is RunStatus.IN_PROGRESS:
                continue
            index.apply(log)
        self._write_index(index)
        self._index = index
        return index

    def apply(self, log: RunLog) -> LedgerIndex:
        """Fold a finished run into the index and persist it."""
        index = self.index
        index.apply(log)
        self._write_index(index)
        return index

    def read_prior(self, key: str) -> RunRecord | None:
        """Last record for *key* across all applied runs, or ``None``."""
        entry = self.index.entries.get(key)
        return entry.last_record if entry else None

    def entries(self) -> dict[str, IndexEntry]:
        return dict(self.index.entries)

    def _write_index(self, index: LedgerIndex) -> None:
        if self.readonly:
            return
        write_json(index.model_dump(mode="json"), self.config.index_path)

    # -- Recovery ----------------------------------------------------------

    def in_progress_runs(self) -> list[str]:
        """Run ids whose log never reached a terminal status."""
        return [log.run_id for log in self.iter_run_logs() if log.status is RunStatus.IN_PROGRESS]

    def close_interrupted(
        self,
        run_id: str,
        message: str,
        status: RunStatus = RunStatus.ROLLED_BACK,
    ) -> RunLog | None:
        """Give an interrupted run a terminal status and fold it into the index.

        A run whose journal had already been committed keeps its writes and
        is closed as completed; anything else was rolled back.
        """
        log = self.find_run_log(run_id)
        if log is None or log.status is not RunStatus.IN_PROGRESS:
            return log
        log.events.append(RunEvent(stage="recover", level="warning", message=message))
        log.status = status
        log.exit_code = 0 if status is RunStatus.COMPLETED else 3
        log.finished_at = utc_now()
        self.save_run_log(log)
        self.apply(log)
        return log
