"""Mockup Sync executor -- staged, journaled writes and rollback.

Usage::

    from src.executor import CommitJournal, Executor, RollbackController, StagingArea

    journal = CommitJournal(config, run_id)
    executor = Executor(config, policy, journal, StagingArea(config, run_id))
    result = await executor.execute(step)
"""

from src.executor.confirm import Confirmer, InteractiveConfirmer, PolicyScopeConfirmer
from src.executor.executor import Executor, StepResult
from src.executor.journal import (
    CommitJournal,
    JournalEntry,
    JournalState,
    load_journal,
    open_runs,
)
from src.executor.rollback import RollbackController, RollbackReport
from src.executor.staging import StagedFile, StagingArea
from src.executor.verify import GENERATED_MARKER, check_brackets, verify_candidate

__all__ = [
    "Confirmer",
    "InteractiveConfirmer",
    "PolicyScopeConfirmer",
    "Executor",
    "StepResult",
    "CommitJournal",
    "JournalEntry",
    "JournalState",
    "load_journal",
    "open_runs",
    "RollbackController",
    "RollbackReport",
    "StagedFile",
    "StagingArea",
    "GENERATED_MARKER",
    "check_brackets",
    "verify_candidate",
]
