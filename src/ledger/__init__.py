"""Mockup Sync run ledger.

Usage::

    from src.ledger import LedgerStore, RunLedger, Action

    store = LedgerStore(config)
    ledger = RunLedger(config, run_id)
    ledger.record("checkout", "checkout", "new", Action.GENERATED)
    store.apply(ledger.finalize(RunStatus.COMPLETED, 0))
"""

from src.ledger.ledger import LedgerStore, RunLedger, run_log_name
from src.ledger.models import (
    Action,
    IndexEntry,
    LedgerIndex,
    RunEvent,
    RunLog,
    RunRecord,
    RunStatus,
)

__all__ = [
    "LedgerStore",
    "RunLedger",
    "run_log_name",
    "Action",
    "IndexEntry",
    "LedgerIndex",
    "RunEvent",
    "RunLog",
    "RunRecord",
    "RunStatus",
]
