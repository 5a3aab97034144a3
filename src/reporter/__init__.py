"""Mockup Sync reporter -- Rich rendering of plans and run summaries.

Usage::

    from src.reporter import print_plan_table, print_run_summary

    print_plan_table(steps)
    print_run_summary(run_log, duration)
"""

from src.reporter.summary import (
    ACTION_STYLES,
    SEVERITY_STYLES,
    plan_table,
    print_plan_table,
    print_rollback_report,
    print_run_summary,
)

__all__ = [
    "ACTION_STYLES",
    "SEVERITY_STYLES",
    "plan_table",
    "print_plan_table",
    "print_rollback_report",
    "print_run_summary",
]
