"""Mockup Sync planner -- comparator and plan builder.

Usage::

    from src.planner import Policy, build_plan, compare

    decisions = compare(entities, artifacts, index.entries)
    steps = build_plan(decisions, Policy.from_config(config))
"""

from src.planner.comparator import classify, compare
from src.planner.models import (
    Decision,
    DecisionKind,
    GenerateStep,
    PlanStep,
    Policy,
    ReportOnlyStep,
    Severity,
    UpdateStep,
)
from src.planner.plan import build_plan, plan_counts

__all__ = [
    "classify",
    "compare",
    "build_plan",
    "plan_counts",
    "Decision",
    "DecisionKind",
    "GenerateStep",
    "UpdateStep",
    "ReportOnlyStep",
    "PlanStep",
    "Policy",
    "Severity",
]
