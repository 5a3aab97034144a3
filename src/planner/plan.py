"""Plan builder: turns decisions into an ordered, side-effect-free step list.

``build_plan`` is a pure function from decisions and policy to steps; it
performs no I/O, so ``plan`` and ``generate --dry-run`` simply print its
output without ever constructing an executor.

Ordering: every :class:`GenerateStep` first, then every :class:`UpdateStep`,
then every :class:`ReportOnlyStep`; within each class steps are sorted by key.
"""

from __future__ import annotations

from collections.abc import Iterable

from .models import (
    Decision,
    DecisionKind,
    GenerateStep,
    PlanStep,
    Policy,
    ReportOnlyStep,
    Severity,
    UpdateStep,
)

_CLASS_ORDER = {"generate": 0, "update": 1, "report": 2}


def build_plan(decisions: Iterable[Decision], policy: Policy) -> list[PlanStep]:
    """Build the execution plan.

    Rules:
        * out of ``--only`` scope or on a skip list -> report (``skipped``)
        * ``new``                  -> generate
        * ``unchanged``            -> report (info)
        * ``update-available``     -> update when permitted, else report
          (warning; error when the slug was explicitly requested via ``--only``)
        * ``orphaned``             -> report (warning); never a delete
        * ``variant-without-base`` -> report (error)
    """
    steps = [_step_for(decision, policy) for decision in decisions]
    return sorted(steps, key=lambda s: (_CLASS_ORDER[s.step_type], s.key))


def _step_for(decision: Decision, policy: Policy) -> PlanStep:
    rule = policy.rule_for(decision.slug)
    common = {
        "key": decision.key,
        "slug": decision.slug,
        "variant": decision.variant,
        "decision": decision.kind,
        "notes": list(decision.notes),
        "mockup": decision.mockup,
        "artifacts": list(decision.artifacts),
        "standalone": rule.standalone,
        "external_only": rule.external_only,
    }

    if not policy.in_scope(decision.slug, decision.key):
        return ReportOnlyStep(
            **{**common, "decision": DecisionKind.SKIPPED},
            reason=f"out of scope (was {decision.kind.value})",
        )
    if policy.is_skipped(decision.slug):
        return ReportOnlyStep(
            **{**common, "decision": DecisionKind.SKIPPED},
            reason=f"on skip list (was {decision.kind.value})",
        )

    kind = decision.kind
    if kind is DecisionKind.NEW:
        if any(a.exists for a in decision.artifacts):
            return GenerateStep(**common, reason="recreate missing output")
        return GenerateStep(**common, reason="no generated output yet")

    if kind is DecisionKind.UNCHANGED:
        return ReportOnlyStep(**common, reason="up to date")

    if kind is DecisionKind.UPDATE_AVAILABLE:
        scope = policy.update_scope(decision.slug)
        if scope is not None:
            return UpdateStep(**common, update_scope=scope, reason=f"mockup changed ({scope} allow-update)")
        requested = bool(policy.only)
        return ReportOnlyStep(
            **common,
            severity=Severity.ERROR if requested else Severity.WARNING,
            reason="mockup changed; updates not permitted (use --allow-update)",
            policy_violation=True,
        )

    if kind is DecisionKind.ORPHANED:
        return ReportOnlyStep(
            **common,
            severity=Severity.WARNING,
            reason="mockup removed; generated output left in place",
        )

    return ReportOnlyStep(
        **common,
        severity=Severity.ERROR,
        reason=f"variant '{decision.variant}' has no base mockup '{decision.slug}'",
    )


def plan_counts(steps: Iterable[PlanStep]) -> dict[str, int]:
    """Step totals per class, for summaries."""
    counts = {"generate": 0, "update": 0, "report": 0}
    for step in steps:
        counts[step.step_type] += 1
    return counts
