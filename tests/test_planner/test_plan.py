"""Unit tests for src.planner.plan and Policy.

Tests cover:
- Decision -> step mapping for every DecisionKind
- Policy gating of updates (global, per-slug, --only escalation)
- --only scoping and skip lists
- Step ordering (generate, update, report; by key within a class)
- plan_counts
"""

from __future__ import annotations

import pytest

from src.config import Config, SlugRule
from src.inventory.models import ArtifactKind, OutputArtifact
from src.planner import (
    Decision,
    DecisionKind,
    GenerateStep,
    Policy,
    ReportOnlyStep,
    Severity,
    UpdateStep,
    build_plan,
    plan_counts,
)

pytestmark = pytest.mark.unit


def _decision(key: str, kind: DecisionKind) -> Decision:
    slug, _, variant = key.partition("@")
    return Decision(key=key, slug=slug, variant=variant or None, kind=kind)


class TestPolicy:

    def test_from_config(self):
        config = Config(allow_update=True, only=["cart"], skip=["legacy"], interactive=True)
        policy = Policy.from_config(config)
        assert policy.allow_update is True
        assert policy.only == ["cart"]
        assert policy.skip == ["legacy"]
        assert policy.interactive is True

    def test_in_scope_brings_variants(self):
        policy = Policy(only=["checkout"])
        assert policy.in_scope("checkout", "checkout@mobile")
        assert not policy.in_scope("cart", "cart")

    def test_in_scope_by_variant_key(self):
        policy = Policy(only=["checkout@mobile"])
        assert policy.in_scope("checkout", "checkout@mobile")
        assert not policy.in_scope("checkout", "checkout")

    def test_update_scope(self):
        assert Policy().update_scope("x") is None
        assert Policy(allow_update=True).update_scope("x") == "global"
        assert Policy(slugs={"x": SlugRule(allow_update=True)}).update_scope("x") == "slug"
        assert Policy(allow_update=True, slugs={"x": SlugRule(allow_update=False)}).update_scope("x") is None


class TestBuildPlan:

    def test_new_becomes_generate(self):
        [step] = build_plan([_decision("cart", DecisionKind.NEW)], Policy())
        assert isinstance(step, GenerateStep)
        assert step.executes
        assert step.reason == "no generated output yet"

    def test_partial_output_recreated(self):
        present = OutputArtifact(
            slug="cart",
            kind=ArtifactKind.COMPONENT,
            path="src/components/cart/Cart.tsx",
            content_fingerprint="c1",
            generated_from_fingerprint="m1",
            on_disk_fingerprint="c1",
        )
        decision = _decision("cart", DecisionKind.NEW).model_copy(update={"artifacts": [present]})
        [step] = build_plan([decision], Policy())
        assert isinstance(step, GenerateStep)
        assert step.reason == "recreate missing output"
        assert step.artifacts == [present]

    def test_unchanged_is_info_report(self):
        [step] = build_plan([_decision("cart", DecisionKind.UNCHANGED)], Policy())
        assert isinstance(step, ReportOnlyStep)
        assert step.severity is Severity.INFO
        assert step.reason == "up to date"
        assert not step.executes

    def test_update_gated_without_permission(self):
        [step] = build_plan([_decision("cart", DecisionKind.UPDATE_AVAILABLE)], Policy())
        assert isinstance(step, ReportOnlyStep)
        assert step.policy_violation
        assert step.severity is Severity.WARNING
        assert "--allow-update" in step.reason

    def test_update_gated_under_only_is_error(self):
        [step] = build_plan(
            [_decision("cart", DecisionKind.UPDATE_AVAILABLE)], Policy(only=["cart"])
        )
        assert step.severity is Severity.ERROR

    def test_update_with_global_permission(self):
        [step] = build_plan(
            [_decision("cart", DecisionKind.UPDATE_AVAILABLE)], Policy(allow_update=True)
        )
        assert isinstance(step, UpdateStep)
        assert step.update_scope == "global"

    def test_update_with_slug_permission(self):
        policy = Policy(slugs={"cart": SlugRule(allow_update=True)})
        [step] = build_plan([_decision("cart", DecisionKind.UPDATE_AVAILABLE)], policy)
        assert isinstance(step, UpdateStep)
        assert step.update_scope == "slug"

    def test_orphan_is_warning_report(self):
        [step] = build_plan([_decision("old", DecisionKind.ORPHANED)], Policy(allow_update=True))
        assert isinstance(step, ReportOnlyStep)
        assert step.severity is Severity.WARNING

    def test_variant_without_base_is_error(self):
        [step] = build_plan([_decision("promo@dark", DecisionKind.VARIANT_WITHOUT_BASE)], Policy())
        assert isinstance(step, ReportOnlyStep)
        assert step.severity is Severity.ERROR
        assert "promo" in step.reason

    def test_out_of_scope_skipped(self):
        [step] = build_plan([_decision("cart", DecisionKind.NEW)], Policy(only=["checkout"]))
        assert isinstance(step, ReportOnlyStep)
        assert step.decision is DecisionKind.SKIPPED
        assert step.reason == "out of scope (was new)"

    def test_skip_list(self):
        [step] = build_plan([_decision("cart", DecisionKind.NEW)], Policy(skip=["cart"]))
        assert step.decision is DecisionKind.SKIPPED
        assert step.reason == "on skip list (was new)"

    def test_slug_rule_flags_carried(self):
        policy = Policy(slugs={"cart": SlugRule(standalone=True, external_only=True)})
        [step] = build_plan([_decision("cart", DecisionKind.NEW)], policy)
        assert step.standalone and step.external_only

    def test_ordering(self):
        decisions = [
            _decision("zeta", DecisionKind.UNCHANGED),
            _decision("beta", DecisionKind.UPDATE_AVAILABLE),
            _decision("alpha", DecisionKind.UPDATE_AVAILABLE),
            _decision("yak", DecisionKind.NEW),
            _decision("bee", DecisionKind.NEW),
            _decision("old", DecisionKind.ORPHANED),
        ]
        steps = build_plan(decisions, Policy(allow_update=True))
        assert [(s.step_type, s.key) for s in steps] == [
            ("generate", "bee"),
            ("generate", "yak"),
            ("update", "alpha"),
            ("update", "beta"),
            ("report", "old"),
            ("report", "zeta"),
        ]

    def test_pure(self):
        decisions = [_decision("a", DecisionKind.NEW), _decision("b", DecisionKind.UNCHANGED)]
        first = build_plan(decisions, Policy())
        second = build_plan(list(reversed(decisions)), Policy())
        assert [s.model_dump() for s in first] == [s.model_dump() for s in second]


class TestPlanCounts:

    def test_counts(self):
        steps = build_plan(
            [
                _decision("a", DecisionKind.NEW),
                _decision("b", DecisionKind.UPDATE_AVAILABLE),
                _decision("c", DecisionKind.ORPHANED),
            ],
            Policy(allow_update=True),
        )
        assert plan_counts(steps) == {"generate": 1, "update": 1, "report": 1}

    def test_empty(self):
        assert plan_counts([]) == {"generate": 0, "update": 0, "report": 0}
