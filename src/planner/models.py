"""Pydantic v2 models for comparator decisions and plan steps."""

from __future__ import annotations

from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field

from src.config import Config, SlugRule
from src.inventory.models import MockupEntity, OutputArtifact


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class DecisionKind(str, Enum):
    """Classification of one entity key against the output inventory."""
    NEW = "new"
    UNCHANGED = "unchanged"
    UPDATE_AVAILABLE = "update-available"
    ORPHANED = "orphaned"
    VARIANT_WITHOUT_BASE = "variant-without-base"
    SKIPPED = "skipped"


class Severity(str, Enum):
    """How loudly a report-only step is surfaced."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------

class Decision(BaseModel):
    """Comparator output for a single entity key."""

    key: str
    slug: str
    variant: Optional[str] = None
    kind: DecisionKind
    mockup: Optional[MockupEntity] = Field(default=None, description="Current mockup, if any")
    artifacts: list[OutputArtifact] = Field(
        default_factory=list, description="Recorded artifacts for this key"
    )
    notes: list[str] = Field(default_factory=list)

    @property
    def mockup_fingerprint(self) -> str | None:
        return self.mockup.content_fingerprint if self.mockup else None


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------

class Policy(BaseModel):
    """The slice of configuration the plan builder depends on."""

    allow_update: bool = False
    only: list[str] = Field(default_factory=list)
    skip: list[str] = Field(default_factory=list)
    slugs: dict[str, SlugRule] = Field(default_factory=dict)
    interactive: bool = False

    @classmethod
    def from_config(cls, config: Config) -> "Policy":
        return cls(
            allow_update=config.allow_update,
            only=list(config.only),
            skip=list(config.skip),
            slugs=dict(config.slugs),
            interactive=config.interactive,
        )

    def rule_for(self, slug: str) -> SlugRule:
        return self.slugs.get(slug) or SlugRule()

    def in_scope(self, slug: str, key: str) -> bool:
        """``--only`` names slugs; a named slug brings its variants along."""
        return not self.only or slug in self.only or key in self.only

    def is_skipped(self, slug: str) -> bool:
        return slug in self.skip or self.rule_for(slug).skip

    def update_scope(self, slug: str) -> str | None:
        """``"slug"``/``"global"`` when an update is permitted, else ``None``."""
        rule = self.rule_for(slug)
        if rule.allow_update is not None:
            return "slug" if rule.allow_update else None
        return "global" if self.allow_update else None


# ---------------------------------------------------------------------------
# Plan steps
# ---------------------------------------------------------------------------

class _Step(BaseModel):
    key: str
    slug: str
    variant: Optional[str] = None
    decision: DecisionKind
    severity: Severity = Severity.INFO
    reason: str = ""
    notes: list[str] = Field(default_factory=list)
    mockup: Optional[MockupEntity] = None
    artifacts: list[OutputArtifact] = Field(default_factory=list)
    standalone: bool = False
    external_only: bool = False

    @property
    def executes(self) -> bool:
        return False


class GenerateStep(_Step):
    """Create the artifacts for a new entity."""
    step_type: Literal["generate"] = "generate"

    @property
    def executes(self) -> bool:
        return True


class UpdateStep(_Step):
    """Regenerate the artifacts of an entity whose mockup changed."""
    step_type: Literal["update"] = "update"
    update_scope: str = Field(default="global", description="'global' or 'slug'")

    @property
    def executes(self) -> bool:
        return True


class ReportOnlyStep(_Step):
    """Surfaced in the plan and the run log, never executed."""
    step_type: Literal["report"] = "report"
    policy_violation: bool = False


PlanStep = Union[GenerateStep, UpdateStep, ReportOnlyStep]
