"""Confirmation of overwrites during update steps.

The executor asks a :class:`Confirmer` before each file an update would
replace.  The non-interactive default only re-checks policy; the interactive
one asks the operator per file with ``rich.prompt.Confirm``.
"""

from __future__ import annotations

from typing import Optional, Protocol

from rich.console import Console
from rich.prompt import Confirm

from src.errors import PolicyViolation
from src.inventory.models import OutputArtifact
from src.planner.models import Policy, UpdateStep
from src.utils import console

from .staging import StagedFile


class Confirmer(Protocol):
    def confirm(
        self, step: UpdateStep, staged: StagedFile, artifact: Optional[OutputArtifact]
    ) -> bool:
        """Return True to overwrite, False to keep the file on disk.

        Raises:
            PolicyViolation: When the update is not permitted at all.
        """
        ...


class PolicyScopeConfirmer:
    """Accepts every file of an update the policy permits."""

    def __init__(self, policy: Policy) -> None:
        self.policy = policy

    def confirm(
        self, step: UpdateStep, staged: StagedFile, artifact: Optional[OutputArtifact]
    ) -> bool:
        if self.policy.update_scope(step.slug) is None:
            raise PolicyViolation(
                f"Update of '{step.key}' is not permitted", slug=step.slug, paths=[staged.path]
            )
        return True


class InteractiveConfirmer(PolicyScopeConfirmer):
    """Asks before overwriting each file; declining keeps the file as is."""

    def __init__(self, policy: Policy, out: Console | None = None) -> None:
        super().__init__(policy)
        self.console = out or console

    def confirm(
        self, step: UpdateStep, staged: StagedFile, artifact: Optional[OutputArtifact]
    ) -> bool:
        super().confirm(step, staged, artifact)
        if artifact is not None and artifact.modified_on_disk:
            self.console.print(
                f"  [bold yellow]{staged.path} was edited by hand since it was generated.[/bold yellow]"
            )
        return Confirm.ask(
            f"  Overwrite [cyan]{staged.path}[/cyan] ({step.key})?",
            default=False,
            console=self.console,
        )
