"""Plan executor: stage -> verify -> commit, one step at a time.

For each executable step the executor parses the mockup, renders every
candidate file into the staging area, verifies them all, and only then moves
them over their targets.  Every move is journaled first (see
:mod:`src.executor.journal`) so the run can be rolled back as a unit.

Failure handling:

* :class:`ParseError` / :class:`StagingError` fail the step only; nothing is
  written for that key and the run continues.
* :class:`PolicyViolation` turns the step into a report (nothing written).
* :class:`CommitError` propagates: the pipeline must roll the run back.

The commit of one step never awaits between its moves, so cancellation can
only land between steps, never inside one.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from rich.console import Console

from src.config import Config
from src.emitter import ROUTE_REGISTRY_KEY, CodeEmitter, MockupParser
from src.errors import CommitError, ParseError, PolicyViolation, StagingError
from src.inventory.models import ArtifactKind, OutputArtifact
from src.ledger import Action
from src.planner.models import GenerateStep, PlanStep, Policy, Severity, UpdateStep
from src.utils import console, utc_now

from .confirm import Confirmer, InteractiveConfirmer, PolicyScopeConfirmer
from .journal import CommitJournal
from .staging import StagedFile, StagingArea
from .verify import verify_candidate


def _replace(src: Path, dst: Path) -> None:
    """Atomically move a staged file over its target."""
    os.replace(src, dst)


class StepResult(BaseModel):
    """Outcome of executing (or reporting) one plan step."""

    key: str
    slug: str
    variant: Optional[str] = None
    step_type: str
    decision: str
    action: Action
    severity: Severity = Severity.INFO
    reason: str = ""
    errors: list[str] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)
    written: list[str] = Field(default_factory=list)
    declined: list[str] = Field(default_factory=list)
    artifacts: list[OutputArtifact] = Field(default_factory=list)
    mockup_fingerprint: Optional[str] = None
    generated_from_fingerprint: Optional[str] = None
    started_at: str = Field(default_factory=utc_now)
    finished_at: str = Field(default_factory=utc_now)

    def record_fields(self) -> dict:
        """Keyword arguments for :meth:`RunLedger.record`."""
        return self.model_dump(mode="json", exclude={"key", "slug", "decision", "action", "errors"})


class Executor:
    """Applies plan steps to the output tree."""

    def __init__(
        self,
        config: Config,
        policy: Policy,
        journal: CommitJournal,
        staging: StagingArea,
        *,
        parser: MockupParser | None = None,
        emitter: CodeEmitter | None = None,
        confirmer: Confirmer | None = None,
        owners: Mapping[str, str] | None = None,
        routes: Mapping[str, str] | None = None,
        out: Console | None = None,
    ) -> None:
        self.config = config
        self.policy = policy
        self.journal = journal
        self.staging = staging
        self.parser = parser or MockupParser()
        self.emitter = emitter or CodeEmitter(config)
        self.console = out or console
        if confirmer is None:
            confirmer = (
                InteractiveConfirmer(policy, self.console)
                if policy.interactive
                else PolicyScopeConfirmer(policy)
            )
        self.confirmer = confirmer
        self.owners: dict[str, str] = dict(owners or {})
        self.routes: dict[str, str] = dict(routes or {})
        self.shared_written: list[str] = []
        self.warnings: list[str] = []
        self._locks: dict[str, asyncio.Lock] = {}
        self._route_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def execute(self, step: PlanStep) -> StepResult:
        """Run one step.

        Raises:
            CommitError: When a move fails after staging; the caller must
                roll back the whole run.
        """
        result = StepResult(
            key=step.key,
            slug=step.slug,
            variant=step.variant,
            step_type=step.step_type,
            decision=step.decision.value,
            action=Action.SKIPPED,
            severity=step.severity,
            reason=step.reason,
            notes=list(step.notes),
            artifacts=list(step.artifacts),
            mockup_fingerprint=step.mockup.content_fingerprint if step.mockup else None,
            generated_from_fingerprint=_previous_fingerprint(step),
        )
        if not step.executes:
            if step.severity is Severity.ERROR:
                result.errors.append(step.reason)
            return self._finish(result)

        try:
            staged = await self._prepare(step)
        except (ParseError, StagingError) as exc:
            result.action = Action.FAILED
            result.severity = Severity.ERROR
            result.errors.append(exc.as_record())
            return self._finish(result)

        accepted = staged
        kept: list[str] = []
        if isinstance(step, UpdateStep):
            try:
                accepted, declined = await self._confirm(step, staged)
            except PolicyViolation as exc:
                self.staging.discard(staged)
                result.severity = Severity.ERROR
                result.reason = "update not permitted"
                result.errors.append(exc.as_record())
                return self._finish(result)
            result.declined = [item.path for item in declined]
            if declined:
                result.severity = Severity.WARNING
            self.staging.discard(declined)
        elif step.artifacts:
            accepted, edited = self._split_edited(step, staged)
            self.staging.discard(edited)
            kept = [item.path for item in edited]
            result.notes.extend(f"kept hand-edited {path}" for path in kept)

        result.written = await self._commit(step.key, accepted)
        result.artifacts = self._artifacts(step, accepted, result.declined + kept)
        if not result.declined:
            result.generated_from_fingerprint = result.mockup_fingerprint

        if isinstance(step, GenerateStep):
            result.action = Action.GENERATED
        elif accepted:
            result.action = Action.UPDATED
        else:
            result.reason = "every overwrite was declined"

        route = next((i for i in accepted if i.candidate.kind is ArtifactKind.ROUTE), None)
        if route is not None and step.variant is None:
            await self._refresh_registry(step.slug, route.path)
        return self._finish(result)

    # ------------------------------------------------------------------
    # Stage + verify
    # ------------------------------------------------------------------

    async def _prepare(self, step: PlanStep) -> list[StagedFile]:
        entity = step.mockup
        if entity is None:
            raise StagingError(f"No mockup to generate '{step.key}' from", slug=step.slug)
        tree = await asyncio.to_thread(self.parser.parse, self.config.mockup_path, entity)
        sources = [self.config.relative(self.config.mockup_path / p) for p in entity.source_paths]
        candidates = await asyncio.to_thread(
            self.emitter.emit_all,
            tree,
            sources,
            standalone=step.standalone,
            external_only=step.external_only,
        )
        if not candidates:
            raise StagingError(f"Nothing to generate for '{step.key}'", slug=step.slug)

        staged: list[StagedFile] = []
        try:
            for candidate in candidates:
                item = self.staging.stage(candidate)
                staged.append(item)
                verify_candidate(self.config, candidate)
                self._check_ownership(step, item)
        except StagingError:
            self.staging.discard(staged)
            raise
        for item in staged:
            self.owners[item.path] = step.key
        return staged

    def _check_ownership(self, step: PlanStep, item: StagedFile) -> None:
        owner = self.owners.get(item.path)
        if owner is not None and owner != step.key:
            raise StagingError(
                f"{item.path} belongs to '{owner}', not '{step.key}'",
                slug=step.slug,
                paths=[item.path],
            )
        if owner is None and item.target.exists() and not item.target_matches():
            raise StagingError(
                f"Refusing to overwrite {item.path}: it was not generated by mocksync",
                slug=step.slug,
                paths=[item.path],
            )

    async def _confirm(
        self, step: UpdateStep, staged: list[StagedFile]
    ) -> tuple[list[StagedFile], list[StagedFile]]:
        # Confirmers may block on a prompt; keep them off the event loop.
        by_path = {a.path: a for a in step.artifacts}
        accepted: list[StagedFile] = []
        declined: list[StagedFile] = []
        for item in staged:
            if not item.target.exists() or item.target_matches():
                accepted.append(item)
            elif await asyncio.to_thread(self.confirmer.confirm, step, item, by_path.get(item.path)):
                accepted.append(item)
            else:
                declined.append(item)
        return accepted, declined

    def _split_edited(
        self, step: GenerateStep, staged: list[StagedFile]
    ) -> tuple[list[StagedFile], list[StagedFile]]:
        """Separate recorded files edited on disk, which a regenerate leaves alone."""
        recorded = {a.path for a in step.artifacts if a.exists}
        fresh: list[StagedFile] = []
        edited: list[StagedFile] = []
        for item in staged:
            if item.path in recorded and not item.target_matches():
                edited.append(item)
            else:
                fresh.append(item)
        return fresh, edited

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def _lock_for(self, path: str) -> asyncio.Lock:
        return self._locks.setdefault(path, asyncio.Lock())

    async def _commit(self, key: str, files: list[StagedFile]) -> list[str]:
        async with contextlib.AsyncExitStack() as stack:
            for path in sorted({f.path for f in files}):
                await stack.enter_async_context(self._lock_for(path))
            return self._move_into_place(key, files)

    def _move_into_place(self, key: str, files: list[StagedFile]) -> list[str]:
        written: list[str] = []
        for item in sorted(files, key=lambda f: f.path):
            if item.target_matches():
                item.staged.unlink(missing_ok=True)
                continue
            self.journal.begin(key, item.target, item.fingerprint)
            try:
                item.target.parent.mkdir(parents=True, exist_ok=True)
                _replace(item.staged, item.target)
            except OSError as exc:
                raise CommitError(
                    f"Failed to move {item.path} into place: {exc}",
                    slug=key,
                    paths=[item.path],
                ) from exc
            written.append(item.path)
        return written

    async def _refresh_registry(self, slug: str, route_path: str) -> None:
        async with self._route_lock:
            self.routes[slug] = route_path
            candidate = self.emitter.render_route_registry(self.routes)
            item = self.staging.stage(candidate)
            owner = self.owners.get(item.path)
            if owner not in (None, ROUTE_REGISTRY_KEY) or (
                owner is None and item.target.exists() and not item.target_matches()
            ):
                self.staging.discard([item])
                self._warn(f"Route registry {item.path} was not generated by mocksync; left untouched")
                return
            try:
                verify_candidate(self.config, candidate)
            except StagingError as exc:
                raise CommitError(f"Route registry failed verification: {exc}", paths=[item.path]) from exc
            self.owners[item.path] = ROUTE_REGISTRY_KEY
            await self._commit(ROUTE_REGISTRY_KEY, [item])
            if item.path not in self.shared_written:
                self.shared_written.append(item.path)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _artifacts(
        self, step: PlanStep, accepted: list[StagedFile], declined: list[str]
    ) -> list[OutputArtifact]:
        fingerprint = step.mockup.content_fingerprint if step.mockup else ""
        rule = self.policy.rule_for(step.slug)
        previous = {a.path: a for a in step.artifacts}
        artifacts = [
            OutputArtifact(
                slug=step.slug,
                variant=step.variant,
                kind=item.candidate.kind,
                path=item.path,
                content_fingerprint=item.fingerprint,
                generated_from_fingerprint=fingerprint,
                standalone=rule.standalone,
                external_only=rule.external_only,
            )
            for item in accepted
        ]
        artifacts.extend(previous[path] for path in declined if path in previous)
        return sorted(artifacts, key=lambda a: a.path)

    def _warn(self, message: str) -> None:
        self.warnings.append(message)
        self.console.print(f"  [yellow]{message}[/yellow]")

    @staticmethod
    def _finish(result: StepResult) -> StepResult:
        result.finished_at = utc_now()
        return result


def _previous_fingerprint(step: PlanStep) -> str | None:
    fingerprints = {a.generated_from_fingerprint for a in step.artifacts}
    return fingerprints.pop() if len(fingerprints) == 1 else None
