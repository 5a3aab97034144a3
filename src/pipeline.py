"""Mockup Sync Pipeline Orchestrator.

Implements the five-stage generation run:

Stage 1: SCAN    -- Discover mockup entities and join recorded outputs with disk.
Stage 2: COMPARE -- Classify every entity key (new, unchanged, update-available, ...).
Stage 3: PLAN    -- Turn decisions into an ordered, side-effect-free step list.
Stage 4: EXECUTE -- Stage, verify and commit each executable step (journaled).
Stage 5: RECORD  -- Append the run log and fold it into the latest-state index.

A run either commits every write it makes or, on a commit failure,
cancellation or timeout, rolls all of them back.

Usage::

    python -m src.pipeline plan
    python -m src.pipeline generate --allow-update --only checkout,cart
    python -m src.pipeline rollback 20260101T120000000000Z
    python -m src.pipeline ledger rebuild
"""

from __future__ import annotations

import asyncio
import json
import os
import sys
import time
from collections.abc import Sequence
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError
from rich.console import Console
from rich.panel import Panel

from src.config import DEFAULT_CONFIG_NAME, Config
from src.emitter import ROUTE_REGISTRY_KEY, CodeEmitter, MockupParser
from src.errors import CommitError, ConfigError, DiscoveryConflict, RollbackError
from src.executor import (
    CommitJournal,
    Confirmer,
    Executor,
    RollbackController,
    StagingArea,
    StepResult,
    load_journal,
    open_runs,
)
from src.inventory import (
    ArtifactKind,
    MockupEntity,
    OutputArtifact,
    diff_manifests,
    scan_mockups,
    scan_outputs,
    tree_manifest,
    untracked_outputs,
)
from src.ledger import Action, LedgerIndex, LedgerStore, RunLedger, RunStatus
from src.planner import Decision, PlanStep, Policy, Severity, build_plan, compare
from src.reporter import print_plan_table, print_rollback_report, print_run_summary
from src.utils import (
    console,
    format_duration,
    print_error,
    print_stage_header,
    print_success,
    print_summary_table,
    print_warning,
    run_timestamp,
    set_quiet,
)

EXIT_OK = 0
EXIT_ISSUES = 1
EXIT_DISCOVERY = 2
EXIT_ROLLED_BACK = 3


# ---------------------------------------------------------------------------
# Discovery result
# ---------------------------------------------------------------------------


class Discovery(BaseModel):
    """Everything stages 1-3 produce; computing it never writes."""

    entities: list[MockupEntity] = Field(default_factory=list)
    artifacts: list[OutputArtifact] = Field(default_factory=list)
    decisions: list[Decision] = Field(default_factory=list)
    steps: list[PlanStep] = Field(default_factory=list)
    untracked: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Pipeline Orchestrator
# ---------------------------------------------------------------------------


class Pipeline:
    """Mockup Sync Pipeline Orchestrator.

    Attributes:
        config: Global configuration (policy flags already applied).
        policy: The slice of configuration the plan builder reads.
        store: Ledger store holding run logs and the latest-state index.
    """

    def __init__(
        self,
        config: Config,
        *,
        parser: MockupParser | None = None,
        emitter: CodeEmitter | None = None,
        confirmer: Confirmer | None = None,
        out: Console | None = None,
    ) -> None:
        self.config = config
        self.policy = Policy.from_config(config)
        self.store = LedgerStore(config)
        self.parser = parser
        self.emitter = emitter
        self.confirmer = confirmer
        self.console = out or console

    # ------------------------------------------------------------------
    # Stages 1-3
    # ------------------------------------------------------------------

    def discover(self, store: LedgerStore | None = None) -> Discovery:
        """Scan, compare and plan.

        Raises:
            DiscoveryConflict: When the mockup tree or the ledger cannot be
                resolved into a consistent set of entity keys.
        """
        store = store or self.store
        index = store.index
        entities = scan_mockups(self.config)
        artifacts = scan_outputs(self.config, index.artifacts())
        decisions = compare(entities, artifacts, index.entries)
        steps = build_plan(decisions, self.policy)
        return Discovery(
            entities=entities,
            artifacts=artifacts,
            decisions=decisions,
            steps=steps,
            untracked=untracked_outputs(
                self.config, artifacts, index.shared_paths + index.retired_paths()
            ),
        )

    def plan(self) -> int:
        """Print the plan without writing anything.  Returns the exit code."""
        self._banner("plan")
        store = LedgerStore(self.config, self.console, readonly=True)
        try:
            discovery = self.discover(store)
        except DiscoveryConflict as exc:
            print_error(f"Discovery failed: {exc}")
            return EXIT_DISCOVERY

        for run_id in open_runs(self.config):
            print_warning(f"Run {run_id} was interrupted; it will be rolled back by the next generate.")
        print_plan_table(discovery.steps, self.console)
        self._report_untracked(discovery.untracked)
        return EXIT_OK

    # ------------------------------------------------------------------
    # Full run
    # ------------------------------------------------------------------

    async def generate(self, *, dry_run: bool = False) -> int:
        """Execute a full run.  Returns the exit code."""
        if dry_run:
            return self.plan()

        start = time.monotonic()
        self._banner("generate")
        self.config.ensure_directories()
        try:
            RollbackController(self.config, self.console).recover(self.store)
        except RollbackError as exc:
            print_error(f"Cannot recover an interrupted run: {exc}")
            return EXIT_DISCOVERY

        before = tree_manifest(self.config.mockup_path)
        run_id = run_timestamp()
        ledger = RunLedger(
            self.config,
            run_id,
            command="generate",
            policy=self.policy.model_dump(mode="json", include={"allow_update", "only", "skip", "interactive"}),
        )

        # -- Stages 1-3 ----------------------------------------------------
        print_stage_header(1)
        try:
            discovery = self.discover()
        except DiscoveryConflict as exc:
            print_error(f"Discovery failed: {exc}")
            ledger.event("scan", exc.as_record(), "error")
            self.store.apply(ledger.finalize(RunStatus.FAILED, EXIT_DISCOVERY))
            return EXIT_DISCOVERY
        self.console.print(
            f"  {len(discovery.entities)} mockup entities, {len(discovery.artifacts)} recorded artifacts"
        )
        ledger.event("scan", f"{len(discovery.entities)} entities, {len(discovery.artifacts)} artifacts")
        if discovery.untracked:
            ledger.event("scan", f"{len(discovery.untracked)} untracked files under output roots")

        print_stage_header(2)
        counts: dict[str, int] = {}
        for decision in discovery.decisions:
            counts[decision.kind.value] = counts.get(decision.kind.value, 0) + 1
        self.console.print("  " + ", ".join(f"{v} {k}" for k, v in sorted(counts.items())) if counts else "  nothing to compare")

        print_stage_header(3)
        print_plan_table(discovery.steps, self.console)

        # -- Stage 4 -------------------------------------------------------
        print_stage_header(4)
        index = self.store.index
        journal = CommitJournal(self.config, run_id)
        staging = StagingArea(self.config, run_id)
        executor = Executor(
            self.config,
            self.policy,
            journal,
            staging,
            parser=self.parser,
            emitter=self.emitter,
            confirmer=self.confirmer,
            owners=self._owners(index),
            routes=self._routes(index),
            out=self.console,
        )
        results: dict[str, StepResult] = {}
        recorded: set[str] = set()
        failure: BaseException | None = None
        try:
            run = self._execute(discovery.steps, executor, ledger, results, recorded)
            timeout = self.config.execution.timeout_seconds
            if timeout:
                await asyncio.wait_for(run, timeout)
            else:
                await run
        except (CommitError, TimeoutError) as exc:
            failure = exc
        except asyncio.CancelledError as exc:
            failure = exc
        except Exception:
            RollbackController(self.config, self.console).rollback(run_id)
            ledger.event("execute", "unexpected error; writes rolled back", "error")
            self.store.apply(ledger.finalize(RunStatus.ROLLED_BACK, EXIT_ROLLED_BACK))
            staging.cleanup()
            raise

        # -- Stage 5 -------------------------------------------------------
        print_stage_header(5)
        if failure is not None:
            self._roll_back(run_id, failure, discovery.steps, journal, ledger, results, recorded)
            status, exit_code = RunStatus.ROLLED_BACK, EXIT_ROLLED_BACK
        else:
            journal.close()
            for path in executor.shared_written:
                ledger.add_shared_path(path)
            for warning in executor.warnings:
                ledger.event("execute", warning, "warning")
            status, exit_code = RunStatus.COMPLETED, self._exit_code(results.values(), executor.warnings)
        staging.cleanup()

        changed = diff_manifests(before, tree_manifest(self.config.mockup_path))
        if changed:
            ledger.event("verify", "mockup tree changed during the run: " + ", ".join(changed), "error")
            exit_code = max(exit_code, EXIT_ISSUES)

        log = ledger.finalize(status, exit_code)
        self.store.apply(log)
        print_run_summary(log, time.monotonic() - start, self.console)

        if isinstance(failure, asyncio.CancelledError):
            raise failure
        return exit_code

    async def _execute(
        self,
        steps: Sequence[PlanStep],
        executor: Executor,
        ledger: RunLedger,
        results: dict[str, StepResult],
        recorded: set[str],
    ) -> None:
        """Run the plan class by class; records are appended in plan order."""
        semaphore = asyncio.Semaphore(self.config.execution.max_parallel_steps)

        async def run_one(step: PlanStep) -> None:
            async with semaphore:
                results[step.key] = await executor.execute(step)
                await asyncio.sleep(0)

        for group in _groups(steps):
            tasks = [asyncio.create_task(run_one(step)) for step in group]
            try:
                await asyncio.gather(*tasks)
            except BaseException:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise
            for step in group:
                result = results[step.key]
                self._record(ledger, result)
                recorded.add(step.key)

    def _roll_back(
        self,
        run_id: str,
        failure: BaseException,
        steps: Sequence[PlanStep],
        journal: CommitJournal,
        ledger: RunLedger,
        results: dict[str, StepResult],
        recorded: set[str],
    ) -> None:
        reason = (
            failure.as_record() if isinstance(failure, CommitError)
            else "run timed out" if isinstance(failure, TimeoutError)
            else "run cancelled"
        )
        print_error(f"Rolling back run {run_id}: {reason}")
        ledger.event("execute", reason, "error")
        report = RollbackController(self.config, self.console).rollback(run_id)
        ledger.event("rollback", f"{len(report.restored)} restored, {len(report.removed)} removed", "warning")

        failed_key = failure.slug if isinstance(failure, CommitError) else None
        touched = set(journal.touched_keys())
        for step in steps:
            result = results.get(step.key)
            if step.key == failed_key or step.key in touched:
                base = result or _aborted(step, "")
                errors = [reason] if step.key == failed_key else []
                self._record(
                    ledger,
                    base.model_copy(update={"action": Action.ROLLED_BACK, "errors": errors, "written": []}),
                )
            elif step.key not in recorded:
                self._record(ledger, result or _aborted(step, "run aborted"))

    # ------------------------------------------------------------------
    # Operator commands
    # ------------------------------------------------------------------

    def rollback(self, run_id: str) -> int:
        """Explicitly roll back *run_id*.  Safe to invoke repeatedly."""
        if load_journal(self.config, run_id) is None:
            print_error(f"Unknown run: {run_id}")
            return EXIT_DISCOVERY
        try:
            report = RollbackController(self.config, self.console).rollback(run_id)
        except RollbackError as exc:
            print_error(str(exc))
            return EXIT_DISCOVERY
        self.store.close_interrupted(run_id, "rolled back by operator")
        print_rollback_report(report, self.console)
        return EXIT_OK

    def rebuild_ledger(self) -> int:
        """Rebuild ``index.json`` from the run logs."""
        index = self.store.rebuild_index()
        print_summary_table(
            {
                "Runs replayed": str(len(index.applied_runs)),
                "Entity keys": str(len(index.entries)),
                "Artifacts": str(len(index.artifacts())),
                "Index": str(self.config.index_path),
            },
            title="Ledger Rebuilt",
        )
        return EXIT_OK

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _banner(self, command: str) -> None:
        only = ", ".join(self.policy.only) or "(all)"
        self.console.print(
            Panel(
                f"[bold bright_cyan]Mockup Sync[/bold bright_cyan] {command}\n"
                f"Mockups : {self.config.mockup_path}\n"
                f"State   : {self.config.state_path}\n"
                f"Only    : {only}\n"
                f"Updates : {'allowed' if self.policy.allow_update else 'report only'}",
                title="[bold]Run Start[/bold]",
                border_style="bright_cyan",
            )
        )

    def _report_untracked(self, untracked: list[str]) -> None:
        if untracked:
            self.console.print(
                f"[dim]{len(untracked)} file(s) under output roots are not tracked by the ledger "
                f"and will never be touched.[/dim]"
            )

    def _owners(self, index: LedgerIndex) -> dict[str, str]:
        owners = index.owners()
        owners.update({path: ROUTE_REGISTRY_KEY for path in index.shared_paths})
        return owners

    def _routes(self, index: LedgerIndex) -> dict[str, str]:
        return {
            a.slug: a.path
            for a in index.artifacts()
            if a.kind is ArtifactKind.ROUTE
            and a.variant is None
            and (self.config.project_root / a.path).is_file()
        }

    @staticmethod
    def _record(ledger: RunLedger, result: StepResult) -> None:
        ledger.record(
            result.key,
            result.slug,
            result.decision,
            result.action,
            result.errors,
            **result.record_fields(),
        )

    @staticmethod
    def _exit_code(results, warnings: list[str]) -> int:
        for result in results:
            if result.action is Action.FAILED or result.severity is not Severity.INFO:
                return EXIT_ISSUES
        return EXIT_ISSUES if warnings else EXIT_OK


# ---------------------------------------------------------------------------
# Module helpers
# ---------------------------------------------------------------------------


def _groups(steps: Sequence[PlanStep]) -> list[list[PlanStep]]:
    """Split the (already ordered) plan into generate / update / report groups."""
    groups: dict[str, list[PlanStep]] = {}
    for step in steps:
        groups.setdefault(step.step_type, []).append(step)
    return [groups[name] for name in ("generate", "update", "report") if name in groups]


def _aborted(step: PlanStep, reason: str) -> StepResult:
    return StepResult(
        key=step.key,
        slug=step.slug,
        variant=step.variant,
        step_type=step.step_type,
        decision=step.decision.value,
        action=Action.SKIPPED,
        severity=step.severity,
        reason=reason or step.reason,
        notes=list(step.notes),
        artifacts=list(step.artifacts),
        mockup_fingerprint=step.mockup.content_fingerprint if step.mockup else None,
    )


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def _split_slugs(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def load_config(path: str | None) -> Config:
    """Load the configuration named on the command line (or via the environment).

    Raises:
        ConfigError: When an explicitly named file does not exist.
    """
    if path is None:
        return Config.from_env()
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}", paths=[config_path])
    config = Config.load(config_path)
    if os.environ.get("MOCKSYNC_ALLOW_UPDATE", "").strip().lower() in ("1", "true", "yes"):
        config.allow_update = True
    return config


def build_parser():
    """Build the ``mocksync`` argument parser."""
    import argparse

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config", "-c",
        default=None,
        help=f"Path to the config file (default: $MOCKSYNC_CONFIG or ./{DEFAULT_CONFIG_NAME})",
    )

    scoping = argparse.ArgumentParser(add_help=False)
    scoping.add_argument(
        "--only",
        type=_split_slugs,
        default=None,
        help="Comma-separated slugs to act on; everything else is reported as skipped",
    )
    scoping.add_argument(
        "--allow-update",
        action="store_true",
        help="Permit regeneration of outputs whose mockup changed",
    )

    parser = argparse.ArgumentParser(
        prog="mocksync",
        description="Mockup Sync -- generate UI code from design mockups, safely and repeatably",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  mocksync plan\n"
            "  mocksync generate --only checkout,cart --allow-update\n"
            "  mocksync rollback 20260101T120000000000Z\n"
            "  mocksync ledger rebuild\n"
        ),
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("plan", parents=[common, scoping], help="Print the plan; write nothing")

    generate = commands.add_parser("generate", parents=[common, scoping], help="Execute the plan")
    generate.add_argument("--interactive", "-i", action="store_true", help="Confirm each overwrite")
    generate.add_argument("--dry-run", action="store_true", help="Same as 'plan'")
    generate.add_argument("--quiet", "-q", action="store_true", help="Only print errors")

    rollback = commands.add_parser("rollback", parents=[common], help="Undo a run's writes")
    rollback.add_argument("run_id", help="Run id (timestamp in the run log name)")

    ledger = commands.add_parser("ledger", parents=[common], help="Ledger maintenance")
    ledger.add_argument("action", choices=["rebuild"], help="Rebuild index.json from the run logs")

    return parser


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point for ``python -m src.pipeline`` / ``mocksync``."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except ValidationError as exc:
        print_error(f"Invalid configuration:\n{exc}")
        sys.exit(EXIT_DISCOVERY)
    except (ConfigError, json.JSONDecodeError, OSError) as exc:
        print_error(f"Cannot load configuration: {exc}")
        sys.exit(EXIT_DISCOVERY)

    if getattr(args, "only", None):
        config.only = args.only
    if getattr(args, "allow_update", False):
        config.allow_update = True
    if getattr(args, "interactive", False):
        config.interactive = True
    if getattr(args, "quiet", False):
        set_quiet(True)

    pipeline = Pipeline(config)
    if args.command == "plan":
        code = pipeline.plan()
    elif args.command == "generate":
        start = time.monotonic()
        try:
            code = asyncio.run(pipeline.generate(dry_run=args.dry_run))
        except KeyboardInterrupt:
            print_error("Interrupted; the run was rolled back.")
            code = EXIT_ROLLED_BACK
        if code == EXIT_OK:
            print_success(f"Done in {format_duration(time.monotonic() - start)}")
    elif args.command == "rollback":
        code = pipeline.rollback(args.run_id)
    else:
        code = pipeline.rebuild_ledger()
    sys.exit(code)


if __name__ == "__main__":
    main()
