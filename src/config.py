"""Mockup Sync configuration.

Centralised, typed configuration for the generation pipeline.  All settings
use Pydantic v2 models so they can be validated at construction time and
serialised to/from ``agents.config.json`` without boiler-plate.  Keys are
accepted in either ``snake_case`` or ``camelCase`` (``allowUpdate``,
``externalOnly``) so existing agent config files load unchanged.

The core never hard-codes a path: every root used by the scanner, the
executor and the ledger is derived from an instance of :class:`Config`.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

DEFAULT_CONFIG_NAME = "agents.config.json"

#: Artifact kind -> attribute of :class:`OutputPaths` holding its root.
KIND_ROOTS: dict[str, str] = {
    "page": "pages",
    "component": "components",
    "route": "routes",
    "api-binding": "api",
}


class _ConfigModel(BaseModel):
    """Base model accepting both camelCase and snake_case keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class OutputPaths(_ConfigModel):
    """Output roots (relative to the project root) for every artifact kind."""

    pages: Path = Field(default=Path("src/pages"))
    components: Path = Field(default=Path("src/components"))
    routes: Path = Field(default=Path("src/routes"))
    api: Path = Field(default=Path("src/api"))

    def as_dict(self) -> dict[str, Path]:
        """Return a plain ``{kind_root: path}`` mapping."""
        return {
            "pages": self.pages,
            "components": self.components,
            "routes": self.routes,
            "api": self.api,
        }


class SlugRule(_ConfigModel):
    """Per-slug policy overrides."""

    standalone: bool = Field(
        default=False, description="Generate the page without a route entry"
    )
    external_only: bool = Field(
        default=False, description="The page talks to external APIs only; no binding module"
    )
    skip: bool = Field(default=False, description="Never plan work for this slug")
    allow_update: bool | None = Field(
        default=None, description="Overrides the global allow_update flag when set"
    )


class VariantConfig(_ConfigModel):
    """Declared variant suffixes (``checkout-mobile`` -> ``checkout`` + ``mobile``)."""

    suffixes: list[str] = Field(default_factory=lambda: ["-mobile", "-dark"])

    def tag_for(self, suffix: str) -> str:
        """Return the variant tag for a declared suffix (``-mobile`` -> ``mobile``)."""
        return suffix.lstrip("-_.").lower()


class CompositionConfig(_ConfigModel):
    """Which sibling files compose one mockup entity.

    Files sharing a base name in the same directory are grouped into one
    entity when their extensions map to *distinct* roles.  An entity is only
    formed when at least one file has a role listed in ``primary_roles``.
    """

    roles: dict[str, list[str]] = Field(
        default_factory=lambda: {
            "markup": [".html", ".htm"],
            "style": [".css", ".scss"],
            "data": [".json"],
            "image": [".png", ".jpg", ".jpeg", ".webp", ".svg"],
        }
    )
    primary_roles: list[str] = Field(default_factory=lambda: ["markup", "image"])
    text_roles: list[str] = Field(default_factory=lambda: ["markup", "style", "data"])

    def role_for(self, suffix: str) -> str | None:
        """Return the role owning a file extension, or ``None`` when undeclared."""
        suffix = suffix.lower()
        for role, extensions in self.roles.items():
            if suffix in (ext.lower() for ext in extensions):
                return role
        return None

    def role_rank(self, role: str) -> int:
        """Declaration order of *role*, used to order ``source_paths``."""
        order = list(self.roles)
        return order.index(role) if role in order else len(order)


class ApiConfig(_ConfigModel):
    """API-binding generation settings.

    Generated bindings read their base URL from ``base_url_env`` at runtime.
    The value of ``override_env`` in *this* process is a deployment secret
    candidate and is never written into generated output.
    """

    base_url_env: str = Field(default="VITE_API_BASE_URL")
    fallback_base_url: str = Field(default="/api")
    override_env: str = Field(default="MOCKSYNC_API_BASE_URL")

    def override_value(self) -> str | None:
        """Return the API base URL override from the environment, if any."""
        value = os.environ.get(self.override_env, "").strip()
        return value or None


class ExecutionConfig(_ConfigModel):
    """Tuning knobs for the executor."""

    max_parallel_steps: int = Field(
        default=1, ge=1, description="Steps of one class that may stage/commit concurrently"
    )
    timeout_seconds: float | None = Field(
        default=None, gt=0, description="Whole-run timeout; expiry triggers a full rollback"
    )


class Config(_ConfigModel):
    """Global Mockup Sync configuration.

    Holds every policy flag and derived path used by the pipeline.  Instances
    are created once by the CLI entry point (usually via :meth:`load`) and
    passed through the rest of the system.
    """

    project_root: Path = Field(default=Path("."))
    mockup_root: Path = Field(default=Path("design/mockups"))
    output_paths: OutputPaths = Field(default_factory=OutputPaths)
    state_dir: Path = Field(default=Path(".mocksync"))

    include: list[str] = Field(default_factory=lambda: ["*"])
    exclude: list[str] = Field(default_factory=lambda: [".*", "*/.*", "_*", "*/_*"])

    skip: list[str] = Field(default_factory=list)
    only: list[str] = Field(default_factory=list)
    allow_update: bool = Field(default=False)
    interactive: bool = Field(default=False)
    slugs: dict[str, SlugRule] = Field(default_factory=dict)

    variants: VariantConfig = Field(default_factory=VariantConfig)
    composition: CompositionConfig = Field(default_factory=CompositionConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)

    @model_validator(mode="after")
    def _check_disjoint_roots(self) -> "Config":
        mockups = _normalise(self.project_root / self.mockup_root)
        written = [self.state_dir, *self.output_paths.as_dict().values()]
        for rel in written:
            target = _normalise(self.project_root / rel)
            if _overlaps(mockups, target):
                raise ValueError(
                    f"mockup root {self.mockup_root} overlaps writable path {rel}"
                )
        return self

    # ------------------------------------------------------------------
    # Derived paths (read-only properties)
    # ------------------------------------------------------------------

    @property
    def mockup_path(self) -> Path:
        """Root of the read-only mockup tree."""
        return self.project_root / self.mockup_root

    @property
    def state_path(self) -> Path:
        """Root of the ``.mocksync/`` state directory."""
        return self.project_root / self.state_dir

    @property
    def runs_dir(self) -> Path:
        """Directory holding one ``agent-run-<timestamp>.json`` per run."""
        return self.state_path / "runs"

    @property
    def index_path(self) -> Path:
        """Path to the derived latest-state index."""
        return self.state_path / "index.json"

    @property
    def staging_dir(self) -> Path:
        """Scratch directory for staged candidate files."""
        return self.state_path / "staging"

    @property
    def journal_dir(self) -> Path:
        """Directory holding per-run commit journals and prior-content backups."""
        return self.state_path / "journal"

    def relative(self, path: Path) -> str:
        """POSIX form of *path* relative to the project root (as stored in the ledger)."""
        return Path(os.path.relpath(path, self.project_root)).as_posix()

    def output_root(self, kind: str) -> Path:
        """Return the absolute-or-project-relative root for an artifact kind."""
        attr = KIND_ROOTS.get(kind)
        if attr is None:
            raise KeyError(f"Unknown artifact kind: {kind}")
        return self.project_root / getattr(self.output_paths, attr)

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path | None = None) -> Path:
        """Persist the configuration to a JSON file.

        Args:
            path: Destination file. Defaults to ``<project_root>/agents.config.json``.

        Returns:
            The path where the file was written.
        """
        target = path or (self.project_root / DEFAULT_CONFIG_NAME)
        target.parent.mkdir(parents=True, exist_ok=True)
        payload = self.model_dump(mode="json", by_alias=True, exclude={"project_root"})
        target.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
        return target

    @classmethod
    def load(cls, path: Path | str) -> "Config":
        """Load a configuration file.

        A relative (or missing) ``projectRoot`` is resolved against the
        directory containing the file.

        Args:
            path: The JSON file to read.

        Returns:
            A validated ``Config`` instance.
        """
        config_path = Path(path)
        data: dict[str, Any] = json.loads(config_path.read_text(encoding="utf-8"))
        key = "projectRoot" if "projectRoot" in data else "project_root"
        root = Path(data.get(key) or ".")
        if not root.is_absolute():
            root = config_path.parent / root
        data[key] = str(root)
        return cls.model_validate(data)

    @classmethod
    def from_env(cls) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional):
            MOCKSYNC_CONFIG -- path to the config file (default ``./agents.config.json``).
            MOCKSYNC_ALLOW_UPDATE -- ``1``/``true``/``yes`` turns on global updates.
        """
        path = Path(os.environ.get("MOCKSYNC_CONFIG", DEFAULT_CONFIG_NAME))
        config = cls.load(path) if path.exists() else cls()
        if os.environ.get("MOCKSYNC_ALLOW_UPDATE", "").strip().lower() in ("1", "true", "yes"):
            config.allow_update = True
        return config

    def ensure_directories(self) -> None:
        """Create all state directories that must exist before a run."""
        for directory in (
            self.state_path,
            self.runs_dir,
            self.staging_dir,
            self.journal_dir,
        ):
            directory.mkdir(parents=True, exist_ok=True)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _normalise(path: Path) -> Path:
    return Path(os.path.normpath(os.path.abspath(path)))


def _overlaps(a: Path, b: Path) -> bool:
    return a == b or a in b.parents or b in a.parents
