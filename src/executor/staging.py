"""Staging area: candidate files are written here before verification."""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path

from src.config import Config
from src.emitter.models import CandidateFile
from src.utils import atomic_write, sha256_bytes


@dataclass(frozen=True)
class StagedFile:
    """A candidate materialised in the staging directory."""

    candidate: CandidateFile
    staged: Path
    target: Path
    fingerprint: str

    @property
    def path(self) -> str:
        return self.candidate.path

    def target_matches(self) -> bool:
        """True when the target already holds exactly this content."""
        return self.target.is_file() and self.target.read_bytes() == self.staged.read_bytes()


class StagingArea:
    """Per-run scratch directory mirroring the project layout."""

    def __init__(self, config: Config, run_id: str) -> None:
        self.config = config
        self.root = config.staging_dir / run_id

    def stage(self, candidate: CandidateFile) -> StagedFile:
        data = candidate.content.encode("utf-8")
        staged = self.root / candidate.path
        atomic_write(staged, data)
        return StagedFile(
            candidate=candidate,
            staged=staged,
            target=self.config.project_root / candidate.path,
            fingerprint=sha256_bytes(data),
        )

    def discard(self, files: list[StagedFile]) -> None:
        for item in files:
            item.staged.unlink(missing_ok=True)

    def cleanup(self) -> None:
        if self.root.exists():
            shutil.rmtree(self.root)
