"""Mockup Sync inventory -- discovers mockup entities and output artifacts.

Usage::

    from src.inventory import scan_mockups, scan_outputs

    entities = scan_mockups(config)
    artifacts = scan_outputs(config, index.artifacts())
"""

from src.inventory.fingerprint import diff_manifests, fingerprint_sources, tree_manifest
from src.inventory.models import (
    ArtifactKind,
    MockupEntity,
    OutputArtifact,
    SourceFile,
    entity_key,
    split_key,
)
from src.inventory.scanner import (
    derive_slug,
    scan_mockups,
    scan_outputs,
    untracked_outputs,
    walk_tree,
)

__all__ = [
    "ArtifactKind",
    "MockupEntity",
    "OutputArtifact",
    "SourceFile",
    "entity_key",
    "split_key",
    "derive_slug",
    "scan_mockups",
    "scan_outputs",
    "untracked_outputs",
    "walk_tree",
    "diff_manifests",
    "fingerprint_sources",
    "tree_manifest",
]
