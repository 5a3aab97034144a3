"""Inventory scanner for the mockup tree and the output tree.

Walks the mockup tree, applies the configured include/exclude globs, and
groups sibling files into entities according to the declared composition
rules (``x.html`` + ``x.css`` + ``x.json`` -> one slug ``x``).  Variant
suffixes (``-mobile``, ``-dark``) map to the base slug plus a variant tag.

The output side is never inferred from the output tree alone: artifacts come
from the ledger's latest-state index and are joined with what is actually on
disk so the comparator sees both provenance and current content.

Scanning is a pure read; nothing here writes to either tree.
"""

from __future__ import annotations

import fnmatch
import os
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path

from src.config import KIND_ROOTS, Config
from src.errors import DiscoveryConflict
from src.utils import sanitize_name, sha256_file

from .fingerprint import fingerprint_sources
from .models import MockupEntity, OutputArtifact, SourceFile, entity_key


# ---------------------------------------------------------------------------
# Tree walking
# ---------------------------------------------------------------------------

def walk_tree(
    root: Path,
    include: Iterable[str] = ("*",),
    exclude: Iterable[str] = (),
) -> Iterator[str]:
    """Yield POSIX paths (relative to *root*) of files matching the rules.

    Directories and files are visited in sorted order so the output does not
    depend on filesystem enumeration order.  Symlinked directories are not
    followed.
    """
    include = list(include)
    exclude = list(exclude)
    if not root.is_dir():
        return
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for name in sorted(filenames):
            rel = (Path(dirpath) / name).relative_to(root).as_posix()
            if not any(fnmatch.fnmatchcase(rel, pat) for pat in include):
                continue
            if any(fnmatch.fnmatchcase(rel, pat) for pat in exclude):
                continue
            yield rel


# ---------------------------------------------------------------------------
# Slug derivation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class _Candidate:
    rel_path: str
    role: str
    directory: str
    stem: str
    slug: str
    variant: str | None


def split_variant(stem: str, suffixes: Iterable[str]) -> tuple[str, str | None]:
    """Strip a declared variant suffix from a file stem.

    Returns ``(base_stem, suffix)``; the longest matching suffix wins and a
    stem consisting only of the suffix is not treated as a variant.
    """
    lowered = stem.lower()
    for suffix in sorted(suffixes, key=len, reverse=True):
        if lowered.endswith(suffix.lower()) and len(stem) > len(suffix):
            return stem[: -len(suffix)], suffix
    return stem, None


def derive_slug(rel_path: str, suffixes: Iterable[str]) -> tuple[str, str | None]:
    """Derive ``(slug, variant_suffix)`` from a mockup path.

    The slug is lower-cased with path separators normalised to hyphens:
    ``Account/Order History-mobile.html`` -> ``("account-order-history", "-mobile")``.
    """
    path = Path(rel_path)
    base_stem, suffix = split_variant(path.stem, suffixes)
    parts = [sanitize_name(part) for part in (*path.parent.parts, base_stem)]
    slug = "-".join(part for part in parts if part)
    return slug, suffix


# ---------------------------------------------------------------------------
# Mockup scanning
# ---------------------------------------------------------------------------

def scan_mockups(config: Config) -> list[MockupEntity]:
    """Discover every mockup entity under ``config.mockup_path``.

    Returns base entities (with their variants nested) plus variants whose
    base is absent, ordered by entity key.

    Raises:
        DiscoveryConflict: When distinct files normalise to the same slug with
            incompatible composition, or a path yields an empty slug.
    """
    root = config.mockup_path
    composition = config.composition
    groups: dict[tuple[str, str | None], list[_Candidate]] = {}

    for rel in walk_tree(root, config.include, config.exclude):
        path = Path(rel)
        role = composition.role_for(path.suffix)
        if role is None:
            continue
        slug, suffix = derive_slug(rel, config.variants.suffixes)
        if not slug:
            raise DiscoveryConflict(f"Cannot derive a slug from {rel}", paths=[rel])
        variant = config.variants.tag_for(suffix) if suffix else None
        candidate = _Candidate(
            rel_path=rel,
            role=role,
            directory=path.parent.as_posix(),
            stem=path.stem,
            slug=slug,
            variant=variant,
        )
        groups.setdefault((slug, variant), []).append(candidate)

    entities: dict[tuple[str, str | None], MockupEntity] = {}
    for (slug, variant), members in groups.items():
        _check_composition(slug, variant, members)
        roles = {member.role for member in members}
        if not roles.intersection(composition.primary_roles):
            # Stray style/data files with nothing to render.
            continue
        members.sort(key=lambda m: (composition.role_rank(m.role), m.rel_path))
        sources = tuple(SourceFile(path=m.rel_path, role=m.role) for m in members)
        fingerprint = fingerprint_sources(
            root, [(s.path, s.role) for s in sources], composition.text_roles
        )
        entities[(slug, variant)] = MockupEntity(
            slug=slug,
            variant=variant,
            sources=sources,
            content_fingerprint=fingerprint,
        )

    result: list[MockupEntity] = []
    for (slug, variant), entity in entities.items():
        if variant is not None:
            if (slug, None) not in entities:
                result.append(entity)
            continue
        nested = sorted(
            (e for (s, v), e in entities.items() if s == slug and v is not None),
            key=lambda e: e.key,
        )
        result.append(entity.model_copy(update={"variants": tuple(nested)}))

    return sorted(result, key=lambda e: e.key)


def _check_composition(slug: str, variant: str | None, members: list[_Candidate]) -> None:
    """Members of one slug must be co-located siblings with distinct roles."""
    key = entity_key(slug, variant)
    paths = sorted(m.rel_path for m in members)
    locations = {(m.directory, m.stem) for m in members}
    if len(locations) > 1:
        raise DiscoveryConflict(
            f"Slug '{key}' is claimed by files with different names or directories: "
            f"{', '.join(paths)}",
            slug=slug,
            paths=paths,
        )
    seen: dict[str, str] = {}
    for member in sorted(members, key=lambda m: m.rel_path):
        if member.role in seen:
            raise DiscoveryConflict(
                f"Slug '{key}' has two {member.role} files: "
                f"{seen[member.role]} and {member.rel_path}",
                slug=slug,
                paths=[seen[member.role], member.rel_path],
            )
        seen[member.role] = member.rel_path


# ---------------------------------------------------------------------------
# Output scanning
# ---------------------------------------------------------------------------

def scan_outputs(config: Config, recorded: Iterable[OutputArtifact]) -> list[OutputArtifact]:
    """Join recorded artifacts with the current state of the output tree.

    Every artifact is returned with ``on_disk_fingerprint`` filled in (or
    ``None`` when the file has disappeared).  Ordered by ``(key, path)``.

    Raises:
        DiscoveryConflict: When one output path is owned by two entity keys.
    """
    owners: dict[str, str] = {}
    result: list[OutputArtifact] = []
    for artifact in recorded:
        previous = owners.setdefault(artifact.path, artifact.key)
        if previous != artifact.key:
            raise DiscoveryConflict(
                f"Output path {artifact.path} is owned by both '{previous}' and '{artifact.key}'",
                slug=artifact.slug,
                paths=[artifact.path],
            )
        on_disk = config.project_root / artifact.path
        fingerprint = sha256_file(on_disk) if on_disk.is_file() else None
        result.append(artifact.model_copy(update={"on_disk_fingerprint": fingerprint}))
    return sorted(result, key=lambda a: (a.key, a.path))


def untracked_outputs(
    config: Config,
    tracked: Iterable[OutputArtifact],
    shared: Iterable[str] = (),
) -> list[str]:
    """Files under the output roots that no ledger record owns (report only)."""
    known = {artifact.path for artifact in tracked} | set(shared)
    found: set[str] = set()
    for kind in KIND_ROOTS:
        root = config.output_root(kind)
        for rel in walk_tree(root):
            found.add(config.relative(root / rel))
    return sorted(found - known)
