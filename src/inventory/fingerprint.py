"""Content fingerprints for mockup entities and tree manifests.

Fingerprints hash *normalised* bytes so that line-ending churn or a UTF-8 BOM
added by an editor does not register as a design change.  Binary roles
(images) are hashed verbatim.
"""

from __future__ import annotations

import hashlib
import os
from collections.abc import Iterable
from pathlib import Path

from src.utils import sha256_file

_BOM = b"\xef\xbb\xbf"


def normalise_bytes(data: bytes) -> bytes:
    """Strip a UTF-8 BOM and normalise CRLF/CR line endings to LF."""
    if data.startswith(_BOM):
        data = data[len(_BOM):]
    return data.replace(b"\r\n", b"\n").replace(b"\r", b"\n")


def fingerprint_sources(
    root: Path,
    sources: Iterable[tuple[str, str]],
    text_roles: Iterable[str],
) -> str:
    """Hash the ``(relative_path, role)`` files of one entity.

    Each file contributes its role, its extension and its (normalised)
    content, in the order given.  The relative directory is deliberately not
    part of the hash: it already determines the slug.
    """
    text = set(text_roles)
    digest = hashlib.sha256()
    for rel_path, role in sources:
        data = (root / rel_path).read_bytes()
        if role in text:
            data = normalise_bytes(data)
        digest.update(role.encode("utf-8") + b"\0")
        digest.update(Path(rel_path).suffix.lower().encode("utf-8") + b"\0")
        digest.update(len(data).to_bytes(8, "big"))
        digest.update(data)
    return digest.hexdigest()


def tree_manifest(root: Path) -> dict[str, str]:
    """Raw per-file SHA-256 manifest of a directory tree.

    Keys are POSIX paths relative to *root*; an absent root yields ``{}``.
    """
    if not root.is_dir():
        return {}
    manifest: dict[str, str] = {}
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for name in sorted(filenames):
            path = Path(dirpath) / name
            manifest[path.relative_to(root).as_posix()] = sha256_file(path)
    return manifest


def diff_manifests(before: dict[str, str], after: dict[str, str]) -> list[str]:
    """Paths added, removed or changed between two manifests, sorted."""
    changed = {path for path in before.keys() | after.keys() if before.get(path) != after.get(path)}
    return sorted(changed)
