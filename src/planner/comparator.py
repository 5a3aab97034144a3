"""State comparator: classifies every entity key against the output inventory.

Given the current mockup entities, the recorded output artifacts (joined with
disk state by the scanner) and the prior ledger state, produce one
:class:`Decision` per key:

* ``new``                  -- no live artifact exists for the mockup.
* ``unchanged``            -- artifacts were generated from the current fingerprint.
* ``update-available``     -- artifacts were generated from an older fingerprint.
* ``orphaned``             -- artifacts exist but their mockup is gone.
* ``variant-without-base`` -- a variant mockup whose base mockup is absent.

Variants are compared independently of their base, so a changed ``-dark``
mockup surfaces as an update of the ``slug@dark`` artifact only.

Each key is classified by :func:`classify` without reference to any other
key, which makes the pass order-insensitive; the result is sorted by key.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Optional

from src.inventory.models import MockupEntity, OutputArtifact, split_key

from .models import Decision, DecisionKind

if TYPE_CHECKING:
    from src.ledger.models import IndexEntry


def compare(
    mockups: Iterable[MockupEntity],
    outputs: Iterable[OutputArtifact],
    prior: Optional[Mapping[str, "IndexEntry"]] = None,
) -> list[Decision]:
    """Classify every mockup and output key.

    Args:
        mockups: Entities returned by the scanner (variants nested or not).
        outputs: Recorded artifacts with ``on_disk_fingerprint`` filled in.
        prior: Latest-state ledger entries keyed by entity key.

    Returns:
        Decisions ordered lexicographically by key.
    """
    prior = prior or {}
    flat: dict[str, MockupEntity] = {}
    for entity in mockups:
        for member in entity.flatten():
            flat[member.key] = member
    base_slugs = {e.slug for e in flat.values() if e.variant is None}

    by_key: dict[str, list[OutputArtifact]] = {}
    for artifact in outputs:
        by_key.setdefault(artifact.key, []).append(artifact)

    keys = sorted(flat.keys() | by_key.keys())
    return [
        classify(
            key,
            flat.get(key),
            by_key.get(key, []),
            prior.get(key),
            base_present=split_key(key)[0] in base_slugs,
        )
        for key in keys
    ]


def classify(
    key: str,
    mockup: MockupEntity | None,
    artifacts: list[OutputArtifact],
    prior: Optional["IndexEntry"] = None,
    *,
    base_present: bool = True,
) -> Decision:
    """Classify a single key.  Pure; safe to run per key in any order."""
    slug, variant = split_key(key)
    artifacts = sorted(artifacts, key=lambda a: a.path)
    live = [a for a in artifacts if a.exists]
    notes: list[str] = []

    missing = [a.path for a in artifacts if not a.exists]
    if missing:
        notes.append("missing on disk: " + ", ".join(missing))
    edited = [a.path for a in live if a.modified_on_disk]
    if edited:
        notes.append("modified-on-disk: " + ", ".join(edited))
    if prior is not None and prior.last_errors:
        notes.append(f"previous run ({prior.last_run_id}) reported errors")

    def decide(kind: DecisionKind) -> Decision:
        return Decision(
            key=key,
            slug=slug,
            variant=variant,
            kind=kind,
            mockup=mockup,
            artifacts=artifacts,
            notes=notes,
        )

    if mockup is None:
        return decide(DecisionKind.ORPHANED)

    if variant is not None and not base_present:
        return decide(DecisionKind.VARIANT_WITHOUT_BASE)

    if not live:
        return decide(DecisionKind.NEW)

    generated_from = _generated_from(live, prior)
    if generated_from == mockup.content_fingerprint:
        # Same source, files gone: regenerate what is absent.
        return decide(DecisionKind.NEW if missing else DecisionKind.UNCHANGED)
    return decide(DecisionKind.UPDATE_AVAILABLE)


def _generated_from(live: list[OutputArtifact], prior: Optional["IndexEntry"]) -> str:
    """Provenance fingerprint: the ledger's, falling back to the artifacts'."""
    if prior is not None and prior.generated_from_fingerprint:
        return prior.generated_from_fingerprint
    fingerprints = {a.generated_from_fingerprint for a in live}
    if len(fingerprints) == 1:
        return fingerprints.pop()
    # Mixed provenance can only mean a partial earlier update.
    return ""
