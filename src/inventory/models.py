"""Pydantic v2 models for the two inventories.

A :class:`MockupEntity` is one discoverable design artifact in the read-only
mockup tree; an :class:`OutputArtifact` is one generated unit in the output
tree.  Both are keyed by a stable slug; variants (``mobile``, ``dark``) share
their base slug and are addressed by the composite :func:`entity_key`.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


VARIANT_SEPARATOR = "@"


def entity_key(slug: str, variant: str | None = None) -> str:
    """Composite key: ``checkout`` for a base, ``checkout@mobile`` for a variant."""
    return f"{slug}{VARIANT_SEPARATOR}{variant}" if variant else slug


def split_key(key: str) -> tuple[str, str | None]:
    """Inverse of :func:`entity_key`."""
    slug, _, variant = key.partition(VARIANT_SEPARATOR)
    return slug, variant or None


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class ArtifactKind(str, Enum):
    """Kinds of generated output."""
    PAGE = "page"
    COMPONENT = "component"
    ROUTE = "route"
    API_BINDING = "api-binding"


# ---------------------------------------------------------------------------
# Mockup side
# ---------------------------------------------------------------------------

class SourceFile(BaseModel):
    """One file composing a mockup entity."""
    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="POSIX path relative to the mockup root")
    role: str = Field(..., description="Composition role: markup, style, data, image")


class MockupEntity(BaseModel):
    """One discoverable design artifact.  Never mutated by the system."""
    model_config = ConfigDict(frozen=True)

    slug: str = Field(..., description="Stable normalised identifier")
    variant: Optional[str] = Field(default=None, description="Variant tag, None for a base")
    sources: tuple[SourceFile, ...] = Field(
        default=(), description="Files composing the entity, in role order"
    )
    content_fingerprint: str = Field(..., description="Hash over normalised source content")
    variants: tuple["MockupEntity", ...] = Field(
        default=(), description="Variant entities sharing this base slug"
    )

    @property
    def key(self) -> str:
        return entity_key(self.slug, self.variant)

    @property
    def source_paths(self) -> list[str]:
        return [source.path for source in self.sources]

    def path_for_role(self, role: str) -> str | None:
        """Return the source path for *role*, or ``None`` when absent."""
        for source in self.sources:
            if source.role == role:
                return source.path
        return None

    def flatten(self) -> list["MockupEntity"]:
        """The entity followed by its variants (each compared independently)."""
        return [self, *self.variants]


# ---------------------------------------------------------------------------
# Output side
# ---------------------------------------------------------------------------

class OutputArtifact(BaseModel):
    """One generated unit in the output tree."""

    slug: str
    variant: Optional[str] = None
    kind: ArtifactKind
    path: str = Field(..., description="POSIX path relative to the project root")
    content_fingerprint: str = Field(..., description="Hash of the content as generated")
    generated_from_fingerprint: str = Field(
        ..., description="MockupEntity fingerprint this artifact was derived from"
    )
    standalone: bool = False
    external_only: bool = False
    on_disk_fingerprint: Optional[str] = Field(
        default=None,
        exclude=True,
        description="Hash of the file currently on disk; None when missing (scan-time only)",
    )

    @property
    def key(self) -> str:
        return entity_key(self.slug, self.variant)

    @property
    def exists(self) -> bool:
        return self.on_disk_fingerprint is not None

    @property
    def modified_on_disk(self) -> bool:
        """True when the file exists but no longer matches what was generated."""
        return self.exists and self.on_disk_fingerprint != self.content_fingerprint


MockupEntity.model_rebuild()
