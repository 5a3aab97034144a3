"""Pydantic v2 models passed between the parser, the emitters and the executor."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from src.inventory.models import ArtifactKind, entity_key


TEXT_TAG = "#text"


class ComponentNode(BaseModel):
    """One element (or text run) of a parsed mockup."""

    tag: str
    attributes: dict[str, str] = Field(default_factory=dict)
    children: list["ComponentNode"] = Field(default_factory=list)
    text: Optional[str] = None

    @property
    def is_text(self) -> bool:
        return self.tag == TEXT_TAG

    def walk(self):
        """Yield this node and every descendant, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()


class EndpointDescriptor(BaseModel):
    """An API call a page makes, declared in the mockup's data file."""

    name: str
    method: str = Field(default="GET")
    path: str = Field(..., description="Path relative to the API base URL")
    description: str = ""
    body: bool = Field(default=False, description="Whether the call sends a JSON body")


class ComponentTree(BaseModel):
    """Structured description of one mockup entity, ready for emission."""

    slug: str
    variant: Optional[str] = None
    title: str
    route_path: str
    roots: list[ComponentNode] = Field(default_factory=list)
    stylesheet: Optional[str] = Field(default=None, description="Style source, relative to the mockup root")
    image: Optional[str] = Field(default=None, description="Image source, relative to the mockup root")
    endpoints: list[EndpointDescriptor] = Field(default_factory=list)
    source_fingerprint: str

    @property
    def key(self) -> str:
        return entity_key(self.slug, self.variant)


class CandidateFile(BaseModel):
    """A file the emitter proposes to write."""

    key: str
    kind: ArtifactKind
    path: str = Field(..., description="Target, POSIX path relative to the project root")
    content: str
    shared: bool = Field(default=False, description="Owned by no single key (route registry)")


ComponentNode.model_rebuild()
