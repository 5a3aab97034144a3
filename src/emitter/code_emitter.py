"""Default code emitter.

Renders the candidate files for one :class:`ComponentTree`:

==============  ==============================================  =================
Kind            Path                                            When
==============  ==============================================  =================
component       ``<components>/<slug>/<Name>.tsx``              always
page            ``<pages>/<Name>Page.tsx``                      base entities
route           ``<routes>/<slug>.route.ts``                    not standalone
api-binding     ``<api>/<slug>.api.ts``                         endpoints declared,
                                                                not external-only
==============  ==============================================  =================

A variant (``checkout@mobile``) only emits ``<components>/<slug>/<Name><Variant>.tsx``.
The shared route registry (``<routes>/index.ts``) is rendered separately by
:meth:`CodeEmitter.render_route_registry`.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from src.config import Config
from src.inventory.models import ArtifactKind
from src.utils import camel_case, pascal_case

from .bindings import ApiBindingGenerator, binding_path
from .jsx import render_jsx
from .models import CandidateFile, ComponentTree
from .templates import TemplateRenderer

ROUTE_REGISTRY_KEY = "(route-registry)"
ROUTE_REGISTRY_NAME = "index.ts"
ROUTE_SUFFIX = ".route.ts"


def identifier(value: str) -> str:
    """PascalCase identifier for *value*; never starts with a digit."""
    name = pascal_case(value.replace(".", "-"))
    return f"Mockup{name}" if not name or name[0].isdigit() else name


class CodeEmitter:
    """Produces candidate files from a component tree."""

    def __init__(
        self,
        config: Config,
        renderer: TemplateRenderer | None = None,
        bindings: ApiBindingGenerator | None = None,
    ) -> None:
        self.config = config
        self.renderer = renderer or TemplateRenderer()
        self.bindings = bindings or ApiBindingGenerator(config, self.renderer)

    # -- Paths -------------------------------------------------------------

    def _root(self, kind: ArtifactKind) -> Path:
        return self.config.output_root(kind.value)

    def component_name(self, slug: str, variant: str | None = None) -> str:
        return identifier(slug) + (pascal_case(variant) if variant else "")

    def path_for(self, kind: ArtifactKind, slug: str, variant: str | None = None) -> str:
        """Project-relative target of an artifact kind for an entity."""
        if kind is ArtifactKind.COMPONENT:
            target = self._root(kind) / slug / f"{self.component_name(slug, variant)}.tsx"
        elif kind is ArtifactKind.PAGE:
            target = self._root(kind) / f"{identifier(slug)}Page.tsx"
        elif kind is ArtifactKind.ROUTE:
            target = self._root(kind) / f"{slug}{ROUTE_SUFFIX}"
        else:
            return binding_path(self.config, slug)
        return self.config.relative(target)

    def registry_path(self) -> str:
        return self.config.relative(self._root(ArtifactKind.ROUTE) / ROUTE_REGISTRY_NAME)

    def _import(self, from_path: str, to_path: str) -> str:
        """Relative module specifier from one project file to another."""
        rel = Path(os.path.relpath(to_path, os.path.dirname(from_path) or ".")).as_posix()
        for suffix in (".tsx", ".ts"):
            if rel.endswith(suffix):
                rel = rel[: -len(suffix)]
                break
        return rel if rel.startswith(".") else f"./{rel}"

    # -- Emission ----------------------------------------------------------

    def emit(
        self,
        tree: ComponentTree,
        kind: ArtifactKind,
        sources: list[str],
        *,
        standalone: bool = False,
        external_only: bool = False,
    ) -> CandidateFile | None:
        """Render one artifact kind, or ``None`` when it does not apply."""
        if tree.variant is not None and kind is not ArtifactKind.COMPONENT:
            return None
        base = {"sources": sources, "fingerprint": tree.source_fingerprint, "title": tree.title}

        if kind is ArtifactKind.COMPONENT:
            content = self.renderer.render(
                "component.tsx.j2",
                {
                    **base,
                    "component_name": self.component_name(tree.slug, tree.variant),
                    "jsx": render_jsx(tree.roots),
                },
            )
        elif kind is ArtifactKind.PAGE:
            path = self.path_for(kind, tree.slug)
            api_import = None
            if tree.endpoints and not external_only:
                api_import = self._import(path, binding_path(self.config, tree.slug))
            content = self.renderer.render(
                "page.tsx.j2",
                {
                    **base,
                    "component_name": self.component_name(tree.slug),
                    "component_import": self._import(
                        path, self.path_for(ArtifactKind.COMPONENT, tree.slug)
                    ),
                    "page_name": f"{identifier(tree.slug)}Page",
                    "api_import": api_import,
                    "api_namespace": camel_case(identifier(tree.slug)) + "Api",
                },
            )
        elif kind is ArtifactKind.ROUTE:
            if standalone:
                return None
            path = self.path_for(kind, tree.slug)
            content = self.renderer.render(
                "route.ts.j2",
                {
                    **base,
                    "page_name": f"{identifier(tree.slug)}Page",
                    "page_import": self._import(path, self.path_for(ArtifactKind.PAGE, tree.slug)),
                    "route_path": tree.route_path,
                },
            )
        else:
            if external_only:
                return None
            return self.bindings.generate(tree, sources)

        return CandidateFile(
            key=tree.key,
            kind=kind,
            path=self.path_for(kind, tree.slug, tree.variant),
            content=content,
        )

    def emit_all(
        self,
        tree: ComponentTree,
        sources: list[str],
        *,
        standalone: bool = False,
        external_only: bool = False,
    ) -> list[CandidateFile]:
        """Every applicable artifact for *tree*, ordered by path."""
        candidates = [
            self.emit(tree, kind, sources, standalone=standalone, external_only=external_only)
            for kind in ArtifactKind
        ]
        return sorted((c for c in candidates if c is not None), key=lambda c: c.path)

    def render_route_registry(self, routes: Mapping[str, str]) -> CandidateFile:
        """Render the shared registry from ``{slug: route module path}``."""
        path = self.registry_path()
        entries = [
            {
                "name": camel_case(identifier(slug)) + "Route",
                "module": self._import(path, routes[slug]),
            }
            for slug in sorted(routes)
        ]
        content = self.renderer.render("routes_index.ts.j2", {"entries": entries})
        return CandidateFile(
            key=ROUTE_REGISTRY_KEY,
            kind=ArtifactKind.ROUTE,
            path=path,
            content=content,
            shared=True,
        )
