"""API-binding generation.

Turns the ``endpoints`` a mockup's data file declares into a typed
``fetch`` wrapper module.  The base URL is read at runtime from the
environment variable named by ``api.base_url_env``, with a non-secret
relative fallback; the override value in the generating process is never
rendered.
"""

from __future__ import annotations

import re
from typing import Any

from src.config import Config
from src.errors import StagingError
from src.inventory.models import ArtifactKind
from src.utils import camel_case

from .models import CandidateFile, ComponentTree, EndpointDescriptor
from .templates import TemplateRenderer, js_string

_PATH_PARAM = re.compile(r"\{(\w+)\}|:(\w+)")
_ENV_NAME = re.compile(r"^[A-Z_][A-Z0-9_]*$")
_BODY_METHODS = {"POST", "PUT", "PATCH"}


def binding_path(config: Config, slug: str) -> str:
    """Project-relative path of the binding module for *slug*."""
    return config.relative(config.output_root(ArtifactKind.API_BINDING.value) / f"{slug}.api.ts")


class ApiBindingGenerator:
    """Renders ``<api>/<slug>.api.ts`` for entities that declare endpoints."""

    def __init__(self, config: Config, renderer: TemplateRenderer | None = None) -> None:
        self.config = config
        self.renderer = renderer or TemplateRenderer()

    def generate(self, tree: ComponentTree, sources: list[str]) -> CandidateFile | None:
        """Return the binding candidate, or ``None`` when nothing is declared."""
        if not tree.endpoints:
            return None
        env_name = self.config.api.base_url_env
        if not _ENV_NAME.match(env_name):
            raise StagingError(f"Invalid base URL variable name: {env_name!r}", slug=tree.slug)

        endpoints = [self._describe(tree, e) for e in tree.endpoints]
        names = [e["function"] for e in endpoints]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise StagingError(
                f"Mockup '{tree.key}' declares duplicate endpoint names: {', '.join(duplicates)}",
                slug=tree.slug,
            )

        content = self.renderer.render(
            "api.ts.j2",
            {
                "sources": sources,
                "fingerprint": tree.source_fingerprint,
                "base_url_env": env_name,
                "fallback_base_url": self.config.api.fallback_base_url,
                "endpoints": endpoints,
            },
        )
        return CandidateFile(
            key=tree.key,
            kind=ArtifactKind.API_BINDING,
            path=binding_path(self.config, tree.slug),
            content=content,
        )

    def _describe(self, tree: ComponentTree, endpoint: EndpointDescriptor) -> dict[str, Any]:
        method = endpoint.method.upper()
        function = camel_case(re.sub(r"[^A-Za-z0-9]+", "-", endpoint.name))
        if not function or function[0].isdigit():
            raise StagingError(
                f"Mockup '{tree.key}': endpoint name {endpoint.name!r} is not a valid identifier",
                slug=tree.slug,
            )
        params = [a or b for a, b in _PATH_PARAM.findall(endpoint.path)]
        args = [f"{camel_case(p)}: string" for p in params]
        body = endpoint.body or method in _BODY_METHODS
        if body:
            args.append("body: unknown")
        return {
            "function": function,
            "method": method,
            "params": ", ".join(args),
            "path_expr": _path_expression(endpoint.path),
            "body": body,
            "description": " ".join(endpoint.description.replace("*/", "* /").split()),
        }


def _path_expression(path: str) -> str:
    """JS expression for *path*, interpolating ``{id}``/``:id`` parameters."""
    if not _PATH_PARAM.search(path):
        return js_string(path)
    pieces: list[str] = []
    last = 0
    for match in _PATH_PARAM.finditer(path):
        literal = path[last:match.start()].replace("\\", "\\\\").replace("`", "\\`").replace("${", "\\${")
        pieces.append(literal)
        name = camel_case(match.group(1) or match.group(2))
        pieces.append(f"${{encodeURIComponent({name})}}")
        last = match.end()
    tail = path[last:].replace("\\", "\\\\").replace("`", "\\`").replace("${", "\\${")
    pieces.append(tail)
    return "`" + "".join(pieces) + "`"
