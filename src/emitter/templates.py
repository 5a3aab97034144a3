"""Jinja2 template rendering for generated UI code.

Provides the TemplateRenderer class which loads Jinja2 templates from the
``src/emitter/templates/`` directory and renders them with per-entity
context data.  Templates only lay out files; markup conversion happens in
Python before rendering (see :mod:`src.emitter.jsx`).
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from src.utils import camel_case, pascal_case


# ---------------------------------------------------------------------------
# Template directory discovery
# ---------------------------------------------------------------------------

_DEFAULT_TEMPLATE_DIR = Path(__file__).parent / "templates"


# ---------------------------------------------------------------------------
# TemplateRenderer
# ---------------------------------------------------------------------------


class TemplateRenderer:
    """Renders the ``.j2`` templates the code emitter uses.

    Rendering is deterministic: the same context always produces the same
    bytes, which is what lets an unchanged mockup produce an unchanged file.
    Undefined template variables raise instead of rendering as empty.
    """

    def __init__(self, template_dir: str | Path | None = None) -> None:
        if template_dir is None:
            template_dir = _DEFAULT_TEMPLATE_DIR
        self.template_dir = Path(template_dir)
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape([]),
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
            undefined=StrictUndefined,
        )
        # Register custom filters
        self.env.filters["pascal_case"] = pascal_case
        self.env.filters["camel_case"] = camel_case
        self.env.filters["js_string"] = js_string

    def render(self, template_path: str, context: dict[str, Any]) -> str:
        """Render a single template with the provided context.

        Args:
            template_path: Path relative to the template directory (e.g.
                ``"page.tsx.j2"``).
            context: Dictionary of variables available inside the template.

        Returns:
            The rendered template content as a string.
        """
        template = self.env.get_template(template_path)
        return template.render(**context)

    def render_string(self, template_string: str, context: dict[str, Any]) -> str:
        """Render an inline template string with the provided context."""
        template = self.env.from_string(template_string)
        return template.render(**context)

    def list_templates(self) -> list[str]:
        """Return a sorted list of all ``.j2`` template names."""
        if not self.template_dir.is_dir():
            return []
        return sorted(
            p.relative_to(self.template_dir).as_posix()
            for p in self.template_dir.rglob("*.j2")
        )


# ---------------------------------------------------------------------------
# Jinja2 custom filters
# ---------------------------------------------------------------------------

def js_string(value: Any) -> str:
    """Quote *value* as a JavaScript string literal."""
    return json.dumps(str(value))

