"""ComponentNode -> JSX conversion.

Every text node and attribute value is emitted as a JSON-quoted expression
(``{"Pay now"}``, ``className={"btn"}``), so mockup text can never break
out of the markup or unbalance the file.  Inline ``style`` and ``on*``
handler attributes are dropped.
"""

from __future__ import annotations

import json
import re

from .models import ComponentNode

ATTRIBUTE_NAMES = {
    "class": "className",
    "for": "htmlFor",
    "tabindex": "tabIndex",
    "readonly": "readOnly",
    "maxlength": "maxLength",
    "minlength": "minLength",
    "colspan": "colSpan",
    "rowspan": "rowSpan",
    "autocomplete": "autoComplete",
    "autofocus": "autoFocus",
    "srcset": "srcSet",
    "enctype": "encType",
    "crossorigin": "crossOrigin",
    "contenteditable": "contentEditable",
}

BOOLEAN_ATTRIBUTES = frozenset({
    "disabled", "checked", "required", "hidden", "selected", "multiple",
    "readonly", "autofocus", "open", "novalidate",
})

_VALID_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")
_VALID_TAG = re.compile(r"^[a-z][a-z0-9-]*$")

INDENT = "  "


def jsx_attributes(attributes: dict[str, str]) -> str:
    parts: list[str] = []
    for name in sorted(attributes):
        value = attributes[name]
        lowered = name.lower()
        if lowered == "style" or lowered.startswith("on") or not _VALID_NAME.match(name):
            continue
        jsx_name = ATTRIBUTE_NAMES.get(lowered, name)
        if lowered in BOOLEAN_ATTRIBUTES and value in ("", lowered):
            parts.append(jsx_name)
        else:
            parts.append(f"{jsx_name}={{{json.dumps(value)}}}")
    return (" " + " ".join(parts)) if parts else ""


def render_node(node: ComponentNode, depth: int) -> list[str]:
    """Render *node* as JSX lines indented by *depth* levels."""
    pad = INDENT * depth
    if node.is_text:
        return [f"{pad}{{{json.dumps(node.text or '')}}}"]
    tag = node.tag if _VALID_TAG.match(node.tag) else "div"
    attrs = jsx_attributes(node.attributes)
    if not node.children:
        return [f"{pad}<{tag}{attrs} />"]
    lines = [f"{pad}<{tag}{attrs}>"]
    for child in node.children:
        lines.extend(render_node(child, depth + 1))
    lines.append(f"{pad}</{tag}>")
    return lines


def render_jsx(roots: list[ComponentNode], depth: int = 2) -> str:
    """Render *roots* as a single JSX expression (fragment when several)."""
    if len(roots) == 1 and not roots[0].is_text:
        return "\n".join(render_node(roots[0], depth))
    pad = INDENT * depth
    lines = [f"{pad}<>"]
    for root in roots:
        lines.extend(render_node(root, depth + 1))
    lines.append(f"{pad}</>")
    return "\n".join(lines)
