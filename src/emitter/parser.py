"""Default mockup parser.

Builds a :class:`ComponentTree` from the files of one mockup entity:

* the markup file (``.html``) is parsed with :mod:`html.parser` into
  :class:`ComponentNode` trees (``<body>`` content only when a body exists),
* the data file (``.json``) may declare ``title``, ``route`` and
  ``endpoints``,
* an image-only mockup yields a placeholder section titled after the slug.

Malformed input (mismatched tags, unreadable data JSON, a missing primary
file) raises :class:`ParseError`, which fails only the entity concerned.
"""

from __future__ import annotations

import json
import re
from html.parser import HTMLParser
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from src.errors import ParseError
from src.inventory.models import MockupEntity

from .models import TEXT_TAG, ComponentNode, ComponentTree, EndpointDescriptor

VOID_ELEMENTS = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "param", "source", "track", "wbr",
})

# Elements whose end tag may be omitted in HTML.
IMPLICIT_CLOSE = frozenset({
    "p", "li", "dt", "dd", "tr", "td", "th", "option",
    "thead", "tbody", "tfoot", "colgroup", "rp", "rt",
})

DROPPED_ELEMENTS = frozenset({"script", "style", "head", "template", "noscript"})

_WHITESPACE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# HTML tree builder
# ---------------------------------------------------------------------------

class _TreeBuilder(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.document = ComponentNode(tag="#document")
        self.stack: list[ComponentNode] = [self.document]
        self.title: str | None = None
        self.body: ComponentNode | None = None
        self._dropped = 0
        self._in_title = False
        self._title_parts: list[str] = []
        self.errors: list[str] = []

    # -- Callbacks ---------------------------------------------------------

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag == "title":
            self._in_title = True
            return
        if tag in DROPPED_ELEMENTS:
            if tag not in VOID_ELEMENTS:
                self._dropped += 1
            return
        if self._dropped or tag in ("html",):
            return
        if tag in IMPLICIT_CLOSE and len(self.stack) > 1 and self.stack[-1].tag == tag:
            self.stack.pop()
        node = ComponentNode(tag=tag, attributes={k: v or "" for k, v in attrs})
        if tag == "body":
            self.body = node
        self.stack[-1].children.append(node)
        if tag not in VOID_ELEMENTS:
            self.stack.append(node)

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag in DROPPED_ELEMENTS or self._dropped:
            return
        self.stack[-1].children.append(
            ComponentNode(tag=tag, attributes={k: v or "" for k, v in attrs})
        )

    def handle_endtag(self, tag: str) -> None:
        if tag == "title":
            self._in_title = False
            self.title = _collapse("".join(self._title_parts)) or None
            return
        if tag in DROPPED_ELEMENTS:
            if tag not in VOID_ELEMENTS and self._dropped:
                self._dropped -= 1
            return
        if self._dropped or tag in VOID_ELEMENTS or tag == "html":
            return
        while len(self.stack) > 1 and self.stack[-1].tag != tag and self.stack[-1].tag in IMPLICIT_CLOSE:
            self.stack.pop()
        if len(self.stack) > 1 and self.stack[-1].tag == tag:
            self.stack.pop()
            return
        open_tag = self.stack[-1].tag if len(self.stack) > 1 else None
        line, _ = self.getpos()
        if open_tag is None:
            self.errors.append(f"unexpected </{tag}> on line {line}")
        else:
            self.errors.append(f"</{tag}> on line {line} does not close <{open_tag}>")

    def handle_data(self, data: str) -> None:
        if self._in_title:
            self._title_parts.append(data)
            return
        if self._dropped:
            return
        text = _collapse(data)
        if text:
            self.stack[-1].children.append(ComponentNode(tag=TEXT_TAG, text=text))

    # -- Result ------------------------------------------------------------

    def finish(self) -> list[ComponentNode]:
        self.close()
        unclosed = [n.tag for n in self.stack[1:] if n.tag not in IMPLICIT_CLOSE and n.tag != "body"]
        if unclosed:
            self.errors.append(f"unclosed <{unclosed[-1]}>")
        if self.body is not None:
            return list(self.body.children)
        return list(self.document.children)


def _collapse(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def parse_html(markup: str) -> tuple[list[ComponentNode], str | None]:
    """Parse *markup* into root nodes and the document title.

    Raises:
        ValueError: On mismatched or unclosed tags.
    """
    builder = _TreeBuilder()
    builder.feed(markup)
    roots = builder.finish()
    if builder.errors:
        raise ValueError("; ".join(builder.errors))
    return roots, builder.title


def _first_heading(nodes: list[ComponentNode]) -> str | None:
    for root in nodes:
        for node in root.walk():
            if node.tag == "h1":
                text = " ".join(n.text or "" for n in node.walk() if n.is_text)
                return _collapse(text) or None
    return None


# ---------------------------------------------------------------------------
# MockupParser
# ---------------------------------------------------------------------------

class MockupParser:
    """Reads a mockup entity's files into a :class:`ComponentTree`."""

    def parse(self, root: Path, entity: MockupEntity) -> ComponentTree:
        slug = entity.slug
        data = self._load_data(root, entity)

        markup_path = entity.path_for_role("markup")
        image_path = entity.path_for_role("image")
        if markup_path is None and image_path is None:
            raise ParseError(f"Mockup '{entity.key}' has no markup or image file", slug=slug)

        title = data.get("title")
        if title is not None and not isinstance(title, str):
            raise ParseError(f"Mockup '{entity.key}': title must be a string", slug=slug)
        if markup_path is not None:
            roots, html_title = self._parse_markup(root, markup_path, entity)
            title = title or html_title or _first_heading(roots)
        else:
            roots = []

        title = title or " ".join(word.capitalize() for word in slug.split("-"))
        if not roots:
            roots = [
                ComponentNode(
                    tag="section",
                    attributes={"class": f"mockup-placeholder {slug}"},
                    children=[
                        ComponentNode(
                            tag="h1", children=[ComponentNode(tag=TEXT_TAG, text=title)]
                        )
                    ],
                )
            ]

        route = data.get("route") or ("/" if slug in ("home", "index") else f"/{slug}")
        if not isinstance(route, str) or not route.startswith("/"):
            raise ParseError(f"Mockup '{entity.key}': route must start with '/'", slug=slug)

        try:
            endpoints = [EndpointDescriptor.model_validate(e) for e in data.get("endpoints", [])]
        except (ValidationError, TypeError) as exc:
            raise ParseError(
                f"Mockup '{entity.key}': invalid endpoints declaration", slug=slug
            ) from exc

        try:
            return ComponentTree(
                slug=slug,
                variant=entity.variant,
                title=title,
                route_path=route,
                roots=roots,
                stylesheet=entity.path_for_role("style"),
                image=image_path,
                endpoints=endpoints,
                source_fingerprint=entity.content_fingerprint,
            )
        except ValidationError as exc:
            raise ParseError(f"Mockup '{entity.key}': {exc.errors()[0]['msg']}", slug=slug) from exc

    def _parse_markup(
        self, root: Path, rel: str, entity: MockupEntity
    ) -> tuple[list[ComponentNode], str | None]:
        try:
            markup = (root / rel).read_text(encoding="utf-8-sig")
        except (OSError, UnicodeDecodeError) as exc:
            raise ParseError(f"Cannot read {rel}: {exc}", slug=entity.slug, paths=[rel]) from exc
        try:
            return parse_html(markup)
        except ValueError as exc:
            raise ParseError(f"{rel}: {exc}", slug=entity.slug, paths=[rel]) from exc

    def _load_data(self, root: Path, entity: MockupEntity) -> dict[str, Any]:
        rel = entity.path_for_role("data")
        if rel is None:
            return {}
        try:
            data = json.loads((root / rel).read_text(encoding="utf-8-sig"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ParseError(f"{rel}: invalid data file ({exc})", slug=entity.slug, paths=[rel]) from exc
        if not isinstance(data, dict):
            raise ParseError(f"{rel}: data file must hold a JSON object", slug=entity.slug, paths=[rel])
        return data

