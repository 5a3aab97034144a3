"""Unit tests for the code emitter, JSX rendering, API bindings and templates.

Tests cover:
- identifier / component naming and artifact paths
- JSX attribute mapping and text escaping
- Per-kind emission rules (variants, standalone, external-only)
- Route registry rendering
- API binding generation, path parameters and secret handling
- TemplateRenderer filters and determinism
"""

from __future__ import annotations

from pathlib import Path

import pytest

from src.config import ApiConfig, Config
from src.emitter import (
    ApiBindingGenerator,
    CodeEmitter,
    ComponentNode,
    ComponentTree,
    EndpointDescriptor,
    TemplateRenderer,
    identifier,
)
from src.emitter.jsx import jsx_attributes, render_jsx
from src.emitter.models import TEXT_TAG
from src.errors import StagingError
from src.executor.verify import GENERATED_MARKER, check_brackets
from src.inventory.models import ArtifactKind

pytestmark = pytest.mark.unit


def _text(value: str) -> ComponentNode:
    return ComponentNode(tag=TEXT_TAG, text=value)


def _tree(slug: str = "checkout", variant: str | None = None, endpoints=()) -> ComponentTree:
    return ComponentTree(
        slug=slug,
        variant=variant,
        title="Checkout",
        route_path=f"/{slug}",
        roots=[
            ComponentNode(
                tag="main",
                attributes={"class": "checkout"},
                children=[ComponentNode(tag="h1", children=[_text("Checkout")])],
            )
        ],
        endpoints=list(endpoints),
        source_fingerprint="f" * 64,
    )


@pytest.fixture
def emitter(config: Config) -> CodeEmitter:
    return CodeEmitter(config)


# ---------------------------------------------------------------------------
# Naming and paths
# ---------------------------------------------------------------------------


class TestNaming:

    def test_identifier(self):
        assert identifier("order-history") == "OrderHistory"
        assert identifier("404") == "Mockup404"
        assert identifier("v1.2") == "V12"

    def test_component_name_with_variant(self, emitter: CodeEmitter):
        assert emitter.component_name("checkout", "mobile") == "CheckoutMobile"

    def test_paths(self, emitter: CodeEmitter):
        assert emitter.path_for(ArtifactKind.COMPONENT, "checkout") == "src/components/checkout/Checkout.tsx"
        assert emitter.path_for(ArtifactKind.COMPONENT, "checkout", "dark") == (
            "src/components/checkout/CheckoutDark.tsx"
        )
        assert emitter.path_for(ArtifactKind.PAGE, "checkout") == "src/pages/CheckoutPage.tsx"
        assert emitter.path_for(ArtifactKind.ROUTE, "checkout") == "src/routes/checkout.route.ts"
        assert emitter.path_for(ArtifactKind.API_BINDING, "checkout") == "src/api/checkout.api.ts"
        assert emitter.registry_path() == "src/routes/index.ts"


# ---------------------------------------------------------------------------
# JSX
# ---------------------------------------------------------------------------


class TestJsx:

    def test_attribute_mapping(self):
        rendered = jsx_attributes({"class": "btn", "for": "card", "data-id": "7"})
        assert rendered == ' className={"btn"} data-id={"7"} htmlFor={"card"}'

    def test_handlers_and_style_dropped(self):
        assert jsx_attributes({"onclick": "pay()", "style": "color:red"}) == ""

    def test_boolean_attribute(self):
        assert jsx_attributes({"required": ""}) == " required"

    def test_text_is_json_quoted(self):
        jsx = render_jsx([ComponentNode(tag="p", children=[_text('Say "hi" {now} </p>')])])
        assert '{"Say \\"hi\\" {now} </p>"}' in jsx
        assert check_brackets(jsx) is None

    def test_single_root_has_no_fragment(self):
        assert render_jsx([ComponentNode(tag="br")], depth=0) == "<br />"

    def test_several_roots_use_fragment(self):
        jsx = render_jsx([ComponentNode(tag="p"), ComponentNode(tag="p")], depth=0)
        assert jsx.splitlines()[0] == "<>"
        assert jsx.splitlines()[-1] == "</>"

    def test_text_root_uses_fragment(self):
        assert render_jsx([_text("hi")], depth=0).startswith("<>")

    def test_invalid_tag_becomes_div(self):
        assert render_jsx([ComponentNode(tag="my:tag")], depth=0) == "<div />"


# ---------------------------------------------------------------------------
# Emission
# ---------------------------------------------------------------------------


class TestEmit:

    def test_base_entity_kinds(self, emitter: CodeEmitter):
        candidates = emitter.emit_all(_tree(), ["checkout.html"])
        assert [c.kind for c in candidates] == [
            ArtifactKind.COMPONENT,
            ArtifactKind.PAGE,
            ArtifactKind.ROUTE,
        ]
        assert [c.path for c in candidates] == sorted(c.path for c in candidates)
        assert all(c.key == "checkout" for c in candidates)

    def test_every_file_carries_marker_and_sources(self, emitter: CodeEmitter):
        for candidate in emitter.emit_all(_tree(), ["checkout.html", "checkout.css"]):
            assert GENERATED_MARKER in candidate.content
            assert "// source: checkout.css" in candidate.content
            assert f"// mockup fingerprint: {'f' * 64}" in candidate.content
            assert check_brackets(candidate.content) is None

    def test_variant_emits_component_only(self, emitter: CodeEmitter):
        [candidate] = emitter.emit_all(_tree(variant="mobile"), ["checkout-mobile.html"])
        assert candidate.kind is ArtifactKind.COMPONENT
        assert candidate.key == "checkout@mobile"
        assert "export function CheckoutMobile()" in candidate.content

    def test_standalone_has_no_route(self, emitter: CodeEmitter):
        kinds = [c.kind for c in emitter.emit_all(_tree(), [], standalone=True)]
        assert ArtifactKind.ROUTE not in kinds

    def test_page_imports(self, emitter: CodeEmitter):
        page = emitter.emit(_tree(), ArtifactKind.PAGE, [])
        assert 'import Checkout from "../components/checkout/Checkout";' in page.content
        assert 'export const title = "Checkout";' in page.content
        assert "export function CheckoutPage()" in page.content

    def test_route_module(self, emitter: CodeEmitter):
        route = emitter.emit(_tree(), ArtifactKind.ROUTE, [])
        assert 'import CheckoutPage from "../pages/CheckoutPage";' in route.content
        assert 'path: "/checkout",' in route.content

    def test_endpoints_add_binding_and_page_import(self, emitter: CodeEmitter):
        tree = _tree(endpoints=[EndpointDescriptor(name="get cart", path="/cart")])
        candidates = {c.kind: c for c in emitter.emit_all(tree, [])}
        assert ArtifactKind.API_BINDING in candidates
        assert 'import * as checkoutApi from "../api/checkout.api";' in candidates[ArtifactKind.PAGE].content

    def test_external_only_has_no_binding(self, emitter: CodeEmitter):
        tree = _tree(endpoints=[EndpointDescriptor(name="get cart", path="/cart")])
        candidates = {c.kind: c for c in emitter.emit_all(tree, [], external_only=True)}
        assert ArtifactKind.API_BINDING not in candidates
        assert "checkoutApi" not in candidates[ArtifactKind.PAGE].content

    def test_deterministic(self, emitter: CodeEmitter, config: Config):
        first = [c.model_dump() for c in emitter.emit_all(_tree(), ["a.html"])]
        second = [c.model_dump() for c in CodeEmitter(config).emit_all(_tree(), ["a.html"])]
        assert first == second


class TestRouteRegistry:

    def test_entries_sorted_by_slug(self, emitter: CodeEmitter):
        registry = emitter.render_route_registry(
            {"zeta": "src/routes/zeta.route.ts", "alpha": "src/routes/alpha.route.ts"}
        )
        assert registry.shared
        assert registry.path == "src/routes/index.ts"
        assert registry.content.index("alphaRoute") < registry.content.index("zetaRoute")
        assert 'import alphaRoute from "./alpha.route";' in registry.content

    def test_empty_registry(self, emitter: CodeEmitter):
        registry = emitter.render_route_registry({})
        assert "export const routes = [\n];" in registry.content


# ---------------------------------------------------------------------------
# API bindings
# ---------------------------------------------------------------------------


class TestApiBindings:

    def test_no_endpoints(self, config: Config):
        assert ApiBindingGenerator(config).generate(_tree(), []) is None

    def test_functions_and_methods(self, config: Config):
        tree = _tree(
            endpoints=[
                EndpointDescriptor(name="get cart", path="/cart"),
                EndpointDescriptor(name="submitOrder", method="post", path="/orders", description="Place it"),
            ]
        )
        binding = ApiBindingGenerator(config).generate(tree, ["checkout.json"])
        assert "export function getCart(): Promise<unknown>" in binding.content
        assert "export function submitOrder(body: unknown): Promise<unknown>" in binding.content
        assert 'request("POST", "/orders", body)' in binding.content
        assert "/** Place it */" in binding.content
        assert check_brackets(binding.content) is None

    def test_path_parameters(self, config: Config):
        tree = _tree(endpoints=[EndpointDescriptor(name="order status", path="/orders/{order_id}/items/:item")])
        binding = ApiBindingGenerator(config).generate(tree, [])
        assert "export function orderStatus(orderId: string, item: string)" in binding.content
        assert (
            "`/orders/${encodeURIComponent(orderId)}/items/${encodeURIComponent(item)}`"
            in binding.content
        )

    def test_base_url_from_runtime_env(self, config: Config):
        tree = _tree(endpoints=[EndpointDescriptor(name="x", path="/x")])
        binding = ApiBindingGenerator(config).generate(tree, [])
        assert 'import.meta.env.VITE_API_BASE_URL ?? "/api"' in binding.content

    def test_override_value_never_rendered(self, config: Config, monkeypatch):
        monkeypatch.setenv("MOCKSYNC_API_BASE_URL", "https://secret.internal.example")
        tree = _tree(endpoints=[EndpointDescriptor(name="x", path="/x")])
        binding = ApiBindingGenerator(config).generate(tree, [])
        assert "secret.internal" not in binding.content

    def test_duplicate_names(self, config: Config):
        tree = _tree(
            endpoints=[
                EndpointDescriptor(name="get cart", path="/a"),
                EndpointDescriptor(name="getCart", path="/b"),
            ]
        )
        with pytest.raises(StagingError, match="duplicate"):
            ApiBindingGenerator(config).generate(tree, [])

    def test_invalid_name(self, config: Config):
        tree = _tree(endpoints=[EndpointDescriptor(name="1st", path="/a")])
        with pytest.raises(StagingError, match="not a valid identifier"):
            ApiBindingGenerator(config).generate(tree, [])

    def test_invalid_env_name(self, tmp_path: Path):
        config = Config(project_root=tmp_path, api=ApiConfig(base_url_env="bad-name"))
        tree = _tree(endpoints=[EndpointDescriptor(name="x", path="/x")])
        with pytest.raises(StagingError, match="variable name"):
            ApiBindingGenerator(config).generate(tree, [])


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


class TestTemplateRenderer:

    def test_lists_templates(self):
        names = TemplateRenderer().list_templates()
        assert "component.tsx.j2" in names
        assert "routes_index.ts.j2" in names

    def test_filters(self):
        renderer = TemplateRenderer()
        out = renderer.render_string(
            "{{ a | pascal_case }} {{ a | camel_case }} {{ b | js_string }}",
            {"a": "order-history", "b": 'say "hi"'},
        )
        assert out == 'OrderHistory orderHistory "say \\"hi\\""'

    def test_undefined_variable_raises(self):
        from jinja2 import UndefinedError

        with pytest.raises(UndefinedError):
            TemplateRenderer().render_string("{{ missing }}", {})

    def test_custom_directory(self, tmp_path: Path):
        (tmp_path / "x.j2").write_text("hello {{ name }}")
        assert TemplateRenderer(tmp_path).render("x.j2", {"name": "world"}) == "hello world"
