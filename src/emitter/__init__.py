"""Mockup Sync emitter -- default parser and code generators.

Quick usage::

    from src.emitter import CodeEmitter, MockupParser

    tree = MockupParser().parse(config.mockup_path, entity)
    candidates = CodeEmitter(config).emit_all(tree, entity.source_paths)
"""

from src.emitter.bindings import ApiBindingGenerator
from src.emitter.code_emitter import ROUTE_REGISTRY_KEY, CodeEmitter, identifier
from src.emitter.models import CandidateFile, ComponentNode, ComponentTree, EndpointDescriptor
from src.emitter.parser import MockupParser, parse_html
from src.emitter.templates import TemplateRenderer

__all__ = [
    "ApiBindingGenerator",
    "CodeEmitter",
    "ROUTE_REGISTRY_KEY",
    "identifier",
    "CandidateFile",
    "ComponentNode",
    "ComponentTree",
    "EndpointDescriptor",
    "MockupParser",
    "parse_html",
    "TemplateRenderer",
]
