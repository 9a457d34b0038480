"""Hierarchy Validator - walk a tree of validation services.

Services are organised as a tree (e.g. Schema -> Google -> GoogleAds), and a
service's shapes usually specialise its parent's. At each node the entity
is checked against the shape for (service, entity type); a service without
such a shape is simply skipped. Failures found at a node suppress failures
on the same property from every descendant, so a defect inherited from a
base shape is reported once, by the most general service that sees it.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping, Protocol

from .config import ValidatorConfig
from .report import Failure, annotate, simplify
from .shapes import ShapeSchema
from .store import TripleStore
from .terms import RDF_TYPE, NamedNode, Term, local_name

logger = logging.getLogger(__name__)


class ShapeEvaluator(Protocol):
    def validate(self, schema: ShapeSchema, store: TripleStore, root: Term, shape_id: str) -> list: ...


@dataclass(frozen=True)
class ServiceHierarchyNode:
    """A validation service. `shape` overrides the configured shape id template."""
    service: str
    children: tuple[ServiceHierarchyNode, ...] = ()
    shape: str | None = None

    def __repr__(self) -> str:
        return f"Service({self.service or '<root>'}, {len(self.children)} nested)"


def hierarchy_from_mapping(data: Mapping[str, Any]) -> ServiceHierarchyNode:
    """Build a hierarchy from {"service": ..., "shape"?: ..., "nested"?: [...]}."""
    if "service" not in data:
        raise ValueError("Hierarchy node without a 'service' key")
    return ServiceHierarchyNode(
        service=data["service"],
        children=tuple(hierarchy_from_mapping(child) for child in data.get("nested", [])),
        shape=data.get("shape"),
    )


def load_hierarchy(source: str | Path | Mapping[str, Any]) -> ServiceHierarchyNode:
    """Load a hierarchy from a mapping, a JSON string or a JSON file path."""
    if isinstance(source, Mapping):
        return hierarchy_from_mapping(source)
    if isinstance(source, str) and source.lstrip().startswith("{"):
        return hierarchy_from_mapping(json.loads(source))
    return hierarchy_from_mapping(json.loads(Path(source).read_text(encoding="utf-8")))


def entity_types(store: TripleStore, root: Term) -> list[str]:
    """Local names of the entity's rdf:types, sorted and distinct."""
    return sorted({local_name(t.value) for t in store.objects(root, NamedNode(RDF_TYPE))})


def validate_hierarchy(
    node: ServiceHierarchyNode,
    schema: ShapeSchema,
    store: TripleStore,
    root: Term,
    engine: ShapeEvaluator,
    config: ValidatorConfig | None = None,
) -> list[Failure]:
    """Validate root at node and its descendants; returns annotated, undeduplicated failures.

    An entity with several types is walked once per type, in name order.
    """
    config = config or ValidatorConfig()
    failures: list[Failure] = []
    for type_name in entity_types(store, root):
        failures.extend(_validate_node(node, schema, store, root, type_name, engine, config))
    return failures


def _validate_node(
    node: ServiceHierarchyNode,
    schema: ShapeSchema,
    store: TripleStore,
    root: Term,
    type_name: str,
    engine: ShapeEvaluator,
    config: ValidatorConfig,
) -> list[Failure]:
    shape_id = node.shape or config.shape_id(node.service, type_name)

    failures: list[Failure] = []
    if shape_id in schema:
        tree = engine.validate(schema, store, root, shape_id)
        raw = annotate(simplify(tree), schema, config.annotation_keys, config.default_severity)
        failures = [replace(f, service=node.service, node=type_name) for f in raw]
    else:
        logger.debug("No shape %s for service %r, skipping", shape_id, node.service)

    properties = {f.property for f in failures}
    for child in node.children:
        nested = _validate_node(child, schema, store, root, type_name, engine, config)
        failures.extend(f for f in nested if f.property not in properties)
    return failures
