"""SHACL Bridge - evaluate shape schemas with pySHACL instead of the native engine.

Demonstrates that the constraint solver is swappable behind the violation
tree: the Report Normalizer cannot tell which engine produced a tree.

This bridge translates:
  1. ShapeSchema shapes → SHACL NodeShapes. Intersections are flattened, so
     a named shape carries the property shapes of every shape it inherits.
     Each property shape records the shape that declared it (sdv:shape).
       min cardinality     → sh:minCount
       max cardinality     → sh:maxCount
       node kind           → sh:nodeKind
       datatype            → sh:datatype
       regex               → sh:pattern, anchored to the full value
       shape reference     → sh:node
       closed              → sh:closed + sh:ignoredProperties (rdf:type)
       annotations         → copied onto the property shape
  2. TripleStore → RDF data graph
  3. pySHACL's validation report → violation tree (_report_to_tree, the only
     place that knows the report's shape)

Known differences from the native engine: SHACL counts all values for
cardinality (not only conforming ones), closedness of a flattened shape
covers the inherited properties too, and a failed sh:node is reported
without the nested shape's own violations.
"""

from __future__ import annotations

import logging
import threading

from rdflib import BNode, Graph, Literal, Namespace, RDF, URIRef
from rdflib.collection import Collection
from rdflib.namespace import SH

from .engine import (
    ExcessTripleViolation,
    MissingProperty,
    ShapeFailure,
    TypeMismatch,
    Violation,
    ViolationTree,
)
from .errors import UnknownViolationKindError
from .shapes import NodeKind, PropertyConstraint, ShapeSchema
from .store import TripleStore
from .terms import RDF_TYPE, NamedNode, Term, from_rdflib, to_rdflib

logger = logging.getLogger(__name__)


SDV = Namespace("urn:sdv:")

_NODE_KINDS = {
    NodeKind.LITERAL: SH.Literal,
    NodeKind.IRI: SH.IRI,
    NodeKind.BNODE: SH.BlankNode,
    NodeKind.NONLITERAL: SH.BlankNodeOrIRI,
}

_VALUE_COMPONENTS = {
    SH.DatatypeConstraintComponent,
    SH.NodeKindConstraintComponent,
    SH.PatternConstraintComponent,
    SH.NodeConstraintComponent,
    SH.ClassConstraintComponent,
}


# ---------------------------------------------------------------------------
# ShapeSchema → SHACL Shapes
# ---------------------------------------------------------------------------

def schema_to_shacl(schema: ShapeSchema) -> Graph:
    """Translate every named shape into a sh:NodeShape."""
    sg = Graph()
    sg.bind("sh", SH)
    sg.bind("sdv", SDV)

    for shape_id in schema.shapes:
        shape_uri = URIRef(shape_id)
        sg.add((shape_uri, RDF.type, SH.NodeShape))

        closed = False
        for leaf in schema.leaves(shape_id):
            owner = URIRef(leaf.id or shape_id)
            closed = closed or leaf.closed
            for constraint in leaf.constraints:
                if constraint.predicate == RDF_TYPE:
                    continue
                _add_property_shape(sg, shape_uri, owner, constraint)

        if closed:
            sg.add((shape_uri, SH.closed, Literal(True)))
            ignored = BNode()
            Collection(sg, ignored, [RDF.type])
            sg.add((shape_uri, SH.ignoredProperties, ignored))

    return sg


def _add_property_shape(sg: Graph, shape_uri: URIRef, owner: URIRef, constraint: PropertyConstraint) -> None:
    prop_shape = BNode()
    sg.add((shape_uri, SH.property, prop_shape))
    sg.add((prop_shape, SH.path, URIRef(constraint.predicate)))
    sg.add((prop_shape, SDV.shape, owner))

    cardinality = constraint.cardinality
    if cardinality.min > 0:
        sg.add((prop_shape, SH.minCount, Literal(cardinality.min)))
    if cardinality.max is not None:
        sg.add((prop_shape, SH.maxCount, Literal(cardinality.max)))

    value = constraint.value
    if value.node_kind is not None:
        sg.add((prop_shape, SH.nodeKind, _NODE_KINDS[value.node_kind]))
    if value.datatype is not None:
        sg.add((prop_shape, SH.datatype, URIRef(value.datatype)))
    if value.pattern is not None:
        sg.add((prop_shape, SH.pattern, Literal(f"^(?:{value.pattern})$")))
        if value.flags:
            sg.add((prop_shape, SH.flags, Literal(value.flags)))
    if value.shape_ref is not None:
        sg.add((prop_shape, SH.node, URIRef(value.shape_ref)))

    for predicate, annotation in constraint.annotations.items():
        sg.add((prop_shape, URIRef(predicate), Literal(annotation)))


# ---------------------------------------------------------------------------
# TripleStore → RDF Data Graph
# ---------------------------------------------------------------------------

def store_to_rdf(store: TripleStore) -> Graph:
    dg = Graph()
    for triple in store:
        dg.add((to_rdflib(triple.subject), to_rdflib(triple.predicate), to_rdflib(triple.object)))
    return dg


# ---------------------------------------------------------------------------
# SHACL Validation
# ---------------------------------------------------------------------------

class ShaclConstraintEngine:
    """Constraint engine backed by pySHACL.

    The shapes graph of the last schema seen is kept and reused; schemas are
    immutable after loading. The cache is shared by worker threads.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cached: tuple[ShapeSchema, Graph] | None = None

    def shapes_graph(self, schema: ShapeSchema) -> Graph:
        with self._lock:
            if self._cached is None or self._cached[0] is not schema:
                self._cached = (schema, schema_to_shacl(schema))
            return self._cached[1]

    def validate(
        self,
        schema: ShapeSchema,
        store: TripleStore,
        root: Term,
        shape_id: str,
    ) -> ViolationTree:
        from pyshacl import validate as pyshacl_validate

        shapes = self.shapes_graph(schema)
        logger.debug("pySHACL: %s against %s (%d triples)", root.id, shape_id, len(store))
        targeted = Graph()
        targeted += shapes
        targeted.add((URIRef(shape_id), SH.targetNode, to_rdflib(root)))

        conforms, results_graph, _ = pyshacl_validate(
            store_to_rdf(store),
            shacl_graph=targeted,
            inference="none",
            abort_on_first=False,
            inplace=True,
        )
        if conforms:
            return []
        return _report_to_tree(results_graph, targeted, store)


def _report_to_tree(results: Graph, shapes: Graph, store: TripleStore) -> ViolationTree:
    """Translate pySHACL's result graph into ShapeFailure wrappers."""
    grouped: dict[tuple[str, str], list[Violation]] = {}
    seen: set[tuple] = set()
    for result in results.subjects(RDF.type, SH.ValidationResult):
        focus = from_rdflib(results.value(result, SH.focusNode))
        path = results.value(result, SH.resultPath)
        component = results.value(result, SH.sourceConstraintComponent)
        source = results.value(result, SH.sourceShape)
        owner = shapes.value(source, SDV.shape) or source
        value = results.value(result, SH.value)

        prop = str(path) if path is not None else None
        node, shape = focus.id, str(owner)
        if component == SH.MinCountConstraintComponent:
            if store.match(focus, NamedNode(prop), None):
                violation = ExcessTripleViolation(prop, node, shape)
            else:
                violation = MissingProperty(prop, node, shape)
        elif component in (SH.MaxCountConstraintComponent, SH.ClosedConstraintComponent):
            violation = ExcessTripleViolation(prop, node, shape)
        elif component in _VALUE_COMPONENTS:
            violation = TypeMismatch(prop, node, shape, from_rdflib(value))
        else:
            raise UnknownViolationKindError(component)

        if violation in seen:
            continue
        seen.add(violation)
        grouped.setdefault((node, shape), []).append(violation)

    return [
        ShapeFailure(node=node, shape=shape, errors=tuple(errors))
        for (node, shape), errors in grouped.items()
    ]
