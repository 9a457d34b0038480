"""Tests for the shape→SHACL bridge.

Demonstrates that shape schemas translate correctly to SHACL shapes and that
pySHACL validation, once adapted, yields the same normalized failures as the
native constraint engine.
"""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from concurrent.futures import ThreadPoolExecutor

import pytest
from rdflib import Literal as RdfLiteral, RDF, URIRef
from rdflib.collection import Collection
from rdflib.namespace import SH

from sdv.engine import ConstraintEngine, MissingProperty, ShapeFailure
from sdv.hierarchy import load_hierarchy
from sdv.parsers import parse_jsonld
from sdv.report import simplify
from sdv.shacl_bridge import SDV, ShaclConstraintEngine, schema_to_shacl, store_to_rdf
from sdv.shapes import parse_shexc
from sdv.terms import NamedNode
from sdv.validator import StructuredDataValidator


S = "http://schema.org/"
E = "http://e/"
BASE = "http://example.org/"
ITEM = NamedNode("http://example.org/item")

SCHEMA = parse_shexc("""
PREFIX s: <http://schema.org/>
PREFIX e: <http://e/>
PREFIX rdfs: <http://www.w3.org/2000/01/rdf-schema#>

e:Thing {
    s:name Literal
    // rdfs:comment "Name is required";
    s:description Literal ? ;
    s:identifier /GTIN|UUID|ISBN/ *
}

e:CreativeWork @e:Thing AND {
    s:text Literal
}

e:Article CLOSED {
    s:name Literal ;
    s:description Literal
}
""")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _property_shape(graph, shape, predicate):
    for prop in graph.objects(URIRef(shape), SH.property):
        if graph.value(prop, SH.path) == URIRef(predicate):
            return prop
    return None


def _store(body: str):
    return parse_jsonld('{"@id": "http://example.org/item", ' + body + "}", BASE)


def _normalized(engine, store, shape_id):
    raw = simplify(engine.validate(SCHEMA, store, ITEM, shape_id))
    return sorted((r.property, r.shape, r.kind) for r in raw)


# ---------------------------------------------------------------------------
# Shape generation tests
# ---------------------------------------------------------------------------

class TestSchemaToShacl:
    def test_generates_node_shapes(self):
        shapes = schema_to_shacl(SCHEMA)
        node_shapes = {str(s) for s in shapes.subjects(RDF.type, SH.NodeShape)}
        assert node_shapes == {E + "Thing", E + "CreativeWork", E + "Article"}

    def test_cardinality(self):
        shapes = schema_to_shacl(SCHEMA)
        name = _property_shape(shapes, E + "Thing", S + "name")
        assert shapes.value(name, SH.minCount) == RdfLiteral(1)
        assert shapes.value(name, SH.maxCount) == RdfLiteral(1)
        assert shapes.value(name, SH.nodeKind) == SH.Literal

        description = _property_shape(shapes, E + "Thing", S + "description")
        assert shapes.value(description, SH.minCount) is None

        identifier = _property_shape(shapes, E + "Thing", S + "identifier")
        assert shapes.value(identifier, SH.maxCount) is None

    def test_pattern_is_anchored(self):
        shapes = schema_to_shacl(SCHEMA)
        identifier = _property_shape(shapes, E + "Thing", S + "identifier")
        assert str(shapes.value(identifier, SH.pattern)) == "^(?:GTIN|UUID|ISBN)$"

    def test_annotations_are_copied(self):
        shapes = schema_to_shacl(SCHEMA)
        name = _property_shape(shapes, E + "Thing", S + "name")
        comment = URIRef("http://www.w3.org/2000/01/rdf-schema#comment")
        assert str(shapes.value(name, comment)) == "Name is required"

    def test_intersection_is_flattened_with_owners(self):
        shapes = schema_to_shacl(SCHEMA)
        inherited = _property_shape(shapes, E + "CreativeWork", S + "name")
        own = _property_shape(shapes, E + "CreativeWork", S + "text")
        assert shapes.value(inherited, SDV.shape) == URIRef(E + "Thing")
        assert shapes.value(own, SDV.shape) == URIRef(E + "CreativeWork")

    def test_closed_ignores_type(self):
        shapes = schema_to_shacl(SCHEMA)
        article = URIRef(E + "Article")
        assert shapes.value(article, SH.closed) == RdfLiteral(True)
        ignored = shapes.value(article, SH.ignoredProperties)
        assert list(Collection(shapes, ignored)) == [RDF.type]
        assert shapes.value(URIRef(E + "Thing"), SH.closed) is None


class TestStoreToRdf:
    def test_round_trip_size(self):
        store = _store('"@type": "http://schema.org/Thing", "http://schema.org/name": "t"')
        graph = store_to_rdf(store)
        assert len(graph) == len(store) == 2


# ---------------------------------------------------------------------------
# SHACL validation
# ---------------------------------------------------------------------------

class TestShaclEngine:
    def test_conforming(self):
        store = _store('"@type": "Thing", "name": "t", "identifier": "GTIN"')
        assert ShaclConstraintEngine().validate(SCHEMA, store, ITEM, E + "Thing") == []

    def test_missing_property(self):
        store = _store('"@type": "Thing", "description": "d"')
        tree = ShaclConstraintEngine().validate(SCHEMA, store, ITEM, E + "Thing")
        assert tree == [ShapeFailure(
            node=ITEM.id,
            shape=E + "Thing",
            errors=(MissingProperty(S + "name", ITEM.id, E + "Thing"),),
        )]

    @pytest.mark.parametrize("body, shape", [
        ('"@type": "Thing", "description": "d"', "Thing"),
        ('"@type": "Thing", "name": "t", "identifier": "AAAA"', "Thing"),
        ('"@type": "CreativeWork", "description": "d"', "CreativeWork"),
        ('"@type": "Article", "name": "n", "description": "d", "foo": "x"', "Article"),
        ('"@type": "Article", "name": ["a", "b"], "description": "d"', "Article"),
    ])
    def test_same_failures_as_native_engine(self, body, shape):
        store = _store(body)
        native = _normalized(ConstraintEngine(), store, E + shape)
        shacl = _normalized(ShaclConstraintEngine(), store, E + shape)
        assert native
        assert shacl == native

    def test_shapes_graph_is_cached(self):
        engine = ShaclConstraintEngine()
        assert engine.shapes_graph(SCHEMA) is engine.shapes_graph(SCHEMA)

    def test_new_schema_replaces_cached_graph(self):
        engine = ShaclConstraintEngine()
        first = engine.shapes_graph(SCHEMA)
        other = parse_shexc("<http://e/Other> { <http://e/p> Literal }")
        assert URIRef(E + "Other") in set(engine.shapes_graph(other).subjects(RDF.type, SH.NodeShape))
        assert engine.shapes_graph(SCHEMA) is not first

    def test_concurrent_callers_share_one_graph(self):
        engine = ShaclConstraintEngine()
        with ThreadPoolExecutor(max_workers=8) as pool:
            graphs = list(pool.map(lambda _: engine.shapes_graph(SCHEMA), range(16)))
        assert all(graph is graphs[0] for graph in graphs)

    def test_pipeline_with_shacl_engine(self):
        validator = StructuredDataValidator(
            SCHEMA,
            load_hierarchy({"service": "", "shape": E + "Thing"}),
            engine=ShaclConstraintEngine(),
        )
        failures = validator.validate(['{"@id": "http://example.org/item", "@type": "Thing", "description": "d"}'], BASE)
        assert [(f.property, f.shape) for f in failures] == [(S + "name", E + "Thing")]
