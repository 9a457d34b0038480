"""Tests for the shape schema model and its ShExC / ShExJ loaders."""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import json

import pytest

from sdv.errors import InvalidShapeSchemaError
from sdv.shapes import (
    Cardinality,
    LeafShape,
    NodeKind,
    SemAct,
    ShapeAnd,
    ShapeRef,
    load_schema,
    load_shexj,
    parse_shexc,
)
from sdv.terms import RDF_TYPE


S = "http://schema.org/"
RDFS = "http://www.w3.org/2000/01/rdf-schema#"
V = "https://schema.org/validation#"

SHAPES = """
PREFIX schema: <http://schema.org/>
PREFIX rdfs: <http://www.w3.org/2000/01/rdf-schema#>
BASE <https://schema.org/validation>

<#Thing> {
    schema:name Literal
    // rdfs:comment "Name is required for SomeProduct";
    schema:description Literal
    // rdfs:comment "Description is required for SomeProduct"
    // rdfs:label "warning";
    schema:identifier /GTIN|UUID|ISBN/ *
    // rdfs:label "warning";
}

<#CreativeWork> @<#Thing> AND {
    schema:text Literal ;
}
"""


# ---------------------------------------------------------------------------
# ShExC
# ---------------------------------------------------------------------------

class TestParseShexc:
    def test_shapes_resolve_against_base(self):
        schema = parse_shexc(SHAPES)
        assert set(schema.shapes) == {V + "Thing", V + "CreativeWork"}
        assert schema.prefixes["schema"] == S

    def test_leaf_constraints(self):
        thing = parse_shexc(SHAPES).get(V + "Thing")
        assert isinstance(thing, LeafShape)
        assert [c.predicate for c in thing.constraints] == [S + "name", S + "description", S + "identifier"]
        assert thing.constraints[0].value.node_kind is NodeKind.LITERAL
        assert thing.constraints[0].cardinality == Cardinality(1, 1)
        assert not thing.closed

    def test_regex_and_star(self):
        identifier = parse_shexc(SHAPES).constraint_for(V + "Thing", S + "identifier")
        assert identifier.value.pattern == "GTIN|UUID|ISBN"
        assert identifier.value.kind == "TypedLiteral"
        assert identifier.cardinality == Cardinality(0, None)

    def test_annotations(self):
        description = parse_shexc(SHAPES).constraint_for(V + "Thing", S + "description")
        assert description.annotations == {
            RDFS + "comment": "Description is required for SomeProduct",
            RDFS + "label": "warning",
        }

    def test_intersection(self):
        schema = parse_shexc(SHAPES)
        work = schema.get(V + "CreativeWork")
        assert isinstance(work, ShapeAnd)
        assert work.members[0] == ShapeRef(V + "Thing")
        assert isinstance(work.members[1], LeafShape)

    def test_leaves_inline_first(self):
        schema = parse_shexc(SHAPES)
        leaves = list(schema.leaves(V + "CreativeWork"))
        assert [leaf.id for leaf in leaves] == [V + "CreativeWork", V + "Thing"]
        assert schema.constraint_for(V + "CreativeWork", S + "name").predicate == S + "name"

    def test_closed_shape_and_type(self):
        schema = parse_shexc("""
            PREFIX s: <http://schema.org/>
            <http://e/Shape> CLOSED { a . ? ; s:name LITERAL ; s:url IRI + }
        """)
        shape = schema.get("http://e/Shape")
        assert shape.closed
        assert shape.constraints[0].predicate == RDF_TYPE
        assert shape.constraints[0].cardinality == Cardinality(0, 1)
        assert shape.constraints[2].value.node_kind is NodeKind.IRI
        assert shape.constraints[2].cardinality == Cardinality(1, None)

    def test_explicit_cardinality(self):
        schema = parse_shexc("""
            PREFIX s: <http://schema.org/>
            PREFIX xsd: <http://www.w3.org/2001/XMLSchema#>
            <http://e/S> { s:a . {2} ; s:b xsd:integer {1,3} ; s:c . {0,} ; s:d . {1,*} }
        """)
        cards = [c.cardinality for c in schema.get("http://e/S").constraints]
        assert cards == [Cardinality(2, 2), Cardinality(1, 3), Cardinality(0, None), Cardinality(1, None)]
        assert schema.get("http://e/S").constraints[1].value.datatype == "http://www.w3.org/2001/XMLSchema#integer"

    def test_shape_reference_value(self):
        schema = parse_shexc("""
            PREFIX s: <http://schema.org/>
            <http://e/Product> { s:offers @<http://e/Offer> + }
            <http://e/Offer> { s:price Literal }
        """)
        offers = schema.constraint_for("http://e/Product", S + "offers")
        assert offers.value.shape_ref == "http://e/Offer"
        assert offers.value.kind == "ShapeReference"

    def test_semantic_actions(self):
        schema = parse_shexc("""
            PREFIX s: <http://schema.org/>
            <http://e/S> { s:name Literal %<http://e/maxLength>{ 10 %} %<http://e/log>% }
        """)
        name = schema.get("http://e/S").constraints[0]
        assert name.sem_acts == (SemAct("http://e/maxLength", " 10 "), SemAct("http://e/log"))

    def test_regex_flags_and_escaped_slash(self):
        schema = parse_shexc(r"""
            PREFIX s: <http://schema.org/>
            <http://e/S> { s:url /https?:\/\/example/i }
        """)
        value = schema.get("http://e/S").constraints[0].value
        assert value.pattern == "https?://example"
        assert value.flags == "i"
        assert value.compiled.fullmatch("HTTPS://EXAMPLE")

    def test_parenthesised_intersection_is_flattened(self):
        schema = parse_shexc("""
            <http://e/A> { <http://e/p> . }
            <http://e/B> { <http://e/q> . }
            <http://e/C> @<http://e/A> AND (@<http://e/B> AND { <http://e/r> . })
        """)
        assert len(schema.get("http://e/C").members) == 3


class TestShexcErrors:
    def test_undeclared_prefix(self):
        with pytest.raises(InvalidShapeSchemaError) as info:
            parse_shexc("PREFIX s: <http://schema.org/>\n\n<http://e/S> { x:name Literal }")
        assert info.value.line == 3

    def test_line_counts_span_multiline_tokens(self):
        text = (
            "<http://e/S> { <http://e/p> Literal %<http://e/a>{ one\ntwo\n%} }\n"
            "# comment\n"
            "<http://e/T> { $ }"
        )
        with pytest.raises(InvalidShapeSchemaError) as info:
            parse_shexc(text)
        assert info.value.line == 5

    def test_large_schema(self):
        text = "\n".join(f"<http://e/S{i}> {{\n  <http://e/p> Literal ;\n  <http://e/q> IRI ?\n}}" for i in range(3000))
        assert len(parse_shexc(text).shapes) == 3000

    def test_dangling_reference(self):
        with pytest.raises(InvalidShapeSchemaError, match="undeclared shape"):
            parse_shexc("<http://e/S> @<http://e/Missing> AND { <http://e/p> . }")

    def test_invalid_regex(self):
        with pytest.raises(InvalidShapeSchemaError, match="regular expression"):
            parse_shexc("<http://e/S> { <http://e/p> /(abc/ }")

    def test_unterminated_shape(self):
        with pytest.raises(InvalidShapeSchemaError):
            parse_shexc("<http://e/S> { <http://e/p> Literal ;")

    def test_duplicate_shape(self):
        with pytest.raises(InvalidShapeSchemaError, match="Duplicate"):
            parse_shexc("<http://e/S> { }\n<http://e/S> { }")

    def test_bad_cardinality(self):
        with pytest.raises(InvalidShapeSchemaError):
            parse_shexc("<http://e/S> { <http://e/p> . {3,1} }")


# ---------------------------------------------------------------------------
# ShExJ
# ---------------------------------------------------------------------------

SHEXJ = {
    "@context": "http://www.w3.org/ns/shex.jsonld",
    "type": "Schema",
    "shapes": [
        {
            "type": "Shape",
            "id": V + "Thing",
            "expression": {
                "type": "EachOf",
                "expressions": [
                    {
                        "type": "TripleConstraint",
                        "predicate": S + "name",
                        "valueExpr": {"type": "NodeConstraint", "nodeKind": "literal"},
                    },
                    {
                        "type": "TripleConstraint",
                        "predicate": S + "identifier",
                        "valueExpr": {"type": "NodeConstraint", "pattern": "GTIN|UUID|ISBN"},
                        "min": 0,
                        "max": -1,
                        "annotations": [
                            {"type": "Annotation", "predicate": RDFS + "label",
                             "object": {"value": "warning"}},
                        ],
                    },
                ],
            },
        },
        {
            "type": "ShapeAnd",
            "id": V + "CreativeWork",
            "shapeExprs": [
                V + "Thing",
                {"type": "Shape", "closed": True, "expression": {
                    "type": "TripleConstraint", "predicate": S + "text"}},
            ],
        },
    ],
}


class TestLoadShexj:
    def test_equivalent_to_compact_form(self):
        schema = load_shexj(SHEXJ)
        thing = schema.get(V + "Thing")
        assert [c.predicate for c in thing.constraints] == [S + "name", S + "identifier"]
        identifier = thing.constraints[1]
        assert identifier.cardinality == Cardinality(0, None)
        assert identifier.annotations == {RDFS + "label": "warning"}

    def test_intersection_and_closed(self):
        work = load_shexj(json.dumps(SHEXJ)).get(V + "CreativeWork")
        assert work.members[0] == ShapeRef(V + "Thing")
        assert work.members[1].closed
        assert work.members[1].constraints[0].value.kind == "Literal"

    def test_dangling_reference(self):
        data = {"shapes": [{"type": "ShapeAnd", "id": "http://e/S", "shapeExprs": ["http://e/Missing"]}]}
        with pytest.raises(InvalidShapeSchemaError):
            load_shexj(data)

    def test_invalid_json(self):
        with pytest.raises(InvalidShapeSchemaError):
            load_shexj("{not json")


class TestLoadSchema:
    def test_by_suffix(self, tmp_path):
        compact = tmp_path / "shapes.shex"
        compact.write_text(SHAPES, encoding="utf-8")
        as_json = tmp_path / "shapes.json"
        as_json.write_text(json.dumps(SHEXJ), encoding="utf-8")

        assert V + "CreativeWork" in load_schema(compact)
        assert V + "CreativeWork" in load_schema(as_json)
