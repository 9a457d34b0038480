"""Term model - immutable RDF terms and triples.

Everything downstream of the parsers speaks in these types rather than in
rdflib nodes, so the store, partitioner and engine never depend on a parser
library's identity or hashing rules:

  Term   = NamedNode | BlankNode | Literal
  Triple = (subject, predicate, object)
  Quad   = Triple + optional graph label (the engine only uses the default graph)

Conversions to and from rdflib live at the bottom of this module.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Union

from rdflib import BNode as _RdfBNode
from rdflib import Literal as _RdfLiteral
from rdflib import URIRef as _RdfURIRef
from rdflib.term import Node as _RdfNode


# ---------------------------------------------------------------------------
# Well-known IRIs
# ---------------------------------------------------------------------------

RDF_NS = "http://www.w3.org/1999/02/22-rdf-syntax-ns#"
XSD_NS = "http://www.w3.org/2001/XMLSchema#"
SCHEMA_NS = "http://schema.org/"

RDF_TYPE = f"{RDF_NS}type"
RDF_LANG_STRING = f"{RDF_NS}langString"
XSD_STRING = f"{XSD_NS}string"


# ---------------------------------------------------------------------------
# Terms
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NamedNode:
    """An IRI-identified resource."""
    iri: str

    @property
    def id(self) -> str:
        return self.iri

    @property
    def value(self) -> str:
        return self.iri

    def __str__(self) -> str:
        return self.iri

    def __repr__(self) -> str:
        return f"<{self.iri}>"


@dataclass(frozen=True)
class BlankNode:
    """An anonymous resource, local to the document it was parsed from."""
    label: str

    @property
    def id(self) -> str:
        return f"_:{self.label}"

    @property
    def value(self) -> str:
        return self.label

    def __str__(self) -> str:
        return self.id

    def __repr__(self) -> str:
        return self.id


@dataclass(frozen=True)
class Literal:
    """A lexical value with a datatype and an optional language tag.

    Plain strings carry xsd:string; language-tagged strings carry
    rdf:langString, matching RDF 1.1.
    """
    value: str
    datatype: NamedNode = NamedNode(XSD_STRING)
    language: str | None = None

    @property
    def id(self) -> str:
        if self.language:
            return f'"{self.value}"@{self.language}'
        return f'"{self.value}"^^{self.datatype.iri}'

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return self.id


Term = Union[NamedNode, BlankNode, Literal]
Subject = Union[NamedNode, BlankNode]


@dataclass(frozen=True)
class Triple:
    subject: Subject
    predicate: NamedNode
    object: Term

    def __repr__(self) -> str:
        return f"({self.subject!r} {self.predicate!r} {self.object!r})"


@dataclass(frozen=True)
class Quad:
    """A triple with an optional graph label. None is the default graph."""
    subject: Subject
    predicate: NamedNode
    object: Term
    graph: NamedNode | BlankNode | None = None

    def triple(self) -> Triple:
        return Triple(self.subject, self.predicate, self.object)


def lang_literal(value: str, language: str) -> Literal:
    return Literal(value, NamedNode(RDF_LANG_STRING), language)


# ---------------------------------------------------------------------------
# Naming helpers
# ---------------------------------------------------------------------------

_URL_PREFIX = re.compile(r"https?://[^\s]+[/#]")


def local_name(iri: str) -> str:
    """Strip every URL-like prefix: 'http://schema.org/Recipe' -> 'Recipe'."""
    while _URL_PREFIX.search(iri):
        iri = _URL_PREFIX.sub("", iri)
    return iri


# ---------------------------------------------------------------------------
# rdflib conversion
# ---------------------------------------------------------------------------

def from_rdflib(node: _RdfNode) -> Term:
    """Convert an rdflib node into a term."""
    if isinstance(node, _RdfURIRef):
        return NamedNode(str(node))
    if isinstance(node, _RdfBNode):
        return BlankNode(str(node))
    if isinstance(node, _RdfLiteral):
        if node.language:
            return lang_literal(str(node), node.language)
        datatype = str(node.datatype) if node.datatype else XSD_STRING
        return Literal(str(node), NamedNode(datatype))
    raise TypeError(f"Unsupported rdflib node: {node!r}")


def to_rdflib(term: Term) -> _RdfNode:
    """Convert a term into the equivalent rdflib node."""
    if isinstance(term, NamedNode):
        return _RdfURIRef(term.iri)
    if isinstance(term, BlankNode):
        return _RdfBNode(term.label)
    if term.language:
        return _RdfLiteral(term.value, lang=term.language)
    return _RdfLiteral(term.value, datatype=_RdfURIRef(term.datatype.iri))
