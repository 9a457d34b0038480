"""Structured Data Validation (sdv) - shape-based validation of embedded structured data.

Documents carry machine-readable data as JSON-LD, Microdata or RDFa. This
package turns such data into triples and checks every top-level entity
against a library of shapes, producing a flat list of annotated failures:

- Term Model / Triple Store: immutable RDF terms and an indexed triple multiset
- Format Parsers: JSON-LD → Microdata → RDFa fallback, plus Turtle
- Entity Partitioner: one sub-store per root entity, cycle-safe
- Shape Schema: a ShEx subset (compact and JSON forms) with AND, CLOSED,
  regex values, cardinality, semantic actions and annotations
- Constraint Engine: evaluates a shape against an entity, yielding a
  violation tree
- Hierarchy Validator: walks a tree of validation services, suppressing
  properties already reported by a more general service
- Report Normalizer: violation tree → annotated, deduplicated Failure records

The pipeline is composed by StructuredDataValidator:

  validator = StructuredDataValidator(parse_shexc(text), load_hierarchy(tree))
  failures  = validator.validate([script_body, page_html], base_url)

The SHACL bridge (sdv.shacl_bridge) translates shape schemas to SHACL and
evaluates them with pySHACL behind the same violation tree, so the native
engine can be swapped without touching the normalizer.
"""

from .config import ValidatorConfig
from .engine import ConstraintEngine
from .errors import (
    InvalidDataError,
    InvalidShapeSchemaError,
    ParseError,
    SDVError,
    UnknownViolationKindError,
)
from .hierarchy import ServiceHierarchyNode, load_hierarchy, validate_hierarchy
from .parsers import parse_any, parse_jsonld, parse_microdata, parse_rdfa, parse_turtle
from .partition import partition
from .report import Failure, Severity
from .shapes import ShapeSchema, load_schema, load_shexj, parse_shexc
from .store import TripleStore
from .validator import StructuredDataValidator

__all__ = [
    "ConstraintEngine",
    "Failure",
    "InvalidDataError",
    "InvalidShapeSchemaError",
    "ParseError",
    "SDVError",
    "ServiceHierarchyNode",
    "Severity",
    "ShapeSchema",
    "StructuredDataValidator",
    "TripleStore",
    "UnknownViolationKindError",
    "ValidatorConfig",
    "load_hierarchy",
    "load_schema",
    "load_shexj",
    "parse_any",
    "parse_jsonld",
    "parse_microdata",
    "parse_rdfa",
    "parse_shexc",
    "partition",
    "validate_hierarchy",
]
