"""Constraint Engine - evaluate a shape against an entity store.

The result is a violation tree built from a closed set of variants:

  ShapeFailure            - wrapper: `node` failed `shape`; children in `errors`
  MissingProperty         - a required predicate has no value
  TypeMismatch            - a value fails its value expression; `nested` holds
                            the failed nested-shape check, if any
  ExcessTripleViolation   - too many conforming values, or an undeclared
                            predicate on a closed shape
  SemActFailure           - a semantic action handler rejected a value
  NodeConstraintViolation - a shape reference met a literal; carries no
                            actionable property and is dropped by the normalizer

rdf:type is structural and is never reported as missing or excess.
Intersections evaluate every member against the same node (no short-circuit)
and concatenate their violations. Re-entering a (node, shape) pair that is
already being checked counts as conforming, which keeps recursive shapes
over cyclic data finite.

The tree is only consumed by sdv.report.simplify().
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Mapping, Union

from .shapes import LeafShape, NodeKind, PropertyConstraint, ShapeAnd, ShapeExpr, ShapeRef, ShapeSchema, ValueExpr
from .store import TripleStore
from .terms import RDF_TYPE, BlankNode, Literal, NamedNode, Term


# ---------------------------------------------------------------------------
# Violation tree
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ShapeFailure:
    node: str
    shape: str
    errors: tuple[Violation, ...]


@dataclass(frozen=True)
class MissingProperty:
    property: str
    node: str
    shape: str


@dataclass(frozen=True)
class TypeMismatch:
    property: str
    node: str
    shape: str
    value: Term
    nested: tuple[Violation, ...] = ()


@dataclass(frozen=True)
class ExcessTripleViolation:
    property: str
    node: str
    shape: str
    count: int | None = None


@dataclass(frozen=True)
class SemActFailure:
    property: str
    node: str
    shape: str
    action: str
    code: str | None


@dataclass(frozen=True)
class NodeConstraintViolation:
    node: str
    shape: str


Violation = Union[
    ShapeFailure,
    MissingProperty,
    TypeMismatch,
    ExcessTripleViolation,
    SemActFailure,
    NodeConstraintViolation,
]

ViolationTree = list[Violation]

# action IRI -> handler(code, value) returning whether the value is accepted
SemActHandler = Callable[[Union[str, None], Term], bool]


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

class ConstraintEngine:
    """Native evaluator of ShapeSchema shapes.

    Stateless between calls; one instance may be shared by threads.
    """

    def __init__(self, semantic_actions: Mapping[str, SemActHandler] | None = None) -> None:
        self.semantic_actions = dict(semantic_actions or {})

    def validate(
        self,
        schema: ShapeSchema,
        store: TripleStore,
        root: Term,
        shape_id: str,
    ) -> ViolationTree:
        return _Evaluation(schema, store, self.semantic_actions).check(root, shape_id)


def validate(
    schema: ShapeSchema,
    store: TripleStore,
    root: Term,
    shape_id: str,
    semantic_actions: Mapping[str, SemActHandler] | None = None,
) -> ViolationTree:
    """Evaluate shape_id against root; an empty list means the node conforms."""
    return ConstraintEngine(semantic_actions).validate(schema, store, root, shape_id)


class _Evaluation:
    def __init__(
        self,
        schema: ShapeSchema,
        store: TripleStore,
        semantic_actions: Mapping[str, SemActHandler],
    ) -> None:
        self.schema = schema
        self.store = store
        self.semantic_actions = semantic_actions
        self.in_progress: set[tuple[str, str]] = set()

    def check(self, node: Term, shape_id: str) -> ViolationTree:
        key = (node.id, shape_id)
        if key in self.in_progress:
            return []
        expr = self.schema.get(shape_id)
        self.in_progress.add(key)
        try:
            errors = self._check_expr(node, expr, shape_id)
        finally:
            self.in_progress.discard(key)
        if not errors:
            return []
        return [ShapeFailure(node=node.id, shape=shape_id, errors=tuple(errors))]

    def _check_expr(self, node: Term, expr: ShapeExpr, shape_id: str) -> ViolationTree:
        if isinstance(expr, ShapeRef):
            return self.check(node, expr.ref)
        if isinstance(expr, ShapeAnd):
            errors: ViolationTree = []
            for member in expr.members:
                errors.extend(self._check_expr(node, member, shape_id))
            return errors
        return self._check_leaf(node, expr, shape_id)

    def _check_leaf(self, node: Term, shape: LeafShape, shape_id: str) -> ViolationTree:
        errors: ViolationTree = []
        for constraint in shape.constraints:
            if constraint.predicate == RDF_TYPE:
                continue
            errors.extend(self._check_constraint(node, constraint, shape_id))

        if shape.closed:
            declared = shape.predicates
            for predicate in self.store.predicates(node):
                if predicate.iri != RDF_TYPE and predicate.iri not in declared:
                    errors.append(ExcessTripleViolation(predicate.iri, node.id, shape_id))
        return errors

    def _check_constraint(self, node: Term, constraint: PropertyConstraint, shape_id: str) -> ViolationTree:
        predicate = constraint.predicate
        values = [t.object for t in self.store.match(node, NamedNode(predicate), None)]
        if not values:
            if constraint.cardinality.min > 0:
                return [MissingProperty(predicate, node.id, shape_id)]
            return []

        errors: ViolationTree = []
        conforming = 0
        for value in values:
            nested = self._check_value(value, constraint.value)
            if nested is not None:
                errors.append(TypeMismatch(predicate, node.id, shape_id, value, tuple(nested)))
                continue
            conforming += 1
            for action in constraint.sem_acts:
                handler = self.semantic_actions.get(action.name)
                if handler is not None and not handler(action.code, value):
                    errors.append(SemActFailure(predicate, node.id, shape_id, action.name, action.code))

        if conforming and not constraint.cardinality.allows(conforming):
            errors.append(ExcessTripleViolation(predicate, node.id, shape_id, conforming))
        return errors

    def _check_value(self, value: Term, expr: ValueExpr) -> ViolationTree | None:
        """None when value satisfies expr, otherwise the nested violations (maybe empty)."""
        if expr.shape_ref is not None:
            if isinstance(value, Literal):
                return [NodeConstraintViolation(node=value.id, shape=expr.shape_ref)]
            nested = self.check(value, expr.shape_ref)
            return nested or None

        if expr.node_kind is not None and not _has_kind(value, expr.node_kind):
            return []
        if expr.datatype is not None:
            if not isinstance(value, Literal) or value.datatype.iri != expr.datatype:
                return []
        if expr.compiled is not None:
            if isinstance(value, BlankNode) or expr.compiled.fullmatch(value.value) is None:
                return []
        return None


def _has_kind(value: Term, kind: NodeKind) -> bool:
    if kind is NodeKind.LITERAL:
        return isinstance(value, Literal)
    if kind is NodeKind.IRI:
        return isinstance(value, NamedNode)
    if kind is NodeKind.BNODE:
        return isinstance(value, BlankNode)
    return not isinstance(value, Literal)
