"""Report Normalizer - violation trees into flat, annotated, unique failures.

Three steps, usable separately:

  simplify(tree)         - depth-first flattening. Wrapper nodes are elided and
                           hand their node/shape down; each actionable leaf gets
                           its fixed message template. rdf:type violations and
                           node-constraint-only violations are dropped. Any
                           other object is an internal defect and raises
                           UnknownViolationKindError.
  annotate(raw, ...)     - attach schema annotations (url, description,
                           severity, ...) read from the constraint that produced
                           each failure. Values already set on the failure win.
  dedup(failures)        - collapse failures sharing (property, shape, severity);
                           first seen wins.

annotate_and_dedup() composes the last two and is a fixed point on its own
output.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence, Union

from .engine import (
    ExcessTripleViolation,
    MissingProperty,
    NodeConstraintViolation,
    SemActFailure,
    ShapeFailure,
    TypeMismatch,
)
from .errors import UnknownViolationKindError
from .shapes import ShapeSchema
from .terms import RDF_TYPE

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


MESSAGES: dict[str, str] = {
    "MissingProperty": "Property {property} not found",
    "TypeMismatch": "Value provided for property {property} has an unexpected type",
    "ExcessTripleViolation": "Property {property} has a cardinality issue",
    "SemActFailure": "Property {property} failed semantic action {code}",
}


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RawFailure:
    """A simplified violation before annotation."""
    property: str | None
    message: str
    node: str | None
    shape: str | None
    kind: str
    severity: Severity | None = None
    annotations: dict[str, str] = field(default_factory=dict, hash=False)


@dataclass(frozen=True)
class Failure:
    """A final report record. `annotations` holds url, description and any
    other configured annotation values."""
    property: str | None
    message: str
    node: str
    shape: str | None = None
    severity: Severity = Severity.ERROR
    service: str | None = None
    annotations: dict[str, str] = field(default_factory=dict, hash=False)

    @property
    def url(self) -> str | None:
        return self.annotations.get("url")

    @property
    def description(self) -> str | None:
        return self.annotations.get("description")

    @property
    def key(self) -> tuple[str | None, str | None, Severity]:
        return (self.property, self.shape, self.severity)

    def to_dict(self) -> dict[str, Any]:
        return {
            "property": self.property,
            "message": self.message,
            "node": self.node,
            "shape": self.shape,
            "severity": self.severity.value,
            "service": self.service,
            **self.annotations,
        }

    def __repr__(self) -> str:
        return f"Failure({self.severity.value}: {self.message} [{self.shape}])"


# ---------------------------------------------------------------------------
# Simplify
# ---------------------------------------------------------------------------

def simplify(tree: Any) -> list[RawFailure]:
    """Flatten a violation tree (a violation or a list of them)."""
    out: list[RawFailure] = []
    _simplify(tree, None, None, out)
    return out


def _simplify(item: Any, node: str | None, shape: str | None, out: list[RawFailure]) -> None:
    if isinstance(item, (list, tuple)):
        for child in item:
            _simplify(child, node, shape, out)
        return
    if isinstance(item, ShapeFailure):
        for child in item.errors:
            _simplify(child, item.node, item.shape, out)
        return
    if isinstance(item, NodeConstraintViolation):
        return
    if isinstance(item, (MissingProperty, TypeMismatch, ExcessTripleViolation, SemActFailure)):
        if item.property == RDF_TYPE:
            return
        kind = type(item).__name__
        code = (item.code or item.action) if isinstance(item, SemActFailure) else None
        out.append(RawFailure(
            property=item.property,
            message=MESSAGES[kind].format(property=item.property, code=code),
            node=node or item.node,
            shape=shape or item.shape,
            kind=kind,
        ))
        if isinstance(item, TypeMismatch):
            _simplify(item.nested, None, None, out)
        return
    raise UnknownViolationKindError(item)


# ---------------------------------------------------------------------------
# Annotate and dedup
# ---------------------------------------------------------------------------

def _severity(label: str | Severity | None, default: Severity) -> Severity:
    if label is None:
        return default
    try:
        return Severity(str(label.value if isinstance(label, Severity) else label).strip().lower())
    except ValueError:
        logger.warning("Ignoring unknown severity label %r", label)
        return default


def annotate(
    raw: Iterable[Union[RawFailure, Failure]],
    schema: ShapeSchema,
    annotation_keys: Mapping[str, str],
    default_severity: str | Severity = Severity.ERROR,
) -> list[Failure]:
    """Attach schema annotations; explicit values on a failure take precedence."""
    default = Severity(default_severity)
    failures = []
    for item in raw:
        derived: dict[str, str] = {}
        if item.shape and item.property:
            constraint = schema.constraint_for(item.shape, item.property)
            if constraint is not None:
                for key, predicate in annotation_keys.items():
                    if predicate in constraint.annotations:
                        derived[key] = constraint.annotations[predicate]

        derived_severity = derived.pop("severity", None)
        severity = item.severity if item.severity is not None else _severity(derived_severity, default)
        failures.append(Failure(
            property=item.property,
            message=item.message,
            node=item.node or "",
            shape=item.shape,
            severity=severity,
            service=getattr(item, "service", None),
            annotations={**derived, **item.annotations},
        ))
    return failures


def dedup(failures: Iterable[Failure]) -> list[Failure]:
    """Keep the first failure for every (property, shape, severity)."""
    seen: set[tuple] = set()
    unique = []
    for failure in failures:
        if failure.key in seen:
            continue
        seen.add(failure.key)
        unique.append(failure)
    return unique


def annotate_and_dedup(
    raw: Sequence[Union[RawFailure, Failure]],
    schema: ShapeSchema,
    annotation_keys: Mapping[str, str],
    default_severity: str | Severity = Severity.ERROR,
) -> list[Failure]:
    return dedup(annotate(raw, schema, annotation_keys, default_severity))
