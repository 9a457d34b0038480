"""Validator configuration.

All knobs that callers may want to change without touching the shape assets:
how shape ids are derived from (service, entity type), which schema
annotations feed which failure fields, and how JSON-LD contexts are resolved
without network access.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping

from .terms import SCHEMA_NS


DEFAULT_SHAPE_ID_TEMPLATE = "http://schema.org/shex#Valid{service}{type}"

# failure field -> annotation predicate used in the shapes
DEFAULT_ANNOTATION_KEYS: dict[str, str] = {
    "url": f"{SCHEMA_NS}url",
    "description": f"{SCHEMA_NS}description",
    "severity": f"{SCHEMA_NS}identifier",
}

SCHEMA_ORG_CONTEXT: dict[str, Any] = {"@vocab": SCHEMA_NS}

DEFAULT_CONTEXT_ALIASES: dict[str, dict[str, Any]] = {
    "http://schema.org": SCHEMA_ORG_CONTEXT,
    "http://schema.org/": SCHEMA_ORG_CONTEXT,
    "https://schema.org": SCHEMA_ORG_CONTEXT,
    "https://schema.org/": SCHEMA_ORG_CONTEXT,
}

# prefix -> replacement, applied to every named node a parser produces
DEFAULT_IRI_ALIASES: dict[str, str] = {
    "https://schema.org/": SCHEMA_NS,
}


@dataclass
class ValidatorConfig:
    shape_id_template: str = DEFAULT_SHAPE_ID_TEMPLATE
    annotation_keys: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ANNOTATION_KEYS))
    default_severity: str = "error"
    context_aliases: dict[str, dict[str, Any]] = field(
        default_factory=lambda: dict(DEFAULT_CONTEXT_ALIASES)
    )
    iri_aliases: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_IRI_ALIASES))
    # injected into JSON-LD objects without @context; None disables injection
    default_context: dict[str, Any] | None = field(default_factory=lambda: dict(SCHEMA_ORG_CONTEXT))
    max_workers: int = 1

    def __post_init__(self) -> None:
        if self.default_severity not in ("error", "warning", "info"):
            raise ValueError(f"default_severity must be error, warning or info, got {self.default_severity!r}")
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        if "{type}" not in self.shape_id_template:
            raise ValueError("shape_id_template must contain a {type} placeholder")

    def shape_id(self, service: str, entity_type: str) -> str:
        return self.shape_id_template.format(service=service, type=entity_type)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ValidatorConfig:
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        return cls(**dict(data))

    @classmethod
    def from_file(cls, path: str | Path) -> ValidatorConfig:
        return cls.from_mapping(json.loads(Path(path).read_text(encoding="utf-8")))
