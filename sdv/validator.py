"""Structured data validation pipeline.

    text items ─► parse_any ─► TripleStore ─► partition ─► per-root store
               ─► validate_hierarchy (engine per service) ─► dedup ─► failures

One StructuredDataValidator owns an immutable ShapeSchema, a service
hierarchy and a constraint engine; all are loaded once and shared by every
call. Data items are independent: an item that cannot be parsed becomes one
synthetic error failure and the remaining items are still validated.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Iterable, Mapping

from .config import ValidatorConfig
from .engine import ConstraintEngine, SemActHandler
from .errors import ParseError
from .hierarchy import ServiceHierarchyNode, ShapeEvaluator, load_hierarchy, validate_hierarchy
from .parsers import parse_any
from .partition import partition
from .report import Failure, Severity, dedup
from .shapes import ShapeSchema, load_schema
from .store import TripleStore
from .terms import Subject

logger = logging.getLogger(__name__)


class StructuredDataValidator:
    def __init__(
        self,
        schema: ShapeSchema,
        hierarchy: ServiceHierarchyNode,
        config: ValidatorConfig | None = None,
        engine: ShapeEvaluator | None = None,
        semantic_actions: Mapping[str, SemActHandler] | None = None,
    ) -> None:
        if engine is not None and semantic_actions:
            raise ValueError("semantic_actions only apply to the native engine")
        self.schema = schema
        self.hierarchy = hierarchy
        self.config = config or ValidatorConfig()
        self.engine = engine or ConstraintEngine(semantic_actions)

    @classmethod
    def from_files(
        cls,
        schema_path: str | Path,
        hierarchy_path: str | Path,
        config: ValidatorConfig | None = None,
        **kwargs: Any,
    ) -> StructuredDataValidator:
        return cls(load_schema(schema_path), load_hierarchy(hierarchy_path), config, **kwargs)

    def validate(self, data: Iterable[str], base_url: str) -> list[Failure]:
        """Validate every item; failures are concatenated in item order."""
        failures: list[Failure] = []
        for index, text in enumerate(data):
            try:
                failures.extend(self.validate_item(text, base_url))
            except ParseError as e:
                logger.warning("Structured data item %d could not be parsed: %s", index, e)
                failures.append(Failure(
                    property=None,
                    message=str(e),
                    node="",
                    severity=Severity.ERROR,
                ))
        return failures

    def validate_item(self, text: str, base_url: str) -> list[Failure]:
        """Parse one item and validate it. Raises ParseError."""
        return self.validate_store(parse_any(text, base_url, self.config))

    def validate_store(self, store: TripleStore) -> list[Failure]:
        entities = partition(store)
        if self.config.max_workers > 1 and len(entities) > 1:
            with ThreadPoolExecutor(max_workers=self.config.max_workers) as pool:
                results = list(pool.map(self._validate_entity, entities.items()))
        else:
            results = [self._validate_entity(item) for item in entities.items()]

        failures: list[Failure] = []
        for result in results:
            failures.extend(result)
        return failures

    def _validate_entity(self, item: tuple[Subject, TripleStore]) -> list[Failure]:
        root, store = item
        failures = validate_hierarchy(self.hierarchy, self.schema, store, root, self.engine, self.config)
        logger.debug("%s: %d failures", root.id, len(failures))
        return dedup(failures)

    def __repr__(self) -> str:
        return f"StructuredDataValidator({self.schema!r}, {self.hierarchy!r})"
