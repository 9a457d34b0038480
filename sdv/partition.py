"""Entity Partitioner - split one document graph into per-root entity stores.

A root entity is a typed subject that no *other* typed subject points at.
Each root gets its own TripleStore holding every triple reachable from it,
so that roots can be validated independently (and in parallel).

Subgraph extraction follows object references depth-first. The ids on the
current recursion path act as the cycle guard; they are threaded through
the recursion and never shared between roots. Completed subgraphs are
memoised by entity id so that nested entities referenced from several
places are walked once. A subgraph that was cut short by the cycle guard
at an entity above it on the path is not memoised, since its content
depends on the path it was reached from.
"""

from __future__ import annotations

import logging

from .store import TripleStore
from .terms import RDF_TYPE, Literal, NamedNode, Subject, Term, Triple

logger = logging.getLogger(__name__)

_RDF_TYPE = NamedNode(RDF_TYPE)


def find_roots(store: TripleStore) -> list[Subject]:
    """Typed subjects not referenced as an object by another typed subject."""
    typed = store.subjects(_RDF_TYPE)
    roots = []
    for candidate in typed:
        dependent = any(
            other != candidate and store.match(other, None, candidate)
            for other in typed
        )
        if not dependent:
            roots.append(candidate)
    return roots


def entity_subgraph(
    store: TripleStore,
    entity: Term,
    memo: dict[str, tuple[Triple, ...]] | None = None,
) -> list[Triple]:
    """All triples reachable from entity, each at most once, first-seen order."""
    triples, _ = _gather(store, entity, memo if memo is not None else {}, ())
    return list(dict.fromkeys(triples))


def _gather(
    store: TripleStore,
    entity: Term,
    memo: dict[str, tuple[Triple, ...]],
    path: tuple[str, ...],
) -> tuple[tuple[Triple, ...], frozenset[str]]:
    """Return (triples, cuts): cuts are the path ids the guard stopped at below entity."""
    if entity.id in memo:
        return memo[entity.id], frozenset()

    own = store.match(entity, None, None)
    if not own:
        return (), frozenset()

    path = path + (entity.id,)
    gathered: list[Triple] = list(own)
    cuts: set[str] = set()
    for triple in own:
        obj = triple.object
        if isinstance(obj, Literal):
            continue
        if obj.id in path:
            cuts.add(obj.id)
            continue
        nested, nested_cuts = _gather(store, obj, memo, path)
        gathered.extend(nested)
        cuts |= nested_cuts

    # a cut back to entity itself loses nothing
    cuts.discard(entity.id)
    result = tuple(gathered)
    if not cuts:
        memo[entity.id] = result
    return result, frozenset(cuts)


def partition(store: TripleStore) -> dict[Subject, TripleStore]:
    """Map each root entity to a fresh store holding its subgraph.

    Roots without outgoing triples are skipped.
    """
    memo: dict[str, tuple[Triple, ...]] = {}
    shapes: dict[Subject, TripleStore] = {}
    for root in find_roots(store):
        triples = entity_subgraph(store, root, memo)
        if triples:
            shapes[root] = TripleStore(triples)
    logger.debug("Partitioned %d triples into %d root entities", len(store), len(shapes))
    return shapes
