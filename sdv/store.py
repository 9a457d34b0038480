"""Triple Store - an append-only, indexed multiset of triples.

Built once per document (or per entity) and discarded. The store never
deduplicates; callers that need set semantics dedupe before inserting.
Pattern queries accept any combination of subject/predicate/object, with
None meaning "any".
"""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Iterator

from .terms import NamedNode, Subject, Term, Triple


class TripleStore:
    """Indexed triples with pattern lookup by any fixed subset of positions."""

    def __init__(self, triples: Iterable[Triple] = ()) -> None:
        self._triples: list[Triple] = []
        self._by_subject: dict[Term, list[Triple]] = defaultdict(list)
        self._by_predicate: dict[Term, list[Triple]] = defaultdict(list)
        self._by_object: dict[Term, list[Triple]] = defaultdict(list)
        self.extend(triples)

    # -----------------------------------------------------------------------
    # Insertion
    # -----------------------------------------------------------------------

    def add(self, triple: Triple) -> None:
        self._triples.append(triple)
        self._by_subject[triple.subject].append(triple)
        self._by_predicate[triple.predicate].append(triple)
        self._by_object[triple.object].append(triple)

    def extend(self, triples: Iterable[Triple]) -> None:
        for triple in triples:
            self.add(triple)

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    def match(
        self,
        subject: Term | None = None,
        predicate: Term | None = None,
        obj: Term | None = None,
    ) -> list[Triple]:
        """Return all triples matching the pattern, in insertion order."""
        candidates: list[Triple] | None = None
        for term, index in (
            (subject, self._by_subject),
            (predicate, self._by_predicate),
            (obj, self._by_object),
        ):
            if term is None:
                continue
            bucket = index.get(term, [])
            if candidates is None or len(bucket) < len(candidates):
                candidates = bucket
        if candidates is None:
            return list(self._triples)
        return [
            t for t in candidates
            if (subject is None or t.subject == subject)
            and (predicate is None or t.predicate == predicate)
            and (obj is None or t.object == obj)
        ]

    def subjects(self, predicate: Term | None = None, obj: Term | None = None) -> list[Subject]:
        """Distinct subjects of matching triples, first-seen order."""
        return list(dict.fromkeys(t.subject for t in self.match(None, predicate, obj)))

    def objects(self, subject: Term | None = None, predicate: Term | None = None) -> list[Term]:
        """Distinct objects of matching triples, first-seen order."""
        return list(dict.fromkeys(t.object for t in self.match(subject, predicate, None)))

    def predicates(self, subject: Term | None = None) -> list[NamedNode]:
        return list(dict.fromkeys(t.predicate for t in self.match(subject, None, None)))

    def __len__(self) -> int:
        return len(self._triples)

    def __iter__(self) -> Iterator[Triple]:
        return iter(self._triples)

    def __contains__(self, triple: object) -> bool:
        if not isinstance(triple, Triple):
            return False
        return triple in self._by_subject.get(triple.subject, [])

    def __repr__(self) -> str:
        return f"TripleStore({len(self._triples)} triples)"
