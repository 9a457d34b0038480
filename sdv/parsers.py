"""Format parsers - JSON-LD, Microdata, RDFa and Turtle into a TripleStore.

Every parser has the same contract:

    parse_xxx(text, base_url, config=None) -> TripleStore   (raises ParseError)

parse_any() tries JSON-LD, then Microdata, then RDFa, and returns the first
store that is non-empty. Syntax-level failures of one format only mean "this
format did not match"; exhausting all three raises InvalidDataError.

JSON-LD is expanded by rdflib, canonicalised to N-Triples and re-read through
the Turtle parser, so every path ends in the same term conversion. That
conversion sorts the triples, so a document always yields the same store, and
rewrites aliased IRI prefixes (https://schema.org/ by default). Microdata
and RDFa are extracted from HTML with extruct and then fed through the same
JSON-LD path. No parser ever fetches a remote resource: known remote
contexts are inlined from configuration, unknown ones are rejected.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Mapping

import extruct
from lxml.etree import LxmlError
from rdflib import Graph
from rdflib.plugins.parsers.notation3 import BadSyntax
from w3lib.html import get_base_url

from .config import ValidatorConfig
from .errors import InvalidDataError, ParseError
from .store import TripleStore
from .terms import NamedNode, Term, Triple, from_rdflib

logger = logging.getLogger(__name__)

RDFA_NS = "http://www.w3.org/ns/rdfa#"

INVALID_DATA_MESSAGE = (
    "Error while parsing the data. This could be caused by incorrect data "
    "or incorrect data format. Possible formats: json-ld, microdata, rdfa"
)


# ---------------------------------------------------------------------------
# Syntax check
# ---------------------------------------------------------------------------

def check_json(text: str) -> ParseError | None:
    """Return a ParseError with line/column if text is not valid JSON."""
    try:
        json.loads(text)
    except json.JSONDecodeError as e:
        return ParseError(e.msg, line=e.lineno, column=e.colno, format="json-ld")
    return None


# ---------------------------------------------------------------------------
# Turtle
# ---------------------------------------------------------------------------

def parse_turtle(text: str, base_url: str | None = None, config: ValidatorConfig | None = None) -> TripleStore:
    """Parse Turtle (or N-Triples, a subset of it) into a TripleStore."""
    graph = Graph()
    try:
        graph.parse(data=text, format="turtle", publicID=base_url)
    except BadSyntax as e:
        raise ParseError(f"Invalid Turtle: {e}", line=e.lines + 1, format="turtle") from e
    return _graph_to_store(graph, config or ValidatorConfig())


def _graph_to_store(graph: Graph, config: ValidatorConfig) -> TripleStore:
    # rdflib graphs are unordered sets; sort for a reproducible store
    ordered = sorted(graph, key=lambda spo: tuple(node.n3() for node in spo))
    return TripleStore(
        Triple(*(_unalias(from_rdflib(node), config.iri_aliases) for node in spo))
        for spo in ordered
    )


def _unalias(term: Term, aliases: Mapping[str, str]) -> Term:
    if isinstance(term, NamedNode):
        for prefix, replacement in aliases.items():
            if term.iri.startswith(prefix):
                return NamedNode(replacement + term.iri[len(prefix):])
    return term


# ---------------------------------------------------------------------------
# JSON-LD
# ---------------------------------------------------------------------------

def parse_jsonld(text: str, base_url: str, config: ValidatorConfig | None = None) -> TripleStore:
    """Parse a JSON-LD document (object, array or @graph)."""
    config = config or ValidatorConfig()
    error = check_json(text)
    if error is not None:
        raise error
    data = json.loads(text)
    if not isinstance(data, (dict, list)):
        raise ParseError("JSON-LD document must be an object or an array", format="json-ld")
    return _jsonld_to_store(_prepare_jsonld(data, config), base_url, config)


def _jsonld_to_store(data: Any, base_url: str, config: ValidatorConfig) -> TripleStore:
    graph = Graph()
    try:
        graph.parse(data=json.dumps(data), format="json-ld", publicID=base_url)
    except Exception as e:
        # rdflib's expansion reports malformed structure with arbitrary exception types
        raise ParseError(f"Invalid JSON-LD: {e}", format="json-ld") from e
    return parse_turtle(graph.serialize(format="nt"), base_url, config)


def _prepare_jsonld(data: Any, config: ValidatorConfig) -> Any:
    """Inline known remote contexts and inject the default context."""
    data = _inline_contexts(data, config)
    if isinstance(data, list):
        return [_with_default_context(item, config) for item in data]
    return _with_default_context(data, config)


def _with_default_context(item: Any, config: ValidatorConfig) -> Any:
    if isinstance(item, dict) and "@context" not in item and config.default_context is not None:
        return {"@context": dict(config.default_context), **item}
    return item


def _inline_contexts(value: Any, config: ValidatorConfig) -> Any:
    if isinstance(value, list):
        return [_inline_contexts(v, config) for v in value]
    if not isinstance(value, dict):
        return value
    out = {}
    for key, v in value.items():
        if key == "@context":
            out[key] = _resolve_context(v, config)
        else:
            out[key] = _inline_contexts(v, config)
    return out


def _resolve_context(context: Any, config: ValidatorConfig) -> Any:
    if isinstance(context, list):
        return [_resolve_context(c, config) for c in context]
    if context is None or isinstance(context, dict):
        return context
    if not isinstance(context, str):
        raise ParseError(f"Invalid JSON-LD context: {context!r}", format="json-ld")
    for candidate in (context, context.rstrip("/"), context.rstrip("/") + "/"):
        if candidate in config.context_aliases:
            return dict(config.context_aliases[candidate])
    raise ParseError(f"Remote JSON-LD context {context} is not available offline", format="json-ld")


# ---------------------------------------------------------------------------
# HTML formats
# ---------------------------------------------------------------------------

def _extract(text: str, base_url: str, syntax: str, uniform: bool = False) -> list[Any]:
    if not text.strip():
        raise ParseError("Document is empty", format=syntax)
    try:
        base = get_base_url(text, base_url or "")
        extracted = extruct.extract(text, base_url=base, syntaxes=[syntax], uniform=uniform)
    except (LxmlError, ValueError) as e:
        raise ParseError(f"Format is not {syntax}: {e}", format=syntax) from e
    return extracted.get(syntax) or []


def parse_microdata(text: str, base_url: str, config: ValidatorConfig | None = None) -> TripleStore:
    """Parse Microdata items from HTML markup."""
    config = config or ValidatorConfig()
    items = _extract(text, base_url, "microdata", uniform=True)
    if not items:
        raise ParseError("Format is not Microdata", format="microdata")
    return _jsonld_to_store(_prepare_jsonld(items, config), base_url, config)


def parse_rdfa(text: str, base_url: str, config: ValidatorConfig | None = None) -> TripleStore:
    """Parse RDFa from HTML markup. extruct already yields expanded JSON-LD.

    Processor output in the rdfa: namespace (rdfa:usesVocabulary) describes
    the document, not its content, and is dropped.
    """
    config = config or ValidatorConfig()
    items = _extract(text, base_url, "rdfa")
    if not items:
        raise ParseError("Format is not RDFa", format="rdfa")
    store = _jsonld_to_store(items, base_url, config)
    return TripleStore(t for t in store if not t.predicate.iri.startswith(RDFA_NS))


# ---------------------------------------------------------------------------
# Fallback combinator
# ---------------------------------------------------------------------------

Parser = Callable[..., TripleStore]

PARSERS: tuple[tuple[str, Parser], ...] = (
    ("json-ld", parse_jsonld),
    ("microdata", parse_microdata),
    ("rdfa", parse_rdfa),
)


def parse_any(text: str, base_url: str, config: ValidatorConfig | None = None) -> TripleStore:
    """Try every format in order; the first non-empty store wins."""
    json_error: ParseError | None = None
    for name, parser in PARSERS:
        try:
            store = parser(text, base_url, config)
        except ParseError as e:
            logger.debug("Input is not %s: %s", name, e)
            if name == "json-ld":
                json_error = e
            continue
        if len(store) > 0:
            logger.debug("Parsed %d triples as %s", len(store), name)
            return store
        logger.debug("Input parsed as %s but produced no triples", name)

    # JSON-looking input: keep the position of the syntax error
    if json_error is not None and json_error.line is not None and text.lstrip().startswith(("{", "[")):
        raise InvalidDataError(
            f"{INVALID_DATA_MESSAGE}. {json_error.message}",
            line=json_error.line,
            column=json_error.column,
        )
    raise InvalidDataError(INVALID_DATA_MESSAGE)
