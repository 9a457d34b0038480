"""Shape Schema - parsed constraint shapes and their loaders.

A schema maps shape ids to shape expressions:

  LeafShape  - ordered property constraints plus a `closed` flag
  ShapeAnd   - intersection of member expressions (inheritance)
  ShapeRef   - reference to another named shape

Each PropertyConstraint carries a predicate, a value expression (node kind,
datatype, full-string regex or shape reference), a cardinality, optional
semantic actions and an annotation map keyed by predicate IRI.

Two textual forms are accepted:

  parse_shexc()  - a subset of ShEx compact syntax (see _ShExCParser)
  load_shexj()   - the equivalent subset of the ShEx JSON form

Schemas are validated when loaded: unknown prefixes, bad regular
expressions and dangling shape references raise InvalidShapeSchemaError.
A loaded schema is never mutated afterwards.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Mapping, NamedTuple, Union
from urllib.parse import urljoin

from .errors import InvalidShapeSchemaError
from .terms import RDF_TYPE


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------

class NodeKind(Enum):
    LITERAL = "literal"
    IRI = "iri"
    BNODE = "bnode"
    NONLITERAL = "nonliteral"


_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}


@dataclass(frozen=True)
class ValueExpr:
    """Constraint on a single value. Every field that is set must hold.

    A ValueExpr with nothing set (ShExC '.') accepts any value.
    """
    node_kind: NodeKind | None = None
    datatype: str | None = None
    pattern: str | None = None
    flags: str = ""
    shape_ref: str | None = None
    compiled: re.Pattern | None = field(default=None, compare=False, hash=False, repr=False)

    def __post_init__(self) -> None:
        if self.pattern is None or self.compiled is not None:
            return
        flags = 0
        for flag in self.flags:
            if flag not in _REGEX_FLAGS:
                raise InvalidShapeSchemaError(f"Unsupported regular expression flag {flag!r}")
            flags |= _REGEX_FLAGS[flag]
        try:
            object.__setattr__(self, "compiled", re.compile(self.pattern, flags))
        except re.error as e:
            raise InvalidShapeSchemaError(f"Invalid regular expression /{self.pattern}/: {e}") from e

    @property
    def kind(self) -> str:
        if self.shape_ref is not None:
            return "ShapeReference"
        if self.pattern is not None or self.datatype is not None:
            return "TypedLiteral"
        return "Literal"


@dataclass(frozen=True)
class Cardinality:
    min: int = 1
    max: int | None = 1  # None is unbounded

    def __post_init__(self) -> None:
        if self.min < 0 or (self.max is not None and self.max < self.min):
            raise InvalidShapeSchemaError(f"Invalid cardinality {{{self.min},{self.max}}}")

    def allows(self, count: int) -> bool:
        return count >= self.min and (self.max is None or count <= self.max)

    def __repr__(self) -> str:
        upper = "*" if self.max is None else self.max
        return f"{{{self.min},{upper}}}"


@dataclass(frozen=True)
class SemAct:
    """A semantic action: extension IRI plus optional code."""
    name: str
    code: str | None = None


@dataclass(frozen=True)
class PropertyConstraint:
    predicate: str
    value: ValueExpr = field(default_factory=ValueExpr)
    cardinality: Cardinality = field(default_factory=Cardinality)
    sem_acts: tuple[SemAct, ...] = ()
    annotations: dict[str, str] = field(default_factory=dict, hash=False)

    def __repr__(self) -> str:
        return f"PropertyConstraint({self.predicate} {self.value.kind} {self.cardinality!r})"


@dataclass(frozen=True)
class LeafShape:
    id: str | None
    constraints: tuple[PropertyConstraint, ...] = ()
    closed: bool = False

    @property
    def predicates(self) -> frozenset[str]:
        return frozenset(c.predicate for c in self.constraints)


@dataclass(frozen=True)
class ShapeRef:
    ref: str


@dataclass(frozen=True)
class ShapeAnd:
    id: str | None
    members: tuple[ShapeExpr, ...]


ShapeExpr = Union[LeafShape, ShapeRef, ShapeAnd]


@dataclass
class ShapeSchema:
    """A library of named shapes. Treated as immutable once loaded."""

    shapes: dict[str, ShapeExpr] = field(default_factory=dict)
    base: str | None = None
    prefixes: dict[str, str] = field(default_factory=dict)

    def __contains__(self, shape_id: object) -> bool:
        return shape_id in self.shapes

    def __len__(self) -> int:
        return len(self.shapes)

    def get(self, shape_id: str) -> ShapeExpr:
        try:
            return self.shapes[shape_id]
        except KeyError:
            raise KeyError(f"Unknown shape {shape_id}") from None

    def leaves(self, shape_id: str) -> Iterator[LeafShape]:
        """Leaf shapes contributing to shape_id: inline leaves before referenced ones."""
        seen: set[str] = set()

        def walk(expr: ShapeExpr) -> Iterator[LeafShape]:
            if isinstance(expr, LeafShape):
                yield expr
            elif isinstance(expr, ShapeAnd):
                for member in expr.members:
                    if not isinstance(member, ShapeRef):
                        yield from walk(member)
                for member in expr.members:
                    if isinstance(member, ShapeRef):
                        yield from walk(member)
            elif expr.ref not in seen and expr.ref in self.shapes:
                seen.add(expr.ref)
                yield from walk(self.shapes[expr.ref])

        if shape_id in self.shapes:
            seen.add(shape_id)
            yield from walk(self.shapes[shape_id])

    def constraint_for(self, shape_id: str, predicate: str) -> PropertyConstraint | None:
        """The first constraint on predicate declared by shape_id or its members."""
        for leaf in self.leaves(shape_id):
            for constraint in leaf.constraints:
                if constraint.predicate == predicate:
                    return constraint
        return None

    def check_references(self) -> None:
        """Raise InvalidShapeSchemaError for references to undeclared shapes."""
        def refs(expr: ShapeExpr) -> Iterator[str]:
            if isinstance(expr, ShapeRef):
                yield expr.ref
            elif isinstance(expr, ShapeAnd):
                for member in expr.members:
                    yield from refs(member)
            else:
                for c in expr.constraints:
                    if c.value.shape_ref is not None:
                        yield c.value.shape_ref

        for shape_id, expr in self.shapes.items():
            for ref in refs(expr):
                if ref not in self.shapes:
                    raise InvalidShapeSchemaError(f"Shape {shape_id} references undeclared shape {ref}")

    def __repr__(self) -> str:
        return f"ShapeSchema({len(self.shapes)} shapes)"


# ---------------------------------------------------------------------------
# ShExC tokenizer
# ---------------------------------------------------------------------------

class _Token(NamedTuple):
    kind: str
    text: str
    line: int


_TOKEN_RE = re.compile(r"""
    (?P<ws>\s+)
  | (?P<comment>\#[^\n]*)
  | (?P<annot>//)
  | (?P<iri><[^<>"{}|^`\\\s]*>)
  | (?P<string>"(?:[^"\\]|\\.)*"(?:@[A-Za-z]+(?:-[A-Za-z0-9]+)*)?|'(?:[^'\\]|\\.)*')
  | (?P<regexp>/(?:[^/\\\n]|\\.)+/[A-Za-z]*)
  | (?P<pname>(?:[A-Za-z][\w-]*)?:(?:[\w-]+(?:\.[\w-]+)*)?)
  | (?P<int>\d+)
  | (?P<keyword>[A-Za-z_]+)
  | (?P<punct>[{}();@*+?,.%\[\]])
""", re.VERBOSE)

_CODE_RE = re.compile(r"\{((?:[^%\\]|\\.|%(?!\}))*)%\}", re.DOTALL)


def _tokenize(text: str) -> list[_Token]:
    tokens: list[_Token] = []
    pos = 0
    line = 1
    while pos < len(text):
        # semantic action code: % <iri> { ... %}
        if (
            text[pos] == "{"
            and len(tokens) >= 2
            and tokens[-2].text == "%"
            and tokens[-1].kind in ("iri", "pname")
        ):
            m = _CODE_RE.match(text, pos)
            if m is None:
                raise InvalidShapeSchemaError("Unterminated semantic action code", line=line)
            tokens.append(_Token("code", m.group(1).replace("\\%", "%"), line))
        else:
            m = _TOKEN_RE.match(text, pos)
            if m is None:
                raise InvalidShapeSchemaError(f"Unexpected character {text[pos]!r}", line=line)
            kind = m.lastgroup
            if kind not in ("ws", "comment"):
                tokens.append(_Token(kind, m.group(), line))
        line += m.group().count("\n")
        pos = m.end()
    return tokens


def _unquote(literal: str) -> str:
    quote = literal[0]
    body = literal[1:literal.rindex(quote)]
    return re.sub(r"\\(.)", lambda m: {"n": "\n", "t": "\t", "r": "\r"}.get(m.group(1), m.group(1)), body)


# ---------------------------------------------------------------------------
# ShExC parser
# ---------------------------------------------------------------------------

_NODE_KINDS = {kind.name: kind for kind in NodeKind}


class _ShExCParser:
    """Recursive-descent parser for the supported ShExC subset:

        schema      := (PREFIX pname IRIREF | BASE IRIREF)* (label shapeExpr)*
        shapeExpr   := shapeAtom (AND shapeAtom)*
        shapeAtom   := '@' label | CLOSED? '{' tripleExprs? '}' | '(' shapeExpr ')'
        tripleExpr  := predicate valueExpr cardinality? semAct* annotation*
        valueExpr   := '@' label | '.' | nodeKind REGEXP? | datatype REGEXP? | REGEXP
        cardinality := '*' | '+' | '?' | '{' INT (',' (INT | '*')?)? '}'
        semAct      := '%' iri (CODE | '%')
        annotation  := '//' predicate (STRING | iri | INT)
    """

    def __init__(self, text: str) -> None:
        self.tokens = _tokenize(text)
        self.pos = 0
        self.base: str | None = None
        self.prefixes: dict[str, str] = {}

    # -- token helpers ------------------------------------------------------

    def _peek(self) -> _Token | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _next(self) -> _Token:
        tok = self._peek()
        if tok is None:
            last = self.tokens[-1].line if self.tokens else 1
            raise InvalidShapeSchemaError("Unexpected end of schema", line=last)
        self.pos += 1
        return tok

    def _at(self, text: str) -> bool:
        tok = self._peek()
        return tok is not None and tok.kind == "punct" and tok.text == text

    def _at_keyword(self, word: str) -> bool:
        tok = self._peek()
        return tok is not None and tok.kind == "keyword" and tok.text.upper() == word

    def _expect(self, text: str) -> _Token:
        tok = self._next()
        if tok.text != text:
            raise InvalidShapeSchemaError(f"Expected {text!r}, found {tok.text!r}", line=tok.line)
        return tok

    def _error(self, message: str) -> InvalidShapeSchemaError:
        tok = self._peek()
        return InvalidShapeSchemaError(message, line=tok.line if tok else None)

    # -- terms -------------------------------------------------------------

    def _iri(self) -> str:
        tok = self._next()
        if tok.kind == "iri":
            inner = tok.text[1:-1]
            return urljoin(self.base, inner) if self.base else inner
        if tok.kind == "pname":
            prefix, _, local = tok.text.partition(":")
            if prefix not in self.prefixes:
                raise InvalidShapeSchemaError(f"Undeclared prefix {prefix!r}", line=tok.line)
            return self.prefixes[prefix] + local
        raise InvalidShapeSchemaError(f"Expected an IRI, found {tok.text!r}", line=tok.line)

    def _predicate(self) -> str:
        if self._at_keyword("A") and self._peek().text == "a":
            self.pos += 1
            return RDF_TYPE
        return self._iri()

    # -- grammar -----------------------------------------------------------

    def parse(self) -> ShapeSchema:
        shapes: dict[str, ShapeExpr] = {}
        while self._peek() is not None:
            if self._at_keyword("PREFIX"):
                self.pos += 1
                tok = self._next()
                if tok.kind != "pname" or not tok.text.endswith(":"):
                    raise InvalidShapeSchemaError(f"Expected a prefix name, found {tok.text!r}", line=tok.line)
                self.prefixes[tok.text[:-1]] = self._iri()
            elif self._at_keyword("BASE"):
                self.pos += 1
                self.base = self._iri()
            else:
                line = self._peek().line
                label = self._iri()
                if label in shapes:
                    raise InvalidShapeSchemaError(f"Duplicate shape {label}", line=line)
                shapes[label] = self._shape_expr(label)
        schema = ShapeSchema(shapes=shapes, base=self.base, prefixes=dict(self.prefixes))
        schema.check_references()
        return schema

    def _shape_expr(self, label: str) -> ShapeExpr:
        members = [self._shape_atom(label)]
        while self._at_keyword("AND"):
            self.pos += 1
            members.append(self._shape_atom(label))
        if len(members) == 1:
            return members[0]
        flat: list[ShapeExpr] = []
        for member in members:
            flat.extend(member.members if isinstance(member, ShapeAnd) else (member,))
        return ShapeAnd(id=label, members=tuple(flat))

    def _shape_atom(self, label: str) -> ShapeExpr:
        if self._at("@"):
            self.pos += 1
            return ShapeRef(self._iri())
        if self._at("("):
            self.pos += 1
            expr = self._shape_expr(label)
            self._expect(")")
            return expr
        closed = False
        if self._at_keyword("CLOSED"):
            self.pos += 1
            closed = True
        if not self._at("{"):
            raise self._error("Expected a shape reference or '{'")
        return self._leaf(label, closed)

    def _leaf(self, label: str, closed: bool) -> LeafShape:
        self._expect("{")
        constraints: list[PropertyConstraint] = []
        while not self._at("}"):
            constraints.append(self._triple_constraint())
            if self._at(";"):
                self.pos += 1
            elif not self._at("}"):
                raise self._error("Expected ';' or '}'")
        self._expect("}")
        return LeafShape(id=label, constraints=tuple(constraints), closed=closed)

    def _triple_constraint(self) -> PropertyConstraint:
        predicate = self._predicate()
        value = self._value_expr()
        cardinality = self._cardinality()
        sem_acts: list[SemAct] = []
        while self._at("%"):
            self.pos += 1
            name = self._iri()
            tok = self._next()
            if tok.kind == "code":
                sem_acts.append(SemAct(name, tok.text))
            elif tok.text == "%":
                sem_acts.append(SemAct(name))
            else:
                raise InvalidShapeSchemaError("Expected semantic action code or '%'", line=tok.line)
        annotations: dict[str, str] = {}
        while self._peek() is not None and self._peek().kind == "annot":
            self.pos += 1
            key = self._predicate()
            tok = self._peek()
            if tok is None:
                raise self._error("Expected an annotation value")
            if tok.kind == "string":
                self.pos += 1
                annotations[key] = _unquote(tok.text)
            elif tok.kind == "int":
                self.pos += 1
                annotations[key] = tok.text
            else:
                annotations[key] = self._iri()
        return PropertyConstraint(
            predicate=predicate,
            value=value,
            cardinality=cardinality,
            sem_acts=tuple(sem_acts),
            annotations=annotations,
        )

    def _value_expr(self) -> ValueExpr:
        if self._at("@"):
            self.pos += 1
            return ValueExpr(shape_ref=self._iri())
        if self._at("."):
            self.pos += 1
            return ValueExpr()
        tok = self._peek()
        if tok is None:
            raise self._error("Expected a value expression")
        node_kind = datatype = None
        if tok.kind == "keyword" and tok.text.upper() in _NODE_KINDS:
            self.pos += 1
            node_kind = _NODE_KINDS[tok.text.upper()]
        elif tok.kind in ("iri", "pname"):
            datatype = self._iri()
        elif tok.kind != "regexp":
            raise InvalidShapeSchemaError(f"Expected a value expression, found {tok.text!r}", line=tok.line)
        pattern, flags = None, ""
        tok = self._peek()
        if tok is not None and tok.kind == "regexp":
            self.pos += 1
            end = tok.text.rindex("/")
            pattern = tok.text[1:end].replace("\\/", "/")
            flags = tok.text[end + 1:]
        return ValueExpr(node_kind=node_kind, datatype=datatype, pattern=pattern, flags=flags)

    def _cardinality(self) -> Cardinality:
        if self._at("*"):
            self.pos += 1
            return Cardinality(0, None)
        if self._at("+"):
            self.pos += 1
            return Cardinality(1, None)
        if self._at("?"):
            self.pos += 1
            return Cardinality(0, 1)
        if not self._at("{"):
            return Cardinality()
        self.pos += 1
        low = self._int()
        high: int | None = low
        if self._at(","):
            self.pos += 1
            if self._at("*") or self._at("}"):
                if self._at("*"):
                    self.pos += 1
                high = None
            else:
                high = self._int()
        self._expect("}")
        return Cardinality(low, high)

    def _int(self) -> int:
        tok = self._next()
        if tok.kind != "int":
            raise InvalidShapeSchemaError(f"Expected an integer, found {tok.text!r}", line=tok.line)
        return int(tok.text)


def parse_shexc(text: str) -> ShapeSchema:
    """Parse ShExC text into a ShapeSchema."""
    return _ShExCParser(text).parse()


# ---------------------------------------------------------------------------
# ShExJ loader
# ---------------------------------------------------------------------------

def load_shexj(data: Mapping[str, Any] | str) -> ShapeSchema:
    """Load the JSON form of the shape language.

    `shapes` may be a list of shape declarations (each with an `id`) or a
    mapping of id to shape expression.
    """
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise InvalidShapeSchemaError(f"Invalid ShExJ: {e.msg}", line=e.lineno) from e
    if not isinstance(data, Mapping):
        raise InvalidShapeSchemaError("ShExJ document must be an object")

    raw = data.get("shapes", [])
    if isinstance(raw, Mapping):
        declarations = [(key, value) for key, value in raw.items()]
    else:
        declarations = []
        for decl in raw:
            if not isinstance(decl, Mapping) or "id" not in decl:
                raise InvalidShapeSchemaError("ShExJ shape declaration without an id")
            declarations.append((decl["id"], decl))

    shapes: dict[str, ShapeExpr] = {}
    for shape_id, decl in declarations:
        if decl.get("type") == "ShapeDecl":
            decl = decl["shapeExpr"]
        shapes[shape_id] = _shexj_expr(decl, shape_id)
    schema = ShapeSchema(shapes=shapes)
    schema.check_references()
    return schema


def _shexj_expr(expr: Any, shape_id: str) -> ShapeExpr:
    if isinstance(expr, str):
        return ShapeRef(expr)
    kind = expr.get("type")
    if kind == "ShapeRef":
        return ShapeRef(expr["reference"])
    if kind == "ShapeAnd":
        return ShapeAnd(id=shape_id, members=tuple(_shexj_expr(e, shape_id) for e in expr["shapeExprs"]))
    if kind == "Shape":
        body = expr.get("expression")
        if body is None:
            triples = []
        elif body.get("type") == "EachOf":
            triples = body["expressions"]
        else:
            triples = [body]
        return LeafShape(
            id=shape_id,
            constraints=tuple(_shexj_triple(t) for t in triples),
            closed=bool(expr.get("closed", False)),
        )
    raise InvalidShapeSchemaError(f"Unsupported ShExJ shape expression type {kind!r} in {shape_id}")


def _shexj_triple(tc: Mapping[str, Any]) -> PropertyConstraint:
    if tc.get("type") != "TripleConstraint":
        raise InvalidShapeSchemaError(f"Unsupported ShExJ triple expression type {tc.get('type')!r}")
    value_expr = tc.get("valueExpr")
    if value_expr is None:
        value = ValueExpr()
    elif isinstance(value_expr, str):
        value = ValueExpr(shape_ref=value_expr)
    elif value_expr.get("type") == "ShapeRef":
        value = ValueExpr(shape_ref=value_expr["reference"])
    elif value_expr.get("type") == "NodeConstraint":
        node_kind = value_expr.get("nodeKind")
        value = ValueExpr(
            node_kind=_NODE_KINDS[node_kind.upper()] if node_kind else None,
            datatype=value_expr.get("datatype"),
            pattern=value_expr.get("pattern"),
            flags=value_expr.get("flags", ""),
        )
    else:
        raise InvalidShapeSchemaError(f"Unsupported ShExJ value expression {value_expr!r}")

    high = tc.get("max", 1)
    annotations = {}
    for annotation in tc.get("annotations", []):
        obj = annotation["object"]
        annotations[annotation["predicate"]] = obj["value"] if isinstance(obj, Mapping) else obj
    return PropertyConstraint(
        predicate=tc["predicate"],
        value=value,
        cardinality=Cardinality(tc.get("min", 1), None if high == -1 else high),
        sem_acts=tuple(SemAct(a["name"], a.get("code")) for a in tc.get("semActs", [])),
        annotations=annotations,
    )


def load_schema(path: str | Path) -> ShapeSchema:
    """Load a schema asset; .json/.shexj files are ShExJ, anything else ShExC."""
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in (".json", ".shexj"):
        return load_shexj(text)
    return parse_shexc(text)
