"""A small KQL (Kibana Query Language) parser and evaluator.

Supported syntax::

    event.source:github                 exact match (unquoted)
    event.message:"disk full"           exact match (quoted)
    event.host:web-*                    wildcard match
    event.error:*                       field exists
    event.level:(warn or error)         value groups
    event.count >= 10                   range: < <= > >=
    not event.a:x and (b:1 or c:2)      boolean connectives, case-insensitive

Queries are evaluated against plain nested dicts. When a path crosses a
list, the clause matches if any element matches. ``{{ ... }}`` template
placeholders are kept as single opaque tokens so unrendered filters still
parse.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from workflow_events.core.exceptions import KqlSyntaxError

# ============================================================================
# AST
# ============================================================================


@dataclass(frozen=True)
class Literal:
    text: str
    quoted: bool = False

    @property
    def has_wildcard(self) -> bool:
        return not self.quoted and "*" in self.text


@dataclass(frozen=True)
class Match:
    field: str
    value: Literal


@dataclass(frozen=True)
class Exists:
    field: str


@dataclass(frozen=True)
class Range:
    field: str
    operator: str
    value: Literal


@dataclass(frozen=True)
class FreeText:
    value: Literal


@dataclass(frozen=True)
class Not:
    child: "Node"


@dataclass(frozen=True)
class And:
    children: tuple["Node", ...]


@dataclass(frozen=True)
class Or:
    children: tuple["Node", ...]


Node = Match | Exists | Range | FreeText | Not | And | Or


# ============================================================================
# Tokenizer
# ============================================================================

_LPAREN = "LPAREN"
_RPAREN = "RPAREN"
_COLON = "COLON"
_RANGE = "RANGE"
_AND = "AND"
_OR = "OR"
_NOT = "NOT"
_WORD = "WORD"
_QUOTED = "QUOTED"
_EOF = "EOF"

_KEYWORDS = {"and": _AND, "or": _OR, "not": _NOT}
_WORD_TERMINATORS = set(' \t\r\n():<>"')


@dataclass(frozen=True)
class _Token:
    kind: str
    text: str
    position: int


def _tokenize(query: str) -> list[_Token]:
    tokens: list[_Token] = []
    i = 0
    length = len(query)

    while i < length:
        char = query[i]

        if char.isspace():
            i += 1
            continue

        if char == "(":
            tokens.append(_Token(_LPAREN, char, i))
            i += 1
        elif char == ")":
            tokens.append(_Token(_RPAREN, char, i))
            i += 1
        elif char == ":":
            tokens.append(_Token(_COLON, char, i))
            i += 1
        elif char in "<>":
            if i + 1 < length and query[i + 1] == "=":
                tokens.append(_Token(_RANGE, char + "=", i))
                i += 2
            else:
                tokens.append(_Token(_RANGE, char, i))
                i += 1
        elif char == '"':
            start = i
            i += 1
            chars = []
            while i < length and query[i] != '"':
                if query[i] == "\\" and i + 1 < length:
                    i += 1
                chars.append(query[i])
                i += 1
            if i >= length:
                raise KqlSyntaxError("Unterminated quoted string", start)
            i += 1
            tokens.append(_Token(_QUOTED, "".join(chars), start))
        else:
            start = i
            chars = []
            while i < length and query[i] not in _WORD_TERMINATORS:
                if query.startswith("{{", i):
                    end = query.find("}}", i + 2)
                    if end == -1:
                        raise KqlSyntaxError("Unterminated template placeholder", i)
                    chars.append(query[i : end + 2])
                    i = end + 2
                    continue
                if query[i] == "\\" and i + 1 < length:
                    i += 1
                chars.append(query[i])
                i += 1
            text = "".join(chars)
            kind = _KEYWORDS.get(text.lower(), _WORD)
            tokens.append(_Token(kind, text, start))

    tokens.append(_Token(_EOF, "", length))
    return tokens


# ============================================================================
# Parser
# ============================================================================


class _Parser:
    def __init__(self, query: str):
        self.tokens = _tokenize(query)
        self.pos = 0

    @property
    def current(self) -> _Token:
        return self.tokens[self.pos]

    def _advance(self) -> _Token:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def _expect(self, kind: str, description: str) -> _Token:
        if self.current.kind != kind:
            raise KqlSyntaxError(f"Expected {description} but found '{self.current.text or 'end of input'}'", self.current.position)
        return self._advance()

    def parse(self) -> Node:
        if self.current.kind == _EOF:
            raise KqlSyntaxError("Empty query", 0)
        node = self._or()
        if self.current.kind != _EOF:
            raise KqlSyntaxError(f"Unexpected '{self.current.text}'", self.current.position)
        return node

    def _or(self) -> Node:
        children = [self._and()]
        while self.current.kind == _OR:
            self._advance()
            children.append(self._and())
        return children[0] if len(children) == 1 else Or(tuple(children))

    def _and(self) -> Node:
        children = [self._not()]
        while self.current.kind == _AND:
            self._advance()
            children.append(self._not())
        return children[0] if len(children) == 1 else And(tuple(children))

    def _not(self) -> Node:
        if self.current.kind == _NOT:
            self._advance()
            return Not(self._not())
        return self._primary()

    def _primary(self) -> Node:
        token = self.current
        if token.kind == _LPAREN:
            self._advance()
            node = self._or()
            self._expect(_RPAREN, "')'")
            return node
        if token.kind == _QUOTED:
            self._advance()
            return FreeText(Literal(token.text, quoted=True))
        if token.kind == _WORD:
            self._advance()
            if self.current.kind == _COLON:
                self._advance()
                return self._field_value(token.text)
            if self.current.kind == _RANGE:
                operator = self._advance().text
                return Range(token.text, operator, self._literal())
            return FreeText(Literal(token.text))
        raise KqlSyntaxError(f"Unexpected '{token.text or 'end of input'}'", token.position)

    def _literal(self) -> Literal:
        token = self.current
        if token.kind == _WORD:
            self._advance()
            return Literal(token.text)
        if token.kind == _QUOTED:
            self._advance()
            return Literal(token.text, quoted=True)
        raise KqlSyntaxError(f"Expected a value but found '{token.text or 'end of input'}'", token.position)

    def _field_value(self, field: str) -> Node:
        if self.current.kind == _LPAREN:
            self._advance()
            node = self._value_or(field)
            self._expect(_RPAREN, "')'")
            return node
        literal = self._literal()
        if not literal.quoted and literal.text == "*":
            return Exists(field)
        return Match(field, literal)

    # field:(a or b and not c) distributes over the field

    def _value_or(self, field: str) -> Node:
        children = [self._value_and(field)]
        while self.current.kind == _OR:
            self._advance()
            children.append(self._value_and(field))
        return children[0] if len(children) == 1 else Or(tuple(children))

    def _value_and(self, field: str) -> Node:
        children = [self._value_not(field)]
        while self.current.kind == _AND:
            self._advance()
            children.append(self._value_not(field))
        return children[0] if len(children) == 1 else And(tuple(children))

    def _value_not(self, field: str) -> Node:
        if self.current.kind == _NOT:
            self._advance()
            return Not(self._value_not(field))
        if self.current.kind == _LPAREN:
            self._advance()
            node = self._value_or(field)
            self._expect(_RPAREN, "')'")
            return node
        return Match(field, self._literal())


def parse(query: str) -> Node:
    """Parse a KQL string into an AST.

    Raises:
        KqlSyntaxError: If the query is malformed
    """
    return _Parser(query).parse()


# ============================================================================
# Path extraction
# ============================================================================


def extract_property_paths(query: str) -> list[str]:
    """Field paths referenced by a query, in order of first appearance."""
    paths: list[str] = []

    def visit(node: Node) -> None:
        if isinstance(node, (Match, Exists, Range)):
            if node.field not in paths:
                paths.append(node.field)
        elif isinstance(node, Not):
            visit(node.child)
        elif isinstance(node, (And, Or)):
            for child in node.children:
                visit(child)

    visit(parse(query))
    return paths


# ============================================================================
# Evaluation
# ============================================================================

_MISSING = object()


def _lookup(value: Any, parts: list[str]) -> list[Any]:
    """All values reachable at a dotted path; lists fan out."""
    if isinstance(value, list):
        found = []
        for item in value:
            found.extend(_lookup(item, parts))
        return found
    if not parts:
        return [value]
    if not isinstance(value, dict):
        return []

    head, rest = parts[0], parts[1:]
    if head in value:
        return _lookup(value[head], rest)

    # Keys that themselves contain dots, e.g. {"kubernetes.pod": ...}
    for size in range(len(parts), 1, -1):
        joined = ".".join(parts[:size])
        if joined in value:
            return _lookup(value[joined], parts[size:])
    return []


def _leaves(value: Any) -> list[Any]:
    if isinstance(value, dict):
        found = []
        for item in value.values():
            found.extend(_leaves(item))
        return found
    if isinstance(value, list):
        found = []
        for item in value:
            found.extend(_leaves(item))
        return found
    return [value]


def _wildcard_regex(pattern: str) -> re.Pattern:
    return re.compile("^" + ".*".join(re.escape(part) for part in pattern.split("*")) + "$", re.DOTALL)


def _as_number(text: str) -> float | None:
    try:
        return float(text)
    except ValueError:
        return None


def _as_datetime(value: Any) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _matches(value: Any, literal: Literal) -> bool:
    if value is None or isinstance(value, (dict, list)):
        return False

    if literal.has_wildcard:
        if isinstance(value, bool):
            value = "true" if value else "false"
        return bool(_wildcard_regex(literal.text).match(str(value)))

    if isinstance(value, bool):
        return literal.text.lower() == ("true" if value else "false")
    if isinstance(value, (int, float)):
        number = _as_number(literal.text)
        return number is not None and float(value) == number
    return str(value) == literal.text


def _compare(value: Any, operator: str, literal: Literal) -> bool:
    if value is None or isinstance(value, (bool, dict, list)):
        return False

    left: Any
    right: Any
    if isinstance(value, (int, float)):
        right = _as_number(literal.text)
        if right is None:
            return False
        left = float(value)
    else:
        left_date, right_date = _as_datetime(value), _as_datetime(literal.text)
        left_number, right_number = _as_number(str(value)), _as_number(literal.text)
        if left_number is not None and right_number is not None:
            left, right = left_number, right_number
        elif left_date is not None and right_date is not None:
            left, right = left_date, right_date
        else:
            left, right = str(value), literal.text

    if operator == "<":
        return left < right
    if operator == "<=":
        return left <= right
    if operator == ">":
        return left > right
    return left >= right


def _evaluate(node: Node, context: dict[str, Any]) -> bool:
    if isinstance(node, Or):
        return any(_evaluate(child, context) for child in node.children)
    if isinstance(node, And):
        return all(_evaluate(child, context) for child in node.children)
    if isinstance(node, Not):
        return not _evaluate(node.child, context)
    if isinstance(node, Exists):
        return any(value is not None for value in _lookup(context, node.field.split(".")))
    if isinstance(node, Match):
        return any(_matches(value, node.value) for value in _lookup(context, node.field.split(".")))
    if isinstance(node, Range):
        return any(_compare(value, node.operator, node.value) for value in _lookup(context, node.field.split(".")))
    if isinstance(node, FreeText):
        return any(_matches(value, node.value) for value in _leaves(context))
    raise TypeError(f"Unknown KQL node: {type(node).__name__}")


def evaluate(query: str | Node, context: dict[str, Any]) -> bool:
    """Evaluate a KQL query (string or parsed AST) against a context dict.

    Raises:
        KqlSyntaxError: If a query string is malformed
    """
    node = parse(query) if isinstance(query, str) else query
    return _evaluate(node, context)
