"""Condition expressions gating files and dependencies.

A condition is a tiny prefix language, written the way blueprint authors
already write them::

    {{ne .AuthType ""}}
    {{and (ne .DatabaseDriver "") (eq .DatabaseORM "gorm")}}
    {{.EnableDocker}}

The ``{{ }}`` wrapper and the leading dot on variable names are optional.
Expressions are parsed once into an immutable AST (``Eq | Ne | And | Or | Not
| Var | Lit``) and then evaluated against a ``VariableContext`` as many times
as needed.  An empty condition always evaluates to ``True``.
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass
from typing import Union

from blueprint_forge.errors import ConditionError
from blueprint_forge.scaffolder.context import VariableContext, is_truthy


# ---------------------------------------------------------------------------
# AST
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Var:
    name: str


@dataclass(frozen=True)
class Lit:
    value: Union[str, bool]


@dataclass(frozen=True)
class Eq:
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Ne:
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class And:
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Or:
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Not:
    operand: "Node"


Node = Union[Var, Lit, Eq, Ne, And, Or, Not]

ALWAYS = Lit(True)


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------

_WRAPPER = re.compile(r"^\{\{-?\s*(?P<body>.*?)\s*-?\}\}$", re.DOTALL)

_TOKEN = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<lparen>\()
  | (?P<rparen>\))
  | (?P<string>"(?:[^"\\]|\\.)*")
  | (?P<raw>`[^`]*`)
  | (?P<var>\$?\.[A-Za-z_][A-Za-z0-9_]*)
  | (?P<number>-?\d+(?:\.\d+)?)
  | (?P<ident>[A-Za-z_][A-Za-z0-9_]*)
    """,
    re.VERBOSE,
)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", '"': '"', "\\": "\\"}


@dataclass(frozen=True)
class _Token:
    kind: str
    text: str


def _unescape(body: str, expression: str) -> str:
    out: list[str] = []
    chars = iter(body)
    for char in chars:
        if char != "\\":
            out.append(char)
            continue
        escaped = next(chars, "")
        if escaped not in _ESCAPES:
            raise ConditionError(expression, f"unsupported escape '\\{escaped}'")
        out.append(_ESCAPES[escaped])
    return "".join(out)


def _tokenize(body: str, expression: str) -> list[_Token]:
    tokens: list[_Token] = []
    position = 0
    while position < len(body):
        match = _TOKEN.match(body, position)
        if match is None:
            snippet = body[position:position + 10]
            if body[position] in "\"`":
                raise ConditionError(expression, "unterminated string literal")
            raise ConditionError(expression, f"unexpected input at {snippet!r}")
        kind = match.lastgroup or ""
        if kind != "ws":
            tokens.append(_Token(kind, match.group()))
        position = match.end()
    return tokens


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

_ARITY = {
    "not": (1, 1),
    "ne": (2, 2),
    "eq": (2, None),
    "and": (2, None),
    "or": (2, None),
}


class _Parser:
    def __init__(self, tokens: list[_Token], expression: str) -> None:
        self.tokens = tokens
        self.expression = expression
        self.position = 0

    def error(self, message: str) -> ConditionError:
        return ConditionError(self.expression, message)

    def peek(self) -> _Token | None:
        return self.tokens[self.position] if self.position < len(self.tokens) else None

    def take(self) -> _Token:
        token = self.peek()
        if token is None:
            raise self.error("unexpected end of expression")
        self.position += 1
        return token

    def parse(self) -> Node:
        node = self.pipeline(top_level=True)
        if self.peek() is not None:
            raise self.error(f"unexpected token {self.peek().text!r}")
        return node

    def pipeline(self, *, top_level: bool = False) -> Node:
        token = self.peek()
        if token is None:
            raise self.error("empty expression")
        if token.kind == "ident" and token.text not in ("true", "false"):
            if token.text in _ARITY or self._has_arguments():
                return self.call()
        node = self.operand()
        if top_level or self.peek() is None or self.peek().kind == "rparen":
            return node
        raise self.error(f"unexpected token {self.peek().text!r}")

    def _has_arguments(self) -> bool:
        following = self.position + 1
        return following < len(self.tokens) and self.tokens[following].kind != "rparen"

    def call(self) -> Node:
        name = self.take().text
        if name not in _ARITY:
            raise self.error(f"unknown function '{name}'")
        args: list[Node] = []
        while self.peek() is not None and self.peek().kind != "rparen":
            args.append(self.operand())
        low, high = _ARITY[name]
        if len(args) < low or (high is not None and len(args) > high):
            expected = str(low) if low == high else f"at least {low}"
            raise self.error(f"'{name}' takes {expected} argument(s), got {len(args)}")
        return _build(name, args)

    def operand(self) -> Node:
        token = self.take()
        if token.kind == "lparen":
            node = self.pipeline()
            closing = self.take()
            if closing.kind != "rparen":
                raise self.error("missing ')'")
            return node
        if token.kind == "var":
            return Var(token.text.lstrip("$").lstrip("."))
        if token.kind == "string":
            return Lit(_unescape(token.text[1:-1], self.expression))
        if token.kind == "raw":
            return Lit(token.text[1:-1])
        if token.kind == "number":
            return Lit(token.text)
        if token.kind == "ident" and token.text in ("true", "false"):
            return Lit(token.text == "true")
        if token.kind == "ident" and token.text in _ARITY:
            raise self.error(f"function '{token.text}' must be wrapped in parentheses here")
        if token.kind == "ident":
            return Var(token.text)
        if token.kind == "rparen":
            raise self.error("unbalanced ')'")
        raise self.error(f"unexpected token {token.text!r}")


def _build(name: str, args: list[Node]) -> Node:
    if name == "not":
        return Not(args[0])
    if name == "ne":
        return Ne(args[0], args[1])
    if name == "eq":
        first, rest = args[0], args[1:]
        node: Node = Eq(first, rest[0])
        for other in rest[1:]:
            node = Or(node, Eq(first, other))
        return node
    combine = And if name == "and" else Or
    node = args[0]
    for other in args[1:]:
        node = combine(node, other)
    return node


@functools.lru_cache(maxsize=1024)
def parse_condition(expression: str) -> Node:
    """Parse *expression* into an AST.

    Results are cached per expression text; the AST is immutable so sharing
    it between runs is safe.

    Raises:
        ConditionError: On unknown functions, wrong arity, unbalanced
            parentheses, bad literals or trailing input.
    """
    text = expression.strip()
    wrapped = _WRAPPER.match(text)
    if wrapped:
        text = wrapped.group("body").strip()
    elif text.startswith("{{") or text.endswith("}}"):
        raise ConditionError(expression, "unbalanced '{{ }}' wrapper")
    if not text:
        return ALWAYS
    return _Parser(_tokenize(text, expression), expression).parse()


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def _text(node: Node, ctx: VariableContext) -> str:
    if isinstance(node, Var):
        return ctx.text(node.name)
    if isinstance(node, Lit):
        if isinstance(node.value, bool):
            return "true" if node.value else "false"
        return node.value
    return "true" if _truth(node, ctx) else "false"


def _truth(node: Node, ctx: VariableContext) -> bool:
    if isinstance(node, Var):
        return is_truthy(ctx.get(node.name))
    if isinstance(node, Lit):
        if isinstance(node.value, bool):
            return node.value
        return node.value not in ("", "false")
    if isinstance(node, Eq):
        return _text(node.left, ctx) == _text(node.right, ctx)
    if isinstance(node, Ne):
        return _text(node.left, ctx) != _text(node.right, ctx)
    if isinstance(node, And):
        return _truth(node.left, ctx) and _truth(node.right, ctx)
    if isinstance(node, Or):
        return _truth(node.left, ctx) or _truth(node.right, ctx)
    if isinstance(node, Not):
        return not _truth(node.operand, ctx)
    raise TypeError(f"unknown condition node {node!r}")


def evaluate(condition: Union[str, Node], ctx: VariableContext) -> bool:
    """Evaluate *condition* (text or a parsed AST) against *ctx*.

    Variables missing from the context read as empty/false rather than
    raising.

    Raises:
        ConditionError: If *condition* is text that does not parse.
    """
    node = parse_condition(condition) if isinstance(condition, str) else condition
    return _truth(node, ctx)
