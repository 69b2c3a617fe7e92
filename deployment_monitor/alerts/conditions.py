"""
Alert Condition Language.

============================================================
PURPOSE
============================================================
Parses alert condition strings into an expression tree once,
at registration time, and evaluates the tree against a metric
binding map on every tick. Condition text is never executed.

GRAMMAR:
    expression := and_expr ( "||" and_expr )*
    and_expr   := term ( "&&" term )*
    term       := "(" expression ")" | operand COMPARATOR operand
    operand    := NUMBER | IDENTIFIER
    COMPARATOR := "<" | "<=" | ">" | ">=" | "==" | "!="

IDENTIFIER is a dotted field path such as ``errorRate``,
``performance.webVitals.lcp`` or ``custom.queue_depth``.

============================================================
"""

import operator
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Set, Tuple, Union

from ..errors import ConditionEvaluationError, ConditionParseError


Comparator = Callable[[float, float], bool]

COMPARATORS: Dict[str, Comparator] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}


# ============================================================
# EXPRESSION TREE
# ============================================================

@dataclass(frozen=True)
class Literal:
    value: float

    def evaluate(self, bindings: Mapping[str, float]) -> float:
        return self.value


@dataclass(frozen=True)
class Identifier:
    path: str

    def evaluate(self, bindings: Mapping[str, float]) -> float:
        try:
            return bindings[self.path]
        except KeyError:
            raise ConditionEvaluationError(f"Unknown metric field: {self.path}")


Operand = Union[Literal, Identifier]


@dataclass(frozen=True)
class Comparison:
    op: str
    left: Operand
    right: Operand

    def evaluate(self, bindings: Mapping[str, float]) -> bool:
        return COMPARATORS[self.op](
            self.left.evaluate(bindings),
            self.right.evaluate(bindings),
        )


@dataclass(frozen=True)
class Logical:
    op: str  # "&&" or "||"
    left: "Node"
    right: "Node"

    def evaluate(self, bindings: Mapping[str, float]) -> bool:
        if self.op == "&&":
            return self.left.evaluate(bindings) and self.right.evaluate(bindings)
        return self.left.evaluate(bindings) or self.right.evaluate(bindings)


Node = Union[Comparison, Logical]


def identifiers(node: Union[Node, Operand]) -> Set[str]:
    """All field paths referenced by a tree."""
    if isinstance(node, Identifier):
        return {node.path}
    if isinstance(node, Literal):
        return set()
    return identifiers(node.left) | identifiers(node.right)


# ============================================================
# TOKENIZER
# ============================================================

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<number>-?(?:\d+\.\d*|\.\d+|\d+)(?:[eE][-+]?\d+)?)
  | (?P<ident>[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z0-9_]+)*)
  | (?P<op><=|>=|==|!=|<|>|&&|\|\|)
  | (?P<paren>[()])
    """,
    re.VERBOSE,
)

Token = Tuple[str, str, int]


def tokenize(text: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise ConditionParseError(
                f"Unexpected character {text[pos]!r} at position {pos}",
                condition=text,
                position=pos,
            )
        kind = match.lastgroup
        if kind != "ws":
            tokens.append((kind, match.group(), pos))
        pos = match.end()
    return tokens


# ============================================================
# PARSER
# ============================================================

class _Parser:
    """Recursive-descent parser over a token list."""

    def __init__(self, text: str):
        self._text = text
        self._tokens = tokenize(text)
        self._pos = 0

    def _peek(self) -> Union[Token, None]:
        return self._tokens[self._pos] if self._pos < len(self._tokens) else None

    def _error(self, message: str) -> ConditionParseError:
        token = self._peek()
        position = token[2] if token else len(self._text)
        return ConditionParseError(
            f"{message} at position {position} in condition {self._text!r}",
            condition=self._text,
            position=position,
        )

    def _accept(self, value: str) -> bool:
        token = self._peek()
        if token is not None and token[1] == value:
            self._pos += 1
            return True
        return False

    def parse(self) -> Node:
        if not self._tokens:
            raise self._error("Empty condition")
        node = self._expression()
        if self._peek() is not None:
            raise self._error(f"Unexpected token {self._peek()[1]!r}")
        return node

    def _expression(self) -> Node:
        node = self._and_expr()
        while self._accept("||"):
            node = Logical("||", node, self._and_expr())
        return node

    def _and_expr(self) -> Node:
        node = self._term()
        while self._accept("&&"):
            node = Logical("&&", node, self._term())
        return node

    def _term(self) -> Node:
        if self._accept("("):
            node = self._expression()
            if not self._accept(")"):
                raise self._error("Expected ')'")
            return node

        left = self._operand()
        token = self._peek()
        if token is None or token[1] not in COMPARATORS:
            raise self._error("Expected comparison operator")
        self._pos += 1
        return Comparison(token[1], left, self._operand())

    def _operand(self) -> Operand:
        token = self._peek()
        if token is None:
            raise self._error("Expected metric name or number")
        kind, value, _ = token
        if kind == "number":
            self._pos += 1
            return Literal(float(value))
        if kind == "ident":
            self._pos += 1
            return Identifier(value)
        raise self._error(f"Expected metric name or number, got {value!r}")


def parse_condition(text: str) -> Node:
    """Parse condition text into an expression tree."""
    return _Parser(text).parse()


# ============================================================
# COMPILED CONDITION
# ============================================================

class Condition:
    """
    A parsed alert condition.

    Construction raises ConditionParseError on malformed text.
    """

    def __init__(self, text: str):
        self.text = text
        self.tree = parse_condition(text)
        self.fields = frozenset(identifiers(self.tree))

    def evaluate(self, bindings: Mapping[str, float]) -> bool:
        """Evaluate against a binding map; missing fields raise."""
        return bool(self.tree.evaluate(bindings))

    def __repr__(self) -> str:
        return f"Condition({self.text!r})"
