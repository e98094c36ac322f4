"""Free-form match conditions as a small predicate language.

Conditions like ``hasFilm('Spider') && movies.length > 0`` are parsed
into a typed AST and interpreted against a fixed context. Nothing is
compiled or executed: only context values, literals, comparisons,
boolean operators and the registered predicate functions are available.

Both spellings of the boolean operators are accepted (``and``/``&&``,
``or``/``||``, ``not``/``!``), as are ``===`` and ``!==``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)


class ExpressionError(Exception):
    """Raised for conditions that cannot be tokenized, parsed or evaluated."""


# ---------------------------------------------------------------------------
# AST
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class Name:
    name: str


@dataclass(frozen=True)
class Member:
    target: Any
    name: str


@dataclass(frozen=True)
class Index:
    target: Any
    index: Any


@dataclass(frozen=True)
class Call:
    func: str
    args: tuple


@dataclass(frozen=True)
class Not:
    operand: Any


@dataclass(frozen=True)
class BoolOp:
    op: str  # "and" | "or"
    operands: tuple


@dataclass(frozen=True)
class Compare:
    op: str
    left: Any
    right: Any


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------

_TOKEN_RE = re.compile(
    r"""\s*(?:
        (?P<number>\d+(?:\.\d+)?)
      | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
      | (?P<op>===|!==|==|!=|>=|<=|&&|\|\||[<>!().,\[\]])
      | (?P<name>[A-Za-z_$][A-Za-z0-9_$]*)
    )""",
    re.VERBOSE,
)

_KEYWORD_LITERALS = {
    "true": True,
    "True": True,
    "false": False,
    "False": False,
    "null": None,
    "None": None,
    "undefined": None,
}

_OP_ALIASES = {
    "&&": "and",
    "||": "or",
    "!": "not",
    "===": "==",
    "!==": "!=",
}

_COMPARE_OPS = {"==", "!=", ">", "<", ">=", "<="}


@dataclass(frozen=True)
class Token:
    kind: str  # number | string | op | name | end
    value: Any
    pos: int


def _unescape(raw: str) -> str:
    return re.sub(
        r"\\(.)",
        lambda m: {"n": "\n", "t": "\t"}.get(m.group(1), m.group(1)),
        raw[1:-1],
    )


def tokenize(text: str) -> list[Token]:
    tokens: list[Token] = []
    pos = 0
    text = text.rstrip()
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if m is None or m.end() == pos:
            raise ExpressionError(f"unexpected character {text[pos]!r} at {pos}")
        kind = m.lastgroup
        raw = m.group(kind)
        start = m.start(kind)
        if kind == "number":
            tokens.append(Token("number", float(raw) if "." in raw else int(raw), start))
        elif kind == "string":
            tokens.append(Token("string", _unescape(raw), start))
        elif kind == "op":
            tokens.append(Token("op", _OP_ALIASES.get(raw, raw), start))
        elif raw in ("and", "or", "not"):
            tokens.append(Token("op", raw, start))
        else:
            tokens.append(Token("name", raw, start))
        pos = m.end()
    tokens.append(Token("end", None, len(text)))
    return tokens


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class _Parser:
    def __init__(self, tokens: list[Token]) -> None:
        self.tokens = tokens
        self.pos = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.pos]

    def _advance(self) -> Token:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def _accept(self, op: str) -> bool:
        if self.current.kind == "op" and self.current.value == op:
            self.pos += 1
            return True
        return False

    def _expect(self, op: str) -> None:
        if not self._accept(op):
            raise ExpressionError(
                f"expected {op!r} at {self.current.pos}, got {self.current.value!r}"
            )

    def parse(self):
        node = self._or()
        if self.current.kind != "end":
            raise ExpressionError(
                f"unexpected {self.current.value!r} at {self.current.pos}"
            )
        return node

    def _or(self):
        operands = [self._and()]
        while self._accept("or"):
            operands.append(self._and())
        return operands[0] if len(operands) == 1 else BoolOp("or", tuple(operands))

    def _and(self):
        operands = [self._not()]
        while self._accept("and"):
            operands.append(self._not())
        return operands[0] if len(operands) == 1 else BoolOp("and", tuple(operands))

    def _not(self):
        if self._accept("not"):
            return Not(self._not())
        return self._comparison()

    def _comparison(self):
        left = self._postfix()
        token = self.current
        if token.kind == "op" and token.value in _COMPARE_OPS:
            self._advance()
            return Compare(token.value, left, self._postfix())
        return left

    def _postfix(self):
        node = self._primary()
        while True:
            if self._accept("."):
                token = self._advance()
                if token.kind != "name":
                    raise ExpressionError(f"expected member name at {token.pos}")
                node = Member(node, token.value)
            elif self._accept("["):
                node = Index(node, self._or())
                self._expect("]")
            elif self.current.kind == "op" and self.current.value == "(":
                if not isinstance(node, Name):
                    raise ExpressionError(
                        f"only predicate functions can be called (at {self.current.pos})"
                    )
                self._advance()
                args = []
                if not self._accept(")"):
                    args.append(self._or())
                    while self._accept(","):
                        args.append(self._or())
                    self._expect(")")
                node = Call(node.name, tuple(args))
            else:
                return node

    def _primary(self):
        token = self._advance()
        if token.kind in ("number", "string"):
            return Literal(token.value)
        if token.kind == "name":
            if token.value in _KEYWORD_LITERALS:
                return Literal(_KEYWORD_LITERALS[token.value])
            return Name(token.value)
        if token.kind == "op" and token.value == "(":
            node = self._or()
            self._expect(")")
            return node
        if token.kind == "end":
            raise ExpressionError("unexpected end of condition")
        raise ExpressionError(f"unexpected {token.value!r} at {token.pos}")


def parse_condition(text: str):
    """Parse a condition string into an AST node."""
    if not text or not text.strip():
        raise ExpressionError("empty condition")
    return _Parser(tokenize(text)).parse()


# ---------------------------------------------------------------------------
# Predicate library + evaluation
# ---------------------------------------------------------------------------

PREDICATES: dict[str, Callable[..., Any]] = {}


def predicate(name: str):
    """Register a pure function callable from conditions."""

    def decorator(func):
        PREDICATES[name] = func
        return func

    return decorator


@predicate("includes")
def _includes(value, search) -> bool:
    return str(search) in str(value)


@predicate("equals")
def _equals(a, b) -> bool:
    return a == b


@predicate("greaterThan")
def _greater_than(a, b) -> bool:
    return a > b


@predicate("lessThan")
def _less_than(a, b) -> bool:
    return a < b


@dataclass
class ConditionContext:
    values: dict[str, Any]
    functions: dict[str, Callable[..., Any]] = field(default_factory=dict)


def build_context(
    response: Any,
    movies: list[dict],
    film_names: list[str],
    target_movie: str | None,
) -> ConditionContext:
    """Values and predicates visible to a condition."""
    status = response.get("status") if isinstance(response, dict) else None
    output = response.get("output") if isinstance(response, dict) else None

    def has_film(search) -> bool:
        needle = str(search).lower()
        return any(needle in str(name).lower() for name in film_names)

    functions = dict(PREDICATES)
    functions["hasFilm"] = has_film

    return ConditionContext(
        values={
            "data": response,
            "response": response,
            "status": status,
            "output": output,
            "movies": movies,
            "filmNames": film_names,
            "targetMovie": target_movie,
        },
        functions=functions,
    )


def _member(target: Any, name: str) -> Any:
    if name == "length" and isinstance(target, (list, tuple, str, dict, set)):
        return len(target)
    if isinstance(target, dict):
        return target.get(name)
    raise ExpressionError(f"cannot read {name!r} of {type(target).__name__}")


def _index(target: Any, index: Any) -> Any:
    if isinstance(target, dict):
        return target.get(index if isinstance(index, str) else str(index))
    if isinstance(target, (list, tuple, str)) and isinstance(index, int):
        return target[index] if -len(target) <= index < len(target) else None
    raise ExpressionError(f"cannot index {type(target).__name__} with {index!r}")


def evaluate(node, context: ConditionContext) -> Any:
    """Interpret an AST node against the context."""
    if isinstance(node, Literal):
        return node.value
    if isinstance(node, Name):
        if node.name not in context.values:
            raise ExpressionError(f"{node.name} is not defined")
        return context.values[node.name]
    if isinstance(node, Member):
        return _member(evaluate(node.target, context), node.name)
    if isinstance(node, Index):
        return _index(evaluate(node.target, context), evaluate(node.index, context))
    if isinstance(node, Call):
        func = context.functions.get(node.func)
        if func is None:
            raise ExpressionError(f"{node.func} is not a known predicate")
        args = [evaluate(arg, context) for arg in node.args]
        try:
            return func(*args)
        except TypeError as exc:
            raise ExpressionError(f"{node.func}: {exc}") from exc
    if isinstance(node, Not):
        return not evaluate(node.operand, context)
    if isinstance(node, BoolOp):
        if node.op == "and":
            result = True
            for operand in node.operands:
                result = evaluate(operand, context)
                if not result:
                    return result
            return result
        result = False
        for operand in node.operands:
            result = evaluate(operand, context)
            if result:
                return result
        return result
    if isinstance(node, Compare):
        left = evaluate(node.left, context)
        right = evaluate(node.right, context)
        try:
            if node.op == "==":
                return left == right
            if node.op == "!=":
                return left != right
            if node.op == ">":
                return left > right
            if node.op == "<":
                return left < right
            if node.op == ">=":
                return left >= right
            return left <= right
        except TypeError as exc:
            raise ExpressionError(f"cannot compare {left!r} {node.op} {right!r}") from exc
    raise ExpressionError(f"unknown node {node!r}")


def evaluate_condition(text: str, context: ConditionContext) -> bool:
    """Parse and evaluate a condition; any failure counts as not met."""
    try:
        return bool(evaluate(parse_condition(text), context))
    except ExpressionError as exc:
        logger.warning("Error evaluating condition %r: %s", text, exc)
    except Exception as exc:
        logger.warning("Condition %r raised %s: %s", text, type(exc).__name__, exc)
    return False
