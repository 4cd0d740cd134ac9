"""
Response Validator - Post-processing of a successful response.

Applies the node's extract path, expected status and custom validation
expression. Custom validation runs in a small sandboxed expression
language; user text is tokenized and parsed, never executed as code.

Grammar (lowest to highest precedence)::

    expr    := or
    or      := and (("||" | "or") and)*
    and     := eq (("&&" | "and") eq)*
    eq      := cmp (("==" | "!=" | "===" | "!==") cmp)*
    cmp     := unary (("<" | "<=" | ">" | ">=") unary)*
    unary   := ("!" | "not" | "-") unary | postfix
    postfix := primary ("." NAME | "[" expr "]")*
    primary := NUMBER | STRING | true | false | null | NAME | "(" expr ")"

Names: ``status``, ``data`` (extracted data), ``headers``, ``response``
(raw body).
"""

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Optional, Sequence

from apiflow.core.errors import ExpressionError
from apiflow.core.models import HttpResponse, ValidationResult
from apiflow.core.path_extractor import MISSING, extract

logger = logging.getLogger(__name__)

NAMES = ("status", "data", "headers", "response")
KEYWORDS = {"true", "false", "null", "and", "or", "not"}

TOKEN_RE = re.compile(
    r"""
    (?P<NUMBER>\d+(?:\.\d+)?)
  | (?P<STRING>"(?:\\.|[^"\\])*"|'(?:\\.|[^'\\])*')
  | (?P<OP>===|!==|==|!=|<=|>=|&&|\|\||[<>!().\[\]-])
  | (?P<ID>[A-Za-z_$][A-Za-z0-9_$]*)
  | (?P<SKIP>\s+)
  | (?P<MISMATCH>.)
    """,
    re.VERBOSE,
)
_ESCAPE_RE = re.compile(r"\\(.)")


@dataclass
class Token:
    kind: str
    value: str
    pos: int


def tokenize(source: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    while pos < len(source):
        m = TOKEN_RE.match(source, pos)
        kind = m.lastgroup or "MISMATCH"
        value = m.group(0)
        if kind == "MISMATCH":
            raise ExpressionError(f"Unexpected character {value!r}", pos)
        if kind == "ID" and value in KEYWORDS:
            tokens.append(Token("KW", value, pos))
        elif kind != "SKIP":
            tokens.append(Token(kind, value, pos))
        pos = m.end()
    tokens.append(Token("EOF", "", pos))
    return tokens


# Expression tree

@dataclass
class Expr:
    pass


@dataclass
class Literal(Expr):
    value: Any


@dataclass
class Name(Expr):
    name: str
    pos: int


@dataclass
class Member(Expr):
    target: Expr
    name: str


@dataclass
class Index(Expr):
    target: Expr
    index: Expr


@dataclass
class Unary(Expr):
    op: str
    operand: Expr


@dataclass
class Binary(Expr):
    left: Expr
    op: str
    right: Expr


class Parser:
    def __init__(self, tokens: Sequence[Token]):
        self.tokens = list(tokens)
        self.i = 0

    def cur(self) -> Token:
        return self.tokens[self.i]

    def match(self, kind: str, *values: str) -> Optional[Token]:
        t = self.cur()
        if t.kind != kind or (values and t.value not in values):
            return None
        self.i += 1
        return t

    def expect(self, kind: str, value: Optional[str] = None) -> Token:
        t = self.cur()
        if t.kind != kind or (value is not None and t.value != value):
            want = value or kind
            raise ExpressionError(f"Expected {want!r}, got {t.value or 'end of input'!r}", t.pos)
        self.i += 1
        return t

    def parse(self) -> Expr:
        expr = self.parse_or()
        t = self.cur()
        if t.kind != "EOF":
            raise ExpressionError(f"Unexpected {t.value!r}", t.pos)
        return expr

    def parse_or(self) -> Expr:
        expr = self.parse_and()
        while self.match("OP", "||") or self.match("KW", "or"):
            expr = Binary(expr, "||", self.parse_and())
        return expr

    def parse_and(self) -> Expr:
        expr = self.parse_eq()
        while self.match("OP", "&&") or self.match("KW", "and"):
            expr = Binary(expr, "&&", self.parse_eq())
        return expr

    def parse_eq(self) -> Expr:
        expr = self.parse_cmp()
        while True:
            t = self.match("OP", "==", "!=", "===", "!==")
            if t is None:
                return expr
            op = "==" if t.value in ("==", "===") else "!="
            expr = Binary(expr, op, self.parse_cmp())

    def parse_cmp(self) -> Expr:
        expr = self.parse_unary()
        while True:
            t = self.match("OP", "<", "<=", ">", ">=")
            if t is None:
                return expr
            expr = Binary(expr, t.value, self.parse_unary())

    def parse_unary(self) -> Expr:
        if self.match("OP", "!") or self.match("KW", "not"):
            return Unary("!", self.parse_unary())
        if self.match("OP", "-"):
            return Unary("-", self.parse_unary())
        return self.parse_postfix()

    def parse_postfix(self) -> Expr:
        expr = self.parse_primary()
        while True:
            if self.match("OP", "."):
                t = self.cur()
                if t.kind not in ("ID", "KW"):
                    raise ExpressionError("Expected a member name after '.'", t.pos)
                self.i += 1
                expr = Member(expr, t.value)
            elif self.match("OP", "["):
                index = self.parse_or()
                self.expect("OP", "]")
                expr = Index(expr, index)
            else:
                return expr

    def parse_primary(self) -> Expr:
        t = self.cur()
        if self.match("NUMBER"):
            return Literal(float(t.value) if "." in t.value else int(t.value))
        if self.match("STRING"):
            return Literal(_ESCAPE_RE.sub(r"\1", t.value[1:-1]))
        if self.match("KW", "true"):
            return Literal(True)
        if self.match("KW", "false"):
            return Literal(False)
        if self.match("KW", "null"):
            return Literal(None)
        if self.match("ID"):
            if t.value not in NAMES:
                raise ExpressionError(f"Unknown name {t.value!r}", t.pos)
            return Name(t.value, t.pos)
        if self.match("OP", "("):
            expr = self.parse_or()
            self.expect("OP", ")")
            return expr
        raise ExpressionError(f"Unexpected {t.value or 'end of input'!r}", t.pos)


# Evaluation

def truthy(value: Any) -> bool:
    """Truthiness with empty containers counting as true, as in JSON tooling."""
    if value is None or value is False:
        return False
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value != 0
    if isinstance(value, str):
        return value != ""
    return True


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _equals(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    return left == right


def _compare(op: str, left: Any, right: Any) -> bool:
    comparable = (
        (_is_number(left) and _is_number(right))
        or (isinstance(left, str) and isinstance(right, str))
    )
    if not comparable:
        logger.debug(f"Cannot compare {type(left).__name__} {op} {type(right).__name__}")
        return False
    if op == "<":
        return left < right
    if op == "<=":
        return left <= right
    if op == ">":
        return left > right
    return left >= right


def _member(target: Any, name: str) -> Any:
    if name == "length" and isinstance(target, (str, list)):
        return len(target)
    if isinstance(target, dict):
        return target.get(name)
    return None


def _index(target: Any, key: Any) -> Any:
    if isinstance(target, (list, str)) and _is_number(key) and float(key).is_integer():
        i = int(key)
        return target[i] if 0 <= i < len(target) else None
    if isinstance(target, dict):
        return target.get(key if isinstance(key, str) else str(key))
    return None


def evaluate(expr: Expr, context: Dict[str, Any]) -> Any:
    if isinstance(expr, Literal):
        return expr.value
    if isinstance(expr, Name):
        return context.get(expr.name)
    if isinstance(expr, Member):
        return _member(evaluate(expr.target, context), expr.name)
    if isinstance(expr, Index):
        return _index(evaluate(expr.target, context), evaluate(expr.index, context))
    if isinstance(expr, Unary):
        value = evaluate(expr.operand, context)
        if expr.op == "!":
            return not truthy(value)
        if not _is_number(value):
            raise ExpressionError(f"Cannot negate {type(value).__name__}")
        return -value
    if isinstance(expr, Binary):
        left = evaluate(expr.left, context)
        if expr.op == "&&":
            return evaluate(expr.right, context) if truthy(left) else left
        if expr.op == "||":
            return left if truthy(left) else evaluate(expr.right, context)
        right = evaluate(expr.right, context)
        if expr.op == "==":
            return _equals(left, right)
        if expr.op == "!=":
            return not _equals(left, right)
        return _compare(expr.op, left, right)
    raise ExpressionError(f"Unsupported expression node {type(expr).__name__}")


@lru_cache(maxsize=256)
def compile_expression(source: str) -> Expr:
    """Parse an expression, caching the tree per source text."""
    return Parser(tokenize(source)).parse()


def evaluate_expression(source: str, context: Dict[str, Any]) -> bool:
    """
    Evaluate a validation expression against a context.

    Raises:
        ExpressionError: If the expression cannot be parsed or evaluated
    """
    try:
        return truthy(evaluate(compile_expression(source), context))
    except RecursionError:
        raise ExpressionError("Expression is nested too deeply") from None
    except ValueError as e:
        raise ExpressionError(str(e)) from None


def process_response(
    response: HttpResponse,
    extract_path: str = "",
    expected_status: Optional[int] = None,
    expression: str = "",
) -> ValidationResult:
    """
    Post-process a successful response.

    Args:
        response: The response returned by the executor
        extract_path: Path into the body selecting ``data``; empty keeps the body
        expected_status: Required status code; None or 0 skips the check
        expression: Custom validation expression; empty always passes

    Returns:
        ValidationResult; expression failures mark custom_valid False
    """
    extracted = response.data
    if extract_path:
        extracted = extract(response.data, extract_path)
        if extracted is MISSING:
            logger.debug(f"Extract path '{extract_path}' matched nothing")
            extracted = None

    status_valid = not expected_status or response.status == expected_status

    custom_valid = True
    if expression and expression.strip():
        context = {
            "data": extracted,
            "status": response.status,
            "headers": response.headers,
            "response": response.data,
        }
        try:
            custom_valid = evaluate_expression(expression, context)
        except ExpressionError as e:
            logger.warning(f"Validation error: {e}")
            custom_valid = False

    return ValidationResult(
        extracted=extracted,
        is_valid=status_valid and custom_valid,
        status_valid=status_valid,
        custom_valid=custom_valid,
    )
