"""Arithmetic expression evaluator for ``Math.*`` strings in LLM output.

Models sometimes answer with values such as ``"Math.PI / 2"`` instead of a
number. These are evaluated with a small recursive-descent parser that only
knows numeric literals, ``+ - * /``, parentheses and a whitelist of JavaScript
``Math`` constants and functions. Nothing is ever executed as code.

Grammar::

    expr    := term (("+" | "-") term)*
    term    := unary (("*" | "/") unary)*
    unary   := ("+" | "-") unary | primary
    primary := NUMBER | NAME | NAME "(" [expr ("," expr)*] ")" | "(" expr ")"
"""

import logging
import math
import re
from typing import Any, Callable

logger = logging.getLogger(__name__)

MARKER = "Math."
MAX_LENGTH = 500
MAX_DEPTH = 64


class ExpressionError(ValueError):
    """Raised when a string is not a valid whitelisted arithmetic expression."""


def _js_round(x: float) -> float:
    # JavaScript rounds .5 towards +Infinity
    return float(math.floor(x + 0.5))


def _sign(x: float) -> float:
    if x > 0:
        return 1.0
    if x < 0:
        return -1.0
    return 0.0


def _cbrt(x: float) -> float:
    return math.copysign(abs(x) ** (1.0 / 3.0), x)


CONSTANTS: dict[str, float] = {
    "Math.PI": math.pi,
    "Math.E": math.e,
    "Math.SQRT2": math.sqrt(2.0),
    "Math.SQRT1_2": math.sqrt(0.5),
    "Math.LN2": math.log(2.0),
    "Math.LN10": math.log(10.0),
    "Math.LOG2E": 1.0 / math.log(2.0),
    "Math.LOG10E": 1.0 / math.log(10.0),
}

# name -> (function, min_args, max_args); max_args None means variadic
FUNCTIONS: dict[str, tuple[Callable[..., float], int, int | None]] = {
    "Math.abs": (abs, 1, 1),
    "Math.acos": (math.acos, 1, 1),
    "Math.asin": (math.asin, 1, 1),
    "Math.atan": (math.atan, 1, 1),
    "Math.atan2": (math.atan2, 2, 2),
    "Math.cbrt": (_cbrt, 1, 1),
    "Math.ceil": (math.ceil, 1, 1),
    "Math.cos": (math.cos, 1, 1),
    "Math.exp": (math.exp, 1, 1),
    "Math.floor": (math.floor, 1, 1),
    "Math.hypot": (math.hypot, 1, None),
    "Math.log": (math.log, 1, 1),
    "Math.log10": (math.log10, 1, 1),
    "Math.log2": (math.log2, 1, 1),
    "Math.max": (max, 1, None),
    "Math.min": (min, 1, None),
    "Math.pow": (math.pow, 2, 2),
    "Math.round": (_js_round, 1, 1),
    "Math.sign": (_sign, 1, 1),
    "Math.sin": (math.sin, 1, 1),
    "Math.sqrt": (math.sqrt, 1, 1),
    "Math.tan": (math.tan, 1, 1),
    "Math.trunc": (math.trunc, 1, 1),
}

_TOKEN_RE = re.compile(
    r"\s*(?:"
    r"(?P<num>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)"
    r"|(?P<name>[A-Za-z_]\w*(?:\.[A-Za-z_]\w*)*)"
    r"|(?P<op>[-+*/(),])"
    r")"
)


def tokenize(expr: str) -> list[tuple[str, str]]:
    """Split an expression into ``(kind, text)`` tokens."""
    tokens = []
    pos = 0
    end = len(expr.rstrip())
    while pos < end:
        match = _TOKEN_RE.match(expr, pos)
        if match is None or match.end() == pos:
            raise ExpressionError(f"Unexpected character at {pos}: {expr[pos:pos + 10]!r}")
        kind = match.lastgroup
        tokens.append((kind, match.group(kind)))
        pos = match.end()
    return tokens


class _Parser:
    def __init__(self, tokens: list[tuple[str, str]]):
        self.tokens = tokens
        self.pos = 0
        self.depth = 0

    def descend(self) -> None:
        self.depth += 1
        if self.depth > MAX_DEPTH:
            raise ExpressionError(f"Expression nested deeper than {MAX_DEPTH} levels")

    def peek(self) -> tuple[str, str] | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def take(self) -> tuple[str, str]:
        token = self.peek()
        if token is None:
            raise ExpressionError("Unexpected end of expression")
        self.pos += 1
        return token

    def expect(self, op: str) -> None:
        kind, text = self.take()
        if kind != "op" or text != op:
            raise ExpressionError(f"Expected '{op}', got {text!r}")

    def at_op(self, *ops: str) -> bool:
        token = self.peek()
        return token is not None and token[0] == "op" and token[1] in ops

    def parse(self) -> float:
        value = self.expr()
        if self.peek() is not None:
            raise ExpressionError(f"Unexpected token {self.peek()[1]!r}")
        return value

    def expr(self) -> float:
        self.descend()
        value = self.term()
        while self.at_op("+", "-"):
            _, op = self.take()
            rhs = self.term()
            value = value + rhs if op == "+" else value - rhs
        self.depth -= 1
        return value

    def term(self) -> float:
        value = self.unary()
        while self.at_op("*", "/"):
            _, op = self.take()
            rhs = self.unary()
            if op == "*":
                value = value * rhs
            else:
                if rhs == 0:
                    raise ExpressionError("Division by zero")
                value = value / rhs
        return value

    def unary(self) -> float:
        if self.at_op("+", "-"):
            _, op = self.take()
            self.descend()
            value = self.unary()
            self.depth -= 1
            return -value if op == "-" else value
        return self.primary()

    def primary(self) -> float:
        kind, text = self.take()
        if kind == "num":
            return float(text)
        if kind == "name":
            if self.at_op("("):
                return self.call(text)
            if text not in CONSTANTS:
                raise ExpressionError(f"Unknown name {text!r}")
            return CONSTANTS[text]
        if text == "(":
            value = self.expr()
            self.expect(")")
            return value
        raise ExpressionError(f"Unexpected token {text!r}")

    def call(self, name: str) -> float:
        if name not in FUNCTIONS:
            raise ExpressionError(f"Unknown function {name!r}")
        fn, min_args, max_args = FUNCTIONS[name]
        self.expect("(")
        args = []
        if not self.at_op(")"):
            args.append(self.expr())
            while self.at_op(","):
                self.take()
                args.append(self.expr())
        self.expect(")")
        if len(args) < min_args or (max_args is not None and len(args) > max_args):
            raise ExpressionError(f"{name} takes {min_args} argument(s), got {len(args)}")
        try:
            return float(fn(*args))
        except (ValueError, OverflowError) as e:
            raise ExpressionError(f"{name}: {e}") from e


def evaluate(expr: str) -> float:
    """Evaluate a whitelisted arithmetic expression and return a finite float."""
    if len(expr) > MAX_LENGTH:
        raise ExpressionError(f"Expression longer than {MAX_LENGTH} characters")
    tokens = tokenize(expr)
    if not tokens:
        raise ExpressionError("Empty expression")
    try:
        value = _Parser(tokens).parse()
    except (OverflowError, RecursionError) as e:
        raise ExpressionError(str(e)) from e
    if not math.isfinite(value):
        raise ExpressionError(f"Non-finite result for {expr!r}")
    return value


def evaluate_expressions(obj: Any) -> Any:
    """Walk a parsed JSON value and evaluate every string containing ``Math.``.

    Strings that fail to evaluate are left as they are.
    """
    if isinstance(obj, dict):
        return {key: evaluate_expressions(val) for key, val in obj.items()}
    if isinstance(obj, list):
        return [evaluate_expressions(item) for item in obj]
    if isinstance(obj, str) and MARKER in obj:
        try:
            return evaluate(obj)
        except ExpressionError as e:
            logger.warning(f"Could not evaluate expression {obj!r}: {e}")
            return obj
    return obj
