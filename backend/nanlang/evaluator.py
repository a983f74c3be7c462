"""Expression evaluator for nanlang.

Expressions are parsed and computed in a single recursive-descent pass; no
syntax tree is kept. Grammar, lowest to highest precedence::

    expr        := logical_or
    logical_or  := logical_and ( "||" logical_and )*
    logical_and := equality ( "&&" equality )*
    equality    := comparison ( ("==" | "!=") comparison )*
    comparison  := additive ( (">=" | "<=" | ">" | "<") additive )*
    additive    := multiplic ( ("+" | "-") multiplic )*
    multiplic   := unary ( ("*" | "/" | "%") unary )*
    unary       := ("+" | "-" | "!") unary | primary
    primary     := number | identifier | identifier "(" [expr ("," expr)*] ")"
                 | "(" expr ")"

All values are floats. Comparison and logical operators yield 1.0 or 0.0 and
any non-zero value is true. Both operands of `&&`/`||` are always evaluated.
"""

import re
from typing import List, Mapping, NoReturn, Optional, Union

from . import functions
from .environment import Environment

DEFAULT_LABEL = "Expr error: "

_NUMBER_RE = re.compile(r"(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_IDENT_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

Bindings = Union[Mapping[str, float], Environment]


class EvalError(Exception):
    """Raised when an expression cannot be parsed or evaluated.

    The string form is ``<label><reason> near: '<remainder>'`` which is what
    the interpreter prints as a diagnostic line.

    Attributes:
        label: caller supplied context prefix (e.g. "Set expr error: ")
        reason: short description of the failure
        remainder: unparsed input at the point of failure
        column: 1-based column of the failure within the expression
        text: the full expression text
    """

    def __init__(
        self,
        reason: str,
        *,
        label: str = DEFAULT_LABEL,
        remainder: str = "",
        column: Optional[int] = None,
        text: Optional[str] = None,
    ):
        super().__init__(f"{label}{reason} near: '{remainder}'")
        self.label = label
        self.reason = reason
        self.remainder = remainder
        self.column = column
        self.text = text


def _truthy(v: float) -> bool:
    return v != 0.0


def _bool(v: bool) -> float:
    return 1.0 if v else 0.0


class _Parser:
    def __init__(self, text: str, env: Bindings, label: str):
        self.s = text
        self.env = env
        self.label = label
        self.pos = 0

    # --- scanning helpers ----------------------------------------------
    def skip_ws(self) -> None:
        while self.pos < len(self.s) and self.s[self.pos].isspace():
            self.pos += 1

    def peek(self) -> str:
        self.skip_ws()
        return self.s[self.pos] if self.pos < len(self.s) else ""

    def match(self, token: str) -> bool:
        self.skip_ws()
        if self.s.startswith(token, self.pos):
            self.pos += len(token)
            return True
        return False

    def fail(self, reason: str, at: Optional[int] = None) -> NoReturn:
        raise EvalError(
            reason,
            label=self.label,
            remainder=self.s[self.pos:],
            column=(self.pos if at is None else at) + 1,
            text=self.s,
        )

    # --- grammar ---------------------------------------------------------
    def parse(self) -> float:
        v = self.expr()
        self.skip_ws()
        if self.pos != len(self.s):
            self.fail("Unexpected trailing characters")
        return v

    def expr(self) -> float:
        return self.logical_or()

    def logical_or(self) -> float:
        v = self.logical_and()
        while self.match("||"):
            r = self.logical_and()
            v = _bool(_truthy(v) or _truthy(r))
        return v

    def logical_and(self) -> float:
        v = self.equality()
        while self.match("&&"):
            r = self.equality()
            v = _bool(_truthy(v) and _truthy(r))
        return v

    def equality(self) -> float:
        v = self.comparison()
        while True:
            if self.match("=="):
                v = _bool(v == self.comparison())
            elif self.match("!="):
                v = _bool(v != self.comparison())
            else:
                return v

    def comparison(self) -> float:
        v = self.additive()
        while True:
            # two-character operators must be tried first
            if self.match(">="):
                v = _bool(v >= self.additive())
            elif self.match("<="):
                v = _bool(v <= self.additive())
            elif self.match(">"):
                v = _bool(v > self.additive())
            elif self.match("<"):
                v = _bool(v < self.additive())
            else:
                return v

    def additive(self) -> float:
        v = self.multiplic()
        while True:
            if self.match("+"):
                v = v + self.multiplic()
            elif self.match("-"):
                v = v - self.multiplic()
            else:
                return v

    def multiplic(self) -> float:
        v = self.unary()
        while True:
            if self.match("*"):
                v = v * self.unary()
            elif self.match("/"):
                v = functions.divide(v, self.unary())
            elif self.match("%"):
                v = functions.remainder(v, self.unary())
            else:
                return v

    def unary(self) -> float:
        if self.match("+"):
            return +self.unary()
        if self.match("-"):
            return -self.unary()
        if self.match("!"):
            return 0.0 if _truthy(self.unary()) else 1.0
        return self.primary()

    def primary(self) -> float:
        if self.match("("):
            v = self.expr()
            if not self.match(")"):
                self.fail("Expected ')'")
            return v

        c = self.peek()
        if c.isalpha() or c == "_":
            m = _IDENT_RE.match(self.s, self.pos)
            if m is None:
                self.fail("Expected primary expression")
            name, start = m.group(0), m.start()
            self.pos = m.end()
            if self.match("("):
                return self.call(name, self.arguments(), start)
            if name in self.env:
                return float(self.env[name])
            # the column names the variable; the remainder starts past it
            self.fail(f"Unknown variable: {name}", at=start)

        if c.isdigit() or c == ".":
            return self.number()

        self.fail("Expected primary expression")

    def number(self) -> float:
        m = _NUMBER_RE.match(self.s, self.pos)
        if m is None:
            self.fail("Expected number")
        self.pos = m.end()
        return float(m.group(0))

    def arguments(self) -> List[float]:
        args: List[float] = []
        if self.match(")"):
            return args
        while True:
            args.append(self.expr())
            if self.match(")"):
                return args
            if not self.match(","):
                self.fail("Expected ',' or ')'")

    def call(self, name: str, args: List[float], start: int) -> float:
        builtin = functions.BUILTINS.get(name)
        if builtin is None:
            self.fail(f"Unknown function: {name}", at=start)
        if len(args) != builtin.arity:
            self.fail(builtin.arity_message())
        return builtin(args)


def evaluate(text: str, env: Bindings, label: str = DEFAULT_LABEL) -> float:
    """Parse and evaluate `text` against `env`, returning a float.

    Args:
        text: expression source, e.g. ``"sqrt(x) + 2"``.
        env: variable bindings; only read, never modified.
        label: prefix for error messages identifying the calling statement.

    Raises:
        EvalError: on unknown names, arity mismatches, malformed input or
            unconsumed trailing text.
    """
    parser = _Parser(text, env, label)
    try:
        return parser.parse()
    except RecursionError:
        raise EvalError(
            "Expression nested too deeply",
            label=label,
            remainder=text[parser.pos:],
            column=parser.pos + 1,
            text=text,
        ) from None
