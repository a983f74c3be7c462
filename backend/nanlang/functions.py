"""Built-in numeric functions callable from nanlang expressions.

All math goes through numpy float64 with floating point errors silenced, so
invalid operations produce IEEE results (NaN/Inf) instead of Python
exceptions: `sqrt(-1)` is NaN, `log(0)` is -Inf, `1 / 0` is Inf.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Sequence

import numpy as np


def _ieee(fn: Callable[..., np.float64], *args: float) -> float:
    with np.errstate(all="ignore"):
        return float(fn(*(np.float64(a) for a in args)))


def divide(left: float, right: float) -> float:
    """IEEE division: x/0 is +-Inf and 0/0 is NaN."""
    return _ieee(np.divide, left, right)


def remainder(left: float, right: float) -> float:
    """C `fmod` semantics: the result takes the sign of the dividend."""
    return _ieee(np.fmod, left, right)


@dataclass(frozen=True)
class Builtin:
    name: str
    arity: int
    fn: Callable[..., np.float64]

    def arity_message(self) -> str:
        plural = "arg" if self.arity == 1 else "args"
        return f"{self.name}() expects {self.arity} {plural}"

    def __call__(self, args: Sequence[float]) -> float:
        return _ieee(self.fn, *args)


BUILTINS: Dict[str, Builtin] = {
    b.name: b
    for b in (
        # 1-arg
        Builtin("sqrt", 1, np.sqrt),
        Builtin("sin", 1, np.sin),
        Builtin("cos", 1, np.cos),
        Builtin("tan", 1, np.tan),
        Builtin("abs", 1, np.fabs),
        Builtin("log", 1, np.log),
        Builtin("exp", 1, np.exp),
        Builtin("floor", 1, np.floor),
        Builtin("ceil", 1, np.ceil),
        # 2-arg
        Builtin("pow", 2, np.power),
        Builtin("min", 2, np.fmin),
        Builtin("max", 2, np.fmax),
    )
}
