"""Variable environment shared by every part of a nanlang run.

A run owns exactly one `Environment`. Block bodies (loop/if) execute against
the same instance as their enclosing script, so there is no lexical scoping:
a variable created inside a block stays visible after the block ends.
"""

import re
from typing import Dict, Iterator, Optional

IDENTIFIER_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def is_identifier(name: str) -> bool:
    """Return True if `name` is a valid nanlang variable name."""
    return bool(name) and IDENTIFIER_RE.fullmatch(name) is not None


class Environment:
    """Flat mapping from variable name to float.

    There is deliberately no removal operation: variables live until the run
    that owns the environment completes.
    """

    def __init__(self, initial: Optional[Dict[str, float]] = None):
        self._vars: Dict[str, float] = {}
        for name, value in (initial or {}).items():
            self.set(name, value)

    def get(self, name: str) -> Optional[float]:
        return self._vars.get(name)

    def set(self, name: str, value: float) -> None:
        self._vars[name] = float(value)

    def contains(self, name: str) -> bool:
        return name in self._vars

    def snapshot(self) -> Dict[str, float]:
        """Return a shallow copy of the current bindings."""
        return dict(self._vars)

    def __contains__(self, name: object) -> bool:
        return name in self._vars

    def __getitem__(self, name: str) -> float:
        return self._vars[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._vars)

    def __len__(self) -> int:
        return len(self._vars)

    def __repr__(self) -> str:
        return f"Environment({self._vars!r})"
