"""Block header parsing and block body extraction.

A block starts with a header line (``loop i:5 (`` or ``if x > 1 (``) and ends
with a line whose trimmed text is exactly ``)``. Bodies are returned as the
raw numbered lines so the interpreter can report diagnostics against the
original script line numbers.
"""

from typing import List, Tuple

from .environment import is_identifier

BLOCK_CLOSE = ")"
BLOCK_OPEN = "("

# (1-based line number, raw line text)
Line = Tuple[int, str]


class HeaderError(ValueError):
    """Raised for a malformed block header; the message is the syntax error text."""


def parse_loop_header(line: str) -> Tuple[str, str]:
    """Split ``loop <var>:<count> (`` into (var, count_expr).

    The count expression is the rest of the second whitespace token, so it
    cannot contain spaces. Tokens after the ``(`` are ignored.
    """
    parts = line.split()
    var_and_count = parts[1] if len(parts) > 1 else ""
    if ":" not in var_and_count:
        raise HeaderError("loop expects var:count")
    var, count_expr = var_and_count.split(":", 1)
    if not is_identifier(var):
        raise HeaderError(f"invalid loop variable '{var}'")
    if len(parts) < 3 or parts[2] != BLOCK_OPEN:
        raise HeaderError("expected (")
    return var, count_expr


def parse_if_header(line: str) -> str:
    """Return the condition text of ``if <cond> (``."""
    t = line.strip()
    if not t.endswith(BLOCK_OPEN):
        raise HeaderError("if expects '(' at end of line")
    return t[len("if"):-1].strip()


_HEADER_PARSERS = {
    "loop": parse_loop_header,
    "if": parse_if_header,
}


def opens_block(line: str) -> bool:
    """True if `line` is a header the interpreter would accept as a block opener."""
    t = line.strip()
    parts = t.split(None, 1)
    if not parts or parts[0] not in _HEADER_PARSERS:
        return False
    try:
        _HEADER_PARSERS[parts[0]](t)
    except HeaderError:
        return False
    return True


def is_block_close(line: str) -> bool:
    return line.strip() == BLOCK_CLOSE


def extract_block(lines: List[Line], start: int, *, nesting: bool = True) -> Tuple[List[Line], int, bool]:
    """Collect the body of a block whose header sits just before `start`.

    Returns (body, next_index, closed). `next_index` is the position after
    the terminating ``)`` line. When no terminator exists the body runs to the
    end of `lines` and `closed` is False.

    With ``nesting=False`` the first ``)`` line ends the body even if it
    belongs to an inner block.
    """
    body: List[Line] = []
    depth = 0
    j = start
    while j < len(lines):
        text = lines[j][1]
        if is_block_close(text):
            if depth == 0 or not nesting:
                return body, j + 1, True
            depth -= 1
        elif nesting and opens_block(text):
            depth += 1
        body.append(lines[j])
        j += 1
    return body, j, False
