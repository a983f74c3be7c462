"""nanlang interpreter module.

This module implements the statement executor for nanlang, a tiny
line-oriented language with numeric variables and two block constructs:

- ``print``/``set``/``add`` single-line statements and ``comment`` lines
- ``loop <var>:<count> (`` ... ``)`` counted loops
- ``if <condition> (`` ... ``)`` conditionals

Expressions are handed to `evaluator.evaluate`; block bodies are sliced by
`blocks.extract_block` and executed recursively against the same
`Environment`, so variables are global to the whole run.

No statement error is fatal. Each malformed or failing line produces one
diagnostic line in the output stream plus a structured entry in the run's
``errors`` list, and execution continues with the next line. Only the
optional runtime limits (steps, time, output size) abort a run.
"""

import json
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from . import subprocess_runner
from .blocks import HeaderError, Line, extract_block, parse_if_header, parse_loop_header
from .environment import Environment, is_identifier
from .evaluator import EvalError, evaluate
from .formatting import format_number

logger = logging.getLogger(__name__)

LOOP_COUNT_LABEL = "Loop count error: "
IF_CONDITION_LABEL = "If condition error: "
PRINT_EXPR_LABEL = "Print expr error: "
SET_EXPR_LABEL = "Set expr error: "
ADD_EXPR_LABEL = "Add expr error: "

COMMENT_PREFIX = "comment"

Sink = Callable[[str], None]
HandlerResult = Tuple[int, Optional[Dict[str, Any]]]


class LimitExceeded(Exception):
    """Raised internally when a configured runtime limit aborts the run."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass
class RunState:
    """Mutable state of a single top-level run, shared by every block level."""

    env: Environment
    sink: Optional[Sink] = None
    output_lines: List[str] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    start_wall: float = field(default_factory=time.time)
    steps: int = 0
    output_chars: int = 0
    deepest: int = 0


class Interpreter:
    """Top-level nanlang interpreter.

    Tunable attributes (defaults are set in __init__ and can be overridden
    per run through the `settings` argument of `run`):

    - max_depth: maximum block nesting; deeper blocks are skipped with an error
    - max_steps, max_loop, max_time_s, max_output_chars: optional safety caps,
      ``None`` means unlimited
    - legacy_blocks: end a block at the first ``)`` line, ignoring nesting
    """

    def __init__(self):
        self.max_depth: int = 100
        self.max_steps: Optional[int] = None
        self.max_loop: Optional[int] = None
        self.max_time_s: Optional[float] = None
        self.max_output_chars: Optional[int] = None
        self.legacy_blocks = False

    # --- Error helpers -------------------------------------------------
    def _err(self, code: str, message: str, *, line: int, column: int = 1, line_text: Optional[str] = None, hint: Optional[str] = None) -> Dict[str, Any]:
        err: Dict[str, Any] = {"code": code, "message": message, "line": line, "column": column}
        if line_text is not None:
            err["context"] = {"line_text": line_text}
        if hint:
            err["hint"] = hint
        return err

    def _syntax_err(self, message: str, *, line: int, line_text: str, column: int = 1, hint: Optional[str] = None) -> Dict[str, Any]:
        return self._err("SYNTAX_ERROR", f"Syntax error: {message}", line=line, column=column, line_text=line_text, hint=hint)

    def _report(self, state: RunState, err: Dict[str, Any]) -> None:
        """Print a diagnostic line and record its structured form."""
        logger.debug("line %s: %s", err.get("line"), err["message"])
        state.errors.append(err)
        self._emit(state, err["message"])

    def _emit(self, state: RunState, text: str) -> None:
        if self.max_output_chars is not None and state.output_chars + len(text) > self.max_output_chars:
            raise LimitExceeded("OUTPUT_LIMIT", "Output length limit reached")
        state.output_chars += len(text)
        state.output_lines.append(text)
        if state.sink is not None:
            state.sink(text)

    def _evaluate(
        self,
        expr: str,
        state: RunState,
        label: str,
        *,
        line: int,
        line_text: str,
        hint: Optional[str] = None,
    ) -> Tuple[Optional[float], Optional[Dict[str, Any]]]:
        """Evaluate `expr`, converting an EvalError into a RUNTIME_ERROR diagnostic."""
        try:
            return evaluate(expr, state.env, label), None
        except EvalError as e:
            offset = line_text.find(expr) if expr else -1
            col = max(offset, 0) + (e.column or 1)
            return None, self._err("RUNTIME_ERROR", str(e), line=line, column=col, line_text=line_text, hint=hint)

    # --- Block statements ----------------------------------------------
    def _extract_block_for_run(self, lines: List[Line], i: int, state: RunState) -> Tuple[List[Line], int]:
        """Slice the body of the block whose header is at `lines[i]`."""
        block, next_i, closed = extract_block(lines, i + 1, nesting=not self.legacy_blocks)
        if not closed:
            msg = f"Block opened at line {lines[i][0]} is not closed with ')'"
            logger.warning("%s", msg)
            state.warnings.append(msg)
        return block, next_i

    def _enter_block(self, state: RunState, depth: int, lineno: int, line_text: str) -> Optional[Dict[str, Any]]:
        if depth + 1 > self.max_depth:
            return self._err(
                "RUNTIME_ERROR",
                f"Block nesting too deep (max {self.max_depth})",
                line=lineno,
                line_text=line_text,
                hint="Flatten nested loop/if blocks.",
            )
        state.deepest = max(state.deepest, depth + 1)
        return None

    def _handle_loop(self, lines: List[Line], i: int, line: str, state: RunState, depth: int) -> HandlerResult:
        """Execute ``loop <var>:<count> (`` ... ``)``.

        The header is validated before anything is consumed; a malformed
        header leaves the following lines to be run as ordinary statements.
        The count is evaluated once, after the body has been sliced, and
        floored. The induction variable is assigned before every iteration.
        """
        lineno = lines[i][0]
        try:
            var, count_expr = parse_loop_header(line)
        except HeaderError as e:
            return i + 1, self._syntax_err(str(e), line=lineno, line_text=line, hint="Write: loop <var>:<count> (")

        block, next_i = self._extract_block_for_run(lines, i, state)

        c, err = self._evaluate(count_expr, state, LOOP_COUNT_LABEL, line=lineno, line_text=line, hint="Fix the count after ':'.")
        if err:
            return next_i, err
        if not math.isfinite(c):
            return next_i, self._err("RUNTIME_ERROR", f"{LOOP_COUNT_LABEL}count is not finite", line=lineno, line_text=line)
        count = math.floor(c)

        if self.max_loop is not None and count > self.max_loop:
            state.warnings.append(f"Loop count limited to {self.max_loop}")
            count = self.max_loop

        if count > 0:
            err = self._enter_block(state, depth, lineno, line)
            if err:
                return next_i, err
        for k in range(count):
            state.env.set(var, float(k))
            self._execute_lines(block, state, depth + 1)
        return next_i, None

    def _handle_if(self, lines: List[Line], i: int, line: str, state: RunState, depth: int) -> HandlerResult:
        """Execute ``if <condition> (`` ... ``)``; a non-zero condition runs the body once."""
        lineno = lines[i][0]
        try:
            cond_expr = parse_if_header(line)
        except HeaderError as e:
            return i + 1, self._syntax_err(str(e), line=lineno, line_text=line, column=len(line) + 1, hint="Write: if <condition> (")

        block, next_i = self._extract_block_for_run(lines, i, state)

        cond_val, err = self._evaluate(cond_expr, state, IF_CONDITION_LABEL, line=lineno, line_text=line, hint="Fix the condition expression after 'if'.")
        if err:
            return next_i, err
        if cond_val != 0.0:
            err = self._enter_block(state, depth, lineno, line)
            if err:
                return next_i, err
            self._execute_lines(block, state, depth + 1)
        return next_i, None

    # --- Single-line statements ----------------------------------------
    def _handle_print(self, line: str, lineno: int, state: RunState) -> Optional[Dict[str, Any]]:
        """Handle ``print <text | variable | expression>``.

        A failing expression is printed back as raw text without a
        diagnostic. This is the only statement that swallows an EvalError.
        """
        parts = line.split(None, 1)
        rest = parts[1].strip() if len(parts) > 1 else ""
        if len(rest) >= 2 and rest[0] == '"' and rest[-1] == '"':
            self._emit(state, rest[1:-1])
            return None
        if rest and rest in state.env:
            self._emit(state, format_number(state.env[rest]))
            return None
        try:
            value = evaluate(rest, state.env, PRINT_EXPR_LABEL)
        except EvalError as e:
            logger.debug("line %d: printing raw text after %s", lineno, e)
            self._emit(state, rest)
            return None
        self._emit(state, format_number(value))
        return None

    def _handle_set(self, line: str, lineno: int, state: RunState) -> Optional[Dict[str, Any]]:
        """Handle ``set <name> [=] <expr>``; the ``=`` token is optional."""
        parts = line.split(None, 2)
        if len(parts) < 2:
            return self._syntax_err("set needs a variable name", line=lineno, line_text=line, hint="Use: set name = expr")
        name = parts[1]
        if not is_identifier(name):
            return self._syntax_err(
                f"invalid variable name '{name}'",
                line=lineno,
                column=len("set ") + 1,
                line_text=line,
                hint="Identifiers must be letters/digits/_ and not start with a digit.",
            )
        rest = parts[2] if len(parts) > 2 else ""
        tokens = rest.split(None, 1)
        if tokens and tokens[0] == "=":
            expr = tokens[1].strip() if len(tokens) > 1 else ""
        else:
            expr = rest.strip()
        if not expr:
            return self._syntax_err("set needs an expression", line=lineno, column=len(line) + 1, line_text=line, hint="Use: set name = expr")
        value, err = self._evaluate(expr, state, SET_EXPR_LABEL, line=lineno, line_text=line)
        if err:
            return err
        state.env.set(name, value)
        return None

    def _handle_add(self, line: str, lineno: int, state: RunState) -> Optional[Dict[str, Any]]:
        """Handle ``add <name> <expr>`` which increments an existing variable."""
        parts = line.split(None, 2)
        if len(parts) < 2:
            return self._syntax_err("add needs a variable", line=lineno, line_text=line, hint="Use: add name expr")
        name = parts[1]
        if name not in state.env:
            return self._err(
                "SYNTAX_ERROR",
                f"Error: variable '{name}' not found",
                line=lineno,
                column=len("add ") + 1,
                line_text=line,
                hint=f"Create it first with: set {name} = 0",
            )
        expr = parts[2].strip() if len(parts) > 2 else ""
        if not expr:
            return self._syntax_err("add needs a value/expression", line=lineno, column=len(line) + 1, line_text=line, hint="Use: add name expr")
        value, err = self._evaluate(expr, state, ADD_EXPR_LABEL, line=lineno, line_text=line)
        if err:
            return err
        state.env.set(name, state.env[name] + value)
        return None

    # --- Dispatch ------------------------------------------------------
    def _dispatch_simple(self, handler, line: str, i: int, lineno: int, state: RunState) -> HandlerResult:
        return i + 1, handler(line, lineno, state)

    def _dispatch_statement(self, lines: List[Line], i: int, line: str, state: RunState, depth: int) -> HandlerResult:
        """Dispatch the statement at index `i` on its first token.

        Returns (new_i, error_or_none).
        """
        token = line.split(None, 1)[0]
        lineno = lines[i][0]

        dispatch_map = {
            "loop": lambda: self._handle_loop(lines, i, line, state, depth),
            "if": lambda: self._handle_if(lines, i, line, state, depth),
            "print": lambda: self._dispatch_simple(self._handle_print, line, i, lineno, state),
            "set": lambda: self._dispatch_simple(self._handle_set, line, i, lineno, state),
            "add": lambda: self._dispatch_simple(self._handle_add, line, i, lineno, state),
        }

        handler = dispatch_map.get(token)
        if not handler:
            return i + 1, self._err(
                "SYNTAX_ERROR",
                f"Unknown command: {token}",
                line=lineno,
                line_text=line,
                hint="Commands are print, set, add, loop, if and comment.",
            )
        return handler()

    def _check_limits(self, state: RunState) -> None:
        if self.max_time_s is not None and time.time() - state.start_wall > self.max_time_s:
            raise LimitExceeded("TIMEOUT", "Time limit exceeded")
        if self.max_steps is not None and state.steps > self.max_steps:
            state.warnings.append("Step limit exceeded")
            raise LimitExceeded("STEP_LIMIT", "Step limit exceeded")

    def _execute_lines(self, lines: List[Line], state: RunState, depth: int = 0) -> None:
        """Run a script or block body line by line against `state.env`."""
        i = 0
        while i < len(lines):
            line = lines[i][1].strip()
            if not line or line.startswith(COMMENT_PREFIX):
                i += 1
                continue
            state.steps += 1
            self._check_limits(state)
            new_i, err = self._dispatch_statement(lines, i, line, state, depth)
            if err:
                self._report(state, err)
            i = new_i

    # --- Entry points --------------------------------------------------
    def _apply_settings(self, settings: Dict[str, Any]) -> None:
        self.max_depth = int(settings.get("max_depth", self.max_depth))
        self.max_steps = settings.get("max_steps", self.max_steps)
        self.max_loop = settings.get("max_loop", self.max_loop)
        self.max_time_s = settings.get("max_time_s", self.max_time_s)
        self.max_output_chars = settings.get("max_output_chars", self.max_output_chars)
        self.legacy_blocks = bool(settings.get("legacy_blocks", self.legacy_blocks))

    def _result(self, state: RunState) -> Dict[str, Any]:
        duration_ms = int((time.time() - state.start_wall) * 1000)
        return {
            "output": "\n".join(state.output_lines) + ("\n" if state.output_lines else ""),
            "errors": state.errors,
            "warnings": state.warnings,
            "variables": state.env.snapshot(),
            "stats": {
                "statements": state.steps,
                "max_depth": state.deepest,
                "duration_ms": duration_ms,
            },
        }

    def _execute_core(self, code: str, sink: Optional[Sink]) -> RunState:
        """Core executor: number the lines, run them, convert limit aborts."""
        state = RunState(env=Environment(), sink=sink)
        lines: List[Line] = list(enumerate(code.split("\n"), start=1))
        try:
            self._execute_lines(lines, state)
        except LimitExceeded as e:
            logger.warning("Run aborted: %s", e.message)
            state.errors.append({"code": e.code, "message": e.message})
        except RecursionError:
            # max_depth raised past what the host stack can hold
            logger.warning("Run aborted: host recursion limit reached")
            state.errors.append({"code": "RUNTIME_ERROR", "message": "Block nesting too deep"})
        return state

    def _maybe_run_in_subprocess(self, settings: Dict[str, Any], code: str, sink: Optional[Sink]) -> Dict[str, Any]:
        # Run the script in the sandboxed worker; the wall-clock timeout is
        # the only way to stop a runaway loop.
        child_settings = {k: v for k, v in settings.items() if k not in ("use_subprocess", "timeout_s")}
        try:
            rc, out, err = subprocess_runner.run_script_in_subprocess(
                code, child_settings, timeout_s=float(settings.get("timeout_s", 2))
            )
        except OSError as e:
            logger.exception("Failed to launch subprocess worker")
            return self._failed_result({"code": "SUBPROCESS_ERROR", "message": str(e)})
        if rc == -1:
            return self._failed_result({"code": "TIMEOUT", "message": "Time limit exceeded"})
        if rc != 0:
            return self._failed_result({"code": "SUBPROCESS_FAILED", "message": err})
        try:
            result = json.loads(out)
        except ValueError:
            return self._failed_result({"code": "SUBPROCESS_FAILED", "message": "Malformed worker response"})
        if sink is not None:
            for text in result.get("output", "").split("\n")[:-1]:
                sink(text)
        return result

    def _failed_result(self, err: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "output": "",
            "errors": [err],
            "warnings": [],
            "variables": {},
            "stats": {"statements": 0, "max_depth": 0, "duration_ms": 0},
        }

    def run(
        self,
        code: str,
        settings: Optional[Dict[str, Any]] = None,
        sink: Optional[Sink] = None,
    ) -> Dict[str, Any]:
        """Execute nanlang source text and return the run result.

        Args:
            code: script text, one statement per line.
            settings: optional per-run tunables (see class docstring) plus
                ``use_subprocess``/``timeout_s`` to run in the worker process.
            sink: optional callable receiving each output line as it is
                produced.

        Returns:
            dict with ``output``, ``errors``, ``warnings``, ``variables`` and
            ``stats`` keys.
        """
        settings_local: Dict[str, Any] = settings or {}
        if settings_local.get("use_subprocess"):
            return self._maybe_run_in_subprocess(settings_local, code, sink)
        self._apply_settings(settings_local)
        state = self._execute_core(code, sink)
        return self._result(state)
