"""Command-line runner: ``nanlang <script>``.

Reads the script file, streams every output line to stdout and exits 0 once
the interpreter has started, however many statement errors were printed.
An unreadable file exits with status 1 before anything runs; a missing
argument is an argparse usage error.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .interpreter import Interpreter


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="nanlang", description="Run a nanlang script")
    p.add_argument("script", help="Path to the script file")
    p.add_argument("-v", "--verbose", action="store_true", help="Log diagnostics to stderr")
    p.add_argument(
        "--legacy-blocks",
        action="store_true",
        help="End every block at the first ')' line, ignoring nesting",
    )
    p.add_argument("--max-depth", type=int, default=None, help="Maximum block nesting")
    p.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Run in a worker process and kill it after this many seconds",
    )
    return p.parse_args(argv)


def _emit(text: str) -> None:
    sys.stdout.write(text + "\n")
    sys.stdout.flush()


def main(argv: Optional[List[str]] = None) -> int:
    ns = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if ns.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        code = Path(ns.script).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        print("Error: Could not open file.")
        return 1

    settings = {"legacy_blocks": ns.legacy_blocks}
    if ns.max_depth is not None:
        settings["max_depth"] = ns.max_depth
    if ns.timeout is not None:
        settings["use_subprocess"] = True
        settings["timeout_s"] = ns.timeout

    result = Interpreter().run(code, settings=settings, sink=_emit)
    for err in result["errors"]:
        # run-level failures (timeouts, worker crashes) never reached the sink
        if "line" not in err:
            _emit(err["message"])
    return 0


if __name__ == "__main__":
    sys.exit(main())
