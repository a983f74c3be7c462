"""Subprocess worker executing one nanlang script.

This module is run as ``python -m backend.nanlang._subprocess_worker``. It
reads a single JSON object from stdin with shape
``{"code": "...", "settings": {...}}``, runs the script with a fresh
`Interpreter` and writes the run result as JSON to stdout.

The calling process enforces the wall-clock timeout and resource caps.
"""

import json
import sys

from backend.nanlang.interpreter import Interpreter


def main() -> None:
    raw = sys.stdin.read()
    try:
        payload = json.loads(raw)
        code = payload.get("code", "")
        settings = payload.get("settings") or {}
    except (ValueError, AttributeError) as e:
        # Communicate payload decoding errors on stderr with a failing status
        print(f"bad_payload: {e}", file=sys.stderr)
        sys.exit(1)

    result = Interpreter().run(code, settings=settings)
    print(json.dumps(result))


if __name__ == "__main__":
    main()
