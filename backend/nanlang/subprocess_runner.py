"""Helpers to run a nanlang script in a short-lived subprocess worker.

This module provides `run_script_in_subprocess`, a convenience wrapper that
launches `backend.nanlang._subprocess_worker` (which follows a simple
JSON-over-stdin/stdout protocol). The interpreter core has no way to cancel
a runaway loop, so the child's wall-clock timeout is the cancellation path.
On POSIX systems light OS-level resource limits (CPU seconds and address
space) are applied as well.

Behavior and guarantees:
  - On POSIX, optional RLIMIT_CPU and RLIMIT_AS limits are applied using a
    preexec function. On Windows these limits are no-ops.
  - The worker is launched with closed file descriptors and a minimal
    environment (PATH plus a PYTHONPATH pointing at this repository).
  - The function returns (returncode, stdout, stderr). A returncode of -1
    indicates the process was terminated due to timeout.
"""

import json
import logging
import math
import os
import subprocess
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

WORKER_MODULE = "backend.nanlang._subprocess_worker"
REPO_ROOT = Path(__file__).resolve().parents[2]


def _make_posix_preexec(cpu_seconds: Optional[int], mem_limit_mb: Optional[int]):
    """Return a preexec_fn that applies resource limits on POSIX systems.

    If the `resource` module is unavailable the function becomes a no-op.
    """
    def preexec():
        try:
            import resource
        except ImportError:
            return

        if cpu_seconds is not None:
            resource.setrlimit(resource.RLIMIT_CPU, (int(cpu_seconds), int(cpu_seconds)))

        if mem_limit_mb is not None:
            mem_bytes = int(mem_limit_mb) * 1024 * 1024
            resource.setrlimit(resource.RLIMIT_AS, (mem_bytes, mem_bytes))

        # Start a new session to isolate signals
        try:
            os.setsid()
        except OSError:
            pass

    return preexec


def run_script_in_subprocess(
    code: str,
    settings: Optional[Dict[str, Any]] = None,
    timeout_s: float = 2,
    *,
    cpu_seconds: Optional[int] = None,
    mem_limit_mb: Optional[int] = 1024,
) -> Tuple[int, str, str]:
    """Run `code` in the worker process and return its raw outputs.

    Parameters:
      - code: nanlang source sent to the worker as JSON on stdin.
      - settings: interpreter tunables forwarded to `Interpreter.run`.
      - timeout_s: wall-clock timeout for the whole operation (seconds).
      - cpu_seconds: optional RLIMIT_CPU (seconds) applied on POSIX; defaults
        to one second past the wall-clock timeout.
      - mem_limit_mb: optional RLIMIT_AS (MB) applied on POSIX.

    Returns (returncode, stdout, stderr). On timeout the process is killed
    and (-1, "", "TIMEOUT") is returned.
    """
    env = {
        "PATH": os.environ.get("PATH", ""),
        "PYTHONPATH": str(REPO_ROOT),
        "OPENBLAS_NUM_THREADS": "1",
    }
    if cpu_seconds is None:
        cpu_seconds = math.ceil(timeout_s) + 1

    popen_kwargs: Dict[str, Any] = dict(
        args=[sys.executable, "-m", WORKER_MODULE],
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        env=env,
        close_fds=True,
    )

    if os.name != "nt":
        popen_kwargs["preexec_fn"] = _make_posix_preexec(cpu_seconds, mem_limit_mb)

    proc = subprocess.Popen(**popen_kwargs)

    payload = json.dumps({"code": code, "settings": settings or {}})
    try:
        out, err = proc.communicate(payload, timeout=timeout_s)
    except subprocess.TimeoutExpired:
        logger.warning("Worker exceeded %ss timeout; killing pid %s", timeout_s, proc.pid)
        proc.kill()
        proc.communicate()
        return -1, "", "TIMEOUT"

    return proc.returncode, out or "", err or ""
