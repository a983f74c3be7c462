"""FastAPI application entrypoints for nanlang.

Each `/run` request constructs a fresh `Interpreter`, so runs never share a
variable environment. Server-side caps are enforced to prevent clients from
lifting resource/safety limits.
"""

import logging
import math
import time
from typing import Any, Dict, Optional

from fastapi import FastAPI
from pydantic import BaseModel

from .. import db
from ..nanlang.formatting import format_number
from ..nanlang.interpreter import Interpreter

logger = logging.getLogger(__name__)

app = FastAPI(title="nanlang API", version="0.1")

# Server-side ceilings; the interpreter core itself defaults to unlimited.
SERVER_LIMITS: Dict[str, Any] = {
    "max_steps": 100000,
    "max_loop": 10000,
    "max_time_s": 1.5,
    "max_output_chars": 5000,
    "max_depth": 100,
}


def _cap_settings(settings: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Clamp client-provided runtime tunables to the server's ceilings.

    Clients may lower any limit but never raise it above `SERVER_LIMITS`.
    `legacy_blocks` is passed through since it only changes block scanning.

    Returns a dict suitable for passing directly into `Interpreter.run`.
    """
    safe = dict(SERVER_LIMITS)
    if not settings:
        return safe
    caps: Dict[str, Any] = {}
    caps["max_steps"] = min(int(settings.get("max_steps", safe["max_steps"])), safe["max_steps"])
    caps["max_loop"] = min(int(settings.get("max_loop", safe["max_loop"])), safe["max_loop"])
    max_time_s = float(settings.get("max_time_s", safe["max_time_s"]))
    # NaN compares false against the clock and would disable the ceiling
    if not math.isfinite(max_time_s):
        max_time_s = safe["max_time_s"]
    caps["max_time_s"] = min(max_time_s, safe["max_time_s"])
    caps["max_output_chars"] = min(int(settings.get("max_output_chars", safe["max_output_chars"])), safe["max_output_chars"])
    caps["max_depth"] = min(int(settings.get("max_depth", safe["max_depth"])), safe["max_depth"])
    caps["legacy_blocks"] = bool(settings.get("legacy_blocks", False))
    return caps


@app.on_event('startup')
def startup():
    """FastAPI startup event: initialize the database schema."""
    db.init_db()


class RunRequest(BaseModel):
    """Request body for `/run`.

    Fields:
        code: nanlang source text.
        settings: optional runtime tunables; will be capped server-side.
        script_id: optional id to associate this run with a saved script.
    """
    code: str
    settings: Optional[Dict[str, Any]] = None
    script_id: Optional[int] = None


@app.post("/run")
def run_code(req: RunRequest):
    """Execute a script and return its run result.

    Variables are rendered with the numeric formatter so NaN/Inf values stay
    JSON-safe. Any unexpected exception becomes a SERVER_ERROR payload so
    callers receive a stable JSON shape.
    """
    start = time.time()
    try:
        capped = _cap_settings(req.settings or {})
        result = Interpreter().run(req.code, settings=capped)
    except Exception as e:
        logger.exception("run failed")
        return {
            "output": "",
            "errors": [{"code": "SERVER_ERROR", "message": str(e)}],
            "warnings": [],
            "variables": {},
            "stats": None,
            "duration_ms": int((time.time() - start) * 1000),
        }
    result["variables"] = {name: format_number(v) for name, v in result["variables"].items()}
    result["duration_ms"] = int((time.time() - start) * 1000)

    # persist the run (non-fatal; on failure we append a warning)
    try:
        db.save_run(
            req.script_id,
            result["stats"]["statements"],
            len(result["errors"]),
            result["output"].count("\n"),
            result["duration_ms"],
            [e["code"] for e in result["errors"]],
        )
    except Exception as e:
        logger.warning("Failed to persist run: %s", e)
        result["warnings"].append(f"Failed to persist run: {e}")

    return result


class SaveScriptRequest(BaseModel):
    title: str
    code: str


@app.post('/save')
def save_script(req: SaveScriptRequest):
    try:
        script_id = db.save_script(req.title, req.code)
    except Exception as e:
        logger.exception("save failed")
        return {'error': str(e)}
    return {'script_id': script_id}


@app.get('/scripts')
def list_scripts():
    return db.list_scripts()


@app.get('/scripts/{script_id}')
def get_script(script_id: int):
    s = db.get_script(script_id)
    if not s:
        return {'error': 'not found'}
    return s


@app.get('/stats')
def list_stats(script_id: Optional[int] = None):
    return db.list_runs(script_id)
