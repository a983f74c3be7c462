import json
import logging
import os
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path(__file__).parent / 'nanlang.db'


def db_path() -> Path:
    """Return the database file, honouring the NANLANG_DB_PATH override (used by tests)."""
    return Path(os.environ.get('NANLANG_DB_PATH') or DEFAULT_DB_PATH)


def get_conn():
    """Return a new sqlite3 connection configured to return rows as dict-like objects.

    A fresh connection is created per call; callers close it when done.
    """
    conn = sqlite3.connect(str(db_path()))
    conn.row_factory = sqlite3.Row
    return conn


def init_db():
    """Ensure the database file and required tables exist.

    Idempotent and safe to call at application startup.
    """
    path = db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    logger.debug("initializing database at %s", path)
    conn = get_conn()
    cur = conn.cursor()
    cur.execute('''
    CREATE TABLE IF NOT EXISTS Scripts (
      script_id INTEGER PRIMARY KEY,
      title TEXT NOT NULL,
      code_text TEXT NOT NULL,
      created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''')
    cur.execute('''
    CREATE TABLE IF NOT EXISTS Runs (
      run_id INTEGER PRIMARY KEY,
      script_id INTEGER NULL,
      statements INTEGER,
      error_count INTEGER,
      output_lines INTEGER,
      duration_ms INTEGER,
      error_codes TEXT,
      created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    ''')
    conn.commit()
    conn.close()


def save_script(title: str, code_text: str) -> int:
    """Persist a script and return the new script_id."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        'INSERT INTO Scripts (title, code_text) VALUES (?, ?)',
        (title, code_text),
    )
    script_id = cur.lastrowid
    conn.commit()
    conn.close()
    return script_id


def list_scripts() -> List[Dict[str, Any]]:
    """Return saved scripts (id, title, created_at), newest first."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        'SELECT script_id, title, created_at FROM Scripts '
        'ORDER BY created_at DESC, script_id DESC'
    )
    rows = cur.fetchall()
    conn.close()
    return [dict(r) for r in rows]


def get_script(script_id: int) -> Optional[Dict[str, Any]]:
    """Fetch a single script by id, returning None if not found."""
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        'SELECT script_id, title, code_text, created_at FROM Scripts '
        'WHERE script_id = ?',
        (script_id,),
    )
    row = cur.fetchone()
    conn.close()
    return dict(row) if row else None


def save_run(
    script_id: Optional[int],
    statements: Optional[int],
    error_count: Optional[int],
    output_lines: Optional[int],
    duration_ms: Optional[int],
    error_codes: Optional[List[str]] = None,
) -> int:
    """Persist a run row and return its run_id.

    `error_codes` is JSON-serialized into a TEXT column. Callers treat a
    failure here as non-fatal.
    """
    conn = get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO Runs (
            script_id, statements, error_count, output_lines,
            duration_ms, error_codes
        ) VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            script_id,
            statements,
            error_count,
            output_lines,
            duration_ms,
            json.dumps(error_codes or []),
        ),
    )
    run_id = cur.lastrowid
    conn.commit()
    conn.close()
    return run_id


def list_runs(script_id: Optional[int] = None) -> List[Dict[str, Any]]:
    """List run rows, optionally filtering by script_id.

    Each returned dict has `error_codes` parsed back into a list.
    """
    conn = get_conn()
    cur = conn.cursor()
    columns = (
        "SELECT run_id, script_id, statements, error_count, output_lines,"
        " duration_ms, error_codes, created_at FROM Runs"
    )
    if script_id:
        cur.execute(columns + " WHERE script_id = ? ORDER BY run_id DESC", (script_id,))
    else:
        cur.execute(columns + " ORDER BY run_id DESC")
    rows = cur.fetchall()
    conn.close()
    out = []
    for r in rows:
        d = dict(r)
        try:
            d['error_codes'] = json.loads(d.get('error_codes') or '[]')
        except ValueError:
            # tolerate corrupt JSON in the DB by returning an empty list
            d['error_codes'] = []
        out.append(d)
    return out
