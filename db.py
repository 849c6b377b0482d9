import json
import logging
import os
import sqlite3
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from db_pool import SQLiteConnectionPool
from env_validation import DEFAULT_DB_PATH, get_env_int
from errors import StorageError, ValidationError

logger = logging.getLogger(__name__)

DB_PATH = os.getenv("DB_PATH") or DEFAULT_DB_PATH

# Initialize connection pool
_pool = SQLiteConnectionPool(DB_PATH, max_connections=get_env_int("DB_POOL_SIZE", 1))

# Columns holding JSON text that list endpoints hand back as arrays.
FORMULA_LIST_FIELDS = ("variables", "connections", "examples")
PROBLEM_LIST_FIELDS = ("formulaKeys",)


def _conn():
    """Return a context manager for acquiring a pooled SQLite connection."""
    return _pool.get_connection()


def _exec(sql: str, params: Iterable = ()):
    with _pool.get_connection() as con:
        cur = con.execute(sql, params)
        con.commit()
        return cur

def _query(sql: str, params: Iterable = ()) -> list[sqlite3.Row]:
    with _pool.get_connection() as con:
        cur = con.execute(sql, params)
        return cur.fetchall()


def reset_pool(path: Optional[str] = None, max_connections: int = 1) -> None:
    """Close the current pool and open a fresh one on ``path``."""
    global DB_PATH, _pool
    _pool.close_all()
    if path is not None:
        DB_PATH = path
    _pool = SQLiteConnectionPool(DB_PATH, max_connections=max_connections)


def close() -> None:
    """Close every pooled connection; the next store call reconnects."""
    _pool.close_all()


def init():
    Path(DB_PATH).parent.mkdir(parents=True, exist_ok=True)
    with _conn() as con:
        con.executescript(
            """
            PRAGMA journal_mode=WAL;

            CREATE TABLE IF NOT EXISTS submitted_content (
              id          INTEGER PRIMARY KEY AUTOINCREMENT,
              prompt      TEXT NOT NULL,
              schema      TEXT,
              ai_response TEXT,
              timestamp   DATETIME DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS formulas (
              id             INTEGER PRIMARY KEY AUTOINCREMENT,
              key            TEXT UNIQUE NOT NULL,
              category       TEXT,
              subject        TEXT,
              topic          TEXT,
              sub_topic      TEXT,
              formula        TEXT,
              description    TEXT,
              variables      TEXT,
              connections    TEXT,
              examples       TEXT,
              verified_by_ai INTEGER DEFAULT 0,
              custom_user    TEXT,
              timestamp      DATETIME DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS problems (
              id          INTEGER PRIMARY KEY AUTOINCREMENT,
              text        TEXT NOT NULL,
              answer      TEXT NOT NULL,
              formulaKeys TEXT,
              difficulty  TEXT,
              subject     TEXT,
              topic       TEXT,
              analysis    TEXT,
              hint        TEXT,
              custom_user TEXT,
              timestamp   DATETIME DEFAULT CURRENT_TIMESTAMP
            );
            """
        )
        con.commit()
    logger.info("Schema ready at %s", DB_PATH)


# -------------- JSON column helpers --------------
def _dump_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def _load_json(raw: Optional[str], default: Any = None) -> Any:
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Stored JSON could not be decoded: %.80s", raw)
        return default


def _to_flag(value: Optional[bool]) -> Optional[int]:
    if value is None:
        return None
    return 1 if value else 0


def _row_dict(row: sqlite3.Row, list_fields: Sequence[str] = ()) -> Dict[str, Any]:
    item = dict(row)
    for field in list_fields:
        item[field] = _load_json(item.get(field), [])
    return item


# -------------- submitted content --------------
def insert_submitted_content(
    prompt: Optional[str],
    schema: Any = None,
    ai_response: Optional[str] = None,
) -> int:
    """Store a prompt (and optional response schema / model answer); return the row id."""
    if not prompt:
        raise ValidationError("Prompt is required.")
    try:
        cur = _exec(
            "INSERT INTO submitted_content (prompt, schema, ai_response) VALUES (?, ?, ?)",
            (prompt, _dump_json(schema), ai_response),
        )
    except sqlite3.Error as exc:
        logger.error("Error saving content: %s", exc)
        raise StorageError("Failed to save content.", detail=str(exc)) from exc
    logger.info("Content saved with ID: %s", cur.lastrowid)
    return cur.lastrowid


def list_submitted_content() -> List[Dict[str, Any]]:
    """Return every submitted prompt, newest first, with ``schema`` decoded."""
    try:
        rows = _query(
            "SELECT id, prompt, schema, ai_response, timestamp FROM submitted_content "
            "ORDER BY timestamp DESC, id DESC"
        )
    except sqlite3.Error as exc:
        logger.error("Error retrieving content: %s", exc)
        raise StorageError("Failed to retrieve content.", detail=str(exc)) from exc
    content = []
    for row in rows:
        item = dict(row)
        item["schema"] = _load_json(item["schema"])
        content.append(item)
    return content


# -------------- formulas --------------
def upsert_formula(
    key: Optional[str],
    formula: Optional[str],
    *,
    category: Optional[str] = None,
    subject: Optional[str] = None,
    topic: Optional[str] = None,
    sub_topic: Optional[str] = None,
    description: Optional[str] = None,
    variables: Optional[Sequence[Any]] = None,
    connections: Optional[Sequence[Any]] = None,
    examples: Optional[Sequence[Any]] = None,
    verified_by_ai: Optional[bool] = None,
    custom_user: Optional[str] = None,
) -> Tuple[int, bool]:
    """Insert or fully replace the formula stored under ``key``.

    Every column is overwritten on update; arguments left as ``None`` are
    written as NULL. Lookup and write share one ``BEGIN IMMEDIATE``
    transaction, and the UNIQUE constraint on ``key`` rejects anything that
    still slips through. Returns ``(row_id, created)``.
    """
    if not key or not formula:
        raise ValidationError("Key and formula are required.")

    values = (
        category, subject, topic, sub_topic,
        formula, description,
        _dump_json(variables), _dump_json(connections), _dump_json(examples),
        _to_flag(verified_by_ai), custom_user,
    )
    with _conn() as con:
        try:
            con.execute("BEGIN IMMEDIATE")
            row = con.execute("SELECT id FROM formulas WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as exc:
            logger.error("Error checking formula existence: %s", exc)
            raise StorageError("Database error.", detail=str(exc)) from exc

        try:
            if row is not None:
                row_id = row["id"]
                con.execute(
                    """
                    UPDATE formulas SET
                      category = ?, subject = ?, topic = ?, sub_topic = ?,
                      formula = ?, description = ?, variables = ?, connections = ?, examples = ?,
                      verified_by_ai = ?, custom_user = ?, timestamp = CURRENT_TIMESTAMP
                    WHERE id = ?
                    """,
                    (*values, row_id),
                )
            else:
                cur = con.execute(
                    """
                    INSERT INTO formulas (
                      key, category, subject, topic, sub_topic,
                      formula, description, variables, connections, examples,
                      verified_by_ai, custom_user
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (key, *values),
                )
                row_id = cur.lastrowid
            con.commit()
        except sqlite3.Error as exc:
            logger.error("Error saving/updating formula: %s", exc)
            raise StorageError("Failed to save formula.", detail=str(exc)) from exc

    logger.info("Formula '%s' saved/updated. ID: %s", key, row_id)
    return row_id, row is None


def list_formulas() -> List[Dict[str, Any]]:
    """Return all formulas ordered by key, list columns decoded (missing -> [])."""
    try:
        rows = _query("SELECT * FROM formulas ORDER BY key ASC")
    except sqlite3.Error as exc:
        logger.error("Error retrieving formulas: %s", exc)
        raise StorageError("Failed to retrieve formulas.", detail=str(exc)) from exc
    formulas = []
    for row in rows:
        item = _row_dict(row, FORMULA_LIST_FIELDS)
        item["verified_by_ai"] = bool(item.get("verified_by_ai"))
        formulas.append(item)
    return formulas


# -------------- problems --------------
def insert_problem(
    text: Optional[str],
    answer: Optional[str],
    *,
    formula_keys: Optional[Sequence[str]] = None,
    difficulty: Optional[str] = None,
    subject: Optional[str] = None,
    topic: Optional[str] = None,
    analysis: Optional[str] = None,
    hint: Optional[str] = None,
    custom_user: Optional[str] = None,
) -> int:
    """Append a problem; identical text/answer pairs still get their own row."""
    if not text or not answer:
        raise ValidationError("Problem text and answer are required.")
    try:
        cur = _exec(
            """
            INSERT INTO problems (
              text, answer, formulaKeys, difficulty, subject, topic, analysis, hint, custom_user
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                text, answer, _dump_json(formula_keys),
                difficulty, subject, topic, analysis, hint, custom_user,
            ),
        )
    except sqlite3.Error as exc:
        logger.error("Error saving problem: %s", exc)
        raise StorageError("Failed to save problem.", detail=str(exc)) from exc
    logger.info("Problem saved with ID: %s", cur.lastrowid)
    return cur.lastrowid


def list_problems() -> List[Dict[str, Any]]:
    try:
        rows = _query("SELECT * FROM problems ORDER BY timestamp DESC, id DESC")
    except sqlite3.Error as exc:
        logger.error("Error retrieving problems: %s", exc)
        raise StorageError("Failed to retrieve problems.", detail=str(exc)) from exc
    return [_row_dict(row, PROBLEM_LIST_FIELDS) for row in rows]
