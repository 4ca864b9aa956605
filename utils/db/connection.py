"""
Database Connection and Schema Management.

This module handles SQLite connection creation and schema initialization.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path

from config import get_config

DB_FILENAME = "detections.db"

# Module-level cache: initialize schema once per database path.
# Tests patch OUTPUT_DIR, so schema init must be keyed by db path (not process-global).
_schema_initialized_paths: set[Path] = set()


def _get_db_path() -> Path:
    cfg = get_config()
    output_dir = Path(cfg["OUTPUT_DIR"])
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir / DB_FILENAME


def get_connection(db_path: str | Path | None = None) -> sqlite3.Connection:
    global _schema_initialized_paths
    db_path = Path(db_path) if db_path else _get_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    if db_path not in _schema_initialized_paths:
        _init_schema(conn)
        _schema_initialized_paths.add(db_path)
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def closing_connection(db_path: str | Path | None = None):
    """Context manager that creates a DB connection and guarantees it is closed.

    IMPORTANT: `with sqlite3.Connection as conn:` only manages transactions
    (commit/rollback), it does NOT call conn.close(). This context manager
    ensures the file descriptor is released when the block exits.

    Usage:
        with closing_connection() as conn:
            conn.execute("SELECT ...")
    """
    conn = get_connection(db_path)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _init_schema(conn: sqlite3.Connection) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS detections (
            detection_id INTEGER PRIMARY KEY AUTOINCREMENT,
            storage_handle TEXT NOT NULL,
            species TEXT NOT NULL,
            confidence REAL NOT NULL DEFAULT 0,
            is_threat INTEGER NOT NULL DEFAULT 0,
            threat_level TEXT NOT NULL DEFAULT 'safe',
            likelihood TEXT,
            latitude REAL,
            longitude REAL,
            ai_response TEXT,
            analysis_features TEXT,
            reference_images TEXT,
            created_at TEXT NOT NULL
        );
        """)
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_detections_created_at ON detections(created_at DESC);"
    )

    # Audit metadata
    _ensure_column_on_table(conn, "detections", "session_id", "TEXT")
    _ensure_column_on_table(conn, "detections", "user_agent", "TEXT")
    _ensure_column_on_table(conn, "detections", "privacy_consent", "INTEGER")
    _ensure_column_on_table(conn, "detections", "location_consent", "INTEGER")
    _ensure_column_on_table(conn, "detections", "analysis_mode", "TEXT")

    # Failure records carry the error kind; NULL for successful analyses
    _ensure_column_on_table(conn, "detections", "error_kind", "TEXT")

    _ensure_column_on_table(conn, "detections", "reference_images_updated_at", "TEXT")

    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_detections_session ON detections(session_id);"
    )

    conn.commit()


def _ensure_column_on_table(
    conn: sqlite3.Connection, table: str, column: str, coltype: str
) -> None:
    cur = conn.execute(f"PRAGMA table_info({table});")
    cols = {row[1] for row in cur.fetchall()}
    if column not in cols:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {coltype};")
        conn.commit()
