"""
PestWatch Database Module.

This package provides modular database access for detection records.
All functions are re-exported here for convenience.

Usage:
    from utils.db import closing_connection, insert_detection
    # or
    from utils.db.detections import insert_detection
"""

# Connection and Schema
from utils.db.connection import (
    DB_FILENAME,
    _ensure_column_on_table,
    _get_db_path,
    _init_schema,
    closing_connection,
    get_connection,
)

# Detection Operations
from utils.db.detections import (
    MAX_RECENT_LIMIT,
    fetch_detection,
    fetch_recent_detections,
    insert_detection,
    update_reference_images,
)

__all__ = [
    # Connection
    "DB_FILENAME",
    "_get_db_path",
    "closing_connection",
    "get_connection",
    "_init_schema",
    "_ensure_column_on_table",
    # Detections
    "MAX_RECENT_LIMIT",
    "insert_detection",
    "update_reference_images",
    "fetch_detection",
    "fetch_recent_detections",
]
