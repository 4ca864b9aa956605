"""
Detection CRUD and Query Operations.

This module handles detection-related database operations: the primary
insert, the reference-image patch, and read queries.
"""

import sqlite3
from typing import Any

MAX_RECENT_LIMIT = 100


def insert_detection(conn: sqlite3.Connection, row: dict[str, Any]) -> int:
    """Inserts a detection record and returns its ID."""
    cur = conn.execute(
        """
        INSERT INTO detections (
            storage_handle,
            species,
            confidence,
            is_threat,
            threat_level,
            likelihood,
            latitude,
            longitude,
            ai_response,
            analysis_features,
            reference_images,
            created_at,
            session_id,
            user_agent,
            privacy_consent,
            location_consent,
            analysis_mode,
            error_kind
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
        """,
        (
            row.get("storage_handle"),
            row.get("species"),
            row.get("confidence", 0.0),
            1 if row.get("is_threat") else 0,
            row.get("threat_level", "safe"),
            row.get("likelihood"),
            row.get("latitude"),
            row.get("longitude"),
            row.get("ai_response"),
            row.get("analysis_features"),
            row.get("reference_images"),
            row.get("created_at"),
            row.get("session_id"),
            row.get("user_agent"),
            row.get("privacy_consent"),
            row.get("location_consent"),
            row.get("analysis_mode"),
            row.get("error_kind"),
        ),
    )
    conn.commit()
    return cur.lastrowid


def update_reference_images(
    conn: sqlite3.Connection,
    detection_id: int,
    reference_images_json: str,
    updated_at: str,
) -> bool:
    """
    Overwrites the reference_images field of one detection.

    Returns:
        True if a row was updated.
    """
    cur = conn.execute(
        """
        UPDATE detections
        SET reference_images = ?, reference_images_updated_at = ?
        WHERE detection_id = ?;
        """,
        (reference_images_json, updated_at, detection_id),
    )
    conn.commit()
    return cur.rowcount > 0


def fetch_detection(conn: sqlite3.Connection, detection_id: int) -> sqlite3.Row | None:
    return conn.execute(
        "SELECT * FROM detections WHERE detection_id = ?;", (detection_id,)
    ).fetchone()


def fetch_recent_detections(
    conn: sqlite3.Connection, limit: int = 20
) -> list[sqlite3.Row]:
    """Returns the newest detections first; limit is capped at MAX_RECENT_LIMIT."""
    limit = max(1, min(int(limit), MAX_RECENT_LIMIT))
    return conn.execute(
        """
        SELECT * FROM detections
        ORDER BY created_at DESC, detection_id DESC
        LIMIT ?;
        """,
        (limit,),
    ).fetchall()
