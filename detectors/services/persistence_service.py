"""
Persistence Service - SQLite Detection Store.

Implements DetectionStoreInterface on the utils.db SQLite layer. Blocking
database calls run in a worker thread so the event loop is never stalled.
Every externally sourced field is sanitized here, on write.
"""

import asyncio
import json
import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from core.analysis_result import THREAT_LEVELS, clamp_confidence
from detectors.interfaces.persistence import (
    DetectionDraft,
    DetectionRecord,
    DetectionStoreInterface,
)
from logging_config import get_logger
from utils.db import (
    MAX_RECENT_LIMIT,
    closing_connection,
    fetch_detection,
    fetch_recent_detections,
    insert_detection,
    update_reference_images,
)
from utils.sanitization import (
    DEFAULT_ALLOWED_HOSTS,
    is_valid_coordinate,
    round_coordinate,
    sanitize_reference_images,
    sanitize_species_name,
    sanitize_string,
)

logger = get_logger(__name__)

MAX_AI_RESPONSE_CHARS = 10_000
MAX_ANALYSIS_FEATURES = 10
MAX_FEATURE_CHARS = 100


def _decode_json_list(value: str | None) -> list | None:
    if value is None:
        return None
    try:
        decoded = json.loads(value)
    except (TypeError, ValueError):
        logger.warning("Stored JSON column could not be decoded")
        return None
    return decoded if isinstance(decoded, list) else None


def _optional_bool(value) -> bool | None:
    return None if value is None else bool(value)


def row_to_record(row: sqlite3.Row) -> DetectionRecord:
    """Converts a detections row into a DetectionRecord."""
    return DetectionRecord(
        detection_id=row["detection_id"],
        storage_handle=row["storage_handle"],
        species=row["species"],
        confidence=row["confidence"],
        is_threat=bool(row["is_threat"]),
        threat_level=row["threat_level"],
        created_at=row["created_at"],
        likelihood=row["likelihood"],
        ai_response=row["ai_response"] or "",
        analysis_features=_decode_json_list(row["analysis_features"]) or [],
        reference_images=_decode_json_list(row["reference_images"]),
        reference_images_updated_at=row["reference_images_updated_at"],
        latitude=row["latitude"],
        longitude=row["longitude"],
        session_id=row["session_id"],
        user_agent=row["user_agent"],
        privacy_consent=_optional_bool(row["privacy_consent"]),
        location_consent=_optional_bool(row["location_consent"]),
        analysis_mode=row["analysis_mode"],
        error_kind=row["error_kind"],
    )


class SqliteDetectionStore(DetectionStoreInterface):
    """
    Detection store backed by the application's SQLite database.

    Coordinates are persisted only when location consent is explicitly
    given, and always rounded to 3 decimal places.
    """

    def __init__(
        self,
        db_path: str | Path | None = None,
        allowed_hosts=DEFAULT_ALLOWED_HOSTS,
    ):
        """
        Args:
            db_path: Database file. Defaults to OUTPUT_DIR/detections.db.
            allowed_hosts: Host allow-list for reference image URLs.
        """
        self._db_path = db_path
        self._allowed_hosts = tuple(allowed_hosts)

    # ------------------------------------------------------------------
    # Write-side sanitization
    # ------------------------------------------------------------------

    def _coordinates(self, draft: DetectionDraft) -> tuple[float | None, float | None]:
        if draft.location_consent is not True:
            return None, None
        if not (is_valid_coordinate(draft.latitude) and is_valid_coordinate(draft.longitude)):
            return None, None
        if not (-90 <= draft.latitude <= 90 and -180 <= draft.longitude <= 180):
            logger.warning("Discarding out-of-range coordinates")
            return None, None
        return round_coordinate(draft.latitude), round_coordinate(draft.longitude)

    def _draft_to_row(self, draft: DetectionDraft) -> dict[str, Any]:
        latitude, longitude = self._coordinates(draft)
        features = [
            sanitize_string(feature, MAX_FEATURE_CHARS)
            for feature in (draft.analysis_features or [])[:MAX_ANALYSIS_FEATURES]
        ]
        return {
            "storage_handle": draft.storage_handle,
            "species": sanitize_species_name(draft.species) or "Unknown",
            "confidence": clamp_confidence(draft.confidence),
            "is_threat": bool(draft.is_threat),
            "threat_level": draft.threat_level if draft.threat_level in THREAT_LEVELS else "safe",
            "likelihood": draft.likelihood,
            "latitude": latitude,
            "longitude": longitude,
            "ai_response": (draft.ai_response or "")[:MAX_AI_RESPONSE_CHARS],
            "analysis_features": json.dumps([f for f in features if f]),
            "reference_images": None,
            "created_at": draft.created_at,
            "session_id": sanitize_string(draft.session_id, 100) or None,
            "user_agent": sanitize_string(draft.user_agent, 500) or None,
            "privacy_consent": None if draft.privacy_consent is None else int(draft.privacy_consent),
            "location_consent": None if draft.location_consent is None else int(draft.location_consent),
            "analysis_mode": draft.analysis_mode,
            "error_kind": draft.error_kind,
        }

    # ------------------------------------------------------------------
    # Blocking operations (run in worker threads)
    # ------------------------------------------------------------------

    def _insert(self, row: dict[str, Any]) -> int:
        with closing_connection(self._db_path) as conn:
            return insert_detection(conn, row)

    def _patch(self, detection_id: int, images_json: str) -> bool:
        updated_at = datetime.now(UTC).isoformat()
        with closing_connection(self._db_path) as conn:
            return update_reference_images(conn, detection_id, images_json, updated_at)

    def _get(self, detection_id: int) -> DetectionRecord | None:
        with closing_connection(self._db_path) as conn:
            row = fetch_detection(conn, detection_id)
            return row_to_record(row) if row else None

    def _recent(self, limit: int) -> list[DetectionRecord]:
        with closing_connection(self._db_path) as conn:
            return [row_to_record(row) for row in fetch_recent_detections(conn, limit)]

    # ------------------------------------------------------------------
    # DetectionStoreInterface
    # ------------------------------------------------------------------

    async def create_detection(self, draft: DetectionDraft) -> int:
        row = self._draft_to_row(draft)
        detection_id = await asyncio.to_thread(self._insert, row)
        logger.info(
            f"Stored detection {detection_id}: {row['species']!r} "
            f"(threat_level={row['threat_level']}, error_kind={row['error_kind']})"
        )
        return detection_id

    async def patch_reference_images(
        self, detection_id: int, images: list[dict[str, Any]]
    ) -> None:
        sanitized = sanitize_reference_images(images, self._allowed_hosts)
        updated = await asyncio.to_thread(self._patch, detection_id, json.dumps(sanitized))
        if updated:
            logger.info(f"Updated {len(sanitized)} reference images for detection {detection_id}")
        else:
            logger.warning(f"Reference image patch for unknown detection {detection_id}")

    async def get_detection(self, detection_id: int) -> DetectionRecord | None:
        return await asyncio.to_thread(self._get, detection_id)

    async def list_recent(self, limit: int = 20) -> list[DetectionRecord]:
        limit = max(1, min(int(limit), MAX_RECENT_LIMIT))
        return await asyncio.to_thread(self._recent, limit)
