"""
Detection Service - Web Layer Service for Detection Operations.

Thin wrapper over core.detections_core for web-specific concerns.
"""

from typing import Any

from core import detections_core


def submit_detection(
    detection_manager, image_bytes: bytes, metadata: dict[str, Any]
) -> dict[str, Any]:
    """
    Run one upload through the pipeline.

    Delegates to core.detections_core.
    """
    return detections_core.submit_detection(detection_manager, image_bytes, metadata)


def get_detection(detection_manager, detection_id: int) -> dict[str, Any] | None:
    """
    Get a stored detection.

    Delegates to core.detections_core.
    """
    return detections_core.get_detection(detection_manager, detection_id)


def list_recent_detections(detection_manager, limit: int) -> list[dict[str, Any]]:
    """
    Get the newest detections.

    Delegates to core.detections_core.
    """
    return detections_core.list_recent_detections(detection_manager, limit)


def get_active_species(config_path: str | None = None) -> list[dict[str, Any]]:
    """
    Get active target species.

    Delegates to core.detections_core.
    """
    return detections_core.get_active_species(config_path)


def get_upload(detection_manager, handle: str) -> tuple[bytes, str] | None:
    """
    Get stored upload bytes and MIME type.

    Delegates to core.detections_core.
    """
    return detections_core.get_upload(detection_manager, handle)


def get_pipeline_health(detection_manager) -> dict[str, Any]:
    """
    Get pipeline health.

    Delegates to core.detections_core.
    """
    return detections_core.get_pipeline_health(detection_manager)
