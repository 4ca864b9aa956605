"""
Detections Core - Detection Submission and Query Operations.

Bridges synchronous callers (Flask request threads) to the DetectionManager,
whose coroutines run on the pipeline event loop.
"""

from typing import Any

from core.species_core import active_species, get_species_snapshot
from detectors.detection_manager import SubmissionMetadata

# Head room on top of the classification deadline for storage and DB writes.
SUBMISSION_GRACE_SECONDS = 15.0
READ_TIMEOUT_SECONDS = 10.0


def submit_detection(
    detection_manager, image_bytes: bytes, metadata: dict[str, Any] | None = None
) -> dict[str, Any]:
    """
    Submits an image and returns the stored record.

    Args:
        detection_manager: Running DetectionManager.
        image_bytes: Raw upload.
        metadata: SubmissionMetadata fields (latitude, longitude, session_id,
            user_agent, privacy_consent, location_consent, mode).

    Returns:
        Dict with "detection" (the stored record payload) and "error"
        ({"kind", "message"} for failure records, None otherwise).
    """
    meta = SubmissionMetadata(**(metadata or {}))
    timeout = detection_manager.config["CLASSIFICATION_TIMEOUT"] + SUBMISSION_GRACE_SECONDS
    runner = detection_manager.runner

    result = runner.run(detection_manager.submit_image(image_bytes, meta), timeout=timeout)
    detection = runner.run(
        detection_manager.get_enriched_detection(result.detection_id),
        timeout=READ_TIMEOUT_SECONDS,
    )

    error = None
    if result.error is not None:
        error = {"kind": result.error_kind, "message": result.error.message}
    return {"detection": detection, "error": error}


def get_detection(detection_manager, detection_id: int) -> dict[str, Any] | None:
    """Returns one stored detection with its current enrichment state."""
    return detection_manager.runner.run(
        detection_manager.get_enriched_detection(detection_id),
        timeout=READ_TIMEOUT_SECONDS,
    )


def list_recent_detections(detection_manager, limit: int = 20) -> list[dict[str, Any]]:
    """Returns the newest detections first."""
    return detection_manager.runner.run(
        detection_manager.list_recent(limit), timeout=READ_TIMEOUT_SECONDS
    )


def get_active_species(config_path: str | None = None) -> list[dict[str, Any]]:
    """Returns the active target species as dicts, in display order."""
    return [s.to_dict() for s in active_species(get_species_snapshot(config_path))]


def get_upload(detection_manager, handle: str) -> tuple[bytes, str] | None:
    """
    Returns (bytes, mime_type) for a stored upload, or None if unknown.
    """
    storage = detection_manager.storage
    try:
        return storage.get(handle), storage.mime_type_for(handle)
    except KeyError:
        return None


def get_pipeline_health(detection_manager) -> dict[str, Any]:
    """
    Returns pipeline status.

    Status is "error" when the event loop is down, "ok" otherwise.
    """
    loop_running = detection_manager.runner.is_running
    classifier = detection_manager.classifier
    return {
        "status": "ok" if loop_running else "error",
        "event_loop_running": loop_running,
        "pending_enrichment": detection_manager.pending_enrichment_count(),
        "classifier_ready": bool(classifier.is_ready()),
        "model": classifier.get_model_id(),
    }
