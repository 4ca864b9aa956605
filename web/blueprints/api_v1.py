"""
API v1 Blueprint.

This blueprint provides versioned API endpoints under /api/v1/*:
submission and lookup of detections, the active target species list,
and pipeline health.
"""

from flask import Blueprint, jsonify, request

from logging_config import get_logger
from web.services import detection_service

logger = get_logger(__name__)

# Create Blueprint
api_v1 = Blueprint("api_v1", __name__, url_prefix="/api/v1")

ANALYSIS_MODES = ("biosecurity", "general")
MAX_LIST_LIMIT = 100

# HTTP status for each failure kind stored by the pipeline.
ERROR_STATUS_CODES = {
    "invalid_image_format": 400,
    "configuration_error": 503,
    "no_target_species": 503,
    "classification_timeout": 504,
    "malformed_model_output": 502,
    "model_service_error": 502,
    "internal_error": 500,
}

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}


def _parse_bool(value: str | None, field: str) -> bool | None:
    if value is None or value == "":
        return None
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"{field} must be a boolean")


def _parse_float(value: str | None, field: str) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{field} must be a number") from None


def _parse_submission_form(form) -> dict:
    """Parses the optional multipart fields into SubmissionMetadata kwargs."""
    mode = (form.get("mode") or "").strip().lower() or None
    if mode is not None and mode not in ANALYSIS_MODES:
        raise ValueError(f"mode must be one of: {', '.join(ANALYSIS_MODES)}")

    return {
        "latitude": _parse_float(form.get("latitude"), "latitude"),
        "longitude": _parse_float(form.get("longitude"), "longitude"),
        "session_id": form.get("session_id") or None,
        "privacy_consent": _parse_bool(form.get("privacy_consent"), "privacy_consent"),
        "location_consent": _parse_bool(form.get("location_consent"), "location_consent"),
        "mode": mode,
    }


# =============================================================================
# Detections
# =============================================================================


@api_v1.route("/detections", methods=["POST"])
def create_detection():
    """
    Submits an insect photo for analysis.

    Multipart form:
        image: the photo (required)
        latitude, longitude, session_id, mode,
        privacy_consent, location_consent: optional

    Returns 201 with the stored record on success. Pipeline failures are
    stored too and returned with an error object and a 4xx/5xx status.
    """
    upload = request.files.get("image")
    if upload is None:
        return jsonify({"status": "error", "message": "No image file provided"}), 400

    try:
        metadata = _parse_submission_form(request.form)
    except ValueError as e:
        return jsonify({"status": "error", "message": str(e)}), 400
    metadata["user_agent"] = request.headers.get("User-Agent")

    dm = api_v1.detection_manager
    try:
        outcome = detection_service.submit_detection(dm, upload.read(), metadata)
    except TimeoutError:
        logger.error("Detection submission did not complete in time")
        return jsonify({"status": "error", "message": "Submission timed out"}), 504
    except RuntimeError as e:
        logger.error(f"Detection pipeline unavailable: {e}")
        return jsonify({"status": "error", "message": "Detection pipeline unavailable"}), 503
    except Exception as e:
        logger.error(f"Detection submission error: {e}", exc_info=True)
        return jsonify({"status": "error", "message": str(e)}), 500

    error = outcome["error"]
    if error is None:
        return jsonify({"status": "success", "detection": outcome["detection"]}), 201

    status_code = ERROR_STATUS_CODES.get(error["kind"], 500)
    return (
        jsonify({"status": "error", "detection": outcome["detection"], "error": error}),
        status_code,
    )


@api_v1.route("/detections/<int:detection_id>", methods=["GET"])
def get_detection(detection_id: int):
    """
    Returns one detection with its current reference images.
    """
    try:
        detection = detection_service.get_detection(api_v1.detection_manager, detection_id)
    except Exception as e:
        logger.error(f"Detection lookup error: {e}")
        return jsonify({"status": "error", "message": str(e)}), 500

    if detection is None:
        return jsonify({"status": "error", "message": "Detection not found"}), 404
    return jsonify({"status": "success", "detection": detection})


@api_v1.route("/detections", methods=["GET"])
def list_detections():
    """
    Returns recent detections, newest first.

    Query params:
        limit: 1-100 (default 20)
    """
    try:
        limit = int(request.args.get("limit", 20))
    except ValueError:
        return jsonify({"status": "error", "message": "limit must be an integer"}), 400
    limit = max(1, min(limit, MAX_LIST_LIMIT))

    try:
        detections = detection_service.list_recent_detections(
            api_v1.detection_manager, limit
        )
    except Exception as e:
        logger.error(f"Detection list error: {e}")
        return jsonify({"status": "error", "message": str(e)}), 500

    return jsonify({"status": "success", "detections": detections, "count": len(detections)})


# =============================================================================
# Species
# =============================================================================


@api_v1.route("/species", methods=["GET"])
def list_species():
    """
    Returns the active target species in display order.
    """
    try:
        config_path = api_v1.detection_manager.config["SPECIES_CONFIG_PATH"]
        species = detection_service.get_active_species(config_path)
    except Exception as e:
        logger.error(f"Species list error: {e}")
        return jsonify({"status": "error", "message": str(e)}), 500

    return jsonify({"status": "success", "species": species})


# =============================================================================
# System
# =============================================================================


@api_v1.route("/health", methods=["GET"])
def pipeline_health():
    """
    Returns pipeline health.

    Includes:
    - Event loop state
    - Number of enrichment tasks still running
    - Classifier readiness and model name
    """
    try:
        health = detection_service.get_pipeline_health(api_v1.detection_manager)
        status_code = 503 if health.get("status") == "error" else 200
        return jsonify(health), status_code
    except Exception as e:
        logger.error(f"Health check error: {e}")
        return jsonify({"status": "error", "message": str(e)}), 500
