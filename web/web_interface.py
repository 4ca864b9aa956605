# ------------------------------------------------------------------------------
# web_interface.py
# ------------------------------------------------------------------------------

import logging

from flask import Flask, Response, jsonify

from web.blueprints.api_v1 import api_v1
from web.services import detection_service

# Multipart framing and the optional form fields on top of the image itself.
FORM_OVERHEAD_BYTES = 1024 * 1024


def create_web_interface(detection_manager):
    """
    Creates and returns the web interface (Flask server) for the project.

    Registers the /api/v1 blueprint and the /uploads route that serves
    stored images. Returns a dict with the Flask app under "server" and its
    run method under "run".
    """
    logger = logging.getLogger(__name__)
    config = detection_manager.config

    server = Flask(__name__)
    server.config["MAX_CONTENT_LENGTH"] = config["MAX_IMAGE_BYTES"] + FORM_OVERHEAD_BYTES
    server.json.sort_keys = False

    api_v1.detection_manager = detection_manager
    server.register_blueprint(api_v1)

    @server.route("/uploads/<handle>")
    def serve_upload(handle):
        upload = detection_service.get_upload(detection_manager, handle)
        if upload is None:
            return jsonify({"status": "error", "message": "Image not found"}), 404
        data, mime_type = upload
        return Response(data, mimetype=mime_type)

    @server.errorhandler(413)
    def request_too_large(_error):
        max_mb = config["MAX_IMAGE_BYTES"] / (1024 * 1024)
        return (
            jsonify({"status": "error", "message": f"Upload too large. Max size: {max_mb:.0f}MB"}),
            413,
        )

    logger.info("Web interface created")
    return {"server": server, "run": server.run}
