# ------------------------------------------------------------------------------
# Main Script for the Insect Detection Pipeline and its HTTP API
# main.py
# ------------------------------------------------------------------------------
from config import load_config
config = load_config()
from logging_config import get_logger
logger = get_logger(__name__)
import json
import os

# --------------------------------------------------------------------------
# Configuration Parameters
# --------------------------------------------------------------------------
# use the configuration values from the config dictionary.
_debug = config["DEBUG_MODE"]
output_dir = config["OUTPUT_DIR"]

logger.info(f"Debug mode is {'enabled' if _debug else 'disabled'}.")
_redacted = dict(config, GEMINI_API_KEY="***" if config["GEMINI_API_KEY"] else "")
logger.info(f"Configuration: {json.dumps(_redacted, indent=2)}")

os.makedirs(output_dir, exist_ok=True)

# -----------------------------
# Start the Detection Manager
# -----------------------------
from detectors.detection_manager import DetectionManager
from detectors.services.classification_service import GeminiClassificationService

# Build the classifier up front so a missing API key stops startup.
classifier = GeminiClassificationService(
    api_key=config["GEMINI_API_KEY"],
    model=config["GEMINI_MODEL"],
    timeout=config["CLASSIFICATION_TIMEOUT"],
    reporting_phone=config["REPORTING_PHONE"],
)

# Create a DetectionManager instance.
detection_manager = DetectionManager(classifier=classifier, config=config)

# Start the pipeline event loop on a background thread.
detection_manager.start()

# Register the cleanup function
import atexit
atexit.register(detection_manager.stop)

# -----------------------------
# Import and Run the Web Interface
# -----------------------------
from web.web_interface import create_web_interface

# Expose the Flask server as the WSGI app.
interface = create_web_interface(detection_manager)
app = interface["server"]

if __name__ == '__main__':
    # Run the web interface
    try:
        interface["run"](debug=_debug, host=config["HOST"], port=config["PORT"], use_reloader=False)
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt received. Shutting down detection manager...")
        detection_manager.stop()
