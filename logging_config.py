# logging_config.py
import logging
from config import load_config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that log every request at INFO.
NOISY_LOGGERS = ("httpx", "httpcore", "google_genai")


def configure_logging(debug_mode: bool) -> None:
    """
    Configures root logging once for the entire application.

    Catalog and model client loggers stay at WARNING unless debugging.
    """
    logging.basicConfig(
        level=logging.DEBUG if debug_mode else logging.INFO,
        format=LOG_FORMAT,
    )
    library_level = logging.DEBUG if debug_mode else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)


config = load_config()
DEBUG_MODE = config["DEBUG_MODE"]
configure_logging(DEBUG_MODE)


def get_logger(name: str) -> logging.Logger:
    """
    Returns a logger with the given name.
    """
    return logging.getLogger(name)
