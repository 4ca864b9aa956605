# config.py
import os
from dotenv import load_dotenv

# Load environment variables from .env file.
load_dotenv()

DEFAULT_ALLOWED_HOSTS = (
    "inaturalist.org,commons.wikimedia.org,upload.wikimedia.org,"
    "inaturalist-open-data.s3.amazonaws.com"
)

_config_cache = None


def _split_hosts(value: str) -> tuple:
    return tuple(h.strip().lower() for h in value.split(",") if h.strip())


def load_config():
    """
    Loads configuration from environment variables and returns a dictionary.
    """
    output_dir = os.getenv("OUTPUT_DIR", "/output")

    config = {
        # General Settings
        "DEBUG_MODE": os.getenv("DEBUG_MODE", "False").lower() == "true",
        "OUTPUT_DIR": output_dir,
        "HOST": os.getenv("HOST", "0.0.0.0"),
        "PORT": int(os.getenv("PORT", 8050)),

        # Classification Model Settings
        "GEMINI_API_KEY": os.getenv("GEMINI_API_KEY", ""),
        "GEMINI_MODEL": os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
        "ANALYSIS_MODE": os.getenv("ANALYSIS_MODE", "biosecurity").lower(),

        # Deadlines (seconds)
        "CLASSIFICATION_TIMEOUT": float(os.getenv("CLASSIFICATION_TIMEOUT", 30)),
        "REFERENCE_IMAGE_TIMEOUT": float(os.getenv("REFERENCE_IMAGE_TIMEOUT", 10)),
        "CATALOG_TIMEOUT": float(os.getenv("CATALOG_TIMEOUT", 5)),

        # Upload Limits
        "MIN_IMAGE_BYTES": int(os.getenv("MIN_IMAGE_BYTES", 100)),
        "MAX_IMAGE_BYTES": int(os.getenv("MAX_IMAGE_BYTES", 20 * 1024 * 1024)),

        # Target Species
        "SPECIES_CONFIG_PATH": os.getenv(
            "SPECIES_CONFIG_PATH", os.path.join(output_dir, "species.yaml")
        ),
        "REPORTING_PHONE": os.getenv("REPORTING_PHONE", "0800 80 99 66"),

        # Reference Image Catalogs
        "REFERENCE_IMAGE_ALLOWED_HOSTS": _split_hosts(
            os.getenv("REFERENCE_IMAGE_ALLOWED_HOSTS", DEFAULT_ALLOWED_HOSTS)
        ),
        "INATURALIST_API_URL": os.getenv(
            "INATURALIST_API_URL", "https://api.inaturalist.org/v1"
        ).rstrip("/"),
        "WIKIMEDIA_API_URL": os.getenv(
            "WIKIMEDIA_API_URL", "https://commons.wikimedia.org/w/api.php"
        ),
        "HTTP_USER_AGENT": os.getenv(
            "HTTP_USER_AGENT", "PestWatch/1.0 (insect biosecurity screening)"
        ),
    }
    return config


def get_config():
    """
    Returns the process-wide configuration, loading it on first use.
    """
    global _config_cache
    if _config_cache is None:
        _config_cache = load_config()
    return _config_cache


if __name__ == "__main__":
    # For testing purposes, print the configuration
    config = load_config()
    from pprint import pprint
    redacted = dict(config, GEMINI_API_KEY="***" if config["GEMINI_API_KEY"] else "")
    pprint(redacted)
