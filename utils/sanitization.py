"""
Output sanitization helpers.

Applied to model output and catalog data before anything is persisted or
returned to clients. URL checks never raise to the caller: a rejected URL
yields None and the item is dropped.
"""

import logging
import math
import re
from urllib.parse import urlsplit

from utils.errors import SanitizationRejection

logger = logging.getLogger(__name__)

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
# Browsers treat a backslash as "/" and strip whitespace, changing the resolved host.
_URL_UNSAFE_CHARS = re.compile(r"[\\\s\x00-\x1f\x7f]")
_SPECIES_DISALLOWED = re.compile(r"[^a-zA-Z0-9\s\-().,']")

MAX_URL_LENGTH = 500
MAX_SPECIES_NAME_LENGTH = 200
MAX_REFERENCE_IMAGES = 5

DEFAULT_ALLOWED_HOSTS = (
    "inaturalist.org",
    "commons.wikimedia.org",
    "upload.wikimedia.org",
    "inaturalist-open-data.s3.amazonaws.com",
)


def sanitize_string(value, max_length: int = 1000) -> str:
    """Strips control characters and surrounding whitespace, then truncates."""
    if not value:
        return ""
    cleaned = _CONTROL_CHARS.sub("", str(value)).strip()
    # Truncation can expose trailing whitespace; strip again so the result is stable.
    return cleaned[:max_length].strip()


def sanitize_species_name(name) -> str:
    """Keeps letters, digits, whitespace and - ( ) . , ' only."""
    if not name:
        return ""
    cleaned = _SPECIES_DISALLOWED.sub("", str(name))
    return cleaned[:MAX_SPECIES_NAME_LENGTH].strip()


def _host_allowed(host: str, allowed_hosts) -> bool:
    return any(host == domain or host.endswith("." + domain) for domain in allowed_hosts)


def _check_url(url, allowed_hosts) -> str:
    if not isinstance(url, str) or not url:
        raise SanitizationRejection("empty url")
    if _URL_UNSAFE_CHARS.search(url):
        raise SanitizationRejection("backslash, whitespace or control character in url")
    try:
        parts = urlsplit(url)
        host = (parts.hostname or "").lower()
    except ValueError as e:
        raise SanitizationRejection(f"unparseable url: {e}") from e

    if parts.scheme not in ("http", "https"):
        raise SanitizationRejection(f"scheme not allowed: {parts.scheme!r}")
    if parts.username is not None or parts.password is not None:
        raise SanitizationRejection("credentials in url")
    if not host or not _host_allowed(host, allowed_hosts):
        raise SanitizationRejection(f"host not allowed: {host!r}")
    if len(url) > MAX_URL_LENGTH:
        raise SanitizationRejection(f"url longer than {MAX_URL_LENGTH} characters")
    return url


def sanitize_url(url, allowed_hosts=DEFAULT_ALLOWED_HOSTS) -> str | None:
    """Returns the URL if it passes scheme/host/length checks, else None."""
    try:
        return _check_url(url, allowed_hosts)
    except SanitizationRejection as e:
        logger.debug(f"Dropped url {str(url)[:80]!r}: {e.message}")
        return None


def round_coordinate(value: float) -> float:
    """Rounds a coordinate to 3 decimal degrees (~110 m)."""
    return round(float(value), 3)


def is_valid_coordinate(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def sanitize_reference_images(
    images, allowed_hosts=DEFAULT_ALLOWED_HOSTS
) -> list[dict]:
    """
    Sanitizes a list of reference image dicts.

    Entries whose URL fails sanitize_url() are dropped; the survivors are
    capped at MAX_REFERENCE_IMAGES.
    """
    if not isinstance(images, (list, tuple)):
        return []

    sanitized = []
    for image in images:
        if hasattr(image, "to_dict"):
            image = image.to_dict()
        if not isinstance(image, dict):
            continue
        url = sanitize_url(image.get("url"), allowed_hosts)
        if not url:
            continue
        entry = {
            "url": url,
            "description": sanitize_string(image.get("description"), 300),
        }
        if image.get("source"):
            entry["source"] = sanitize_string(image["source"], 100)
        sanitized.append(entry)

    return sanitized[:MAX_REFERENCE_IMAGES]
