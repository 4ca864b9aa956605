"""Wikimedia Commons file search helpers."""

import asyncio
import logging
import re
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://commons.wikimedia.org/w/api.php"
DEFAULT_TIMEOUT = 5.0
MAX_PHOTOS = 2

PHOTO_EXTENSIONS = (".jpg", ".jpeg", ".png")

# Filenames containing any of these are scans, maps or artwork, not specimen photos.
NON_PHOTO_PATTERNS = (
    "document",
    "report",
    "circular",
    "page",
    "cover",
    "historic",
    "archived",
    "pdf",
    "map",
    "diagram",
    "chart",
    "graph",
    "logo",
    "icon",
    "flag",
    "stamp",
    "distribution",
    "range",
)

SOURCE_NAME = "Wikimedia Commons"

_EXTENSION = re.compile(r"\.[^.]+$")


def _normalize_file_name(title: str | None) -> str:
    """Strips the File: namespace prefix from a search hit title."""
    if not title:
        return ""
    return title.removeprefix("File:").strip()


def is_photo_file(file_name: str) -> bool:
    """True when the name has a photo extension and no non-photo pattern."""
    lowered = file_name.lower()
    if not lowered.endswith(PHOTO_EXTENSIONS):
        return False
    return not any(pattern in lowered for pattern in NON_PHOTO_PATTERNS)


def build_commons_file_url(file_name: str, width: int = 400) -> str:
    """Builds the Special:FilePath URL that serves a resized Commons file."""
    return (
        f"https://commons.wikimedia.org/wiki/Special:FilePath/"
        f"{quote(file_name, safe='')}?width={width}"
    )


def _describe(file_name: str) -> str:
    return _EXTENSION.sub("", file_name.replace("_", " "))[:100]


async def fetch_wikimedia_images(
    client: httpx.AsyncClient,
    search_term: str,
    api_url: str = DEFAULT_API_URL,
    timeout: float = DEFAULT_TIMEOUT,
) -> list[dict]:
    """
    Searches the Commons file namespace for specimen photos.

    Returns:
        Up to MAX_PHOTOS {"url", "description", "source"} dicts; empty on
        timeout, HTTP error or malformed response.
    """
    if not search_term or not search_term.strip():
        return []

    params = {
        "action": "query",
        "format": "json",
        "list": "search",
        "srsearch": search_term.strip(),
        "srnamespace": 6,  # File namespace
        "srlimit": 10,
        "origin": "*",
    }

    logger.debug(f"Wikimedia search for: {search_term!r}")
    try:
        async with asyncio.timeout(timeout):
            response = await client.get(api_url, params=params)
        response.raise_for_status()
        data = response.json()
    except TimeoutError:
        logger.warning(f"Wikimedia search timed out after {timeout}s for {search_term!r}")
        return []
    except httpx.HTTPError as e:
        logger.warning(f"Wikimedia search failed for {search_term!r}: {e}")
        return []
    except ValueError as e:
        logger.warning(f"Wikimedia returned malformed JSON for {search_term!r}: {e}")
        return []

    query = data.get("query") if isinstance(data, dict) else None
    hits = query.get("search") if isinstance(query, dict) else None
    if not isinstance(hits, list):
        return []

    images = []
    for hit in hits:
        file_name = _normalize_file_name(hit.get("title") if isinstance(hit, dict) else None)
        if not file_name or not is_photo_file(file_name):
            continue
        images.append(
            {
                "url": build_commons_file_url(file_name),
                "description": _describe(file_name),
                "source": SOURCE_NAME,
            }
        )
        if len(images) >= MAX_PHOTOS:
            break

    logger.debug(f"Wikimedia kept {len(images)} of {len(hits)} files for {search_term!r}")
    return images
