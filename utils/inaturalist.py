"""iNaturalist taxon photo lookup."""

import asyncio
import logging
import re

import httpx

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.inaturalist.org/v1"
DEFAULT_TIMEOUT = 5.0
MAX_PHOTOS = 3
EXTRA_PHOTOS_PER_TAXON = 3

_SIZE_SUFFIX = re.compile(r"/(square|small|original|large)\.(jpg|jpeg|png)", re.IGNORECASE)

SOURCE_NAME = "iNaturalist"


def to_medium_url(url: str | None) -> str:
    """Rewrites an iNaturalist photo URL to its medium size variant."""
    if not url:
        return ""
    return _SIZE_SUFFIX.sub(lambda m: f"/medium.{m.group(2)}", url)


def _photo_url(photo) -> str:
    if not isinstance(photo, dict):
        return ""
    return to_medium_url(photo.get("medium_url") or photo.get("url") or photo.get("square_url"))


def _taxon_label(taxon: dict) -> str:
    return taxon.get("preferred_common_name") or taxon.get("name") or "Unknown taxon"


async def _get_json(client: httpx.AsyncClient, url: str, params=None, timeout=DEFAULT_TIMEOUT):
    """GET with a hard deadline; returns parsed JSON or None on any failure."""
    try:
        async with asyncio.timeout(timeout):
            response = await client.get(url, params=params)
        response.raise_for_status()
        return response.json()
    except TimeoutError:
        logger.warning(f"iNaturalist request timed out after {timeout}s: {url}")
    except httpx.HTTPStatusError as e:
        logger.warning(f"iNaturalist returned {e.response.status_code} for {url}")
    except httpx.HTTPError as e:
        logger.warning(f"iNaturalist request failed for {url}: {e}")
    except ValueError as e:
        logger.warning(f"iNaturalist returned malformed JSON for {url}: {e}")
    return None


async def fetch_taxon_photos(
    client: httpx.AsyncClient,
    taxon_id,
    api_url: str = DEFAULT_API_URL,
    timeout: float = DEFAULT_TIMEOUT,
) -> list[str]:
    """Returns up to EXTRA_PHOTOS_PER_TAXON medium photo URLs for a taxon."""
    data = await _get_json(
        client, f"{api_url}/taxa/{taxon_id}", params={"locale": "en"}, timeout=timeout
    )
    if not isinstance(data, dict):
        return []
    results = data.get("results") or []
    if not results or not isinstance(results[0], dict):
        return []

    urls = []
    for entry in (results[0].get("taxon_photos") or [])[:EXTRA_PHOTOS_PER_TAXON]:
        url = _photo_url(entry.get("photo") if isinstance(entry, dict) else None)
        if url:
            urls.append(url)
    return urls


async def fetch_inaturalist_images(
    client: httpx.AsyncClient,
    search_term: str,
    api_url: str = DEFAULT_API_URL,
    timeout: float = DEFAULT_TIMEOUT,
) -> list[dict]:
    """
    Searches iNaturalist for a term and returns reference image dicts.

    Each matching taxon contributes its default photo; while fewer than
    MAX_PHOTOS images have been collected, extra photos are fetched from the
    full taxon record. Every request is bounded by ``timeout`` and any
    failure yields an empty contribution, never an exception.

    Returns:
        List of {"url", "description", "source"} dicts, at most MAX_PHOTOS.
    """
    logger.debug(f"iNaturalist search for: {search_term!r}")
    data = await _get_json(
        client,
        f"{api_url}/taxa/autocomplete",
        params={"q": search_term, "per_page": 5},
        timeout=timeout,
    )
    if not isinstance(data, dict):
        return []

    taxa = data.get("results") or []
    logger.debug(f"iNaturalist found {len(taxa)} taxa for {search_term!r}")

    images: list[dict] = []
    seen: set[str] = set()

    def _add(url: str, description: str) -> None:
        if url and url not in seen and len(images) < MAX_PHOTOS:
            seen.add(url)
            images.append({"url": url, "description": description, "source": SOURCE_NAME})

    for taxon in taxa:
        if not isinstance(taxon, dict):
            continue
        label = _taxon_label(taxon)
        _add(_photo_url(taxon.get("default_photo")), f"{label} - verified by iNaturalist community")

        if taxon.get("id") and len(images) < MAX_PHOTOS:
            for url in await fetch_taxon_photos(client, taxon["id"], api_url, timeout):
                _add(url, f"{label} reference photo")

        if len(images) >= MAX_PHOTOS:
            break

    return images
