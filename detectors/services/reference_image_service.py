"""
Reference Image Service - Multi-catalog reference photo aggregation.

Implements ReferenceImageInterface. iNaturalist is queried term by term
until one term yields photos; Wikimedia Commons tops the list up when
fewer than two photos were found. Results are de-duplicated by URL across
both catalogs and capped at three.
"""

import httpx

from detectors.interfaces.reference_images import (
    ReferenceImage,
    ReferenceImageInterface,
    ReferenceImageQuery,
)
from logging_config import get_logger
from utils import inaturalist, wikimedia

logger = get_logger(__name__)

MAX_REFERENCE_IMAGES = 3
FALLBACK_THRESHOLD = 2


class ReferenceImageService(ReferenceImageInterface):
    """
    Aggregates reference images from iNaturalist and Wikimedia Commons.

    Every HTTP call is individually bounded by ``catalog_timeout``. The
    service never raises; failures degrade to fewer images.
    """

    def __init__(
        self,
        inaturalist_url: str = inaturalist.DEFAULT_API_URL,
        wikimedia_url: str = wikimedia.DEFAULT_API_URL,
        catalog_timeout: float = 5.0,
        user_agent: str = "PestWatch/1.0",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Args:
            inaturalist_url: iNaturalist API base (".../v1").
            wikimedia_url: Commons api.php endpoint.
            catalog_timeout: Deadline in seconds for each HTTP call.
            user_agent: User-Agent header sent to both catalogs.
            transport: Optional httpx transport (tests use MockTransport).
        """
        self._inaturalist_url = inaturalist_url.rstrip("/")
        self._wikimedia_url = wikimedia_url
        self._catalog_timeout = catalog_timeout
        self._user_agent = user_agent
        self._transport = transport

    def _make_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers={"User-Agent": self._user_agent},
            timeout=self._catalog_timeout,
            transport=self._transport,
            follow_redirects=True,
        )

    async def find_reference_images(
        self, query: ReferenceImageQuery
    ) -> list[ReferenceImage]:
        try:
            async with self._make_client() as client:
                return await self._aggregate(client, query)
        except Exception as e:
            # The aggregate never fails the caller; worst case is no images.
            logger.error(f"Reference image aggregation failed: {e}", exc_info=True)
            return []

    async def _aggregate(
        self, client: httpx.AsyncClient, query: ReferenceImageQuery
    ) -> list[ReferenceImage]:
        terms = query.search_terms()
        logger.debug(f"Reference image search terms: {terms}")

        images: list[ReferenceImage] = []
        seen: set[str] = set()

        def _merge(found: list[dict]) -> None:
            for item in found:
                url = item.get("url")
                if url and url not in seen and len(images) < MAX_REFERENCE_IMAGES:
                    seen.add(url)
                    images.append(ReferenceImage.from_dict(item))

        for term in terms:
            if len(images) >= FALLBACK_THRESHOLD:
                break
            found = await inaturalist.fetch_inaturalist_images(
                client, term, self._inaturalist_url, self._catalog_timeout
            )
            _merge(found)
            if found:
                logger.debug(f"iNaturalist returned {len(found)} images for {term!r}")
                break

        scientific_name = (query.scientific_name or "").strip()
        if len(images) < FALLBACK_THRESHOLD and scientific_name:
            _merge(
                await wikimedia.fetch_wikimedia_images(
                    client, scientific_name, self._wikimedia_url, self._catalog_timeout
                )
            )

        logger.info(f"Found {len(images)} reference images for {terms[:1] or query}")
        return images[:MAX_REFERENCE_IMAGES]


def build_reference_image_service(cfg: dict) -> ReferenceImageService:
    """Creates a ReferenceImageService from the application config."""
    return ReferenceImageService(
        inaturalist_url=cfg["INATURALIST_API_URL"],
        wikimedia_url=cfg["WIKIMEDIA_API_URL"],
        catalog_timeout=cfg["CATALOG_TIMEOUT"],
        user_agent=cfg["HTTP_USER_AGENT"],
    )
