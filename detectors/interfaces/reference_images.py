"""
Reference Image Interface - Illustrative Species Photographs.

Defines the contract for looking up reference photos of an identified
species in external catalogs.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ReferenceImage:
    """
    A reference photograph of a species.

    Attributes:
        url: Direct image URL on a catalog host.
        description: Short caption.
        source: Catalog name (e.g., "iNaturalist").
    """

    url: str
    description: str
    source: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReferenceImage":
        return cls(
            url=data["url"],
            description=data.get("description", ""),
            source=data.get("source"),
        )

    def to_dict(self) -> dict[str, Any]:
        data = {"url": self.url, "description": self.description}
        if self.source:
            data["source"] = self.source
        return data


@dataclass(frozen=True)
class ReferenceImageQuery:
    """Names of an identified species, any of which may be empty."""

    species: str = ""
    scientific_name: str = ""
    common_name: str = ""

    def search_terms(self) -> list[str]:
        """
        Ordered, de-duplicated search terms.

        Scientific name first, then the species field, then the common name.
        """
        terms: list[str] = []
        for value in (self.scientific_name, self.species, self.common_name):
            term = (value or "").strip()
            if term and term not in terms:
                terms.append(term)
        return terms


class ReferenceImageInterface(ABC):
    """
    Interface for reference image aggregation.

    Implementations must never raise: any catalog failure degrades to
    fewer (or zero) images.
    """

    @abstractmethod
    async def find_reference_images(
        self, query: ReferenceImageQuery
    ) -> list[ReferenceImage]:
        """
        Looks up reference images for a species.

        Returns:
            At most 3 images, unique by URL.
        """
        pass
