"""
Persistence Interface - Detection Record Storage.

Defines the contract for the detection record lifecycle: one primary write
that is complete except for reference images, and at most one later patch
that fills them in.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


def _utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


@dataclass
class DetectionDraft:
    """
    Fields for the primary write of a detection record.

    Attributes:
        storage_handle: Handle of the stored upload.
        species: Identified species, or the failure sentinel.
        ai_response: Serialized AnalysisResult JSON, or "Error: <message>".
        analysis_features: Visible features backing the verdict.
        latitude / longitude: Raw coordinates; only persisted with
            location_consent and always rounded by the store.
        error_kind: Error taxonomy kind for failure records, None otherwise.
    """

    storage_handle: str
    species: str
    confidence: float = 0.0
    is_threat: bool = False
    threat_level: str = "safe"
    likelihood: str | None = None
    ai_response: str = ""
    analysis_features: list[str] = field(default_factory=list)
    latitude: float | None = None
    longitude: float | None = None
    session_id: str | None = None
    user_agent: str | None = None
    privacy_consent: bool | None = None
    location_consent: bool | None = None
    analysis_mode: str | None = None
    error_kind: str | None = None
    created_at: str = field(default_factory=_utc_now_iso)


@dataclass
class DetectionRecord:
    """A persisted detection as read back from the store."""

    detection_id: int
    storage_handle: str
    species: str
    confidence: float
    is_threat: bool
    threat_level: str
    created_at: str
    likelihood: str | None = None
    ai_response: str = ""
    analysis_features: list[str] = field(default_factory=list)
    reference_images: list[dict[str, Any]] | None = None
    reference_images_updated_at: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    session_id: str | None = None
    user_agent: str | None = None
    privacy_consent: bool | None = None
    location_consent: bool | None = None
    analysis_mode: str | None = None
    error_kind: str | None = None

    @property
    def is_failure(self) -> bool:
        return self.error_kind is not None


class DetectionStoreInterface(ABC):
    """
    Interface for the detection record store.

    Implementations must:
    - Sanitize every externally sourced field before writing
    - Persist coordinates only when location consent is given
    - Give patch_reference_images overwrite-whole-field semantics
    """

    @abstractmethod
    async def create_detection(self, draft: DetectionDraft) -> int:
        """
        Writes the primary record.

        Args:
            draft: Complete detection fields except reference images.

        Returns:
            The new detection ID.
        """
        pass

    @abstractmethod
    async def patch_reference_images(
        self, detection_id: int, images: list[dict[str, Any]]
    ) -> None:
        """
        Replaces the reference images of a detection.

        Args:
            detection_id: Target record.
            images: Reference image dicts ({url, description, source?}).
        """
        pass

    @abstractmethod
    async def get_detection(self, detection_id: int) -> DetectionRecord | None:
        """Returns the record, or None if it does not exist."""
        pass

    @abstractmethod
    async def list_recent(self, limit: int = 20) -> list[DetectionRecord]:
        """Returns the newest records first (limit capped at 100)."""
        pass
