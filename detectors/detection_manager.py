# ------------------------------------------------------------------------------
# Detection Manager Module for Insect Submissions
# detectors/detection_manager.py
# ------------------------------------------------------------------------------
"""
This module defines the DetectionManager class, which orchestrates image
validation, classification, persistence of the primary record, and detached
reference image enrichment.
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Any

from config import get_config
from core.analysis_result import FAILED_SPECIES, AnalysisResult
from core.async_runner import AsyncRunner, async_runner
from core.prompt_builder import ANALYSIS_MODES, MODE_BIOSECURITY
from core.species_core import get_species_snapshot
from detectors.interfaces.classification import (
    ClassificationInterface,
    ClassificationRequest,
)
from detectors.interfaces.persistence import (
    DetectionDraft,
    DetectionRecord,
    DetectionStoreInterface,
)
from detectors.interfaces.reference_images import (
    ReferenceImageInterface,
    ReferenceImageQuery,
)
from logging_config import get_logger
from utils.errors import (
    InternalPipelineError,
    PipelineError,
    ReferenceImageTimeout,
)
from utils.image_storage import ImageStorage
from utils.image_validation import detect_mime_type, validate_image

logger = get_logger(__name__)

# Record fields returned to API callers. Submitter audit fields stay private.
PUBLIC_RECORD_FIELDS = (
    "detection_id",
    "storage_handle",
    "species",
    "confidence",
    "is_threat",
    "threat_level",
    "likelihood",
    "analysis_features",
    "latitude",
    "longitude",
    "analysis_mode",
    "error_kind",
    "created_at",
    "reference_images_updated_at",
)


@dataclass
class SubmissionMetadata:
    """Caller-supplied context for one submission."""

    latitude: float | None = None
    longitude: float | None = None
    session_id: str | None = None
    user_agent: str | None = None
    privacy_consent: bool | None = None
    location_consent: bool | None = None
    mode: str | None = None


@dataclass
class SubmissionResult:
    """
    Outcome of submit_image().

    A detection_id is always present: failures are stored as records too.
    """

    detection_id: int
    analysis: AnalysisResult | None = None
    error: PipelineError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_kind(self) -> str | None:
        if self.error is None:
            return None
        return self.error.kind


class DetectionManager:
    """
    Orchestrates the detection-and-enrichment pipeline.

    Key Responsibilities:
    - Validates the upload and classifies it under a deadline.
    - Stores a primary record before returning, for successes and failures.
    - Schedules reference image enrichment as a detached task that patches
      each record at most once and never raises into the caller.
    """

    def __init__(
        self,
        classifier: ClassificationInterface | None = None,
        store: DetectionStoreInterface | None = None,
        reference_images: ReferenceImageInterface | None = None,
        storage: ImageStorage | None = None,
        species_provider=None,
        runner: AsyncRunner | None = None,
        config: dict | None = None,
    ):
        """
        Wires the pipeline. Collaborators that are not injected are built
        from the application config.

        Raises:
            ConfigurationError: if the classifier cannot be constructed.
        """
        self.config = config or get_config()

        if classifier is None:
            from detectors.services.classification_service import (
                get_classification_service,
            )

            classifier = get_classification_service()
        if store is None:
            from detectors.services.persistence_service import SqliteDetectionStore

            store = SqliteDetectionStore(
                allowed_hosts=self.config["REFERENCE_IMAGE_ALLOWED_HOSTS"]
            )
        if reference_images is None:
            from detectors.services.reference_image_service import (
                build_reference_image_service,
            )

            reference_images = build_reference_image_service(self.config)

        self.classifier = classifier
        self.store = store
        self.reference_images = reference_images
        self.storage = storage or ImageStorage(self.config["OUTPUT_DIR"])
        self.runner = runner or async_runner
        self._species_provider = species_provider or (
            lambda: get_species_snapshot(self.config["SPECIES_CONFIG_PATH"])
        )

        self._min_bytes = self.config["MIN_IMAGE_BYTES"]
        self._max_bytes = self.config["MAX_IMAGE_BYTES"]
        self._reference_timeout = self.config["REFERENCE_IMAGE_TIMEOUT"]
        self._default_mode = self.config["ANALYSIS_MODE"]

        # Strong references keep detached tasks alive until they finish.
        self._enrichment_tasks: set[asyncio.Task] = set()
        self._patching_ids: set[int] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Starts the event loop that hosts the pipeline."""
        if not self.runner.is_running:
            self.runner.start()

    def stop(self, timeout: float = 15.0) -> None:
        """Waits for pending enrichment, then stops the event loop."""
        if not self.runner.is_running:
            return
        try:
            self.runner.run(self.drain(), timeout=timeout)
        except Exception as e:
            logger.warning(f"Enrichment drain did not finish cleanly: {e}")
        self.runner.stop()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def _resolve_mode(self, requested: str | None) -> str:
        mode = (requested or self._default_mode or MODE_BIOSECURITY).lower()
        if mode not in ANALYSIS_MODES:
            logger.warning(f"Unknown analysis mode {mode!r}, using {self._default_mode!r}")
            mode = self._default_mode if self._default_mode in ANALYSIS_MODES else MODE_BIOSECURITY
        return mode

    def _store_upload(self, image_bytes: bytes) -> str:
        try:
            return self.storage.save(image_bytes, detect_mime_type(image_bytes or b""))
        except OSError as e:
            logger.error(f"Failed to store upload: {e}", exc_info=True)
            return ""

    async def submit_image(
        self, image_bytes: bytes, metadata: SubmissionMetadata | None = None
    ) -> SubmissionResult:
        """
        Runs one submission through the pipeline.

        The primary record is written before this returns; reference image
        enrichment is scheduled afterwards and not awaited.

        Returns:
            SubmissionResult with the stored detection_id, the analysis on
            success, or the PipelineError that produced a failure record.
        """
        metadata = metadata or SubmissionMetadata()
        mode = self._resolve_mode(metadata.mode)
        image_bytes = image_bytes or b""
        handle = await asyncio.to_thread(self._store_upload, image_bytes)

        try:
            mime_type = validate_image(image_bytes, self._min_bytes, self._max_bytes)
            species = ()
            if mode == MODE_BIOSECURITY:
                species = await asyncio.to_thread(self._species_provider)
            request = ClassificationRequest(
                image_bytes=image_bytes,
                mime_type=mime_type,
                species=tuple(species),
                mode=mode,
            )
            analysis = await self.classifier.classify(request)
        except PipelineError as e:
            logger.warning(f"Analysis failed ({e.kind}): {e.message}")
            return await self._store_failure(handle, metadata, mode, e)
        except Exception as e:
            logger.error(f"Unexpected analysis error: {e}", exc_info=True)
            return await self._store_failure(
                handle, metadata, mode, InternalPipelineError(str(e) or "Unknown error")
            )

        draft = DetectionDraft(
            storage_handle=handle,
            species=analysis.species,
            confidence=analysis.confidence,
            is_threat=analysis.is_threat,
            threat_level=analysis.threat_level,
            likelihood=analysis.likelihood.value if analysis.likelihood else None,
            ai_response=json.dumps(analysis.to_dict()),
            analysis_features=analysis.anatomical_features or analysis.matching_features,
            **self._audit_fields(metadata, mode),
        )
        detection_id = await self.store.create_detection(draft)
        self._schedule_enrichment(detection_id, analysis)
        return SubmissionResult(detection_id=detection_id, analysis=analysis)

    @staticmethod
    def _audit_fields(metadata: SubmissionMetadata, mode: str) -> dict[str, Any]:
        return {
            "latitude": metadata.latitude,
            "longitude": metadata.longitude,
            "session_id": metadata.session_id,
            "user_agent": metadata.user_agent,
            "privacy_consent": metadata.privacy_consent,
            "location_consent": metadata.location_consent,
            "analysis_mode": mode,
        }

    async def _store_failure(
        self,
        handle: str,
        metadata: SubmissionMetadata,
        mode: str,
        error: PipelineError,
    ) -> SubmissionResult:
        draft = DetectionDraft(
            storage_handle=handle,
            species=FAILED_SPECIES,
            confidence=0.0,
            is_threat=False,
            threat_level="safe",
            ai_response=f"Error: {error.message}",
            error_kind=error.kind,
            **self._audit_fields(metadata, mode),
        )
        detection_id = await self.store.create_detection(draft)
        return SubmissionResult(detection_id=detection_id, error=error)

    # ------------------------------------------------------------------
    # Enrichment
    # ------------------------------------------------------------------

    def _schedule_enrichment(self, detection_id: int, analysis: AnalysisResult) -> None:
        task = asyncio.create_task(
            self._enrich(detection_id, analysis), name=f"enrich-{detection_id}"
        )
        self._enrichment_tasks.add(task)
        task.add_done_callback(self._enrichment_tasks.discard)

    async def _enrich(self, detection_id: int, analysis: AnalysisResult) -> None:
        query = ReferenceImageQuery(
            species=analysis.species,
            scientific_name=analysis.scientific_name,
            common_name=analysis.common_name,
        )
        try:
            async with asyncio.timeout(self._reference_timeout):
                images = await self.reference_images.find_reference_images(query)
        except TimeoutError:
            logger.warning(
                f"{ReferenceImageTimeout.__doc__} (detection {detection_id}, "
                f"{self._reference_timeout}s)"
            )
            return
        except Exception as e:
            logger.error(
                f"Reference image lookup failed for detection {detection_id}: {e}",
                exc_info=True,
            )
            return

        if not images:
            logger.info(f"No reference images found for detection {detection_id}")
            return

        # Claim the id before awaiting so a racing task cannot patch concurrently;
        # once the claim is released the stored record blocks a second patch.
        if detection_id in self._patching_ids:
            logger.warning(f"Detection {detection_id} is being enriched; skipping patch")
            return
        self._patching_ids.add(detection_id)

        try:
            record = await self.store.get_detection(detection_id)
            if record is None or record.reference_images is not None:
                logger.warning(f"Detection {detection_id} already enriched; skipping patch")
                return
            await self.store.patch_reference_images(
                detection_id, [image.to_dict() for image in images]
            )
        except Exception as e:
            logger.error(
                f"Failed to patch reference images for detection {detection_id}: {e}",
                exc_info=True,
            )
        finally:
            self._patching_ids.discard(detection_id)

    async def drain(self) -> None:
        """Waits until every scheduled enrichment task has finished."""
        while self._enrichment_tasks:
            await asyncio.gather(*list(self._enrichment_tasks), return_exceptions=True)

    def pending_enrichment_count(self) -> int:
        return len(self._enrichment_tasks)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _record_to_payload(
        self, record: DetectionRecord, include_ai_response: bool = True
    ) -> dict[str, Any]:
        payload = {field: getattr(record, field) for field in PUBLIC_RECORD_FIELDS}
        if include_ai_response:
            payload["ai_response"] = record.ai_response
        payload["image_url"] = (
            self.storage.get_url(record.storage_handle) if record.storage_handle else None
        )
        payload["reference_images"] = record.reference_images or []
        payload["enriched"] = record.reference_images is not None

        if record.is_failure:
            payload["analysis"] = None
            payload["error"] = {
                "kind": record.error_kind,
                "message": record.ai_response.removeprefix("Error: "),
            }
            return payload

        try:
            analysis = json.loads(record.ai_response) if record.ai_response else None
        except ValueError:
            logger.warning(f"Detection {record.detection_id} has unparseable ai_response")
            analysis = None
        payload["analysis"] = analysis if isinstance(analysis, dict) else None
        payload["error"] = None
        return payload

    async def get_enriched_detection(self, detection_id: int) -> dict[str, Any] | None:
        """
        Returns the stored detection with whatever enrichment has landed.

        Reference images are empty until enrichment patches the record, and
        stay empty if enrichment failed or timed out.
        """
        record = await self.store.get_detection(detection_id)
        if record is None:
            return None
        return self._record_to_payload(record)

    async def list_recent(self, limit: int = 20) -> list[dict[str, Any]]:
        """Newest detections first, without the raw model response."""
        records = await self.store.list_recent(limit)
        return [
            self._record_to_payload(record, include_ai_response=False) for record in records
        ]
