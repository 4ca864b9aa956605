"""
E2E Pipeline Test for DetectionManager.

Purpose: Verify the whole submission pipeline without network access.

Tests verify:
- Valid uploads are classified, stored, and later enriched exactly once
- Every failure still produces a stored record with its error kind
- Invalid uploads never reach the model
- Enrichment timeouts and errors never reach the submitter

Strategy:
- Fake Gemini client with a call counter
- Fake reference image service with controllable timing
- Real SqliteDetectionStore and ImageStorage under tmp_path
"""

import asyncio
import json
from unittest.mock import MagicMock

import pytest

from conftest import ALERT_PAYLOAD, FakeGeminiClient, make_jpeg
from core.async_runner import AsyncRunner
from detectors.detection_manager import DetectionManager, SubmissionMetadata
from detectors.interfaces.reference_images import ReferenceImage, ReferenceImageInterface
from detectors.services.classification_service import GeminiClassificationService
from detectors.services.persistence_service import SqliteDetectionStore
from utils.image_storage import ImageStorage

REFERENCE_IMAGES = [
    ReferenceImage(
        url="https://inaturalist-open-data.s3.amazonaws.com/photos/7/medium.jpg",
        description="Queensland Fruit Fly - verified by iNaturalist community",
        source="iNaturalist",
    )
]


class FakeReferenceImages(ReferenceImageInterface):
    """Reference image source with optional delay, gate, or failure."""

    def __init__(self, images=None, delay: float = 0.0, error=None):
        self.images = list(REFERENCE_IMAGES if images is None else images)
        self.delay = delay
        self.error = error
        self.gate: asyncio.Event | None = None
        self.queries = []

    async def find_reference_images(self, query):
        self.queries.append(query)
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.images)


class RecordingStore(SqliteDetectionStore):
    """SqliteDetectionStore that counts reference image patches."""

    def __init__(self, db_path):
        super().__init__(db_path=db_path)
        self.patch_calls = []

    async def patch_reference_images(self, detection_id, images):
        self.patch_calls.append(detection_id)
        await super().patch_reference_images(detection_id, images)


@pytest.fixture
def store(tmp_path):
    return RecordingStore(tmp_path / "detections.db")


def build_manager(pipeline_config, store, client, reference_images=None, **kwargs):
    classifier = GeminiClassificationService(
        client=client, timeout=kwargs.pop("classification_timeout", 2.0)
    )
    return DetectionManager(
        classifier=classifier,
        store=store,
        reference_images=reference_images or FakeReferenceImages(),
        storage=ImageStorage(pipeline_config["OUTPUT_DIR"]),
        runner=AsyncRunner(),
        config=pipeline_config,
        **kwargs,
    )


def submit_and_drain(manager, image_bytes, metadata=None):
    async def _run():
        result = await manager.submit_image(image_bytes, metadata)
        await manager.drain()
        detection = await manager.get_enriched_detection(result.detection_id)
        return result, detection

    return asyncio.run(_run())


class TestSuccessfulSubmission:
    def test_alert_is_stored_and_enriched(self, pipeline_config, store):
        client = FakeGeminiClient(text=json.dumps(ALERT_PAYLOAD))
        manager = build_manager(pipeline_config, store, client)

        result, detection = submit_and_drain(manager, make_jpeg(5 * 1024))

        assert result.ok
        analysis = detection["analysis"]
        assert analysis["threatLevel"] == "high"
        assert analysis["isThreat"] is True
        assert analysis["confidence"] == 0.92
        assert len(analysis["matchingFeatures"]) == 2
        assert detection["species"] == "Queensland Fruit Fly"
        assert detection["error"] is None
        assert detection["enriched"] is True
        assert detection["reference_images"] == [image.to_dict() for image in REFERENCE_IMAGES]
        assert store.patch_calls == [result.detection_id]
        assert client.call_count == 1

    def test_fenced_response_stores_same_analysis(self, pipeline_config, store):
        body = json.dumps(ALERT_PAYLOAD)
        direct = build_manager(pipeline_config, store, FakeGeminiClient(text=body))
        fenced = build_manager(
            pipeline_config, store, FakeGeminiClient(text=f"```json\n{body}\n```")
        )

        _, first = submit_and_drain(direct, make_jpeg())
        _, second = submit_and_drain(fenced, make_jpeg())

        assert first["analysis"] == second["analysis"]

    def test_upload_is_stored_and_addressable(self, pipeline_config, store):
        manager = build_manager(pipeline_config, store, FakeGeminiClient(text=json.dumps(ALERT_PAYLOAD)))
        image = make_jpeg()

        _, detection = submit_and_drain(manager, image)

        handle = detection["storage_handle"]
        assert handle.endswith(".jpg")
        assert detection["image_url"] == f"/uploads/{handle}"
        assert manager.storage.get(handle) == image

    def test_returns_before_enrichment_completes(self, pipeline_config, store):
        references = FakeReferenceImages()
        manager = build_manager(
            pipeline_config, store, FakeGeminiClient(text=json.dumps(ALERT_PAYLOAD)), references
        )

        async def _run():
            references.gate = asyncio.Event()
            result = await manager.submit_image(make_jpeg())
            before = await manager.get_enriched_detection(result.detection_id)
            pending = manager.pending_enrichment_count()
            references.gate.set()
            await manager.drain()
            after = await manager.get_enriched_detection(result.detection_id)
            return before, pending, after

        before, pending, after = asyncio.run(_run())

        assert before["enriched"] is False
        assert before["reference_images"] == []
        assert pending == 1
        assert after["enriched"] is True
        assert manager.pending_enrichment_count() == 0

    def test_consented_location_is_rounded(self, pipeline_config, store):
        manager = build_manager(pipeline_config, store, FakeGeminiClient(text=json.dumps(ALERT_PAYLOAD)))
        metadata = SubmissionMetadata(
            latitude=-36.848461, longitude=174.763336, location_consent=True, session_id="s-1"
        )

        _, detection = submit_and_drain(manager, make_jpeg(), metadata)

        assert detection["latitude"] == -36.848
        assert detection["longitude"] == 174.763
        assert detection["analysis_mode"] == "biosecurity"

    def test_general_mode_does_not_load_species(self, pipeline_config, store):
        species_provider = MagicMock(return_value=())
        client = FakeGeminiClient(
            text=json.dumps({"species": "Honey bee", "confidence": 0.7, "reasoning": "Hairy body"})
        )
        manager = build_manager(
            pipeline_config, store, client, species_provider=species_provider
        )

        result, detection = submit_and_drain(
            manager, make_jpeg(), SubmissionMetadata(mode="general")
        )

        assert result.ok
        assert detection["analysis_mode"] == "general"
        species_provider.assert_not_called()

    def test_unknown_mode_falls_back_to_default(self, pipeline_config, store):
        manager = build_manager(pipeline_config, store, FakeGeminiClient(text=json.dumps(ALERT_PAYLOAD)))

        _, detection = submit_and_drain(manager, make_jpeg(), SubmissionMetadata(mode="tarot"))

        assert detection["analysis_mode"] == "biosecurity"


class TestFailureRecords:
    def test_tiny_buffer_never_reaches_model(self, pipeline_config, store):
        client = FakeGeminiClient(text=json.dumps(ALERT_PAYLOAD))
        references = FakeReferenceImages()
        manager = build_manager(pipeline_config, store, client, references)

        result, detection = submit_and_drain(manager, make_jpeg(50))

        assert result.error_kind == "invalid_image_format"
        assert client.call_count == 0
        assert references.queries == []
        assert detection["species"] == "Analysis Failed"
        assert detection["error"]["kind"] == "invalid_image_format"
        assert detection["image_url"].endswith(".jpg")

    def test_unknown_format_is_stored_as_bin(self, pipeline_config, store):
        manager = build_manager(pipeline_config, store, FakeGeminiClient())

        result, detection = submit_and_drain(manager, b"not an image" * 20)

        assert result.error_kind == "invalid_image_format"
        assert detection["storage_handle"].endswith(".bin")

    def test_classification_timeout_is_stored_without_patch(self, pipeline_config, store):
        client = FakeGeminiClient(text=json.dumps(ALERT_PAYLOAD), delay=5.0)
        references = FakeReferenceImages()
        manager = build_manager(
            pipeline_config, store, client, references, classification_timeout=0.05
        )

        result, detection = submit_and_drain(manager, make_jpeg())

        assert result.error_kind == "classification_timeout"
        assert detection["species"] == "Analysis Failed"
        assert detection["confidence"] == 0.0
        assert detection["ai_response"] == "Error: Analysis timed out. Please try again."
        assert detection["error"] == {
            "kind": "classification_timeout",
            "message": "Analysis timed out. Please try again.",
        }
        assert references.queries == []
        assert store.patch_calls == []

    def test_no_target_species(self, pipeline_config, store):
        client = FakeGeminiClient(text=json.dumps(ALERT_PAYLOAD))
        manager = build_manager(
            pipeline_config, store, client, species_provider=lambda: ()
        )

        result, detection = submit_and_drain(manager, make_jpeg())

        assert result.error_kind == "no_target_species"
        assert client.call_count == 0
        assert detection["error"]["kind"] == "no_target_species"

    def test_malformed_model_output(self, pipeline_config, store):
        manager = build_manager(pipeline_config, store, FakeGeminiClient(text="no json here"))

        result, detection = submit_and_drain(manager, make_jpeg())

        assert result.error_kind == "malformed_model_output"
        assert detection["analysis"] is None
        assert store.patch_calls == []

    def test_unexpected_error_becomes_internal_error(self, pipeline_config, store):
        manager = build_manager(
            pipeline_config, store, FakeGeminiClient(error=ZeroDivisionError("boom"))
        )

        result, detection = submit_and_drain(manager, make_jpeg())

        assert result.error_kind == "internal_error"
        assert detection["error"]["kind"] == "internal_error"


class TestEnrichment:
    def test_enrichment_timeout_leaves_record_unpatched(self, pipeline_config, store):
        pipeline_config["REFERENCE_IMAGE_TIMEOUT"] = 0.05
        references = FakeReferenceImages(delay=5.0)
        manager = build_manager(
            pipeline_config, store, FakeGeminiClient(text=json.dumps(ALERT_PAYLOAD)), references
        )

        result, detection = submit_and_drain(manager, make_jpeg())

        assert result.ok
        assert detection["enriched"] is False
        assert detection["reference_images"] == []
        assert store.patch_calls == []

    def test_enrichment_error_is_contained(self, pipeline_config, store):
        references = FakeReferenceImages(error=RuntimeError("catalog exploded"))
        manager = build_manager(
            pipeline_config, store, FakeGeminiClient(text=json.dumps(ALERT_PAYLOAD)), references
        )

        result, detection = submit_and_drain(manager, make_jpeg())

        assert result.ok
        assert detection["enriched"] is False
        assert store.patch_calls == []

    def test_no_images_means_no_patch(self, pipeline_config, store):
        manager = build_manager(
            pipeline_config,
            store,
            FakeGeminiClient(text=json.dumps(ALERT_PAYLOAD)),
            FakeReferenceImages(images=[]),
        )

        _, detection = submit_and_drain(manager, make_jpeg())

        assert detection["enriched"] is False
        assert store.patch_calls == []

    def test_at_most_one_patch_per_detection(self, pipeline_config, store):
        references = FakeReferenceImages()
        manager = build_manager(
            pipeline_config, store, FakeGeminiClient(text=json.dumps(ALERT_PAYLOAD)), references
        )

        async def _run():
            references.gate = asyncio.Event()
            result = await manager.submit_image(make_jpeg())
            # Race extra enrichment tasks for the same record.
            for _ in range(3):
                manager._schedule_enrichment(result.detection_id, result.analysis)
            references.gate.set()
            await manager.drain()
            return result

        result = asyncio.run(_run())

        assert len(references.queries) == 4
        assert store.patch_calls == [result.detection_id]

    def test_later_enrichment_does_not_repatch(self, pipeline_config, store):
        references = FakeReferenceImages()
        manager = build_manager(
            pipeline_config, store, FakeGeminiClient(text=json.dumps(ALERT_PAYLOAD)), references
        )

        async def _run():
            result = await manager.submit_image(make_jpeg())
            await manager.drain()
            manager._schedule_enrichment(result.detection_id, result.analysis)
            await manager.drain()
            return result

        result = asyncio.run(_run())

        assert len(references.queries) == 2
        assert store.patch_calls == [result.detection_id]
        assert manager._patching_ids == set()

    def test_enrichment_queries_identified_names(self, pipeline_config, store):
        references = FakeReferenceImages()
        manager = build_manager(
            pipeline_config, store, FakeGeminiClient(text=json.dumps(ALERT_PAYLOAD)), references
        )

        submit_and_drain(manager, make_jpeg())

        query = references.queries[0]
        assert query.scientific_name == "Bactrocera tryoni"
        assert query.search_terms() == ["Bactrocera tryoni", "Queensland Fruit Fly"]


class TestReads:
    def test_list_recent_returns_payloads(self, pipeline_config, store):
        manager = build_manager(pipeline_config, store, FakeGeminiClient(text=json.dumps(ALERT_PAYLOAD)))

        async def _run():
            await manager.submit_image(make_jpeg())
            await manager.submit_image(make_jpeg(50))
            await manager.drain()
            return await manager.list_recent(10)

        detections = asyncio.run(_run())

        assert len(detections) == 2
        assert {d["species"] for d in detections} == {"Queensland Fruit Fly", "Analysis Failed"}

    def test_unknown_detection(self, pipeline_config, store):
        manager = build_manager(pipeline_config, store, FakeGeminiClient())
        assert asyncio.run(manager.get_enriched_detection(4040)) is None

    def test_submitter_audit_fields_are_not_returned(self, pipeline_config, store):
        manager = build_manager(pipeline_config, store, FakeGeminiClient(text=json.dumps(ALERT_PAYLOAD)))
        metadata = SubmissionMetadata(
            session_id="secret-session",
            user_agent="UA/1",
            privacy_consent=True,
            location_consent=True,
            latitude=-27.47,
            longitude=153.026,
        )

        async def _run():
            result = await manager.submit_image(make_jpeg(), metadata)
            await manager.drain()
            detection = await manager.get_enriched_detection(result.detection_id)
            return detection, await manager.list_recent(10)

        detection, recent = asyncio.run(_run())
        private = {"session_id", "user_agent", "privacy_consent", "location_consent"}

        assert private.isdisjoint(detection)
        assert private.isdisjoint(recent[0])
        assert detection["latitude"] == -27.47
        assert "ai_response" in detection
        assert "ai_response" not in recent[0]
        assert recent[0]["analysis"]["species"] == "Queensland Fruit Fly"

        record = asyncio.run(store.get_detection(detection["detection_id"]))
        assert record.session_id == "secret-session"
        assert record.user_agent == "UA/1"
