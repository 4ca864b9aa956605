"""
Shared fixtures for the pipeline tests.

Provides synthetic image buffers, an isolated configuration rooted in a
temp directory, and a fake Gemini client that records every call.
"""

import asyncio
import json
from types import SimpleNamespace

import pytest

from config import load_config

JPEG_HEADER = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00"
PNG_HEADER = b"\x89PNG\r\n\x1a\n"


def make_jpeg(size: int = 5 * 1024) -> bytes:
    """Returns a buffer with a JPEG signature padded to ``size`` bytes."""
    return JPEG_HEADER + b"\x00" * (size - len(JPEG_HEADER))


def make_png(size: int = 2048) -> bytes:
    return PNG_HEADER + b"\x00" * (size - len(PNG_HEADER))


def make_webp(size: int = 2048) -> bytes:
    body = b"WEBPVP8 " + b"\x00" * (size - 16)
    return b"RIFF" + (size - 8).to_bytes(4, "little") + body


ALERT_PAYLOAD = {
    "qflyLikelihood": "ALERT",
    "confidence": 0.92,
    "species": "Queensland Fruit Fly",
    "scientificName": "Bactrocera tryoni",
    "commonName": "Queensland Fruit Fly",
    "reasoning": "Yellow scutellum and costal band visible.",
    "matchingFeatures": ["Yellow scutellum", "Dark costal band"],
    "excludingFeatures": [],
    "threatLevel": "low",
    "isThreat": False,
}


class FakeModels:
    """Stands in for ``client.aio.models``; counts generate_content calls."""

    def __init__(self, text="", delay: float = 0.0, error: Exception | None = None):
        self.text = text
        self.delay = delay
        self.error = error
        self.calls = []

    async def generate_content(self, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.text)


class FakeGeminiClient:
    def __init__(self, text="", delay: float = 0.0, error: Exception | None = None):
        self.models = FakeModels(text=text, delay=delay, error=error)
        self.aio = SimpleNamespace(models=self.models)

    @property
    def call_count(self) -> int:
        return len(self.models.calls)


@pytest.fixture
def jpeg_bytes():
    return make_jpeg()


@pytest.fixture
def alert_json():
    return json.dumps(ALERT_PAYLOAD)


@pytest.fixture
def pipeline_config(tmp_path):
    """Application config isolated under tmp_path with short deadlines."""
    cfg = load_config()
    cfg.update(
        {
            "OUTPUT_DIR": str(tmp_path),
            "SPECIES_CONFIG_PATH": str(tmp_path / "species.yaml"),
            "ANALYSIS_MODE": "biosecurity",
            "CLASSIFICATION_TIMEOUT": 2.0,
            "REFERENCE_IMAGE_TIMEOUT": 2.0,
            "CATALOG_TIMEOUT": 1.0,
            "GEMINI_API_KEY": "",
        }
    )
    return cfg
