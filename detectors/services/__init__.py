"""
Detection Pipeline Services.

This package contains concrete implementations of the pipeline interfaces.
Each service encapsulates a specific responsibility and can be tested independently.

ARCHITECTURE:
- Services implement interfaces from detectors/interfaces/
- Services may use utils/ for low-level operations
- DetectionManager orchestrates these services
"""

from detectors.services.classification_service import (
    GeminiClassificationService,
    get_classification_service,
)
from detectors.services.persistence_service import SqliteDetectionStore
from detectors.services.reference_image_service import (
    ReferenceImageService,
    build_reference_image_service,
)

__all__ = [
    "GeminiClassificationService",
    "ReferenceImageService",
    "SqliteDetectionStore",
    "build_reference_image_service",
    "get_classification_service",
]
