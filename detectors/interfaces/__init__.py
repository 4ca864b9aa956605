"""
Detection Pipeline Interfaces.

This package defines the abstract interfaces for all components
of the detection pipeline. These interfaces enable:
- Clear service boundaries
- Dependency injection
- Independent testing of each component

ARCHITECTURE:
- DetectionManager only coordinates these interfaces
- Concrete implementations live in services/
- No direct dependencies between implementations
"""

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
    ReferenceImage,
    ReferenceImageInterface,
    ReferenceImageQuery,
)

__all__ = [
    # Interfaces
    "ClassificationInterface",
    "DetectionStoreInterface",
    "ReferenceImageInterface",
    # Data Classes
    "ClassificationRequest",
    "DetectionDraft",
    "DetectionRecord",
    "ReferenceImage",
    "ReferenceImageQuery",
]
