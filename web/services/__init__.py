"""
PestWatch Services Package.

This package contains service layer classes that encapsulate business logic,
separating it from Flask routes for better testability and maintainability.

ARCHITECTURE RULE:
- Services may ONLY import from core/* modules
- Services MUST NOT import directly from utils/, detectors/
"""

from web.services import detection_service

__all__ = [
    "detection_service",
]
