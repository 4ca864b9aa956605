"""
PestWatch Core Package.

This package contains the core business logic of the application,
separated from the web layer. Analysis normalization, prompt assembly,
target species configuration and the event loop bridge live here.

ARCHITECTURE RULES:
- core/ modules may only import from:
  - Python standard library
  - utils/ (adapters)
  - detectors/ (for detection-related orchestration)
  - config (for global configuration)

- core/ modules MUST NOT import from:
  - web/ (no Flask dependencies)
  - flask, werkzeug, or any web-specific packages

- All new business logic should be placed here, not in web/
"""

__all__ = [
    "analysis_result",
    "async_runner",
    "detections_core",
    "prompt_builder",
    "species_core",
]
