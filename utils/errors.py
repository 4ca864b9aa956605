"""
Pipeline Error Taxonomy.

Every failure that can reach the top of the submission path is one of these
classes. The ``kind`` attribute is the stable identifier stored alongside
failure records and returned to API clients.
"""


class PipelineError(Exception):
    """Base class for detection pipeline failures."""

    kind = "pipeline_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__ or self.kind)
        self.message = message or (self.__class__.__doc__ or self.kind).strip()


class ConfigurationError(PipelineError):
    """Service is misconfigured."""

    kind = "configuration_error"


class NoTargetSpeciesConfigured(ConfigurationError):
    """No active target species are configured."""

    kind = "no_target_species"


class InvalidImageFormat(PipelineError):
    """Uploaded file is not a supported JPEG, PNG or WebP image."""

    kind = "invalid_image_format"


class ClassificationTimeout(PipelineError):
    """Classification model did not answer before the deadline."""

    kind = "classification_timeout"


class ReferenceImageTimeout(PipelineError):
    """Reference image lookup did not finish before the deadline."""

    kind = "reference_image_timeout"


class MalformedModelOutput(PipelineError):
    """Classification model returned no parseable JSON object."""

    kind = "malformed_model_output"


class ModelServiceError(PipelineError):
    """Classification model request failed."""

    kind = "model_service_error"


class SanitizationRejection(PipelineError):
    """A value was rejected by output sanitization."""

    kind = "sanitization_rejection"


class InternalPipelineError(PipelineError):
    """Unexpected internal error."""

    kind = "internal_error"
