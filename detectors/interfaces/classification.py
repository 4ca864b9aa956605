"""
Classification Interface - Insect Image Classification.

Defines the contract for turning a validated image into an AnalysisResult.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from core.analysis_result import AnalysisResult
from core.species_core import TargetSpecies


@dataclass(frozen=True)
class ClassificationRequest:
    """
    One classification call, built once per submission.

    Attributes:
        image_bytes: Validated image buffer.
        mime_type: MIME type detected from the magic bytes.
        species: Immutable snapshot of the configured target species.
        mode: Analysis mode ("biosecurity" or "general").
    """

    image_bytes: bytes
    mime_type: str
    species: tuple[TargetSpecies, ...] = ()
    mode: str = "biosecurity"


class ClassificationInterface(ABC):
    """
    Interface for insect classification.

    Implementations should handle:
    - Prompt and schema selection for the request's mode
    - Exactly one model call under a deadline
    - Extraction and normalization of the model's JSON output
    """

    @abstractmethod
    async def classify(self, request: ClassificationRequest) -> AnalysisResult:
        """
        Classifies the insect in the request's image.

        Raises:
            NoTargetSpeciesConfigured: biosecurity mode with no active species.
            ClassificationTimeout: the model missed its deadline.
            MalformedModelOutput: no JSON object could be extracted.
            ModelServiceError: the model request itself failed.
        """
        pass

    @abstractmethod
    def get_model_id(self) -> str:
        """
        Returns the model identifier.

        Returns:
            String identifying the model (name or version).
        """
        pass

    @abstractmethod
    def is_ready(self) -> bool:
        """
        Checks if the classifier is ready for inference.

        Returns:
            True if the client is configured.
        """
        pass
