"""
Classification Service - Insect Classification via Gemini.

Implements ClassificationInterface on top of the google-genai async client.
One request makes exactly one model call, raced against a deadline; the
reply is reduced to a JSON object and normalized into an AnalysisResult.
"""

import asyncio
import threading

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from config import get_config
from core.analysis_result import AnalysisResult, normalize_analysis
from core.prompt_builder import build_prompt_bundle
from core.species_core import DEFAULT_REPORTING_PHONE
from detectors.interfaces.classification import (
    ClassificationInterface,
    ClassificationRequest,
)
from logging_config import get_logger
from utils.errors import ClassificationTimeout, ConfigurationError, ModelServiceError
from utils.model_output import extract_json_object

logger = get_logger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_TIMEOUT = 30.0


class GeminiClassificationService(ClassificationInterface):
    """
    Classifies insect photos with a Gemini vision model.

    Features:
    - Fails at construction when no API key is configured
    - Structured JSON output (response_mime_type + response_schema)
    - Hard deadline per call; the pending request is cancelled on expiry
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        timeout: float = DEFAULT_TIMEOUT,
        reporting_phone: str = DEFAULT_REPORTING_PHONE,
        client=None,
    ):
        """
        Initialize the classification service.

        Args:
            api_key: Gemini API key. Required unless a client is given.
            model: Model name.
            timeout: Deadline in seconds for one classification call.
            reporting_phone: Hotline named in the biosecurity instruction.
            client: Optional pre-built client (anything exposing
                    ``aio.models.generate_content``).

        Raises:
            ConfigurationError: if neither api_key nor client is provided.
        """
        if client is None:
            if not api_key:
                raise ConfigurationError("GEMINI_API_KEY environment variable is not set")
            client = genai.Client(api_key=api_key)

        self._client = client
        self._model = model
        self._timeout = timeout
        self._reporting_phone = reporting_phone
        logger.info(f"GeminiClassificationService initialized with model={model}")

    async def classify(self, request: ClassificationRequest) -> AnalysisResult:
        """
        Classifies the insect in the request's image.

        Args:
            request: Validated image plus species snapshot and mode.

        Returns:
            Normalized AnalysisResult.
        """
        # Raises NoTargetSpeciesConfigured before any model call.
        bundle = build_prompt_bundle(request.species, request.mode, self._reporting_phone)

        contents = [
            types.Part.from_bytes(data=request.image_bytes, mime_type=request.mime_type),
            bundle.prompt,
        ]
        generation_config = types.GenerateContentConfig(
            system_instruction=bundle.system_instruction,
            response_mime_type="application/json",
            response_schema=bundle.schema,
        )

        logger.info(
            f"Classifying {len(request.image_bytes) / 1024:.2f}KB {request.mime_type} "
            f"image (mode={bundle.mode}, model={self._model})"
        )

        try:
            async with asyncio.timeout(self._timeout):
                response = await self._client.aio.models.generate_content(
                    model=self._model,
                    contents=contents,
                    config=generation_config,
                )
        except TimeoutError as e:
            logger.warning(f"Classification timed out after {self._timeout}s")
            raise ClassificationTimeout("Analysis timed out. Please try again.") from e
        except genai_errors.APIError as e:
            logger.error(f"Gemini API error: {e}")
            raise ModelServiceError(f"Model request failed: {e.message or e.code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Gemini transport error: {e}")
            raise ModelServiceError(f"Model request failed: {e}") from e

        if response is None:
            raise ModelServiceError("No response object from model")

        text = response.text
        logger.debug(f"Model response received, length: {len(text) if text else 0}")

        payload = extract_json_object(text)
        result = normalize_analysis(payload)
        logger.info(
            f"Classified as {result.species!r} "
            f"(likelihood={result.likelihood.value if result.likelihood else None}, "
            f"confidence={result.confidence:.2f})"
        )
        return result

    def get_model_id(self) -> str:
        """
        Returns the model identifier.

        Returns:
            The configured Gemini model name.
        """
        return self._model

    def is_ready(self) -> bool:
        """
        Checks if the classifier is ready for inference.

        Returns:
            True once a client has been constructed.
        """
        return self._client is not None


_service_instance: GeminiClassificationService | None = None
_service_lock = threading.Lock()


def get_classification_service() -> GeminiClassificationService:
    """
    Returns the process-wide classification service, building it on first use.

    Raises:
        ConfigurationError: if GEMINI_API_KEY is not configured.
    """
    global _service_instance
    with _service_lock:
        if _service_instance is None:
            cfg = get_config()
            _service_instance = GeminiClassificationService(
                api_key=cfg["GEMINI_API_KEY"],
                model=cfg["GEMINI_MODEL"],
                timeout=cfg["CLASSIFICATION_TIMEOUT"],
                reporting_phone=cfg["REPORTING_PHONE"],
            )
        return _service_instance
