"""Extraction of JSON payloads from free-form model responses."""

import json
import logging
import re

from utils.errors import MalformedModelOutput

logger = logging.getLogger(__name__)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```")

LOG_PREFIX_CHARS = 300


def isolate_json_text(text: str) -> str:
    """
    Isolates the JSON object text inside a model response.

    A fenced markdown block wins; otherwise, when the text does not already
    start with "{", the span from the first "{" to the last "}" is taken.
    """
    candidate = (text or "").strip()

    match = _FENCED_BLOCK.search(candidate)
    if match:
        return match.group(1).strip()

    if not candidate.startswith("{"):
        start = candidate.find("{")
        end = candidate.rfind("}")
        if start != -1 and end > start:
            return candidate[start : end + 1]
    return candidate


def extract_json_object(text: str) -> dict:
    """
    Parses the JSON object contained in a model response.

    Raises:
        MalformedModelOutput: if the response is empty, contains no JSON
            object, or does not parse to a dict.
    """
    if not text or not text.strip():
        raise MalformedModelOutput("Empty response from model - please try again")

    json_text = isolate_json_text(text)
    try:
        payload = json.loads(json_text)
    except (json.JSONDecodeError, ValueError) as e:
        logger.error(
            f"Failed to parse model response ({e}). Raw: {text[:LOG_PREFIX_CHARS]!r}"
        )
        raise MalformedModelOutput("Failed to parse AI response - please try again") from e

    if not isinstance(payload, dict):
        logger.error(
            f"Model response is not a JSON object. Raw: {text[:LOG_PREFIX_CHARS]!r}"
        )
        raise MalformedModelOutput("AI response is not a JSON object")
    return payload
