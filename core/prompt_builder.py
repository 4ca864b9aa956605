"""
Prompt Builder - Species-aware prompt and response schema generation.

Pure functions over an immutable species snapshot. Nothing here reads
configuration or talks to the model, so every prompt can be checked in
isolation.
"""

from dataclasses import dataclass
from typing import Any

from core.species_core import DEFAULT_REPORTING_PHONE, active_species
from utils.errors import NoTargetSpeciesConfigured

MODE_BIOSECURITY = "biosecurity"
MODE_GENERAL = "general"
ANALYSIS_MODES = (MODE_BIOSECURITY, MODE_GENERAL)

LIKELIHOOD_FIELD = "qflyLikelihood"

_STRING = {"type": "STRING"}
_NUMBER = {"type": "NUMBER"}
_STRING_ARRAY = {"type": "ARRAY", "items": {"type": "STRING"}}

BIOSECURITY_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        LIKELIHOOD_FIELD: {
            "type": "STRING",
            "enum": ["ALERT", "UNLIKELY", "UNCERTAIN"],
            "description": "ALERT if features match any target species. "
            "UNLIKELY only with clear exclusion features. UNCERTAIN if poor image.",
        },
        "confidence": {**_NUMBER, "description": "Confidence 0.0-1.0"},
        "matchingFeatures": {**_STRING_ARRAY, "description": "Features matching a target species"},
        "excludingFeatures": {**_STRING_ARRAY, "description": "Features ruling out target species"},
        "species": {**_STRING, "description": "Identified species"},
        "commonName": {**_STRING, "description": "Common name"},
        "scientificName": {**_STRING, "description": "Scientific name"},
        "reasoning": {**_STRING, "description": "Brief explanation"},
        "reportingAdvice": {**_STRING, "description": "Reporting instructions if ALERT"},
    },
    "required": [LIKELIHOOD_FIELD, "confidence", "species", "reasoning"],
}

GENERAL_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "species": _STRING,
        "confidence": _NUMBER,
        "reasoning": _STRING,
        "anatomicalFeatures": _STRING_ARRAY,
        "commonName": _STRING,
        "scientificName": _STRING,
        "family": _STRING,
        "order": _STRING,
        "habitat": _STRING,
        "behavior": _STRING,
        "ecologicalRole": _STRING,
        "distribution": _STRING,
        "size": _STRING,
        "diet": _STRING,
        "lifecycle": _STRING,
        "similarSpecies": _STRING_ARRAY,
        "interestingFacts": _STRING_ARRAY,
        "safetyInfo": _STRING,
    },
    "required": ["species", "confidence", "reasoning"],
}

GENERAL_PROMPT = (
    "Identify this insect. Provide species, taxonomy, habitat, behavior, "
    "and interesting facts."
)

GENERAL_SYSTEM_INSTRUCTION = (
    "You are an expert entomologist. Identify insects accurately and provide "
    "educational information."
)

_LOOKALIKES = (
    "House fly: Much larger (8-12mm), grey, no wing markings",
    "Blow fly: Metallic blue/green coloring",
    "Common vinegar fly: No wing spots, attacks ROTTING fruit only",
    "Native NZ flies: Different patterns",
)

_FRUIT_DAMAGE = (
    "Small puncture marks on fruit skin",
    "Soft spots around puncture points",
    "Larvae (maggots) in fruit",
    "Premature fruit drop",
)

_CRITICAL_RULES = (
    "If features match ANY of the target species = ALERT",
    "Specify WHICH species if identifiable",
    "Fruit damage consistent with fruit fly = ALERT",
    "Poor image quality but COULD be threat species = ALERT",
    "When in doubt = ALERT (false positives acceptable, false negatives are NOT)",
    "Only mark UNLIKELY if clear exclusion features",
)


@dataclass(frozen=True)
class PromptBundle:
    """Everything the classification call needs besides the image."""

    system_instruction: str
    prompt: str
    schema: dict[str, Any]
    mode: str


def _require_active(species) -> tuple:
    active = active_species(species)
    if not active:
        raise NoTargetSpeciesConfigured(
            "No target species configured. Please contact administrator."
        )
    return active


def build_biosecurity_prompt(species) -> str:
    """
    Builds the task prompt listing every active target species.

    Raises:
        NoTargetSpeciesConfigured: if no species is active.
    """
    active = _require_active(species)
    lines = [
        f"Detect BIOSECURITY THREAT FRUIT FLIES in this image. New Zealand MPI "
        f"requires reporting of {len(active)} species. Err on the side of caution.",
        "",
    ]

    for index, target in enumerate(active, start=1):
        lines.append(
            f"=== SPECIES {index}: {target.common_name.upper()} ({target.scientific_name}) ==="
        )
        lines.append(f"KEY FEATURES (any {target.alert_threshold}+ = ALERT):")
        lines.extend(f"- {criterion}" for criterion in target.matching_criteria)
        if target.exclusion_criteria:
            lines.append("EXCLUDED IF:")
            lines.extend(f"- {criterion}" for criterion in target.exclusion_criteria)
        if target.recent_detections:
            lines.append(f"RECENT DETECTION: {target.recent_detections}")
        lines.append("")

    lines.append("=== COMMON LOOKALIKES (NOT threats) ===")
    lines.extend(f"- {item}" for item in _LOOKALIKES)
    lines.append("")
    lines.append("=== FRUIT DAMAGE INDICATORS (any = ALERT) ===")
    lines.extend(f"- {item}" for item in _FRUIT_DAMAGE)
    lines.append("")
    lines.append("=== CRITICAL RULES ===")
    lines.extend(f"{n}. {rule}" for n, rule in enumerate(_CRITICAL_RULES, start=1))

    return "\n".join(lines)


def build_system_instruction(species, reporting_phone: str = DEFAULT_REPORTING_PHONE) -> str:
    """Builds the biosecurity system instruction naming every target species."""
    active = _require_active(species)
    lines = [
        f"You are a fruit fly biosecurity specialist for New Zealand MPI. Your job is "
        f"to detect {len(active)} target pest species that threaten NZ's $6 billion "
        f"horticulture industry.",
        "",
        "TARGET SPECIES (all must be reported to MPI):",
    ]
    for index, target in enumerate(active, start=1):
        entry = f"{index}. {target.common_name} ({target.scientific_name})"
        if target.recent_detections:
            entry += f" - RECENT DETECTION in {target.recent_detections}"
        lines.append(entry)

    lines.extend(
        [
            "",
            "CRITICAL: This is a biosecurity screening tool. Your PRIMARY goal is to "
            "NEVER miss any of these species.",
            "- FALSE POSITIVES are acceptable and expected",
            "- FALSE NEGATIVES are DANGEROUS and unacceptable",
            "",
            "When analyzing images:",
            "1. Check against ALL target species",
            f"2. If features match ANY target species, set {LIKELIHOOD_FIELD} to ALERT",
            "3. In the species field, specify which target species (if identifiable)",
            "4. Only mark UNLIKELY if clear exclusion features present",
            "5. When genuinely uncertain, always choose ALERT",
            "",
            f"REPORTING ADVICE: If ALERT, advise user to call MPI hotline "
            f"{reporting_phone} immediately.",
        ]
    )
    return "\n".join(lines)


def build_prompt_bundle(
    species,
    mode: str = MODE_BIOSECURITY,
    reporting_phone: str = DEFAULT_REPORTING_PHONE,
) -> PromptBundle:
    """
    Builds the prompt bundle for one classification request.

    General mode needs no species configuration. Biosecurity mode fails with
    NoTargetSpeciesConfigured before any model call when nothing is active.

    Raises:
        ValueError: for an unknown mode.
    """
    if mode == MODE_GENERAL:
        return PromptBundle(
            system_instruction=GENERAL_SYSTEM_INSTRUCTION,
            prompt=GENERAL_PROMPT,
            schema=GENERAL_SCHEMA,
            mode=mode,
        )
    if mode != MODE_BIOSECURITY:
        raise ValueError(f"Unknown analysis mode: {mode!r}")

    return PromptBundle(
        system_instruction=build_system_instruction(species, reporting_phone),
        prompt=build_biosecurity_prompt(species),
        schema=BIOSECURITY_SCHEMA,
        mode=mode,
    )
