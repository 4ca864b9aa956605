"""
Analysis Result - Canonical classification verdict.

Maps a raw model payload onto the canonical AnalysisResult. This is the
single place where the likelihood verdict is turned into a threat level:

    ALERT      -> high / is_threat=True   (always, model values ignored)
    UNCERTAIN  -> medium / is_threat=True (always, model values ignored)
    UNLIKELY   -> model-declared threat level / is_threat, else safe / False
    (missing)  -> same as UNLIKELY

ALERT must never be downgraded by anything the model declares alongside it.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Likelihood(str, Enum):
    ALERT = "ALERT"
    UNLIKELY = "UNLIKELY"
    UNCERTAIN = "UNCERTAIN"


THREAT_LEVELS = ("safe", "low", "medium", "high")
INVASIVE_RISKS = ("none", "low", "moderate", "high", "critical")

# Keys the model may use for the likelihood verdict.
LIKELIHOOD_KEYS = ("qflyLikelihood", "likelihood", "asianHornetLikelihood")

ARRAY_CAPS = {
    "matchingFeatures": 10,
    "excludingFeatures": 10,
    "similarSpecies": 5,
    "interestingFacts": 5,
    "anatomicalFeatures": 10,
}

FAILED_SPECIES = "Analysis Failed"


@dataclass
class AnalysisResult:
    """Sanitized, schema-conformant classification result."""

    species: str
    confidence: float
    likelihood: Likelihood | None
    is_threat: bool
    threat_level: str
    reasoning: str
    matching_features: list[str] = field(default_factory=list)
    excluding_features: list[str] = field(default_factory=list)
    anatomical_features: list[str] = field(default_factory=list)
    similar_species: list[str] = field(default_factory=list)
    interesting_facts: list[str] = field(default_factory=list)
    common_name: str = ""
    scientific_name: str = ""
    family: str = ""
    order: str = ""
    habitat: str = ""
    behavior: str = ""
    ecological_role: str = ""
    distribution: str = ""
    size: str = ""
    diet: str = ""
    lifecycle: str = ""
    safety_info: str = ""
    is_native: bool = True
    invasive_risk: str = "none"
    regional_status: str = ""
    reporting_advice: str = ""

    @property
    def report_recommended(self) -> bool:
        """ALERT and UNCERTAIN both prompt a report; only a clean UNLIKELY does not."""
        if self.likelihood is None:
            return self.is_threat
        return self.likelihood is not Likelihood.UNLIKELY

    def to_dict(self) -> dict[str, Any]:
        return {
            "species": self.species,
            "confidence": self.confidence,
            "likelihood": self.likelihood.value if self.likelihood else None,
            "isThreat": self.is_threat,
            "threatLevel": self.threat_level,
            "reasoning": self.reasoning,
            "matchingFeatures": list(self.matching_features),
            "excludingFeatures": list(self.excluding_features),
            "anatomicalFeatures": list(self.anatomical_features),
            "similarSpecies": list(self.similar_species),
            "interestingFacts": list(self.interesting_facts),
            "commonName": self.common_name,
            "scientificName": self.scientific_name,
            "family": self.family,
            "order": self.order,
            "habitat": self.habitat,
            "behavior": self.behavior,
            "ecologicalRole": self.ecological_role,
            "distribution": self.distribution,
            "size": self.size,
            "diet": self.diet,
            "lifecycle": self.lifecycle,
            "safetyInfo": self.safety_info,
            "isNative": self.is_native,
            "invasiveRisk": self.invasive_risk,
            "regionalStatus": self.regional_status,
            "reportingAdvice": self.reporting_advice,
            "reportRecommended": self.report_recommended,
        }


# ---------------------------------------------------------------------------
# Field coercion
# ---------------------------------------------------------------------------


def clamp_confidence(value) -> float:
    """Clamps a confidence into [0, 1]; missing or non-numeric values become 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    if math.isnan(value):
        return 0.0
    return float(min(max(value, 0.0), 1.0))


def coerce_likelihood(value) -> Likelihood | None:
    """
    Maps a raw likelihood value onto the enum.

    Absent or blank values give None. Anything else that is not a known
    member is treated as UNCERTAIN.
    """
    if isinstance(value, Likelihood):
        return value
    if value is None:
        return None
    text = str(value).strip().upper()
    if not text:
        return None
    try:
        return Likelihood(text)
    except ValueError:
        return Likelihood.UNCERTAIN


def find_likelihood(raw: dict) -> Likelihood | None:
    """Reads the likelihood verdict from whichever key the model used."""
    for key in LIKELIHOOD_KEYS:
        if key in raw and raw[key] not in (None, ""):
            return coerce_likelihood(raw[key])
    return None


def derive_threat(raw: dict, likelihood: Likelihood | None) -> tuple[str, bool]:
    """Returns (threat_level, is_threat) according to the precedence table."""
    if likelihood is Likelihood.ALERT:
        return "high", True
    if likelihood is Likelihood.UNCERTAIN:
        return "medium", True

    declared_level = raw.get("threatLevel")
    threat_level = declared_level if declared_level in THREAT_LEVELS else "safe"
    declared_threat = raw.get("isThreat")
    is_threat = declared_threat if isinstance(declared_threat, bool) else False
    return threat_level, is_threat


def _string_list(value, cap: int) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)][:cap]


def _text(value, default: str = "") -> str:
    if isinstance(value, str) and value:
        return value
    return default


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def normalize_analysis(raw: dict, likelihood=None) -> AnalysisResult:
    """
    Builds an AnalysisResult from a parsed model payload.

    Args:
        raw: Parsed JSON object from the model. Treated as untrusted.
        likelihood: Verdict enum (or raw string). When None, the verdict is
            read from the payload itself.
    """
    raw = raw if isinstance(raw, dict) else {}
    verdict = coerce_likelihood(likelihood) if likelihood is not None else find_likelihood(raw)
    threat_level, is_threat = derive_threat(raw, verdict)

    species = _text(raw.get("species"), "Unknown")
    invasive_risk = raw.get("invasiveRisk")
    is_native = raw.get("isNative", raw.get("isNativeToNZ"))

    return AnalysisResult(
        species=species,
        confidence=clamp_confidence(raw.get("confidence")),
        likelihood=verdict,
        is_threat=is_threat,
        threat_level=threat_level,
        reasoning=_text(raw.get("reasoning"), "No reasoning provided"),
        matching_features=_string_list(raw.get("matchingFeatures"), ARRAY_CAPS["matchingFeatures"]),
        excluding_features=_string_list(raw.get("excludingFeatures"), ARRAY_CAPS["excludingFeatures"]),
        anatomical_features=_string_list(raw.get("anatomicalFeatures"), ARRAY_CAPS["anatomicalFeatures"]),
        similar_species=_string_list(raw.get("similarSpecies"), ARRAY_CAPS["similarSpecies"]),
        interesting_facts=_string_list(raw.get("interestingFacts"), ARRAY_CAPS["interestingFacts"]),
        common_name=_text(raw.get("commonName"), species),
        scientific_name=_text(raw.get("scientificName")),
        family=_text(raw.get("family")),
        order=_text(raw.get("order")),
        habitat=_text(raw.get("habitat")),
        behavior=_text(raw.get("behavior")),
        ecological_role=_text(raw.get("ecologicalRole")),
        distribution=_text(raw.get("distribution")),
        size=_text(raw.get("size")),
        diet=_text(raw.get("diet")),
        lifecycle=_text(raw.get("lifecycle")),
        safety_info=_text(raw.get("safetyInfo")),
        is_native=is_native if isinstance(is_native, bool) else True,
        invasive_risk=invasive_risk if invasive_risk in INVASIVE_RISKS else "none",
        regional_status=_text(raw.get("regionalStatus", raw.get("nzStatus"))),
        reporting_advice=_text(raw.get("reportingAdvice")),
    )
