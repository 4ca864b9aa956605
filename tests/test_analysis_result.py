"""
Analysis Result Normalization Tests.

The likelihood precedence table is checked exhaustively against every
model-declared threat combination.
"""

import itertools
import math

import pytest

from core.analysis_result import (
    ARRAY_CAPS,
    THREAT_LEVELS,
    Likelihood,
    clamp_confidence,
    coerce_likelihood,
    find_likelihood,
    normalize_analysis,
)

DECLARED_LEVELS = [*THREAT_LEVELS, "bogus", None]
DECLARED_THREATS = [True, False, "yes", None]


class TestLikelihoodPrecedence:
    @pytest.mark.parametrize(
        "declared_level,declared_threat",
        list(itertools.product(DECLARED_LEVELS, DECLARED_THREATS)),
    )
    def test_alert_is_never_downgraded(self, declared_level, declared_threat):
        raw = {"species": "Fly", "threatLevel": declared_level, "isThreat": declared_threat}
        result = normalize_analysis(raw, Likelihood.ALERT)
        assert result.threat_level == "high"
        assert result.is_threat is True

    @pytest.mark.parametrize(
        "declared_level,declared_threat",
        list(itertools.product(DECLARED_LEVELS, DECLARED_THREATS)),
    )
    def test_uncertain_is_medium_threat(self, declared_level, declared_threat):
        raw = {"species": "Fly", "threatLevel": declared_level, "isThreat": declared_threat}
        result = normalize_analysis(raw, Likelihood.UNCERTAIN)
        assert result.threat_level == "medium"
        assert result.is_threat is True

    @pytest.mark.parametrize("likelihood", [Likelihood.UNLIKELY, None])
    @pytest.mark.parametrize(
        "declared_level,declared_threat",
        list(itertools.product(DECLARED_LEVELS, DECLARED_THREATS)),
    )
    def test_unlikely_or_missing_uses_model_values(
        self, likelihood, declared_level, declared_threat
    ):
        raw = {"species": "Fly", "threatLevel": declared_level, "isThreat": declared_threat}
        result = normalize_analysis(raw, likelihood)
        expected_level = declared_level if declared_level in THREAT_LEVELS else "safe"
        expected_threat = declared_threat if isinstance(declared_threat, bool) else False
        assert result.threat_level == expected_level
        assert result.is_threat is expected_threat

    def test_likelihood_read_from_payload(self):
        result = normalize_analysis({"qflyLikelihood": "alert", "threatLevel": "safe"})
        assert result.likelihood is Likelihood.ALERT
        assert result.threat_level == "high"

    def test_alternate_likelihood_keys(self):
        assert find_likelihood({"likelihood": "UNLIKELY"}) is Likelihood.UNLIKELY
        assert find_likelihood({"asianHornetLikelihood": "ALERT"}) is Likelihood.ALERT
        assert find_likelihood({"species": "Fly"}) is None

    def test_unknown_likelihood_is_uncertain(self):
        assert coerce_likelihood("MAYBE") is Likelihood.UNCERTAIN
        assert coerce_likelihood("  ") is None
        assert coerce_likelihood(None) is None


class TestReportRecommended:
    def test_alert_and_uncertain_recommend_report(self):
        assert normalize_analysis({}, "ALERT").report_recommended is True
        assert normalize_analysis({}, "UNCERTAIN").report_recommended is True

    def test_unlikely_does_not(self):
        raw = {"isThreat": True, "threatLevel": "low"}
        assert normalize_analysis(raw, "UNLIKELY").report_recommended is False

    def test_missing_likelihood_follows_threat(self):
        assert normalize_analysis({"isThreat": True}).report_recommended is True
        assert normalize_analysis({"isThreat": False}).report_recommended is False


class TestConfidence:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (0.92, 0.92),
            (1.7, 1.0),
            (-0.3, 0.0),
            (1, 1.0),
            (math.nan, 0.0),
            (True, 0.0),
            ("0.9", 0.0),
            (None, 0.0),
        ],
    )
    def test_clamp(self, value, expected):
        assert clamp_confidence(value) == expected


class TestFieldDefaults:
    def test_empty_payload(self):
        result = normalize_analysis({})
        assert result.species == "Unknown"
        assert result.common_name == "Unknown"
        assert result.reasoning == "No reasoning provided"
        assert result.confidence == 0.0
        assert result.is_native is True
        assert result.invasive_risk == "none"
        assert result.likelihood is None

    def test_non_dict_payload(self):
        assert normalize_analysis(["not", "a", "dict"]).species == "Unknown"

    def test_invasive_risk_outside_enum(self):
        assert normalize_analysis({"invasiveRisk": "extreme"}).invasive_risk == "none"
        assert normalize_analysis({"invasiveRisk": "critical"}).invasive_risk == "critical"

    def test_regional_aliases(self):
        result = normalize_analysis({"isNativeToNZ": False, "nzStatus": "Unwanted organism"})
        assert result.is_native is False
        assert result.regional_status == "Unwanted organism"

    def test_arrays_are_capped_and_filtered(self):
        raw = {
            "matchingFeatures": [f"feature {i}" for i in range(15)],
            "similarSpecies": ["a", 3, "b", None, "c", "d", "e", "f"],
            "interestingFacts": "not a list",
        }
        result = normalize_analysis(raw)
        assert len(result.matching_features) == ARRAY_CAPS["matchingFeatures"]
        assert result.similar_species == ["a", "b", "c", "d", "e"]
        assert result.interesting_facts == []


class TestToDict:
    def test_camel_case_keys(self):
        payload = normalize_analysis(
            {"species": "Queensland Fruit Fly", "confidence": 0.92}, "ALERT"
        ).to_dict()
        assert payload["likelihood"] == "ALERT"
        assert payload["threatLevel"] == "high"
        assert payload["isThreat"] is True
        assert payload["reportRecommended"] is True
        assert payload["commonName"] == "Queensland Fruit Fly"
        assert "matchingFeatures" in payload
