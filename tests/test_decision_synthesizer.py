"""
Tests for the decision synthesizer.

Validates:
- Structured classifier answers (mapping or JSON text)
- Degraded answers and keyword recovery
- Confidence defaults and clamping
- Classifier exceptions become ClassifierFailure
"""
import pytest

from kycreview.exceptions import ClassifierFailure
from kycreview.engine import (
    DecisionSynthesizer,
    DegradedResponse,
    ParsedResponse,
    parse_classifier_response,
    recover_degraded,
)
from kycreview.models import BiasAnalysis, Verdict

from tests.conftest import json_response, make_neighbors


@pytest.fixture
def bias():
    return BiasAnalysis(
        bias_score=0.3,
        bias_factors=("High approval rate in similar documents",),
        confidence=0.85,
        recommendations=("Consider additional scrutiny for approval patterns",),
    )


# =============================================================================
# Parsing
# =============================================================================

class TestParseClassifierResponse:
    def test_mapping(self):
        parsed = parse_classifier_response(
            {"verdict": "REJECTED", "confidence": 0.8, "reasoning": "Tampered photo"}
        )

        assert parsed == ParsedResponse(Verdict.REJECTED, 0.8, "Tampered photo")

    def test_json_text(self):
        parsed = parse_classifier_response(json_response("APPROVED", 0.95, "Valid"))

        assert isinstance(parsed, ParsedResponse)
        assert parsed.verdict == Verdict.APPROVED
        assert parsed.confidence == 0.95

    def test_lowercase_verdict(self):
        parsed = parse_classifier_response({"verdict": "escalate", "confidence": 0.4})

        assert parsed.verdict == Verdict.ESCALATE

    def test_missing_confidence_defaults(self):
        parsed = parse_classifier_response({"verdict": "APPROVED"})

        assert parsed.confidence == 0.5
        assert parsed.reasoning == "AI decision made"

    def test_confidence_clamped(self):
        assert parse_classifier_response({"verdict": "APPROVED", "confidence": 1.7}).confidence == 1.0
        assert parse_classifier_response({"verdict": "APPROVED", "confidence": -2}).confidence == 0.0

    @pytest.mark.parametrize("literal", ["NaN", "Infinity", "-Infinity"])
    def test_non_finite_confidence_defaults(self, literal):
        text = '{"verdict": "APPROVED", "confidence": %s, "reasoning": "x"}' % literal

        parsed = parse_classifier_response(text)

        assert isinstance(parsed, ParsedResponse)
        assert parsed.confidence == 0.5

    def test_non_finite_confidence_in_mapping(self):
        parsed = parse_classifier_response({"verdict": "REJECTED", "confidence": float("nan")})

        assert parsed.confidence == 0.5

    def test_non_json_text_is_degraded(self):
        parsed = parse_classifier_response("I think this is APPROVED")

        assert parsed == DegradedResponse(raw_text="I think this is APPROVED")

    def test_unknown_verdict_is_degraded(self):
        parsed = parse_classifier_response({"verdict": "MAYBE", "confidence": 0.9})

        assert isinstance(parsed, DegradedResponse)

    def test_json_list_is_degraded(self):
        assert isinstance(parse_classifier_response("[1, 2]"), DegradedResponse)


class TestRecoverDegraded:
    @pytest.mark.parametrize(
        "text, verdict",
        [
            ("Looks APPROVED to me", Verdict.APPROVED),
            ("This should be REJECTED", Verdict.REJECTED),
            ("APPROVED? REJECTED?", Verdict.APPROVED),
            ("cannot tell", Verdict.ESCALATE),
        ],
    )
    def test_keyword_scan(self, text, verdict):
        result = recover_degraded(DegradedResponse(raw_text=text))

        assert result.verdict == verdict
        assert result.confidence == 0.6
        assert result.reasoning == text
        assert result.degraded


# =============================================================================
# Synthesizer
# =============================================================================

class TestDecisionSynthesizer:
    def test_prompt_embeds_inputs(self, bias):
        prompt = DecisionSynthesizer().build_prompt("PAN text", "PAN", bias, 3)

        assert "Analyze this PAN document" in prompt
        assert "PAN text" in prompt
        assert "Bias Score: 0.3" in prompt
        assert "High approval rate in similar documents" in prompt
        assert "Similar Documents: 3 found" in prompt
        assert '"verdict": "APPROVED|REJECTED|ESCALATE"' in prompt

    def test_synthesize_structured(self, bias):
        prompts = []

        def classify(prompt):
            prompts.append(prompt)
            return {"verdict": "APPROVED", "confidence": 0.9, "reasoning": "Valid"}

        result = DecisionSynthesizer().synthesize("text", "PAN", bias, make_neighbors(approved=2), classify)

        assert result.verdict == Verdict.APPROVED
        assert result.confidence == 0.9
        assert not result.degraded
        assert "Similar Documents: 2 found" in prompts[0]

    def test_synthesize_degraded(self, bias):
        result = DecisionSynthesizer().synthesize(
            "text", "PAN", bias, [], lambda prompt: "verdict: REJECTED (blurry)",
        )

        assert result.verdict == Verdict.REJECTED
        assert result.confidence == 0.6
        assert result.degraded

    def test_classifier_exception_becomes_failure(self, bias):
        def classify(prompt):
            raise TimeoutError("upstream timed out")

        with pytest.raises(ClassifierFailure) as exc_info:
            DecisionSynthesizer().synthesize("text", "PAN", bias, [], classify)

        assert exc_info.value.code == "KR_CLASSIFIER_FAILURE"
        assert exc_info.value.details["error_type"] == "TimeoutError"
        assert isinstance(exc_info.value.__cause__, TimeoutError)

    def test_classifier_failure_passes_through(self, bias):
        failure = ClassifierFailure(message="timed out")

        def classify(prompt):
            raise failure

        with pytest.raises(ClassifierFailure) as exc_info:
            DecisionSynthesizer().synthesize("text", "PAN", bias, [], classify)

        assert exc_info.value is failure
