"""
Tests for the explainability reporter.
"""
import pytest

from kycreview.engine import ExplainabilityReporter, confidence_interval, risk_tier
from kycreview.models import BiasAnalysis, RiskTier, Verdict

from tests.conftest import FakeClock, make_neighbors


# =============================================================================
# Formulas
# =============================================================================

class TestConfidenceInterval:
    @pytest.mark.parametrize(
        "confidence, low, high",
        [
            (0.5, 0.3, 0.7),
            (0.05, 0.0, 0.25),
            (0.95, 0.75, 1.0),
            (0.0, 0.0, 0.2),
            (1.0, 0.8, 1.0),
        ],
    )
    def test_clamped(self, confidence, low, high):
        interval = confidence_interval(confidence)

        assert interval.min == pytest.approx(low)
        assert interval.max == pytest.approx(high)
        assert 0.0 <= interval.min <= interval.max <= 1.0


class TestRiskTier:
    @pytest.mark.parametrize(
        "bias_score, tier",
        [
            (0.0, RiskTier.LOW),
            (0.3, RiskTier.LOW),
            (0.31, RiskTier.MEDIUM),
            (0.5, RiskTier.MEDIUM),
            (0.51, RiskTier.HIGH),
            (1.0, RiskTier.HIGH),
        ],
    )
    def test_thresholds(self, bias_score, tier):
        assert risk_tier(bias_score) == tier


# =============================================================================
# Reporter
# =============================================================================

class TestExplainabilityReporter:
    def test_report(self):
        clock = FakeClock()
        reporter = ExplainabilityReporter(model_version="gpt-4-turbo", clock=clock)
        bias = BiasAnalysis(bias_score=0.1, confidence=0.85)

        report = reporter.explain(Verdict.APPROVED, 0.9, bias, make_neighbors(approved=2), "some text")

        assert report.decision_factors == (
            "Document type: Valid content detected",
            "Bias score: 0.1",
            "Similar documents found: 2",
            "AI confidence: 0.9",
        )
        assert report.alternative_scenarios[0] == "If bias factors were ignored: REJECTED"
        assert report.risk_assessment == RiskTier.LOW
        assert report.audit_trail[0] == f"Decision made at {clock.now.isoformat()}"
        assert "Model version: gpt-4-turbo" in report.audit_trail
        assert report.confidence_interval.max == 1.0

    def test_empty_text(self):
        report = ExplainabilityReporter().explain(
            Verdict.REJECTED, 0.7, BiasAnalysis(bias_score=0.6), [], "",
        )

        assert report.decision_factors[0] == "Document type: No content extracted"
        assert report.alternative_scenarios[0] == "If bias factors were ignored: APPROVED"
        assert report.risk_assessment == RiskTier.HIGH

    def test_failure_report(self):
        report = ExplainabilityReporter(clock=FakeClock()).explain_failure(RuntimeError("boom"))

        assert report.decision_factors == ("System error",)
        assert report.confidence_interval.min == report.confidence_interval.max == 0.0
        assert report.risk_assessment == RiskTier.HIGH
        assert report.audit_trail[0].endswith("boom")
