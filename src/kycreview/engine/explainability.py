"""
KYC Review Explainability Reporter

Derives the human-readable explanation attached to every AIDecision.
Pure: the only input besides its arguments is the injected clock used to
timestamp the audit trail.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Sequence

from ..models import (
    BiasAnalysis,
    ConfidenceInterval,
    ExplainabilityReport,
    NeighborRecord,
    RiskTier,
    Verdict,
)

INTERVAL_HALF_WIDTH = 0.2
HIGH_RISK_THRESHOLD = 0.5
MEDIUM_RISK_THRESHOLD = 0.3


def confidence_interval(confidence: float) -> ConfidenceInterval:
    """confidence +/- 0.2, clamped to [0, 1]."""
    return ConfidenceInterval(
        min=round(max(0.0, confidence - INTERVAL_HALF_WIDTH), 6),
        max=round(min(1.0, confidence + INTERVAL_HALF_WIDTH), 6),
    )


def risk_tier(bias_score: float) -> RiskTier:
    if bias_score > HIGH_RISK_THRESHOLD:
        return RiskTier.HIGH
    if bias_score > MEDIUM_RISK_THRESHOLD:
        return RiskTier.MEDIUM
    return RiskTier.LOW


def _opposite(verdict: Verdict) -> Verdict:
    return Verdict.REJECTED if verdict == Verdict.APPROVED else Verdict.APPROVED


@dataclass
class ExplainabilityReporter:
    """Builds ExplainabilityReports."""
    model_version: str = "gpt-4-turbo"
    clock: Callable[[], datetime] = field(
        default=lambda: datetime.now(timezone.utc)
    )

    def explain(
        self,
        verdict: Verdict,
        confidence: float,
        bias_analysis: BiasAnalysis,
        neighbors: Sequence[NeighborRecord],
        candidate_text: str,
    ) -> ExplainabilityReport:
        content = "Valid content detected" if candidate_text else "No content extracted"
        opposite = _opposite(verdict).value

        return ExplainabilityReport(
            decision_factors=(
                f"Document type: {content}",
                f"Bias score: {bias_analysis.bias_score}",
                f"Similar documents found: {len(neighbors)}",
                f"AI confidence: {confidence}",
            ),
            confidence_interval=confidence_interval(confidence),
            alternative_scenarios=(
                f"If bias factors were ignored: {opposite}",
                f"If similar documents showed opposite pattern: {opposite}",
                "Manual review recommended for borderline cases",
            ),
            risk_assessment=risk_tier(bias_analysis.bias_score),
            audit_trail=(
                f"Decision made at {self.clock().isoformat()}",
                f"Model version: {self.model_version}",
                "Bias analysis completed",
                f"Similar documents analyzed: {len(neighbors)}",
                f"Confidence score: {confidence}",
            ),
        )

    def explain_failure(self, error: BaseException) -> ExplainabilityReport:
        """Report attached to the fallback decision after a processing failure."""
        return ExplainabilityReport(
            decision_factors=("System error",),
            confidence_interval=ConfidenceInterval(min=0.0, max=0.0),
            alternative_scenarios=("Manual review",),
            risk_assessment=RiskTier.HIGH,
            audit_trail=(f"Error at {self.clock().isoformat()}: {error}",),
        )
