"""
KYC Review Bias Analyzer

Scores how likely the classifier's context is skewed by historical
patterns. Each rule adds its weight when it fires; the total is capped
at 1.0.

Rules (weights from BiasRules):
- approved neighbors > approval_ratio x rejected neighbors
- document type on the historically-approved list with at least one
  approved neighbor
- extracted text shorter than min_content_length
- any urgency keyword in the text (case-insensitive)

The analysis confidence is a fixed value from the rules, not derived from
the neighbor sample.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from ..models import BiasAnalysis, BiasRules, NeighborRecord, Verdict


@dataclass
class NeighborVerdictCounts:
    """Verdict tally over a neighbor set."""
    approved: int = 0
    rejected: int = 0
    other: int = 0

    @classmethod
    def from_neighbors(cls, neighbors: Sequence[NeighborRecord]) -> NeighborVerdictCounts:
        counts = cls()
        for neighbor in neighbors:
            verdict = neighbor.verdict
            if verdict == Verdict.APPROVED:
                counts.approved += 1
            elif verdict == Verdict.REJECTED:
                counts.rejected += 1
            else:
                counts.other += 1
        return counts


@dataclass
class BiasAnalyzer:
    """
    Deterministic bias scoring.

    Usage:
        analyzer = BiasAnalyzer()
        analysis = analyzer.analyze(text, "PAN", neighbors)
        analysis.bias_score   # in [0, 1]
    """
    rules: BiasRules = field(default_factory=BiasRules)

    def analyze(
        self,
        candidate_text: str,
        document_type: str,
        neighbors: Sequence[NeighborRecord],
    ) -> BiasAnalysis:
        rules = self.rules
        counts = NeighborVerdictCounts.from_neighbors(neighbors)

        score = 0.0
        factors: list[str] = []
        recommendations: list[str] = []

        if counts.approved > counts.rejected * rules.approval_ratio:
            score += rules.high_approval_weight
            factors.append("High approval rate in similar documents")
            recommendations.append("Consider additional scrutiny for approval patterns")

        if (
            document_type.upper() in rules.historically_approved_types
            and counts.approved > 0
        ):
            score += rules.approved_type_weight
            factors.append(f"{document_type.upper()} documents historically approved")

        if len(candidate_text) < rules.min_content_length:
            score += rules.short_content_weight
            factors.append("Short document may lack sufficient information")
            recommendations.append("Request additional documentation")

        lowered = candidate_text.lower()
        if any(keyword in lowered for keyword in rules.urgency_keywords):
            score += rules.urgency_weight
            factors.append("Contains urgency keywords")
            recommendations.append("Verify urgency claims")

        return BiasAnalysis(
            bias_score=round(min(max(score, 0.0), 1.0), 6),
            bias_factors=tuple(factors),
            confidence=rules.analysis_confidence,
            recommendations=tuple(recommendations),
        )
