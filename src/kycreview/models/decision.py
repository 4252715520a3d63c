"""
KYC Review Decision Models

Two layers of decision:
- AIDecision: what the decision engine proposed for one processing
  attempt (verdict, confidence, bias analysis, explainability).
- Decision: the workflow-tracked maker-checker record for one document,
  created from an AIDecision and advanced by officer, manager and
  executive actions.

Both are frozen. A workflow transition produces a new Decision value; an
officer or manager action never rewrites the AIDecision it responds to.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from ..canon import content_hash
from .enums import (
    DecisionStatus,
    ManagerAction,
    OfficerAction,
    RiskTier,
    Verdict,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Bias Analysis
# =============================================================================

@dataclass(frozen=True)
class BiasAnalysis:
    """
    Bias assessment of a candidate document against its neighbors.

    Attributes:
        bias_score: Additive score of triggered factors, capped to [0, 1]
        bias_factors: Descriptions of the factors that fired
        confidence: Confidence of the analysis itself (fixed constant)
        recommendations: Follow-up actions for the reviewer
    """
    bias_score: float
    bias_factors: tuple[str, ...] = ()
    confidence: float = 0.0
    recommendations: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "bias_score": self.bias_score,
            "bias_factors": list(self.bias_factors),
            "confidence": self.confidence,
            "recommendations": list(self.recommendations),
        }


# =============================================================================
# Explainability
# =============================================================================

@dataclass(frozen=True)
class ConfidenceInterval:
    """Closed interval inside [0, 1]."""
    min: float
    max: float

    def to_dict(self) -> dict[str, float]:
        return {"min": self.min, "max": self.max}


@dataclass(frozen=True)
class ExplainabilityReport:
    """
    Human-readable explanation of a synthesized decision.

    Attributes:
        decision_factors: Inputs that drove the verdict
        confidence_interval: confidence +/- 0.2 clamped to [0, 1]
        alternative_scenarios: Counterfactual narratives
        risk_assessment: Risk tier from the bias score
        audit_trail: Timestamped notes about how the decision was made
    """
    decision_factors: tuple[str, ...]
    confidence_interval: ConfidenceInterval
    alternative_scenarios: tuple[str, ...]
    risk_assessment: RiskTier
    audit_trail: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "decision_factors": list(self.decision_factors),
            "confidence_interval": self.confidence_interval.to_dict(),
            "alternative_scenarios": list(self.alternative_scenarios),
            "risk_assessment": self.risk_assessment.value,
            "audit_trail": list(self.audit_trail),
        }


# =============================================================================
# AI Decision
# =============================================================================

@dataclass(frozen=True)
class AIDecision:
    """
    Output of one decision-engine processing attempt.

    Attributes:
        document_id: Document this decision is for
        verdict: APPROVED / REJECTED / ESCALATE
        confidence: Classifier confidence in [0, 1]
        reasoning: Classifier (or fallback) rationale
        bias_analysis: Embedded bias analysis
        explainability: Embedded explainability report
        processing_time_ms: Wall-clock duration of the attempt
        model_version: Model tag, or the fallback tag on failure
        fallback: True when the classifier failed and the document was
            escalated for manual review
        created_at: When the attempt finished
    """
    document_id: str
    verdict: Verdict
    confidence: float
    reasoning: str
    bias_analysis: BiasAnalysis
    explainability: ExplainabilityReport
    processing_time_ms: int
    model_version: str
    fallback: bool = False
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "verdict": self.verdict.value,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "bias_analysis": self.bias_analysis.to_dict(),
            "explainability": self.explainability.to_dict(),
            "processing_time_ms": self.processing_time_ms,
            "model_version": self.model_version,
            "fallback": self.fallback,
            "created_at": self.created_at.isoformat(),
        }


# =============================================================================
# Workflow-tracked Decision
# =============================================================================

@dataclass(frozen=True)
class Decision:
    """
    Maker-checker record for one document per workflow pass.

    AI fields are copied from the AIDecision at creation. Officer,
    manager and executive fields are filled in by the workflow engine as
    the record moves forward. final_verdict stays None until FINAL.

    Once FINAL the record is sealed: content_hash holds the SHA-256 of
    its canonical JSON and verify_seal() re-checks it.
    """
    id: str
    document_id: str
    ai_verdict: Verdict
    ai_confidence: float
    ai_reasoning: str
    ai_timestamp: datetime
    status: DecisionStatus = DecisionStatus.AI_PROPOSED

    # Maker
    officer_user_id: Optional[str] = None
    officer_action: Optional[OfficerAction] = None
    officer_comment: Optional[str] = None
    officer_timestamp: Optional[datetime] = None

    # Checker
    manager_user_id: Optional[str] = None
    manager_action: Optional[ManagerAction] = None
    manager_justification: Optional[str] = None
    manager_timestamp: Optional[datetime] = None

    # Executive oversight
    executive_user_id: Optional[str] = None
    executive_action: Optional[ManagerAction] = None
    executive_justification: Optional[str] = None
    executive_timestamp: Optional[datetime] = None

    final_verdict: Optional[Verdict] = None
    finalized_at: Optional[datetime] = None
    content_hash: Optional[str] = None

    @classmethod
    def from_ai_decision(cls, ai_decision: AIDecision) -> Decision:
        """Create a new record in AI_PROPOSED from an AIDecision."""
        return cls(
            id=str(uuid4()),
            document_id=ai_decision.document_id,
            ai_verdict=ai_decision.verdict,
            ai_confidence=ai_decision.confidence,
            ai_reasoning=ai_decision.reasoning,
            ai_timestamp=ai_decision.created_at,
        )

    @property
    def is_final(self) -> bool:
        return self.status == DecisionStatus.FINAL

    @property
    def is_sealed(self) -> bool:
        return self.content_hash is not None

    def sealed(self) -> Decision:
        """Return a copy carrying the content hash of this record."""
        if not self.is_final:
            raise ValueError("Only final decisions can be sealed")
        if self.is_sealed:
            raise ValueError("Decision is already sealed")
        return replace(self, content_hash=self._compute_content_hash())

    def verify_seal(self) -> bool:
        """True if the stored content hash matches the record."""
        if not self.content_hash:
            return False
        return self._compute_content_hash() == self.content_hash

    def _compute_content_hash(self) -> str:
        content = self.to_dict()
        content.pop("content_hash", None)
        return content_hash(content)

    def to_dict(self) -> dict[str, Any]:
        def _iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        def _val(value: Any) -> Any:
            return value.value if value is not None else None

        return {
            "id": self.id,
            "document_id": self.document_id,
            "ai_verdict": self.ai_verdict.value,
            "ai_confidence": self.ai_confidence,
            "ai_reasoning": self.ai_reasoning,
            "ai_timestamp": _iso(self.ai_timestamp),
            "status": self.status.value,
            "officer_user_id": self.officer_user_id,
            "officer_action": _val(self.officer_action),
            "officer_comment": self.officer_comment,
            "officer_timestamp": _iso(self.officer_timestamp),
            "manager_user_id": self.manager_user_id,
            "manager_action": _val(self.manager_action),
            "manager_justification": self.manager_justification,
            "manager_timestamp": _iso(self.manager_timestamp),
            "executive_user_id": self.executive_user_id,
            "executive_action": _val(self.executive_action),
            "executive_justification": self.executive_justification,
            "executive_timestamp": _iso(self.executive_timestamp),
            "final_verdict": _val(self.final_verdict),
            "finalized_at": _iso(self.finalized_at),
            "content_hash": self.content_hash,
        }
