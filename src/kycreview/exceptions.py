"""
KYC Review Exception Hierarchy

Domain-specific exceptions for the maker-checker decision workflow.
All exceptions include error codes for tracking and logging.

Exception codes follow the pattern: KR_<CATEGORY>_<SPECIFIC>

Propagation policy:
- ConfigurationError and WorkflowStateError are raised to the operator.
- AccessDeniedError is returned inside result objects, never raised out
  of the workflow engine.
- ClassifierFailure is raised by the synthesizer and always recovered by
  the decision engine (the document is escalated for manual review).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class KycReviewError(Exception):
    """
    Base exception for all KYC review errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (KR_*)
        details: Additional context about the error
        document_id: Associated document ID if applicable
    """
    message: str
    code: str = "KR_INTERNAL_ERROR"
    details: dict[str, Any] = field(default_factory=dict)
    document_id: Optional[str] = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        parts = [f"[{self.code}] {self.message}"]
        if self.document_id:
            parts.append(f"(document: {self.document_id})")
        return " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Serialize exception for logging/audit details."""
        result: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        if self.document_id:
            result["document_id"] = self.document_id
        return result


# =============================================================================
# Configuration Errors
# =============================================================================

@dataclass
class ConfigurationError(KycReviewError):
    """Unknown role or step, or invalid settings. Programmer error."""
    code: str = "KR_CONFIGURATION_ERROR"


@dataclass
class PackLoadError(ConfigurationError):
    """Failed to read a governance pack from file."""
    code: str = "KR_PACK_LOAD_ERROR"


@dataclass
class PackValidationError(ConfigurationError):
    """Governance pack failed schema or reference validation."""
    code: str = "KR_PACK_VALIDATION_ERROR"


@dataclass
class PackVersionMismatch(ConfigurationError):
    """Governance pack schema version is incompatible."""
    code: str = "KR_PACK_VERSION_MISMATCH"


# =============================================================================
# Access Errors
# =============================================================================

@dataclass
class AccessDeniedError(KycReviewError):
    """
    Role or permission check failed for a workflow step.

    Always audited. Returned in result objects rather than raised, and
    never changes the state of a decision or workflow.
    """
    code: str = "KR_ACCESS_DENIED"
    role: Optional[str] = None
    workflow_type: Optional[str] = None
    step_id: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        for key in ("role", "workflow_type", "step_id", "reason"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        return result


# =============================================================================
# Classifier Errors
# =============================================================================

@dataclass
class ClassifierFailure(KycReviewError):
    """The external classifier call failed or timed out."""
    code: str = "KR_CLASSIFIER_FAILURE"


# =============================================================================
# Workflow Errors
# =============================================================================

@dataclass
class WorkflowStateError(KycReviewError):
    """Transition attempted from a terminal or invalid state."""
    code: str = "KR_WORKFLOW_STATE_ERROR"
    current_status: Optional[str] = None
    attempted_action: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.current_status is not None:
            result["current_status"] = self.current_status
        if self.attempted_action is not None:
            result["attempted_action"] = self.attempted_action
        return result
