"""
KYC Review Models

Domain models for the KYC review decision workflow.

    from kycreview.models import (
        # Enums
        Role, Verdict, DecisionStatus, WorkflowType,
        # Permissions
        PermissionSet, AccessMatrixEntry,
        # Decisions
        AIDecision, BiasAnalysis, Decision,
        # Workflow
        WorkflowStep, WorkflowDefinition, WorkflowInstance,
        # Compliance
        ComplianceViolation, ComplianceReport,
        # Collaborators
        Actor, NeighborRecord, Classifier,
    )
"""
from __future__ import annotations

# =============================================================================
# Enums
# =============================================================================
from .enums import (
    Capability,
    DataScope,
    DecisionStatus,
    DocumentStatus,
    ManagerAction,
    OfficerAction,
    RiskTier,
    Role,
    Severity,
    StepOutcome,
    Verdict,
    ViolationStatus,
    ViolationType,
    WorkflowStatus,
    WorkflowType,
)

# =============================================================================
# Permissions
# =============================================================================
from .permissions import AccessMatrixEntry, PermissionSet

# =============================================================================
# Decisions
# =============================================================================
from .decision import (
    AIDecision,
    BiasAnalysis,
    ConfidenceInterval,
    Decision,
    ExplainabilityReport,
)

# =============================================================================
# Workflow
# =============================================================================
from .workflow import (
    AccessCheck,
    AIDecisionValidation,
    StepExecutionResult,
    TimedOutStep,
    TransitionResult,
    WorkflowAuditEntry,
    WorkflowDefinition,
    WorkflowInstance,
    WorkflowStep,
)

# =============================================================================
# Compliance
# =============================================================================
from .compliance import ComplianceReport, ComplianceViolation

# =============================================================================
# Governance
# =============================================================================
from .governance import AccessArea, BiasRules, GovernancePack

# =============================================================================
# Collaborators
# =============================================================================
from .collaborators import (
    Actor,
    Classifier,
    ClassifierResponse,
    DocumentStatusStore,
    Embedder,
    NeighborRecord,
    NeighborSearch,
    SYSTEM_ACTOR,
)


__all__ = [
    # Enums
    "Capability",
    "DataScope",
    "DecisionStatus",
    "DocumentStatus",
    "ManagerAction",
    "OfficerAction",
    "RiskTier",
    "Role",
    "Severity",
    "StepOutcome",
    "Verdict",
    "ViolationStatus",
    "ViolationType",
    "WorkflowStatus",
    "WorkflowType",
    # Permissions
    "AccessMatrixEntry",
    "PermissionSet",
    # Decisions
    "AIDecision",
    "BiasAnalysis",
    "ConfidenceInterval",
    "Decision",
    "ExplainabilityReport",
    # Workflow
    "AccessCheck",
    "AIDecisionValidation",
    "StepExecutionResult",
    "TimedOutStep",
    "TransitionResult",
    "WorkflowAuditEntry",
    "WorkflowDefinition",
    "WorkflowInstance",
    "WorkflowStep",
    # Compliance
    "ComplianceReport",
    "ComplianceViolation",
    # Governance
    "AccessArea",
    "BiasRules",
    "GovernancePack",
    # Collaborators
    "Actor",
    "Classifier",
    "ClassifierResponse",
    "DocumentStatusStore",
    "Embedder",
    "NeighborRecord",
    "NeighborSearch",
    "SYSTEM_ACTOR",
]
