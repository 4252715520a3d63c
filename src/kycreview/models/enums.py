"""
KYC Review Enumerations

All enumeration types used throughout the decision workflow.
Organized by domain area.

All enums inherit from (str, Enum) for JSON serialization compatibility.
"""
from __future__ import annotations

from enum import Enum


# =============================================================================
# Identity
# =============================================================================

class Role(str, Enum):
    """
    Roles recognised by the permission model.

    Assigned at user creation and never changed by the workflow. SYSTEM is
    the internal service identity used for automated steps.
    """
    OFFICER = "compliance_officer"
    MANAGER = "compliance_manager"
    CCO = "cco"                          # Executive oversight
    CISO = "ciso"                        # Security oversight
    ADMIN = "system_admin"
    ML_ENGINEER = "ml_engineer"
    INTERNAL_AUDITOR = "internal_auditor"
    DPO = "dpo"                          # Data protection officer
    EXTERNAL_AUDITOR = "external_auditor"
    SYSTEM = "system"


class DataScope(str, Enum):
    """How much document/audit data a role may view."""
    NONE = "none"
    OWN = "own"
    TEAM = "team"
    ALL = "all"


class Capability(str, Enum):
    """
    Boolean capabilities carried by a PermissionSet.

    Values are the permission names used in workflow step definitions.
    """
    UPLOAD_DOCUMENTS = "canUploadDocuments"
    VIEW_OWN_DOCUMENTS = "canViewOwnDocuments"
    VIEW_TEAM_DOCUMENTS = "canViewTeamDocuments"
    VIEW_ALL_DOCUMENTS = "canViewAllDocuments"
    PROCESS_DOCUMENTS = "canProcessDocuments"
    APPROVE_DOCUMENTS = "canApproveDocuments"
    REJECT_DOCUMENTS = "canRejectDocuments"
    REASSIGN_DOCUMENTS = "canReassignDocuments"
    PROVIDE_REVIEW_FEEDBACK = "canProvideReviewFeedback"
    OVERRIDE_AI = "canOverrideAI"
    BULK_PROCESS = "canBulkProcess"
    VIEW_ANALYTICS = "canViewAnalytics"
    EXPORT_REPORTS = "canExportReports"
    SEARCH_DOCUMENTS = "canSearchDocuments"
    VIEW_OWN_AUDIT_LOGS = "canViewOwnAuditLogs"
    VIEW_TEAM_AUDIT_LOGS = "canViewTeamAuditLogs"
    VIEW_ALL_AUDIT_LOGS = "canViewAllAuditLogs"


# =============================================================================
# Verdicts and Decision Lifecycle
# =============================================================================

class Verdict(str, Enum):
    """Tri-state outcome attached to a document at any workflow stage."""
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    ESCALATE = "ESCALATE"


class DecisionStatus(str, Enum):
    """
    Status of a workflow-tracked Decision record.

    Transitions only move forward; FINAL is terminal.
    """
    AI_PROPOSED = "ai_proposed"
    OFFICER_REVIEWED = "officer_reviewed"
    PENDING_MANAGER_APPROVAL = "pending_manager_approval"
    MANAGER_APPROVED = "manager_approved"
    MANAGER_REJECTED = "manager_rejected"
    CCO_ESCALATED = "cco_escalated"
    FINAL = "final"


class OfficerAction(str, Enum):
    """Maker decision on an AI proposal."""
    AGREE = "AGREE"
    DISAGREE = "DISAGREE"


class ManagerAction(str, Enum):
    """Checker decision (also used by executive oversight)."""
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    ESCALATE = "ESCALATE"


class DocumentStatus(str, Enum):
    """Processing status of the external document entity."""
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    CLASSIFIED = "classified"
    APPROVED = "approved"
    REJECTED = "rejected"
    NEEDS_REVIEW = "needs_review"


class RiskTier(str, Enum):
    """Risk tier derived from the bias score."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


# =============================================================================
# Workflow
# =============================================================================

class WorkflowType(str, Enum):
    """The three canonical workflows."""
    DOCUMENT_PROCESSING = "document_processing"
    BULK_PROCESSING = "bulk_processing"
    RAG_QUERY = "rag_query"


class WorkflowStatus(str, Enum):
    """Status of a workflow instance."""
    ACTIVE = "active"
    COMPLETED = "completed"
    ESCALATED = "escalated"
    REJECTED = "rejected"


class StepOutcome(str, Enum):
    """Directional outcome of executing a workflow step."""
    APPROVED = "approved"
    REJECTED = "rejected"
    ESCALATED = "escalated"


# =============================================================================
# Compliance
# =============================================================================

class ViolationType(str, Enum):
    """Category of a compliance finding."""
    ACCESS_DENIED = "ACCESS_DENIED"
    PERMISSION_MISMATCH = "PERMISSION_MISMATCH"
    WORKFLOW_VIOLATION = "WORKFLOW_VIOLATION"
    DATA_ACCESS_VIOLATION = "DATA_ACCESS_VIOLATION"


class Severity(str, Enum):
    """Severity of a compliance finding."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class ViolationStatus(str, Enum):
    """Remediation status of a compliance finding."""
    OPEN = "OPEN"
    RESOLVED = "RESOLVED"
    FALSE_POSITIVE = "FALSE_POSITIVE"
