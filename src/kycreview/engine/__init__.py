"""
KYC Review Engine

Core services for AI-assisted maker-checker review.

Services:
- PermissionModel: Role -> capability and step access lookups
- BiasAnalyzer: Bias score from a document and its neighbors
- DecisionSynthesizer: Classifier prompt and response handling
- ExplainabilityReporter: Explanation attached to every AIDecision
- AIDecisionEngine: One processing attempt per document, with fallback
- WorkflowEngine: The role-gated decision state machine
- BulkProcessor: Fan-out batch processing
- ComplianceReporter: Compliance scans, scoring and reporting
- AuditLogger: Append-only audit trail

Usage:
    from kycreview.engine import (
        AIDecisionEngine,
        AuditLogger,
        InMemoryAuditSink,
        PermissionModel,
        WorkflowEngine,
    )
"""
from __future__ import annotations

# Audit
from .audit import (
    AUDIT_LOGGER_NAME,
    AuditAction,
    AuditEntry,
    AuditLogger,
    AuditSink,
    InMemoryAuditSink,
    LoggingAuditSink,
)

# Policy lookups
from .permission_model import (
    INSUFFICIENT_PERMISSIONS,
    INSUFFICIENT_ROLE,
    PermissionModel,
)

# Decision pipeline
from .bias_analyzer import BiasAnalyzer, NeighborVerdictCounts
from .decision_synthesizer import (
    DecisionSynthesizer,
    DegradedResponse,
    ParsedResponse,
    SynthesisResult,
    parse_classifier_response,
    recover_degraded,
)
from .explainability import ExplainabilityReporter, confidence_interval, risk_tier
from .decision_engine import AIDecisionEngine, ModelFeedback

# Workflow
from .stores import InMemoryDocumentStatusStore
from .workflow_engine import WorkflowEngine
from .bulk import BatchItem, BatchItemResult, BatchResult, BulkProcessor

# Compliance
from .compliance_reporter import LEAST_PRIVILEGE_ACTIONS, ComplianceReporter

__all__ = [
    # Audit
    "AUDIT_LOGGER_NAME",
    "AuditAction",
    "AuditEntry",
    "AuditLogger",
    "AuditSink",
    "InMemoryAuditSink",
    "LoggingAuditSink",
    # Permission Model
    "PermissionModel",
    "INSUFFICIENT_ROLE",
    "INSUFFICIENT_PERMISSIONS",
    # Bias Analyzer
    "BiasAnalyzer",
    "NeighborVerdictCounts",
    # Decision Synthesizer
    "DecisionSynthesizer",
    "ParsedResponse",
    "DegradedResponse",
    "SynthesisResult",
    "parse_classifier_response",
    "recover_degraded",
    # Explainability
    "ExplainabilityReporter",
    "confidence_interval",
    "risk_tier",
    # Decision Engine
    "AIDecisionEngine",
    "ModelFeedback",
    # Workflow
    "WorkflowEngine",
    "InMemoryDocumentStatusStore",
    # Bulk
    "BulkProcessor",
    "BatchItem",
    "BatchItemResult",
    "BatchResult",
    # Compliance
    "ComplianceReporter",
    "LEAST_PRIVILEGE_ACTIONS",
]
