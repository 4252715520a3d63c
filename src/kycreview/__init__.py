"""
KYC Review - AI-assisted maker-checker review of KYC documents

An AI decision engine proposes a verdict for each document; compliance
officers, managers and executive oversight confirm, overturn or escalate
it through a role-gated workflow. Every access check and transition is
written to an append-only audit trail.

Core Principle: "The AI proposes. A human with the right role decides."

Key Features:
- One canonical role -> capability table, loaded from a governance pack
- Bias analysis and explainability attached to every AI decision
- Degrade-to-escalate on classifier failure or timeout
- Role-gated state machine; denied actions never change state
- Sealed final decisions (SHA-256 content hash)
- Out-of-band timeout sweep
- Fan-out bulk processing with per-item isolation
- Compliance scans and scoring

Quick Start:
    from kycreview.models import Actor, Role, OfficerAction
    from kycreview.engine import (
        AIDecisionEngine, AuditLogger, InMemoryAuditSink,
        PermissionModel, WorkflowEngine,
    )

    audit = AuditLogger([InMemoryAuditSink()])
    workflow = WorkflowEngine(PermissionModel.default(), audit)

    with AIDecisionEngine(classifier, embedder, search, audit) as ai:
        proposal = ai.make_decision("doc-1", text, "PAN")

    officer = Actor(user_id="u-1", role=Role.OFFICER)
    workflow.start_document(officer, proposal)
    workflow.officer_review(officer, "doc-1", OfficerAction.AGREE)

Version: 0.1.0
"""
from __future__ import annotations

__version__ = "0.1.0"

from .config import Settings
from .exceptions import (
    AccessDeniedError,
    ClassifierFailure,
    ConfigurationError,
    KycReviewError,
    PackLoadError,
    PackValidationError,
    PackVersionMismatch,
    WorkflowStateError,
)
from .logging_config import configure_logging

__all__ = [
    "__version__",
    # Settings
    "Settings",
    "configure_logging",
    # Exceptions
    "KycReviewError",
    "ConfigurationError",
    "PackLoadError",
    "PackValidationError",
    "PackVersionMismatch",
    "AccessDeniedError",
    "ClassifierFailure",
    "WorkflowStateError",
]
