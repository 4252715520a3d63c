"""
KYC Review Workflow Models

Static workflow definitions and the per-document workflow instance.

Workflow definitions are loaded from the governance pack. Each definition
compiles its ordered step list into an explicit edge table
(step, outcome) -> next step once, at load time, so routing is a lookup
and an outcome with no edge ends the workflow.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Mapping, Optional

from .enums import (
    Capability,
    Role,
    StepOutcome,
    WorkflowStatus,
    WorkflowType,
)

if TYPE_CHECKING:
    from ..exceptions import KycReviewError
    from .decision import Decision


# =============================================================================
# Workflow Step
# =============================================================================

@dataclass(frozen=True)
class WorkflowStep:
    """
    One step of a workflow.

    Attributes:
        id: Step identifier, unique within its workflow
        name: Display name
        order: Position in the workflow (1-based)
        required_roles: Roles allowed to act on this step
        required_permissions: Capabilities the acting role must hold
        is_required: Required steps form the main path; optional steps
            are only reached by escalation
        timeout_hours: Hours after assignment before the step is overdue
    """
    id: str
    name: str
    order: int
    required_roles: frozenset[Role]
    required_permissions: tuple[Capability, ...] = ()
    is_required: bool = True
    timeout_hours: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "order": self.order,
            "required_roles": sorted(r.value for r in self.required_roles),
            "required_permissions": [p.value for p in self.required_permissions],
            "is_required": self.is_required,
        }
        if self.timeout_hours is not None:
            result["timeout_hours"] = self.timeout_hours
        return result


# =============================================================================
# Workflow Definition (step graph)
# =============================================================================

@dataclass(frozen=True)
class WorkflowDefinition:
    """
    A workflow as an ordered set of steps plus its routing graph.

    Use WorkflowDefinition.from_steps() to build one; it derives the
    edges from step order and the is_required flags:
    - approved on a required step -> next required step
    - approved on an optional step -> end
    - escalated -> next optional step after the current one
    - rejected -> end
    """
    workflow_type: WorkflowType
    steps: tuple[WorkflowStep, ...]
    edges: Mapping[tuple[str, StepOutcome], Optional[str]] = field(default_factory=dict)

    @classmethod
    def from_steps(
        cls,
        workflow_type: WorkflowType,
        steps: list[WorkflowStep],
    ) -> WorkflowDefinition:
        ordered = tuple(sorted(steps, key=lambda s: s.order))
        edges: dict[tuple[str, StepOutcome], Optional[str]] = {}

        for index, step in enumerate(ordered):
            later = ordered[index + 1:]

            if step.is_required:
                nxt = next((s for s in later if s.is_required), None)
                edges[(step.id, StepOutcome.APPROVED)] = nxt.id if nxt else None
            else:
                edges[(step.id, StepOutcome.APPROVED)] = None

            escalation = next((s for s in later if not s.is_required), None)
            edges[(step.id, StepOutcome.ESCALATED)] = escalation.id if escalation else None
            edges[(step.id, StepOutcome.REJECTED)] = None

        return cls(workflow_type=workflow_type, steps=ordered, edges=edges)

    @property
    def first_step(self) -> WorkflowStep:
        return self.steps[0]

    def get_step(self, step_id: str) -> Optional[WorkflowStep]:
        """Look up a step by id."""
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def next_step(self, step_id: str, outcome: StepOutcome) -> Optional[WorkflowStep]:
        """Follow the edge for (step, outcome); None means the workflow ends."""
        target = self.edges.get((step_id, outcome))
        return self.get_step(target) if target else None

    def steps_after(self, step_id: str) -> tuple[WorkflowStep, ...]:
        """Steps strictly after step_id in order."""
        for index, step in enumerate(self.steps):
            if step.id == step_id:
                return self.steps[index + 1:]
        return ()


# =============================================================================
# Workflow Instance
# =============================================================================

@dataclass(frozen=True)
class WorkflowAuditEntry:
    """One entry in a workflow instance's own audit trail."""
    timestamp: datetime
    user_id: str
    role: str
    action: str
    details: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "user_id": self.user_id,
            "role": self.role,
            "action": self.action,
            "details": dict(self.details),
        }


@dataclass(frozen=True)
class WorkflowInstance:
    """
    A document's progress through one workflow.

    Owned by the workflow engine and replaced wholesale on every
    transition. current_step is None once the instance is terminal.
    """
    workflow_id: str
    workflow_type: WorkflowType
    document_id: str
    current_step: Optional[WorkflowStep]
    completed_steps: tuple[WorkflowStep, ...]
    pending_steps: tuple[WorkflowStep, ...]
    status: WorkflowStatus
    created_at: datetime
    updated_at: datetime
    step_assigned_at: datetime
    assigned_users: tuple[str, ...] = ()
    audit_trail: tuple[WorkflowAuditEntry, ...] = ()

    @property
    def is_terminal(self) -> bool:
        return self.status != WorkflowStatus.ACTIVE

    def to_dict(self) -> dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "workflow_type": self.workflow_type.value,
            "document_id": self.document_id,
            "current_step": self.current_step.id if self.current_step else None,
            "completed_steps": [s.id for s in self.completed_steps],
            "pending_steps": [s.id for s in self.pending_steps],
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "step_assigned_at": self.step_assigned_at.isoformat(),
            "assigned_users": list(self.assigned_users),
            "audit_trail": [e.to_dict() for e in self.audit_trail],
        }


# =============================================================================
# Results
# =============================================================================

@dataclass
class AccessCheck:
    """Result of validating a role against a workflow step."""
    allowed: bool
    reason: Optional[str] = None
    denial_code: Optional[str] = None  # insufficient_role / insufficient_permissions


@dataclass
class StepExecutionResult:
    """
    Outcome of executing a workflow step.

    success=False with an AccessDeniedError means nothing changed.
    """
    success: bool
    outcome: Optional[StepOutcome] = None
    next_step: Optional[WorkflowStep] = None
    decision: Optional[Decision] = None
    instance: Optional[WorkflowInstance] = None
    error: Optional[KycReviewError] = None

    @property
    def workflow_complete(self) -> bool:
        return self.success and self.next_step is None


@dataclass
class TransitionResult:
    """
    Outcome of an officer, manager or executive action on a Decision.

    On denial, decision and instance are the unchanged values.
    """
    success: bool
    decision: Optional[Decision] = None
    instance: Optional[WorkflowInstance] = None
    next_step: Optional[WorkflowStep] = None
    error: Optional[KycReviewError] = None

    @property
    def is_final(self) -> bool:
        return self.decision is not None and self.decision.is_final


@dataclass(frozen=True)
class TimedOutStep:
    """A workflow step that has been waiting longer than its timeout."""
    document_id: str
    workflow_type: WorkflowType
    step: WorkflowStep
    assigned_at: datetime
    elapsed_hours: float

    @property
    def timeout_hours(self) -> Optional[float]:
        return self.step.timeout_hours


@dataclass
class AIDecisionValidation:
    """Advisory check of an AIDecision against workflow rules."""
    valid: bool
    violations: list[str] = field(default_factory=list)
    requires_manual_review: bool = False
    requires_escalation: bool = False
