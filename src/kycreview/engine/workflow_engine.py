"""
KYC Review Workflow Engine

The maker-checker state machine. It owns every WorkflowInstance and
Decision and is the only component that changes them.

Generic step protocol (execute_workflow_step):
1. Validate the actor's role and permissions against the step. A denial
   is audited and returned; nothing changes.
2. Check the step is the instance's current step (or the first step of a
   new instance). Anything else is a WorkflowStateError, audited as
   WORKFLOW_VIOLATION and raised.
3. Run the step logic, producing an outcome: approved / rejected /
   escalated.
4. Follow the workflow graph to the next step, commit the new Decision
   and instance together, and audit the executed step.

Decision transitions (document_processing):

    ai_proposed --officer AGREE--> final
    ai_proposed --officer DISAGREE--> pending_manager_approval
    pending_manager_approval --manager APPROVE/REJECT--> final
    pending_manager_approval --manager ESCALATE--> cco_escalated
    cco_escalated --executive APPROVE/REJECT--> final

Each document has its own lock, so a transition is never observed half
done and distinct documents proceed independently.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Union
from uuid import uuid4

from ..exceptions import AccessDeniedError, WorkflowStateError
from ..models import (
    SYSTEM_ACTOR,
    AccessCheck,
    Actor,
    AIDecision,
    AIDecisionValidation,
    Capability,
    Decision,
    DecisionStatus,
    DocumentStatus,
    DocumentStatusStore,
    ManagerAction,
    OfficerAction,
    StepExecutionResult,
    StepOutcome,
    TimedOutStep,
    TransitionResult,
    Verdict,
    WorkflowAuditEntry,
    WorkflowDefinition,
    WorkflowInstance,
    WorkflowStatus,
    WorkflowStep,
    WorkflowType,
)
from .audit import AuditAction, AuditLogger
from .permission_model import INSUFFICIENT_PERMISSIONS, PermissionModel

logger = logging.getLogger(__name__)

# Step ids with dedicated logic in document_processing
UPLOAD = "upload"
AI_CLASSIFICATION = "ai_classification"
OFFICER_REVIEW = "officer_review"
MANAGER_APPROVAL = "manager_approval"
CCO_OVERSIGHT = "cco_oversight"

# validate_ai_decision thresholds
MANUAL_REVIEW_BIAS_THRESHOLD = 0.8
ESCALATION_CONFIDENCE_THRESHOLD = 0.6

_TERMINAL_STATUS = {
    StepOutcome.APPROVED: WorkflowStatus.COMPLETED,
    StepOutcome.REJECTED: WorkflowStatus.REJECTED,
    StepOutcome.ESCALATED: WorkflowStatus.ESCALATED,
}

_DOCUMENT_STATUS = {
    Verdict.APPROVED: DocumentStatus.APPROVED,
    Verdict.REJECTED: DocumentStatus.REJECTED,
    Verdict.ESCALATE: DocumentStatus.NEEDS_REVIEW,
}


@dataclass
class StepContext:
    """Inputs to one step's logic."""
    actor: Actor
    workflow_type: WorkflowType
    step: WorkflowStep
    document_id: str
    step_data: Mapping[str, Any]
    decision: Optional[Decision]
    now: datetime


@dataclass
class StepLogicResult:
    """What a step's logic decided. decision=None leaves the Decision as is."""
    outcome: StepOutcome
    decision: Optional[Decision] = None
    document_status: Optional[DocumentStatus] = None
    audit_action: Optional[AuditAction] = None
    audit_details: dict[str, Any] = field(default_factory=dict)


StepHandler = Callable[[StepContext], StepLogicResult]


class WorkflowEngine:
    """
    Role-gated workflow state machine.

    Usage:
        engine = WorkflowEngine(PermissionModel.default(), AuditLogger([sink]))
        engine.start_document(officer, ai_decision)
        result = engine.officer_review(officer, "doc-1", OfficerAction.AGREE)
        result.decision.status   # DecisionStatus.FINAL
    """

    def __init__(
        self,
        permission_model: PermissionModel,
        audit: AuditLogger,
        document_store: Optional[DocumentStatusStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.permissions = permission_model
        self.audit = audit
        self.document_store = document_store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._instances: dict[tuple[str, WorkflowType], WorkflowInstance] = {}
        self._decisions: dict[str, Decision] = {}
        self._registry_lock = threading.Lock()
        self._document_locks: dict[str, threading.Lock] = {}

        self._handlers: dict[tuple[WorkflowType, str], StepHandler] = {
            (WorkflowType.DOCUMENT_PROCESSING, UPLOAD): self._upload_step,
            (WorkflowType.DOCUMENT_PROCESSING, AI_CLASSIFICATION): self._ai_classification_step,
            (WorkflowType.DOCUMENT_PROCESSING, OFFICER_REVIEW): self._officer_review_step,
            (WorkflowType.DOCUMENT_PROCESSING, MANAGER_APPROVAL): self._manager_approval_step,
            (WorkflowType.DOCUMENT_PROCESSING, CCO_OVERSIGHT): self._executive_step,
        }

    # =========================================================================
    # Access
    # =========================================================================

    def validate_workflow_access(
        self,
        actor: Actor,
        workflow_type: Union[WorkflowType, str],
        step_id: str,
    ) -> AccessCheck:
        """
        Check and audit the actor's access to a step.

        Raises:
            ConfigurationError: If the workflow or step is unknown
        """
        definition = self.permissions.workflow(workflow_type)
        step = self.permissions.get_step(definition.workflow_type, step_id)
        return self._check_access(actor, definition.workflow_type, step)

    def _check_access(
        self,
        actor: Actor,
        workflow_type: WorkflowType,
        step: WorkflowStep,
        extra_capabilities: tuple[Capability, ...] = (),
        authorized_by: Optional[str] = None,
    ) -> AccessCheck:
        resource_id = f"{workflow_type.value}:{step.id}"

        if authorized_by is not None:
            check = AccessCheck(allowed=True)
        else:
            check = self.permissions.check_step_access(actor.role, step)
            if check.allowed and extra_capabilities:
                held = self.permissions.capabilities_for(actor.role)
                missing = [c for c in extra_capabilities if not held.has(c)]
                if missing:
                    check = AccessCheck(
                        allowed=False,
                        reason=(
                            f"Role {actor.role.value} lacks permissions for this action "
                            f"on step {step.id}: {', '.join(c.value for c in missing)}"
                        ),
                        denial_code=INSUFFICIENT_PERMISSIONS,
                    )

        details: dict[str, Any] = {"workflow_type": workflow_type.value, "step_id": step.id}
        if check.allowed:
            if authorized_by is not None:
                details["authorized_by"] = authorized_by
            self.audit.log(
                actor.user_id, actor.role, AuditAction.WORKFLOW_ACCESS_GRANTED,
                "WORKFLOW_STEP", resource_id, success=True, details=details,
                module_name="workflow_engine",
            )
        else:
            details["reason"] = check.denial_code
            self.audit.log(
                actor.user_id, actor.role, AuditAction.WORKFLOW_ACCESS_DENIED,
                "WORKFLOW_STEP", resource_id, success=False, details=details,
                module_name="workflow_engine",
            )
            logger.info(
                "Access denied: %s", check.reason,
                extra={
                    "workflow_type": workflow_type.value,
                    "step_id": step.id,
                    "role": actor.role.value,
                },
            )
        return check

    @staticmethod
    def _action_capabilities(
        workflow_type: WorkflowType,
        step: WorkflowStep,
        step_data: Mapping[str, Any],
    ) -> tuple[Capability, ...]:
        """Capabilities an approve/reject action needs beyond step access."""
        if workflow_type != WorkflowType.DOCUMENT_PROCESSING:
            return ()
        if step.id not in (MANAGER_APPROVAL, CCO_OVERSIGHT):
            return ()
        action = str(step_data.get("action", "")).upper()
        if action == ManagerAction.APPROVE.value:
            return (Capability.APPROVE_DOCUMENTS,)
        if action == ManagerAction.REJECT.value:
            return (Capability.REJECT_DOCUMENTS,)
        return ()

    # =========================================================================
    # Generic step protocol
    # =========================================================================

    def execute_workflow_step(
        self,
        actor: Actor,
        workflow_type: Union[WorkflowType, str],
        step_id: str,
        document_id: str,
        step_data: Optional[Mapping[str, Any]] = None,
    ) -> StepExecutionResult:
        """
        Execute one step for a document.

        Returns a failed result carrying an AccessDeniedError when access
        is denied; state is unchanged in that case.

        Raises:
            ConfigurationError: If the workflow or step is unknown
            WorkflowStateError: If the step cannot run in the current state
        """
        return self._execute(actor, workflow_type, step_id, document_id, step_data)

    def _execute(
        self,
        actor: Actor,
        workflow_type: Union[WorkflowType, str],
        step_id: str,
        document_id: str,
        step_data: Optional[Mapping[str, Any]] = None,
        authorized_by: Optional[str] = None,
    ) -> StepExecutionResult:
        definition = self.permissions.workflow(workflow_type)
        wf_type = definition.workflow_type
        step = self.permissions.get_step(wf_type, step_id)
        data = dict(step_data or {})

        with self._document_lock(document_id):
            instance = self._instance(document_id, wf_type)
            decision = self._decision(document_id)

            access = self._check_access(
                actor, wf_type, step,
                extra_capabilities=self._action_capabilities(wf_type, step, data),
                authorized_by=authorized_by,
            )
            if not access.allowed:
                return StepExecutionResult(
                    success=False,
                    decision=decision,
                    instance=instance,
                    error=AccessDeniedError(
                        message=access.reason or "Access denied",
                        document_id=document_id,
                        role=actor.role.value,
                        workflow_type=wf_type.value,
                        step_id=step.id,
                        reason=access.denial_code,
                    ),
                )

            now = self._clock()
            try:
                current = self._ensure_current(actor, instance, definition, step, document_id, now)
                logic = self._run_step_logic(StepContext(
                    actor=actor,
                    workflow_type=wf_type,
                    step=step,
                    document_id=document_id,
                    step_data=data,
                    decision=decision,
                    now=now,
                ))
            except WorkflowStateError as e:
                e.document_id = document_id
                self._record_violation(actor, wf_type, step, document_id, e)
                raise

            new_instance, next_step = self._advance(current, definition, step, actor, logic, now)

            new_decision = logic.decision
            if new_decision is not None and new_decision.is_final and not new_decision.is_sealed:
                new_decision = new_decision.sealed()

            if logic.document_status is not None and self.document_store is not None:
                self.document_store.set_status(document_id, logic.document_status)

            with self._registry_lock:
                self._instances[(document_id, wf_type)] = new_instance
                if new_decision is not None:
                    self._decisions[document_id] = new_decision
            decision = new_decision or decision

            self.audit.log(
                actor.user_id, actor.role, AuditAction.WORKFLOW_STEP_EXECUTED,
                "DOCUMENT", document_id, success=True,
                details={
                    "workflow_type": wf_type.value,
                    "step_id": step.id,
                    "execution_status": "completed",
                    "outcome": logic.outcome.value,
                    "next_step": next_step.id if next_step else None,
                    "workflow_status": new_instance.status.value,
                },
                module_name="workflow_engine",
            )
            if logic.audit_action is not None:
                self.audit.log(
                    actor.user_id, actor.role, logic.audit_action,
                    "DOCUMENT", document_id, success=True,
                    details=logic.audit_details, module_name="workflow_engine",
                )

        logger.info(
            "Step %s on %s: %s", step.id, document_id, logic.outcome.value,
            extra={
                "document_id": document_id,
                "workflow_type": wf_type.value,
                "step_id": step.id,
                "role": actor.role.value,
            },
        )
        return StepExecutionResult(
            success=True,
            outcome=logic.outcome,
            next_step=next_step,
            decision=decision,
            instance=new_instance,
        )

    def _ensure_current(
        self,
        actor: Actor,
        instance: Optional[WorkflowInstance],
        definition: WorkflowDefinition,
        step: WorkflowStep,
        document_id: str,
        now: datetime,
    ) -> WorkflowInstance:
        """The instance the step runs on, starting a new one at the first step."""
        if instance is not None and not instance.is_terminal:
            current_id = instance.current_step.id if instance.current_step else None
            if current_id != step.id:
                raise WorkflowStateError(
                    message=(
                        f"Step {step.id} is not the current step of the "
                        f"{definition.workflow_type.value} workflow (current: {current_id})"
                    ),
                    current_status=instance.status.value,
                    attempted_action=step.id,
                )
            return instance

        if step.id != definition.first_step.id:
            raise WorkflowStateError(
                message=f"No active {definition.workflow_type.value} workflow for {document_id}",
                current_status=instance.status.value if instance else None,
                attempted_action=step.id,
            )

        return WorkflowInstance(
            workflow_id=str(uuid4()),
            workflow_type=definition.workflow_type,
            document_id=document_id,
            current_step=step,
            completed_steps=(),
            pending_steps=tuple(s for s in definition.steps_after(step.id) if s.is_required),
            status=WorkflowStatus.ACTIVE,
            created_at=now,
            updated_at=now,
            step_assigned_at=now,
            assigned_users=(),
            audit_trail=(
                WorkflowAuditEntry(
                    timestamp=now,
                    user_id=actor.user_id,
                    role=actor.role.value,
                    action="workflow_started",
                ),
            ),
        )

    def _advance(
        self,
        instance: WorkflowInstance,
        definition: WorkflowDefinition,
        step: WorkflowStep,
        actor: Actor,
        logic: StepLogicResult,
        now: datetime,
    ) -> tuple[WorkflowInstance, Optional[WorkflowStep]]:
        next_step = definition.next_step(step.id, logic.outcome)
        if next_step is not None:
            status = WorkflowStatus.ACTIVE
            pending = tuple(s for s in definition.steps_after(next_step.id) if s.is_required)
        else:
            status = _TERMINAL_STATUS[logic.outcome]
            pending = ()

        entry = WorkflowAuditEntry(
            timestamp=now,
            user_id=actor.user_id,
            role=actor.role.value,
            action=f"{step.id}:{logic.outcome.value}",
            details=dict(logic.audit_details),
        )
        users = instance.assigned_users
        if actor.user_id not in users:
            users = users + (actor.user_id,)

        return replace(
            instance,
            current_step=next_step,
            completed_steps=instance.completed_steps + (step,),
            pending_steps=pending,
            status=status,
            updated_at=now,
            step_assigned_at=now,
            assigned_users=users,
            audit_trail=instance.audit_trail + (entry,),
        ), next_step

    def _run_step_logic(self, ctx: StepContext) -> StepLogicResult:
        handler = self._handlers.get((ctx.workflow_type, ctx.step.id), self._generic_step)
        return handler(ctx)

    def _record_violation(
        self,
        actor: Actor,
        workflow_type: WorkflowType,
        step: WorkflowStep,
        document_id: str,
        error: WorkflowStateError,
    ) -> None:
        details = {
            "workflow_type": workflow_type.value,
            "step_id": step.id,
            "error": error.to_dict(),
        }
        self.audit.log(
            actor.user_id, actor.role, AuditAction.WORKFLOW_VIOLATION,
            "DOCUMENT", document_id, success=False, details=details,
            module_name="workflow_engine",
        )
        self.audit.log(
            actor.user_id, actor.role, AuditAction.WORKFLOW_STEP_EXECUTED,
            "DOCUMENT", document_id, success=False,
            details={**details, "execution_status": "failed"},
            module_name="workflow_engine",
        )
        logger.warning(
            "Workflow violation on %s: %s", document_id, error.message,
            extra={
                "document_id": document_id,
                "workflow_type": workflow_type.value,
                "step_id": step.id,
                "role": actor.role.value,
            },
        )

    # =========================================================================
    # Step logic
    # =========================================================================

    def _generic_step(self, ctx: StepContext) -> StepLogicResult:
        raw = ctx.step_data.get("outcome", StepOutcome.APPROVED.value)
        try:
            outcome = StepOutcome(raw)
        except ValueError as e:
            raise WorkflowStateError(
                message=f"Unknown outcome '{raw}' for step {ctx.step.id}",
                attempted_action=str(raw),
            ) from e
        return StepLogicResult(outcome=outcome, audit_details={"outcome": outcome.value})

    def _upload_step(self, ctx: StepContext) -> StepLogicResult:
        details: dict[str, Any] = {}
        if "batch_id" in ctx.step_data:
            details["batch_id"] = ctx.step_data["batch_id"]
        return StepLogicResult(
            outcome=StepOutcome.APPROVED,
            document_status=DocumentStatus.UPLOADED,
            audit_details=details,
        )

    def _ai_classification_step(self, ctx: StepContext) -> StepLogicResult:
        ai_decision = ctx.step_data.get("ai_decision")
        if not isinstance(ai_decision, AIDecision):
            raise WorkflowStateError(
                message="AI classification step requires an AIDecision",
                attempted_action=AI_CLASSIFICATION,
            )
        if ai_decision.document_id != ctx.document_id:
            raise WorkflowStateError(
                message=(
                    f"AIDecision is for {ai_decision.document_id}, "
                    f"not {ctx.document_id}"
                ),
                attempted_action=AI_CLASSIFICATION,
            )

        decision = Decision.from_ai_decision(ai_decision)
        if ai_decision.verdict == Verdict.ESCALATE:
            document_status = DocumentStatus.NEEDS_REVIEW
        else:
            document_status = DocumentStatus.CLASSIFIED
        return StepLogicResult(
            outcome=StepOutcome.APPROVED,
            decision=decision,
            document_status=document_status,
            audit_details={
                "decision_id": decision.id,
                "ai_verdict": ai_decision.verdict.value,
                "ai_confidence": ai_decision.confidence,
                "fallback": ai_decision.fallback,
            },
        )

    def _officer_review_step(self, ctx: StepContext) -> StepLogicResult:
        decision = self._require_status(ctx, DecisionStatus.AI_PROPOSED)
        action = self._parse_action(ctx, OfficerAction)
        comment = ctx.step_data.get("comment")

        officer_fields = dict(
            officer_user_id=ctx.actor.user_id,
            officer_action=action,
            officer_comment=comment,
            officer_timestamp=ctx.now,
        )
        # Agreeing with an ESCALATE proposal is itself an escalation
        if action == OfficerAction.AGREE and decision.ai_verdict != Verdict.ESCALATE:
            updated = replace(
                decision,
                status=DecisionStatus.FINAL,
                final_verdict=decision.ai_verdict,
                finalized_at=ctx.now,
                **officer_fields,
            )
            outcome = StepOutcome.APPROVED
            document_status = _DOCUMENT_STATUS[decision.ai_verdict]
        else:
            updated = replace(
                decision,
                status=DecisionStatus.PENDING_MANAGER_APPROVAL,
                **officer_fields,
            )
            outcome = StepOutcome.ESCALATED
            document_status = DocumentStatus.NEEDS_REVIEW

        return StepLogicResult(
            outcome=outcome,
            decision=updated,
            document_status=document_status,
            audit_action=AuditAction.OFFICER_REVIEW,
            audit_details={
                "officer_action": action.value,
                "comment": comment,
                "status": updated.status.value,
            },
        )

    def _manager_approval_step(self, ctx: StepContext) -> StepLogicResult:
        decision = self._require_status(ctx, DecisionStatus.PENDING_MANAGER_APPROVAL)
        action = self._parse_action(ctx, ManagerAction)
        justification = ctx.step_data.get("justification")

        manager_fields = dict(
            manager_user_id=ctx.actor.user_id,
            manager_action=action,
            manager_justification=justification,
            manager_timestamp=ctx.now,
        )
        if action == ManagerAction.ESCALATE:
            updated = replace(decision, status=DecisionStatus.CCO_ESCALATED, **manager_fields)
            outcome = StepOutcome.ESCALATED
            document_status = DocumentStatus.NEEDS_REVIEW
        else:
            updated, outcome, document_status = self._finalize(decision, action, ctx.now)
            updated = replace(updated, **manager_fields)

        return StepLogicResult(
            outcome=outcome,
            decision=updated,
            document_status=document_status,
            audit_action=AuditAction.MANAGER_DECISION,
            audit_details={
                "manager_action": action.value,
                "justification": justification,
                "status": updated.status.value,
            },
        )

    def _executive_step(self, ctx: StepContext) -> StepLogicResult:
        decision = self._require_status(ctx, DecisionStatus.CCO_ESCALATED)
        action = self._parse_action(ctx, ManagerAction)
        if action == ManagerAction.ESCALATE:
            raise WorkflowStateError(
                message="Executive oversight is the last escalation level",
                current_status=decision.status.value,
                attempted_action=action.value,
            )
        justification = ctx.step_data.get("justification")

        updated, outcome, document_status = self._finalize(decision, action, ctx.now)
        updated = replace(
            updated,
            executive_user_id=ctx.actor.user_id,
            executive_action=action,
            executive_justification=justification,
            executive_timestamp=ctx.now,
        )
        return StepLogicResult(
            outcome=outcome,
            decision=updated,
            document_status=document_status,
            audit_action=AuditAction.EXECUTIVE_DECISION,
            audit_details={
                "executive_action": action.value,
                "justification": justification,
                "status": updated.status.value,
            },
        )

    @staticmethod
    def _finalize(
        decision: Decision,
        action: ManagerAction,
        now: datetime,
    ) -> tuple[Decision, StepOutcome, DocumentStatus]:
        if action == ManagerAction.APPROVE:
            verdict, outcome = Verdict.APPROVED, StepOutcome.APPROVED
        else:
            verdict, outcome = Verdict.REJECTED, StepOutcome.REJECTED
        updated = replace(
            decision,
            status=DecisionStatus.FINAL,
            final_verdict=verdict,
            finalized_at=now,
        )
        return updated, outcome, _DOCUMENT_STATUS[verdict]

    @staticmethod
    def _require_status(ctx: StepContext, expected: DecisionStatus) -> Decision:
        decision = ctx.decision
        if decision is None:
            raise WorkflowStateError(
                message=f"No decision recorded for {ctx.document_id}",
                attempted_action=ctx.step.id,
            )
        if decision.status != expected:
            raise WorkflowStateError(
                message=(
                    f"Step {ctx.step.id} requires decision status {expected.value}, "
                    f"found {decision.status.value}"
                ),
                current_status=decision.status.value,
                attempted_action=ctx.step.id,
            )
        return decision

    @staticmethod
    def _parse_action(ctx: StepContext, action_type):
        raw = ctx.step_data.get("action")
        try:
            return action_type(str(raw).upper())
        except ValueError as e:
            raise WorkflowStateError(
                message=f"Unknown action '{raw}' for step {ctx.step.id}",
                current_status=ctx.decision.status.value if ctx.decision else None,
                attempted_action=str(raw),
            ) from e

    # =========================================================================
    # Document lifecycle
    # =========================================================================

    def start_document(
        self,
        actor: Actor,
        ai_decision: AIDecision,
        batch_id: Optional[str] = None,
    ) -> TransitionResult:
        """
        Enter a document into document_processing with its AIDecision.

        Runs the upload step as the actor and the AI classification step
        as the system identity, leaving the new Decision in ai_proposed
        and the workflow at officer review. With batch_id, the upload step
        is authorized by the batch's bulk_processing access check instead
        of the actor's upload permission.

        Raises:
            WorkflowStateError: If the document already has an open workflow
        """
        document_id = ai_decision.document_id
        upload_data = {"batch_id": batch_id} if batch_id else {}
        authorized_by = (
            f"{WorkflowType.BULK_PROCESSING.value}:{batch_id}" if batch_id else None
        )

        prior = self._instance(document_id, WorkflowType.DOCUMENT_PROCESSING)
        upload = self._execute(
            actor, WorkflowType.DOCUMENT_PROCESSING, UPLOAD, document_id,
            upload_data, authorized_by=authorized_by,
        )
        if not upload.success:
            return TransitionResult(
                success=False,
                decision=upload.decision,
                instance=upload.instance,
                error=upload.error,
            )

        try:
            classified = self._execute(
                SYSTEM_ACTOR, WorkflowType.DOCUMENT_PROCESSING, AI_CLASSIFICATION, document_id,
                {"ai_decision": ai_decision},
            )
        except Exception:
            self._rollback_upload(actor, document_id, upload.instance, prior)
            raise
        return self._transition(classified)

    def _rollback_upload(
        self,
        actor: Actor,
        document_id: str,
        started: Optional[WorkflowInstance],
        prior: Optional[WorkflowInstance],
    ) -> None:
        """Undo an upload whose classification step did not commit."""
        key = (document_id, WorkflowType.DOCUMENT_PROCESSING)
        with self._document_lock(document_id):
            with self._registry_lock:
                if self._instances.get(key) is not started:
                    return
                if prior is None:
                    del self._instances[key]
                else:
                    self._instances[key] = prior

        self.audit.log(
            actor.user_id, actor.role, AuditAction.WORKFLOW_STEP_EXECUTED,
            "DOCUMENT", document_id, success=False,
            details={
                "workflow_type": WorkflowType.DOCUMENT_PROCESSING.value,
                "step_id": UPLOAD,
                "execution_status": "rolled_back",
            },
            module_name="workflow_engine",
        )
        logger.warning(
            "Upload of %s rolled back; classification did not complete", document_id,
            extra={"document_id": document_id, "step_id": UPLOAD},
        )

    def officer_review(
        self,
        actor: Actor,
        document_id: str,
        action: Union[OfficerAction, str],
        comment: Optional[str] = None,
    ) -> TransitionResult:
        """Maker decision on the AI proposal (AGREE / DISAGREE)."""
        result = self._execute(
            actor, WorkflowType.DOCUMENT_PROCESSING, OFFICER_REVIEW, document_id,
            {"action": getattr(action, "value", action), "comment": comment},
        )
        return self._transition(result)

    def manager_decision(
        self,
        actor: Actor,
        document_id: str,
        action: Union[ManagerAction, str],
        justification: Optional[str] = None,
    ) -> TransitionResult:
        """Checker decision (APPROVE / REJECT / ESCALATE)."""
        result = self._execute(
            actor, WorkflowType.DOCUMENT_PROCESSING, MANAGER_APPROVAL, document_id,
            {"action": getattr(action, "value", action), "justification": justification},
        )
        return self._transition(result)

    def executive_decision(
        self,
        actor: Actor,
        document_id: str,
        action: Union[ManagerAction, str],
        justification: Optional[str] = None,
    ) -> TransitionResult:
        """Executive oversight decision on an escalated document (APPROVE / REJECT)."""
        result = self._execute(
            actor, WorkflowType.DOCUMENT_PROCESSING, CCO_OVERSIGHT, document_id,
            {"action": getattr(action, "value", action), "justification": justification},
        )
        return self._transition(result)

    @staticmethod
    def _transition(result: StepExecutionResult) -> TransitionResult:
        return TransitionResult(
            success=result.success,
            decision=result.decision,
            instance=result.instance,
            next_step=result.next_step,
            error=result.error,
        )

    # =========================================================================
    # AI output validation
    # =========================================================================

    def validate_ai_decision(self, actor: Actor, ai_decision: AIDecision) -> AIDecisionValidation:
        """
        Advisory check of an AIDecision against the actor's authority.

        Violations are returned, never raised; the caller decides whether
        to block or warn.
        """
        permissions = self.permissions.capabilities_for(actor.role)
        violations: list[str] = []

        if ai_decision.verdict == Verdict.APPROVED and not permissions.can_approve_documents:
            violations.append("User lacks approval permissions for AI decision")
        if ai_decision.verdict == Verdict.REJECTED and not permissions.can_reject_documents:
            violations.append("User lacks rejection permissions for AI decision")

        manual_review = ai_decision.bias_analysis.bias_score > MANUAL_REVIEW_BIAS_THRESHOLD
        if manual_review:
            violations.append("High bias score requires manual review")

        escalation = ai_decision.confidence < ESCALATION_CONFIDENCE_THRESHOLD
        if escalation:
            violations.append("Low confidence requires escalation")

        return AIDecisionValidation(
            valid=not violations,
            violations=violations,
            requires_manual_review=manual_review,
            requires_escalation=escalation,
        )

    # =========================================================================
    # Timeouts
    # =========================================================================

    def check_workflow_timeouts(
        self,
        now: Optional[datetime] = None,
        document_id: Optional[str] = None,
    ) -> list[TimedOutStep]:
        """Active steps waiting longer than their timeout. Read-only."""
        now = now or self._clock()
        with self._registry_lock:
            instances = list(self._instances.values())

        overdue = []
        for instance in instances:
            if document_id is not None and instance.document_id != document_id:
                continue
            timed_out = self._overdue(instance, now)
            if timed_out is not None:
                overdue.append(timed_out)
        return sorted(overdue, key=lambda t: (t.document_id, t.workflow_type.value))

    @staticmethod
    def _overdue(instance: WorkflowInstance, now: datetime) -> Optional[TimedOutStep]:
        step = instance.current_step
        if instance.is_terminal or step is None or step.timeout_hours is None:
            return None
        elapsed = (now - instance.step_assigned_at).total_seconds() / 3600
        if elapsed <= step.timeout_hours:
            return None
        return TimedOutStep(
            document_id=instance.document_id,
            workflow_type=instance.workflow_type,
            step=step,
            assigned_at=instance.step_assigned_at,
            elapsed_hours=round(elapsed, 3),
        )

    def escalate_timed_out(
        self,
        actor: Actor,
        now: Optional[datetime] = None,
    ) -> list[WorkflowInstance]:
        """
        Out-of-band sweep: mark every overdue instance escalated.

        The Decision is left as it was. The document becomes eligible for
        a new workflow pass.
        """
        now = now or self._clock()
        escalated = []
        for timed_out in self.check_workflow_timeouts(now):
            with self._document_lock(timed_out.document_id):
                instance = self._instance(timed_out.document_id, timed_out.workflow_type)
                if instance is None:
                    continue
                # Re-check under the lock; the step may have moved on
                current = self._overdue(instance, now)
                if current is None or current.step.id != timed_out.step.id:
                    continue

                details = {
                    "workflow_type": instance.workflow_type.value,
                    "step_id": current.step.id,
                    "elapsed_hours": current.elapsed_hours,
                    "timeout_hours": current.timeout_hours,
                }
                updated = replace(
                    instance,
                    current_step=None,
                    pending_steps=(),
                    status=WorkflowStatus.ESCALATED,
                    updated_at=now,
                    audit_trail=instance.audit_trail + (
                        WorkflowAuditEntry(
                            timestamp=now,
                            user_id=actor.user_id,
                            role=actor.role.value,
                            action="timeout_escalated",
                            details=details,
                        ),
                    ),
                )
                if (
                    self.document_store is not None
                    and instance.workflow_type == WorkflowType.DOCUMENT_PROCESSING
                ):
                    self.document_store.set_status(instance.document_id, DocumentStatus.NEEDS_REVIEW)

                with self._registry_lock:
                    self._instances[(instance.document_id, instance.workflow_type)] = updated

                self.audit.log(
                    actor.user_id, actor.role, AuditAction.WORKFLOW_TIMEOUT_ESCALATED,
                    "DOCUMENT", instance.document_id, success=True, details=details,
                    module_name="workflow_engine",
                )
                logger.warning(
                    "Step %s on %s timed out after %.1fh; escalated",
                    current.step.id, instance.document_id, current.elapsed_hours,
                    extra={
                        "document_id": instance.document_id,
                        "workflow_type": instance.workflow_type.value,
                        "step_id": current.step.id,
                    },
                )
                escalated.append(updated)
        return escalated

    # =========================================================================
    # Queries
    # =========================================================================

    def get_decision(self, document_id: str) -> Optional[Decision]:
        """The latest Decision for a document."""
        return self._decision(document_id)

    def get_workflow_status(
        self,
        document_id: str,
        workflow_type: WorkflowType = WorkflowType.DOCUMENT_PROCESSING,
    ) -> Optional[WorkflowInstance]:
        """The latest workflow instance for a document."""
        return self._instance(document_id, workflow_type)

    def list_workflows(
        self,
        status: Optional[WorkflowStatus] = None,
        workflow_type: Optional[WorkflowType] = None,
    ) -> list[WorkflowInstance]:
        with self._registry_lock:
            instances = list(self._instances.values())
        return [
            i for i in instances
            if (status is None or i.status == status)
            and (workflow_type is None or i.workflow_type == workflow_type)
        ]

    def list_decisions(self) -> list[Decision]:
        with self._registry_lock:
            return list(self._decisions.values())

    # =========================================================================
    # Internal state
    # =========================================================================

    def _document_lock(self, document_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._document_locks.get(document_id)
            if lock is None:
                lock = threading.Lock()
                self._document_locks[document_id] = lock
            return lock

    def _instance(self, document_id: str, workflow_type: WorkflowType) -> Optional[WorkflowInstance]:
        with self._registry_lock:
            return self._instances.get((document_id, workflow_type))

    def _decision(self, document_id: str) -> Optional[Decision]:
        with self._registry_lock:
            return self._decisions.get(document_id)
