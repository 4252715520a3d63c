"""
KYC Review Bulk Processor

Fan-out batch processing. Each document in a batch is an isolated unit:
it gets its own AIDecision and its own document_processing workflow, and
one document's failure never aborts or rolls back another. The batch
result is a per-item success/failure list in input order.

The batch itself runs as a bulk_processing workflow instance keyed by the
batch id. The actor's bulk_upload access is checked once for the whole
batch; that grant authorizes the per-document upload step.
"""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence
from uuid import uuid4

from ..config import Settings
from ..exceptions import ClassifierFailure, KycReviewError
from ..models import (
    SYSTEM_ACTOR,
    Actor,
    AIDecision,
    Decision,
    StepOutcome,
    WorkflowType,
)
from .audit import AuditAction, AuditLogger
from .decision_engine import AIDecisionEngine
from .workflow_engine import WorkflowEngine

logger = logging.getLogger(__name__)

BULK_UPLOAD = "bulk_upload"
BULK_AI_PROCESSING = "bulk_ai_processing"


# =============================================================================
# Batch types
# =============================================================================

@dataclass(frozen=True)
class BatchItem:
    """One document submitted in a batch."""
    document_id: str
    extracted_text: str
    document_type: str


@dataclass
class BatchItemResult:
    """
    Per-document outcome.

    success is False when the classifier fell back to manual review or
    the document could not enter its workflow.
    """
    document_id: str
    success: bool
    ai_decision: Optional[AIDecision] = None
    decision: Optional[Decision] = None
    error: Optional[KycReviewError] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "success": self.success,
            "verdict": self.ai_decision.verdict.value if self.ai_decision else None,
            "decision_status": self.decision.status.value if self.decision else None,
            "error": self.error.to_dict() if self.error else None,
        }


@dataclass
class BatchResult:
    """
    Outcome of a batch.

    error is set (and items is empty) when the batch was refused before
    any document was processed.
    """
    batch_id: str
    items: list[BatchItemResult] = field(default_factory=list)
    error: Optional[KycReviewError] = None
    duration_ms: int = 0

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def successful(self) -> int:
        return sum(1 for i in self.items if i.success)

    @property
    def failed(self) -> int:
        return self.total - self.successful

    @property
    def accepted(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "duration_ms": self.duration_ms,
            "items": [i.to_dict() for i in self.items],
            "error": self.error.to_dict() if self.error else None,
        }


# =============================================================================
# Bulk Processor
# =============================================================================

class BulkProcessor:
    """
    Processes batches of documents concurrently.

    Usage:
        processor = BulkProcessor(decision_engine, workflow_engine, audit)
        result = processor.process_batch(manager, [BatchItem("doc-1", text, "PAN")])
        result.successful, result.failed
    """

    def __init__(
        self,
        decision_engine: AIDecisionEngine,
        workflow_engine: WorkflowEngine,
        audit: AuditLogger,
        settings: Optional[Settings] = None,
    ):
        self.decision_engine = decision_engine
        self.workflow_engine = workflow_engine
        self.audit = audit
        self.settings = settings or decision_engine.settings

    def process_batch(
        self,
        actor: Actor,
        items: Sequence[BatchItem],
        batch_id: Optional[str] = None,
    ) -> BatchResult:
        """
        Process every item independently.

        Returns a refused BatchResult (error set, no items) when the actor
        may not run bulk uploads.

        Raises:
            WorkflowStateError: If batch_id names a batch that is still open
        """
        batch_id = batch_id or f"batch-{uuid4()}"
        started = time.monotonic()

        upload = self.workflow_engine.execute_workflow_step(
            actor, WorkflowType.BULK_PROCESSING, BULK_UPLOAD, batch_id,
            {"outcome": StepOutcome.APPROVED.value, "item_count": len(items)},
        )
        if not upload.success:
            logger.info(
                "Batch %s refused for %s", batch_id, actor.user_id,
                extra={"role": actor.role.value, "actor_id": actor.user_id},
            )
            return BatchResult(batch_id=batch_id, error=upload.error)

        if items:
            workers = min(self.settings.bulk_max_workers, len(items))
            with ThreadPoolExecutor(
                max_workers=workers,
                thread_name_prefix="kycreview-bulk",
            ) as executor:
                results = list(executor.map(
                    lambda item: self._process_item(actor, batch_id, item), items,
                ))
        else:
            results = []

        self.workflow_engine.execute_workflow_step(
            SYSTEM_ACTOR, WorkflowType.BULK_PROCESSING, BULK_AI_PROCESSING, batch_id,
            {"outcome": StepOutcome.APPROVED.value},
        )

        result = BatchResult(
            batch_id=batch_id,
            items=results,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        self.audit.log(
            actor.user_id, actor.role, AuditAction.BATCH_PROCESSED,
            "BATCH", batch_id, success=True,
            details={
                "total": result.total,
                "successful": result.successful,
                "failed": result.failed,
            },
            module_name="bulk",
        )
        logger.info(
            "Batch %s: %d/%d succeeded", batch_id, result.successful, result.total,
            extra={"actor_id": actor.user_id, "duration_ms": result.duration_ms},
        )
        return result

    def _process_item(self, actor: Actor, batch_id: str, item: BatchItem) -> BatchItemResult:
        ai_decision: Optional[AIDecision] = None
        try:
            ai_decision = self.decision_engine.make_decision(
                item.document_id, item.extracted_text, item.document_type, actor=actor,
            )
            started = self.workflow_engine.start_document(actor, ai_decision, batch_id=batch_id)
        except KycReviewError as e:
            logger.warning(
                "Batch %s item %s failed: %s", batch_id, item.document_id, e.message,
                extra={"document_id": item.document_id},
            )
            return BatchItemResult(
                document_id=item.document_id,
                success=False,
                ai_decision=ai_decision,
                error=e,
            )
        except Exception as e:
            # Isolate the item; the rest of the batch carries on
            logger.exception(
                "Batch %s item %s failed unexpectedly", batch_id, item.document_id,
                extra={"document_id": item.document_id},
            )
            return BatchItemResult(
                document_id=item.document_id,
                success=False,
                ai_decision=ai_decision,
                error=KycReviewError(
                    message=str(e),
                    code="KR_BATCH_ITEM_FAILED",
                    details={"error_type": type(e).__name__},
                    document_id=item.document_id,
                ),
            )

        error = started.error
        if error is None and ai_decision.fallback:
            error = ClassifierFailure(
                message=ai_decision.reasoning,
                document_id=item.document_id,
            )
        return BatchItemResult(
            document_id=item.document_id,
            success=started.success and not ai_decision.fallback,
            ai_decision=ai_decision,
            decision=started.decision,
            error=error,
        )
