"""
KYC Review AI Decision Engine

Runs one processing attempt for a document:

    embed -> find neighbors -> bias analysis -> classifier -> explainability

Every attempt produces an AIDecision. When an external call (embedding,
neighbor search or classifier) fails or the classifier exceeds its
timeout, the attempt ends in the fallback decision: ESCALATE with
confidence 0, so the document goes to manual review instead of being
dropped.
"""
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

from ..config import Settings
from ..exceptions import ClassifierFailure
from ..models import (
    AIDecision,
    Actor,
    BiasAnalysis,
    Classifier,
    ClassifierResponse,
    Embedder,
    GovernancePack,
    NeighborRecord,
    NeighborSearch,
    SYSTEM_ACTOR,
    Role,
    Verdict,
)
from .audit import AuditAction, AuditLogger
from .bias_analyzer import BiasAnalyzer
from .decision_synthesizer import DecisionSynthesizer
from .explainability import ExplainabilityReporter

logger = logging.getLogger(__name__)

DUPLICATE_PREFIX = "Possible duplicate detected."
FALLBACK_REASONING = "AI processing failed - escalated for manual review"


def _pack_from_settings(settings: Settings) -> GovernancePack:
    from ..packs import load_default_pack, load_governance_pack

    if settings.pack_path is None:
        return load_default_pack()
    return load_governance_pack(settings.pack_path)


@dataclass(frozen=True)
class ModelFeedback:
    """A reviewer's correction of an AI verdict, queued for retraining."""
    document_id: str
    correct_verdict: Verdict
    user_id: str
    role: Role
    comment: Optional[str] = None
    recorded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class AIDecisionEngine:
    """
    Produces AIDecisions from document text.

    Constructed once by the application and passed to whoever needs it.
    Owns a small thread pool used to bound classifier calls; call close()
    (or use it as a context manager) when done.

    Bias weights come from the governance pack: the one passed in, else
    settings.pack_path, else the bundled pack.

    Usage:
        with AIDecisionEngine(classifier, embedder, search, audit) as engine:
            decision = engine.make_decision("doc-1", text, "PAN")
    """

    def __init__(
        self,
        classifier: Classifier,
        embedder: Embedder,
        neighbor_search: NeighborSearch,
        audit: AuditLogger,
        settings: Optional[Settings] = None,
        pack: Optional[GovernancePack] = None,
        bias_analyzer: Optional[BiasAnalyzer] = None,
        synthesizer: Optional[DecisionSynthesizer] = None,
        explainer: Optional[ExplainabilityReporter] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings or Settings()
        self.classifier = classifier
        self.embedder = embedder
        self.neighbor_search = neighbor_search
        self.audit = audit
        if bias_analyzer is None:
            pack = pack or _pack_from_settings(self.settings)
            bias_analyzer = BiasAnalyzer(pack.bias_rules)
        self.bias_analyzer = bias_analyzer
        self.synthesizer = synthesizer or DecisionSynthesizer()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.explainer = explainer or ExplainabilityReporter(
            model_version=self.settings.model_version,
            clock=self._clock,
        )

        self._executor = ThreadPoolExecutor(
            max_workers=self.settings.bulk_max_workers,
            thread_name_prefix="kycreview-classifier",
        )
        self._lock = threading.Lock()
        self._history: dict[str, list[AIDecision]] = {}
        self._feedback: list[ModelFeedback] = []

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> AIDecisionEngine:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # =========================================================================
    # Decisions
    # =========================================================================

    def make_decision(
        self,
        document_id: str,
        extracted_text: str,
        document_type: str,
        actor: Optional[Actor] = None,
    ) -> AIDecision:
        """
        Run one processing attempt. Never raises for external failures.

        Args:
            document_id: Document being classified
            extracted_text: Text extracted from the document
            document_type: Document type (e.g. "PAN", "AADHAAR")
            actor: Who triggered processing (defaults to the system identity)
        """
        actor = actor or SYSTEM_ACTOR
        started = time.monotonic()

        try:
            decision = self._run(document_id, extracted_text, document_type, started)
        except ClassifierFailure as e:
            e.document_id = document_id
            logger.warning(
                "AI processing failed for %s: %s", document_id, e.message,
                extra={"document_id": document_id},
            )
            decision = self._fallback(document_id, e, started)
            self.audit.log(
                actor.user_id, actor.role, AuditAction.AI_PROCESSING_FAILED,
                "DOCUMENT", document_id, success=False,
                details={"error": e.to_dict(), "model_version": decision.model_version},
                module_name="decision_engine",
            )

        self._remember(decision)
        self.audit.log(
            actor.user_id, actor.role, AuditAction.AI_DECISION_MADE,
            "DOCUMENT", document_id, success=not decision.fallback,
            details={
                "verdict": decision.verdict.value,
                "confidence": decision.confidence,
                "bias_score": decision.bias_analysis.bias_score,
                "processing_time": decision.processing_time_ms,
                "model_version": decision.model_version,
            },
            module_name="decision_engine",
        )
        logger.info(
            "AI decision for %s: %s (%.2f)", document_id, decision.verdict.value,
            decision.confidence,
            extra={
                "document_id": document_id,
                "verdict": decision.verdict.value,
                "duration_ms": decision.processing_time_ms,
            },
        )
        return decision

    def _run(
        self,
        document_id: str,
        extracted_text: str,
        document_type: str,
        started: float,
    ) -> AIDecision:
        neighbors = self._find_neighbors(extracted_text, document_type)
        bias = self.bias_analyzer.analyze(extracted_text, document_type, neighbors)
        synthesis = self.synthesizer.synthesize(
            extracted_text, document_type, bias, neighbors, self._classify_with_timeout,
        )

        verdict = synthesis.verdict
        reasoning = synthesis.reasoning
        duplicate = self._find_duplicate(neighbors)
        if duplicate is not None:
            verdict = Verdict.ESCALATE
            reasoning = f"{DUPLICATE_PREFIX} {reasoning}"
            logger.info(
                "Document %s near-duplicate of %s (score %.3f)",
                document_id, duplicate.id, duplicate.score,
                extra={"document_id": document_id},
            )

        explainability = self.explainer.explain(
            verdict, synthesis.confidence, bias, neighbors, extracted_text,
        )
        return AIDecision(
            document_id=document_id,
            verdict=verdict,
            confidence=synthesis.confidence,
            reasoning=reasoning,
            bias_analysis=bias,
            explainability=explainability,
            processing_time_ms=self._elapsed_ms(started),
            model_version=self.settings.model_version,
            created_at=self._clock(),
        )

    def _find_neighbors(self, text: str, document_type: str) -> list[NeighborRecord]:
        try:
            embedding = self.embedder.embed(text)
            neighbors = self.neighbor_search.find_neighbors(
                embedding, document_type, self.settings.neighbor_k,
            )
        except Exception as e:
            raise ClassifierFailure(
                message=f"Similarity lookup failed: {e}",
                details={"error_type": type(e).__name__, "stage": "neighbor_search"},
            ) from e
        return list(neighbors or [])

    def _classify_with_timeout(self, prompt: str) -> ClassifierResponse:
        timeout = self.settings.classifier_timeout_seconds
        future = self._executor.submit(self.classifier.classify, prompt)
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError as e:
            future.cancel()
            raise ClassifierFailure(
                message=f"Classifier timed out after {timeout}s",
                details={"timeout_seconds": timeout},
            ) from e

    def _find_duplicate(self, neighbors: Sequence[NeighborRecord]) -> Optional[NeighborRecord]:
        threshold = self.settings.duplicate_threshold
        matches = [n for n in neighbors if n.score >= threshold]
        return max(matches, key=lambda n: n.score) if matches else None

    def _fallback(self, document_id: str, error: ClassifierFailure, started: float) -> AIDecision:
        return AIDecision(
            document_id=document_id,
            verdict=Verdict.ESCALATE,
            confidence=0.0,
            reasoning=FALLBACK_REASONING,
            bias_analysis=BiasAnalysis(
                bias_score=0.0,
                bias_factors=("Processing error",),
                confidence=0.0,
                recommendations=("Manual review required",),
            ),
            explainability=self.explainer.explain_failure(error),
            processing_time_ms=self._elapsed_ms(started),
            model_version=self.settings.fallback_model_version,
            fallback=True,
            created_at=self._clock(),
        )

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)

    # =========================================================================
    # History and feedback
    # =========================================================================

    def _remember(self, decision: AIDecision) -> None:
        with self._lock:
            self._history.setdefault(decision.document_id, []).append(decision)

    def get_decision_history(self, document_id: str) -> list[AIDecision]:
        """AIDecisions produced for a document, oldest first."""
        with self._lock:
            return list(self._history.get(document_id, []))

    def record_feedback(
        self,
        actor: Actor,
        document_id: str,
        correct_verdict: Verdict,
        comment: Optional[str] = None,
    ) -> ModelFeedback:
        """Store a verdict correction and audit the retraining trigger."""
        feedback = ModelFeedback(
            document_id=document_id,
            correct_verdict=correct_verdict,
            user_id=actor.user_id,
            role=actor.role,
            comment=comment,
            recorded_at=self._clock(),
        )
        with self._lock:
            self._feedback.append(feedback)

        self.audit.log(
            actor.user_id, actor.role, AuditAction.MODEL_RETRAINING_TRIGGERED,
            "AI_MODEL", "decision-engine", success=True,
            details={
                "document_id": document_id,
                "correct_verdict": correct_verdict.value,
            },
            module_name="decision_engine",
        )
        return feedback

    def list_feedback(self, document_id: Optional[str] = None) -> list[ModelFeedback]:
        with self._lock:
            items = list(self._feedback)
        if document_id is not None:
            items = [f for f in items if f.document_id == document_id]
        return items
