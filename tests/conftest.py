"""
Pytest configuration and fixtures for KYC review tests.

Provides helper factories, scripted collaborators and common fixtures.
"""
import json
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Sequence, Union

import pytest

from kycreview.config import Settings
from kycreview.engine import (
    AIDecisionEngine,
    AuditLogger,
    InMemoryAuditSink,
    InMemoryDocumentStatusStore,
    PermissionModel,
    WorkflowEngine,
)
from kycreview.models import (
    Actor,
    AIDecision,
    BiasAnalysis,
    ConfidenceInterval,
    ExplainabilityReport,
    NeighborRecord,
    RiskTier,
    Role,
    Verdict,
)
from kycreview.packs import load_default_pack


START = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


# =============================================================================
# Factory Helpers
# =============================================================================

def make_actor(role: Role = Role.OFFICER, user_id: Optional[str] = None) -> Actor:
    """Create an Actor; user id defaults to the role name."""
    return Actor(user_id=user_id or f"user-{role.value}", role=role)


def make_neighbors(
    approved: int = 0,
    rejected: int = 0,
    score: float = 0.8,
    unlabelled: int = 0,
) -> list[NeighborRecord]:
    """Create neighbor records with the given verdict mix."""
    neighbors = []
    for i in range(approved):
        neighbors.append(NeighborRecord(id=f"apr-{i}", score=score, metadata={"verdict": "APPROVED"}))
    for i in range(rejected):
        neighbors.append(NeighborRecord(id=f"rej-{i}", score=score, metadata={"verdict": "REJECTED"}))
    for i in range(unlabelled):
        neighbors.append(NeighborRecord(id=f"unk-{i}", score=score))
    return neighbors


def make_ai_decision(
    document_id: str = "doc-1",
    verdict: Verdict = Verdict.APPROVED,
    confidence: float = 0.9,
    bias_score: float = 0.1,
    fallback: bool = False,
    created_at: datetime = START,
) -> AIDecision:
    """Create an AIDecision without running the pipeline."""
    return AIDecision(
        document_id=document_id,
        verdict=verdict,
        confidence=confidence,
        reasoning="Document appears authentic",
        bias_analysis=BiasAnalysis(bias_score=bias_score, confidence=0.85),
        explainability=ExplainabilityReport(
            decision_factors=("AI confidence: 0.9",),
            confidence_interval=ConfidenceInterval(min=0.7, max=1.0),
            alternative_scenarios=(),
            risk_assessment=RiskTier.LOW,
            audit_trail=(),
        ),
        processing_time_ms=12,
        model_version="gpt-4-turbo",
        fallback=fallback,
        created_at=created_at,
    )


def long_text(prefix: str = "Permanent Account Number card") -> str:
    """Document text long enough to avoid the short-content factor."""
    return (prefix + " issued by the income tax department. ") * 4


# =============================================================================
# Scripted Collaborators
# =============================================================================

class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class ScriptedClassifier:
    """
    Classifier returning a fixed response, or raising a fixed exception.

    responder may be a callable taking the prompt, for per-document
    behaviour in batch tests.
    """

    def __init__(
        self,
        response: Union[str, dict, None] = None,
        error: Optional[Exception] = None,
        responder: Optional[Callable[[str], Any]] = None,
    ):
        self.response = response if response is not None else {
            "verdict": "APPROVED",
            "confidence": 0.92,
            "reasoning": "Document appears authentic",
        }
        self.error = error
        self.responder = responder
        self.prompts: list[str] = []
        self._lock = threading.Lock()

    def classify(self, prompt: str):
        with self._lock:
            self.prompts.append(prompt)
        if self.responder is not None:
            return self.responder(prompt)
        if self.error is not None:
            raise self.error
        return self.response


class StaticEmbedder:
    def embed(self, text: str) -> Sequence[float]:
        return [float(len(text)), 1.0]


class FailingEmbedder:
    def embed(self, text: str) -> Sequence[float]:
        raise ConnectionError("embedding service unavailable")


class StaticNeighborSearch:
    def __init__(self, neighbors: Optional[list[NeighborRecord]] = None):
        self.neighbors = list(neighbors or [])
        self.calls: list[tuple[str, int]] = []

    def find_neighbors(self, embedding, document_type: str, k: int) -> list[NeighborRecord]:
        self.calls.append((document_type, k))
        return self.neighbors[:k]


class BrokenSink:
    def append(self, entry) -> None:
        raise IOError("audit store offline")


def json_response(verdict: str, confidence: float = 0.9, reasoning: str = "ok") -> str:
    return json.dumps({"verdict": verdict, "confidence": confidence, "reasoning": reasoning})


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(scope="session")
def governance_pack():
    return load_default_pack()


@pytest.fixture
def permission_model(governance_pack):
    return PermissionModel(governance_pack)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def audit_sink():
    return InMemoryAuditSink()


@pytest.fixture
def audit(audit_sink, clock):
    return AuditLogger([audit_sink], clock=clock)


@pytest.fixture
def document_store():
    return InMemoryDocumentStatusStore()


@pytest.fixture
def workflow_engine(permission_model, audit, document_store, clock):
    return WorkflowEngine(permission_model, audit, document_store=document_store, clock=clock)


@pytest.fixture
def settings():
    return Settings(classifier_timeout_seconds=2.0)


@pytest.fixture
def classifier():
    return ScriptedClassifier()


@pytest.fixture
def neighbor_search():
    return StaticNeighborSearch()


@pytest.fixture
def decision_engine(classifier, neighbor_search, audit, settings, clock):
    engine = AIDecisionEngine(
        classifier, StaticEmbedder(), neighbor_search, audit,
        settings=settings, clock=clock,
    )
    yield engine
    engine.close()


@pytest.fixture
def officer():
    return make_actor(Role.OFFICER)


@pytest.fixture
def manager():
    return make_actor(Role.MANAGER)


@pytest.fixture
def cco():
    return make_actor(Role.CCO)
