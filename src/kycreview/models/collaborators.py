"""
KYC Review Collaborator Interfaces

The core does not own authentication, embeddings, vector search, the LLM
call or document storage. It talks to them through the protocols below.
Implementations are injected into the engines at construction.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol, Sequence, Union, runtime_checkable

from .enums import DocumentStatus, Role, Verdict


# =============================================================================
# Identity
# =============================================================================

@dataclass(frozen=True)
class Actor:
    """
    An already-authenticated user as supplied by the identity provider.

    Attributes:
        user_id: Stable user identifier
        role: Assigned role, trusted as given
        team_id: Team for team-scoped views, if any
    """
    user_id: str
    role: Role
    team_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "role": self.role.value,
            "team_id": self.team_id,
        }


# Internal service identity for automated steps
SYSTEM_ACTOR = Actor(user_id="system", role=Role.SYSTEM)


# =============================================================================
# Neighbor search
# =============================================================================

@dataclass(frozen=True)
class NeighborRecord:
    """
    A previously processed document close to the candidate.

    metadata carries at least the neighbor's recorded "verdict" when one
    exists.
    """
    id: str
    score: float
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def verdict(self) -> Optional[Verdict]:
        raw = self.metadata.get("verdict")
        if raw is None:
            return None
        try:
            return Verdict(str(raw).upper())
        except ValueError:
            return None


ClassifierResponse = Union[str, Mapping[str, Any]]


@runtime_checkable
class Classifier(Protocol):
    """
    The LLM call, as a black box.

    May return a structured mapping or raw text. May raise or block; the
    decision engine applies its own timeout.
    """

    def classify(self, prompt: str) -> ClassifierResponse:
        ...


@runtime_checkable
class Embedder(Protocol):
    """Turns document text into an embedding vector."""

    def embed(self, text: str) -> Sequence[float]:
        ...


@runtime_checkable
class NeighborSearch(Protocol):
    """
    Similarity search over previously processed documents.

    Returns an empty list when nothing matches, never None.
    """

    def find_neighbors(
        self,
        embedding: Sequence[float],
        document_type: str,
        k: int,
    ) -> list[NeighborRecord]:
        ...


# =============================================================================
# Document storage
# =============================================================================

@runtime_checkable
class DocumentStatusStore(Protocol):
    """Owner of the external document entity's processing status."""

    def set_status(self, document_id: str, status: DocumentStatus) -> None:
        ...

    def get_status(self, document_id: str) -> Optional[DocumentStatus]:
        ...
