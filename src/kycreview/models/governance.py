"""
KYC Review Governance Models

Static policy loaded from a governance pack: the role -> PermissionSet
table, access-matrix metadata, the canonical workflows, the UI area
table and the bias rule weights. Everything here is frozen and shared
read-only by the engines.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .enums import Capability, Role, WorkflowType
from .permissions import AccessMatrixEntry, PermissionSet
from .workflow import WorkflowDefinition


# =============================================================================
# Bias Rules
# =============================================================================

@dataclass(frozen=True)
class BiasRules:
    """
    Weights and thresholds for the additive bias score.

    Defaults are the production values; packs may override them.
    """
    approval_ratio: float = 2.0
    high_approval_weight: float = 0.3
    historically_approved_types: frozenset[str] = frozenset({"PAN"})
    approved_type_weight: float = 0.2
    min_content_length: int = 100
    short_content_weight: float = 0.1
    urgency_keywords: tuple[str, ...] = ("urgent", "rush", "emergency", "priority")
    urgency_weight: float = 0.2
    analysis_confidence: float = 0.85

    def to_dict(self) -> dict[str, Any]:
        return {
            "approval_ratio": self.approval_ratio,
            "high_approval_weight": self.high_approval_weight,
            "historically_approved_types": sorted(self.historically_approved_types),
            "approved_type_weight": self.approved_type_weight,
            "min_content_length": self.min_content_length,
            "short_content_weight": self.short_content_weight,
            "urgency_keywords": list(self.urgency_keywords),
            "urgency_weight": self.urgency_weight,
            "analysis_confidence": self.analysis_confidence,
        }


# =============================================================================
# Access Areas
# =============================================================================

@dataclass(frozen=True)
class AccessArea:
    """
    A UI area guarded by a single capability.

    capability=None means any human role may enter.
    """
    id: str
    label: str
    capability: Optional[Capability] = None


# =============================================================================
# Governance Pack
# =============================================================================

@dataclass(frozen=True)
class GovernancePack:
    """A fully validated governance pack."""
    id: str
    name: str
    version: str
    access_matrix: Mapping[Role, AccessMatrixEntry]
    workflows: Mapping[WorkflowType, WorkflowDefinition]
    areas: tuple[AccessArea, ...] = ()
    bias_rules: BiasRules = field(default_factory=BiasRules)
    description: Optional[str] = None

    def permissions_for(self, role: Role) -> Optional[PermissionSet]:
        entry = self.access_matrix.get(role)
        return entry.permissions if entry else None

    def workflow(self, workflow_type: WorkflowType) -> Optional[WorkflowDefinition]:
        return self.workflows.get(workflow_type)
