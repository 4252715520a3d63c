"""
KYC Review Governance Pack Schemas

Pydantic models for validating governance pack YAML/JSON files.

A governance pack is the single source of the role -> capability table,
the access-matrix metadata, the canonical workflows, the UI area guards
and the bias rule weights. The schemas map to the frozen domain models
in kycreview.models.

Schema versioning:
- schema_version field tracks breaking changes
- Loaders check major-version compatibility
"""
from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from ..models.enums import Capability


# =============================================================================
# Schema Version
# =============================================================================

SCHEMA_VERSION = "1.0.0"


# =============================================================================
# Enums as Literals (for YAML validation)
# =============================================================================

RoleValue = Literal[
    "compliance_officer", "compliance_manager", "cco", "ciso",
    "system_admin", "ml_engineer", "internal_auditor", "dpo",
    "external_auditor", "system",
]

DataScopeValue = Literal["none", "own", "team", "all"]

WorkflowTypeValue = Literal["document_processing", "bulk_processing", "rag_query"]

_CAPABILITY_NAMES = frozenset(c.value for c in Capability)


def _check_capability_names(names: Any) -> None:
    unknown = sorted(set(names) - _CAPABILITY_NAMES)
    if unknown:
        raise ValueError(f"Unknown permission names: {', '.join(unknown)}")


# =============================================================================
# Role Schemas
# =============================================================================

class RoleEntrySchema(BaseModel):
    """Capabilities and access-matrix metadata for one role."""
    role: RoleValue = Field(..., description="Role identifier")
    permissions: dict[str, bool] = Field(
        default_factory=dict,
        description="Capability name -> granted; missing names are False",
    )
    data_scope: DataScopeValue = Field("own", description="Declared data scope")
    restrictions: list[str] = Field(default_factory=list)
    audit_required: bool = True

    @field_validator("permissions")
    @classmethod
    def validate_permission_names(cls, v: dict[str, bool]) -> dict[str, bool]:
        _check_capability_names(v.keys())
        return v

    model_config = {"extra": "forbid"}


# =============================================================================
# Workflow Schemas
# =============================================================================

class WorkflowStepSchema(BaseModel):
    """Schema for a single workflow step."""
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    order: int = Field(..., ge=1)
    required_roles: list[RoleValue] = Field(..., min_length=1)
    required_permissions: list[str] = Field(default_factory=list)
    is_required: bool = True
    timeout_hours: Optional[float] = Field(None, gt=0)

    @field_validator("required_permissions")
    @classmethod
    def validate_required_permissions(cls, v: list[str]) -> list[str]:
        _check_capability_names(v)
        return v

    model_config = {"extra": "forbid"}


class WorkflowSchema(BaseModel):
    """Schema for a workflow definition."""
    type: WorkflowTypeValue
    description: Optional[str] = None
    steps: list[WorkflowStepSchema] = Field(..., min_length=1)

    model_config = {"extra": "forbid"}


# =============================================================================
# Areas and Bias Rules
# =============================================================================

class AccessAreaSchema(BaseModel):
    """A UI area guarded by one capability (or none)."""
    id: str = Field(..., min_length=1)
    label: str
    capability: Optional[str] = None

    @field_validator("capability")
    @classmethod
    def validate_capability(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            _check_capability_names([v])
        return v

    model_config = {"extra": "forbid"}


class BiasRulesSchema(BaseModel):
    """Weights and thresholds for the bias score."""
    approval_ratio: float = Field(2.0, gt=0)
    high_approval_weight: float = Field(0.3, ge=0, le=1)
    historically_approved_types: list[str] = Field(default_factory=lambda: ["PAN"])
    approved_type_weight: float = Field(0.2, ge=0, le=1)
    min_content_length: int = Field(100, ge=0)
    short_content_weight: float = Field(0.1, ge=0, le=1)
    urgency_keywords: list[str] = Field(
        default_factory=lambda: ["urgent", "rush", "emergency", "priority"]
    )
    urgency_weight: float = Field(0.2, ge=0, le=1)
    analysis_confidence: float = Field(0.85, ge=0, le=1)

    model_config = {"extra": "forbid"}


# =============================================================================
# Top-Level Pack Schema
# =============================================================================

class GovernancePackSchema(BaseModel):
    """Top-level schema for a governance pack YAML/JSON file."""
    schema_version: str = Field(SCHEMA_VERSION, description="Schema version for compatibility")
    id: str = Field(..., description="Unique identifier (e.g., 'KYC-IN-DEFAULT')")
    name: str
    version: str
    description: Optional[str] = None

    roles: list[RoleEntrySchema] = Field(..., min_length=1)
    workflows: list[WorkflowSchema] = Field(..., min_length=1)
    areas: list[AccessAreaSchema] = Field(default_factory=list)
    bias_rules: BiasRulesSchema = Field(default_factory=BiasRulesSchema)

    model_config = {"extra": "forbid"}


# =============================================================================
# Validation Helpers
# =============================================================================

def validate_governance_pack(data: dict[str, Any]) -> GovernancePackSchema:
    """
    Validate a governance pack dictionary against the schema.

    Raises:
        pydantic.ValidationError: If validation fails
    """
    return GovernancePackSchema.model_validate(data)


def check_schema_version(data: dict[str, Any]) -> bool:
    """True if the pack's schema major version matches ours."""
    pack_version = str(data.get("schema_version", SCHEMA_VERSION))
    return pack_version.split(".")[0] == SCHEMA_VERSION.split(".")[0]
