"""
KYC Review Governance Packs

Schema validation and loading for governance packs.

A governance pack is a YAML or JSON file holding the role -> capability
table, access-matrix metadata, the three canonical workflows, the UI area
guards and the bias rule weights.

Usage:
    from kycreview.packs import load_default_pack, GovernancePackLoader

    pack = load_default_pack()

    loader = GovernancePackLoader()
    pack = loader.load("path/to/pack.yaml")
"""
from __future__ import annotations

from .loader import (
    DEFAULT_PACK_PATH,
    GovernancePackLoader,
    load_default_pack,
    load_governance_pack,
    load_governance_pack_from_string,
    validate_reference_integrity,
)
from .schema import (
    SCHEMA_VERSION,
    AccessAreaSchema,
    BiasRulesSchema,
    GovernancePackSchema,
    RoleEntrySchema,
    WorkflowSchema,
    WorkflowStepSchema,
    check_schema_version,
    validate_governance_pack,
)

__all__ = [
    # Version
    "SCHEMA_VERSION",
    # Loader
    "DEFAULT_PACK_PATH",
    "GovernancePackLoader",
    "load_default_pack",
    "load_governance_pack",
    "load_governance_pack_from_string",
    # Validation
    "validate_governance_pack",
    "validate_reference_integrity",
    "check_schema_version",
    # Schemas
    "GovernancePackSchema",
    "RoleEntrySchema",
    "WorkflowSchema",
    "WorkflowStepSchema",
    "AccessAreaSchema",
    "BiasRulesSchema",
]
