"""
KYC Review Governance Pack Loader

Loads and validates governance packs from YAML or JSON files and converts
the pydantic schema models into frozen kycreview domain models.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import ValidationError

from ..exceptions import PackLoadError, PackValidationError, PackVersionMismatch
from ..models import (
    AccessArea,
    AccessMatrixEntry,
    BiasRules,
    Capability,
    DataScope,
    GovernancePack,
    PermissionSet,
    Role,
    WorkflowDefinition,
    WorkflowStep,
    WorkflowType,
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

logger = logging.getLogger(__name__)

DEFAULT_PACK_PATH = Path(__file__).parent / "default_pack.yaml"


# =============================================================================
# Reference Integrity Validation
# =============================================================================

def validate_reference_integrity(schema: GovernancePackSchema, path: str = "") -> None:
    """
    Validate cross-entry consistency the field schemas cannot express.

    Catches:
    - Roles with no entry, or more than one entry
    - Missing or duplicate workflow types
    - Duplicate step ids or step orders within a workflow
    - Duplicate area ids

    Raises:
        ValueError: If reference integrity errors are found
    """
    errors = []

    seen_roles: set[str] = set()
    for entry in schema.roles:
        if entry.role in seen_roles:
            errors.append(f"Duplicate role entry: '{entry.role}'")
        seen_roles.add(entry.role)
    for role in Role:
        if role.value not in seen_roles:
            errors.append(f"Missing role entry: '{role.value}'")

    seen_types: set[str] = set()
    for workflow in schema.workflows:
        if workflow.type in seen_types:
            errors.append(f"Duplicate workflow: '{workflow.type}'")
        seen_types.add(workflow.type)

        step_ids: set[str] = set()
        orders: set[int] = set()
        for step in workflow.steps:
            if step.id in step_ids:
                errors.append(f"Duplicate step ID '{step.id}' in workflow '{workflow.type}'")
            if step.order in orders:
                errors.append(f"Duplicate step order {step.order} in workflow '{workflow.type}'")
            step_ids.add(step.id)
            orders.add(step.order)

    for workflow_type in WorkflowType:
        if workflow_type.value not in seen_types:
            errors.append(f"Missing workflow: '{workflow_type.value}'")

    seen_areas: set[str] = set()
    for area in schema.areas:
        if area.id in seen_areas:
            errors.append(f"Duplicate area ID: '{area.id}'")
        seen_areas.add(area.id)

    if errors:
        path_str = f" in {path}" if path else ""
        raise ValueError(
            f"Reference integrity errors{path_str}:\n" +
            "\n".join(f"  - {e}" for e in errors)
        )


# =============================================================================
# Schema to Model Converters
# =============================================================================

def _convert_role_entry(schema: RoleEntrySchema) -> AccessMatrixEntry:
    return AccessMatrixEntry(
        role=Role(schema.role),
        permissions=PermissionSet.from_mapping(schema.permissions),
        data_scope=DataScope(schema.data_scope),
        restrictions=tuple(schema.restrictions),
        audit_required=schema.audit_required,
    )


def _convert_step(schema: WorkflowStepSchema) -> WorkflowStep:
    return WorkflowStep(
        id=schema.id,
        name=schema.name,
        order=schema.order,
        required_roles=frozenset(Role(r) for r in schema.required_roles),
        required_permissions=tuple(Capability(p) for p in schema.required_permissions),
        is_required=schema.is_required,
        timeout_hours=schema.timeout_hours,
    )


def _convert_workflow(schema: WorkflowSchema) -> WorkflowDefinition:
    return WorkflowDefinition.from_steps(
        WorkflowType(schema.type),
        [_convert_step(s) for s in schema.steps],
    )


def _convert_area(schema: AccessAreaSchema) -> AccessArea:
    return AccessArea(
        id=schema.id,
        label=schema.label,
        capability=Capability(schema.capability) if schema.capability else None,
    )


def _convert_bias_rules(schema: BiasRulesSchema) -> BiasRules:
    return BiasRules(
        approval_ratio=schema.approval_ratio,
        high_approval_weight=schema.high_approval_weight,
        historically_approved_types=frozenset(t.upper() for t in schema.historically_approved_types),
        approved_type_weight=schema.approved_type_weight,
        min_content_length=schema.min_content_length,
        short_content_weight=schema.short_content_weight,
        urgency_keywords=tuple(k.lower() for k in schema.urgency_keywords),
        urgency_weight=schema.urgency_weight,
        analysis_confidence=schema.analysis_confidence,
    )


def _convert_governance_pack(schema: GovernancePackSchema) -> GovernancePack:
    """Convert a validated GovernancePackSchema to a GovernancePack."""
    return GovernancePack(
        id=schema.id,
        name=schema.name,
        version=schema.version,
        description=schema.description,
        access_matrix={
            Role(entry.role): _convert_role_entry(entry) for entry in schema.roles
        },
        workflows={
            WorkflowType(wf.type): _convert_workflow(wf) for wf in schema.workflows
        },
        areas=tuple(_convert_area(a) for a in schema.areas),
        bias_rules=_convert_bias_rules(schema.bias_rules),
    )


# =============================================================================
# Governance Pack Loader
# =============================================================================

class GovernancePackLoader:
    """
    Loads governance packs from YAML or JSON files.

    Usage:
        loader = GovernancePackLoader()
        pack = loader.load("path/to/pack.yaml")
    """

    def __init__(self, strict_version: bool = True):
        """
        Initialize the loader.

        Args:
            strict_version: If True, reject packs with incompatible schema versions
        """
        self.strict_version = strict_version
        self._packs: dict[str, GovernancePack] = {}

    def load(self, path: Union[str, Path]) -> GovernancePack:
        """
        Load a governance pack from a file.

        Raises:
            PackLoadError: If the file cannot be read or parsed
            PackValidationError: If schema or reference validation fails
            PackVersionMismatch: If the schema version is incompatible
        """
        path = Path(path)

        try:
            data = self._load_file(path)
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            raise PackLoadError(
                message=f"Failed to load governance pack: {e}",
                details={"path": str(path), "error": str(e)},
            ) from e

        pack = self.load_data(data, source=str(path))
        logger.info(
            "Loaded governance pack %s v%s from %s", pack.id, pack.version, path,
        )
        return pack

    def load_data(self, data: Any, source: str = "") -> GovernancePack:
        """Validate and convert an already-parsed pack mapping."""
        if not isinstance(data, dict):
            raise PackLoadError(
                message="Governance pack must be a mapping at the top level",
                details={"path": source, "type": type(data).__name__},
            )

        if self.strict_version and not check_schema_version(data):
            pack_version = data.get("schema_version", "unknown")
            raise PackVersionMismatch(
                message=f"Schema version mismatch: pack has {pack_version}, expected {SCHEMA_VERSION}",
                details={
                    "pack_version": pack_version,
                    "expected_version": SCHEMA_VERSION,
                },
            )

        try:
            schema = validate_governance_pack(data)
        except ValidationError as e:
            raise PackValidationError(
                message=f"Governance pack validation failed: {e.error_count()} errors",
                details={"errors": e.errors(), "path": source},
            ) from e

        try:
            validate_reference_integrity(schema, source)
        except ValueError as e:
            raise PackValidationError(
                message="Reference integrity validation failed",
                details={"errors": str(e), "path": source},
            ) from e

        pack = _convert_governance_pack(schema)
        self._packs[pack.id] = pack
        return pack

    def _load_file(self, path: Path) -> Any:
        """Load data from YAML or JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() == ".json":
                return json.load(f)
            return yaml.safe_load(f)

    def get_pack(self, pack_id: str) -> Optional[GovernancePack]:
        """Get a cached pack by ID."""
        return self._packs.get(pack_id)

    def list_packs(self) -> list[str]:
        """List IDs of all loaded packs."""
        return list(self._packs.keys())


# =============================================================================
# Convenience Functions
# =============================================================================

def load_governance_pack(path: Union[str, Path]) -> GovernancePack:
    """Load a governance pack from a file with a temporary loader."""
    return GovernancePackLoader().load(path)


def load_governance_pack_from_string(content: str, format: str = "yaml") -> GovernancePack:
    """Load a governance pack from a YAML or JSON string."""
    try:
        if format.lower() == "json":
            data = json.loads(content)
        else:
            data = yaml.safe_load(content)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise PackLoadError(
            message=f"Failed to parse governance pack: {e}",
            details={"format": format},
        ) from e
    return GovernancePackLoader().load_data(data, source="<string>")


def load_default_pack() -> GovernancePack:
    """Load the governance pack bundled with the package."""
    return load_governance_pack(DEFAULT_PACK_PATH)
