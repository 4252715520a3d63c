"""
KYC Review Permission Model

Pure lookup over a governance pack:
- role -> PermissionSet
- (role, workflow step) -> allowed?
- role -> UI areas

No state beyond the pack it was built from. Unknown roles, workflows and
steps are configuration errors and raise.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Union

from ..exceptions import ConfigurationError
from ..models import (
    AccessArea,
    AccessCheck,
    AccessMatrixEntry,
    Capability,
    GovernancePack,
    PermissionSet,
    Role,
    WorkflowDefinition,
    WorkflowStep,
    WorkflowType,
)

if TYPE_CHECKING:
    from ..config import Settings

# Denial reasons recorded in audit entries
INSUFFICIENT_ROLE = "insufficient_role"
INSUFFICIENT_PERMISSIONS = "insufficient_permissions"


def _coerce_role(role: Union[Role, str]) -> Role:
    if isinstance(role, Role):
        return role
    try:
        return Role(role)
    except ValueError as e:
        raise ConfigurationError(
            message=f"Unknown role: {role}",
            details={"role": str(role)},
        ) from e


class PermissionModel:
    """
    Role and step access lookups.

    Usage:
        model = PermissionModel(load_default_pack())
        model.capabilities_for(Role.OFFICER).can_upload_documents   # True
        model.step_access(Role.OFFICER, step)                        # bool
    """

    def __init__(self, pack: GovernancePack):
        self.pack = pack

    @classmethod
    def default(cls) -> PermissionModel:
        """Build from the bundled governance pack."""
        from ..packs import load_default_pack

        return cls(load_default_pack())

    @classmethod
    def from_settings(cls, settings: Settings) -> PermissionModel:
        """Build from settings.pack_path, or the bundled pack when unset."""
        from ..packs import load_default_pack, load_governance_pack

        if settings.pack_path is None:
            return cls(load_default_pack())
        return cls(load_governance_pack(settings.pack_path))

    # =========================================================================
    # Role lookups
    # =========================================================================

    def capabilities_for(self, role: Union[Role, str]) -> PermissionSet:
        """
        The canonical PermissionSet for a role.

        Raises:
            ConfigurationError: If the role is unknown or has no pack entry
        """
        return self.matrix_entry(role).permissions

    def matrix_entry(self, role: Union[Role, str]) -> AccessMatrixEntry:
        resolved = _coerce_role(role)
        entry = self.pack.access_matrix.get(resolved)
        if entry is None:
            raise ConfigurationError(
                message=f"No permission entry for role: {resolved.value}",
                details={"role": resolved.value},
            )
        return entry

    def has_capability(self, role: Union[Role, str], capability: Capability) -> bool:
        return self.capabilities_for(role).has(capability)

    def access_matrix(self) -> list[AccessMatrixEntry]:
        """All access-matrix entries in Role declaration order."""
        return [self.pack.access_matrix[r] for r in Role if r in self.pack.access_matrix]

    # =========================================================================
    # Workflow lookups
    # =========================================================================

    def workflow(self, workflow_type: Union[WorkflowType, str]) -> WorkflowDefinition:
        try:
            resolved = WorkflowType(workflow_type)
        except ValueError as e:
            raise ConfigurationError(
                message=f"Unknown workflow type: {workflow_type}",
                details={"workflow_type": str(workflow_type)},
            ) from e
        definition = self.pack.workflow(resolved)
        if definition is None:
            raise ConfigurationError(
                message=f"Workflow not configured: {resolved.value}",
                details={"workflow_type": resolved.value},
            )
        return definition

    def get_step(self, workflow_type: Union[WorkflowType, str], step_id: str) -> WorkflowStep:
        definition = self.workflow(workflow_type)
        step = definition.get_step(step_id)
        if step is None:
            raise ConfigurationError(
                message=f"Unknown step '{step_id}' in workflow {definition.workflow_type.value}",
                details={"workflow_type": definition.workflow_type.value, "step_id": step_id},
            )
        return step

    def check_step_access(self, role: Union[Role, str], step: WorkflowStep) -> AccessCheck:
        """
        Validate a role against a step.

        The role must be listed on the step and hold every capability the
        step requires.
        """
        resolved = _coerce_role(role)
        if resolved not in step.required_roles:
            return AccessCheck(
                allowed=False,
                reason=(
                    f"Role {resolved.value} not authorized for step {step.id}; "
                    f"requires one of: {', '.join(sorted(r.value for r in step.required_roles))}"
                ),
                denial_code=INSUFFICIENT_ROLE,
            )

        permissions = self.capabilities_for(resolved)
        missing = [c for c in step.required_permissions if not permissions.has(c)]
        if missing:
            return AccessCheck(
                allowed=False,
                reason=(
                    f"Role {resolved.value} lacks permissions for step {step.id}: "
                    f"{', '.join(c.value for c in missing)}"
                ),
                denial_code=INSUFFICIENT_PERMISSIONS,
            )

        return AccessCheck(allowed=True)

    def step_access(self, role: Union[Role, str], step: WorkflowStep) -> bool:
        return self.check_step_access(role, step).allowed

    def allowed_steps(
        self,
        role: Union[Role, str],
        workflow_type: Optional[WorkflowType] = None,
    ) -> list[tuple[WorkflowType, WorkflowStep]]:
        """Every (workflow, step) the role may act on."""
        types = [workflow_type] if workflow_type else list(self.pack.workflows)
        result = []
        for wf_type in types:
            for step in self.workflow(wf_type).steps:
                if self.step_access(role, step):
                    result.append((wf_type, step))
        return result

    # =========================================================================
    # UI areas
    # =========================================================================

    def accessible_areas(self, role: Union[Role, str]) -> list[AccessArea]:
        """
        UI areas the role may enter, derived from its capabilities.

        The internal system identity has no UI areas.
        """
        resolved = _coerce_role(role)
        if resolved == Role.SYSTEM:
            return []
        permissions = self.capabilities_for(resolved)
        return [
            area for area in self.pack.areas
            if area.capability is None or permissions.has(area.capability)
        ]

    def has_area_access(self, role: Union[Role, str], area_id: str) -> bool:
        return any(a.id == area_id for a in self.accessible_areas(role))
