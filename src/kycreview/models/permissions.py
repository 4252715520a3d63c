"""
KYC Review Permission Models

Per-role capability records. One canonical PermissionSet exists per role;
it is static configuration loaded from the governance pack and never
mutated at runtime. Drift is detected by diffing a live PermissionSet
against the canonical entry.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from .enums import Capability, DataScope, Role


# =============================================================================
# Permission Set
# =============================================================================

@dataclass(frozen=True)
class PermissionSet:
    """
    Boolean capabilities for a single role.

    Attribute names are the snake_case form of the Capability values
    (canApproveDocuments -> can_approve_documents).
    """
    can_upload_documents: bool = False
    can_view_own_documents: bool = False
    can_view_team_documents: bool = False
    can_view_all_documents: bool = False
    can_process_documents: bool = False
    can_approve_documents: bool = False
    can_reject_documents: bool = False
    can_reassign_documents: bool = False
    can_provide_review_feedback: bool = False
    can_override_ai: bool = False
    can_bulk_process: bool = False
    can_view_analytics: bool = False
    can_export_reports: bool = False
    can_search_documents: bool = False
    can_view_own_audit_logs: bool = False
    can_view_team_audit_logs: bool = False
    can_view_all_audit_logs: bool = False

    def has(self, capability: Capability) -> bool:
        """Check a single capability."""
        return bool(getattr(self, _attribute_for(capability)))

    @property
    def granted(self) -> frozenset[Capability]:
        """All capabilities set to True."""
        return frozenset(c for c in Capability if self.has(c))

    @property
    def is_empty(self) -> bool:
        """True for least-privilege roles with no documented capability."""
        return not self.granted

    @property
    def view_scope(self) -> DataScope:
        """Widest document view scope."""
        return _widest_scope(
            self.can_view_own_documents,
            self.can_view_team_documents,
            self.can_view_all_documents,
        )

    @property
    def audit_scope(self) -> DataScope:
        """Widest audit-log view scope."""
        return _widest_scope(
            self.can_view_own_audit_logs,
            self.can_view_team_audit_logs,
            self.can_view_all_audit_logs,
        )

    def to_dict(self) -> dict[str, bool]:
        """Serialize using the capability names (camelCase)."""
        return {c.value: self.has(c) for c in Capability}

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> PermissionSet:
        """
        Build from a mapping keyed by capability name.

        Unknown keys raise ValueError; missing keys default to False.
        """
        kwargs: dict[str, bool] = {}
        for key, value in data.items():
            kwargs[_attribute_for(Capability(key))] = bool(value)
        return cls(**kwargs)

    def diff(self, other: PermissionSet) -> dict[Capability, tuple[bool, bool]]:
        """
        Capabilities whose value differs.

        Returns:
            Mapping of capability -> (value in self, value in other)
        """
        return {
            c: (self.has(c), other.has(c))
            for c in Capability
            if self.has(c) != other.has(c)
        }


def _attribute_for(capability: Capability) -> str:
    name = capability.value
    # canOverrideAI -> can_override_ai
    snake = []
    for i, ch in enumerate(name):
        if ch.isupper() and i > 0 and not name[i - 1].isupper():
            snake.append("_")
        snake.append(ch.lower())
    return "".join(snake)


def _widest_scope(own: bool, team: bool, all_: bool) -> DataScope:
    if all_:
        return DataScope.ALL
    if team:
        return DataScope.TEAM
    if own:
        return DataScope.OWN
    return DataScope.NONE


# =============================================================================
# Access Control Matrix Entry
# =============================================================================

@dataclass(frozen=True)
class AccessMatrixEntry:
    """
    Canonical access-control record for one role.

    Attributes:
        role: The role this entry describes
        permissions: Canonical capability set
        data_scope: Declared data scope for the role
        restrictions: Human-readable restrictions for reports
        audit_required: Whether every action by this role is audited
    """
    role: Role
    permissions: PermissionSet
    data_scope: DataScope = DataScope.OWN
    restrictions: tuple[str, ...] = field(default_factory=tuple)
    audit_required: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role.value,
            "permissions": self.permissions.to_dict(),
            "data_scope": self.data_scope.value,
            "restrictions": list(self.restrictions),
            "audit_required": self.audit_required,
        }
