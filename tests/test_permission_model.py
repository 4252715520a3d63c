"""
Tests for the permission model.

Tests cover:
- Role -> capability lookups
- Step access (role and permission checks)
- Least-privilege roles
- UI areas derived from capabilities
"""
from dataclasses import replace

import pytest

from kycreview.config import Settings
from kycreview.exceptions import ConfigurationError
from kycreview.engine import INSUFFICIENT_PERMISSIONS, INSUFFICIENT_ROLE, PermissionModel
from kycreview.models import (
    Capability,
    DataScope,
    PermissionSet,
    Role,
    WorkflowType,
)


# =============================================================================
# Capabilities
# =============================================================================

class TestCapabilities:
    """Tests for capabilities_for()."""

    def test_officer_capabilities(self, permission_model):
        perms = permission_model.capabilities_for(Role.OFFICER)

        assert perms.can_upload_documents
        assert perms.can_provide_review_feedback
        assert not perms.can_approve_documents
        assert not perms.can_reject_documents
        assert not perms.can_bulk_process
        assert perms.view_scope == DataScope.OWN

    def test_manager_capabilities(self, permission_model):
        perms = permission_model.capabilities_for(Role.MANAGER)

        assert perms.can_approve_documents
        assert perms.can_reject_documents
        assert perms.can_bulk_process
        assert perms.view_scope == DataScope.TEAM
        assert perms.audit_scope == DataScope.TEAM

    def test_role_given_as_string(self, permission_model):
        assert permission_model.capabilities_for("compliance_manager") == (
            permission_model.capabilities_for(Role.MANAGER)
        )

    def test_unknown_role_raises(self, permission_model):
        with pytest.raises(ConfigurationError) as exc_info:
            permission_model.capabilities_for("superuser")

        assert exc_info.value.code == "KR_CONFIGURATION_ERROR"
        assert "superuser" in exc_info.value.message

    @pytest.mark.parametrize("role", [Role.ADMIN, Role.ML_ENGINEER])
    def test_least_privilege_roles_are_empty(self, permission_model, role):
        perms = permission_model.capabilities_for(role)

        assert perms.is_empty
        assert perms == PermissionSet()

    def test_every_role_has_a_matrix_entry(self, permission_model):
        roles = [entry.role for entry in permission_model.access_matrix()]

        assert roles == list(Role)

    def test_permission_set_uses_capability_names(self, permission_model):
        data = permission_model.capabilities_for(Role.OFFICER).to_dict()

        assert data["canUploadDocuments"] is True
        assert data["canApproveDocuments"] is False
        assert len(data) == len(Capability)

    def test_permission_set_from_mapping_rejects_unknown_names(self):
        with pytest.raises(ValueError):
            PermissionSet.from_mapping({"canLaunchRockets": True})


# =============================================================================
# Step Access
# =============================================================================

class TestStepAccess:
    """Tests for step_access() and check_step_access()."""

    def test_officer_can_review(self, permission_model):
        step = permission_model.get_step(WorkflowType.DOCUMENT_PROCESSING, "officer_review")

        assert permission_model.step_access(Role.OFFICER, step)

    def test_officer_cannot_approve(self, permission_model):
        step = permission_model.get_step(WorkflowType.DOCUMENT_PROCESSING, "manager_approval")
        check = permission_model.check_step_access(Role.OFFICER, step)

        assert not check.allowed
        assert check.denial_code == INSUFFICIENT_ROLE
        assert "compliance_officer" in check.reason

    def test_listed_role_missing_permission(self, governance_pack):
        # Role listed on the step, capability withheld
        entry = governance_pack.access_matrix[Role.MANAGER]
        stripped = replace(
            entry,
            permissions=replace(entry.permissions, can_approve_documents=False),
        )
        matrix = dict(governance_pack.access_matrix)
        matrix[Role.MANAGER] = stripped
        model = PermissionModel(replace(governance_pack, access_matrix=matrix))

        step = model.get_step(WorkflowType.DOCUMENT_PROCESSING, "manager_approval")
        check = model.check_step_access(Role.MANAGER, step)

        assert not check.allowed
        assert check.denial_code == INSUFFICIENT_PERMISSIONS
        assert "canApproveDocuments" in check.reason

    def test_cco_oversight_only_for_cco(self, permission_model):
        step = permission_model.get_step(WorkflowType.DOCUMENT_PROCESSING, "cco_oversight")

        assert permission_model.step_access(Role.CCO, step)
        assert not permission_model.step_access(Role.MANAGER, step)

    def test_system_runs_ai_classification(self, permission_model):
        step = permission_model.get_step(WorkflowType.DOCUMENT_PROCESSING, "ai_classification")

        assert permission_model.step_access(Role.SYSTEM, step)
        assert not permission_model.step_access(Role.OFFICER, step)

    @pytest.mark.parametrize("role", [Role.ADMIN, Role.ML_ENGINEER])
    def test_least_privilege_roles_reach_no_step(self, permission_model, role):
        assert permission_model.allowed_steps(role) == []

    def test_auditors_may_only_query(self, permission_model):
        allowed = permission_model.allowed_steps(Role.EXTERNAL_AUDITOR)

        assert [(t, s.id) for t, s in allowed] == [(WorkflowType.RAG_QUERY, "rag_query")]

    def test_unknown_step_raises(self, permission_model):
        with pytest.raises(ConfigurationError):
            permission_model.get_step(WorkflowType.DOCUMENT_PROCESSING, "teleport")

    def test_unknown_workflow_raises(self, permission_model):
        with pytest.raises(ConfigurationError):
            permission_model.workflow("tax_filing")


# =============================================================================
# UI Areas
# =============================================================================

class TestAccessibleAreas:
    """Tests for areas derived from capabilities."""

    def test_officer_areas(self, permission_model):
        ids = [a.id for a in permission_model.accessible_areas(Role.OFFICER)]

        assert ids == ["dashboard", "upload", "processing", "review", "search", "analytics"]

    def test_manager_has_bulk(self, permission_model):
        assert permission_model.has_area_access(Role.MANAGER, "bulk")
        assert not permission_model.has_area_access(Role.OFFICER, "bulk")

    @pytest.mark.parametrize("role", [Role.ADMIN, Role.ML_ENGINEER])
    def test_least_privilege_roles_see_dashboard_only(self, permission_model, role):
        ids = [a.id for a in permission_model.accessible_areas(role)]

        assert ids == ["dashboard"]

    def test_system_identity_has_no_areas(self, permission_model):
        assert permission_model.accessible_areas(Role.SYSTEM) == []


# =============================================================================
# Construction
# =============================================================================

class TestConstruction:
    def test_default_loads_bundled_pack(self):
        model = PermissionModel.default()

        assert model.pack.id == "KYC-IN-DEFAULT"

    def test_from_settings_without_pack_path(self):
        model = PermissionModel.from_settings(Settings())

        assert model.has_capability(Role.CCO, Capability.VIEW_ALL_DOCUMENTS)
