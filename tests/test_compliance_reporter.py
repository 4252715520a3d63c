"""
Tests for the compliance reporter.

Tests cover:
- Score and recommendations
- Each scan: data minimization, consent, retention, cross-border
- Repeat checks over the same state give the same findings
- Access-control matrix validation
- Violation audit and least-privilege checks
- Markdown rendering
"""
from dataclasses import replace
from datetime import timedelta

import pytest

from kycreview.config import Settings
from kycreview.engine import AuditAction, ComplianceReporter, PermissionModel
from kycreview.exceptions import ConfigurationError
from kycreview.models import (
    DataScope,
    OfficerAction,
    Role,
    Severity,
    ViolationType,
)

from tests.conftest import START, make_actor, make_ai_decision


def reporter_for(permission_model, **settings):
    return ComplianceReporter(permission_model, settings=Settings(**settings))


def model_with_entry(governance_pack, role, **changes):
    """PermissionModel over a pack with one access-matrix entry altered."""
    entry = governance_pack.access_matrix[role]
    if "permissions" in changes:
        changes["permissions"] = replace(entry.permissions, **changes["permissions"])
    matrix = dict(governance_pack.access_matrix)
    matrix[role] = replace(entry, **changes)
    return PermissionModel(replace(governance_pack, access_matrix=matrix))


# =============================================================================
# Score
# =============================================================================

class TestCheckCompliance:
    def test_default_deployment(self, permission_model):
        report = reporter_for(permission_model).check_compliance(START)

        assert [v.id for v in report.violations] == ["CONSENT"]
        assert report.overall_compliance == 95
        assert len(report.recommendations) == 4
        assert report.recommendations[0] == "Conduct immediate security audit"
        assert report.last_audit == START
        assert report.next_audit_due == START + timedelta(days=30)
        assert [e.role for e in report.access_matrix] == list(Role)

    def test_clean_deployment(self, permission_model):
        report = reporter_for(permission_model, consent_capture_enabled=True).check_compliance(START)

        assert report.violations == []
        assert report.overall_compliance == 100
        assert report.recommendations == []
        assert report.is_compliant

    def test_audit_interval(self, permission_model):
        report = reporter_for(permission_model, audit_interval_days=7).check_compliance(START)

        assert report.next_audit_due == START + timedelta(days=7)

    def test_score_floor(self, permission_model, monkeypatch):
        reporter = reporter_for(permission_model)
        consent = reporter.check_consent_management(START)
        monkeypatch.setattr(reporter, "check_consent_management", lambda now: consent * 25)

        assert reporter.check_compliance(START).overall_compliance == 0

    def test_repeat_checks_agree(self, permission_model):
        reporter = reporter_for(permission_model, processing_region="US")

        first = reporter.check_compliance(START)
        second = reporter.check_compliance(START + timedelta(hours=1))

        assert [v.identity() for v in first.violations] == [v.identity() for v in second.violations]
        assert first.overall_compliance == second.overall_compliance

    def test_reporter_clock(self, permission_model, clock):
        reporter = ComplianceReporter(permission_model, clock=clock)

        assert reporter.check_compliance().last_audit == clock.now


# =============================================================================
# Scans
# =============================================================================

class TestScans:
    def test_consent_finding(self, permission_model):
        (violation,) = reporter_for(permission_model).check_consent_management(START)

        assert violation.severity == Severity.HIGH
        assert violation.resource == "Consent Management"
        assert violation.description == "Consent management workflow not fully implemented"
        assert violation.remediation == "Implement explicit consent collection and validation"

    def test_officer_with_all_scope(self, governance_pack):
        model = model_with_entry(governance_pack, Role.OFFICER, data_scope=DataScope.ALL)

        violations = reporter_for(model).check_data_minimization(START)

        assert [v.id for v in violations] == ["DM-compliance_officer"]
        assert violations[0].description == "compliance_officer has broader data access than necessary"
        assert violations[0].severity == Severity.MEDIUM

    def test_view_wider_than_declared_scope(self, governance_pack):
        model = model_with_entry(
            governance_pack, Role.MANAGER, permissions={"can_view_all_audit_logs": True},
        )

        violations = reporter_for(model).check_data_minimization(START)

        assert [v.id for v in violations] == ["DM-compliance_manager-all"]
        assert violations[0].role == "compliance_manager"

    def test_default_pack_minimized(self, permission_model):
        assert reporter_for(permission_model).check_data_minimization(START) == []

    def test_cross_border(self, permission_model):
        violations = reporter_for(permission_model, processing_region="us").check_cross_border_transfers(START)

        assert [v.id for v in violations] == ["XB-IN-US"]
        assert violations[0].severity == Severity.HIGH

    def test_allowed_transfer(self, permission_model):
        reporter = reporter_for(permission_model, processing_region="US", allowed_transfer_regions="US,SG")

        assert reporter.check_cross_border_transfers(START) == []

    def test_retention(self, permission_model, workflow_engine, officer):
        workflow_engine.start_document(officer, make_ai_decision("doc-1"))
        workflow_engine.officer_review(officer, "doc-1", OfficerAction.AGREE)
        workflow_engine.start_document(officer, make_ai_decision("doc-2"))
        reporter = ComplianceReporter(
            permission_model, workflow_engine, settings=Settings(retention_days=30),
        )

        assert reporter.check_data_retention(START + timedelta(days=29)) == []
        violations = reporter.check_data_retention(START + timedelta(days=31))

        # doc-2 was never finalized
        assert [v.id for v in violations] == ["RET-doc-1"]
        assert violations[0].resource == "Decision doc-1"

    def test_retention_needs_engine(self, permission_model):
        assert reporter_for(permission_model, retention_days=1).check_data_retention(START) == []


# =============================================================================
# Access-control matrix
# =============================================================================

class TestAccessControlMatrix:
    def test_matching_permissions(self, permission_model):
        reporter = reporter_for(permission_model)
        live = permission_model.capabilities_for(Role.MANAGER)

        assert reporter.validate_access_control_matrix(Role.MANAGER, live) == []

    def test_mismatch(self, permission_model):
        reporter = reporter_for(permission_model)
        canonical = permission_model.capabilities_for(Role.OFFICER)
        live = replace(canonical, can_approve_documents=True, can_upload_documents=False)

        violations = reporter.validate_access_control_matrix("compliance_officer", live, user_id="u-7")

        assert [(v.id, v.severity) for v in violations] == [
            ("PM-compliance_officer-canApproveDocuments", Severity.HIGH),
            ("PM-compliance_officer-canUploadDocuments", Severity.MEDIUM),
        ]
        assert all(v.violation_type == ViolationType.PERMISSION_MISMATCH for v in violations)
        assert all(v.user_id == "u-7" for v in violations)
        assert violations[0].description == (
            "Permission mismatch for canApproveDocuments: expected False, got True"
        )

    def test_unknown_role(self, permission_model):
        reporter = reporter_for(permission_model)

        with pytest.raises(ConfigurationError):
            reporter.validate_access_control_matrix(
                "janitor", permission_model.capabilities_for(Role.OFFICER),
            )


# =============================================================================
# Audit and least privilege
# =============================================================================

class TestViolationAudit:
    def test_log_violation(self, permission_model, audit, audit_sink):
        reporter = ComplianceReporter(permission_model, audit=audit)
        violation = reporter.check_consent_management(START)[0]

        reporter.log_compliance_violation(violation)

        (entry,) = audit_sink.find(action=AuditAction.COMPLIANCE_VIOLATION_DETECTED.value)
        assert entry.success is False
        assert entry.resource_type == "COMPLIANCE"
        assert entry.resource_id == "CONSENT"
        assert entry.actor_id == "system"
        assert entry.details["severity"] == "HIGH"

    def test_log_violation_as_actor(self, permission_model, audit, audit_sink):
        reporter = ComplianceReporter(permission_model, audit=audit)
        dpo = make_actor(Role.DPO)

        reporter.log_compliance_violation(reporter.check_consent_management(START)[0], actor=dpo)

        assert audit_sink.entries[0].actor_id == dpo.user_id

    def test_log_without_audit(self, permission_model, caplog):
        reporter = reporter_for(permission_model)

        reporter.log_compliance_violation(reporter.check_consent_management(START)[0])

        assert "CONSENT not recorded" in caplog.text


class TestLeastPrivilege:
    @pytest.mark.parametrize(
        "role, action, allowed",
        [
            (Role.OFFICER, "UPLOAD_DOCUMENT", True),
            (Role.OFFICER, "APPROVE_DOCUMENT", False),
            (Role.OFFICER, "BULK_PROCESS", False),
            (Role.MANAGER, "REJECT_DOCUMENT", True),
            (Role.MANAGER, "VIEW_ALL_DOCUMENTS", False),
            (Role.CCO, "UPLOAD_DOCUMENT", False),
            (Role.CISO, "EXPORT_REPORTS", True),
            (Role.CCO, "DELETE_EVERYTHING", False),
        ],
    )
    def test_actions(self, permission_model, role, action, allowed):
        reporter = reporter_for(permission_model)

        assert reporter.enforce_least_privilege(make_actor(role), action) is allowed


# =============================================================================
# Rendering
# =============================================================================

class TestGenerateComplianceReport:
    def test_markdown(self, permission_model):
        reporter = reporter_for(permission_model)

        text = reporter.generate_compliance_report(reporter.check_compliance(START))

        assert text.startswith("# KYC Review Compliance Report\n")
        assert "**Overall Compliance Score:** 95%" in text
        assert f"**Report Generated:** {START.isoformat()}" in text
        assert "### compliance_officer" in text
        assert "  - Cannot approve or reject documents" in text
        assert "### DATA_ACCESS_VIOLATION - HIGH" in text
        assert "- Conduct immediate security audit" in text

    def test_clean_report(self, permission_model):
        reporter = reporter_for(permission_model, consent_capture_enabled=True)

        text = reporter.generate_compliance_report()

        assert "No violations detected." in text
        assert "**Overall Compliance Score:** 100%" in text
