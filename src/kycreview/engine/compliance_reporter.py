"""
KYC Review Compliance Reporter

Aggregates compliance findings into a score:

    overall_compliance = max(0, 100 - 5 * len(violations))

Findings come from four independent, read-only scans:
- data minimization: roles whose capabilities reach further than their
  declared data scope, and officer roles with an all-data scope
- consent: consent capture must be switched on
- retention: final decisions kept longer than the retention period
- cross-border transfer: processing outside the data region without an
  allowed transfer route

Violation ids are derived from what was found, so two checks over the
same state produce the same violation set.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Union

from ..config import Settings
from ..models import (
    SYSTEM_ACTOR,
    AccessMatrixEntry,
    Actor,
    Capability,
    ComplianceReport,
    ComplianceViolation,
    DataScope,
    PermissionSet,
    Role,
    Severity,
    ViolationType,
)
from .audit import AuditAction, AuditLogger
from .permission_model import PermissionModel
from .workflow_engine import WorkflowEngine

logger = logging.getLogger(__name__)

VIOLATION_PENALTY = 5

RECOMMENDATIONS = (
    "Conduct immediate security audit",
    "Review and update access control policies",
    "Implement additional monitoring controls",
    "Provide additional training to staff",
)

# enforce_least_privilege action names
LEAST_PRIVILEGE_ACTIONS: dict[str, Capability] = {
    "UPLOAD_DOCUMENT": Capability.UPLOAD_DOCUMENTS,
    "APPROVE_DOCUMENT": Capability.APPROVE_DOCUMENTS,
    "REJECT_DOCUMENT": Capability.REJECT_DOCUMENTS,
    "VIEW_ALL_DOCUMENTS": Capability.VIEW_ALL_DOCUMENTS,
    "BULK_PROCESS": Capability.BULK_PROCESS,
    "EXPORT_REPORTS": Capability.EXPORT_REPORTS,
}

_SCOPE_RANK = {
    DataScope.NONE: 0,
    DataScope.OWN: 1,
    DataScope.TEAM: 2,
    DataScope.ALL: 3,
}


class ComplianceReporter:
    """
    Compliance scans, access-matrix validation and reporting.

    Usage:
        reporter = ComplianceReporter(permission_model, workflow_engine, audit)
        report = reporter.check_compliance()
        report.overall_compliance    # 95 with consent capture disabled
    """

    def __init__(
        self,
        permission_model: PermissionModel,
        workflow_engine: Optional[WorkflowEngine] = None,
        audit: Optional[AuditLogger] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.permissions = permission_model
        self.workflow_engine = workflow_engine
        self.audit = audit
        self.settings = settings or Settings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # =========================================================================
    # Compliance check
    # =========================================================================

    def check_compliance(self, now: Optional[datetime] = None) -> ComplianceReport:
        """Run every scan and score the result. Read-only."""
        now = now or self._clock()

        violations: list[ComplianceViolation] = []
        violations.extend(self.check_data_minimization(now))
        violations.extend(self.check_consent_management(now))
        violations.extend(self.check_data_retention(now))
        violations.extend(self.check_cross_border_transfers(now))

        report = ComplianceReport(
            overall_compliance=max(0, 100 - VIOLATION_PENALTY * len(violations)),
            violations=violations,
            access_matrix=self.permissions.access_matrix(),
            recommendations=list(RECOMMENDATIONS) if violations else [],
            last_audit=now,
            next_audit_due=now + timedelta(days=self.settings.audit_interval_days),
        )
        logger.info(
            "Compliance check: %d%% (%d violations)",
            report.overall_compliance, len(violations),
        )
        return report

    def check_data_minimization(self, now: datetime) -> list[ComplianceViolation]:
        violations = []
        for entry in self.permissions.access_matrix():
            role = entry.role.value
            if entry.data_scope == DataScope.ALL and "officer" in role:
                violations.append(self._violation(
                    id=f"DM-{role}",
                    now=now,
                    role=role,
                    violation_type=ViolationType.DATA_ACCESS_VIOLATION,
                    resource="Data Scope",
                    severity=Severity.MEDIUM,
                    description=f"{role} has broader data access than necessary",
                    remediation="Review and restrict data access scope",
                ))
                continue

            widest = max(
                entry.permissions.view_scope,
                entry.permissions.audit_scope,
                key=_SCOPE_RANK.__getitem__,
            )
            if _SCOPE_RANK[widest] > _SCOPE_RANK[entry.data_scope]:
                violations.append(self._violation(
                    id=f"DM-{role}-{widest.value}",
                    now=now,
                    role=role,
                    violation_type=ViolationType.DATA_ACCESS_VIOLATION,
                    resource="Data Scope",
                    severity=Severity.MEDIUM,
                    description=(
                        f"{role} can view {widest.value} data but is declared "
                        f"{entry.data_scope.value} scope"
                    ),
                    remediation="Align view permissions with the declared data scope",
                ))
        return violations

    def check_consent_management(self, now: datetime) -> list[ComplianceViolation]:
        if self.settings.consent_capture_enabled:
            return []
        return [self._violation(
            id="CONSENT",
            now=now,
            role="system",
            violation_type=ViolationType.DATA_ACCESS_VIOLATION,
            resource="Consent Management",
            severity=Severity.HIGH,
            description="Consent management workflow not fully implemented",
            remediation="Implement explicit consent collection and validation",
        )]

    def check_data_retention(self, now: datetime) -> list[ComplianceViolation]:
        if self.workflow_engine is None:
            return []
        cutoff = now - timedelta(days=self.settings.retention_days)
        violations = []
        decisions = sorted(self.workflow_engine.list_decisions(), key=lambda d: d.document_id)
        for decision in decisions:
            if decision.finalized_at is None or decision.finalized_at >= cutoff:
                continue
            violations.append(self._violation(
                id=f"RET-{decision.document_id}",
                now=now,
                role="system",
                violation_type=ViolationType.DATA_ACCESS_VIOLATION,
                resource=f"Decision {decision.document_id}",
                severity=Severity.MEDIUM,
                description=(
                    f"Decision for {decision.document_id} retained beyond "
                    f"{self.settings.retention_days} days"
                ),
                remediation="Archive or delete records past the retention period",
            ))
        return violations

    def check_cross_border_transfers(self, now: datetime) -> list[ComplianceViolation]:
        data_region = self.settings.data_region
        processing_region = self.settings.processing_region
        if data_region == processing_region:
            return []
        if processing_region in self.settings.allowed_transfer_regions:
            return []
        return [self._violation(
            id=f"XB-{data_region}-{processing_region}",
            now=now,
            role="system",
            violation_type=ViolationType.DATA_ACCESS_VIOLATION,
            resource="Cross-Border Transfer",
            severity=Severity.HIGH,
            description=(
                f"Data from {data_region} processed in {processing_region} "
                "without an approved transfer mechanism"
            ),
            remediation="Process data in-region or approve the transfer route",
        )]

    # =========================================================================
    # Access-control matrix
    # =========================================================================

    def validate_access_control_matrix(
        self,
        role: Union[Role, str],
        live_permissions: PermissionSet,
        user_id: str = "system",
    ) -> list[ComplianceViolation]:
        """
        Diff a live PermissionSet against the role's canonical entry.

        Extra grants are HIGH severity; missing grants MEDIUM.

        Raises:
            ConfigurationError: If the role is unknown
        """
        entry = self.permissions.matrix_entry(role)
        now = self._clock()
        violations = []
        for capability, (expected, actual) in sorted(
            entry.permissions.diff(live_permissions).items(), key=lambda kv: kv[0].value,
        ):
            violations.append(self._violation(
                id=f"PM-{entry.role.value}-{capability.value}",
                now=now,
                user_id=user_id,
                role=entry.role.value,
                violation_type=ViolationType.PERMISSION_MISMATCH,
                resource=capability.value,
                severity=Severity.HIGH if actual else Severity.MEDIUM,
                description=(
                    f"Permission mismatch for {capability.value}: "
                    f"expected {expected}, got {actual}"
                ),
                remediation="Restore the canonical permission set for the role",
            ))
        return violations

    def log_compliance_violation(
        self,
        violation: ComplianceViolation,
        actor: Optional[Actor] = None,
    ) -> None:
        """Audit a finding as COMPLIANCE_VIOLATION_DETECTED."""
        if self.audit is None:
            logger.warning("No audit logger configured; violation %s not recorded", violation.id)
            return
        actor = actor or SYSTEM_ACTOR
        self.audit.log(
            actor.user_id, actor.role, AuditAction.COMPLIANCE_VIOLATION_DETECTED,
            "COMPLIANCE", violation.id, success=False,
            details={
                "violation_type": violation.violation_type.value,
                "severity": violation.severity.value,
                "user_id": violation.user_id,
                "role": violation.role,
                "description": violation.description,
                "remediation": violation.remediation,
            },
            module_name="compliance_reporter",
        )

    def enforce_least_privilege(self, actor: Actor, action: str) -> bool:
        """True if the actor's role holds the capability the action needs."""
        capability = LEAST_PRIVILEGE_ACTIONS.get(action)
        if capability is None:
            return False
        return self.permissions.has_capability(actor.role, capability)

    # =========================================================================
    # Report rendering
    # =========================================================================

    def generate_compliance_report(self, report: Optional[ComplianceReport] = None) -> str:
        """Markdown rendering of a compliance report."""
        report = report or self.check_compliance()
        lines = [
            "# KYC Review Compliance Report",
            "",
            f"**Overall Compliance Score:** {report.overall_compliance}%",
            "",
            f"**Report Generated:** {report.last_audit.isoformat() if report.last_audit else '-'}",
            "",
            f"**Next Audit Due:** {report.next_audit_due.isoformat() if report.next_audit_due else '-'}",
            "",
            "## Access Control Matrix",
            "",
        ]
        for entry in report.access_matrix:
            lines.extend(_render_matrix_entry(entry))

        lines.extend(["## Compliance Violations", ""])
        if not report.violations:
            lines.extend(["No violations detected.", ""])
        for violation in report.violations:
            lines.extend([
                f"### {violation.violation_type.value} - {violation.severity.value}",
                f"- **Resource:** {violation.resource}",
                f"- **Description:** {violation.description}",
                f"- **Remediation:** {violation.remediation}",
                f"- **Status:** {violation.status.value}",
                "",
            ])

        lines.extend(["## Recommendations", ""])
        lines.extend(f"- {r}" for r in report.recommendations)
        return "\n".join(lines) + "\n"

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _violation(
        id: str,
        now: datetime,
        role: str,
        violation_type: ViolationType,
        resource: str,
        severity: Severity,
        description: str,
        remediation: str,
        user_id: str = "system",
    ) -> ComplianceViolation:
        return ComplianceViolation(
            id=id,
            timestamp=now,
            user_id=user_id,
            role=role,
            violation_type=violation_type,
            resource=resource,
            severity=severity,
            description=description,
            remediation=remediation,
        )


def _render_matrix_entry(entry: AccessMatrixEntry) -> list[str]:
    lines = [
        f"### {entry.role.value}",
        f"- **Data Scope:** {entry.data_scope.value}",
        f"- **Audit Required:** {entry.audit_required}",
        "- **Restrictions:**",
    ]
    lines.extend(f"  - {r}" for r in entry.restrictions)
    lines.append("")
    return lines
