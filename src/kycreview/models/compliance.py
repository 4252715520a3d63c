"""
KYC Review Compliance Models

Compliance findings are data records, never exceptions. They are produced
by compliance scans and access-matrix validation and surfaced for human
remediation.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from .enums import Severity, ViolationStatus, ViolationType
from .permissions import AccessMatrixEntry


@dataclass(frozen=True)
class ComplianceViolation:
    """
    A single compliance finding.

    Attributes:
        id: Stable identifier; repeated scans over the same state yield
            the same id
        timestamp: When the finding was produced
        user_id: User the finding concerns ("system" for platform-wide)
        role: Role the finding concerns
        violation_type: Finding category
        resource: Resource the finding concerns
        severity: LOW / MEDIUM / HIGH / CRITICAL
        description: What was found
        remediation: What should be done about it
        status: Remediation status
    """
    id: str
    timestamp: datetime
    user_id: str
    role: str
    violation_type: ViolationType
    resource: str
    severity: Severity
    description: str
    remediation: str
    status: ViolationStatus = ViolationStatus.OPEN

    def identity(self) -> tuple:
        """Fields that define the finding, excluding when it was produced."""
        return (
            self.id,
            self.user_id,
            self.role,
            self.violation_type,
            self.resource,
            self.severity,
            self.description,
            self.status,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "user_id": self.user_id,
            "role": self.role,
            "violation_type": self.violation_type.value,
            "resource": self.resource,
            "severity": self.severity.value,
            "description": self.description,
            "remediation": self.remediation,
            "status": self.status.value,
        }


@dataclass
class ComplianceReport:
    """Result of a full compliance check."""
    overall_compliance: int
    violations: list[ComplianceViolation] = field(default_factory=list)
    access_matrix: list[AccessMatrixEntry] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    last_audit: Optional[datetime] = None
    next_audit_due: Optional[datetime] = None

    @property
    def is_compliant(self) -> bool:
        return not self.violations

    def violations_by_severity(self, severity: Severity) -> list[ComplianceViolation]:
        return [v for v in self.violations if v.severity == severity]

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall_compliance": self.overall_compliance,
            "violations": [v.to_dict() for v in self.violations],
            "access_matrix": [e.to_dict() for e in self.access_matrix],
            "recommendations": list(self.recommendations),
            "last_audit": self.last_audit.isoformat() if self.last_audit else None,
            "next_audit_due": self.next_audit_due.isoformat() if self.next_audit_due else None,
        }
