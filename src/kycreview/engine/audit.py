"""
KYC Review Audit Trail

Append-only recording of access grants and denials, workflow transitions,
AI decisions and compliance findings.

AuditLogger fans each entry out to its sinks. A failing sink never
propagates into the workflow step that wrote the entry: the failure is
logged and the step continues.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Protocol, runtime_checkable

from ..canon import content_hash_short

logger = logging.getLogger(__name__)

AUDIT_LOGGER_NAME = "kycreview.audit"


class AuditAction(str, Enum):
    """Audit action names."""
    WORKFLOW_ACCESS_GRANTED = "WORKFLOW_ACCESS_GRANTED"
    WORKFLOW_ACCESS_DENIED = "WORKFLOW_ACCESS_DENIED"
    WORKFLOW_STEP_EXECUTED = "WORKFLOW_STEP_EXECUTED"
    WORKFLOW_VIOLATION = "WORKFLOW_VIOLATION"
    WORKFLOW_TIMEOUT_ESCALATED = "WORKFLOW_TIMEOUT_ESCALATED"
    OFFICER_REVIEW = "OFFICER_REVIEW"
    MANAGER_DECISION = "MANAGER_DECISION"
    EXECUTIVE_DECISION = "EXECUTIVE_DECISION"
    AI_DECISION_MADE = "AI_DECISION_MADE"
    AI_PROCESSING_FAILED = "AI_PROCESSING_FAILED"
    MODEL_RETRAINING_TRIGGERED = "MODEL_RETRAINING_TRIGGERED"
    COMPLIANCE_VIOLATION_DETECTED = "COMPLIANCE_VIOLATION_DETECTED"
    BATCH_PROCESSED = "BATCH_PROCESSED"


# =============================================================================
# Audit Entry
# =============================================================================

@dataclass(frozen=True)
class AuditEntry:
    """
    One audit record.

    Attributes:
        actor_id: Acting user id ("system" for automated steps)
        role: Acting role value
        action: AuditAction value
        resource_type: Kind of resource ("workflow", "document", ...)
        resource_id: Resource identifier
        success: False for denials, failures and violations
        details: Free-form structured context
        timestamp: When the entry was written
        module_name: Component that wrote the entry
    """
    actor_id: str
    role: str
    action: str
    resource_type: str
    resource_id: str
    success: bool
    details: Mapping[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    module_name: Optional[str] = None

    @property
    def fingerprint(self) -> str:
        """Short content hash identifying this entry."""
        return content_hash_short(self.to_dict())

    def to_dict(self) -> dict[str, Any]:
        return {
            "actor_id": self.actor_id,
            "role": self.role,
            "action": self.action,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "success": self.success,
            "details": dict(self.details),
            "timestamp": self.timestamp.isoformat(),
            "module_name": self.module_name,
        }


# =============================================================================
# Sinks
# =============================================================================

@runtime_checkable
class AuditSink(Protocol):
    """Write-only destination for audit entries. Must tolerate concurrent appends."""

    def append(self, entry: AuditEntry) -> None:
        ...


class InMemoryAuditSink:
    """Thread-safe in-process sink; keeps every entry in append order."""

    def __init__(self) -> None:
        self._entries: list[AuditEntry] = []
        self._lock = threading.Lock()

    def append(self, entry: AuditEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    @property
    def entries(self) -> list[AuditEntry]:
        with self._lock:
            return list(self._entries)

    def find(
        self,
        action: Optional[str] = None,
        resource_id: Optional[str] = None,
        success: Optional[bool] = None,
    ) -> list[AuditEntry]:
        """Entries matching every given filter."""
        result = []
        for entry in self.entries:
            if action is not None and entry.action != action:
                continue
            if resource_id is not None and entry.resource_id != resource_id:
                continue
            if success is not None and entry.success != success:
                continue
            result.append(entry)
        return result

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class LoggingAuditSink:
    """Writes each entry as a structured record on the kycreview.audit logger."""

    def __init__(self, logger_name: str = AUDIT_LOGGER_NAME) -> None:
        self._logger = logging.getLogger(logger_name)

    def append(self, entry: AuditEntry) -> None:
        level = logging.INFO if entry.success else logging.WARNING
        self._logger.log(
            level,
            "%s %s:%s",
            entry.action,
            entry.resource_type,
            entry.resource_id,
            extra={
                "actor_id": entry.actor_id,
                "role": entry.role,
                "action": entry.action,
                "success": entry.success,
                "details": dict(entry.details),
            },
        )


# =============================================================================
# Audit Logger
# =============================================================================

class AuditLogger:
    """
    Builds audit entries and delivers them to every sink.

    Usage:
        sink = InMemoryAuditSink()
        audit = AuditLogger([sink])
        audit.log("u-1", "compliance_officer", AuditAction.OFFICER_REVIEW,
                  "document", "doc-1", success=True)
    """

    def __init__(
        self,
        sinks: Optional[list[AuditSink]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.sinks: list[AuditSink] = list(sinks) if sinks else []
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def add_sink(self, sink: AuditSink) -> None:
        self.sinks.append(sink)

    def log(
        self,
        actor_id: str,
        role: str,
        action: str,
        resource_type: str,
        resource_id: str,
        success: bool,
        details: Optional[Mapping[str, Any]] = None,
        module_name: Optional[str] = None,
    ) -> AuditEntry:
        """Record an entry. Sink failures are logged, never raised."""
        entry = AuditEntry(
            actor_id=actor_id,
            role=role.value if isinstance(role, Enum) else role,
            action=action.value if isinstance(action, Enum) else action,
            resource_type=resource_type,
            resource_id=resource_id,
            success=success,
            details=dict(details or {}),
            timestamp=self._clock(),
            module_name=module_name,
        )
        for sink in self.sinks:
            try:
                sink.append(entry)
            except Exception:
                logger.exception(
                    "Audit sink %s failed for %s on %s",
                    type(sink).__name__,
                    entry.action,
                    entry.resource_id,
                )
        return entry
