"""
Tests for the audit trail and canonical hashing.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from enum import Enum

from kycreview.canon import canonical_json, content_hash, content_hash_short
from kycreview.engine import (
    AUDIT_LOGGER_NAME,
    AuditAction,
    AuditLogger,
    AuditSink,
    InMemoryAuditSink,
    LoggingAuditSink,
)
from kycreview.models import Role

from tests.conftest import START, BrokenSink, FakeClock


# =============================================================================
# Audit Logger
# =============================================================================

class TestAuditLogger:
    def test_entry_fields(self):
        sink = InMemoryAuditSink()
        audit = AuditLogger([sink], clock=FakeClock())

        entry = audit.log(
            "user-1", Role.MANAGER, AuditAction.MANAGER_DECISION,
            "DOCUMENT", "doc-1", success=True, details={"manager_action": "APPROVE"},
            module_name="workflow_engine",
        )

        assert sink.entries == [entry]
        assert entry.role == "compliance_manager"
        assert entry.action == "MANAGER_DECISION"
        assert entry.timestamp == START
        assert entry.to_dict()["timestamp"] == START.isoformat()
        assert entry.to_dict()["details"] == {"manager_action": "APPROVE"}

    def test_plain_strings_accepted(self):
        sink = InMemoryAuditSink()

        AuditLogger([sink]).log("u", "auditor", "CUSTOM", "REPORT", "r-1", success=True)

        assert sink.entries[0].action == "CUSTOM"
        assert sink.entries[0].role == "auditor"

    def test_failing_sink_is_isolated(self, caplog):
        good = InMemoryAuditSink()
        audit = AuditLogger([BrokenSink(), good])

        with caplog.at_level(logging.ERROR, logger="kycreview.engine.audit"):
            audit.log("u", Role.OFFICER, AuditAction.OFFICER_REVIEW, "DOCUMENT", "doc-1", success=True)

        assert len(good) == 1
        assert "BrokenSink" in caplog.text

    def test_add_sink(self):
        audit = AuditLogger()
        sink = InMemoryAuditSink()
        audit.add_sink(sink)

        audit.log("u", Role.OFFICER, AuditAction.OFFICER_REVIEW, "DOCUMENT", "doc-1", success=True)

        assert len(sink) == 1

    def test_sinks_satisfy_protocol(self):
        assert isinstance(InMemoryAuditSink(), AuditSink)
        assert isinstance(LoggingAuditSink(), AuditSink)
        assert isinstance(BrokenSink(), AuditSink)


class TestInMemoryAuditSink:
    def test_concurrent_appends(self):
        sink = InMemoryAuditSink()
        audit = AuditLogger([sink])

        def write(i):
            audit.log("u", Role.OFFICER, AuditAction.OFFICER_REVIEW, "DOCUMENT", f"doc-{i}", success=True)

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(write, range(200)))

        assert len(sink) == 200
        assert len({e.resource_id for e in sink.entries}) == 200

    def test_find(self):
        sink = InMemoryAuditSink()
        audit = AuditLogger([sink])
        audit.log("u", Role.OFFICER, AuditAction.WORKFLOW_ACCESS_DENIED, "WORKFLOW_STEP", "a", success=False)
        audit.log("u", Role.OFFICER, AuditAction.WORKFLOW_ACCESS_GRANTED, "WORKFLOW_STEP", "a", success=True)
        audit.log("u", Role.OFFICER, AuditAction.WORKFLOW_ACCESS_GRANTED, "WORKFLOW_STEP", "b", success=True)

        assert len(sink.find(action="WORKFLOW_ACCESS_GRANTED")) == 2
        assert len(sink.find(resource_id="a")) == 2
        assert len(sink.find(success=False)) == 1
        assert sink.find(action="WORKFLOW_ACCESS_DENIED", resource_id="b") == []


class TestLoggingAuditSink:
    def test_levels(self, caplog):
        audit = AuditLogger([LoggingAuditSink()])

        with caplog.at_level(logging.INFO, logger=AUDIT_LOGGER_NAME):
            audit.log("u", Role.OFFICER, AuditAction.WORKFLOW_ACCESS_GRANTED, "WORKFLOW_STEP", "x", success=True)
            audit.log("u", Role.OFFICER, AuditAction.WORKFLOW_ACCESS_DENIED, "WORKFLOW_STEP", "x", success=False)

        granted, denied = caplog.records
        assert granted.levelno == logging.INFO
        assert denied.levelno == logging.WARNING
        assert denied.getMessage() == "WORKFLOW_ACCESS_DENIED WORKFLOW_STEP:x"
        assert denied.role == "compliance_officer"
        assert denied.success is False


# =============================================================================
# Canonical hashing
# =============================================================================

class Color(str, Enum):
    RED = "red"


class TestCanon:
    def test_key_order_irrelevant(self):
        assert canonical_json({"b": 1, "a": 2}) == '{"a":2,"b":1}'
        assert content_hash({"b": 1, "a": 2}) == content_hash({"a": 2, "b": 1})

    def test_special_types(self):
        stamp = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

        text = canonical_json({"at": stamp, "c": Color.RED, "s": {"y", "x"}})

        assert text == '{"at":"2024-03-01T09:00:00.000Z","c":"red","s":["x","y"]}'

    def test_offset_datetimes_normalized_to_utc(self):
        ist = timezone(timedelta(hours=5, minutes=30))
        local = datetime(2024, 3, 1, 14, 30, tzinfo=ist)
        same_wall_clock_utc = datetime(2024, 3, 1, 14, 30, tzinfo=timezone.utc)

        assert canonical_json({"at": local}) == '{"at":"2024-03-01T09:00:00.000Z"}'
        assert content_hash({"at": local}) == content_hash({"at": datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)})
        assert content_hash({"at": local}) != content_hash({"at": same_wall_clock_utc})

    def test_hash_lengths(self):
        assert len(content_hash({"a": 1})) == 64
        assert content_hash_short({"a": 1}) == content_hash({"a": 1})[:12]

    def test_entry_fingerprint_stable(self):
        audit = AuditLogger(clock=FakeClock())
        first = audit.log("u", Role.OFFICER, AuditAction.OFFICER_REVIEW, "DOCUMENT", "doc-1", success=True)
        second = audit.log("u", Role.OFFICER, AuditAction.OFFICER_REVIEW, "DOCUMENT", "doc-1", success=True)
        other = audit.log("u", Role.OFFICER, AuditAction.OFFICER_REVIEW, "DOCUMENT", "doc-2", success=True)

        assert first.fingerprint == second.fingerprint
        assert first.fingerprint != other.fingerprint
