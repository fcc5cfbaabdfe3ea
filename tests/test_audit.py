"""
Tests for careescalation.audit -- Append-Only, Tamper-Evident Audit Log.

Covers: append + chain verification, tamper detection, query filtering,
empty log verification, and buffered flushing.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from careescalation.audit import AuditBuffer, AuditEntry, AuditEventType, AuditLog


def _make_entry(
    patient_id: str = "patient_1",
    actor_id: str = "nurse_1",
    actor_role: str = "HELP_DESK",
    event_type: AuditEventType = AuditEventType.OBSERVATION_RECORDED,
    target_entity: str = "observation_1",
    metadata: dict | None = None,
) -> AuditEntry:
    return AuditEntry(
        patient_id=patient_id,
        actor_id=actor_id,
        actor_role=actor_role,
        event_type=event_type,
        target_entity=target_entity,
        metadata=metadata or {},
    )


# ---------------------------------------------------------------------------
# 1. Append + chain verification
# ---------------------------------------------------------------------------

class TestAppendAndChainVerification:
    def test_append_single_entry(self):
        log = AuditLog()
        appended = log.append(_make_entry())
        assert appended.previous_hash == ""
        assert len(log) == 1

    def test_append_multiple_entries_builds_chain(self):
        log = AuditLog()
        e1 = log.append(_make_entry(actor_id="actor_1"))
        e2 = log.append(_make_entry(actor_id="actor_2"))
        e3 = log.append(_make_entry(actor_id="actor_3"))

        assert e1.previous_hash == ""
        assert e2.previous_hash == e1.compute_hash()
        assert e3.previous_hash == e2.compute_hash()

    def test_chain_verification_passes_for_valid_log(self):
        log = AuditLog()
        for i in range(5):
            log.append(_make_entry(actor_id=f"actor_{i}"))
        assert log.verify_chain() == (True, None)


# ---------------------------------------------------------------------------
# 2. Tamper detection
# ---------------------------------------------------------------------------

class TestTamperDetection:
    def test_modified_entry_breaks_chain(self):
        log = AuditLog()
        log.append(_make_entry(actor_id="actor_1"))
        log.append(_make_entry(actor_id="actor_2"))
        log.append(_make_entry(actor_id="actor_3"))

        log._entries[1].metadata = {"risk_score": 0}

        valid, broken_at = log.verify_chain()
        assert valid is False
        assert broken_at in (1, 2)

    def test_modified_first_entry_detected(self):
        log = AuditLog()
        log.append(_make_entry(actor_id="actor_1"))
        log.append(_make_entry(actor_id="actor_2"))

        log._entries[0].patient_id = "someone_else"

        valid, _ = log.verify_chain()
        assert valid is False


# ---------------------------------------------------------------------------
# 3. Empty log
# ---------------------------------------------------------------------------

class TestEmptyLog:
    def test_empty_log_is_valid(self):
        log = AuditLog()
        assert log.verify_chain() == (True, None)
        assert len(log) == 0


# ---------------------------------------------------------------------------
# 4. Query filtering
# ---------------------------------------------------------------------------

class TestQueryFiltering:
    def test_query_by_patient(self):
        log = AuditLog()
        log.append(_make_entry(patient_id="p1"))
        log.append(_make_entry(patient_id="p2"))
        log.append(_make_entry(patient_id="p1"))

        results = log.query(patient_id="p1")
        assert len(results) == 2
        assert all(e.patient_id == "p1" for e in results)

    def test_query_by_event_type(self):
        log = AuditLog()
        log.append(_make_entry(event_type=AuditEventType.OBSERVATION_RECORDED))
        log.append(_make_entry(event_type=AuditEventType.ALERT_RAISED))

        results = log.query(event_type=AuditEventType.ALERT_RAISED)
        assert [e.event_type for e in results] == [AuditEventType.ALERT_RAISED]

    def test_query_by_actor(self):
        log = AuditLog()
        log.append(_make_entry(actor_id="nurse_1"))
        log.append(_make_entry(actor_id="SYSTEM"))

        assert len(log.query(actor_id="SYSTEM")) == 1

    def test_query_by_time_window(self):
        log = AuditLog()
        old = _make_entry()
        old.timestamp = datetime.now(timezone.utc) - timedelta(days=3)
        log.append(old)
        log.append(_make_entry())

        since = datetime.now(timezone.utc) - timedelta(days=1)
        assert len(log.query(time_start=since)) == 1

    def test_query_returns_copies(self):
        log = AuditLog()
        log.append(_make_entry())
        log.query()[0].actor_id = "MUTATED"
        assert log.query()[0].actor_id == "nurse_1"
        assert log.verify_chain() == (True, None)


# ---------------------------------------------------------------------------
# 5. Buffered recording
# ---------------------------------------------------------------------------

class TestAuditBuffer:
    def test_nothing_written_before_flush(self):
        log = AuditLog()
        buffer = AuditBuffer(log)
        buffer.record(AuditEventType.ALERT_RAISED, patient_id="p1", target_entity="a1")
        assert len(log) == 0

    def test_flush_appends_in_order(self):
        log = AuditLog()
        buffer = AuditBuffer(log)
        buffer.record(AuditEventType.OBSERVATION_RECORDED, patient_id="p1", target_entity="o1")
        buffer.record(AuditEventType.RISK_SNAPSHOT_UPDATED, patient_id="p1", target_entity="o1")
        buffer.flush()

        assert [e.event_type for e in log.query()] == [
            AuditEventType.OBSERVATION_RECORDED,
            AuditEventType.RISK_SNAPSHOT_UPDATED,
        ]
        assert log.verify_chain() == (True, None)

    def test_flush_empties_buffer(self):
        log = AuditLog()
        buffer = AuditBuffer(log)
        buffer.record(AuditEventType.ALERT_RAISED, patient_id="p1", target_entity="a1")
        buffer.flush()
        buffer.flush()
        assert len(log) == 1
