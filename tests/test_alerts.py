"""
Tests for careescalation.alerts -- Alert Acknowledgement and Resolution.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from careescalation.alerts import AlertDesk
from careescalation.audit import AuditEventType, AuditLog
from careescalation.exceptions import BusinessRuleViolation, NotFoundError
from careescalation.models import AlertType, Patient, RiskAlert, RiskLevel, StaffRole, StaffUser
from careescalation.stores import InMemoryCareStore

NOW = datetime(2026, 3, 10, 11, 0, tzinfo=timezone.utc)


def _make_desk() -> tuple[AlertDesk, InMemoryCareStore, AuditLog, Patient, StaffUser]:
    store = InMemoryCareStore()
    audit_log = AuditLog()
    patient = store.patients.add(Patient(mother_id="MR-7", name="Test Mother", age=31))
    doctor = store.users.add(StaffUser(name="Doctor", role=StaffRole.DOCTOR))
    return AlertDesk(store, audit_log, clock=lambda: NOW), store, audit_log, patient, doctor


def _make_alert(
    store: InMemoryCareStore,
    patient: Patient,
    severity: RiskLevel = RiskLevel.SEVERE,
    created_at: datetime = NOW,
) -> RiskAlert:
    return store.alerts.create(RiskAlert(
        patient_id=patient.patient_id,
        alert_type=AlertType.HIGH_RISK_DETECTED,
        severity=severity,
        title="Test alert",
        description="Test",
        created_at=created_at,
    ))


# ---------------------------------------------------------------------------
# 1. Acknowledgement
# ---------------------------------------------------------------------------

class TestAcknowledge:
    def test_acknowledge(self):
        desk, store, audit_log, patient, doctor = _make_desk()
        alert = _make_alert(store, patient)

        acked = desk.acknowledge(alert.alert_id, doctor.user_id, notes="Seen", action_taken="Called")
        assert acked.is_acknowledged is True
        assert acked.acknowledged_by_id == doctor.user_id
        assert acked.acknowledged_at == NOW
        assert acked.action_taken == "Called"
        assert acked.is_resolved is False

        entries = audit_log.query(event_type=AuditEventType.ALERT_ACKNOWLEDGED)
        assert entries[0].actor_role == StaffRole.DOCTOR.value

    def test_double_acknowledge_rejected(self):
        desk, store, _, patient, doctor = _make_desk()
        alert = _make_alert(store, patient)
        desk.acknowledge(alert.alert_id, doctor.user_id)
        with pytest.raises(BusinessRuleViolation):
            desk.acknowledge(alert.alert_id, doctor.user_id)

    def test_acknowledge_by_unknown_user(self):
        desk, store, _, patient, _ = _make_desk()
        alert = _make_alert(store, patient)
        with pytest.raises(NotFoundError):
            desk.acknowledge(alert.alert_id, "nobody")
        assert store.alerts.get(alert.alert_id).is_acknowledged is False

    def test_acknowledge_unknown_alert(self):
        desk, _, _, _, doctor = _make_desk()
        with pytest.raises(NotFoundError):
            desk.acknowledge("missing", doctor.user_id)

    def test_update_acknowledgement(self):
        desk, store, _, patient, doctor = _make_desk()
        alert = _make_alert(store, patient)
        desk.acknowledge(alert.alert_id, doctor.user_id, notes="First look")
        updated = desk.update_acknowledgement(alert.alert_id, notes="Referred", action_taken="Admitted")
        assert updated.acknowledgment_notes == "Referred"
        assert updated.action_taken == "Admitted"

    def test_update_before_acknowledge_rejected(self):
        desk, store, _, patient, _ = _make_desk()
        alert = _make_alert(store, patient)
        with pytest.raises(BusinessRuleViolation, match="not been acknowledged"):
            desk.update_acknowledgement(alert.alert_id, notes="x")


# ---------------------------------------------------------------------------
# 2. Resolution
# ---------------------------------------------------------------------------

class TestResolve:
    def test_resolve_without_acknowledgement(self):
        desk, store, audit_log, patient, _ = _make_desk()
        alert = _make_alert(store, patient)

        resolved = desk.resolve(alert.alert_id, "False alarm, readings re-taken")
        assert resolved.is_resolved is True
        assert resolved.resolved_at == NOW
        assert resolved.is_acknowledged is False
        entry = audit_log.query(event_type=AuditEventType.ALERT_RESOLVED)[0]
        assert entry.metadata["was_acknowledged"] is False

    def test_blank_notes_rejected(self):
        desk, store, _, patient, _ = _make_desk()
        alert = _make_alert(store, patient)
        with pytest.raises(ValueError, match="mandatory"):
            desk.resolve(alert.alert_id, "   ")

    def test_double_resolve_rejected(self):
        desk, store, _, patient, _ = _make_desk()
        alert = _make_alert(store, patient)
        desk.resolve(alert.alert_id, "Done")
        with pytest.raises(BusinessRuleViolation):
            desk.resolve(alert.alert_id, "Again")

    def test_acknowledge_after_resolve_allowed(self):
        desk, store, _, patient, doctor = _make_desk()
        alert = _make_alert(store, patient)
        desk.resolve(alert.alert_id, "Handled by phone")
        acked = desk.acknowledge(alert.alert_id, doctor.user_id)
        assert acked.is_acknowledged is True
        assert acked.is_resolved is True


# ---------------------------------------------------------------------------
# 3. Open alerts
# ---------------------------------------------------------------------------

class TestUnresolved:
    def test_most_severe_then_newest_first(self):
        desk, store, _, patient, _ = _make_desk()
        old_red = _make_alert(store, patient, RiskLevel.SEVERE, NOW - timedelta(days=2))
        new_yellow = _make_alert(store, patient, RiskLevel.MODERATE, NOW)
        new_red = _make_alert(store, patient, RiskLevel.SEVERE, NOW - timedelta(hours=1))
        closed = _make_alert(store, patient, RiskLevel.SEVERE, NOW)
        desk.resolve(closed.alert_id, "Closed")

        open_alerts = desk.unresolved_for_patient(patient.patient_id)
        assert [a.alert_id for a in open_alerts] == [
            new_red.alert_id, old_red.alert_id, new_yellow.alert_id,
        ]
