"""
Alert handling: acknowledgement and resolution.

Acknowledgement and resolution are independent workflows.  Staff normally
acknowledge an alert before resolving it, but an alert may be resolved
without acknowledgement and acknowledged after it was resolved.

Each workflow runs once: a second ``acknowledge()`` or ``resolve()`` is
refused.  Acknowledgement notes can be amended with
``update_acknowledgement()``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from careescalation.audit import AuditBuffer, AuditEventType, AuditLog
from careescalation.exceptions import BusinessRuleViolation, NotFoundError
from careescalation.models import RiskAlert, risk_level_rank
from careescalation.stores import CareStore

logger = logging.getLogger(__name__)


class AlertDesk:
    """Staff-facing operations on alerts."""

    def __init__(
        self,
        store: CareStore,
        audit_log: AuditLog,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._audit_log = audit_log
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _load(self, alert_id: str) -> RiskAlert:
        alert = self._store.alerts.get(alert_id)
        if alert is None:
            raise NotFoundError("Alert", alert_id)
        return alert

    def acknowledge(
        self,
        alert_id: str,
        user_id: str,
        notes: Optional[str] = None,
        action_taken: Optional[str] = None,
    ) -> RiskAlert:
        """Record that a member of staff has seen and taken up an alert.

        Raises:
            NotFoundError: Alert or user does not exist.
            BusinessRuleViolation: The alert is already acknowledged.
        """
        audit = AuditBuffer(self._audit_log)
        with self._store.transaction():
            alert = self._load(alert_id)
            user = self._store.users.get(user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            if alert.is_acknowledged:
                raise BusinessRuleViolation(
                    f"Alert {alert_id} is already acknowledged.",
                    details={"acknowledged_by_id": alert.acknowledged_by_id},
                )

            alert.is_acknowledged = True
            alert.acknowledged_by_id = user.user_id
            alert.acknowledged_at = self._clock()
            alert.acknowledgment_notes = notes
            alert.action_taken = action_taken
            alert = self._store.alerts.update(alert)
            audit.record(
                AuditEventType.ALERT_ACKNOWLEDGED,
                patient_id=alert.patient_id,
                target_entity=alert.alert_id,
                actor_id=user.user_id,
                actor_role=user.role.value,
                metadata={"action_taken": action_taken or ""},
            )
        audit.flush()
        logger.info("Alert %s acknowledged by user %s", alert_id, user_id)
        return alert

    def update_acknowledgement(
        self,
        alert_id: str,
        notes: Optional[str] = None,
        action_taken: Optional[str] = None,
    ) -> RiskAlert:
        """Amend the notes of an acknowledged alert.

        Raises:
            BusinessRuleViolation: The alert has not been acknowledged yet.
        """
        with self._store.transaction():
            alert = self._load(alert_id)
            if not alert.is_acknowledged:
                raise BusinessRuleViolation("Alert has not been acknowledged yet")
            alert.acknowledgment_notes = notes
            alert.action_taken = action_taken
            alert = self._store.alerts.update(alert)
        logger.info("Alert %s acknowledgement updated", alert_id)
        return alert

    def resolve(self, alert_id: str, resolution_notes: str) -> RiskAlert:
        """Close an alert with mandatory resolution notes.

        Raises:
            ValueError: ``resolution_notes`` is empty.
            BusinessRuleViolation: The alert is already resolved.
        """
        if not resolution_notes.strip():
            raise ValueError("Resolution notes are mandatory to resolve an alert.")

        audit = AuditBuffer(self._audit_log)
        with self._store.transaction():
            alert = self._load(alert_id)
            if alert.is_resolved:
                raise BusinessRuleViolation(f"Alert {alert_id} is already resolved.")

            alert.is_resolved = True
            alert.resolved_at = self._clock()
            alert.resolution_notes = resolution_notes
            alert = self._store.alerts.update(alert)
            audit.record(
                AuditEventType.ALERT_RESOLVED,
                patient_id=alert.patient_id,
                target_entity=alert.alert_id,
                metadata={
                    "resolution_notes": resolution_notes,
                    "was_acknowledged": alert.is_acknowledged,
                },
            )
        audit.flush()
        logger.info("Alert %s resolved", alert_id)
        return alert

    def unresolved_for_patient(self, patient_id: str) -> list[RiskAlert]:
        """Open alerts of a patient, most severe first, then newest first."""
        alerts = [a for a in self._store.alerts.for_patient(patient_id) if not a.is_resolved]
        alerts.sort(key=lambda a: a.created_at, reverse=True)
        alerts.sort(key=lambda a: risk_level_rank(a.severity), reverse=True)
        return alerts
