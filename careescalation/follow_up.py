"""
Follow-Up Lifecycle -- State Machine for Follow-Up Call Tasks.

**State machine:**

    PENDING -> {COMPLETED, NO_ANSWER, RESCHEDULED, CANCELLED}
    RESCHEDULED -> {COMPLETED, NO_ANSWER, RESCHEDULED, CANCELLED}

``COMPLETED``, ``NO_ANSWER`` and ``CANCELLED`` end a call attempt on the
task.  A completed task is never reopened, but completing it with a
``next_follow_up_date`` chains a brand-new ``PENDING`` task.  ``reschedule()``
is the only way back from ``NO_ANSWER`` or ``CANCELLED``; it is refused
for ``COMPLETED`` tasks.

**Side effects of completion:**

* ``requires_immediate_attention`` raises one RED alert of type
  ``COMPLICATION_REPORTED``.  This is the only alert path outside the
  observation pipeline.
* ``next_follow_up_date`` creates the chained task for the same patient
  and assignee.  ``EscalationConfig.max_follow_up_chain_depth`` caps the
  chain length when set.

Every operation runs inside one store transaction and records its audit
entries after commit.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Callable, Optional

from careescalation.audit import AuditBuffer, AuditEventType, AuditLog
from careescalation.config import DEFAULT_CONFIG, EscalationConfig
from careescalation.exceptions import (
    BusinessRuleViolation,
    InvalidTransitionError,
    NotFoundError,
)
from careescalation.models import (
    AlertType,
    Consultation,
    ConsultationStatus,
    FollowUp,
    FollowUpStatus,
    FollowUpUpdate,
    RiskAlert,
    RiskLevel,
    StaffRole,
)
from careescalation.stores import CareStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Valid status transitions for update()
# ---------------------------------------------------------------------------

_CALL_OUTCOMES = {
    FollowUpStatus.COMPLETED,
    FollowUpStatus.NO_ANSWER,
    FollowUpStatus.RESCHEDULED,
    FollowUpStatus.CANCELLED,
}

_VALID_TRANSITIONS: dict[FollowUpStatus, set[FollowUpStatus]] = {
    FollowUpStatus.PENDING: _CALL_OUTCOMES,
    FollowUpStatus.RESCHEDULED: _CALL_OUTCOMES,
    FollowUpStatus.COMPLETED: set(),  # terminal
    FollowUpStatus.NO_ANSWER: set(),  # terminal, reopened only by reschedule()
    FollowUpStatus.CANCELLED: set(),  # terminal, reopened only by reschedule()
}


class FollowUpLifecycle:
    """Creates follow-up tasks and drives them through their lifecycle."""

    def __init__(
        self,
        store: CareStore,
        audit_log: AuditLog,
        config: EscalationConfig = DEFAULT_CONFIG,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._audit_log = audit_log
        self._config = config
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # -- helpers --

    def _load(self, follow_up_id: str) -> FollowUp:
        follow_up = self._store.follow_ups.get(follow_up_id)
        if follow_up is None:
            raise NotFoundError("Follow-up", follow_up_id)
        return follow_up

    def _validate_transition(self, follow_up: FollowUp, target: FollowUpStatus) -> None:
        allowed = _VALID_TRANSITIONS.get(follow_up.status, set())
        if target not in allowed:
            raise InvalidTransitionError(
                f"Cannot move follow-up {follow_up.follow_up_id} from "
                f"{follow_up.status.value} to {target.value}. "
                f"Allowed transitions: {sorted(s.value for s in allowed)}",
                details={"from": follow_up.status.value, "to": target.value},
            )

    def _require_user(self, user_id: str):
        user = self._store.users.get(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    # -- creation --

    def create_follow_up(
        self,
        patient_id: str,
        assigned_to_id: str,
        scheduled_date: date,
        notes: Optional[str] = None,
    ) -> FollowUp:
        """Schedule a follow-up by hand, outside any observation.

        Raises:
            NotFoundError: Patient or assignee does not exist.
        """
        audit = AuditBuffer(self._audit_log)
        with self._store.transaction():
            if self._store.patients.get(patient_id) is None:
                raise NotFoundError("Patient", patient_id)
            self._require_user(assigned_to_id)

            follow_up = self._store.follow_ups.create(FollowUp(
                patient_id=patient_id,
                assigned_to_id=assigned_to_id,
                scheduled_date=scheduled_date,
                notes=notes,
            ))
            audit.record(
                AuditEventType.FOLLOW_UP_SCHEDULED,
                patient_id=patient_id,
                target_entity=follow_up.follow_up_id,
                metadata={
                    "scheduled_date": scheduled_date.isoformat(),
                    "assigned_to_id": assigned_to_id,
                    "source": "manual",
                },
            )
        audit.flush()
        return follow_up

    def create_from_consultation(self, consultation: Consultation) -> Optional[FollowUp]:
        """Create the follow-up a completed consultation asked for.

        The task goes to the first active help-desk user.  Returns None when
        the consultation is not COMPLETED, needs no follow-up, or when no
        help-desk user is available.
        """
        if (
            consultation.status != ConsultationStatus.COMPLETED
            or not consultation.follow_up_required
            or consultation.follow_up_date is None
        ):
            return None

        audit = AuditBuffer(self._audit_log)
        with self._store.transaction():
            if self._store.patients.get(consultation.patient_id) is None:
                raise NotFoundError("Patient", consultation.patient_id)

            help_desk = self._store.users.find_active_by_role(StaffRole.HELP_DESK)
            if not help_desk:
                logger.warning(
                    "No help desk user found to assign follow-up for consultation %s",
                    consultation.consultation_id,
                )
                return None

            follow_up = self._store.follow_ups.create(FollowUp(
                patient_id=consultation.patient_id,
                assigned_to_id=help_desk[0].user_id,
                scheduled_date=consultation.follow_up_date.date(),
                triggered_by_consultation_id=consultation.consultation_id,
            ))
            audit.record(
                AuditEventType.FOLLOW_UP_SCHEDULED,
                patient_id=consultation.patient_id,
                target_entity=follow_up.follow_up_id,
                metadata={
                    "scheduled_date": follow_up.scheduled_date.isoformat(),
                    "assigned_to_id": follow_up.assigned_to_id,
                    "source": "consultation",
                    "consultation_id": consultation.consultation_id,
                },
            )
        audit.flush()
        logger.info("Follow-up created for consultation %s", consultation.consultation_id)
        return follow_up

    # -- lifecycle operations --

    def update_follow_up(
        self,
        follow_up_id: str,
        update: FollowUpUpdate | dict[str, Any],
    ) -> FollowUp:
        """Record the outcome of a call attempt.

        Every update stamps ``call_attempted_at`` and increments
        ``attempt_count``.  Outcome fields are only kept when the new status
        is ``COMPLETED``.

        Returns:
            The updated follow-up.

        Raises:
            NotFoundError: Follow-up (or its patient, for an urgent alert)
                does not exist.
            InvalidTransitionError: The task is already closed.
            BusinessRuleViolation: Chaining would exceed the configured
                maximum chain depth.
        """
        if isinstance(update, dict):
            update = FollowUpUpdate.model_validate(update)

        audit = AuditBuffer(self._audit_log)
        now = self._clock()

        with self._store.transaction():
            follow_up = self._load(follow_up_id)
            self._validate_transition(follow_up, update.status)

            completed = update.status == FollowUpStatus.COMPLETED
            if completed and update.next_follow_up_date is not None:
                self._check_chain_depth(follow_up)

            follow_up.status = update.status
            follow_up.call_attempted_at = now
            follow_up.attempt_count += 1
            if update.notes is not None:
                follow_up.notes = update.notes

            if completed:
                follow_up.call_completed_at = now
                follow_up.call_duration_seconds = update.call_duration_seconds
                follow_up.patient_condition = update.patient_condition
                follow_up.symptoms_reported = update.symptoms_reported
                follow_up.medication_compliance = update.medication_compliance
                follow_up.concerns_raised = update.concerns_raised
                follow_up.advice_given = update.advice_given
                follow_up.requires_doctor_consultation = update.requires_doctor_consultation
                follow_up.requires_immediate_attention = update.requires_immediate_attention
                follow_up.next_follow_up_date = update.next_follow_up_date

            follow_up = self._store.follow_ups.update(follow_up)
            audit.record(
                AuditEventType.FOLLOW_UP_UPDATED,
                patient_id=follow_up.patient_id,
                target_entity=follow_up.follow_up_id,
                actor_id=follow_up.assigned_to_id,
                metadata={
                    "status": follow_up.status.value,
                    "attempt_count": follow_up.attempt_count,
                },
            )

            if completed and follow_up.requires_immediate_attention:
                self._raise_immediate_attention_alert(follow_up, audit)
            if completed and follow_up.next_follow_up_date is not None:
                self._chain_next_follow_up(follow_up, audit)

        audit.flush()
        logger.info("Follow-up %s updated with status %s", follow_up_id, update.status.value)
        return follow_up

    def reschedule(self, follow_up_id: str, new_date: date) -> FollowUp:
        """Move a follow-up to a new date and mark it RESCHEDULED.

        Raises:
            NotFoundError: Follow-up does not exist.
            BusinessRuleViolation: The follow-up is already completed.
        """
        audit = AuditBuffer(self._audit_log)
        with self._store.transaction():
            follow_up = self._load(follow_up_id)
            if follow_up.status == FollowUpStatus.COMPLETED:
                raise BusinessRuleViolation(
                    "Cannot reschedule completed follow-up",
                    details={"follow_up_id": follow_up_id},
                )

            previous_date = follow_up.scheduled_date
            follow_up.scheduled_date = new_date
            follow_up.status = FollowUpStatus.RESCHEDULED
            follow_up = self._store.follow_ups.update(follow_up)
            audit.record(
                AuditEventType.FOLLOW_UP_RESCHEDULED,
                patient_id=follow_up.patient_id,
                target_entity=follow_up.follow_up_id,
                metadata={
                    "previous_date": previous_date.isoformat(),
                    "new_date": new_date.isoformat(),
                },
            )
        audit.flush()
        return follow_up

    def reassign(self, follow_up_id: str, new_assignee_id: str) -> FollowUp:
        """Point a follow-up at another member of staff.  Status is unchanged.

        Raises:
            NotFoundError: Follow-up or new assignee does not exist.
        """
        audit = AuditBuffer(self._audit_log)
        with self._store.transaction():
            follow_up = self._load(follow_up_id)
            self._require_user(new_assignee_id)

            previous_assignee = follow_up.assigned_to_id
            follow_up.assigned_to_id = new_assignee_id
            follow_up = self._store.follow_ups.update(follow_up)
            audit.record(
                AuditEventType.FOLLOW_UP_REASSIGNED,
                patient_id=follow_up.patient_id,
                target_entity=follow_up.follow_up_id,
                metadata={
                    "previous_assignee_id": previous_assignee,
                    "new_assignee_id": new_assignee_id,
                },
            )
        audit.flush()
        return follow_up

    def cancel(self, follow_up_id: str, actor_id: str = "SYSTEM") -> FollowUp:
        """Cancel a follow-up.

        Raises:
            NotFoundError: Follow-up does not exist.
            InvalidTransitionError: Completed and cancelled tasks cannot be
                cancelled.
        """
        audit = AuditBuffer(self._audit_log)
        with self._store.transaction():
            follow_up = self._load(follow_up_id)
            if follow_up.status in (FollowUpStatus.COMPLETED, FollowUpStatus.CANCELLED):
                raise InvalidTransitionError(
                    f"Cannot cancel follow-up {follow_up_id} in status "
                    f"{follow_up.status.value}.",
                    details={"from": follow_up.status.value, "to": "CANCELLED"},
                )

            follow_up.status = FollowUpStatus.CANCELLED
            follow_up = self._store.follow_ups.update(follow_up)
            audit.record(
                AuditEventType.FOLLOW_UP_CANCELLED,
                patient_id=follow_up.patient_id,
                target_entity=follow_up.follow_up_id,
                actor_id=actor_id,
            )
        audit.flush()
        logger.info("Follow-up %s cancelled", follow_up_id)
        return follow_up

    def attach_photo(self, follow_up_id: str, photo_url: str) -> FollowUp:
        """Store the reference of a photo taken during the follow-up."""
        with self._store.transaction():
            follow_up = self._load(follow_up_id)
            follow_up.photo_url = photo_url
            follow_up = self._store.follow_ups.update(follow_up)
        logger.info("Photo attached to follow-up %s", follow_up_id)
        return follow_up

    # -- completion side effects --

    def _check_chain_depth(self, follow_up: FollowUp) -> None:
        cap = self._config.max_follow_up_chain_depth
        if cap is not None and follow_up.chain_depth + 1 > cap:
            raise BusinessRuleViolation(
                f"Follow-up chain would exceed the maximum depth of {cap}.",
                details={"follow_up_id": follow_up.follow_up_id, "chain_depth": follow_up.chain_depth},
            )

    def _raise_immediate_attention_alert(self, follow_up: FollowUp, audit: AuditBuffer) -> RiskAlert:
        patient = self._store.patients.get(follow_up.patient_id)
        if patient is None:
            raise NotFoundError("Patient", follow_up.patient_id)

        alert = self._store.alerts.create(RiskAlert(
            patient_id=patient.patient_id,
            follow_up_id=follow_up.follow_up_id,
            alert_type=AlertType.COMPLICATION_REPORTED,
            severity=RiskLevel.RED,
            title="URGENT: Patient Requires Immediate Attention",
            description=(
                f"During follow-up call with patient {patient.name} "
                f"(Mother ID: {patient.mother_id}), staff reported that the "
                f"patient requires immediate attention. "
                f"Symptoms: {follow_up.symptoms_reported}. "
                f"Concerns: {follow_up.concerns_raised}"
            ),
            recommended_action=(
                "Contact patient immediately. Arrange emergency consultation if needed."
            ),
        ))
        audit.record(
            AuditEventType.ALERT_RAISED,
            patient_id=patient.patient_id,
            target_entity=alert.alert_id,
            actor_id=follow_up.assigned_to_id,
            metadata={
                "severity": alert.severity.value,
                "alert_type": alert.alert_type.value,
                "follow_up_id": follow_up.follow_up_id,
            },
        )
        logger.warning("Immediate attention alert created for patient %s", patient.patient_id)
        return alert

    def _chain_next_follow_up(self, current: FollowUp, audit: AuditBuffer) -> FollowUp:
        next_follow_up = self._store.follow_ups.create(FollowUp(
            patient_id=current.patient_id,
            assigned_to_id=current.assigned_to_id,
            scheduled_date=current.next_follow_up_date,
            notes=f"Follow-up from previous call on {current.scheduled_date.isoformat()}",
            previous_follow_up_id=current.follow_up_id,
            chain_depth=current.chain_depth + 1,
        ))
        audit.record(
            AuditEventType.FOLLOW_UP_SCHEDULED,
            patient_id=current.patient_id,
            target_entity=next_follow_up.follow_up_id,
            actor_id=current.assigned_to_id,
            metadata={
                "scheduled_date": next_follow_up.scheduled_date.isoformat(),
                "assigned_to_id": next_follow_up.assigned_to_id,
                "source": "chained",
                "previous_follow_up_id": current.follow_up_id,
            },
        )
        logger.info("Next follow-up scheduled for %s", next_follow_up.scheduled_date)
        return next_follow_up
