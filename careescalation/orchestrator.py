"""
Care Escalation Orchestrator -- Recording and Escalating Observations.

``record_observation()`` is the use case run whenever staff record a
clinical check.  It applies these effects, in this order, inside one store
transaction:

    1. resolve patient and performing user (NotFoundError if absent)
    2. insert the observation, or correct an existing one in place
    3. score and classify it; persist score, tier and factors on it
    4. overwrite the patient's current risk snapshot
    5. raise one alert for a MODERATE or SEVERE tier
    6. schedule one follow-up: the manual one if requested, otherwise the
       automatic one the policy asks for

Either all of them persist or none do.  Audit entries are written only
after the transaction commits.

**Known limitation:** step 4 overwrites the snapshot unconditionally.  A
correction of an older observation therefore replaces the snapshot with
that observation's result, even when a more recent observation exists.
Concurrent writers for the same patient are last-writer-wins.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from careescalation.audit import AuditBuffer, AuditEventType, AuditLog
from careescalation.exceptions import BusinessRuleViolation, NotFoundError
from careescalation.models import (
    AlertType,
    ClinicalFindings,
    FollowUp,
    FollowUpStatus,
    Observation,
    ObservationRequest,
    Patient,
    RiskAlert,
    RiskLevel,
    StaffUser,
)
from careescalation.policy import EscalationPolicy, RiskAssessment
from careescalation.stores import CareStore

logger = logging.getLogger(__name__)


_ALERT_TITLES = {
    RiskLevel.SEVERE: "CRITICAL: High Risk Patient Detected",
    RiskLevel.MODERATE: "ATTENTION: Moderate Risk Patient Detected",
}

_RECOMMENDED_ACTIONS = {
    RiskLevel.SEVERE: "Schedule immediate doctor consultation. Notify medical officer.",
    RiskLevel.MODERATE: "Schedule follow-up call. Monitor patient closely.",
}

_AUTO_FOLLOW_UP_LABELS = {
    RiskLevel.SEVERE: "HIGH RISK",
    RiskLevel.MODERATE: "MODERATE RISK",
}


class CareEscalationOrchestrator:
    """Records observations and turns their risk into alerts and follow-ups.

    Args:
        store: The ``CareStore`` providing all five stores and transactions.
        policy: The ``EscalationPolicy`` that scores and decides.
        audit_log: Where committed effects are recorded.
        clock: Returns the current UTC time; "today" for follow-up dates is
            derived from it.
    """

    def __init__(
        self,
        store: CareStore,
        policy: EscalationPolicy,
        audit_log: AuditLog,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._policy = policy
        self._audit_log = audit_log
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def record_observation(
        self,
        request: ObservationRequest | dict[str, Any],
        performing_user_id: str,
    ) -> Observation:
        """Record a clinical check and apply its escalation consequences.

        Args:
            request: The observation input.  A dict is validated into an
                ``ObservationRequest`` first; malformed values raise
                ``pydantic.ValidationError`` before anything is scored.
            performing_user_id: The staff user recording the check.

        Returns:
            The persisted ``Observation`` with score, tier and factors set.

        Raises:
            NotFoundError: Patient or performing user does not exist.
            BusinessRuleViolation: ``observation_id`` belongs to another
                patient's observation.
        """
        if isinstance(request, dict):
            request = ObservationRequest.model_validate(request)

        audit = AuditBuffer(self._audit_log)
        now = self._clock()

        with self._store.transaction():
            patient = self._store.patients.get(request.patient_id)
            if patient is None:
                raise NotFoundError("Patient", request.patient_id)
            performer = self._store.users.get(performing_user_id)
            if performer is None:
                raise NotFoundError("User", performing_user_id)

            observation, corrected = self._prepare_observation(request, performer, now)

            assessment = self._policy.assess(observation, patient)
            observation.risk_score = assessment.score
            observation.risk_level = assessment.risk_level
            observation.risk_factors = assessment.factors_text()
            observation = self._store.observations.upsert(observation)
            audit.record(
                AuditEventType.OBSERVATION_CORRECTED if corrected
                else AuditEventType.OBSERVATION_RECORDED,
                patient_id=patient.patient_id,
                target_entity=observation.observation_id,
                actor_id=performer.user_id,
                actor_role=performer.role.value,
                metadata={
                    "risk_score": assessment.score,
                    "risk_level": assessment.risk_level.value,
                    "risk_factors": list(assessment.risk_factors),
                },
            )

            patient = self._store.patients.update_risk_snapshot(
                patient.patient_id, assessment.score, assessment.risk_level
            )
            audit.record(
                AuditEventType.RISK_SNAPSHOT_UPDATED,
                patient_id=patient.patient_id,
                target_entity=observation.observation_id,
                metadata={
                    "risk_score": assessment.score,
                    "risk_level": assessment.risk_level.value,
                },
            )

            decision = self._policy.decide_actions(
                assessment,
                manual_follow_up_requested=request.manual_follow_up_requested,
                auto_follow_up_enabled=request.auto_follow_up_enabled,
            )

            if decision.raise_alert:
                self._raise_risk_alert(observation, patient, assessment, audit)

            if request.manual_follow_up_requested:
                assignee = self._resolve_assignee(request.follow_up_assignee_id, performer)
                self._schedule_follow_up(
                    observation,
                    assignee,
                    request.follow_up_date,
                    request.follow_up_notes,
                    audit,
                    manual=True,
                )
                logger.info(
                    "Manual follow-up scheduled for patient %s on %s",
                    patient.mother_id or patient.patient_id,
                    request.follow_up_date,
                )
            elif decision.auto_follow_up_offset_days is not None:
                follow_up_date = now.date() + timedelta(days=decision.auto_follow_up_offset_days)
                note = (
                    f"Auto-scheduled follow-up for "
                    f"{_AUTO_FOLLOW_UP_LABELS[assessment.risk_level]} patient. "
                    f"Risk factors: {assessment.factors_text(', ')}"
                )
                self._schedule_follow_up(
                    observation, performer, follow_up_date, note, audit, manual=False
                )
                logger.info(
                    "Auto follow-up scheduled for %s patient %s on %s",
                    assessment.risk_level.name,
                    patient.mother_id or patient.patient_id,
                    follow_up_date,
                )

        audit.flush()
        logger.info(
            "Observation %s recorded for patient %s: score=%d level=%s",
            observation.observation_id,
            patient.patient_id,
            assessment.score,
            assessment.risk_level.name,
        )
        return observation

    # -- helpers --

    def _prepare_observation(
        self,
        request: ObservationRequest,
        performer: StaffUser,
        now: datetime,
    ) -> tuple[Observation, bool]:
        """Build a new observation or overwrite an existing one from the request.

        Returns the observation and whether it is a correction.  Score and
        tier are reset; they are always recomputed by the caller.
        """
        fields = request.model_dump(include=ClinicalFindings.finding_fields())
        fields.update(
            check_date=request.check_date or now.date(),
            performed_by_id=performer.user_id,
            notes=request.notes,
            recommendations=request.recommendations,
            next_check_date=request.next_check_date,
            risk_score=0,
            risk_level=RiskLevel.STABLE,
            risk_factors="",
        )

        existing = None
        if request.observation_id is not None:
            existing = self._store.observations.get(request.observation_id)

        if existing is None:
            observation = Observation(patient_id=request.patient_id, **fields)
            if request.observation_id is not None:
                observation.observation_id = request.observation_id
            return observation, False

        if existing.patient_id != request.patient_id:
            raise BusinessRuleViolation(
                f"Observation {existing.observation_id} belongs to another patient.",
                details={"observation_id": existing.observation_id},
            )

        logger.info(
            "Correcting observation %s for patient %s",
            existing.observation_id,
            existing.patient_id,
        )
        fields["updated_at"] = now
        return existing.model_copy(update=fields), True

    def _resolve_assignee(
        self, assignee_id: Optional[str], performer: StaffUser
    ) -> StaffUser:
        """The requested assignee if known, otherwise the performing user."""
        if assignee_id is None:
            return performer
        assignee = self._store.users.get(assignee_id)
        if assignee is None:
            logger.warning(
                "Follow-up assignee %s not found; assigning to %s",
                assignee_id,
                performer.user_id,
            )
            return performer
        return assignee

    def _raise_risk_alert(
        self,
        observation: Observation,
        patient: Patient,
        assessment: RiskAssessment,
        audit: AuditBuffer,
    ) -> RiskAlert:
        level = assessment.risk_level
        description = (
            f"Patient {patient.name} (Mother ID: {patient.mother_id}) has been "
            f"assessed as {level.name} risk during health check. "
            f"Risk Score: {assessment.score}. Immediate attention may be required."
        )
        alert = self._store.alerts.create(RiskAlert(
            patient_id=patient.patient_id,
            observation_id=observation.observation_id,
            alert_type=AlertType.HIGH_RISK_DETECTED,
            severity=level,
            title=_ALERT_TITLES[level],
            description=description,
            risk_factors=assessment.factors_text(),
            recommended_action=_RECOMMENDED_ACTIONS[level],
        ))
        audit.record(
            AuditEventType.ALERT_RAISED,
            patient_id=patient.patient_id,
            target_entity=alert.alert_id,
            metadata={
                "severity": level.value,
                "alert_type": alert.alert_type.value,
                "observation_id": observation.observation_id,
            },
        )
        logger.info("Risk alert %s raised for patient %s", alert.alert_id, patient.patient_id)
        return alert

    def _schedule_follow_up(
        self,
        observation: Observation,
        assignee: StaffUser,
        scheduled_date,
        notes: Optional[str],
        audit: AuditBuffer,
        manual: bool,
    ) -> FollowUp:
        follow_up = self._store.follow_ups.create(FollowUp(
            patient_id=observation.patient_id,
            assigned_to_id=assignee.user_id,
            scheduled_date=scheduled_date,
            status=FollowUpStatus.PENDING,
            triggered_by_observation_id=observation.observation_id,
            notes=notes,
        ))
        audit.record(
            AuditEventType.FOLLOW_UP_SCHEDULED,
            patient_id=observation.patient_id,
            target_entity=follow_up.follow_up_id,
            metadata={
                "scheduled_date": scheduled_date.isoformat(),
                "assigned_to_id": assignee.user_id,
                "source": "manual" if manual else "auto",
                "observation_id": observation.observation_id,
            },
        )
        return follow_up
