"""
Core data models for the Care Escalation Engine.

Entities reference each other by identifier only (``patient_id``,
``observation_id``, ...).  Ownership is expressed through store-level
queries such as "follow-ups for patient X", never through in-memory
object graphs.

Clinical measurements carry range constraints so that malformed input is
rejected with a ``pydantic.ValidationError`` *before* any scoring happens.
Every measurement is optional: an absent value simply contributes nothing
to the risk score.
"""

from __future__ import annotations

import enum
import uuid
from datetime import date, datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class RiskLevel(str, enum.Enum):
    """Severity tier derived from a numeric risk score.

    Values keep the colour codes used on ward dashboards:

    * ``STABLE``   (``GREEN``)  -- no immediate intervention required.
    * ``MODERATE`` (``YELLOW``) -- alert raised; follow-up call and close
      monitoring.
    * ``SEVERE``   (``RED``)    -- alert raised; immediate doctor
      consultation.

    ``GREEN``, ``YELLOW`` and ``RED`` are aliases of the three tiers.
    """

    STABLE = "GREEN"
    MODERATE = "YELLOW"
    SEVERE = "RED"

    GREEN = "GREEN"
    YELLOW = "YELLOW"
    RED = "RED"


_LEVEL_RANK = {RiskLevel.STABLE: 0, RiskLevel.MODERATE: 1, RiskLevel.SEVERE: 2}


def risk_level_rank(level: RiskLevel) -> int:
    """Return the ordinal rank of a tier (STABLE < MODERATE < SEVERE)."""
    return _LEVEL_RANK[level]


class AlertType(str, enum.Enum):
    """Category tag attached to every alert."""

    HIGH_RISK_DETECTED = "HIGH_RISK_DETECTED"
    COMPLICATION_REPORTED = "COMPLICATION_REPORTED"


class FollowUpStatus(str, enum.Enum):
    """Lifecycle states of a follow-up call task.

    ``PENDING`` is initial.  ``COMPLETED``, ``NO_ANSWER`` and ``CANCELLED``
    end the task instance; a completed task may chain into a *new*
    ``PENDING`` task.  ``RESCHEDULED`` keeps the same task open under a new
    date.
    """

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    NO_ANSWER = "NO_ANSWER"
    RESCHEDULED = "RESCHEDULED"
    CANCELLED = "CANCELLED"


class StaffRole(str, enum.Enum):
    ADMIN = "ADMIN"
    MEDICAL_OFFICER = "MEDICAL_OFFICER"
    MCH_OFFICER = "MCH_OFFICER"
    DOCTOR = "DOCTOR"
    HELP_DESK = "HELP_DESK"


class ConsultationStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


URINE_GRADES = ("nil", "trace", "+", "++", "+++")


# ---------------------------------------------------------------------------
# People
# ---------------------------------------------------------------------------

class Patient(BaseModel):
    """A registered pregnant patient.

    Only the fields the risk engine reads or writes are modelled here;
    registration details live with the patient registry.
    """

    patient_id: str = Field(default_factory=_new_id)
    mother_id: str = Field(
        default="",
        description="Programme-issued mother identifier shown on alerts.",
    )
    name: str = Field(default="")
    age: Optional[int] = Field(default=None, ge=10, le=70)
    has_previous_complications: bool = Field(
        default=False,
        description="History of complications in earlier pregnancies.",
    )
    current_risk_score: int = Field(
        default=0,
        ge=0,
        description="Score of the most recently scored observation.",
    )
    current_risk_level: RiskLevel = Field(
        default=RiskLevel.STABLE,
        description="Tier of the most recently scored observation.",
    )


class StaffUser(BaseModel):
    """A member of staff who performs checks or owns follow-up calls."""

    user_id: str = Field(default_factory=_new_id)
    name: str = Field(default="")
    role: StaffRole = Field(default=StaffRole.HELP_DESK)
    active: bool = Field(default=True)


# ---------------------------------------------------------------------------
# Observations
# ---------------------------------------------------------------------------

class ClinicalFindings(BaseModel):
    """Measurements and danger signs captured during one clinical check."""

    # Vital signs
    bp_systolic: Optional[int] = Field(default=None, ge=40, le=300)
    bp_diastolic: Optional[int] = Field(default=None, ge=20, le=200)
    pulse_rate: Optional[int] = Field(default=None, ge=20, le=250)
    temperature: Optional[float] = Field(
        default=None, ge=30, le=45, description="Body temperature in Celsius."
    )
    respiratory_rate: Optional[int] = Field(default=None, ge=4, le=80)
    spo2: Optional[int] = Field(
        default=None, ge=0, le=100, description="Oxygen saturation (%)."
    )

    # Blood tests
    hemoglobin: Optional[float] = Field(
        default=None, ge=1, le=25, description="Hemoglobin in g/dL."
    )
    blood_sugar_fasting: Optional[float] = Field(default=None, ge=10, le=1000)
    blood_sugar_random: Optional[float] = Field(default=None, ge=10, le=1000)
    blood_sugar_pp: Optional[float] = Field(
        default=None, ge=10, le=1000, description="Post-prandial blood sugar (mg/dL)."
    )

    # Physical measurements
    weight: Optional[float] = Field(default=None, gt=0, le=300)
    height: Optional[float] = Field(default=None, gt=0, le=250)
    fundal_height: Optional[float] = Field(default=None, ge=0, le=60)

    # Pregnancy specific
    fetal_heart_rate: Optional[int] = Field(default=None, ge=0, le=300)
    fetal_movement: Optional[bool] = Field(
        default=None,
        description="None when not assessed; False means movement reported absent.",
    )
    urine_albumin: Optional[str] = Field(default=None)
    urine_sugar: Optional[str] = Field(default=None)

    # Symptoms and danger signs
    symptoms: Optional[str] = Field(default=None)
    swelling_observed: Optional[bool] = Field(default=None)
    bleeding_reported: Optional[bool] = Field(default=None)
    headache_reported: Optional[bool] = Field(default=None)
    blurred_vision_reported: Optional[bool] = Field(default=None)
    abdominal_pain_reported: Optional[bool] = Field(default=None)

    @field_validator("urine_albumin", "urine_sugar")
    @classmethod
    def validate_urine_grade(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().lower()
        if v not in URINE_GRADES:
            raise ValueError(f"urine grade must be one of {URINE_GRADES}, got '{v}'")
        return v

    @classmethod
    def finding_fields(cls) -> set[str]:
        """Names of the fields that belong to the clinical findings."""
        return set(ClinicalFindings.model_fields)


class Observation(ClinicalFindings):
    """A persisted clinical check with its derived risk classification.

    ``risk_score``, ``risk_level`` and ``risk_factors`` are only ever
    written by the orchestrator from a fresh scoring run.
    """

    observation_id: str = Field(default_factory=_new_id)
    patient_id: str = Field(...)
    check_date: date = Field(default_factory=lambda: _utcnow().date())
    performed_by_id: Optional[str] = Field(default=None)
    notes: Optional[str] = Field(default=None)
    recommendations: Optional[str] = Field(default=None)
    next_check_date: Optional[date] = Field(default=None)

    risk_score: int = Field(default=0, ge=0)
    risk_level: RiskLevel = Field(default=RiskLevel.STABLE)
    risk_factors: str = Field(
        default="",
        description="Triggered risk factors joined with '; ' in evaluation order.",
    )

    recorded_at: datetime = Field(default_factory=_utcnow)
    updated_at: Optional[datetime] = Field(default=None)

    def risk_factor_list(self) -> list[str]:
        return [f for f in self.risk_factors.split("; ") if f]


class ObservationRequest(ClinicalFindings):
    """Input for recording (or correcting) an observation.

    Supplying ``observation_id`` of an existing observation for the same
    patient turns the request into a correction of that observation.
    """

    patient_id: str = Field(...)
    observation_id: Optional[str] = Field(default=None)
    check_date: Optional[date] = Field(default=None)
    notes: Optional[str] = Field(default=None)
    recommendations: Optional[str] = Field(default=None)
    next_check_date: Optional[date] = Field(default=None)

    # Manual follow-up
    schedule_follow_up: bool = Field(default=False)
    follow_up_date: Optional[date] = Field(default=None)
    follow_up_assignee_id: Optional[str] = Field(default=None)
    follow_up_notes: Optional[str] = Field(default=None)

    auto_follow_up_enabled: bool = Field(
        default=True,
        description="When False no follow-up is auto-scheduled, whatever the tier.",
    )

    @property
    def manual_follow_up_requested(self) -> bool:
        return self.schedule_follow_up and self.follow_up_date is not None


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------

class RiskAlert(BaseModel):
    """A staff-actionable alert.

    Acknowledgement and resolution are independent workflows; an alert may
    be resolved without having been acknowledged.
    """

    alert_id: str = Field(default_factory=_new_id)
    patient_id: str = Field(...)
    observation_id: Optional[str] = Field(default=None)
    follow_up_id: Optional[str] = Field(default=None)
    alert_type: AlertType = Field(...)
    severity: RiskLevel = Field(...)
    title: str = Field(...)
    description: str = Field(...)
    risk_factors: str = Field(default="")
    recommended_action: str = Field(default="")
    created_at: datetime = Field(default_factory=_utcnow)

    is_acknowledged: bool = Field(default=False)
    acknowledged_by_id: Optional[str] = Field(default=None)
    acknowledged_at: Optional[datetime] = Field(default=None)
    acknowledgment_notes: Optional[str] = Field(default=None)
    action_taken: Optional[str] = Field(default=None)

    is_resolved: bool = Field(default=False)
    resolved_at: Optional[datetime] = Field(default=None)
    resolution_notes: Optional[str] = Field(default=None)


# ---------------------------------------------------------------------------
# Follow-ups
# ---------------------------------------------------------------------------

class FollowUp(BaseModel):
    """A scheduled contact task assigned to one member of staff."""

    follow_up_id: str = Field(default_factory=_new_id)
    patient_id: str = Field(...)
    assigned_to_id: str = Field(...)
    scheduled_date: date = Field(...)
    status: FollowUpStatus = Field(default=FollowUpStatus.PENDING)

    call_attempted_at: Optional[datetime] = Field(default=None)
    call_completed_at: Optional[datetime] = Field(default=None)
    call_duration_seconds: Optional[int] = Field(default=None, ge=0)
    attempt_count: int = Field(default=0, ge=0)

    # Call outcome
    patient_condition: Optional[str] = Field(default=None)
    symptoms_reported: Optional[str] = Field(default=None)
    medication_compliance: Optional[bool] = Field(default=None)
    concerns_raised: Optional[str] = Field(default=None)
    advice_given: Optional[str] = Field(default=None)
    requires_doctor_consultation: bool = Field(default=False)
    requires_immediate_attention: bool = Field(default=False)

    notes: Optional[str] = Field(default=None)
    photo_url: Optional[str] = Field(default=None)
    next_follow_up_date: Optional[date] = Field(default=None)

    triggered_by_observation_id: Optional[str] = Field(default=None)
    triggered_by_consultation_id: Optional[str] = Field(default=None)
    previous_follow_up_id: Optional[str] = Field(
        default=None,
        description="The completed follow-up this one was chained from.",
    )
    chain_depth: int = Field(
        default=0,
        ge=0,
        description="Number of chained completions leading to this task.",
    )
    created_at: datetime = Field(default_factory=_utcnow)


class FollowUpUpdate(BaseModel):
    """Outcome of a follow-up call attempt.

    Outcome fields are only persisted when ``status`` is ``COMPLETED``.
    """

    status: FollowUpStatus = Field(...)
    call_duration_seconds: Optional[int] = Field(default=None, ge=0)
    patient_condition: Optional[str] = Field(default=None)
    symptoms_reported: Optional[str] = Field(default=None)
    medication_compliance: Optional[bool] = Field(default=None)
    concerns_raised: Optional[str] = Field(default=None)
    advice_given: Optional[str] = Field(default=None)
    requires_doctor_consultation: bool = Field(default=False)
    requires_immediate_attention: bool = Field(default=False)
    next_follow_up_date: Optional[date] = Field(default=None)
    notes: Optional[str] = Field(default=None)


# ---------------------------------------------------------------------------
# Consultations
# ---------------------------------------------------------------------------

class Consultation(BaseModel):
    """The slice of a doctor consultation that can trigger a follow-up."""

    model_config = ConfigDict(frozen=True)

    consultation_id: str = Field(default_factory=_new_id)
    patient_id: str = Field(...)
    doctor_id: Optional[str] = Field(default=None)
    status: ConsultationStatus = Field(default=ConsultationStatus.COMPLETED)
    follow_up_required: bool = Field(default=False)
    follow_up_date: Optional[datetime] = Field(default=None)
