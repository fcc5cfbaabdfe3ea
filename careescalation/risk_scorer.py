"""
Risk Scorer -- Additive Clinical Risk Score for One Observation.

Converts a single clinical check plus the patient's context (age, history
of complications) into a non-negative integer score and an ordered list of
human-readable risk factors.

The score is the sum of nine independent rules, evaluated in a fixed
order.  The factor list follows that evaluation order, not magnitude.
Tiered rules (blood pressure, hemoglobin, age) are ordered guard chains
where the first matching tier wins; their ranges overlap, so the order of
the conditions matters.

Scoring is a pure function: no I/O, no state, and it never raises for
missing data -- an absent measurement contributes 0 and no factor.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from careescalation.models import ClinicalFindings, Patient


class RiskScore(BaseModel):
    """Immutable result of scoring one observation."""

    model_config = ConfigDict(frozen=True)

    score: int = Field(..., ge=0)
    risk_factors: tuple[str, ...] = Field(default=())


def score_observation(observation: ClinicalFindings, patient: Patient) -> RiskScore:
    """Score a clinical observation for a patient.

    Args:
        observation: The clinical findings of one check.
        patient: The patient the check belongs to (age, complications).

    Returns:
        A ``RiskScore`` with the total and the triggered factors.
    """
    total = 0
    factors: list[str] = []

    # --- 1. Blood pressure ---
    if observation.bp_systolic is not None and observation.bp_diastolic is not None:
        points, label = _blood_pressure(observation.bp_systolic, observation.bp_diastolic)
        total += points
        if points:
            factors.append(
                f"{label} (BP: {observation.bp_systolic}/{observation.bp_diastolic})"
            )

    # --- 2. Hemoglobin ---
    if observation.hemoglobin is not None:
        points, label = _hemoglobin(observation.hemoglobin)
        total += points
        if points:
            factors.append(f"{label} (Hb: {observation.hemoglobin} g/dL)")

    # --- 3. Blood sugar ---
    sugar = _blood_sugar(observation)
    total += sugar
    if sugar >= 3:
        factors.append("High Blood Sugar - Possible Gestational Diabetes")
    elif sugar >= 1:
        factors.append("Elevated Blood Sugar")

    # --- 4. Age ---
    if patient.age is not None:
        points = _age(patient.age)
        total += points
        if points:
            factors.append(f"High Risk Age Group ({patient.age} years)")

    # --- 5. Previous complications ---
    if patient.has_previous_complications:
        total += 3
        factors.append("History of Previous Complications")

    # --- 6. Danger signs ---
    total += _danger_signs(observation, factors)

    # --- 7. Oxygen saturation ---
    if observation.spo2 is not None and observation.spo2 < 95:
        total += 2
        factors.append(f"Low Oxygen Saturation (SpO2: {observation.spo2}%)")

    # --- 8. Fetal heart rate ---
    if observation.fetal_heart_rate is not None:
        if observation.fetal_heart_rate < 110 or observation.fetal_heart_rate > 160:
            total += 3
            factors.append(f"Abnormal Fetal Heart Rate ({observation.fetal_heart_rate} bpm)")

    # --- 9. Fetal movement ---
    if observation.fetal_movement is False:
        total += 3
        factors.append("Reduced Fetal Movement Reported")

    return RiskScore(score=total, risk_factors=tuple(factors))


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

def _blood_pressure(systolic: int, diastolic: int) -> tuple[int, str]:
    if systolic >= 160 or diastolic >= 110:
        return 4, "Severe Hypertension"
    elif systolic >= 140 or diastolic >= 90:
        return 3, "High Blood Pressure"
    elif systolic >= 130 or diastolic >= 85:
        return 1, "Elevated Blood Pressure"
    elif systolic < 90 or diastolic < 60:
        return 2, "Hypotension"
    return 0, ""


def _hemoglobin(hb: float) -> tuple[int, str]:
    if hb < 7:
        return 4, "Severe Anemia"
    elif hb < 9:
        return 2, "Moderate Anemia"
    elif hb < 11:
        return 1, "Mild Anemia"
    return 0, ""


# (reading attribute, high cut-off, elevated cut-off)
_SUGAR_CUTOFFS = (
    ("blood_sugar_fasting", 126, 100),
    ("blood_sugar_random", 200, 140),
    ("blood_sugar_pp", 180, 140),
)


def _blood_sugar(observation: ClinicalFindings) -> int:
    """Highest sub-score across the readings that were taken."""
    score = 0
    for attr, high, elevated in _SUGAR_CUTOFFS:
        value = getattr(observation, attr)
        if value is None:
            continue
        if value >= high:
            score = max(score, 3)
        elif value >= elevated:
            score = max(score, 1)
    return score


def _age(age: int) -> int:
    if age < 18:
        return 2
    elif age > 40:
        return 3
    elif age > 35:
        return 2
    return 0


def _danger_signs(observation: ClinicalFindings, factors: list[str]) -> int:
    score = 0

    if observation.bleeding_reported:
        score += 4
        factors.append("Vaginal Bleeding Reported")

    if observation.swelling_observed:
        score += 2
        factors.append("Swelling/Edema Observed")

    if observation.headache_reported:
        score += 2
        factors.append("Severe Headache Reported")

    if observation.blurred_vision_reported:
        score += 3
        factors.append("Blurred Vision Reported")

    if observation.abdominal_pain_reported:
        score += 3
        factors.append("Abdominal Pain Reported")

    if observation.urine_albumin in ("++", "+++"):
        score += 3
        factors.append(f"Protein in Urine (Albuminuria: {observation.urine_albumin})")

    return score
