"""
Tests for careescalation.risk_scorer -- Additive Clinical Risk Score.

Covers: blood pressure tiers and boundaries, hemoglobin tiers, blood sugar
maximum, age brackets, previous complications, additive danger signs,
oxygen saturation, fetal heart rate and movement, factor ordering, and
purity of the scoring function.
"""

from __future__ import annotations

from careescalation.models import ClinicalFindings, Patient
from careescalation.risk_scorer import score_observation


def _make_patient(age: int | None = 25, complications: bool = False) -> Patient:
    return Patient(
        mother_id="MR-TEST",
        name="Test Patient",
        age=age,
        has_previous_complications=complications,
    )


def _score(patient: Patient | None = None, **findings):
    return score_observation(ClinicalFindings(**findings), patient or _make_patient())


# ---------------------------------------------------------------------------
# 1. Empty input
# ---------------------------------------------------------------------------

class TestEmptyObservation:
    def test_no_measurements_scores_zero(self):
        result = _score()
        assert result.score == 0
        assert result.risk_factors == ()

    def test_unknown_age_contributes_nothing(self):
        result = _score(_make_patient(age=None))
        assert result.score == 0


# ---------------------------------------------------------------------------
# 2. Blood pressure
# ---------------------------------------------------------------------------

class TestBloodPressure:
    def test_severe_hypertension_by_systolic(self):
        result = _score(bp_systolic=160, bp_diastolic=100)
        assert result.score == 4
        assert result.risk_factors == ("Severe Hypertension (BP: 160/100)",)

    def test_severe_hypertension_by_diastolic(self):
        assert _score(bp_systolic=120, bp_diastolic=110).score == 4

    def test_high_blood_pressure_lower_boundary(self):
        result = _score(bp_systolic=140, bp_diastolic=90)
        assert result.score == 3
        assert result.risk_factors == ("High Blood Pressure (BP: 140/90)",)

    def test_high_blood_pressure_upper_boundary(self):
        assert _score(bp_systolic=159, bp_diastolic=100).score == 3

    def test_elevated_blood_pressure(self):
        result = _score(bp_systolic=132, bp_diastolic=80)
        assert result.score == 1
        assert result.risk_factors == ("Elevated Blood Pressure (BP: 132/80)",)

    def test_hypotension(self):
        result = _score(bp_systolic=85, bp_diastolic=55)
        assert result.score == 2
        assert result.risk_factors == ("Hypotension (BP: 85/55)",)

    def test_normal_blood_pressure(self):
        assert _score(bp_systolic=118, bp_diastolic=76).score == 0

    def test_hypertension_wins_over_low_diastolic(self):
        # 165/50 matches both the severe and the hypotension guards
        assert _score(bp_systolic=165, bp_diastolic=50).score == 4

    def test_single_reading_is_ignored(self):
        assert _score(bp_systolic=180).score == 0


# ---------------------------------------------------------------------------
# 3. Hemoglobin
# ---------------------------------------------------------------------------

class TestHemoglobin:
    def test_normal_at_eleven(self):
        assert _score(hemoglobin=11.0).score == 0

    def test_mild_anemia(self):
        result = _score(hemoglobin=10.9)
        assert result.score == 1
        assert result.risk_factors == ("Mild Anemia (Hb: 10.9 g/dL)",)

    def test_measured_value_keeps_its_decimal(self):
        result = _score(hemoglobin=10.0)
        assert result.risk_factors == ("Mild Anemia (Hb: 10.0 g/dL)",)

    def test_moderate_anemia(self):
        result = _score(hemoglobin=8.5)
        assert result.score == 2
        assert result.risk_factors == ("Moderate Anemia (Hb: 8.5 g/dL)",)

    def test_severe_anemia(self):
        result = _score(hemoglobin=6.9)
        assert result.score == 4
        assert result.risk_factors == ("Severe Anemia (Hb: 6.9 g/dL)",)


# ---------------------------------------------------------------------------
# 4. Blood sugar
# ---------------------------------------------------------------------------

class TestBloodSugar:
    def test_elevated_fasting(self):
        result = _score(blood_sugar_fasting=105)
        assert result.score == 1
        assert result.risk_factors == ("Elevated Blood Sugar",)

    def test_high_random(self):
        result = _score(blood_sugar_random=210)
        assert result.score == 3
        assert result.risk_factors == ("High Blood Sugar - Possible Gestational Diabetes",)

    def test_maximum_of_readings_not_sum(self):
        result = _score(blood_sugar_fasting=105, blood_sugar_random=150, blood_sugar_pp=190)
        assert result.score == 3
        assert len(result.risk_factors) == 1

    def test_several_elevated_readings_count_once(self):
        assert _score(blood_sugar_fasting=110, blood_sugar_pp=150).score == 1

    def test_normal_readings(self):
        assert _score(blood_sugar_fasting=90, blood_sugar_random=120).score == 0


# ---------------------------------------------------------------------------
# 5. Patient context
# ---------------------------------------------------------------------------

class TestPatientContext:
    def test_teenage_pregnancy(self):
        result = _score(_make_patient(age=17))
        assert result.score == 2
        assert result.risk_factors == ("High Risk Age Group (17 years)",)

    def test_age_eighteen_is_not_flagged(self):
        assert _score(_make_patient(age=18)).score == 0

    def test_age_thirty_five_is_not_flagged(self):
        assert _score(_make_patient(age=35)).score == 0

    def test_advanced_maternal_age(self):
        assert _score(_make_patient(age=36)).score == 2

    def test_over_forty_takes_precedence(self):
        assert _score(_make_patient(age=41)).score == 3

    def test_previous_complications(self):
        result = _score(_make_patient(complications=True))
        assert result.score == 3
        assert result.risk_factors == ("History of Previous Complications",)


# ---------------------------------------------------------------------------
# 6. Danger signs and other findings
# ---------------------------------------------------------------------------

class TestDangerSigns:
    def test_danger_signs_are_additive(self):
        result = _score(
            bleeding_reported=True,
            swelling_observed=True,
            headache_reported=True,
            blurred_vision_reported=True,
            abdominal_pain_reported=True,
        )
        assert result.score == 4 + 2 + 2 + 3 + 3
        assert len(result.risk_factors) == 5

    def test_false_flags_score_nothing(self):
        assert _score(bleeding_reported=False, swelling_observed=False).score == 0

    def test_albuminuria_double_plus(self):
        result = _score(urine_albumin="++")
        assert result.score == 3
        assert result.risk_factors == ("Protein in Urine (Albuminuria: ++)",)

    def test_albuminuria_single_plus_ignored(self):
        assert _score(urine_albumin="+").score == 0

    def test_low_oxygen_saturation(self):
        result = _score(spo2=93)
        assert result.score == 2
        assert result.risk_factors == ("Low Oxygen Saturation (SpO2: 93%)",)

    def test_oxygen_saturation_at_ninety_five_is_normal(self):
        assert _score(spo2=95).score == 0

    def test_abnormal_fetal_heart_rate(self):
        assert _score(fetal_heart_rate=105).score == 3
        assert _score(fetal_heart_rate=165).score == 3
        assert _score(fetal_heart_rate=110).score == 0
        assert _score(fetal_heart_rate=160).score == 0

    def test_absent_fetal_movement(self):
        result = _score(fetal_movement=False)
        assert result.score == 3
        assert result.risk_factors == ("Reduced Fetal Movement Reported",)

    def test_unassessed_fetal_movement(self):
        assert _score(fetal_movement=None).score == 0


# ---------------------------------------------------------------------------
# 7. Combined scoring
# ---------------------------------------------------------------------------

class TestCombinedScoring:
    def test_high_risk_scenario(self):
        patient = _make_patient(age=42, complications=True)
        result = _score(
            patient,
            bp_systolic=165,
            bp_diastolic=70,
            hemoglobin=6.5,
            bleeding_reported=True,
        )
        assert result.score == 18
        assert result.risk_factors == (
            "Severe Hypertension (BP: 165/70)",
            "Severe Anemia (Hb: 6.5 g/dL)",
            "High Risk Age Group (42 years)",
            "History of Previous Complications",
            "Vaginal Bleeding Reported",
        )

    def test_factor_order_follows_evaluation_order(self):
        result = _score(
            fetal_movement=False,
            spo2=90,
            swelling_observed=True,
            hemoglobin=10.0,
        )
        assert [f.split(" ")[0] for f in result.risk_factors] == [
            "Mild", "Swelling/Edema", "Low", "Reduced",
        ]

    def test_scoring_is_pure(self):
        patient = _make_patient(age=38)
        findings = ClinicalFindings(bp_systolic=145, bp_diastolic=92, hemoglobin=8.0)
        first = score_observation(findings, patient)
        second = score_observation(findings, patient)
        assert first == second
        assert patient.current_risk_score == 0
